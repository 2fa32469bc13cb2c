"""
Shared Document Store and Lock Arbiter for Cowrite.

A conversation owns one or more documents (tabs). Each document carries a
tri-state lock holder that arbitrates writes between the human and the
master agent:

- agent-path writes are rejected while the user holds the lock
- user-path writes are rejected while the agent holds the lock

The lock is read-checked on every mutation. Each row also carries a
version counter; every mutation is a compare-and-swap on that counter, so
a writer that lost a race gets a conflict instead of overwriting.

Undo/redo stacks live on the row (see core.history).
"""

import json
import logging
from enum import Enum
from typing import Optional, List, Sequence, Dict, Any

from pydantic import BaseModel, Field

from cowrite.core.db import SQLiteStore, now_iso, new_id
from cowrite.core.history import (
    HistoryEmptyError,
    cap_stack,
    record_edit,
    plan_undo,
    plan_redo,
)

logger = logging.getLogger(__name__)


DEFAULT_DOCUMENT_TITLE = "Doc"
WRITE_MODES = ("append", "replace")


# ============================================================================
# TYPES
# ============================================================================

class LockHolder(str, Enum):
    """Who currently owns write access to a document."""

    NONE = "none"
    USER = "user"
    AGENT = "agent"

    @classmethod
    def from_db(cls, value: Optional[str]) -> "LockHolder":
        return cls(value) if value else cls.NONE

    def to_db(self) -> Optional[str]:
        return None if self is LockHolder.NONE else self.value


class Document(BaseModel):
    """
    A shared document row.

    Attributes:
        id: Document UUID.
        conversation_id: Owning conversation.
        title: Display title (tab name).
        content: Current content (markdown by convention).
        lock_holder: none / user / agent.
        lock_expires_at: Stored for display; never swept.
        undo_stack: Prior contents, most recent first (max 30).
        redo_stack: Undone contents, most recent first (max 30).
        version: Monotonic counter bumped by every mutation.
        created_at: ISO timestamp.
        updated_at: ISO timestamp of the last mutation.
    """
    id: str
    conversation_id: str
    title: str = DEFAULT_DOCUMENT_TITLE
    content: str = ""
    lock_holder: LockHolder = LockHolder.NONE
    lock_expires_at: Optional[str] = None
    undo_stack: List[str] = Field(default_factory=list)
    redo_stack: List[str] = Field(default_factory=list)
    version: int = 0
    created_at: str
    updated_at: str


class WriteOutcome(BaseModel):
    """Result of append_or_replace; conflicts are reported, not raised."""
    ok: bool
    conflict: bool = False
    document: Optional[Document] = None


# ============================================================================
# ERRORS
# ============================================================================

class DocumentNotFoundError(LookupError):
    """Raised when a document id is unknown (or not in the conversation)."""
    pass


class DocumentConflictError(Exception):
    """
    Raised when a write is rejected by the lock arbiter.

    Attributes:
        document_id: Target document.
        lock_holder: Holder at the time of rejection.
    """

    def __init__(self, document_id: str, lock_holder: LockHolder, message: Optional[str] = None):
        self.document_id = document_id
        self.lock_holder = lock_holder
        if message is None:
            message = f"Doc is being edited by the {lock_holder.value}"
        super().__init__(message)


class StaleDocumentError(DocumentConflictError):
    """Raised when the row changed between read and write."""

    def __init__(self, document_id: str, lock_holder: LockHolder):
        super().__init__(document_id, lock_holder, "Doc was modified concurrently")


class LastDocumentError(Exception):
    """Raised when deleting the only remaining document of a conversation."""
    pass


# ============================================================================
# HELPERS
# ============================================================================

def _parse_stack(raw: Optional[str]) -> List[str]:
    """Decode a persisted stack; anything malformed reads as empty."""
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _document_from_row(row) -> Document:
    data = dict(row)
    return Document(
        id=data["id"],
        conversation_id=data["conversation_id"],
        title=data["title"],
        content=data["content"] or "",
        lock_holder=LockHolder.from_db(data["lock_holder"]),
        lock_expires_at=data["lock_expires_at"],
        undo_stack=_parse_stack(data["undo_stack"]),
        redo_stack=_parse_stack(data["redo_stack"]),
        version=data["version"],
        created_at=data["created_at"],
        updated_at=data["updated_at"],
    )


def is_write_blocked(lock_holder: LockHolder, actor: LockHolder) -> bool:
    """
    Lock arbiter rule.

    Args:
        lock_holder: Current holder.
        actor: Writer (USER or AGENT).

    Returns:
        True if the write must be rejected.
    """
    if actor is LockHolder.AGENT:
        return lock_holder is LockHolder.USER
    if actor is LockHolder.USER:
        return lock_holder is LockHolder.AGENT
    raise ValueError(f"Invalid write actor: {actor}")


# ============================================================================
# DOCUMENT STORE
# ============================================================================

class DocumentStore(SQLiteStore):
    """
    Persisted documents with lock arbitration and undo/redo.

    Example:
        >>> store = DocumentStore(db_path)
        >>> doc = store.get_document(conversation_id)  # lazily creates "Doc"
        >>> store.set_lock(doc.id, LockHolder.AGENT)
        >>> store.write_document_content(doc.id, "draft", LockHolder.USER)
        Traceback (most recent call last):
        DocumentConflictError: Doc is being edited by the agent
    """

    # ========================================================================
    # READS
    # ========================================================================

    def get_document_by_id(
        self,
        document_id: str,
        conversation_id: Optional[str] = None
    ) -> Optional[Document]:
        """Fetch a document, optionally requiring it to belong to a conversation."""
        with self._get_connection() as conn:
            if conversation_id is None:
                row = conn.execute(
                    "SELECT * FROM documents WHERE id = ?",
                    (document_id,)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM documents WHERE id = ? AND conversation_id = ?",
                    (document_id, conversation_id)
                ).fetchone()
        return _document_from_row(row) if row else None

    def list_documents(self, conversation_id: str) -> List[Document]:
        """All documents of a conversation, oldest first (the first is the default)."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT * FROM documents
                WHERE conversation_id = ?
                ORDER BY created_at ASC, rowid ASC
                """,
                (conversation_id,)
            ).fetchall()
        return [_document_from_row(row) for row in rows]

    def get_document(
        self,
        conversation_id: str,
        document_id: Optional[str] = None
    ) -> Document:
        """
        Get a named document or the conversation's default document.

        The default is the oldest document of the conversation. If the
        conversation has none, an empty one is created.

        Args:
            conversation_id: Owning conversation.
            document_id: Optional explicit document.

        Returns:
            The document.

        Raises:
            DocumentNotFoundError: If document_id is given but unknown.
        """
        if document_id:
            doc = self.get_document_by_id(document_id, conversation_id)
            if doc is None:
                raise DocumentNotFoundError(f"Doc not found: {document_id}")
            return doc

        documents = self.list_documents(conversation_id)
        if documents:
            return documents[0]

        logger.info(f"Creating default document for conversation {conversation_id}")
        return self.create_document(conversation_id)

    def _require(self, document_id: str, conversation_id: Optional[str] = None) -> Document:
        doc = self.get_document_by_id(document_id, conversation_id)
        if doc is None:
            raise DocumentNotFoundError(f"Doc not found: {document_id}")
        return doc

    # ========================================================================
    # DOCUMENT LIFECYCLE
    # ========================================================================

    def create_document(
        self,
        conversation_id: str,
        title: Optional[str] = None,
        content: str = ""
    ) -> Document:
        """
        Create a new document (tab) in a conversation.

        Args:
            conversation_id: Owning conversation.
            title: Display title; blank becomes "Doc".
            content: Initial content.
        """
        document_id = new_id()
        now = now_iso()
        title = (title or "").strip() or DEFAULT_DOCUMENT_TITLE

        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO documents
                    (id, conversation_id, title, content, undo_stack, redo_stack,
                     version, created_at, updated_at)
                VALUES (?, ?, ?, ?, '[]', '[]', 0, ?, ?)
                """,
                (document_id, conversation_id, title, content or "", now, now)
            )

        logger.info(f"Created document {document_id} ('{title}') in {conversation_id}")
        return self._require(document_id)

    def rename_document(self, document_id: str, conversation_id: str, title: str) -> Document:
        """Rename a document; blank titles become "Doc"."""
        title = (title or "").strip() or DEFAULT_DOCUMENT_TITLE
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE documents
                SET title = ?, updated_at = ?, version = version + 1
                WHERE id = ? AND conversation_id = ?
                """,
                (title, now_iso(), document_id, conversation_id)
            )
            if cursor.rowcount == 0:
                raise DocumentNotFoundError(f"Doc not found: {document_id}")
        return self._require(document_id)

    def delete_document(self, document_id: str, conversation_id: str) -> bool:
        """
        Delete a document.

        Raises:
            DocumentNotFoundError: If the document is not in the conversation.
            LastDocumentError: If it is the conversation's only document.
        """
        documents = self.list_documents(conversation_id)
        if not any(doc.id == document_id for doc in documents):
            raise DocumentNotFoundError(f"Doc not found: {document_id}")
        if len(documents) <= 1:
            raise LastDocumentError("Cannot delete the last doc.")

        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE id = ? AND conversation_id = ?",
                (document_id, conversation_id)
            )
        logger.info(f"Deleted document {document_id} from {conversation_id}")
        return cursor.rowcount > 0

    # ========================================================================
    # LOCKING
    # ========================================================================

    def set_lock(
        self,
        document_id: str,
        holder: LockHolder,
        expires_at: Optional[str] = None
    ) -> Document:
        """
        Set the lock holder unconditionally.

        Used to acquire before an agent turn, release after it, and by the
        human to force-reclaim a stuck lock.
        """
        holder = LockHolder(holder)
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE documents
                SET lock_holder = ?, lock_expires_at = ?, updated_at = ?, version = version + 1
                WHERE id = ?
                """,
                (holder.to_db(), expires_at if holder is not LockHolder.NONE else None,
                 now_iso(), document_id)
            )
            if cursor.rowcount == 0:
                raise DocumentNotFoundError(f"Doc not found: {document_id}")

        logger.info(f"Document {document_id} lock -> {holder.value}")
        return self._require(document_id)

    def set_conversation_lock(self, conversation_id: str, holder: LockHolder) -> int:
        """
        Set the lock on every document of a conversation.

        The default document is created first so a fresh conversation is
        still covered.

        Returns:
            Number of documents updated.
        """
        holder = LockHolder(holder)
        self.get_document(conversation_id)
        with self._get_connection() as conn:
            cursor = conn.execute(
                """
                UPDATE documents
                SET lock_holder = ?, lock_expires_at = NULL, updated_at = ?, version = version + 1
                WHERE conversation_id = ?
                """,
                (holder.to_db(), now_iso(), conversation_id)
            )
            count = cursor.rowcount

        logger.info(f"Conversation {conversation_id} lock -> {holder.value} ({count} doc(s))")
        return count

    # ========================================================================
    # CONTENT WRITES
    # ========================================================================

    def _compare_and_swap(self, doc: Document, fields: Dict[str, Any]) -> Document:
        """Apply `fields` only if the row still has doc.version."""
        fields = dict(fields, updated_at=now_iso())
        assignments = ", ".join(f"{column} = ?" for column in fields)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE documents SET {assignments}, version = version + 1 "
                "WHERE id = ? AND version = ?",
                [*fields.values(), doc.id, doc.version]
            )
            swapped = cursor.rowcount > 0

        if not swapped:
            current = self._require(doc.id)
            logger.warning(
                f"Stale write to document {doc.id}: expected version {doc.version}, "
                f"found {current.version}"
            )
            raise StaleDocumentError(doc.id, current.lock_holder)
        return self._require(doc.id)

    def write_document_content(
        self,
        document_id: str,
        new_content: str,
        actor: LockHolder,
        undo_stack: Optional[Sequence[str]] = None,
        redo_stack: Optional[Sequence[str]] = None,
        lock_holder: Optional[LockHolder] = None,
        expected_version: Optional[int] = None
    ) -> Document:
        """
        Write new content as `actor`, subject to the lock arbiter.

        Args:
            document_id: Target document.
            new_content: Full replacement content.
            actor: LockHolder.USER or LockHolder.AGENT.
            undo_stack: Explicit undo stack (requires redo_stack too).
            redo_stack: Explicit redo stack (requires undo_stack too).
            lock_holder: Optionally set the lock in the same write.
            expected_version: Reject if the row is no longer at this version.

        Returns:
            The updated document.

        Raises:
            DocumentNotFoundError: Unknown document.
            DocumentConflictError: Lock held by the other actor, or the row
                changed concurrently (StaleDocumentError).
            ValueError: Only one of the explicit stacks was supplied.
        """
        actor = LockHolder(actor)
        if (undo_stack is None) != (redo_stack is None):
            raise ValueError("undo_stack and redo_stack must be supplied together")

        doc = self._require(document_id)

        if is_write_blocked(doc.lock_holder, actor):
            logger.info(
                f"Rejected {actor.value} write to {document_id}: locked by {doc.lock_holder.value}"
            )
            raise DocumentConflictError(document_id, doc.lock_holder)

        if expected_version is not None and expected_version != doc.version:
            raise StaleDocumentError(document_id, doc.lock_holder)

        if undo_stack is not None:
            undo, redo = cap_stack(undo_stack), cap_stack(redo_stack)
        elif actor is LockHolder.USER:
            undo, redo = record_edit(doc.content, new_content, doc.undo_stack, doc.redo_stack)
        else:
            # Agent writes are not part of the human's history
            undo, redo = doc.undo_stack, doc.redo_stack

        fields: Dict[str, Any] = {
            "content": new_content,
            "undo_stack": json.dumps(undo),
            "redo_stack": json.dumps(redo),
        }
        if lock_holder is not None:
            fields["lock_holder"] = LockHolder(lock_holder).to_db()

        return self._compare_and_swap(doc, fields)

    def append_or_replace(
        self,
        conversation_id: str,
        mode: str,
        text: str,
        actor: LockHolder,
        document_id: Optional[str] = None
    ) -> WriteOutcome:
        """
        Append to or replace a document; conflicts come back as an outcome.

        append: (content + "\\n" + text).strip()
        replace: text.strip()

        Args:
            conversation_id: Owning conversation.
            mode: "append" or "replace".
            text: Text to write.
            actor: Writer.
            document_id: Target; defaults to the conversation's default document.

        Raises:
            DocumentNotFoundError: If document_id is given but unknown.
            ValueError: Unknown mode.
        """
        if mode not in WRITE_MODES:
            raise ValueError(f"Invalid write mode: {mode}")
        actor = LockHolder(actor)

        doc = self.get_document(conversation_id, document_id)
        if is_write_blocked(doc.lock_holder, actor):
            return WriteOutcome(ok=False, conflict=True, document=doc)

        if mode == "replace":
            new_content = text.strip()
        else:
            new_content = (doc.content + "\n" + text).strip()

        try:
            updated = self.write_document_content(
                doc.id, new_content, actor, expected_version=doc.version
            )
        except DocumentConflictError:
            return WriteOutcome(ok=False, conflict=True, document=self._require(doc.id))
        return WriteOutcome(ok=True, document=updated)

    # ========================================================================
    # UNDO / REDO
    # ========================================================================

    def undo(self, document_id: str, conversation_id: Optional[str] = None) -> Document:
        """
        Step back one entry of the document's history.

        Raises:
            HistoryEmptyError: Undo stack is empty.
            DocumentConflictError: The agent holds the lock.
        """
        doc = self._require(document_id, conversation_id)
        if doc.lock_holder is LockHolder.AGENT:
            raise DocumentConflictError(document_id, doc.lock_holder)
        content, undo, redo = plan_undo(doc.content, doc.undo_stack, doc.redo_stack)
        return self.write_document_content(
            doc.id, content, LockHolder.USER,
            undo_stack=undo, redo_stack=redo, expected_version=doc.version
        )

    def redo(self, document_id: str, conversation_id: Optional[str] = None) -> Document:
        """
        Re-apply the most recently undone entry.

        Raises:
            HistoryEmptyError: Redo stack is empty.
            DocumentConflictError: The agent holds the lock.
        """
        doc = self._require(document_id, conversation_id)
        if doc.lock_holder is LockHolder.AGENT:
            raise DocumentConflictError(document_id, doc.lock_holder)
        content, undo, redo = plan_redo(doc.content, doc.undo_stack, doc.redo_stack)
        return self.write_document_content(
            doc.id, content, LockHolder.USER,
            undo_stack=undo, redo_stack=redo, expected_version=doc.version
        )


__all__ = [
    "LockHolder",
    "Document",
    "WriteOutcome",
    "DocumentStore",
    "DocumentNotFoundError",
    "DocumentConflictError",
    "StaleDocumentError",
    "LastDocumentError",
    "HistoryEmptyError",
    "is_write_blocked",
    "DEFAULT_DOCUMENT_TITLE",
]
