"""
SQLite Persistence for Cowrite.

Holds the shared schema and connection handling for every store, plus the
conversation and message history store used by the orchestration session.

One database file backs:
- conversations / messages (this module)
- documents with lock and undo/redo state (core.documents)
- specialists, master agents, tools, files, memories (core.catalog)
- knowledge items (core.knowledge)

Every owner-scoped query takes an explicit user_id.
"""

import json
import sqlite3
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Optional, Dict, Any, List, Iterator, Union
from datetime import datetime
import uuid

logger = logging.getLogger(__name__)


DEFAULT_CONVERSATION_TITLE = "New conversation"
BUILDER_CONVERSATION_TITLE = "AI Builder"
MESSAGE_ROLES = ("user", "assistant", "system")


# ============================================================================
# DATABASE SCHEMA
# ============================================================================

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT 'New conversation',
    master_agent_id TEXT,
    is_builder INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS messages (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    role TEXT NOT NULL CHECK (role IN ('user', 'assistant', 'system')),
    content TEXT NOT NULL,
    tool_calls TEXT,
    created_at TEXT NOT NULL,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS documents (
    id TEXT PRIMARY KEY,
    conversation_id TEXT NOT NULL,
    title TEXT NOT NULL DEFAULT 'Doc',
    content TEXT NOT NULL DEFAULT '',
    lock_holder TEXT CHECK (lock_holder IN ('user', 'agent')),
    lock_expires_at TEXT,
    undo_stack TEXT NOT NULL DEFAULT '[]',
    redo_stack TEXT NOT NULL DEFAULT '[]',
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    FOREIGN KEY (conversation_id) REFERENCES conversations(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS agents (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    system_prompt TEXT NOT NULL DEFAULT '',
    model TEXT,
    knowledge TEXT,
    max_steps INTEGER,
    thinking_enabled INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS master_agents (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    system_prompt TEXT NOT NULL DEFAULT '',
    model TEXT,
    max_steps INTEGER,
    thinking_enabled INTEGER NOT NULL DEFAULT 0,
    tool_ids TEXT NOT NULL DEFAULT '[]',
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS master_agent_memories (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    master_agent_id TEXT,
    content TEXT NOT NULL,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS tools (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL DEFAULT 'api',
    config TEXT NOT NULL DEFAULT '{}',
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS agent_tools (
    agent_id TEXT NOT NULL,
    tool_id TEXT NOT NULL,
    PRIMARY KEY (agent_id, tool_id),
    FOREIGN KEY (agent_id) REFERENCES agents(id) ON DELETE CASCADE,
    FOREIGN KEY (tool_id) REFERENCES tools(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    filename TEXT NOT NULL,
    mime_type TEXT,
    text_content TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS file_assignments (
    file_id TEXT NOT NULL,
    assignee_type TEXT NOT NULL CHECK (assignee_type IN ('agent', 'master')),
    assignee_id TEXT NOT NULL,
    PRIMARY KEY (file_id, assignee_type, assignee_id),
    FOREIGN KEY (file_id) REFERENCES files(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS knowledge_items (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    owner_type TEXT NOT NULL CHECK (owner_type IN ('master', 'agent', 'default')),
    owner_id TEXT,
    type TEXT NOT NULL CHECK (type IN ('guidance', 'rules', 'style')),
    content TEXT NOT NULL DEFAULT '',
    sort_order INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_messages_conversation_id
ON messages(conversation_id);

CREATE INDEX IF NOT EXISTS idx_documents_conversation_id
ON documents(conversation_id);

CREATE INDEX IF NOT EXISTS idx_conversations_user_id
ON conversations(user_id);

CREATE INDEX IF NOT EXISTS idx_knowledge_owner
ON knowledge_items(user_id, owner_type, owner_id);
"""


class ConversationNotFoundError(LookupError):
    """Raised when a conversation id is unknown for the given owner."""
    pass


def now_iso() -> str:
    """Timestamp format shared by every table."""
    return datetime.now().isoformat()


def new_id() -> str:
    return str(uuid.uuid4())


# ============================================================================
# DATABASE CONNECTION MANAGER
# ============================================================================

class SQLiteStore:
    """
    Base class for stores sharing one SQLite file.

    Each operation opens its own short-lived connection; there is no
    in-process cache of row state.
    """

    def __init__(self, db_path: Union[str, Path]):
        """
        Initialize the store and create tables if needed.

        Args:
            db_path: Path to the SQLite database file.
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        """Create database tables if they don't exist."""
        try:
            with self._get_connection() as conn:
                conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            logger.error(f"Failed to initialize database: {e}")
            raise

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection with row factory and foreign keys; commit on success."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()


# ============================================================================
# CONVERSATION STORE
# ============================================================================

def _conversation_from_row(row: sqlite3.Row) -> Dict[str, Any]:
    conv = dict(row)
    conv["is_builder"] = bool(conv.get("is_builder"))
    return conv


class ConversationDB(SQLiteStore):
    """
    Conversation and message history store.

    Deleting a conversation cascades to its documents and messages.
    """

    def ensure_user(self, user_id: str) -> None:
        """Insert the owner row if it does not exist yet."""
        with self._get_connection() as conn:
            conn.execute(
                "INSERT OR IGNORE INTO users (id, created_at) VALUES (?, ?)",
                (user_id, now_iso())
            )

    def create_conversation(
        self,
        user_id: str,
        title: Optional[str] = None,
        master_agent_id: Optional[str] = None,
        is_builder: bool = False
    ) -> Dict[str, Any]:
        """
        Create a new conversation.

        Args:
            user_id: Owner key.
            title: Optional title (defaults to "New conversation").
            master_agent_id: Optional master agent configuration to bind.
            is_builder: Whether this is the agent-configuration conversation.

        Returns:
            The created conversation dict.
        """
        conversation_id = new_id()
        now = now_iso()
        title = (title or "").strip() or DEFAULT_CONVERSATION_TITLE

        try:
            self.ensure_user(user_id)
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO conversations
                        (id, user_id, title, master_agent_id, is_builder, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (conversation_id, user_id, title, master_agent_id, int(is_builder), now, now)
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to create conversation: {e}")
            raise

        logger.info(f"Created conversation: {conversation_id} (builder={is_builder})")
        return self.get_conversation(conversation_id, user_id)

    def get_conversation(
        self,
        conversation_id: str,
        user_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Get conversation by ID.

        Args:
            conversation_id: Conversation UUID.
            user_id: When given, only return the conversation if this user owns it.

        Returns:
            Conversation dict or None if not found.
        """
        with self._get_connection() as conn:
            if user_id is None:
                row = conn.execute(
                    "SELECT * FROM conversations WHERE id = ?",
                    (conversation_id,)
                ).fetchone()
            else:
                row = conn.execute(
                    "SELECT * FROM conversations WHERE id = ? AND user_id = ?",
                    (conversation_id, user_id)
                ).fetchone()
        return _conversation_from_row(row) if row else None

    def require_conversation(self, conversation_id: str, user_id: str) -> Dict[str, Any]:
        """Like get_conversation, but raises ConversationNotFoundError."""
        conv = self.get_conversation(conversation_id, user_id)
        if conv is None:
            raise ConversationNotFoundError(f"Conversation not found: {conversation_id}")
        return conv

    def list_conversations(
        self,
        user_id: str,
        limit: int = 50,
        include_builder: bool = False
    ) -> List[Dict[str, Any]]:
        """
        List a user's conversations, most recently updated first.

        Args:
            user_id: Owner key.
            limit: Maximum number of conversations to return.
            include_builder: Include the builder conversation.
        """
        query = "SELECT * FROM conversations WHERE user_id = ?"
        if not include_builder:
            query += " AND is_builder = 0"
        query += " ORDER BY updated_at DESC, rowid DESC LIMIT ?"

        with self._get_connection() as conn:
            rows = conn.execute(query, (user_id, limit)).fetchall()
        return [_conversation_from_row(row) for row in rows]

    def update_conversation(
        self,
        conversation_id: str,
        user_id: str,
        title: Optional[str] = None,
        master_agent_id: Optional[str] = None
    ) -> Optional[Dict[str, Any]]:
        """
        Update title and/or bound master agent.

        Returns:
            Updated conversation dict, or None if not found.
        """
        updates = []
        params: List[Any] = []
        if title is not None:
            updates.append("title = ?")
            params.append(title.strip() or DEFAULT_CONVERSATION_TITLE)
        if master_agent_id is not None:
            updates.append("master_agent_id = ?")
            params.append(master_agent_id or None)
        updates.append("updated_at = ?")
        params.append(now_iso())
        params.extend([conversation_id, user_id])

        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE conversations SET {', '.join(updates)} WHERE id = ? AND user_id = ?",
                params
            )
            if cursor.rowcount == 0:
                return None
        return self.get_conversation(conversation_id, user_id)

    def delete_conversation(self, conversation_id: str, user_id: str) -> bool:
        """
        Delete a conversation with its documents and messages.

        Returns:
            True if a conversation was deleted.
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.execute(
                    "DELETE FROM conversations WHERE id = ? AND user_id = ?",
                    (conversation_id, user_id)
                )
                deleted = cursor.rowcount > 0
        except sqlite3.Error as e:
            logger.error(f"Failed to delete conversation: {e}")
            raise

        if deleted:
            logger.info(f"Deleted conversation: {conversation_id}")
        return deleted

    def get_or_create_builder_conversation(self, user_id: str) -> Dict[str, Any]:
        """Return the user's builder conversation, creating it on first use."""
        with self._get_connection() as conn:
            row = conn.execute(
                """
                SELECT * FROM conversations
                WHERE user_id = ? AND is_builder = 1
                ORDER BY created_at ASC, rowid ASC
                LIMIT 1
                """,
                (user_id,)
            ).fetchone()
        if row:
            return _conversation_from_row(row)
        return self.create_conversation(
            user_id, title=BUILDER_CONVERSATION_TITLE, is_builder=True
        )

# ============================================================================
# MESSAGE MANAGEMENT
# ============================================================================

    def save_message(
        self,
        conversation_id: str,
        role: str,
        content: str,
        tool_calls: Optional[List[Dict[str, Any]]] = None
    ) -> str:
        """
        Append a message to a conversation.

        Args:
            conversation_id: Conversation UUID.
            role: Message role ("user", "assistant", or "system").
            content: Message content.
            tool_calls: Optional list of tool call dicts.

        Returns:
            Message ID.

        Raises:
            ValueError: If role is not a known message role.
            sqlite3.Error: If the write fails.
        """
        if role not in MESSAGE_ROLES:
            raise ValueError(f"Invalid message role: {role}")

        message_id = new_id()
        tool_calls_json = json.dumps(tool_calls, default=str) if tool_calls else None
        now = now_iso()

        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT INTO messages (id, conversation_id, role, content, tool_calls, created_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (message_id, conversation_id, role, content, tool_calls_json, now)
                )
                conn.execute(
                    "UPDATE conversations SET updated_at = ? WHERE id = ?",
                    (now, conversation_id)
                )
        except sqlite3.Error as e:
            logger.error(f"Failed to save message: {e}")
            raise

        logger.debug(f"Saved {role} message {message_id} to conversation {conversation_id}")
        return message_id

    def get_messages(
        self,
        conversation_id: str,
        limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """
        Get messages for a conversation in chronological order.

        Args:
            conversation_id: Conversation UUID.
            limit: Only the most recent N messages (None = all).

        Returns:
            List of message dicts, oldest first.
        """
        with self._get_connection() as conn:
            if limit is not None:
                rows = conn.execute(
                    """
                    SELECT * FROM (
                        SELECT *, rowid AS seq FROM messages
                        WHERE conversation_id = ?
                        ORDER BY created_at DESC, rowid DESC
                        LIMIT ?
                    ) ORDER BY created_at ASC, seq ASC
                    """,
                    (conversation_id, limit)
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT *, rowid AS seq FROM messages
                    WHERE conversation_id = ?
                    ORDER BY created_at ASC, rowid ASC
                    """,
                    (conversation_id,)
                ).fetchall()

        messages = []
        for row in rows:
            msg = dict(row)
            msg.pop("seq", None)
            if msg.get("tool_calls"):
                msg["tool_calls"] = json.loads(msg["tool_calls"])
            messages.append(msg)
        return messages

    def get_message_count(self, conversation_id: str) -> int:
        """Get total message count for a conversation."""
        with self._get_connection() as conn:
            return conn.execute(
                "SELECT COUNT(*) FROM messages WHERE conversation_id = ?",
                (conversation_id,)
            ).fetchone()[0]


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def generate_conversation_title(first_message: str, max_length: int = 50) -> str:
    """
    Generate a title from the first message.

    Args:
        first_message: User's first message.
        max_length: Maximum title length.

    Returns:
        Generated title string.
    """
    title = " ".join(first_message.strip().split())

    if len(title) > max_length:
        title = title[:max_length - 3] + "..."

    return title or DEFAULT_CONVERSATION_TITLE


__all__ = [
    "SQLiteStore",
    "ConversationDB",
    "ConversationNotFoundError",
    "SCHEMA_SQL",
    "DEFAULT_CONVERSATION_TITLE",
    "BUILDER_CONVERSATION_TITLE",
    "generate_conversation_title",
    "now_iso",
    "new_id",
]
