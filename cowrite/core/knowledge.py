"""
Knowledge items for master agents and specialists.

Knowledge is stored as typed items (guidance, rules, style) owned by a
master agent, a specialist, or the user's defaults. At prompt-build time the
items are merged (defaults first) and rendered into a capped markdown block
that is appended to the system prompt.
"""

import logging
from typing import Optional, List, Dict, Any

from pydantic import BaseModel

from cowrite.core.db import SQLiteStore, now_iso, new_id

logger = logging.getLogger(__name__)


KNOWLEDGE_TYPE_ORDER = ("guidance", "rules", "style")
KNOWLEDGE_OWNER_TYPES = ("master", "agent", "default")
TOKEN_CAPS = {
    "guidance": 500,
    "rules": 300,
    "style": 200,
}
CHARS_PER_TOKEN = 4
TRUNCATION_MARKER = "\n[...truncated]"


class KnowledgeItem(BaseModel):
    id: str
    user_id: str
    owner_type: str
    owner_id: Optional[str] = None
    type: str
    content: str = ""
    sort_order: int = 0
    created_at: str


def truncate_to_token_cap(text: str, tokens: int) -> str:
    """
    Cap text at `tokens` * 4 characters.

    Example:
        >>> truncate_to_token_cap("abcdefgh", 1)
        'abcd\\n[...truncated]'
    """
    max_chars = tokens * CHARS_PER_TOKEN
    if len(text) <= max_chars:
        return text
    return text[:max_chars].strip() + TRUNCATION_MARKER


class KnowledgeStore(SQLiteStore):
    """CRUD for knowledge items plus the prompt block builder."""

    def create_item(
        self,
        user_id: str,
        owner_type: str,
        item_type: str,
        content: str,
        owner_id: Optional[str] = None,
        sort_order: int = 0
    ) -> KnowledgeItem:
        """
        Create a knowledge item.

        Default items never carry an owner id. Content is trimmed.

        Raises:
            ValueError: Unknown owner type or item type, or a missing owner id.
        """
        if owner_type not in KNOWLEDGE_OWNER_TYPES:
            raise ValueError(f"Invalid owner type: {owner_type}")
        if item_type not in KNOWLEDGE_TYPE_ORDER:
            raise ValueError(f"Invalid knowledge type: {item_type}")
        if owner_type == "default":
            owner_id = None
        elif not owner_id:
            raise ValueError(f"owner_id is required for owner type {owner_type}")

        item_id = new_id()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO knowledge_items
                    (id, user_id, owner_type, owner_id, type, content, sort_order, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (item_id, user_id, owner_type, owner_id, item_type,
                 (content or "").strip(), sort_order, now_iso())
            )
        logger.info(f"Created {item_type} knowledge item {item_id} for {owner_type}:{owner_id}")
        return self.get_item(item_id, user_id)

    def get_item(self, item_id: str, user_id: str) -> Optional[KnowledgeItem]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM knowledge_items WHERE id = ? AND user_id = ?",
                (item_id, user_id)
            ).fetchone()
        return KnowledgeItem(**dict(row)) if row else None

    def list_items(
        self,
        user_id: str,
        owner_type: Optional[str] = None,
        owner_id: Optional[str] = None
    ) -> List[KnowledgeItem]:
        """
        List items, optionally filtered by owner.

        Args:
            user_id: Owner key.
            owner_type: Restrict to this owner type.
            owner_id: Restrict to this owner id ("" selects items with no owner).
        """
        query = "SELECT * FROM knowledge_items WHERE user_id = ?"
        params: List[Any] = [user_id]
        if owner_type is not None:
            query += " AND owner_type = ?"
            params.append(owner_type)
        if owner_id is not None:
            if owner_id == "":
                query += " AND owner_id IS NULL"
            else:
                query += " AND owner_id = ?"
                params.append(owner_id)
        query += " ORDER BY sort_order ASC, created_at ASC, rowid ASC"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [KnowledgeItem(**dict(row)) for row in rows]

    def update_item(
        self,
        item_id: str,
        user_id: str,
        content: Optional[str] = None,
        sort_order: Optional[int] = None
    ) -> Optional[KnowledgeItem]:
        updates: Dict[str, Any] = {}
        if content is not None:
            updates["content"] = content.strip()
        if sort_order is not None:
            updates["sort_order"] = sort_order
        if updates:
            assignments = ", ".join(f"{column} = ?" for column in updates)
            with self._get_connection() as conn:
                conn.execute(
                    f"UPDATE knowledge_items SET {assignments} WHERE id = ? AND user_id = ?",
                    [*updates.values(), item_id, user_id]
                )
        return self.get_item(item_id, user_id)

    def delete_item(self, item_id: str, user_id: str) -> bool:
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM knowledge_items WHERE id = ? AND user_id = ?",
                (item_id, user_id)
            )
        return cursor.rowcount > 0

    def get_items_for_owner(
        self,
        user_id: str,
        owner_type: str,
        owner_id: Optional[str]
    ) -> List[KnowledgeItem]:
        """
        Merged items for an owner: defaults first, then the owner's own,
        grouped by type in guidance, rules, style order.
        """
        defaults = self.list_items(user_id, owner_type="default")
        owned = self.list_items(user_id, owner_type=owner_type, owner_id=owner_id) if owner_id else []
        merged = defaults + owned
        return [
            item
            for item_type in KNOWLEDGE_TYPE_ORDER
            for item in merged
            if item.type == item_type
        ]

    def build_knowledge_block(
        self,
        user_id: str,
        owner_type: str,
        owner_id: Optional[str],
        legacy_knowledge: Optional[str] = None
    ) -> str:
        """
        Render the knowledge block appended to a system prompt.

        Sections are "## Guidance", "## Rules", "## Style", each capped
        (500 / 300 / 200 tokens at 4 chars per token). If there are no items
        and `legacy_knowledge` is set, a single "## Knowledge" section is
        used instead, capped like style.

        Args:
            user_id: Owner key.
            owner_type: "master" or "agent".
            owner_id: Master or specialist id (None: defaults only).
            legacy_knowledge: Free-text knowledge stored on a specialist.

        Returns:
            "" when there is nothing to add, else "\\n\\n---\\n" + sections.
        """
        items = self.get_items_for_owner(user_id, owner_type, owner_id)

        sections: List[str] = []
        for item_type in KNOWLEDGE_TYPE_ORDER:
            combined = "\n\n".join(
                item.content.strip() for item in items
                if item.type == item_type and item.content.strip()
            )
            truncated = truncate_to_token_cap(combined, TOKEN_CAPS[item_type])
            if truncated:
                sections.append(f"## {item_type.capitalize()}\n{truncated}")

        if not sections and legacy_knowledge and legacy_knowledge.strip():
            legacy = truncate_to_token_cap(legacy_knowledge.strip(), TOKEN_CAPS["style"])
            sections.append(f"## Knowledge\n{legacy}")

        if not sections:
            return ""
        return "\n\n---\n" + "\n\n".join(sections)


__all__ = [
    "KnowledgeStore",
    "KnowledgeItem",
    "truncate_to_token_cap",
    "KNOWLEDGE_TYPE_ORDER",
    "KNOWLEDGE_OWNER_TYPES",
    "TOKEN_CAPS",
]
