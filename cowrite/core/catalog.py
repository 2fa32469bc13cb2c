"""
Agent configuration, tool, file and memory store.

Read by the orchestration session and the tool layer:
- specialists (invocable via invoke_agent) and their tool rosters
- master agent configurations (model, step budget, tool ids)
- user-configured HTTP tools
- uploaded files (already extracted to text) and their assignments
- master agent long-term memories

Written by the builder tools, create_agent, and the REST layer.
"""

import json
import logging
import sqlite3
from typing import Optional, List, Dict, Any, Iterable

from pydantic import BaseModel, Field

from cowrite.core.db import SQLiteStore, now_iso, new_id

logger = logging.getLogger(__name__)


SPECIALIST_MAX_STEPS_RANGE = (1, 50)
MASTER_MAX_STEPS_RANGE = (1, 100)
ASSIGNEE_TYPES = ("agent", "master")


# ============================================================================
# RECORDS
# ============================================================================

class SpecialistAgent(BaseModel):
    """A reusable specialist configuration."""
    id: str
    user_id: str
    name: str
    system_prompt: str = ""
    model: Optional[str] = None
    knowledge: Optional[str] = None
    max_steps: Optional[int] = None
    thinking_enabled: bool = False
    tool_ids: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: str

    @property
    def description(self) -> str:
        """First line of the system prompt, capped at 120 characters."""
        lines = self.system_prompt.strip().splitlines()
        return lines[0][:120] if lines else ""


class MasterAgentConfig(BaseModel):
    """Configuration bound to a conversation's master agent."""
    id: str
    user_id: str
    name: str
    system_prompt: str = ""
    model: Optional[str] = None
    max_steps: Optional[int] = None
    thinking_enabled: bool = False
    tool_ids: List[str] = Field(default_factory=list)
    created_at: str
    updated_at: str


class ToolRecord(BaseModel):
    """A user-configured tool (type "api" is the only executable type)."""
    id: str
    user_id: str
    name: str
    description: str = ""
    type: str = "api"
    config: Dict[str, Any] = Field(default_factory=dict)
    created_at: str


class FileRecord(BaseModel):
    """An uploaded file with its extracted text."""
    id: str
    user_id: str
    filename: str
    mime_type: Optional[str] = None
    text_content: Optional[str] = None
    created_at: str
    updated_at: str


class Memory(BaseModel):
    """A long-term memory stored by the master agent."""
    id: str
    master_agent_id: Optional[str] = None
    content: str
    created_at: str


def _parse_id_list(raw: Optional[str]) -> List[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    return [item for item in value if isinstance(item, str)] if isinstance(value, list) else []


def _check_steps(max_steps: Optional[int], bounds: tuple) -> Optional[int]:
    if max_steps is None:
        return None
    low, high = bounds
    if not low <= int(max_steps) <= high:
        raise ValueError(f"max_steps must be between {low} and {high}")
    return int(max_steps)


# ============================================================================
# CATALOG STORE
# ============================================================================

class CatalogStore(SQLiteStore):
    """
    Store for specialists, master agents, tools, files and memories.

    Every owner-scoped call takes an explicit user_id.
    """

    # ========================================================================
    # SPECIALIST AGENTS
    # ========================================================================

    def _agent_from_row(self, conn: sqlite3.Connection, row: sqlite3.Row) -> SpecialistAgent:
        tool_rows = conn.execute(
            "SELECT tool_id FROM agent_tools WHERE agent_id = ? ORDER BY rowid",
            (row["id"],)
        ).fetchall()
        data = dict(row)
        data["thinking_enabled"] = bool(data["thinking_enabled"])
        data["tool_ids"] = [r["tool_id"] for r in tool_rows]
        return SpecialistAgent(**data)

    def create_agent(
        self,
        user_id: str,
        name: str,
        system_prompt: str,
        model: Optional[str] = None,
        knowledge: Optional[str] = None,
        max_steps: Optional[int] = None,
        thinking_enabled: bool = False,
        tool_ids: Optional[List[str]] = None
    ) -> SpecialistAgent:
        """
        Create a specialist.

        Raises:
            ValueError: Blank name or max_steps outside 1..50.
        """
        if not name or not name.strip():
            raise ValueError("Agent name is required")
        max_steps = _check_steps(max_steps, SPECIALIST_MAX_STEPS_RANGE)

        agent_id = new_id()
        now = now_iso()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO agents
                    (id, user_id, name, system_prompt, model, knowledge, max_steps,
                     thinking_enabled, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (agent_id, user_id, name.strip(), system_prompt or "", model or None,
                 knowledge or None, max_steps, int(bool(thinking_enabled)), now, now)
            )
        if tool_ids:
            self.set_agent_tools(agent_id, user_id, tool_ids)

        logger.info(f"Created specialist {agent_id} ('{name}')")
        return self.get_agent(agent_id, user_id)

    def get_agent(self, agent_id: str, user_id: str) -> Optional[SpecialistAgent]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM agents WHERE id = ? AND user_id = ?",
                (agent_id, user_id)
            ).fetchone()
            return self._agent_from_row(conn, row) if row else None

    def list_agents(self, user_id: str) -> List[SpecialistAgent]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM agents WHERE user_id = ? ORDER BY created_at ASC, rowid ASC",
                (user_id,)
            ).fetchall()
            return [self._agent_from_row(conn, row) for row in rows]

    def update_agent(self, agent_id: str, user_id: str, **fields: Any) -> Optional[SpecialistAgent]:
        """
        Update a specialist. Only the given fields change.

        Accepted fields: name, system_prompt, model, knowledge, max_steps,
        thinking_enabled, tool_ids.

        Returns:
            Updated agent, or None if not found.
        """
        if self.get_agent(agent_id, user_id) is None:
            return None

        tool_ids = fields.pop("tool_ids", None)
        columns: Dict[str, Any] = {}
        for key in ("name", "system_prompt", "model", "knowledge"):
            if fields.get(key) is not None:
                columns[key] = fields[key]
        if fields.get("max_steps") is not None:
            columns["max_steps"] = _check_steps(fields["max_steps"], SPECIALIST_MAX_STEPS_RANGE)
        if fields.get("thinking_enabled") is not None:
            columns["thinking_enabled"] = int(bool(fields["thinking_enabled"]))
        columns["updated_at"] = now_iso()

        assignments = ", ".join(f"{column} = ?" for column in columns)
        with self._get_connection() as conn:
            conn.execute(
                f"UPDATE agents SET {assignments} WHERE id = ? AND user_id = ?",
                [*columns.values(), agent_id, user_id]
            )
        if tool_ids is not None:
            self.set_agent_tools(agent_id, user_id, tool_ids)

        logger.info(f"Updated specialist {agent_id}: {sorted(columns)}")
        return self.get_agent(agent_id, user_id)

    def delete_agent(self, agent_id: str, user_id: str) -> bool:
        """Delete a specialist with its tool roster, file assignments and knowledge."""
        with self._get_connection() as conn:
            cursor = conn.execute(
                "DELETE FROM agents WHERE id = ? AND user_id = ?",
                (agent_id, user_id)
            )
            if cursor.rowcount == 0:
                return False
            conn.execute(
                "DELETE FROM file_assignments WHERE assignee_type = 'agent' AND assignee_id = ?",
                (agent_id,)
            )
            conn.execute(
                """
                DELETE FROM knowledge_items
                WHERE user_id = ? AND owner_type = 'agent' AND owner_id = ?
                """,
                (user_id, agent_id)
            )
        logger.info(f"Deleted specialist {agent_id}")
        return True

    def set_agent_tools(self, agent_id: str, user_id: str, tool_ids: Iterable[str]) -> List[str]:
        """Replace a specialist's tool roster; unknown tool ids are ignored."""
        tool_ids = list(tool_ids)
        known = {tool.id for tool in self.get_tools(user_id, tool_ids)}
        ordered = [tool_id for tool_id in dict.fromkeys(tool_ids) if tool_id in known]
        with self._get_connection() as conn:
            conn.execute("DELETE FROM agent_tools WHERE agent_id = ?", (agent_id,))
            conn.executemany(
                "INSERT INTO agent_tools (agent_id, tool_id) VALUES (?, ?)",
                [(agent_id, tool_id) for tool_id in ordered]
            )
        return ordered

    # ========================================================================
    # MASTER AGENTS
    # ========================================================================

    def _master_from_row(self, row: sqlite3.Row) -> MasterAgentConfig:
        data = dict(row)
        data["thinking_enabled"] = bool(data["thinking_enabled"])
        data["tool_ids"] = _parse_id_list(data["tool_ids"])
        return MasterAgentConfig(**data)

    def create_master_agent(
        self,
        user_id: str,
        name: str,
        system_prompt: str = "",
        model: Optional[str] = None,
        max_steps: Optional[int] = None,
        thinking_enabled: bool = False,
        tool_ids: Optional[List[str]] = None
    ) -> MasterAgentConfig:
        """
        Create a master agent configuration.

        Raises:
            ValueError: Blank name or max_steps outside 1..100.
        """
        if not name or not name.strip():
            raise ValueError("Agent name is required")
        max_steps = _check_steps(max_steps, MASTER_MAX_STEPS_RANGE)

        master_id = new_id()
        now = now_iso()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO master_agents
                    (id, user_id, name, system_prompt, model, max_steps, thinking_enabled,
                     tool_ids, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (master_id, user_id, name.strip(), system_prompt or "", model or None,
                 max_steps, int(bool(thinking_enabled)), json.dumps(tool_ids or []), now, now)
            )
        logger.info(f"Created master agent {master_id} ('{name}')")
        return self.get_master_agent(master_id, user_id)

    def get_master_agent(self, master_id: str, user_id: str) -> Optional[MasterAgentConfig]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM master_agents WHERE id = ? AND user_id = ?",
                (master_id, user_id)
            ).fetchone()
        return self._master_from_row(row) if row else None

    def list_master_agents(self, user_id: str) -> List[MasterAgentConfig]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM master_agents WHERE user_id = ? ORDER BY created_at ASC, rowid ASC",
                (user_id,)
            ).fetchall()
        return [self._master_from_row(row) for row in rows]

    # ========================================================================
    # USER-CONFIGURED TOOLS
    # ========================================================================

    def _tool_from_row(self, row: sqlite3.Row) -> ToolRecord:
        data = dict(row)
        try:
            config = json.loads(data["config"] or "{}")
        except json.JSONDecodeError:
            config = {}
        data["config"] = config if isinstance(config, dict) else {}
        return ToolRecord(**data)

    def create_tool(
        self,
        user_id: str,
        name: str,
        description: str,
        config: Dict[str, Any],
        tool_type: str = "api"
    ) -> ToolRecord:
        """Create a user-configured tool. The config is stored as JSON."""
        if not name or not name.strip():
            raise ValueError("Tool name is required")
        tool_id = new_id()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO tools (id, user_id, name, description, type, config, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (tool_id, user_id, name.strip(), description or "", tool_type,
                 json.dumps(config), now_iso())
            )
        logger.info(f"Created tool {tool_id} ('{name}')")
        return self.get_tools(user_id, [tool_id])[0]

    def get_tools(self, user_id: str, tool_ids: List[str]) -> List[ToolRecord]:
        """Fetch the user's tools among `tool_ids`, in creation order."""
        if not tool_ids:
            return []
        placeholders = ", ".join("?" for _ in tool_ids)
        with self._get_connection() as conn:
            rows = conn.execute(
                f"""
                SELECT * FROM tools
                WHERE user_id = ? AND id IN ({placeholders})
                ORDER BY created_at ASC, rowid ASC
                """,
                [user_id, *tool_ids]
            ).fetchall()
        return [self._tool_from_row(row) for row in rows]

    def list_tools(self, user_id: str) -> List[ToolRecord]:
        with self._get_connection() as conn:
            rows = conn.execute(
                "SELECT * FROM tools WHERE user_id = ? ORDER BY created_at ASC, rowid ASC",
                (user_id,)
            ).fetchall()
        return [self._tool_from_row(row) for row in rows]

    # ========================================================================
    # FILES
    # ========================================================================

    def add_file(
        self,
        user_id: str,
        filename: str,
        text_content: Optional[str],
        mime_type: Optional[str] = None
    ) -> FileRecord:
        """Register an uploaded file with its extracted text."""
        file_id = new_id()
        now = now_iso()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO files (id, user_id, filename, mime_type, text_content, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (file_id, user_id, filename, mime_type, text_content, now, now)
            )
        return self.get_file(file_id, user_id)

    def get_file(self, file_id: str, user_id: str) -> Optional[FileRecord]:
        with self._get_connection() as conn:
            row = conn.execute(
                "SELECT * FROM files WHERE id = ? AND user_id = ?",
                (file_id, user_id)
            ).fetchone()
        return FileRecord(**dict(row)) if row else None

    def list_files(self, user_id: str, file_ids: Optional[List[str]] = None) -> List[FileRecord]:
        """
        List a user's files.

        Args:
            user_id: Owner key.
            file_ids: Restrict to these ids (None = all files).
        """
        query = "SELECT * FROM files WHERE user_id = ?"
        params: List[Any] = [user_id]
        if file_ids is not None:
            if not file_ids:
                return []
            query += f" AND id IN ({', '.join('?' for _ in file_ids)})"
            params.extend(file_ids)
        query += " ORDER BY created_at ASC, rowid ASC"

        with self._get_connection() as conn:
            rows = conn.execute(query, params).fetchall()
        return [FileRecord(**dict(row)) for row in rows]

    def update_file(
        self,
        file_id: str,
        user_id: str,
        filename: Optional[str] = None,
        text_content: Optional[str] = None
    ) -> Optional[FileRecord]:
        columns: Dict[str, Any] = {}
        if filename is not None:
            columns["filename"] = filename
        if text_content is not None:
            columns["text_content"] = text_content
        columns["updated_at"] = now_iso()

        assignments = ", ".join(f"{column} = ?" for column in columns)
        with self._get_connection() as conn:
            cursor = conn.execute(
                f"UPDATE files SET {assignments} WHERE id = ? AND user_id = ?",
                [*columns.values(), file_id, user_id]
            )
            if cursor.rowcount == 0:
                return None
        return self.get_file(file_id, user_id)

    def set_file_assignments(
        self,
        assignee_type: str,
        assignee_id: str,
        file_ids: Iterable[str]
    ) -> List[str]:
        """Replace the files assigned to an agent or master agent."""
        if assignee_type not in ASSIGNEE_TYPES:
            raise ValueError(f"Invalid assignee type: {assignee_type}")
        ordered = list(dict.fromkeys(file_ids))
        with self._get_connection() as conn:
            conn.execute(
                "DELETE FROM file_assignments WHERE assignee_type = ? AND assignee_id = ?",
                (assignee_type, assignee_id)
            )
            conn.executemany(
                """
                INSERT INTO file_assignments (file_id, assignee_type, assignee_id)
                SELECT ?, ?, ? WHERE EXISTS (SELECT 1 FROM files WHERE id = ?)
                """,
                [(file_id, assignee_type, assignee_id, file_id) for file_id in ordered]
            )
        return self.get_assigned_file_ids(assignee_type, assignee_id)

    def get_assigned_file_ids(self, assignee_type: str, assignee_id: str) -> List[str]:
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT file_id FROM file_assignments
                WHERE assignee_type = ? AND assignee_id = ?
                ORDER BY rowid
                """,
                (assignee_type, assignee_id)
            ).fetchall()
        return [row["file_id"] for row in rows]

    # ========================================================================
    # MEMORIES
    # ========================================================================

    def add_memory(self, user_id: str, master_agent_id: Optional[str], content: str) -> Memory:
        memory_id = new_id()
        now = now_iso()
        with self._get_connection() as conn:
            conn.execute(
                """
                INSERT INTO master_agent_memories (id, user_id, master_agent_id, content, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (memory_id, user_id, master_agent_id, content, now)
            )
        return Memory(id=memory_id, master_agent_id=master_agent_id, content=content, created_at=now)

    def get_memories(
        self,
        user_id: str,
        master_agent_id: Optional[str],
        limit: int = 20
    ) -> List[Memory]:
        """Most recent memories first. A None master id selects unbound memories."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT id, master_agent_id, content, created_at FROM master_agent_memories
                WHERE user_id = ? AND master_agent_id IS ?
                ORDER BY created_at DESC, rowid DESC
                LIMIT ?
                """,
                (user_id, master_agent_id, limit)
            ).fetchall()
        return [Memory(**dict(row)) for row in rows]


__all__ = [
    "CatalogStore",
    "SpecialistAgent",
    "MasterAgentConfig",
    "ToolRecord",
    "FileRecord",
    "Memory",
    "SPECIALIST_MAX_STEPS_RANGE",
    "MASTER_MAX_STEPS_RANGE",
]
