"""Long-term memory tools for the master agent (remember / recall)."""

import logging
from typing import Dict, Any

from cowrite.agents.state import TurnContext
from cowrite.tools.registry import ToolRegistry, ToolDefinition

logger = logging.getLogger(__name__)


RECALL_WINDOW = 20


def remember(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    content = str(args.get("content") or "").strip()
    if not content:
        return {"error": "content is required"}
    memory = ctx.services.catalog.add_memory(ctx.user_id, ctx.master_agent_id, content)
    return {"ok": True, "id": memory.id, "message": "Stored in long-term memory."}


def recall(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """Search the most recent memories; an empty query returns all of them."""
    memories = ctx.services.catalog.get_memories(
        ctx.user_id, ctx.master_agent_id, limit=RECALL_WINDOW
    )
    if not memories:
        return {"memories": [], "message": "No long-term memories found."}

    query = str(args.get("query") or "").strip().lower()
    if query:
        memories = [m for m in memories if query in m.content.lower()]
    return {
        "memories": [
            {"id": m.id, "content": m.content, "created_at": m.created_at}
            for m in memories
        ],
        "message": f"Found {len(memories)} memory(ies).",
    }


def register_memory_tools(registry: ToolRegistry, ctx: TurnContext) -> None:
    registry.register_tool(ToolDefinition(
        name="remember",
        description="Store a fact or preference in long-term memory for future conversations.",
        function=lambda args: remember(ctx, args),
        parameters=["content"],
        schema={
            "type": "object",
            "properties": {"content": {"type": "string", "description": "What to remember"}},
            "required": ["content"],
        },
    ))
    registry.register_tool(ToolDefinition(
        name="recall",
        description="Search long-term memory. Without a query, returns the most recent memories.",
        function=lambda args: recall(ctx, args),
        schema={
            "type": "object",
            "properties": {"query": {"type": "string", "description": "Search text (optional)"}},
            "required": [],
        },
    ))


__all__ = ["remember", "recall", "register_memory_tools", "RECALL_WINDOW"]
