"""
Tool sets for the two kinds of conversation.

- Master conversations: delegation, working-document, research and memory
  tools, then the master agent's user-configured HTTP tools
- Builder conversation: builder tools only
"""

import logging
from typing import Optional

import httpx

from cowrite.agents.state import TurnContext
from cowrite.tools.builder_tools import register_builder_tools
from cowrite.tools.delegation import register_delegation_tools
from cowrite.tools.document_tools import register_document_tools
from cowrite.tools.http_tools import register_http_tools
from cowrite.tools.memory import register_memory_tools
from cowrite.tools.registry import ToolRegistry
from cowrite.tools.research import register_research_tool

logger = logging.getLogger(__name__)


def register_master_tools(registry: ToolRegistry, ctx: TurnContext) -> None:
    """Register the built-in master tool set bound to `ctx`."""
    register_delegation_tools(registry, ctx)
    register_document_tools(registry, ctx)
    register_research_tool(registry, ctx)
    register_memory_tools(registry, ctx)


def build_turn_registry(
    ctx: TurnContext,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> ToolRegistry:
    """
    Build the tool registry for one turn.

    Args:
        ctx: Turn context.
        transport: Optional httpx transport for user-configured HTTP tools.
    """
    registry = ToolRegistry(conversation_id=ctx.conversation_id)
    if ctx.is_builder:
        register_builder_tools(registry, ctx)
        return registry

    register_master_tools(registry, ctx)
    if ctx.master is not None and ctx.master.tool_ids:
        records = ctx.services.catalog.get_tools(ctx.user_id, ctx.master.tool_ids)
        added = register_http_tools(registry, records, ctx.services.settings, transport=transport)
        if added:
            logger.info(f"Added configured tools for {ctx.conversation_id}: {added}")
    return registry


__all__ = ["register_master_tools", "build_turn_registry"]
