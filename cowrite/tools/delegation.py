"""
Delegation tools for the master agent.

- invoke_agent: hand a self-contained task to a specialist and return its
  answer. Each call is tracked as a DelegationTask (running -> done | error)
  and published on the turn's event stream.
- create_agent: create a new specialist ("subagent") or master agent.
"""

import logging
from typing import Dict, Any, Optional

from cowrite.agents.prompts import DEFAULT_MASTER_NAME, DEFAULT_MASTER_PROMPT
from cowrite.agents.specialist import run_specialist
from cowrite.agents.state import TurnContext, DelegationTask
from cowrite.core.events import emit_delegation_started, emit_delegation_finished
from cowrite.tools.registry import ToolRegistry, ToolDefinition

logger = logging.getLogger(__name__)


# ============================================================================
# invoke_agent
# ============================================================================

async def invoke_agent(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run a specialist for the master.

    Args (from the model):
        agent_id: Specialist id from the agent list.
        message: Self-contained task for the specialist.
        context: Optional extra context.

    Returns:
        {"result", "agent_name", "summary"?, "detail"?} (plus "error" on failure).
    """
    agent_id = str(args.get("agent_id") or "")
    message = str(args.get("message") or "")
    context: Optional[str] = args.get("context") or None

    agent = ctx.services.catalog.get_agent(agent_id, ctx.user_id)
    task = DelegationTask(
        agent_id=agent_id,
        agent_name=agent.name if agent else None,
        message=message,
    )
    ctx.delegations.append(task)
    await emit_delegation_started(task.model_dump(), ctx.bus)

    outcome = await run_specialist(
        ctx.services, ctx.user_id, agent_id, message, context=context
    )

    task.finish(error=outcome.error, summary=outcome.summary)
    await emit_delegation_finished(task.model_dump(), ctx.bus)

    logger.info(f"Delegation {task.id} to {agent_id} finished: {task.status}")
    return outcome.to_tool_payload()


# ============================================================================
# create_agent
# ============================================================================

def create_agent(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a subagent (specialist) or a master agent.

    Master agents fall back to the name "Default" and the default master
    prompt. Subagents require both name and system_prompt.
    """
    catalog = ctx.services.catalog
    agent_type = args.get("type") or "subagent"
    name = str(args.get("name") or "").strip()
    system_prompt = str(args.get("system_prompt") or "").strip()

    try:
        if agent_type == "master":
            created = catalog.create_master_agent(
                ctx.user_id,
                name=name or DEFAULT_MASTER_NAME,
                system_prompt=system_prompt or DEFAULT_MASTER_PROMPT,
                model=args.get("model") or None,
                max_steps=args.get("max_steps"),
                thinking_enabled=bool(args.get("thinking_enabled", False)),
                tool_ids=args.get("tool_ids") or [],
            )
            return {"id": created.id, "name": created.name, "type": "master"}

        if agent_type != "subagent":
            return {"error": f"Unknown agent type: {agent_type}"}
        if not name:
            return {"error": "name is required"}
        if not system_prompt:
            return {"error": "system_prompt is required"}

        created = catalog.create_agent(
            ctx.user_id,
            name=name,
            system_prompt=system_prompt,
            model=args.get("model") or None,
            knowledge=args.get("knowledge") or None,
            max_steps=args.get("max_steps"),
            thinking_enabled=bool(args.get("thinking_enabled", False)),
            tool_ids=args.get("tool_ids") or [],
        )
        return {"id": created.id, "name": created.name, "type": "subagent"}
    except ValueError as e:
        return {"error": str(e)}


AGENT_FIELD_SCHEMA: Dict[str, Any] = {
    "name": {"type": "string", "description": "Display name for the agent"},
    "system_prompt": {"type": "string", "description": "System prompt that defines the agent's behavior"},
    "model": {"type": "string", "description": "Optional model override"},
    "max_steps": {"type": "integer", "description": "Max steps (subagent 1-50, master 1-100)"},
    "thinking_enabled": {"type": "boolean", "description": "Enable extended thinking"},
    "tool_ids": {"type": "array", "items": {"type": "string"}, "description": "IDs of tools to assign"},
    "knowledge": {"type": "string", "description": "Optional knowledge text (subagent only)"},
}


# ============================================================================
# REGISTRATION
# ============================================================================

def register_delegation_tools(registry: ToolRegistry, ctx: TurnContext) -> None:
    registry.register_tool(ToolDefinition(
        name="invoke_agent",
        description=(
            "Delegate a task to a user-created agent by ID. Use when the user's question or "
            "task matches this agent's expertise; pass the exact agent ID from the list and a "
            "self-contained message for that specialist."
        ),
        function=lambda args: invoke_agent(ctx, args),
        parameters=["agent_id", "message"],
        schema={
            "type": "object",
            "properties": {
                "agent_id": {"type": "string", "description": "The ID of the user-created agent to invoke"},
                "message": {"type": "string", "description": "The message or task to send to the agent"},
                "context": {
                    "type": "string",
                    "description": "Optional context (e.g. the user's original question or a doc excerpt)",
                },
            },
            "required": ["agent_id", "message"],
        },
    ))

    registry.register_tool(ToolDefinition(
        name="create_agent",
        description=(
            "Create a new master agent or subagent. Use subagent for specialists the master "
            "can invoke via invoke_agent; use master for another coordinator."
        ),
        function=lambda args: create_agent(ctx, args),
        parameters=["type", "name"],
        schema={
            "type": "object",
            "properties": {
                "type": {"type": "string", "enum": ["master", "subagent"]},
                **AGENT_FIELD_SCHEMA,
            },
            "required": ["type", "name"],
        },
    ))


__all__ = [
    "invoke_agent",
    "create_agent",
    "register_delegation_tools",
    "AGENT_FIELD_SCHEMA",
]
