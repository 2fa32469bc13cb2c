"""
Builder tools: configure agents, knowledge and files from the AI Builder
conversation.

These replace the document tools in the builder conversation, which never
takes the document lock. Destructive actions are gated by the builder
prompt (the model must get the user's confirmation first), not here.
"""

import logging
from typing import Dict, Any, List

from cowrite.agents.state import TurnContext
from cowrite.core.knowledge import KNOWLEDGE_OWNER_TYPES, KNOWLEDGE_TYPE_ORDER
from cowrite.tools.delegation import AGENT_FIELD_SCHEMA
from cowrite.tools.registry import ToolRegistry, ToolDefinition

logger = logging.getLogger(__name__)


EDITABLE_FILE_EXTENSIONS = (".md", ".txt", ".csv")


def _is_editable(filename: str) -> bool:
    return filename.lower().endswith(EDITABLE_FILE_EXTENSIONS)


# ============================================================================
# AGENTS
# ============================================================================

def create_agent(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """Create a specialist. Returns {"id", "name"} or {"error"}."""
    name = str(args.get("name") or "").strip()
    system_prompt = str(args.get("system_prompt") or "").strip()
    if not name:
        return {"error": "name is required"}
    if not system_prompt:
        return {"error": "system_prompt is required"}
    try:
        created = ctx.services.catalog.create_agent(
            ctx.user_id,
            name=name,
            system_prompt=system_prompt,
            model=args.get("model") or None,
            knowledge=args.get("knowledge") or None,
            max_steps=args.get("max_steps"),
            thinking_enabled=bool(args.get("thinking_enabled", False)),
            tool_ids=args.get("tool_ids") or [],
        )
    except ValueError as e:
        return {"error": str(e)}
    return {"id": created.id, "name": created.name}


def update_agent(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """Update only the given fields of a specialist."""
    agent_id = args["agent_id"]
    fields = {
        key: args[key]
        for key in ("name", "system_prompt", "model", "knowledge", "max_steps",
                    "thinking_enabled", "tool_ids")
        if key in args and args[key] is not None
    }
    for key in ("name", "system_prompt"):
        if key in fields:
            fields[key] = str(fields[key]).strip()
    try:
        updated = ctx.services.catalog.update_agent(agent_id, ctx.user_id, **fields)
    except ValueError as e:
        return {"error": str(e)}
    if updated is None:
        return {"error": "Agent not found"}
    return {"ok": True, "id": agent_id}


def delete_agent(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    if not ctx.services.catalog.delete_agent(args["agent_id"], ctx.user_id):
        return {"error": "Agent not found"}
    return {"ok": True}


def get_agent(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    agent = ctx.services.catalog.get_agent(args["agent_id"], ctx.user_id)
    if agent is None:
        return {"error": "Agent not found"}
    return {
        "id": agent.id,
        "name": agent.name,
        "system_prompt": agent.system_prompt,
        "model": agent.model,
        "max_steps": agent.max_steps,
        "thinking_enabled": agent.thinking_enabled,
        "knowledge": agent.knowledge,
        "tool_ids": agent.tool_ids,
    }


def list_agents(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "agents": [
            {"id": a.id, "name": a.name, "description": a.description}
            for a in ctx.services.catalog.list_agents(ctx.user_id)
        ]
    }


def focus_agent(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """Select an agent for editing in the client's form."""
    agent_id = args["agent_id"]
    agent = ctx.services.catalog.get_agent(agent_id, ctx.user_id)
    if agent is None:
        return {"error": "Agent not found", "agent_id": agent_id}
    if args.get("reason"):
        logger.info(f"Focusing agent {agent_id}: {args['reason']}")
    return {"ok": True, "agent_id": agent.id, "name": agent.name}


# ============================================================================
# KNOWLEDGE
# ============================================================================

def list_knowledge(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    owner_type = args["owner_type"]
    owner_id = None if owner_type == "default" else args.get("owner_id")
    items = ctx.services.knowledge.list_items(
        ctx.user_id,
        owner_type=owner_type,
        owner_id="" if owner_id is None else owner_id,
    )
    return {
        "items": [
            {"id": i.id, "type": i.type, "content": i.content, "sort_order": i.sort_order}
            for i in items
        ]
    }


def create_knowledge(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    try:
        item = ctx.services.knowledge.create_item(
            ctx.user_id,
            owner_type=args["owner_type"],
            item_type=args["type"],
            content=str(args.get("content") or ""),
            owner_id=args.get("owner_id"),
            sort_order=int(args.get("sort_order") or 0),
        )
    except ValueError as e:
        return {"error": str(e)}
    return {"id": item.id, "type": item.type}


def update_knowledge(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    item = ctx.services.knowledge.update_item(
        args["id"],
        ctx.user_id,
        content=args.get("content"),
        sort_order=args.get("sort_order"),
    )
    if item is None:
        return {"error": "Knowledge item not found"}
    return {"ok": True}


def delete_knowledge(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    ctx.services.knowledge.delete_item(args["id"], ctx.user_id)
    return {"ok": True}


# ============================================================================
# FILES
# ============================================================================

def list_files(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "files": [
            {"id": f.id, "filename": f.filename, "mime_type": f.mime_type}
            for f in ctx.services.catalog.list_files(ctx.user_id)
        ]
    }


def get_file(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """File metadata; text_content is included for .md, .txt and .csv files only."""
    record = ctx.services.catalog.get_file(args["file_id"], ctx.user_id)
    if record is None:
        return {"error": "File not found"}
    payload: Dict[str, Any] = {
        "id": record.id,
        "filename": record.filename,
        "mime_type": record.mime_type,
    }
    if _is_editable(record.filename):
        payload["text_content"] = record.text_content or ""
    return payload


def update_file(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    catalog = ctx.services.catalog
    record = catalog.get_file(args["file_id"], ctx.user_id)
    if record is None:
        return {"error": "File not found"}

    filename = args.get("filename")
    text_content = args.get("text_content")
    if text_content is not None and not _is_editable(record.filename):
        return {"error": "Only text/markdown/csv files can be edited"}
    if filename is None and text_content is None:
        return {"ok": True}

    catalog.update_file(
        record.id,
        ctx.user_id,
        filename=filename.strip() if filename is not None else None,
        text_content=text_content,
    )
    return {"ok": True}


def set_agent_file_assignments(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """Replace the files assigned to a specialist; every id must be a known file."""
    catalog = ctx.services.catalog
    agent_id = args["agent_id"]
    file_ids: List[str] = [str(f) for f in args.get("file_ids") or []]

    known = {f.id for f in catalog.list_files(ctx.user_id, file_ids)}
    if catalog.get_agent(agent_id, ctx.user_id) is None or any(f not in known for f in file_ids):
        return {"error": "Agent not found or invalid file ids"}

    catalog.set_file_assignments("agent", agent_id, file_ids)
    return {"ok": True}


# ============================================================================
# REGISTRATION
# ============================================================================

def _schema(properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {"type": "object", "properties": properties, "required": required}


_AGENT_ID = {"agent_id": {"type": "string", "description": "The agent ID"}}


def register_builder_tools(registry: ToolRegistry, ctx: TurnContext) -> None:
    """Register the builder tool set bound to `ctx`."""
    definitions = [
        ToolDefinition(
            name="create_agent",
            description=(
                "Create a new subagent. Use for specialists the user can invoke. "
                "Returns the new agent id and name."
            ),
            function=lambda args: create_agent(ctx, args),
            parameters=["name", "system_prompt"],
            schema=_schema(dict(AGENT_FIELD_SCHEMA), ["name", "system_prompt"]),
        ),
        ToolDefinition(
            name="update_agent",
            description="Update an existing subagent by id. Pass only the fields to change.",
            function=lambda args: update_agent(ctx, args),
            parameters=["agent_id"],
            schema=_schema({**_AGENT_ID, **AGENT_FIELD_SCHEMA}, ["agent_id"]),
        ),
        ToolDefinition(
            name="delete_agent",
            description="Delete a subagent by id. Use only when the user confirms.",
            function=lambda args: delete_agent(ctx, args),
            parameters=["agent_id"],
            schema=_schema(dict(_AGENT_ID), ["agent_id"]),
        ),
        ToolDefinition(
            name="get_agent",
            description="Get one subagent by id (name, system_prompt, model, max_steps, tool_ids).",
            function=lambda args: get_agent(ctx, args),
            parameters=["agent_id"],
            schema=_schema(dict(_AGENT_ID), ["agent_id"]),
        ),
        ToolDefinition(
            name="list_agents",
            description="List all subagents (id, name, one-line description from the system prompt).",
            function=lambda args: list_agents(ctx, args),
        ),
        ToolDefinition(
            name="focus_agent",
            description=(
                "Open an agent in the form for editing. Use list_agents to find candidates; "
                "if several match, ask the user which one before calling this."
            ),
            function=lambda args: focus_agent(ctx, args),
            parameters=["agent_id"],
            schema=_schema(
                {**_AGENT_ID, "reason": {"type": "string", "description": "Why this agent was chosen"}},
                ["agent_id"],
            ),
        ),
        ToolDefinition(
            name="list_knowledge",
            description="List knowledge items for an owner (agent, master or default).",
            function=lambda args: list_knowledge(ctx, args),
            parameters=["owner_type"],
            schema=_schema(
                {
                    "owner_type": {"type": "string", "enum": list(KNOWLEDGE_OWNER_TYPES)},
                    "owner_id": {"type": "string", "description": "Owner id; omit for default"},
                },
                ["owner_type"],
            ),
        ),
        ToolDefinition(
            name="create_knowledge",
            description="Create a knowledge item (guidance, rules or style) for an owner.",
            function=lambda args: create_knowledge(ctx, args),
            parameters=["owner_type", "type", "content"],
            schema=_schema(
                {
                    "owner_type": {"type": "string", "enum": list(KNOWLEDGE_OWNER_TYPES)},
                    "owner_id": {"type": "string", "description": "Owner id; omit for default"},
                    "type": {"type": "string", "enum": list(KNOWLEDGE_TYPE_ORDER)},
                    "content": {"type": "string"},
                    "sort_order": {"type": "integer"},
                },
                ["owner_type", "type", "content"],
            ),
        ),
        ToolDefinition(
            name="update_knowledge",
            description="Update a knowledge item by id (content and/or sort_order).",
            function=lambda args: update_knowledge(ctx, args),
            parameters=["id"],
            schema=_schema(
                {"id": {"type": "string"}, "content": {"type": "string"}, "sort_order": {"type": "integer"}},
                ["id"],
            ),
        ),
        ToolDefinition(
            name="delete_knowledge",
            description="Delete a knowledge item by id. Use only when the user confirms.",
            function=lambda args: delete_knowledge(ctx, args),
            parameters=["id"],
            schema=_schema({"id": {"type": "string"}}, ["id"]),
        ),
        ToolDefinition(
            name="list_files",
            description="List the user's uploaded files (id, filename, mime_type).",
            function=lambda args: list_files(ctx, args),
        ),
        ToolDefinition(
            name="get_file",
            description="Get one file by id. Includes text_content for .md, .txt, .csv files.",
            function=lambda args: get_file(ctx, args),
            parameters=["file_id"],
            schema=_schema({"file_id": {"type": "string"}}, ["file_id"]),
        ),
        ToolDefinition(
            name="update_file",
            description="Update a file's filename or text content (text content only for .md, .txt, .csv).",
            function=lambda args: update_file(ctx, args),
            parameters=["file_id"],
            schema=_schema(
                {
                    "file_id": {"type": "string"},
                    "filename": {"type": "string"},
                    "text_content": {"type": "string"},
                },
                ["file_id"],
            ),
        ),
        ToolDefinition(
            name="set_agent_file_assignments",
            description="Set which files are assigned to an agent. Replaces existing assignments.",
            function=lambda args: set_agent_file_assignments(ctx, args),
            parameters=["agent_id", "file_ids"],
            schema=_schema(
                {
                    **_AGENT_ID,
                    "file_ids": {"type": "array", "items": {"type": "string"}},
                },
                ["agent_id", "file_ids"],
            ),
        ),
    ]
    for definition in definitions:
        registry.register_tool(definition)
    logger.info(f"Registered {len(definitions)} builder tools")


__all__ = [
    "register_builder_tools",
    "create_agent",
    "update_agent",
    "delete_agent",
    "get_agent",
    "list_agents",
    "focus_agent",
    "list_knowledge",
    "create_knowledge",
    "update_knowledge",
    "delete_knowledge",
    "list_files",
    "get_file",
    "update_file",
    "set_agent_file_assignments",
    "EDITABLE_FILE_EXTENSIONS",
]
