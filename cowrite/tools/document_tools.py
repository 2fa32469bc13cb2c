"""
Working-document tools for the master agent.

The master writes to the conversation's documents through these tools,
always as the agent actor, so every write goes through the lock arbiter.
A write rejected because the user holds the lock is returned to the model
as an error payload, never raised.

Tools:
- list_docs: list the conversation's documents
- create_doc: add a new document (tab)
- rename_doc / delete_doc: manage tabs
- write_to_doc: append to or replace a document's content
- word_count: count words in a document
"""

import logging
from typing import Dict, Any

from cowrite.agents.state import TurnContext
from cowrite.core.documents import (
    LockHolder,
    DocumentNotFoundError,
    LastDocumentError,
    WRITE_MODES,
)
from cowrite.tools.registry import ToolRegistry, ToolDefinition

logger = logging.getLogger(__name__)


CONFLICT_MESSAGE = "Doc is being edited by the user. Try again later."


# ============================================================================
# TOOL FUNCTIONS
# ============================================================================

def list_docs(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    documents = ctx.services.documents.list_documents(ctx.conversation_id)
    if not documents:
        documents = [ctx.services.documents.get_document(ctx.conversation_id)]
    return {
        "docs": [
            {"id": doc.id, "title": doc.title, "updated_at": doc.updated_at}
            for doc in documents
        ],
        "message": f"Found {len(documents)} doc(s).",
    }


def create_doc(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    doc = ctx.services.documents.create_document(
        ctx.conversation_id, title=args.get("title"), content=str(args.get("content") or "")
    )
    return {"id": doc.id, "title": doc.title, "message": f'Created doc "{doc.title}".'}


def rename_doc(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    try:
        doc = ctx.services.documents.rename_document(
            args["doc_id"], ctx.conversation_id, args.get("title") or ""
        )
    except DocumentNotFoundError:
        return {"error": "Doc not found"}
    return {"id": doc.id, "title": doc.title, "message": f'Renamed to "{doc.title}".'}


def delete_doc(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    try:
        ctx.services.documents.delete_document(args["doc_id"], ctx.conversation_id)
    except LastDocumentError:
        return {"error": "Cannot delete the last doc."}
    except DocumentNotFoundError:
        return {"error": "Doc not found"}
    return {"ok": True, "message": "Doc deleted."}


def write_to_doc(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Append to or replace a document as the agent.

    Args (from the model):
        mode: "append" or "replace".
        content: Text to write.
        doc_id: Target document (default: the conversation's first document).

    Returns:
        {"ok": True, "message": ...} on success, {"error": ...} otherwise.
    """
    mode = args.get("mode")
    if mode not in WRITE_MODES:
        return {"error": f"mode must be one of {list(WRITE_MODES)}"}

    try:
        outcome = ctx.services.documents.append_or_replace(
            ctx.conversation_id,
            mode,
            str(args.get("content") or ""),
            LockHolder.AGENT,
            document_id=args.get("doc_id") or None,
        )
    except DocumentNotFoundError:
        return {"error": "Working doc not found"}

    if outcome.conflict:
        logger.info(f"write_to_doc rejected in {ctx.conversation_id}: user holds the lock")
        return {"error": CONFLICT_MESSAGE}

    return {"ok": True, "message": "Appended to doc." if mode == "append" else "Doc replaced."}


def word_count(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    try:
        doc = ctx.services.documents.get_document(ctx.conversation_id, args.get("doc_id") or None)
    except DocumentNotFoundError:
        return {"error": "Doc not found"}
    count = len(doc.content.split())
    return {
        "word_count": count,
        "doc_id": doc.id,
        "title": doc.title,
        "message": f'"{doc.title}" has {count} word(s).',
    }


# ============================================================================
# REGISTRATION
# ============================================================================

def register_document_tools(registry: ToolRegistry, ctx: TurnContext) -> None:
    """Register the working-document tools bound to `ctx`."""
    registry.register_tool(ToolDefinition(
        name="list_docs",
        description="List all working docs (tabs) in this conversation with id, title and updated_at.",
        function=lambda args: list_docs(ctx, args),
    ))

    registry.register_tool(ToolDefinition(
        name="create_doc",
        description="Create a new working doc (tab). Optional title and initial content.",
        function=lambda args: create_doc(ctx, args),
        schema={
            "type": "object",
            "properties": {
                "title": {"type": "string", "description": "Title for the new doc"},
                "content": {"type": "string", "description": "Initial markdown content"},
            },
            "required": [],
        },
    ))

    registry.register_tool(ToolDefinition(
        name="rename_doc",
        description="Rename a working doc.",
        function=lambda args: rename_doc(ctx, args),
        parameters=["doc_id", "title"],
        schema={
            "type": "object",
            "properties": {
                "doc_id": {"type": "string", "description": "Doc id from list_docs"},
                "title": {"type": "string", "description": "New title"},
            },
            "required": ["doc_id", "title"],
        },
    ))

    registry.register_tool(ToolDefinition(
        name="delete_doc",
        description="Delete a working doc. The last remaining doc cannot be deleted.",
        function=lambda args: delete_doc(ctx, args),
        parameters=["doc_id"],
        schema={
            "type": "object",
            "properties": {"doc_id": {"type": "string", "description": "Doc id from list_docs"}},
            "required": ["doc_id"],
        },
    ))

    registry.register_tool(ToolDefinition(
        name="write_to_doc",
        description=(
            "Write to a working doc. mode 'append' adds content at the end, 'replace' "
            "overwrites the whole doc. Defaults to the first doc when doc_id is omitted."
        ),
        function=lambda args: write_to_doc(ctx, args),
        parameters=["mode", "content"],
        schema={
            "type": "object",
            "properties": {
                "mode": {"type": "string", "enum": list(WRITE_MODES)},
                "content": {"type": "string", "description": "Markdown content to write"},
                "doc_id": {"type": "string", "description": "Target doc id (optional)"},
            },
            "required": ["mode", "content"],
        },
    ))

    registry.register_tool(ToolDefinition(
        name="word_count",
        description="Count the words in a working doc (default: the first doc).",
        function=lambda args: word_count(ctx, args),
        schema={
            "type": "object",
            "properties": {"doc_id": {"type": "string", "description": "Doc id (optional)"}},
            "required": [],
        },
    ))


__all__ = [
    "list_docs",
    "create_doc",
    "rename_doc",
    "delete_doc",
    "write_to_doc",
    "word_count",
    "register_document_tools",
    "CONFLICT_MESSAGE",
]
