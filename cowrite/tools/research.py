"""
Research tool: read the user's uploaded files.

Without a query it lists every available file with a text preview; with a
query it returns the full text (capped) of files whose name or text
contains the query, case-insensitively. A master agent with assigned files
only sees those files.
"""

import logging
from typing import Dict, Any, List, Optional, Tuple

from cowrite.agents.state import TurnContext
from cowrite.core.catalog import FileRecord
from cowrite.tools.registry import ToolRegistry, ToolDefinition

logger = logging.getLogger(__name__)


PREVIEW_MAX_CHARS = 2000
CONTENT_MAX_CHARS = 8000


def _available_files(ctx: TurnContext) -> Tuple[List[FileRecord], bool]:
    """Files visible to the turn, and whether the master has assignments."""
    catalog = ctx.services.catalog
    assigned: List[str] = []
    if ctx.master_agent_id:
        assigned = catalog.get_assigned_file_ids("master", ctx.master_agent_id)
    files = catalog.list_files(ctx.user_id, assigned if assigned else None)
    return files, bool(assigned)


def _preview(text: Optional[str]) -> str:
    if not text:
        return "(no text extracted)"
    if len(text) > PREVIEW_MAX_CHARS:
        return text[:PREVIEW_MAX_CHARS] + "…"
    return text


def research(ctx: TurnContext, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    List or search uploaded files.

    Args (from the model):
        query: Optional search string.

    Returns:
        Without query: {"files": [...], "message": ...}
        With query: {"query", "results": [...], "message": ...}
    """
    files, has_assignments = _available_files(ctx)
    if not files:
        message = (
            "No files assigned to this master agent." if has_assignments else "No uploaded files."
        )
        return {"files": [], "message": message}

    query = str(args.get("query") or "").strip()
    if not query:
        return {
            "files": [
                {"id": f.id, "filename": f.filename, "preview": _preview(f.text_content)}
                for f in files
            ],
            "message": "List of uploaded files and their text preview.",
        }

    needle = query.lower()
    matches = [
        f for f in files
        if needle in f.filename.lower() or needle in (f.text_content or "").lower()
    ]
    logger.info(f"research query matched {len(matches)} of {len(files)} file(s)")
    return {
        "query": query,
        "results": [
            {
                "id": f.id,
                "filename": f.filename,
                "content": (f.text_content or "")[:CONTENT_MAX_CHARS] or "(no text)",
            }
            for f in matches
        ],
        "message": f"Found {len(matches)} relevant file(s).",
    }


def register_research_tool(registry: ToolRegistry, ctx: TurnContext) -> None:
    registry.register_tool(ToolDefinition(
        name="research",
        description=(
            "Search the user's uploaded files. Without a query, lists files with a text "
            "preview. With a query, returns the text of matching files."
        ),
        function=lambda args: research(ctx, args),
        schema={
            "type": "object",
            "properties": {
                "query": {"type": "string", "description": "Search text (optional)"},
            },
            "required": [],
        },
    ))


__all__ = ["research", "register_research_tool", "PREVIEW_MAX_CHARS", "CONTENT_MAX_CHARS"]
