"""
Serialization Utilities for the Cowrite Server.

Converts domain objects (documents, conversations, events) into the
JSON-safe shapes returned by the HTTP routes and the NDJSON stream.
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from pydantic import BaseModel

from cowrite.core.documents import Document
from cowrite.core.events import Event
from cowrite.server.models import DocumentResponse

logger = logging.getLogger(__name__)


def serialize_document(doc: Document) -> DocumentResponse:
    """
    Document to its HTTP shape.

    LockHolder.NONE is exposed as null.
    """
    holder = doc.lock_holder.to_db()
    return DocumentResponse(
        id=doc.id,
        conversation_id=doc.conversation_id,
        title=doc.title,
        content=doc.content,
        lock_holder=holder,
        lock_expires_at=doc.lock_expires_at,
        undo_stack=doc.undo_stack,
        redo_stack=doc.redo_stack,
        version=doc.version,
        updated_at=doc.updated_at,
    )


def _serialize_value(value: Any) -> Any:
    """
    Serialize a single value to a JSON-safe type.

    Args:
        value: Any Python value.

    Returns:
        JSON-serializable representation.
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value

    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")

    if isinstance(value, datetime):
        return value.isoformat()

    if isinstance(value, Path):
        return str(value)

    if isinstance(value, dict):
        return {str(k): _serialize_value(v) for k, v in value.items()}

    if isinstance(value, (list, tuple, set)):
        return [_serialize_value(v) for v in value]

    logger.debug(f"Falling back to str() for {type(value).__name__}")
    return str(value)


def serialize_event(event: Event) -> Dict[str, Any]:
    """Event to a JSON-safe dict ({"type", "timestamp", ...payload})."""
    return _serialize_value(event.to_dict())


def event_to_ndjson(event: Event) -> str:
    """One NDJSON line for the chat stream."""
    return json.dumps(serialize_event(event)) + "\n"


__all__ = ["serialize_document", "serialize_event", "event_to_ndjson"]
