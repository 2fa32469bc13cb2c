"""
Cowrite HTTP Server Package.

Provides the FastAPI layer over the document store and the orchestration
runtime: conversations, working documents (lock take-over, undo/redo) and
chat turns returned as JSON or streamed as NDJSON events.

Usage:
    # Start server
    python -m cowrite.server.main

    # Or programmatically
    from cowrite.server.main import run_server
    run_server(host="127.0.0.1", port=8765)
"""

from cowrite.server.models import (
    CreateConversationRequest,
    UpdateConversationRequest,
    ConversationResponse,
    MessageResponse,
    DocumentResponse,
    CreateDocumentRequest,
    UpdateDocumentRequest,
    ChatRequest,
)
from cowrite.server.serializers import serialize_document, serialize_event, event_to_ndjson

__all__ = [
    # Models
    "CreateConversationRequest",
    "UpdateConversationRequest",
    "ConversationResponse",
    "MessageResponse",
    "DocumentResponse",
    "CreateDocumentRequest",
    "UpdateDocumentRequest",
    "ChatRequest",
    # Serializers
    "serialize_document",
    "serialize_event",
    "event_to_ndjson",
]
