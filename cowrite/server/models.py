"""
HTTP Request/Response Models for the Cowrite Server.

Request bodies are validated by FastAPI before a handler runs, so malformed
input is rejected (422) before any document lock is touched.
"""

from typing import Optional, List, Literal, Any, Dict

from pydantic import BaseModel, Field


# ============================================================================
# CONVERSATIONS
# ============================================================================

class CreateConversationRequest(BaseModel):
    title: Optional[str] = None
    master_agent_id: Optional[str] = None


class UpdateConversationRequest(BaseModel):
    title: Optional[str] = None
    master_agent_id: Optional[str] = None


class ConversationResponse(BaseModel):
    id: str
    title: str
    master_agent_id: Optional[str] = None
    is_builder: bool = False
    created_at: str
    updated_at: str
    message_count: Optional[int] = None


class MessageResponse(BaseModel):
    id: str
    role: str
    content: str
    tool_calls: Optional[List[Dict[str, Any]]] = None
    created_at: str


# ============================================================================
# DOCUMENTS
# ============================================================================

class DocumentResponse(BaseModel):
    """
    Document as exposed over HTTP.

    lock_holder is null when nobody holds the lock.
    """
    id: str
    conversation_id: str
    title: str
    content: str
    lock_holder: Optional[Literal["user", "agent"]] = None
    lock_expires_at: Optional[str] = None
    undo_stack: List[str] = Field(default_factory=list)
    redo_stack: List[str] = Field(default_factory=list)
    version: int
    updated_at: str


class CreateDocumentRequest(BaseModel):
    title: Optional[str] = None
    content: str = ""


class UpdateDocumentRequest(BaseModel):
    """
    Partial document update.

    Only fields present in the body are applied:
    - title: new title
    - content: new full content, written as the user
    - lock_holder: "user", "agent" or null (release); applied together
      with the content write when both are given
    - undo_stack / redo_stack: explicit history, both or neither
    """
    content: Optional[str] = None
    title: Optional[str] = None
    lock_holder: Optional[Literal["user", "agent"]] = None
    undo_stack: Optional[List[str]] = None
    redo_stack: Optional[List[str]] = None


# ============================================================================
# CHAT
# ============================================================================

class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1)


__all__ = [
    "CreateConversationRequest",
    "UpdateConversationRequest",
    "ConversationResponse",
    "MessageResponse",
    "DocumentResponse",
    "CreateDocumentRequest",
    "UpdateDocumentRequest",
    "ChatRequest",
]
