"""
Conversations API Routes.

Provides REST endpoints for conversation management:
- GET /api/conversations - List recent conversations
- POST /api/conversations - Create new conversation
- GET /api/conversations/{id} - Get conversation details
- PATCH /api/conversations/{id} - Rename or rebind the master agent
- DELETE /api/conversations/{id} - Delete conversation (documents and messages too)
- GET /api/conversations/{id}/messages - Message history
- GET /api/builder/conversation - The user's AI Builder conversation
"""

from fastapi import APIRouter, Depends, HTTPException
from typing import List, Dict, Any
import logging

from cowrite.agents.state import Services
from cowrite.server.deps import get_services, get_user_id, require_conversation
from cowrite.server.models import (
    CreateConversationRequest,
    UpdateConversationRequest,
    ConversationResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["conversations"])


def _to_response(services: Services, conversation: Dict[str, Any]) -> ConversationResponse:
    return ConversationResponse(
        **conversation,
        message_count=services.conversations.get_message_count(conversation["id"]),
    )


def _check_master_agent(services: Services, master_agent_id: str) -> None:
    if master_agent_id and services.catalog.get_master_agent(
        master_agent_id, get_user_id(services)
    ) is None:
        raise HTTPException(status_code=404, detail="Master agent not found")


# ============================================================================
# Routes
# ============================================================================

@router.get("/conversations", response_model=List[ConversationResponse])
async def list_conversations(
    limit: int = 50,
    services: Services = Depends(get_services)
) -> List[ConversationResponse]:
    """Recent conversations, most recently updated first (builder excluded)."""
    conversations = services.conversations.list_conversations(get_user_id(services), limit=limit)
    return [_to_response(services, conv) for conv in conversations]


@router.post("/conversations", response_model=ConversationResponse)
async def create_conversation(
    request: CreateConversationRequest,
    services: Services = Depends(get_services)
) -> ConversationResponse:
    """
    Create a new conversation.

    The default working document is created together with it.
    """
    if request.master_agent_id:
        _check_master_agent(services, request.master_agent_id)
    conversation = services.conversations.create_conversation(
        get_user_id(services),
        title=request.title,
        master_agent_id=request.master_agent_id,
    )
    services.documents.get_document(conversation["id"])
    return _to_response(services, conversation)


@router.get("/conversations/{conversation_id}", response_model=ConversationResponse)
async def get_conversation(
    conversation_id: str,
    services: Services = Depends(get_services)
) -> ConversationResponse:
    return _to_response(services, require_conversation(services, conversation_id))


@router.patch("/conversations/{conversation_id}", response_model=ConversationResponse)
async def update_conversation(
    conversation_id: str,
    request: UpdateConversationRequest,
    services: Services = Depends(get_services)
) -> ConversationResponse:
    """
    Update title and/or master agent.

    An empty master_agent_id unbinds the master agent.
    """
    require_conversation(services, conversation_id)
    if request.master_agent_id:
        _check_master_agent(services, request.master_agent_id)
    conversation = services.conversations.update_conversation(
        conversation_id,
        get_user_id(services),
        title=request.title,
        master_agent_id=request.master_agent_id,
    )
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return _to_response(services, conversation)


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(
    conversation_id: str,
    services: Services = Depends(get_services)
) -> Dict[str, Any]:
    """Delete a conversation and all its documents and messages."""
    require_conversation(services, conversation_id)
    if not services.conversations.delete_conversation(conversation_id, get_user_id(services)):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"success": True}


@router.get("/conversations/{conversation_id}/messages", response_model=List[MessageResponse])
async def get_messages(
    conversation_id: str,
    services: Services = Depends(get_services)
) -> List[MessageResponse]:
    require_conversation(services, conversation_id)
    return [
        MessageResponse(**message)
        for message in services.conversations.get_messages(conversation_id)
    ]


@router.get("/builder/conversation", response_model=ConversationResponse)
async def get_builder_conversation(
    services: Services = Depends(get_services)
) -> ConversationResponse:
    """The user's AI Builder conversation, created on first use."""
    conversation = services.conversations.get_or_create_builder_conversation(
        get_user_id(services)
    )
    return _to_response(services, conversation)


__all__ = ["router"]
