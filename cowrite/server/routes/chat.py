"""
Chat API Routes.

Endpoints:
- POST /api/conversations/{id}/chat - Run one turn, return the TurnResult
- POST /api/conversations/{id}/chat/stream - Run one turn, stream NDJSON events

The streamed variant gives the turn its own EventBus and forwards every
event as one JSON line, ending with turn_completed or turn_failed.
"""

import asyncio
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from cowrite.agents.runtime import run_turn
from cowrite.agents.state import Services, TurnResult
from cowrite.core.db import ConversationNotFoundError
from cowrite.core.events import EventBus, iter_queue
from cowrite.server.deps import get_services, require_conversation
from cowrite.server.models import ChatRequest
from cowrite.server.serializers import event_to_ndjson

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/conversations/{conversation_id}", tags=["chat"])


@router.post("/chat", response_model=TurnResult)
async def chat(
    conversation_id: str,
    request: ChatRequest,
    services: Services = Depends(get_services)
) -> TurnResult:
    """
    Run one orchestration turn.

    Returns:
        TurnResult with the assistant text, tool outputs and delegations.
    """
    require_conversation(services, conversation_id)
    try:
        return await run_turn(services, conversation_id, request.message, bus=EventBus())
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Chat turn failed for {conversation_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


async def stream_turn_events(
    services: Services,
    conversation_id: str,
    message: str
) -> AsyncIterator[str]:
    """
    Run a turn in the background and yield its events as NDJSON lines.

    The bus is shut down when the turn ends, which closes the stream.
    """
    bus = EventBus()
    queue = bus.subscribe()

    async def _run() -> None:
        try:
            await run_turn(services, conversation_id, message, bus=bus)
        finally:
            await bus.shutdown()

    task = asyncio.create_task(_run())
    try:
        async for event in iter_queue(queue):
            yield event_to_ndjson(event)
    finally:
        if not task.done():
            task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info(f"Streamed turn cancelled for {conversation_id}")
        except Exception as e:
            # Already reported to the client as turn_failed
            logger.error(f"Streamed turn failed for {conversation_id}: {e}")


@router.post("/chat/stream")
async def chat_stream(
    conversation_id: str,
    request: ChatRequest,
    services: Services = Depends(get_services)
) -> StreamingResponse:
    """
    Run one turn and stream its events.

    Each line is a JSON object with "type" (turn_started, lock_acquired,
    text, tool_call_*, delegation_*, lock_released, turn_completed or
    turn_failed), "timestamp" and the event payload.
    """
    require_conversation(services, conversation_id)
    if not request.message.strip():
        raise HTTPException(status_code=400, detail="Message must not be empty")
    return StreamingResponse(
        stream_turn_events(services, conversation_id, request.message),
        media_type="application/x-ndjson",
    )


__all__ = ["router", "stream_turn_events"]
