"""
Request-scoped accessors shared by the route modules.

The long-lived Services bundle lives on `app.state.services`; it is created
in the lifespan handler unless the app was built with one (tests).
"""

import logging
from typing import Any, Dict

from fastapi import HTTPException, Request

from cowrite.agents.state import Services
from cowrite.core.db import ConversationNotFoundError

logger = logging.getLogger(__name__)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Server is not ready")
    return services


def get_user_id(services: Services) -> str:
    return services.settings.get_user_id()


def require_conversation(services: Services, conversation_id: str) -> Dict[str, Any]:
    """Conversation owned by the current user, or 404."""
    try:
        return services.conversations.require_conversation(
            conversation_id, get_user_id(services)
        )
    except ConversationNotFoundError:
        raise HTTPException(status_code=404, detail="Conversation not found")


__all__ = ["get_services", "get_user_id", "require_conversation"]
