"""
Health Check Endpoints for the Cowrite Server.

Endpoints:
- GET /api/health - Basic health check with uptime
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel

from cowrite import __version__

router = APIRouter()


# ============================================================================
# RESPONSE MODELS
# ============================================================================

class HealthResponse(BaseModel):
    """Response model for /health endpoint."""

    status: str
    timestamp: str
    version: str
    uptime_seconds: Optional[float] = None


# ============================================================================
# SERVER STATE
# ============================================================================

# Track server start time for uptime calculation
_server_start_time: Optional[datetime] = None


def set_server_start_time() -> None:
    """Set the server start time (called on startup)."""
    global _server_start_time
    _server_start_time = datetime.now()


def get_uptime_seconds() -> Optional[float]:
    if _server_start_time is None:
        return None
    return (datetime.now() - _server_start_time).total_seconds()


# ============================================================================
# ENDPOINTS
# ============================================================================

@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Basic health check endpoint.

    Example:
        GET /api/health
        {
            "status": "healthy",
            "timestamp": "2026-01-15T10:30:00",
            "version": "0.1.0",
            "uptime_seconds": 12.5
        }
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        version=__version__,
        uptime_seconds=get_uptime_seconds(),
    )


__all__ = ["router", "set_server_start_time"]
