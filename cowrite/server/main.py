"""
Cowrite HTTP Server Entry Point.

FastAPI application exposing conversations, shared working documents and
orchestration turns (JSON or NDJSON stream) to a web frontend.

Usage:
    # Run the server
    python -m cowrite.server.main

    # Or with custom host/port
    python -m cowrite.server.main --host 0.0.0.0 --port 8080

    # For development with auto-reload
    uvicorn cowrite.server.main:app --reload --host 127.0.0.1 --port 8765
"""

import argparse
import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from cowrite import __version__
from cowrite.agents.runtime import create_services
from cowrite.agents.state import Services
from cowrite.core.events import get_event_bus
from cowrite.server.routes.chat import router as chat_router
from cowrite.server.routes.conversations import router as conversations_router
from cowrite.server.routes.documents import router as documents_router
from cowrite.server.routes.health import router as health_router, set_server_start_time

load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
    ]
)

logger = logging.getLogger(__name__)


# ============================================================================
# APPLICATION LIFESPAN
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler for startup/shutdown.

    Creates the stores and LLM client on startup unless the app was built
    with a Services bundle, and shuts down the global event bus on exit.
    """
    # ========================================================================
    # STARTUP
    # ========================================================================
    logger.info("=" * 60)
    logger.info("Cowrite Server starting...")
    logger.info("=" * 60)

    set_server_start_time()

    if getattr(app.state, "services", None) is None:
        app.state.services = create_services()
    _ = get_event_bus()

    logger.info("Cowrite Server started successfully")
    logger.info("-" * 60)

    yield

    # ========================================================================
    # SHUTDOWN
    # ========================================================================
    logger.info("-" * 60)
    logger.info("Cowrite Server shutting down...")

    try:
        await get_event_bus().shutdown()
        logger.info("EventBus shutdown complete")
    except Exception as e:
        logger.error(f"Error shutting down EventBus: {e}")

    logger.info("Cowrite Server shutdown complete")
    logger.info("=" * 60)


# ============================================================================
# CREATE APPLICATION
# ============================================================================

def create_app(services: Optional[Services] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        services: Pre-built stores and clients (tests); default is to
            create them at startup.

    Returns:
        Configured FastAPI app instance.
    """
    app = FastAPI(
        title="Cowrite Server",
        description="Shared working documents co-edited by a user and "
                    "an orchestrating master agent.",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.services = services

    # ========================================================================
    # CORS MIDDLEWARE
    # ========================================================================
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # ========================================================================
    # INCLUDE ROUTERS
    # ========================================================================
    app.include_router(health_router, prefix="/api", tags=["health"])
    app.include_router(conversations_router, prefix="/api")
    app.include_router(documents_router, prefix="/api")
    app.include_router(chat_router, prefix="/api")

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with server info."""
        return {
            "name": "Cowrite Server",
            "version": __version__,
            "status": "running",
            "docs_url": "/docs",
        }

    return app


# Create the app instance
app = create_app()


# ============================================================================
# SERVER RUNNER
# ============================================================================

def run_server(
    host: str = "127.0.0.1",
    port: int = 8765,
    reload: bool = False,
    log_level: str = "info"
) -> None:
    """
    Run the Cowrite server with uvicorn.

    Args:
        host: Host address to bind to (default: 127.0.0.1).
        port: Port number to listen on (default: 8765).
        reload: Enable auto-reload for development (default: False).
        log_level: Logging level (default: info).
    """
    logger.info(f"Starting server on {host}:{port}")
    uvicorn.run(
        "cowrite.server.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
        access_log=True,
    )


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Cowrite HTTP Server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host address to bind to"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8765,
        help="Port number to listen on"
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development"
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="info",
        choices=["debug", "info", "warning", "error", "critical"],
        help="Logging level"
    )
    return parser.parse_args(argv)


def main(argv=None) -> None:
    args = parse_args(argv)
    run_server(
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level=args.log_level
    )


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    main()
