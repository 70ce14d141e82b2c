"""
Application factory for FastAPI.

This module provides a factory function for creating FastAPI application instances.
The factory pattern allows for:
- Easy testing with custom settings
- Multiple app instances with different configurations
- Clear separation of app creation from route definitions

Usage:
    from backend.main import create_app
    from backend.settings import Settings

    # Default app (uses get_settings())
    app = create_app()

    # Test app with custom settings
    test_settings = Settings(environment="test", _env_file=None)
    test_app = create_app(settings=test_settings)
"""

import asyncio
import logging
import signal
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from application.models.chat import ChatError
from backend.observability import (
    configure_observability,
    get_current_trace_id,
    shutdown_observability,
)
from backend.settings import Settings, get_settings
from backend.sse_connections import get_sse_connection_count

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application Factory
# ---------------------------------------------------------------------------


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Create and configure a FastAPI application instance.

    Args:
        settings: Optional Settings instance. If not provided, uses get_settings()
                  which loads from environment variables.

    Returns:
        Configured FastAPI application instance.
    """
    if settings is None:
        settings = get_settings()

    configure_observability(settings)

    # Initialize Sentry for error tracking
    _init_sentry(settings)

    app = FastAPI(
        title="Portfolio Chat API",
        description="Visitor chat assistant and recent-activity feed for the portfolio site",
        version="1.0.0",
    )

    # Store settings on app state for middleware access
    app.state.settings = settings

    _add_sse_headers_middleware(app)
    _register_exception_handlers(app)

    _include_routers(app)

    _register_shutdown(app)

    return app


def _init_sentry(settings: Settings) -> None:
    """Initialize Sentry SDK if DSN is configured."""
    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            release=settings.render_git_commit,
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            enable_tracing=True,
        )
        logger.info(
            "Sentry initialized for portfolio-chat-api (release=%s)",
            settings.render_git_commit or "unknown",
        )


class SSEHeadersMiddleware(BaseHTTPMiddleware):
    """Add X-Accel-Buffering: no header for SSE endpoints."""

    async def dispatch(self, request: Request, call_next):
        response: Response = await call_next(request)
        content_type = response.headers.get("content-type", "")
        if "text/event-stream" in content_type:
            response.headers["X-Accel-Buffering"] = "no"
            response.headers["Cache-Control"] = "no-cache"
        return response


def _add_sse_headers_middleware(app: FastAPI) -> None:
    """Add middleware for SSE header injection."""
    app.add_middleware(SSEHeadersMiddleware)


def _register_exception_handlers(app: FastAPI) -> None:
    """Map anything that escapes a route to the generic SERVER_ERROR body."""

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError):
        return JSONResponse(status_code=exc.status_code, content=exc.to_payload())

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception(
            "Unhandled error on %s %s (trace_id=%s)",
            request.method,
            request.url.path,
            get_current_trace_id(),
        )
        error = ChatError.server_error()
        return JSONResponse(status_code=error.status_code, content=error.to_payload())


def _include_routers(app: FastAPI) -> None:
    """Include all API routers in the application."""
    from api.routers import health_router, chat_router, commits_router

    # Health router (no prefix - /health at root)
    app.include_router(health_router)

    # Chat router (/api/chat)
    app.include_router(chat_router)

    # Commits router (/api/github-commits)
    app.include_router(commits_router)


def _register_shutdown(app: FastAPI) -> None:
    """Register graceful shutdown handler."""

    @app.on_event("shutdown")
    async def shutdown_event():
        from api.deps import get_background_tasks

        count = get_sse_connection_count()
        if count > 0:
            logger.info(
                "Shutting down with %d active SSE connections, "
                "waiting up to 5s for drain...",
                count,
            )
            # Give SSE connections a brief window to close
            for _ in range(10):
                if get_sse_connection_count() == 0:
                    break
                await asyncio.sleep(0.5)
        remaining = get_sse_connection_count()
        if remaining > 0:
            logger.warning(
                "Shutdown proceeding with %d SSE connections still active",
                remaining,
            )

        # Let token accounting and cache writes land before the loop stops
        await get_background_tasks().drain(timeout=5.0)

        shutdown_observability()

        logger.info("portfolio-chat-api shutdown complete")

    # Handle SIGTERM for Render graceful shutdown
    def _handle_sigterm(signum, frame):
        logger.info("Received SIGTERM, initiating graceful shutdown")
        raise SystemExit(0)

    signal.signal(signal.SIGTERM, _handle_sigterm)


# Default app instance for uvicorn
# This allows: uvicorn backend.main:app --reload
app = create_app()
