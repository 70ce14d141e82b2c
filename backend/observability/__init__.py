"""
OpenTelemetry observability package for the portfolio chat API.

This package provides distributed tracing, metrics, and log correlation
for the chat and commit-activity endpoints.

Usage:
    from backend.observability import (
        configure_observability,
        get_tracer,
        traced,
        ChatMetrics,
        get_current_trace_id,
    )

    # Initialize in application startup
    configure_observability(settings)

    # Use decorator for automatic tracing
    @traced
    async def my_function():
        ...

    # Access metrics
    ChatMetrics.chat_requests_total().add(1, {"status": "success"})
"""

from backend.observability.config import configure_observability, shutdown_observability
from backend.observability.tracing import get_tracer, traced
from backend.observability.metrics import ChatMetrics
from backend.observability.context import get_current_trace_id

__all__ = [
    # Configuration
    "configure_observability",
    "shutdown_observability",
    # Tracing
    "get_tracer",
    "traced",
    # Metrics
    "ChatMetrics",
    # Context
    "get_current_trace_id",
]
