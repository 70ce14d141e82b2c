"""
Metrics definitions for the portfolio chat API.

Defines all metrics using OpenTelemetry Meter API.
"""

from typing import Optional

from opentelemetry import metrics

# Meter name
_METER_NAME = "portfolio-chat-api"


def _get_meter() -> metrics.Meter:
    """Get the metrics meter instance."""
    return metrics.get_meter(_METER_NAME)


class ChatMetrics:
    """
    Centralized metrics for the chat and activity endpoints.

    All metrics are lazily initialized on first access.
    """

    _chat_requests_total: Optional[metrics.Counter] = None
    _rate_limit_hits_total: Optional[metrics.Counter] = None
    _verification_failures_total: Optional[metrics.Counter] = None
    _tokens_streamed_total: Optional[metrics.Counter] = None
    _completion_ttft_seconds: Optional[metrics.Histogram] = None
    _active_sse_connections: Optional[metrics.UpDownCounter] = None
    _commit_cache_requests_total: Optional[metrics.Counter] = None

    @classmethod
    def chat_requests_total(cls) -> metrics.Counter:
        """Counter for total chat requests by status."""
        if cls._chat_requests_total is None:
            cls._chat_requests_total = _get_meter().create_counter(
                name="chat_requests_total",
                description="Total number of chat requests",
                unit="1",
            )
        return cls._chat_requests_total

    @classmethod
    def rate_limit_hits_total(cls) -> metrics.Counter:
        """Counter for rate limit hits by type."""
        if cls._rate_limit_hits_total is None:
            cls._rate_limit_hits_total = _get_meter().create_counter(
                name="rate_limit_hits_total",
                description="Total rate limit hits",
                unit="1",
            )
        return cls._rate_limit_hits_total

    @classmethod
    def verification_failures_total(cls) -> metrics.Counter:
        """Counter for rejected or unverifiable Turnstile tokens."""
        if cls._verification_failures_total is None:
            cls._verification_failures_total = _get_meter().create_counter(
                name="verification_failures_total",
                description="Total failed human verifications",
                unit="1",
            )
        return cls._verification_failures_total

    @classmethod
    def tokens_streamed_total(cls) -> metrics.Counter:
        """Counter for approximate tokens streamed to clients."""
        if cls._tokens_streamed_total is None:
            cls._tokens_streamed_total = _get_meter().create_counter(
                name="tokens_streamed_total",
                description="Approximate tokens streamed (one per chunk)",
                unit="1",
            )
        return cls._tokens_streamed_total

    @classmethod
    def completion_ttft_seconds(cls) -> metrics.Histogram:
        """Histogram for completion time to first token."""
        if cls._completion_ttft_seconds is None:
            cls._completion_ttft_seconds = _get_meter().create_histogram(
                name="completion_ttft_seconds",
                description="Time to first token from the completion API",
                unit="s",
            )
        return cls._completion_ttft_seconds

    @classmethod
    def active_sse_connections(cls) -> metrics.UpDownCounter:
        """Gauge for active SSE connections."""
        if cls._active_sse_connections is None:
            cls._active_sse_connections = _get_meter().create_up_down_counter(
                name="active_sse_connections",
                description="Number of active SSE connections",
                unit="1",
            )
        return cls._active_sse_connections

    @classmethod
    def commit_cache_requests_total(cls) -> metrics.Counter:
        """Counter for commit activity lookups by outcome (hit, miss, stale, error)."""
        if cls._commit_cache_requests_total is None:
            cls._commit_cache_requests_total = _get_meter().create_counter(
                name="commit_cache_requests_total",
                description="Commit activity requests by cache outcome",
                unit="1",
            )
        return cls._commit_cache_requests_total
