"""Domain models for the chat endpoint: request body, error taxonomy, quota records.

The quota record mirrors the ``chat_rate_limits`` table defined in
supabase/migrations/20250101000000_create_chat_rate_limits.sql.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Error taxonomy
# ---------------------------------------------------------------------------


class ErrorCode(str, Enum):
    VALIDATION = "VALIDATION"
    RATE_LIMIT = "RATE_LIMIT"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"
    SERVER_ERROR = "SERVER_ERROR"


class ChatError(Exception):
    """A failure mapped to exactly one wire error code.

    ``message`` is safe to show to the browser; internal detail belongs in logs.
    """

    def __init__(self, code: ErrorCode, message: str, status_code: int) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code

    def to_payload(self) -> dict:
        return {"error": self.message, "code": self.code.value}

    @classmethod
    def validation(cls, message: str, status_code: int = 400) -> "ChatError":
        return cls(ErrorCode.VALIDATION, message, status_code)

    @classmethod
    def rate_limited(cls, message: str) -> "ChatError":
        return cls(ErrorCode.RATE_LIMIT, message, 429)

    @classmethod
    def verification_failed(
        cls, message: str = "Verification failed. Please try again."
    ) -> "ChatError":
        return cls(ErrorCode.VERIFICATION_FAILED, message, 403)

    @classmethod
    def server_error(
        cls, message: str = "Something went wrong. Please try again."
    ) -> "ChatError":
        return cls(ErrorCode.SERVER_ERROR, message, 500)


# ---------------------------------------------------------------------------
# Request body
# ---------------------------------------------------------------------------


class HistoryEntry(BaseModel):
    """One prior turn supplied by the client."""

    role: str
    content: str


class ChatRequest(BaseModel):
    """Body of POST /api/chat.

    ``message`` is deliberately untyped: shape and length checks belong to the
    abuse guard so every rejection carries the VALIDATION code.
    """

    model_config = ConfigDict(populate_by_name=True)

    message: Any = None
    session_id: Optional[str] = Field(default=None, alias="sessionId")
    history: List[HistoryEntry] = Field(default_factory=list)
    turnstile_token: Optional[str] = Field(default=None, alias="turnstileToken")


# ---------------------------------------------------------------------------
# Quota
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class QuotaLimits:
    """Per-identity limits applied within one window."""

    max_requests: int = 30
    max_tokens: int = 100000
    window: timedelta = timedelta(hours=1)

    @property
    def window_label(self) -> str:
        """Human-readable window used in denial reasons, e.g. ``hour``."""
        seconds = int(self.window.total_seconds())
        if seconds == 3600:
            return "hour"
        if seconds % 3600 == 0:
            return f"{seconds // 3600}h"
        if seconds % 60 == 0:
            return f"{seconds // 60}min"
        return f"{seconds}s"


@dataclass(frozen=True)
class QuotaRecord:
    """Request and token counters for one identity key."""

    key: str
    request_count: int
    token_count: int
    window_start: datetime
    last_request: datetime


@dataclass(frozen=True)
class QuotaDecision:
    """Result of an admission check."""

    allowed: bool
    reason: Optional[str] = None
    request_count: Optional[int] = None
