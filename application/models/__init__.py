"""Application domain models for the portfolio chat and activity feed."""

from .chat import (
    ChatError,
    ChatRequest,
    ErrorCode,
    HistoryEntry,
    QuotaDecision,
    QuotaLimits,
    QuotaRecord,
)
from .commits import CommitSummary, RecentActivity

__all__ = [
    "ChatError",
    "ChatRequest",
    "CommitSummary",
    "ErrorCode",
    "HistoryEntry",
    "QuotaDecision",
    "QuotaLimits",
    "QuotaRecord",
    "RecentActivity",
]
