"""Rolling-window admission policy for chat quota records.

Pure functions only. The repository reads a record, asks ``evaluate`` what the
record should become, and writes it back with a compare-and-set guard.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from application.models.chat import QuotaDecision, QuotaLimits, QuotaRecord


@dataclass(frozen=True)
class QuotaEvaluation:
    """Admission decision plus the record to persist (None when denied)."""

    decision: QuotaDecision
    new_record: Optional[QuotaRecord]


def request_limit_reason(limits: QuotaLimits) -> str:
    return (
        f"Request limit exceeded ({limits.max_requests}/{limits.window_label}). "
        "Please try again later."
    )


def token_limit_reason(limits: QuotaLimits) -> str:
    return "Token limit exceeded. Please try again later."


def is_expired(record: QuotaRecord, now: datetime, limits: QuotaLimits) -> bool:
    return now - record.window_start > limits.window


def fresh_record(key: str, now: datetime) -> QuotaRecord:
    return QuotaRecord(
        key=key,
        request_count=1,
        token_count=0,
        window_start=now,
        last_request=now,
    )


def evaluate(
    key: str,
    record: Optional[QuotaRecord],
    now: datetime,
    limits: QuotaLimits,
) -> QuotaEvaluation:
    """Decide whether a request for ``key`` is admitted at ``now``.

    - no record: create with request_count=1 and admit
    - expired window: reset in place and admit
    - live window: deny on request limit first, then token limit,
      otherwise increment request_count and admit
    """
    if record is None or is_expired(record, now, limits):
        new_record = fresh_record(key, now)
        return QuotaEvaluation(
            decision=QuotaDecision(allowed=True, request_count=1),
            new_record=new_record,
        )

    if record.request_count >= limits.max_requests:
        return QuotaEvaluation(
            decision=QuotaDecision(
                allowed=False,
                reason=request_limit_reason(limits),
                request_count=record.request_count,
            ),
            new_record=None,
        )

    if record.token_count >= limits.max_tokens:
        return QuotaEvaluation(
            decision=QuotaDecision(
                allowed=False,
                reason=token_limit_reason(limits),
                request_count=record.request_count,
            ),
            new_record=None,
        )

    new_record = QuotaRecord(
        key=key,
        request_count=record.request_count + 1,
        token_count=record.token_count,
        window_start=record.window_start,
        last_request=now,
    )
    return QuotaEvaluation(
        decision=QuotaDecision(allowed=True, request_count=new_record.request_count),
        new_record=new_record,
    )
