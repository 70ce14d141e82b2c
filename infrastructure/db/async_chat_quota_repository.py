"""Async Supabase implementation of ChatQuotaRepository."""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from supabase import AsyncClient

from application.models.chat import QuotaDecision, QuotaLimits, QuotaRecord
from application.quota_policy import evaluate

logger = logging.getLogger(__name__)


class QuotaContentionError(Exception):
    """Compare-and-set retries were exhausted for one identity key."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _to_record(row: Dict[str, Any]) -> QuotaRecord:
    return QuotaRecord(
        key=row["ip_session_key"],
        request_count=row["request_count"],
        token_count=row["token_count"],
        window_start=_parse_timestamp(row["window_start"]),
        last_request=_parse_timestamp(row["last_request"]),
    )


class AsyncSupabaseChatQuotaRepository:
    """Async Supabase-backed chat quota repository.

    One row per ``ip:session`` key in chat_rate_limits. Every write is a
    compare-and-set: inserts ignore duplicates, updates are filtered on the
    values that were read. When a concurrent writer gets there first the write
    affects zero rows and the read-evaluate-write cycle is retried.
    """

    TABLE = "chat_rate_limits"

    def __init__(
        self,
        client: AsyncClient,
        max_attempts: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._max_attempts = max_attempts
        self._clock = clock

    async def _fetch(self, key: str) -> Optional[Dict[str, Any]]:
        result = await (
            self._client.table(self.TABLE)
            .select("ip_session_key, request_count, token_count, window_start, last_request")
            .eq("ip_session_key", key)
            .limit(1)
            .execute()
        )
        if result.data:
            return result.data[0]
        return None

    async def check_and_admit(self, key: str, limits: QuotaLimits) -> QuotaDecision:
        for attempt in range(1, self._max_attempts + 1):
            row = await self._fetch(key)
            current = _to_record(row) if row else None
            now = self._clock()

            evaluation = evaluate(key, current, now, limits)
            if evaluation.new_record is None:
                return evaluation.decision

            new = evaluation.new_record
            values = {
                "request_count": new.request_count,
                "token_count": new.token_count,
                "window_start": new.window_start.isoformat(),
                "last_request": new.last_request.isoformat(),
            }

            if row is None:
                result = await (
                    self._client.table(self.TABLE)
                    .upsert(
                        {"ip_session_key": key, **values},
                        on_conflict="ip_session_key",
                        ignore_duplicates=True,
                    )
                    .execute()
                )
            else:
                # Guard on every counter we read so any concurrent write to the
                # row turns this into a zero-row update.
                result = await (
                    self._client.table(self.TABLE)
                    .update(values)
                    .eq("ip_session_key", key)
                    .eq("request_count", row["request_count"])
                    .eq("token_count", row["token_count"])
                    .eq("window_start", row["window_start"])
                    .execute()
                )

            if result.data:
                return evaluation.decision

            logger.debug("Quota CAS conflict for %s (attempt %d)", key, attempt)

        raise QuotaContentionError(
            f"Quota update for {key} lost {self._max_attempts} consecutive races"
        )

    async def record_tokens(self, key: str, token_delta: int) -> None:
        if token_delta <= 0:
            return

        for attempt in range(1, self._max_attempts + 1):
            row = await self._fetch(key)
            if row is None:
                return

            result = await (
                self._client.table(self.TABLE)
                .update({"token_count": row["token_count"] + token_delta})
                .eq("ip_session_key", key)
                .eq("token_count", row["token_count"])
                .eq("window_start", row["window_start"])
                .execute()
            )
            if result.data:
                return

            logger.debug("Token count CAS conflict for %s (attempt %d)", key, attempt)

        raise QuotaContentionError(
            f"Token update for {key} lost {self._max_attempts} consecutive races"
        )
