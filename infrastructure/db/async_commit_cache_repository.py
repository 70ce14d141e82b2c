"""Async Supabase implementation of CommitCacheRepository."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from supabase import AsyncClient

from application.models.commits import CommitSummary


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


@dataclass
class CachedCommits:
    """One row of github_commits_cache."""

    commits: List[CommitSummary]
    cached_at: datetime
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return now < self.expires_at


class AsyncSupabaseCommitCacheRepository:
    """Async Supabase-backed cache with one row per repository."""

    TABLE = "github_commits_cache"

    def __init__(
        self,
        client: AsyncClient,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._client = client
        self._clock = clock

    async def get(self, repository: str) -> Optional[CachedCommits]:
        result = await (
            self._client.table(self.TABLE)
            .select("commits, cached_at, expires_at")
            .eq("repository", repository)
            .limit(1)
            .execute()
        )
        if not result.data:
            return None

        row = result.data[0]
        return CachedCommits(
            commits=[CommitSummary(**c) for c in (row.get("commits") or [])],
            cached_at=_parse_timestamp(row["cached_at"]),
            expires_at=_parse_timestamp(row["expires_at"]),
        )

    async def upsert(
        self, repository: str, commits: List[CommitSummary], ttl_seconds: int
    ) -> None:
        now = self._clock()
        await (
            self._client.table(self.TABLE)
            .upsert(
                {
                    "repository": repository,
                    "commits": [c.model_dump() for c in commits],
                    "cached_at": now.isoformat(),
                    "expires_at": (now + timedelta(seconds=ttl_seconds)).isoformat(),
                },
                on_conflict="repository",
            )
            .execute()
        )
