"""Use case: recent commit activity with read-through caching.

Read path: fresh cache -> GitHub (write-through in the background) ->
stale cache -> empty result with an error.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from application.models.commits import RecentActivity
from application.ports.commit_cache_repository import CachedCommits, CommitCacheRepository
from backend.observability import ChatMetrics
from backend.services.background import BackgroundTaskRunner
from backend.services.github_client import GitHubClient

logger = logging.getLogger(__name__)

FETCH_FAILED = "Failed to fetch commits"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GetRecentActivityUseCase:
    """Serve the activity feed for one repository."""

    def __init__(
        self,
        github: GitHubClient,
        cache: Optional[CommitCacheRepository],
        tasks: BackgroundTaskRunner,
        ttl_seconds: int = 300,
        per_page: int = 5,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._github = github
        self._cache = cache
        self._tasks = tasks
        self._ttl_seconds = ttl_seconds
        self._per_page = per_page
        self._clock = clock

    async def _read_cache(self, repository: str) -> Optional[CachedCommits]:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(repository)
        except Exception as e:
            logger.warning("Commit cache read failed for %s: %s", repository, e)
            return None

    async def _write_cache(self, repository: str, commits) -> None:
        try:
            await self._cache.upsert(repository, commits, self._ttl_seconds)
        except Exception as e:
            logger.error("Cache save error for %s: %s", repository, e)

    async def execute(self, repository: str) -> RecentActivity:
        cached = await self._read_cache(repository)
        if cached is not None and self._clock() < cached.expires_at:
            ChatMetrics.commit_cache_requests_total().add(1, {"outcome": "hit"})
            return RecentActivity(commits=cached.commits, cached=True)

        try:
            commits = await self._github.fetch_commits(repository, per_page=self._per_page)
        except Exception as e:
            logger.error("GitHub commits error for %s: %s", repository, e)
            if cached is not None:
                ChatMetrics.commit_cache_requests_total().add(1, {"outcome": "stale"})
                return RecentActivity(commits=cached.commits, cached=True, stale=True)
            ChatMetrics.commit_cache_requests_total().add(1, {"outcome": "error"})
            return RecentActivity(commits=[], error=FETCH_FAILED)

        if self._cache is not None:
            self._tasks.spawn(
                self._write_cache(repository, commits),
                name="commit_cache.upsert",
            )

        ChatMetrics.commit_cache_requests_total().add(1, {"outcome": "miss"})
        return RecentActivity(commits=commits, cached=False)
