"""Port interface for the commit activity cache."""

from datetime import datetime
from typing import List, Optional, Protocol

from application.models.commits import CommitSummary


class CachedCommits(Protocol):
    commits: List[CommitSummary]
    cached_at: datetime
    expires_at: datetime


class CommitCacheRepository(Protocol):
    """Repository protocol for one cached commit list per repository."""

    async def get(self, repository: str) -> Optional[CachedCommits]:
        """Return the cached row regardless of expiry, or None."""
        ...

    async def upsert(self, repository: str, commits: List[CommitSummary], ttl_seconds: int) -> None:
        """Replace the cached row for ``repository`` wholesale."""
        ...
