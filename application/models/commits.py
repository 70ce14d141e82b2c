"""Models for the recent-activity (GitHub commits) feed."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

MESSAGE_WIDTH = 72
SHORT_SHA_LENGTH = 7


class CommitSummary(BaseModel):
    """Trimmed view of one commit as rendered by the activity widget."""

    sha: str
    message: str
    date: str
    author: str
    url: str

    @classmethod
    def from_github(cls, payload: dict) -> "CommitSummary":
        """Map one item of the GitHub ``/repos/{repo}/commits`` response."""
        commit = payload.get("commit") or {}
        author = commit.get("author") or {}
        message = (commit.get("message") or "").split("\n")[0]
        return cls(
            sha=(payload.get("sha") or "")[:SHORT_SHA_LENGTH],
            message=message[:MESSAGE_WIDTH],
            date=author.get("date") or "",
            author=author.get("name") or "",
            url=payload.get("html_url") or "",
        )


class RecentActivity(BaseModel):
    """Result of a recent-activity lookup."""

    commits: List[CommitSummary] = Field(default_factory=list)
    cached: bool = False
    stale: bool = False
    error: Optional[str] = None
