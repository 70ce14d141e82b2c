"""GitHub REST client for the recent-activity feed."""

import logging
from typing import Dict, List, Optional

import httpx
from opentelemetry.trace import SpanKind

from application.models.commits import CommitSummary
from backend.observability import traced

logger = logging.getLogger(__name__)


class GitHubAPIError(Exception):
    """Raised when GitHub returns a non-success response or is unreachable."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """Fetches the latest commits of a repository."""

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: str = "https://api.github.com",
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._token = token
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._http_client = http_client

    def _headers(self) -> Dict[str, str]:
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "Portfolio-Website",
        }
        if self._token:
            headers["Authorization"] = f"token {self._token}"
        return headers

    @traced(name="github.fetch_commits", kind=SpanKind.CLIENT)
    async def fetch_commits(self, repository: str, per_page: int = 5) -> List[CommitSummary]:
        """Return the latest ``per_page`` commits of ``owner/name``, newest first.

        Raises:
            GitHubAPIError: on transport failure or non-2xx status.
        """
        url = f"{self._base_url}/repos/{repository}/commits"
        params = {"per_page": per_page}

        try:
            if self._http_client is not None:
                response = await self._http_client.get(
                    url, params=params, headers=self._headers(), timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, params=params, headers=self._headers())
        except httpx.HTTPError as e:
            raise GitHubAPIError(f"GitHub request failed: {e}") from e

        if response.status_code >= 400:
            raise GitHubAPIError(
                f"GitHub API error: {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise GitHubAPIError("GitHub returned invalid JSON") from e

        return [CommitSummary.from_github(item) for item in payload]
