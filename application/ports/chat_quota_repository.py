"""Port interface for chat quota (rate limit) operations."""

from typing import Protocol

from application.models.chat import QuotaDecision, QuotaLimits


class ChatQuotaRepository(Protocol):
    """Repository protocol for per-identity request and token quotas.

    Implementations must be safe under concurrent callers for the same key:
    a read-modify-write that loses an update is not acceptable.
    """

    async def check_and_admit(self, key: str, limits: QuotaLimits) -> QuotaDecision:
        """Atomically evaluate the rolling window for ``key`` and count the request.

        Creates the record on first use and resets it in place once the
        window has expired. Denied requests leave the record untouched.
        """
        ...

    async def record_tokens(self, key: str, token_delta: int) -> None:
        """Atomically add ``token_delta`` to the current record's token count.

        No-op when the record does not exist.
        """
        ...
