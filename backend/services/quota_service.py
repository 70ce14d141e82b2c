"""Chat quota enforcement with fail-open semantics.

Quota is a cost control, not a security boundary: when the backing store is
unreachable the request is admitted and the failure logged. Verification and
input validation keep failing closed elsewhere.
"""

import logging
from typing import Optional

from application.models.chat import QuotaDecision, QuotaLimits
from application.ports.chat_quota_repository import ChatQuotaRepository
from backend.observability import ChatMetrics

logger = logging.getLogger(__name__)


class QuotaService:
    """Admission checks and token accounting for chat identities."""

    def __init__(
        self,
        repository: Optional[ChatQuotaRepository],
        limits: QuotaLimits,
    ) -> None:
        self._repository = repository
        self._limits = limits
        self._warned_unconfigured = False

    @property
    def limits(self) -> QuotaLimits:
        return self._limits

    async def check_and_admit(self, identity_key: str) -> QuotaDecision:
        """Count one request for ``identity_key``; admit when the store is unavailable."""
        if self._repository is None:
            if not self._warned_unconfigured:
                logger.warning("Quota store not configured; chat requests are not rate limited")
                self._warned_unconfigured = True
            return QuotaDecision(allowed=True)

        try:
            decision = await self._repository.check_and_admit(identity_key, self._limits)
        except Exception as e:
            logger.error("Rate limit check failed for %s, admitting: %s", identity_key, e)
            return QuotaDecision(allowed=True)

        if not decision.allowed:
            limit_type = "requests" if "Request" in (decision.reason or "") else "tokens"
            ChatMetrics.rate_limit_hits_total().add(1, {"limit_type": limit_type})
            logger.info("Rate limit hit for %s: %s", identity_key, decision.reason)

        return decision

    async def record_tokens(self, identity_key: str, token_delta: int) -> None:
        """Add streamed tokens to the identity's window. Never raises."""
        if self._repository is None or token_delta <= 0:
            return
        try:
            await self._repository.record_tokens(identity_key, token_delta)
        except Exception as e:
            logger.error("Token count update failed for %s (+%d): %s", identity_key, token_delta, e)
