"""Cloudflare Turnstile token verification.

Fails closed: any transport, status, or payload problem is treated as an
unverified caller.
"""

import logging
from typing import Optional

import httpx
from opentelemetry.trace import SpanKind

from backend.observability import ChatMetrics, traced

logger = logging.getLogger(__name__)

DEFAULT_VERIFY_URL = "https://challenges.cloudflare.com/turnstile/v0/siteverify"


class TurnstileVerifier:
    """Exchanges a client challenge token with the Turnstile siteverify API."""

    def __init__(
        self,
        secret_key: Optional[str],
        verify_url: str = DEFAULT_VERIFY_URL,
        timeout: float = 10.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._secret_key = secret_key
        self._verify_url = verify_url
        self._timeout = timeout
        self._http_client = http_client

    @traced(name="turnstile.verify", kind=SpanKind.CLIENT)
    async def verify(self, token: str, remote_ip: str) -> bool:
        """Return True only when Turnstile explicitly reports success."""
        if not self._secret_key:
            logger.error("Turnstile verification requested but TURNSTILE_SECRET_KEY is not set")
            ChatMetrics.verification_failures_total().add(1, {"reason": "not_configured"})
            return False

        payload = {
            "secret": self._secret_key,
            "response": token,
            "remoteip": remote_ip,
        }

        try:
            if self._http_client is not None:
                response = await self._http_client.post(
                    self._verify_url, json=payload, timeout=self._timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._verify_url, json=payload)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Turnstile verification error: %s", e)
            ChatMetrics.verification_failures_total().add(1, {"reason": "unavailable"})
            return False

        if not isinstance(data, dict):
            logger.error("Turnstile returned a non-object body: %r", data)
            ChatMetrics.verification_failures_total().add(1, {"reason": "unavailable"})
            return False

        if data.get("success") is True:
            return True

        logger.info(
            "Turnstile rejected token for %s: %s",
            remote_ip,
            data.get("error-codes", []),
        )
        ChatMetrics.verification_failures_total().add(1, {"reason": "rejected"})
        return False
