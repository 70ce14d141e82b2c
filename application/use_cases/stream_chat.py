"""Use case: answer a visitor's chat message as a streamed completion.

Orchestrates: input validation -> human verification -> quota admission ->
prompt assembly -> upstream streaming -> detached token accounting.

Every gate before the upstream call raises ChatError so the router can answer
with a status-coded JSON body. Once streaming has started the only way to
report a failure is an in-band error event.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional

from application.models.chat import ChatError, ChatRequest
from application.prompts import HISTORY_WINDOW, build_messages
from backend.observability import ChatMetrics, get_tracer
from backend.services.abuse_guard import (
    MAX_INPUT_LENGTH,
    build_identity_key,
    sanitize_message,
    validate_input,
)
from backend.services.ai_client import AsyncAIClient, CompletionStream
from backend.services.background import BackgroundTaskRunner
from backend.services.quota_service import QuotaService
from backend.services.turnstile import TurnstileVerifier

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
STREAM_INTERRUPTED = "Stream interrupted"


@dataclass
class SSEEvent:
    """One ``data:`` event on the chat stream."""

    data: str


def _sse(data: Any) -> SSEEvent:
    """Helper to create an SSE event with JSON-serialized data."""
    return SSEEvent(data=json.dumps(data))


@dataclass(frozen=True)
class GenerationParams:
    max_tokens: int = 1024
    temperature: float = 0.7
    model: Optional[str] = None


class PreparedChat:
    """A request that passed every gate and has an open upstream stream."""

    def __init__(
        self,
        stream: CompletionStream,
        identity_key: str,
        quota: QuotaService,
        tasks: BackgroundTaskRunner,
    ) -> None:
        self._stream = stream
        self._identity_key = identity_key
        self._quota = quota
        self._tasks = tasks
        self.token_count = 0

    async def events(self) -> AsyncGenerator[SSEEvent, None]:
        """Relay content increments, then the done sentinel.

        Approximates one token per non-empty increment. The count is handed
        to the quota store in a detached task however the stream ends,
        including client disconnects.
        """
        try:
            try:
                async for content in self._stream.chunks():
                    self.token_count += 1
                    yield _sse({"content": content})
            except Exception as e:
                logger.error(
                    "Completion stream failed after %d chunks for %s: %s",
                    self.token_count,
                    self._identity_key,
                    e,
                )
                ChatMetrics.chat_requests_total().add(1, {"status": "stream_error"})
                yield _sse({"error": STREAM_INTERRUPTED})
                return

            yield SSEEvent(data=DONE_SENTINEL)
            ChatMetrics.chat_requests_total().add(1, {"status": "success"})
        finally:
            self._report_tokens()
            await self._close_upstream()

    async def _close_upstream(self) -> None:
        try:
            await self._stream.aclose()
        except Exception as e:
            logger.debug("Ignoring error while closing upstream stream: %s", e)

    def _report_tokens(self) -> None:
        if self.token_count <= 0:
            return
        ChatMetrics.tokens_streamed_total().add(self.token_count)
        self._tasks.spawn(
            self._quota.record_tokens(self._identity_key, self.token_count),
            name="quota.record_tokens",
        )


class StreamChatUseCase:
    """Gatekeeping and streaming for the public chat endpoint."""

    def __init__(
        self,
        quota: QuotaService,
        verifier: TurnstileVerifier,
        ai_client: Optional[AsyncAIClient],
        tasks: BackgroundTaskRunner,
        generation: GenerationParams = GenerationParams(),
        max_input_length: int = MAX_INPUT_LENGTH,
        history_window: int = HISTORY_WINDOW,
    ) -> None:
        self._quota = quota
        self._verifier = verifier
        self._ai_client = ai_client
        self._tasks = tasks
        self._generation = generation
        self._max_input_length = max_input_length
        self._history_window = history_window

    async def prepare(self, request: ChatRequest, client_ip: str) -> PreparedChat:
        """Run every gate in order and open the upstream stream.

        Raises:
            ChatError: on the first gate that rejects the request.
        """
        identity_key = build_identity_key(client_ip, request.session_id)

        with get_tracer().start_as_current_span(
            "chat.prepare",
            attributes={"chat.identity": identity_key},
        ):
            # 1. Input validation, then escaping of the accepted text
            validation = validate_input(request.message, self._max_input_length)
            if not validation.valid:
                ChatMetrics.chat_requests_total().add(1, {"status": "invalid"})
                raise ChatError.validation(validation.error or "Invalid message content")
            sanitized = sanitize_message(request.message)

            # 2. Human verification, only when the client presents a token
            if request.turnstile_token:
                verified = await self._verifier.verify(request.turnstile_token, client_ip)
                if not verified:
                    ChatMetrics.chat_requests_total().add(1, {"status": "verification_failed"})
                    raise ChatError.verification_failed()

            # 3. Quota admission (fails open inside QuotaService)
            decision = await self._quota.check_and_admit(identity_key)
            if not decision.allowed:
                ChatMetrics.chat_requests_total().add(1, {"status": "rate_limited"})
                raise ChatError.rate_limited(decision.reason or "Rate limit exceeded")

            # 4. Prompt assembly
            messages = build_messages(
                sanitized,
                request.history,
                history_window=self._history_window,
            )

            # 5. Open the upstream stream; failures here are still pre-stream
            if self._ai_client is None:
                logger.error("Chat request admitted but OPENAI_API_KEY is not configured")
                raise ChatError.server_error()

            try:
                stream = await self._ai_client.open_stream(
                    messages,
                    max_tokens=self._generation.max_tokens,
                    temperature=self._generation.temperature,
                    model=self._generation.model,
                )
            except Exception:
                logger.exception("Completion request failed for %s", identity_key)
                ChatMetrics.chat_requests_total().add(1, {"status": "upstream_error"})
                raise ChatError.server_error()

        return PreparedChat(stream, identity_key, self._quota, self._tasks)
