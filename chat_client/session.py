"""Async controller driving one chat conversation against POST /api/chat.

Usage:
    async with ChatSession("https://plonguo.com") as session:
        session.open()
        session.set_input("What are you working on?")
        await session.send()
        print(session.state.messages[-1].content)
"""

import asyncio
import logging
import uuid
from typing import Any, Callable, Dict, Optional

import httpx

from chat_client.models import (
    HISTORY_WINDOW,
    MAX_INPUT_LENGTH,
    REQUEST_FAILED,
    SEND_FAILED,
    VERIFICATION_INTERVAL,
    ChatState,
    now_ms,
)
from chat_client.reducer import (
    Aborted,
    ChatEvent,
    ChunkReceived,
    Closed,
    ErrorDismissed,
    InputChanged,
    MessageSent,
    Opened,
    StreamDone,
    StreamFailed,
    VerificationCompleted,
    reduce,
)
from chat_client.sse import iter_sse_data

logger = logging.getLogger(__name__)

CHAT_PATH = "/api/chat"
STREAM_INTERRUPTED = "Stream interrupted"
DEFAULT_TIMEOUT = httpx.Timeout(60.0, connect=10.0)


def _error_from_response(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return REQUEST_FAILED
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return REQUEST_FAILED


class ChatSession:
    """Owns a ChatState and the single in-flight exchange of one widget.

    At most one send runs at a time. ``abort()`` cancels it and rolls back the
    assistant placeholder; ``close()`` does the same and hides the widget.
    """

    def __init__(
        self,
        base_url: str = "",
        http_client: Optional[httpx.AsyncClient] = None,
        verification_interval: int = VERIFICATION_INTERVAL,
        max_input_length: int = MAX_INPUT_LENGTH,
        history_window: int = HISTORY_WINDOW,
        on_change: Optional[Callable[[ChatState], None]] = None,
        request_id_factory: Callable[[], str] = lambda: uuid.uuid4().hex,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(base_url=base_url, timeout=DEFAULT_TIMEOUT)
        self._history_window = history_window
        self._on_change = on_change
        self._request_id_factory = request_id_factory
        self._state = ChatState(
            verification_interval=verification_interval,
            max_input_length=max_input_length,
        )
        self._inflight: Optional[asyncio.Task] = None
        self._abort_requested = False

    @classmethod
    def from_settings(cls, settings, base_url: str = "", **kwargs) -> "ChatSession":
        """Build a session whose limits match a server Settings instance."""
        return cls(
            base_url=base_url,
            verification_interval=settings.verification_interval,
            max_input_length=settings.max_input_length,
            history_window=settings.history_window,
            **kwargs,
        )

    @property
    def state(self) -> ChatState:
        return self._state

    def _dispatch(self, event: ChatEvent) -> None:
        new_state = reduce(self._state, event)
        if new_state is self._state:
            return
        self._state = new_state
        if self._on_change is not None:
            self._on_change(new_state)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    def open(self) -> None:
        self._dispatch(Opened())

    def close(self) -> None:
        self.abort()
        self._dispatch(Closed())

    def set_input(self, text: str) -> None:
        self._dispatch(InputChanged(text))

    def set_verification_token(self, token: Optional[str]) -> None:
        self._dispatch(VerificationCompleted(token))

    def clear_error(self) -> None:
        self._dispatch(ErrorDismissed())

    def abort(self) -> None:
        """Cancel the in-flight exchange, if any."""
        task = self._inflight
        if task is not None and not task.done():
            self._abort_requested = True
            task.cancel()

    async def send(self) -> None:
        """Submit the current input and consume the reply stream to completion.

        Returns quietly when the state does not allow sending; the reason, if
        user-visible, is left in ``state.error``.
        """
        before = self._state
        request_id = self._request_id_factory()
        self._dispatch(MessageSent(request_id=request_id, timestamp=now_ms()))
        if self._state.in_flight != request_id:
            return

        payload: Dict[str, Any] = {
            "message": self._state.messages[-2].content,
            "sessionId": before.session_id,
            "history": before.history(self._history_window),
            "turnstileToken": before.verification_token,
        }

        task = asyncio.ensure_future(self._exchange(request_id, payload))
        self._inflight = task
        try:
            await task
        except asyncio.CancelledError:
            # A task cancelled before it started never reaches _exchange.
            self._dispatch(Aborted(request_id))
            if not self._abort_requested:
                raise
        finally:
            self._inflight = None
            self._abort_requested = False

    async def _exchange(self, request_id: str, payload: Dict[str, Any]) -> None:
        try:
            async with self._client.stream("POST", CHAT_PATH, json=payload) as response:
                if not response.is_success:
                    await response.aread()
                    self._dispatch(StreamFailed(request_id, _error_from_response(response)))
                    return

                completed = False
                async for item in iter_sse_data(response.aiter_lines()):
                    if item.done:
                        completed = True
                        break
                    if item.error is not None:
                        self._dispatch(StreamFailed(request_id, item.error))
                        return
                    self._dispatch(ChunkReceived(request_id, item.content))

                if completed:
                    self._dispatch(StreamDone(request_id))
                else:
                    self._dispatch(StreamFailed(request_id, STREAM_INTERRUPTED))
        except asyncio.CancelledError:
            self._dispatch(Aborted(request_id))
            raise
        except httpx.HTTPError as e:
            logger.warning("Chat request %s failed: %s", request_id, e)
            self._dispatch(StreamFailed(request_id, SEND_FAILED))

    async def aclose(self) -> None:
        """Abort any in-flight exchange and release the HTTP client if owned."""
        task = self._inflight
        self.abort()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "ChatSession":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
