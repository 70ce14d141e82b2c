"""OpenAI chat completion client with optional Helicone proxy and streaming support."""

import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import openai
from opentelemetry.trace import SpanKind

from backend.observability import ChatMetrics, get_tracer

logger = logging.getLogger(__name__)

HELICONE_BASE_URL = "https://oai.helicone.ai/v1"

DEFAULT_TIMEOUT = 60.0


class CompletionStream:
    """An opened upstream stream yielding non-empty content increments.

    The upstream request has already succeeded by the time this object
    exists; failures raised while iterating are mid-stream failures.
    """

    def __init__(self, stream: Any, model: str, started_at: float) -> None:
        self._stream = stream
        self._model = model
        self._started_at = started_at

    async def chunks(self) -> AsyncIterator[str]:
        ttft_recorded = False
        async for chunk in self._stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            content = getattr(delta, "content", None) or ""
            if not content:
                continue
            if not ttft_recorded:
                ChatMetrics.completion_ttft_seconds().record(
                    time.time() - self._started_at, {"model": self._model}
                )
                ttft_recorded = True
            yield content

    async def aclose(self) -> None:
        close = getattr(self._stream, "close", None)
        if close is not None:
            await close()


class AsyncAIClient:
    """Wraps AsyncOpenAI with optional Helicone proxy."""

    def __init__(
        self,
        api_key: str,
        helicone_api_key: Optional[str] = None,
        helicone_enabled: bool = False,
        default_model: str = "gpt-4o-mini",
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self._default_model = default_model

        kwargs: Dict[str, Any] = {"api_key": api_key, "timeout": timeout}

        if helicone_enabled and helicone_api_key:
            kwargs["base_url"] = HELICONE_BASE_URL
            kwargs["default_headers"] = {"Helicone-Auth": f"Bearer {helicone_api_key}"}
            logger.info("Async AI client configured with Helicone proxy")

        self._client = openai.AsyncOpenAI(**kwargs)

    async def open_stream(
        self,
        messages: List[Dict[str, str]],
        max_tokens: int = 1024,
        temperature: float = 0.7,
        model: Optional[str] = None,
        user: Optional[str] = None,
    ) -> CompletionStream:
        """Start a streamed chat completion.

        Raises the SDK's error when the request itself fails, before any
        content has been produced.

        Args:
            messages: OpenAI-format message list, system prompt first.
            max_tokens: Max output tokens.
            temperature: Sampling temperature.
            model: Model override (defaults to default_model).
            user: Optional end-user identifier forwarded for abuse monitoring.
        """
        model = model or self._default_model
        create_kwargs: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": True,
        }
        if user:
            create_kwargs["user"] = user

        with get_tracer().start_as_current_span(
            "openai.chat.completions.create",
            kind=SpanKind.CLIENT,
            attributes={
                "llm.model": model,
                "llm.max_tokens": max_tokens,
                "llm.message_count": len(messages),
            },
        ):
            started_at = time.time()
            stream = await self._client.chat.completions.create(**create_kwargs)

        return CompletionStream(stream, model, started_at)
