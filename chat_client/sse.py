"""Parsing of the chat endpoint's ``data:`` event stream."""

import json
import logging
from dataclasses import dataclass
from typing import AsyncIterable, AsyncIterator, Optional

logger = logging.getLogger(__name__)

DONE_SENTINEL = "[DONE]"
DATA_PREFIX = "data:"


@dataclass(frozen=True)
class SSEPayload:
    content: Optional[str] = None
    error: Optional[str] = None
    done: bool = False


def parse_sse_line(line: str) -> Optional[SSEPayload]:
    """Decode one line of the stream, or None for anything that is not a usable event.

    Comments, blank separators, other SSE fields and malformed JSON are skipped.
    """
    if not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX):]
    if data.startswith(" "):
        data = data[1:]
    data = data.rstrip("\r")

    if data == DONE_SENTINEL:
        return SSEPayload(done=True)

    try:
        parsed = json.loads(data)
    except ValueError:
        if data.strip():
            logger.debug("Skipping malformed stream event: %r", data)
        return None

    if not isinstance(parsed, dict):
        return None

    error = parsed.get("error")
    if error:
        return SSEPayload(error=str(error))

    content = parsed.get("content")
    if isinstance(content, str) and content:
        return SSEPayload(content=content)
    return None


async def iter_sse_data(lines: AsyncIterable[str]) -> AsyncIterator[SSEPayload]:
    """Yield payloads from a line stream, stopping after the done sentinel."""
    async for line in lines:
        payload = parse_sse_line(line)
        if payload is None:
            continue
        yield payload
        if payload.done:
            return
