"""Unit tests for the client-side SSE line parser."""

import pytest

from chat_client.sse import SSEPayload, iter_sse_data, parse_sse_line


@pytest.mark.unit
@pytest.mark.parametrize(
    "line, expected",
    [
        ('data: {"content": "Hel"}', SSEPayload(content="Hel")),
        ('data:{"content": "lo"}', SSEPayload(content="lo")),
        ("data: [DONE]", SSEPayload(done=True)),
        ('data: {"error": "Stream interrupted"}', SSEPayload(error="Stream interrupted")),
        ('data: {"content": ""}', None),
        ("data: {incomplete", None),
        ("data: [1, 2]", None),
        (": ping - 2025-06-01", None),
        ("event: message", None),
        ("", None),
    ],
)
def test_parse_sse_line(line, expected):
    assert parse_sse_line(line) == expected


@pytest.mark.unit
def test_content_keeps_leading_spaces():
    assert parse_sse_line('data: {"content": " there"}') == SSEPayload(content=" there")


async def lines_of(*lines):
    for line in lines:
        yield line


@pytest.mark.asyncio
async def test_iter_stops_after_done():
    payloads = [
        p
        async for p in iter_sse_data(
            lines_of('data: {"content": "a"}', "", "data: [DONE]", 'data: {"content": "late"}')
        )
    ]

    assert payloads == [SSEPayload(content="a"), SSEPayload(done=True)]
