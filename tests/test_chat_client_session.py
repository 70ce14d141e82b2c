"""Tests for ChatSession against a mocked chat endpoint."""

import asyncio
import json

import httpx
import pytest

from chat_client.models import SEND_FAILED, SessionStatus
from chat_client.session import ChatSession


def sse_body(*payloads) -> bytes:
    return "".join(f"data: {p}\n\n" for p in payloads).encode()


def ok_stream(*chunks) -> bytes:
    return sse_body(*[json.dumps({"content": c}) for c in chunks], "[DONE]")


class RecordingHandler:
    """MockTransport handler returning canned responses and recording request bodies."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.bodies = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.bodies.append(json.loads(request.content))
        status, body = self._responses.pop(0)
        return httpx.Response(
            status,
            content=body,
            headers={"content-type": "text/event-stream" if status == 200 else "application/json"},
        )


def make_session(handler, **kwargs) -> ChatSession:
    client = httpx.AsyncClient(
        base_url="https://plonguo.com",
        transport=httpx.MockTransport(handler),
    )
    session = ChatSession(http_client=client, **kwargs)
    session.open()
    return session


@pytest.mark.asyncio
async def test_successful_exchange():
    handler = RecordingHandler((200, ok_stream("Hel", "lo")))
    session = make_session(handler)

    session.set_input("Hello")
    await session.send()

    state = session.state
    assert state.status == SessionStatus.IDLE
    assert [(m.role, m.content) for m in state.messages] == [("user", "Hello"), ("assistant", "Hello")]
    assert state.message_count == 1

    body = handler.bodies[0]
    assert body["message"] == "Hello"
    assert body["sessionId"] == state.session_id
    assert body["history"] == []
    assert body["turnstileToken"] is None


@pytest.mark.asyncio
async def test_history_is_last_ten_messages_before_send():
    handler = RecordingHandler(*[(200, ok_stream(f"a{i}")) for i in range(7)])
    session = make_session(handler)

    for i in range(7):
        session.set_input(f"q{i}")
        await session.send()

    history = handler.bodies[-1]["history"]
    assert len(history) == 10
    assert history[0] == {"role": "user", "content": "q1"}
    assert history[-1] == {"role": "assistant", "content": "a5"}


@pytest.mark.asyncio
async def test_token_sent_once():
    handler = RecordingHandler((200, ok_stream("a")), (200, ok_stream("b")))
    session = make_session(handler)

    session.set_verification_token("tok")
    session.set_input("one")
    await session.send()
    session.set_input("two")
    await session.send()

    assert handler.bodies[0]["turnstileToken"] == "tok"
    assert handler.bodies[1]["turnstileToken"] is None


@pytest.mark.asyncio
async def test_tenth_exchange_requires_verification():
    handler = RecordingHandler(*[(200, ok_stream("ok")) for _ in range(10)])
    session = make_session(handler)

    for i in range(10):
        session.set_input(f"q{i}")
        await session.send()

    assert session.state.status == SessionStatus.AWAITING_VERIFICATION

    session.set_input("blocked")
    await session.send()
    assert len(handler.bodies) == 10
    assert session.state.error is not None


@pytest.mark.asyncio
async def test_error_response_surfaces_message():
    body = json.dumps({"error": "Request limit exceeded (30/hour). Please try again later.", "code": "RATE_LIMIT"})
    handler = RecordingHandler((429, body.encode()))
    session = make_session(handler)

    session.set_input("Hello")
    await session.send()

    state = session.state
    assert state.status == SessionStatus.ERROR
    assert state.error == "Request limit exceeded (30/hour). Please try again later."
    assert [m.role for m in state.messages] == ["user"]


@pytest.mark.asyncio
async def test_non_json_error_body():
    handler = RecordingHandler((502, b"Bad gateway"))
    session = make_session(handler)

    session.set_input("Hello")
    await session.send()

    assert session.state.error == "Request failed"


@pytest.mark.asyncio
async def test_error_event_mid_stream_keeps_partial_text():
    body = sse_body(json.dumps({"content": "Par"}), json.dumps({"error": "Stream interrupted"}))
    session = make_session(RecordingHandler((200, body)))

    session.set_input("Hello")
    await session.send()

    assert session.state.error == "Stream interrupted"
    assert session.state.messages[-1].content == "Par"
    assert session.state.message_count == 0


@pytest.mark.asyncio
async def test_stream_without_done_is_interrupted():
    body = sse_body(json.dumps({"content": "Par"}))
    session = make_session(RecordingHandler((200, body)))

    session.set_input("Hello")
    await session.send()

    assert session.state.error == "Stream interrupted"


@pytest.mark.asyncio
async def test_network_failure():
    def handler(request):
        raise httpx.ConnectError("offline", request=request)

    session = make_session(handler)
    session.set_input("Hello")
    await session.send()

    assert session.state.error == SEND_FAILED
    assert [m.role for m in session.state.messages] == ["user"]


class HangingStream(httpx.AsyncByteStream):
    def __init__(self, started: asyncio.Event):
        self._started = started

    async def __aiter__(self):
        self._started.set()
        await asyncio.Event().wait()
        yield b""


@pytest.mark.asyncio
async def test_abort_rolls_back_placeholder():
    started = asyncio.Event()

    def handler(request):
        return httpx.Response(200, stream=HangingStream(started))

    session = make_session(handler)
    session.set_input("Hello")
    send_task = asyncio.create_task(session.send())
    await asyncio.wait_for(started.wait(), timeout=1)

    session.abort()
    await send_task

    state = session.state
    assert state.status == SessionStatus.IDLE
    assert state.error is None
    assert [m.role for m in state.messages] == ["user"]


@pytest.mark.asyncio
async def test_abort_before_exchange_starts_rolls_back_placeholder():
    handler = RecordingHandler((200, ok_stream("unused")))
    session = make_session(handler)
    session.set_input("Hello")

    async def abort_now():
        session.abort()

    await asyncio.gather(session.send(), abort_now())

    state = session.state
    assert state.status == SessionStatus.IDLE
    assert state.in_flight is None
    assert [(m.role, m.content) for m in state.messages] == [("user", "Hello")]
    assert handler.bodies == []

    session.set_input("Again")
    await session.send()
    assert session.state.messages[-1].content == "unused"


@pytest.mark.asyncio
async def test_close_ignores_late_completion():
    started = asyncio.Event()

    def handler(request):
        return httpx.Response(200, stream=HangingStream(started))

    session = make_session(handler)
    session.set_input("Hello")
    send_task = asyncio.create_task(session.send())
    await asyncio.wait_for(started.wait(), timeout=1)

    session.close()
    await send_task

    state = session.state
    assert state.status == SessionStatus.CLOSED
    assert state.in_flight is None
    assert [m.role for m in state.messages] == ["user"]


@pytest.mark.asyncio
async def test_on_change_receives_each_state():
    seen = []
    client = httpx.AsyncClient(
        base_url="https://plonguo.com",
        transport=httpx.MockTransport(RecordingHandler((200, ok_stream("a", "b")))),
    )
    session = ChatSession(http_client=client, on_change=seen.append)

    session.open()
    session.set_input("Hi")
    await session.send()

    statuses = [s.status for s in seen]
    assert statuses[0] == SessionStatus.IDLE
    assert SessionStatus.SENDING in statuses
    assert statuses[-1] == SessionStatus.IDLE
    assert seen[-1].messages[-1].content == "ab"


@pytest.mark.asyncio
async def test_from_settings_uses_server_limits():
    from backend.settings import Settings

    settings = Settings(verification_interval=2, max_input_length=5, history_window=4, _env_file=None)
    handler = RecordingHandler((200, ok_stream("a")), (200, ok_stream("b")))
    client = httpx.AsyncClient(base_url="https://plonguo.com", transport=httpx.MockTransport(handler))
    session = ChatSession.from_settings(settings, http_client=client)
    session.open()

    session.set_input("abcdefgh")
    assert session.state.input == "abcde"

    await session.send()
    session.set_input("again")
    await session.send()

    assert session.state.status == SessionStatus.AWAITING_VERIFICATION
