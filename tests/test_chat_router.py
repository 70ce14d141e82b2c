"""Integration tests for the chat router: gates, SSE framing, CORS headers."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from api.deps import get_stream_chat_use_case
from application.models.chat import ChatError, ChatRequest, QuotaDecision
from application.use_cases.stream_chat import SSEEvent, StreamChatUseCase
from backend.services.background import BackgroundTaskRunner

ALLOWED_ORIGIN = "https://plonguo.com"
ORIGIN_HEADERS = {"Origin": ALLOWED_ORIGIN}


def parse_sse_data(response_text: str) -> list:
    """Return the payload of every ``data:`` line in an SSE body, in order."""
    return [
        line[len("data:"):].strip()
        for line in response_text.splitlines()
        if line.startswith("data:")
    ]


class FakePreparedChat:
    def __init__(self, events):
        self._events = events

    async def events(self):
        for event in self._events:
            yield event


@pytest.fixture
def mock_use_case():
    uc = MagicMock(spec=StreamChatUseCase)
    uc.prepare = AsyncMock(
        return_value=FakePreparedChat([
            SSEEvent(data=json.dumps({"content": "Hel"})),
            SSEEvent(data=json.dumps({"content": "lo"})),
            SSEEvent(data="[DONE]"),
        ])
    )
    return uc


@pytest.fixture
def chat_client(app, api_client, mock_use_case):
    app.dependency_overrides[get_stream_chat_use_case] = lambda: mock_use_case
    return api_client


def post_chat(client, body=None, headers=ORIGIN_HEADERS):
    if body is None:
        body = {"message": "Hello", "sessionId": "sess-1", "history": []}
    return client.post("/api/chat", json=body, headers=headers)


class TestChatStream:
    def test_sse_event_sequence(self, chat_client):
        response = post_chat(chat_client)

        assert response.status_code == 200
        assert "text/event-stream" in response.headers["content-type"]
        assert parse_sse_data(response.text) == [
            '{"content": "Hel"}',
            '{"content": "lo"}',
            "[DONE]",
        ]

    def test_events_are_blank_line_separated(self, chat_client):
        response = post_chat(chat_client)

        assert 'data: {"content": "Hel"}\n\n' in response.text
        assert response.text.rstrip("\n").endswith("data: [DONE]")

    def test_stream_headers(self, chat_client):
        response = post_chat(chat_client)

        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"

    def test_request_is_parsed_and_identity_resolved(self, chat_client, mock_use_case):
        post_chat(
            chat_client,
            body={
                "message": "Hello",
                "sessionId": "sess-9",
                "history": [{"role": "user", "content": "earlier"}],
                "turnstileToken": "tok",
            },
            headers={**ORIGIN_HEADERS, "X-Forwarded-For": "9.9.9.9, 10.0.0.1"},
        )

        request, client_ip = mock_use_case.prepare.call_args.args
        assert isinstance(request, ChatRequest)
        assert request.session_id == "sess-9"
        assert request.turnstile_token == "tok"
        assert request.history[0].content == "earlier"
        assert client_ip == "9.9.9.9"

    def test_mid_stream_error_has_no_done(self, chat_client, mock_use_case):
        mock_use_case.prepare.return_value = FakePreparedChat([
            SSEEvent(data=json.dumps({"content": "Hel"})),
            SSEEvent(data=json.dumps({"error": "Stream interrupted"})),
        ])

        response = post_chat(chat_client)

        data = parse_sse_data(response.text)
        assert data[-1] == '{"error": "Stream interrupted"}'
        assert "[DONE]" not in data


class TestChatGates:
    def test_disallowed_origin_is_forbidden(self, chat_client, mock_use_case):
        response = post_chat(chat_client, headers={"Origin": "https://evil.example"})

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden", "code": "VALIDATION"}
        mock_use_case.prepare.assert_not_awaited()

    def test_missing_origin_is_forbidden(self, chat_client):
        response = post_chat(chat_client, headers={})

        assert response.status_code == 403

    def test_localhost_origin_allowed(self, chat_client):
        response = post_chat(chat_client, headers={"Origin": "http://localhost:5173"})

        assert response.status_code == 200

    def test_malformed_json_is_validation_error(self, chat_client, mock_use_case):
        response = chat_client.post(
            "/api/chat",
            content=b"{not json",
            headers={**ORIGIN_HEADERS, "Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION"
        mock_use_case.prepare.assert_not_awaited()

    def test_malformed_history_is_validation_error(self, chat_client):
        response = post_chat(chat_client, body={"message": "hi", "history": "nope"})

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION"

    @pytest.mark.parametrize(
        "error, status, code",
        [
            (ChatError.validation("Message is required"), 400, "VALIDATION"),
            (ChatError.verification_failed(), 403, "VERIFICATION_FAILED"),
            (
                ChatError.rate_limited("Request limit exceeded (30/hour). Please try again later."),
                429,
                "RATE_LIMIT",
            ),
            (ChatError.server_error(), 500, "SERVER_ERROR"),
        ],
    )
    def test_pre_stream_errors_are_json(self, chat_client, mock_use_case, error, status, code):
        mock_use_case.prepare.side_effect = error

        response = post_chat(chat_client)

        assert response.status_code == status
        assert response.json() == {"error": error.message, "code": code}
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_unexpected_exception_is_server_error(self, chat_client, mock_use_case):
        mock_use_case.prepare.side_effect = KeyError("boom")

        response = post_chat(chat_client)

        assert response.status_code == 500
        assert response.json() == {
            "error": "Something went wrong. Please try again.",
            "code": "SERVER_ERROR",
        }


class TestChatMethods:
    def test_preflight(self, chat_client):
        response = chat_client.options("/api/chat", headers=ORIGIN_HEADERS)

        assert response.status_code == 200
        assert response.content == b""
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        assert response.headers["access-control-allow-methods"] == "POST, OPTIONS"
        assert response.headers["access-control-allow-headers"] == "Content-Type"

    def test_preflight_does_not_echo_unknown_origin(self, chat_client):
        response = chat_client.options("/api/chat", headers={"Origin": "https://evil.example"})

        assert response.status_code == 200
        assert "access-control-allow-origin" not in response.headers

    @pytest.mark.parametrize("method", ["GET", "PUT", "PATCH", "DELETE"])
    def test_other_methods_not_allowed(self, chat_client, method):
        response = chat_client.request(method, "/api/chat", headers=ORIGIN_HEADERS)

        assert response.status_code == 405
        assert response.json() == {"error": "Method not allowed", "code": "VALIDATION"}


class FakeCompletionStream:
    def __init__(self, chunks):
        self._chunks = chunks

    async def chunks(self):
        for chunk in self._chunks:
            yield chunk

    async def aclose(self):
        pass


def test_end_to_end_with_real_use_case(app, api_client):
    """Router + StreamChatUseCase with fake upstream, verifier and store."""
    quota = MagicMock()
    quota.check_and_admit = AsyncMock(return_value=QuotaDecision(allowed=True, request_count=1))
    quota.record_tokens = AsyncMock()
    verifier = MagicMock()
    verifier.verify = AsyncMock(return_value=True)
    ai_client = MagicMock()
    ai_client.open_stream = AsyncMock(return_value=FakeCompletionStream(["Hi", " there"]))

    use_case = StreamChatUseCase(
        quota=quota,
        verifier=verifier,
        ai_client=ai_client,
        tasks=BackgroundTaskRunner(),
    )
    app.dependency_overrides[get_stream_chat_use_case] = lambda: use_case

    response = api_client.post(
        "/api/chat",
        json={"message": "Hello <b>", "sessionId": "s1", "turnstileToken": "tok"},
        headers={**ORIGIN_HEADERS, "CF-Connecting-IP": "5.6.7.8"},
    )

    assert response.status_code == 200
    assert parse_sse_data(response.text) == ['{"content": "Hi"}', '{"content": " there"}', "[DONE]"]
    verifier.verify.assert_awaited_once_with("tok", "5.6.7.8")
    quota.check_and_admit.assert_awaited_once_with("5.6.7.8:s1")
    sent = ai_client.open_stream.call_args.args[0]
    assert sent[-1] == {"role": "user", "content": "Hello &lt;b&gt;"}
