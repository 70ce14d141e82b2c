"""Chat streaming endpoint.

POST /api/chat returns an SSE event stream via sse-starlette:

    data: {"content": "Hel"}
    data: {"content": "lo"}
    data: [DONE]

Pre-stream failures are JSON bodies ``{"error": ..., "code": ...}`` with a
4xx/5xx status. A failure after the first byte is a single
``data: {"error": "Stream interrupted"}`` event with no ``[DONE]``.
"""

import json
import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sse_starlette.sse import EventSourceResponse

from api.deps import get_settings, get_stream_chat_use_case
from api.routers.cors import cors_headers, origin_allowed, request_origin
from application.models.chat import ChatError, ChatRequest
from application.use_cases.stream_chat import StreamChatUseCase
from backend.services.abuse_guard import get_client_ip
from backend.settings import Settings
from backend.sse_connections import sse_connect, sse_disconnect

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])

ALLOWED_METHODS = "POST, OPTIONS"


def _error_response(error: ChatError, origin=None) -> JSONResponse:
    return JSONResponse(
        status_code=error.status_code,
        content=error.to_payload(),
        headers=cors_headers(origin, ALLOWED_METHODS) if origin else None,
    )


@router.options("/chat")
def chat_preflight(request: Request, settings: Settings = Depends(get_settings)):
    """CORS preflight: 200 with an empty body."""
    origin = request_origin(request)
    if not origin_allowed(origin, settings):
        origin = None
    return Response(status_code=200, headers=cors_headers(origin, ALLOWED_METHODS))


@router.api_route("/chat", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
def chat_method_not_allowed():
    return _error_response(ChatError.validation("Method not allowed", status_code=405))


@router.post("/chat")
async def stream_chat(
    request: Request,
    use_case: StreamChatUseCase = Depends(get_stream_chat_use_case),
    settings: Settings = Depends(get_settings),
):
    """Stream a chat reply as Server-Sent Events.

    Gates, in order: origin, body shape, input content, human verification
    (when a token is presented), quota. The first rejection wins.
    """
    origin = request_origin(request)
    if not origin_allowed(origin, settings):
        logger.info("Rejected chat request from origin %r", origin)
        return _error_response(ChatError.validation("Forbidden", status_code=403))

    try:
        body = await request.json()
        chat_request = ChatRequest.model_validate(body)
    except (json.JSONDecodeError, UnicodeDecodeError, ValidationError) as e:
        logger.info("Malformed chat request body: %s", e)
        return _error_response(ChatError.validation("Invalid request body"), origin)

    client_ip = get_client_ip(request.headers)

    try:
        prepared = await use_case.prepare(chat_request, client_ip)
    except ChatError as e:
        return _error_response(e, origin)

    async def event_generator():
        events = prepared.events()
        sse_connect()
        try:
            async for sse_event in events:
                yield {"data": sse_event.data}
        finally:
            sse_disconnect()
            await events.aclose()

    headers = cors_headers(origin, ALLOWED_METHODS)
    headers["Cache-Control"] = "no-cache"
    return EventSourceResponse(event_generator(), headers=headers, sep="\n")
