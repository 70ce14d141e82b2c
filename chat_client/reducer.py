"""Pure state transitions for the chat widget.

``reduce(state, event)`` never performs I/O; ChatSession feeds it events as
the user acts and as the response stream progresses. Stream events carry the
id of the request they belong to, so anything arriving for a request that is
no longer in flight (aborted, superseded, or the widget was closed) is
dropped.
"""

from dataclasses import dataclass, replace
from typing import Optional, Union

from chat_client.models import VERIFICATION_REQUIRED, ChatState, Message


@dataclass(frozen=True)
class Opened:
    pass


@dataclass(frozen=True)
class Closed:
    pass


@dataclass(frozen=True)
class InputChanged:
    text: str


@dataclass(frozen=True)
class VerificationCompleted:
    token: Optional[str]


@dataclass(frozen=True)
class ErrorDismissed:
    pass


@dataclass(frozen=True)
class MessageSent:
    request_id: str
    timestamp: int


@dataclass(frozen=True)
class ChunkReceived:
    request_id: str
    content: str


@dataclass(frozen=True)
class StreamDone:
    request_id: str


@dataclass(frozen=True)
class StreamFailed:
    request_id: str
    error: str


@dataclass(frozen=True)
class Aborted:
    request_id: str


ChatEvent = Union[
    Opened,
    Closed,
    InputChanged,
    VerificationCompleted,
    ErrorDismissed,
    MessageSent,
    ChunkReceived,
    StreamDone,
    StreamFailed,
    Aborted,
]


def user_message_id(request_id: str) -> str:
    return f"user-{request_id}"


def assistant_message_id(request_id: str) -> str:
    return f"ai-{request_id}"


def _drop_empty_placeholder(state: ChatState, request_id: str) -> tuple:
    placeholder_id = assistant_message_id(request_id)
    return tuple(
        message
        for message in state.messages
        if not (message.id == placeholder_id and not message.content)
    )


def _settle(state: ChatState, **changes) -> ChatState:
    """Leave the Sending state."""
    return replace(state, is_loading=False, in_flight=None, **changes)


def reduce(state: ChatState, event: ChatEvent) -> ChatState:
    if isinstance(event, Opened):
        return replace(state, is_open=True, error=None)

    if isinstance(event, Closed):
        if state.in_flight is not None:
            state = _settle(state, messages=_drop_empty_placeholder(state, state.in_flight))
        return replace(state, is_open=False)

    if isinstance(event, InputChanged):
        return replace(state, input=event.text[: state.max_input_length])

    if isinstance(event, VerificationCompleted):
        return replace(
            state,
            verification_token=event.token,
            needs_verification=False if event.token else state.needs_verification,
            error=None,
        )

    if isinstance(event, ErrorDismissed):
        return replace(state, error=None)

    if isinstance(event, MessageSent):
        return _on_message_sent(state, event)

    # Everything below belongs to one request; stale ones are ignored.
    request_id = getattr(event, "request_id", None)
    if request_id is None or request_id != state.in_flight:
        return state

    if isinstance(event, ChunkReceived):
        placeholder_id = assistant_message_id(request_id)
        return replace(
            state,
            messages=tuple(
                replace(message, content=message.content + event.content)
                if message.id == placeholder_id
                else message
                for message in state.messages
            ),
        )

    if isinstance(event, StreamDone):
        count = state.message_count + 1
        needs_verification = count % state.verification_interval == 0
        return _settle(
            state,
            message_count=count,
            needs_verification=needs_verification,
            verification_token=None if needs_verification else state.verification_token,
        )

    if isinstance(event, StreamFailed):
        return _settle(
            state,
            messages=_drop_empty_placeholder(state, request_id),
            error=event.error,
        )

    if isinstance(event, Aborted):
        return _settle(state, messages=_drop_empty_placeholder(state, request_id))

    raise TypeError(f"Unknown chat event: {event!r}")


def _on_message_sent(state: ChatState, event: MessageSent) -> ChatState:
    if not state.is_open or state.is_loading:
        return state

    text = state.input.strip()
    if not text:
        return state

    if state.needs_verification and not state.verification_token:
        return replace(state, error=VERIFICATION_REQUIRED)

    user = Message(
        id=user_message_id(event.request_id),
        role="user",
        content=text,
        timestamp=event.timestamp,
    )
    placeholder = Message(
        id=assistant_message_id(event.request_id),
        role="assistant",
        content="",
        timestamp=event.timestamp,
    )
    # A verification token is single-use: it rides on exactly this request.
    return replace(
        state,
        messages=state.messages + (user, placeholder),
        input="",
        is_loading=True,
        in_flight=event.request_id,
        error=None,
        verification_token=None,
    )
