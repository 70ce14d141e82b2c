"""Python client for the portfolio chat endpoint: state machine plus streaming session."""

from chat_client.models import ChatState, Message, SessionStatus, generate_session_id, truncate_text
from chat_client.reducer import reduce
from chat_client.session import ChatSession

__all__ = [
    "ChatSession",
    "ChatState",
    "Message",
    "SessionStatus",
    "generate_session_id",
    "reduce",
    "truncate_text",
]
