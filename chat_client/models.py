"""State of one visible chat conversation held by the browser-side client."""

import secrets
import string
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

VERIFICATION_INTERVAL = 10
MAX_INPUT_LENGTH = 1000
HISTORY_WINDOW = 10

VERIFICATION_REQUIRED = "Please complete the verification to continue chatting."
SEND_FAILED = "Failed to send message. Please try again."
REQUEST_FAILED = "Request failed"

_BASE36 = string.digits + string.ascii_lowercase


def now_ms() -> int:
    return int(time.time() * 1000)


def _to_base36(value: int) -> str:
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits))


def generate_session_id() -> str:
    """Opaque per-page-load id used only to bucket quota: ``<epoch ms>-<base36>``."""
    return f"{now_ms()}-{_to_base36(secrets.randbits(56))}"


def truncate_text(text: str, max_length: int) -> str:
    """Shorten ``text`` to ``max_length`` characters, ending with an ellipsis."""
    if len(text) <= max_length:
        return text
    return text[: max_length - 3] + "..."


class SessionStatus(str, Enum):
    CLOSED = "closed"
    IDLE = "idle"
    AWAITING_VERIFICATION = "awaiting_verification"
    SENDING = "sending"
    ERROR = "error"


@dataclass(frozen=True)
class Message:
    id: str
    role: str
    content: str
    timestamp: int


@dataclass(frozen=True)
class ChatState:
    """Immutable snapshot of the widget; replaced wholesale by the reducer."""

    session_id: str = field(default_factory=generate_session_id)
    messages: Tuple[Message, ...] = ()
    is_open: bool = False
    is_loading: bool = False
    input: str = ""
    message_count: int = 0
    verification_token: Optional[str] = None
    needs_verification: bool = False
    error: Optional[str] = None
    in_flight: Optional[str] = None
    verification_interval: int = VERIFICATION_INTERVAL
    max_input_length: int = MAX_INPUT_LENGTH

    @property
    def status(self) -> SessionStatus:
        if not self.is_open:
            return SessionStatus.CLOSED
        if self.is_loading:
            return SessionStatus.SENDING
        if self.error:
            return SessionStatus.ERROR
        if self.needs_verification and not self.verification_token:
            return SessionStatus.AWAITING_VERIFICATION
        return SessionStatus.IDLE

    @property
    def can_send(self) -> bool:
        return (
            self.is_open
            and not self.is_loading
            and bool(self.input.strip())
            and not (self.needs_verification and not self.verification_token)
        )

    def history(self, window: int = HISTORY_WINDOW) -> list:
        """The last ``window`` transcript entries in request-body form."""
        if window <= 0:
            return []
        return [
            {"role": message.role, "content": message.content}
            for message in self.messages[-window:]
        ]
