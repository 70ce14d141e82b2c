"""Request validation for the public chat endpoint.

Pure, synchronous checks applied to every inbound chat request in order:
method, origin, input shape/content, then HTML escaping of the accepted
message. None of them touch shared state.
"""

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

MAX_INPUT_LENGTH = 1000

LOCAL_ORIGIN_MARKERS = ("localhost", "127.0.0.1")

# Known prompt-injection phrasings. Best-effort heuristic, not a security boundary.
INJECTION_PATTERNS = [
    re.compile(r"ignore\s+(previous|above|all)\s+instructions", re.IGNORECASE),
    re.compile(r"disregard\s+(previous|prior|all)\s+instructions", re.IGNORECASE),
    re.compile(r"you\s+are\s+now", re.IGNORECASE),
    re.compile(r"new\s+instructions", re.IGNORECASE),
    re.compile(r"system\s*:\s*", re.IGNORECASE),
    re.compile(r"\[system\]", re.IGNORECASE),
    re.compile(r"forget\s+everything", re.IGNORECASE),
]

_HTML_ESCAPES = str.maketrans({
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
})

# Ordered fallback chain for the caller's address.
CLIENT_IP_HEADERS = ("cf-connecting-ip", "x-forwarded-for", "x-real-ip")
UNKNOWN_IP = "unknown"


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    error: Optional[str] = None


def validate_method(method: str, allowed: str = "POST") -> bool:
    return (method or "").upper() == allowed


def is_local_origin(origin: str) -> bool:
    return any(marker in origin for marker in LOCAL_ORIGIN_MARKERS)


def validate_origin(origin: Optional[str], allowed_origins: Iterable[str]) -> bool:
    """Accept allow-listed origins and any local development origin."""
    if not origin:
        return False
    if is_local_origin(origin):
        return True
    return origin in set(allowed_origins)


def validate_input(message: Any, max_length: int = MAX_INPUT_LENGTH) -> ValidationResult:
    """Check presence, type, length, blankness and injection signatures.

    A signature match returns the same generic error for every pattern.
    """
    if not message or not isinstance(message, str):
        return ValidationResult(valid=False, error="Message is required")

    if len(message) > max_length:
        return ValidationResult(
            valid=False,
            error=f"Message too long (max {max_length} characters)",
        )

    if not message.strip():
        return ValidationResult(valid=False, error="Message cannot be empty")

    for pattern in INJECTION_PATTERNS:
        if pattern.search(message):
            return ValidationResult(valid=False, error="Invalid message content")

    return ValidationResult(valid=True)


def sanitize_message(message: str) -> str:
    """Escape HTML-significant characters in one pass."""
    return message.translate(_HTML_ESCAPES)


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Resolve the caller address from edge/proxy headers."""
    for header in CLIENT_IP_HEADERS:
        value = headers.get(header)
        if not value:
            continue
        if header == "x-forwarded-for":
            value = value.split(",")[0]
        value = value.strip()
        if value:
            return value
    return UNKNOWN_IP


def build_identity_key(client_ip: str, session_id: Optional[str]) -> str:
    return f"{client_ip}:{session_id or 'unknown'}"
