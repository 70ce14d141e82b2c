"""Origin checks and CORS response headers shared by the public endpoints.

CORS is answered per route rather than by CORSMiddleware: a disallowed origin
must produce the VALIDATION error body, not a silently stripped header.
"""

from typing import Dict, Optional

from fastapi import Request

from backend.services.abuse_guard import validate_origin
from backend.settings import Settings


def request_origin(request: Request) -> Optional[str]:
    return request.headers.get("origin")


def origin_allowed(origin: Optional[str], settings: Settings) -> bool:
    return validate_origin(origin, settings.allowed_origins)


def cors_headers(origin: Optional[str], methods: str) -> Dict[str, str]:
    """Capability headers echoing an already validated origin."""
    headers = {
        "Access-Control-Allow-Methods": methods,
        "Access-Control-Allow-Headers": "Content-Type",
        "Vary": "Origin",
    }
    if origin:
        headers["Access-Control-Allow-Origin"] = origin
    return headers
