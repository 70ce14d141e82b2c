"""
Router package for the portfolio chat API.

- health: Health check endpoints
- chat: SSE streaming chat endpoint
- commits: Cached GitHub activity feed
"""

from api.routers.health import router as health_router
from api.routers.chat import router as chat_router
from api.routers.commits import router as commits_router

__all__ = [
    "health_router",
    "chat_router",
    "commits_router",
]
