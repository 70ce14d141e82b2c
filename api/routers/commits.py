"""Recent-activity endpoint backed by the GitHub commit cache.

GET /api/github-commits -> 200 {"commits": [...], "cached": bool, "stale"?: true}
                        -> 500 {"error": ..., "commits": []} when nothing is available
"""

import logging

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse

from api.deps import get_recent_activity_use_case, get_settings
from api.routers.cors import cors_headers, origin_allowed, request_origin
from application.models.chat import ChatError
from application.use_cases.get_recent_activity import GetRecentActivityUseCase
from backend.settings import Settings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["commits"])

ALLOWED_METHODS = "GET, OPTIONS"


@router.options("/github-commits")
def commits_preflight(request: Request, settings: Settings = Depends(get_settings)):
    origin = request_origin(request)
    if not origin_allowed(origin, settings):
        origin = None
    return Response(status_code=200, headers=cors_headers(origin, ALLOWED_METHODS))


@router.api_route(
    "/github-commits",
    methods=["POST", "PUT", "PATCH", "DELETE"],
    include_in_schema=False,
)
def commits_method_not_allowed():
    error = ChatError.validation("Method not allowed", status_code=405)
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


@router.get("/github-commits")
async def github_commits(
    request: Request,
    use_case: GetRecentActivityUseCase = Depends(get_recent_activity_use_case),
    settings: Settings = Depends(get_settings),
):
    """Latest commits of the configured repository, cached for a few minutes.

    Requests without an Origin header (direct fetches, server-side rendering)
    are served; a browser origin outside the allow-list is refused.
    """
    origin = request_origin(request)
    if origin is not None and not origin_allowed(origin, settings):
        error = ChatError.validation("Forbidden", status_code=403)
        return JSONResponse(status_code=error.status_code, content=error.to_payload())

    activity = await use_case.execute(settings.github_repo)
    headers = cors_headers(origin, ALLOWED_METHODS)

    if activity.error is not None:
        return JSONResponse(
            status_code=500,
            content={"error": activity.error, "commits": []},
            headers=headers,
        )

    content = {
        "commits": [commit.model_dump() for commit in activity.commits],
        "cached": activity.cached,
    }
    if activity.stale:
        content["stale"] = True
    return JSONResponse(status_code=200, content=content, headers=headers)
