"""Domain error mapping and global handlers adding request_id to error bodies."""

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from gittogether.api.request_id import get_request_id
from gittogether.domain.events.service import EventForbidden, EventNotFound
from gittogether.domain.identity.service import ProfileNotFound, SkillNotFound
from gittogether.domain.social.exceptions import (
    FriendRequestConflict,
    FriendRequestForbidden,
    FriendRequestGone,
    FriendRequestNotFound,
    NotFriends,
    SocialError,
)
from gittogether.domain.teams.policy import TeamPolicyError
from gittogether.infra.rate_limit import RateLimitExceeded

# Exceptions the routers translate; anything else propagates as a 500.
DOMAIN_ERRORS = (
    SocialError,
    RateLimitExceeded,
    TeamPolicyError,
    ProfileNotFound,
    SkillNotFound,
    EventNotFound,
    EventForbidden,
)


def as_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, RateLimitExceeded):
        return HTTPException(status.HTTP_429_TOO_MANY_REQUESTS, detail=getattr(exc, "reason", "rate_limited"))
    if isinstance(exc, TeamPolicyError):
        return HTTPException(status_code=exc.status_code, detail=exc.detail)
    if isinstance(exc, FriendRequestConflict):
        return HTTPException(status.HTTP_409_CONFLICT, detail=exc.reason)
    if isinstance(exc, (FriendRequestForbidden, NotFriends)):
        return HTTPException(status.HTTP_403_FORBIDDEN, detail=exc.reason)
    if isinstance(exc, FriendRequestGone):
        return HTTPException(status.HTTP_410_GONE, detail=exc.reason)
    if isinstance(exc, FriendRequestNotFound):
        return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.reason)
    if isinstance(exc, ProfileNotFound):
        return HTTPException(status.HTTP_404_NOT_FOUND, detail="user_not_found")
    if isinstance(exc, SkillNotFound):
        return HTTPException(status.HTTP_404_NOT_FOUND, detail="skill_not_found")
    if isinstance(exc, EventNotFound):
        return HTTPException(status.HTTP_404_NOT_FOUND, detail="event_not_found")
    if isinstance(exc, EventForbidden):
        return HTTPException(status.HTTP_403_FORBIDDEN, detail="not_owner")
    return HTTPException(status.HTTP_400_BAD_REQUEST, detail=getattr(exc, "reason", None) or str(exc))


def install_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(StarletteHTTPException)
    async def http_exc_handler(request: Request, exc: StarletteHTTPException):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": exc.detail, "request_id": rid}
        return JSONResponse(status_code=exc.status_code, content=payload, headers=getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exc_handler(request: Request, exc: RequestValidationError):  # type: ignore[override]
        rid = get_request_id(request)
        payload = {"detail": "validation_error", "errors": jsonable_encoder(exc.errors()), "request_id": rid}
        return JSONResponse(status_code=422, content=payload)
