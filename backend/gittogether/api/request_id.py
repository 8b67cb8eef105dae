"""Request ID helper for endpoints and error handlers."""

from __future__ import annotations

from typing import Optional

from fastapi import Request

from gittogether.obs import logging as obs_logging


def get_request_id(request: Optional[Request] = None, default: str = "unknown") -> str:
    """Return the request id bound by the observability middleware, else a default."""
    if request is not None:
        rid = getattr(request.state, "request_id", None) or request.headers.get("X-Request-Id")
        if rid:
            return rid
    return obs_logging.current_request_id() or default
