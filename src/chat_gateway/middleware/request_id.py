"""Request ID middleware for log correlation.

Every request gets an ``X-Request-ID``: the caller's, when it sent a usable
one, or a fresh UUID. The ID is bound to the structlog context so every log
line of a chat session (including those written while the response streams)
carries it.
"""

import re
from collections.abc import Awaitable, Callable
from uuid import uuid4

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

# Incoming IDs end up in log lines and response headers
_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


def _incoming_request_id(request: Request) -> str | None:
    value = request.headers.get(REQUEST_ID_HEADER)
    if value and _VALID_REQUEST_ID.match(value):
        return value
    return None


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Assign or propagate ``X-Request-ID`` and bind it for logging."""

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        request_id = _incoming_request_id(request) or str(uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else None,
        )

        response = await call_next(request)
        response.headers.setdefault(REQUEST_ID_HEADER, request_id)
        return response


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "unknown")
