"""
Noted.AI Backend: Request ID Middleware
=======================================

What:  Tags every request with a short ID and echoes it in X-Request-ID.
Why:   Error bodies carry the same ID as `requestId`, so a user reporting
       a failure gives support something to grep the logs for.
How:   Accepts a client-sent X-Request-ID (the frontend can generate one
       per user action) or generates one, and stores it in a ContextVar
       that loggers and exception handlers read.

Client IDs end up in log lines, so only short token-like values are
accepted; anything else is replaced with a generated ID.
"""

import re
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on the same thread each see their own
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

_CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def resolve_request_id(header_value: str) -> str:
    if header_value and _CLIENT_ID_PATTERN.match(header_value):
        return header_value
    return uuid.uuid4().hex[:8]


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = resolve_request_id(request.headers.get("X-Request-ID", ""))

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers["X-Request-ID"] = rid
        return response
