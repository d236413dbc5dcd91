"""
Noted.AI Backend: Request Logging Middleware
============================================

What:  One access log line per request: method, path, status, duration,
       request ID and client IP.
How:   Times the downstream call and logs at a level chosen by status:
       5xx → ERROR, 4xx or slower than SLOW_REQUEST_MS → WARNING,
       everything else → INFO.

Request bodies and Authorization headers are never logged: they carry
passwords, note content and bearer tokens.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from noted.middleware.request_id import request_id_var

logger = logging.getLogger("noted.access")

# Polled by load balancers every few seconds
QUIET_PATHS = {"/api/health"}

# AI routes wait on the provider; anything past this is worth a look
SLOW_REQUEST_MS = 10_000


def _level_for(status: int, duration_ms: float) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400 or duration_ms > SLOW_REQUEST_MS:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if path in QUIET_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        response = await call_next(request)
        duration_ms = (time.perf_counter() - started) * 1000

        rid = request_id_var.get("")
        client_ip = request.client.host if request.client else "unknown"
        logger.log(
            _level_for(response.status_code, duration_ms),
            "%s %s %d %.1fms [%s] from %s",
            request.method,
            path,
            response.status_code,
            duration_ms,
            rid,
            client_ip,
            extra={
                "request_id": rid,
                "method": request.method,
                "path": path,
                "status": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "client_ip": client_ip,
                "slow": duration_ms > SLOW_REQUEST_MS,
            },
        )
        return response
