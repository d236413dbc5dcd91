"""
Noted.AI Backend: Rate Limiting Middleware
==========================================

What:  Per-IP sliding window limiter on the /api surface.
Why:   Bounds how fast a single client can hammer auth and AI endpoints
       (the per-user AI quotas are a separate, business-level limit).
How:   Keeps each IP's request timestamps in memory, drops the ones older
       than the window, and answers 429 once the window is full.

Defaults: 100 requests per 15 minutes (RATE_LIMIT_MAX_REQUESTS,
RATE_LIMIT_WINDOW_MS). The health check is never limited.

Single process only: each uvicorn worker keeps its own counters.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from noted.config import settings
from noted.exceptions import RateLimitExceededError

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Only paths under LIMITED_PREFIX are counted; EXCLUDED_PATHS are always
    let through.
    """

    LIMITED_PREFIX = "/api/"
    EXCLUDED_PATHS = {"/api/health"}

    def __init__(self, app, max_requests: int = None, window_seconds: float = None, **kwargs):
        super().__init__(app, **kwargs)
        self.max_requests = max_requests or settings.rate_limit_max_requests
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._last_cleanup = time.time()

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        path = request.url.path
        if not path.startswith(self.LIMITED_PREFIX) or path in self.EXCLUDED_PATHS:
            return await call_next(request)

        # Behind a proxy this is the proxy's address unless uvicorn runs with
        # --proxy-headers
        client_ip = request.client.host if request.client else "unknown"

        now = time.time()
        window_start = now - self.window_seconds

        self._requests[client_ip] = [
            ts for ts in self._requests[client_ip] if ts > window_start
        ]

        if len(self._requests[client_ip]) >= self.max_requests:
            oldest = self._requests[client_ip][0]
            retry_after = int(oldest + self.window_seconds - now) + 1

            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %.0fs window",
                client_ip,
                len(self._requests[client_ip]),
                self.window_seconds,
            )

            # Raised exceptions from BaseHTTPMiddleware bypass the app's
            # handlers, so the error body is built here
            exc = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": exc.message,
                    "code": exc.code,
                    "details": {"retryAfter": retry_after},
                },
                headers={"Retry-After": str(retry_after)},
            )

        self._requests[client_ip].append(now)
        self._maybe_cleanup(now)

        return await call_next(request)

    def _maybe_cleanup(self, now: float) -> None:
        """Forget idle IPs, at most once per window."""
        if now - self._last_cleanup < self.window_seconds:
            return
        self._last_cleanup = now
        self._cleanup_inactive_ips(now - self.window_seconds)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or max(timestamps) < window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
