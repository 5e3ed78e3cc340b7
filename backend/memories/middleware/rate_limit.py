"""
Memories Backend: Rate Limiting Middleware
===========================================

What:  Per-IP sliding window limit on API requests.
How:   Keeps a deque of request timestamps per client IP in memory. Entries
       older than the window are dropped from the left on every request;
       a full deque means the client is over the limit.
When:  First in the middleware chain, before any request processing.

The counter lives in process memory, so each uvicorn worker enforces its
own limit. Multi-worker deployments need a shared store.
"""

import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from memories.config import settings
from memories.exceptions import RateLimitExceededError
from memories.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

# Sweep idle clients after this many requests.
SWEEP_INTERVAL = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding window limiter over settings.rate_limit_requests per
    settings.rate_limit_window seconds.

    Health checks and the API docs are never limited. Rejected requests get
    429 with a Retry-After header and the standard error body.
    """

    EXCLUDED_PATHS = {"/health", "/docs", "/openapi.json", "/redoc"}

    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._since_sweep = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        window_start = now - settings.rate_limit_window

        hits = self._hits[client_ip]
        while hits and hits[0] <= window_start:
            hits.popleft()

        if len(hits) >= settings.rate_limit_requests:
            retry_after = int(hits[0] + settings.rate_limit_window - now) + 1
            error = RateLimitExceededError(retry_after=retry_after)
            logger.warning(
                "Rate limit exceeded for %s: %d requests in %ds",
                client_ip,
                len(hits),
                settings.rate_limit_window,
            )
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": error.message,
                    "details": {"retry_after": retry_after},
                    "request_id": request_id_var.get(""),
                },
                headers={"Retry-After": str(retry_after)},
            )

        hits.append(now)
        self._since_sweep += 1
        if self._since_sweep >= SWEEP_INTERVAL:
            self._sweep(window_start)

        return await call_next(request)

    def _sweep(self, window_start: float) -> None:
        """Forgets clients with no request inside the current window."""
        self._since_sweep = 0
        idle = [ip for ip, hits in self._hits.items() if not hits or hits[-1] <= window_start]
        for ip in idle:
            del self._hits[ip]
        if idle:
            logger.debug("Forgot %d idle clients", len(idle))
