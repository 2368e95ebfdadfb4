"""
HTTP middleware: per-IP rate limiting and response timing.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from .responses import error_envelope
from ..services.audit import client_ip


logger = logging.getLogger(__name__)

# Probes must keep answering while a client is being throttled
UNLIMITED_PATHS = frozenset({"/health", "/health/ready", "/health/live"})


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding one-minute window per client IP.

    Over the limit the request is answered with 429 in the standard error
    envelope and never reaches a route. Windows of idle clients are dropped
    once a minute so the table only holds recently seen IPs.
    """

    WINDOW_SECONDS = 60

    def __init__(self, app, requests_per_minute: int = 300, trust_forwarded_for: bool = True):
        super().__init__(app)
        self.limit = requests_per_minute
        self.trust_forwarded_for = trust_forwarded_for
        self.hits: Dict[str, Deque[float]] = {}
        self._last_sweep = 0.0

    def _client(self, request: Request) -> str:
        if self.trust_forwarded_for:
            return client_ip(request) or "unknown"
        return request.client.host if request.client else "unknown"

    def _evict_idle(self, now: float) -> None:
        cutoff = now - self.WINDOW_SECONDS
        idle = [ip for ip, window in self.hits.items() if not window or window[-1] <= cutoff]
        for ip in idle:
            del self.hits[ip]
        self._last_sweep = now

    def _admit(self, ip: str, now: float) -> bool:
        if now - self._last_sweep >= self.WINDOW_SECONDS:
            self._evict_idle(now)

        window = self.hits.setdefault(ip, deque())
        while window and window[0] <= now - self.WINDOW_SECONDS:
            window.popleft()
        if len(window) >= self.limit:
            return False
        window.append(now)
        return True

    def _headers(self, ip: str) -> Dict[str, str]:
        used = len(self.hits.get(ip, ()))
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(max(0, self.limit - used)),
        }

    async def dispatch(self, request: Request, call_next):
        if request.url.path in UNLIMITED_PATHS:
            return await call_next(request)

        ip = self._client(request)
        if not self._admit(ip, time.monotonic()):
            logger.warning(f"Rate limit exceeded: {request.method} {request.url.path}")
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content=error_envelope(
                    f"Too many requests. Limit: {self.limit} requests per minute.",
                    status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                    code="RATE_LIMIT_EXCEEDED",
                ),
                headers={"Retry-After": str(self.WINDOW_SECONDS), **self._headers(ip)},
            )

        response = await call_next(request)
        response.headers.update(self._headers(ip))
        return response


class ResponseTimeMiddleware(BaseHTTPMiddleware):
    """Adds ``X-Response-Time`` and warns about slow requests."""

    SLOW_REQUEST_MS = 500

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        response.headers["X-Response-Time"] = f"{elapsed_ms:.2f}ms"
        if elapsed_ms > self.SLOW_REQUEST_MS:
            logger.warning(f"Slow request: {request.method} {request.url.path} took {elapsed_ms:.0f}ms")
        else:
            logger.debug(f"{request.method} {request.url.path} {response.status_code} {elapsed_ms:.1f}ms")
        return response
