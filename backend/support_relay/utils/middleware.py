"""
HTTP middleware: request correlation, timing, per-client rate limiting
and a last-resort error boundary.
"""
import logging
import math
import re
import time
import uuid
from collections import deque
from typing import Callable, Deque, Dict, Iterable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import settings
from .telemetry import metrics_collector

logger = logging.getLogger(__name__)

SLOW_REQUEST_SECONDS = 1.0

# Caller-supplied request ids are echoed into logs and headers
REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,64}$")


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Correlate log lines for one request via X-Request-ID."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        incoming = request.headers.get("X-Request-ID", "")
        request_id = incoming if REQUEST_ID_PATTERN.match(incoming) else uuid.uuid4().hex
        request.state.request_id = request_id

        logger.debug(
            f"{request.method} {request.url.path} [{request_id}]",
            extra={"request_id": request_id}
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class TimingMiddleware(BaseHTTPMiddleware):
    """Report handler time in X-Process-Time and warn on slow requests."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed = time.perf_counter() - started

        response.headers["X-Process-Time"] = f"{elapsed:.4f}"

        # Completion calls dominate; anything past this is worth a look
        if elapsed > SLOW_REQUEST_SECONDS:
            logger.warning(
                f"Slow request: {request.method} {request.url.path} took {elapsed:.2f}s",
                extra={
                    "path": request.url.path,
                    "duration": elapsed,
                    "request_id": getattr(request.state, "request_id", None)
                }
            )

        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding-window rate limit keyed by client address.

    Each client keeps a deque of request times inside the current window.
    Windows are per process, so with several workers the effective limit
    is calls * workers. Requests whose path starts with one of
    exempt_paths are never counted.

    Args:
        app: ASGI application
        calls: Requests allowed per window
        period: Window length in seconds
        exempt_paths: Path prefixes that bypass the limiter
    """

    # Idle clients are pruned once the table grows past this
    PRUNE_THRESHOLD = 10_000

    def __init__(
        self,
        app,
        calls: int = 100,
        period: int = 60,
        exempt_paths: Iterable[str] = ("/health", "/metrics")
    ):
        super().__init__(app)
        self.calls = calls
        self.period = period
        self.exempt_paths = tuple(exempt_paths)
        self.windows: Dict[str, Deque[float]] = {}

    @staticmethod
    def client_key(request: Request) -> str:
        """First X-Forwarded-For hop when behind a proxy, else the peer address."""
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
        return request.client.host if request.client else "unknown"

    def _window(self, key: str, now: float) -> Deque[float]:
        window = self.windows.setdefault(key, deque())
        horizon = now - self.period
        while window and window[0] <= horizon:
            window.popleft()
        return window

    def _prune(self, now: float) -> None:
        horizon = now - self.period
        stale = [key for key, window in self.windows.items() if not window or window[-1] <= horizon]
        for key in stale:
            del self.windows[key]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path.startswith(self.exempt_paths):
            return await call_next(request)

        now = time.monotonic()
        if len(self.windows) > self.PRUNE_THRESHOLD:
            self._prune(now)

        key = self.client_key(request)
        window = self._window(key, now)

        if len(window) >= self.calls:
            retry_after = max(1, math.ceil(self.period - (now - window[0])))
            logger.warning(
                f"Rate limit exceeded for {key} on {request.url.path}",
                extra={"client": key, "path": request.url.path}
            )
            return JSONResponse(
                status_code=429,
                content={"success": False, "error": "Too many requests. Please slow down and try again shortly."},
                headers={
                    "Retry-After": str(retry_after),
                    "X-RateLimit-Limit": str(self.calls),
                    "X-RateLimit-Remaining": "0"
                }
            )

        window.append(now)
        response = await call_next(request)

        response.headers["X-RateLimit-Limit"] = str(self.calls)
        response.headers["X-RateLimit-Remaining"] = str(max(self.calls - len(window), 0))
        return response


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Turn anything a route failed to handle into a generic 500."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            request_id = getattr(request.state, "request_id", "unknown")
            logger.error(
                f"Unhandled exception in request {request_id}: {e}",
                exc_info=True,
                extra={"path": request.url.path, "method": request.method, "request_id": request_id}
            )
            metrics_collector.record_error()

            content = {"success": False, "error": "Internal server error", "request_id": request_id}
            if settings.debug:
                content["message"] = str(e)

            return JSONResponse(status_code=500, content=content)


__all__ = [
    'RequestIDMiddleware',
    'TimingMiddleware',
    'RateLimitMiddleware',
    'ErrorHandlingMiddleware'
]
