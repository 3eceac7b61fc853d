"""
VDFlow — Request Logger Middleware

Binds a request id (client-supplied X-Request-ID or a fresh one) into the
structlog context so that service and engine events of one request share
it, logs the outcome with latency, and echoes the id back.
"""

from __future__ import annotations

import time
import uuid
from typing import Iterable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

log = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
QUIET_PATHS = frozenset({"/health", "/favicon.ico"})


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 1)


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """One ``request.served`` (or ``request.failed``) event per API call."""

    def __init__(self, app, quiet_paths: Iterable[str] = QUIET_PATHS):
        super().__init__(app)
        self.quiet_paths = frozenset(quiet_paths)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.quiet_paths:
            return await call_next(request)

        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            log.error("request.failed", latency_ms=_elapsed_ms(started))
            raise

        log.info("request.served", status=response.status_code, latency_ms=_elapsed_ms(started))
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
