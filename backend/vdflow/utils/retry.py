"""
VDFlow — Retry Decorator

Exponential backoff with jitter for market-data calls. Only transient
failures are retried: transport errors, timeouts and HTTP 429/5xx
(raised as TransientHTTPError). Works with both sync and async functions.
"""

from __future__ import annotations

import asyncio
import functools
import inspect
import random
import time
from typing import Any, Callable, Type

import httpx
import structlog

log = structlog.get_logger(__name__)


class TransientHTTPError(Exception):
    """HTTP response worth retrying (rate limited or server-side failure)."""

    def __init__(self, status_code: int, url: str = ""):
        super().__init__(f"HTTP {status_code} from {url}" if url else f"HTTP {status_code}")
        self.status_code = status_code
        self.url = url


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or 500 <= status_code < 600


DEFAULT_RETRYABLE: tuple[Type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
    httpx.TransportError,
    TransientHTTPError,
)


def compute_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    backoff_factor: float,
    jitter: bool,
) -> float:
    """Delay before retry number ``attempt`` (1-based), capped at ``max_delay``."""
    delay = base_delay * (backoff_factor ** (attempt - 1))
    if jitter:
        delay *= random.uniform(0.5, 1.5)
    return min(delay, max_delay)


def with_retry(
    max_attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    retryable_exceptions: tuple[Type[Exception], ...] | None = None,
    on_retry: Callable[..., Any] | None = None,
) -> Callable:
    """Retry a sync or async callable while it raises ``retryable_exceptions``.

    Attempt k (1-based) that fails is followed by a sleep of
    ``base_delay * backoff_factor ** (k - 1)``, optionally scaled by a random
    factor in [0.5, 1.5] and capped at ``max_delay``. ``on_retry(attempt,
    exc, delay)`` runs before each sleep. After ``max_attempts`` failures the
    last exception propagates unchanged.

    Example::

        fetch_chunk = with_retry(max_attempts=4, base_delay=0.5)(client.fetch_chunk)
    """
    retry_on = retryable_exceptions or DEFAULT_RETRYABLE

    def decorator(func: Callable) -> Callable:
        name = func.__qualname__

        def next_delay(attempt: int, exc: Exception) -> float:
            if attempt == max_attempts:
                log.error("retry.exhausted", func=name, attempts=max_attempts, error=str(exc))
                raise exc
            delay = compute_delay(attempt, base_delay, max_delay, backoff_factor, jitter)
            log.warning(
                "retry.attempt",
                func=name,
                attempt=attempt,
                max_attempts=max_attempts,
                delay=round(delay, 2),
                error=str(exc),
            )
            if on_retry:
                on_retry(attempt, exc, delay)
            return delay

        @functools.wraps(func)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except retry_on as exc:
                    await asyncio.sleep(next_delay(attempt, exc))

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retry_on as exc:
                    time.sleep(next_delay(attempt, exc))

        return async_wrapper if inspect.iscoroutinefunction(func) else sync_wrapper

    return decorator
