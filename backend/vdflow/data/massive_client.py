"""
VDFlow — Massive Market Data Client

Minute-bar retrieval from the Massive aggregates API. Long ranges are
fetched in fixed-size calendar chunks; each chunk is retried on transient
failures, then all chunks are merged, de-duplicated and sorted.
"""

from __future__ import annotations

import asyncio
import math
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol

import httpx
import structlog

from vdflow.config import get_settings
from vdflow.errors import DataProviderNotConfigured, DataUnavailableError
from vdflow.models import Bar
from vdflow.utils.retry import TransientHTTPError, is_transient_status, with_retry

log = structlog.get_logger(__name__)

_AGGS_PATH = "/v2/aggs/ticker/{ticker}/range/1/minute/{start}/{end}"
_PAGE_LIMIT = 50000


class BarFetcher(Protocol):
    """Anything that can supply minute bars for a date range."""

    async def fetch(self, ticker: str, start: date, end: date) -> list[Bar]:
        ...


def parse_results(payload: dict) -> list[Bar]:
    """Convert an aggregates response into bars.

    Rows without a finite timestamp or close are skipped; a missing volume
    counts as zero. Other malformed prices are kept for the aggregator to drop.
    """
    bars: list[Bar] = []
    for row in payload.get("results") or []:
        ts = row.get("t")
        close = row.get("c")
        if not isinstance(ts, (int, float)) or not isinstance(close, (int, float)):
            continue
        if not math.isfinite(ts) or not math.isfinite(close):
            continue
        bars.append(
            Bar(
                timestamp=datetime.fromtimestamp(ts / 1000, tz=timezone.utc),
                open=row.get("o"),
                high=row.get("h"),
                low=row.get("l"),
                close=close,
                volume=row.get("v") or 0.0,
            )
        )
    return bars


def chunk_ranges(start: date, end: date, chunk_days: int) -> list[tuple[date, date]]:
    """Split [start, end] into consecutive inclusive ranges of at most ``chunk_days`` days."""
    ranges = []
    cursor = start
    while cursor <= end:
        chunk_end = min(cursor + timedelta(days=max(chunk_days, 1) - 1), end)
        ranges.append((cursor, chunk_end))
        cursor = chunk_end + timedelta(days=1)
    return ranges


class MassiveClient:
    """Async client for Massive minute aggregates."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        chunk_days: Optional[int] = None,
        timeout: Optional[float] = None,
        chunk_pause: float = 0.25,
        max_attempts: int = 3,
        base_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.massive_api_key
        self._base_url = base_url or settings.massive_base_url
        self._chunk_days = chunk_days or settings.massive_chunk_days
        self._timeout = timeout or settings.massive_timeout
        self._chunk_pause = chunk_pause
        self._transport = transport
        self._fetch_chunk = with_retry(max_attempts=max_attempts, base_delay=base_delay)(
            self._fetch_chunk_once
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def fetch(self, ticker: str, start: date, end: date) -> list[Bar]:
        """All minute bars for ``ticker`` between two dates, inclusive."""
        if not self.is_configured:
            raise DataProviderNotConfigured(ticker)

        by_time: dict[datetime, Bar] = {}
        async with httpx.AsyncClient(
            base_url=self._base_url,
            timeout=self._timeout,
            transport=self._transport,
        ) as client:
            for i, (chunk_start, chunk_end) in enumerate(chunk_ranges(start, end, self._chunk_days)):
                if i and self._chunk_pause:
                    await asyncio.sleep(self._chunk_pause)
                try:
                    bars = await self._fetch_chunk(client, ticker, chunk_start, chunk_end)
                except (httpx.HTTPError, TransientHTTPError, ValueError) as exc:
                    log.error(
                        "massive.fetch_failed",
                        ticker=ticker,
                        start=chunk_start.isoformat(),
                        end=chunk_end.isoformat(),
                        error=str(exc),
                    )
                    raise DataUnavailableError(ticker, str(exc)) from exc
                for bar in bars:
                    by_time[bar.timestamp] = bar
                log.debug("massive.chunk", ticker=ticker, start=chunk_start.isoformat(), bars=len(bars))

        return [by_time[t] for t in sorted(by_time)]

    async def _fetch_chunk_once(
        self,
        client: httpx.AsyncClient,
        ticker: str,
        start: date,
        end: date,
    ) -> list[Bar]:
        path = _AGGS_PATH.format(ticker=ticker, start=start.isoformat(), end=end.isoformat())
        resp = await client.get(
            path,
            params={
                "adjusted": "true",
                "sort": "asc",
                "limit": _PAGE_LIMIT,
                "apiKey": self._api_key,
            },
        )
        if is_transient_status(resp.status_code):
            raise TransientHTTPError(resp.status_code, path)
        resp.raise_for_status()
        return parse_results(resp.json())
