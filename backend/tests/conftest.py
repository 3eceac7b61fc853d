"""
Shared test fixtures — synthetic daily aggregates, minute bars, fake Redis,
stub market data fetcher.
"""

from __future__ import annotations

import asyncio
import fnmatch
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Sequence

import pytest

from vdflow.errors import DataUnavailableError
from vdflow.models import Bar, DailyAggregate

MONDAY = date(2025, 1, 6)


def trading_days(n: int, start: date = MONDAY) -> list[date]:
    """n consecutive weekdays starting at ``start``."""
    days = []
    d = start
    while len(days) < n:
        if d.weekday() < 5:
            days.append(d)
        d += timedelta(days=1)
    return days


def make_daily(
    closes: Sequence[float],
    deltas: Sequence[float],
    volumes: Optional[Sequence[float]] = None,
    start: date = MONDAY,
) -> list[DailyAggregate]:
    """Daily aggregates with exact delta = buy - sell and buy + sell = total."""
    n = len(closes)
    volumes = volumes if volumes is not None else [1_000_000.0] * n
    out = []
    for day, close, delta, volume in zip(trading_days(n, start), closes, deltas, volumes):
        buy = (volume + delta) / 2
        sell = (volume - delta) / 2
        out.append(
            DailyAggregate(
                date=day,
                delta=buy - sell,
                total_volume=buy + sell,
                buy_volume=buy,
                sell_volume=sell,
                open=close,
                high=close * 1.01,
                low=close * 0.99,
                close=close,
                range_pct=2.0,
                delta_pct=(buy - sell) / (buy + sell) * 100 if volume else 0.0,
            )
        )
    return out


def accumulation_pattern() -> tuple[list[float], list[float]]:
    """20 days (4 weeks) declining 100 → 80 with +3.5% net buying, 3/4 weeks positive."""
    closes = [100 - 20 * i / 19 for i in range(20)]
    deltas = [100_000.0] * 10 + [-100_000.0] * 5 + [40_000.0] * 5
    return closes, deltas


def minute_bars_for_day(
    day: date,
    close: float,
    delta: float,
    volume: float,
    bars_per_side: int = 1,
) -> list[Bar]:
    """Up bars then down bars for one session so that the day's delta and close are exact."""
    t0 = datetime(day.year, day.month, day.day, 14, 30, tzinfo=timezone.utc)
    buy_each = (volume + delta) / 2 / bars_per_side
    sell_each = (volume - delta) / 2 / bars_per_side
    bars = []
    for k in range(bars_per_side):
        bars.append(Bar(
            timestamp=t0 + timedelta(minutes=k),
            open=close - 0.02, high=close, low=close - 0.03, close=close - 0.01,
            volume=buy_each,
        ))
    for k in range(bars_per_side):
        bars.append(Bar(
            timestamp=t0 + timedelta(minutes=bars_per_side + k),
            open=close + 0.01, high=close + 0.02, low=close - 0.01, close=close,
            volume=sell_each,
        ))
    return bars


def minute_series(
    closes: Sequence[float],
    deltas: Sequence[float],
    volume: float = 1_000_000.0,
    start: date = MONDAY,
    bars_per_side: int = 1,
) -> list[Bar]:
    bars = []
    for day, close, delta in zip(trading_days(len(closes), start), closes, deltas):
        bars.extend(minute_bars_for_day(day, close, delta, volume, bars_per_side))
    return bars


class FakeRedis:
    """In-memory stand-in for the redis client surface RedisCache uses."""

    def __init__(self):
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, ttl, value):
        self.store[key] = value
        self.ttls[key] = ttl

    def delete(self, *keys):
        removed = 0
        for k in keys:
            if self.store.pop(k, None) is not None:
                removed += 1
        return removed

    def scan_iter(self, match="*"):
        return [k for k in list(self.store) if fnmatch.fnmatchcase(k, match)]


class StubFetcher:
    """In-memory bar source: same bars for every request, records calls."""

    def __init__(self, bars, delay: float = 0.0, fail: Optional[set] = None):
        self.bars = bars
        self.delay = delay
        self.fail = fail or set()
        self.calls: list = []

    async def fetch(self, ticker, start, end):
        self.calls.append((ticker, start, end))
        if self.delay:
            await asyncio.sleep(self.delay)
        if ticker in self.fail:
            raise DataUnavailableError(ticker, "upstream down")
        return list(self.bars)


def accumulation_bars(bars_per_side: int = 2) -> list[Bar]:
    """Minute bars for the accumulation pattern (4 bars per session by default)."""
    closes, deltas = accumulation_pattern()
    return minute_series(closes, deltas, bars_per_side=bars_per_side)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def accumulation_daily():
    closes, deltas = accumulation_pattern()
    return make_daily(closes, deltas)
