"""
VDFlow — Bar Aggregator

Converts minute bars into per-day directional volume and groups days into
ISO weeks. A bar's full volume counts as buying when it closes above its
open, as selling when it closes below, and as neither when flat.

Pure domain logic — no I/O.
"""

from __future__ import annotations

import datetime as dt
from typing import Optional, Sequence

import numpy as np
import pandas as pd
import structlog

from vdflow.models import Bar, DailyAggregate, WeeklyAggregate

log = structlog.get_logger(__name__)

_PRICE_COLUMNS = ["open", "high", "low", "close", "volume"]


def bars_to_dataframe(bars: Sequence[Bar]) -> pd.DataFrame:
    """Build a cleaned, de-duplicated, time-sorted frame from raw bars.

    Bars with a missing or non-finite price or volume, or a negative
    volume, are dropped (never coerced to zero). Bars sharing a timestamp
    keep only the last one received.
    """
    df = pd.DataFrame(
        {
            "timestamp": [b.timestamp for b in bars],
            "open": [b.open for b in bars],
            "high": [b.high for b in bars],
            "low": [b.low for b in bars],
            "close": [b.close for b in bars],
            "volume": [b.volume for b in bars],
        }
    )
    if df.empty:
        return df

    for col in _PRICE_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce").astype(float)

    values = df[_PRICE_COLUMNS].to_numpy(dtype=float)
    valid = np.isfinite(values).all(axis=1) & (df["volume"].to_numpy() >= 0)
    dropped = int((~valid).sum())
    if dropped:
        log.debug("aggregation.malformed_bars_dropped", dropped=dropped, total=len(df))
    df = df.loc[valid].copy()

    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    df = df.sort_values("timestamp", kind="mergesort")
    before = len(df)
    df = df.drop_duplicates(subset="timestamp", keep="last")
    if len(df) < before:
        log.debug("aggregation.duplicate_bars_dropped", dropped=before - len(df))
    return df.reset_index(drop=True)


def aggregate_daily(bars: Sequence[Bar], timezone: str = "UTC") -> list[DailyAggregate]:
    """Bucket minute bars by trading date in ``timezone``."""
    df = bars_to_dataframe(bars)
    if df.empty:
        return []

    df["date"] = df["timestamp"].dt.tz_convert(timezone).dt.date
    up = df["close"] > df["open"]
    down = df["close"] < df["open"]
    df["buy"] = df["volume"].where(up, 0.0)
    df["sell"] = df["volume"].where(down, 0.0)
    df["neutral"] = df["volume"].where(~(up | down), 0.0)

    grouped = df.groupby("date", sort=True).agg(
        open=("open", "first"),
        high=("high", "max"),
        low=("low", "min"),
        close=("close", "last"),
        buy=("buy", "sum"),
        sell=("sell", "sum"),
        neutral=("neutral", "sum"),
    )

    daily: list[DailyAggregate] = []
    for day, row in grouped.iterrows():
        buy = float(row["buy"])
        sell = float(row["sell"])
        # Directional volume first so buy + sell never exceeds the total.
        total = (buy + sell) + float(row["neutral"])
        delta = buy - sell
        close = float(row["close"])
        high = float(row["high"])
        low = float(row["low"])
        daily.append(
            DailyAggregate(
                date=day,
                delta=delta,
                total_volume=total,
                buy_volume=buy,
                sell_volume=sell,
                open=float(row["open"]),
                high=high,
                low=low,
                close=close,
                range_pct=(high - low) / close * 100 if close > 0 else 0.0,
                delta_pct=delta / total * 100 if total > 0 else 0.0,
            )
        )
    return daily


def week_start(day: dt.date) -> dt.date:
    """Monday of the ISO week containing ``day``."""
    return day - dt.timedelta(days=day.weekday())


def aggregate_weekly(
    daily: Sequence[DailyAggregate],
    effective_deltas: Optional[Sequence[float]] = None,
) -> list[WeeklyAggregate]:
    """Group daily aggregates by ISO week, in input order.

    When ``effective_deltas`` is given (one per day, e.g. winsorized),
    each week also carries their sum as ``effective_delta``.
    """
    if effective_deltas is not None and len(effective_deltas) != len(daily):
        raise ValueError("effective_deltas must align with daily aggregates")

    buckets: dict[dt.date, list[int]] = {}
    for i, d in enumerate(daily):
        buckets.setdefault(week_start(d.date), []).append(i)

    weeks: list[WeeklyAggregate] = []
    for monday, idx in buckets.items():
        days = [daily[i] for i in idx]
        delta = sum(d.delta for d in days)
        volume = sum(d.total_volume for d in days)
        weeks.append(
            WeeklyAggregate(
                week_start=monday,
                delta=delta,
                total_volume=volume,
                delta_pct=delta / volume * 100 if volume > 0 else 0.0,
                n_days=len(days),
                open=days[0].open,
                close=days[-1].close,
                high=max(d.high for d in days),
                low=min(d.low for d in days),
                avg_range=sum(d.range_pct for d in days) / len(days),
                avg_volume=volume / len(days),
                effective_delta=(
                    sum(effective_deltas[i] for i in idx)
                    if effective_deltas is not None else None
                ),
            )
        )
    return weeks
