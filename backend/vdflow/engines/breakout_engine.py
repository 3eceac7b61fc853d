"""
VDFlow — Breakout Engine

Finds abrupt, volume-confirmed 5-day price advances, labels the delta
polarity of the move, and checks whether buying persisted in the weeks
after it. Each breakout carries the proximity signals that preceded it.

Pure domain logic — no I/O.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from vdflow.engines.aggregation import aggregate_weekly
from vdflow.engines.proximity_engine import ProximityEngine
from vdflow.engines.stats import mean
from vdflow.models import Breakout, DailyAggregate, DeltaPolarity, Durability

log = structlog.get_logger(__name__)


# ──────────────────────────────────────────────
# Thresholds
# ──────────────────────────────────────────────

WINDOW_DAYS = 5
BASELINE_DAYS = 20
MIN_PRICE_CHANGE = 8.0      # % over the window
MIN_VOLUME_RATIO = 1.2
MIN_SEPARATION = 15         # indices between accepted breakouts
POLARITY_THRESHOLD = 2.0    # net delta % of window volume
POST_DAYS = 20
POST_MIN_DAYS = 10
DURABLE_WEEKS = 3
FRAGILE_WEEKS = 1


def delta_polarity(net_delta_pct: float) -> DeltaPolarity:
    if net_delta_pct > POLARITY_THRESHOLD:
        return DeltaPolarity.CONFIRMED
    if net_delta_pct < -POLARITY_THRESHOLD:
        return DeltaPolarity.DISTRIBUTION_INTO_RALLY
    return DeltaPolarity.NEUTRAL


class BreakoutEngine:
    """Volume-confirmed breakout detection with durability follow-through."""

    def __init__(self, proximity: Optional[ProximityEngine] = None):
        self.proximity = proximity or ProximityEngine()

    def detect(self, daily: Sequence[DailyAggregate]) -> list[Breakout]:
        """Scan every 5-day window; earlier breakouts suppress nearby later ones."""
        accepted: list[int] = []
        breakouts: list[Breakout] = []

        for end in range(WINDOW_DAYS - 1, len(daily)):
            start = end - WINDOW_DAYS + 1
            window = daily[start:end + 1]
            first_close = window[0].close
            if first_close <= 0:
                continue
            price_change = (window[-1].close - first_close) / first_close * 100
            ratio = self.volume_ratio(daily, start, end)

            if price_change <= MIN_PRICE_CHANGE or ratio <= MIN_VOLUME_RATIO:
                continue
            if any(abs(end - idx) < MIN_SEPARATION for idx in accepted):
                continue

            accepted.append(end)
            breakouts.append(self._build(daily, start, end, price_change, ratio))

        log.debug("breakouts.detected", count=len(breakouts))
        return breakouts

    @staticmethod
    def volume_ratio(daily: Sequence[DailyAggregate], start: int, end: int) -> float:
        """Window mean volume vs the up-to-20 days before the window."""
        baseline = daily[max(0, start - BASELINE_DAYS):start]
        base_volume = mean([d.total_volume for d in baseline])
        if base_volume <= 0:
            return 1.0
        return mean([d.total_volume for d in daily[start:end + 1]]) / base_volume

    @staticmethod
    def durability(post: Sequence[DailyAggregate]) -> tuple[Durability, Optional[int], Optional[int]]:
        """Classify post-breakout buying; returns (label, positive weeks, weeks)."""
        if len(post) < POST_MIN_DAYS:
            return Durability.INSUFFICIENT_DATA, None, None
        weeks = aggregate_weekly(post)
        positive = sum(1 for w in weeks if w.delta > 0)
        if positive >= DURABLE_WEEKS:
            label = Durability.DURABLE
        elif positive <= FRAGILE_WEEKS:
            label = Durability.FRAGILE
        else:
            label = Durability.MIXED
        return label, positive, len(weeks)

    def _build(
        self,
        daily: Sequence[DailyAggregate],
        start: int,
        end: int,
        price_change: float,
        ratio: float,
    ) -> Breakout:
        window = daily[start:end + 1]
        net_delta = sum(d.delta for d in window)
        volume = sum(d.total_volume for d in window)
        net_delta_pct = net_delta / volume * 100 if volume > 0 else 0.0

        label, positive, n_weeks = self.durability(daily[end + 1:end + 1 + POST_DAYS])

        return Breakout(
            index=end,
            date=window[-1].date,
            start_index=start,
            start_date=window[0].date,
            price_change_pct=price_change,
            volume_ratio=ratio,
            price_at_start=window[0].close,
            price_at_breakout=window[-1].close,
            net_delta_pct=net_delta_pct,
            delta_polarity=delta_polarity(net_delta_pct),
            durability=label,
            positive_weeks=positive,
            post_weeks=n_weeks,
            proximity=self.proximity.evaluate(daily[:start + 1]),
        )
