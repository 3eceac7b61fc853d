"""
VDFlow — Proximity Engine

Scores precursor signals in the days leading into a breakout. Each signal
adds fixed points; the total maps to a readiness level.

Signals:
  • seller_exhaustion — red-delta streak whose selling fades (+15 each)
  • delta_anomaly — single-day |delta| spike vs its 20-day baseline (+25 each)
  • green_streak — run of 4+ buying days (+20 each)
  • absorption_cluster — 3+ up-delta down-close days (+15)
  • final_dump — heavy selling on the last day (+10)
  • volume_collapse — recent volume dry-up (informational, 0 points)
"""

from __future__ import annotations

from typing import Sequence

import structlog

from vdflow.engines.stats import mean
from vdflow.models import DailyAggregate, ProximityItem, ProximityLevel, ProximitySignal

log = structlog.get_logger(__name__)


MIN_HISTORY_DAYS = 25
LOOKBACK_DAYS = 40

EXHAUSTION_MIN_STREAK = 3
EXHAUSTION_POINTS = 15

ANOMALY_BASELINE = 20
ANOMALY_MULTIPLE = 4.0
ANOMALY_RECENCY = 30
ANOMALY_POINTS = 25

GREEN_LOOKBACK = 20
GREEN_MIN_STREAK = 4
GREEN_POINTS = 20

ABSORPTION_LOOKBACK = 15
ABSORPTION_MIN_DAYS = 3
ABSORPTION_POINTS = 15

DUMP_VOLUME_FRACTION = 0.15
DUMP_POINTS = 10

COLLAPSE_SHORT = 10
COLLAPSE_LONG = 30
COLLAPSE_RATIO = 0.70

LEVEL_THRESHOLDS = (
    (70, ProximityLevel.IMMINENT),
    (50, ProximityLevel.HIGH),
    (30, ProximityLevel.ELEVATED),
)


def proximity_level(points: int) -> ProximityLevel:
    for threshold, level in LEVEL_THRESHOLDS:
        if points >= threshold:
            return level
    return ProximityLevel.NONE


def _runs(flags: Sequence[bool]) -> list[tuple[int, int]]:
    """Inclusive (start, end) spans of consecutive True flags, trailing run included."""
    spans: list[tuple[int, int]] = []
    start = None
    for i, flag in enumerate(flags):
        if flag and start is None:
            start = i
        elif not flag and start is not None:
            spans.append((start, i - 1))
            start = None
    if start is not None:
        spans.append((start, len(flags) - 1))
    return spans


class ProximityEngine:
    """Breakout precursor scoring over the history preceding a breakout."""

    def evaluate(self, history: Sequence[DailyAggregate]) -> ProximitySignal:
        """Score the days up to and including the breakout window's first day."""
        n = len(history)
        if n < MIN_HISTORY_DAYS:
            return ProximitySignal(sufficient_data=False, days_examined=n)

        signals: list[ProximityItem] = []
        signals.extend(self._seller_exhaustion(history))
        signals.extend(self._delta_anomalies(history))
        signals.extend(self._green_streaks(history))
        signals.extend(self._absorption_cluster(history))
        signals.extend(self._final_dump(history))
        signals.extend(self._volume_collapse(history))

        points = sum(s.points for s in signals)
        level = proximity_level(points)
        log.debug("proximity.scored", points=points, level=level.value, signals=len(signals))
        return ProximitySignal(
            signals=signals,
            composite_score=points,
            level=level,
            sufficient_data=True,
            days_examined=n,
        )

    # ── Signals ──

    @staticmethod
    def _seller_exhaustion(history: Sequence[DailyAggregate]) -> list[ProximityItem]:
        recent = history[-LOOKBACK_DAYS:]
        items = []
        for start, end in _runs([d.delta < 0 for d in recent]):
            length = end - start + 1
            if length < EXHAUSTION_MIN_STREAK:
                continue
            if abs(recent[end].delta) < abs(recent[start].delta):
                items.append(ProximityItem(
                    kind="seller_exhaustion",
                    detail=f"{length} fading red days ending {recent[end].date.isoformat()}",
                    points=EXHAUSTION_POINTS,
                ))
        return items

    @staticmethod
    def _delta_anomalies(history: Sequence[DailyAggregate]) -> list[ProximityItem]:
        n = len(history)
        items = []
        for i in range(ANOMALY_BASELINE, n):
            days_before = n - i
            if days_before > ANOMALY_RECENCY:
                continue
            baseline = mean([abs(d.delta) for d in history[i - ANOMALY_BASELINE:i]])
            if baseline > 0 and abs(history[i].delta) > ANOMALY_MULTIPLE * baseline:
                items.append(ProximityItem(
                    kind="delta_anomaly",
                    detail=(
                        f"{history[i].date.isoformat()} "
                        f"({abs(history[i].delta) / baseline:.1f}x), {days_before}d before"
                    ),
                    points=ANOMALY_POINTS,
                ))
        return items

    @staticmethod
    def _green_streaks(history: Sequence[DailyAggregate]) -> list[ProximityItem]:
        recent = history[-GREEN_LOOKBACK:]
        return [
            ProximityItem(
                kind="green_streak",
                detail=f"{end - start + 1} days",
                points=GREEN_POINTS,
            )
            for start, end in _runs([d.delta > 0 for d in recent])
            if end - start + 1 >= GREEN_MIN_STREAK
        ]

    @staticmethod
    def _absorption_cluster(history: Sequence[DailyAggregate]) -> list[ProximityItem]:
        recent = history[-ABSORPTION_LOOKBACK:]
        count = sum(
            1 for i in range(1, len(recent))
            if recent[i].close < recent[i - 1].close and recent[i].delta > 0
        )
        if count < ABSORPTION_MIN_DAYS:
            return []
        return [ProximityItem(
            kind="absorption_cluster",
            detail=f"{count} in {len(recent)} days",
            points=ABSORPTION_POINTS,
        )]

    @staticmethod
    def _final_dump(history: Sequence[DailyAggregate]) -> list[ProximityItem]:
        last = history[-1]
        avg_volume = mean([d.total_volume for d in history[-LOOKBACK_DAYS:]])
        if last.delta < 0 and abs(last.delta) > avg_volume * DUMP_VOLUME_FRACTION:
            return [ProximityItem(
                kind="final_dump",
                detail=f"{last.date.isoformat()} ({last.delta / 1000:.0f}K)",
                points=DUMP_POINTS,
            )]
        return []

    @staticmethod
    def _volume_collapse(history: Sequence[DailyAggregate]) -> list[ProximityItem]:
        vol_short = mean([d.total_volume for d in history[-COLLAPSE_SHORT:]])
        vol_long = mean([d.total_volume for d in history[-COLLAPSE_LONG:]])
        if vol_long > 0 and vol_short < vol_long * COLLAPSE_RATIO:
            return [ProximityItem(
                kind="volume_collapse",
                detail=f"last 10d vol = {vol_short / vol_long * 100:.0f}% of 30d avg",
                points=0,
            )]
        return []
