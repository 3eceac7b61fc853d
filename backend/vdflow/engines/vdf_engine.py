"""
VDFlow — VDF Engine

Orchestrates one full analysis: bars → daily aggregates → zones,
distribution clusters, breakouts with proximity, bull flag → timeline.
Also exposes the weight-override entry points, which re-derive zone
scores from their stored components without re-running detection.

Pure domain logic — no I/O.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Optional, Sequence

import structlog

from vdflow.engines.aggregation import aggregate_daily
from vdflow.engines.breakout_engine import BreakoutEngine
from vdflow.engines.distribution_engine import DistributionEngine
from vdflow.engines.flag_engine import FlagEngine
from vdflow.engines.timeline import build_timeline
from vdflow.engines.window_scorer import composite_score
from vdflow.engines.zone_engine import DEFAULT_MAX_ZONES, ZoneEngine
from vdflow.models import (
    AccumulationZone,
    AnalysisMetrics,
    AnalysisResult,
    Bar,
    Breakout,
    DailyAggregate,
    DistributionCluster,
    ScoreReason,
    ScoreWeights,
)

log = structlog.get_logger(__name__)

DEFAULT_MIN_DAILY = 10
DEFAULT_RECENT_DAYS = 90
NO_ZONES_REASON = "no_accumulation_zones"
INSUFFICIENT_DAILY_REASON = "insufficient_daily_data"


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def summarize(
    zones: Sequence[AccumulationZone],
    distribution: Sequence[DistributionCluster],
    breakouts: Sequence[Breakout],
) -> str:
    """One-line human readable status."""
    if zones:
        best = zones[0]
        head = (
            f"VD Accumulation detected: {_plural(len(zones), 'zone')}, "
            f"best {best.score:.2f} ({best.weeks}wk)"
        )
    else:
        head = "No accumulation zones detected"
    parts = [head]
    if distribution:
        parts.append(_plural(len(distribution), "distribution cluster"))
    if breakouts:
        parts.append(_plural(len(breakouts), "breakout"))
    return " | ".join(parts)


def rescore_zone(zone: AccumulationZone, weights: ScoreWeights) -> AccumulationZone:
    """Re-derive a zone's score under new weights from its stored components."""
    score = composite_score(
        zone.components, weights, zone.duration_multiplier, zone.concordance_penalty
    )
    return zone.model_copy(update={"score": score})


def rescore_zones(
    zones: Sequence[AccumulationZone], weights: ScoreWeights
) -> list[AccumulationZone]:
    """Rescore every zone and return them score-descending."""
    rescored = [rescore_zone(z, weights) for z in zones]
    return sorted(rescored, key=lambda z: -z.score)


class VDFEngine:
    """Full accumulation / distribution / breakout analysis for one ticker."""

    def __init__(
        self,
        weights: Optional[ScoreWeights] = None,
        timezone: str = "UTC",
        min_daily: int = DEFAULT_MIN_DAILY,
    ):
        self.timezone = timezone
        self.min_daily = min_daily
        self.zones = ZoneEngine(weights)
        self.distribution = DistributionEngine()
        self.breakouts = BreakoutEngine()
        self.flags = FlagEngine()

    def analyze(
        self,
        ticker: str,
        bars: Sequence[Bar],
        pre_bars: Sequence[Bar] = (),
        max_zones: int = DEFAULT_MAX_ZONES,
        recent_days: int = DEFAULT_RECENT_DAYS,
    ) -> AnalysisResult:
        """Analyze minute bars; ``pre_bars`` immediately precede ``bars``."""
        daily = aggregate_daily(bars, self.timezone)
        pre_daily = aggregate_daily(pre_bars, self.timezone)
        return self.analyze_daily(ticker, daily, pre_daily, max_zones, recent_days)

    def analyze_daily(
        self,
        ticker: str,
        daily: Sequence[DailyAggregate],
        pre_daily: Sequence[DailyAggregate] = (),
        max_zones: int = DEFAULT_MAX_ZONES,
        recent_days: int = DEFAULT_RECENT_DAYS,
    ) -> AnalysisResult:
        """Analyze daily aggregates.

        Zones are searched over the whole series, but only those ending
        within ``recent_days`` calendar days of the last session count as a
        detection; older ones are kept in ``all_zones`` for charting.
        """
        if len(daily) < self.min_daily:
            log.debug("vdf.insufficient_daily", ticker=ticker, days=len(daily))
            return AnalysisResult(
                ticker=ticker,
                status="Insufficient daily data",
                reason=INSUFFICIENT_DAILY_REASON,
                metrics=AnalysisMetrics(
                    total_days=len(daily),
                    scan_start=daily[0].date if daily else None,
                    scan_end=daily[-1].date if daily else None,
                    pre_days=len(pre_daily),
                ),
            )

        recent_cutoff = daily[-1].date - timedelta(days=recent_days)
        metrics = AnalysisMetrics(
            total_days=len(daily),
            scan_start=daily[0].date,
            scan_end=daily[-1].date,
            pre_days=len(pre_daily),
            recent_cutoff=recent_cutoff,
        )

        all_zones = self.zones.discover(daily, pre_daily, max_zones)
        zones = [z for z in all_zones if z.end_date >= recent_cutoff]
        distribution, counter = self.distribution.scan(daily)
        breakouts = self.breakouts.detect(daily)
        bull_flag = self.flags.detect(daily)
        timeline = build_timeline(all_zones, breakouts, distribution)

        detected = bool(zones)
        best = zones[0] if zones else None
        log.debug(
            "vdf.analysis_complete",
            ticker=ticker,
            zones=len(zones),
            historical_zones=len(all_zones) - len(zones),
            distribution=len(distribution),
            breakouts=len(breakouts),
        )
        return AnalysisResult(
            ticker=ticker,
            detected=detected,
            status=summarize(zones, distribution, breakouts),
            reason=ScoreReason.DETECTED.value if detected else NO_ZONES_REASON,
            best_score=best.score if best else 0.0,
            best_zone_weeks=best.weeks if best else 0,
            zones=zones,
            all_zones=all_zones,
            distribution=distribution,
            accumulation_in_decline=counter,
            breakouts=breakouts,
            timeline=timeline,
            bull_flag=bull_flag,
            bull_flag_confidence=bull_flag.confidence if bull_flag else None,
            metrics=metrics,
        )
