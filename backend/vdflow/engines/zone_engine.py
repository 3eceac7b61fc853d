"""
VDFlow — Zone Discoverer

Slides every candidate window length across the daily sequence, scores each
window, and greedily keeps the best non-overlapping detections.
"""

from __future__ import annotations

from typing import Optional, Sequence

import structlog

from vdflow.engines.window_scorer import WindowScorer
from vdflow.models import AccumulationZone, DailyAggregate, ScoreWeights, WindowScore

log = structlog.get_logger(__name__)

WINDOW_SIZES = (10, 14, 17, 20, 24, 28, 35)
MAX_OVERLAP_RATIO = 0.30
MIN_GAP_DAYS = 10
DEFAULT_MAX_ZONES = 3


def span_overlap(a_start: int, a_end: int, b_start: int, b_end: int) -> int:
    """Number of shared indices between two inclusive spans."""
    return max(0, min(a_end, b_end) - max(a_start, b_start) + 1)


def span_gap(a_start: int, a_end: int, b_start: int, b_end: int) -> int:
    """Index distance between two inclusive spans; 0 when they touch or overlap."""
    if a_start > b_end:
        return a_start - b_end
    if b_start > a_end:
        return b_start - a_end
    return 0


def zone_from_score(
    result: WindowScore,
    daily: Sequence[DailyAggregate],
    start: int,
    end: int,
) -> AccumulationZone:
    """Promote a detected WindowScore to a zone spanning daily[start..end]."""
    return AccumulationZone(
        start_index=start,
        end_index=end,
        start_date=daily[start].date,
        end_date=daily[end].date,
        window_days=end - start + 1,
        weeks=result.weeks,
        score=result.score,
        overall_price_change=result.overall_price_change,
        net_delta_pct=result.net_delta_pct,
        delta_slope_norm=result.delta_slope_norm,
        price_delta_corr=result.price_delta_corr,
        delta_shift=result.delta_shift,
        accum_weeks=result.accum_weeks,
        accum_week_ratio=result.accum_week_ratio,
        absorption_pct=result.absorption_pct,
        large_buy_vs_sell=result.large_buy_vs_sell,
        vol_decline_score=result.vol_decline_score,
        intra_rally=result.intra_rally,
        concordant_frac=result.concordant_frac,
        components=result.components,
        duration_multiplier=result.duration_multiplier,
        concordance_penalty=result.concordance_penalty,
        capped_days=result.capped_days,
        weekly=result.weekly,
    )


class ZoneEngine:
    """Multi-window accumulation zone search."""

    def __init__(
        self,
        weights: Optional[ScoreWeights] = None,
        window_sizes: Sequence[int] = WINDOW_SIZES,
    ):
        self.scorer = WindowScorer(weights)
        self.window_sizes = tuple(window_sizes)

    def candidates(
        self,
        daily: Sequence[DailyAggregate],
        pre_context: Sequence[DailyAggregate] = (),
    ) -> list[AccumulationZone]:
        """Every detected window, in (size, offset) scan order."""
        found: list[AccumulationZone] = []
        n = len(daily)
        scanned = 0
        for size in self.window_sizes:
            for start in range(0, n - size + 1):
                end = start + size - 1
                result = self.scorer.score(daily[start:end + 1], pre_context)
                scanned += 1
                if result is not None and result.detected:
                    found.append(zone_from_score(result, daily, start, end))
        log.debug("zones.scanned", windows=scanned, detected=len(found))
        return found

    def discover(
        self,
        daily: Sequence[DailyAggregate],
        pre_context: Sequence[DailyAggregate] = (),
        max_zones: int = DEFAULT_MAX_ZONES,
    ) -> list[AccumulationZone]:
        """Top ``max_zones`` non-overlapping zones, ranked by score."""
        if max_zones <= 0:
            return []
        # sorted() is stable, so equal scores keep scan order
        ranked = sorted(self.candidates(daily, pre_context), key=lambda z: -z.score)

        accepted: list[AccumulationZone] = []
        for cand in ranked:
            if len(accepted) >= max_zones:
                break
            width = cand.end_index - cand.start_index + 1
            clash = False
            for zone in accepted:
                overlap = span_overlap(cand.start_index, cand.end_index, zone.start_index, zone.end_index)
                gap = span_gap(cand.start_index, cand.end_index, zone.start_index, zone.end_index)
                if overlap / width > MAX_OVERLAP_RATIO or gap < MIN_GAP_DAYS:
                    clash = True
                    break
            if not clash:
                accepted.append(cand)

        return [z.model_copy(update={"rank": i + 1}) for i, z in enumerate(accepted)]
