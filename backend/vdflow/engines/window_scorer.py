"""
VDFlow — Window Scorer

Scores one contiguous slice of daily aggregates for accumulation
divergence: net buying while price bases or declines. Three hard gates
(price band, concordant selling, falling cumulative delta) run first; the
surviving windows get eight normalized components combined into a weighted
score, then a concordance penalty and a duration multiplier.

A window whose price rose cannot be divergent and is rejected after its
components are computed, so the diagnostics still explain the rejection.

Pure domain logic — no I/O.
"""

from __future__ import annotations

from typing import Optional, Sequence

import numpy as np
import structlog

from vdflow.engines.aggregation import aggregate_weekly
from vdflow.engines.stats import clamp, mean, ols_slope, pearson_corr, winsorize
from vdflow.models import (
    CappedDay,
    DailyAggregate,
    ScoreComponents,
    ScoreReason,
    ScoreWeights,
    WindowScore,
)

log = structlog.get_logger(__name__)


# ──────────────────────────────────────────────
# Thresholds
# ──────────────────────────────────────────────

MIN_WEEKS = 2
PRICE_CHANGE_MAX = 10.0           # %, at or above this the window is a rally
PRICE_CHANGE_MIN = -45.0          # %, at or below this the window is a collapse
WINSOR_SIGMA = 3.0
NET_DELTA_PCT_MIN = -1.5          # %, below this selling is concordant
DELTA_SLOPE_MIN = -0.5            # normalized cumulative weekly delta slope
LARGE_DAY_FRACTION = 0.10         # of mean daily volume
VOL_DECLINE_MIN_THIRD = 3         # days per third for the volume decline check
VOL_DECLINE_FULL = 0.30
CONCORDANCE_THRESHOLD = 0.55
CONCORDANCE_SLOPE = 1.5
CONCORDANCE_FLOOR = 0.40
DURATION_BASE = 0.70
DURATION_PER_WEEK = 0.075
DURATION_MIN = 0.70
DURATION_MAX = 1.15
DETECTION_THRESHOLD = 0.30

COMPONENT_KEYS = ("s1", "s2", "s3", "s4", "s5", "s6", "s7", "s8")


def duration_multiplier(weeks: int) -> float:
    """Longer bases earn up to +15%; two-week windows are discounted 30%."""
    return clamp(DURATION_BASE + (weeks - MIN_WEEKS) * DURATION_PER_WEEK, DURATION_MIN, DURATION_MAX)


def concordance_penalty(concordant_frac: float) -> float:
    if concordant_frac <= CONCORDANCE_THRESHOLD:
        return 1.0
    return max(CONCORDANCE_FLOOR, 1.0 - (concordant_frac - CONCORDANCE_THRESHOLD) * CONCORDANCE_SLOPE)


def composite_score(
    components: ScoreComponents,
    weights: ScoreWeights,
    duration_mult: float,
    penalty: float,
) -> float:
    """Weighted component mean × concordance penalty × duration multiplier.

    Both first-pass scoring and weight overrides go through here, so a
    rescore with the original weights reproduces the stored score exactly.
    """
    weighted = 0.0
    for key in COMPONENT_KEYS:
        weighted += getattr(weights, key) * getattr(components, key)
    return weighted / weights.total * penalty * duration_mult


class WindowScorer:
    """Accumulation-divergence scorer for a single daily window."""

    def __init__(self, weights: Optional[ScoreWeights] = None):
        self.weights = weights or ScoreWeights()

    def score(
        self,
        window: Sequence[DailyAggregate],
        pre_context: Sequence[DailyAggregate] = (),
    ) -> Optional[WindowScore]:
        """Score ``window`` against the days immediately preceding it.

        Returns None when the window spans fewer than two weeks.
        """
        if not window:
            return None
        raw_weeks = aggregate_weekly(window)
        n_weeks = len(raw_weeks)
        if n_weeks < MIN_WEEKS:
            return None

        n = len(window)
        closes = [d.close for d in window]
        volumes = [d.total_volume for d in window]
        raw_deltas = [d.delta for d in window]

        first_close = closes[0]
        price_change = (closes[-1] - first_close) / first_close * 100 if first_close > 0 else 0.0

        # Gate 1: price must be basing or declining, not rallying or collapsing
        if price_change >= PRICE_CHANGE_MAX or price_change <= PRICE_CHANGE_MIN:
            return WindowScore(
                reason=ScoreReason.PRICE_BAND,
                weeks=n_weeks,
                overall_price_change=price_change,
            )

        deltas, capped_idx = winsorize(raw_deltas, WINSOR_SIGMA)
        capped_days = [
            CappedDay(date=window[i].date, original=raw_deltas[i], capped=deltas[i])
            for i in capped_idx
        ]

        total_volume = sum(volumes)
        net_delta = sum(deltas)
        net_delta_pct = net_delta / total_volume * 100 if total_volume > 0 else 0.0

        # Gate 2: net selling alongside falling price is concordant, not divergent
        if net_delta_pct < NET_DELTA_PCT_MIN:
            return WindowScore(
                reason=ScoreReason.CONCORDANT,
                weeks=n_weeks,
                overall_price_change=price_change,
                net_delta_pct=net_delta_pct,
                capped_days=capped_days,
            )

        weekly = aggregate_weekly(window, deltas)
        cum_weekly = np.cumsum([w.effective_delta for w in weekly])
        avg_weekly_volume = mean([w.total_volume for w in weekly])
        slope = ols_slope(cum_weekly)
        slope_norm = slope / avg_weekly_volume * 100 if avg_weekly_volume > 0 else 0.0

        # Gate 3: cumulative delta must not be trending down
        if slope_norm < DELTA_SLOPE_MIN:
            return WindowScore(
                reason=ScoreReason.SLOPE_GATE,
                weeks=n_weeks,
                overall_price_change=price_change,
                net_delta_pct=net_delta_pct,
                delta_slope_norm=slope_norm,
                capped_days=capped_days,
                weekly=weekly,
            )

        avg_daily_volume = total_volume / n

        if pre_context:
            pre_avg_delta = mean([d.delta for d in pre_context])
            pre_avg_volume = mean([d.total_volume for d in pre_context])
        else:
            pre_avg_delta = 0.0
            pre_avg_volume = avg_daily_volume
        delta_shift = (
            (net_delta / n - pre_avg_delta) / pre_avg_volume * 100 if pre_avg_volume > 0 else 0.0
        )

        accum_weeks = sum(1 for w in weekly if w.effective_delta > 0)
        accum_week_ratio = accum_weeks / len(weekly)

        # Absorption: buyers step in on a down-close day
        absorption_days = sum(
            1 for i in range(1, n) if raw_deltas[i] > 0 and closes[i] < closes[i - 1]
        )
        absorption_pct = absorption_days / (n - 1) * 100 if n > 1 else 0.0

        large_threshold = LARGE_DAY_FRACTION * avg_daily_volume
        large_buys = sum(1 for d in raw_deltas if d > large_threshold)
        large_sells = sum(1 for d in raw_deltas if d < -large_threshold)
        large_buy_vs_sell = (large_buys - large_sells) / n * 100

        vol_decline = self._volume_decline(volumes)

        up_buying = 0.0
        down_buying = 0.0
        for i in range(1, n):
            if deltas[i] <= 0:
                continue
            if closes[i] > closes[i - 1]:
                up_buying += deltas[i]
            elif closes[i] < closes[i - 1]:
                down_buying += deltas[i]
        concordant_frac = (
            up_buying / (up_buying + down_buying) if (up_buying + down_buying) > 0 else 0.0
        )

        price_delta_corr = pearson_corr(closes, np.cumsum(deltas))
        intra_rally = (max(closes) - first_close) / first_close * 100 if first_close > 0 else 0.0

        if price_change > 0 or net_delta_pct <= 0:
            divergence = 0.0
        else:
            divergence = clamp((3 - price_change) / 8) * clamp(net_delta_pct / 3)

        components = ScoreComponents(
            s1=clamp((net_delta_pct + 1.5) / 5),
            s2=clamp((slope_norm + 0.5) / 4),
            s3=clamp((delta_shift + 1) / 8),
            s4=clamp((accum_week_ratio - 0.2) / 0.6),
            s5=clamp((large_buy_vs_sell + 3) / 12),
            s6=clamp(absorption_pct / 20),
            s7=vol_decline,
            s8=divergence,
        )
        penalty = concordance_penalty(concordant_frac)
        dur = duration_multiplier(n_weeks)

        # Gate 4: buying into a rising price is trend-following, not divergence
        if price_change > 0:
            score = 0.0
            detected = False
            reason = ScoreReason.NO_DIVERGENCE
        else:
            score = composite_score(components, self.weights, dur, penalty)
            detected = score >= DETECTION_THRESHOLD
            reason = ScoreReason.DETECTED if detected else ScoreReason.BELOW_THRESHOLD

        return WindowScore(
            score=score,
            detected=detected,
            reason=reason,
            weeks=n_weeks,
            overall_price_change=price_change,
            net_delta_pct=net_delta_pct,
            delta_slope_norm=slope_norm,
            price_delta_corr=price_delta_corr,
            delta_shift=delta_shift,
            accum_weeks=accum_weeks,
            accum_week_ratio=accum_week_ratio,
            absorption_pct=absorption_pct,
            large_buy_vs_sell=large_buy_vs_sell,
            vol_decline_score=vol_decline,
            intra_rally=intra_rally,
            concordant_frac=concordant_frac,
            components=components,
            duration_multiplier=dur,
            concordance_penalty=penalty,
            capped_days=capped_days,
            weekly=weekly,
        )

    @staticmethod
    def _volume_decline(volumes: Sequence[float]) -> float:
        """0..1 score for volume drying up from the first to the last third."""
        third = len(volumes) // 3
        if third < VOL_DECLINE_MIN_THIRD:
            return 0.0
        first = mean(volumes[:third])
        last = mean(volumes[-third:])
        if first <= 0 or last >= first:
            return 0.0
        return clamp((first - last) / first / VOL_DECLINE_FULL)
