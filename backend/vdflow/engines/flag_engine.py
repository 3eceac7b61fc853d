"""
VDFlow — Bull Flag Detector

Looks for a consolidation still forming on the last session of the daily
series, after a prior up-move:
  • flag — orderly, flat to gently falling channel
  • pennant — descending highs converging with flat or rising lows

Every consolidation length that ends on the last session is tried; each is
scored 0–100 and the most confident one is reported when it reaches
MIN_CONFIDENCE.

Pure domain logic — no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import structlog

from vdflow.engines.stats import clamp, linear_fit
from vdflow.models import BullFlag, DailyAggregate, FlagPattern

log = structlog.get_logger(__name__)

MIN_TOTAL_DAYS = 10
MAX_LOOKBACK_DAYS = 40
FLAG_MIN_DAYS = 5
FLAG_MAX_DAYS = 20
MIN_PRE_FLAG_DAYS = 3
POLE_HIGH_DAYS = 5                # pre-flag sessions that set the pole high
FLAG_SLOPE_MAX = 0.05             # % per session, above this the channel is rising
FLAG_SLOPE_MIN = -1.2             # % per session, below this it is a breakdown
IDEAL_FLAG_SLOPE = -0.3
MAX_CHANNEL_WIDTH_PCT = 8.0
PRIOR_UPTREND_MIN_PCT = 5.0
IDEAL_RETRACE_PCT = 38.2
MAX_RETRACE_PCT = 50.0
PENNANT_MAX_CONVERGENCE = 0.85    # end range / start range
PENNANT_LOW_SLOPE_MIN = -0.05
PENNANT_CLOSE_SLOPE_MAX = 0.5
PENNANT_CLOSE_SLOPE_MIN = -1.5
MIN_CONFIDENCE = 50


def duration_score(days: int) -> float:
    """Seven to fifteen sessions score fully; shorter and longer taper off."""
    if days < 5:
        return days / 5 * 0.5
    if days <= 7:
        return 0.7 + (days - 5) * 0.15
    if days <= 15:
        return 1.0
    if days <= 20:
        return 1.0 - (days - 15) * 0.1
    return 0.3


def retracement_score(retrace_pct: float) -> float:
    """Shallow pullbacks score best; past 38.2% the score drops to 0 at 50%."""
    if retrace_pct <= 0:
        return 1.0
    if retrace_pct <= IDEAL_RETRACE_PCT:
        return 1.0 - retrace_pct / IDEAL_RETRACE_PCT * 0.15
    excess = (retrace_pct - IDEAL_RETRACE_PCT) / (MAX_RETRACE_PCT - IDEAL_RETRACE_PCT)
    return max(0.0, 0.85 - excess * 0.85)


def prior_trend_score(prior_gain_pct: float) -> float:
    return min(1.0, (prior_gain_pct - PRIOR_UPTREND_MIN_PCT) / 25)


@dataclass
class _Candidate:
    pattern: FlagPattern
    confidence: int
    slope_per_bar: float
    r2: float


class FlagEngine:
    """Bull flag / pennant detector over daily aggregates."""

    def detect(self, daily: Sequence[DailyAggregate]) -> Optional[BullFlag]:
        if len(daily) < MIN_TOTAL_DAYS:
            return None

        offset = max(0, len(daily) - MAX_LOOKBACK_DAYS)
        work = daily[offset:]
        n = len(work)
        h = np.array([d.high for d in work], dtype=float)
        l = np.array([d.low for d in work], dtype=float)
        c = np.array([d.close for d in work], dtype=float)

        best: Optional[tuple[_Candidate, int, float, float]] = None
        for length in range(FLAG_MIN_DAYS, min(FLAG_MAX_DAYS, n - MIN_PRE_FLAG_DAYS) + 1):
            start = n - length
            flag_close = c[start:]
            flag_mean = float(flag_close.mean())
            if flag_mean <= 0:
                continue

            # Prior up-move: lowest low before the flag to the pole high
            pre_low = float(l[:start].min())
            pre_high = float(h[max(0, start - POLE_HIGH_DAYS):start].max())
            if pre_low <= 0:
                continue
            prior_gain = (pre_high - pre_low) / pre_low * 100
            if prior_gain < PRIOR_UPTREND_MIN_PCT:
                continue

            height = pre_high - pre_low
            retrace = (pre_high - float(flag_close.min())) / height * 100 if height > 0 else 0.0
            if retrace > MAX_RETRACE_PCT:
                continue

            width = (float(h[start:].max()) - float(l[start:].min())) / flag_mean * 100
            if width > MAX_CHANNEL_WIDTH_PCT:
                continue

            flag = self._score_flag(flag_close, flag_mean, width, retrace, prior_gain, length)
            pennant = self._score_pennant(
                h[start:], l[start:], flag_close, flag_mean, retrace, prior_gain, length
            )
            if flag and flag.confidence >= (pennant.confidence if pennant else 0):
                chosen = flag
            else:
                chosen = pennant

            if chosen and (best is None or chosen.confidence > best[0].confidence):
                best = (chosen, start, width, retrace)

        if best is None or best[0].confidence < MIN_CONFIDENCE:
            return None

        chosen, start, width, retrace = best
        result = BullFlag(
            pattern=chosen.pattern,
            confidence=chosen.confidence,
            start_index=start + offset,
            end_index=n - 1 + offset,
            start_date=work[start].date,
            end_date=work[-1].date,
            slope_per_bar=chosen.slope_per_bar,
            r2=chosen.r2,
            channel_width_pct=width,
            retrace_pct=retrace,
        )
        log.debug("flag.detected", pattern=result.pattern.value, confidence=result.confidence)
        return result

    @staticmethod
    def _score_flag(
        closes: np.ndarray,
        flag_mean: float,
        width: float,
        retrace: float,
        prior_gain: float,
        length: int,
    ) -> Optional[_Candidate]:
        slope, _, r2 = linear_fit(closes)
        slope_pct = slope / flag_mean * 100
        if slope_pct > FLAG_SLOPE_MAX or slope_pct < FLAG_SLOPE_MIN:
            return None

        points = (
            max(0.0, r2) * 20                                              # orderliness
            + max(0.0, 1 - width / MAX_CHANNEL_WIDTH_PCT) * 20              # tightness
            + max(0.0, 1 - abs(slope_pct - IDEAL_FLAG_SLOPE) / 1.2) * 15     # drift
            + retracement_score(retrace) * 20
            + duration_score(length) * 10
            + prior_trend_score(prior_gain) * 15
        )
        return _Candidate(FlagPattern.FLAG, int(round(points)), slope_pct, r2)

    @staticmethod
    def _score_pennant(
        highs: np.ndarray,
        lows: np.ndarray,
        closes: np.ndarray,
        flag_mean: float,
        retrace: float,
        prior_gain: float,
        length: int,
    ) -> Optional[_Candidate]:
        if len(highs) < FLAG_MIN_DAYS:
            return None
        high_slope, high_icpt, high_r2 = linear_fit(highs)
        low_slope, low_icpt, low_r2 = linear_fit(lows)
        close_slope, _, close_r2 = linear_fit(closes)

        high_pct = high_slope / flag_mean * 100
        low_pct = low_slope / flag_mean * 100
        if high_pct >= 0 or low_pct <= PENNANT_LOW_SLOPE_MIN:
            return None

        last = len(highs) - 1
        start_range = high_icpt - low_icpt
        end_range = (high_icpt + high_slope * last) - (low_icpt + low_slope * last)
        if start_range <= 0 or end_range <= 0:
            return None
        convergence = end_range / start_range
        if convergence > PENNANT_MAX_CONVERGENCE:
            return None

        close_pct = close_slope / flag_mean * 100
        if close_pct > PENNANT_CLOSE_SLOPE_MAX or close_pct < PENNANT_CLOSE_SLOPE_MIN:
            return None

        high_mag, low_mag = abs(high_pct), abs(low_pct)
        asymmetry = abs(high_mag - low_mag) / max(high_mag, low_mag, 0.001)
        points = (
            clamp(1 - (convergence - 0.15) / 0.7) * 20
            + (max(0.0, high_r2) + max(0.0, low_r2)) / 2 * 20
            + max(0.0, 1 - asymmetry) * 5
            + retracement_score(retrace) * 20
            + duration_score(length) * 10
            + prior_trend_score(prior_gain) * 15
            + max(0.0, close_r2) * 10
        )
        return _Candidate(FlagPattern.PENNANT, int(round(points)), close_pct, close_r2)
