"""
VDFlow — Pydantic Models

All I/O schemas for the detector. Engines return these, the service caches
them, API routes serialize them. Every model is frozen: records are created
once by the stage that owns them and never mutated downstream.
"""

from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator


# ──────────────────────────────────────────────
# Enums
# ──────────────────────────────────────────────

class ScoreReason(str, Enum):
    """Outcome of scoring one candidate window."""
    DETECTED = "accumulation_divergence"
    BELOW_THRESHOLD = "below_threshold"
    PRICE_BAND = "price_band"
    CONCORDANT = "concordant"
    SLOPE_GATE = "slope_gate"
    NO_DIVERGENCE = "no_divergence"


class ClusterKind(str, Enum):
    """Rolling-window flow pattern."""
    DISTRIBUTION = "distribution"                        # price up, delta down
    ACCUMULATION_IN_DECLINE = "accumulation_in_decline"  # price down, delta up


class DeltaPolarity(str, Enum):
    """Net delta during the breakout window."""
    CONFIRMED = "confirmed"
    DISTRIBUTION_INTO_RALLY = "distribution_into_rally"
    NEUTRAL = "neutral"


class Durability(str, Enum):
    """Post-breakout buying persistence."""
    DURABLE = "DURABLE"
    FRAGILE = "FRAGILE"
    MIXED = "MIXED"
    INSUFFICIENT_DATA = "insufficient_data"


class ProximityLevel(str, Enum):
    """Breakout readiness level from proximity points."""
    NONE = "NONE"
    ELEVATED = "ELEVATED"
    HIGH = "HIGH"
    IMMINENT = "IMMINENT"


class TimelineEventKind(str, Enum):
    """Timeline event types, in same-day display order."""
    ZONE_START = "zone_start"
    ZONE_END = "zone_end"
    BREAKOUT = "breakout"
    DISTRIBUTION_START = "distribution_start"
    DISTRIBUTION_END = "distribution_end"


class FlagPattern(str, Enum):
    """Consolidation shape after an up-move."""
    FLAG = "flag"          # gently falling parallel channel
    PENNANT = "pennant"    # converging highs and lows


class AnalysisMode(str, Enum):
    """Scan = recent window only, chart = full year of history."""
    SCAN = "scan"
    CHART = "chart"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# ──────────────────────────────────────────────
# Market Data Models
# ──────────────────────────────────────────────

class Bar(_Frozen):
    """Single fine-grained (minute) bar.

    Price fields are optional so that malformed provider rows survive
    parsing; the aggregator drops them before any computation.
    """
    timestamp: dt.datetime
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    close: Optional[float] = None
    volume: Optional[float] = 0.0


class DailyAggregate(_Frozen):
    """One trading day of directional volume."""
    date: dt.date
    delta: float
    total_volume: float
    buy_volume: float
    sell_volume: float
    open: float
    high: float
    low: float
    close: float
    range_pct: float = 0.0   # (high - low) / close * 100
    delta_pct: float = 0.0   # delta / total_volume * 100


class WeeklyAggregate(_Frozen):
    """Daily aggregates grouped by ISO week (keyed by Monday)."""
    week_start: dt.date
    delta: float
    total_volume: float
    delta_pct: float
    n_days: int
    open: float
    close: float
    high: float
    low: float
    avg_range: float
    avg_volume: float
    effective_delta: Optional[float] = None  # sum of winsorized daily deltas


# ──────────────────────────────────────────────
# Scoring Models
# ──────────────────────────────────────────────

class CappedDay(_Frozen):
    """A day whose delta was clamped to the 3-sigma band."""
    date: dt.date
    original: float
    capped: float


class ScoreComponents(_Frozen):
    """The eight normalized scoring components."""
    s1: float = Field(ge=0, le=1, description="Net delta")
    s2: float = Field(ge=0, le=1, description="Cumulative delta slope")
    s3: float = Field(ge=0, le=1, description="Delta shift vs pre-context")
    s4: float = Field(ge=0, le=1, description="Accumulation week ratio")
    s5: float = Field(ge=0, le=1, description="Large buy vs sell days")
    s6: float = Field(ge=0, le=1, description="Absorption")
    s7: float = Field(ge=0, le=1, description="Volume decline")
    s8: float = Field(ge=0, le=1, description="Price/delta divergence")


class ScoreWeights(_Frozen):
    """Component weights. Defaults are the tuned reference weights."""
    s1: float = Field(0.15, ge=0)
    s2: float = Field(0.10, ge=0)
    s3: float = Field(0.05, ge=0)
    s4: float = Field(0.05, ge=0)
    s5: float = Field(0.03, ge=0)
    s6: float = Field(0.25, ge=0)
    s7: float = Field(0.02, ge=0)
    s8: float = Field(0.35, ge=0)

    @model_validator(mode="after")
    def _check_total(self) -> "ScoreWeights":
        if self.total <= 0:
            raise ValueError("at least one component weight must be positive")
        return self

    @property
    def total(self) -> float:
        return self.s1 + self.s2 + self.s3 + self.s4 + self.s5 + self.s6 + self.s7 + self.s8


class WindowScore(_Frozen):
    """Result of scoring one daily slice.

    Rejected windows carry score 0 and only the diagnostics computed before
    the rejecting gate fired.
    """
    score: float = 0.0
    detected: bool = False
    reason: ScoreReason
    weeks: int
    overall_price_change: float
    net_delta_pct: Optional[float] = None
    delta_slope_norm: Optional[float] = None
    price_delta_corr: Optional[float] = None
    delta_shift: Optional[float] = None
    accum_weeks: Optional[int] = None
    accum_week_ratio: Optional[float] = None
    absorption_pct: Optional[float] = None
    large_buy_vs_sell: Optional[float] = None
    vol_decline_score: Optional[float] = None
    intra_rally: Optional[float] = None
    concordant_frac: Optional[float] = None
    components: Optional[ScoreComponents] = None
    duration_multiplier: Optional[float] = None
    concordance_penalty: Optional[float] = None
    capped_days: list[CappedDay] = Field(default_factory=list)
    weekly: list[WeeklyAggregate] = Field(default_factory=list)


class AccumulationZone(_Frozen):
    """A contiguous date range classified as accumulation."""
    rank: Optional[int] = None
    start_index: int
    end_index: int
    start_date: dt.date
    end_date: dt.date
    window_days: int
    weeks: int
    score: float
    overall_price_change: float
    net_delta_pct: float
    delta_slope_norm: float
    price_delta_corr: float
    delta_shift: float
    accum_weeks: int
    accum_week_ratio: float
    absorption_pct: float
    large_buy_vs_sell: float
    vol_decline_score: float
    intra_rally: float
    concordant_frac: float
    components: ScoreComponents
    duration_multiplier: float
    concordance_penalty: float = 1.0
    capped_days: list[CappedDay] = Field(default_factory=list)
    weekly: list[WeeklyAggregate] = Field(default_factory=list)


class DistributionCluster(_Frozen):
    """Merged run of qualifying 10-day windows."""
    kind: ClusterKind = ClusterKind.DISTRIBUTION
    start_index: int
    end_index: int
    start_date: dt.date
    end_date: dt.date
    window_count: int
    extreme_price_change: float
    extreme_delta_pct: float
    span_days: int
    price_change_pct: float
    net_delta: float
    net_delta_pct: float


# ──────────────────────────────────────────────
# Breakout & Proximity Models
# ──────────────────────────────────────────────

class ProximityItem(_Frozen):
    """One fired precursor signal."""
    kind: str
    detail: str
    points: int = 0


class ProximitySignal(_Frozen):
    """Precursor signals before a breakout, with composite readiness."""
    signals: list[ProximityItem] = Field(default_factory=list)
    composite_score: int = 0
    level: ProximityLevel = ProximityLevel.NONE
    sufficient_data: bool = True
    days_examined: int = 0


class Breakout(_Frozen):
    """Abrupt volume-confirmed 5-day price advance."""
    index: int
    date: dt.date
    start_index: int
    start_date: dt.date
    price_change_pct: float
    volume_ratio: float
    price_at_start: float
    price_at_breakout: float
    net_delta_pct: float
    delta_polarity: DeltaPolarity
    durability: Durability
    positive_weeks: Optional[int] = None
    post_weeks: Optional[int] = None
    proximity: Optional[ProximitySignal] = None


class BullFlag(_Frozen):
    """Consolidation still forming on the last session, after an up-move."""
    pattern: FlagPattern
    confidence: int = Field(ge=0, le=100)
    start_index: int
    end_index: int
    start_date: dt.date
    end_date: dt.date
    slope_per_bar: float       # % of mean close per session
    r2: float
    channel_width_pct: float
    retrace_pct: float         # % of the prior up-move given back


# ──────────────────────────────────────────────
# Output Models
# ──────────────────────────────────────────────

class TimelineEvent(_Frozen):
    """One entry in the chronological narrative."""
    date: dt.date
    kind: TimelineEventKind
    action: str
    detail: str
    score: float = 0.0


class AnalysisMetrics(_Frozen):
    """Input coverage of one analysis."""
    total_days: int = 0
    scan_start: Optional[dt.date] = None
    scan_end: Optional[dt.date] = None
    pre_days: int = 0
    recent_cutoff: Optional[dt.date] = None


class AnalysisResult(_Frozen):
    """Output bundle for one instrument."""
    ticker: str
    detected: bool = False
    status: str = ""
    reason: str = ""
    best_score: float = 0.0
    best_zone_weeks: int = 0
    zones: list[AccumulationZone] = Field(default_factory=list)       # recent only
    all_zones: list[AccumulationZone] = Field(default_factory=list)   # whole scan window
    distribution: list[DistributionCluster] = Field(default_factory=list)
    accumulation_in_decline: list[DistributionCluster] = Field(default_factory=list)
    breakouts: list[Breakout] = Field(default_factory=list)
    timeline: list[TimelineEvent] = Field(default_factory=list)
    bull_flag: Optional[BullFlag] = None
    bull_flag_confidence: Optional[int] = None
    metrics: AnalysisMetrics = Field(default_factory=AnalysisMetrics)
    cached: bool = False


# ──────────────────────────────────────────────
# API Models (Request / Response)
# ──────────────────────────────────────────────

class RescoreRequest(BaseModel):
    """Re-weight already-discovered zones."""
    zones: list[AccumulationZone]
    weights: ScoreWeights = Field(default_factory=ScoreWeights)


class ScanRequest(BaseModel):
    """Batch scan over many tickers."""
    tickers: list[str] = Field(..., min_length=1, max_length=200)
    mode: AnalysisMode = AnalysisMode.SCAN
    force: bool = False


class HealthCheck(BaseModel):
    """Health check response."""
    status: str = "ok"
    version: str = "1.0.0"
    environment: str = "development"
    services: dict = {}
