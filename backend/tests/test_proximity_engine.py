"""
Proximity Engine Tests — each precursor signal, composite points, levels.
"""

from __future__ import annotations

from conftest import make_daily
from vdflow.models import ProximityLevel


def _alternating(n=30, size=1_000.0):
    """Alternating +/- deltas at a constant price and volume: no signals."""
    return [size if i % 2 == 0 else -size for i in range(n)]


def _history(deltas, closes=None, volumes=None):
    closes = closes or [50.0] * len(deltas)
    volumes = volumes or [100_000.0] * len(deltas)
    return make_daily(closes, deltas, volumes)


class TestProximityLevels:
    def test_level_thresholds(self):
        from vdflow.engines.proximity_engine import proximity_level
        assert proximity_level(0) == ProximityLevel.NONE
        assert proximity_level(29) == ProximityLevel.NONE
        assert proximity_level(30) == ProximityLevel.ELEVATED
        assert proximity_level(50) == ProximityLevel.HIGH
        assert proximity_level(69) == ProximityLevel.HIGH
        assert proximity_level(70) == ProximityLevel.IMMINENT


class TestProximityEngine:
    def test_insufficient_history(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        sig = ProximityEngine().evaluate(_history(_alternating(24)))
        assert sig.sufficient_data is False
        assert sig.level == ProximityLevel.NONE
        assert sig.composite_score == 0
        assert sig.signals == []
        assert sig.days_examined == 24

    def test_quiet_history_has_no_signals(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        sig = ProximityEngine().evaluate(_history(_alternating()))
        assert sig.sufficient_data is True
        assert sig.signals == []
        assert sig.composite_score == 0

    def test_single_fading_red_streak_scores_15(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        deltas = _alternating()
        deltas[21:24] = [-3_000.0, -2_000.0, -1_000.0]
        deltas[-1] = 1_000.0
        sig = ProximityEngine().evaluate(_history(deltas))
        assert [s.kind for s in sig.signals] == ["seller_exhaustion"]
        assert sig.composite_score == 15
        assert sig.level == ProximityLevel.NONE

    def test_strengthening_red_streak_not_exhaustion(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        deltas = _alternating()
        deltas[21:24] = [-1_000.0, -2_000.0, -3_000.0]
        sig = ProximityEngine().evaluate(_history(deltas))
        assert all(s.kind != "seller_exhaustion" for s in sig.signals)

    def test_delta_anomaly(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        deltas = _alternating()
        deltas[26] = 10_000.0
        sig = ProximityEngine().evaluate(_history(deltas))
        anomalies = [s for s in sig.signals if s.kind == "delta_anomaly"]
        assert len(anomalies) == 1
        assert anomalies[0].points == 25
        assert "4d before" in anomalies[0].detail

    def test_old_anomaly_outside_recency_ignored(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        deltas = _alternating(60)
        deltas[22] = 10_000.0  # 38 days before the end
        sig = ProximityEngine().evaluate(_history(deltas))
        assert all(s.kind != "delta_anomaly" for s in sig.signals)

    def test_green_streak_including_trailing_run(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        deltas = _alternating()
        deltas[-5:] = [1_000.0] * 5
        sig = ProximityEngine().evaluate(_history(deltas))
        streaks = [s for s in sig.signals if s.kind == "green_streak"]
        assert len(streaks) == 1
        assert streaks[0].points == 20
        assert streaks[0].detail == "6 days"

    def test_absorption_cluster(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        deltas = _alternating()
        closes = [50.0] * 30
        # three down-close days with positive delta in the last 15
        for i in (20, 24, 28):
            closes[i:] = [c - 1 for c in closes[i:]]
        sig = ProximityEngine().evaluate(_history(deltas, closes=closes))
        kinds = [s.kind for s in sig.signals]
        assert "absorption_cluster" in kinds
        assert sig.composite_score == 15

    def test_final_dump(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        deltas = _alternating()
        deltas[-1] = -20_000.0
        deltas[-2] = 1_000.0
        sig = ProximityEngine().evaluate(_history(deltas))
        assert "final_dump" in [s.kind for s in sig.signals]

    def test_volume_collapse_is_informational(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        volumes = [100_000.0] * 20 + [50_000.0] * 10
        sig = ProximityEngine().evaluate(_history(_alternating(), volumes=volumes))
        collapse = [s for s in sig.signals if s.kind == "volume_collapse"]
        assert len(collapse) == 1
        assert collapse[0].points == 0
        assert sig.composite_score == 0

    def test_signals_accumulate_to_level(self):
        from vdflow.engines.proximity_engine import ProximityEngine
        deltas = _alternating()
        deltas[21:24] = [-3_000.0, -2_000.0, -1_000.0]   # +15
        deltas[26] = 10_000.0                              # +25 anomaly
        deltas[24:30] = [1_000.0, 1_000.0, 10_000.0, 1_000.0, 1_000.0, 1_000.0]  # +20 green streak
        sig = ProximityEngine().evaluate(_history(deltas))
        assert sig.composite_score == 60
        assert sig.level == ProximityLevel.HIGH


class TestRuns:
    def test_runs(self):
        from vdflow.engines.proximity_engine import _runs
        assert _runs([True, True, False, True]) == [(0, 1), (3, 3)]
        assert _runs([]) == []
        assert _runs([False, False]) == []
