"""
Bull Flag Detector Tests — flag after an up-move, rejections, scoring helpers.
"""

from __future__ import annotations

import pytest

from conftest import make_daily
from vdflow.models import FlagPattern


def _pole_then_flag():
    """25 sessions rallying 80 → 100, then 15 sessions drifting down to 97."""
    pole = [80 + 20 * i / 24 for i in range(25)]
    flag = [100 - 0.2 * (k + 1) for k in range(15)]
    closes = pole + flag
    return make_daily(closes, [0.0] * len(closes))


class TestScoringHelpers:
    def test_duration_score(self):
        from vdflow.engines.flag_engine import duration_score
        assert duration_score(3) == pytest.approx(0.3)
        assert duration_score(5) == pytest.approx(0.7)
        assert duration_score(10) == 1.0
        assert duration_score(20) == pytest.approx(0.5)
        assert duration_score(25) == 0.3

    def test_retracement_score(self):
        from vdflow.engines.flag_engine import retracement_score
        assert retracement_score(0) == 1.0
        assert retracement_score(38.2) == pytest.approx(0.85)
        assert retracement_score(50) == pytest.approx(0.0)
        assert retracement_score(60) == 0.0

    def test_linear_fit(self):
        from vdflow.engines.stats import linear_fit
        slope, intercept, r2 = linear_fit([1, 3, 5, 7])
        assert slope == pytest.approx(2.0)
        assert intercept == pytest.approx(1.0)
        assert r2 == pytest.approx(1.0)
        assert linear_fit([4, 4, 4])[2] == 0.0
        assert linear_fit([4]) == (0.0, 0.0, 0.0)


class TestFlagEngine:
    def test_flag_after_rally_detected(self):
        from vdflow.engines.flag_engine import MIN_CONFIDENCE, FlagEngine
        daily = _pole_then_flag()
        flag = FlagEngine().detect(daily)
        assert flag is not None
        assert flag.pattern == FlagPattern.FLAG
        assert MIN_CONFIDENCE <= flag.confidence <= 100
        assert flag.end_index == len(daily) - 1
        assert flag.end_date == daily[-1].date
        assert 20 <= flag.start_index <= 35
        assert flag.start_date == daily[flag.start_index].date
        assert flag.channel_width_pct <= 8.0
        assert flag.retrace_pct <= 50.0

    def test_steady_rally_is_not_a_flag(self):
        from vdflow.engines.flag_engine import FlagEngine
        closes = [80 + 20 * i / 39 for i in range(40)]
        assert FlagEngine().detect(make_daily(closes, [0.0] * 40)) is None

    def test_flat_series_has_no_prior_move(self):
        from vdflow.engines.flag_engine import FlagEngine
        assert FlagEngine().detect(make_daily([50.0] * 40, [0.0] * 40)) is None

    def test_short_series(self):
        from vdflow.engines.flag_engine import FlagEngine
        assert FlagEngine().detect(_pole_then_flag()[:9]) is None

    def test_only_last_forty_sessions_examined(self):
        from vdflow.engines.flag_engine import FlagEngine
        tail = _pole_then_flag()
        shifted = make_daily([80.0] * 30 + [d.close for d in tail], [0.0] * 70)
        flag = FlagEngine().detect(shifted)
        base = FlagEngine().detect(tail)
        assert flag is not None
        assert flag.confidence == base.confidence
        assert flag.start_index == base.start_index + 30
