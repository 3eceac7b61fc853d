"""
Utility Tests — payload rounding, ticker validation, retry decorator.
"""

from __future__ import annotations

import asyncio

import pytest


# ──────────────────────────────────────────────
# Rounding
# ──────────────────────────────────────────────

class TestRoundPayload:
    def test_pct_and_ratio_digits(self):
        from vdflow.utils.formatters import round_payload
        out = round_payload({"net_delta_pct": 3.14159, "score": 0.612345, "weeks": 4})
        assert out == {"net_delta_pct": 3.1, "score": 0.612, "weeks": 4}

    def test_named_percentage_keys(self):
        from vdflow.utils.formatters import round_payload
        out = round_payload({"overall_price_change": -11.456, "delta_shift": 3.55})
        assert out == {"overall_price_change": -11.5, "delta_shift": 3.5}

    def test_nested_lists_inherit_key(self):
        from vdflow.utils.formatters import round_payload
        payload = {"zones": [{"score": 0.77777, "components": {"s1": 0.123456}}]}
        assert round_payload(payload) == {"zones": [{"score": 0.778, "components": {"s1": 0.123}}]}

    def test_custom_digits(self):
        from vdflow.utils.formatters import round_payload
        assert round_payload({"delta_pct": 1.23456, "ratio": 1.23456}, 2, 1) == {
            "delta_pct": 1.23, "ratio": 1.2,
        }

    def test_non_floats_untouched(self):
        from vdflow.utils.formatters import round_payload
        payload = {"ticker": "COHR", "detected": True, "date": "2025-01-06", "rank": None}
        assert round_payload(payload) == payload

    def test_non_finite_passthrough(self):
        from vdflow.utils.formatters import round_value
        assert round_value(float("inf"), 1) == float("inf")


# ──────────────────────────────────────────────
# Ticker validation
# ──────────────────────────────────────────────

class TestValidateTicker:
    @pytest.mark.parametrize("raw,expected", [
        ("cohr", "COHR"),
        (" RKLB ", "RKLB"),
        ("BRK.B", "BRK.B"),
        ("X", "X"),
    ])
    def test_valid(self, raw, expected):
        from vdflow.utils.validators import validate_ticker
        assert validate_ticker(raw) == expected

    @pytest.mark.parametrize("raw", ["", "   ", "1ABC", "TOOLONGX", "AB-C", "BRK.BBB"])
    def test_invalid(self, raw):
        from vdflow.utils.validators import validate_ticker
        with pytest.raises(ValueError):
            validate_ticker(raw)


# ──────────────────────────────────────────────
# Retry
# ──────────────────────────────────────────────

class TestRetry:
    def test_sync_retries_then_succeeds(self):
        from vdflow.utils.retry import with_retry
        calls = []

        @with_retry(max_attempts=3, base_delay=0, jitter=False)
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise ConnectionError("reset")
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_sync_exhaustion_reraises(self):
        from vdflow.utils.retry import TransientHTTPError, with_retry
        calls = []

        @with_retry(max_attempts=2, base_delay=0, jitter=False)
        def always_503():
            calls.append(1)
            raise TransientHTTPError(503, "https://api.example.test")

        with pytest.raises(TransientHTTPError) as exc:
            always_503()
        assert exc.value.status_code == 503
        assert len(calls) == 2

    def test_non_retryable_raises_immediately(self):
        from vdflow.utils.retry import with_retry
        calls = []

        @with_retry(max_attempts=5, base_delay=0)
        def bad():
            calls.append(1)
            raise KeyError("nope")

        with pytest.raises(KeyError):
            bad()
        assert len(calls) == 1

    def test_async_retries(self):
        from vdflow.utils.retry import with_retry
        calls = []
        seen = []

        @with_retry(max_attempts=3, base_delay=0, jitter=False, on_retry=lambda a, e, d: seen.append(a))
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise TimeoutError()
            return 42

        assert asyncio.run(flaky()) == 42
        assert seen == [1]

    def test_wraps_preserves_name(self):
        from vdflow.utils.retry import with_retry

        @with_retry()
        async def fetch_chunk():
            return None

        assert fetch_chunk.__name__ == "fetch_chunk"
        assert asyncio.iscoroutinefunction(fetch_chunk)


class TestDelays:
    def test_exponential_without_jitter(self):
        from vdflow.utils.retry import compute_delay
        assert compute_delay(1, 1.0, 30.0, 2.0, False) == 1.0
        assert compute_delay(3, 1.0, 30.0, 2.0, False) == 4.0

    def test_capped(self):
        from vdflow.utils.retry import compute_delay
        assert compute_delay(10, 1.0, 30.0, 2.0, False) == 30.0

    def test_jitter_bounds(self):
        from vdflow.utils.retry import compute_delay
        for _ in range(50):
            assert 1.0 <= compute_delay(2, 1.0, 30.0, 2.0, True) <= 3.0

    def test_transient_statuses(self):
        from vdflow.utils.retry import is_transient_status
        assert is_transient_status(429)
        assert is_transient_status(502)
        assert not is_transient_status(404)
        assert not is_transient_status(200)
