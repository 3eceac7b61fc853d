"""
Massive Client Tests — response parsing, chunking, retries, failure mapping.

HTTP is served by httpx.MockTransport; nothing leaves the process.
"""

from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone

import httpx
import pytest

from vdflow.errors import DataProviderNotConfigured, DataUnavailableError

T0 = 1736173800000  # 2025-01-06 14:30 UTC in epoch ms


def _row(minute, close, volume=100.0):
    return {"t": T0 + minute * 60_000, "o": close, "h": close, "l": close, "c": close, "v": volume}


def _client(handler, **kwargs):
    from vdflow.data.massive_client import MassiveClient
    return MassiveClient(
        api_key="test",
        base_url="https://api.massive.test",
        chunk_days=kwargs.pop("chunk_days", 25),
        chunk_pause=0,
        base_delay=0,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


# ──────────────────────────────────────────────
# Parsing helpers
# ──────────────────────────────────────────────

class TestParseResults:
    def test_rows_converted_to_utc_bars(self):
        from vdflow.data.massive_client import parse_results
        bars = parse_results({"results": [_row(0, 10.5, 250.0)]})
        assert len(bars) == 1
        assert bars[0].timestamp == datetime(2025, 1, 6, 14, 30, tzinfo=timezone.utc)
        assert bars[0].close == 10.5
        assert bars[0].volume == 250.0

    def test_missing_volume_is_zero(self):
        from vdflow.data.massive_client import parse_results
        row = _row(0, 10.0)
        del row["v"]
        assert parse_results({"results": [row]})[0].volume == 0.0

    def test_bad_rows_skipped(self):
        from vdflow.data.massive_client import parse_results
        rows = [
            {"t": None, "c": 10.0},
            {"t": T0, "c": "x"},
            {"t": T0, "c": float("nan")},
            _row(1, 11.0),
        ]
        bars = parse_results({"results": rows})
        assert [b.close for b in bars] == [11.0]

    def test_empty_payload(self):
        from vdflow.data.massive_client import parse_results
        assert parse_results({}) == []
        assert parse_results({"results": None}) == []


class TestChunkRanges:
    def test_two_chunks(self):
        from vdflow.data.massive_client import chunk_ranges
        ranges = chunk_ranges(date(2025, 1, 1), date(2025, 2, 15), 25)
        assert ranges == [
            (date(2025, 1, 1), date(2025, 1, 25)),
            (date(2025, 1, 26), date(2025, 2, 15)),
        ]

    def test_chunks_hold_exactly_chunk_days(self):
        from vdflow.data.massive_client import chunk_ranges
        ranges = chunk_ranges(date(2025, 1, 1), date(2025, 1, 12), 5)
        assert ranges == [
            (date(2025, 1, 1), date(2025, 1, 5)),
            (date(2025, 1, 6), date(2025, 1, 10)),
            (date(2025, 1, 11), date(2025, 1, 12)),
        ]
        assert chunk_ranges(date(2025, 1, 1), date(2025, 1, 3), 1) == [
            (date(2025, 1, d), date(2025, 1, d)) for d in (1, 2, 3)
        ]

    def test_single_day(self):
        from vdflow.data.massive_client import chunk_ranges
        assert chunk_ranges(date(2025, 1, 1), date(2025, 1, 1), 25) == [
            (date(2025, 1, 1), date(2025, 1, 1)),
        ]

    def test_empty_when_reversed(self):
        from vdflow.data.massive_client import chunk_ranges
        assert chunk_ranges(date(2025, 2, 1), date(2025, 1, 1), 25) == []


# ──────────────────────────────────────────────
# Fetching
# ──────────────────────────────────────────────

class TestMassiveClient:
    def test_chunks_merged_deduped_sorted(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            if len(requests) == 1:
                return httpx.Response(200, json={"results": [_row(2, 12.0), _row(0, 10.0)]})
            # overlapping minute 2 from the second chunk wins
            return httpx.Response(200, json={"results": [_row(2, 12.5), _row(1, 11.0)]})

        bars = asyncio.run(_client(handler).fetch("COHR", date(2025, 1, 1), date(2025, 2, 15)))
        assert len(requests) == 2
        assert [b.close for b in bars] == [10.0, 11.0, 12.5]
        assert "/v2/aggs/ticker/COHR/range/1/minute/2025-01-01/2025-01-25" == requests[0].url.path
        assert requests[0].url.params["apiKey"] == "test"
        assert requests[0].url.params["limit"] == "50000"

    def test_transient_error_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            if len(calls) == 1:
                return httpx.Response(500)
            return httpx.Response(200, json={"results": [_row(0, 10.0)]})

        bars = asyncio.run(_client(handler).fetch("COHR", date(2025, 1, 6), date(2025, 1, 6)))
        assert len(calls) == 2
        assert len(bars) == 1

    def test_rate_limit_exhaustion_maps_to_unavailable(self):
        def handler(request):
            return httpx.Response(429)

        client = _client(handler, max_attempts=2)
        with pytest.raises(DataUnavailableError) as exc:
            asyncio.run(client.fetch("COHR", date(2025, 1, 6), date(2025, 1, 6)))
        assert exc.value.ticker == "COHR"

    def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(1)
            return httpx.Response(404)

        with pytest.raises(DataUnavailableError):
            asyncio.run(_client(handler).fetch("NOPE", date(2025, 1, 6), date(2025, 1, 6)))
        assert len(calls) == 1

    def test_transport_failure_retried_then_mapped(self):
        calls = []

        def handler(request):
            calls.append(1)
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(DataUnavailableError):
            asyncio.run(_client(handler, max_attempts=3).fetch("COHR", date(2025, 1, 6), date(2025, 1, 6)))
        assert len(calls) == 3

    def test_missing_key(self):
        from vdflow.data.massive_client import MassiveClient
        client = MassiveClient(api_key="", chunk_pause=0)
        assert client.is_configured is False
        with pytest.raises(DataProviderNotConfigured):
            asyncio.run(client.fetch("COHR", date(2025, 1, 6), date(2025, 1, 6)))
