"""
VDFlow — VDF Service

Async coordination around the pure engine: cache lookup, in-flight
de-duplication, minute-bar retrieval, scan/pre-context split, minimum-data
checks, and bounded-concurrency batch scans. The CPU-bound engine call runs
in a worker thread.
"""

from __future__ import annotations

import asyncio
import time
from datetime import date, datetime, timedelta, timezone
from functools import partial
from typing import Callable, Optional, Sequence

import pandas as pd
import structlog

from vdflow.cache import RedisCache, analysis_key, analysis_pattern, get_cache
from vdflow.config import Settings, get_settings
from vdflow.data.massive_client import BarFetcher, MassiveClient
from vdflow.engines.vdf_engine import VDFEngine
from vdflow.errors import VDFError
from vdflow.models import AnalysisMode, AnalysisResult, Bar
from vdflow.utils.validators import validate_ticker

log = structlog.get_logger(__name__)

REASON_IN_PROGRESS = "in_progress"
REASON_INSUFFICIENT_BARS = "insufficient_1m_data"
REASON_INSUFFICIENT_SCAN = "insufficient_scan_data"
REASON_TIMEOUT = "timeout"
REASON_ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(ts: datetime) -> datetime:
    return ts.replace(tzinfo=timezone.utc) if ts.tzinfo is None else ts.astimezone(timezone.utc)


def trading_date(now: datetime, tz: str) -> date:
    """Calendar date of ``now`` on the market clock."""
    return pd.Timestamp(_as_utc(now)).tz_convert(tz).date()


def split_bars(
    bars: Sequence[Bar], scan_days: int, pre_days: int
) -> tuple[list[Bar], list[Bar]]:
    """Split bars into (scan window, pre-context).

    The scan window is the last ``scan_days`` calendar days ending at the
    latest bar; the pre-context is the ``pre_days`` immediately before it.
    """
    if not bars:
        return [], []
    latest = max(_as_utc(b.timestamp) for b in bars)
    cutoff = latest - timedelta(days=scan_days)
    pre_cutoff = cutoff - timedelta(days=pre_days)
    scan, pre = [], []
    for bar in bars:
        ts = _as_utc(bar.timestamp)
        if ts >= cutoff:
            scan.append(bar)
        elif ts >= pre_cutoff:
            pre.append(bar)
    return scan, pre


class VDFService:
    """Cached, de-duplicated VDF analysis per ticker."""

    def __init__(
        self,
        fetcher: Optional[BarFetcher] = None,
        cache: Optional[RedisCache] = None,
        settings: Optional[Settings] = None,
        engine: Optional[VDFEngine] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._settings = settings or get_settings()
        self._fetcher = fetcher or MassiveClient()
        self._cache = cache or get_cache()
        self._engine = engine or VDFEngine(
            timezone=self._settings.vdf_market_timezone,
            min_daily=self._settings.vdf_min_daily,
        )
        self._clock = clock
        self._inflight: dict[str, asyncio.Task] = {}

    async def analyze_ticker(
        self,
        ticker: str,
        mode: AnalysisMode | str = AnalysisMode.SCAN,
        force: bool = False,
    ) -> AnalysisResult:
        """Analyze one ticker, serving today's cached result unless ``force``.

        A cancelled caller does not stop the computation. The ticker stays
        in flight until it finishes and its result is still cached.
        """
        ticker = validate_ticker(ticker)
        mode = AnalysisMode(mode)
        now = self._clock()
        trade_date = trading_date(now, self._settings.vdf_market_timezone)
        key = analysis_key(ticker, mode.value, trade_date.isoformat())

        if force:
            self._cache.invalidate(analysis_pattern(ticker, mode.value))
        else:
            hit = self._cache.get(key)
            if hit is not None:
                log.info("vdf.cache_hit", ticker=ticker, mode=mode.value)
                return AnalysisResult.model_validate(hit).model_copy(update={"cached": True})
            log.debug("vdf.cache_miss", ticker=ticker, mode=mode.value)

        if ticker in self._inflight:
            log.info("vdf.in_progress", ticker=ticker)
            return AnalysisResult(
                ticker=ticker,
                status="Analysis already in progress",
                reason=REASON_IN_PROGRESS,
            )

        task = asyncio.create_task(self._run(ticker, mode, trade_date, key))
        self._inflight[ticker] = task
        task.add_done_callback(partial(self._release, ticker))
        return await asyncio.shield(task)

    def _release(self, ticker: str, task: asyncio.Task) -> None:
        if self._inflight.get(ticker) is task:
            del self._inflight[ticker]
        if not task.cancelled() and task.exception() is not None:
            log.debug("vdf.analysis_failed", ticker=ticker, error=str(task.exception()))

    async def _run(
        self, ticker: str, mode: AnalysisMode, trade_date: date, key: str
    ) -> AnalysisResult:
        started = time.perf_counter()
        result = await self._compute(ticker, mode, trade_date)
        self._cache.set(key, result.model_dump(mode="json"), ttl=self._settings.vdf_cache_ttl)
        log.info(
            "vdf.analysis_complete",
            ticker=ticker,
            mode=mode.value,
            detected=result.detected,
            reason=result.reason,
            elapsed_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return result

    async def _compute(self, ticker: str, mode: AnalysisMode, end: date) -> AnalysisResult:
        s = self._settings
        scan_days = s.vdf_scan_days if mode == AnalysisMode.SCAN else s.vdf_chart_days
        start = end - timedelta(days=scan_days + s.vdf_pre_context_days)

        bars = await self._fetcher.fetch(ticker, start, end)
        if len(bars) < s.vdf_min_bars:
            return AnalysisResult(
                ticker=ticker,
                status=f"Insufficient minute data ({len(bars)} bars)",
                reason=REASON_INSUFFICIENT_BARS,
            )

        scan_bars, pre_bars = split_bars(bars, scan_days, s.vdf_pre_context_days)
        if len(scan_bars) < s.vdf_min_scan_bars:
            return AnalysisResult(
                ticker=ticker,
                status=f"Insufficient scan-window data ({len(scan_bars)} bars)",
                reason=REASON_INSUFFICIENT_SCAN,
            )

        return await asyncio.to_thread(
            self._engine.analyze,
            ticker,
            scan_bars,
            pre_bars,
            s.vdf_max_zones,
            s.vdf_recent_days,
        )

    async def scan_tickers(
        self,
        tickers: Sequence[str],
        mode: AnalysisMode | str = AnalysisMode.SCAN,
        force: bool = False,
    ) -> list[AnalysisResult]:
        """Analyze many tickers with bounded concurrency; failures become error results."""
        semaphore = asyncio.Semaphore(max(1, self._settings.vdf_scan_concurrency))
        timeout = self._settings.vdf_ticker_timeout

        async def run_one(raw: str) -> AnalysisResult:
            async with semaphore:
                try:
                    return await asyncio.wait_for(self.analyze_ticker(raw, mode, force), timeout)
                except asyncio.TimeoutError:
                    log.warning("vdf.ticker_timeout", ticker=raw, timeout=timeout)
                    return AnalysisResult(
                        ticker=raw,
                        status=f"Timed out after {timeout:.0f}s",
                        reason=REASON_TIMEOUT,
                    )
                except (VDFError, ValueError) as exc:
                    log.warning("vdf.ticker_failed", ticker=raw, error=str(exc))
                    return AnalysisResult(ticker=raw, status=str(exc), reason=REASON_ERROR)
                except Exception as exc:
                    log.error("vdf.ticker_crashed", ticker=raw, error=str(exc), exc_info=True)
                    return AnalysisResult(
                        ticker=raw,
                        status=f"Unexpected error: {exc}",
                        reason=REASON_ERROR,
                    )

        results = await asyncio.gather(*(run_one(t) for t in tickers))
        log.info(
            "vdf.scan_complete",
            tickers=len(tickers),
            detected=sum(1 for r in results if r.detected),
        )
        return list(results)


# ──────────────────────────────────────────────
# Singleton
# ──────────────────────────────────────────────

_service: Optional[VDFService] = None


def get_vdf_service() -> VDFService:
    """Get or create the service singleton (FastAPI dependency)."""
    global _service
    if _service is None:
        _service = VDFService()
    return _service
