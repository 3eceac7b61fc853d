"""
VDFlow — Distribution Scanner

Rolling 10-day scan for flow that disagrees with price:
  • distribution — price rising while net delta is negative (selling into strength)
  • accumulation in decline — price falling while net delta is positive

Qualifying windows close to one another are merged into clusters and the
cluster statistics are recomputed over the merged span.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import structlog

from vdflow.models import ClusterKind, DailyAggregate, DistributionCluster

log = structlog.get_logger(__name__)

WINDOW_DAYS = 10
PRICE_THRESHOLD = 3.0    # %
DELTA_THRESHOLD = 3.0    # % of window volume
MERGE_GAP_DAYS = 5


@dataclass
class _Run:
    """Working state while merging windows into one cluster."""
    start: int
    end: int
    count: int
    extreme_price: float
    extreme_delta: float


def window_stats(daily: Sequence[DailyAggregate]) -> tuple[float, float, float]:
    """(price change %, net delta, net delta %) over a contiguous slice."""
    first = daily[0].close
    price_change = (daily[-1].close - first) / first * 100 if first > 0 else 0.0
    net_delta = sum(d.delta for d in daily)
    volume = sum(d.total_volume for d in daily)
    return price_change, net_delta, net_delta / volume * 100 if volume > 0 else 0.0


class DistributionEngine:
    """Distribution and accumulation-in-decline cluster scanner."""

    def scan(
        self, daily: Sequence[DailyAggregate]
    ) -> tuple[list[DistributionCluster], list[DistributionCluster]]:
        """Return (distribution clusters, accumulation-in-decline clusters)."""
        runs: dict[ClusterKind, list[_Run]] = {
            ClusterKind.DISTRIBUTION: [],
            ClusterKind.ACCUMULATION_IN_DECLINE: [],
        }

        for i in range(WINDOW_DAYS, len(daily) + 1):
            start, end = i - WINDOW_DAYS, i - 1
            price_change, _, delta_pct = window_stats(daily[start:i])

            if price_change > PRICE_THRESHOLD and delta_pct < -DELTA_THRESHOLD:
                kind = ClusterKind.DISTRIBUTION
            elif price_change < -PRICE_THRESHOLD and delta_pct > DELTA_THRESHOLD:
                kind = ClusterKind.ACCUMULATION_IN_DECLINE
            else:
                continue
            self._merge(runs[kind], kind, start, end, price_change, delta_pct)

        distribution = [
            self._to_cluster(daily, r, ClusterKind.DISTRIBUTION)
            for r in runs[ClusterKind.DISTRIBUTION]
        ]
        counter = [
            self._to_cluster(daily, r, ClusterKind.ACCUMULATION_IN_DECLINE)
            for r in runs[ClusterKind.ACCUMULATION_IN_DECLINE]
        ]
        log.debug("distribution.scanned", distribution=len(distribution), accumulation_in_decline=len(counter))
        return distribution, counter

    @staticmethod
    def _merge(
        runs: list[_Run],
        kind: ClusterKind,
        start: int,
        end: int,
        price_change: float,
        delta_pct: float,
    ) -> None:
        for run in runs:
            if start <= run.end + MERGE_GAP_DAYS:
                run.end = max(run.end, end)
                run.count += 1
                if kind == ClusterKind.DISTRIBUTION:
                    run.extreme_price = max(run.extreme_price, price_change)
                    run.extreme_delta = min(run.extreme_delta, delta_pct)
                else:
                    run.extreme_price = min(run.extreme_price, price_change)
                    run.extreme_delta = max(run.extreme_delta, delta_pct)
                return
        runs.append(_Run(start, end, 1, price_change, delta_pct))

    @staticmethod
    def _to_cluster(
        daily: Sequence[DailyAggregate], run: _Run, kind: ClusterKind
    ) -> DistributionCluster:
        price_change, net_delta, delta_pct = window_stats(daily[run.start:run.end + 1])
        return DistributionCluster(
            kind=kind,
            start_index=run.start,
            end_index=run.end,
            start_date=daily[run.start].date,
            end_date=daily[run.end].date,
            window_count=run.count,
            extreme_price_change=run.extreme_price,
            extreme_delta_pct=run.extreme_delta,
            span_days=run.end - run.start + 1,
            price_change_pct=price_change,
            net_delta=net_delta,
            net_delta_pct=delta_pct,
        )
