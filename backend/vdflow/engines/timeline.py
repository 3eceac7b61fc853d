"""
VDFlow — Timeline Builder

Merges zones, breakouts and distribution clusters into one chronological
list of events with fixed action labels. Reporting only: upstream records
are read, never modified.
"""

from __future__ import annotations

from typing import Sequence

from vdflow.models import (
    AccumulationZone,
    Breakout,
    DistributionCluster,
    TimelineEvent,
    TimelineEventKind,
)

ACTION_LABELS = {
    TimelineEventKind.ZONE_START: "start accumulating",
    TimelineEventKind.ZONE_END: "hold / add on dips",
    TimelineEventKind.BREAKOUT: "breakout, ride momentum",
    TimelineEventKind.DISTRIBUTION_START: "start taking profits",
    TimelineEventKind.DISTRIBUTION_END: "distribution phase over",
}

_KIND_ORDER = {kind: i for i, kind in enumerate(TimelineEventKind)}


def build_timeline(
    zones: Sequence[AccumulationZone],
    breakouts: Sequence[Breakout],
    distribution: Sequence[DistributionCluster],
) -> list[TimelineEvent]:
    """Chronological event list; same-day events follow TimelineEventKind order."""
    events: list[TimelineEvent] = []

    for z in zones:
        events.append(TimelineEvent(
            date=z.start_date,
            kind=TimelineEventKind.ZONE_START,
            action=ACTION_LABELS[TimelineEventKind.ZONE_START],
            detail=(
                f"Zone score {z.score:.2f} ({z.window_days}d), "
                f"net delta {z.net_delta_pct:.1f}%, absorption {z.absorption_pct:.0f}%"
            ),
            score=z.score,
        ))
        events.append(TimelineEvent(
            date=z.end_date,
            kind=TimelineEventKind.ZONE_END,
            action=ACTION_LABELS[TimelineEventKind.ZONE_END],
            detail=f"Zone complete, {z.accum_weeks}/{z.weeks} weeks positive",
            score=z.score,
        ))

    for b in breakouts:
        events.append(TimelineEvent(
            date=b.date,
            kind=TimelineEventKind.BREAKOUT,
            action=ACTION_LABELS[TimelineEventKind.BREAKOUT],
            detail=f"+{b.price_change_pct:.1f}% in 5d, vol {b.volume_ratio:.1f}x, {b.durability.value}",
        ))

    for c in distribution:
        events.append(TimelineEvent(
            date=c.start_date,
            kind=TimelineEventKind.DISTRIBUTION_START,
            action=ACTION_LABELS[TimelineEventKind.DISTRIBUTION_START],
            detail=f"Price up {c.price_change_pct:.1f}% with net delta {c.net_delta_pct:.1f}%",
        ))
        events.append(TimelineEvent(
            date=c.end_date,
            kind=TimelineEventKind.DISTRIBUTION_END,
            action=ACTION_LABELS[TimelineEventKind.DISTRIBUTION_END],
            detail=f"Distribution cluster ends after {c.span_days}d",
        ))

    events.sort(key=lambda e: (e.date, _KIND_ORDER[e.kind]))
    return events
