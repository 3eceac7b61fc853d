"""
VDFlow — Shared Formatters

Display rounding for analysis payloads. Engines keep full precision;
rounding is applied once, at the serving boundary.
"""

from __future__ import annotations

import math
from typing import Any

# Float fields that are percentages even though their names don't end in _pct
_PCT_KEYS = frozenset({
    "overall_price_change",
    "delta_slope_norm",
    "delta_shift",
    "large_buy_vs_sell",
    "intra_rally",
    "extreme_price_change",
    "extreme_delta_pct",
    "range_pct",
    "avg_range",
    "slope_per_bar",
})


def is_pct_key(key: str) -> bool:
    """True when a payload key holds a percentage value.

    >>> is_pct_key('net_delta_pct')
    True
    >>> is_pct_key('score')
    False
    """
    return key.endswith("_pct") or key in _PCT_KEYS


def round_value(value: float, digits: int) -> float:
    if math.isnan(value) or math.isinf(value):
        return value
    return round(value, digits)


def round_payload(payload: Any, pct_digits: int = 1, ratio_digits: int = 3, _key: str = "") -> Any:
    """Recursively round floats in a dumped payload.

    Percentages get ``pct_digits`` decimals, every other float (scores,
    ratios, components) gets ``ratio_digits``. Volumes and deltas are
    floats too and get ``ratio_digits``. Non-float leaves pass through.

    >>> round_payload({'net_delta_pct': 3.14159, 'score': 0.612345})
    {'net_delta_pct': 3.1, 'score': 0.612}
    """
    if isinstance(payload, dict):
        return {
            k: round_payload(v, pct_digits, ratio_digits, _key=str(k))
            for k, v in payload.items()
        }
    if isinstance(payload, (list, tuple)):
        return [round_payload(v, pct_digits, ratio_digits, _key=_key) for v in payload]
    if isinstance(payload, float):
        return round_value(payload, pct_digits if is_pct_key(_key) else ratio_digits)
    return payload
