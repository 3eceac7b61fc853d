"""
VDFlow — Statistics Helpers

Small numpy-backed helpers shared by the scoring engines. Degenerate input
(empty arrays, zero variance) returns a neutral 0 instead of NaN.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np


def clamp(value: float, lo: float = 0.0, hi: float = 1.0) -> float:
    """Clamp value into [lo, hi]."""
    return float(min(hi, max(lo, value)))


def mean(values: Sequence[float]) -> float:
    if len(values) == 0:
        return 0.0
    return float(np.mean(np.asarray(values, dtype=float)))


def population_std(values: Sequence[float]) -> float:
    """Population (ddof=0) standard deviation."""
    if len(values) == 0:
        return 0.0
    return float(np.std(np.asarray(values, dtype=float)))


def ols_slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0
    y = np.asarray(values, dtype=float)
    x = np.arange(n, dtype=float)
    x_dev = x - x.mean()
    denom = float(np.sum(x_dev * x_dev))
    if denom == 0:
        return 0.0
    return float(np.sum(x_dev * (y - y.mean())) / denom)


def pearson_corr(a: Sequence[float], b: Sequence[float]) -> float:
    """Pearson correlation; 0 when either side has zero variance."""
    n = min(len(a), len(b))
    if n < 2:
        return 0.0
    x = np.asarray(a[:n], dtype=float)
    y = np.asarray(b[:n], dtype=float)
    x_dev = x - x.mean()
    y_dev = y - y.mean()
    sxx = float(np.sum(x_dev * x_dev))
    syy = float(np.sum(y_dev * y_dev))
    if sxx == 0 or syy == 0:
        return 0.0
    return float(np.sum(x_dev * y_dev) / np.sqrt(sxx * syy))


def winsorize_bounds(values: Sequence[float], n_sigma: float = 3.0) -> tuple[float, float]:
    """Return (lower, upper) = mean -/+ n_sigma * population std."""
    mu = mean(values)
    sigma = population_std(values)
    return mu - n_sigma * sigma, mu + n_sigma * sigma


def winsorize(
    values: Sequence[float],
    n_sigma: float = 3.0,
    bounds: tuple[float, float] | None = None,
) -> tuple[list[float], list[int]]:
    """Clamp values into the sigma band.

    Returns the clamped values and the indices that were changed. Passing
    the bounds of a previous call re-applies the same band, which leaves
    already-winsorized values untouched.
    """
    if len(values) == 0:
        return [], []
    lo, hi = bounds if bounds is not None else winsorize_bounds(values, n_sigma)
    arr = np.asarray(values, dtype=float)
    clipped = np.clip(arr, lo, hi)
    changed = [int(i) for i in np.flatnonzero(clipped != arr)]
    return [float(v) for v in clipped], changed


def linear_fit(values: Sequence[float]) -> tuple[float, float, float]:
    """(slope, intercept, r²) of values regressed on their index 0..n-1."""
    n = len(values)
    if n < 2:
        return 0.0, 0.0, 0.0
    y = np.asarray(values, dtype=float)
    x = np.arange(n, dtype=float)
    slope = ols_slope(y)
    intercept = float(y.mean() - slope * x.mean())
    ss_tot = float(np.sum((y - y.mean()) ** 2))
    ss_res = float(np.sum((y - intercept - slope * x) ** 2))
    r2 = 1.0 - ss_res / ss_tot if ss_tot > 0 else 0.0
    return slope, intercept, r2
