"""Straight-line trend projection for imported monthly series."""

from __future__ import annotations

from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

from .normalize import build_future_months

OverrideKey = Tuple[str, str]


def trend_series(values: Sequence[float], future: int) -> List[float]:
    """Extend ``values`` by ``future`` points along its least-squares line.

    Positions are ``1..n`` for the history and ``n+1..n+future`` for the
    projection.  An empty history projects zeros; a degenerate fit (single
    point) projects flat at the mean.
    """
    if future <= 0:
        return []
    if len(values) == 0:
        return [0.0] * future

    ys = np.asarray(values, dtype=float)
    n = len(ys)
    xs = np.arange(1, n + 1, dtype=float)
    sum_x = xs.sum()
    sum_y = ys.sum()
    sum_xy = (xs * ys).sum()
    sum_xx = (xs * xs).sum()
    denom = n * sum_xx - sum_x * sum_x
    slope = 0.0 if denom == 0 else (n * sum_xy - sum_x * sum_y) / denom
    intercept = (sum_y - slope * sum_x) / n

    future_xs = np.arange(n + 1, n + future + 1, dtype=float)
    projected = intercept + slope * future_xs
    projected = np.where(np.isfinite(projected), projected, 0.0)
    return [float(v) for v in projected]


def project_matrix(
    matrix: Mapping[str, Mapping[str, float]],
    months: Sequence[str],
    future_count: int,
    overrides: Optional[Mapping[OverrideKey, float]] = None,
) -> Dict[str, Dict[str, float]]:
    """Project every bucket of ``{slug: {month: amount}}`` past the last month.

    ``overrides`` keyed by ``(slug, month)`` replace the computed value.
    """
    if not months or future_count <= 0:
        return {}
    future_months = build_future_months(months[-1], future_count)
    overrides = overrides or {}
    result: Dict[str, Dict[str, float]] = {}
    for slug, month_values in matrix.items():
        series = [month_values.get(ym, 0.0) for ym in months]
        projected = trend_series(series, future_count)
        result[slug] = {
            ym: float(overrides.get((slug, ym), projected[idx]))
            for idx, ym in enumerate(future_months)
        }
    return result
