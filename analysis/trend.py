# analysis/trend.py
# Trend extraction: regression slope -> direction, |pearson r| -> strength,
# first-to-last percent change -> growth rate. Plus small aggregation helpers.

from __future__ import annotations

from typing import Any, Iterable, List, Optional, Sequence

import numpy as np
from sklearn.linear_model import LinearRegression

from analysis.alignment import coerce_series
from config import TREND_CFG, TrendConfig
from schemas.impact_schema import TimeSeriesPoint, TrendResult
from utils.helpers import clamp, safe_div


def regression_slope(values: Sequence[float]) -> float:
    """
    Linear regression slope of value vs time index.
    """
    n = len(values)
    if n < 2:
        return 0.0
    X = np.arange(n).reshape(-1, 1)
    y = np.array(values, dtype=float).reshape(-1, 1)
    model = LinearRegression()
    model.fit(X, y)
    return float(model.coef_[0][0])


def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson r over the common prefix of x and y.
    0.0 when fewer than 2 pairs or either side has zero variance.
    """
    n = min(len(x), len(y))
    if n < 2:
        return 0.0
    xa = np.asarray(x[:n], dtype=float)
    ya = np.asarray(y[:n], dtype=float)
    # Exact check: a constant series can leave float residue after centering
    if np.all(xa == xa[0]) or np.all(ya == ya[0]):
        return 0.0
    dx = xa - xa.mean()
    dy = ya - ya.mean()
    denom = float(np.sqrt(np.sum(dx * dx) * np.sum(dy * dy)))
    if denom == 0.0:
        return 0.0
    return float(np.sum(dx * dy) / denom)


def slope_to_direction(slope: float, *, cfg: TrendConfig = TREND_CFG) -> str:
    if abs(slope) < cfg.stable_slope_eps:
        return "stable"
    return "increasing" if slope > 0 else "decreasing"


def analyze_trend(series: Optional[Iterable[Any]], *, cfg: TrendConfig = TREND_CFG) -> TrendResult:
    """
    Consumes a (preferably aligned) series and returns:
      - direction: OLS slope of value on index; |slope| < eps -> stable
      - strength: |pearson(index, value)|
      - growth_rate: (last - first) / first * 100, or 0 when first == 0
    Fewer than 2 usable points -> stable / 0 / 0.
    """
    points = coerce_series(series)
    n = len(points)
    if n < 2:
        return TrendResult(direction="stable", strength=0.0, growth_rate=0.0, slope=0.0, points=n)

    values = [p.value for p in points]
    slope = regression_slope(values)
    strength = abs(correlation(list(range(n)), values))

    first, last = values[0], values[-1]
    growth_defined = first != 0
    growth_rate = safe_div((last - first) * 100.0, first, default=0.0)

    return TrendResult(
        direction=slope_to_direction(slope, cfg=cfg),
        strength=float(clamp(strength, 0.0, 1.0)),
        growth_rate=float(growth_rate),
        slope=float(slope),
        points=n,
        growth_defined=growth_defined,
    )


def aggregate_series(series: Optional[Iterable[Any]], how: str = "average") -> float:
    """
    Collapses a series to one number: sum | average | max | min.
    Empty series or unknown `how` -> 0.0.
    """
    values = [p.value for p in coerce_series(series)]
    if not values:
        return 0.0
    if how == "sum":
        return float(sum(values))
    if how == "average":
        return float(np.mean(values))
    if how == "max":
        return float(max(values))
    if how == "min":
        return float(min(values))
    return 0.0


def series_confidence(
    points: List[TimeSeriesPoint],
    *,
    data_completeness: float,
    source_reliability: float,
    temporal_recency: float,
) -> float:
    """
    Overall trust in a series, 0..1:
      0.4 * mean point confidence + 0.3 * completeness
      + 0.2 * source reliability + 0.1 * recency
    """
    if not points:
        return 0.0
    avg_conf = float(np.mean([p.confidence for p in points]))
    overall = (
        0.4 * avg_conf
        + 0.3 * data_completeness
        + 0.2 * source_reliability
        + 0.1 * temporal_recency
    )
    return float(clamp(overall, 0.0, 1.0))
