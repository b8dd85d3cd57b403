# analysis/role_metrics.py
# Detailed per-role analytics: seasonality, return volatility, data quality,
# and short/medium/long horizon projections.

from __future__ import annotations

from typing import Any, Iterable, List, Optional

import numpy as np

from analysis.alignment import coerce_series
from analysis.trend import analyze_trend
from schemas.impact_schema import DetailedAnalysis, FutureProjection, TimeSeriesPoint, TrendResult
from utils.helpers import clamp

_AVG_MONTH_S = 30 * 24 * 60 * 60


def compute_seasonality(points: List[TimeSeriesPoint]) -> float:
    """
    Coefficient of variation of calendar-month averages.
    Needs at least a year of points; months with no data count as 0.
    """
    if len(points) < 12:
        return 0.0
    sums = np.zeros(12)
    counts = np.zeros(12)
    for p in points:
        m = p.timestamp.month - 1
        sums[m] += p.value
        counts[m] += 1
    averages = np.divide(sums, counts, out=np.zeros(12), where=counts > 0)
    mean = float(np.mean(averages))
    if mean == 0:
        return 0.0
    return float(np.std(averages) / mean)


def compute_return_volatility(points: List[TimeSeriesPoint]) -> float:
    """
    Std dev of step-over-step returns, skipping steps from a zero value.
    """
    if len(points) < 2:
        return 0.0
    returns = [
        (cur.value - prev.value) / prev.value
        for prev, cur in zip(points, points[1:])
        if prev.value != 0
    ]
    if not returns:
        return 0.0
    return float(np.std(returns))


def assess_data_quality(points: List[TimeSeriesPoint]) -> float:
    """
    0..1 quality:
      - start at 1, minus 0.3 * share of estimated points
      - times mean confidence
      - times completeness vs. one point per ~30 days
    """
    if not points:
        return 0.0
    quality = 1.0
    estimated_ratio = sum(1 for p in points if p.is_estimated) / len(points)
    quality -= estimated_ratio * 0.3
    quality *= float(np.mean([p.confidence for p in points]))

    span_s = (points[-1].timestamp - points[0].timestamp).total_seconds()
    expected = int(span_s // _AVG_MONTH_S) + 1
    quality *= min(1.0, len(points) / expected)
    return float(clamp(quality, 0.0, 1.0))


def project_future(
    points: List[TimeSeriesPoint],
    ai_growth_rate: float,
    trend: Optional[TrendResult] = None,
) -> FutureProjection:
    """
    Compounds the series growth rate monthly (growth_rate / 12) from the last
    value, nudged by 10% of the AI growth rate per year.

    NOTE: illustrative scenario, not a forecast.
    """
    if not points:
        return FutureProjection(six_months=0.0, one_year=0.0, two_years=0.0)

    trend = trend or analyze_trend(points)
    last = points[-1].value
    # Bases floored at 0 so fractional powers stay real
    monthly = max(-1.0, trend.growth_rate / 12.0 / 100.0)
    ai_factor = max(0.0, 1.0 + (ai_growth_rate / 100.0) * 0.1)

    def _proj(months: int, ai_power: float) -> float:
        return float(last * (1.0 + monthly) ** months * ai_factor ** ai_power)

    return FutureProjection(
        six_months=_proj(6, 0.5),
        one_year=_proj(12, 1.0),
        two_years=_proj(24, 2.0),
    )


def compute_detailed_analysis(
    ai_series: Optional[Iterable[Any]],
    job_series: Optional[Iterable[Any]],
    *,
    ai_trend: Optional[TrendResult] = None,
    job_trend: Optional[TrendResult] = None,
) -> DetailedAnalysis:
    """
    Detail block shown next to a role's impact record.
    Trend strength is the stronger of the two series' trends.
    """
    ai_points = coerce_series(ai_series)
    job_points = coerce_series(job_series)
    ai_trend = ai_trend or analyze_trend(ai_points)
    job_trend = job_trend or analyze_trend(job_points)

    return DetailedAnalysis(
        trend_strength=max(ai_trend.strength, job_trend.strength),
        seasonality=round(compute_seasonality(job_points), 4),
        volatility=round(compute_return_volatility(job_points), 4),
        data_quality=round(assess_data_quality(job_points), 4),
        future_projection=project_future(job_points, ai_trend.growth_rate, job_trend),
    )
