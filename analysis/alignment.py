# analysis/alignment.py
# Align sparse, irregular series onto a regular month/quarter/year grid.
# Real observations near a grid timestamp are reused; gaps are interpolated
# or extrapolated with decaying confidence so scoring can discount them.

from __future__ import annotations

import bisect
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from config import ALIGNMENT_CFG, AlignmentConfig
from schemas.impact_schema import SeriesCompleteness, TimeSeriesPoint
from utils.helpers import clamp, epoch_seconds, grid_timestamps, to_datetime, to_float


# -----------------------------
# Input coercion
# -----------------------------

def _coerce_point(raw: Any) -> Optional[TimeSeriesPoint]:
    """
    Accepts a TimeSeriesPoint or a mapping with timestamp/date, value,
    confidence, is_estimated/isEstimated and metadata keys.
    Returns None for anything that cannot be placed on a time axis.
    """
    if isinstance(raw, TimeSeriesPoint):
        ts, value, conf = raw.timestamp, raw.value, raw.confidence
        estimated, metadata = raw.is_estimated, raw.metadata
    elif isinstance(raw, dict):
        ts = raw.get("timestamp", raw.get("date"))
        value = raw.get("value")
        conf = raw.get("confidence", 1.0)
        estimated = raw.get("is_estimated", raw.get("isEstimated", False))
        metadata = raw.get("metadata") or {}
    else:
        return None

    dt = to_datetime(ts)
    v = to_float(value)
    if dt is None or v is None:
        return None

    c = to_float(conf)
    c = clamp(c, 0.0, 1.0) if c is not None else 0.0
    return TimeSeriesPoint(
        timestamp=dt,
        value=v,
        confidence=c,
        is_estimated=bool(estimated),
        metadata=dict(metadata) if isinstance(metadata, dict) else {},
    )


def coerce_series(raw: Optional[Iterable[Any]]) -> List[TimeSeriesPoint]:
    """
    Builds a clean series from caller data:
      - drops malformed points
      - sorts ascending by timestamp (stable, so input order breaks ties)
      - de-duplicates same-day points (first one wins)
    The caller's list is never modified.
    """
    points: List[TimeSeriesPoint] = []
    try:
        items = list(raw or [])
    except TypeError:
        return []

    for p in items:
        cp = _coerce_point(p)
        if cp is not None:
            points.append(cp)

    points.sort(key=lambda p: p.timestamp)

    out: List[TimeSeriesPoint] = []
    seen_days = set()
    for p in points:
        day = p.timestamp.date()
        if day in seen_days:
            continue
        seen_days.add(day)
        out.append(p)
    return out


# -----------------------------
# Synthesis
# -----------------------------

def _zero_fill(target: datetime) -> TimeSeriesPoint:
    return TimeSeriesPoint(
        timestamp=target,
        value=0.0,
        confidence=0.0,
        is_estimated=True,
        metadata={"interpolation_method": "zero-fill"},
    )


def _nearest_within(
    points: List[TimeSeriesPoint],
    keys: List[float],
    target_s: float,
    tolerance_s: float,
) -> Optional[TimeSeriesPoint]:
    i = bisect.bisect_left(keys, target_s)
    best: Optional[Tuple[float, TimeSeriesPoint]] = None
    for j in (i - 1, i):
        if 0 <= j < len(points):
            dist = abs(keys[j] - target_s)
            if dist <= tolerance_s and (best is None or dist < best[0]):
                best = (dist, points[j])
    return best[1] if best else None


def _synthesize(
    points: List[TimeSeriesPoint],
    keys: List[float],
    target: datetime,
    cfg: AlignmentConfig,
) -> TimeSeriesPoint:
    if not points:
        return _zero_fill(target)

    if len(points) == 1:
        src = points[0]
        return TimeSeriesPoint(
            timestamp=target,
            value=src.value,
            confidence=max(0.0, src.confidence - cfg.single_point_penalty),
            is_estimated=True,
            metadata={"interpolation_method": "constant", "source_point": src.timestamp.isoformat()},
        )

    target_s = epoch_seconds(target)
    i = bisect.bisect_left(keys, target_s)
    before = points[i - 1] if i > 0 else None
    after = points[i] if i < len(points) else None

    if before is not None and after is not None:
        span = keys[i] - keys[i - 1]
        ratio = (target_s - keys[i - 1]) / span if span else 0.0
        return TimeSeriesPoint(
            timestamp=target,
            value=before.value + (after.value - before.value) * ratio,
            confidence=min(before.confidence, after.confidence) * cfg.interpolation_factor,
            is_estimated=True,
            metadata={
                "interpolation_method": "linear",
                "before_point": before.timestamp.isoformat(),
                "after_point": after.timestamp.isoformat(),
                "ratio": ratio,
            },
        )

    # Outside the observed range: hold the nearest boundary value
    ref = before if before is not None else after
    return TimeSeriesPoint(
        timestamp=target,
        value=ref.value,
        confidence=max(0.0, ref.confidence - cfg.extrapolation_penalty),
        is_estimated=True,
        metadata={"interpolation_method": "extrapolation", "source_point": ref.timestamp.isoformat()},
    )


# -----------------------------
# Public API
# -----------------------------

def align_series(
    series: Optional[Iterable[Any]],
    start: Any,
    end: Any,
    granularity: str = "month",
    *,
    cfg: AlignmentConfig = ALIGNMENT_CFG,
) -> List[TimeSeriesPoint]:
    """
    Normalizes `series` onto the grid [start, end] stepped by `granularity`.

    One output point per grid timestamp, ascending:
      - an observation within the match tolerance is reused verbatim
      - no observations          -> 0 / confidence 0
      - a single observation     -> its value, confidence - 0.2
      - bracketed by two points  -> linear interpolation, min(conf) * 0.8
      - outside observed range   -> nearest boundary value, confidence - 0.3
    Never raises; bad input degrades to the zero-fill fallback.
    """
    targets = grid_timestamps(start, end, granularity)
    if not targets:
        return []

    points = coerce_series(series)
    keys = [epoch_seconds(p.timestamp) for p in points]

    aligned: List[TimeSeriesPoint] = []
    for target in targets:
        existing = _nearest_within(points, keys, epoch_seconds(target), cfg.match_tolerance_s)
        if existing is not None:
            aligned.append(existing)
        else:
            aligned.append(_synthesize(points, keys, target, cfg))
    return aligned


def align_sources(
    ai_series: Optional[Iterable[Any]],
    job_series_by_role: Dict[str, Optional[Iterable[Any]]],
    start: Any,
    end: Any,
    granularity: str = "month",
) -> Tuple[List[TimeSeriesPoint], Dict[str, List[TimeSeriesPoint]]]:
    """
    Aligns the AI activity series and every role's demand series onto one grid.
    """
    aligned_ai = align_series(ai_series, start, end, granularity)
    aligned_jobs = {
        role_id: align_series(series, start, end, granularity)
        for role_id, series in (job_series_by_role or {}).items()
    }
    return aligned_ai, aligned_jobs


def filter_series(
    series: Optional[Iterable[Any]],
    *,
    min_confidence: Optional[float] = None,
    exclude_estimated: bool = False,
    window: Optional[Tuple[Any, Any]] = None,
) -> List[TimeSeriesPoint]:
    """
    Returns a new series keeping only points that pass every given filter.
    """
    points = coerce_series(series)

    lo = hi = None
    if window is not None:
        lo, hi = to_datetime(window[0]), to_datetime(window[1])

    out: List[TimeSeriesPoint] = []
    for p in points:
        if min_confidence is not None and p.confidence < min_confidence:
            continue
        if exclude_estimated and p.is_estimated:
            continue
        if lo is not None and p.timestamp < lo:
            continue
        if hi is not None and p.timestamp > hi:
            continue
        out.append(p)
    return out


def series_completeness(
    series: Optional[Iterable[Any]],
    start: Any,
    end: Any,
    granularity: str = "month",
    *,
    cfg: AlignmentConfig = ALIGNMENT_CFG,
) -> SeriesCompleteness:
    """
    How much of the expected grid is backed by a point (within tolerance).
    """
    points = coerce_series(series)
    targets = grid_timestamps(start, end, granularity)
    if not points or not targets:
        return SeriesCompleteness(completeness=0.0, missing_periods=[], estimated_count=0)

    keys = [epoch_seconds(p.timestamp) for p in points]
    missing = [
        t for t in targets
        if _nearest_within(points, keys, epoch_seconds(t), cfg.match_tolerance_s) is None
    ]
    estimated = sum(1 for p in points if p.is_estimated)
    return SeriesCompleteness(
        completeness=(len(targets) - len(missing)) / len(targets),
        missing_periods=missing,
        estimated_count=estimated,
    )
