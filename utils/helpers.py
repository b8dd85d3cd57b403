# utils/helpers.py
# Common helper utilities: safe math, timestamp coercion, grid stepping.

from __future__ import annotations

import math
import uuid
from datetime import datetime, timezone
from typing import Any, List, Optional

import pandas as pd

from config import GRANULARITY_TO_MONTHS


# -----------------------------
# Safe math utilities
# -----------------------------

def safe_div(n: float, d: float, default: float = 0.0) -> float:
    """
    Safe division avoiding ZeroDivisionError.
    """
    try:
        if d == 0:
            return default
        return n / d
    except Exception:
        return default


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def to_float(raw: Any) -> Optional[float]:
    """
    Returns a finite float, or None for anything non-numeric / NaN / inf.
    Booleans are rejected (they are ints in Python but never a measurement).
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        v = float(raw)
    except (TypeError, ValueError):
        return None
    if math.isnan(v) or math.isinf(v):
        return None
    return v


# -----------------------------
# Date/time utilities
# -----------------------------

def to_datetime(raw: Any) -> Optional[datetime]:
    """
    Coerces datetimes, dates, ISO strings, pandas Timestamps and epoch seconds
    into a naive UTC datetime. Returns None when the input cannot be parsed.
    """
    if raw is None or isinstance(raw, bool):
        return None
    try:
        if isinstance(raw, (int, float)):
            ts = pd.Timestamp(raw, unit="s", tz="UTC")
        else:
            ts = pd.Timestamp(raw)
    except (TypeError, ValueError, OverflowError):
        return None
    if ts is pd.NaT or pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        ts = ts.tz_convert("UTC").tz_localize(None)
    return ts.to_pydatetime()


def epoch_seconds(dt: datetime) -> float:
    """
    Seconds since the epoch for a naive datetime interpreted as UTC.
    """
    return dt.replace(tzinfo=timezone.utc).timestamp()


def grid_timestamps(start: Any, end: Any, granularity: str) -> List[datetime]:
    """
    Regular grid from start to end (inclusive) stepped by whole calendar months.
    Day-of-month is kept from `start`; short months clamp to their last day.
    Unknown granularity falls back to monthly; an inverted window is empty.
    """
    s = to_datetime(start)
    e = to_datetime(end)
    if s is None or e is None or s > e:
        return []

    months = GRANULARITY_TO_MONTHS.get(granularity, 1)
    out: List[datetime] = []
    step = 0
    while True:
        current = (pd.Timestamp(s) + pd.DateOffset(months=months * step)).to_pydatetime()
        if current > e:
            break
        out.append(current)
        step += 1
    return out


def new_id() -> str:
    return uuid.uuid4().hex[:12]
