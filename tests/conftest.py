"""
Shared fixtures: a manual clock for cache expiry and monthly series builders.
"""

from datetime import datetime
from typing import Dict, List, Optional

import pytest

from schemas.impact_schema import TimeSeriesPoint


class FakeClock:
    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def monthly_points(values: List[float], *, year: int = 2023, confidence: float = 1.0) -> List[TimeSeriesPoint]:
    """One point per month starting January of `year`."""
    out = []
    for i, v in enumerate(values):
        y, m = year + i // 12, i % 12 + 1
        out.append(TimeSeriesPoint(timestamp=datetime(y, m, 1), value=float(v), confidence=confidence))
    return out


def monthly_dicts(values: List[float], *, year: int = 2023) -> List[Dict[str, object]]:
    return [
        {"timestamp": f"{year + i // 12}-{i % 12 + 1:02d}-01", "value": v, "confidence": 0.9}
        for i, v in enumerate(values)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def window():
    return datetime(2023, 1, 1), datetime(2023, 12, 1)


@pytest.fixture
def monthly():
    return monthly_points


@pytest.fixture
def monthly_raw():
    return monthly_dicts
