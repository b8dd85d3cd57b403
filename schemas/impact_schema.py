"""
Typed records for the Workforce Impact Analyzer.

Every record produced by the analytic pipeline is a frozen dataclass:
derived once per request, never mutated afterwards. Label fields are plain
strings constrained by the Literal aliases below.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Literal

Granularity = Literal["month", "quarter", "year"]
TrendDirection = Literal["increasing", "decreasing", "stable"]
RiskLevel = Literal["high", "medium", "low"]
Classification = Literal["disruption", "transition", "growth"]
InsightType = Literal["trend", "comparison", "prediction", "correlation"]
EntryState = Literal["fresh", "stale", "expired"]


# -----------------------------
# Time series
# -----------------------------

@dataclass(frozen=True)
class TimeSeriesPoint:
    timestamp: datetime
    value: float
    confidence: float              # 0..1
    is_estimated: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "value": self.value,
            "confidence": self.confidence,
            "is_estimated": self.is_estimated,
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class SeriesCompleteness:
    completeness: float            # 0..1 share of grid timestamps backed by a point
    missing_periods: List[datetime]
    estimated_count: int


# -----------------------------
# Analysis results
# -----------------------------

@dataclass(frozen=True)
class TrendResult:
    direction: str                 # increasing | decreasing | stable
    strength: float                # |pearson r|, 0..1
    growth_rate: float             # percent, first -> last
    slope: float = 0.0
    points: int = 0
    growth_defined: bool = False   # False when growth_rate is the zero-first-value guard


@dataclass(frozen=True)
class ImpactResult:
    role_id: str
    ai_growth_rate: float
    job_demand_change: float
    impact_score: float
    risk_level: str                # high | medium | low
    classification: str            # disruption | transition | growth

    def to_dict(self) -> Dict[str, Any]:
        return {
            "role_id": self.role_id,
            "ai_growth_rate": self.ai_growth_rate,
            "job_demand_change": self.job_demand_change,
            "impact_score": self.impact_score,
            "risk_level": self.risk_level,
            "classification": self.classification,
        }


@dataclass(frozen=True)
class FutureProjection:
    six_months: float
    one_year: float
    two_years: float


@dataclass(frozen=True)
class DetailedAnalysis:
    trend_strength: float
    seasonality: float
    volatility: float
    data_quality: float
    future_projection: FutureProjection


@dataclass(frozen=True)
class RoleAnalysis:
    impact: ImpactResult
    detail: DetailedAnalysis


@dataclass(frozen=True)
class Insight:
    id: str
    type: str                      # trend | comparison | prediction | correlation
    title: str
    description: str
    confidence: float              # 0..1
    relevant_data: List[str] = field(default_factory=list)
    actionable: bool = False


# -----------------------------
# Roles
# -----------------------------

@dataclass(frozen=True)
class JobRole:
    id: str
    name: str
    category: str
    description: str = ""
    aliases: List[str] = field(default_factory=list)


# -----------------------------
# Cache
# -----------------------------

@dataclass(frozen=True)
class CacheEntry:
    data: Any
    created_at: float              # seconds on the cache clock
    expires_at: float

    @property
    def ttl(self) -> float:
        return self.expires_at - self.created_at

    def elapsed_fraction(self, now: float) -> float:
        return (now - self.created_at) / self.ttl


@dataclass(frozen=True)
class CacheStats:
    size: int
    max_size: int
    hit_rate: float
    entries: List[Dict[str, Any]] = field(default_factory=list)  # [{key, age, expires_in}]
