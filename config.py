# config.py
# Central configuration for the Workforce Impact Analyzer.
# Groups the alignment, trend, impact-scoring and cache tunables; cache and
# retry knobs can be overridden from the environment.

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List


# -----------------------------
# App-wide constants / defaults
# -----------------------------

GRANULARITY_OPTIONS: List[str] = ["month", "quarter", "year"]
GRANULARITY_TO_MONTHS: Dict[str, int] = {
    "month": 1,
    "quarter": 3,
    "year": 12,
}


# -----------------------------
# Alignment rules
# -----------------------------

# A real observation within this window of a grid timestamp is reused as-is
ALIGN_MATCH_TOLERANCE_S: float = 24 * 60 * 60

# Confidence decay for synthesized points
ALIGN_SINGLE_POINT_PENALTY: float = 0.2
ALIGN_INTERPOLATION_FACTOR: float = 0.8
ALIGN_EXTRAPOLATION_PENALTY: float = 0.3


# -----------------------------
# Trend rules
# -----------------------------

# |slope| below this (value units per grid step) is "stable"
TREND_STABLE_SLOPE_EPS: float = 0.1


# -----------------------------
# Impact scoring / classification rules
# -----------------------------

IMPACT_VOLATILITY_DIVISOR: float = 200.0
IMPACT_VOLATILITY_DAMPING: float = 0.1

IMPACT_HIGH_MIN: float = 30.0           # impact score above this -> disruption band
IMPACT_LOW_MAX: float = -10.0           # impact score below this -> growth band
DEMAND_DECLINE_MAX: float = -15.0       # job demand change below this confirms disruption
DEMAND_GROWTH_MIN: float = 10.0         # job demand change above this confirms growth

RISK_LEVELS: Dict[str, Dict[str, str]] = {
    "high": {
        "label": "High Disruption Risk",
        "description": "Roles at high risk of automation or significant change",
    },
    "medium": {
        "label": "Transition Role",
        "description": "Roles undergoing transformation but with adaptation opportunities",
    },
    "low": {
        "label": "Growth Opportunity",
        "description": "Roles with strong growth potential and low automation risk",
    },
}

CLASSIFICATIONS: Dict[str, Dict[str, str]] = {
    "disruption": {
        "label": "Disruption",
        "description": "High AI impact with declining job demand",
    },
    "transition": {
        "label": "Transition",
        "description": "Moderate changes requiring skill adaptation",
    },
    "growth": {
        "label": "Growth",
        "description": "Expanding opportunities with AI complementarity",
    },
}


# -----------------------------
# Job role catalogue
# -----------------------------

JOB_ROLE_CATALOGUE: List[Dict[str, object]] = [
    {
        "id": "software-developer",
        "name": "Software Developer",
        "category": "software-development",
        "description": "Designs, develops, and maintains software applications and systems",
        "aliases": ["programmer", "software engineer", "developer", "coder"],
    },
    {
        "id": "frontend-developer",
        "name": "Frontend Developer",
        "category": "software-development",
        "description": "Specializes in user interface and user experience development",
        "aliases": ["ui developer", "web developer", "react developer"],
    },
    {
        "id": "ai-engineer",
        "name": "AI Engineer",
        "category": "ai-ml",
        "description": "Develops and implements artificial intelligence and machine learning solutions",
        "aliases": ["machine learning engineer", "ml engineer", "ai developer"],
    },
    {
        "id": "data-scientist",
        "name": "Data Scientist",
        "category": "data-science",
        "description": "Analyzes complex data to extract insights and build predictive models",
        "aliases": ["research scientist", "analytics specialist"],
    },
    {
        "id": "data-analyst",
        "name": "Data Analyst",
        "category": "data-science",
        "description": "Interprets data and creates reports to support business decisions",
        "aliases": ["business analyst", "data specialist"],
    },
    {
        "id": "devops-engineer",
        "name": "DevOps Engineer",
        "category": "devops",
        "description": "Manages deployment pipelines, infrastructure, and system reliability",
        "aliases": ["site reliability engineer", "platform engineer", "cloud engineer"],
    },
    {
        "id": "manual-tester",
        "name": "Manual Tester",
        "category": "testing",
        "description": "Performs manual testing of software applications and systems",
        "aliases": ["qa tester", "quality assurance", "software tester"],
    },
    {
        "id": "ux-designer",
        "name": "UX Designer",
        "category": "design",
        "description": "Designs user experiences and interfaces for digital products",
        "aliases": ["user experience designer", "product designer"],
    },
    {
        "id": "product-manager",
        "name": "Product Manager",
        "category": "management",
        "description": "Manages product strategy, roadmap, and feature development",
        "aliases": ["product owner", "pm", "product lead"],
    },
    {
        "id": "support-engineer",
        "name": "Support Engineer",
        "category": "support",
        "description": "Resolves customer technical issues and maintains support tooling",
        "aliases": ["technical support", "help desk", "customer support engineer"],
    },
]


# -----------------------------
# Caching rules
# -----------------------------

def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


CACHE_MAX_SIZE: int = _env_int("WIA_CACHE_MAX_SIZE", 100)

# Default TTL: 1 hour
CACHE_TTL_SECONDS: float = _env_float("WIA_CACHE_TTL_S", 60 * 60)

# Serve-stale-and-refresh once 80% of the TTL has elapsed
CACHE_REFRESH_THRESHOLD: float = _env_float("WIA_CACHE_REFRESH_THRESHOLD", 0.8)

# Periodic expiry sweep
CACHE_SWEEP_INTERVAL_SECONDS: float = _env_float("WIA_CACHE_SWEEP_S", 60.0)

CACHE_EXPORT_VERSION: str = "1.0"

# Per-namespace TTL overrides
CACHE_TTL_BY_NAMESPACE: Dict[str, float] = {
    "ai-growth": 30 * 60,           # 30 minutes
    "job-market": 60 * 60,          # 1 hour
    "role-impact": 60 * 60,         # 1 hour
    "insights": 5 * 60,             # 5 minutes
}


# -----------------------------
# Provider retries
# -----------------------------

FETCH_RETRIES: int = _env_int("WIA_FETCH_RETRIES", 3)
FETCH_BASE_BACKOFF_S: float = 1.0
FETCH_MAX_BACKOFF_S: float = 10.0


# -----------------------------
# Small dataclasses for typed config
# -----------------------------

@dataclass(frozen=True)
class AlignmentConfig:
    match_tolerance_s: float = ALIGN_MATCH_TOLERANCE_S
    single_point_penalty: float = ALIGN_SINGLE_POINT_PENALTY
    interpolation_factor: float = ALIGN_INTERPOLATION_FACTOR
    extrapolation_penalty: float = ALIGN_EXTRAPOLATION_PENALTY


@dataclass(frozen=True)
class TrendConfig:
    stable_slope_eps: float = TREND_STABLE_SLOPE_EPS


@dataclass(frozen=True)
class ImpactConfig:
    volatility_divisor: float = IMPACT_VOLATILITY_DIVISOR
    volatility_damping: float = IMPACT_VOLATILITY_DAMPING
    high_min: float = IMPACT_HIGH_MIN
    low_max: float = IMPACT_LOW_MAX
    demand_decline_max: float = DEMAND_DECLINE_MAX
    demand_growth_min: float = DEMAND_GROWTH_MIN


@dataclass(frozen=True)
class CacheConfig:
    max_size: int = CACHE_MAX_SIZE
    default_ttl_s: float = CACHE_TTL_SECONDS
    refresh_threshold: float = CACHE_REFRESH_THRESHOLD
    sweep_interval_s: float = CACHE_SWEEP_INTERVAL_SECONDS
    ttl_by_namespace: Dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if int(self.max_size) <= 0:
            raise ValueError(f"max_size must be > 0, got {self.max_size}")
        if float(self.default_ttl_s) <= 0:
            raise ValueError(f"default_ttl_s must be > 0, got {self.default_ttl_s}")
        if not 0.0 < float(self.refresh_threshold) < 1.0:
            raise ValueError(f"refresh_threshold must be in (0, 1), got {self.refresh_threshold}")
        if float(self.sweep_interval_s) <= 0:
            raise ValueError(f"sweep_interval_s must be > 0, got {self.sweep_interval_s}")

    def ttl_for_namespace(self, namespace: str) -> float:
        v = (self.ttl_by_namespace or {}).get(namespace)
        return float(v) if v is not None else float(self.default_ttl_s)


@dataclass(frozen=True)
class OrchestratorConfig:
    fetch_retries: int = FETCH_RETRIES
    base_backoff_s: float = FETCH_BASE_BACKOFF_S
    max_backoff_s: float = FETCH_MAX_BACKOFF_S
    default_granularity: str = "month"


# Convenient bundles used by later modules
ALIGNMENT_CFG = AlignmentConfig()
TREND_CFG = TrendConfig()
IMPACT_CFG = ImpactConfig()
CACHE_CFG = CacheConfig(ttl_by_namespace=CACHE_TTL_BY_NAMESPACE)
ORCHESTRATOR_CFG = OrchestratorConfig()
