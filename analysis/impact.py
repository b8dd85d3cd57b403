# analysis/impact.py
# Impact score (AI growth vs job demand, damped by volatility) and the
# ordered-rule risk classification.

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Tuple

from config import IMPACT_CFG, ImpactConfig
from schemas.impact_schema import ImpactResult, TrendResult


@dataclass(frozen=True)
class ClassificationRule:
    name: str
    predicate: Callable[[float, float], bool]   # (impact_score, job_demand_change) -> bool
    risk_level: str
    classification: str


def build_classification_rules(cfg: ImpactConfig = IMPACT_CFG) -> List[ClassificationRule]:
    """
    Rules are evaluated top to bottom; the first match wins.
    Rules 4-6 only catch what the demand co-conditions of rules 1-2 leave out
    (and NaN scores, which fail every comparison).
    """
    hi, lo = cfg.high_min, cfg.low_max
    return [
        ClassificationRule(
            "disruption_confirmed",
            lambda s, d: s > hi and d < cfg.demand_decline_max,
            "high",
            "disruption",
        ),
        ClassificationRule(
            "growth_confirmed",
            lambda s, d: s < lo and d > cfg.demand_growth_min,
            "low",
            "growth",
        ),
        ClassificationRule(
            "transition_band",
            lambda s, d: lo <= s <= hi,
            "medium",
            "transition",
        ),
        ClassificationRule(
            "disruption_band",
            lambda s, d: s > hi,
            "high",
            "disruption",
        ),
        ClassificationRule(
            "growth_band",
            lambda s, d: s < lo,
            "low",
            "growth",
        ),
        ClassificationRule(
            "fallback",
            lambda s, d: True,
            "medium",
            "transition",
        ),
    ]


CLASSIFICATION_RULES: List[ClassificationRule] = build_classification_rules()


def matching_rule(
    impact_score: float,
    job_demand_change: float,
    rules: List[ClassificationRule] = CLASSIFICATION_RULES,
) -> ClassificationRule:
    for rule in rules:
        if rule.predicate(impact_score, job_demand_change):
            return rule
    # The table always ends with a catch-all
    return rules[-1]


def classify_risk(
    impact_score: float,
    job_demand_change: float,
    rules: List[ClassificationRule] = CLASSIFICATION_RULES,
) -> Tuple[str, str]:
    """
    Returns (risk_level, classification).
    """
    rule = matching_rule(impact_score, job_demand_change, rules)
    return rule.risk_level, rule.classification


def compute_volatility(ai_growth_rate: float, job_demand_change: float, *, cfg: ImpactConfig = IMPACT_CFG) -> float:
    """
    Magnitude of both changes, each normalized by 100, averaged and capped at 1.
    """
    return min(1.0, (abs(ai_growth_rate) + abs(job_demand_change)) / cfg.volatility_divisor)


def compute_impact_score(ai_growth_rate: float, job_demand_change: float, *, cfg: ImpactConfig = IMPACT_CFG) -> float:
    """
    impact = (ai - job) * (1 - volatility * 0.1)
    """
    base = ai_growth_rate - job_demand_change
    volatility = compute_volatility(ai_growth_rate, job_demand_change, cfg=cfg)
    return base * (1.0 - volatility * cfg.volatility_damping)


def score_impact(
    ai_trend: TrendResult,
    job_trend: TrendResult,
    role_id: str = "",
    *,
    cfg: ImpactConfig = IMPACT_CFG,
) -> ImpactResult:
    """
    Combines the AI-activity trend and a role's demand trend into one record.
    """
    ai_growth = float(ai_trend.growth_rate)
    job_change = float(job_trend.growth_rate)
    impact = compute_impact_score(ai_growth, job_change, cfg=cfg)

    rules = CLASSIFICATION_RULES if cfg is IMPACT_CFG else build_classification_rules(cfg)
    risk_level, classification = classify_risk(impact, job_change, rules)

    return ImpactResult(
        role_id=role_id,
        ai_growth_rate=ai_growth,
        job_demand_change=job_change,
        impact_score=float(impact),
        risk_level=risk_level,
        classification=classification,
    )
