"""
Insight generation for the Workforce Impact Analyzer.

Turns a batch of impact records into a short list of plain-English
observations: market overview, single-role or side-by-side comparison,
risk alerts, growth opportunities and AI/job correlation.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence

from analysis.trend import correlation
from config import CLASSIFICATIONS, JOB_ROLE_CATALOGUE, RISK_LEVELS
from schemas.impact_schema import ImpactResult, Insight, JobRole, TimeSeriesPoint, TrendResult
from utils.helpers import new_id

MAX_INSIGHTS = 10


# -----------------------------
# Role lookup
# -----------------------------

def default_roles() -> Dict[str, JobRole]:
    return {
        str(r["id"]): JobRole(
            id=str(r["id"]),
            name=str(r["name"]),
            category=str(r["category"]),
            description=str(r.get("description", "")),
            aliases=list(r.get("aliases", [])),
        )
        for r in JOB_ROLE_CATALOGUE
    }


def _role_name(role_id: str, roles: Dict[str, JobRole]) -> str:
    role = roles.get(role_id)
    return role.name if role else role_id


# -----------------------------
# Individual insight builders
# -----------------------------

def _market_overview(ai_trend: TrendResult, impacts: Sequence[ImpactResult]) -> Insight:
    high = sum(1 for i in impacts if i.risk_level == "high")
    growth = sum(1 for i in impacts if i.classification == "growth")
    return Insight(
        id=new_id(),
        type="trend",
        title="AI Development Acceleration Impact",
        description=(
            f"AI activity changed {ai_trend.growth_rate:.1f}% over the window, affecting "
            f"{len(impacts)} analyzed roles. {high} roles face high disruption risk while "
            f"{growth} roles show growth opportunities."
        ),
        confidence=0.85,
        relevant_data=[i.role_id for i in impacts],
        actionable=True,
    )


def _single_role(impact: ImpactResult, roles: Dict[str, JobRole]) -> Insight:
    name = _role_name(impact.role_id, roles)
    cls = CLASSIFICATIONS[impact.classification]
    risk = RISK_LEVELS[impact.risk_level]
    return Insight(
        id=new_id(),
        type="trend",
        title=f"{name}: {cls['label']} Analysis",
        description=(
            f"{name} positions are classified as {cls['description'].lower()}. With "
            f"{impact.job_demand_change:.1f}% job market change and an AI impact score of "
            f"{impact.impact_score:.1f}, this role shows {risk['label'].lower()} characteristics."
        ),
        confidence=0.82,
        relevant_data=[impact.role_id],
        actionable=True,
    )


def _comparison(a: ImpactResult, b: ImpactResult, roles: Dict[str, JobRole]) -> Insight:
    name_a, name_b = _role_name(a.role_id, roles), _role_name(b.role_id, roles)
    score_diff = abs(a.impact_score - b.impact_score)
    demand_diff = abs(a.job_demand_change - b.job_demand_change)
    pressured = name_a if a.impact_score > b.impact_score else name_b
    return Insight(
        id=new_id(),
        type="comparison",
        title=f"{name_a} vs {name_b}: Strategic Comparison",
        description=(
            f"Comparing {name_a} ({a.classification}) and {name_b} ({b.classification}) shows a "
            f"{score_diff:.1f} point difference in AI impact scores and a {demand_diff:.1f}% "
            f"difference in job demand trends. {pressured} shows higher transformation pressure."
        ),
        confidence=0.78,
        relevant_data=[a.role_id, b.role_id],
        actionable=True,
    )


def _demand_gap(ai_trend: TrendResult, job_trends: Dict[str, TrendResult]) -> Optional[Insight]:
    if not job_trends:
        return None
    avg_job = sum(t.growth_rate for t in job_trends.values()) / len(job_trends)
    outpaces = ai_trend.growth_rate > avg_job
    return Insight(
        id=new_id(),
        type="correlation",
        title="AI-Job Market Growth Gap",
        description=(
            f"AI development growth ({ai_trend.growth_rate:.1f}%) "
            f"{'outpaces' if outpaces else 'trails'} average job market growth ({avg_job:.1f}%), "
            + (
                "suggesting increasing automation pressure across traditional roles."
                if outpaces
                else "suggesting demand is keeping up with AI adoption for now."
            )
        ),
        confidence=0.75,
        relevant_data=list(job_trends.keys()),
        actionable=False,
    )


def _risk_alert(impacts: Sequence[ImpactResult], roles: Dict[str, JobRole]) -> Optional[Insight]:
    high = [i for i in impacts if i.risk_level == "high"]
    if not high:
        return None
    names = ", ".join(_role_name(i.role_id, roles) for i in high)
    return Insight(
        id=new_id(),
        type="prediction",
        title="High-Risk Role Alert",
        description=(
            f"{len(high)} roles ({names}) face high disruption risk from AI advancement. "
            "Upskilling toward AI collaboration and human-centric skills is the priority."
        ),
        confidence=0.88,
        relevant_data=[i.role_id for i in high],
        actionable=True,
    )


def _opportunity(impacts: Sequence[ImpactResult], roles: Dict[str, JobRole]) -> Optional[Insight]:
    growth = [i for i in impacts if i.classification == "growth"]
    if not growth:
        return None
    # Most negative impact score = least AI pressure relative to demand
    top = min(growth, key=lambda i: i.impact_score)
    name = _role_name(top.role_id, roles)
    return Insight(
        id=new_id(),
        type="prediction",
        title="Growth Opportunity Spotlight",
        description=(
            f"{name} shows the strongest growth potential with {top.job_demand_change:.1f}% "
            "demand change. The role benefits from AI complementarity rather than replacement."
        ),
        confidence=0.83,
        relevant_data=[top.role_id],
        actionable=True,
    )


def _correlation(
    ai_series: Sequence[TimeSeriesPoint],
    job_series_by_role: Dict[str, Sequence[TimeSeriesPoint]],
) -> Optional[Insight]:
    if not job_series_by_role:
        return None
    ai_values = [p.value for p in ai_series]
    rs = [correlation(ai_values, [p.value for p in s]) for s in job_series_by_role.values()]
    avg_r = sum(rs) / len(rs)
    sign = "positive" if avg_r > 0 else "negative"
    strength = "strong" if abs(avg_r) > 0.5 else "moderate"
    dynamics = "complementary" if avg_r > 0 else "competitive"
    return Insight(
        id=new_id(),
        type="correlation",
        title="AI-Employment Correlation Analysis",
        description=(
            f"AI development and job market series show {sign} correlation (r={avg_r:.2f}). "
            f"This {strength} relationship points to {dynamics} dynamics between AI growth and employment."
        ),
        confidence=0.72,
        relevant_data=list(job_series_by_role.keys()),
        actionable=False,
    )


# -----------------------------
# Public API
# -----------------------------

def generate_insights(
    impacts: Sequence[ImpactResult],
    *,
    ai_trend: TrendResult,
    job_trends: Dict[str, TrendResult],
    ai_series: Sequence[TimeSeriesPoint] = (),
    job_series_by_role: Optional[Dict[str, Sequence[TimeSeriesPoint]]] = None,
    comparison_mode: bool = False,
    roles: Optional[Dict[str, JobRole]] = None,
) -> List[Insight]:
    """
    Returns up to 10 insights, actionable ones first, then by confidence.
    """
    roles = roles if roles is not None else default_roles()
    out: List[Optional[Insight]] = [_market_overview(ai_trend, impacts)]

    if len(impacts) == 1:
        out.append(_single_role(impacts[0], roles))
    elif len(impacts) == 2 and comparison_mode:
        out.append(_comparison(impacts[0], impacts[1], roles))

    out.append(_demand_gap(ai_trend, job_trends))
    out.append(_risk_alert(impacts, roles))
    out.append(_opportunity(impacts, roles))
    out.append(_correlation(ai_series, job_series_by_role or {}))

    insights = [i for i in out if i is not None]
    insights.sort(key=lambda i: (not i.actionable, -i.confidence))
    return insights[:MAX_INSIGHTS]
