"""
services/orchestrator.py

Wires the analytic pipeline per role:

    raw series -> align -> trend -> impact score -> ImpactResult

and memoizes whole requests in a ResultCache keyed by
(role set, time window, granularity). Stale results are served immediately
while a background refresh recomputes them.
"""

from __future__ import annotations

import asyncio
import functools
import logging
import re
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar

from analysis.alignment import align_series, align_sources
from analysis.impact import score_impact
from analysis.insights import default_roles, generate_insights
from analysis.role_metrics import compute_detailed_analysis
from analysis.trend import analyze_trend
from config import GRANULARITY_OPTIONS, ORCHESTRATOR_CFG, OrchestratorConfig
from schemas.impact_schema import ImpactResult, Insight, RoleAnalysis
from services.providers import SeriesProvider
from utils.cache import ResultCache, make_cache_key
from utils.helpers import to_datetime

logger = logging.getLogger(__name__)

T = TypeVar("T")

IMPACT_NAMESPACE = "role-impact"
INSIGHTS_NAMESPACE = "insights"


def _unique(role_ids: Iterable[str]) -> List[str]:
    seen = set()
    out: List[str] = []
    for r in role_ids or []:
        if r not in seen:
            seen.add(r)
            out.append(r)
    return out


def _as_impacts(cached: Any) -> List[ImpactResult]:
    """
    Cached results are ImpactResult records, or plain dicts after a cache
    import round-trip.
    """
    out: List[ImpactResult] = []
    for item in cached or []:
        out.append(item if isinstance(item, ImpactResult) else ImpactResult(**item))
    return out


def _as_insights(cached: Any) -> List[Insight]:
    return [i if isinstance(i, Insight) else Insight(**i) for i in cached or []]


def _window_repr(raw: Any) -> str:
    dt = to_datetime(raw)
    return dt.isoformat() if dt is not None else str(raw)


class AnalysisOrchestrator:
    def __init__(
        self,
        cache: ResultCache,
        provider: Optional[SeriesProvider] = None,
        *,
        config: OrchestratorConfig = ORCHESTRATOR_CFG,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.cache = cache
        self.provider = provider
        self.config = config
        self._sleep = sleep

    # -----------------------------
    # Keys
    # -----------------------------
    def _granularity(self, granularity: Optional[str]) -> str:
        g = granularity or self.config.default_granularity
        if g not in GRANULARITY_OPTIONS:
            logger.warning("Unknown granularity %r, using %s", g, self.config.default_granularity)
            return self.config.default_granularity
        return g

    def cache_key(
        self,
        role_ids: Sequence[str],
        start: Any,
        end: Any,
        granularity: Optional[str] = None,
        *,
        namespace: str = IMPACT_NAMESPACE,
        **extra: Any,
    ) -> str:
        return make_cache_key(
            namespace,
            roles=sorted(set(role_ids)),
            start=_window_repr(start),
            end=_window_repr(end),
            granularity=self._granularity(granularity),
            **extra,
        )

    # -----------------------------
    # Pure pipeline
    # -----------------------------
    def analyze_role(
        self,
        role_id: str,
        ai_series: Optional[Iterable[Any]],
        job_series: Optional[Iterable[Any]],
        start: Any,
        end: Any,
        granularity: Optional[str] = None,
    ) -> ImpactResult:
        g = self._granularity(granularity)
        ai_trend = analyze_trend(align_series(ai_series, start, end, g))
        job_trend = analyze_trend(align_series(job_series, start, end, g))
        return score_impact(ai_trend, job_trend, role_id)

    def analyze_role_detailed(
        self,
        role_id: str,
        ai_series: Optional[Iterable[Any]],
        job_series: Optional[Iterable[Any]],
        start: Any,
        end: Any,
        granularity: Optional[str] = None,
    ) -> RoleAnalysis:
        g = self._granularity(granularity)
        aligned_ai = align_series(ai_series, start, end, g)
        aligned_job = align_series(job_series, start, end, g)
        ai_trend = analyze_trend(aligned_ai)
        job_trend = analyze_trend(aligned_job)
        return RoleAnalysis(
            impact=score_impact(ai_trend, job_trend, role_id),
            detail=compute_detailed_analysis(aligned_ai, aligned_job, ai_trend=ai_trend, job_trend=job_trend),
        )

    def analyze_series(
        self,
        ai_series: Optional[Iterable[Any]],
        job_series_by_role: Dict[str, Optional[Iterable[Any]]],
        start: Any,
        end: Any,
        granularity: Optional[str] = None,
    ) -> List[ImpactResult]:
        """
        One ImpactResult per role, in the order of `job_series_by_role`.
        The AI trend is computed once and shared by every role.
        """
        g = self._granularity(granularity)
        aligned_ai, aligned_jobs = align_sources(ai_series, job_series_by_role, start, end, g)
        ai_trend = analyze_trend(aligned_ai)
        return [
            score_impact(ai_trend, analyze_trend(series), role_id)
            for role_id, series in aligned_jobs.items()
        ]

    # -----------------------------
    # Provider access
    # -----------------------------
    def _require_provider(self) -> SeriesProvider:
        if self.provider is None:
            raise RuntimeError("No series provider configured for this orchestrator.")
        return self.provider

    async def _with_retries(self, label: str, op: Callable[[], Awaitable[T]]) -> T:
        """
        Exponential backoff: base * 2^(attempt-1), capped at max_backoff_s.
        Re-raises the last error once attempts are exhausted.
        """
        attempts = max(1, int(self.config.fetch_retries))
        last_err: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                return await op()
            except Exception as e:
                last_err = e
                if attempt == attempts:
                    break
                delay = min(self.config.base_backoff_s * (2 ** (attempt - 1)), self.config.max_backoff_s)
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s", label, attempt, attempts, delay, e
                )
                await self._sleep(delay)
        logger.error("%s failed after %d attempts: %s", label, attempts, last_err)
        raise last_err

    async def _fetch(self, role_ids: List[str], start: Any, end: Any):
        provider = self._require_provider()
        s, e = to_datetime(start), to_datetime(end)
        if s is None or e is None:
            # Nothing to fetch; the aligner turns an unusable window into empty series
            logger.warning("Unparseable analysis window (%r, %r), skipping fetch", start, end)
            return [], {}
        return await asyncio.gather(
            self._with_retries("AI series fetch", lambda: provider.fetch_ai_series(s, e)),
            self._with_retries("Job series fetch", lambda: provider.fetch_job_series(role_ids, s, e)),
        )

    async def _compute_impacts(self, role_ids: List[str], start: Any, end: Any, granularity: str) -> List[ImpactResult]:
        ai_raw, jobs_raw = await self._fetch(role_ids, start, end)
        ordered = {r: (jobs_raw or {}).get(r, []) for r in role_ids}
        return self.analyze_series(ai_raw, ordered, start, end, granularity)

    # -----------------------------
    # Cached entry points
    # -----------------------------
    async def analyze_roles(
        self,
        role_ids: Sequence[str],
        start: Any,
        end: Any,
        granularity: Optional[str] = None,
        *,
        ttl: Optional[float] = None,
    ) -> List[ImpactResult]:
        """
        Impact records for `role_ids` (request order, duplicates dropped).

        Identical (role set, window, granularity) requests are served from the
        cache; a stale entry is returned as-is while a background refresh runs.
        """
        roles = _unique(role_ids)
        g = self._granularity(granularity)
        key = self.cache_key(roles, start, end, g)
        ttl = ttl if ttl is not None else self.cache.ttl_for(IMPACT_NAMESPACE)
        factory = functools.partial(self._compute_impacts, sorted(roles), start, end, g)

        current = await self.cache.refresh_if_needed(key, factory, ttl=ttl)
        if current is None:
            current = await self.cache.get_or_compute(key, factory, ttl)

        by_role = {i.role_id: i for i in _as_impacts(current)}
        return [by_role[r] for r in roles if r in by_role]

    async def generate_insights(
        self,
        role_ids: Sequence[str],
        start: Any,
        end: Any,
        granularity: Optional[str] = None,
        *,
        comparison_mode: bool = False,
        ttl: Optional[float] = None,
    ) -> List[Insight]:
        roles = _unique(role_ids)
        g = self._granularity(granularity)
        key = self.cache_key(roles, start, end, g, namespace=INSIGHTS_NAMESPACE, comparison=comparison_mode)
        ttl = ttl if ttl is not None else self.cache.ttl_for(INSIGHTS_NAMESPACE)

        async def _build() -> List[Insight]:
            ai_raw, jobs_raw = await self._fetch(roles, start, end)
            aligned_ai, aligned_jobs = align_sources(
                ai_raw, {r: (jobs_raw or {}).get(r, []) for r in roles}, start, end, g
            )
            ai_trend = analyze_trend(aligned_ai)
            job_trends = {r: analyze_trend(s) for r, s in aligned_jobs.items()}
            impacts = [score_impact(ai_trend, job_trends[r], r) for r in roles]
            return generate_insights(
                impacts,
                ai_trend=ai_trend,
                job_trends=job_trends,
                ai_series=aligned_ai,
                job_series_by_role=aligned_jobs,
                comparison_mode=comparison_mode,
                roles=default_roles(),
            )

        return _as_insights(await self.cache.get_or_compute(key, _build, ttl))

    def invalidate(self, role_id: Optional[str] = None) -> int:
        """
        Drops cached analyses: all of them, or only those covering `role_id`.
        """
        namespaces = f"(?:{IMPACT_NAMESPACE}|{INSIGHTS_NAMESPACE})"
        if role_id is None:
            return self.cache.invalidate_pattern(rf"^{namespaces}:")
        # Role ids are JSON-quoted inside the roles:[...] key part
        quoted = re.escape(f'"{role_id}"')
        return self.cache.invalidate_pattern(rf"^{namespaces}:.*roles:\[[^\]]*{quoted}")
