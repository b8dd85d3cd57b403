# services/providers.py
# Series providers: where the orchestrator gets raw AI-activity and job-demand
# series from. Real HTTP clients live outside this package; they only need to
# satisfy SeriesProvider.
# - InMemorySeriesProvider: caller-supplied series (tests, demos, pre-fetched data)
# - FallbackSeriesProvider: primary -> fallback on any fetch error

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence

from utils.helpers import to_datetime

logger = logging.getLogger(__name__)

RawSeries = List[Any]


class SeriesProvider(Protocol):
    async def fetch_ai_series(self, start: datetime, end: datetime) -> RawSeries:
        ...

    async def fetch_job_series(
        self, role_ids: Sequence[str], start: datetime, end: datetime
    ) -> Dict[str, RawSeries]:
        ...


def _point_time(p: Any) -> Optional[datetime]:
    if isinstance(p, dict):
        return to_datetime(p.get("timestamp", p.get("date")))
    return to_datetime(getattr(p, "timestamp", None))


def _within(series: Iterable[Any], start: Optional[datetime], end: Optional[datetime], pad_points: bool) -> RawSeries:
    """
    Points inside [start, end]. With pad_points, the nearest point on each
    side of the window is kept too so the aligner can interpolate at the edges.
    An open (None) bound yields nothing.
    """
    if start is None or end is None:
        return []
    items = list(series or [])
    inside: RawSeries = []
    before: Optional[Any] = None
    before_t: Optional[datetime] = None
    after: Optional[Any] = None
    after_t: Optional[datetime] = None

    for p in items:
        t = _point_time(p)
        if t is None:
            continue
        if t < start:
            if before_t is None or t > before_t:
                before, before_t = p, t
        elif t > end:
            if after_t is None or t < after_t:
                after, after_t = p, t
        else:
            inside.append(p)

    if pad_points:
        if before is not None:
            inside.insert(0, before)
        if after is not None:
            inside.append(after)
    return inside


class InMemorySeriesProvider:
    """
    Serves series held in memory. Unknown roles get an empty series, which the
    aligner turns into zero-confidence estimates.
    """

    def __init__(
        self,
        ai_series: Optional[Iterable[Any]] = None,
        job_series: Optional[Dict[str, Iterable[Any]]] = None,
        *,
        pad_window: bool = True,
    ) -> None:
        self.ai_series: RawSeries = list(ai_series or [])
        self.job_series: Dict[str, RawSeries] = {k: list(v or []) for k, v in (job_series or {}).items()}
        self.pad_window = pad_window
        self.calls = 0

    async def fetch_ai_series(self, start: datetime, end: datetime) -> RawSeries:
        self.calls += 1
        return _within(self.ai_series, start, end, self.pad_window)

    async def fetch_job_series(
        self, role_ids: Sequence[str], start: datetime, end: datetime
    ) -> Dict[str, RawSeries]:
        self.calls += 1
        return {
            role_id: _within(self.job_series.get(role_id, []), start, end, self.pad_window)
            for role_id in role_ids
        }


class FallbackSeriesProvider:
    """
    Tries `primary` first; on any error logs it and serves from `fallback`.
    """

    def __init__(self, primary: SeriesProvider, fallback: SeriesProvider) -> None:
        self.primary = primary
        self.fallback = fallback

    async def fetch_ai_series(self, start: datetime, end: datetime) -> RawSeries:
        try:
            return await self.primary.fetch_ai_series(start, end)
        except Exception as e:
            logger.warning("Primary AI series fetch failed, using fallback: %s", e)
            return await self.fallback.fetch_ai_series(start, end)

    async def fetch_job_series(
        self, role_ids: Sequence[str], start: datetime, end: datetime
    ) -> Dict[str, RawSeries]:
        try:
            return await self.primary.fetch_job_series(role_ids, start, end)
        except Exception as e:
            logger.warning("Primary job series fetch failed, using fallback: %s", e)
            return await self.fallback.fetch_job_series(role_ids, start, end)
