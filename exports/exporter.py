# exports/exporter.py
# Export impact records and role analyses as CSV/JSON bytes.
# json_safe() is also the serializer behind the cache export payload.

from __future__ import annotations

import dataclasses
import json
from datetime import date, datetime
from typing import Any, Dict, Iterable, List

import pandas as pd

from schemas.impact_schema import ImpactResult, RoleAnalysis

IMPACT_COLUMNS: List[str] = [
    "role_id",
    "ai_growth_rate",
    "job_demand_change",
    "impact_score",
    "risk_level",
    "classification",
]


def json_safe(obj: Any) -> Any:
    """
    Convert non-JSON-serializable objects into safe representations.
    Handles: dataclasses, pandas/numpy types, datetimes, sets, bytes, and fallback to str().
    """
    # Primitive fast-path
    if obj is None or isinstance(obj, (bool, int, float, str)):
        return obj

    # Datetime-like (pandas Timestamp is a datetime subclass)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()

    # Records
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: json_safe(getattr(obj, f.name)) for f in dataclasses.fields(obj)}

    # Pandas / numpy scalars
    if hasattr(obj, "item") and callable(getattr(obj, "item")):
        try:
            return obj.item()
        except (TypeError, ValueError):
            pass

    if isinstance(obj, dict):
        return {str(k): json_safe(v) for k, v in obj.items()}

    if isinstance(obj, (list, tuple)):
        return [json_safe(x) for x in obj]

    if isinstance(obj, (set, frozenset)):
        return [json_safe(x) for x in sorted(obj, key=lambda x: str(x))]

    if isinstance(obj, (bytes, bytearray)):
        return obj.decode("utf-8", errors="ignore")

    # Fallback string
    return str(obj)


def impacts_to_frame(impacts: Iterable[ImpactResult]) -> pd.DataFrame:
    rows = [i.to_dict() for i in impacts or []]
    df = pd.DataFrame(rows)
    if df.empty:
        return pd.DataFrame(columns=IMPACT_COLUMNS)
    for col in ["ai_growth_rate", "job_demand_change", "impact_score"]:
        df[col] = pd.to_numeric(df[col], errors="coerce")
    return df[IMPACT_COLUMNS]


def impacts_to_csv_bytes(impacts: Iterable[ImpactResult]) -> bytes:
    return impacts_to_frame(impacts).to_csv(index=False).encode("utf-8")


def flatten_for_csv(data: Dict[str, Any], *, prefix: str = "") -> Dict[str, Any]:
    """
    Flatten nested dicts into a single-level dict for CSV-friendly exports.
    Lists are stringified as JSON.

    Example:
      {"detail": {"future_projection": {"one_year": 12.0}}}
      -> {"detail.future_projection.one_year": 12.0}
    """
    out: Dict[str, Any] = {}
    for k, v in (data or {}).items():
        key = f"{prefix}.{k}" if prefix else str(k)
        if isinstance(v, dict):
            out.update(flatten_for_csv(v, prefix=key))
        elif isinstance(v, list):
            out[key] = json.dumps(json_safe(v), ensure_ascii=False)
        else:
            out[key] = json_safe(v)
    return out


def role_analyses_to_csv_bytes(analyses: Iterable[RoleAnalysis]) -> bytes:
    rows = [flatten_for_csv(json_safe(a)) for a in analyses or []]
    df = pd.DataFrame(rows)
    return df.to_csv(index=False).encode("utf-8")


def analysis_to_json_bytes(analysis: Any) -> bytes:
    """
    Full analysis export for reproducibility.
    """
    safe = json_safe(analysis if analysis is not None else {})
    return json.dumps(safe, indent=2, ensure_ascii=False).encode("utf-8")
