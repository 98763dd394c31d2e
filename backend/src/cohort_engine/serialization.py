"""
JSON-ready views of engine state.

Cohort rows carry normalized `datetime` instants and cohort means carry
``nan`` for "no data"; neither survives `json.dumps` as-is. These helpers
map them to ISO strings and ``null`` for callers shipping results onward.
"""

from __future__ import annotations

import datetime as dt
import math
from dataclasses import fields, is_dataclass
from typing import Any, Dict

import numpy as np
from pydantic import BaseModel

from .aggregator import CohortMean
from .models import CohortData


def to_jsonable(obj: Any) -> Any:
    if isinstance(obj, np.generic):
        obj = obj.item()
    if isinstance(obj, float):
        return None if math.isnan(obj) else obj
    if isinstance(obj, (dt.date, dt.time)):
        return obj.isoformat()
    if isinstance(obj, BaseModel):
        # Wire names ("schema", "matchOn") rather than attribute names
        return obj.model_dump(mode="json", by_alias=True, exclude_none=True)
    if is_dataclass(obj) and not isinstance(obj, type):
        return {f.name: to_jsonable(getattr(obj, f.name)) for f in fields(obj)}
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj


def cohort_to_dict(cohort: CohortData) -> Dict[str, Any]:
    """JSON-ready view of a cohort, e.g. for shipping patient timelines to a UI."""
    return to_jsonable(cohort)


def cohort_mean_to_dict(means: CohortMean) -> Dict[str, Dict[str, float | None]]:
    """Cohort means with ``nan`` ("no eligible value") as ``None``."""
    return to_jsonable(means)


__all__ = ["to_jsonable", "cohort_to_dict", "cohort_mean_to_dict"]
