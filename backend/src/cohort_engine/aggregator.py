"""
Cohort aggregator: mean of each dimension over the patients matching a source patient.

Eligibility is the AND of every dimension's matcher, starting from the whole
cohort. Each dimension's mean is then taken over that eligible set, using
every eligible patient's latest value for the dimension's column.
"""

from __future__ import annotations

import logging
from numbers import Number
from typing import Any, Dict, Iterable, List, Mapping, Sequence

import numpy as np

from .matchers import as_number, build_matcher, match_all
from .models import DEMOGRAPHICS_DATASET_ID, CohortData, PatientRecord, Row
from .schemas import ColumnType, ComparisonDimension

logger = logging.getLogger(__name__)


CohortMean = Dict[str, Dict[str, float]]


def _coerce_dimensions(
    dimensions: Iterable[ComparisonDimension | Mapping[str, Any]],
) -> List[ComparisonDimension]:
    return [ComparisonDimension.model_validate(dim) for dim in dimensions]


def _resolve_column_type(
    cohort: CohortData, dim: ComparisonDimension, source: PatientRecord
) -> ColumnType | None:
    column_type = cohort.column_type(dim.dataset_id, dim.column)
    if column_type is not None or dim.dataset_id != DEMOGRAPHICS_DATASET_ID:
        return column_type

    # Demographics carry no schema; infer from the source patient's own value
    if dim.column not in source.demographics:
        return None
    value = source.demographics[dim.column]
    if isinstance(value, Number) and not isinstance(value, bool):
        return ColumnType.NUMERIC
    return ColumnType.STRING


def eligible_patients(
    cohort: CohortData,
    dimensions: Sequence[ComparisonDimension],
    source_patient_id: str | None,
) -> List[str]:
    """Ids of patients matching the source patient on every dimension."""
    source = cohort.patients.get(str(source_patient_id)) if source_patient_id is not None else None
    if source is None:
        return cohort.patient_ids

    eligible = dict(cohort.patients)
    for dim in dimensions:
        column_type = _resolve_column_type(cohort, dim, source)
        if column_type is None:
            logger.warning(
                "Unknown dataset/column %s.%s; dimension not filtered",
                dim.dataset_id,
                dim.column,
            )
            continue

        matcher = build_matcher(dim, source, column_type)
        if matcher is match_all:
            continue
        eligible = {pid: patient for pid, patient in eligible.items() if matcher(patient)}

    return list(eligible.keys())


def latest_value(rows: Sequence[Row] | None, column: str) -> float | None:
    """Last numeric value of `column` in the rows' stored order."""
    if not rows:
        return None
    for row in reversed(rows):
        value = as_number(row.get(column))
        if value is not None:
            return value
    return None


def mean_value(cohort: CohortData, patient_ids: Iterable[str], dim: ComparisonDimension) -> float:
    values = []
    for pid in patient_ids:
        patient = cohort.patients.get(pid)
        if patient is None:
            continue
        value = latest_value(patient.rows(dim.dataset_id), dim.column)
        if value is not None:
            values.append(value)

    if not values:
        return float(np.nan)
    return float(np.mean(values))


def get_cohort_mean(
    cohort: CohortData,
    dimensions: Iterable[ComparisonDimension | Mapping[str, Any]],
    source_patient_id: str | None,
) -> CohortMean:
    """
    Mean value per (dataset, column) among patients matching the source patient.

    Args:
        cohort: Cohort built by the transformer
        dimensions: Comparison dimensions; models or plain dicts
        source_patient_id: Patient the cohort is compared against. An
            unknown id disables filtering altogether.

    Returns:
        ``{dataset_id: {column: mean}}``; ``nan`` where no eligible patient
        has a value
    """
    dims = _coerce_dimensions(dimensions)
    matches = eligible_patients(cohort, dims, source_patient_id)
    logger.debug(
        "Source '%s': %d of %d patients eligible across %d dimensions",
        source_patient_id,
        len(matches),
        len(cohort.patients),
        len(dims),
    )

    result: CohortMean = {}
    for dim in dims:
        result.setdefault(dim.dataset_id, {})[dim.column] = mean_value(cohort, matches, dim)
    return result


__all__ = [
    "CohortMean",
    "eligible_patients",
    "latest_value",
    "mean_value",
    "get_cohort_mean",
]
