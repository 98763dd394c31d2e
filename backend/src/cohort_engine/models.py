from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping

from .schemas import DatasetRef, DatasetSchema


Row = Dict[str, Any]

# Synthetic dataset key under which each patient carries its own demographics row
DEMOGRAPHICS_DATASET_ID = "demographics"


# ------------------------------------------------------------------------------
# Patient-indexed cohort state
# ------------------------------------------------------------------------------


@dataclass
class PatientRecord:
    demographics: Row
    datasets: Dict[str, List[Row]] = field(default_factory=dict)

    def rows(self, dataset_id: str) -> List[Row] | None:
        return self.datasets.get(dataset_id)


@dataclass(frozen=True)
class DatasetMetadata:
    ref: DatasetRef
    schema: DatasetSchema


@dataclass
class CohortData:
    """Patient-indexed cohort built from a single ingestion batch."""

    patients: Dict[str, PatientRecord] = field(default_factory=dict)
    metadata: Dict[str, DatasetMetadata] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "CohortData":
        return cls()

    @property
    def patient_ids(self) -> List[str]:
        return list(self.patients.keys())

    def column_type(self, dataset_id: str, column: str):
        """Schema type of `column` in `dataset_id`, or None when either is unknown."""
        meta = self.metadata.get(dataset_id)
        if meta is None:
            return None
        schema_field = meta.schema.field(column)
        return schema_field.type if schema_field else None


def is_present(value: Any) -> bool:
    """True for values that count as data: not None and not an empty string."""
    return value is not None and value != ""


def first_present(rows: List[Row] | None, column: str) -> Any:
    if not rows:
        return None
    for row in rows:
        value = row.get(column)
        if is_present(value):
            return value
    return None


def summarize(cohort: CohortData) -> Mapping[str, Any]:
    """Row counts per dataset, used for transform logging."""
    counts: Dict[str, int] = {dataset_id: 0 for dataset_id in cohort.metadata}
    for patient in cohort.patients.values():
        for dataset_id in cohort.metadata:
            counts[dataset_id] += len(patient.datasets.get(dataset_id) or [])
    return {"patients": len(cohort.patients), "rows": counts}


__all__ = [
    "Row",
    "DEMOGRAPHICS_DATASET_ID",
    "PatientRecord",
    "DatasetMetadata",
    "CohortData",
    "is_present",
    "first_present",
    "summarize",
]
