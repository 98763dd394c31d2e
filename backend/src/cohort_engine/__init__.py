"""Cohort data transform-and-comparison engine."""

from .aggregator import get_cohort_mean
from .engine import CohortEngine
from .models import CohortData, DatasetMetadata, PatientRecord
from .schemas import ColumnType, ComparisonDimension, DatasetRef, RawDatasetResult
from .serialization import cohort_mean_to_dict, cohort_to_dict
from .transformer import transform

__version__ = "0.1.0"

__all__ = [
    "CohortEngine",
    "CohortData",
    "DatasetMetadata",
    "PatientRecord",
    "ColumnType",
    "ComparisonDimension",
    "DatasetRef",
    "RawDatasetResult",
    "transform",
    "get_cohort_mean",
    "cohort_to_dict",
    "cohort_mean_to_dict",
]
