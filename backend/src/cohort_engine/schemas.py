"""
Pydantic models for payloads crossing the worker boundary.

Models validate what callers hand to the engine:
- Dataset batches: (DatasetRef, RawDatasetResult) pairs
- Comparison dimensions for cohort-mean requests
- Request payloads for each message kind
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


PERSON_ID_FIELD = "personId"


def _person_key(value: Any) -> Any:
    # Numeric ids from upstream share the string key space of demographics
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


class ColumnType(str, Enum):
    """Dataset column types as emitted by the patient-list schema."""

    STRING = "String"
    NUMERIC = "Numeric"
    DATETIME = "DateTime"
    SPARKLINE = "Sparkline"


# Upstream serializes the column type enum by ordinal
_COLUMN_TYPE_CODES = {
    0: ColumnType.STRING,
    1: ColumnType.NUMERIC,
    2: ColumnType.DATETIME,
    3: ColumnType.SPARKLINE,
}


class SchemaField(BaseModel):
    """A single named, typed column of a dataset."""

    name: str = Field(description="Column name as it appears in row records")
    type: ColumnType = Field(description="Column type")

    @field_validator("type", mode="before")
    @classmethod
    def coerce_type_code(cls, v: Any) -> Any:
        """Accept ordinal type codes as well as names."""
        if isinstance(v, bool):
            return v
        if isinstance(v, int):
            if v not in _COLUMN_TYPE_CODES:
                raise ValueError(f"Invalid column type code: {v}")
            return _COLUMN_TYPE_CODES[v]
        return v


class DatasetSchema(BaseModel):
    fields: List[SchemaField] = Field(default_factory=list)

    def field(self, name: str) -> Optional[SchemaField]:
        return next((f for f in self.fields if f.name == name), None)

    def date_fields(self) -> List[str]:
        return [f.name for f in self.fields if f.type == ColumnType.DATETIME]


class DatasetRef(BaseModel):
    """Descriptor of the dataset a raw result was fetched for."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(description="Dataset identifier, used as the cohort key")
    name: Optional[str] = Field(default=None, description="Display name")
    shape: Optional[int | str] = Field(default=None, description="Dataset shape code")


class RawDatasetResult(BaseModel):
    """Column-oriented query result: schema plus rows grouped by person."""

    model_config = ConfigDict(populate_by_name=True)

    dataset_schema: Optional[DatasetSchema] = Field(default=None, alias="schema")
    results: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)

    @field_validator("results", mode="before")
    @classmethod
    def key_by_person_id_string(cls, v: Any) -> Any:
        """Person ids key the cohort as strings, whatever type upstream sent."""
        if isinstance(v, Mapping):
            return {_person_key(k): rows for k, rows in v.items()}
        return v


class NumericArgs(BaseModel):
    pad: float = Field(default=0.0, ge=0, description="Symmetric widening of the source value")


class StringArgs(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    match_on: List[Any] = Field(
        default_factory=list,
        alias="matchOn",
        description="Values a candidate must all match; overrides the source patient's value",
    )


class DimensionArgs(BaseModel):
    string: Optional[StringArgs] = None
    numeric: Optional[NumericArgs] = None


class ComparisonDimension(BaseModel):
    """A single comparison criterion: dataset + column + matching parameters."""

    model_config = ConfigDict(populate_by_name=True)

    dataset_id: str = Field(alias="datasetId")
    column: str
    args: Optional[DimensionArgs] = None

    @property
    def pad(self) -> float:
        if self.args and self.args.numeric:
            return self.args.numeric.pad
        return 0.0

    @property
    def match_on(self) -> List[Any]:
        if self.args and self.args.string:
            return list(self.args.string.match_on)
        return []


# ------------------------------------------------------------------------------
# Request payloads
# ------------------------------------------------------------------------------


class TransformPayload(BaseModel):
    data: List[Tuple[DatasetRef, RawDatasetResult]] = Field(default_factory=list)
    demographics: List[Dict[str, Any]] = Field(default_factory=list)


class CohortMeanPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dimensions: List[ComparisonDimension] = Field(default_factory=list)
    source_patient_id: Optional[str] = Field(default=None, alias="sourcePatientId")

    @field_validator("source_patient_id", mode="before")
    @classmethod
    def coerce_source_patient_id(cls, v: Any) -> Any:
        return None if v is None else _person_key(v)


__all__ = [
    "PERSON_ID_FIELD",
    "ColumnType",
    "SchemaField",
    "DatasetSchema",
    "DatasetRef",
    "RawDatasetResult",
    "NumericArgs",
    "StringArgs",
    "DimensionArgs",
    "ComparisonDimension",
    "TransformPayload",
    "CohortMeanPayload",
]
