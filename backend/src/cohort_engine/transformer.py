"""
Dataset transformer: raw, person-grouped query results to a patient-indexed cohort.

The output is always a fresh `CohortData`; input rows are copied, never
mutated, so a failed ingestion leaves whatever the caller held untouched.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Sequence, Tuple

from .exceptions import IngestionError, TimestampParseError, UnknownSchemaError
from .models import (
    DEMOGRAPHICS_DATASET_ID,
    CohortData,
    DatasetMetadata,
    PatientRecord,
    Row,
    is_present,
    summarize,
)
from .schemas import PERSON_ID_FIELD, DatasetRef, RawDatasetResult, TransformPayload
from .timestamps import SORT_KEY_FIELD, normalize_timestamp, sort_key

logger = logging.getLogger(__name__)


DatasetPair = Tuple[DatasetRef, RawDatasetResult]


def transform(
    dataset_batch: Iterable[DatasetPair | Sequence[Any]],
    demographics_rows: Iterable[Mapping[str, Any]],
) -> CohortData:
    """
    Build a patient-indexed cohort from one ingestion batch.

    Args:
        dataset_batch: (descriptor, raw result) pairs; models or plain dicts
        demographics_rows: One row per patient, keyed by ``personId``

    Returns:
        CohortData holding exactly the demographics patients

    Raises:
        IngestionError: duplicate/missing person ids, a dataset without
            schema, or an unparseable timestamp
    """
    payload = TransformPayload.model_validate(
        {"data": list(dataset_batch), "demographics": list(demographics_rows)}
    )
    cohort = CohortData()

    for row in payload.demographics:
        person_id = row.get(PERSON_ID_FIELD)
        if not is_present(person_id):
            raise IngestionError(f"demographics row without '{PERSON_ID_FIELD}'")
        person_id = str(person_id)
        if person_id in cohort.patients:
            raise IngestionError(f"duplicate demographics row for person '{person_id}'")
        cohort.patients[person_id] = PatientRecord(demographics=dict(row))

    for ref, raw in payload.data:
        _ingest_dataset(cohort, ref, raw)

    for patient in cohort.patients.values():
        patient.datasets[DEMOGRAPHICS_DATASET_ID] = [patient.demographics]

    logger.info("Transformed cohort: %s", summarize(cohort))
    return cohort


def _ingest_dataset(cohort: CohortData, ref: DatasetRef, raw: RawDatasetResult) -> None:
    if raw.dataset_schema is None:
        raise UnknownSchemaError(ref.id)
    if ref.id in cohort.metadata:
        logger.warning("Dataset '%s' appears more than once in batch; last one wins", ref.id)

    cohort.metadata[ref.id] = DatasetMetadata(ref=ref, schema=raw.dataset_schema)
    date_fields = raw.dataset_schema.date_fields()

    for patient in cohort.patients.values():
        patient.datasets[ref.id] = []

    dropped = 0
    for person_id, rows in raw.results.items():
        patient = cohort.patients.get(person_id)
        if patient is None:
            dropped += len(rows)
            continue
        patient.datasets[ref.id] = _ingest_rows(ref.id, person_id, rows, date_fields)

    if dropped:
        logger.debug(
            "Dataset '%s': dropped %d rows for persons absent from demographics",
            ref.id,
            dropped,
        )


def _ingest_rows(
    dataset_id: str,
    person_id: str,
    rows: Sequence[Mapping[str, Any]],
    date_fields: List[str],
) -> List[Row]:
    ingested = [dict(row) for row in rows]
    if not date_fields:
        return ingested

    for row in ingested:
        for name in date_fields:
            value = row.get(name)
            if not is_present(value):
                continue
            try:
                instant = normalize_timestamp(value)
            except TimestampParseError as exc:
                raise TimestampParseError(value, dataset_id, person_id, name) from exc
            row[name] = instant
            row[SORT_KEY_FIELD] = sort_key(instant)

    # Stable: equal keys keep arrival order, undated rows trail in arrival order
    return sorted(ingested, key=_row_order)


def _row_order(row: Row) -> Tuple[int, int]:
    key = row.get(SORT_KEY_FIELD)
    if key is None:
        return (1, 0)
    return (0, key)


__all__ = ["transform", "DatasetPair"]
