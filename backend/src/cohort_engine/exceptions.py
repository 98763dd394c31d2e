"""Exception hierarchy for the cohort data engine."""

from __future__ import annotations


class CohortEngineError(Exception):
    """Base class for all engine errors."""


# ------------------------------------------------------------------------------
# Ingestion (transform) errors
# ------------------------------------------------------------------------------


class IngestionError(CohortEngineError):
    """A transform batch could not be ingested. Prior cohort state is kept."""


class TimestampParseError(IngestionError):
    def __init__(
        self,
        value: object,
        dataset_id: str | None = None,
        person_id: str | None = None,
        field: str | None = None,
    ) -> None:
        self.value = value
        self.dataset_id = dataset_id
        self.person_id = person_id
        self.field = field
        where = ""
        if dataset_id is not None:
            where = f" (dataset '{dataset_id}', person '{person_id}', field '{field}')"
        super().__init__(f"unparseable timestamp {value!r}{where}")


class UnknownSchemaError(IngestionError):
    def __init__(self, dataset_id: str) -> None:
        self.dataset_id = dataset_id
        super().__init__(f"dataset '{dataset_id}' has no schema")


# ------------------------------------------------------------------------------
# Channel errors
# ------------------------------------------------------------------------------


class ProtocolError(CohortEngineError):
    """The request/response channel received something it cannot account for."""


class UnknownCorrelationIdError(ProtocolError):
    def __init__(self, correlation_id: object) -> None:
        self.correlation_id = correlation_id
        super().__init__(f"response for unknown correlation id {correlation_id!r}")


class WorkerTransportError(CohortEngineError):
    """The worker boundary failed for one specific request."""


class RequestTimeoutError(CohortEngineError):
    def __init__(self, correlation_id: str, timeout: float) -> None:
        self.correlation_id = correlation_id
        self.timeout = timeout
        super().__init__(f"request {correlation_id} timed out after {timeout:g}s")


class EngineClosedError(CohortEngineError):
    """The engine was closed before or while the request was pending."""


class WorkerError(CohortEngineError):
    """Caller-side rebuild of a structured failure payload sent by the worker."""

    def __init__(self, error_type: str, message: str) -> None:
        self.error_type = error_type
        super().__init__(f"{error_type}: {message}")


__all__ = [
    "CohortEngineError",
    "IngestionError",
    "TimestampParseError",
    "UnknownSchemaError",
    "ProtocolError",
    "UnknownCorrelationIdError",
    "WorkerTransportError",
    "RequestTimeoutError",
    "EngineClosedError",
    "WorkerError",
]
