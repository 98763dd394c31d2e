"""
Worker side of the execution boundary.

`CohortWorker` owns the cohort state and turns request envelopes into
response envelopes; nothing it raises escapes as an exception. `WorkerThread`
runs one `CohortWorker` on a dedicated thread, taking envelopes from a FIFO
inbox one at a time.
"""

from __future__ import annotations

import copy
import logging
import queue
import threading
from typing import Any, Callable, Dict, Mapping

from pydantic import ValidationError

from .aggregator import get_cohort_mean
from .exceptions import CohortEngineError, WorkerTransportError
from .models import CohortData
from .protocol import (
    CORRELATION_ID_FIELD,
    MESSAGE_FIELD,
    MessageKind,
    error_envelope,
    response_envelope,
)
from .schemas import CohortMeanPayload, TransformPayload
from .transformer import transform

logger = logging.getLogger(__name__)


ResponseCallback = Callable[[Dict[str, Any]], None]
TransportErrorCallback = Callable[[Any, BaseException], None]


class CohortWorker:
    """Holds the current cohort and answers TRANSFORM / GET_COHORT_MEAN messages."""

    def __init__(self) -> None:
        self._cohort = CohortData.empty()
        self._handlers: Dict[str, Callable[[Mapping[str, Any]], Any]] = {
            MessageKind.TRANSFORM.value: self._handle_transform,
            MessageKind.GET_COHORT_MEAN.value: self._handle_cohort_mean,
        }

    @property
    def patient_count(self) -> int:
        return len(self._cohort.patients)

    def handle_message(self, envelope: Mapping[str, Any]) -> Dict[str, Any]:
        correlation_id = envelope.get(CORRELATION_ID_FIELD)
        kind = envelope.get(MESSAGE_FIELD)

        handler = self._handlers.get(kind)
        if handler is None:
            logger.warning("Unrecognized message kind %r (request %s)", kind, correlation_id)
            return response_envelope(correlation_id, None)

        try:
            result = handler(envelope)
        except (CohortEngineError, ValidationError) as exc:
            logger.warning("%s request %s failed: %s", kind, correlation_id, exc)
            return error_envelope(correlation_id, exc)
        except Exception as exc:
            logger.exception("%s request %s raised unexpectedly", kind, correlation_id)
            return error_envelope(correlation_id, exc)

        return response_envelope(correlation_id, result)

    def _handle_transform(self, envelope: Mapping[str, Any]) -> CohortData:
        payload = TransformPayload.model_validate(envelope)
        cohort = transform(payload.data, payload.demographics)
        # Swap only after a complete build
        self._cohort = cohort
        return copy.deepcopy(cohort)

    def _handle_cohort_mean(self, envelope: Mapping[str, Any]) -> Dict[str, Dict[str, float]]:
        payload = CohortMeanPayload.model_validate(envelope)
        return get_cohort_mean(self._cohort, payload.dimensions, payload.source_patient_id)


_STOP = object()


class WorkerThread:
    """Dedicated thread draining a FIFO inbox into a `CohortWorker`."""

    def __init__(
        self,
        on_response: ResponseCallback,
        on_transport_error: TransportErrorCallback,
        name: str = "cohort-data-worker",
        worker: CohortWorker | None = None,
    ) -> None:
        self._on_response = on_response
        self._on_transport_error = on_transport_error
        self._worker = worker or CohortWorker()
        self._inbox: queue.Queue = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._stopping = False

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        self._thread.start()

    def post(self, envelope: Mapping[str, Any]) -> None:
        if self._stopping or not self._thread.is_alive():
            raise WorkerTransportError("worker thread is not running")
        self._inbox.put(envelope)

    def stop(self, timeout: float | None = None) -> None:
        if self._stopping:
            return
        self._stopping = True
        self._inbox.put(_STOP)
        if self._thread.is_alive():
            self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            envelope = self._inbox.get()
            if envelope is _STOP:
                break

            correlation_id = envelope.get(CORRELATION_ID_FIELD) if isinstance(envelope, Mapping) else None
            try:
                if correlation_id is None:
                    raise WorkerTransportError("request envelope without correlation id")
                self._on_response(self._worker.handle_message(envelope))
            except Exception as exc:
                logger.exception("Transport failure for request %s", correlation_id)
                self._on_transport_error(correlation_id, exc)

        logger.debug("Worker thread %s stopped", self._thread.name)


__all__ = ["CohortWorker", "WorkerThread"]
