"""Caller-facing facade of the cohort data engine."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, Iterable, Mapping

from .config import Settings, settings as default_settings
from .exceptions import (
    CohortEngineError,
    EngineClosedError,
    ProtocolError,
    UnknownCorrelationIdError,
    WorkerTransportError,
)
from .protocol import MessageKind, PendingRequestTable, new_correlation_id, request_envelope
from .worker import WorkerThread


class CohortEngine:
    """
    Non-blocking entry point for cohort transforms and comparisons.

    All heavy work runs on one worker thread owned by the engine. Each call
    returns an `asyncio.Future` immediately; it settles when the worker's
    response for that call arrives.

    Usage:
        async with CohortEngine() as engine:
            cohort = await engine.transform(batch, demographics)
            means = await engine.get_cohort_mean(dimensions, "p1")

    Callers must await `transform` before issuing comparisons that depend on it.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or default_settings
        self.logger = self._setup_logger()
        self.diagnostics: Deque[ProtocolError] = deque(maxlen=self.settings.COHORT_DIAGNOSTICS_LIMIT)
        self._pending = PendingRequestTable()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._worker: WorkerThread | None = None
        self._closed = False

    def _setup_logger(self) -> logging.Logger:
        """Setup the package logger for engine operations."""
        logger = logging.getLogger("cohort_engine")
        if not logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(
                logging.Formatter("%(asctime)s - %(levelname)s - %(message)s")
            )
            logger.addHandler(handler)
        logger.setLevel(self.settings.LOG_LEVEL)
        return logger

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_running(self) -> bool:
        return self._worker is not None and self._worker.is_alive and not self._closed

    def start(self) -> None:
        """Bind to the running event loop and start the worker thread."""
        if self._closed:
            raise EngineClosedError("engine is closed")
        loop = asyncio.get_running_loop()
        if self._worker is not None:
            if loop is not self._loop:
                raise CohortEngineError("engine is bound to a different event loop")
            return

        self._loop = loop
        self._worker = WorkerThread(
            on_response=self._on_worker_response,
            on_transport_error=self._on_worker_transport_error,
            name=self.settings.COHORT_WORKER_NAME,
        )
        self._worker.start()
        self.logger.info("Started worker thread %s", self.settings.COHORT_WORKER_NAME)

    async def close(self) -> None:
        """Drain the worker, then reject whatever is still pending."""
        if self._closed:
            return
        self._closed = True

        if self._worker is not None:
            await asyncio.to_thread(
                self._worker.stop, self.settings.COHORT_WORKER_JOIN_TIMEOUT_SECONDS
            )
            # Let responses scheduled by the drained worker settle first
            await asyncio.sleep(0)

        rejected = self._pending.reject_all(
            lambda cid: EngineClosedError(f"engine closed while request {cid} was pending")
        )
        if rejected:
            self.logger.warning("Rejected %d pending requests on close", rejected)
        self.logger.info("Cohort engine closed")

    async def __aenter__(self) -> "CohortEngine":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def transform(
        self,
        dataset_batch: Iterable[Any],
        demographics: Iterable[Mapping[str, Any]],
    ) -> asyncio.Future:
        """Replace the worker's cohort; resolves with a copy of the new `CohortData`."""
        return self.request(
            MessageKind.TRANSFORM,
            data=list(dataset_batch),
            demographics=list(demographics),
        )

    def get_cohort_mean(
        self,
        dimensions: Iterable[Any],
        source_patient_id: str | None,
    ) -> asyncio.Future:
        """Resolves with ``{dataset_id: {column: mean}}`` for the matching patients."""
        return self.request(
            MessageKind.GET_COHORT_MEAN,
            dimensions=list(dimensions),
            sourcePatientId=source_patient_id,
        )

    def request(self, kind: MessageKind | str, **fields: Any) -> asyncio.Future:
        """Post one message to the worker and return its pending future."""
        if self._closed:
            raise EngineClosedError("engine is closed")
        self.start()
        if self._loop is None or self._worker is None:
            raise CohortEngineError("engine failed to start its worker")

        correlation_id = new_correlation_id()
        label = kind.value if isinstance(kind, MessageKind) else str(kind)
        future = self._loop.create_future()
        entry = self._pending.register(correlation_id, future, label)

        timeout = self.settings.request_timeout
        if timeout is not None:
            entry.timer = self._loop.call_later(timeout, self._expire, correlation_id, timeout)

        try:
            self._worker.post(request_envelope(kind, correlation_id, **fields))
        except WorkerTransportError as exc:
            self._pending.reject(correlation_id, exc)
        return future

    # ------------------------------------------------------------------
    # Response handling (event loop thread)
    # ------------------------------------------------------------------

    def _on_worker_response(self, response: Dict[str, Any]) -> None:
        # Called on the worker thread
        self._require_loop().call_soon_threadsafe(self._handle_response, response)

    def _on_worker_transport_error(self, correlation_id: Any, exc: BaseException) -> None:
        # Called on the worker thread
        loop = self._require_loop()
        try:
            loop.call_soon_threadsafe(self._handle_transport_error, correlation_id, exc)
        except RuntimeError:
            self.logger.error(
                "Event loop unavailable; transport failure for request %s lost: %s",
                correlation_id,
                exc,
            )

    def _require_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            raise CohortEngineError("engine is not bound to an event loop")
        return self._loop

    def _handle_response(self, response: Dict[str, Any]) -> None:
        try:
            entry = self._pending.resolve(response)
        except UnknownCorrelationIdError as exc:
            self._report_protocol_error(exc)
            return
        self.logger.debug("Request %s (%s) settled", entry.correlation_id, entry.kind)

    def _handle_transport_error(self, correlation_id: Any, exc: BaseException) -> None:
        error = WorkerTransportError(f"worker failed to handle request {correlation_id}: {exc}")
        error.__cause__ = exc
        try:
            self._pending.reject(correlation_id, error)
        except UnknownCorrelationIdError as unknown:
            self._report_protocol_error(unknown)

    def _expire(self, correlation_id: str, timeout: float) -> None:
        entry = self._pending.expire(correlation_id, timeout)
        if entry is not None:
            self.logger.warning(
                "Request %s (%s) timed out after %gs", correlation_id, entry.kind, timeout
            )

    def _report_protocol_error(self, exc: ProtocolError) -> None:
        if self._closed:
            self.logger.debug("Ignoring response after close: %s", exc)
            return
        self.logger.error("Protocol error: %s", exc)
        self.diagnostics.append(exc)


__all__ = ["CohortEngine"]
