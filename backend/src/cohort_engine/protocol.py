"""
Request/response channel between the engine facade and its worker.

Wire format:
- request:  {"message": <MessageKind>, "correlationId": str, ...fields}
- response: {"correlationId": str, "result"?: any}
- failure:  {"correlationId": str, "error": {"type": str, "message": str}}

Every request owns its own future in the pending table, so settling one
entry can never touch another.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Mapping

from .exceptions import ProtocolError, RequestTimeoutError, UnknownCorrelationIdError, WorkerError


MESSAGE_FIELD = "message"
CORRELATION_ID_FIELD = "correlationId"
RESULT_FIELD = "result"
ERROR_FIELD = "error"


class MessageKind(str, Enum):
    TRANSFORM = "TRANSFORM"
    GET_COHORT_MEAN = "GET_COHORT_MEAN"


def new_correlation_id() -> str:
    return uuid.uuid4().hex


def request_envelope(kind: MessageKind | str, correlation_id: str, **fields: Any) -> Dict[str, Any]:
    message = kind.value if isinstance(kind, MessageKind) else kind
    return {**fields, MESSAGE_FIELD: message, CORRELATION_ID_FIELD: correlation_id}


def response_envelope(correlation_id: str, result: Any = None) -> Dict[str, Any]:
    envelope: Dict[str, Any] = {CORRELATION_ID_FIELD: correlation_id}
    if result is not None:
        envelope[RESULT_FIELD] = result
    return envelope


def error_envelope(correlation_id: str, exc: BaseException) -> Dict[str, Any]:
    return {
        CORRELATION_ID_FIELD: correlation_id,
        ERROR_FIELD: {"type": type(exc).__name__, "message": str(exc)},
    }


@dataclass
class PendingRequest:
    correlation_id: str
    kind: str
    future: asyncio.Future
    issued_at: float = field(default_factory=time.monotonic)
    timer: asyncio.TimerHandle | None = None

    def settle(self, result: Any = None, exc: BaseException | None = None) -> None:
        if self.timer is not None:
            self.timer.cancel()
            self.timer = None
        # Caller may have cancelled its future already
        if self.future.done():
            return
        if exc is not None:
            self.future.set_exception(exc)
        else:
            self.future.set_result(result)


class PendingRequestTable:
    """Outstanding requests keyed by correlation id."""

    def __init__(self) -> None:
        self._pending: Dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, correlation_id: object) -> bool:
        return correlation_id in self._pending

    def register(self, correlation_id: str, future: asyncio.Future, kind: str) -> PendingRequest:
        if correlation_id in self._pending:
            raise ProtocolError(f"correlation id {correlation_id!r} is already pending")
        entry = PendingRequest(correlation_id=correlation_id, kind=kind, future=future)
        self._pending[correlation_id] = entry
        return entry

    def pop(self, correlation_id: Any) -> PendingRequest:
        try:
            return self._pending.pop(correlation_id)
        except (KeyError, TypeError) as exc:
            raise UnknownCorrelationIdError(correlation_id) from exc

    def resolve(self, response: Mapping[str, Any]) -> PendingRequest:
        """
        Settle the entry a worker response belongs to.

        A failure payload rejects the entry with `WorkerError`; otherwise it is
        resolved with the result, or ``{}`` when the response carries none.

        Raises:
            UnknownCorrelationIdError: no pending entry for the response
        """
        entry = self.pop(response.get(CORRELATION_ID_FIELD))
        error = response.get(ERROR_FIELD)
        if error:
            entry.settle(exc=WorkerError(str(error.get("type")), str(error.get("message"))))
        else:
            result = response.get(RESULT_FIELD)
            entry.settle(result=result if result is not None else {})
        return entry

    def reject(self, correlation_id: Any, exc: BaseException) -> PendingRequest:
        entry = self.pop(correlation_id)
        entry.settle(exc=exc)
        return entry

    def expire(self, correlation_id: str, timeout: float) -> PendingRequest | None:
        """Reject a stale entry; None if it was settled in the meantime."""
        if correlation_id not in self._pending:
            return None
        return self.reject(correlation_id, RequestTimeoutError(correlation_id, timeout))

    def reject_all(self, make_exc: Callable[[str], BaseException]) -> int:
        """Reject every pending entry with its own exception from `make_exc(correlation_id)`."""
        count = 0
        for correlation_id in list(self._pending):
            self.reject(correlation_id, make_exc(correlation_id))
            count += 1
        return count


__all__ = [
    "MESSAGE_FIELD",
    "CORRELATION_ID_FIELD",
    "RESULT_FIELD",
    "ERROR_FIELD",
    "MessageKind",
    "new_correlation_id",
    "request_envelope",
    "response_envelope",
    "error_envelope",
    "PendingRequest",
    "PendingRequestTable",
]
