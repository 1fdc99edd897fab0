"""Hands the current `log_exception` function to arbitrary call sites.

Three ways in, all backed by the same ContextVar:
- explicit injection (`with_exception_logger` passes `log_exception=`),
- ambient lookup (`get_ambient_logger()` inside `exception_logger_provider(...)`),
- pull/consumer helpers that still buffer when nothing is mounted yet.
"""

from __future__ import annotations

import contextvars
import logging
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Mapping, Optional, Protocol, TypeVar

from exclog.errors import PrematureCapabilityAccessError
from exclog.telemetry.pending import PendingState, get_pending_state
from exclog.telemetry.records import ExceptionRecord, SeverityLevel

logger = logging.getLogger(__name__)

T = TypeVar("T")

PREMATURE_ACCESS_MESSAGE = "Consumer called before initialization"


class LogExceptionFn(Protocol):
    def __call__(
        self,
        error: BaseException,
        severity_level: SeverityLevel = ...,
        properties: Optional[Mapping[str, Any]] = ...,
    ) -> None: ...


_current: contextvars.ContextVar[Optional[LogExceptionFn]] = contextvars.ContextVar(
    "exclog_log_exception", default=None
)


def _noop(
    error: BaseException,
    severity_level: SeverityLevel = SeverityLevel.Information,
    properties: Optional[Mapping[str, Any]] = None,
) -> None:
    return None


@contextmanager
def exception_logger_provider(log_exception: LogExceptionFn) -> Iterator[LogExceptionFn]:
    token = _current.set(log_exception)
    try:
        yield log_exception
    finally:
        _current.reset(token)


def current_logger() -> Optional[LogExceptionFn]:
    return _current.get()


def get_ambient_logger() -> LogExceptionFn:
    """Ambient lookup; a no-op function when no provider is active."""
    return _current.get() or _noop


def _record_premature_access(pending: PendingState) -> None:
    logger.debug("[exclog] logging capability requested before initialization")
    pending.enqueue(ExceptionRecord(error=PrematureCapabilityAccessError(PREMATURE_ACCESS_MESSAGE)))


def consume_exception_logger(
    callback: Callable[[LogExceptionFn], T],
    *,
    pending: PendingState | None = None,
) -> Optional[T]:
    fn = _current.get()
    if fn is None:
        _record_premature_access(pending if pending is not None else get_pending_state())
        return None
    return callback(fn)


def use_exception_logger(*, pending: PendingState | None = None) -> LogExceptionFn:
    """Pull accessor.

    Without a mounted logger the access itself is recorded, and the returned
    function buffers every call onto the pending queue.
    """
    fn = _current.get()
    if fn is not None:
        return fn
    state = pending if pending is not None else get_pending_state()
    _record_premature_access(state)

    def _buffer(
        error: BaseException,
        severity_level: SeverityLevel = SeverityLevel.Information,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> None:
        try:
            state.enqueue(ExceptionRecord.build(error, severity_level, properties))
        except Exception:
            logger.error("[exclog] buffering before initialization failed", exc_info=True)

    return _buffer
