"""Process-wide hook for uncaught errors.

While the readiness gate is closed, uncaught errors are buffered as Critical
records. Once it is open they are not forwarded (only logged at debug level);
after readiness the host is expected to report through `log_exception`.
"""

from __future__ import annotations

import logging
import sys
import threading
import traceback
from types import TracebackType
from typing import Any, Optional, Tuple, Type

from exclog.errors import UncaughtError
from exclog.telemetry.pending import PendingState, get_pending_state
from exclog.telemetry.records import ExceptionRecord, SeverityLevel

logger = logging.getLogger(__name__)


def _location(tb: Optional[TracebackType]) -> Tuple[str, int, int]:
    if tb is None:
        return "", 0, 0
    frames = traceback.extract_tb(tb)
    if not frames:
        return "", 0, 0
    last = frames[-1]
    return last.filename, int(last.lineno or 0), int(getattr(last, "colno", None) or 0)


class GlobalErrorInterceptor:
    def __init__(self, *, pending: PendingState | None = None) -> None:
        # None means "whatever the process default is when an error arrives".
        self._pending = pending
        self._installed = False
        self._prev_excepthook: Any = None
        self._prev_threading_excepthook: Any = None

    @property
    def pending(self) -> PendingState:
        return self._pending if self._pending is not None else get_pending_state()

    @property
    def installed(self) -> bool:
        return self._installed

    def handle(
        self,
        message: str,
        source: str = "",
        line: int = 0,
        column: int = 0,
        error: Optional[BaseException] = None,
    ) -> bool:
        """Buffer one uncaught error. Returns True if it was queued."""
        try:
            if error is None:
                error = UncaughtError(str(message or "uncaught error"))
            record = ExceptionRecord(error=error, severity_level=SeverityLevel.Critical)
            if self.pending.offer(record):
                logger.debug("[exclog] buffered uncaught %s at %s:%s:%s", type(error).__name__, source, line, column)
                return True
            logger.debug("[exclog] uncaught %s after readiness not forwarded", type(error).__name__)
            return False
        except Exception:
            logger.error("[exclog] uncaught error interception failed", exc_info=True)
            return False

    def _on_exception(
        self,
        exc_type: Type[BaseException],
        exc: Optional[BaseException],
        tb: Optional[TracebackType],
    ) -> None:
        if exc_type is not None and issubclass(exc_type, KeyboardInterrupt):
            return
        source, line, column = _location(tb)
        message = str(exc) if exc is not None else getattr(exc_type, "__name__", "uncaught error")
        self.handle(message, source, line, column, exc)

    def _excepthook(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self._on_exception(exc_type, exc, tb)
        prev = self._prev_excepthook or sys.__excepthook__
        prev(exc_type, exc, tb)

    def _threading_excepthook(self, args: Any) -> None:
        self._on_exception(args.exc_type, args.exc_value, args.exc_traceback)
        prev = self._prev_threading_excepthook or threading.__excepthook__
        prev(args)

    def install(self) -> None:
        """Chain onto sys.excepthook and threading.excepthook. Idempotent."""
        if self._installed:
            return
        self._prev_excepthook = sys.excepthook
        self._prev_threading_excepthook = threading.excepthook
        sys.excepthook = self._excepthook
        threading.excepthook = self._threading_excepthook
        self._installed = True
        logger.info("[exclog] global uncaught-error hook installed")


_global_interceptor: Optional[GlobalErrorInterceptor] = None


def install_global_interceptor(*, pending: PendingState | None = None) -> GlobalErrorInterceptor:
    """Install the process-wide interceptor once; later calls return the same one."""
    global _global_interceptor
    if _global_interceptor is None:
        _global_interceptor = GlobalErrorInterceptor(pending=pending)
    elif pending is not None and pending is not _global_interceptor.pending:
        logger.warning("[exclog] global interceptor already installed; pending= argument ignored")
    _global_interceptor.install()
    return _global_interceptor


def get_global_interceptor() -> GlobalErrorInterceptor | None:
    return _global_interceptor
