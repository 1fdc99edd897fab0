"""Exception telemetry core.

- Records logged before the backend client is loaded are buffered in a
  process-wide pending queue and drained, in order, once it is.
- `log_exception` never raises; failures are logged and absorbed.
- Transports live in `exclog._internal.backends` so they can be swapped
  without touching the buffering/dispatch logic.
"""

from .context import (
    consume_exception_logger,
    exception_logger_provider,
    get_ambient_logger,
    use_exception_logger,
)
from .interceptor import GlobalErrorInterceptor, get_global_interceptor, install_global_interceptor
from .pending import PendingState, get_pending_state, set_pending_state
from .records import PROVENANCE_KEY, PROVENANCE_VALUE, ExceptionRecord, SeverityLevel
from .service import ExceptionLogger, Phase, backend_for_mode, with_exception_logger

__all__ = [
    "PROVENANCE_KEY",
    "PROVENANCE_VALUE",
    "ExceptionLogger",
    "ExceptionRecord",
    "GlobalErrorInterceptor",
    "PendingState",
    "Phase",
    "SeverityLevel",
    "backend_for_mode",
    "consume_exception_logger",
    "exception_logger_provider",
    "get_ambient_logger",
    "get_global_interceptor",
    "get_pending_state",
    "install_global_interceptor",
    "set_pending_state",
    "use_exception_logger",
    "with_exception_logger",
]
