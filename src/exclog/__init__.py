"""exclog: exception telemetry with buffering until the backend client is ready."""

from exclog.telemetry import (
    ExceptionLogger,
    ExceptionRecord,
    SeverityLevel,
    consume_exception_logger,
    get_ambient_logger,
    use_exception_logger,
    with_exception_logger,
)

__version__ = "0.1.0"

__all__ = [
    "ExceptionLogger",
    "ExceptionRecord",
    "SeverityLevel",
    "consume_exception_logger",
    "get_ambient_logger",
    "use_exception_logger",
    "with_exception_logger",
]
