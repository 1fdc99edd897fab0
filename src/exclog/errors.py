"""exclog errors.

None of these are raised to the host from the logging path; the record-shaped
ones are used as the `error` of synthetic exception records.
"""

from __future__ import annotations


class ExclogError(RuntimeError):
    """Base error for exclog."""


class CorruptQueueEntryError(ExclogError):
    """An empty slot surfaced while draining the pending queue."""


class PrematureCapabilityAccessError(ExclogError):
    """The logging capability was requested before any logger was mounted."""


class UncaughtError(ExclogError):
    """Stand-in for an uncaught error reported without an exception object."""


class BackendError(ExclogError):
    """Telemetry backend could not be created or used."""


class ConnectionStringError(BackendError):
    """Connection string is malformed or misses a required key."""


class ClientReportedError(ExclogError):
    """An exception reported by a remote client over HTTP."""

    def __init__(self, message: str, *, type_name: str = "", stack: str = "") -> None:
        super().__init__(message)
        self.type_name = type_name
        self.stack = stack
