from __future__ import annotations

import asyncio
import functools
import inspect
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Protocol

from exclog.errors import CorruptQueueEntryError
from exclog.telemetry.context import exception_logger_provider
from exclog.telemetry.pending import PendingState, Slot, get_pending_state
from exclog.telemetry.records import (
    PROVENANCE_KEY,
    PROVENANCE_VALUE,
    ExceptionRecord,
    SeverityLevel,
)

logger = logging.getLogger(__name__)

CORRUPT_ENTRY_MESSAGE = "Pending queue containing undefined exception"


class ClientHandle(Protocol):
    def load(self) -> None: ...
    def send(self, record: ExceptionRecord) -> None: ...
    def flush(self) -> None: ...


class TelemetryBackend(Protocol):
    name: str

    async def create(self, config: Mapping[str, Any]) -> ClientHandle: ...


class Phase(str, Enum):
    UNINITIALIZED = "uninitialized"
    CREATING = "creating"
    DRAINING = "draining"
    READY = "ready"
    TORN_DOWN = "torn_down"


def _normalize_mode(v: str) -> str:
    m = (v or "").strip().lower()
    if m in ("off", "disabled", "false", "0", "none"):
        return "off"
    if m in ("local", "sqlite"):
        return "local"
    # Be permissive; treat unknown as remote.
    return "remote"


def backend_for_mode(mode: str, *, sqlite_path: Path | None = None) -> TelemetryBackend:
    m = _normalize_mode(mode)
    if m == "off":
        from exclog._internal.backends.null_backend import NullBackend

        return NullBackend()
    if m == "local":
        from exclog._internal.backends.sqlite_backend import SQLiteBackend

        return SQLiteBackend(default_path=sqlite_path)
    from exclog._internal.backends.remote_backend import HttpForwardBackend

    return HttpForwardBackend()


class ExceptionLogger:
    """Owns one client handle and the `log_exception` entry point.

    Records logged before the handle is created and loaded go to the shared
    pending queue; loading drains that queue (oldest first) and opens the
    readiness gate. Nothing here raises to the caller of `log_exception`.
    """

    def __init__(
        self,
        connection_string: str = "",
        configuration: Optional[Mapping[str, Any]] = None,
        *,
        backend: TelemetryBackend | None = None,
        pending: PendingState | None = None,
    ) -> None:
        self._connection_string = connection_string
        self._configuration: Dict[str, Any] = dict(configuration or {})
        self._backend = backend if backend is not None else backend_for_mode("remote")
        self._pending = pending if pending is not None else get_pending_state()
        self._phase = Phase.UNINITIALIZED
        self._handle: Optional[ClientHandle] = None
        self._task: Optional[asyncio.Task] = None
        self._provider: Any = None

    @classmethod
    def from_settings(cls, settings: Any, *, pending: PendingState | None = None) -> "ExceptionLogger":
        backend = backend_for_mode(settings.mode, sqlite_path=settings.sqlite_path)
        configuration = {**settings.backend_options(), **dict(settings.configuration or {})}
        return cls(settings.connection_string, configuration, backend=backend, pending=pending)

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def pending(self) -> PendingState:
        return self._pending

    @property
    def handle(self) -> Optional[ClientHandle]:
        return self._handle

    @property
    def is_ready(self) -> bool:
        return self._phase is Phase.READY

    def start(self, connection_string: str, configuration: Optional[Mapping[str, Any]] = None) -> None:
        """Begin creating the client handle; returns before it is usable.

        Must be called from a running event loop. A second call is ignored.
        """
        if self._phase is not Phase.UNINITIALIZED:
            logger.debug("[exclog] start ignored in phase=%s", self._phase.value)
            return
        config: Dict[str, Any] = {"connection_string": connection_string, **dict(configuration or {})}
        loop = asyncio.get_running_loop()
        self._phase = Phase.CREATING
        self._task = loop.create_task(self._create(config), name="exclog-create-handle")

    async def _create(self, config: Mapping[str, Any]) -> None:
        try:
            handle = await self._backend.create(config)
        except asyncio.CancelledError:
            logger.debug("[exclog] handle creation cancelled")
            raise
        except Exception as e:
            # Records stay buffered; a later instance can still drain them.
            logger.error("[exclog] handle creation failed: %s", e, exc_info=True)
            return
        self._on_created(handle)

    def _on_created(self, handle: ClientHandle) -> None:
        if self._phase is Phase.TORN_DOWN:
            # Resolved after unmount: never drain through it.
            logger.info("[exclog] handle resolved after teardown; flushing and discarding")
            self._flush_quietly(handle)
            return
        self._handle = handle
        try:
            handle.load()
        except Exception as e:
            logger.error("[exclog] handle load failed: %s", e, exc_info=True)
            return
        self._drain()

    def _drain(self) -> None:
        self._phase = Phase.DRAINING
        if self._pending.is_open():
            logger.info("[exclog] readiness gate already open; draining anyway")
        drained = self._pending.drain_into(self._dispatch_buffered, open_when_empty=True)
        self._phase = Phase.READY
        logger.info("[exclog] client ready; drained %d pending record(s)", drained)

    def _dispatch_buffered(self, slot: Slot) -> None:
        if slot is None:
            record = ExceptionRecord(error=CorruptQueueEntryError(CORRUPT_ENTRY_MESSAGE))
        else:
            record = slot.with_properties(**{PROVENANCE_KEY: PROVENANCE_VALUE})
        self._send(record)

    def log_exception(
        self,
        error: BaseException,
        severity_level: SeverityLevel = SeverityLevel.Information,
        properties: Optional[Mapping[str, Any]] = None,
    ) -> None:
        try:
            record = ExceptionRecord.build(error, severity_level, properties)
            if self._handle is None or self._phase not in (Phase.DRAINING, Phase.READY):
                self._pending.enqueue(record)
                return
            # While draining the gate is still closed; the pass picks this up in order.
            if self._pending.offer(record):
                return
            self._send(record)
        except Exception:
            logger.error("[exclog] log_exception failed", exc_info=True)

    def _send(self, record: ExceptionRecord) -> None:
        handle = self._handle
        if handle is None:
            self._pending.enqueue(record)
            return
        try:
            handle.send(record)
        except Exception as e:
            logger.error("[exclog] send failed: %s type=%s", e, type(record.error).__name__, exc_info=True)

    async def wait_until_ready(self, timeout: float | None = None) -> bool:
        task = self._task
        if task is not None and not task.done():
            await asyncio.wait({task}, timeout=timeout)
        return self.is_ready

    def stop(self) -> None:
        """Flush the handle and tear down. Safe whether or not creation resolved."""
        try:
            self._phase = Phase.TORN_DOWN
            task = self._task
            if task is not None and not task.done():
                task.cancel()
            handle, self._handle = self._handle, None
            if handle is not None:
                self._flush_quietly(handle)
        except Exception:
            logger.error("[exclog] stop failed", exc_info=True)

    def _flush_quietly(self, handle: ClientHandle) -> None:
        try:
            handle.flush()
        except Exception:
            logger.error("[exclog] flush on teardown failed", exc_info=True)
        close = getattr(handle, "close", None)
        if callable(close):
            try:
                close()
            except Exception:
                logger.error("[exclog] handle close failed", exc_info=True)

    async def __aenter__(self) -> "ExceptionLogger":
        self.start(self._connection_string, self._configuration)
        self._provider = exception_logger_provider(self.log_exception)
        self._provider.__enter__()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        provider, self._provider = self._provider, None
        try:
            if provider is not None:
                provider.__exit__(None, None, None)
        finally:
            self.stop()


def with_exception_logger(
    component: Callable[..., Any],
    connection_string: str,
    configuration: Optional[Mapping[str, Any]] = None,
    *,
    backend: TelemetryBackend | None = None,
    pending: PendingState | None = None,
) -> Callable[..., Awaitable[Any]]:
    """Wrap `component` so each call runs with a mounted ExceptionLogger.

    The component receives `log_exception=` as an extra keyword and can also
    reach it via `get_ambient_logger()` / `use_exception_logger()`.
    """

    @functools.wraps(component)
    async def _wrapped(*args: Any, **kwargs: Any) -> Any:
        exc_logger = ExceptionLogger(connection_string, configuration, backend=backend, pending=pending)
        async with exc_logger:
            kwargs.setdefault("log_exception", exc_logger.log_exception)
            result = component(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
            return result

    return _wrapped
