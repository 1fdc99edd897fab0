import logging
import sys
import threading

import pytest

from conftest import FakeBackend
from exclog.errors import UncaughtError
from exclog.telemetry import (
    ExceptionLogger,
    GlobalErrorInterceptor,
    PendingState,
    SeverityLevel,
    install_global_interceptor,
    set_pending_state,
)
from exclog.telemetry import interceptor as interceptor_mod


def _raised(exc):
    try:
        raise exc
    except BaseException as e:
        return type(e), e, e.__traceback__


def test_uncaught_error_before_readiness_is_buffered_as_critical(pending):
    interceptor = GlobalErrorInterceptor(pending=pending)
    err = RuntimeError("boom")

    assert interceptor.handle("boom", "app.py", 3, 7, err) is True

    (rec,) = pending.snapshot()
    assert rec.error is err
    assert rec.severity_level is SeverityLevel.Critical
    assert rec.properties is None


@pytest.mark.asyncio
async def test_buffered_uncaught_error_is_drained_with_marker(pending, backend):
    interceptor = GlobalErrorInterceptor(pending=pending)
    err = RuntimeError("early crash")
    interceptor.handle(str(err), "", 0, 0, err)

    exc_logger = ExceptionLogger(backend=backend, pending=pending)
    exc_logger.start("InstrumentationKey=abc")
    await exc_logger.wait_until_ready(timeout=1)

    (rec,) = backend.handle.sent
    assert rec.error is err
    assert rec.severity_level is SeverityLevel.Critical
    assert rec.properties == {"isCaughtInQueue": "Yes"}


@pytest.mark.asyncio
async def test_uncaught_error_after_readiness_is_not_forwarded(pending, backend):
    exc_logger = ExceptionLogger(backend=backend, pending=pending)
    exc_logger.start("InstrumentationKey=abc")
    await exc_logger.wait_until_ready(timeout=1)

    interceptor = GlobalErrorInterceptor(pending=pending)
    assert interceptor.handle("late", "app.py", 1, 1, RuntimeError("late")) is False

    assert len(pending) == 0
    assert backend.handle.sent == []


def test_missing_error_object_is_replaced(pending):
    GlobalErrorInterceptor(pending=pending).handle("Script error.", "", 0, 0, None)
    (rec,) = pending.snapshot()
    assert isinstance(rec.error, UncaughtError)
    assert str(rec.error) == "Script error."


def test_install_chains_onto_previous_excepthook(monkeypatch, pending):
    seen = []
    monkeypatch.setattr(sys, "excepthook", lambda *a: seen.append(a))
    monkeypatch.setattr(threading, "excepthook", lambda args: None)

    interceptor = GlobalErrorInterceptor(pending=pending)
    interceptor.install()
    hook = sys.excepthook
    interceptor.install()
    assert sys.excepthook is hook
    assert interceptor.installed

    exc_type, exc, tb = _raised(ValueError("unhandled"))
    sys.excepthook(exc_type, exc, tb)

    assert len(seen) == 1 and seen[0][1] is exc
    (rec,) = pending.snapshot()
    assert rec.error is exc
    assert rec.severity_level is SeverityLevel.Critical


def test_keyboard_interrupt_is_not_buffered(monkeypatch, pending):
    monkeypatch.setattr(sys, "excepthook", lambda *a: None)
    monkeypatch.setattr(threading, "excepthook", lambda args: None)
    interceptor = GlobalErrorInterceptor(pending=pending)
    interceptor.install()

    sys.excepthook(*_raised(KeyboardInterrupt()))
    assert len(pending) == 0


def test_thread_exceptions_are_intercepted(monkeypatch, pending):
    forwarded = []
    monkeypatch.setattr(sys, "excepthook", lambda *a: None)
    monkeypatch.setattr(threading, "excepthook", lambda args: forwarded.append(args.exc_value))
    GlobalErrorInterceptor(pending=pending).install()

    def worker():
        raise LookupError("in thread")

    t = threading.Thread(target=worker)
    t.start()
    t.join()

    (rec,) = pending.snapshot()
    assert isinstance(rec.error, LookupError)
    assert len(forwarded) == 1


def test_default_interceptor_follows_replaced_pending_state(pending):
    interceptor = GlobalErrorInterceptor()
    interceptor.handle("first", error=ValueError("first"))

    replacement = PendingState()
    set_pending_state(replacement)

    interceptor.handle("second", error=ValueError("second"))

    assert [str(r.error) for r in pending.snapshot()] == ["first"]
    assert [str(r.error) for r in replacement.snapshot()] == ["second"]


def test_reinstall_with_other_pending_state_warns(monkeypatch, caplog, pending):
    monkeypatch.setattr(sys, "excepthook", lambda *a: None)
    monkeypatch.setattr(threading, "excepthook", lambda args: None)
    monkeypatch.setattr(interceptor_mod, "_global_interceptor", None)

    first = install_global_interceptor(pending=pending)
    with caplog.at_level(logging.WARNING, logger="exclog.telemetry.interceptor"):
        again = install_global_interceptor(pending=PendingState())

    assert again is first
    assert first.pending is pending
    assert "pending= argument ignored" in caplog.text


def test_reinstall_without_pending_is_quiet(monkeypatch, caplog, pending):
    monkeypatch.setattr(sys, "excepthook", lambda *a: None)
    monkeypatch.setattr(threading, "excepthook", lambda args: None)
    monkeypatch.setattr(interceptor_mod, "_global_interceptor", None)

    first = install_global_interceptor()
    with caplog.at_level(logging.WARNING, logger="exclog.telemetry.interceptor"):
        assert install_global_interceptor() is first
        assert install_global_interceptor(pending=pending) is first

    assert "ignored" not in caplog.text
