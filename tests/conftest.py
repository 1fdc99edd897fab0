import asyncio

import pytest

from exclog.errors import BackendError
from exclog.telemetry import PendingState, get_pending_state, set_pending_state


class FakeHandle:
    def __init__(self):
        self.sent = []
        self.loaded = False
        self.flushed = 0
        self.on_send = None
        self.loaded_event = asyncio.Event()

    def load(self):
        self.loaded = True
        self.loaded_event.set()

    def send(self, record):
        self.sent.append(record)
        if self.on_send is not None:
            self.on_send(record)

    def flush(self):
        self.flushed += 1


class FakeBackend:
    name = "fake"

    def __init__(self, *, hold=False, fail=False):
        self.handle = FakeHandle()
        self.configs = []
        self.fail = fail
        self.release = asyncio.Event() if hold else None

    async def create(self, config):
        self.configs.append(dict(config))
        if self.release is not None:
            await self.release.wait()
        if self.fail:
            raise BackendError("backend unavailable")
        return self.handle


@pytest.fixture(autouse=True)
def pending():
    # Fresh process-wide queue + gate per test.
    prev = get_pending_state()
    state = PendingState()
    set_pending_state(state)
    yield state
    set_pending_state(prev)


@pytest.fixture
def backend():
    return FakeBackend()
