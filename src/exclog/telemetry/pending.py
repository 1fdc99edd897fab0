from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional

from exclog.telemetry.records import ExceptionRecord

logger = logging.getLogger(__name__)

# A slot is None only when something enqueued a bad value; drain reports it.
Slot = Optional[ExceptionRecord]


class PendingState:
    """Pending exception queue + readiness gate.

    The queue is FIFO and unbounded. The gate is a one-way latch: once open it
    stays open for the lifetime of this object (only `reset()` clears it, for
    tests and host restarts).
    """

    def __init__(self) -> None:
        self._queue: Deque[Slot] = deque()
        self._open = False
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._queue)

    def enqueue(self, record: Slot) -> None:
        with self._lock:
            self._queue.append(record)

    def offer(self, record: Slot) -> bool:
        """Append only while the gate is closed. Returns False once it is open."""
        with self._lock:
            if self._open:
                return False
            self._queue.append(record)
            return True

    def is_open(self) -> bool:
        return self._open

    def open(self) -> bool:
        """Open the gate. Returns True only on the effective flip."""
        with self._lock:
            if self._open:
                return False
            self._open = True
        logger.debug("[exclog] readiness gate opened")
        return True

    def drain_into(self, sink: Callable[[Slot], None], *, open_when_empty: bool = False) -> int:
        """Remove slots oldest-first and pass each to `sink` until the queue is empty.

        `sink` runs outside the lock, so it may enqueue again; such slots are
        picked up by the same pass. With `open_when_empty` the gate is opened in
        the same critical section that observes the empty queue.
        """
        drained = 0
        while True:
            with self._lock:
                if not self._queue:
                    if open_when_empty and not self._open:
                        self._open = True
                        logger.debug("[exclog] readiness gate opened after drain")
                    return drained
                slot = self._queue.popleft()
            sink(slot)
            drained += 1

    def snapshot(self) -> List[Slot]:
        with self._lock:
            return list(self._queue)

    def reset(self) -> None:
        with self._lock:
            self._queue.clear()
            self._open = False


_global_pending = PendingState()


def set_pending_state(state: PendingState) -> None:
    global _global_pending
    _global_pending = state


def get_pending_state() -> PendingState:
    return _global_pending
