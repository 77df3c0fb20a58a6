"""
Scheduling substrate for the timer engine and the segment syncer.

The engine never counts ticks; it only needs "call me back in roughly N
seconds" and a wall clock. ThreadingScheduler provides that with
threading.Timer. ManualScheduler runs callbacks against a virtual clock
that only moves when advance() is called, for headless hosts and tests.
"""

import heapq
import itertools
import logging
import threading
import time
from typing import Callable, List, Protocol, Tuple

logger = logging.getLogger(__name__)


class ScheduledCall(Protocol):
    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Interface the engine and syncer depend on."""

    def now(self) -> float:
        """Current wall-clock time in epoch seconds."""
        ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall:
        """Run callback once after delay seconds. The result can cancel it."""
        ...


class ThreadingScheduler:
    """Real-time scheduler backed by daemon threading.Timer threads."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock

    def now(self) -> float:
        return self._clock()

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(0.0, delay), self._run, args=(callback,))
        timer.daemon = True
        timer.start()
        return timer

    @staticmethod
    def _run(callback: Callable[[], None]) -> None:
        try:
            callback()
        except Exception:
            logger.exception("Scheduled callback failed")


class _ManualCall:
    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """
    Deterministic scheduler with a virtual clock.

    Callbacks due at or before the new time run in due order while
    advance() moves the clock forward; each callback sees now() equal to
    its due time. Callbacks scheduled from within a callback are honoured
    in the same advance() call if they fall due.
    """

    def __init__(self, start: float = 1_700_000_000.0):
        self._now = float(start)
        self._queue: List[Tuple[float, int, _ManualCall, Callable[[], None]]] = []
        self._seq = itertools.count()
        self._lock = threading.RLock()

    def now(self) -> float:
        return self._now

    def call_later(self, delay: float, callback: Callable[[], None]) -> _ManualCall:
        handle = _ManualCall()
        with self._lock:
            heapq.heappush(
                self._queue,
                (self._now + max(0.0, delay), next(self._seq), handle, callback),
            )
        return handle

    def pending(self) -> int:
        """Number of scheduled, not yet cancelled callbacks."""
        with self._lock:
            return sum(1 for _, _, handle, _ in self._queue if not handle.cancelled)

    def advance(self, seconds: float) -> None:
        """Move the clock forward, running every callback that falls due."""
        target = self._now + seconds
        while True:
            with self._lock:
                if not self._queue or self._queue[0][0] > target:
                    break
                due, _, handle, callback = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = max(self._now, due)
            callback()
        self._now = target

    def run_pending(self) -> None:
        """Run callbacks already due without moving the clock."""
        self.advance(0.0)

    def jump(self, seconds: float) -> None:
        """
        Move the clock forward without running anything.

        Models a host that was suspended: callbacks are delayed, not lost.
        They run on the next advance()/run_pending().
        """
        self._now += seconds

