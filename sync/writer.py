"""
StoreWriter: ordered, fire-and-forget remote writes.

Writes are queued and executed one at a time on a daemon worker thread, so
the tick loop and the tracker's lock are never held across a network call,
and a close is always written before the open that follows it. A failed
write is logged and dropped; the next periodic write supersedes it.

With background=False every write runs inline on the caller's thread
(tests, one-shot tools such as the janitor).
"""

import logging
import queue
import threading
from typing import Any, Callable, Optional, Tuple

from core.errors import TransientStoreError

logger = logging.getLogger(__name__)

_STOP = object()


class StoreWriter:
    """Single-worker write queue in front of a RemoteStore."""

    def __init__(self, background: bool = True, name: str = "store-writer") -> None:
        self.background = background
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._thread: Optional[threading.Thread] = None
        self._name = name
        self.failures = 0
        if background:
            self._thread = threading.Thread(target=self._worker, name=name, daemon=True)
            self._thread.start()

    def submit(self, description: str, fn: Callable[..., Any], *args: Any) -> None:
        """
        Queue a write.

        Args:
            description: Short label for log messages ("close segment ...").
            fn: Store method to call.
            args: Arguments for fn.
        """
        if not self.background:
            self._run((description, fn, args))
            return
        self._queue.put((description, fn, args))

    def flush(self, timeout: float = 5.0) -> bool:
        """
        Wait until every queued write has been attempted.

        Returns:
            True if the queue drained within the timeout.
        """
        if not self.background:
            return True
        done = threading.Event()
        self._queue.put(("flush marker", done.set, ()))
        drained = done.wait(timeout)
        if not drained:
            logger.warning(f"{self._name}: pending writes did not drain within {timeout}s")
        return drained

    def close(self, timeout: float = 5.0) -> None:
        """Drain and stop the worker thread."""
        if not self.background or self._thread is None:
            return
        self._queue.put(_STOP)
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning(f"{self._name}: worker did not stop within {timeout}s")
        self._thread = None

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._run(item)
            finally:
                self._queue.task_done()

    def _run(self, item: Tuple[str, Callable[..., Any], Tuple[Any, ...]]) -> None:
        description, fn, args = item
        try:
            fn(*args)
        except TransientStoreError as e:
            self.failures += 1
            logger.warning(f"Remote write failed ({description}): {e}")
        except Exception:
            # The worker must survive a bad write; the error is still surfaced
            self.failures += 1
            logger.exception(f"Unexpected error during remote write ({description})")
