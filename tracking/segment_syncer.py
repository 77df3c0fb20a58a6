"""
SegmentSyncer: periodic partial writes of the open segment.

While a segment is open, every SEGMENT_SYNC_INTERVAL seconds the segment
is upserted with its current elapsed duration and ended_at still None.
This bounds data loss on an ungraceful crash to one interval, and gives
the janitor pass the evidence it needs to cap an orphaned segment.
"""

import logging
import threading
from typing import Callable, ContextManager, Optional

import config
from core.scheduler import ScheduledCall, Scheduler
from sync.remote_store import RemoteStore
from sync.writer import StoreWriter
from tracking.models import TopicTimeSegment

logger = logging.getLogger(__name__)


class SegmentSyncer:
    """Cadence for partial segment writes, driven by the shared scheduler."""

    def __init__(self, store: RemoteStore, scheduler: Scheduler,
                 writer: Optional[StoreWriter] = None,
                 interval: float = config.SEGMENT_SYNC_INTERVAL) -> None:
        self.store = store
        self.scheduler = scheduler
        self.writer = writer or StoreWriter(background=False)
        self.interval = interval
        self.sync_count = 0

        self._lock = threading.Lock()
        self._generation = 0
        self._handle: Optional[ScheduledCall] = None
        self._provider: Optional[Callable[[], Optional[TopicTimeSegment]]] = None
        self._guard: Optional[ContextManager] = None

    @property
    def is_active(self) -> bool:
        with self._lock:
            return self._provider is not None

    def start(self, provider: Callable[[], Optional[TopicTimeSegment]],
              guard: ContextManager) -> None:
        """
        Begin syncing.

        Args:
            provider: Returns the open segment with its live duration, or
                None once it has been closed.
            guard: The owner's lock. Each sync reads and queues its write
                while holding it, so a partial write can never be queued
                after the close of the same segment.
        """
        with self._lock:
            self._cancel()
            self._provider = provider
            self._guard = guard
            self._schedule()

    def stop(self) -> None:
        """Stop syncing; a sync already scheduled becomes a no-op."""
        with self._lock:
            self._cancel()
            self._provider = None
            self._guard = None

    def _cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None
        self._generation += 1

    def _schedule(self) -> None:
        generation = self._generation
        self._handle = self.scheduler.call_later(self.interval, lambda: self._fire(generation))

    def _fire(self, generation: int) -> None:
        with self._lock:
            guard = self._guard
            if generation != self._generation or guard is None:
                return
        with guard:
            with self._lock:
                if generation != self._generation or self._provider is None:
                    return
                provider = self._provider
                self._schedule()
            self._sync(provider)

    def _sync(self, provider: Callable[[], Optional[TopicTimeSegment]]) -> None:
        segment = provider()
        if segment is None or not segment.is_open:
            return
        self.sync_count += 1
        logger.debug(f"Syncing open segment {segment.id}: {segment.duration_seconds}s")
        self.writer.submit(
            f"partial sync of segment {segment.id}",
            self.store.upsert_segment,
            segment,
        )
