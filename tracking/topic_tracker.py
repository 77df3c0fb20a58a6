"""
TopicSegmentTracker: attributes running time to the topic being studied.

States per user:
    Idle                     no TimerSession
    SessionOpen / NoSegment  session open, timer paused
    SegmentOpen              session open, one segment accumulating time

The open segment is a per-user singleton. Every mutating operation runs
under one lock and a switch is close-then-open inside a single
acquisition, so at most one segment is ever open (locally, and remotely
because writes are queued in the same order).

Local state is authoritative while the process lives: a failed remote
write is logged by the StoreWriter and never fails the caller.
"""

import logging
import threading
from typing import Dict, Optional

from core.errors import StateConflictError, TransientStoreError
from core.scheduler import Scheduler, ThreadingScheduler
from sync.remote_store import RemoteStore
from sync.writer import StoreWriter
from tracking.models import SessionMode, TimerSession, TopicTimeSegment, new_id
from tracking.segment_syncer import SegmentSyncer

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_SESSION_OPEN = "session_open"
STATE_SEGMENT_OPEN = "segment_open"


class TopicSegmentTracker:
    """Segment lifecycle tied to a timer session, reconciled with the remote store."""

    def __init__(self, store: RemoteStore, user_id: str,
                 scheduler: Optional[Scheduler] = None,
                 writer: Optional[StoreWriter] = None,
                 syncer: Optional[SegmentSyncer] = None) -> None:
        self.store = store
        self.user_id = user_id
        self.scheduler: Scheduler = scheduler or ThreadingScheduler()
        self.writer = writer or StoreWriter(background=False)
        self.syncer = syncer or SegmentSyncer(store, self.scheduler, self.writer)

        self._lock = threading.RLock()
        self.session: Optional[TimerSession] = None
        self.open_segment: Optional[TopicTimeSegment] = None
        self.current_topic_id: Optional[str] = None

        # Sum of closed segment durations in the current session
        self._session_closed_seconds: int = 0
        # Closed segment totals per topic (all sessions)
        self._topic_totals: Dict[str, int] = {}

    # ------------------------------------------------------------------
    # State queries
    # ------------------------------------------------------------------

    @property
    def state(self) -> str:
        with self._lock:
            if self.session is None:
                return STATE_IDLE
            if self.open_segment is None:
                return STATE_SESSION_OPEN
            return STATE_SEGMENT_OPEN

    @property
    def is_tracking(self) -> bool:
        with self._lock:
            return self.open_segment is not None

    def current_segment_elapsed(self) -> int:
        """Whole seconds accumulated by the open segment (0 when paused)."""
        with self._lock:
            if self.open_segment is None:
                return 0
            return self._elapsed(self.open_segment, self.scheduler.now())

    def live_segment(self) -> Optional[TopicTimeSegment]:
        """Copy of the open segment carrying its current duration."""
        with self._lock:
            return self._live_segment()

    def get_topic_total_time(self, topic_id: str) -> int:
        """Closed segments for the topic plus the live elapsed of an open one."""
        with self._lock:
            total = self._topic_totals.get(topic_id, 0)
            if self.open_segment is not None and self.open_segment.topic_id == topic_id:
                total += self._elapsed(self.open_segment, self.scheduler.now())
            return total

    def topic_totals(self) -> Dict[str, int]:
        """Totals for every known topic, live segment included."""
        with self._lock:
            totals = dict(self._topic_totals)
            if self.open_segment is not None:
                topic_id = self.open_segment.topic_id
                totals[topic_id] = totals.get(topic_id, 0) + self._elapsed(
                    self.open_segment, self.scheduler.now()
                )
            return totals

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def start_timer(self, topic_id: str,
                    mode: SessionMode = SessionMode.POMODORO) -> TopicTimeSegment:
        """
        Begin tracking topic_id, opening a TimerSession if none is open.

        Returns:
            The newly opened segment.
        """
        with self._lock:
            now = self.scheduler.now()
            if self.session is None:
                self.session = TimerSession(
                    id=new_id(),
                    user_id=self.user_id,
                    started_at=now,
                    mode=mode,
                )
                self._session_closed_seconds = 0
                self.writer.submit(
                    f"open session {self.session.id}",
                    self.store.upsert_session,
                    self.session,
                )
                logger.info(f"Timer session {self.session.id} opened ({mode.value})")
            return self._open_segment_healing(topic_id, now)

    def switch_topic(self, new_topic_id: str) -> Optional[TopicTimeSegment]:
        """
        Attribute time to a different topic from now on.

        With a segment open this closes it and opens one for the new topic
        under the same session. While paused only the pending topic changes;
        the segment is created by the next resume_timer().

        Returns:
            The new open segment, or None when the switch was deferred.
        """
        with self._lock:
            if self.open_segment is None:
                self.current_topic_id = new_topic_id
                logger.debug(f"Topic set to {new_topic_id}; segment opens on resume")
                return None
            if self.open_segment.topic_id == new_topic_id:
                return self.open_segment
            now = self.scheduler.now()
            self._close_segment(now)
            return self._open_segment_healing(new_topic_id, now)

    def pause_timer(self) -> int:
        """
        Close the open segment, keeping the session open.

        Returns:
            Duration recorded for the closed segment (0 if none was open).
        """
        with self._lock:
            if self.open_segment is None:
                return 0
            return self._close_segment(self.scheduler.now())

    def resume_timer(self) -> Optional[TopicTimeSegment]:
        """
        Open a new segment for the last-known topic under the existing session.

        Returns:
            The open segment, or None if there is no session or topic.
        """
        with self._lock:
            if self.session is None:
                logger.debug("resume_timer() ignored: no open session")
                return None
            if self.open_segment is not None:
                return self.open_segment
            if self.current_topic_id is None:
                logger.warning("resume_timer() ignored: no topic selected")
                return None
            return self._open_segment_healing(self.current_topic_id, self.scheduler.now())

    def stop_timer(self) -> Optional[TimerSession]:
        """
        Close any open segment and the session.

        total_seconds is the sum of the session's segment durations.

        Returns:
            The closed session, or None if no session was open.
        """
        with self._lock:
            if self.session is None:
                return None
            now = self.scheduler.now()
            self._close_segment(now)
            closed = self.session.closed(now, self._session_closed_seconds)
            self.writer.submit(
                f"close session {closed.id}",
                self.store.upsert_session,
                closed,
            )
            self.session = None
            self.current_topic_id = None
            self._session_closed_seconds = 0

        logger.info(f"Timer session {closed.id} closed ({closed.total_seconds}s tracked)")
        return closed

    # ------------------------------------------------------------------
    # Crash / restart recovery
    # ------------------------------------------------------------------

    def restore(self) -> bool:
        """
        Resume tracking an episode left open by a previous process.

        The open segment's remote started_at is the authoritative start,
        so elapsed time spans the gap while the process was gone.

        Returns:
            True if an open session was recovered.
        """
        try:
            totals = self.store.fetch_topic_totals(self.user_id)
        except TransientStoreError as e:
            logger.warning(f"Could not fetch topic totals: {e}")
            totals = None

        try:
            session = self.store.query_open_session(self.user_id)
            segments = self.store.list_session_segments(session.id) if session else []
            open_segment = self.store.query_open_segment(session.id) if session else None
        except TransientStoreError as e:
            logger.warning(f"Could not restore time tracking state: {e}")
            session, segments, open_segment = None, [], None

        with self._lock:
            if totals is not None:
                self._topic_totals = totals
            if session is None:
                return False

            self.session = session
            self._session_closed_seconds = sum(
                s.duration_seconds for s in segments if not s.is_open
            )
            if open_segment is not None:
                self.open_segment = open_segment
                self.current_topic_id = open_segment.topic_id
                self.syncer.start(self._live_segment, self._lock)
                logger.info(
                    f"Recovered open segment {open_segment.id} for topic "
                    f"{open_segment.topic_id} ({self.current_segment_elapsed()}s so far)"
                )
            else:
                self.open_segment = None
                closed = [s for s in segments if not s.is_open]
                self.current_topic_id = closed[-1].topic_id if closed else None
                logger.info(f"Recovered paused session {session.id}")
            return True

    def refresh_topic_totals(self) -> Dict[str, int]:
        """Re-read closed segment totals from the remote store."""
        # Queued closes must land before the totals are read back
        self.writer.flush()
        try:
            totals = self.store.fetch_topic_totals(self.user_id)
        except TransientStoreError as e:
            logger.warning(f"Could not refresh topic totals: {e}")
            return self.topic_totals()
        with self._lock:
            self._topic_totals = totals
        return self.topic_totals()

    def shutdown(self) -> None:
        """Stop the syncer, writing the open segment's duration one last time."""
        with self._lock:
            self.syncer.stop()
            segment = self._live_segment()
            if segment is not None:
                self.writer.submit(
                    f"final sync of segment {segment.id}",
                    self.store.upsert_segment,
                    segment,
                )

    # ------------------------------------------------------------------
    # Helpers (caller holds self._lock)
    # ------------------------------------------------------------------

    def _open_segment(self, topic_id: str, now: float) -> TopicTimeSegment:
        if self.open_segment is not None:
            raise StateConflictError(self.open_segment.id)
        segment = TopicTimeSegment(
            id=new_id(),
            timer_session_id=self.session.id,
            topic_id=topic_id,
            user_id=self.user_id,
            started_at=now,
        )
        self.open_segment = segment
        self.current_topic_id = topic_id
        self.writer.submit(f"open segment {segment.id}", self.store.upsert_segment, segment)
        self.syncer.start(self._live_segment, self._lock)
        logger.info(f"Tracking topic {topic_id} (segment {segment.id})")
        return segment

    def _open_segment_healing(self, topic_id: str, now: float) -> TopicTimeSegment:
        try:
            return self._open_segment(topic_id, now)
        except StateConflictError as e:
            logger.warning(f"{e}; closing it before opening a new one")
            self._close_segment(now)
            return self._open_segment(topic_id, now)

    def _close_segment(self, now: float) -> int:
        segment = self.open_segment
        if segment is None:
            return 0
        self.syncer.stop()
        duration = self._elapsed(segment, now)
        closed = segment.closed(now, duration)
        self.open_segment = None
        self._session_closed_seconds += duration
        self._topic_totals[segment.topic_id] = self._topic_totals.get(segment.topic_id, 0) + duration
        self.writer.submit(f"close segment {closed.id}", self.store.upsert_segment, closed)
        logger.debug(f"Closed segment {closed.id} ({duration}s on {closed.topic_id})")
        return duration

    def _live_segment(self) -> Optional[TopicTimeSegment]:
        if self.open_segment is None:
            return None
        return self.open_segment.with_duration(
            self._elapsed(self.open_segment, self.scheduler.now())
        )

    @staticmethod
    def _elapsed(segment: TopicTimeSegment, now: float) -> int:
        return max(0, int(now - segment.started_at))
