"""In-memory RemoteStore used in offline mode and by the test suite."""

import logging
import threading
from typing import Dict, List, Optional

from tracking.models import FocusRecord, TimerSession, TopicTimeSegment

logger = logging.getLogger(__name__)


class InMemoryRemoteStore:
    """
    Dict-backed store with upsert-by-id semantics.

    Rows are kept as the frozen dataclasses themselves, so a read never
    hands out a reference a caller could mutate.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.sessions: Dict[str, TimerSession] = {}
        self.segments: Dict[str, TopicTimeSegment] = {}
        self.focus_records: Dict[str, FocusRecord] = {}
        self.write_count = 0

    def upsert_session(self, session: TimerSession) -> None:
        with self._lock:
            self.sessions[session.id] = session
            self.write_count += 1

    def upsert_segment(self, segment: TopicTimeSegment) -> None:
        with self._lock:
            self.segments[segment.id] = segment
            self.write_count += 1

    def upsert_focus_record(self, record: FocusRecord) -> None:
        with self._lock:
            self.focus_records[record.id] = record
            self.write_count += 1

    def query_open_session(self, user_id: str) -> Optional[TimerSession]:
        with self._lock:
            open_sessions = [
                s for s in self.sessions.values()
                if s.user_id == user_id and s.ended_at is None
            ]
        if not open_sessions:
            return None
        if len(open_sessions) > 1:
            logger.warning(f"{len(open_sessions)} open sessions for {user_id}; using the newest")
        return max(open_sessions, key=lambda s: s.started_at)

    def query_open_segment(self, session_id: str) -> Optional[TopicTimeSegment]:
        with self._lock:
            open_segments = [
                s for s in self.segments.values()
                if s.timer_session_id == session_id and s.ended_at is None
            ]
        if not open_segments:
            return None
        return max(open_segments, key=lambda s: s.started_at)

    def get_session(self, session_id: str) -> Optional[TimerSession]:
        with self._lock:
            return self.sessions.get(session_id)

    def list_session_segments(self, session_id: str) -> List[TopicTimeSegment]:
        with self._lock:
            segments = [s for s in self.segments.values() if s.timer_session_id == session_id]
        return sorted(segments, key=lambda s: s.started_at)

    def list_open_segments(self) -> List[TopicTimeSegment]:
        with self._lock:
            segments = [s for s in self.segments.values() if s.ended_at is None]
        return sorted(segments, key=lambda s: s.started_at)

    def fetch_topic_totals(self, user_id: str) -> Dict[str, int]:
        totals: Dict[str, int] = {}
        with self._lock:
            for segment in self.segments.values():
                if segment.user_id != user_id or segment.ended_at is None:
                    continue
                totals[segment.topic_id] = totals.get(segment.topic_id, 0) + segment.duration_seconds
        return totals

    def list_focus_records(self, user_id: str, since: float) -> List[FocusRecord]:
        with self._lock:
            records = [
                r for r in self.focus_records.values()
                if r.user_id == user_id and r.started_at >= since
            ]
        return sorted(records, key=lambda r: r.started_at)
