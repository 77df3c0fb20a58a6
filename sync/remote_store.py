"""
RemoteStore: the durable store for timer sessions, topic segments and
focus records.

Implementations raise TransientStoreError for any network/server failure;
callers log it and carry on.
"""

from typing import Dict, List, Optional, Protocol

from tracking.models import FocusRecord, TimerSession, TopicTimeSegment


class RemoteStore(Protocol):
    """Operations consumed by the tracker, recorder, syncer and janitor."""

    def upsert_session(self, session: TimerSession) -> None:
        ...

    def upsert_segment(self, segment: TopicTimeSegment) -> None:
        ...

    def upsert_focus_record(self, record: FocusRecord) -> None:
        ...

    def query_open_session(self, user_id: str) -> Optional[TimerSession]:
        """The user's TimerSession with ended_at = None, if any."""
        ...

    def query_open_segment(self, session_id: str) -> Optional[TopicTimeSegment]:
        """The session's TopicTimeSegment with ended_at = None, if any."""
        ...

    def get_session(self, session_id: str) -> Optional[TimerSession]:
        ...

    def list_session_segments(self, session_id: str) -> List[TopicTimeSegment]:
        ...

    def list_open_segments(self) -> List[TopicTimeSegment]:
        """Every open segment across users (janitor pass only)."""
        ...

    def fetch_topic_totals(self, user_id: str) -> Dict[str, int]:
        """Sum of duration_seconds per topic over the user's closed segments."""
        ...

    def list_focus_records(self, user_id: str, since: float) -> List[FocusRecord]:
        ...
