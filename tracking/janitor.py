"""
Janitor pass: closes segments orphaned by a crash that was never recovered.

A segment is orphaned when its last sync is older than
JANITOR_STALE_SECONDS. Its recorded duration is the last synced value
(capped at MAX_SEGMENT_SECONDS) and it is closed at started_at + duration,
not at the time the janitor runs. A parent session left with no open
segment is closed as well, with total_seconds = sum of its durations.
"""

import logging
from typing import List, Optional

import config
from core.errors import OrphanedSegmentError, TransientStoreError
from sync.remote_store import RemoteStore
from tracking.models import TimerSession, TopicTimeSegment

logger = logging.getLogger(__name__)


def find_orphan(segment: TopicTimeSegment, now: float,
                stale_after: float = config.JANITOR_STALE_SECONDS) -> Optional[float]:
    """
    Return the unsynced gap of an orphaned segment, or None.

    The unsynced gap is the wall time since start minus what was synced.
    """
    if not segment.is_open:
        return None
    unsynced = now - segment.started_at - segment.duration_seconds
    if unsynced > stale_after:
        return unsynced
    return None


def close_orphaned_segments(store: RemoteStore, now: float,
                            stale_after: float = config.JANITOR_STALE_SECONDS,
                            max_duration: int = config.MAX_SEGMENT_SECONDS) -> List[TopicTimeSegment]:
    """
    Close every orphaned open segment in the store.

    Args:
        store: Remote store to scan and write.
        now: Current epoch seconds.
        stale_after: Unsynced gap after which a segment counts as orphaned.
        max_duration: Upper bound on a recovered segment's duration.

    Returns:
        The segments that were closed.
    """
    try:
        open_segments = store.list_open_segments()
    except TransientStoreError as e:
        logger.warning(f"Janitor could not list open segments: {e}")
        return []

    closed: List[TopicTimeSegment] = []
    touched_sessions = []
    for segment in open_segments:
        unsynced = find_orphan(segment, now, stale_after)
        if unsynced is None:
            continue
        logger.warning(f"{OrphanedSegmentError(segment.id, unsynced)}; closing it")

        duration = min(segment.duration_seconds, max_duration)
        result = segment.closed(segment.started_at + duration, duration)
        try:
            store.upsert_segment(result)
        except TransientStoreError as e:
            logger.warning(f"Janitor could not close segment {segment.id}: {e}")
            continue
        closed.append(result)
        if segment.timer_session_id not in touched_sessions:
            touched_sessions.append(segment.timer_session_id)

    for session_id in touched_sessions:
        _close_session_if_idle(store, session_id)

    if closed:
        logger.info(f"Janitor closed {len(closed)} orphaned segment(s)")
    return closed


def _close_session_if_idle(store: RemoteStore, session_id: str) -> Optional[TimerSession]:
    try:
        session = store.get_session(session_id)
        if session is None or not session.is_open:
            return None
        segments = store.list_session_segments(session_id)
        if any(s.is_open for s in segments):
            return None
        ended_at = max((s.ended_at for s in segments), default=session.started_at)
        result = session.closed(ended_at, sum(s.duration_seconds for s in segments))
        store.upsert_session(result)
    except TransientStoreError as e:
        logger.warning(f"Janitor could not close session {session_id}: {e}")
        return None

    logger.info(f"Janitor closed session {session_id} ({result.total_seconds}s)")
    return result
