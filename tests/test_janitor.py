"""
Tests for tracking/janitor.py - closing segments orphaned by a crash.
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import TransientStoreError
from sync.memory_store import InMemoryRemoteStore
from tracking.janitor import close_orphaned_segments, find_orphan
from tracking.models import TimerSession, TopicTimeSegment

NOW = 1_700_000_000.0
HOUR = 3600


def add_session(store, session_id, started_at):
    session = TimerSession(id=session_id, user_id="user-1", started_at=started_at)
    store.upsert_session(session)
    return session


def add_segment(store, segment_id, session_id, started_at, duration, ended_at=None):
    segment = TopicTimeSegment(
        id=segment_id,
        timer_session_id=session_id,
        topic_id="math",
        user_id="user-1",
        started_at=started_at,
        ended_at=ended_at,
        duration_seconds=duration,
    )
    store.upsert_segment(segment)
    return segment


class TestFindOrphan(unittest.TestCase):

    def test_recently_synced_segment_is_not_orphaned(self):
        segment = add_segment(InMemoryRemoteStore(), "s1", "t1", NOW - 10 * HOUR, 10 * HOUR - 30)
        self.assertIsNone(find_orphan(segment, NOW, stale_after=6 * HOUR))

    def test_unsynced_segment_is_orphaned(self):
        segment = add_segment(InMemoryRemoteStore(), "s1", "t1", NOW - 10 * HOUR, 1800)
        self.assertEqual(find_orphan(segment, NOW, stale_after=6 * HOUR), 10 * HOUR - 1800)

    def test_closed_segment_is_never_orphaned(self):
        segment = add_segment(
            InMemoryRemoteStore(), "s1", "t1", NOW - 10 * HOUR, 600, ended_at=NOW - 10 * HOUR + 600
        )
        self.assertIsNone(find_orphan(segment, NOW, stale_after=6 * HOUR))


class TestCloseOrphanedSegments(unittest.TestCase):

    def test_closes_at_last_synced_duration(self):
        store = InMemoryRemoteStore()
        add_session(store, "t1", NOW - 10 * HOUR)
        add_segment(store, "s1", "t1", NOW - 10 * HOUR, 1800)

        with self.assertLogs("tracking.janitor", level="WARNING") as logs:
            closed = close_orphaned_segments(store, NOW, stale_after=6 * HOUR, max_duration=4 * HOUR)

        self.assertIn("Segment s1 has not been synced for 34200s", logs.output[0])
        self.assertEqual([s.id for s in closed], ["s1"])
        segment = store.segments["s1"]
        self.assertEqual(segment.duration_seconds, 1800)
        self.assertEqual(segment.ended_at, NOW - 10 * HOUR + 1800)

    def test_caps_duration(self):
        store = InMemoryRemoteStore()
        add_session(store, "t1", NOW - 12 * HOUR)
        add_segment(store, "s1", "t1", NOW - 12 * HOUR, 5 * HOUR)

        close_orphaned_segments(store, NOW, stale_after=6 * HOUR, max_duration=4 * HOUR)

        self.assertEqual(store.segments["s1"].duration_seconds, 4 * HOUR)
        self.assertEqual(store.segments["s1"].ended_at, NOW - 12 * HOUR + 4 * HOUR)

    def test_closes_parent_session_with_segment_sum(self):
        store = InMemoryRemoteStore()
        add_session(store, "t1", NOW - 10 * HOUR)
        add_segment(store, "s0", "t1", NOW - 10 * HOUR, 600, ended_at=NOW - 10 * HOUR + 600)
        add_segment(store, "s1", "t1", NOW - 9 * HOUR, 1200)

        close_orphaned_segments(store, NOW, stale_after=6 * HOUR, max_duration=4 * HOUR)

        session = store.sessions["t1"]
        self.assertFalse(session.is_open)
        self.assertEqual(session.total_seconds, 1800)
        self.assertEqual(session.ended_at, NOW - 9 * HOUR + 1200)

    def test_live_segment_left_alone(self):
        store = InMemoryRemoteStore()
        add_session(store, "t1", NOW - HOUR)
        add_segment(store, "s1", "t1", NOW - HOUR, HOUR - 20)

        self.assertEqual(close_orphaned_segments(store, NOW, stale_after=6 * HOUR), [])
        self.assertTrue(store.segments["s1"].is_open)
        self.assertTrue(store.sessions["t1"].is_open)

    def test_session_with_other_open_segment_stays_open(self):
        store = InMemoryRemoteStore()
        add_session(store, "t1", NOW - 10 * HOUR)
        add_segment(store, "s1", "t1", NOW - 10 * HOUR, 600)
        add_segment(store, "s2", "t1", NOW - 60, 30)

        close_orphaned_segments(store, NOW, stale_after=6 * HOUR)

        self.assertFalse(store.segments["s1"].is_open)
        self.assertTrue(store.segments["s2"].is_open)
        self.assertTrue(store.sessions["t1"].is_open)

    def test_unreachable_store(self):
        store = MagicMock()
        store.list_open_segments.side_effect = TransientStoreError("list_open_segments")
        self.assertEqual(close_orphaned_segments(store, NOW), [])
        store.upsert_segment.assert_not_called()


if __name__ == "__main__":
    unittest.main()
