"""
Tests for tracking/models.py and sync/memory_store.py.
"""

import sys
import unittest
from pathlib import Path

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from sync.memory_store import InMemoryRemoteStore
from tracking.models import (
    TimerMode,
    TimerSession,
    TopicTimeSegment,
    from_iso,
    to_iso,
)

NOW = 1_700_000_000.0


class TestTimerMode(unittest.TestCase):

    def test_parse_wire_values_and_aliases(self):
        self.assertEqual(TimerMode.parse("work"), TimerMode.WORK)
        self.assertEqual(TimerMode.parse("longBreak"), TimerMode.LONG_BREAK)
        self.assertEqual(TimerMode.parse(" LONG "), TimerMode.LONG_BREAK)
        self.assertEqual(TimerMode.parse("focus"), TimerMode.WORK)

    def test_parse_unknown(self):
        with self.assertRaises(ValueError):
            TimerMode.parse("nap")


class TestTimestamps(unittest.TestCase):

    def test_iso_with_zulu_suffix(self):
        self.assertEqual(from_iso("2023-11-14T22:13:20Z"), NOW)
        self.assertEqual(from_iso(to_iso(NOW)), NOW)

    def test_none_passes_through(self):
        self.assertIsNone(to_iso(None))
        self.assertIsNone(from_iso(None))
        self.assertIsNone(from_iso(""))

    def test_segment_row_keeps_open_state(self):
        segment = TopicTimeSegment(
            id="seg-1", timer_session_id="ts-1", topic_id="math",
            user_id="user-1", started_at=NOW, duration_seconds=30,
        )
        restored = TopicTimeSegment.from_row(segment.to_row())
        self.assertTrue(restored.is_open)
        self.assertEqual(restored.duration_seconds, 30)
        self.assertEqual(restored.started_at, NOW)


class TestInMemoryRemoteStore(unittest.TestCase):

    def test_newest_open_session_wins(self):
        store = InMemoryRemoteStore()
        store.upsert_session(TimerSession(id="old", user_id="u", started_at=NOW))
        store.upsert_session(TimerSession(id="new", user_id="u", started_at=NOW + 60))
        store.upsert_session(TimerSession(id="other", user_id="v", started_at=NOW + 120))
        self.assertEqual(store.query_open_session("u").id, "new")

    def test_closed_session_not_open(self):
        store = InMemoryRemoteStore()
        session = TimerSession(id="ts", user_id="u", started_at=NOW)
        store.upsert_session(session)
        store.upsert_session(session.closed(NOW + 60, 60))
        self.assertIsNone(store.query_open_session("u"))
        self.assertEqual(store.write_count, 2)

    def test_topic_totals_skip_open_segments(self):
        store = InMemoryRemoteStore()
        store.upsert_segment(TopicTimeSegment(
            id="a", timer_session_id="ts", topic_id="math", user_id="u",
            started_at=NOW, ended_at=NOW + 40, duration_seconds=40,
        ))
        store.upsert_segment(TopicTimeSegment(
            id="b", timer_session_id="ts", topic_id="math", user_id="u",
            started_at=NOW + 40, duration_seconds=30,
        ))
        self.assertEqual(store.fetch_topic_totals("u"), {"math": 40})


if __name__ == "__main__":
    unittest.main()
