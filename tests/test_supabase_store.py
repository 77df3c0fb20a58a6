"""
Tests for sync/supabase_store.py - query building and error wrapping
against a mocked Supabase client.
"""

import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock, patch

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from core.errors import TransientStoreError
from sync.supabase_store import SupabaseStore
from tracking.models import TimerSession, TopicTimeSegment, to_iso

NOW = 1_700_000_000.0


def make_client(rows=None):
    """Client whose query builder chains back to itself."""
    query = MagicMock()
    for name in ("select", "eq", "is_", "order", "limit", "upsert", "gte"):
        getattr(query, name).return_value = query
    query.not_ = query
    query.execute.return_value = MagicMock(data=rows or [])
    client = MagicMock()
    client.table.return_value = query
    return client, query


class TestWrites(unittest.TestCase):

    def test_upsert_segment(self):
        client, query = make_client()
        store = SupabaseStore(client=client)
        segment = TopicTimeSegment(
            id="seg-1", timer_session_id="ts-1", topic_id="math",
            user_id="user-1", started_at=NOW, duration_seconds=30,
        )
        store.upsert_segment(segment)

        client.table.assert_called_with(config.TABLE_TOPIC_SEGMENTS)
        row = query.upsert.call_args[0][0]
        self.assertEqual(query.upsert.call_args[1], {"on_conflict": "id"})
        self.assertEqual(row["started_at"], to_iso(NOW))
        self.assertIsNone(row["ended_at"])
        self.assertEqual(row["duration_seconds"], 30)

    def test_upsert_session(self):
        client, query = make_client()
        store = SupabaseStore(client=client)
        store.upsert_session(TimerSession(id="ts-1", user_id="user-1", started_at=NOW))
        client.table.assert_called_with(config.TABLE_TIMER_SESSIONS)
        self.assertEqual(query.upsert.call_args[0][0]["mode"], "pomodoro")

    def test_failure_wrapped(self):
        client, query = make_client()
        query.execute.side_effect = ConnectionError("offline")
        store = SupabaseStore(client=client)
        with self.assertRaises(TransientStoreError) as ctx:
            store.upsert_session(TimerSession(id="ts-1", user_id="user-1", started_at=NOW))
        self.assertEqual(ctx.exception.operation, "upsert_session")

    @patch.object(config, "SUPABASE_ANON_KEY", "")
    @patch.object(config, "SUPABASE_URL", "")
    def test_unconfigured_store_raises_transient(self):
        store = SupabaseStore()
        self.assertFalse(store.is_available())
        with self.assertRaises(TransientStoreError):
            store.query_open_session("user-1")


class TestQueries(unittest.TestCase):

    def test_query_open_session(self):
        row = {
            "id": "ts-1", "user_id": "user-1", "started_at": "2023-11-14T22:13:20Z",
            "ended_at": None, "mode": "pomodoro", "total_seconds": 0,
        }
        client, query = make_client([row])
        session = SupabaseStore(client=client).query_open_session("user-1")

        self.assertEqual(session.id, "ts-1")
        self.assertEqual(session.started_at, NOW)
        self.assertTrue(session.is_open)
        query.eq.assert_called_with("user_id", "user-1")
        query.is_.assert_called_with("ended_at", "null")

    def test_query_open_segment_none(self):
        client, _ = make_client([])
        self.assertIsNone(SupabaseStore(client=client).query_open_segment("ts-1"))

    def test_fetch_topic_totals_sums_rows(self):
        rows = [
            {"topic_id": "math", "duration_seconds": 30},
            {"topic_id": "math", "duration_seconds": 45},
            {"topic_id": "physics", "duration_seconds": None},
        ]
        client, _ = make_client(rows)
        totals = SupabaseStore(client=client).fetch_topic_totals("user-1")
        self.assertEqual(totals, {"math": 75, "physics": 0})


if __name__ == "__main__":
    unittest.main()
