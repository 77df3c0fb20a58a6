"""
Tests for tracking/persistence.py - local snapshot file and staleness policy.
"""

import sys
import json
import shutil
import tempfile
import unittest
from pathlib import Path

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import RestorationStaleError
from tracking.models import TimerMode, TimerSnapshot
from tracking.persistence import JsonSnapshotStore, MemorySnapshotStore, check_staleness

NOW = 1_700_000_000.0


def snapshot(saved_at=NOW, remaining=1490, running=False):
    return TimerSnapshot(
        mode=TimerMode.WORK,
        time_remaining_seconds=remaining,
        is_running=running,
        session_start_time=saved_at - 10,
        current_session_index=2,
        last_recorded_full_minutes=0,
        saved_at=saved_at,
    )


class TestStaleness(unittest.TestCase):

    def test_fresh_snapshot_passes(self):
        check_staleness(snapshot(), NOW + 29 * 60, threshold=1800)

    def test_old_snapshot_raises(self):
        with self.assertRaises(RestorationStaleError) as ctx:
            check_staleness(snapshot(), NOW + 31 * 60, threshold=1800)
        self.assertEqual(ctx.exception.age_seconds, 31 * 60)


class TestJsonSnapshotStore(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.path = self.temp_dir / "timer_state.json"
        self.now = NOW
        self.store = JsonSnapshotStore(self.path, clock=lambda: self.now)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_save_and_load(self):
        self.store.save(snapshot(running=True))
        loaded = self.store.load()
        self.assertEqual(loaded, snapshot(running=True))
        self.assertEqual(self.store.save_count, 1)

    def test_no_temp_files_left(self):
        for remaining in (1500, 1499, 1498):
            self.store.save(snapshot(remaining=remaining))
        self.assertEqual(list(self.temp_dir.glob("*.tmp")), [])
        self.assertEqual(json.loads(self.path.read_text())["time_remaining_seconds"], 1498)

    def test_stale_file_removed(self):
        self.store.save(snapshot())
        self.now = NOW + 31 * 60
        self.assertIsNone(self.store.load())
        self.assertFalse(self.path.exists())

    def test_corrupt_file_removed(self):
        self.path.write_text("{\"mode\": \"work\"")
        self.assertIsNone(self.store.load())
        self.assertFalse(self.path.exists())

    def test_unknown_mode_removed(self):
        data = snapshot().to_dict()
        data["mode"] = "nap"
        self.path.write_text(json.dumps(data))
        self.assertIsNone(self.store.load())

    def test_missing_file(self):
        self.assertIsNone(self.store.load())

    def test_clear(self):
        self.store.save_now(snapshot())
        self.store.clear()
        self.assertFalse(self.path.exists())
        self.assertIsNone(self.store.load())


class TestMemorySnapshotStore(unittest.TestCase):

    def test_staleness_policy_matches_file_store(self):
        now = [NOW]
        store = MemorySnapshotStore(clock=lambda: now[0])
        store.save(snapshot())
        self.assertIsNotNone(store.load())
        now[0] = NOW + 31 * 60
        self.assertIsNone(store.load())
        self.assertIsNone(store.snapshot)


if __name__ == "__main__":
    unittest.main()
