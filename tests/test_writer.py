"""
Tests for sync/writer.py - ordered, fire-and-forget remote writes.
"""

import sys
import threading
import unittest
from pathlib import Path
from unittest.mock import MagicMock

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.errors import TransientStoreError
from sync.writer import StoreWriter


class TestStoreWriter(unittest.TestCase):

    def test_background_writes_keep_order(self):
        writer = StoreWriter()
        seen = []
        for i in range(50):
            writer.submit(f"write {i}", seen.append, i)
        self.assertTrue(writer.flush(timeout=5.0))
        self.assertEqual(seen, list(range(50)))
        writer.close()

    def test_writes_run_off_the_caller_thread(self):
        writer = StoreWriter()
        threads = []
        writer.submit("record thread", lambda: threads.append(threading.current_thread()))
        writer.flush()
        self.assertNotEqual(threads[0], threading.current_thread())
        writer.close()

    def test_failure_is_logged_and_counted(self):
        writer = StoreWriter()
        failing = MagicMock(side_effect=TransientStoreError("upsert_segment"))
        after = MagicMock()
        writer.submit("failing", failing)
        writer.submit("after", after)
        writer.flush()
        self.assertEqual(writer.failures, 1)
        after.assert_called_once()
        writer.close()

    def test_unexpected_error_does_not_kill_worker(self):
        writer = StoreWriter()
        after = MagicMock()
        writer.submit("broken", MagicMock(side_effect=KeyError("id")))
        writer.submit("after", after)
        writer.flush()
        after.assert_called_once()
        self.assertEqual(writer.failures, 1)
        writer.close()

    def test_inline_mode(self):
        writer = StoreWriter(background=False)
        fn = MagicMock()
        writer.submit("inline", fn, "a", 1)
        fn.assert_called_once_with("a", 1)
        self.assertTrue(writer.flush())
        writer.submit("failing", MagicMock(side_effect=TransientStoreError("x")))
        self.assertEqual(writer.failures, 1)


if __name__ == "__main__":
    unittest.main()
