"""
Tests for core/settings.py - validation at the configuration boundary.
"""

import sys
import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

# Ensure project root is on the path
sys.path.insert(0, str(Path(__file__).parent.parent))

import config
from core.errors import ValidationError
from core.settings import SettingsFile, TimerSettings
from tracking.models import TimerMode


class TestTimerSettingsValidation(unittest.TestCase):

    def test_defaults(self):
        settings = TimerSettings()
        self.assertEqual(settings.duration_seconds(TimerMode.WORK), 1500)
        self.assertEqual(settings.duration_seconds(TimerMode.BREAK), 300)
        self.assertEqual(settings.duration_seconds(TimerMode.LONG_BREAK), 900)
        self.assertFalse(settings.auto_start_breaks)
        self.assertFalse(settings.auto_start_focus)

    def test_rejects_non_positive(self):
        for value in (0, -5):
            with self.assertRaises(ValidationError) as ctx:
                TimerSettings(work_duration_minutes=value)
            self.assertEqual(ctx.exception.field, "work_duration_minutes")

    def test_rejects_bool_and_str_durations(self):
        with self.assertRaises(ValidationError):
            TimerSettings(break_duration_minutes=True)
        with self.assertRaises(ValidationError):
            TimerSettings(long_break_duration_minutes="15")
        with self.assertRaises(ValidationError):
            TimerSettings(sessions_until_long_break=2.5)

    def test_rejects_non_bool_flags(self):
        with self.assertRaises(ValidationError):
            TimerSettings(auto_start_breaks=1)

    def test_validation_error_is_value_error(self):
        with self.assertRaises(ValueError):
            TimerSettings(work_duration_minutes=0)

    def test_with_changes_returns_new_value(self):
        original = TimerSettings()
        changed = original.with_changes(work_duration_minutes=50)
        self.assertEqual(original.work_duration_minutes, 25)
        self.assertEqual(changed.work_duration_minutes, 50)

    def test_with_changes_rejects_unknown_field(self):
        with self.assertRaises(ValidationError):
            TimerSettings().with_changes(snooze_minutes=5)

    def test_from_dict_ignores_unknown_keys(self):
        settings = TimerSettings.from_dict({"work_duration_minutes": 30, "theme": "dark"})
        self.assertEqual(settings.work_duration_minutes, 30)


class TestSettingsFile(unittest.TestCase):

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.path = self.temp_dir / "timer_settings.json"

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_save_and_load(self):
        SettingsFile(self.path).save(TimerSettings(work_duration_minutes=45, auto_start_focus=True))
        loaded = SettingsFile(self.path).load()
        self.assertEqual(loaded.work_duration_minutes, 45)
        self.assertTrue(loaded.auto_start_focus)
        self.assertEqual(list(self.temp_dir.glob("*.tmp")), [])

    def test_invalid_file_falls_back_to_defaults(self):
        self.path.write_text(json.dumps({"work_duration_minutes": -1}))
        self.assertEqual(SettingsFile(self.path).load(), TimerSettings.from_config())

    def test_corrupt_file_falls_back_to_defaults(self):
        self.path.write_text("{not json")
        self.assertEqual(SettingsFile(self.path).load(), TimerSettings.from_config())

    def test_missing_file(self):
        self.assertEqual(SettingsFile(self.path).load(), TimerSettings.from_config())

    @patch.object(config, "WORK_DURATION_MINUTES", 0)
    def test_invalid_environment_falls_back_to_builtin_defaults(self):
        with self.assertLogs("core.settings", level="WARNING"):
            loaded = SettingsFile(self.path).load()
        self.assertEqual(loaded, TimerSettings())


if __name__ == "__main__":
    unittest.main()
