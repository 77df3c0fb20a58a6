"""
Timer settings: an immutable, validated value.

Settings are never mutated in place. A change builds a new TimerSettings
(validated in __post_init__) and the engine swaps its reference, so readers
never observe a half-updated configuration.
"""

import json
import logging
import os
import tempfile
from dataclasses import dataclass, asdict, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import config
from core.errors import ValidationError
from tracking.models import TimerMode

logger = logging.getLogger(__name__)

_POSITIVE_INT_FIELDS = (
    "work_duration_minutes",
    "break_duration_minutes",
    "long_break_duration_minutes",
    "sessions_until_long_break",
)
_BOOL_FIELDS = ("auto_start_breaks", "auto_start_focus")


@dataclass(frozen=True)
class TimerSettings:
    """Durations in minutes, plus the long-break cadence and auto-start flags."""

    work_duration_minutes: int = 25
    break_duration_minutes: int = 5
    long_break_duration_minutes: int = 15
    sessions_until_long_break: int = 4
    auto_start_breaks: bool = False
    auto_start_focus: bool = False

    def __post_init__(self) -> None:
        for name in _POSITIVE_INT_FIELDS:
            value = getattr(self, name)
            # bool is an int subclass; True is not a duration
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ValidationError(name, value)
        for name in _BOOL_FIELDS:
            value = getattr(self, name)
            if not isinstance(value, bool):
                raise ValidationError(name, value, "must be a boolean")

    @classmethod
    def from_config(cls) -> "TimerSettings":
        """
        Defaults from config (environment / .env).

        An out-of-range value in the environment falls back to the
        built-in defaults.
        """
        try:
            return cls(
                work_duration_minutes=config.WORK_DURATION_MINUTES,
                break_duration_minutes=config.BREAK_DURATION_MINUTES,
                long_break_duration_minutes=config.LONG_BREAK_DURATION_MINUTES,
                sessions_until_long_break=config.SESSIONS_UNTIL_LONG_BREAK,
                auto_start_breaks=config.AUTO_START_BREAKS,
                auto_start_focus=config.AUTO_START_FOCUS,
            )
        except ValidationError as e:
            logger.warning(f"Invalid timer settings in environment ({e}). Using built-in defaults.")
            return cls()

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TimerSettings":
        """
        Build settings from a mapping, ignoring unknown keys.

        Raises:
            ValidationError: If any known field is invalid.
        """
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def with_changes(self, **changes: Any) -> "TimerSettings":
        """
        Return a new validated settings value with the given fields replaced.

        Raises:
            ValidationError: If a changed field is invalid or unknown.
        """
        known = {f.name for f in fields(self)}
        for name in changes:
            if name not in known:
                raise ValidationError(name, changes[name], "is not a timer setting")
        return replace(self, **changes)

    def duration_seconds(self, mode: TimerMode) -> int:
        """Full length of an interval of the given mode."""
        if mode == TimerMode.WORK:
            return self.work_duration_minutes * 60
        if mode == TimerMode.BREAK:
            return self.break_duration_minutes * 60
        return self.long_break_duration_minutes * 60

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class SettingsFile:
    """
    Local JSON file holding the user's timer settings.

    Invalid or unreadable files fall back to config defaults and are
    overwritten on the next save.
    """

    def __init__(self, path: Optional[Path] = None):
        self.path: Path = path or config.TIMER_SETTINGS_FILE

    def load(self) -> TimerSettings:
        if self.path.exists():
            try:
                with open(self.path, 'r') as f:
                    data = json.load(f)
                settings = TimerSettings.from_dict(data)
                logger.debug(f"Loaded timer settings: {settings}")
                return settings
            except (json.JSONDecodeError, IOError, OSError, TypeError) as e:
                logger.warning(f"Failed to load timer settings: {e}. Using defaults.")
            except ValidationError as e:
                logger.warning(f"Invalid timer settings on disk ({e}). Using defaults.")
        return TimerSettings.from_config()

    def save(self, settings: TimerSettings) -> None:
        """Write settings atomically (temp file, then rename)."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(
                suffix='.tmp',
                prefix='timer_settings_',
                dir=self.path.parent
            )
            try:
                with os.fdopen(temp_fd, 'w') as f:
                    json.dump(settings.to_dict(), f, indent=2)
                os.replace(temp_path, self.path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
            logger.debug(f"Saved timer settings: {settings}")
        except (IOError, OSError, PermissionError) as e:
            logger.error(f"Failed to save timer settings: {e}")
