"""Configuration settings for FocusLedger."""

import logging
import os
import sys
from pathlib import Path
from dotenv import load_dotenv

logger = logging.getLogger(__name__)


def is_bundled() -> bool:
    """
    Check if the application is running from a PyInstaller bundle.

    Returns:
        True if running from a bundled executable, False otherwise.
    """
    return getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS')


def get_user_data_dir() -> Path:
    """
    Get the directory for user-writable data (timer state, settings).

    For development: FOCUSLEDGER_DATA_DIR if set, else BASE_DIR/data
    For bundled apps: Uses a dedicated folder in the user's home directory
                      so the timer snapshot survives updates.

    Returns:
        Path to the user data directory.
    """
    override = os.getenv("FOCUSLEDGER_DATA_DIR", "")
    if override:
        return Path(override)

    if is_bundled():
        if sys.platform == 'darwin':
            # macOS: ~/Library/Application Support/FocusLedger
            return Path.home() / "Library" / "Application Support" / "FocusLedger"
        elif sys.platform == 'win32':
            appdata = os.environ.get('APPDATA')
            if appdata:
                return Path(appdata) / "FocusLedger"
            return Path.home() / "AppData" / "Roaming" / "FocusLedger"
        else:
            # Linux: ~/.local/share/FocusLedger
            return Path.home() / ".local" / "share" / "FocusLedger"

    # Development mode
    return Path(__file__).parent / "data"


def _get_int(env_var: str, default: int) -> int:
    """
    Read an integer from the environment, falling back to the default.

    Non-numeric values are logged and ignored. Range checks happen at the
    settings boundary (core.settings), not here.
    """
    raw = os.getenv(env_var, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(
            f"{env_var}={raw!r} is not an integer, using default {default}"
        )
        return default


def _get_bool(env_var: str, default: bool) -> bool:
    raw = os.getenv(env_var, "")
    if not raw:
        return default
    return raw.lower() in ("true", "1", "yes")


# Load environment variables from .env file (only in development)
if not is_bundled():
    # Explicitly load from the project root (where config.py lives)
    _env_path = Path(__file__).parent / ".env"
    load_dotenv(_env_path)

# User data directory (for writable data like the timer snapshot)
USER_DATA_DIR = get_user_data_dir()

# Local persistence
TIMER_STATE_FILE = USER_DATA_DIR / "timer_state.json"
TIMER_SETTINGS_FILE = USER_DATA_DIR / "timer_settings.json"

# Default timer settings (validated in core.settings before use)
WORK_DURATION_MINUTES = _get_int("WORK_DURATION_MINUTES", 25)
BREAK_DURATION_MINUTES = _get_int("BREAK_DURATION_MINUTES", 5)
LONG_BREAK_DURATION_MINUTES = _get_int("LONG_BREAK_DURATION_MINUTES", 15)
SESSIONS_UNTIL_LONG_BREAK = _get_int("SESSIONS_UNTIL_LONG_BREAK", 4)
AUTO_START_BREAKS = _get_bool("AUTO_START_BREAKS", False)
AUTO_START_FOCUS = _get_bool("AUTO_START_FOCUS", False)

# Timer engine cadence (seconds)
TICK_INTERVAL = 1.0
SNAPSHOT_SAVE_INTERVAL = 5.0  # Periodic snapshot save while running

# A saved snapshot older than this is never restored (30 minutes)
SNAPSHOT_STALE_SECONDS = 30 * 60

# Open segment partial sync cadence; bounds data loss on a crash
SEGMENT_SYNC_INTERVAL = 30.0

# Janitor pass: a segment whose last sync lags its age by more than
# JANITOR_STALE_SECONDS is treated as orphaned and capped at MAX_SEGMENT_SECONDS
JANITOR_STALE_SECONDS = _get_int("JANITOR_STALE_SECONDS", 6 * 3600)
MAX_SEGMENT_SECONDS = _get_int("MAX_SEGMENT_SECONDS", 4 * 3600)

# Supabase Configuration (timer sessions, topic segments, focus records)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")

# Single active user per account; authentication is handled elsewhere
FOCUS_USER_ID = os.getenv("FOCUS_USER_ID", "local-user")

# Remote table names
TABLE_TIMER_SESSIONS = "timer_sessions"
TABLE_TOPIC_SEGMENTS = "topic_time_segments"
TABLE_FOCUS_SESSIONS = "focus_sessions"

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")  # Can override in .env: DEBUG, INFO, WARNING, ERROR
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
