#!/usr/bin/env python3
"""
FocusLedger - Main Entry Point

A focus/break interval timer that attributes focused time to the topic
being studied and keeps the per-topic ledger in Supabase.

Usage:
    python main.py                 # Interactive timer (Supabase if configured)
    python main.py --offline       # Interactive timer with an in-memory ledger
    python main.py --janitor       # Close orphaned segments and exit
"""

# =============================================================================
# PyInstaller bundled app path fix - MUST BE BEFORE ANY OTHER IMPORTS
# =============================================================================
import os
import sys

if getattr(sys, 'frozen', False) and hasattr(sys, '_MEIPASS'):
    _bundle_dir = sys._MEIPASS
    os.chdir(_bundle_dir)
    if _bundle_dir not in sys.path:
        sys.path.insert(0, _bundle_dir)

import atexit
import logging
import signal
import argparse
import time
from typing import List, Optional

import config
from core.controller import StudyController
from sync.memory_store import InMemoryRemoteStore
from sync.remote_store import RemoteStore
from sync.supabase_store import SupabaseStore
from tracking.janitor import close_orphaned_segments
from tracking.models import TimerMode

# Configure logging
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL),
    format=config.LOG_FORMAT
)
logger = logging.getLogger(__name__)

# Suppress noisy third-party library logs (HTTP requests, etc.)
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("hpack").setLevel(logging.WARNING)

HELP_TEXT = """
Commands:
  start                 Start or resume the countdown
  pause                 Pause the countdown
  reset                 Rewind the current interval (closes the tracking session)
  mode <work|break|long>
                        Switch interval type
  topic <topic_id>      Attribute focused time to a topic
  stop                  Close the tracking session
  status                Show timer and tracking state
  total <topic_id>      Show time tracked for a topic
  today                 Show today's completed focus sessions
  set <name> <value>    Change a setting (e.g. set work_duration_minutes 50)
  help                  Show this help
  quit                  Save and exit
"""


def format_seconds(seconds: int) -> str:
    """Format seconds as MM:SS, or H:MM:SS past an hour."""
    minutes, secs = divmod(max(0, int(seconds)), 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def build_remote_store(offline: bool) -> RemoteStore:
    """Supabase when credentials are configured, otherwise in memory."""
    if not offline:
        store = SupabaseStore()
        if store.is_available():
            return store
        print("⚠️  Supabase is not configured; topic totals will not be saved.")
    return InMemoryRemoteStore()


class FocusLedgerCLI:
    """
    Terminal front end for the StudyController.
    """

    def __init__(self, controller: StudyController):
        self.controller = controller
        self.running = False
        self._shut_down = False
        controller.on_complete = self._on_complete

    def display_welcome(self):
        print("\n" + "=" * 60)
        print("🎯 FocusLedger - Focus Timer & Topic Ledger")
        print("=" * 60)
        print(HELP_TEXT)

    def run(self):
        """Read commands until quit or end of input."""
        self.running = True
        while self.running:
            try:
                line = input("focusledger> ")
            except EOFError:
                break
            self.handle_command(line)

    def handle_command(self, line: str) -> None:
        parts = line.strip().split()
        if not parts:
            return
        command, args = parts[0].lower(), parts[1:]
        try:
            self._dispatch(command, args)
        except ValueError as e:
            # ValidationError is a ValueError
            print(f"❌ {e}")

    def _dispatch(self, command: str, args: List[str]) -> None:
        controller = self.controller
        if command == "start":
            if not controller.start():
                print("Timer is already running.")
            self.print_status()
        elif command == "pause":
            if not controller.pause():
                print("Timer is not running.")
            self.print_status()
        elif command == "reset":
            controller.reset()
            self.print_status()
        elif command == "mode":
            if not args:
                raise ValueError("usage: mode <work|break|long>")
            controller.change_mode(TimerMode.parse(args[0]))
            self.print_status()
        elif command == "topic":
            if not args:
                raise ValueError("usage: topic <topic_id>")
            controller.set_active_topic(args[0])
            print(f"✓ Active topic: {args[0]}")
        elif command == "stop":
            controller.stop_tracking()
            print("✓ Tracking session closed")
        elif command == "status":
            self.print_status()
        elif command == "total":
            if not args:
                raise ValueError("usage: total <topic_id>")
            total = controller.get_topic_total_time(args[0])
            print(f"⏱️  {args[0]}: {format_seconds(total)}")
        elif command == "today":
            stats = controller.get_today_stats()
            print(f"📈 Completed sessions today: {stats['completed_sessions']}")
            print(f"   Focused minutes today: {stats['total_minutes_today']}")
        elif command == "set":
            if len(args) != 2:
                raise ValueError("usage: set <name> <value>")
            settings = controller.update_settings(**{args[0]: _parse_value(args[1])})
            print(f"✓ Settings saved: {settings.to_dict()}")
        elif command == "help":
            print(HELP_TEXT)
        elif command in ("quit", "exit", "q"):
            self.running = False
        else:
            print(f"Unknown command: {command} (type 'help')")

    def print_status(self) -> None:
        status = self.controller.get_status()
        state = "running" if status["is_running"] else "paused"
        print(
            f"[{status['mode']}] {format_seconds(status['time_remaining_seconds'])} "
            f"({state}, {status['progress_percent']}%) "
            f"session {status['current_session_index']}, "
            f"topic: {status['active_topic_id'] or '-'} ({status['tracking_state']})"
        )

    def _on_complete(self, progress) -> None:
        print(f"\n🔔 {progress.mode.value} finished ({format_seconds(progress.total_seconds)})")

    def shutdown(self) -> None:
        """Save state once, whichever exit path gets here first."""
        if self._shut_down:
            return
        self._shut_down = True
        self.controller.shutdown()


def _parse_value(raw: str):
    """CLI values: true/false become bools, digits become ints."""
    lowered = raw.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False
    try:
        return int(raw)
    except ValueError:
        return raw


def run_janitor(store: RemoteStore) -> int:
    """Close orphaned segments; returns the number closed."""
    closed = close_orphaned_segments(store, time.time())
    print(f"✓ Closed {len(closed)} orphaned segment(s)")
    return len(closed)


def main(argv: Optional[List[str]] = None):
    """
    Main entry point: parses arguments and launches the requested mode.
    """
    parser = argparse.ArgumentParser(
        description="FocusLedger - focus timer with a per-topic time ledger",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                    Interactive timer
  python main.py --topic algebra    Start with a topic selected
  python main.py --offline          Do not connect to Supabase
  python main.py --janitor          Close orphaned segments and exit
        """
    )
    parser.add_argument("--offline", action="store_true",
                        help="Keep the ledger in memory only")
    parser.add_argument("--topic", default=None,
                        help="Topic to attribute focused time to")
    parser.add_argument("--janitor", action="store_true",
                        help="Close segments orphaned by a crash and exit")
    args = parser.parse_args(argv)

    store = build_remote_store(args.offline)
    if args.janitor:
        run_janitor(store)
        return

    controller = StudyController(store, user_id=config.FOCUS_USER_ID)
    cli = FocusLedgerCLI(controller)

    atexit.register(cli.shutdown)

    def _handle_signal(signum, frame):
        logger.info(f"Received signal {signum}")
        cli.shutdown()
        sys.exit(0)

    signal.signal(signal.SIGTERM, _handle_signal)

    controller.restore()
    if args.topic:
        controller.set_active_topic(args.topic)

    cli.display_welcome()
    cli.print_status()
    try:
        cli.run()
    except KeyboardInterrupt:
        print("\n\nGoodbye!")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"\nFatal error: {e}")
        cli.shutdown()
        sys.exit(1)
    cli.shutdown()


if __name__ == "__main__":
    main()
