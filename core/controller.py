"""
StudyController: wires the TimerEngine to the topic ledger.

The engine knows nothing about topics and the tracker knows nothing about
countdowns. The controller subscribes to engine callbacks and turns them
into tracker operations:

    engine running in Work      -> start_timer(active topic) / resume_timer()
    engine stopped or not Work  -> pause_timer()
    engine reset                -> stop_timer()

Minute boundaries and completions go to the SessionRecorder.

Callbacks (for the UI):
    on_status_change(status: dict)
    on_tick(status: dict)
    on_complete(progress: IntervalProgress)
"""

import logging
import threading
from typing import Any, Callable, Dict, Optional

import config
from core.scheduler import Scheduler, ThreadingScheduler
from core.settings import SettingsFile, TimerSettings
from core.timer_engine import IntervalProgress, TimerEngine
from sync.remote_store import RemoteStore
from sync.writer import StoreWriter
from tracking.models import TimerMode
from tracking.persistence import PersistenceStore
from tracking.session_recorder import SessionRecorder
from tracking.topic_tracker import TopicSegmentTracker

logger = logging.getLogger(__name__)


class StudyController:
    """Single entry point for a UI or CLI driving the timer and the ledger."""

    def __init__(self, remote: RemoteStore,
                 user_id: str = config.FOCUS_USER_ID,
                 scheduler: Optional[Scheduler] = None,
                 snapshot_store: Optional[PersistenceStore] = None,
                 settings_file: Optional[SettingsFile] = None,
                 writer: Optional[StoreWriter] = None) -> None:
        """
        Build the engine, recorder and tracker around shared collaborators.

        Args:
            remote: Durable store for sessions, segments and focus records.
            user_id: Owner of every row written.
            scheduler: Clock and timers shared by the engine and the syncer.
            snapshot_store: Local snapshot store for the engine.
            settings_file: Where settings are loaded from and saved to.
            writer: Ordered queue for remote writes (background thread).
        """
        self.user_id = user_id
        self.scheduler: Scheduler = scheduler or ThreadingScheduler()
        self.writer = writer or StoreWriter()
        self.settings_file = settings_file or SettingsFile()

        self.engine = TimerEngine(
            settings=self.settings_file.load(),
            store=snapshot_store,
            scheduler=self.scheduler,
        )
        self.recorder = SessionRecorder(remote, user_id, self.writer, clock=self.scheduler.now)
        self.tracker = TopicSegmentTracker(remote, user_id, scheduler=self.scheduler, writer=self.writer)

        self.active_topic_id: Optional[str] = None
        self._lock = threading.RLock()

        # ---- Callbacks (set by the UI) ----
        self.on_status_change: Optional[Callable[[Dict[str, Any]], None]] = None
        self.on_tick: Optional[Callable[[Dict[str, Any]], None]] = None
        self.on_complete: Optional[Callable[[IntervalProgress], None]] = None

        self.engine.on_state_change = self._handle_state_change
        self.engine.on_tick = self._handle_tick
        self.engine.on_minute_elapsed = self.recorder.record_progress
        self.engine.on_complete = self._handle_complete
        self.engine.on_reset = self._handle_reset

    # ------------------------------------------------------------------
    # Timer controls
    # ------------------------------------------------------------------

    def start(self) -> bool:
        return self.engine.start()

    def pause(self) -> bool:
        return self.engine.pause()

    def reset(self) -> None:
        self.engine.reset()

    def change_mode(self, mode: TimerMode) -> None:
        self.engine.change_mode(mode)

    def update_settings(self, **changes: Any) -> TimerSettings:
        """
        Validate, persist and apply a settings change.

        Raises:
            ValidationError: If any value is invalid; nothing is changed.
        """
        settings = self.engine.settings.with_changes(**changes)
        self.settings_file.save(settings)
        self.engine.update_settings(settings)
        return settings

    # ------------------------------------------------------------------
    # Topic controls
    # ------------------------------------------------------------------

    def set_active_topic(self, topic_id: str) -> None:
        """
        Make topic_id the subject that running Work time is attributed to.

        While paused the switch is deferred to the next resume.
        """
        with self._lock:
            self.active_topic_id = topic_id
            if self.tracker.session is not None:
                self.tracker.switch_topic(topic_id)
                return
            status = self.engine.get_status()
            if status["is_running"] and status["mode"] == TimerMode.WORK.value:
                self.tracker.start_timer(topic_id)

    def stop_tracking(self) -> None:
        """Close the tracking episode without touching the countdown."""
        with self._lock:
            self.tracker.stop_timer()

    def get_topic_total_time(self, topic_id: str) -> int:
        return self.tracker.get_topic_total_time(topic_id)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        """Engine status plus the tracking state."""
        status = self.engine.get_status()
        status["active_topic_id"] = self.active_topic_id
        status["tracking_state"] = self.tracker.state
        status["segment_elapsed_seconds"] = self.tracker.current_segment_elapsed()
        return status

    def get_today_stats(self) -> Dict[str, int]:
        self.writer.flush()
        return self.recorder.fetch_today_stats()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def restore(self) -> None:
        """
        Startup recovery: the engine snapshot (always paused), then any
        tracking episode left open in the remote store.

        A recovered segment is credited up to now and then closed, since
        the restored timer is not running. The next Work start resumes
        the same session.
        """
        self.engine.restore()
        if self.tracker.restore():
            with self._lock:
                if self.active_topic_id is None:
                    self.active_topic_id = self.tracker.current_topic_id
                if not self._in_work(self.engine.get_status()):
                    self.tracker.pause_timer()

    def shutdown(self) -> None:
        """Best-effort save of everything in flight; safe to call twice."""
        logger.info("Shutting down")
        self.engine.save_now()
        self.tracker.shutdown()
        self.writer.flush()

    # ------------------------------------------------------------------
    # Engine callbacks
    # ------------------------------------------------------------------

    def _handle_state_change(self, status: Dict[str, Any]) -> None:
        with self._lock:
            # Callbacks from different threads can arrive out of order;
            # act on the engine as it is now
            status = self.engine.get_status()
            if not self._in_work(status):
                self.tracker.pause_timer()
            elif self.tracker.session is not None:
                self.tracker.resume_timer()
            elif self.active_topic_id is not None:
                self.tracker.start_timer(self.active_topic_id)
            else:
                logger.info("No active topic; focus time is not attributed")
        self._notify(self.on_status_change, status)

    @staticmethod
    def _in_work(status: Dict[str, Any]) -> bool:
        return status["is_running"] and status["mode"] == TimerMode.WORK.value

    def _handle_tick(self, status: Dict[str, Any]) -> None:
        self._notify(self.on_tick, status)

    def _handle_complete(self, progress: IntervalProgress) -> None:
        self.recorder.record_completion(progress)
        self._notify(self.on_complete, progress)

    def _handle_reset(self, status: Dict[str, Any]) -> None:
        with self._lock:
            self.tracker.stop_timer()

    @staticmethod
    def _notify(callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"UI callback failed: {e}")
