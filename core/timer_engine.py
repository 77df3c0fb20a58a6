"""
TimerEngine: the single authoritative focus/break countdown.

Remaining time is always derived from an absolute target instant,
remaining = max(0, ceil(target_end - now)), so delayed, coalesced or
skipped callbacks never make the display drift. Scheduled ticks carry a
generation number; any tick scheduled before a cancel is ignored.

All state mutation happens under one RLock. Callbacks to collaborators
are invoked after the lock is released.

Callbacks:
    on_tick(status: dict)
    on_state_change(status: dict)
    on_minute_elapsed(progress: IntervalProgress)
    on_complete(progress: IntervalProgress)
    on_reset(status: dict)
"""

import logging
import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import config
from core.scheduler import ScheduledCall, Scheduler, ThreadingScheduler
from core.settings import TimerSettings
from tracking.models import TimerMode, TimerSnapshot
from tracking.persistence import JsonSnapshotStore, PersistenceStore

logger = logging.getLogger(__name__)

# Float slack when turning target_end - now into whole seconds
_EPSILON = 1e-6


@dataclass(frozen=True)
class IntervalProgress:
    """Progress of one interval, reported at minute boundaries and on completion."""

    mode: TimerMode
    session_start_time: Optional[float]
    elapsed_seconds: int
    total_seconds: int
    completed: bool
    at: float

    @property
    def full_minutes(self) -> int:
        return self.elapsed_seconds // 60


class TimerEngine:
    """
    Work / Break / LongBreak state machine.

    The engine owns its schedule (via the injected Scheduler) and its
    snapshot (via the injected PersistenceStore). It knows nothing about
    topics or the remote store.
    """

    def __init__(self, settings: Optional[TimerSettings] = None,
                 store: Optional[PersistenceStore] = None,
                 scheduler: Optional[Scheduler] = None,
                 save_interval: float = config.SNAPSHOT_SAVE_INTERVAL) -> None:
        """
        Initialise the engine in a fresh, paused Work interval.

        Args:
            settings: Validated settings; defaults from config.
            store: Snapshot store; defaults to the JSON file in USER_DATA_DIR.
            scheduler: Tick scheduler and clock; defaults to threading.Timer.
            save_interval: Seconds between snapshot saves while running.
        """
        self._settings: TimerSettings = settings or TimerSettings.from_config()
        self.scheduler: Scheduler = scheduler or ThreadingScheduler()
        self.store: PersistenceStore = store or JsonSnapshotStore(clock=self.scheduler.now)
        self.save_interval = save_interval

        self._lock = threading.RLock()

        # Engine state
        self.mode: TimerMode = TimerMode.WORK
        self.is_running: bool = False
        self.total_seconds: int = self._settings.duration_seconds(self.mode)
        self.time_remaining: int = self.total_seconds
        self.current_session_index: int = 0
        self.completed_sessions: int = 0
        self.session_start_time: Optional[float] = None
        self.last_recorded_full_minutes: int = 0

        # Scheduling
        self._target_end: Optional[float] = None
        self._generation: int = 0
        self._tick_handle: Optional[ScheduledCall] = None
        self._completion_handle: Optional[ScheduledCall] = None
        self._pending_completion: Optional[IntervalProgress] = None
        self._last_saved_at: float = 0.0

        # ---- Callbacks (set by the controller / UI) ----
        self.on_tick: Optional[Callable[[Dict[str, Any]], None]] = None
        self.on_state_change: Optional[Callable[[Dict[str, Any]], None]] = None
        self.on_minute_elapsed: Optional[Callable[[IntervalProgress], None]] = None
        self.on_complete: Optional[Callable[[IntervalProgress], None]] = None
        self.on_reset: Optional[Callable[[Dict[str, Any]], None]] = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def settings(self) -> TimerSettings:
        return self._settings

    def start(self) -> bool:
        """
        Start (or resume) the countdown.

        Returns:
            True if the engine started, False if it was already running or
            a completion is still being delivered.
        """
        with self._lock:
            if self.is_running:
                logger.debug("start() ignored: already running")
                return False
            if self._pending_completion is not None:
                logger.debug("start() ignored: completion in progress")
                return False
            if self.time_remaining <= 0:
                self._reset_interval()

            now = self.scheduler.now()
            self._target_end = now + self.time_remaining
            self.is_running = True
            if self.session_start_time is None:
                self.session_start_time = now
            self._generation += 1
            self._schedule_tick(now)
            self._persist(now)
            status = self._status()

        logger.info(f"Timer started ({self.mode.value}, {status['time_remaining_seconds']}s left)")
        self._emit(self.on_state_change, status)
        return True

    def pause(self) -> bool:
        """
        Pause the countdown. A second call has no effect.

        Returns:
            True if the engine was running and is now paused.
        """
        finished = None
        with self._lock:
            if not self.is_running:
                return False
            # Cancel before mutating so a late tick can't re-enter
            self._cancel_tick()
            now = self.scheduler.now()
            remaining = self._remaining_at(now)
            if remaining <= 0:
                finished = self._finish(now)
            else:
                self.time_remaining = remaining
                self.is_running = False
                self._target_end = None
                self._persist(now)
            status = self._status()

        if finished is None:
            logger.info(f"Timer paused with {status['time_remaining_seconds']}s left")
        self._emit(self.on_state_change, status)
        if finished is not None:
            self._schedule_completion()
        return True

    def reset(self) -> None:
        """Stop if running and rewind the current mode to its full duration."""
        with self._lock:
            self._stop()
            self._reset_interval()
            self._persist(self.scheduler.now())
            status = self._status()

        logger.info(f"Timer reset ({self.mode.value})")
        self._emit(self.on_reset, status)
        self._emit(self.on_state_change, status)

    def change_mode(self, mode: TimerMode) -> None:
        """
        Switch to another mode, stopping the countdown.

        The cycle index returns to 0 only when entering Work from a
        non-Work mode.
        """
        with self._lock:
            self._stop()
            if mode == TimerMode.WORK and self.mode != TimerMode.WORK:
                self.current_session_index = 0
            self.mode = mode
            self._reset_interval()
            self._persist(self.scheduler.now())
            status = self._status()

        logger.info(f"Timer mode changed to {mode.value}")
        self._emit(self.on_state_change, status)

    def update_settings(self, settings: TimerSettings) -> None:
        """
        Replace the settings value.

        When stopped, the current interval is resized immediately. When
        running, the new durations apply from the next reset, mode change
        or completion.
        """
        with self._lock:
            self._settings = settings
            if self.is_running or self._pending_completion is not None:
                logger.info("Settings updated; new durations apply after this interval")
                return
            self._reset_interval()
            self._persist(self.scheduler.now())
            status = self._status()

        logger.info(f"Settings updated; {self.mode.value} is now {status['total_seconds']}s")
        self._emit(self.on_state_change, status)

    def restore(self) -> bool:
        """
        Restore state from the persistence store.

        A restored timer is always paused: resuming needs an explicit
        start(). Stale or missing snapshots leave the fresh defaults.

        A snapshot saved at zero means the interval finished but its
        completion was never delivered. The completion is delivered on
        the next scheduling turn and the engine moves to the next mode,
        still paused.

        Returns:
            True if a snapshot was restored.
        """
        finished = None
        with self._lock:
            snapshot = self.store.load()
            if snapshot is None:
                logger.info("No timer snapshot to restore; using defaults")
                return False

            self._stop()
            self.mode = snapshot.mode
            self.current_session_index = snapshot.current_session_index
            self.session_start_time = snapshot.session_start_time
            self.last_recorded_full_minutes = snapshot.last_recorded_full_minutes
            duration = self._settings.duration_seconds(snapshot.mode)
            if snapshot.time_remaining_seconds <= 0:
                self.total_seconds = duration
                self.time_remaining = 0
                finished = IntervalProgress(
                    mode=self.mode,
                    session_start_time=self.session_start_time,
                    elapsed_seconds=duration,
                    total_seconds=duration,
                    completed=True,
                    at=snapshot.saved_at,
                )
                self._pending_completion = finished
            else:
                self.total_seconds = max(duration, snapshot.time_remaining_seconds)
                self.time_remaining = snapshot.time_remaining_seconds
            self.is_running = False

            if snapshot.is_running:
                logger.info("Snapshot was saved while running; restored as paused")
            self._persist(self.scheduler.now())
            status = self._status()

        if finished is not None:
            logger.info(f"Timer restored at the end of {status['mode']}; delivering its completion")
        else:
            logger.info(f"Timer restored ({status['mode']}, {status['time_remaining_seconds']}s left)")
        self._emit(self.on_state_change, status)
        if finished is not None:
            self._schedule_completion(auto_start=False)
        return True

    def resync(self) -> None:
        """
        Recompute remaining time from absolute timestamps right now.

        Call when the host wakes up or becomes visible again; pending ticks
        may have been delayed for an arbitrary time.
        """
        with self._lock:
            if not self.is_running:
                return
            self._cancel_tick()
            generation = self._generation
        self._tick(generation)

    def save_now(self) -> None:
        """Best-effort synchronous snapshot write for shutdown paths."""
        with self._lock:
            now = self.scheduler.now()
            if self.is_running:
                self.time_remaining = self._remaining_at(now)
            snapshot = self._snapshot(now)
        try:
            self.store.save_now(snapshot)
        except Exception as e:
            logger.error(f"Shutdown snapshot save failed: {e}")

    def get_status(self) -> Dict[str, Any]:
        """
        Read-only live snapshot for the UI.

        Returns:
            dict with keys: mode, is_running, time_remaining_seconds,
            total_seconds, progress_percent, current_session_index,
            completed_sessions.
        """
        with self._lock:
            if self.is_running:
                self.time_remaining = self._remaining_at(self.scheduler.now())
            return self._status()

    # ------------------------------------------------------------------
    # Tick loop
    # ------------------------------------------------------------------

    def _schedule_tick(self, now: float) -> None:
        """Schedule the next tick for when the displayed second changes."""
        exact = self._target_end - now
        until_next_second = exact - (math.ceil(exact - _EPSILON) - 1)
        delay = min(config.TICK_INTERVAL, max(0.01, until_next_second))
        generation = self._generation
        self._tick_handle = self.scheduler.call_later(delay, lambda: self._tick(generation))

    def _tick(self, generation: int) -> None:
        progress = None
        finished = None
        with self._lock:
            if generation != self._generation or not self.is_running:
                return
            now = self.scheduler.now()
            remaining = self._remaining_at(now)
            self.time_remaining = remaining

            if remaining <= 0:
                finished = self._finish(now)
            else:
                progress = self._check_minute_boundary(now)
                if progress is not None or now - self._last_saved_at >= self.save_interval:
                    self._persist(now)
                self._schedule_tick(now)
            status = self._status()

        self._emit(self.on_tick, status)
        if progress is not None:
            self._emit(self.on_minute_elapsed, progress)
        if finished is not None:
            self._emit(self.on_state_change, status)
            self._schedule_completion()

    def _check_minute_boundary(self, now: float) -> Optional[IntervalProgress]:
        if self.mode != TimerMode.WORK:
            return None
        elapsed = self.total_seconds - self.time_remaining
        full_minutes = elapsed // 60
        if full_minutes <= self.last_recorded_full_minutes:
            return None
        self.last_recorded_full_minutes = full_minutes
        return IntervalProgress(
            mode=self.mode,
            session_start_time=self.session_start_time,
            elapsed_seconds=elapsed,
            total_seconds=self.total_seconds,
            completed=False,
            at=now,
        )

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    def _finish(self, now: float) -> IntervalProgress:
        """
        Stop at zero and hold the completion as pending.

        The caller emits the finished state change and then calls
        _schedule_completion(), so the finished status always reaches
        listeners before the next interval's.
        """
        self._cancel_tick()
        self.is_running = False
        self._target_end = None
        self.time_remaining = 0
        finished = IntervalProgress(
            mode=self.mode,
            session_start_time=self.session_start_time,
            elapsed_seconds=self.total_seconds,
            total_seconds=self.total_seconds,
            completed=True,
            at=now,
        )
        self._pending_completion = finished
        self._persist(now)
        return finished

    def _schedule_completion(self, auto_start: bool = True) -> None:
        """Deliver the pending completion on the next scheduling turn."""
        with self._lock:
            if self._pending_completion is None or self._completion_handle is not None:
                return
            self._completion_handle = self.scheduler.call_later(
                0, lambda: self._complete(auto_start)
            )

    def _complete(self, allow_auto_start: bool = True) -> None:
        with self._lock:
            finished = self._pending_completion
            if finished is None:
                return
            self._pending_completion = None
            self._completion_handle = None
            generation = self._generation

        logger.info(f"{finished.mode.value} interval completed ({finished.total_seconds}s)")
        self._emit(self.on_complete, finished)

        with self._lock:
            if generation != self._generation:
                # A control call from inside on_complete already moved on
                return
            next_mode = self._next_mode(finished.mode)
            self.mode = next_mode
            self._reset_interval()
            self._persist(self.scheduler.now())
            auto_start = allow_auto_start and (
                self._settings.auto_start_focus if next_mode == TimerMode.WORK
                else self._settings.auto_start_breaks
            )
            status = self._status()

        logger.info(f"Next interval: {next_mode.value}")
        self._emit(self.on_state_change, status)
        if auto_start:
            self.start()

    def _next_mode(self, finished_mode: TimerMode) -> TimerMode:
        if finished_mode == TimerMode.WORK:
            self.completed_sessions += 1
            self.current_session_index += 1
            if self.current_session_index >= self._settings.sessions_until_long_break:
                return TimerMode.LONG_BREAK
            return TimerMode.BREAK
        if finished_mode == TimerMode.LONG_BREAK:
            self.current_session_index = 0
        return TimerMode.WORK

    # ------------------------------------------------------------------
    # Helpers (caller holds self._lock)
    # ------------------------------------------------------------------

    def _remaining_at(self, now: float) -> int:
        if self._target_end is None:
            return self.time_remaining
        return max(0, math.ceil(self._target_end - now - _EPSILON))

    def _cancel_tick(self) -> None:
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        self._generation += 1

    def _stop(self) -> None:
        """Stop ticking and drop any undelivered completion."""
        self._cancel_tick()
        if self._completion_handle is not None:
            self._completion_handle.cancel()
            self._completion_handle = None
        self._pending_completion = None
        self.is_running = False
        self._target_end = None

    def _reset_interval(self) -> None:
        self.total_seconds = self._settings.duration_seconds(self.mode)
        self.time_remaining = self.total_seconds
        self.session_start_time = None
        self.last_recorded_full_minutes = 0

    def _snapshot(self, now: float) -> TimerSnapshot:
        return TimerSnapshot(
            mode=self.mode,
            time_remaining_seconds=self.time_remaining,
            is_running=self.is_running,
            session_start_time=self.session_start_time,
            current_session_index=self.current_session_index,
            last_recorded_full_minutes=self.last_recorded_full_minutes,
            saved_at=now,
        )

    def _persist(self, now: float) -> None:
        self._last_saved_at = now
        try:
            self.store.save(self._snapshot(now))
        except Exception as e:
            # A failed local write must never stop the countdown
            logger.error(f"Timer snapshot save failed: {e}")

    def _status(self) -> Dict[str, Any]:
        total = self.total_seconds
        progress = ((total - self.time_remaining) / total * 100.0) if total > 0 else 0.0
        return {
            "mode": self.mode.value,
            "is_running": self.is_running,
            "time_remaining_seconds": self.time_remaining,
            "total_seconds": total,
            "progress_percent": round(progress, 1),
            "current_session_index": self.current_session_index,
            "completed_sessions": self.completed_sessions,
        }

    # ------------------------------------------------------------------
    # Callback helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _emit(callback: Optional[Callable], *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception as e:
            logger.warning(f"Timer callback {getattr(callback, '__name__', callback)} failed: {e}")
