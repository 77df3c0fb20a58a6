"""
Local snapshot persistence for the timer engine.

A snapshot older than config.SNAPSHOT_STALE_SECONDS is discarded on load
and never used to resume. Whatever is loaded, restoration forces the engine
into a paused state; that happens in the engine, not here.
"""

import json
import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Protocol

import config
from core.errors import RestorationStaleError
from tracking.models import TimerSnapshot

logger = logging.getLogger(__name__)


class PersistenceStore(Protocol):
    """Interface the TimerEngine writes its snapshot through."""

    def save(self, snapshot: TimerSnapshot) -> None:
        ...

    def save_now(self, snapshot: TimerSnapshot) -> None:
        """Best-effort synchronous save used when the process is going away."""
        ...

    def load(self) -> Optional[TimerSnapshot]:
        ...

    def clear(self) -> None:
        ...


def check_staleness(snapshot: TimerSnapshot, now: float,
                    threshold: float = config.SNAPSHOT_STALE_SECONDS) -> None:
    """
    Raise if the snapshot is too old to restore.

    Raises:
        RestorationStaleError: If now - saved_at exceeds the threshold.
    """
    age = now - snapshot.saved_at
    if age > threshold:
        raise RestorationStaleError(age, threshold)


class JsonSnapshotStore:
    """
    Snapshot stored as a JSON file in the user data directory.

    Writes are atomic (temp file, then os.replace) so a crash mid-write
    leaves the previous snapshot intact.
    """

    def __init__(self, path: Optional[Path] = None,
                 clock: Callable[[], float] = time.time,
                 stale_after: float = config.SNAPSHOT_STALE_SECONDS):
        self.path: Path = path or config.TIMER_STATE_FILE
        self._clock = clock
        self._stale_after = stale_after
        self._lock = threading.Lock()
        self.save_count = 0

    def save(self, snapshot: TimerSnapshot) -> None:
        with self._lock:
            self._write(snapshot)

    def save_now(self, snapshot: TimerSnapshot) -> None:
        # Shutdown path: don't wait behind a lock held by a wedged writer
        acquired = self._lock.acquire(timeout=0.5)
        try:
            self._write(snapshot)
        finally:
            if acquired:
                self._lock.release()

    def _write(self, snapshot: TimerSnapshot) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            temp_fd, temp_path = tempfile.mkstemp(
                suffix='.tmp',
                prefix='timer_state_',
                dir=self.path.parent
            )
            try:
                with os.fdopen(temp_fd, 'w') as f:
                    json.dump(snapshot.to_dict(), f, indent=2)
                os.replace(temp_path, self.path)
            except Exception:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
            self.save_count += 1
            logger.debug(f"Saved timer snapshot: {snapshot}")
        except (IOError, OSError, PermissionError) as e:
            logger.error(f"Failed to save timer snapshot: {e}")

    def load(self) -> Optional[TimerSnapshot]:
        """
        Load the saved snapshot.

        Returns:
            The snapshot, or None if missing, corrupt or stale. Corrupt and
            stale files are removed.
        """
        with self._lock:
            if not self.path.exists():
                return None
            try:
                with open(self.path, 'r') as f:
                    snapshot = TimerSnapshot.from_dict(json.load(f))
            except (json.JSONDecodeError, KeyError, ValueError, TypeError) as e:
                logger.warning(f"Discarding unreadable timer snapshot: {e}")
                self._remove()
                return None
            except (IOError, OSError) as e:
                logger.warning(f"Failed to read timer snapshot: {e}")
                return None

            try:
                check_staleness(snapshot, self._clock(), self._stale_after)
            except RestorationStaleError as e:
                logger.info(f"Discarding stale timer snapshot: {e}")
                self._remove()
                return None
            return snapshot

    def clear(self) -> None:
        with self._lock:
            self._remove()

    def _remove(self) -> None:
        try:
            if self.path.exists():
                self.path.unlink()
        except OSError as e:
            logger.warning(f"Failed to remove timer snapshot: {e}")


class MemorySnapshotStore:
    """In-memory snapshot store with the same staleness policy."""

    def __init__(self, clock: Callable[[], float] = time.time,
                 stale_after: float = config.SNAPSHOT_STALE_SECONDS):
        self._clock = clock
        self._stale_after = stale_after
        self._snapshot: Optional[TimerSnapshot] = None
        self.saves = []

    @property
    def snapshot(self) -> Optional[TimerSnapshot]:
        return self._snapshot

    def save(self, snapshot: TimerSnapshot) -> None:
        self._snapshot = snapshot
        self.saves.append(snapshot)

    def save_now(self, snapshot: TimerSnapshot) -> None:
        self.save(snapshot)

    def load(self) -> Optional[TimerSnapshot]:
        if self._snapshot is None:
            return None
        try:
            check_staleness(self._snapshot, self._clock(), self._stale_after)
        except RestorationStaleError as e:
            logger.info(f"Discarding stale timer snapshot: {e}")
            self._snapshot = None
            return None
        return self._snapshot

    def clear(self) -> None:
        self._snapshot = None
