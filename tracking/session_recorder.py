"""
SessionRecorder: per-interval focus records in the remote store.

While a Work interval runs, the engine reports each new full minute and
the recorder upserts a partial record (completed = False). On completion
it upserts the final record (completed = True). Both land on the same row
id, derived from the user and the interval start, so repeated writes for
the same boundary are idempotent.

These records are derived, best-effort data: a failed write is logged and
not retried, so loss is bounded to one minute per failure. The per-topic
segment ledger is the authoritative source for time totals.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from core.errors import TransientStoreError
from core.timer_engine import IntervalProgress
from sync.remote_store import RemoteStore
from sync.writer import StoreWriter
from tracking.models import FocusRecord, TimerMode

logger = logging.getLogger(__name__)


class SessionRecorder:
    """Writes partial and final focus records as the engine runs."""

    def __init__(self, store: RemoteStore, user_id: str,
                 writer: Optional[StoreWriter] = None,
                 clock: Optional[Callable[[], float]] = None) -> None:
        self.store = store
        self.user_id = user_id
        self.writer = writer or StoreWriter(background=False)
        self._clock = clock

    def record_progress(self, progress: IntervalProgress) -> None:
        """
        Upsert a partial Work record at a minute boundary.

        Subscribed to TimerEngine.on_minute_elapsed.
        """
        if progress.mode != TimerMode.WORK or progress.completed:
            return
        record = self._build(progress, completed=False)
        if record is None:
            return
        logger.debug(f"Recording partial focus session: {progress.full_minutes} min")
        self.writer.submit(
            f"partial focus record {record.id} ({progress.full_minutes} min)",
            self.store.upsert_focus_record,
            record,
        )

    def record_completion(self, progress: IntervalProgress) -> None:
        """
        Upsert the final record for a completed interval.

        Subscribed to TimerEngine.on_complete.
        """
        record = self._build(progress, completed=True)
        if record is None:
            return
        logger.info(f"Recording completed {progress.mode.value} session ({progress.total_seconds}s)")
        self.writer.submit(
            f"final focus record {record.id}",
            self.store.upsert_focus_record,
            record,
        )

    def _build(self, progress: IntervalProgress, completed: bool) -> Optional[FocusRecord]:
        if progress.session_start_time is None:
            logger.warning("Interval has no start time; skipping focus record")
            return None
        return FocusRecord(
            id=FocusRecord.record_id(self.user_id, progress.session_start_time),
            user_id=self.user_id,
            session_type=progress.mode,
            started_at=progress.session_start_time,
            duration=progress.total_seconds if completed else progress.elapsed_seconds,
            completed=completed,
        )

    def fetch_today_stats(self, now: Optional[float] = None) -> Dict[str, int]:
        """
        Completed Work sessions and focused minutes since local midnight.

        Returns:
            {"completed_sessions": int, "total_minutes_today": int}; zeros
            when the remote store is unreachable.
        """
        if now is None:
            now = self._clock() if self._clock else datetime.now().timestamp()
        midnight = datetime.fromtimestamp(now).replace(
            hour=0, minute=0, second=0, microsecond=0
        ).timestamp()
        try:
            records = self.store.list_focus_records(self.user_id, midnight)
        except TransientStoreError as e:
            logger.warning(f"Failed to fetch today's stats: {e}")
            return {"completed_sessions": 0, "total_minutes_today": 0}

        completed_work = [
            r for r in records
            if r.session_type == TimerMode.WORK and r.completed
        ]
        return {
            "completed_sessions": len(completed_work),
            "total_minutes_today": sum(r.duration // 60 for r in completed_work),
        }
