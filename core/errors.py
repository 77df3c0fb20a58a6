"""Error taxonomy for the timer engine and segment tracker."""

from typing import Optional


class FocusLedgerError(Exception):
    """Base class for all FocusLedger errors."""


class ValidationError(FocusLedgerError, ValueError):
    """
    Invalid timer settings (non-positive durations or session count).

    Raised synchronously at the configuration boundary; the engine never
    sees an invalid settings value.
    """

    def __init__(self, field: str, value, reason: str = "must be a positive integer"):
        self.field = field
        self.value = value
        super().__init__(f"{field} {reason} (got {value!r})")


class TransientStoreError(FocusLedgerError):
    """
    Network or server failure on a remote read/write.

    Logged and not retried synchronously: the next periodic write
    supersedes the lost one.
    """

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Remote store operation '{operation}' failed{detail}")


class StateConflictError(FocusLedgerError):
    """An attempt to open a second segment while one is already open."""

    def __init__(self, open_segment_id: str):
        self.open_segment_id = open_segment_id
        super().__init__(f"Segment {open_segment_id} is still open")


class RestorationStaleError(FocusLedgerError):
    """A loaded snapshot is older than the staleness threshold."""

    def __init__(self, age_seconds: float, threshold_seconds: float):
        self.age_seconds = age_seconds
        self.threshold_seconds = threshold_seconds
        super().__init__(
            f"Snapshot is {age_seconds:.0f}s old (limit {threshold_seconds:.0f}s)"
        )


class OrphanedSegmentError(FocusLedgerError):
    """A segment left open by a crash with no recovery."""

    def __init__(self, segment_id: str, unsynced_seconds: float):
        self.segment_id = segment_id
        self.unsynced_seconds = unsynced_seconds
        super().__init__(
            f"Segment {segment_id} has not been synced for {unsynced_seconds:.0f}s"
        )
