"""
Data model shared by the timer engine, the segment tracker and the stores.

Inside the process every instant is an epoch-seconds float. Rows sent to
or read from the remote store carry UTC ISO-8601 strings.
"""

import hashlib
import uuid
from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class TimerMode(str, Enum):
    """Interval type being timed."""

    WORK = "work"
    BREAK = "break"
    LONG_BREAK = "longBreak"

    @classmethod
    def parse(cls, value: str) -> "TimerMode":
        """Accept the wire value or a loose CLI spelling ("long", "long_break")."""
        aliases = {
            "focus": cls.WORK,
            "short": cls.BREAK,
            "long": cls.LONG_BREAK,
            "long_break": cls.LONG_BREAK,
            "longbreak": cls.LONG_BREAK,
        }
        lowered = value.strip().lower()
        for mode in cls:
            if mode.value.lower() == lowered:
                return mode
        if lowered in aliases:
            return aliases[lowered]
        raise ValueError(f"Unknown timer mode: {value!r}")


class SessionMode(str, Enum):
    """How a tracking episode was started."""

    POMODORO = "pomodoro"
    FREE = "free"


def to_iso(ts: Optional[float]) -> Optional[str]:
    """Epoch seconds -> UTC ISO-8601 string (None passes through)."""
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, timezone.utc).isoformat()


def from_iso(value: Optional[str]) -> Optional[float]:
    """UTC ISO-8601 string (PostgREST style, 'Z' accepted) -> epoch seconds."""
    if not value:
        return None
    text = value.replace("Z", "+00:00")
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.timestamp()


def new_id() -> str:
    return str(uuid.uuid4())


@dataclass(frozen=True)
class TimerSnapshot:
    """Serialized TimerEngine state, owned by the PersistenceStore."""

    mode: TimerMode
    time_remaining_seconds: int
    is_running: bool
    session_start_time: Optional[float]
    current_session_index: int
    last_recorded_full_minutes: int
    saved_at: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["mode"] = self.mode.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimerSnapshot":
        """
        Build a snapshot from its stored form.

        Raises:
            KeyError, ValueError, TypeError: If the stored data is malformed.
        """
        session_start = data.get("session_start_time")
        return cls(
            mode=TimerMode(data["mode"]),
            time_remaining_seconds=max(0, int(data["time_remaining_seconds"])),
            is_running=bool(data.get("is_running", False)),
            session_start_time=float(session_start) if session_start is not None else None,
            current_session_index=max(0, int(data.get("current_session_index", 0))),
            last_recorded_full_minutes=max(0, int(data.get("last_recorded_full_minutes", 0))),
            saved_at=float(data["saved_at"]),
        )


@dataclass(frozen=True)
class TimerSession:
    """A tracking episode bounded by an explicit start and stop."""

    id: str
    user_id: str
    started_at: float
    ended_at: Optional[float] = None
    mode: SessionMode = SessionMode.POMODORO
    total_seconds: int = 0

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def closed(self, ended_at: float, total_seconds: int) -> "TimerSession":
        return replace(self, ended_at=ended_at, total_seconds=total_seconds)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "started_at": to_iso(self.started_at),
            "ended_at": to_iso(self.ended_at),
            "mode": self.mode.value,
            "total_seconds": self.total_seconds,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TimerSession":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            started_at=from_iso(row["started_at"]),
            ended_at=from_iso(row.get("ended_at")),
            mode=SessionMode(row.get("mode") or SessionMode.POMODORO.value),
            total_seconds=int(row.get("total_seconds") or 0),
        )


@dataclass(frozen=True)
class TopicTimeSegment:
    """A contiguous span of time attributed to one topic within one session."""

    id: str
    timer_session_id: str
    topic_id: str
    user_id: str
    started_at: float
    ended_at: Optional[float] = None
    duration_seconds: int = 0

    @property
    def is_open(self) -> bool:
        return self.ended_at is None

    def with_duration(self, duration_seconds: int) -> "TopicTimeSegment":
        return replace(self, duration_seconds=duration_seconds)

    def closed(self, ended_at: float, duration_seconds: int) -> "TopicTimeSegment":
        return replace(self, ended_at=ended_at, duration_seconds=duration_seconds)

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timer_session_id": self.timer_session_id,
            "topic_id": self.topic_id,
            "user_id": self.user_id,
            "started_at": to_iso(self.started_at),
            "ended_at": to_iso(self.ended_at),
            "duration_seconds": self.duration_seconds,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "TopicTimeSegment":
        return cls(
            id=str(row["id"]),
            timer_session_id=str(row["timer_session_id"]),
            topic_id=str(row["topic_id"]),
            user_id=str(row["user_id"]),
            started_at=from_iso(row["started_at"]),
            ended_at=from_iso(row.get("ended_at")),
            duration_seconds=int(row.get("duration_seconds") or 0),
        )


@dataclass(frozen=True)
class FocusRecord:
    """Per-interval duration record (partial while running, final on completion)."""

    id: str
    user_id: str
    session_type: TimerMode
    started_at: float
    duration: int
    completed: bool

    @staticmethod
    def record_id(user_id: str, session_start_time: float) -> str:
        """
        Stable id for one interval so repeated upserts land on the same row.

        Derived from the user and the interval's start instant (millisecond
        resolution), never from the minute being written.
        """
        key = f"{user_id}:{int(round(session_start_time * 1000))}"
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return str(uuid.UUID(digest[:32]))

    def to_row(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "session_type": self.session_type.value,
            "started_at": to_iso(self.started_at),
            "duration": self.duration,
            "completed": self.completed,
        }

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "FocusRecord":
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            session_type=TimerMode(row["session_type"]),
            started_at=from_iso(row["started_at"]),
            duration=int(row.get("duration") or 0),
            completed=bool(row.get("completed", False)),
        )
