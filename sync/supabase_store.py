"""
SupabaseStore: RemoteStore backed by Supabase tables.

Tables:
- timer_sessions        (id, user_id, started_at, ended_at, mode, total_seconds)
- topic_time_segments   (id, timer_session_id, topic_id, user_id, started_at,
                         ended_at, duration_seconds)
- focus_sessions        (id, user_id, session_type, started_at, duration, completed)

All writes are upserts keyed on id, so a retried or repeated write is
harmless. Every failure surfaces as TransientStoreError.

Authentication happens elsewhere; if an auth.json with tokens exists in
config.USER_DATA_DIR it is attached to the client so row-level security
applies.
"""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import config
from core.errors import TransientStoreError
from tracking.models import FocusRecord, TimerSession, TopicTimeSegment, to_iso

logger = logging.getLogger(__name__)


class SupabaseStore:
    """Supabase client wrapper implementing the RemoteStore protocol."""

    def __init__(self, supabase_url: str = "", supabase_key: str = "", client: Any = None) -> None:
        """
        Initialise the store.

        Args:
            supabase_url: Supabase project URL (falls back to config).
            supabase_key: Supabase anon/public key (falls back to config).
            client: Pre-built client (tests, or a caller that already logged in).
        """
        self._url = supabase_url or getattr(config, "SUPABASE_URL", "")
        self._key = supabase_key or getattr(config, "SUPABASE_ANON_KEY", "")
        self.auth_file: Path = config.USER_DATA_DIR / "auth.json"

        self._client = client
        if self._client is None:
            self._init_client()

    # ------------------------------------------------------------------
    # Client initialisation
    # ------------------------------------------------------------------

    def _init_client(self) -> None:
        """Create the Supabase client if credentials are available."""
        if not self._url or not self._key:
            logger.info("Supabase credentials not configured; remote sync disabled")
            return
        try:
            from supabase import create_client
            self._client = create_client(self._url, self._key)
            self._load_stored_session()
            logger.info("Supabase client initialised")
        except Exception as e:
            logger.warning(f"Failed to initialise Supabase client: {e}")
            self._client = None

    def _load_stored_session(self) -> None:
        """Attach stored auth tokens to the client if they exist."""
        if not self._client or not self.auth_file.exists():
            return
        try:
            data = json.loads(self.auth_file.read_text())
            access_token = data.get("access_token", "")
            refresh_token = data.get("refresh_token", "")
            if access_token and refresh_token:
                self._client.auth.set_session(access_token, refresh_token)
                logger.info(f"Loaded stored session for {data.get('email', 'unknown')}")
        except Exception as e:
            logger.warning(f"Failed to load stored session: {e}")

    def is_available(self) -> bool:
        """Check if the client is configured and ready."""
        return self._client is not None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_session(self, session: TimerSession) -> None:
        self._upsert(config.TABLE_TIMER_SESSIONS, session.to_row(), "upsert_session")

    def upsert_segment(self, segment: TopicTimeSegment) -> None:
        self._upsert(config.TABLE_TOPIC_SEGMENTS, segment.to_row(), "upsert_segment")

    def upsert_focus_record(self, record: FocusRecord) -> None:
        self._upsert(config.TABLE_FOCUS_SESSIONS, record.to_row(), "upsert_focus_record")

    def _upsert(self, table: str, row: Dict[str, Any], operation: str) -> None:
        self._call(
            operation,
            lambda: self._client.table(table).upsert(row, on_conflict="id").execute(),
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query_open_session(self, user_id: str) -> Optional[TimerSession]:
        rows = self._select(
            "query_open_session",
            lambda: (
                self._client.table(config.TABLE_TIMER_SESSIONS)
                .select("*")
                .eq("user_id", user_id)
                .is_("ended_at", "null")
                .order("started_at", desc=True)
                .limit(1)
                .execute()
            ),
        )
        return TimerSession.from_row(rows[0]) if rows else None

    def query_open_segment(self, session_id: str) -> Optional[TopicTimeSegment]:
        rows = self._select(
            "query_open_segment",
            lambda: (
                self._client.table(config.TABLE_TOPIC_SEGMENTS)
                .select("*")
                .eq("timer_session_id", session_id)
                .is_("ended_at", "null")
                .order("started_at", desc=True)
                .limit(1)
                .execute()
            ),
        )
        return TopicTimeSegment.from_row(rows[0]) if rows else None

    def get_session(self, session_id: str) -> Optional[TimerSession]:
        rows = self._select(
            "get_session",
            lambda: (
                self._client.table(config.TABLE_TIMER_SESSIONS)
                .select("*")
                .eq("id", session_id)
                .limit(1)
                .execute()
            ),
        )
        return TimerSession.from_row(rows[0]) if rows else None

    def list_session_segments(self, session_id: str) -> List[TopicTimeSegment]:
        rows = self._select(
            "list_session_segments",
            lambda: (
                self._client.table(config.TABLE_TOPIC_SEGMENTS)
                .select("*")
                .eq("timer_session_id", session_id)
                .order("started_at")
                .execute()
            ),
        )
        return [TopicTimeSegment.from_row(r) for r in rows]

    def list_open_segments(self) -> List[TopicTimeSegment]:
        rows = self._select(
            "list_open_segments",
            lambda: (
                self._client.table(config.TABLE_TOPIC_SEGMENTS)
                .select("*")
                .is_("ended_at", "null")
                .order("started_at")
                .execute()
            ),
        )
        return [TopicTimeSegment.from_row(r) for r in rows]

    def fetch_topic_totals(self, user_id: str) -> Dict[str, int]:
        rows = self._select(
            "fetch_topic_totals",
            lambda: (
                self._client.table(config.TABLE_TOPIC_SEGMENTS)
                .select("topic_id, duration_seconds")
                .eq("user_id", user_id)
                .not_.is_("ended_at", "null")
                .execute()
            ),
        )
        totals: Dict[str, int] = {}
        for row in rows:
            topic_id = str(row["topic_id"])
            totals[topic_id] = totals.get(topic_id, 0) + int(row.get("duration_seconds") or 0)
        return totals

    def list_focus_records(self, user_id: str, since: float) -> List[FocusRecord]:
        rows = self._select(
            "list_focus_records",
            lambda: (
                self._client.table(config.TABLE_FOCUS_SESSIONS)
                .select("*")
                .eq("user_id", user_id)
                .gte("started_at", to_iso(since))
                .execute()
            ),
        )
        return [FocusRecord.from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _select(self, operation: str, query: Callable[[], Any]) -> List[Dict[str, Any]]:
        result = self._call(operation, query)
        return list(getattr(result, "data", None) or [])

    def _call(self, operation: str, fn: Callable[[], Any]) -> Any:
        if self._client is None:
            raise TransientStoreError(operation, RuntimeError("Supabase not configured"))
        try:
            return fn()
        except Exception as e:
            raise TransientStoreError(operation, e) from e
