"""SQLite-backed key/value store for queue state."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterator, Optional

from .models import DailyStats, Notification, QueueItem, QueueState, UserSettings

logger = logging.getLogger(__name__)


STATE_KEY = "queueState"
ITEMS_KEY = "queueItems"
STATS_KEY = "dailyStats"
NOTIFICATIONS_KEY = "notifications"
SETTINGS_KEY = "settings"

DATETIME_FMT = "%Y-%m-%d %H:%M:%S.%f"


def open_database(path: Path | str, *, check_same_thread: bool = True) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Path | str, *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS kv_store (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL,
            updated_at TEXT NOT NULL
        );
        """
    )


def fetch_value(conn: sqlite3.Connection, key: str) -> Optional[Any]:
    """Return the decoded value for ``key``, or None when it was never written."""
    row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    if row is None:
        return None
    return json.loads(row["value"])


def upsert_value(conn: sqlite3.Connection, key: str, value: Any) -> None:
    conn.execute(
        """
        INSERT INTO kv_store (key, value, updated_at)
        VALUES (?, ?, ?)
        ON CONFLICT(key) DO UPDATE SET
            value = excluded.value,
            updated_at = excluded.updated_at
        """,
        (key, json.dumps(value), datetime.now().strftime(DATETIME_FMT)),
    )


class QueueRepository:
    """Typed access to the persisted queue documents."""

    def __init__(self, conn: sqlite3.Connection, *, daily_limit: int) -> None:
        self._conn = conn
        self.daily_limit = daily_limit

    @classmethod
    def open(cls, path: Path | str, *, daily_limit: int) -> "QueueRepository":
        return cls(open_database(path, check_same_thread=False), daily_limit=daily_limit)

    def close(self) -> None:
        self._conn.close()

    def initialize(self, today: date) -> bool:
        """Seed missing keys; reset the day when stats are absent or stale.

        Returns True when a daily reset happened.
        """
        raw_stats = fetch_value(self._conn, STATS_KEY)
        if raw_stats is None or raw_stats.get("date") != today.isoformat():
            self.reset_daily(today)
            return True

        if fetch_value(self._conn, STATE_KEY) is None:
            self.save_state(QueueState())
        if fetch_value(self._conn, ITEMS_KEY) is None:
            self.save_items([])
        if fetch_value(self._conn, SETTINGS_KEY) is None:
            self.save_settings(UserSettings())
        return False

    def reset_daily(self, today: date) -> None:
        """Start a fresh day: zeroed stats, empty queue, idle state, no notifications."""
        self.save_stats(DailyStats.fresh(today, self.daily_limit))
        self.save_items([])
        self.save_state(QueueState())
        self.save_notifications([])
        if fetch_value(self._conn, SETTINGS_KEY) is None:
            self.save_settings(UserSettings())
        logger.info("Daily reset completed for %s", today.isoformat())

    def load_state(self) -> QueueState:
        raw = fetch_value(self._conn, STATE_KEY)
        return QueueState.from_dict(raw) if raw else QueueState()

    def save_state(self, state: QueueState) -> None:
        upsert_value(self._conn, STATE_KEY, state.to_dict())

    def load_items(self) -> list[QueueItem]:
        raw = fetch_value(self._conn, ITEMS_KEY) or []
        return [QueueItem.from_dict(entry) for entry in raw]

    def save_items(self, items: list[QueueItem]) -> None:
        upsert_value(self._conn, ITEMS_KEY, [item.to_dict() for item in items])

    def load_stats(self) -> Optional[DailyStats]:
        raw = fetch_value(self._conn, STATS_KEY)
        return DailyStats.from_dict(raw) if raw else None

    def save_stats(self, stats: DailyStats) -> None:
        upsert_value(self._conn, STATS_KEY, stats.to_dict())

    def load_settings(self) -> UserSettings:
        raw = fetch_value(self._conn, SETTINGS_KEY)
        return UserSettings.from_dict(raw) if raw else UserSettings()

    def save_settings(self, settings: UserSettings) -> None:
        upsert_value(self._conn, SETTINGS_KEY, settings.to_dict())

    def load_notifications(self) -> list[Notification]:
        raw = fetch_value(self._conn, NOTIFICATIONS_KEY) or []
        return [Notification.from_dict(entry) for entry in raw]

    def save_notifications(self, notifications: list[Notification]) -> None:
        upsert_value(
            self._conn,
            NOTIFICATIONS_KEY,
            [notification.to_dict() for notification in notifications],
        )
