from __future__ import annotations

import sqlite3
import uuid
from pathlib import Path

from .models import LogRecord, LocationMethod


class Database:
    """Thin SQLite access layer for local key/value state and the self-hosted log store."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # kv: per-scope local state (identity object, rates), one scope per device.
        # break_logs: append-only break records when no remote store is configured.
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS kv (
              scope TEXT NOT NULL,
              key TEXT NOT NULL,
              value TEXT NOT NULL,
              PRIMARY KEY (scope, key)
            );

            CREATE TABLE IF NOT EXISTS break_logs (
              id TEXT PRIMARY KEY,
              username TEXT NOT NULL,
              token TEXT NOT NULL,
              duration INTEGER NOT NULL,
              earnings REAL NOT NULL,
              current_rate REAL NOT NULL,
              timestamp INTEGER NOT NULL,
              lat REAL,
              lng REAL,
              city TEXT,
              location_method TEXT NOT NULL DEFAULT 'unknown'
            );

            CREATE INDEX IF NOT EXISTS idx_break_logs_timestamp ON break_logs (timestamp DESC);
            """
        )
        self._conn.commit()

    def get_value(self, scope: str, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT value FROM kv WHERE scope = ? AND key = ?",
            (scope, key),
        ).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_value(self, scope: str, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO kv (scope, key, value)
            VALUES (?, ?, ?)
            ON CONFLICT(scope, key)
            DO UPDATE SET value=excluded.value
            """,
            (scope, key, value),
        )
        self._conn.commit()

    def delete_value(self, scope: str, key: str) -> None:
        self._conn.execute("DELETE FROM kv WHERE scope = ? AND key = ?", (scope, key))
        self._conn.commit()

    def insert_log(self, record: LogRecord) -> LogRecord:
        stored = record.with_id(record.id or uuid.uuid4().hex)
        self._conn.execute(
            """
            INSERT INTO break_logs (
              id, username, token, duration, earnings, current_rate,
              timestamp, lat, lng, city, location_method
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                stored.id,
                stored.username,
                stored.token,
                stored.duration,
                stored.earnings,
                stored.current_rate,
                stored.timestamp,
                stored.lat,
                stored.lng,
                stored.city,
                stored.location_method.value,
            ),
        )
        self._conn.commit()
        return stored

    def list_logs(self) -> list[LogRecord]:
        rows = self._conn.execute(
            """
            SELECT id, username, token, duration, earnings, current_rate,
                   timestamp, lat, lng, city, location_method
            FROM break_logs
            ORDER BY timestamp DESC
            """
        ).fetchall()

        return [
            LogRecord(
                id=row["id"],
                username=row["username"],
                token=row["token"],
                duration=row["duration"],
                earnings=row["earnings"],
                current_rate=row["current_rate"],
                timestamp=row["timestamp"],
                lat=row["lat"],
                lng=row["lng"],
                city=row["city"],
                location_method=LocationMethod.coerce(row["location_method"]),
            )
            for row in rows
        ]
