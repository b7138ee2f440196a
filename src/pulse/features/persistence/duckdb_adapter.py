from __future__ import annotations

import os
import time
from collections.abc import Sequence
from dataclasses import dataclass

import duckdb

from .schema import EVENTS_TABLE_NAME, KV_TABLE_NAME, create_schema


@dataclass(frozen=True)
class DuckDBWriteResult:
    num_events: int
    duration_ms: float


class DuckDBAdapter:
    """
    DuckDB persistence adapter. Owns the connection and schema.
    """

    def __init__(self, path: str, *, clean_slate: bool) -> None:
        self.path = path
        self.clean_slate = clean_slate
        self._conn: duckdb.DuckDBPyConnection | None = None

    def open(self) -> None:
        if self._conn is not None:
            return
        if self.path != ":memory:":
            if self.clean_slate and os.path.exists(self.path):
                os.remove(self.path)

            parent = os.path.dirname(self.path)
            if parent:
                os.makedirs(parent, exist_ok=True)

        self._conn = duckdb.connect(self.path)
        create_schema(self._conn)

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> duckdb.DuckDBPyConnection:
        if self._conn is None:
            raise RuntimeError("DuckDBAdapter not opened. Call open() first.")
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    # ---- key/value ----

    def get_value(self, key: str) -> str | None:
        row = self.conn.execute(
            f"SELECT value FROM {KV_TABLE_NAME} WHERE key = ?",
            [key],
        ).fetchone()
        return str(row[0]) if row else None

    def set_value(self, key: str, value: str) -> None:
        self.conn.execute(
            f"""
            INSERT INTO {KV_TABLE_NAME} (key, value) VALUES (?, ?)
            ON CONFLICT (key) DO UPDATE SET value = excluded.value
            """,
            [key, value],
        )

    # ---- collected events ----

    def write_events(self, rows: Sequence[tuple]) -> DuckDBWriteResult:
        """
        Writes a batch of rows matching the collected_events schema.
        Returns count and duration.
        """
        if not rows:
            return DuckDBWriteResult(num_events=0, duration_ms=0.0)

        t0 = time.perf_counter()

        self.conn.executemany(
            f"""
            INSERT INTO {EVENTS_TABLE_NAME} (
                user_id, session_id, device,
                event_type, page_url, timestamp_ms,
                event_json, received_at
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            rows,
        )

        dt_ms = (time.perf_counter() - t0) * 1000.0
        return DuckDBWriteResult(num_events=len(rows), duration_ms=dt_ms)

    def count_events(self, *, user_id: str | None = None, event_type: str | None = None) -> int:
        """
        Convenience method for sanity checks/tests.
        """
        sql = f"SELECT COUNT(*) FROM {EVENTS_TABLE_NAME} WHERE 1 = 1"
        params: list[str] = []
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        if event_type is not None:
            sql += " AND event_type = ?"
            params.append(event_type)
        res = self.conn.execute(sql, params).fetchone()
        return int(res[0]) if res else 0

    def fetch_event_types(self) -> list[tuple[str | None, str]]:
        """(session_id, event_type) in arrival order."""
        rows = self.conn.execute(
            f"SELECT session_id, event_type FROM {EVENTS_TABLE_NAME} ORDER BY rowid"
        ).fetchall()
        return [(r[0], r[1]) for r in rows]
