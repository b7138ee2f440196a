from __future__ import annotations

import json
import logging
from datetime import UTC, datetime
from typing import Any, Protocol

import duckdb

from pulse.core.errors import StorageUnavailable
from pulse.core.logging import get_logger

from .duckdb_adapter import DuckDBAdapter


class ClockLike(Protocol):
    def now(self) -> int: ...


class DuckDBKeyValueStore:
    """Durable string store for the persistent user id."""

    def __init__(self, adapter: DuckDBAdapter) -> None:
        self.adapter = adapter

    def get(self, key: str) -> str | None:
        try:
            return self.adapter.get_value(key)
        except (duckdb.Error, RuntimeError) as e:
            raise StorageUnavailable(f"kv read failed: {e}") from e

    def set(self, key: str, value: str) -> None:
        try:
            self.adapter.set_value(key, value)
        except (duckdb.Error, RuntimeError) as e:
            raise StorageUnavailable(f"kv write failed: {e}") from e


class DuckDBCollectorTransport:
    """
    Local collector: accepts the same JSON batch an HTTP collector would and
    lands one row per event in collected_events.
    """

    def __init__(
        self,
        *,
        adapter: DuckDBAdapter,
        clock: ClockLike,
        logger: logging.Logger | None = None,
    ) -> None:
        self.adapter = adapter
        self.clock = clock
        self.delivered = 0
        self._logger = logger or get_logger(__name__)

    def send(self, endpoint: str, body: bytes) -> bool:
        try:
            payload = json.loads(body.decode("utf-8"))
            rows = self._payload_to_rows(payload)
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            self._logger.warning(
                f"malformed batch rejected: {type(e).__name__}: {e}", extra={"endpoint": endpoint}
            )
            return False

        try:
            result = self.adapter.write_events(rows)
        except (duckdb.Error, RuntimeError) as e:
            self._logger.warning(
                f"collector write failed: {e}", extra={"endpoint": endpoint}
            )
            return False

        self.delivered += result.num_events
        self._logger.debug(
            "collected",
            extra={
                "endpoint": endpoint,
                "num_events": result.num_events,
                "session_id": payload.get("session_id"),
            },
        )
        return True

    def send_reliable(self, endpoint: str, body: bytes) -> bool:
        return self.send(endpoint, body)

    def _payload_to_rows(self, payload: dict[str, Any]) -> list[tuple]:
        received_at = datetime.fromtimestamp(self.clock.now() / 1000.0, tz=UTC)
        user_id = str(payload["user_id"])
        session_id = payload.get("session_id")
        device = payload.get("device")

        rows: list[tuple] = []
        for ev in payload["events"]:
            rows.append(
                (
                    user_id,
                    session_id,
                    device,
                    str(ev["type"]),
                    ev.get("page_url"),
                    int(ev["timestamp"]),
                    json.dumps(ev, sort_keys=True, separators=(",", ":")),
                    received_at,
                )
            )
        return rows
