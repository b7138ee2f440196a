from __future__ import annotations

KV_TABLE_NAME = "kv_store"
EVENTS_TABLE_NAME = "collected_events"

KV_DDL = f"""
CREATE TABLE IF NOT EXISTS {KV_TABLE_NAME} (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

EVENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS {EVENTS_TABLE_NAME} (
    user_id TEXT NOT NULL,
    session_id TEXT,
    device TEXT,

    event_type TEXT NOT NULL,
    page_url TEXT,
    timestamp_ms BIGINT NOT NULL,

    event_json TEXT NOT NULL,
    received_at TIMESTAMP NOT NULL
);
"""

EVENTS_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_collected_session ON {EVENTS_TABLE_NAME}(session_id);",
    f"CREATE INDEX IF NOT EXISTS idx_collected_type ON {EVENTS_TABLE_NAME}(event_type);",
]


def create_schema(conn) -> None:
    """
    Create tables/indexes. No migrations. Safe to call per run.
    """
    conn.execute(KV_DDL)
    conn.execute(EVENTS_DDL)
    for ddl in EVENTS_INDEXES:
        conn.execute(ddl)
