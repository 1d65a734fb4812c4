"""Initial schema: schedule history, subscriptions, notification ledger, cache artifacts."""

import sqlite3

DDL = [
    # Raw upstream rows, one per group per acquisition
    """
    CREATE TABLE IF NOT EXISTS blackout_history (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        captured_at TEXT NOT NULL,
        group_code TEXT NOT NULL,
        raw_json TEXT NOT NULL
    )
    """,
    (
        "CREATE INDEX IF NOT EXISTS idx_history_captured_group "
        "ON blackout_history(captured_at, group_code)"
    ),

    """
    CREATE TABLE IF NOT EXISTS subscriptions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        subscriber_id INTEGER NOT NULL,
        group_code TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(subscriber_id, group_code)
    )
    """,

    # Dedup ledger: one row per delivered (or attempted) transition alert
    """
    CREATE TABLE IF NOT EXISTS sent_notifications (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        subscriber_id INTEGER NOT NULL,
        group_code TEXT NOT NULL,
        kind TEXT NOT NULL,
        hour INTEGER NOT NULL,
        date TEXT NOT NULL,
        created_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP,
        UNIQUE(subscriber_id, group_code, kind, hour, date)
    )
    """,

    # Resolved ID map and latest snapshot, replaced wholesale
    """
    CREATE TABLE IF NOT EXISTS cache_artifacts (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL,
        updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
    )
    """,
]


def up(conn: sqlite3.Connection) -> None:
    for stmt in DDL:
        conn.execute(stmt)
    conn.commit()
