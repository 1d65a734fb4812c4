"""Repository for the sent-notification dedup ledger.

Rows are write-once. Whether a notification may be sent is decided solely by
the UNIQUE constraint on the full tuple, so two workers racing on the same
tuple cannot both win.
"""

import sqlite3

from blackout.models.notification import SentNotification


def record_if_absent(conn: sqlite3.Connection, entry: SentNotification) -> bool:
    """Insert a ledger row unless it exists. Returns True if this call inserted it."""
    cursor = conn.execute(
        "INSERT OR IGNORE INTO sent_notifications "
        "(subscriber_id, group_code, kind, hour, date) VALUES (?, ?, ?, ?, ?)",
        (entry.subscriber_id, entry.group_code, entry.kind.value, entry.hour, entry.date),
    )
    conn.commit()
    return cursor.rowcount == 1


def was_sent(conn: sqlite3.Connection, entry: SentNotification) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sent_notifications WHERE subscriber_id = ? AND group_code = ? "
        "AND kind = ? AND hour = ? AND date = ?",
        (entry.subscriber_id, entry.group_code, entry.kind.value, entry.hour, entry.date),
    ).fetchone()
    return row is not None


def count_for_date(conn: sqlite3.Connection, date: str) -> int:
    return conn.execute(
        "SELECT COUNT(*) FROM sent_notifications WHERE date = ?", (date,)
    ).fetchone()[0]
