"""Repository for the append-only schedule history."""

import sqlite3


def append_history(
    conn: sqlite3.Connection,
    captured_at: str,
    group_code: str,
    raw_json: str,
    commit: bool = True,
) -> int:
    """Append one raw group payload. Returns the row id."""
    cursor = conn.execute(
        "INSERT INTO blackout_history (captured_at, group_code, raw_json) VALUES (?, ?, ?)",
        (captured_at, group_code, raw_json),
    )
    if commit:
        conn.commit()
    assert cursor.lastrowid is not None
    return cursor.lastrowid


def get_history(
    conn: sqlite3.Connection, group_code: str, limit: int = 20
) -> list[dict]:
    """Most recent history rows for a group, newest first."""
    rows = conn.execute(
        "SELECT * FROM blackout_history WHERE group_code = ? "
        "ORDER BY captured_at DESC, id DESC LIMIT ?",
        (group_code, limit),
    ).fetchall()
    return [dict(r) for r in rows]


def count_history(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM blackout_history").fetchone()[0]
