"""Repository for subscriber registrations."""

import sqlite3

from blackout.models.notification import Subscription


def add_subscription(conn: sqlite3.Connection, subscriber_id: int, group_code: str) -> bool:
    """Subscribe. Returns False if the subscription already existed."""
    cursor = conn.execute(
        "INSERT OR IGNORE INTO subscriptions (subscriber_id, group_code) VALUES (?, ?)",
        (subscriber_id, group_code),
    )
    conn.commit()
    return cursor.rowcount == 1


def remove_subscription(conn: sqlite3.Connection, subscriber_id: int, group_code: str) -> bool:
    """Unsubscribe. Returns False if there was nothing to remove."""
    cursor = conn.execute(
        "DELETE FROM subscriptions WHERE subscriber_id = ? AND group_code = ?",
        (subscriber_id, group_code),
    )
    conn.commit()
    return cursor.rowcount > 0


def get_groups_for_subscriber(conn: sqlite3.Connection, subscriber_id: int) -> list[str]:
    rows = conn.execute(
        "SELECT group_code FROM subscriptions WHERE subscriber_id = ? ORDER BY id",
        (subscriber_id,),
    ).fetchall()
    return [r[0] for r in rows]


def get_all_subscriptions(conn: sqlite3.Connection) -> list[Subscription]:
    rows = conn.execute(
        "SELECT DISTINCT subscriber_id, group_code FROM subscriptions "
        "ORDER BY subscriber_id, group_code"
    ).fetchall()
    return [Subscription(subscriber_id=r[0], group_code=r[1]) for r in rows]


def count_subscriptions(conn: sqlite3.Connection) -> int:
    return conn.execute("SELECT COUNT(*) FROM subscriptions").fetchone()[0]
