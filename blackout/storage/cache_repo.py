"""Repository for cross-process cache artifacts: the resolved ID map and the latest snapshot.

Each artifact is one row in cache_artifacts and is replaced with a single
UPSERT, so readers see either the previous value or the new one.
"""

import json
import sqlite3
from datetime import datetime

from blackout.errors import CacheCorrupted
from blackout.ingest.schedule_parser import parse_group_payload
from blackout.models.schedule import Snapshot

ID_MAP_KEY = "id_map"
SNAPSHOT_KEY = "snapshot"


# --- Generic artifacts ---

def get_artifact(conn: sqlite3.Connection, key: str) -> str | None:
    row = conn.execute(
        "SELECT value FROM cache_artifacts WHERE key = ?", (key,)
    ).fetchone()
    if row is None:
        return None
    return row[0]


def put_artifact(
    conn: sqlite3.Connection, key: str, value: str, commit: bool = True
) -> None:
    conn.execute(
        "INSERT INTO cache_artifacts (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
        (key, value),
    )
    if commit:
        conn.commit()


def delete_artifact(conn: sqlite3.Connection, key: str) -> None:
    conn.execute("DELETE FROM cache_artifacts WHERE key = ?", (key,))
    conn.commit()


# --- ID map ---

def save_id_map(conn: sqlite3.Connection, id_map: dict[str, int]) -> None:
    put_artifact(conn, ID_MAP_KEY, json.dumps(id_map))


def load_id_map(conn: sqlite3.Connection) -> dict[str, int] | None:
    """Load the persisted ID map. Raises CacheCorrupted if it cannot be decoded."""
    raw = get_artifact(conn, ID_MAP_KEY)
    if raw is None:
        return None
    if not raw.strip():
        raise CacheCorrupted("Persisted ID map is empty")
    try:
        data = json.loads(raw)
        return {str(k): int(v) for k, v in data.items()}
    except (ValueError, TypeError, AttributeError) as e:
        raise CacheCorrupted(f"Failed to parse persisted ID map: {e}") from e


def delete_id_map(conn: sqlite3.Connection) -> None:
    delete_artifact(conn, ID_MAP_KEY)


# --- Snapshot ---

def dump_payload(row: dict) -> str:
    """JSON text of one raw upstream row, as stored in history."""
    return json.dumps(row, ensure_ascii=False)


def serialize_snapshot(snapshot: Snapshot) -> str:
    data = {
        "captured_at": snapshot.captured_at.isoformat(),
        "id_map": snapshot.id_map,
        "groups": {code: group.raw for code, group in snapshot.groups.items()},
    }
    return json.dumps(data, ensure_ascii=False)


def deserialize_snapshot(raw: str) -> Snapshot:
    """Rebuild a Snapshot. Raises CacheCorrupted on any structural problem."""
    try:
        data = json.loads(raw)
        captured_at = datetime.fromisoformat(data["captured_at"])
        id_map = {str(k): int(v) for k, v in data["id_map"].items()}
        groups = {}
        for code, row in data["groups"].items():
            group = parse_group_payload(row)
            if group.group_code != code:
                raise CacheCorrupted(
                    f"Snapshot entry {code} holds data for group {group.group_code}"
                )
            groups[code] = group
    except CacheCorrupted:
        raise
    except (ValueError, TypeError, KeyError, AttributeError) as e:
        raise CacheCorrupted(f"Failed to parse persisted snapshot: {e}") from e
    if captured_at.tzinfo is None:
        raise CacheCorrupted("Snapshot timestamp has no timezone")
    return Snapshot(captured_at=captured_at, id_map=id_map, groups=groups)


def save_snapshot(conn: sqlite3.Connection, snapshot: Snapshot, commit: bool = True) -> None:
    put_artifact(conn, SNAPSHOT_KEY, serialize_snapshot(snapshot), commit=commit)


def load_snapshot(conn: sqlite3.Connection) -> Snapshot | None:
    raw = get_artifact(conn, SNAPSHOT_KEY)
    if raw is None:
        return None
    return deserialize_snapshot(raw)
