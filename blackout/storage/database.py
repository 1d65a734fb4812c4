"""SQLite connection manager with WAL mode and migration support."""

import importlib
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from blackout.errors import StoreUnavailable

MIGRATIONS_PACKAGE = "blackout.storage.migrations"


def connect(db_path: str | Path) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode and foreign keys enabled."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


def run_migrations(conn: sqlite3.Connection) -> list[str]:
    """Run all pending migrations in order. Returns list of applied migration names."""
    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_versions ("
        "  version TEXT PRIMARY KEY,"
        "  applied_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP"
        ")"
    )
    conn.commit()

    applied = {
        row[0]
        for row in conn.execute("SELECT version FROM schema_versions").fetchall()
    }

    migrations = _discover_migrations()
    newly_applied = []

    for name in sorted(migrations):
        if name not in applied:
            mod = importlib.import_module(f"{MIGRATIONS_PACKAGE}.{name}")
            mod.up(conn)
            conn.execute(
                "INSERT OR IGNORE INTO schema_versions (version) VALUES (?)", (name,)
            )
            conn.commit()
            newly_applied.append(name)

    return newly_applied


def _discover_migrations() -> list[str]:
    """Discover migration modules by naming convention v###_*.py."""
    migrations_dir = Path(__file__).parent / "migrations"
    results = []
    for p in migrations_dir.glob("v[0-9]*_*.py"):
        if p.stem != "__init__":
            results.append(p.stem)
    return sorted(results)


@contextmanager
def open_store(db_path: str | Path) -> Iterator[sqlite3.Connection]:
    """Connect and migrate, closing afterwards. SQLite errors surface as StoreUnavailable."""
    try:
        conn = connect(db_path)
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Cannot open store at {db_path}: {e}") from e
    try:
        run_migrations(conn)
        yield conn
    except sqlite3.Error as e:
        raise StoreUnavailable(f"Store operation failed: {e}") from e
    finally:
        conn.close()
