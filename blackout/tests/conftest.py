"""Shared test fixtures."""

import sqlite3
from pathlib import Path

import pytest
import yaml

from blackout.config.defaults import DEFAULT_GROUPS
from blackout.config.schema import BlackoutConfig
from blackout.errors import UpstreamUnavailable
from blackout.ingest.portal_client import Session
from blackout.storage.database import connect, run_migrations


class FakePortalClient:
    """In-memory portal: resolved ID -> row. Unknown IDs answer with no data."""

    def __init__(self, table: dict[int, dict] | None = None):
        self.table = dict(table or {})
        self.sessions_issued = 0
        self.session_failures = 0
        self.lookups: list[int] = []

    def acquire_session(self) -> Session:
        self.sessions_issued += 1
        if self.session_failures:
            self.session_failures -= 1
            raise UpstreamUnavailable("portal down", 503)
        return Session(token=f"tok-{self.sessions_issued}", cookies=("sid=abc; Path=/",))

    def lookup(self, resolved_id: int, session: Session) -> dict | None:
        self.lookups.append(resolved_id)
        return self.table.get(resolved_id)


def build_row(
    group_code: str,
    hours: list[int] | None = None,
    is_today: bool = True,
) -> dict:
    """A portal row with one schedule day; hours[0] is bucket H01."""
    hours = hours if hours is not None else [1] * 24
    day = {"DayNo": 1, "DayName": "Monday", "IsToday": 1 if is_today else 0}
    day.update({f"H{h:02d}": v for h, v in enumerate(hours, start=1)})
    return {
        "GroupNo": group_code,
        "SearchDate": "19.10.2026",
        "BlackOutMsg": "Test schedule",
        "Shedule": [day],
    }


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def db(db_path: Path) -> sqlite3.Connection:
    """A migrated SQLite connection in a temp directory."""
    conn = connect(db_path)
    run_migrations(conn)
    yield conn
    conn.close()


@pytest.fixture
def default_config() -> BlackoutConfig:
    """Return default BlackoutConfig with default groups."""
    return BlackoutConfig(groups=list(DEFAULT_GROUPS))


@pytest.fixture
def config_yaml_path(tmp_path: Path) -> Path:
    """Write a minimal valid config YAML and return its path."""
    data = {
        "cache": {"max_age_seconds": 120},
        "notify": {"window_start_minute": 45, "window_end_minute": 55},
        "groups": [21, 22],
    }
    path = tmp_path / "test_config.yaml"
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


@pytest.fixture
def make_row():
    return build_row


@pytest.fixture
def fake_portal():
    """Factory for FakePortalClient instances."""
    return FakePortalClient


@pytest.fixture
def fixtures_dir() -> Path:
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
