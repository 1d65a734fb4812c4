"""Tests for the cache manager: freshness, acquisition cycles, and re-resolution."""

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from blackout.errors import (
    AcquisitionFailed,
    CacheCorrupted,
    ResolutionFailed,
    UpstreamUnavailable,
)
from blackout.ingest.cache_manager import CacheManager, build_cache_manager
from blackout.ingest.id_resolver import IdResolver
from blackout.ingest.portal_client import PortalClient
from blackout.ingest.schedule_fetcher import ScheduleFetcher
from blackout.storage import cache_repo, history_repo
from blackout.storage.database import open_store

T0 = datetime(2026, 10, 19, 9, 0, 0, tzinfo=UTC)


class Clock:
    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def no_sleep():
    with patch("time.sleep") as sleep:
        yield sleep


@pytest.fixture
def clock() -> Clock:
    return Clock(T0)


def _manager(
    db_path: Path,
    client,
    clock: Clock,
    seed_id: int = 4471,
    probes: list[int] | None = None,
    groups: list[str] | None = None,
    max_cycles: int = 5,
    max_attempts: int = 50,
) -> CacheManager:
    rng = MagicMock()
    rng.randint.side_effect = list(probes or [])
    rng.random.return_value = 0.0
    resolver = IdResolver(client, seed_id=seed_id, max_attempts=max_attempts, rng=rng)
    return CacheManager(
        db_path,
        client,
        resolver,
        ScheduleFetcher(client),
        groups=groups or ["21", "22"],
        max_age_seconds=300,
        max_cycles=max_cycles,
        cycle_backoff=5.0,
        clock=clock,
    )


def _save_map(db_path: Path, id_map: dict[str, int]) -> None:
    with open_store(db_path) as conn:
        cache_repo.save_id_map(conn, id_map)


def _stored_map(db_path: Path) -> dict[str, int] | None:
    with open_store(db_path) as conn:
        return cache_repo.load_id_map(conn)


class TestFirstAcquisition:
    def test_resolves_fetches_and_persists(self, db_path, fake_portal, make_row, clock):
        client = fake_portal({4471: make_row("21"), 90213: make_row("22")})
        cache = _manager(db_path, client, clock, probes=[90213])

        snapshot = cache.get_snapshot()

        assert snapshot.captured_at == T0
        assert snapshot.id_map == {"21": 4471, "22": 90213}
        assert set(snapshot.groups) == {"21", "22"}
        assert _stored_map(db_path) == {"21": 4471, "22": 90213}
        with open_store(db_path) as conn:
            assert history_repo.count_history(conn) == 2
            stored = cache_repo.load_snapshot(conn)
        assert stored == snapshot

    def test_current_does_not_acquire(self, db_path, fake_portal, clock):
        client = fake_portal()
        cache = _manager(db_path, client, clock)
        assert cache.current() is None
        assert client.lookups == []


class TestFreshness:
    @pytest.fixture
    def primed(self, db_path, fake_portal, make_row, clock):
        client = fake_portal({4471: make_row("21"), 90213: make_row("22")})
        cache = _manager(db_path, client, clock, probes=[90213])
        first = cache.get_snapshot()
        return cache, client, first

    def test_served_unchanged_before_max_age(self, primed, clock):
        cache, client, first = primed
        lookups = len(client.lookups)

        clock.advance(minutes=4, seconds=59)
        again = cache.get_snapshot()

        assert again == first
        assert again.captured_at == T0
        assert len(client.lookups) == lookups

    def test_refetched_after_max_age(self, primed, clock):
        cache, client, first = primed
        sessions = client.sessions_issued

        clock.advance(minutes=5, seconds=1)
        fresh = cache.get_snapshot()

        assert fresh.captured_at == T0 + timedelta(minutes=5, seconds=1)
        assert client.sessions_issued == sessions + 1
        # Persisted map is reused; only the two mapped IDs are queried
        assert client.lookups[-2:] == [4471, 90213]

    def test_force_refresh_ignores_age(self, primed, clock):
        cache, client, first = primed
        lookups = len(client.lookups)

        clock.advance(seconds=10)
        fresh = cache.get_snapshot(force_refresh=True)

        assert fresh.captured_at == T0 + timedelta(seconds=10)
        assert len(client.lookups) == lookups + 2

    def test_history_appended_per_acquisition(self, primed, db_path, clock):
        cache, _, _ = primed
        clock.advance(minutes=6)
        cache.get_snapshot()
        with open_store(db_path) as conn:
            assert history_repo.count_history(conn) == 4
            assert len(history_repo.get_history(conn, "21")) == 2


class TestInvalidation:
    def test_mismatch_reresolves_all_groups(self, db_path, fake_portal, make_row, clock):
        _save_map(db_path, {"21": 4471, "22": 90213})
        client = fake_portal({
            4471: make_row("31"),
            5000: make_row("21"),
            90213: make_row("22"),
        })
        cache = _manager(db_path, client, clock, seed_id=4471, probes=[5000, 90213])

        snapshot = cache.get_snapshot()

        assert snapshot.id_map == {"21": 5000, "22": 90213}
        assert snapshot.groups["21"].group_code == "21"
        assert _stored_map(db_path) == {"21": 5000, "22": 90213}
        # stale fetch, full resolution (seed first), then a clean fetch
        assert client.lookups == [4471, 90213, 4471, 5000, 90213, 5000, 90213]

    def test_mismatched_batch_never_persisted(self, db_path, fake_portal, make_row, clock):
        _save_map(db_path, {"21": 4471, "22": 90213})
        client = fake_portal({4471: make_row("31"), 90213: make_row("22")})
        cache = _manager(db_path, client, clock, max_cycles=1)

        with pytest.raises(AcquisitionFailed):
            cache.get_snapshot()

        assert _stored_map(db_path) is None
        assert cache.current() is None
        with open_store(db_path) as conn:
            assert history_repo.count_history(conn) == 0

    def test_missing_data_reresolves(self, db_path, fake_portal, make_row, clock):
        _save_map(db_path, {"21": 111, "22": 90213})
        client = fake_portal({4471: make_row("21"), 90213: make_row("22")})
        cache = _manager(db_path, client, clock, seed_id=4471, probes=[90213])

        snapshot = cache.get_snapshot()

        assert snapshot.id_map == {"21": 4471, "22": 90213}
        assert client.lookups[0] == 111

    def test_configured_groups_changed(self, db_path, fake_portal, make_row, clock):
        _save_map(db_path, {"21": 4471})
        client = fake_portal({4471: make_row("21"), 90213: make_row("22")})
        cache = _manager(db_path, client, clock, probes=[90213])

        snapshot = cache.get_snapshot()

        assert snapshot.id_map == {"21": 4471, "22": 90213}


class TestFailures:
    def test_outage_retried_next_cycle(self, db_path, fake_portal, make_row, clock, no_sleep):
        _save_map(db_path, {"21": 4471, "22": 90213})
        client = fake_portal({4471: make_row("21"), 90213: make_row("22")})
        client.session_failures = 1
        cache = _manager(db_path, client, clock)

        snapshot = cache.get_snapshot()

        assert set(snapshot.groups) == {"21", "22"}
        # Outage does not invalidate the map
        assert _stored_map(db_path) == {"21": 4471, "22": 90213}
        no_sleep.assert_called_once_with(5.0)

    def test_bounded_cycles(self, db_path, fake_portal, clock):
        _save_map(db_path, {"21": 4471, "22": 90213})
        client = fake_portal()
        client.session_failures = 10
        cache = _manager(db_path, client, clock, max_cycles=2)

        with pytest.raises(AcquisitionFailed) as exc:
            cache.get_snapshot()
        assert isinstance(exc.value.__cause__, UpstreamUnavailable)
        assert client.sessions_issued == 2

    def test_resolution_failure_propagates(self, db_path, fake_portal, clock):
        client = fake_portal()
        cache = _manager(db_path, client, clock, probes=[1, 2], max_attempts=3)

        with pytest.raises(ResolutionFailed):
            cache.get_snapshot()
        assert _stored_map(db_path) is None

    def test_corrupted_snapshot_is_a_miss(self, db_path, fake_portal, make_row, clock):
        with open_store(db_path) as conn:
            cache_repo.put_artifact(conn, cache_repo.SNAPSHOT_KEY, "{not json")
        client = fake_portal({4471: make_row("21"), 90213: make_row("22")})
        cache = _manager(db_path, client, clock, probes=[90213])

        assert cache.current() is None
        snapshot = cache.get_snapshot()
        assert set(snapshot.groups) == {"21", "22"}

    def test_corrupted_id_map_raises(self, db_path, fake_portal, clock):
        with open_store(db_path) as conn:
            cache_repo.put_artifact(conn, cache_repo.ID_MAP_KEY, "")
        cache = _manager(db_path, fake_portal(), clock)

        with pytest.raises(CacheCorrupted):
            cache.get_snapshot()


class TestConcurrency:
    def test_single_acquisition_for_concurrent_readers(
        self, db, db_path, fake_portal, make_row, clock
    ):
        client = fake_portal({4471: make_row("21"), 90213: make_row("22")})
        cache = _manager(db_path, client, clock, probes=[90213])
        results = []

        def read():
            results.append(cache.get_snapshot())

        threads = [threading.Thread(target=read) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(results) == 4
        # one resolution session plus one fetch session
        assert client.sessions_issued == 2
        with open_store(db_path) as conn:
            assert history_repo.count_history(conn) == 2
        assert all(r.captured_at == T0 for r in results)


class TestBuildCacheManager:
    def test_wires_config(self, default_config, db_path):
        cache = build_cache_manager(default_config, db_path)
        assert isinstance(cache.client, PortalClient)
        assert cache.groups == default_config.groups
        assert cache.max_age_seconds == 300
        assert cache.resolver.seed_id == 100800
        assert cache.resolver.max_attempts == 2000
