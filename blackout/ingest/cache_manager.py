"""Cache manager: serves a time-boxed snapshot and runs acquisition cycles on a miss.

An acquisition cycle loads (or resolves) the ID map, fetches every group
with a fresh session, and on success replaces the persisted snapshot and
appends the raw rows to history in one transaction. A stale ID map
(mismatch or missing data) is discarded and the cycle restarts with a full
re-resolution, up to max_cycles times.
"""

import logging
import sqlite3
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from blackout.config.schema import BlackoutConfig
from blackout.errors import (
    AcquisitionFailed,
    CacheCorrupted,
    DataMissing,
    GroupMismatch,
    TokenNotFound,
    UpstreamUnavailable,
)
from blackout.ingest.id_resolver import IdResolver
from blackout.ingest.portal_client import PortalClient
from blackout.ingest.schedule_fetcher import ScheduleFetcher
from blackout.ingest.staleness import is_snapshot_fresh, snapshot_age_seconds
from blackout.models.common import utc_now
from blackout.models.schedule import Snapshot
from blackout.storage import cache_repo, history_repo
from blackout.storage.database import open_store

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE_SECONDS = 300


class CacheManager:
    def __init__(
        self,
        db_path: str | Path,
        client: PortalClient,
        resolver: IdResolver,
        fetcher: ScheduleFetcher,
        groups: list[str],
        max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS,
        max_cycles: int = 5,
        cycle_backoff: float = 5.0,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db_path = db_path
        self.client = client
        self.resolver = resolver
        self.fetcher = fetcher
        self.groups = list(groups)
        self.max_age_seconds = max_age_seconds
        self.max_cycles = max_cycles
        self.cycle_backoff = cycle_backoff
        self.clock = clock
        self._lock = threading.Lock()

    # --- Reads ---

    def current(self) -> Snapshot | None:
        """The persisted snapshot regardless of age. Never touches the portal."""
        with open_store(self.db_path) as conn:
            try:
                return cache_repo.load_snapshot(conn)
            except CacheCorrupted as e:
                logger.warning("Ignoring unreadable cached snapshot: %s", e)
                return None

    def get_snapshot(self, force_refresh: bool = False) -> Snapshot:
        """Return a fresh snapshot, acquiring a new one if needed.

        Only one acquisition runs at a time in this process. A caller that
        waited for another thread's acquisition reuses its result.
        """
        if not force_refresh:
            cached = self._fresh_cached()
            if cached is not None:
                return cached

        with self._lock:
            if not force_refresh:
                cached = self._fresh_cached()
                if cached is not None:
                    return cached
            return self._acquire()

    def _fresh_cached(self) -> Snapshot | None:
        snapshot = self.current()
        if snapshot is None:
            return None
        now = self.clock()
        if not is_snapshot_fresh(snapshot.captured_at, self.max_age_seconds, now):
            logger.info(
                "Cached snapshot from %s is %.0fs old, refetching",
                snapshot.captured_at.isoformat(),
                snapshot_age_seconds(snapshot.captured_at, now),
            )
            return None
        logger.debug("Using cached snapshot from %s", snapshot.captured_at.isoformat())
        return snapshot

    # --- Acquisition ---

    def _acquire(self) -> Snapshot:
        last_error: Exception | None = None
        for cycle in range(1, self.max_cycles + 1):
            logger.info("Acquisition cycle %d/%d starting", cycle, self.max_cycles)
            try:
                snapshot = self._run_cycle()
            except (DataMissing, GroupMismatch) as e:
                logger.warning("Cycle %d: %s, discarding ID map", cycle, e)
                self._discard_id_map()
                last_error = e
                continue
            except (UpstreamUnavailable, TokenNotFound) as e:
                logger.warning(
                    "Cycle %d: portal unavailable (%s), retrying in %.1fs",
                    cycle, e, self.cycle_backoff,
                )
                last_error = e
                if cycle < self.max_cycles:
                    time.sleep(self.cycle_backoff)
                continue

            return snapshot

        raise AcquisitionFailed(
            f"No consistent snapshot after {self.max_cycles} cycles"
        ) from last_error

    def _run_cycle(self) -> Snapshot:
        """One pass. Raises GroupMismatch when the fetched batch invalidated the ID map."""
        with open_store(self.db_path) as conn:
            id_map = cache_repo.load_id_map(conn)

        if id_map is not None and set(id_map) != set(self.groups):
            logger.warning(
                "Persisted ID map covers %s, configured groups are %s; re-resolving",
                sorted(id_map), sorted(self.groups),
            )
            id_map = None

        if id_map is None:
            id_map = self.resolver.resolve(self.groups)
            with open_store(self.db_path) as conn:
                cache_repo.save_id_map(conn, id_map)
            logger.info("Persisted new ID map for %d groups", len(id_map))

        session = self.client.acquire_session()
        result = self.fetcher.fetch_all(id_map, session)

        if result.invalidated:
            logger.warning(
                "%d stale ID mappings, re-resolving all groups", len(result.mismatches)
            )
            raise result.mismatches[0]

        snapshot = Snapshot(
            captured_at=self.clock(),
            id_map=dict(id_map),
            groups=result.groups,
        )
        self._persist(snapshot)
        return snapshot

    def _discard_id_map(self) -> None:
        with open_store(self.db_path) as conn:
            cache_repo.delete_id_map(conn)

    def _persist(self, snapshot: Snapshot) -> None:
        captured_at = snapshot.captured_at.isoformat()
        with open_store(self.db_path) as conn:
            try:
                cache_repo.save_snapshot(conn, snapshot, commit=False)
                for code, group in snapshot.groups.items():
                    history_repo.append_history(
                        conn, captured_at, code, cache_repo.dump_payload(group.raw),
                        commit=False,
                    )
                conn.commit()
            except sqlite3.Error:
                conn.rollback()
                raise
        logger.info(
            "Saved snapshot of %d groups captured at %s", len(snapshot.groups), captured_at
        )


def build_cache_manager(config: BlackoutConfig, db_path: str | Path) -> CacheManager:
    """Wire the portal client, resolver, and fetcher from config."""
    client = PortalClient(
        base_url=config.portal.base_url,
        user_agents=config.portal.user_agents,
        timeout=config.portal.timeout_seconds,
        max_retries=config.portal.max_retries,
        retry_base_delay=config.portal.retry_base_delay_seconds,
    )
    resolver = IdResolver(
        client,
        seed_id=config.resolver.seed_id,
        id_space=config.resolver.id_space,
        max_attempts=config.resolver.max_attempts,
        request_delay=config.resolver.request_delay_seconds,
        request_jitter=config.resolver.request_jitter_seconds,
        backoff_base=config.resolver.backoff_base_seconds,
        backoff_jitter=config.resolver.backoff_jitter_seconds,
    )
    return CacheManager(
        db_path,
        client,
        resolver,
        ScheduleFetcher(client),
        groups=config.groups,
        max_age_seconds=config.cache.max_age_seconds,
        max_cycles=config.cache.max_cycles,
        cycle_backoff=config.cache.cycle_backoff_seconds,
    )
