"""Resolves semantic group codes to the portal's per-session numeric lookup IDs.

The portal hides which internal ID serves which group, so the resolver
probes IDs until every configured group has been seen once. The first probe
uses a known seed; later probes are drawn uniformly from the ID space.
"""

import logging
import random
import time
from collections.abc import Iterable

from blackout.errors import ResolutionFailed, TokenNotFound, UpstreamUnavailable
from blackout.ingest.portal_client import PortalClient, Session
from blackout.ingest.schedule_parser import reported_group

logger = logging.getLogger(__name__)

DEFAULT_SEED_ID = 100800
DEFAULT_ID_SPACE = 200000


class IdResolver:
    def __init__(
        self,
        client: PortalClient,
        seed_id: int = DEFAULT_SEED_ID,
        id_space: int = DEFAULT_ID_SPACE,
        max_attempts: int = 2000,
        request_delay: float = 0.8,
        request_jitter: float = 0.4,
        backoff_base: float = 2.0,
        backoff_jitter: float = 2.0,
        rng: random.Random | None = None,
    ):
        self.client = client
        self.seed_id = seed_id
        self.id_space = id_space
        self.max_attempts = max_attempts
        self.request_delay = request_delay
        self.request_jitter = request_jitter
        self.backoff_base = backoff_base
        self.backoff_jitter = backoff_jitter
        self.rng = rng or random.Random()

    def _candidate(self, attempt: int) -> int:
        if attempt == 0:
            return self.seed_id
        return self.rng.randint(1, self.id_space)

    def _pause(self, base: float, jitter: float) -> None:
        time.sleep(base + self.rng.random() * jitter)

    def resolve(
        self, known_groups: Iterable[str], session: Session | None = None
    ) -> dict[str, int]:
        """Probe IDs until every group in known_groups maps to a resolving ID.

        Returns the complete map, never a partial one. Raises
        ResolutionFailed after max_attempts probes.
        """
        remaining = set(known_groups)
        found: dict[str, int] = {}
        if not remaining:
            return found

        logger.info("Resolving IDs for %d groups", len(remaining))
        attempts = 0
        while remaining:
            if attempts >= self.max_attempts:
                logger.error(
                    "ID resolution gave up after %d probes, missing %s",
                    attempts, sorted(remaining),
                )
                raise ResolutionFailed(remaining, attempts)

            candidate = self._candidate(attempts)
            attempts += 1

            try:
                if session is None:
                    session = self.client.acquire_session()
                row = self.client.lookup(candidate, session)
            except (UpstreamUnavailable, TokenNotFound) as e:
                logger.warning("Probe %d for ID %d failed: %s", attempts, candidate, e)
                session = None
                self._pause(self.backoff_base, self.backoff_jitter)
                self._pause(self.request_delay, self.request_jitter)
                continue

            if row is None:
                logger.info("No data for ID %d, refreshing session", candidate)
                session = None
                self._pause(self.backoff_base, self.backoff_jitter)
            else:
                group = reported_group(row)
                if group in remaining:
                    remaining.discard(group)
                    found[group] = candidate
                    logger.info(
                        "Group %s found at ID %d (%d still missing)",
                        group, candidate, len(remaining),
                    )

            self._pause(self.request_delay, self.request_jitter)

        logger.info("Resolved all %d groups in %d probes", len(found), attempts)
        return found
