"""Schedule fetcher: retrieves every group's schedule through a resolved ID map."""

import logging
from dataclasses import dataclass, field

from blackout.errors import DataMissing, GroupMismatch
from blackout.ingest.portal_client import PortalClient, Session
from blackout.ingest.schedule_parser import parse_group_payload, reported_group
from blackout.models.schedule import GroupSnapshot

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    groups: dict[str, GroupSnapshot] = field(default_factory=dict)
    mismatches: list[GroupMismatch] = field(default_factory=list)

    @property
    def invalidated(self) -> bool:
        """True when any resolved ID served the wrong group; the ID map must be discarded."""
        return bool(self.mismatches)


class ScheduleFetcher:
    def __init__(self, client: PortalClient):
        self.client = client

    def fetch_all(self, id_map: dict[str, int], session: Session) -> FetchResult:
        """Fetch every group in map order.

        Raises DataMissing on the first empty result. A row reporting a
        different group is recorded as a mismatch and skipped; the rest of
        the batch still runs.
        """
        result = FetchResult()
        for group_code, resolved_id in id_map.items():
            row = self.client.lookup(resolved_id, session)
            if row is None:
                logger.warning(
                    "Data for group %s at ID %d is missing", group_code, resolved_id
                )
                raise DataMissing(group_code, resolved_id)

            reported = reported_group(row)
            if reported != group_code:
                mismatch = GroupMismatch(group_code, resolved_id, reported)
                logger.warning("%s", mismatch)
                result.mismatches.append(mismatch)
                continue

            result.groups[group_code] = parse_group_payload(row)
            logger.debug("Got valid data for group %s at ID %d", group_code, resolved_id)

        return result
