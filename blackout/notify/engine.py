"""Notification engine: alerts subscribers shortly before an hour-boundary power change.

Each evaluation tick is stateless apart from the sent_notifications ledger.
A transition is claimed by inserting its ledger row first; only the caller
whose insert succeeded delivers it, so a tuple is sent at most once across
overlapping ticks, restarts, and workers sharing the same store.
"""

import logging
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from blackout.config.schema import BlackoutConfig
from blackout.errors import DeliveryFailed
from blackout.ingest.cache_manager import CacheManager
from blackout.models.common import utc_now
from blackout.models.notification import NotificationKind, SentNotification, TickSummary
from blackout.models.schedule import HOURS_PER_DAY, HourState
from blackout.notify.messages import format_transition_message
from blackout.notify.transport import Transport
from blackout.storage import notification_repo, subscription_repo
from blackout.storage.database import open_store

logger = logging.getLogger(__name__)


def detect_transition(current: HourState, upcoming: HourState) -> NotificationKind | None:
    """ON->OFF is a blackout, OFF->ON a restoration; every other pair is silent."""
    if current == HourState.ON and upcoming == HourState.OFF:
        return NotificationKind.BLACKOUT
    if current == HourState.OFF and upcoming == HourState.ON:
        return NotificationKind.RESTORATION
    return None


class NotificationEngine:
    def __init__(
        self,
        db_path: str | Path,
        cache: CacheManager,
        transport: Transport,
        timezone: str = "Europe/Kyiv",
        window_start: int = 50,
        window_end: int = 55,
    ):
        self.db_path = db_path
        self.cache = cache
        self.transport = transport
        self.tz = ZoneInfo(timezone)
        self.window_start = window_start
        self.window_end = window_end

    def evaluate(self, now: datetime | None = None) -> TickSummary:
        """Run one tick. Outside the minute window or in the last hour it does nothing."""
        summary = TickSummary()
        local = (now or utc_now()).astimezone(self.tz)
        current_hour = local.hour + 1  # bucket 1 = 00:00-01:00
        current_date = local.date().isoformat()

        if not self.window_start <= local.minute <= self.window_end:
            logger.debug("Not in notification window (minute %d)", local.minute)
            summary.skipped_reason = "outside window"
            return summary

        next_hour = current_hour + 1
        if next_hour > HOURS_PER_DAY:
            logger.debug("Next hour bucket would be %d, skipping", next_hour)
            summary.skipped_reason = "end of day"
            return summary

        logger.info(
            "Checking transitions %d->%d for %s", current_hour, next_hour, current_date
        )
        snapshot = self.cache.get_snapshot(force_refresh=False)

        with open_store(self.db_path) as conn:
            subscriptions = subscription_repo.get_all_subscriptions(conn)
            summary.subscriptions = len(subscriptions)

            for sub in subscriptions:
                group = snapshot.groups.get(sub.group_code)
                if group is None:
                    continue
                today = group.today()
                if today is None:
                    continue

                kind = detect_transition(
                    today.state_at(current_hour), today.state_at(next_hour)
                )
                if kind is None:
                    continue
                summary.candidates += 1

                entry = SentNotification(
                    subscriber_id=sub.subscriber_id,
                    group_code=sub.group_code,
                    kind=kind,
                    hour=next_hour,
                    date=current_date,
                )
                if not notification_repo.record_if_absent(conn, entry):
                    logger.debug(
                        "Already sent %s to %s for group %s at hour %d",
                        kind.value, sub.subscriber_id, sub.group_code, next_hour,
                    )
                    summary.duplicates += 1
                    continue

                message = format_transition_message(
                    kind, sub.group_code, next_hour, local.minute
                )
                try:
                    self.transport.send_text(sub.subscriber_id, message)
                except DeliveryFailed as e:
                    # Ledger row is kept; this tuple is never retried
                    logger.error(
                        "Failed to send %s to %s for group %s: %s",
                        kind.value, sub.subscriber_id, sub.group_code, e,
                    )
                    summary.failed += 1
                    continue

                logger.info(
                    "Sent %s notification to %s for group %s",
                    kind.value, sub.subscriber_id, sub.group_code,
                )
                summary.delivered += 1
                summary.sent.append(entry)

        logger.info(
            "Tick done: %d candidates, %d delivered, %d duplicates, %d failed",
            summary.candidates, summary.delivered, summary.duplicates, summary.failed,
        )
        return summary


def build_notification_engine(
    config: BlackoutConfig, db_path: str | Path, cache: CacheManager, transport: Transport
) -> NotificationEngine:
    return NotificationEngine(
        db_path,
        cache,
        transport,
        timezone=config.notify.timezone,
        window_start=config.notify.window_start_minute,
        window_end=config.notify.window_end_minute,
    )
