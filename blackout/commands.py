"""User commands: subscribe, unsubscribe, settings, and fetch.

Each handler returns the reply lines to show the user. Failures produce a
generic reply; the detail goes to the log only.
"""

import logging
from pathlib import Path

from blackout.errors import BlackoutError, DeliveryFailed
from blackout.ingest.cache_manager import CacheManager
from blackout.models.common import format_group, normalize_group
from blackout.notify.messages import format_group_list
from blackout.notify.render import render_schedule
from blackout.notify.transport import Transport
from blackout.storage import subscription_repo
from blackout.storage.database import open_store

logger = logging.getLogger(__name__)


class BotCommands:
    def __init__(self, db_path: str | Path, cache: CacheManager, transport: Transport):
        self.db_path = db_path
        self.cache = cache
        self.transport = transport

    def subscribe(self, subscriber_id: int, raw_group: str) -> list[str]:
        group = normalize_group(raw_group)
        if not group:
            return [
                "Please specify a group number. Usage: /subscribe <group> "
                "(e.g., /subscribe 21 or /subscribe 2.1)"
            ]
        try:
            snapshot = self.cache.get_snapshot()
            if group not in snapshot.groups:
                return [
                    f"Invalid group {group}. Available groups: "
                    f"{format_group_list(list(snapshot.groups))}"
                ]
            with open_store(self.db_path) as conn:
                added = subscription_repo.add_subscription(conn, subscriber_id, group)
                groups = subscription_repo.get_groups_for_subscriber(conn, subscriber_id)
        except BlackoutError:
            logger.exception("Subscribe failed for %s", subscriber_id)
            return ["Failed to subscribe."]

        if added:
            first = f"Successfully subscribed to group {format_group(group)}"
        else:
            first = f"You are already subscribed to group {format_group(group)}"
        return [first, f"Your subscriptions: {format_group_list(groups)}"]

    def unsubscribe(self, subscriber_id: int, raw_group: str) -> list[str]:
        group = normalize_group(raw_group)
        if not group:
            return [
                "Please specify a group number. Usage: /unsubscribe <group> "
                "(e.g., /unsubscribe 21 or /unsubscribe 2.1)"
            ]
        try:
            with open_store(self.db_path) as conn:
                removed = subscription_repo.remove_subscription(conn, subscriber_id, group)
                groups = subscription_repo.get_groups_for_subscriber(conn, subscriber_id)
        except BlackoutError:
            logger.exception("Unsubscribe failed for %s", subscriber_id)
            return ["Failed to unsubscribe."]

        if removed:
            replies = [f"Successfully unsubscribed from group {format_group(group)}"]
        else:
            replies = [f"You were not subscribed to group {format_group(group)}"]
        if groups:
            replies.append(f"Your remaining subscriptions: {format_group_list(groups)}")
        else:
            replies.append("You have no active subscriptions.")
        return replies

    def settings(self, subscriber_id: int) -> list[str]:
        try:
            with open_store(self.db_path) as conn:
                groups = subscription_repo.get_groups_for_subscriber(conn, subscriber_id)
        except BlackoutError:
            logger.exception("Settings lookup failed for %s", subscriber_id)
            return ["Failed to retrieve settings."]

        if not groups:
            return [
                "You have no active subscriptions.\n\n"
                "Use /subscribe <group> to subscribe to blackout updates."
            ]
        return [
            f"Your active subscriptions:\n{format_group_list(groups)}\n\n"
            "Use /subscribe <group> to add more or /unsubscribe <group> to remove."
        ]

    def fetch(self, subscriber_id: int, raw_group: str = "") -> list[str]:
        """Send schedule images for one group, or for every subscribed group."""
        group = normalize_group(raw_group)
        replies: list[str] = []
        try:
            snapshot = self.cache.get_snapshot()
            available = format_group_list(list(snapshot.groups))

            if group:
                if group not in snapshot.groups:
                    return [f"No data found for group {group}. Available groups: {available}"]
                targets = [group]
            else:
                with open_store(self.db_path) as conn:
                    targets = subscription_repo.get_groups_for_subscriber(conn, subscriber_id)
                if not targets:
                    return [
                        f"You have no active subscriptions. Available groups: {available}"
                        "\n\nUse /subscribe <group> to subscribe."
                    ]

            for code in targets:
                data = snapshot.groups.get(code)
                if data is None:
                    replies.append(f"No data found for group {format_group(code)}")
                    continue
                if not data.days:
                    replies.append(f"Invalid schedule data for group {format_group(code)}")
                    continue
                try:
                    self.transport.send_image(
                        subscriber_id,
                        render_schedule(data),
                        caption=f"Schedule for group {format_group(code)}",
                    )
                except DeliveryFailed as e:
                    logger.error(
                        "Failed to send schedule for group %s to %s: %s",
                        code, subscriber_id, e,
                    )
                    replies.append(f"Failed to send schedule for group {format_group(code)}")
        except BlackoutError:
            logger.exception("Fetch failed for %s", subscriber_id)
            return ["Failed to fetch data."]
        return replies
