"""Subscription and notification ledger models."""

from dataclasses import dataclass, field
from enum import StrEnum


class NotificationKind(StrEnum):
    BLACKOUT = "blackout"
    RESTORATION = "restoration"


@dataclass(frozen=True)
class Subscription:
    subscriber_id: int
    group_code: str


@dataclass(frozen=True)
class SentNotification:
    subscriber_id: int
    group_code: str
    kind: NotificationKind
    hour: int  # 1..24
    date: str  # YYYY-MM-DD, local


@dataclass
class TickSummary:
    subscriptions: int = 0
    candidates: int = 0
    delivered: int = 0
    duplicates: int = 0
    failed: int = 0
    skipped_reason: str = ""
    sent: list[SentNotification] = field(default_factory=list)
