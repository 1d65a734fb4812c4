"""Schedule data models for blackout groups."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum
from typing import Any

HOURS_PER_DAY = 24


class HourState(IntEnum):
    UNKNOWN = -1
    OFF = 0
    ON = 1
    MAYBE = 2

    @classmethod
    def from_raw(cls, value: Any) -> "HourState":
        """Map an upstream hour value to a state; anything unexpected is UNKNOWN."""
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            return cls.UNKNOWN
        try:
            number = float(value)
        except ValueError:
            return cls.UNKNOWN
        if number in (0, 1, 2):
            return cls(int(number))
        return cls.UNKNOWN


@dataclass(frozen=True)
class ScheduleDay:
    day_no: int
    day_name: str
    is_today: bool
    hours: tuple[HourState, ...]  # index 0 = 00:00-01:00

    def __post_init__(self) -> None:
        if len(self.hours) != HOURS_PER_DAY:
            raise ValueError(f"Expected {HOURS_PER_DAY} hour states, got {len(self.hours)}")

    def state_at(self, hour: int) -> HourState:
        """State of a 1-indexed hour bucket (hour 1 = 00:00-01:00)."""
        if not 1 <= hour <= HOURS_PER_DAY:
            raise ValueError(f"Hour bucket out of range: {hour}")
        return self.hours[hour - 1]


@dataclass(frozen=True)
class GroupSnapshot:
    group_code: str
    search_date: str
    days: tuple[ScheduleDay, ...]
    messages: dict[str, str] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict, compare=False)

    def today(self) -> ScheduleDay | None:
        for day in self.days:
            if day.is_today:
                return day
        return None


@dataclass(frozen=True)
class Snapshot:
    captured_at: datetime  # aware, UTC
    id_map: dict[str, int]
    groups: dict[str, GroupSnapshot]
