"""Parser for the portal's websearch response rows.

A row looks like::

    {"GroupNo": "21", "SearchDate": "19.10.2026", "BlackOutMsg": "...",
     "Shedule": [{"DayNo": 1, "DayName": "Mon", "IsToday": 1,
                  "H01": 1, "H02": 0, ..., "H24": 1}, ...]}

The misspelled "Shedule" key is what the portal sends.
"""

import logging
from typing import Any

from blackout.models.schedule import HOURS_PER_DAY, GroupSnapshot, HourState, ScheduleDay

logger = logging.getLogger(__name__)

MESSAGE_FIELDS = (
    "BlackOutMsg",
    "SearchMsg",
    "SheduleTitle",
    "AdditionalInfoText",
    "FooterText",
)


def hour_key(hour: int) -> str:
    """Upstream field name for a 1-indexed hour bucket: 1 -> 'H01'."""
    return f"H{hour:02d}"


def reported_group(row: dict[str, Any]) -> str:
    """Group code the portal says this row belongs to."""
    value = row.get("GroupNo")
    return "" if value is None else str(value)


def parse_day(raw: dict[str, Any]) -> ScheduleDay:
    hours = tuple(
        HourState.from_raw(raw.get(hour_key(h))) for h in range(1, HOURS_PER_DAY + 1)
    )
    try:
        day_no = int(raw.get("DayNo", 0))
    except (TypeError, ValueError):
        day_no = 0
    return ScheduleDay(
        day_no=day_no,
        day_name=str(raw.get("DayName", "")),
        is_today=raw.get("IsToday") == 1,
        hours=hours,
    )


def parse_group_payload(row: dict[str, Any]) -> GroupSnapshot:
    """Build a GroupSnapshot from one upstream row.

    A missing or malformed schedule list yields a snapshot with no days
    rather than an error; consumers skip groups without a today row.
    """
    schedule = row.get("Shedule")
    days: list[ScheduleDay] = []
    if isinstance(schedule, list):
        for raw_day in schedule:
            if isinstance(raw_day, dict):
                days.append(parse_day(raw_day))
    else:
        logger.warning("Group %s row has no schedule list", reported_group(row))

    messages = {
        name: str(row[name]) for name in MESSAGE_FIELDS if row.get(name) is not None
    }
    return GroupSnapshot(
        group_code=reported_group(row),
        search_date=str(row.get("SearchDate", "")),
        days=tuple(days),
        messages=messages,
        raw=row,
    )
