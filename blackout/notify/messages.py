"""Text for transition alerts and command replies."""

from blackout.models.common import format_group
from blackout.models.notification import NotificationKind


def format_transition_message(
    kind: NotificationKind, group_code: str, next_hour: int, minute: int
) -> str:
    """Alert text for an upcoming transition.

    next_hour is the 1-indexed bucket about to start, so the switch happens
    at (next_hour - 1):00 local time.
    """
    minutes_left = 60 - minute
    starts_at = f"{next_hour - 1:02d}:00"
    group = format_group(group_code)
    if kind == NotificationKind.BLACKOUT:
        return (
            f"BLACKOUT ALERT for group {group}\n\n"
            f"Electricity will be turned OFF in approximately {minutes_left} minutes "
            f"(at {starts_at}).\n\n"
            "Please prepare your devices!"
        )
    return (
        f"POWER RESTORATION for group {group}\n\n"
        f"Electricity will be turned ON in approximately {minutes_left} minutes "
        f"(at {starts_at})."
    )


def format_group_list(codes: list[str]) -> str:
    return ", ".join(format_group(c) for c in codes)
