"""Common types and helpers shared across models."""

from datetime import UTC, datetime
from typing import TypeAlias

GroupCode: TypeAlias = str


def utc_now() -> datetime:
    return datetime.now(UTC)


def normalize_group(text: str) -> GroupCode:
    """Turn user input like ' 2.1 ' into the upstream group code '21'."""
    return "".join(text.strip().split("."))


def format_group(code: GroupCode) -> str:
    """Display form of a group code: '21' -> '2.1'."""
    if "." in code or len(code) < 2:
        return code
    return f"{code[0]}.{code[1:]}"
