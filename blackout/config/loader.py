"""YAML config loader with environment overrides."""

import os
from pathlib import Path
from typing import Any

import yaml

from blackout.config.defaults import DEFAULT_GROUPS
from blackout.config.schema import BlackoutConfig

BOT_TOKEN_ENV = "BOT_TOKEN"


def load_config(path: str | Path) -> BlackoutConfig:
    """Load and validate config from a YAML file.

    If no groups are specified in the YAML, injects DEFAULT_GROUPS.
    A missing telegram.bot_token falls back to the BOT_TOKEN environment variable.
    """
    path = Path(path)
    with open(path) as f:
        raw = yaml.safe_load(f) or {}

    if "groups" not in raw or not raw["groups"]:
        raw["groups"] = list(DEFAULT_GROUPS)
    raw["groups"] = [str(g) for g in raw["groups"]]

    telegram: dict[str, Any] = raw.setdefault("telegram", {}) or {}
    raw["telegram"] = telegram
    if not telegram.get("bot_token") and os.environ.get(BOT_TOKEN_ENV):
        telegram["bot_token"] = os.environ[BOT_TOKEN_ENV]

    return BlackoutConfig(**raw)


def get_config_value(config: BlackoutConfig, dotted_key: str) -> Any:
    """Get a config value by dotted key path. E.g. 'cache.max_age_seconds'."""
    parts = dotted_key.split(".")
    obj: Any = config
    for part in parts:
        if isinstance(obj, list):
            obj = obj[int(part)]
        elif hasattr(obj, part):
            obj = getattr(obj, part)
        elif isinstance(obj, dict):
            obj = obj[part]
        else:
            raise KeyError(f"Config key not found: {dotted_key}")
    return obj
