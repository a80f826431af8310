import json
import os
import sys
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

import pytz
import yaml

from models import Reaction
from nag import DEFAULT_CAPACITY, DEFAULT_THRESHOLDS

ROOT = os.path.realpath(os.path.dirname(__file__))

DEFAULT_REACTIONS = {
    Reaction.INTERESTED.value: "👍",
    Reaction.CONFIRMING.value: "✅",
    Reaction.COMMENTATING.value: "🎙️",
    Reaction.RESTREAMING.value: "📺",
}


@dataclass(frozen=True)
class LifecycleConfig:
    poll_interval_seconds: int = 60
    look_ahead_seconds: int = 30 * 60
    nag_thresholds: Tuple[int, ...] = DEFAULT_THRESHOLDS
    grace_minutes: int = 120
    nag_cache_capacity: int = DEFAULT_CAPACITY


@dataclass
class Settings:
    guild: str = ""
    timezone: str = "US/Eastern"
    scheduling_channel: str = "race-scheduling"
    active_channel: str = "active-races"
    unconfirmed_role: str = "unconfirmed-racer"
    confirmed_role: str = "confirmed-racer"
    reactions: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_REACTIONS))
    database: str = "database/database.db"
    startup_retry_seconds: int = 60
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)

    @property
    def tz(self):
        return pytz.timezone(self.timezone)

    def emoji_for(self, reaction: Reaction) -> str:
        return self.reactions[reaction.value]


def _positive(data: dict, key: str, default: int) -> int:
    value = int(data.get(key, default))
    if value <= 0:
        raise ValueError(f"{key} must be positive, got {value}")
    return value


def settings_from_dict(data: dict) -> Settings:
    data = data or {}
    channels = data.get("channels") or {}
    roles = data.get("roles") or {}
    reactions = dict(DEFAULT_REACTIONS)
    reactions.update(data.get("reactions") or {})
    unknown = set(reactions) - {r.value for r in Reaction}
    if unknown:
        raise ValueError(f"Unknown reactions in config: {', '.join(sorted(unknown))}")

    thresholds: List[int] = [int(t) for t in data.get("nag_thresholds", DEFAULT_THRESHOLDS)]
    lifecycle = LifecycleConfig(
        poll_interval_seconds=_positive(data, "poll_interval_seconds", 60),
        look_ahead_seconds=_positive(data, "look_ahead_seconds", 30 * 60),
        nag_thresholds=tuple(sorted(set(thresholds), reverse=True)),
        grace_minutes=_positive(data, "grace_minutes", 120),
        nag_cache_capacity=_positive(data, "nag_cache_capacity", DEFAULT_CAPACITY),
    )
    settings = Settings(
        guild=str(data.get("guild", "")),
        timezone=data.get("timezone", "US/Eastern"),
        scheduling_channel=channels.get("scheduling", "race-scheduling"),
        active_channel=channels.get("active", "active-races"),
        unconfirmed_role=roles.get("unconfirmed", "unconfirmed-racer"),
        confirmed_role=roles.get("confirmed", "confirmed-racer"),
        reactions=reactions,
        database=data.get("database", "database/database.db"),
        startup_retry_seconds=_positive(data, "startup_retry_seconds", 60),
        lifecycle=lifecycle,
    )
    # raises UnknownTimeZoneError on a bad zone name
    pytz.timezone(settings.timezone)
    return settings


def load_settings(filename: str = f"{ROOT}/config.yaml") -> Settings:
    with open(filename, "r", encoding="utf-8") as file:
        return settings_from_dict(yaml.safe_load(file))


def load_bot_config(filename: str = f"{ROOT}/config.json") -> dict:
    if not os.path.isfile(filename):
        sys.exit(f"'{os.path.basename(filename)}' not found! Please add it and try again.")
    with open(filename, encoding="utf-8") as file:
        return json.load(file)
