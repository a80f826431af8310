from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import pytz

from logger_config import logger


class RaceState(str, Enum):
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"

    def can_transition_to(self, other: "RaceState") -> bool:
        return (self, other) in _TRANSITIONS


_TRANSITIONS = {
    (RaceState.SCHEDULED, RaceState.ACTIVE),
    (RaceState.ACTIVE, RaceState.COMPLETED),
}


class Reaction(Enum):
    """
    Reactions the bot cares about. The value is the config key; the emoji each
    one maps to on the server is resolved at startup.
    """
    INTERESTED = "interested"
    CONFIRMING = "confirming"
    COMMENTATING = "commentating"
    RESTREAMING = "restreaming"


class InvalidTransition(Exception):
    def __init__(self, race, target):
        super().__init__(f"{race} cannot move from {race.state.value} to {target.value}")
        self.race = race
        self.target = target


@dataclass
class Game:
    id: int
    name: str
    name_pretty: str

    @classmethod
    def from_row(cls, row):
        return cls(id=row["id"], name=row["name"], name_pretty=row["name_pretty"])


@dataclass
class Category:
    id: int
    game_id: int
    name: str
    name_pretty: str

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row["id"],
            game_id=row["game_id"],
            name=row["name"],
            name_pretty=row["name_pretty"],
        )


def _parse_message_id(value: Optional[str]) -> Optional[int]:
    # message ids are 64-bit snowflakes, kept as decimal text in sqlite
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Error parsing message id {value!r}")
        return None


@dataclass
class Race:
    id: int
    game_id: int
    category_id: int
    # seconds since epoch
    occurs: int
    state: RaceState = RaceState.SCHEDULED
    scheduling_message_id: Optional[str] = None
    active_message_id: Optional[str] = None

    @classmethod
    def from_row(cls, row):
        return cls(
            id=row["id"],
            game_id=row["game_id"],
            category_id=row["category_id"],
            occurs=row["occurs"],
            state=RaceState(row["state"]),
            scheduling_message_id=row["scheduling_message_id"],
            active_message_id=row["active_message_id"],
        )

    def __str__(self) -> str:
        return f"Race #{self.id}"

    def occurs_at(self, tz=pytz.utc) -> datetime:
        return datetime.fromtimestamp(self.occurs, tz=pytz.utc).astimezone(tz)

    @property
    def scheduling_message(self) -> Optional[int]:
        return _parse_message_id(self.scheduling_message_id)

    @property
    def active_message(self) -> Optional[int]:
        return _parse_message_id(self.active_message_id)

    def set_scheduling_message(self, message_id: int) -> None:
        if self.scheduling_message_id is not None:
            raise ValueError(f"{self} already has a scheduling message")
        self.scheduling_message_id = str(message_id)

    def set_active_message(self, message_id: int) -> None:
        if self.active_message_id is not None:
            raise ValueError(f"{self} already has an active message")
        self.active_message_id = str(message_id)

    def advance(self, target: RaceState) -> None:
        if not self.state.can_transition_to(target):
            raise InvalidTransition(self, target)
        self.state = target
