"""Pytest configuration and fixtures for race bot tests."""

import os

# keep test runs from writing a log file next to the code
os.environ.setdefault("LOG_FILE", "")

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, List, Set, Tuple

import pytest
import pytz

from config import LifecycleConfig
from database import DatabaseManager
from lifecycle import RaceLifecycle
from models import Race, RaceState, Reaction
from startup import RaceResources

BOT_ID = 1
GUILD_ID = 10
SCHEDULING_CHANNEL = 20
ACTIVE_CHANNEL = 30
UNCONFIRMED_ROLE = 40
CONFIRMED_ROLE = 50

EMOJIS = {
    Reaction.INTERESTED: "👍",
    Reaction.CONFIRMING: "✅",
    Reaction.COMMENTATING: "🎙️",
    Reaction.RESTREAMING: "📺",
}

START = datetime(2021, 6, 9, 22, 0, tzinfo=pytz.utc)


class PlatformError(Exception):
    """Stands in for a Discord HTTP failure."""


class FakePlatform:
    """Records every chat call; failures can be switched on per method or per message."""

    def __init__(self) -> None:
        self.reactions: Dict[Tuple[int, int, Reaction], List[int]] = {}
        self.messages: List[Tuple[int, int, str]] = []
        self.added_reactions: List[Tuple[int, int, Reaction]] = []
        self.roles: Dict[int, Set[int]] = defaultdict(set)
        self.grants: List[Tuple[int, int]] = []
        self.revokes: List[Tuple[int, int]] = []
        self.fail: Set[str] = set()
        self.fail_messages: Set[int] = set()
        self._next_id = 900_000_000_000_000_000

    def _check(self, name: str) -> None:
        if name in self.fail:
            raise PlatformError(name)

    def react(self, channel_id: int, message_id: int, reaction: Reaction, *user_ids: int) -> None:
        self.reactions.setdefault((channel_id, message_id, reaction), []).extend(user_ids)

    def messages_in(self, channel_id: int) -> List[str]:
        return [text for channel, _, text in self.messages if channel == channel_id]

    async def list_reactions(self, channel_id, message_id, reaction):
        self._check("list_reactions")
        if message_id in self.fail_messages:
            raise PlatformError(f"message {message_id}")
        return list(self.reactions.get((channel_id, message_id, reaction), []))

    async def create_message(self, channel_id, text):
        self._check("create_message")
        self._next_id += 1
        self.messages.append((channel_id, self._next_id, text))
        return self._next_id

    async def add_reaction(self, channel_id, message_id, reaction):
        self._check("add_reaction")
        self.added_reactions.append((channel_id, message_id, reaction))

    async def grant_role(self, user_id, role_id):
        self._check("grant_role")
        self.grants.append((user_id, role_id))
        self.roles[user_id].add(role_id)

    async def revoke_role(self, user_id, role_id):
        self._check("revoke_role")
        self.revokes.append((user_id, role_id))
        self.roles[user_id].discard(role_id)


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)

    @property
    def timestamp(self) -> int:
        return int(self.now.timestamp())


# -------------------------------------------------------------------------
# Fixtures
# -------------------------------------------------------------------------


@pytest.fixture
async def database():
    manager = await DatabaseManager.connect(":memory:")
    yield manager
    await manager.close()


@pytest.fixture
async def catalog(database):
    """A game with one category: returns (game_id, category_id)."""
    game_id = await database.add_game("sm", "Super Metroid")
    category_id = await database.add_category(game_id, "any", "Any%")
    return game_id, category_id


@pytest.fixture
def resources() -> RaceResources:
    return RaceResources(
        guild_id=GUILD_ID,
        scheduling_channel_id=SCHEDULING_CHANNEL,
        active_channel_id=ACTIVE_CHANNEL,
        unconfirmed_role_id=UNCONFIRMED_ROLE,
        confirmed_role_id=CONFIRMED_ROLE,
        bot_user_id=BOT_ID,
        emojis=dict(EMOJIS),
    )


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def lifecycle(database, platform, resources, clock) -> RaceLifecycle:
    config = LifecycleConfig(
        poll_interval_seconds=60,
        look_ahead_seconds=30 * 60,
        nag_thresholds=(60, 30, 15),
        grace_minutes=120,
        nag_cache_capacity=100,
    )
    return RaceLifecycle(database, platform, resources, config, clock=clock)


@pytest.fixture
def make_race(database, catalog, clock):
    """Create a race *minutes* from the clock's now, optionally already moved along."""

    async def _make(
        minutes: float,
        state: RaceState = RaceState.SCHEDULED,
        scheduling_message: int | None = None,
        active_message: int | None = None,
    ) -> Race:
        game_id, category_id = catalog
        race_id = await database.create_race(game_id, category_id, clock.timestamp + int(minutes * 60))
        race = await database.get_race(race_id)
        if scheduling_message is not None:
            race.set_scheduling_message(scheduling_message)
        if active_message is not None:
            race.set_active_message(active_message)
        race.state = state
        await database.update_race(race)
        return race

    return _make
