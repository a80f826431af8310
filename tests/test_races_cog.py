"""Tests for the race commands, called straight through their callbacks."""

import asyncio
from types import SimpleNamespace

import discord
import pytest

from cogs.races import COLOR_ERROR, NEWRACE_USAGE, Races, fit_lines
from config import settings_from_dict
from conftest import SCHEDULING_CHANNEL
from models import RaceState, Reaction

ACTIVE_MESSAGE = 222


class FakeContext:
    def __init__(self) -> None:
        self.author = "tester#0001"
        self.sent = []
        self.embeds = []

    async def send(self, content=None, *, embed=None):
        self.sent.append(content)
        self.embeds.append(embed)

    @property
    def last(self):
        return self.sent[-1]

    @property
    def last_embed(self) -> discord.Embed:
        return self.embeds[-1]


async def _never_ready():
    await asyncio.Event().wait()


@pytest.fixture
async def cog(database, lifecycle, resources):
    bot = SimpleNamespace(
        settings=settings_from_dict({}),
        config={"prefix": "!"},
        database=database,
        wait_until_ready=_never_ready,
    )
    races = Races(bot)
    races.resources = resources
    races.lifecycle = lifecycle
    yield races
    races.cog_unload()
    await asyncio.sleep(0)


@pytest.fixture
def context() -> FakeContext:
    return FakeContext()


def usage() -> str:
    return NEWRACE_USAGE.format(prefix="!", zone="US/Eastern")


class TestNewRace:
    """Scheduling a race from the command line."""

    async def test_schedules_and_announces(self, cog, context, database, platform, catalog):
        await Races.newrace.callback(cog, context, "SM", "any", time="06/09/2021 11:00pm")

        (race,) = await database.get_upcoming_races()
        assert race.occurs == 1623294000
        assert race.state is RaceState.SCHEDULED

        (_, message_id, text), = platform.messages
        assert platform.messages_in(SCHEDULING_CHANNEL) == [text]
        assert text.startswith(f"**Race #{race.id}**: Super Metroid - Any%")
        assert race.scheduling_message == message_id
        assert platform.added_reactions == [
            (SCHEDULING_CHANNEL, message_id, Reaction.INTERESTED),
            (SCHEDULING_CHANNEL, message_id, Reaction.COMMENTATING),
            (SCHEDULING_CHANNEL, message_id, Reaction.RESTREAMING),
        ]
        assert context.last == "A new race has been created: Super Metroid - Any% at Wednesday, June 09 at 11:00PM"

    @pytest.mark.parametrize("when", ["tomorrow at noon", "13/01/2021 11:00pm", "03/14/2021 2:30am"])
    async def test_bad_time_shows_usage(self, cog, context, database, platform, catalog, when):
        await Races.newrace.callback(cog, context, "sm", "any", time=when)

        assert context.last == usage()
        assert await database.get_upcoming_races() == []
        assert platform.messages == []

    async def test_missing_arguments_show_usage(self, cog, context, database):
        await Races.newrace.callback(cog, context)

        assert context.last == usage()
        assert await database.get_upcoming_races() == []

    async def test_unknown_game(self, cog, context, database, catalog):
        await Races.newrace.callback(cog, context, "zelda", "any", time="06/09/2021 11:00pm")

        assert context.last == "No game found with that name. Try !listgames"
        assert await database.get_upcoming_races() == []

    async def test_unknown_category(self, cog, context, database, catalog):
        await Races.newrace.callback(cog, context, "sm", "100", time="06/09/2021 11:00pm")

        assert context.last == "No matching category found. Try !listcategories sm"
        assert await database.get_upcoming_races() == []

    async def test_refused_while_starting_up(self, cog, context, database, catalog):
        cog.lifecycle = None

        await Races.newrace.callback(cog, context, "sm", "any", time="06/09/2021 11:00pm")

        assert context.last_embed.color.value == COLOR_ERROR
        assert await database.get_upcoming_races() == []


class TestCompleteRace:
    """Operator completion turns race errors into error embeds."""

    async def test_completes_active_race(self, cog, context, database, make_race):
        race = await make_race(-10, RaceState.ACTIVE, active_message=ACTIVE_MESSAGE)

        await Races.completerace.callback(cog, context, race.id)

        assert context.last == f"Race #{race.id} has been completed."
        assert (await database.get_race(race.id)).state is RaceState.COMPLETED

    async def test_unknown_race(self, cog, context):
        await Races.completerace.callback(cog, context, 99)

        assert context.last_embed.description == "No valid race found"
        assert context.last_embed.color.value == COLOR_ERROR

    async def test_scheduled_race(self, cog, context, database, make_race):
        race = await make_race(120)

        await Races.completerace.callback(cog, context, race.id)

        assert context.last_embed.description == f"Race #{race.id} is not currently active"
        assert (await database.get_race(race.id)).state is RaceState.SCHEDULED

    async def test_two_active_races(self, cog, context, make_race):
        await make_race(-10, RaceState.ACTIVE, active_message=ACTIVE_MESSAGE)
        await make_race(-5, RaceState.ACTIVE, active_message=ACTIVE_MESSAGE + 1)

        await Races.completerace.callback(cog, context)

        assert context.last_embed.description.startswith("More than one race is active")
        assert context.last_embed.color.value == COLOR_ERROR


class TestListing:
    async def test_listcategories_needs_a_game(self, cog, context):
        await Races.listcategories.callback(cog, context)

        assert context.last == "Please specify game: !listcategories <game>"

    async def test_listcategories(self, cog, context, catalog):
        await Races.listcategories.callback(cog, context, "SM")

        assert context.last == "Available categories for Super Metroid:\n* Any% (any)"

    async def test_listgames(self, cog, context, catalog):
        await Races.listgames.callback(cog, context)

        assert context.last == "Available games:\n* Super Metroid (sm)"

    async def test_listraces_empty(self, cog, context):
        await Races.listraces.callback(cog, context)

        assert context.last == "No races scheduled."

    async def test_listraces_stays_under_embed_limit(self, cog, context, make_race):
        for minutes in range(200):
            await make_race(60 + minutes)

        await Races.listraces.callback(cog, context)

        description = context.last_embed.description
        assert len(description) <= 4096
        assert description.startswith("Upcoming races:\n* #1 Super Metroid - Any%")
        assert description.endswith("more")


class TestFitLines:
    def test_short_text_is_untouched(self):
        assert fit_lines(["a", "b"], limit=10) == "a\nb"

    def test_drops_trailing_lines(self):
        lines = ["a" * 10] * 3

        assert fit_lines(lines, limit=25) == "aaaaaaaaaa\n... and 2 more"
