import discord
from discord.ext import commands, tasks
from discord.ext.commands import Context

from discord_platform import DiscordPlatform
from lifecycle import RaceError, RaceLifecycle
from logger_config import logger
from models import Reaction
from startup import resolve_resources
from timeparse import ParseFailure, format_time, parse_time

COLOR_OK = 0xBEBEFE
COLOR_ERROR = 0xE02B2B

# Discord rejects embed descriptions longer than this
EMBED_DESCRIPTION_LIMIT = 4096

NEWRACE_USAGE = (
    "Please use the following format: `{prefix}newrace <game alias> <category alias> <time>`. "
    "For example: `{prefix}newrace alttp ms 6/9/2021 11:00pm`. *Convert to {zone} time first*"
)


def error_embed(description: str) -> discord.Embed:
    return discord.Embed(title="Error!", description=description, color=COLOR_ERROR)


def fit_lines(lines, limit: int = EMBED_DESCRIPTION_LIMIT) -> str:
    """
    Join *lines* with newlines, dropping trailing lines (and saying how many)
    so the result fits in an embed description.
    """
    text = "\n".join(lines)
    if len(text) <= limit:
        return text
    kept = list(lines)
    while kept:
        kept.pop()
        more = f"... and {len(lines) - len(kept)} more"
        text = "\n".join(kept + [more])
        if len(text) <= limit:
            return text
    return more[:limit]


class Races(commands.Cog, name="races"):
    def __init__(self, bot) -> None:
        self.bot = bot
        self.settings = bot.settings
        self.resources = None
        self.lifecycle = None
        self.race_loop.change_interval(seconds=self.settings.lifecycle.poll_interval_seconds)
        self.race_loop.start()
        logger.info("Races cog loaded")

    def cog_unload(self) -> None:
        self.race_loop.cancel()

    @property
    def prefix(self) -> str:
        return self.bot.config["prefix"]

    # ---------- scheduler ----------

    @tasks.loop(seconds=60.0)
    async def race_loop(self) -> None:
        """
        Activate upcoming races, reconcile active ones and send reminders.
        """
        await self.lifecycle.tick()

    @race_loop.before_loop
    async def before_race_loop(self) -> None:
        """
        Hold the loop until the bot is connected and the race channels, roles
        and emojis are all resolved.
        """
        await self.bot.wait_until_ready()
        self.resources = await resolve_resources(self.bot, self.settings)
        self.lifecycle = RaceLifecycle(
            self.bot.database,
            DiscordPlatform(self.bot, self.resources),
            self.resources,
            self.settings.lifecycle,
        )
        logger.info(f"Race loop starting, every {self.settings.lifecycle.poll_interval_seconds}s")

    @race_loop.error
    async def race_loop_error(self, error: Exception) -> None:
        logger.exception("Race loop stopped", exc_info=error)

    async def _require_ready(self, context: Context) -> bool:
        if self.lifecycle is None:
            await context.send(embed=error_embed("Still starting up, try again in a minute."))
            return False
        return True

    # ---------- commands ----------

    @commands.hybrid_command(name="bot", description="Check the bot is alive.")
    async def alive(self, context: Context) -> None:
        await context.send("Help, I'm alive!")

    @commands.hybrid_command(name="listgames", description="List the games races can be scheduled for.")
    async def listgames(self, context: Context) -> None:
        games = await self.bot.database.get_games()
        lines = ["Available games:"]
        lines.extend(f"* {g.name_pretty} ({g.name})" for g in games)
        await context.send("\n".join(lines))

    @commands.hybrid_command(name="listcategories", description="List the categories of a game.")
    async def listcategories(self, context: Context, game: str = None) -> None:
        """
        List the categories of a game.

        :param context: The hybrid command context.
        :param game: The game alias, as shown by listgames.
        """
        if not game:
            await context.send(f"Please specify game: {self.prefix}listcategories <game>")
            return
        found = await self.bot.database.get_game(game.lower())
        if found is None:
            await context.send("No game found with that name")
            return
        categories = await self.bot.database.get_categories(found.id)
        lines = [f"Available categories for {found.name_pretty}:"]
        lines.extend(f"* {c.name_pretty} ({c.name})" for c in categories)
        await context.send("\n".join(lines))

    @commands.hybrid_command(name="addgame", description="Add a game to the catalog.")
    @commands.is_owner()
    async def addgame(self, context: Context, alias: str, *, name: str) -> None:
        game_id = await self.bot.database.add_game(alias.lower(), name)
        logger.info(f"Added game {alias} (#{game_id})")
        await context.send(f"Added game {name} ({alias.lower()})")

    @commands.hybrid_command(name="addcategory", description="Add a category to a game.")
    @commands.is_owner()
    async def addcategory(self, context: Context, game: str, alias: str, *, name: str) -> None:
        found = await self.bot.database.get_game(game.lower())
        if found is None:
            await context.send(f"No game found with that name. Try {self.prefix}listgames")
            return
        category_id = await self.bot.database.add_category(found.id, alias.lower(), name)
        logger.info(f"Added category {alias} (#{category_id}) to {found.name}")
        await context.send(f"Added category {name} ({alias.lower()}) to {found.name_pretty}")

    @commands.hybrid_command(name="newrace", description="Schedule a new race.")
    async def newrace(self, context: Context, game: str = None, category: str = None, *, time: str = None) -> None:
        """
        Schedule a race and post it in the scheduling channel for people to react to.

        :param context: The hybrid command context.
        :param game: The game alias.
        :param category: The category alias.
        :param time: Start time as MM/DD/YYYY hh:mmam|pm in the community timezone.
        """
        usage = NEWRACE_USAGE.format(prefix=self.prefix, zone=self.settings.timezone)
        if not (game and category and time):
            await context.send(usage)
            return
        if not await self._require_ready(context):
            return
        try:
            occurs = parse_time(time, self.settings.tz)
        except ParseFailure:
            await context.send(usage)
            return

        database = self.bot.database
        found_game = await database.get_game(game.lower())
        if found_game is None:
            await context.send(f"No game found with that name. Try {self.prefix}listgames")
            return
        found_category = await database.get_category(found_game.id, category.lower())
        if found_category is None:
            await context.send(f"No matching category found. Try {self.prefix}listcategories {found_game.name}")
            return

        race_id = await database.create_race(found_game.id, found_category.id, int(occurs.timestamp()))
        race = await database.get_race(race_id)
        when = format_time(occurs, self.settings.tz)
        logger.info(f"{context.author} scheduled {race} for {when}")

        channel = self.resources.scheduling_channel_id
        platform = self.lifecycle.platform
        try:
            message_id = await platform.create_message(
                channel,
                f"**Race #{race.id}**: {found_game.name_pretty} - {found_category.name_pretty} "
                f"on {when} (<t:{race.occurs}:f>)\n"
                f"React with {self.resources.emoji(Reaction.INTERESTED)} if you want to race, "
                f"{self.resources.emoji(Reaction.COMMENTATING)} to commentate or "
                f"{self.resources.emoji(Reaction.RESTREAMING)} to restream.",
            )
        except discord.HTTPException:
            logger.exception(f"Could not post the scheduling message for {race}")
            await context.send(embed=error_embed(f"{race} was created but could not be announced."))
            return
        race.set_scheduling_message(message_id)
        await database.update_race(race)

        for reaction in (Reaction.INTERESTED, Reaction.COMMENTATING, Reaction.RESTREAMING):
            try:
                await platform.add_reaction(channel, message_id, reaction)
            except discord.HTTPException:
                logger.warning(f"Could not add {reaction.name.lower()} to the scheduling message of {race}")

        await context.send(
            f"A new race has been created: {found_game.name_pretty} - {found_category.name_pretty} at {when}"
        )

    @commands.hybrid_command(name="listraces", description="List upcoming races.")
    async def listraces(self, context: Context) -> None:
        races = await self.bot.database.get_upcoming_races()
        if not races:
            await context.send("No races scheduled.")
            return
        lines = ["Upcoming races:"]
        for race in races:
            game = await self.bot.database.get_game_by_id(race.game_id)
            category = await self.bot.database.get_category_by_id(race.category_id)
            name = f"{game.name_pretty} - {category.name_pretty}" if game and category else "unknown"
            lines.append(
                f"* #{race.id} {name} on {format_time(race.occurs_at(), self.settings.tz)} "
                f"({race.state.value.lower()})"
            )
        embed = discord.Embed(title="Races", description=fit_lines(lines), color=COLOR_OK)
        await context.send(embed=embed)

    @commands.hybrid_command(name="completerace", description="Mark a race as finished.")
    async def completerace(self, context: Context, race_id: int = None) -> None:
        """
        Complete a race and take the racer roles back.

        :param context: The hybrid command context.
        :param race_id: The race to complete; defaults to the only active race.
        """
        if not await self._require_ready(context):
            return
        try:
            race = await self.lifecycle.complete_race(race_id)
        except RaceError as e:
            await context.send(embed=error_embed(str(e)))
            return
        await context.send(f"{race} has been completed.")


async def setup(bot) -> None:
    await bot.add_cog(Races(bot))
