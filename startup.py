import asyncio
import re
from dataclasses import dataclass
from typing import Awaitable, Callable, Dict, Optional, TypeVar

import discord

from config import Settings
from logger_config import logger
from models import Reaction

T = TypeVar("T")

_EMOJI_NAME_RE = re.compile(r"^\w+$", re.ASCII)

ROLE_COLORS = {
    "unconfirmed": 0xE67E22,
    "confirmed": 0xE74C3C,
}


@dataclass(frozen=True)
class RaceResources:
    """
    Ids the race loop needs, resolved once before it starts ticking.
    """
    guild_id: int
    scheduling_channel_id: int
    active_channel_id: int
    unconfirmed_role_id: int
    confirmed_role_id: int
    bot_user_id: int
    emojis: Dict[Reaction, str]

    def emoji(self, reaction: Reaction) -> str:
        return self.emojis[reaction]


async def retry_until(
    func: Callable[[], Awaitable[Optional[T]]],
    *,
    delay: float = 60.0,
    what: str = "resource",
) -> T:
    """
    Await *func* until it returns something other than None, sleeping *delay*
    seconds between attempts. Only meant for startup; it never gives up.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            result = await func()
        except Exception:
            logger.exception(f"Error resolving {what} (attempt {attempt})")
            result = None
        if result is not None:
            if attempt > 1:
                logger.info(f"Resolved {what} after {attempt} attempts")
            return result
        logger.warning(f"Could not resolve {what}, retrying in {delay:g}s")
        await asyncio.sleep(delay)


def _find_guild(bot, name: str) -> Optional[discord.Guild]:
    if name:
        return discord.utils.get(bot.guilds, name=name)
    # single-guild bot: whichever guild we are in
    return bot.guilds[0] if bot.guilds else None


def _find_channel_id(guild: discord.Guild, name: str) -> Optional[int]:
    channel = discord.utils.get(guild.text_channels, name=name)
    return channel.id if channel else None


def _find_emoji(guild: discord.Guild, name: str) -> Optional[str]:
    # plain words name a guild emoji which has to exist; anything else is unicode
    short = name.strip(":")
    if not _EMOJI_NAME_RE.match(short):
        return name
    emoji = discord.utils.get(guild.emojis, name=short)
    return str(emoji) if emoji else None


async def _ensure_role(guild: discord.Guild, name: str, color: int) -> Optional[int]:
    role = discord.utils.get(guild.roles, name=name)
    if role is None:
        logger.info(f"Creating role {name!r} in {guild.name}")
        role = await guild.create_role(
            name=name, colour=discord.Colour(color), mentionable=True, reason="Race participant role"
        )
    return role.id if role else None


async def resolve_resources(bot, settings: Settings, delay: Optional[float] = None) -> RaceResources:
    """
    Block until every channel, role and emoji the race loop depends on is known.
    """
    delay = settings.startup_retry_seconds if delay is None else delay

    async def guild():
        return _find_guild(bot, settings.guild)

    g = await retry_until(guild, delay=delay, what=f"guild {settings.guild or '(any)'}")

    async def scheduling():
        return _find_channel_id(g, settings.scheduling_channel)

    async def active():
        return _find_channel_id(g, settings.active_channel)

    async def unconfirmed():
        return await _ensure_role(g, settings.unconfirmed_role, ROLE_COLORS["unconfirmed"])

    async def confirmed():
        return await _ensure_role(g, settings.confirmed_role, ROLE_COLORS["confirmed"])

    async def me():
        return bot.user.id if bot.user else None

    scheduling_id = await retry_until(scheduling, delay=delay, what=f"channel #{settings.scheduling_channel}")
    active_id = await retry_until(active, delay=delay, what=f"channel #{settings.active_channel}")
    unconfirmed_id = await retry_until(unconfirmed, delay=delay, what=f"role {settings.unconfirmed_role}")
    confirmed_id = await retry_until(confirmed, delay=delay, what=f"role {settings.confirmed_role}")
    bot_user_id = await retry_until(me, delay=delay, what="bot user")

    emojis = {}
    for reaction in Reaction:
        name = settings.emoji_for(reaction)

        async def emoji(name=name):
            return _find_emoji(g, name)

        emojis[reaction] = await retry_until(emoji, delay=delay, what=f"emoji {name}")

    resources = RaceResources(
        guild_id=g.id,
        scheduling_channel_id=scheduling_id,
        active_channel_id=active_id,
        unconfirmed_role_id=unconfirmed_id,
        confirmed_role_id=confirmed_id,
        bot_user_id=bot_user_id,
        emojis=emojis,
    )
    logger.info(f"Race resources resolved: {resources}")
    return resources
