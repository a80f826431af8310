from typing import List

import discord

from logger_config import logger
from models import Reaction
from startup import RaceResources

# Discord hands out at most this many reactors per request
REACTION_PAGE_SIZE = 100


class DiscordPlatform:
    """
    The chat operations the race lifecycle needs, backed by discord.py.

    Everything takes and returns plain ids so the lifecycle never touches
    discord objects. Failures surface as ``discord.HTTPException``.
    """

    def __init__(self, bot, resources: RaceResources) -> None:
        self.bot = bot
        self.resources = resources

    async def _channel(self, channel_id: int):
        return self.bot.get_channel(channel_id) or await self.bot.fetch_channel(channel_id)

    async def _member(self, user_id: int) -> discord.Member:
        guild = self.bot.get_guild(self.resources.guild_id) or await self.bot.fetch_guild(self.resources.guild_id)
        return guild.get_member(user_id) or await guild.fetch_member(user_id)

    async def list_reactions(self, channel_id: int, message_id: int, reaction: Reaction) -> List[int]:
        channel = await self._channel(channel_id)
        message = await channel.fetch_message(message_id)
        emoji = self.resources.emoji(reaction)
        found = discord.utils.find(lambda r: str(r.emoji) == emoji, message.reactions)
        if found is None:
            return []
        return [user.id async for user in found.users(limit=REACTION_PAGE_SIZE)]

    async def create_message(self, channel_id: int, text: str) -> int:
        channel = await self._channel(channel_id)
        sent = await channel.send(text, allowed_mentions=discord.AllowedMentions(roles=True))
        return sent.id

    async def add_reaction(self, channel_id: int, message_id: int, reaction: Reaction) -> None:
        channel = await self._channel(channel_id)
        await channel.get_partial_message(message_id).add_reaction(self.resources.emoji(reaction))

    async def grant_role(self, user_id: int, role_id: int) -> None:
        member = await self._member(user_id)
        if any(role.id == role_id for role in member.roles):
            return
        logger.debug(f"Granting role {role_id} to {member}")
        await member.add_roles(discord.Object(id=role_id), reason="Race participation")

    async def revoke_role(self, user_id: int, role_id: int) -> None:
        member = await self._member(user_id)
        if not any(role.id == role_id for role in member.roles):
            return
        logger.debug(f"Revoking role {role_id} from {member}")
        await member.remove_roles(discord.Object(id=role_id), reason="Race participation")
