"""
Race lifecycle: moves races from SCHEDULED to ACTIVE to COMPLETED, keeps the
participant roles in line with the reactions on the race messages, and nags
unconfirmed participants as the start approaches.

The engine only talks to two collaborators:

* ``database`` - a :class:`database.DatabaseManager` (or anything with the same
  race/game/category methods)
* ``platform`` - the chat side, see :class:`discord_platform.DiscordPlatform`

``tick()`` is called by the races cog on a fixed interval.
"""
import asyncio
from datetime import datetime
from typing import Callable, Dict, FrozenSet, List, Optional, Set

import pytz

from config import LifecycleConfig
from logger_config import logger
from models import Race, RaceState, Reaction
from nag import NagCache
from startup import RaceResources


class RaceError(Exception):
    """A race request that cannot be carried out; the message is shown to the user."""


class RaceNotFound(RaceError):
    pass


class RaceNotActive(RaceError):
    pass


class AmbiguousRace(RaceError):
    pass


def utcnow() -> datetime:
    return datetime.now(pytz.utc)


class RaceLifecycle:
    def __init__(
        self,
        database,
        platform,
        resources: RaceResources,
        config: LifecycleConfig = LifecycleConfig(),
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.database = database
        self.platform = platform
        self.resources = resources
        self.config = config
        self.clock = clock
        # race id -> user ids seen reacting; only used to strip roles on completion
        self._participants: Dict[int, Set[int]] = {}
        # race id -> confirmation message posted but not yet saved with the race
        self._posted: Dict[int, int] = {}
        self.nags = NagCache(config.nag_cache_capacity)
        self._lock = asyncio.Lock()

    async def participants(self, race_id: int) -> FrozenSet[int]:
        async with self._lock:
            return frozenset(self._participants.get(race_id, ()))

    # ---------- tick ----------

    async def tick(self) -> None:
        """
        Run one upcoming pass and one active pass. Problems with a single race
        are logged and that race is retried on the next tick.
        """
        async with self._lock:
            now = int(self.clock().timestamp())
            await self._upcoming_pass(now)
            await self._active_pass(now)

    async def _upcoming_pass(self, now: int) -> None:
        try:
            races = await self.database.get_races_by_state_between(
                RaceState.SCHEDULED, now, now + self.config.look_ahead_seconds
            )
        except Exception:
            logger.exception("Could not load upcoming races")
            return
        for race in races:
            try:
                await self._activate(race)
            except Exception:
                logger.exception(f"Error activating {race}")

    async def _active_pass(self, now: int) -> None:
        try:
            races = await self.database.get_races_by_state(RaceState.ACTIVE)
        except Exception:
            logger.exception("Could not load active races")
            return
        for race in races:
            try:
                await self._check_active(race, now)
            except Exception:
                logger.exception(f"Error checking active {race}")

    # ---------- SCHEDULED -> ACTIVE ----------

    async def _activate(self, race: Race) -> bool:
        current = await self.database.get_race(race.id)
        if current is None or current.state != RaceState.SCHEDULED:
            logger.info(f"{race} is no longer scheduled, not activating it")
            self._posted.pop(race.id, None)
            return False
        race = current

        interested: List[int] = []
        if race.scheduling_message is None:
            logger.warning(f"{race} has no scheduling message, activating without interested racers")
        else:
            try:
                interested = await self.platform.list_reactions(
                    self.resources.scheduling_channel_id, race.scheduling_message, Reaction.INTERESTED
                )
            except Exception:
                logger.exception(f"Could not read interest in {race}, will retry")
                return False

        tracked = self._participants.setdefault(race.id, set())
        for user_id in interested:
            if user_id == self.resources.bot_user_id or user_id in tracked:
                continue
            try:
                await self.platform.grant_role(user_id, self.resources.unconfirmed_role_id)
            except Exception:
                logger.exception(f"Could not give the unconfirmed role to {user_id} for {race}")
                continue
            tracked.add(user_id)

        message_id = self._posted.get(race.id)
        if message_id is None:
            text = await self._confirmation_text(race)
            try:
                message_id = await self.platform.create_message(self.resources.active_channel_id, text)
            except Exception:
                logger.exception(f"Could not post the confirmation message for {race}, will retry")
                return False
            self._posted[race.id] = message_id

            try:
                await self.platform.add_reaction(self.resources.active_channel_id, message_id, Reaction.CONFIRMING)
            except Exception:
                # the message is already out; reposting it on retry would be worse
                logger.exception(f"Could not react to the confirmation message for {race}")
        else:
            logger.info(f"Reusing confirmation message {message_id} for {race}")

        race.set_active_message(message_id)
        race.advance(RaceState.ACTIVE)
        await self.database.update_race(race)
        del self._posted[race.id]
        logger.info(f"{race} is now active ({len(tracked)} interested)")
        return True

    # ---------- ACTIVE ----------

    async def _check_active(self, race: Race, now: int) -> None:
        if now - race.occurs > self.config.grace_minutes * 60:
            logger.info(f"{race} started more than {self.config.grace_minutes} minutes ago, completing it")
            await self._complete(race)
            return

        if race.active_message is None:
            logger.warning(f"{race} is active but has no active message, skipping it")
            return

        try:
            confirmed = await self.platform.list_reactions(
                self.resources.active_channel_id, race.active_message, Reaction.CONFIRMING
            )
        except Exception:
            logger.exception(f"Could not read confirmations for {race}, will retry")
            return

        tracked = self._participants.setdefault(race.id, set())
        for user_id in confirmed:
            if user_id == self.resources.bot_user_id:
                continue
            try:
                await self.platform.revoke_role(user_id, self.resources.unconfirmed_role_id)
                await self.platform.grant_role(user_id, self.resources.confirmed_role_id)
            except Exception:
                logger.exception(f"Could not confirm {user_id} for {race}")
                continue
            tracked.add(user_id)

        minutes_until_start = (race.occurs - now) / 60
        threshold = self.nags.due(race.id, minutes_until_start, self.config.nag_thresholds)
        if threshold is not None:
            await self._nag(race, threshold)

    async def _nag(self, race: Race, threshold: int) -> None:
        text = (
            f"<@&{self.resources.unconfirmed_role_id}> {await self.describe(race)} starts in "
            f"less than {threshold} minutes (<t:{race.occurs}:R>)! "
            f"React with {self.resources.emoji(Reaction.CONFIRMING)} on the race post to confirm."
        )
        try:
            await self.platform.create_message(self.resources.active_channel_id, text)
        except Exception:
            logger.exception(f"Could not send the {threshold} minute reminder for {race}")
            return
        logger.info(f"Sent the {threshold} minute reminder for {race}")

    # ---------- ACTIVE -> COMPLETED ----------

    async def _complete(self, race: Race) -> None:
        users = set(self._participants.get(race.id, ()))
        users |= await self._current_reactors(race)
        users.discard(self.resources.bot_user_id)

        for user_id in users:
            for role_id in (self.resources.unconfirmed_role_id, self.resources.confirmed_role_id):
                try:
                    await self.platform.revoke_role(user_id, role_id)
                except Exception:
                    logger.warning(f"Could not remove role {role_id} from {user_id} after {race}")

        race.advance(RaceState.COMPLETED)
        await self.database.update_race(race)
        self._participants.pop(race.id, None)
        self._posted.pop(race.id, None)
        self.nags.discard(race.id)
        logger.info(f"{race} completed")

    async def _current_reactors(self, race: Race) -> Set[int]:
        # picks up racers we lost track of across a restart; best effort only
        found: Set[int] = set()
        lookups = (
            (self.resources.scheduling_channel_id, race.scheduling_message, Reaction.INTERESTED),
            (self.resources.active_channel_id, race.active_message, Reaction.CONFIRMING),
        )
        for channel_id, message_id, reaction in lookups:
            if message_id is None:
                continue
            try:
                found.update(await self.platform.list_reactions(channel_id, message_id, reaction))
            except Exception:
                logger.warning(f"Could not read {reaction.name.lower()} reactions while completing {race}")
        return found

    async def complete_race(self, race_id: Optional[int] = None) -> Race:
        """
        Complete a race on request.

        Without *race_id* the single active race is completed; if more than one
        race is active nothing happens and :class:`AmbiguousRace` is raised.
        """
        async with self._lock:
            if race_id is None:
                active = await self.database.get_races_by_state(RaceState.ACTIVE)
                if not active:
                    raise RaceNotFound("No valid race found")
                if len(active) > 1:
                    ids = ", ".join(f"#{r.id}" for r in active)
                    raise AmbiguousRace(f"More than one race is active ({ids}), please give a race id")
                race = active[0]
            else:
                race = await self.database.get_race(race_id)
                if race is None:
                    raise RaceNotFound("No valid race found")
                if race.state != RaceState.ACTIVE:
                    raise RaceNotActive(f"{race} is not currently active")
            await self._complete(race)
            return race

    # ---------- text ----------

    async def describe(self, race: Race) -> str:
        game = await self.database.get_game_by_id(race.game_id)
        category = await self.database.get_category_by_id(race.category_id)
        if game is None or category is None:
            return str(race)
        return f"{game.name_pretty} - {category.name_pretty}"

    async def _confirmation_text(self, race: Race) -> str:
        return (
            f"<@&{self.resources.unconfirmed_role_id}> {await self.describe(race)} (race #{race.id}) "
            f"starts <t:{race.occurs}:R> at <t:{race.occurs}:t>! "
            f"React with {self.resources.emoji(Reaction.CONFIRMING)} to confirm you are racing."
        )
