import os
from typing import List, Optional

import aiosqlite

from logger_config import logger
from models import Category, Game, Race, RaceState

SCHEMA = os.path.join(os.path.realpath(os.path.dirname(__file__)), "schema.sql")

_RACE_COLUMNS = "id, game_id, category_id, occurs, state, scheduling_message_id, active_message_id"


class DatabaseManager:
    def __init__(self, *, connection: aiosqlite.Connection) -> None:
        self.connection = connection
        self.connection.row_factory = aiosqlite.Row

    @classmethod
    async def connect(cls, path: str) -> "DatabaseManager":
        """
        Open (creating if needed) the database at *path* and apply the schema.

        :param path: File path, or ``:memory:``.
        """
        if path != ":memory:":
            os.makedirs(os.path.dirname(os.path.abspath(path)), exist_ok=True)
        connection = await aiosqlite.connect(path)
        manager = cls(connection=connection)
        await manager.init_schema()
        return manager

    async def init_schema(self) -> None:
        with open(SCHEMA, encoding="utf-8") as file:
            await self.connection.executescript(file.read())
        await self.connection.commit()

    async def close(self) -> None:
        await self.connection.close()

    # ---------- games ----------

    async def add_game(self, name: str, name_pretty: str) -> int:
        cursor = await self.connection.execute(
            "INSERT INTO game(name, name_pretty) VALUES (?, ?)", (name, name_pretty)
        )
        await self.connection.commit()
        return cursor.lastrowid

    async def get_games(self) -> List[Game]:
        rows = await self.connection.execute("SELECT id, name, name_pretty FROM game ORDER BY name")
        async with rows as cursor:
            return [Game.from_row(row) for row in await cursor.fetchall()]

    async def get_game(self, name: str) -> Optional[Game]:
        rows = await self.connection.execute(
            "SELECT id, name, name_pretty FROM game WHERE name = ?", (name,)
        )
        async with rows as cursor:
            row = await cursor.fetchone()
            return Game.from_row(row) if row else None

    async def get_game_by_id(self, game_id: int) -> Optional[Game]:
        rows = await self.connection.execute(
            "SELECT id, name, name_pretty FROM game WHERE id = ?", (game_id,)
        )
        async with rows as cursor:
            row = await cursor.fetchone()
            return Game.from_row(row) if row else None

    # ---------- categories ----------

    async def add_category(self, game_id: int, name: str, name_pretty: str) -> int:
        cursor = await self.connection.execute(
            "INSERT INTO category(game_id, name, name_pretty) VALUES (?, ?, ?)",
            (game_id, name, name_pretty),
        )
        await self.connection.commit()
        return cursor.lastrowid

    async def get_categories(self, game_id: int) -> List[Category]:
        logger.debug(f"Getting categories for game id {game_id}")
        rows = await self.connection.execute(
            "SELECT id, game_id, name, name_pretty FROM category WHERE game_id = ? ORDER BY name",
            (game_id,),
        )
        async with rows as cursor:
            return [Category.from_row(row) for row in await cursor.fetchall()]

    async def get_category(self, game_id: int, name: str) -> Optional[Category]:
        rows = await self.connection.execute(
            "SELECT id, game_id, name, name_pretty FROM category WHERE game_id = ? AND name = ?",
            (game_id, name),
        )
        async with rows as cursor:
            row = await cursor.fetchone()
            return Category.from_row(row) if row else None

    async def get_category_by_id(self, category_id: int) -> Optional[Category]:
        rows = await self.connection.execute(
            "SELECT id, game_id, name, name_pretty FROM category WHERE id = ?", (category_id,)
        )
        async with rows as cursor:
            row = await cursor.fetchone()
            return Category.from_row(row) if row else None

    # ---------- races ----------

    async def create_race(self, game_id: int, category_id: int, occurs: int) -> int:
        """
        Insert a new race in the SCHEDULED state and return its id.
        """
        cursor = await self.connection.execute(
            "INSERT INTO race(game_id, category_id, occurs, state) VALUES (?, ?, ?, ?)",
            (game_id, category_id, occurs, RaceState.SCHEDULED.value),
        )
        await self.connection.commit()
        logger.debug(f"Created race #{cursor.lastrowid}")
        return cursor.lastrowid

    async def get_race(self, race_id: int) -> Optional[Race]:
        rows = await self.connection.execute(
            f"SELECT {_RACE_COLUMNS} FROM race WHERE id = ?", (race_id,)
        )
        async with rows as cursor:
            row = await cursor.fetchone()
            return Race.from_row(row) if row else None

    async def update_race(self, race: Race) -> None:
        logger.debug(f"Updating {race!r}")
        cursor = await self.connection.execute(
            "UPDATE race SET game_id = ?, category_id = ?, occurs = ?, state = ?, "
            "scheduling_message_id = ?, active_message_id = ? WHERE id = ?",
            (
                race.game_id,
                race.category_id,
                race.occurs,
                race.state.value,
                race.scheduling_message_id,
                race.active_message_id,
                race.id,
            ),
        )
        await self.connection.commit()
        if cursor.rowcount == 0:
            raise LookupError(f"{race} does not exist")

    async def get_races_by_state(self, state: RaceState) -> List[Race]:
        rows = await self.connection.execute(
            f"SELECT {_RACE_COLUMNS} FROM race WHERE state = ? ORDER BY occurs", (state.value,)
        )
        async with rows as cursor:
            return [Race.from_row(row) for row in await cursor.fetchall()]

    async def get_races_by_state_between(self, state: RaceState, start: int, end: int) -> List[Race]:
        """
        Races in *state* occurring in [start, end), both epoch seconds.
        """
        rows = await self.connection.execute(
            f"SELECT {_RACE_COLUMNS} FROM race WHERE state = ? AND occurs >= ? AND occurs < ? ORDER BY occurs",
            (state.value, start, end),
        )
        async with rows as cursor:
            return [Race.from_row(row) for row in await cursor.fetchall()]

    async def get_upcoming_races(self) -> List[Race]:
        rows = await self.connection.execute(
            f"SELECT {_RACE_COLUMNS} FROM race WHERE state IN (?, ?) ORDER BY occurs",
            (RaceState.SCHEDULED.value, RaceState.ACTIVE.value),
        )
        async with rows as cursor:
            return [Race.from_row(row) for row in await cursor.fetchall()]
