"""Habit catalog: plain CRUD over the habits table.

The timer engine only ever reads id and target_minutes from here.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import aiosqlite

from .db import connect, transaction
from .errors import HabitNotFound
from .timer import goal_seconds

logger = logging.getLogger("focus_api.habits")


@dataclass
class Habit:
    id: int
    name: str
    target_minutes: int
    icon: str = "⭐"
    color: str = "#6366f1"
    created_at: Optional[str] = None

    @property
    def goal_seconds(self) -> int:
        return goal_seconds(self.target_minutes)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "icon": self.icon,
            "color": self.color,
            "target_minutes": self.target_minutes,
            "created_at": self.created_at,
        }


def _habit_from_row(row: aiosqlite.Row) -> Habit:
    return Habit(
        id=row["id"],
        name=row["name"],
        target_minutes=row["target_minutes"],
        icon=row["icon"],
        color=row["color"],
        created_at=row["created_at"],
    )


async def fetch_habit(db: aiosqlite.Connection, habit_id: int) -> Habit:
    """Load one habit on an open connection. Raises HabitNotFound."""
    cursor = await db.execute("SELECT * FROM habits WHERE id = ?", (habit_id,))
    row = await cursor.fetchone()
    if row is None:
        raise HabitNotFound(habit_id)
    return _habit_from_row(row)


async def fetch_habits(db: aiosqlite.Connection) -> list[Habit]:
    cursor = await db.execute("SELECT * FROM habits ORDER BY id ASC")
    return [_habit_from_row(row) for row in await cursor.fetchall()]


class HabitCatalog:
    """Owns habit records. Deleting a habit cascades to its progress,
    sessions and active slot."""

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)

    async def get_habit(self, habit_id: int) -> Habit:
        async with connect(self.db_path) as db:
            return await fetch_habit(db, habit_id)

    async def list_habits(self) -> list[Habit]:
        async with connect(self.db_path) as db:
            return await fetch_habits(db)

    async def create_habit(
        self,
        name: str,
        target_minutes: int = 30,
        icon: str = "⭐",
        color: str = "#6366f1",
    ) -> Habit:
        if target_minutes < 0:
            raise ValueError("target_minutes must be >= 0")
        async with connect(self.db_path) as db:
            async with transaction(db):
                cursor = await db.execute(
                    "INSERT INTO habits (name, icon, color, target_minutes) VALUES (?, ?, ?, ?)",
                    (name, icon, color, target_minutes),
                )
                habit = await fetch_habit(db, cursor.lastrowid)
        logger.info(f"Habit created: {habit.id} '{name}' ({target_minutes} min)")
        return habit

    async def delete_habit(self, habit_id: int) -> None:
        async with connect(self.db_path) as db:
            async with transaction(db):
                cursor = await db.execute("DELETE FROM habits WHERE id = ?", (habit_id,))
                if cursor.rowcount == 0:
                    raise HabitNotFound(habit_id)
        logger.info(f"Habit deleted: {habit_id}")
