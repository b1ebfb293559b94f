"""Progress store, session log and active timer register.

Each store wraps a connection owned by the caller, so the engine can run
several store writes inside one transaction.
"""

import logging
from datetime import date, datetime
from typing import Optional

import aiosqlite

from .errors import Conflict
from .timer import ActiveTimerSlot, DailyProgress, TimerSession, parse_timestamp

logger = logging.getLogger("focus_api.stores")

ACTIVE_SLOT_ID = 1


class ProgressStore:
    """Remaining seconds per (habit_id, calendar date)."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self, habit_id: int, day: date) -> Optional[DailyProgress]:
        cursor = await self.db.execute(
            "SELECT habit_id, date, remaining_seconds, updated_at FROM daily_progress "
            "WHERE habit_id = ? AND date = ?",
            (habit_id, day.isoformat()),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return DailyProgress(
            habit_id=row["habit_id"],
            day=date.fromisoformat(row["date"]),
            remaining_seconds=row["remaining_seconds"],
            updated_at=parse_timestamp(row["updated_at"]),
        )

    async def for_day(self, day: date) -> dict[int, int]:
        """habit_id -> remaining_seconds for every habit with a row on day."""
        cursor = await self.db.execute(
            "SELECT habit_id, remaining_seconds FROM daily_progress WHERE date = ?",
            (day.isoformat(),),
        )
        return {row["habit_id"]: row["remaining_seconds"] for row in await cursor.fetchall()}

    async def upsert(self, habit_id: int, day: date, remaining_seconds: int, now: datetime) -> DailyProgress:
        """Write remaining_seconds for (habit_id, day). Last writer wins."""
        remaining_seconds = max(0, remaining_seconds)
        await self.db.execute("""
            INSERT INTO daily_progress (habit_id, date, remaining_seconds, updated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(habit_id, date) DO UPDATE SET
                remaining_seconds = excluded.remaining_seconds,
                updated_at = excluded.updated_at
        """, (habit_id, day.isoformat(), remaining_seconds, now.isoformat()))
        return DailyProgress(habit_id=habit_id, day=day, remaining_seconds=remaining_seconds, updated_at=now)


class SessionLog:
    """Append-only history of finished timer runs."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def append(self, session: TimerSession) -> TimerSession:
        cursor = await self.db.execute("""
            INSERT INTO timer_sessions (habit_id, started_at, ended_at, duration_seconds)
            VALUES (?, ?, ?, ?)
        """, (
            session.habit_id,
            session.started_at.isoformat(),
            session.ended_at.isoformat(),
            max(0, session.duration_seconds),
        ))
        session.id = cursor.lastrowid
        return session

    async def recent(self, habit_id: Optional[int] = None, limit: int = 50) -> list[TimerSession]:
        """Most recent sessions first."""
        if habit_id is None:
            cursor = await self.db.execute(
                "SELECT * FROM timer_sessions ORDER BY id DESC LIMIT ?", (limit,)
            )
        else:
            cursor = await self.db.execute(
                "SELECT * FROM timer_sessions WHERE habit_id = ? ORDER BY id DESC LIMIT ?",
                (habit_id, limit),
            )
        return [
            TimerSession(
                id=row["id"],
                habit_id=row["habit_id"],
                started_at=parse_timestamp(row["started_at"]),
                ended_at=parse_timestamp(row["ended_at"]),
                duration_seconds=row["duration_seconds"],
            )
            for row in await cursor.fetchall()
        ]

    async def count(self, habit_id: Optional[int] = None) -> int:
        if habit_id is None:
            cursor = await self.db.execute("SELECT COUNT(*) FROM timer_sessions")
        else:
            cursor = await self.db.execute(
                "SELECT COUNT(*) FROM timer_sessions WHERE habit_id = ?", (habit_id,)
            )
        return (await cursor.fetchone())[0]


class ActiveTimerRegister:
    """The single-row active timer slot (row id is pinned to 1)."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def get(self) -> Optional[ActiveTimerSlot]:
        cursor = await self.db.execute(
            "SELECT habit_id, started_at, remaining_seconds, original_duration "
            "FROM active_timer WHERE id = ?",
            (ACTIVE_SLOT_ID,),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        return ActiveTimerSlot(
            habit_id=row["habit_id"],
            started_at=parse_timestamp(row["started_at"]),
            remaining_seconds=row["remaining_seconds"],
            original_duration=row["original_duration"],
        )

    async def put(self, slot: ActiveTimerSlot) -> None:
        """Install slot, replacing whatever was there in one statement."""
        await self.db.execute("""
            INSERT INTO active_timer (id, habit_id, started_at, remaining_seconds, original_duration)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                habit_id = excluded.habit_id,
                started_at = excluded.started_at,
                remaining_seconds = excluded.remaining_seconds,
                original_duration = excluded.original_duration
        """, (
            ACTIVE_SLOT_ID,
            slot.habit_id,
            slot.started_at.isoformat(),
            slot.remaining_seconds,
            slot.original_duration,
        ))

    async def clear(self, expected: ActiveTimerSlot) -> None:
        """Delete the slot only if it is still the run described by expected.

        started_at is compared as an instant, so rows written in another ISO
        form (naive, space separated) still match. Raises Conflict when
        another writer already replaced or removed it.
        """
        cursor = await self.db.execute(
            "SELECT habit_id, started_at FROM active_timer WHERE id = ?", (ACTIVE_SLOT_ID,)
        )
        row = await cursor.fetchone()
        if (
            row is None
            or row["habit_id"] != expected.habit_id
            or parse_timestamp(row["started_at"]) != expected.started_at
        ):
            raise Conflict(f"active timer for habit {expected.habit_id} is already gone")

        # Delete by the stored text; the row must be unchanged since the read
        cursor = await self.db.execute(
            "DELETE FROM active_timer WHERE id = ? AND habit_id = ? AND started_at = ?",
            (ACTIVE_SLOT_ID, expected.habit_id, row["started_at"]),
        )
        if cursor.rowcount == 0:
            raise Conflict(f"active timer for habit {expected.habit_id} is already gone")
