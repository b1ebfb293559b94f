"""Focus timer engine: the authoritative single-active-timer state machine.

Every mutating operation runs inside one BEGIN IMMEDIATE transaction:
read the active slot, turn the wall-clock span since started_at into whole
elapsed seconds, then write the session log, the day's progress row and the
active slot together. A failure anywhere rolls the whole transition back.

"Today" is evaluated at call time from the injected clock, so midnight
rollover needs no scheduled job: a new date simply has no progress row yet
and the habit's full goal applies.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional, Union

from . import config
from .db import connect, transaction
from .errors import Conflict, HabitNotFound
from .habits import Habit, fetch_habit, fetch_habits
from .stores import ActiveTimerRegister, ProgressStore, SessionLog
from .timer import ActiveTimerSlot, DailyProgress, StopResult, TimerSession

logger = logging.getLogger("focus_api.engine")

Clock = Callable[[], datetime]


class FocusTimerEngine:
    """Start/stop/reset/status over the SQLite stores.

    The clock is injected so elapsed-time accounting is deterministic under
    test; it must return timezone-aware datetimes.
    """

    def __init__(self, db_path: Union[str, Path], clock: Optional[Clock] = None):
        self.db_path = Path(db_path)
        self._clock = clock or config.now

    def now(self) -> datetime:
        return self._clock()

    # ---- Transitions ----

    async def start(self, habit_id: int) -> ActiveTimerSlot:
        """Make habit_id the running timer.

        A different running habit is stopped first (its elapsed time is
        logged and saved). Starting the habit that is already running
        re-anchors started_at after saving the time it has run so far.
        """
        async with connect(self.db_path) as db:
            async with transaction(db):
                habit = await fetch_habit(db, habit_id)
                now = self.now()
                register = ActiveTimerRegister(db)

                current = await register.get()
                original_duration = None
                if current is not None:
                    session, _ = await self._close(db, current, now)
                    logger.info(
                        f"Timer: flushed habit {current.habit_id} "
                        f"({session.duration_seconds}s) before starting {habit_id}"
                    )
                    if current.habit_id == habit_id:
                        original_duration = current.original_duration

                remaining = await self._daily_remaining(db, habit, now)
                slot = ActiveTimerSlot(
                    habit_id=habit_id,
                    started_at=now,
                    remaining_seconds=remaining,
                    original_duration=remaining if original_duration is None else original_duration,
                )
                await register.put(slot)

        logger.info(f"Timer: started habit {habit_id} with {slot.remaining_seconds}s remaining")
        return slot

    async def stop(self, habit_id: Optional[int] = None) -> StopResult:
        """Stop whatever is running. Nothing running is a successful no-op.

        When habit_id is given and a different habit (or nothing) is active,
        the caller's view is stale; that is also a no-op.
        """
        async with connect(self.db_path) as db:
            try:
                async with transaction(db):
                    register = ActiveTimerRegister(db)
                    slot = await register.get()
                    if slot is None:
                        return StopResult(stopped=False)
                    if habit_id is not None and slot.habit_id != habit_id:
                        raise Conflict(f"habit {habit_id} is not the active timer")

                    session, remaining = await self._close(db, slot, self.now())
                    await register.clear(slot)
            except Conflict as e:
                logger.info(f"Timer: stop skipped, {e}")
                return StopResult(stopped=False)

        logger.info(
            f"Timer: stopped habit {session.habit_id} after {session.duration_seconds}s, "
            f"{remaining}s left today"
        )
        return StopResult(stopped=True, session=session)

    async def reset(self, habit_id: int) -> DailyProgress:
        """Restore today's full goal for habit_id.

        If the habit is running its slot is dropped and the elapsed time is
        discarded. No session is logged.
        """
        async with connect(self.db_path) as db:
            async with transaction(db):
                habit = await fetch_habit(db, habit_id)
                now = self.now()
                register = ActiveTimerRegister(db)
                slot = await register.get()
                if slot is not None and slot.habit_id == habit_id:
                    await register.clear(slot)
                    logger.info(f"Timer: reset dropped running slot for habit {habit_id}")
                progress = await ProgressStore(db).upsert(habit_id, now.date(), habit.goal_seconds, now)

        logger.info(f"Timer: reset habit {habit_id} to {progress.remaining_seconds}s")
        return progress

    # ---- Reads (never write) ----

    async def get_status(self) -> Optional[dict]:
        """The active slot with live remaining time, or None."""
        async with connect(self.db_path) as db:
            slot = await ActiveTimerRegister(db).get()
            if slot is None:
                return None
            status = slot.status(self.now())
            try:
                habit = await fetch_habit(db, slot.habit_id)
            except HabitNotFound:
                return status
        status.update(habit_name=habit.name, habit_icon=habit.icon, habit_color=habit.color)
        return status

    async def daily_remaining(self, habit_id: int) -> int:
        """Today's stored remaining seconds, or the full goal if none yet."""
        async with connect(self.db_path) as db:
            habit = await fetch_habit(db, habit_id)
            return await self._daily_remaining(db, habit, self.now())

    async def habit_overview(self) -> list[dict]:
        """Every habit with today's remaining time and whether it is running."""
        async with connect(self.db_path) as db:
            now = self.now()
            habits = await fetch_habits(db)
            progress = await ProgressStore(db).for_day(now.date())
            slot = await ActiveTimerRegister(db).get()

        overview = []
        for habit in habits:
            remaining = progress.get(habit.id, habit.goal_seconds)
            is_active = slot is not None and slot.habit_id == habit.id
            overview.append({
                **habit.to_dict(),
                "remaining_seconds": remaining,
                "is_active": is_active,
                "current_remaining": slot.current_remaining(now) if is_active else remaining,
            })
        return overview

    async def recent_sessions(self, habit_id: Optional[int] = None, limit: int = 50) -> list[TimerSession]:
        async with connect(self.db_path) as db:
            if habit_id is not None:
                await fetch_habit(db, habit_id)
            return await SessionLog(db).recent(habit_id=habit_id, limit=limit)

    # ---- Internal ----

    async def _daily_remaining(self, db, habit: Habit, now: datetime) -> int:
        progress = await ProgressStore(db).get(habit.id, now.date())
        if progress is None:
            return habit.goal_seconds
        return progress.remaining_seconds

    async def _close(self, db, slot: ActiveTimerSlot, now: datetime) -> tuple[TimerSession, int]:
        """Log the run and save today's remaining time. Leaves the slot row alone."""
        session, remaining = slot.close(now)
        await SessionLog(db).append(session)
        await ProgressStore(db).upsert(slot.habit_id, now.date(), remaining, now)
        return session, remaining
