"""Timer arithmetic: pure logic, no I/O.

All persisted durations are integer seconds. Wall-clock instants are
timezone-aware datetimes passed in by the caller, so everything here is
deterministically testable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Optional

SECONDS_PER_MINUTE = 60
ONE_SECOND = timedelta(seconds=1)


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"  # display only; stored as idle with 0 remaining


def goal_seconds(target_minutes: int) -> int:
    """Default remaining time for a day that has no progress row yet."""
    return target_minutes * SECONDS_PER_MINUTE


def elapsed_seconds(started_at: datetime, now: datetime) -> int:
    """Whole seconds from started_at to now, floored and never negative."""
    return max(0, (now - started_at) // ONE_SECOND)


def remaining_after(remaining_seconds: int, elapsed: int) -> int:
    return max(0, remaining_seconds - elapsed)


def to_epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


def parse_timestamp(value: str) -> datetime:
    """Parse a stored ISO timestamp. Naive values are taken as UTC."""
    moment = datetime.fromisoformat(value)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def format_timer_time(seconds: int) -> str:
    """Format seconds as 'H:MM:SS', or 'M:SS' under an hour."""
    seconds = max(0, seconds)
    hours = seconds // 3600
    minutes = (seconds % 3600) // 60
    secs = seconds % 60
    if hours > 0:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


@dataclass
class DailyProgress:
    habit_id: int
    day: date
    remaining_seconds: int
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "habit_id": self.habit_id,
            "date": self.day.isoformat(),
            "remaining_seconds": self.remaining_seconds,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass
class TimerSession:
    habit_id: int
    started_at: datetime
    ended_at: datetime
    duration_seconds: int
    id: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "habit_id": self.habit_id,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_seconds": self.duration_seconds,
        }


@dataclass
class ActiveTimerSlot:
    """The one running timer.

    remaining_seconds is a snapshot taken at started_at; the live value is
    always derived from the wall clock, never decremented in place.
    """

    habit_id: int
    started_at: datetime
    remaining_seconds: int
    original_duration: int

    @property
    def end_timestamp(self) -> int:
        """Epoch milliseconds at which the countdown reaches zero."""
        return to_epoch_ms(self.started_at) + self.remaining_seconds * 1000

    def elapsed(self, now: datetime) -> int:
        return elapsed_seconds(self.started_at, now)

    def current_remaining(self, now: datetime) -> int:
        return remaining_after(self.remaining_seconds, self.elapsed(now))

    def state(self, now: datetime) -> TimerState:
        if self.current_remaining(now) == 0:
            return TimerState.COMPLETED
        return TimerState.RUNNING

    def close(self, now: datetime) -> tuple[TimerSession, int]:
        """Finish this run at now.

        Returns the session to log and the remaining seconds to persist.
        """
        elapsed = self.elapsed(now)
        session = TimerSession(
            habit_id=self.habit_id,
            started_at=self.started_at,
            ended_at=now,
            duration_seconds=elapsed,
        )
        return session, remaining_after(self.remaining_seconds, elapsed)

    def to_dict(self) -> dict:
        return {
            "habit_id": self.habit_id,
            "started_at": self.started_at.isoformat(),
            "remaining_seconds": self.remaining_seconds,
            "original_duration": self.original_duration,
        }

    def status(self, now: datetime) -> dict:
        """Slot enriched with values derived at now."""
        elapsed = self.elapsed(now)
        current = remaining_after(self.remaining_seconds, elapsed)
        return {
            **self.to_dict(),
            "elapsed": elapsed,
            "current_remaining": current,
            "end_timestamp": self.end_timestamp,
            "state": self.state(now).value,
            "is_running": True,
        }


@dataclass
class StopResult:
    stopped: bool
    session: Optional[TimerSession] = None

    def to_dict(self) -> dict:
        return {
            "stopped": self.stopped,
            "session": self.session.to_dict() if self.session else None,
        }
