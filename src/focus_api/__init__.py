"""Focus timer: a single authoritative countdown shared across habits."""

from .engine import FocusTimerEngine
from .errors import Conflict, FocusTimerError, HabitNotFound, StoreUnavailable
from .habits import Habit, HabitCatalog
from .timer import (
    ActiveTimerSlot,
    DailyProgress,
    StopResult,
    TimerSession,
    TimerState,
    format_timer_time,
)

__all__ = [
    "ActiveTimerSlot",
    "Conflict",
    "DailyProgress",
    "FocusTimerEngine",
    "FocusTimerError",
    "Habit",
    "HabitCatalog",
    "HabitNotFound",
    "StopResult",
    "StoreUnavailable",
    "TimerSession",
    "TimerState",
    "format_timer_time",
]
