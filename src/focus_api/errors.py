"""Error taxonomy shared by the engine, the HTTP layer and the client."""


class FocusTimerError(Exception):
    """Base class for focus timer failures."""


class HabitNotFound(FocusTimerError):
    """Unknown habit id. Surfaced to the caller; nothing was written."""

    def __init__(self, habit_id):
        self.habit_id = habit_id
        super().__init__(f"Habit {habit_id} not found")


class Conflict(FocusTimerError):
    """The active slot changed underneath the caller.

    Callers treat this as success: the state they wanted already holds.
    """


class StoreUnavailable(FocusTimerError):
    """The database could not be reached. The operation was not applied."""
