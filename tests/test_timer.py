"""Unit tests for timer arithmetic, no I/O dependencies."""

from datetime import datetime, timedelta, timezone

from focus_api.timer import (
    ActiveTimerSlot,
    DailyProgress,
    StopResult,
    TimerState,
    elapsed_seconds,
    format_timer_time,
    goal_seconds,
    parse_timestamp,
    remaining_after,
)

T0 = datetime(2026, 2, 11, 9, 0, 0, tzinfo=timezone.utc)


def at(seconds: float) -> datetime:
    return T0 + timedelta(seconds=seconds)


def make_slot(remaining: int = 1800) -> ActiveTimerSlot:
    return ActiveTimerSlot(habit_id=1, started_at=T0, remaining_seconds=remaining, original_duration=remaining)


# ---- format_timer_time ----

class TestFormatTimerTime:
    def test_zero(self):
        assert format_timer_time(0) == "0:00"

    def test_minutes(self):
        assert format_timer_time(1790) == "29:50"

    def test_hours(self):
        assert format_timer_time(3 * 3600 + 5 * 60 + 7) == "3:05:07"

    def test_negative_clamps(self):
        assert format_timer_time(-45) == "0:00"


# ---- elapsed / remaining ----

class TestElapsed:
    def test_whole_seconds(self):
        assert elapsed_seconds(T0, at(30)) == 30

    def test_floors_fractions(self):
        assert elapsed_seconds(T0, at(29.999)) == 29

    def test_never_negative(self):
        assert elapsed_seconds(T0, at(-5)) == 0

    def test_across_timezones(self):
        other = at(60).astimezone(timezone(timedelta(hours=-7)))
        assert elapsed_seconds(T0, other) == 60

    def test_is_int(self):
        assert isinstance(elapsed_seconds(T0, at(12.5)), int)


class TestRemaining:
    def test_subtracts(self):
        assert remaining_after(1800, 30) == 1770

    def test_clamps_at_zero(self):
        assert remaining_after(60, 90) == 0

    def test_goal_seconds(self):
        assert goal_seconds(30) == 1800
        assert goal_seconds(0) == 0


# ---- ActiveTimerSlot ----

class TestActiveTimerSlot:
    def test_current_remaining(self):
        assert make_slot().current_remaining(at(10)) == 1790

    def test_state_running_then_completed(self):
        slot = make_slot(60)
        assert slot.state(at(59)) == TimerState.RUNNING
        assert slot.state(at(60)) == TimerState.COMPLETED
        assert slot.state(at(600)) == TimerState.COMPLETED

    def test_close_builds_session_and_remaining(self):
        session, remaining = make_slot().close(at(30.7))
        assert session.habit_id == 1
        assert session.started_at == T0
        assert session.ended_at == at(30.7)
        assert session.duration_seconds == 30
        assert remaining == 1770

    def test_close_duration_is_not_capped_by_remaining(self):
        session, remaining = make_slot(60).close(at(90))
        assert session.duration_seconds == 90
        assert remaining == 0

    def test_end_timestamp(self):
        slot = make_slot(100)
        assert slot.end_timestamp == int(T0.timestamp() * 1000) + 100_000

    def test_status_fields(self):
        status = make_slot().status(at(10))
        assert status["current_remaining"] == 1790
        assert status["elapsed"] == 10
        assert status["state"] == "running"
        assert status["is_running"] is True
        assert status["started_at"] == T0.isoformat()


# ---- serialization ----

class TestSerialization:
    def test_parse_roundtrip_keeps_offset(self):
        assert parse_timestamp(T0.isoformat()) == T0

    def test_parse_naive_as_utc(self):
        assert parse_timestamp("2026-02-11T09:00:00") == T0

    def test_daily_progress_dict(self):
        progress = DailyProgress(habit_id=3, day=T0.date(), remaining_seconds=42, updated_at=T0)
        assert progress.to_dict() == {
            "habit_id": 3,
            "date": "2026-02-11",
            "remaining_seconds": 42,
            "updated_at": T0.isoformat(),
        }

    def test_stop_result_without_session(self):
        assert StopResult(stopped=False).to_dict() == {"stopped": False, "session": None}
