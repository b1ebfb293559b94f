"""Tests for the progress store, session log, active register and habit catalog."""

from datetime import datetime, timedelta, timezone

import pytest

from focus_api.db import connect, transaction
from focus_api.errors import Conflict, HabitNotFound
from focus_api.habits import HabitCatalog
from focus_api.stores import ActiveTimerRegister, ProgressStore, SessionLog
from focus_api.timer import ActiveTimerSlot, TimerSession

pytestmark = pytest.mark.asyncio

T0 = datetime(2026, 2, 11, 9, 0, 0, tzinfo=timezone.utc)
DAY = T0.date()


class TestProgressStore:
    async def test_missing_row_is_none(self, db_path, make_habit):
        h1 = make_habit()
        async with connect(db_path) as db:
            assert await ProgressStore(db).get(h1, DAY) is None

    async def test_upsert_is_last_write_wins(self, db_path, make_habit, rows):
        h1 = make_habit()
        async with connect(db_path) as db:
            store = ProgressStore(db)
            await store.upsert(h1, DAY, 1500, T0)
            await store.upsert(h1, DAY, 1700, T0 + timedelta(seconds=5))
            progress = await store.get(h1, DAY)
        assert progress.remaining_seconds == 1700
        assert progress.updated_at == T0 + timedelta(seconds=5)
        assert rows("daily_progress") == 1

    async def test_rows_are_per_day(self, db_path, make_habit):
        h1 = make_habit()
        async with connect(db_path) as db:
            store = ProgressStore(db)
            await store.upsert(h1, DAY, 100, T0)
            await store.upsert(h1, DAY + timedelta(days=1), 200, T0)
            assert (await store.get(h1, DAY)).remaining_seconds == 100
            assert await store.for_day(DAY + timedelta(days=1)) == {h1: 200}

    async def test_negative_is_clamped(self, db_path, make_habit):
        h1 = make_habit()
        async with connect(db_path) as db:
            progress = await ProgressStore(db).upsert(h1, DAY, -30, T0)
        assert progress.remaining_seconds == 0


class TestSessionLog:
    async def test_append_and_recent_order(self, db_path, make_habit):
        h1 = make_habit()
        async with connect(db_path) as db:
            log = SessionLog(db)
            for i in range(3):
                start = T0 + timedelta(minutes=10 * i)
                await log.append(TimerSession(h1, start, start + timedelta(seconds=60 + i), 60 + i))
            recent = await log.recent(limit=2)
            assert [s.duration_seconds for s in recent] == [62, 61]
            assert await log.count(h1) == 3

    async def test_recent_filters_by_habit(self, db_path, make_habit):
        h1 = make_habit("a")
        h2 = make_habit("b")
        async with connect(db_path) as db:
            log = SessionLog(db)
            await log.append(TimerSession(h1, T0, T0, 0))
            await log.append(TimerSession(h2, T0, T0, 0))
            assert [s.habit_id for s in await log.recent(h2)] == [h2]


class TestActiveTimerRegister:
    async def test_put_replaces_single_row(self, db_path, make_habit, rows):
        h1 = make_habit("a")
        h2 = make_habit("b")
        async with connect(db_path) as db:
            register = ActiveTimerRegister(db)
            await register.put(ActiveTimerSlot(h1, T0, 100, 100))
            await register.put(ActiveTimerSlot(h2, T0, 200, 200))
            slot = await register.get()
        assert slot.habit_id == h2
        assert rows("active_timer") == 1

    async def test_clear_is_compare_and_swap(self, db_path, make_habit, rows):
        h1 = make_habit()
        first = ActiveTimerSlot(h1, T0, 100, 100)
        second = ActiveTimerSlot(h1, T0 + timedelta(seconds=5), 95, 100)
        async with connect(db_path) as db:
            register = ActiveTimerRegister(db)
            await register.put(first)
            await register.put(second)
            with pytest.raises(Conflict):
                await register.clear(first)
            assert rows("active_timer") == 1
            await register.clear(second)
        assert rows("active_timer") == 0

    async def test_clear_matches_legacy_timestamp_text(self, db_path, make_habit, rows):
        import sqlite3

        h1 = make_habit()
        conn = sqlite3.connect(db_path)
        conn.execute(
            "INSERT INTO active_timer (id, habit_id, started_at, remaining_seconds, original_duration) "
            "VALUES (1, ?, '2026-02-11 09:00:00', 1800, 1800)", (h1,))
        conn.commit()
        conn.close()

        async with connect(db_path) as db:
            register = ActiveTimerRegister(db)
            slot = await register.get()
            assert slot.started_at == T0
            await register.clear(slot)
        assert rows("active_timer") == 0

    async def test_stop_with_legacy_row(self, make_habit, rows, engine, clock, db_path):
        import sqlite3

        h1 = make_habit()
        conn = sqlite3.connect(db_path)
        conn.execute(
            "INSERT INTO active_timer (id, habit_id, started_at, remaining_seconds, original_duration) "
            "VALUES (1, ?, '2026-02-11T09:00:00', 1800, 1800)", (h1,))
        conn.commit()
        conn.close()

        clock.advance(30)
        result = await engine.stop()
        assert result.stopped is True
        assert result.session.duration_seconds == 30
        assert rows("active_timer") == 0

    async def test_transaction_rollback(self, db_path, make_habit, rows):
        h1 = make_habit()
        async with connect(db_path) as db:
            with pytest.raises(RuntimeError):
                async with transaction(db):
                    await ActiveTimerRegister(db).put(ActiveTimerSlot(h1, T0, 100, 100))
                    raise RuntimeError("abort")
        assert rows("active_timer") == 0


class TestHabitCatalog:
    async def test_create_get_list(self, db_path):
        catalog = HabitCatalog(db_path)
        created = await catalog.create_habit("Deep Work", target_minutes=60, icon="💻")
        fetched = await catalog.get_habit(created.id)
        assert fetched.name == "Deep Work"
        assert fetched.goal_seconds == 3600
        assert [h.id for h in await catalog.list_habits()] == [created.id]

    async def test_negative_goal_rejected(self, db_path):
        with pytest.raises(ValueError):
            await HabitCatalog(db_path).create_habit("Bad", target_minutes=-1)

    async def test_get_unknown(self, db_path):
        with pytest.raises(HabitNotFound):
            await HabitCatalog(db_path).get_habit(5)

    async def test_delete_unknown(self, db_path):
        with pytest.raises(HabitNotFound):
            await HabitCatalog(db_path).delete_habit(5)

    async def test_delete_cascades(self, engine, clock, db_path, make_habit, rows):
        h1 = make_habit()
        await engine.start(h1)
        clock.advance(30)
        await engine.stop()
        await engine.start(h1)

        await HabitCatalog(db_path).delete_habit(h1)
        assert rows("habits") == 0
        assert rows("active_timer") == 0
        assert rows("daily_progress") == 0
        assert rows("timer_sessions") == 0
        assert await engine.get_status() is None


class TestInitDatabase:
    async def test_seeds_default_habits_once(self, tmp_path):
        from focus_api.init_db import DEFAULT_HABITS, init_database

        path = init_database(tmp_path / "seeded.db")
        init_database(path)
        habits = await HabitCatalog(path).list_habits()
        assert [(h.name, h.target_minutes) for h in habits] == [(n, m) for n, _, _, m in DEFAULT_HABITS]

    async def test_runs_as_module(self, tmp_path, monkeypatch, capsys):
        import runpy

        monkeypatch.setenv("FOCUS_API_DB", str(tmp_path / "module.db"))
        runpy.run_module("focus_api.init_db", run_name="__main__")
        assert (tmp_path / "module.db").exists()
        assert "Database initialized" in capsys.readouterr().out
        assert len(await HabitCatalog(tmp_path / "module.db").list_habits()) == 4

    async def test_register_rejects_second_row(self, db_path, make_habit):
        import sqlite3

        h1 = make_habit()
        conn = sqlite3.connect(db_path)
        try:
            conn.execute(
                "INSERT INTO active_timer (id, habit_id, started_at, remaining_seconds, original_duration) "
                "VALUES (1, ?, ?, 1, 1)", (h1, T0.isoformat()))
            with pytest.raises(sqlite3.IntegrityError):
                conn.execute(
                    "INSERT INTO active_timer (id, habit_id, started_at, remaining_seconds, original_duration) "
                    "VALUES (2, ?, ?, 1, 1)", (h1, T0.isoformat()))
        finally:
            conn.close()
