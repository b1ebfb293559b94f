"""Shared fixtures: temp SQLite database, injected clock, habit factory."""

import sqlite3
from datetime import datetime, timedelta, timezone

import pytest

from focus_api.engine import FocusTimerEngine
from focus_api.init_db import init_database

START = datetime(2026, 2, 11, 9, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable wall clock returning aware datetimes."""

    def __init__(self, start: datetime = START):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, seconds: float = 0, **kwargs) -> datetime:
        self.current += timedelta(seconds=seconds, **kwargs)
        return self.current


def count_rows(db_path, table: str) -> int:
    conn = sqlite3.connect(db_path)
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


@pytest.fixture
def db_path(tmp_path):
    return init_database(tmp_path / "focus.db", seed=False)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def engine(db_path, clock):
    return FocusTimerEngine(db_path, clock=clock)


@pytest.fixture
def make_habit(db_path):
    """Insert a habit directly and return its id."""
    def _make(name: str = "Read Book", target_minutes: int = 30) -> int:
        conn = sqlite3.connect(db_path)
        try:
            cursor = conn.execute(
                "INSERT INTO habits (name, target_minutes) VALUES (?, ?)", (name, target_minutes)
            )
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()
    return _make


@pytest.fixture
def rows(db_path):
    """Row counter bound to the test database."""
    return lambda table: count_rows(db_path, table)
