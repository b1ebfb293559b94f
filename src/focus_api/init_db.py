"""
Initialize the SQLite database with required tables and seed data.
Run with `python -m focus_api.init_db` or `focus init-db`, or let the FastAPI
app initialize it on startup.
"""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from .config import get_settings

logger = logging.getLogger("focus_api.init_db")

DEFAULT_HABITS = [
    ("Read Book", "📖", "#3b82f6", 30),
    ("Exercise", "💪", "#10b981", 45),
    ("Deep Work", "💻", "#8b5cf6", 60),
    ("Meditation", "🧘", "#f59e0b", 15),
]


def init_database(db_path: Optional[Path] = None, seed: bool = True) -> Path:
    """Initialize SQLite database with required tables."""
    db_path = Path(db_path or get_settings().db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    cursor = conn.cursor()

    # WAL lets status polls read while a transition holds the write lock
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA busy_timeout=5000")

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS habits (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            icon TEXT DEFAULT '⭐',
            color TEXT DEFAULT '#6366f1',
            target_minutes INTEGER NOT NULL DEFAULT 30 CHECK (target_minutes >= 0),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    # One row per habit per calendar day; absence means the full goal remains
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS daily_progress (
            habit_id INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            date TEXT NOT NULL,
            remaining_seconds INTEGER NOT NULL CHECK (remaining_seconds >= 0),
            updated_at TEXT NOT NULL,
            PRIMARY KEY (habit_id, date)
        )
    """)

    # Single-row register: at most one timer runs system-wide
    cursor.execute("""
        CREATE TABLE IF NOT EXISTS active_timer (
            id INTEGER PRIMARY KEY DEFAULT 1,
            habit_id INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            started_at TEXT NOT NULL,
            remaining_seconds INTEGER NOT NULL,
            original_duration INTEGER NOT NULL,
            CHECK (id = 1)
        )
    """)

    cursor.execute("""
        CREATE TABLE IF NOT EXISTS timer_sessions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            habit_id INTEGER NOT NULL REFERENCES habits(id) ON DELETE CASCADE,
            started_at TEXT NOT NULL,
            ended_at TEXT NOT NULL,
            duration_seconds INTEGER NOT NULL DEFAULT 0 CHECK (duration_seconds >= 0),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        )
    """)

    cursor.execute("CREATE INDEX IF NOT EXISTS idx_sessions_habit ON timer_sessions(habit_id, id DESC)")

    if seed:
        cursor.execute("SELECT COUNT(*) FROM habits")
        if cursor.fetchone()[0] == 0:
            cursor.executemany(
                "INSERT INTO habits (name, icon, color, target_minutes) VALUES (?, ?, ?, ?)",
                DEFAULT_HABITS,
            )
            logger.info(f"Seeded {len(DEFAULT_HABITS)} default habits")

    conn.commit()
    conn.close()

    logger.info(f"Database initialized at {db_path}")
    return db_path


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")
    path = init_database()
    print(f"Database initialized at {path}")
    print("Tables created: habits, daily_progress, active_timer, timer_sessions")
