"""SQLite connection helpers shared by the stores and the engine."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Union

import aiosqlite

from .errors import StoreUnavailable

logger = logging.getLogger("focus_api.db")

BUSY_TIMEOUT_MS = 5000


@asynccontextmanager
async def connect(db_path: Union[str, Path]) -> AsyncIterator[aiosqlite.Connection]:
    """Open an autocommit connection with busy_timeout and foreign keys on.

    Multi-statement writes must go through transaction(). SQLite operational
    failures (locked, missing file, missing tables) surface as StoreUnavailable.
    """
    try:
        db = await aiosqlite.connect(db_path, isolation_level=None)
    except aiosqlite.Error as e:
        logger.error(f"Cannot open database {db_path}: {e}")
        raise StoreUnavailable(str(e)) from e

    try:
        db.row_factory = aiosqlite.Row
        await db.execute(f"PRAGMA busy_timeout={BUSY_TIMEOUT_MS}")
        await db.execute("PRAGMA foreign_keys=ON")
        yield db
    except aiosqlite.OperationalError as e:
        logger.error(f"Database error on {db_path}: {e}")
        raise StoreUnavailable(str(e)) from e
    finally:
        await db.close()


@asynccontextmanager
async def transaction(db: aiosqlite.Connection) -> AsyncIterator[aiosqlite.Connection]:
    """BEGIN IMMEDIATE ... COMMIT, rolling back on any exception.

    IMMEDIATE takes the write lock before the first read, so concurrent
    transitions serialize on the active slot.
    """
    await db.execute("BEGIN IMMEDIATE")
    try:
        yield db
    except BaseException:
        await db.execute("ROLLBACK")
        raise
    await db.execute("COMMIT")
