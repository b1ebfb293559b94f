"""Local countdown mirror: a smooth client-side view of the active timer.

The mirror never decrements a counter. It keeps the absolute instant at
which the countdown ends and recomputes the remaining seconds from the wall
clock on every tick, so a process that was suspended for a minute shows the
right value on its very next tick. A periodic reconciliation against the
server's status read replaces the local end timestamp.

Reaching zero is a display event only: the mirror reports completion once
and never stops the timer on the server.
"""

import json
import logging
import math
import os
import threading
import time
from datetime import date
from pathlib import Path
from typing import Callable, Optional, Union

from .config import DEFAULT_POLL_INTERVAL
from .errors import FocusTimerError

logger = logging.getLogger("focus_api.mirror")

MsClock = Callable[[], int]


def now_ms() -> int:
    return int(time.time() * 1000)


def remaining_from_end(end_timestamp: int, now: int) -> int:
    """Whole seconds left until end_timestamp (epoch ms), rounded up, never negative."""
    return max(0, math.ceil((end_timestamp - now) / 1000))


def status_end_timestamp(status: dict, now: int) -> int:
    """End of the countdown in a status dict, epoch ms."""
    end = status.get("end_timestamp")
    if end is not None:
        return int(end)
    return now + int(status["current_remaining"]) * 1000


class OfflineCache:
    """Last known progress and active timer, persisted as JSON.

    The active timer is stored as an absolute end timestamp, never as
    "seconds remaining at save time", so time that passed while the client
    was closed is subtracted when the cache is read back.
    """

    def __init__(self, path: Union[str, Path], clock: MsClock = now_ms):
        self.path = Path(path)
        self._clock = clock

    def _load(self) -> dict:
        try:
            with open(self.path) as f:
                data = json.load(f)
        except FileNotFoundError:
            data = {}
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Ignoring unreadable cache {self.path}: {e}")
            data = {}
        data.setdefault("progress", {})
        data.setdefault("active", None)
        return data

    def _save(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        tmp.write_text(json.dumps(data, indent=2))
        os.replace(tmp, self.path)

    def remember_progress(self, habit_id: int, remaining_seconds: int, day: date,
                          habit_name: Optional[str] = None) -> None:
        data = self._load()
        previous = data["progress"].get(str(habit_id)) or {}
        data["progress"][str(habit_id)] = {
            "remaining_seconds": remaining_seconds,
            "date": day.isoformat(),
            "habit_name": habit_name or previous.get("habit_name"),
            "saved_at": self._clock(),
        }
        self._save(data)

    def remember_active(self, habit_id: int, end_timestamp: int, habit_name: Optional[str] = None) -> None:
        data = self._load()
        data["active"] = {
            "habit_id": habit_id,
            "end_timestamp": end_timestamp,
            "habit_name": habit_name,
            "saved_at": self._clock(),
        }
        self._save(data)

    def clear_active(self) -> None:
        data = self._load()
        if data["active"] is not None:
            data["active"] = None
            self._save(data)

    def active(self) -> Optional[dict]:
        """Cached active timer with its remaining time recomputed for now."""
        active = self._load()["active"]
        if not active:
            return None
        return {**active, "remaining": remaining_from_end(active["end_timestamp"], self._clock())}

    def progress(self, habit_id: int, day: date) -> Optional[int]:
        """Last known remaining seconds for habit_id on day, or None."""
        data = self._load()
        active = data["active"]
        if active and active["habit_id"] == habit_id:
            return remaining_from_end(active["end_timestamp"], self._clock())
        entry = data["progress"].get(str(habit_id))
        if not entry or entry.get("date") != day.isoformat():
            return None
        return entry["remaining_seconds"]

    def known_progress(self, day: date) -> list[dict]:
        """Every cached progress entry for day, active habit recomputed."""
        data = self._load()
        rows = []
        for key, entry in sorted(data["progress"].items(), key=lambda kv: int(kv[0])):
            if entry.get("date") != day.isoformat():
                continue
            habit_id = int(key)
            rows.append({
                "habit_id": habit_id,
                "habit_name": entry.get("habit_name"),
                "remaining_seconds": self.progress(habit_id, day),
            })
        return rows


class CountdownMirror:
    """Free-running local countdown with periodic reconciliation.

    fetch_status returns the server status dict (or None when nothing runs)
    and may raise FocusTimerError when the server cannot be read.
    """

    def __init__(
        self,
        fetch_status: Callable[[], Optional[dict]],
        on_tick: Optional[Callable[[Optional[int]], None]] = None,
        on_complete: Optional[Callable[[int], None]] = None,
        cache: Optional[OfflineCache] = None,
        clock: MsClock = now_ms,
        tick_interval: float = 1.0,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        self._fetch_status = fetch_status
        self._on_tick = on_tick
        self._on_complete = on_complete
        self.cache = cache
        self._clock = clock
        self.tick_interval = tick_interval
        self.poll_interval = poll_interval

        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._last_poll_ms: int = 0

        self.habit_id: Optional[int] = None
        self.end_timestamp: Optional[int] = None
        self.status: Optional[dict] = None
        self.completed = False
        self.stale = False
        self.last_sync_ms: Optional[int] = None

    # ---- State ----

    @property
    def is_running(self) -> bool:
        return self.end_timestamp is not None

    def remaining(self, now: Optional[int] = None) -> Optional[int]:
        with self._lock:
            end = self.end_timestamp
        if end is None:
            return None
        return remaining_from_end(end, self._clock() if now is None else now)

    def sync(self, status: Optional[dict]) -> None:
        """Adopt an authoritative status, replacing the local end timestamp.

        The server's end_timestamp is used as is, so repeated reconciles do
        not drift. That assumes client and server clocks agree; any skew
        between them shifts the displayed countdown by the same amount.
        Statuses without an end_timestamp fall back to now + current_remaining.
        """
        now = self._clock()
        with self._lock:
            self.status = status
            self.last_sync_ms = now
            if status is None:
                self.habit_id = None
                self.end_timestamp = None
                self.completed = False
            else:
                end = status_end_timestamp(status, now)
                if status["habit_id"] != self.habit_id or end > now:
                    self.completed = False
                self.habit_id = status["habit_id"]
                self.end_timestamp = end

        if self.cache is not None:
            if status is None:
                self.cache.clear_active()
            else:
                self.cache.remember_active(status["habit_id"], end, status.get("habit_name"))

    def restore_from_cache(self) -> bool:
        """Resume from the cached end timestamp when the server is unreachable."""
        if self.cache is None:
            return False
        active = self.cache.active()
        if active is None:
            return False
        with self._lock:
            self.habit_id = active["habit_id"]
            self.end_timestamp = active["end_timestamp"]
            self.status = {"habit_id": active["habit_id"], "habit_name": active.get("habit_name")}
        logger.info(f"Mirror: restored habit {active['habit_id']} from cache ({active['remaining']}s left)")
        return True

    # ---- Ticking ----

    def tick(self) -> Optional[int]:
        """Recompute remaining time from the clock and fire callbacks."""
        remaining = self.remaining()
        fire_complete = False
        with self._lock:
            habit_id = self.habit_id
            if remaining == 0 and not self.completed:
                self.completed = True
                fire_complete = True

        if self._on_tick is not None:
            self._on_tick(remaining)
        if fire_complete:
            logger.info(f"Mirror: countdown for habit {habit_id} reached zero")
            if self._on_complete is not None:
                self._on_complete(habit_id)
        return remaining

    def reconcile(self) -> bool:
        """Pull the server status. Returns False if the server could not be read."""
        self._last_poll_ms = self._clock()
        try:
            status = self._fetch_status()
        except FocusTimerError as e:
            self.stale = True
            logger.warning(f"Mirror: reconcile failed, running on local clock: {e}")
            if self.end_timestamp is None:
                self.restore_from_cache()
            return False
        self.sync(status)
        self.stale = False
        return True

    # ---- Background thread ----

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="countdown-mirror", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _run(self) -> None:
        self.reconcile()
        self.tick()
        while not self._stop_event.wait(self.tick_interval):
            if self._clock() - self._last_poll_ms >= self.poll_interval * 1000:
                self.reconcile()
            self.tick()
