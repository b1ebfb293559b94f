"""HTTP client for the Focus-API server, used by the CLI and the countdown mirror."""

import logging
from typing import Optional

import requests

from .config import get_settings
from .errors import FocusTimerError, HabitNotFound

logger = logging.getLogger("focus_api.client")

DEFAULT_TIMEOUT = 2.0  # seconds


class ApiUnavailable(FocusTimerError):
    """Server unreachable, timed out, or reporting its store as unavailable.

    A write that raised this may or may not have been applied; re-read the
    status before retrying it.
    """


class FocusApiClient:
    def __init__(self, base_url: Optional[str] = None, timeout: float = DEFAULT_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or get_settings().api_url).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    def _request(self, method: str, path: str, habit_id: Optional[int] = None, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.debug(f"{method} {url} failed: {e}")
            raise ApiUnavailable(f"Cannot reach {self.base_url}: {e}") from e

        if resp.status_code == 404 and habit_id is not None:
            raise HabitNotFound(habit_id)
        if resp.status_code == 503:
            raise ApiUnavailable(f"{self.base_url} reports store unavailable")
        try:
            resp.raise_for_status()
        except requests.HTTPError as e:
            raise FocusTimerError(f"{method} {path} returned {resp.status_code}: {resp.text[:200]}") from e
        return resp.json()

    # ---- Timer ----

    def get_status(self) -> Optional[dict]:
        return self._request("GET", "/api/timer")

    def start(self, habit_id: int) -> dict:
        return self._request("POST", "/api/timer/start", habit_id=habit_id, json={"habit_id": habit_id})

    def stop(self, habit_id: Optional[int] = None) -> dict:
        return self._request("POST", "/api/timer/stop", json={"habit_id": habit_id})

    def reset(self, habit_id: int) -> dict:
        return self._request("POST", f"/api/habits/{habit_id}/reset", habit_id=habit_id)

    def daily_remaining(self, habit_id: int) -> int:
        data = self._request("GET", f"/api/habits/{habit_id}/remaining", habit_id=habit_id)
        return data["remaining_seconds"]

    # ---- Habits ----

    def list_habits(self) -> list:
        return self._request("GET", "/api/habits")

    def create_habit(self, name: str, target_minutes: int = 30, icon: str = "⭐", color: str = "#6366f1") -> dict:
        return self._request("POST", "/api/habits", json={
            "name": name,
            "target_minutes": target_minutes,
            "icon": icon,
            "color": color,
        })

    def delete_habit(self, habit_id: int) -> dict:
        return self._request("DELETE", f"/api/habits/{habit_id}", habit_id=habit_id)

    def sessions(self, habit_id: Optional[int] = None, limit: int = 20) -> list:
        params = {"limit": limit}
        if habit_id is not None:
            params["habit_id"] = habit_id
        return self._request("GET", "/api/sessions", habit_id=habit_id, params=params)

    def health(self) -> dict:
        return self._request("GET", "/health")
