"""Configuration for the focus timer server and CLI.

Values come from the environment, optionally seeded from a .env file in the
working directory. Settings are read at call time, not import time.
"""

import os
from dataclasses import dataclass
from datetime import datetime, tzinfo
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from dotenv import load_dotenv

# Load .env from the working directory (FOCUS_API_DB, FOCUS_API_URL, etc.)
load_dotenv(Path.cwd() / ".env")

DATA_DIR = Path.home() / ".focus-timer"
DEFAULT_PORT = 7780
DEFAULT_POLL_INTERVAL = 5.0  # seconds between mirror reconciliations


@dataclass(frozen=True)
class Settings:
    """Resolved runtime settings."""

    db_path: Path
    host: str
    port: int
    api_url: str
    timezone: Optional[str]
    cache_path: Path
    poll_interval: float
    crash_log_path: Path

    @property
    def tz(self) -> tzinfo:
        """Zone that decides which calendar day is "today"."""
        if self.timezone:
            return ZoneInfo(self.timezone)
        return datetime.now().astimezone().tzinfo


def get_settings() -> Settings:
    """Build settings from the current environment."""
    port = int(os.environ.get("FOCUS_API_PORT", DEFAULT_PORT))
    return Settings(
        db_path=Path(os.environ.get("FOCUS_API_DB", DATA_DIR / "focus.db")),
        host=os.environ.get("FOCUS_API_HOST", "0.0.0.0"),
        port=port,
        api_url=os.environ.get("FOCUS_API_URL", f"http://localhost:{port}").rstrip("/"),
        timezone=os.environ.get("FOCUS_TZ") or None,
        cache_path=Path(os.environ.get("FOCUS_CACHE_PATH", DATA_DIR / "cache.json")),
        poll_interval=float(os.environ.get("FOCUS_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)),
        crash_log_path=Path(os.environ.get("FOCUS_CRASH_LOG", DATA_DIR / "focus-api-crash.log")),
    )


def now() -> datetime:
    """Timezone-aware wall-clock time in the configured zone."""
    return datetime.now(get_settings().tz)
