"""
Focus-API: FastAPI server for the focus timer

This server provides:
- Habit catalog (list/create/delete)
- The single active countdown timer (start/switch/stop/reset)
- Today's remaining time per habit, with lazy midnight rollover
- Session history
"""

import sys
import asyncio
import logging
import traceback
from collections import deque
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Deque, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import get_settings
from .engine import FocusTimerEngine
from .errors import HabitNotFound, StoreUnavailable
from .habits import HabitCatalog
from .init_db import init_database

# Parent logger for every focus_api.* module
logger = logging.getLogger("focus_api")
logger.setLevel(logging.INFO)

# ============ Server-side Log Buffer ============

# Circular buffer to store recent log entries (max 100)
log_buffer: Deque[dict] = deque(maxlen=100)


class LogBufferHandler(logging.Handler):
    """Logging handler that captures records into the circular buffer."""

    def emit(self, record: logging.LogRecord):
        try:
            log_entry = {
                "timestamp": datetime.fromtimestamp(record.created).strftime("%H:%M:%S"),
                "level": record.levelname,
                "logger": record.name,
                "message": self.format(record),
            }
            log_buffer.append(log_entry)
        except Exception:
            self.handleError(record)


buffer_handler = LogBufferHandler()
buffer_handler.setLevel(logging.DEBUG)
buffer_handler.setFormatter(logging.Formatter('%(message)s'))
logger.addHandler(buffer_handler)

# Also capture uvicorn and fastapi logs
logging.getLogger("uvicorn").addHandler(buffer_handler)
logging.getLogger("fastapi").addHandler(buffer_handler)


# ============ Crash Logging ============

def log_crash(exc_type, exc_value, exc_tb, context: str = "unhandled"):
    """Write crash info to a persistent file for post-mortem debugging."""
    try:
        crash_log = get_settings().crash_log_path
        crash_log.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        tb_str = "".join(traceback.format_exception(exc_type, exc_value, exc_tb))

        with open(crash_log, "a") as f:
            f.write(f"\n{'='*60}\n")
            f.write(f"CRASH [{context}] at {timestamp}\n")
            f.write(f"{'='*60}\n")
            f.write(tb_str)
            f.write("\n")

        print(f"CRASH [{context}]: {exc_type.__name__}: {exc_value}", file=sys.stderr)
    except OSError:
        pass  # Don't crash while logging a crash


def _global_exception_handler(exc_type, exc_value, exc_tb):
    """Global exception handler for uncaught sync exceptions."""
    log_crash(exc_type, exc_value, exc_tb, context="sync")
    sys.__excepthook__(exc_type, exc_value, exc_tb)


def _asyncio_exception_handler(loop, context):
    """Handler for uncaught exceptions in asyncio tasks."""
    exception = context.get("exception")
    if exception:
        log_crash(type(exception), exception, exception.__traceback__, context="asyncio")
    else:
        logger.error(f"Asyncio error: {context.get('message')}")
    loop.default_exception_handler(context)


def _mark_crash_log(marker: str):
    try:
        crash_log = get_settings().crash_log_path
        crash_log.parent.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")
        with open(crash_log, "a") as f:
            f.write(f"--- SERVER {marker} at {timestamp} ---\n")
    except OSError:
        pass


sys.excepthook = _global_exception_handler


# ============ Engine ============

engine: Optional[FocusTimerEngine] = None
catalog: Optional[HabitCatalog] = None


def get_engine() -> FocusTimerEngine:
    if engine is None:
        raise HTTPException(status_code=503, detail="Timer engine not initialized")
    return engine


def get_catalog() -> HabitCatalog:
    if catalog is None:
        raise HTTPException(status_code=503, detail="Habit catalog not initialized")
    return catalog


# Pydantic Models
class HabitCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    icon: str = "⭐"
    color: str = "#6366f1"
    target_minutes: int = Field(30, ge=0)


class HabitResponse(BaseModel):
    id: int
    name: str
    icon: str
    color: str
    target_minutes: int
    created_at: Optional[str] = None


class HabitOverviewResponse(HabitResponse):
    remaining_seconds: int
    current_remaining: int
    is_active: bool


class TimerRequest(BaseModel):
    habit_id: Optional[int] = None  # None means stop


class ActiveTimerResponse(BaseModel):
    habit_id: int
    started_at: str
    remaining_seconds: int
    original_duration: int


class TimerStatusResponse(ActiveTimerResponse):
    elapsed: int
    current_remaining: int
    end_timestamp: int  # epoch ms when the countdown reaches zero
    state: str  # "running" | "completed"
    is_running: bool = True
    habit_name: Optional[str] = None
    habit_icon: Optional[str] = None
    habit_color: Optional[str] = None


class SessionResponse(BaseModel):
    id: Optional[int]
    habit_id: int
    started_at: str
    ended_at: str
    duration_seconds: int


class StopResponse(BaseModel):
    stopped: bool
    session: Optional[SessionResponse] = None


class DailyProgressResponse(BaseModel):
    habit_id: int
    date: str
    remaining_seconds: int
    updated_at: Optional[str] = None


class LogsResponse(BaseModel):
    logs: List[dict]
    total: int


# Lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    global engine, catalog

    loop = asyncio.get_running_loop()
    loop.set_exception_handler(_asyncio_exception_handler)
    _mark_crash_log("STARTED")

    settings = get_settings()
    init_database(settings.db_path)
    engine = FocusTimerEngine(settings.db_path)
    catalog = HabitCatalog(settings.db_path)
    logger.info(f"Focus-API ready (db={settings.db_path})")
    yield

    _mark_crash_log("STOPPING")
    engine = None
    catalog = None


# FastAPI App
app = FastAPI(
    title="Focus-API",
    description="Habit focus timer with a single authoritative countdown",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HabitNotFound)
async def habit_not_found_handler(request: Request, exc: HabitNotFound):
    logger.warning(f"{request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(StoreUnavailable)
async def store_unavailable_handler(request: Request, exc: StoreUnavailable):
    logger.error(f"{request.method} {request.url.path}: store unavailable: {exc}")
    return JSONResponse(status_code=503, content={"detail": "Store unavailable", "error": str(exc)})


# ============ Habits ============

@app.get("/api/habits", response_model=List[HabitOverviewResponse])
async def list_habits():
    """All habits with today's remaining time."""
    return await get_engine().habit_overview()


@app.post("/api/habits", response_model=HabitResponse)
async def create_habit(payload: HabitCreateRequest):
    habit = await get_catalog().create_habit(
        name=payload.name,
        target_minutes=payload.target_minutes,
        icon=payload.icon,
        color=payload.color,
    )
    return habit.to_dict()


@app.get("/api/habits/{habit_id}", response_model=HabitResponse)
async def get_habit(habit_id: int):
    return (await get_catalog().get_habit(habit_id)).to_dict()


@app.delete("/api/habits/{habit_id}")
async def delete_habit(habit_id: int):
    await get_catalog().delete_habit(habit_id)
    return {"message": "Habit deleted successfully", "id": habit_id}


@app.get("/api/habits/{habit_id}/remaining", response_model=DailyProgressResponse)
async def get_daily_remaining(habit_id: int):
    eng = get_engine()
    remaining = await eng.daily_remaining(habit_id)
    return {"habit_id": habit_id, "date": eng.now().date().isoformat(), "remaining_seconds": remaining}


@app.post("/api/habits/{habit_id}/reset", response_model=DailyProgressResponse)
async def reset_habit(habit_id: int):
    progress = await get_engine().reset(habit_id)
    return progress.to_dict()


# ============ Timer ============

@app.get("/api/timer", response_model=Optional[TimerStatusResponse])
async def get_timer():
    """Current active timer, or null. Read-only; safe to poll."""
    return await get_engine().get_status()


@app.post("/api/timer")
async def switch_timer(payload: TimerRequest):
    """Start/switch to payload.habit_id, or stop when it is omitted."""
    if payload.habit_id is None:
        return (await get_engine().stop()).to_dict()
    return (await get_engine().start(payload.habit_id)).to_dict()


@app.post("/api/timer/start", response_model=ActiveTimerResponse)
async def start_timer(payload: TimerRequest):
    if payload.habit_id is None:
        raise HTTPException(status_code=400, detail="habit_id is required")
    return (await get_engine().start(payload.habit_id)).to_dict()


@app.post("/api/timer/stop", response_model=StopResponse)
async def stop_timer(payload: Optional[TimerRequest] = None):
    habit_id = payload.habit_id if payload else None
    return (await get_engine().stop(habit_id)).to_dict()


@app.get("/api/sessions", response_model=List[SessionResponse])
async def list_sessions(habit_id: Optional[int] = None, limit: int = 50):
    limit = max(1, min(limit, 500))
    sessions = await get_engine().recent_sessions(habit_id=habit_id, limit=limit)
    return [s.to_dict() for s in sessions]


# ============ Health & Logs ============

@app.get("/health")
async def health_check():
    return {"status": "ok", "engine": engine is not None, "timestamp": datetime.now().isoformat()}


@app.get("/api/logs/recent", response_model=LogsResponse)
async def get_recent_logs(limit: int = 50):
    """Most recent server log entries, newest last."""
    entries = list(log_buffer)[-max(1, limit):]
    return {"logs": entries, "total": len(log_buffer)}


def run():
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
