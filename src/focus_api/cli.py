#!/usr/bin/env python3
"""
Focus CLI: terminal front end for the Focus-API server.

Usage:
    focus habits
    focus start 2
    focus toggle 2
    focus stop
    focus reset 2
    focus watch
    focus serve
"""

import time
from datetime import date

import click
from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress_bar import ProgressBar
from rich.table import Table
from rich.text import Text

from .client import ApiUnavailable, FocusApiClient
from .config import get_settings, now
from .errors import FocusTimerError, HabitNotFound
from .mirror import CountdownMirror, OfflineCache, now_ms, status_end_timestamp
from .timer import format_timer_time, parse_timestamp, to_epoch_ms

UNREACHABLE_HINT = "The request may or may not have been applied; run `focus status` before retrying."


def _today() -> date:
    return now().date()


def _client(ctx) -> FocusApiClient:
    return ctx.obj["client"]


def _cache(ctx) -> OfflineCache:
    return ctx.obj["cache"]


def _console(ctx) -> Console:
    return ctx.obj["console"]


def _remember_status(cache: OfflineCache, status) -> None:
    if status is None:
        cache.clear_active()
    else:
        end = status_end_timestamp(status, now_ms())
        cache.remember_active(status["habit_id"], end, status.get("habit_name"))


def _remember_stopped(cache: OfflineCache, session: dict) -> None:
    """Save the stopped habit's remaining time, then drop the cached active timer."""
    habit_id = session["habit_id"]
    today = _today()
    active = cache.active()
    remaining = cache.progress(habit_id, today)
    if remaining is not None:
        if not (active and active["habit_id"] == habit_id):
            # progress predates this run
            remaining = max(0, remaining - session["duration_seconds"])
        cache.remember_progress(habit_id, remaining, today)
    cache.clear_active()


def _print_cached_progress(ctx) -> None:
    """Offline view: not running, plus whatever progress we saw last."""
    console = _console(ctx)
    console.print("[yellow]Server unreachable.[/yellow] Not running.")
    rows = _cache(ctx).known_progress(_today())
    if not rows:
        console.print("[dim]No cached progress for today.[/dim]")
        return
    table = Table(title="Last known progress (cached)")
    table.add_column("ID", justify="right")
    table.add_column("Habit")
    table.add_column("Remaining", justify="right")
    for row in rows:
        table.add_row(str(row["habit_id"]), row["habit_name"] or "?", format_timer_time(row["remaining_seconds"]))
    console.print(table)


class FocusGroup(click.Group):
    """Command group that reports any remaining API error as a CLI error."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except FocusTimerError as e:
            raise click.ClickException(str(e)) from e


@click.group(cls=FocusGroup)
@click.option("--url", default=None, help="Focus-API base URL (default: $FOCUS_API_URL)")
@click.option("--timeout", default=2.0, show_default=True, help="HTTP timeout in seconds")
@click.pass_context
def cli(ctx, url, timeout):
    """Focus timer - one countdown, many habits."""
    settings = get_settings()
    ctx.ensure_object(dict)
    ctx.obj.setdefault("settings", settings)
    ctx.obj.setdefault("client", FocusApiClient(url or settings.api_url, timeout=timeout))
    ctx.obj.setdefault("cache", OfflineCache(settings.cache_path))
    ctx.obj.setdefault("console", Console())


# ============ Habits ============

@cli.command()
@click.pass_context
def habits(ctx):
    """List habits with today's remaining time."""
    console = _console(ctx)
    try:
        rows = _client(ctx).list_habits()
    except ApiUnavailable:
        _print_cached_progress(ctx)
        return

    cache = _cache(ctx)
    table = Table(title=f"Habits - {_today().isoformat()}")
    table.add_column("ID", justify="right")
    table.add_column("Habit")
    table.add_column("Goal", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("")
    for habit in rows:
        remaining = habit["current_remaining"]
        cache.remember_progress(habit["id"], habit["remaining_seconds"], _today(), habit["name"])
        marker = "[green]● running[/green]" if habit["is_active"] else ""
        table.add_row(
            str(habit["id"]),
            f"{habit['icon']} {habit['name']}",
            f"{habit['target_minutes']}m",
            format_timer_time(remaining),
            marker,
        )
    console.print(table)


@cli.command()
@click.argument("name")
@click.option("--minutes", "-m", default=30, show_default=True, type=click.IntRange(min=0), help="Daily goal")
@click.option("--icon", default="⭐", show_default=True)
@click.option("--color", default="#6366f1", show_default=True)
@click.pass_context
def add(ctx, name, minutes, icon, color):
    """Create a habit."""
    try:
        habit = _client(ctx).create_habit(name, target_minutes=minutes, icon=icon, color=color)
    except ApiUnavailable as e:
        raise click.ClickException(f"{e}. {UNREACHABLE_HINT}")
    _console(ctx).print(f"Created habit [bold]{habit['id']}[/bold]: {habit['icon']} {habit['name']} ({habit['target_minutes']}m/day)")


@cli.command()
@click.argument("habit_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def delete(ctx, habit_id, yes):
    """Delete a habit and all of its progress and history."""
    if not yes:
        click.confirm(f"Delete habit {habit_id} and its history?", abort=True)
    try:
        _client(ctx).delete_habit(habit_id)
    except HabitNotFound as e:
        raise click.ClickException(str(e))
    except ApiUnavailable as e:
        raise click.ClickException(f"{e}. {UNREACHABLE_HINT}")
    _console(ctx).print(f"Deleted habit {habit_id}")


# ============ Timer ============

def _do_start(ctx, habit_id: int) -> None:
    try:
        slot = _client(ctx).start(habit_id)
    except HabitNotFound as e:
        raise click.ClickException(str(e))
    except ApiUnavailable as e:
        raise click.ClickException(f"{e}. {UNREACHABLE_HINT}")
    end = to_epoch_ms(parse_timestamp(slot["started_at"])) + slot["remaining_seconds"] * 1000
    _cache(ctx).remember_active(habit_id, end)
    _console(ctx).print(f"[green]Started[/green] habit {habit_id}: {format_timer_time(slot['remaining_seconds'])} left today")


def _do_stop(ctx, habit_id=None) -> None:
    try:
        result = _client(ctx).stop(habit_id)
    except ApiUnavailable as e:
        raise click.ClickException(f"{e}. {UNREACHABLE_HINT}")
    console = _console(ctx)
    if not result["stopped"]:
        console.print("Nothing running.")
        return
    session = result["session"]
    _remember_stopped(_cache(ctx), session)
    console.print(
        f"[yellow]Stopped[/yellow] habit {session['habit_id']} after "
        f"{format_timer_time(session['duration_seconds'])}"
    )


@cli.command()
@click.argument("habit_id", type=int)
@click.pass_context
def start(ctx, habit_id):
    """Start (or switch to) a habit's countdown."""
    _do_start(ctx, habit_id)


@cli.command()
@click.option("--habit", "habit_id", type=int, default=None, help="Only stop if this habit is the one running")
@click.pass_context
def stop(ctx, habit_id):
    """Stop the running countdown, saving its progress."""
    _do_stop(ctx, habit_id)


@cli.command()
@click.argument("habit_id", type=int)
@click.pass_context
def toggle(ctx, habit_id):
    """Stop HABIT_ID if it is running, otherwise start it."""
    try:
        status = _client(ctx).get_status()
    except ApiUnavailable as e:
        raise click.ClickException(str(e))
    if status is not None and status["habit_id"] == habit_id:
        _do_stop(ctx, habit_id)
    else:
        _do_start(ctx, habit_id)


@cli.command()
@click.argument("habit_id", type=int)
@click.pass_context
def reset(ctx, habit_id):
    """Restore today's full goal for a habit (no session is logged)."""
    try:
        progress = _client(ctx).reset(habit_id)
    except HabitNotFound as e:
        raise click.ClickException(str(e))
    except ApiUnavailable as e:
        raise click.ClickException(f"{e}. {UNREACHABLE_HINT}")
    cache = _cache(ctx)
    cache.remember_progress(habit_id, progress["remaining_seconds"], _today())
    active = cache.active()
    if active and active["habit_id"] == habit_id:
        cache.clear_active()
    _console(ctx).print(f"Reset habit {habit_id}: {format_timer_time(progress['remaining_seconds'])} left today")


@cli.command()
@click.pass_context
def status(ctx):
    """Show the running countdown."""
    console = _console(ctx)
    try:
        current = _client(ctx).get_status()
    except ApiUnavailable:
        _print_cached_progress(ctx)
        return

    _remember_status(_cache(ctx), current)
    if current is None:
        console.print("Not running.")
        return
    name = current.get("habit_name") or f"habit {current['habit_id']}"
    state = "[bold green]Completed[/bold green]" if current["state"] == "completed" else "running"
    console.print(f"{current.get('habit_icon') or ''} [bold]{name}[/bold] {state}: "
                  f"{format_timer_time(current['current_remaining'])} left")


@cli.command()
@click.argument("habit_id", type=int)
@click.pass_context
def remaining(ctx, habit_id):
    """Show today's remaining time for a habit."""
    console = _console(ctx)
    cache = _cache(ctx)
    try:
        seconds = _client(ctx).daily_remaining(habit_id)
    except HabitNotFound as e:
        raise click.ClickException(str(e))
    except ApiUnavailable:
        cached = cache.progress(habit_id, _today())
        if cached is None:
            console.print("[yellow]Server unreachable.[/yellow] No cached progress for today.")
        else:
            console.print(f"[yellow]Server unreachable.[/yellow] {format_timer_time(cached)} left (cached)")
        return
    cache.remember_progress(habit_id, seconds, _today())
    console.print(f"{format_timer_time(seconds)} left today")


@cli.command()
@click.option("--habit", "habit_id", type=int, default=None)
@click.option("--limit", default=20, show_default=True)
@click.pass_context
def sessions(ctx, habit_id, limit):
    """Show recent timer sessions."""
    try:
        rows = _client(ctx).sessions(habit_id=habit_id, limit=limit)
    except HabitNotFound as e:
        raise click.ClickException(str(e))
    except ApiUnavailable as e:
        raise click.ClickException(str(e))
    table = Table(title="Recent sessions")
    table.add_column("Habit", justify="right")
    table.add_column("Started")
    table.add_column("Ended")
    table.add_column("Duration", justify="right")
    for row in rows:
        table.add_row(str(row["habit_id"]), row["started_at"][:19], row["ended_at"][:19],
                      format_timer_time(row["duration_seconds"]))
    _console(ctx).print(table)


# ============ Live countdown ============

def render_countdown(mirror: CountdownMirror) -> Panel:
    """Panel for the live view, built only from the mirror's local state."""
    left = mirror.remaining()
    if left is None:
        body = Text("Not running", style="dim")
        return Panel(body, title="Focus", border_style="dim")

    status = mirror.status or {}
    name = status.get("habit_name") or f"habit {mirror.habit_id}"
    text = Text()
    text.append(f"{status.get('habit_icon') or ''} {name}\n", style="bold")
    if left == 0:
        text.append("Completed", style="bold green")
    else:
        text.append(format_timer_time(left), style="bold cyan")
    if mirror.stale:
        text.append("  (offline)", style="yellow")

    total = status.get("original_duration") or 0
    if total > 0:
        bar = ProgressBar(total=total, completed=max(0, total - left), width=40)
        return Panel(Group(text, bar), title="Focus", border_style="cyan")
    return Panel(text, title="Focus", border_style="cyan")


@cli.command()
@click.option("--poll", type=float, default=None, help="Seconds between server resyncs")
@click.pass_context
def watch(ctx, poll):
    """Live countdown (Ctrl+C to quit)."""
    console = _console(ctx)
    client = _client(ctx)
    settings = ctx.obj["settings"]

    def on_complete(habit_id):
        console.bell()

    mirror = CountdownMirror(
        client.get_status,
        on_complete=on_complete,
        cache=_cache(ctx),
        poll_interval=poll or settings.poll_interval,
    )
    mirror.start()
    try:
        with Live(render_countdown(mirror), console=console, refresh_per_second=4) as live:
            while True:
                time.sleep(0.25)
                live.update(render_countdown(mirror))
    except KeyboardInterrupt:
        pass
    finally:
        mirror.stop()


# ============ Server ============

@cli.command()
def serve():
    """Run the Focus-API server."""
    from .main import run

    run()


@cli.command("init-db")
@click.option("--no-seed", is_flag=True, help="Do not insert the default habits")
@click.pass_context
def init_db(ctx, no_seed):
    """Create the database tables."""
    from .init_db import init_database

    path = init_database(ctx.obj["settings"].db_path, seed=not no_seed)
    _console(ctx).print(f"Database initialized at {path}")


if __name__ == "__main__":
    cli()
