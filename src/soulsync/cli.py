"""SoulSync Command Line Interface."""

import asyncio
import json
import logging
import signal
import sys

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from soulsync.config.settings import Settings
from soulsync.models import ExerciseType, MoodValue

app = typer.Typer(
    name="soulsync",
    help="SoulSync - guided sessions, streaks and wellbeing insights",
    no_args_is_help=True,
)
console = Console()

UserOption = typer.Option(None, "--user", "-u", help="User id (defaults to SOULSYNC_USER)")


def _engine():
    from soulsync.engine import WellnessEngine

    # Settings are re-read so environment changes apply per invocation
    return WellnessEngine(config=Settings())


def _user(user: str | None) -> str:
    return user or Settings().default_user_id


@app.callback()
def main(
    log_level: str | None = typer.Option(
        None, "--log-level", help="DEBUG, INFO, WARNING or ERROR (defaults to LOG_LEVEL)"
    ),
):
    """Configure logging for every command."""
    log_level = log_level or Settings().log_level
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level: {log_level}")
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
    )


@app.command()
def exercises(
    exercise_type: ExerciseType | None = typer.Option(None, "--type", help="breathing or mindfulness"),
):
    """List available guided exercises."""
    from soulsync.session import BreathingExercise, load_catalog

    catalog = load_catalog(Settings().session.exercise_catalog)
    items = catalog.by_type(exercise_type) if exercise_type else catalog.all()

    table = Table(title="Exercises")
    table.add_column("Id", style="cyan", no_wrap=True)
    table.add_column("Name")
    table.add_column("Type")
    table.add_column("Minutes", justify="right")
    table.add_column("Pattern")

    for exercise in items:
        if isinstance(exercise, BreathingExercise):
            p = exercise.pattern
            detail = f"{p.inhale:g}-{p.hold_in:g}-{p.exhale:g}-{p.hold_out:g}"
        else:
            detail = f"{len(exercise.steps)} steps"
        table.add_row(
            exercise.id,
            exercise.name,
            exercise.exercise_type,
            str(exercise.duration_minutes),
            detail,
        )

    console.print(table)


@app.command()
def session(
    exercise_id: str = typer.Argument(..., help="Exercise id (see `soulsync exercises`)"),
    user: str | None = UserOption,
):
    """Run a guided session. Ctrl-C ends it early and still logs the minutes."""
    from soulsync.session import SessionStartError, SessionStatus

    async def run_session():
        async with _engine() as engine:
            finished = asyncio.Event()
            last_label: list[str | None] = [None]

            def on_change(snapshot):
                if snapshot.phase is not None:
                    label = f"{snapshot.phase.value.replace('_', ' ').title()}"
                elif snapshot.step_title is not None:
                    label = f"{snapshot.step_index + 1}. {snapshot.step_title}"
                else:
                    label = None
                if label and label != last_label[0]:
                    last_label[0] = label
                    console.print(f"[cyan]{label}[/cyan] ({snapshot.time_remaining_display} left)")
                    if snapshot.step_instruction:
                        console.print(f"  {snapshot.step_instruction}")
                if snapshot.status in (SessionStatus.COMPLETED, SessionStatus.STOPPED):
                    finished.set()

            try:
                guided = engine.start_session(_user(user), exercise_id, on_change=on_change)
            except SessionStartError as e:
                console.print(f"[red]✗ {e}[/red]")
                raise typer.Exit(1)

            console.print(Panel(guided.exercise.name, style="blue"))
            loop = asyncio.get_running_loop()
            try:
                loop.add_signal_handler(signal.SIGINT, guided.stop)
                handles_interrupt = True
            except NotImplementedError:
                # Windows event loops; Ctrl-C then aborts without logging
                handles_interrupt = False

            try:
                await finished.wait()
            finally:
                if handles_interrupt:
                    loop.remove_signal_handler(signal.SIGINT)
            await engine.drain()

            if guided.completion is not None:
                console.print(f"[green]✓ {guided.completion.message}[/green]")
            state = await engine.progress(_user(user))
            console.print(
                f"Streak: {state.current_streak} day(s) (best {state.best_streak}), "
                f"{state.total_sessions} sessions, {state.total_minutes} minutes"
            )

    asyncio.run(run_session())


@app.command()
def mood(
    value: MoodValue = typer.Argument(..., help="amazing, good, okay, sad or awful"),
    note: str | None = typer.Option(None, help="Optional note"),
    user: str | None = UserOption,
):
    """Log today's mood (replaces an earlier entry from today)."""

    async def log_mood():
        async with _engine() as engine:
            record = await engine.log_mood(_user(user), value, note=note)
            console.print(f"[green]✓ Mood logged: {record.value.value}[/green]")

    asyncio.run(log_mood())


@app.command()
def habit(
    name: str = typer.Argument(..., help="Habit name"),
    undo: bool = typer.Option(False, "--undo", help="Mark as not completed today"),
    target: int = typer.Option(7, min=1, max=7, help="Target days per week"),
    user: str | None = UserOption,
):
    """Mark a habit as done (or not) for today."""

    async def record():
        async with _engine() as engine:
            result = await engine.record_habit(
                _user(user), name, completed=not undo, target_days_per_week=target
            )
            mark = "✓" if result.completed else "✗"
            console.print(f"[green]{mark} {result.habit_name}[/green]")

    asyncio.run(record())


@app.command()
def journal(
    title: str = typer.Argument(..., help="Entry title"),
    content: str = typer.Option("", help="Entry text"),
    entry_mood: MoodValue | None = typer.Option(None, "--mood", help="Mood for the entry"),
    tags: list[str] = typer.Option([], "--tag", help="Tag (repeatable)"),
    user: str | None = UserOption,
):
    """Add a journal entry."""

    async def add_entry():
        async with _engine() as engine:
            entry = await engine.add_journal_entry(
                _user(user), title, content=content, mood=entry_mood, tags=tags
            )
            console.print(f"[green]✓ Journal entry saved: {entry.title}[/green]")

    asyncio.run(add_entry())


@app.command()
def goal(
    sessions: int = typer.Argument(..., help="Sessions per week"),
    user: str | None = UserOption,
):
    """Set the weekly session goal."""

    async def set_goal():
        async with _engine() as engine:
            try:
                state = await engine.set_weekly_goal(_user(user), sessions)
            except ValueError as e:
                console.print(f"[red]✗ {e}[/red]")
                raise typer.Exit(1)
            console.print(f"[green]✓ Weekly goal: {state.weekly_goal} sessions[/green]")

    asyncio.run(set_goal())


@app.command()
def progress(user: str | None = UserOption):
    """Show streaks and weekly goal progress."""
    console.print(Panel("Progress", style="blue"))

    async def show_progress():
        async with _engine() as engine:
            user_id = _user(user)
            state = await engine.progress(user_id)
            weekly = await engine.weekly_progress(user_id)

        table = Table(show_header=False)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", justify="right")
        table.add_row("Current streak", f"{state.current_streak} days")
        table.add_row("Best streak", f"{state.best_streak} days")
        table.add_row("Total sessions", str(state.total_sessions))
        table.add_row("Total minutes", str(state.total_minutes))
        table.add_row("This week", f"{weekly.count}/{weekly.goal} ({weekly.percent:.0f}%)")
        console.print(table)

        if weekly.goal_met:
            console.print("[green]Weekly goal reached![/green]")
        else:
            console.print(f"{weekly.remaining} more session(s) to reach this week's goal")

    asyncio.run(show_progress())


@app.command()
def insights(
    as_json: bool = typer.Option(False, "--json", help="Print the full report as JSON"),
    user: str | None = UserOption,
):
    """Show weekly wellbeing insights."""

    async def show_insights():
        async with _engine() as engine:
            report = await engine.report(_user(user))

        if as_json:
            console.print_json(json.dumps(report))
            return

        console.print(Panel("Weekly Insights", style="blue"))
        metrics = report["insights"]
        console.print(f"  Mood trend: {metrics['mood_trend_percent']:+d}%")
        console.print(f"  Journal consistency: {metrics['journal_consistency_percent']}%")
        console.print(f"  Habit streak: {metrics['habit_streak_percent']}%")
        console.print(f"  Activity level: {metrics['activity_level_percent']}%")

        summary = report["summary"]
        console.print("\n[cyan]This week:[/cyan]")
        console.print(f"  Average mood: {summary['mood_average']}")
        console.print(f"  Journal entries: {summary['journal_entries']}")
        console.print(f"  Habits completed: {summary['completed_habits']}")
        console.print(f"  Mindfulness minutes: {summary['mindfulness_minutes']}")

    asyncio.run(show_insights())


@app.command()
def status():
    """Show store health and configuration."""
    console.print(Panel("SoulSync Status", style="blue"))

    async def check_status():
        config = Settings()
        engine = _engine()
        table = Table(title="Store")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")
        table.add_row("Backend", config.store.backend)
        table.add_row("User", config.default_user_id)
        table.add_row("Timezone", config.timezone)
        table.add_row("Exercises", str(len(engine.catalog)))

        try:
            async with engine:
                healthy = await engine.store.health_check()
                keys = await engine.store.list_keys()
            table.add_row("Health", "✓ OK" if healthy else "✗ Unhealthy")
            table.add_row("Collections", str(len(keys)))
        except Exception as e:
            table.add_row("Health", f"✗ Error: {str(e)[:40]}")

        console.print(table)

    asyncio.run(check_status())


@app.command()
def version():
    """Show SoulSync version."""
    from soulsync import __version__

    console.print(f"SoulSync v{__version__}")


if __name__ == "__main__":
    app()
