"""Wires the store, aggregators and sessions into one entry point."""

import asyncio
from collections.abc import Callable
from datetime import datetime
from typing import Any

import structlog

from soulsync.adapters import ActivityLog, BaseStoreAdapter, create_store
from soulsync.aggregators import InsightsAggregator, ProgressTracker
from soulsync.config.settings import Settings
from soulsync.config.settings import settings as default_settings
from soulsync.models import (
    CompositeInsight,
    GuidedSessionRecord,
    HabitCompletionRecord,
    JournalEntryRecord,
    MoodRecord,
    MoodValue,
    StreakState,
    WeeklyProgress,
    WeeklySummary,
    utcnow,
)
from soulsync.notifications.poller import CollectionPoller
from soulsync.session import (
    BreathingExercise,
    ExerciseCatalog,
    GuidedSession,
    LoopScheduler,
    MindfulnessExercise,
    Scheduler,
    SessionCompletion,
    SessionSnapshot,
    SessionStartError,
    create_session,
    load_catalog,
)

logger = structlog.get_logger()


class WellnessEngine:
    """Entry point for the CLI and API.

    Owns one store connection and the subscribers listening to it:
    - ProgressTracker (streak state from the session log)
    - InsightsAggregator (composite insight per user)
    - CollectionPoller (optional, for writes made by other processes)

    Usage::

        async with WellnessEngine() as engine:
            await engine.log_mood("local", MoodValue.GOOD)
            insight = await engine.insights("local")
    """

    def __init__(
        self,
        store: BaseStoreAdapter | None = None,
        config: Settings | None = None,
        catalog: ExerciseCatalog | None = None,
        poll: bool = False,
    ) -> None:
        self.config = config or default_settings
        self.store = store or create_store(self.config.store)
        self.catalog = catalog or load_catalog(self.config.session.exercise_catalog)
        self.log = ActivityLog(self.store, self.config.timezone)
        self.tracker = ProgressTracker(
            self.log,
            default_weekly_goal=self.config.progress.default_weekly_goal,
            week_start=self.config.progress.week_start,
        )
        self.insights_aggregator = InsightsAggregator(
            self.log,
            window_days=self.config.insights.window_days,
            week_start=self.config.progress.week_start,
        )
        self.poll = poll
        self.poller: CollectionPoller | None = None
        self._unsubscribers: list[Callable[[], None]] = []
        self._pending: set[asyncio.Task[Any]] = set()

    async def open(self) -> None:
        await self.store.connect()
        self._unsubscribers = [
            self.store.channel.subscribe(self.tracker.handle_change),
            self.store.channel.subscribe(self.insights_aggregator.handle_change),
        ]
        if self.poll:
            self.poller = CollectionPoller(
                self.store, self.config.insights.poll_interval_seconds
            )
            await self.poller.poll_once()
            self.poller.start()
        logger.info("Engine started", store=self.store.name, polling=self.poll)

    async def close(self) -> None:
        await self.drain()
        if self.poller is not None:
            await self.poller.stop()
            self.poller = None
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        await self.store.disconnect()
        logger.info("Engine stopped")

    async def __aenter__(self) -> "WellnessEngine":
        await self.open()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    # Activity logging

    async def log_mood(
        self, user_id: str, value: MoodValue, note: str | None = None, at: datetime | None = None
    ) -> MoodRecord:
        return await self.log.log_mood(user_id, value, note=note, at=at)

    async def record_habit(
        self,
        user_id: str,
        habit_name: str,
        completed: bool = True,
        target_days_per_week: int = 7,
        at: datetime | None = None,
    ) -> HabitCompletionRecord:
        return await self.log.record_habit(
            user_id, habit_name, completed, target_days_per_week=target_days_per_week, at=at
        )

    async def toggle_habit(self, user_id: str, record_id: str) -> HabitCompletionRecord | None:
        return await self.log.toggle_habit(user_id, record_id)

    async def add_journal_entry(
        self,
        user_id: str,
        title: str,
        content: str = "",
        mood: MoodValue | None = None,
        tags: list[str] | None = None,
        at: datetime | None = None,
    ) -> JournalEntryRecord:
        return await self.log.add_journal_entry(
            user_id, title, content=content, mood=mood, tags=tags, at=at
        )

    async def toggle_favorite(self, user_id: str, exercise_id: str) -> bool:
        exercise = self._resolve(exercise_id)
        return await self.log.toggle_favorite(user_id, exercise.id, exercise.exercise_type)

    # Progress and insights

    async def progress(self, user_id: str) -> StreakState:
        return await self.tracker.state(user_id)

    async def weekly_progress(self, user_id: str, now: datetime | None = None) -> WeeklyProgress:
        return await self.tracker.weekly_progress(user_id, now)

    async def set_weekly_goal(self, user_id: str, goal: int) -> StreakState:
        return await self.tracker.set_weekly_goal(user_id, goal)

    async def insights(self, user_id: str, now: datetime | None = None) -> CompositeInsight:
        return await self.insights_aggregator.get_insights(user_id, now)

    async def weekly_summary(self, user_id: str, now: datetime | None = None) -> WeeklySummary:
        return await self.insights_aggregator.get_weekly_summary(user_id, now)

    async def report(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        return await self.insights_aggregator.get_report(user_id, now)

    # Sessions

    def _resolve(
        self, exercise: str | BreathingExercise | MindfulnessExercise | dict[str, Any]
    ) -> BreathingExercise | MindfulnessExercise:
        if not isinstance(exercise, str):
            return exercise  # type: ignore[return-value]
        definition = self.catalog.get(exercise)
        if definition is None:
            raise SessionStartError(f"Unknown exercise {exercise!r}")
        return definition

    def start_session(
        self,
        user_id: str,
        exercise: str | BreathingExercise | MindfulnessExercise | dict[str, Any],
        scheduler: Scheduler | None = None,
        on_complete: Callable[[SessionCompletion], Any] | None = None,
        on_change: Callable[[SessionSnapshot], Any] | None = None,
    ) -> GuidedSession:
        """Create and start a session whose completion is credited to ``user_id``.

        Must be called with a running event loop; ingestion of the completion
        runs as a task, awaited by ``drain()`` or ``close()``.

        Raises:
            SessionStartError: If the exercise is unknown or malformed.
        """

        def complete(completion: SessionCompletion) -> None:
            task = asyncio.ensure_future(self.record_completion(user_id, completion))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            if on_complete is not None:
                on_complete(completion)

        session = create_session(
            self._resolve(exercise),
            scheduler or LoopScheduler(),
            on_complete=complete,
            on_change=on_change,
        )
        session.start()
        return session

    async def record_completion(
        self, user_id: str, completion: SessionCompletion, at: datetime | None = None
    ) -> StreakState:
        record = GuidedSessionRecord(
            exercise_id=completion.exercise_id,
            exercise_type=completion.exercise_type,
            duration_minutes=completion.duration_minutes,
            timestamp=at or utcnow(),
        )
        return await self.tracker.ingest_completion(user_id, record)

    async def drain(self) -> None:
        """Wait for pending session ingestions."""
        while self._pending:
            tasks = list(self._pending)
            self._pending.difference_update(tasks)
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error("Session ingestion failed", error=str(result))
