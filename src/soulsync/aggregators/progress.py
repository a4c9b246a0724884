"""Streak and weekly goal tracking for guided sessions."""

import asyncio
from collections import defaultdict
from collections.abc import Iterable
from datetime import datetime, tzinfo

import structlog

from soulsync.adapters.activity import ActivityLog
from soulsync.collections import Collection, parse_collection_key
from soulsync.config.settings import settings
from soulsync.dates import WeekStart, end_of_week, local_date, round_half_up, start_of_week
from soulsync.models import (
    GuidedSessionRecord,
    HabitCompletionRecord,
    StreakState,
    WeeklyProgress,
    utcnow,
)

logger = structlog.get_logger()


class ProgressTracker:
    """Maintains each user's StreakState as guided sessions complete.

    Tracks:
    - Session and minute totals
    - Current and best day streaks
    - Progress towards the weekly session goal

    The stored aggregate is updated incrementally on ingestion. Writes that
    reach the session log some other way (another process, an older client)
    are reconciled by rebuilding the aggregate from the log when a change
    notification arrives.
    """

    def __init__(
        self,
        log: ActivityLog,
        default_weekly_goal: int | None = None,
        week_start: WeekStart | None = None,
    ) -> None:
        self.log = log
        self.tz = log.tz
        self.default_weekly_goal = default_weekly_goal or settings.progress.default_weekly_goal
        self.week_start: WeekStart = week_start or settings.progress.week_start
        self.views: dict[str, StreakState] = {}
        self._lock = asyncio.Lock()
        self._ingesting: set[str] = set()

    async def ingest_completion(self, user_id: str, record: GuidedSessionRecord) -> StreakState:
        """Append a completed session and advance the user's streak state."""
        async with self._lock:
            self._ingesting.add(user_id)
            try:
                state = await self.state(user_id)
                await self.log.append_session(user_id, record)
                session_date = local_date(record.timestamp, self.tz)
                if state.last_session_date and session_date < state.last_session_date:
                    # Backdated completion: the streak depends on log order
                    sessions = await self.log.sessions(user_id)
                    state = replay_sessions(sessions, self.tz, state.weekly_goal)
                else:
                    state = state.advance(session_date, record.duration_minutes)
                await self.log.save_streak_state(user_id, state)
            finally:
                self._ingesting.discard(user_id)

        self.views[user_id] = state
        logger.info(
            "Session ingested",
            user=user_id,
            exercise=record.exercise_id,
            minutes=record.duration_minutes,
            current_streak=state.current_streak,
            best_streak=state.best_streak,
        )
        return state

    async def state(self, user_id: str) -> StreakState:
        """Stored aggregate, or one rebuilt from the log if none is stored."""
        stored = await self.log.load_streak_state(user_id)
        if stored is not None:
            return stored
        return await self.rebuild(user_id)

    async def rebuild(self, user_id: str) -> StreakState:
        """Replay the session log from scratch."""
        stored = await self.log.load_streak_state(user_id)
        goal = stored.weekly_goal if stored else self.default_weekly_goal
        return replay_sessions(await self.log.sessions(user_id), self.tz, goal)

    async def refresh(self, user_id: str) -> StreakState:
        """Rebuild from the log and persist only if the stored copy disagrees."""
        rebuilt = await self.rebuild(user_id)
        stored = await self.log.load_streak_state(user_id)
        if stored != rebuilt:
            await self.log.save_streak_state(user_id, rebuilt)
            logger.info("Streak state reconciled", user=user_id)
        self.views[user_id] = rebuilt
        return rebuilt

    async def handle_change(self, collection_key: str) -> None:
        """Change-channel subscriber: recompute on session log writes."""
        parsed = parse_collection_key(collection_key)
        if parsed is None:
            return
        collection, user_id = parsed
        if collection != Collection.SESSIONS or user_id in self._ingesting:
            return
        await self.refresh(user_id)

    async def set_weekly_goal(self, user_id: str, goal: int) -> StreakState:
        if goal < 1:
            raise ValueError("Weekly goal must be at least one session")
        state = (await self.state(user_id)).model_copy(update={"weekly_goal": goal})
        await self.log.save_streak_state(user_id, state)
        self.views[user_id] = state
        return state

    async def weekly_progress(self, user_id: str, now: datetime | None = None) -> WeeklyProgress:
        """Sessions this calendar week against the weekly goal."""
        now = now or utcnow()
        start = start_of_week(now, self.tz, self.week_start)
        end = end_of_week(now, self.tz, self.week_start)

        sessions = await self.log.sessions(user_id)
        count = sum(1 for s in sessions if start <= s.timestamp <= end)
        goal = (await self.state(user_id)).weekly_goal

        percent = min(100.0, count / goal * 100) if goal > 0 else 0.0
        return WeeklyProgress(
            count=count,
            goal=goal,
            percent=percent,
            remaining=max(0, goal - count),
        )


def replay_sessions(
    sessions: Iterable[GuidedSessionRecord], tz: tzinfo, weekly_goal: int
) -> StreakState:
    """Fold a session log into a StreakState, oldest first."""
    state = StreakState(weekly_goal=weekly_goal)
    for record in sorted(sessions, key=lambda s: s.timestamp):
        state = state.advance(local_date(record.timestamp, tz), record.duration_minutes)
    return state


def longest_completed_run(records: Iterable[HabitCompletionRecord]) -> int:
    """Longest run of consecutive completed records, in date order."""
    longest = current = 0
    for record in sorted(records, key=lambda r: r.timestamp):
        if record.completed:
            current += 1
            longest = max(longest, current)
        else:
            current = 0
    return longest


def habit_streak_percentages(
    records: Iterable[HabitCompletionRecord], window_days: int = 7
) -> dict[str, int]:
    """Per-habit longest streak as a share of the reference window, capped at 100."""
    groups: dict[str, list[HabitCompletionRecord]] = defaultdict(list)
    for record in records:
        groups[record.habit_name].append(record)

    return {
        name: min(100, round_half_up(longest_completed_run(entries) / window_days * 100))
        for name, entries in groups.items()
    }
