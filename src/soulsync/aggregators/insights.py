"""Insights aggregator combining mood, journal, habit and session logs."""

from collections import Counter
from collections.abc import Sequence
from datetime import datetime, timedelta, tzinfo
from typing import Any

import structlog

from soulsync.adapters.activity import ActivityLog
from soulsync.aggregators.progress import habit_streak_percentages
from soulsync.collections import Collection, parse_collection_key
from soulsync.config.settings import settings
from soulsync.dates import (
    WEEKDAY_NAMES,
    WeekStart,
    clamp,
    end_of_week,
    local_date,
    round_half_up,
    start_of_week,
)
from soulsync.models import (
    MOOD_SCORES,
    CompositeInsight,
    GuidedSessionRecord,
    HabitCompletionRecord,
    HabitProgress,
    JournalEntryRecord,
    MoodRecord,
    WeeklySummary,
    utcnow,
)

logger = structlog.get_logger()

TREND_LIMIT = 50

# Cached insights older than this are recomputed on read
LATEST_MAX_AGE = timedelta(hours=1)

# Collections whose changes affect insights
WATCHED_COLLECTIONS = {
    Collection.MOODS,
    Collection.JOURNAL,
    Collection.HABITS,
    Collection.SESSIONS,
}


class InsightsAggregator:
    """Aggregates weekly wellbeing insights from the activity logs.

    Combines:
    - Mood trend (trailing week vs the week before)
    - Journal consistency (days journaled)
    - Habit streaks (longest completed run per habit)
    - Activity level (weighted blend of the above signals)

    Every log may be missing; each metric then falls back to zero.
    """

    def __init__(
        self,
        log: ActivityLog,
        window_days: int | None = None,
        week_start: WeekStart | None = None,
    ) -> None:
        self.log = log
        self.tz = log.tz
        self.window_days = window_days or settings.insights.window_days
        self.week_start: WeekStart = week_start or settings.progress.week_start
        self.latest: dict[str, CompositeInsight] = {}
        self.latest_as_of: dict[str, datetime] = {}

    async def get_insights(self, user_id: str, now: datetime | None = None) -> CompositeInsight:
        """Compute the CompositeInsight as of ``now``."""
        now = now or utcnow()
        moods = await self.log.moods(user_id)
        journals = await self.log.journal_entries(user_id)
        habits = await self.log.habits(user_id)
        return compute_insight(moods, journals, habits, now, self.tz, self.window_days)

    async def handle_change(self, collection_key: str) -> None:
        """Change-channel subscriber: recompute the user's latest insight."""
        parsed = parse_collection_key(collection_key)
        if parsed is None:
            return
        collection, user_id = parsed
        if collection not in WATCHED_COLLECTIONS:
            return
        await self._refresh_latest(user_id, utcnow())
        logger.debug("Insights recomputed", user=user_id, trigger=collection.value)

    async def latest_insight(
        self,
        user_id: str,
        now: datetime | None = None,
        max_age: timedelta = LATEST_MAX_AGE,
    ) -> CompositeInsight:
        """Insight from the last change notification, recomputed once stale.

        The trailing window moves even when nothing is written, so a cached
        result older than ``max_age`` is recomputed as of ``now``.
        """
        now = now or utcnow()
        as_of = self.latest_as_of.get(user_id)
        if as_of is not None and timedelta(0) <= now - as_of <= max_age:
            return self.latest[user_id]
        return await self._refresh_latest(user_id, now)

    async def _refresh_latest(self, user_id: str, now: datetime) -> CompositeInsight:
        insight = await self.get_insights(user_id, now)
        self.latest[user_id] = insight
        self.latest_as_of[user_id] = now
        return insight

    async def get_weekly_summary(
        self, user_id: str, now: datetime | None = None
    ) -> WeeklySummary:
        """Headline numbers for the calendar week containing ``now``."""
        now = now or utcnow()
        start, end = self._calendar_week(now)

        moods = [m for m in await self.log.moods(user_id) if start <= m.timestamp <= end]
        journals = [
            j for j in await self.log.journal_entries(user_id) if start <= j.timestamp <= end
        ]
        sessions = [s for s in await self.log.sessions(user_id) if start <= s.timestamp <= end]
        progress = habit_progress(await self.log.habits(user_id), start, end)

        completed = sum(p.completed for p in progress)
        total = sum(p.total for p in progress)
        return WeeklySummary(
            mood_average=mood_average_label(moods),
            journal_entries=len(journals),
            completed_habits=f"{completed}/{total}",
            mindfulness_minutes=mindfulness_minutes(sessions),
        )

    async def get_habit_progress(
        self, user_id: str, now: datetime | None = None
    ) -> list[HabitProgress]:
        start, end = self._calendar_week(now or utcnow())
        return habit_progress(await self.log.habits(user_id), start, end)

    async def get_report(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Everything the insights screen shows, as plain data.

        Returns:
            Insight metrics, weekly summary, mood breakdowns and habit progress.
        """
        now = now or utcnow()
        start, end = self._calendar_week(now)
        moods = await self.log.moods(user_id)

        report: dict[str, Any] = {
            "as_of": now.isoformat(),
            "week": {"start": start.date().isoformat(), "end": end.date().isoformat()},
        }
        report["insights"] = (await self.get_insights(user_id, now)).model_dump()
        report["summary"] = (await self.get_weekly_summary(user_id, now)).model_dump()
        report["mood_distribution"] = mood_distribution(moods, now, days=31)
        report["weekly_mood_counts"] = weekly_mood_counts(moods, start, end, self.tz)
        report["habits"] = [p.model_dump() for p in await self.get_habit_progress(user_id, now)]
        return report

    def _calendar_week(self, now: datetime) -> tuple[datetime, datetime]:
        return (
            start_of_week(now, self.tz, self.week_start),
            end_of_week(now, self.tz, self.week_start),
        )


def compute_insight(
    moods: Sequence[MoodRecord],
    journals: Sequence[JournalEntryRecord],
    habits: Sequence[HabitCompletionRecord],
    now: datetime,
    tz: tzinfo,
    window_days: int = 7,
) -> CompositeInsight:
    """Build a CompositeInsight from raw records. Any input may be empty."""
    return CompositeInsight(
        mood_trend_percent=mood_trend(moods, now, window_days),
        journal_consistency_percent=journal_consistency(journals, now, tz, window_days),
        habit_streak_percent=habit_streak_percent(habits, window_days),
        activity_level_percent=activity_level(habits, journals, moods, now, tz, window_days),
    )


def _trailing(records: Sequence[Any], now: datetime, window_days: int) -> list[Any]:
    start = now - timedelta(days=window_days)
    return [r for r in records if start <= r.timestamp <= now]


def _distinct_days(records: Sequence[Any], tz: tzinfo) -> int:
    return len({local_date(r.timestamp, tz) for r in records})


def _day_share(days: int, window_days: int) -> int:
    # the trailing window can touch one more calendar date than it has days
    return min(100, round_half_up(days / window_days * 100))


def _mean_score(moods: Sequence[MoodRecord]) -> float:
    if not moods:
        return 0.0
    return sum(MOOD_SCORES[m.value] for m in moods) / len(moods)


def mood_trend(moods: Sequence[MoodRecord], now: datetime, window_days: int = 7) -> int:
    """Percent change of mean mood score, trailing window vs the one before.

    Always within [-50, 50].
    """
    window = timedelta(days=window_days)
    recent = [m for m in moods if now - window <= m.timestamp <= now]
    prior = [m for m in moods if now - 2 * window <= m.timestamp < now - window]

    recent_mean = _mean_score(recent)
    prior_mean = _mean_score(prior)
    if prior_mean == 0:
        trend = 100 if recent_mean > 0 else 0
    else:
        trend = round_half_up((recent_mean - prior_mean) / prior_mean * 100)
    return clamp(trend, -TREND_LIMIT, TREND_LIMIT)


def journal_consistency(
    journals: Sequence[JournalEntryRecord], now: datetime, tz: tzinfo, window_days: int = 7
) -> int:
    """Share of the trailing window's days with at least one journal entry."""
    days = _distinct_days(_trailing(journals, now, window_days), tz)
    return _day_share(days, window_days)


def habit_streak_percent(habits: Sequence[HabitCompletionRecord], window_days: int = 7) -> int:
    """Mean of the per-habit streak percentages; 0 without habits."""
    percentages = habit_streak_percentages(habits, window_days)
    if not percentages:
        return 0
    return round_half_up(sum(percentages.values()) / len(percentages))


def activity_level(
    habits: Sequence[HabitCompletionRecord],
    journals: Sequence[JournalEntryRecord],
    moods: Sequence[MoodRecord],
    now: datetime,
    tz: tzinfo,
    window_days: int = 7,
) -> int:
    """Weighted blend: habits 50%, journal 30%, mood check-ins 20%.

    Users without any habit records get a simpler estimate from their mood
    and journal activity over the trailing window.
    """
    recent_moods = _trailing(moods, now, window_days)
    recent_journals = _trailing(journals, now, window_days)

    if not habits:
        return min(100, len(recent_moods) * 10 + len(recent_journals) * 15)

    recent_habits = _trailing(habits, now, window_days)
    if recent_habits:
        completed = sum(1 for h in recent_habits if h.completed)
        habit_rate = round_half_up(completed / len(recent_habits) * 100)
    else:
        habit_rate = 0

    journal_rate = _day_share(_distinct_days(recent_journals, tz), window_days)
    mood_rate = _day_share(_distinct_days(recent_moods, tz), window_days)

    level = round_half_up(habit_rate * 0.5 + journal_rate * 0.3 + mood_rate * 0.2)
    return clamp(level, 0, 100)


def mood_average_label(moods: Sequence[MoodRecord]) -> str:
    """Name of the mood closest to the mean score."""
    if not moods:
        return "No Data"
    average = _mean_score(moods)
    if average >= 4.5:
        return "Amazing"
    if average >= 3.5:
        return "Good"
    if average >= 2.5:
        return "Okay"
    if average >= 1.5:
        return "Sad"
    return "Awful"


def mood_distribution(
    moods: Sequence[MoodRecord], now: datetime, days: int = 31
) -> dict[str, int]:
    """Count of each mood value over the last ``days`` days."""
    counts = Counter(m.value.value for m in _trailing(moods, now, days))
    return dict(counts)


def weekly_mood_counts(
    moods: Sequence[MoodRecord], start: datetime, end: datetime, tz: tzinfo
) -> dict[str, int]:
    """Mood entries per weekday within [start, end], keyed in order from ``start``."""
    # isoweekday(): Monday == 1, Sunday == 7
    first = local_date(start, tz).isoweekday() % 7
    names = WEEKDAY_NAMES[first:] + WEEKDAY_NAMES[:first]
    counts = dict.fromkeys(names, 0)
    for mood in moods:
        if start <= mood.timestamp <= end:
            name = WEEKDAY_NAMES[local_date(mood.timestamp, tz).isoweekday() % 7]
            counts[name] += 1
    return counts


def habit_progress(
    habits: Sequence[HabitCompletionRecord], start: datetime, end: datetime
) -> list[HabitProgress]:
    """Per-habit completions within [start, end] against the weekly target."""
    tracker: dict[str, HabitProgress] = {}
    for habit in sorted(habits, key=lambda h: h.timestamp):
        if not start <= habit.timestamp <= end:
            continue
        entry = tracker.setdefault(
            habit.habit_name,
            HabitProgress(name=habit.habit_name, completed=0, total=habit.target_days_per_week),
        )
        entry.total = habit.target_days_per_week
        if habit.completed:
            entry.completed += 1
    return list(tracker.values())


def mindfulness_minutes(sessions: Sequence[GuidedSessionRecord]) -> int:
    return sum(s.duration_minutes for s in sessions)
