"""Tests for streak and weekly goal tracking."""

from datetime import date

import pytest

from conftest import USER, at
from soulsync.aggregators import ProgressTracker, habit_streak_percentages, longest_completed_run
from soulsync.models import (
    ExerciseType,
    GuidedSessionRecord,
    HabitCompletionRecord,
    StreakState,
)


def session_on(day, minutes=5, exercise_id="box-breathing", hour=12):
    return GuidedSessionRecord(
        exercise_id=exercise_id,
        exercise_type=ExerciseType.BREATHING,
        duration_minutes=minutes,
        timestamp=at(2026, 10, day, hour),
    )


class TestStreakState:

    def test_first_session_starts_streak(self):
        state = StreakState().advance(date(2026, 10, 1), 5)
        assert state.current_streak == 1
        assert state.best_streak == 1
        assert state.total_sessions == 1
        assert state.total_minutes == 5
        assert state.last_session_date == date(2026, 10, 1)

    def test_consecutive_days_extend_streak(self):
        state = StreakState()
        for day in (1, 2, 3):
            state = state.advance(date(2026, 10, day), 5)
        assert state.current_streak == 3
        assert state.best_streak == 3

    def test_gap_resets_streak_but_keeps_best(self):
        state = StreakState()
        for day in (1, 2, 3, 6):
            state = state.advance(date(2026, 10, day), 5)
        assert state.current_streak == 1
        assert state.best_streak == 3
        assert state.total_sessions == 4

    def test_same_day_counts_session_not_streak(self):
        state = StreakState().advance(date(2026, 10, 1), 5).advance(date(2026, 10, 1), 10)
        assert state.current_streak == 1
        assert state.total_sessions == 2
        assert state.total_minutes == 15

    def test_earlier_day_does_not_move_last_date(self):
        state = StreakState().advance(date(2026, 10, 5), 5).advance(date(2026, 10, 3), 5)
        assert state.last_session_date == date(2026, 10, 5)
        assert state.current_streak == 1

    def test_best_streak_never_decreases(self):
        state = StreakState()
        best = []
        for day in (1, 2, 3, 4, 8, 9, 20):
            state = state.advance(date(2026, 10, day), 5)
            best.append(state.best_streak)
        assert best == sorted(best)
        assert state.best_streak == 4


class TestProgressTracker:

    async def test_ingest_extends_streak_past_best(self, tracker):
        for day in (16, 17, 18):
            await tracker.ingest_completion(USER, session_on(day))
        await tracker.ingest_completion(USER, session_on(10))  # arrives out of order

        state = await tracker.ingest_completion(USER, session_on(19, minutes=10))
        assert state.current_streak == 4
        assert state.best_streak == 4
        assert state.total_sessions == 5
        assert state.total_minutes == 30

    async def test_ingest_persists_log_and_aggregate(self, tracker, activity_log):
        await tracker.ingest_completion(USER, session_on(18))

        assert len(await activity_log.sessions(USER)) == 1
        stored = await activity_log.load_streak_state(USER)
        assert stored.total_sessions == 1
        assert tracker.views[USER] == stored

    async def test_state_for_new_user(self, tracker):
        state = await tracker.state("nobody")
        assert state.current_streak == 0
        assert state.total_sessions == 0
        assert state.weekly_goal == 3

    async def test_rebuild_matches_incremental(self, tracker):
        for day in (1, 2, 4, 5, 6, 6, 9):
            await tracker.ingest_completion(USER, session_on(day))

        assert await tracker.rebuild(USER) == await tracker.state(USER)

    async def test_backdated_completion_matches_rebuild(self, tracker):
        for day in (5, 3, 4):
            await tracker.ingest_completion(USER, session_on(day))

        state = await tracker.state(USER)
        assert state == await tracker.rebuild(USER)
        assert state.current_streak == 3
        assert state.best_streak == 3
        assert state.last_session_date == date(2026, 10, 5)

    async def test_external_writes_are_reconciled(self, tracker, activity_log, store):
        store.channel.subscribe(tracker.handle_change)
        await tracker.ingest_completion(USER, session_on(17))

        # Written straight to the log, bypassing the tracker
        await activity_log.append_session(USER, session_on(18))

        state = await tracker.state(USER)
        assert state.total_sessions == 2
        assert state.current_streak == 2

    async def test_subscribed_ingest_does_not_double_count(self, tracker, store):
        store.channel.subscribe(tracker.handle_change)
        await tracker.ingest_completion(USER, session_on(17))
        state = await tracker.ingest_completion(USER, session_on(18))

        assert state.total_sessions == 2
        assert (await tracker.state(USER)).total_sessions == 2

    async def test_weekly_progress_uses_calendar_week(self, tracker):
        # Sunday 18 Oct to Saturday 24 Oct 2026
        for day in (17, 18, 19):
            await tracker.ingest_completion(USER, session_on(day))

        progress = await tracker.weekly_progress(USER, now=at(2026, 10, 20))
        assert progress.count == 2
        assert progress.goal == 3
        assert progress.percent == pytest.approx(66.67, abs=0.01)
        assert progress.remaining == 1
        assert not progress.goal_met

    async def test_weekly_progress_monday_weeks(self, activity_log):
        tracker = ProgressTracker(activity_log, default_weekly_goal=3, week_start="monday")
        for day in (17, 18, 19):
            await tracker.ingest_completion(USER, session_on(day))

        progress = await tracker.weekly_progress(USER, now=at(2026, 10, 20))
        assert progress.count == 1

    async def test_weekly_progress_caps_at_goal(self, tracker):
        await tracker.set_weekly_goal(USER, 2)
        for hour in (8, 12, 18):
            await tracker.ingest_completion(USER, session_on(19, hour=hour))

        progress = await tracker.weekly_progress(USER, now=at(2026, 10, 20))
        assert progress.count == 3
        assert progress.percent == 100
        assert progress.remaining == 0
        assert progress.goal_met

    async def test_weekly_goal_must_be_positive(self, tracker):
        with pytest.raises(ValueError):
            await tracker.set_weekly_goal(USER, 0)

    async def test_goal_survives_rebuild(self, tracker, store):
        store.channel.subscribe(tracker.handle_change)
        await tracker.set_weekly_goal(USER, 5)
        await tracker.ingest_completion(USER, session_on(18))

        assert (await tracker.rebuild(USER)).weekly_goal == 5


class TestHabitStreaks:

    def habit_days(self, pattern, name="meditate"):
        return [
            HabitCompletionRecord(habit_name=name, completed=done, timestamp=at(2026, 10, day))
            for day, done in zip(range(10, 10 + len(pattern)), pattern)
        ]

    def test_longest_run(self):
        records = self.habit_days([True, True, False, True, True, True, True])
        assert longest_completed_run(records) == 4

    def test_longest_run_sorts_by_date(self):
        records = self.habit_days([True, True, False, True, True, True, True])
        assert longest_completed_run(list(reversed(records))) == 4

    def test_percentage_per_habit(self):
        records = self.habit_days([True, True, False, True, True, True, True])
        records += self.habit_days([True] * 10, name="walk")

        percentages = habit_streak_percentages(records)
        assert percentages == {"meditate": 57, "walk": 100}

    def test_no_habits(self):
        assert habit_streak_percentages([]) == {}
