"""Tests for the insights aggregator."""

import json
from datetime import timedelta

from conftest import USER, at
from soulsync.aggregators.insights import (
    mood_average_label,
    mood_trend,
)
from soulsync.collections import Collection, collection_key
from soulsync.models import ExerciseType, GuidedSessionRecord, MoodRecord, MoodValue

NOW = at(2026, 10, 20)


async def log_week_of_moods(activity_log):
    """Good, Good, Amazing this week; Sad, Okay the week before."""
    await activity_log.log_mood(USER, MoodValue.GOOD, at=at(2026, 10, 18))
    await activity_log.log_mood(USER, MoodValue.GOOD, at=at(2026, 10, 19))
    await activity_log.log_mood(USER, MoodValue.AMAZING, at=at(2026, 10, 20, 9))
    await activity_log.log_mood(USER, MoodValue.SAD, at=at(2026, 10, 10))
    await activity_log.log_mood(USER, MoodValue.OKAY, at=at(2026, 10, 11))


class TestCompositeInsight:

    async def test_new_user_gets_zeros(self, insights):
        insight = await insights.get_insights("newcomer", NOW)

        assert insight.mood_trend_percent == 0
        assert insight.journal_consistency_percent == 0
        assert insight.habit_streak_percent == 0
        assert insight.activity_level_percent == 0

    async def test_mood_trend_is_clamped(self, insights, activity_log):
        # (4.33 - 2.5) / 2.5 = 73%
        await log_week_of_moods(activity_log)

        insight = await insights.get_insights(USER, NOW)
        assert insight.mood_trend_percent == 50

    async def test_journal_consistency_counts_distinct_days(self, insights, activity_log):
        for day, hour in ((15, 8), (15, 20), (17, 12), (19, 12), (1, 12)):
            await activity_log.add_journal_entry(USER, "Entry", at=at(2026, 10, day, hour))

        insight = await insights.get_insights(USER, NOW)
        assert insight.journal_consistency_percent == 43

    async def test_journal_consistency_is_capped(self, insights, activity_log):
        # The trailing window touches eight calendar dates
        for day in range(13, 21):
            await activity_log.add_journal_entry(USER, "Entry", at=at(2026, 10, day, 12))

        insight = await insights.get_insights(USER, NOW)
        assert insight.journal_consistency_percent == 100

    async def test_activity_without_habits(self, insights, activity_log):
        await activity_log.log_mood(USER, MoodValue.GOOD, at=at(2026, 10, 18))
        await activity_log.log_mood(USER, MoodValue.OKAY, at=at(2026, 10, 19))
        await activity_log.add_journal_entry(USER, "Entry", at=at(2026, 10, 19))

        insight = await insights.get_insights(USER, NOW)
        assert insight.activity_level_percent == 35

    async def test_activity_with_habits(self, insights, activity_log):
        for day, done in ((14, True), (15, True), (16, True), (17, False)):
            await activity_log.record_habit(USER, "meditate", done, at=at(2026, 10, day))
        for day in (15, 17, 19):
            await activity_log.add_journal_entry(USER, "Entry", at=at(2026, 10, day))
        await activity_log.log_mood(USER, MoodValue.GOOD, at=at(2026, 10, 18))
        await activity_log.log_mood(USER, MoodValue.GOOD, at=at(2026, 10, 19))

        insight = await insights.get_insights(USER, NOW)
        # habits 75, journal 43, moods 29
        assert insight.activity_level_percent == 56
        assert insight.habit_streak_percent == 43

    async def test_metrics_stay_in_bounds(self, insights, activity_log):
        for day in range(1, 21):
            await activity_log.log_mood(USER, MoodValue.AMAZING, at=at(2026, 10, day))
            await activity_log.add_journal_entry(USER, "Entry", at=at(2026, 10, day))
            await activity_log.record_habit(USER, "walk", True, at=at(2026, 10, day))

        insight = await insights.get_insights(USER, NOW)
        assert -50 <= insight.mood_trend_percent <= 50
        for value in (
            insight.journal_consistency_percent,
            insight.habit_streak_percent,
            insight.activity_level_percent,
        ):
            assert 0 <= value <= 100
        assert insight.habit_streak_percent == 100

    async def test_corrupt_collection_reads_as_empty(self, insights, store):
        await store.write_raw(collection_key(Collection.MOODS, USER), "{not json")
        await store.write_raw(collection_key(Collection.JOURNAL, USER), '{"title": "x"}')

        insight = await insights.get_insights(USER, NOW)
        assert insight.mood_trend_percent == 0
        assert insight.journal_consistency_percent == 0

    async def test_malformed_records_are_dropped(self, insights, store, activity_log):
        records = [
            {"value": "good", "timestamp": "2026-10-19T12:00:00+00:00"},
            {"value": "ecstatic", "timestamp": "2026-10-18T12:00:00+00:00"},
            {"note": "no value"},
        ]
        await store.write_raw(collection_key(Collection.MOODS, USER), json.dumps(records))

        moods = await activity_log.moods(USER)
        assert [m.value for m in moods] == [MoodValue.GOOD]
        assert (await insights.get_insights(USER, NOW)).mood_trend_percent == 50

    async def test_change_notifications_refresh_latest(self, insights, activity_log, store):
        store.channel.subscribe(insights.handle_change)
        await activity_log.log_mood(USER, MoodValue.GOOD)

        assert USER in insights.latest

    async def test_latest_is_recomputed_once_stale(self, insights, activity_log):
        await log_week_of_moods(activity_log)

        first = await insights.latest_insight(USER, now=NOW)
        assert first.mood_trend_percent > 0
        assert await insights.latest_insight(USER, now=NOW + timedelta(minutes=30)) is first

        later = NOW + timedelta(days=30)
        stale = await insights.latest_insight(USER, now=later)
        assert stale.mood_trend_percent == 0
        assert insights.latest_as_of[USER] == later
        assert insights.latest[USER] is stale

    async def test_unwatched_collections_are_ignored(self, insights):
        await insights.handle_change(collection_key(Collection.FAVORITES, USER))
        await insights.handle_change("unrelated_key")
        assert insights.latest == {}


class TestMoodTrend:

    def mood(self, value, day):
        return MoodRecord(value=value, timestamp=at(2026, 10, day))

    def test_improvement_within_limits(self):
        moods = [self.mood(MoodValue.GOOD, 19), self.mood(MoodValue.OKAY, 11)]
        assert mood_trend(moods, NOW) == 33

    def test_decline_is_clamped(self):
        moods = [self.mood(MoodValue.SAD, 19), self.mood(MoodValue.GOOD, 11)]
        assert mood_trend(moods, NOW) == -50

    def test_no_prior_week(self):
        assert mood_trend([self.mood(MoodValue.OKAY, 19)], NOW) == 50
        assert mood_trend([], NOW) == 0

    def test_window_start_is_inclusive(self):
        moods = [self.mood(MoodValue.GOOD, 13), self.mood(MoodValue.OKAY, 6)]
        assert mood_trend(moods, NOW) == 33

    def test_average_labels(self):
        assert mood_average_label([]) == "No Data"
        assert mood_average_label([self.mood(MoodValue.AMAZING, 1)]) == "Amazing"
        assert mood_average_label(
            [self.mood(MoodValue.GOOD, 1), self.mood(MoodValue.AMAZING, 2)]
        ) == "Amazing"
        assert mood_average_label([self.mood(MoodValue.AWFUL, 1)]) == "Awful"


class TestWeeklyReport:

    async def seed(self, activity_log):
        await log_week_of_moods(activity_log)
        await activity_log.add_journal_entry(USER, "Monday", at=at(2026, 10, 19))
        for day, done in ((18, True), (19, True), (20, False)):
            await activity_log.record_habit(
                USER, "meditate", done, target_days_per_week=5, at=at(2026, 10, day)
            )
        for day, minutes in ((16, 5), (19, 5), (20, 10)):
            await activity_log.append_session(
                USER,
                GuidedSessionRecord(
                    exercise_id="box-breathing",
                    exercise_type=ExerciseType.BREATHING,
                    duration_minutes=minutes,
                    timestamp=at(2026, 10, day, 7),
                ),
            )

    async def test_weekly_summary(self, insights, activity_log):
        await self.seed(activity_log)

        summary = await insights.get_weekly_summary(USER, NOW)
        assert summary.mood_average == "Good"
        assert summary.journal_entries == 1
        assert summary.completed_habits == "2/5"
        assert summary.mindfulness_minutes == 15

    async def test_report(self, insights, activity_log):
        await self.seed(activity_log)

        report = await insights.get_report(USER, NOW)
        assert report["week"] == {"start": "2026-10-18", "end": "2026-10-24"}
        assert report["insights"]["mood_trend_percent"] == 50
        assert report["mood_distribution"] == {"good": 2, "amazing": 1, "sad": 1, "okay": 1}
        assert list(report["weekly_mood_counts"]) == [
            "Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"
        ]
        assert report["weekly_mood_counts"]["Sun"] == 1
        assert report["weekly_mood_counts"]["Tue"] == 1
        assert report["habits"] == [{"name": "meditate", "completed": 2, "total": 5}]
