"""Activity records and derived wellness state."""

from datetime import date, datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ActivityKind(str, Enum):
    """Kinds of logged activity."""

    MOOD = "mood"
    JOURNAL_ENTRY = "journal_entry"
    HABIT_COMPLETION = "habit_completion"
    GUIDED_SESSION = "guided_session"


class MoodValue(str, Enum):
    """Mood scale, best to worst."""

    AMAZING = "amazing"
    GOOD = "good"
    OKAY = "okay"
    SAD = "sad"
    AWFUL = "awful"


MOOD_SCORES: dict[MoodValue, int] = {
    MoodValue.AMAZING: 5,
    MoodValue.GOOD: 4,
    MoodValue.OKAY: 3,
    MoodValue.SAD: 2,
    MoodValue.AWFUL: 1,
}


class ExerciseType(str, Enum):
    """Guided exercise families."""

    BREATHING = "breathing"
    MINDFULNESS = "mindfulness"


def new_event_id() -> str:
    """Generate an opaque record identifier."""
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ActivityEvent(BaseModel):
    """Shared shape of every logged activity.

    ``timestamp`` is when the activity happened. Naive timestamps are
    read as UTC so records written by older clients stay comparable.
    """

    model_config = ConfigDict(extra="ignore")

    id: str = Field(default_factory=new_event_id)
    timestamp: datetime = Field(default_factory=utcnow)
    kind: ActivityKind

    @field_validator("timestamp")
    @classmethod
    def _ensure_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


class MoodRecord(ActivityEvent):
    """One mood check-in. At most one per user per calendar day."""

    kind: ActivityKind = ActivityKind.MOOD
    value: MoodValue
    note: str | None = None


class JournalEntryRecord(ActivityEvent):
    """A journal entry."""

    kind: ActivityKind = ActivityKind.JOURNAL_ENTRY
    title: str
    content: str = ""
    mood: MoodValue | None = None
    tags: list[str] = Field(default_factory=list)


class HabitCompletionRecord(ActivityEvent):
    """One calendar day's status for a named habit."""

    kind: ActivityKind = ActivityKind.HABIT_COMPLETION
    habit_name: str
    completed: bool = False
    target_days_per_week: int = Field(default=7, ge=1, le=7)


class GuidedSessionRecord(ActivityEvent):
    """A completed (or stopped) guided exercise and its credited minutes."""

    kind: ActivityKind = ActivityKind.GUIDED_SESSION
    exercise_id: str
    exercise_type: ExerciseType
    duration_minutes: int = Field(ge=0)


class FavoriteExercise(BaseModel):
    """A bookmarked exercise."""

    exercise_id: str
    exercise_type: ExerciseType


class StreakState(BaseModel):
    """Running session totals and day streaks.

    Derived from the guided-session log; the stored copy is a cache that
    can always be rebuilt by replaying the log.
    """

    current_streak: int = 0
    best_streak: int = 0
    total_sessions: int = 0
    total_minutes: int = 0
    weekly_goal: int = Field(default=3, ge=1)
    last_session_date: date | None = None

    def advance(self, session_date: date, duration_minutes: int) -> "StreakState":
        """Return the state after one more completion on ``session_date``."""
        current = self.current_streak
        if self.last_session_date is None:
            current = 1
        else:
            gap = (session_date - self.last_session_date).days
            if gap == 1:
                current += 1
            elif gap > 1:
                current = 1
            elif current == 0:
                current = 1
            # same day or an out-of-order earlier day leaves the streak alone

        last_date = self.last_session_date
        if last_date is None or session_date > last_date:
            last_date = session_date

        return self.model_copy(
            update={
                "current_streak": current,
                "best_streak": max(self.best_streak, current),
                "total_sessions": self.total_sessions + 1,
                "total_minutes": self.total_minutes + duration_minutes,
                "last_session_date": last_date,
            }
        )


class WeeklyProgress(BaseModel):
    """Sessions completed against the weekly goal."""

    count: int
    goal: int
    percent: float = Field(ge=0, le=100)
    remaining: int = Field(ge=0)

    @property
    def goal_met(self) -> bool:
        return self.count >= self.goal


class CompositeInsight(BaseModel):
    """Weekly wellbeing metrics, recomputed per query and never stored."""

    mood_trend_percent: int = Field(default=0, ge=-50, le=50)
    journal_consistency_percent: int = Field(default=0, ge=0, le=100)
    habit_streak_percent: int = Field(default=0, ge=0, le=100)
    activity_level_percent: int = Field(default=0, ge=0, le=100)


class HabitProgress(BaseModel):
    """A habit's completions within one calendar week."""

    name: str
    completed: int
    total: int


class WeeklySummary(BaseModel):
    """Headline numbers for the calendar week."""

    mood_average: str
    journal_entries: int
    completed_habits: str
    mindfulness_minutes: int
