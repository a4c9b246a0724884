"""Typed access to the per-user activity collections."""

from collections.abc import Sequence
from datetime import datetime, tzinfo
from typing import TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from soulsync.adapters.base import BaseStoreAdapter, StoreReadError
from soulsync.collections import Collection, collection_key
from soulsync.config.settings import settings
from soulsync.dates import local_date, resolve_timezone
from soulsync.models import (
    ExerciseType,
    FavoriteExercise,
    GuidedSessionRecord,
    HabitCompletionRecord,
    JournalEntryRecord,
    MoodRecord,
    MoodValue,
    StreakState,
    utcnow,
)

logger = structlog.get_logger()

RecordT = TypeVar("RecordT", bound=BaseModel)


class ActivityLog:
    """Reads and writes activity records through a store adapter.

    Handles:
    - Missing collections (read as empty)
    - Corrupt collections (read as empty, logged)
    - Malformed records (dropped, logged)
    - Same-day upserts for moods and habits
    """

    def __init__(self, store: BaseStoreAdapter, tz: str | tzinfo | None = None) -> None:
        self.store = store
        self.tz = resolve_timezone(tz or settings.timezone)

    async def read_records(
        self, collection: Collection, user_id: str, model: type[RecordT]
    ) -> list[RecordT]:
        """Load a collection as ``model`` instances, never raising on bad data."""
        key = collection_key(collection, user_id)
        try:
            raw = await self.store.read(key)
        except StoreReadError as e:
            logger.warning("Ignoring corrupt collection", key=key, error=e.message)
            return []

        if raw is None:
            return []

        records: list[RecordT] = []
        for index, item in enumerate(raw):
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                logger.warning(
                    "Dropping malformed record",
                    key=key,
                    index=index,
                    errors=e.error_count(),
                )
        return records

    async def write_records(
        self, collection: Collection, user_id: str, records: Sequence[BaseModel]
    ) -> None:
        key = collection_key(collection, user_id)
        await self.store.write(key, [r.model_dump(mode="json") for r in records])

    # Moods

    async def moods(self, user_id: str) -> list[MoodRecord]:
        return await self.read_records(Collection.MOODS, user_id, MoodRecord)

    async def log_mood(
        self,
        user_id: str,
        value: MoodValue,
        note: str | None = None,
        at: datetime | None = None,
    ) -> MoodRecord:
        """Record a mood, replacing any entry from the same calendar day."""
        at = at or utcnow()
        record = MoodRecord(value=value, note=note, timestamp=at)
        day = local_date(record.timestamp, self.tz)

        moods = await self.moods(user_id)
        for index, existing in enumerate(moods):
            if local_date(existing.timestamp, self.tz) == day:
                moods[index] = record.model_copy(update={"id": existing.id})
                record = moods[index]
                break
        else:
            moods.append(record)

        await self.write_records(Collection.MOODS, user_id, moods)
        logger.info("Logged mood", user=user_id, value=record.value.value, day=day.isoformat())
        return record

    async def todays_mood(self, user_id: str, now: datetime | None = None) -> MoodRecord | None:
        today = local_date(now or utcnow(), self.tz)
        for record in await self.moods(user_id):
            if local_date(record.timestamp, self.tz) == today:
                return record
        return None

    # Journal

    async def journal_entries(self, user_id: str) -> list[JournalEntryRecord]:
        return await self.read_records(Collection.JOURNAL, user_id, JournalEntryRecord)

    async def add_journal_entry(
        self,
        user_id: str,
        title: str,
        content: str = "",
        mood: MoodValue | None = None,
        tags: list[str] | None = None,
        at: datetime | None = None,
    ) -> JournalEntryRecord:
        entry = JournalEntryRecord(
            title=title,
            content=content,
            mood=mood,
            tags=tags or [],
            timestamp=at or utcnow(),
        )
        entries = await self.journal_entries(user_id)
        entries.append(entry)
        await self.write_records(Collection.JOURNAL, user_id, entries)
        return entry

    # Habits

    async def habits(self, user_id: str) -> list[HabitCompletionRecord]:
        return await self.read_records(Collection.HABITS, user_id, HabitCompletionRecord)

    async def record_habit(
        self,
        user_id: str,
        habit_name: str,
        completed: bool = True,
        target_days_per_week: int = 7,
        at: datetime | None = None,
    ) -> HabitCompletionRecord:
        """Set a habit's status for the calendar day of ``at``."""
        record = HabitCompletionRecord(
            habit_name=habit_name,
            completed=completed,
            target_days_per_week=target_days_per_week,
            timestamp=at or utcnow(),
        )
        day = local_date(record.timestamp, self.tz)

        habits = await self.habits(user_id)
        for index, existing in enumerate(habits):
            if existing.habit_name == habit_name and local_date(existing.timestamp, self.tz) == day:
                habits[index] = existing.model_copy(
                    update={
                        "completed": completed,
                        "target_days_per_week": target_days_per_week,
                    }
                )
                record = habits[index]
                break
        else:
            habits.append(record)

        await self.write_records(Collection.HABITS, user_id, habits)
        return record

    async def toggle_habit(self, user_id: str, record_id: str) -> HabitCompletionRecord | None:
        """Flip a habit day's ``completed`` flag; None if the record is unknown."""
        habits = await self.habits(user_id)
        for index, existing in enumerate(habits):
            if existing.id == record_id:
                habits[index] = existing.model_copy(update={"completed": not existing.completed})
                await self.write_records(Collection.HABITS, user_id, habits)
                return habits[index]
        return None

    # Guided sessions

    async def sessions(self, user_id: str) -> list[GuidedSessionRecord]:
        return await self.read_records(Collection.SESSIONS, user_id, GuidedSessionRecord)

    async def append_session(self, user_id: str, record: GuidedSessionRecord) -> None:
        sessions = await self.sessions(user_id)
        sessions.append(record)
        await self.write_records(Collection.SESSIONS, user_id, sessions)

    async def completed_exercises(self, user_id: str, exercise_type: ExerciseType) -> set[str]:
        """Ids of exercises of ``exercise_type`` finished at least once."""
        return {
            s.exercise_id for s in await self.sessions(user_id) if s.exercise_type == exercise_type
        }

    # Favorites

    async def favorites(self, user_id: str) -> list[FavoriteExercise]:
        return await self.read_records(Collection.FAVORITES, user_id, FavoriteExercise)

    async def toggle_favorite(
        self, user_id: str, exercise_id: str, exercise_type: ExerciseType
    ) -> bool:
        """Add or remove a favorite; returns True if it is now a favorite."""
        favorites = await self.favorites(user_id)
        remaining = [f for f in favorites if f.exercise_id != exercise_id]
        is_favorite = len(remaining) == len(favorites)
        if is_favorite:
            remaining.append(FavoriteExercise(exercise_id=exercise_id, exercise_type=exercise_type))
        await self.write_records(Collection.FAVORITES, user_id, remaining)
        return is_favorite

    # Streak aggregate

    async def load_streak_state(self, user_id: str) -> StreakState | None:
        states = await self.read_records(Collection.PROGRESS, user_id, StreakState)
        return states[-1] if states else None

    async def save_streak_state(self, user_id: str, state: StreakState) -> None:
        await self.write_records(Collection.PROGRESS, user_id, [state])

