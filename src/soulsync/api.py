"""SoulSync API server for dashboards and companion apps."""

from collections.abc import Callable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from soulsync.engine import WellnessEngine
from soulsync.models import (
    CompositeInsight,
    ExerciseType,
    HabitCompletionRecord,
    JournalEntryRecord,
    MoodRecord,
    MoodValue,
    StreakState,
    utcnow,
)
from soulsync.session import SessionCompletion

logger = structlog.get_logger()

UserQuery = Query(None, alias="user", description="User id. Defaults to SOULSYNC_USER.")


class MoodRequest(BaseModel):
    value: MoodValue
    note: str | None = None
    user_id: str | None = None


class HabitRequest(BaseModel):
    habit_name: str = Field(min_length=1)
    completed: bool = True
    target_days_per_week: int = Field(default=7, ge=1, le=7)
    user_id: str | None = None


class JournalRequest(BaseModel):
    title: str = Field(min_length=1)
    content: str = ""
    mood: MoodValue | None = None
    tags: list[str] = Field(default_factory=list)
    user_id: str | None = None


class SessionRequest(BaseModel):
    """A guided session finished on a client."""

    exercise_id: str
    stopped_early: bool = False
    completed_at: datetime | None = None
    user_id: str | None = None


class GoalRequest(BaseModel):
    weekly_goal: int = Field(ge=1)
    user_id: str | None = None


def create_app(engine_factory: Callable[[], WellnessEngine] | None = None) -> FastAPI:
    """Build the API around one engine opened for the app's lifetime."""
    engine_factory = engine_factory or (lambda: WellnessEngine(poll=True))

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        engine = engine_factory()
        await engine.open()
        app.state.engine = engine
        logger.info("API ready", store=engine.store.name)

        yield

        try:
            await engine.close()
        except Exception as e:
            logger.warning("Engine shutdown failed", error=str(e))

    app = FastAPI(
        title="SoulSync API",
        description="Guided sessions, streaks and wellbeing insights",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS for local development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def get_engine(request: Request) -> WellnessEngine:
        return request.app.state.engine

    def resolve_user(engine: WellnessEngine, user_id: str | None) -> str:
        return user_id or engine.config.default_user_id

    @app.get("/api/exercises")
    async def list_exercises(
        request: Request,
        exercise_type: ExerciseType | None = Query(None, alias="type"),
    ) -> list[dict[str, Any]]:
        """List the exercise catalog."""
        catalog = get_engine(request).catalog
        items = catalog.by_type(exercise_type) if exercise_type else catalog.all()
        return [exercise.model_dump(mode="json") for exercise in items]

    @app.get("/api/insights")
    async def get_insights(request: Request, user: str | None = UserQuery) -> dict[str, Any]:
        """Insight metrics, weekly summary and mood breakdowns."""
        engine = get_engine(request)
        return await engine.report(resolve_user(engine, user))

    @app.get("/api/insights/latest")
    async def get_latest_insight(
        request: Request, user: str | None = UserQuery
    ) -> CompositeInsight:
        """Insight as last recomputed by a change notification, refreshed when stale."""
        engine = get_engine(request)
        return await engine.insights_aggregator.latest_insight(resolve_user(engine, user))

    @app.get("/api/progress")
    async def get_progress(request: Request, user: str | None = UserQuery) -> dict[str, Any]:
        """Streak state and this week's goal progress."""
        engine = get_engine(request)
        user_id = resolve_user(engine, user)
        state = await engine.progress(user_id)
        weekly = await engine.weekly_progress(user_id)
        return {
            "streak": state.model_dump(mode="json"),
            "weekly": {**weekly.model_dump(), "goal_met": weekly.goal_met},
        }

    @app.put("/api/progress/goal")
    async def set_goal(request: Request, body: GoalRequest) -> StreakState:
        engine = get_engine(request)
        return await engine.set_weekly_goal(resolve_user(engine, body.user_id), body.weekly_goal)

    @app.post("/api/moods")
    async def log_mood(request: Request, body: MoodRequest) -> MoodRecord:
        """Log today's mood, replacing any earlier entry from today."""
        engine = get_engine(request)
        return await engine.log_mood(resolve_user(engine, body.user_id), body.value, note=body.note)

    @app.post("/api/habits")
    async def record_habit(request: Request, body: HabitRequest) -> HabitCompletionRecord:
        engine = get_engine(request)
        return await engine.record_habit(
            resolve_user(engine, body.user_id),
            body.habit_name,
            completed=body.completed,
            target_days_per_week=body.target_days_per_week,
        )

    @app.post("/api/habits/{record_id}/toggle")
    async def toggle_habit(
        request: Request, record_id: str, user: str | None = UserQuery
    ) -> HabitCompletionRecord:
        engine = get_engine(request)
        record = await engine.toggle_habit(resolve_user(engine, user), record_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"Unknown habit record {record_id}")
        return record

    @app.post("/api/journal")
    async def add_journal_entry(request: Request, body: JournalRequest) -> JournalEntryRecord:
        engine = get_engine(request)
        return await engine.add_journal_entry(
            resolve_user(engine, body.user_id),
            body.title,
            content=body.content,
            mood=body.mood,
            tags=body.tags,
        )

    @app.post("/api/sessions")
    async def record_session(request: Request, body: SessionRequest) -> StreakState:
        """Credit a session that ran on a client.

        Sessions are always credited with the exercise's nominal minutes.
        """
        engine = get_engine(request)
        exercise = engine.catalog.get(body.exercise_id)
        if exercise is None:
            raise HTTPException(status_code=404, detail=f"Unknown exercise {body.exercise_id}")

        completion = SessionCompletion(
            exercise_id=exercise.id,
            exercise_type=ExerciseType(exercise.exercise_type),
            duration_minutes=exercise.duration_minutes,
            stopped_early=body.stopped_early,
            message="",
        )
        return await engine.record_completion(
            resolve_user(engine, body.user_id), completion, at=body.completed_at
        )

    @app.post("/api/favorites/{exercise_id}")
    async def toggle_favorite(
        request: Request, exercise_id: str, user: str | None = UserQuery
    ) -> dict[str, Any]:
        engine = get_engine(request)
        if exercise_id not in engine.catalog:
            raise HTTPException(status_code=404, detail=f"Unknown exercise {exercise_id}")
        favorite = await engine.toggle_favorite(resolve_user(engine, user), exercise_id)
        return {"exercise_id": exercise_id, "favorite": favorite}

    @app.get("/api/status")
    async def get_status(request: Request) -> dict[str, Any]:
        """Store health and configuration."""
        engine = get_engine(request)
        try:
            healthy = await engine.store.health_check()
            status = {"connected": healthy, "status": "online" if healthy else "offline"}
        except Exception as e:
            status = {"connected": False, "status": "error", "error": str(e)}

        return {
            "store": {"backend": engine.store.name, **status},
            "exercises": len(engine.catalog),
            "polling": engine.poller is not None,
            "timestamp": utcnow().isoformat(),
        }

    return app


app = create_app()


def run_server(host: str = "0.0.0.0", port: int = 8000) -> None:
    """Run the API server."""
    import uvicorn

    uvicorn.run(app, host=host, port=port)


if __name__ == "__main__":
    run_server()
