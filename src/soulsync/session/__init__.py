"""Guided breathing and mindfulness sessions."""

from soulsync.session.clock import LoopScheduler, ManualScheduler, Scheduler
from soulsync.session.driver import (
    BreathingPhase,
    GuidedSession,
    SessionCompletion,
    SessionError,
    SessionSnapshot,
    SessionStartError,
    SessionStatus,
    create_session,
)
from soulsync.session.exercises import (
    BreathingExercise,
    BreathingPattern,
    ExerciseCatalog,
    MindfulnessExercise,
    MindfulnessStep,
    load_catalog,
)

__all__ = [
    # Clock
    "Scheduler",
    "LoopScheduler",
    "ManualScheduler",
    # Driver
    "GuidedSession",
    "SessionStatus",
    "BreathingPhase",
    "SessionCompletion",
    "SessionSnapshot",
    "SessionError",
    "SessionStartError",
    "create_session",
    # Exercises
    "BreathingExercise",
    "BreathingPattern",
    "MindfulnessExercise",
    "MindfulnessStep",
    "ExerciseCatalog",
    "load_catalog",
]
