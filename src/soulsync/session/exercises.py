"""Guided exercise definitions and the built-in catalog."""

from importlib import resources
from pathlib import Path
from typing import Annotated, Any, Literal

import structlog
import yaml
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from soulsync.config.settings import settings
from soulsync.models import ExerciseType

logger = structlog.get_logger()


class BreathingPattern(BaseModel):
    """Seconds spent in each phase of one breath."""

    inhale: float = Field(gt=0)
    hold_in: float = Field(default=0, ge=0)
    exhale: float = Field(gt=0)
    hold_out: float = Field(default=0, ge=0)

    @property
    def cycle_seconds(self) -> float:
        return self.inhale + self.hold_in + self.exhale + self.hold_out


class BreathingExercise(BaseModel):
    exercise_type: Literal["breathing"] = "breathing"
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    level: str = "beginner"
    duration_minutes: int = Field(gt=0)
    pattern: BreathingPattern


class MindfulnessStep(BaseModel):
    title: str
    instruction: str = ""
    duration_seconds: float = Field(gt=0)


class MindfulnessExercise(BaseModel):
    exercise_type: Literal["mindfulness"] = "mindfulness"
    id: str = Field(min_length=1)
    name: str
    description: str = ""
    focus: str = ""
    level: str = "beginner"
    duration_minutes: int = Field(gt=0)
    steps: list[MindfulnessStep] = Field(min_length=1)


ExerciseDefinition = Annotated[
    BreathingExercise | MindfulnessExercise, Field(discriminator="exercise_type")
]

_definition_adapter: TypeAdapter[BreathingExercise | MindfulnessExercise] = TypeAdapter(
    ExerciseDefinition
)


def parse_exercise(data: Any) -> BreathingExercise | MindfulnessExercise:
    """Validate a raw exercise definition.

    Raises:
        pydantic.ValidationError: If the definition is malformed.
    """
    if isinstance(data, (BreathingExercise, MindfulnessExercise)):
        return data
    return _definition_adapter.validate_python(data)


class ExerciseCatalog:
    """Lookup of exercise definitions by id."""

    def __init__(self, exercises: list[BreathingExercise | MindfulnessExercise]) -> None:
        self._exercises = {exercise.id: exercise for exercise in exercises}

    def __len__(self) -> int:
        return len(self._exercises)

    def __contains__(self, exercise_id: object) -> bool:
        return exercise_id in self._exercises

    def get(self, exercise_id: str) -> BreathingExercise | MindfulnessExercise | None:
        return self._exercises.get(exercise_id)

    def all(self) -> list[BreathingExercise | MindfulnessExercise]:
        return list(self._exercises.values())

    def by_type(
        self, exercise_type: ExerciseType
    ) -> list[BreathingExercise | MindfulnessExercise]:
        return [e for e in self._exercises.values() if e.exercise_type == exercise_type]


def load_catalog(path: Path | None = None) -> ExerciseCatalog:
    """Load exercises from YAML.

    Args:
        path: Catalog file; defaults to ``SESSION_EXERCISE_CATALOG`` or the
            packaged catalog.

    Invalid entries are skipped and logged so one bad exercise does not hide
    the rest.
    """
    path = path or settings.session.exercise_catalog
    if path is not None:
        text = path.expanduser().read_text(encoding="utf-8")
    else:
        text = resources.files("soulsync.session").joinpath("catalog.yaml").read_text(
            encoding="utf-8"
        )

    data = yaml.safe_load(text) or {}
    entries = data.get("exercises") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        logger.warning("Exercise catalog has no exercises list", path=str(path) if path else None)
        return ExerciseCatalog([])

    exercises = []
    for entry in entries:
        try:
            exercises.append(parse_exercise(entry))
        except ValidationError as e:
            logger.warning(
                "Skipping invalid exercise",
                exercise=entry.get("id") if isinstance(entry, dict) else None,
                errors=e.error_count(),
            )
    return ExerciseCatalog(exercises)
