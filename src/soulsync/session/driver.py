"""Guided session driver: paces breathing and mindfulness exercises."""

import functools
import math
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import structlog
from pydantic import ValidationError

from soulsync.models import ExerciseType
from soulsync.session.clock import Scheduler, TimerHandle
from soulsync.session.exercises import (
    BreathingExercise,
    MindfulnessExercise,
    parse_exercise,
)

logger = structlog.get_logger()

# Tolerance for float error when comparing elapsed seconds against boundaries
_EPSILON = 1e-6


class SessionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"


class BreathingPhase(str, Enum):
    INHALE = "inhale"
    HOLD_IN = "hold_in"
    EXHALE = "exhale"
    HOLD_OUT = "hold_out"


PHASE_LABELS = {
    BreathingPhase.INHALE: "Breathe in",
    BreathingPhase.HOLD_IN: "Hold",
    BreathingPhase.EXHALE: "Breathe out",
    BreathingPhase.HOLD_OUT: "Hold",
}


class SessionError(Exception):
    """Base exception for guided session errors."""

    pass


class SessionStartError(SessionError):
    """Raised when an exercise definition cannot be run."""

    pass


@dataclass(frozen=True)
class SessionCompletion:
    """Credit handed to the progress tracker when a session ends."""

    exercise_id: str
    exercise_type: ExerciseType
    duration_minutes: int
    stopped_early: bool
    message: str


@dataclass(frozen=True)
class SessionSnapshot:
    """Observable state of a session at one instant."""

    status: SessionStatus
    time_remaining: int
    elapsed_seconds: float
    progress_percent: float
    cycles: int
    phase: BreathingPhase | None = None
    phase_time_left: int = 0
    step_index: int | None = None
    step_title: str | None = None
    step_instruction: str | None = None

    @property
    def time_remaining_display(self) -> str:
        return format_clock(self.time_remaining)


def format_clock(seconds: int) -> str:
    """Format seconds as ``m:ss``."""
    minutes, secs = divmod(max(0, seconds), 60)
    return f"{minutes}:{secs:02d}"


CompletionCallback = Callable[[SessionCompletion], Any]
ChangeCallback = Callable[[SessionSnapshot], Any]


class GuidedSession:
    """State machine for one guided exercise.

    Time is always derived from the scheduler's clock: the session keeps the
    active seconds accumulated before the current run segment plus the
    instant the segment started. Phase, step, cycle count and the countdown
    are all computed from that elapsed time, so timer callbacks that arrive
    late (or not at all while the host was suspended) cannot make the
    session drift. Timers only decide when to look at the clock again.

    Two timers run while the session is active: a one-second countdown tick
    and a phase (or step) boundary timer. Every callback is tagged with the
    run generation it was armed in; ``pause``, ``reset`` and ``stop`` bump
    the generation so callbacks already queued become no-ops.
    """

    def __init__(
        self,
        exercise: BreathingExercise | MindfulnessExercise,
        scheduler: Scheduler,
        on_complete: CompletionCallback | None = None,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.exercise = exercise
        self.scheduler = scheduler
        self.on_complete = on_complete
        self.on_change = on_change

        self.total_seconds = exercise.duration_minutes * 60
        self._timeline = self._build_timeline(exercise)
        self._cycle_seconds = sum(seconds for _, seconds in self._timeline)

        self.status = SessionStatus.IDLE
        self._accumulated = 0.0
        self._segment_started: float | None = None
        self._offset = 0.0
        self._generation = 0
        self._tick_handle: TimerHandle | None = None
        self._phase_handle: TimerHandle | None = None
        self._last_position: int | None = None
        self.completion: SessionCompletion | None = None

        self.logger = logger.bind(session=exercise.id, exercise_type=exercise.exercise_type)

    @staticmethod
    def _build_timeline(
        exercise: BreathingExercise | MindfulnessExercise,
    ) -> list[tuple[Any, float]]:
        if isinstance(exercise, BreathingExercise):
            pattern = exercise.pattern
            phases = [
                (BreathingPhase.INHALE, pattern.inhale),
                (BreathingPhase.HOLD_IN, pattern.hold_in),
                (BreathingPhase.EXHALE, pattern.exhale),
                (BreathingPhase.HOLD_OUT, pattern.hold_out),
            ]
            return [(phase, seconds) for phase, seconds in phases if seconds > 0]
        return [(index, step.duration_seconds) for index, step in enumerate(exercise.steps)]

    @property
    def exercise_type(self) -> ExerciseType:
        return ExerciseType(self.exercise.exercise_type)

    @property
    def is_active(self) -> bool:
        return self.status in (SessionStatus.RUNNING, SessionStatus.PAUSED)

    # Clock arithmetic

    def elapsed(self) -> float:
        """Active seconds so far, capped at the session length."""
        elapsed = self._accumulated
        if self._segment_started is not None:
            elapsed += max(0.0, self.scheduler.time() - self._segment_started)
        return min(float(self.total_seconds), elapsed)

    def time_remaining(self) -> int:
        return max(0, self.total_seconds - math.floor(self.elapsed() + _EPSILON))

    def _locate(self, elapsed: float) -> tuple[int, int, float]:
        """Return (cycles, timeline index, seconds left in that entry)."""
        cycles, within = divmod(elapsed + self._offset, self._cycle_seconds)
        if within + _EPSILON >= self._cycle_seconds:
            cycles, within = cycles + 1, 0.0

        boundary = 0.0
        for index, (_, seconds) in enumerate(self._timeline):
            boundary += seconds
            if within + _EPSILON < boundary:
                return int(cycles), index, boundary - within
        return int(cycles) + 1, 0, self._timeline[0][1]

    def snapshot(self) -> SessionSnapshot:
        elapsed = self.elapsed()
        cycles, index, left = self._locate(elapsed)
        progress = elapsed / self.total_seconds * 100 if self.total_seconds else 100.0

        if isinstance(self.exercise, BreathingExercise):
            return SessionSnapshot(
                status=self.status,
                time_remaining=self.time_remaining(),
                elapsed_seconds=elapsed,
                progress_percent=min(100.0, progress),
                cycles=cycles,
                phase=self._timeline[index][0],
                phase_time_left=math.ceil(left - _EPSILON),
            )

        step = self.exercise.steps[index]
        return SessionSnapshot(
            status=self.status,
            time_remaining=self.time_remaining(),
            elapsed_seconds=elapsed,
            progress_percent=min(100.0, progress),
            cycles=cycles,
            phase_time_left=math.ceil(left - _EPSILON),
            step_index=index,
            step_title=step.title,
            step_instruction=step.instruction,
        )

    # Controls

    def start(self) -> None:
        """Begin pacing from the first phase or step."""
        if self.status != SessionStatus.IDLE:
            self.logger.debug("Start ignored", status=self.status.value)
            return
        self.status = SessionStatus.RUNNING
        self._segment_started = self.scheduler.time()
        self._arm()
        self.logger.info("Session started", duration_minutes=self.exercise.duration_minutes)
        self._emit_change()

    def pause(self) -> None:
        """Cancel pending timers and freeze elapsed time."""
        if self.status != SessionStatus.RUNNING:
            return
        if self._check_finished():
            return
        self._accumulated = self.elapsed()
        self._segment_started = None
        self._cancel_timers()
        self.status = SessionStatus.PAUSED
        self._emit_change()

    def resume(self) -> None:
        """Continue from where the session was paused."""
        if self.status != SessionStatus.PAUSED:
            return
        self.status = SessionStatus.RUNNING
        self._segment_started = self.scheduler.time()
        self._arm()
        self._emit_change()

    def toggle(self) -> None:
        """Play/pause button behaviour."""
        if self.status == SessionStatus.IDLE:
            self.start()
        elif self.status == SessionStatus.RUNNING:
            self.pause()
        elif self.status == SessionStatus.PAUSED:
            self.resume()

    def reset(self) -> None:
        """Return to the first phase or step with the full time remaining."""
        self._cancel_timers()
        self._accumulated = 0.0
        self._offset = 0.0
        self._last_position = None
        if self.status == SessionStatus.RUNNING:
            self._segment_started = self.scheduler.time()
            self._arm()
        else:
            self._segment_started = None
            if self.status in (SessionStatus.COMPLETED, SessionStatus.STOPPED):
                self.status = SessionStatus.IDLE
                self.completion = None
        self._emit_change()

    def stop(self) -> SessionCompletion | None:
        """End the session now.

        If any time was consumed, the completion is still credited with the
        exercise's nominal ``duration_minutes``.
        """
        if not self.is_active:
            return None
        if self._check_finished():
            return self.completion

        consumed = self.elapsed()
        self._accumulated = consumed
        self._segment_started = None
        self._cancel_timers()
        self.status = SessionStatus.STOPPED
        self.logger.info("Session stopped", elapsed_seconds=round(consumed, 1))

        if consumed <= 0:
            self._emit_change()
            return None
        return self._finish(stopped_early=True)

    def skip(self) -> None:
        """Jump to the next mindfulness step; skipping the last step completes."""
        if not isinstance(self.exercise, MindfulnessExercise):
            raise SessionError("Only mindfulness sessions have steps to skip")
        if not self.is_active:
            return

        _, index, left = self._locate(self.elapsed())
        if index == len(self._timeline) - 1:
            self._accumulated = self.elapsed()
            self._segment_started = None
            self._cancel_timers()
            self.status = SessionStatus.COMPLETED
            self._finish(stopped_early=False)
            return

        self._offset += left
        self._last_position = None
        if self.status == SessionStatus.RUNNING:
            self._cancel_timers()
            self._arm()
        self._emit_change()

    # Timers

    def _arm(self) -> None:
        elapsed = self.elapsed()
        generation = self._generation

        next_second = math.floor(elapsed + _EPSILON) + 1
        self._tick_handle = self.scheduler.call_later(
            next_second - elapsed, functools.partial(self._on_tick, generation)
        )

        _, _, left = self._locate(elapsed)
        self._phase_handle = self.scheduler.call_later(
            left, functools.partial(self._on_phase_boundary, generation)
        )
        self._last_position = self._position_key(elapsed)

    def _cancel_timers(self) -> None:
        self._generation += 1
        for handle in (self._tick_handle, self._phase_handle):
            if handle is not None:
                handle.cancel()
        self._tick_handle = None
        self._phase_handle = None

    def _position_key(self, elapsed: float) -> int:
        cycles, index, _ = self._locate(elapsed)
        return cycles * len(self._timeline) + index

    def _on_tick(self, generation: int) -> None:
        if generation != self._generation or self.status != SessionStatus.RUNNING:
            return
        if self._check_finished():
            return
        elapsed = self.elapsed()
        next_second = math.floor(elapsed + _EPSILON) + 1
        self._tick_handle = self.scheduler.call_later(
            next_second - elapsed, functools.partial(self._on_tick, generation)
        )
        self._emit_change()

    def _on_phase_boundary(self, generation: int) -> None:
        if generation != self._generation or self.status != SessionStatus.RUNNING:
            return
        if self._check_finished():
            return
        elapsed = self.elapsed()
        position = self._position_key(elapsed)
        if position != self._last_position:
            self._last_position = position
            snapshot = self.snapshot()
            self.logger.debug(
                "Phase changed",
                phase=snapshot.phase.value if snapshot.phase else None,
                step=snapshot.step_index,
                cycles=snapshot.cycles,
            )
        _, _, left = self._locate(elapsed)
        self._phase_handle = self.scheduler.call_later(
            left, functools.partial(self._on_phase_boundary, generation)
        )
        self._emit_change()

    def _check_finished(self) -> bool:
        """Complete the session if the clock says time is up."""
        if self.elapsed() + _EPSILON < self.total_seconds:
            return False
        self._accumulated = float(self.total_seconds)
        self._segment_started = None
        self._cancel_timers()
        self.status = SessionStatus.COMPLETED
        self._finish(stopped_early=False)
        return True

    def _finish(self, stopped_early: bool) -> SessionCompletion:
        kind = "Breathing" if self.exercise_type == ExerciseType.BREATHING else "Mindfulness"
        message = (
            f"{kind} session ended early. {self.exercise.duration_minutes} minutes logged."
            if stopped_early
            else f"{kind} session completed!"
        )
        self.completion = SessionCompletion(
            exercise_id=self.exercise.id,
            exercise_type=self.exercise_type,
            duration_minutes=self.exercise.duration_minutes,
            stopped_early=stopped_early,
            message=message,
        )
        self.logger.info(
            "Session finished",
            stopped_early=stopped_early,
            credited_minutes=self.exercise.duration_minutes,
        )
        self._emit_change()
        if self.on_complete is not None:
            try:
                self.on_complete(self.completion)
            except Exception as e:
                self.logger.error("Completion handler failed", error=str(e))
        return self.completion

    def _emit_change(self) -> None:
        if self.on_change is None:
            return
        try:
            self.on_change(self.snapshot())
        except Exception as e:
            self.logger.warning("Change handler failed", error=str(e))


def create_session(
    exercise: BreathingExercise | MindfulnessExercise | dict[str, Any],
    scheduler: Scheduler,
    on_complete: CompletionCallback | None = None,
    on_change: ChangeCallback | None = None,
) -> GuidedSession:
    """Validate ``exercise`` and build a session for it.

    Raises:
        SessionStartError: If the definition is malformed.
    """
    try:
        definition = parse_exercise(exercise)
    except ValidationError as e:
        exercise_id = exercise.get("id") if isinstance(exercise, dict) else None
        logger.warning("Rejected exercise definition", exercise=exercise_id, errors=e.error_count())
        raise SessionStartError(f"Cannot start exercise {exercise_id!r}: {e}") from e
    return GuidedSession(definition, scheduler, on_complete=on_complete, on_change=on_change)
