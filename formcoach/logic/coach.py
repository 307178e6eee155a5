from __future__ import annotations

import time
from typing import Callable, Optional, Sequence, Union

from loguru import logger

from formcoach.logic.adapter import plank_to_state, pushup_to_state, squat_to_state
from formcoach.logic.plank import PlankEvaluator
from formcoach.logic.pushup import PushupCounter
from formcoach.logic.squat import SquatCounter
from formcoach.utils.config import EvaluatorConfig
from formcoach.utils.structures import MIN_LANDMARKS, ExerciseState, ExerciseType, Landmark, PoseResult

Evaluator = Union[PushupCounter, SquatCounter, PlankEvaluator]


class UnsupportedExerciseError(ValueError):
    pass


def parse_exercise(exercise: Union[ExerciseType, str]) -> ExerciseType:
    if isinstance(exercise, ExerciseType):
        return exercise
    try:
        return ExerciseType(str(exercise).strip().lower())
    except ValueError as exc:
        supported = ", ".join(e.value for e in ExerciseType)
        raise UnsupportedExerciseError(f"Unsupported exercise '{exercise}'. Expected one of: {supported}") from exc


def build_evaluator(
    exercise: ExerciseType,
    config: EvaluatorConfig,
    clock: Callable[[], float] = time.monotonic,
) -> Evaluator:
    if exercise is ExerciseType.PUSHUP:
        return PushupCounter(config.pushup)
    if exercise is ExerciseType.SQUAT:
        return SquatCounter(config.squat)
    if exercise is ExerciseType.PLANK:
        return PlankEvaluator(config.plank, clock=clock)
    raise UnsupportedExerciseError(f"No evaluator for {exercise!r}")


class ExerciseCoach:
    """One coaching session: owns a single evaluator and adapts its output per frame."""

    def __init__(
        self,
        exercise: Union[ExerciseType, str],
        config: Optional[EvaluatorConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        side: str = "right",
    ) -> None:
        self.exercise = parse_exercise(exercise)
        self.config = config or EvaluatorConfig()
        self.side = side
        self.evaluator = build_evaluator(self.exercise, self.config, clock)
        self.frames_processed = 0
        self.frames_skipped = 0
        self.state = self._snapshot()
        logger.info("Coach ready for {} (preferred side: {})", self.exercise.value, side)

    def _snapshot(self) -> ExerciseState:
        evaluator = self.evaluator
        if isinstance(evaluator, PushupCounter):
            return pushup_to_state(evaluator.get_state())
        if isinstance(evaluator, SquatCounter):
            return squat_to_state(evaluator.get_state())
        return plank_to_state(evaluator.get_state())

    def update(
        self,
        landmarks: Sequence[Landmark],
        image_width: float,
        image_height: float,
        side: Optional[str] = None,
    ) -> ExerciseState:
        if len(landmarks) < MIN_LANDMARKS:
            self.frames_skipped += 1
            logger.debug("Skipping {} frame with {} landmarks", self.exercise.value, len(landmarks))
            return self.state
        previous_count = self.state.count
        self.evaluator.update(landmarks, image_width, image_height, side or self.side)
        self.frames_processed += 1
        self.state = self._snapshot()
        if self.state.count > previous_count:
            logger.info("{} rep {} counted", self.exercise.value, self.state.count)
        return self.state

    def update_pose(self, pose: PoseResult, side: Optional[str] = None) -> ExerciseState:
        width, height = pose.image_size
        return self.update(pose.landmarks, width, height, side)

    def reset(self) -> ExerciseState:
        self.evaluator.reset()
        self.frames_processed = 0
        self.frames_skipped = 0
        self.state = self._snapshot()
        logger.info("Coach reset for {}", self.exercise.value)
        return self.state
