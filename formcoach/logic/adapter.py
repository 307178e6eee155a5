from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

from formcoach.logic.geometry import POSE_LANDMARKS
from formcoach.logic.plank import PHASE_LABELS, PlankPhase, PlankSnapshot
from formcoach.logic.pushup import PushupSnapshot
from formcoach.logic.reps import RepPhase
from formcoach.logic.squat import SquatSnapshot
from formcoach.utils.structures import ExerciseState, ExerciseType, Stage

# Ordered (keywords, joints) rules; the first rule whose keyword appears in the
# warning decides which landmarks the renderer highlights.
HighlightRules = Sequence[Tuple[Tuple[str, ...], Tuple[str, ...]]]

_SHOULDERS = ("left_shoulder", "right_shoulder")
_ELBOWS = ("left_elbow", "right_elbow")
_WRISTS = ("left_wrist", "right_wrist")
_HIPS = ("left_hip", "right_hip")
_KNEES = ("left_knee", "right_knee")
_ANKLES = ("left_ankle", "right_ankle")
_EARS = ("left_ear", "right_ear")

HIGHLIGHT_RULES: Dict[ExerciseType, HighlightRules] = {
    ExerciseType.PUSHUP: (
        (("legs",), _KNEES + _HIPS),
        (("arm",), _ELBOWS + _WRISTS),
    ),
    ExerciseType.SQUAT: (
        (("legs",), _HIPS + _KNEES + _ANKLES),
        (("hips", "deeper", "stand"), _HIPS + _KNEES),
        (("knee",), _KNEES + _ANKLES),
        (("chest",), _SHOULDERS + _HIPS),
    ),
    ExerciseType.PLANK: (
        (("visible",), _SHOULDERS + _KNEES),
        (("twist",), _SHOULDERS + _HIPS),
        (("hips",), _SHOULDERS + _HIPS + _ANKLES),
        (("head",), _EARS + _SHOULDERS),
        (("hands", "elbows"), _WRISTS + _ELBOWS + _SHOULDERS),
        (("feet",), _ANKLES),
    ),
}

REP_CUES: Dict[ExerciseType, Dict[RepPhase, str]] = {
    ExerciseType.PUSHUP: {RepPhase.UP: "Go Down", RepPhase.DOWN: "Push Up", RepPhase.UNARMED: "Get Ready"},
    ExerciseType.SQUAT: {RepPhase.UP: "Squat Down", RepPhase.DOWN: "Stand Up", RepPhase.UNARMED: "Get Ready"},
}

_REP_STAGES = {RepPhase.UP: Stage.UP, RepPhase.DOWN: Stage.DOWN, RepPhase.UNARMED: Stage.NEUTRAL}


def landmarks_to_highlight(exercise: ExerciseType, warning: str) -> List[int]:
    text = warning.lower()
    if not text:
        return []
    for keywords, joints in HIGHLIGHT_RULES[exercise]:
        if any(keyword in text for keyword in keywords):
            return [POSE_LANDMARKS[name] for name in joints]
    return []


def _metrics(**values: Optional[float]) -> Dict[str, float]:
    return {name: float(value) for name, value in values.items() if value is not None}


def _rep_state(exercise: ExerciseType, count: int, warning: str, phase: RepPhase, metrics: Dict[str, float]) -> ExerciseState:
    return ExerciseState(
        count=count,
        feedback=warning or REP_CUES[exercise][phase],
        is_correct_form=warning == "",
        stage=_REP_STAGES[phase],
        visibility_issue="visible" in warning or "frame" in warning,
        landmarks_needing_improvement=landmarks_to_highlight(exercise, warning),
        metrics=metrics,
    )


def pushup_to_state(snapshot: PushupSnapshot) -> ExerciseState:
    return _rep_state(
        ExerciseType.PUSHUP,
        snapshot.count,
        snapshot.warning,
        snapshot.phase,
        _metrics(elbow_angle=snapshot.elbow_angle, knee_angle=snapshot.knee_angle),
    )


def squat_to_state(snapshot: SquatSnapshot) -> ExerciseState:
    return _rep_state(
        ExerciseType.SQUAT,
        snapshot.count,
        snapshot.warning,
        snapshot.phase,
        _metrics(knee_angle=snapshot.knee_angle, hip_angle=snapshot.hip_angle),
    )


def plank_to_state(snapshot: PlankSnapshot) -> ExerciseState:
    warning = snapshot.warning
    metrics = {f"{name}_score": value for name, value in snapshot.sub_scores.items()}
    metrics["total_time"] = snapshot.total_time
    return ExerciseState(
        count=0,
        feedback=warning or PHASE_LABELS[snapshot.phase],
        is_correct_form=warning == "" and snapshot.phase is PlankPhase.HOLDING,
        stage=Stage.NEUTRAL,
        timer=snapshot.hold_time,
        visibility_issue="visible" in warning,
        landmarks_needing_improvement=landmarks_to_highlight(ExerciseType.PLANK, warning),
        best_hold=snapshot.best_hold,
        score=snapshot.overall_score,
        metrics=metrics,
    )
