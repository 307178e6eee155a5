from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from loguru import logger

from formcoach.logic.geometry import (
    all_visible,
    angle_3d,
    chord_bend_angle,
    ema,
    horizontal_offset,
    midpoint,
    pixel_distance,
    project_landmarks,
    vertical_misalignment,
)
from formcoach.utils.config import PlankConfig
from formcoach.utils.structures import MIN_LANDMARKS, Landmark, Point

WARN_NOT_VISIBLE = "Keep at least one shoulder and knee visible"
ISSUE_HIPS_SAG = "Hips sagging too much"
ISSUE_HIPS_LOW = "Lift hips slightly"
ISSUE_HIPS_PIKE = "Lower hips (piking)"
ISSUE_HIPS_HIGH = "Lower hips slightly"
ISSUE_HEAD_DROP = "Look forward (head dropping)"
ISSUE_TWIST = "Align shoulders/hips (no twist)"
ISSUE_UNDER = "Position hands/elbows under shoulders"
ISSUE_FEET_NARROW = "Widen feet to hip-width"
ISSUE_FEET_WIDE = "Narrow feet to hip-width"


class PlankPhase(str, Enum):
    NOT_READY = "NOT_READY"
    READY = "READY"
    HOLDING = "HOLDING"


class PlankType(str, Enum):
    HIGH = "HIGH"
    FOREARM = "FOREARM"
    UNKNOWN = "UNKNOWN"


PHASE_LABELS: Dict[PlankPhase, str] = {
    PlankPhase.NOT_READY: "Get in position",
    PlankPhase.READY: "Hold steady...",
    PlankPhase.HOLDING: "Holding",
}

ScoreResult = Tuple[float, Optional[str]]


@dataclass(frozen=True)
class PlankSignals:
    hip_angle: Optional[float] = None
    head_angle: Optional[float] = None
    shoulder_twist: Optional[float] = None
    hip_twist: Optional[float] = None
    under_shoulder: Optional[float] = None
    feet_width: Optional[float] = None


@dataclass(frozen=True)
class HoldTimer:
    """Readiness/hold state machine plus its timestamps (clock seconds)."""

    phase: PlankPhase
    state_since: float
    last_update: float
    hold_start: Optional[float] = None
    best_hold: float = 0.0
    total_time: float = 0.0

    def hold_time(self, now: float) -> float:
        if self.hold_start is None:
            return 0.0
        return max(0.0, now - self.hold_start)


@dataclass(frozen=True)
class PlankSnapshot:
    warning: str
    warnings: Tuple[str, ...]
    phase: PlankPhase
    plank_type: PlankType
    hold_time: float
    best_hold: float
    total_time: float
    overall_score: float
    sub_scores: Dict[str, float] = field(default_factory=dict)
    count: int = 0

    @property
    def label(self) -> str:
        return PHASE_LABELS[self.phase]


def advance_hold(timer: HoldTimer, stable: bool, now: float, ready_seconds: float) -> HoldTimer:
    """Step the hold timer by one frame. Instability always falls back to NOT_READY."""
    nxt = timer
    if timer.phase is PlankPhase.NOT_READY:
        if stable:
            nxt = replace(timer, phase=PlankPhase.READY, state_since=now)
    elif timer.phase is PlankPhase.READY:
        if not stable:
            nxt = replace(timer, phase=PlankPhase.NOT_READY, state_since=now)
        elif now - timer.state_since >= ready_seconds:
            nxt = replace(timer, phase=PlankPhase.HOLDING, state_since=now, hold_start=now)
    elif timer.phase is PlankPhase.HOLDING:
        nxt = replace(timer, total_time=timer.total_time + max(0.0, now - timer.last_update))
        if not stable:
            nxt = replace(nxt, phase=PlankPhase.NOT_READY, state_since=now, hold_start=None)
    best = max(nxt.best_hold, nxt.hold_time(now))
    return replace(nxt, best_hold=best, last_update=now)


def score_hip(angle: Optional[float], cfg: PlankConfig) -> ScoreResult:
    if angle is None:
        return 1.0, None
    ok_low, ok_high = cfg.hip_ok_range
    if angle < cfg.hip_sag_max:
        return max(0.0, (angle - 90.0) / (cfg.hip_sag_max - 90.0)), ISSUE_HIPS_SAG
    if angle < ok_low:
        return 0.5 + 0.5 * (angle - cfg.hip_sag_max) / (ok_low - cfg.hip_sag_max), ISSUE_HIPS_LOW
    if angle > cfg.hip_pike_min:
        return max(0.0, 1.0 - (angle - cfg.hip_pike_min) / 20.0), ISSUE_HIPS_PIKE
    if angle > ok_high:
        return 0.5 + 0.5 * (1.0 - (angle - ok_high) / (cfg.hip_pike_min - ok_high)), ISSUE_HIPS_HIGH
    return 1.0, None


def score_head(angle: Optional[float], cfg: PlankConfig) -> ScoreResult:
    if angle is None:
        return 1.0, None
    ok_low = cfg.head_ok_range[0]
    if angle < ok_low:
        return max(0.0, (angle - 90.0) / (ok_low - 90.0)), ISSUE_HEAD_DROP
    if angle < ok_low + 10.0:
        # Quiet taper just inside the band.
        return 0.8 + 0.2 * (angle - ok_low) / 10.0, None
    return 1.0, None


def score_stack(shoulder: Optional[float], hip: Optional[float], cfg: PlankConfig) -> ScoreResult:
    if shoulder is None or hip is None:
        return 1.0, None
    worst = max(shoulder, hip)
    if worst > cfg.stack_ok_max_deg:
        return max(0.0, 1.0 - (worst - cfg.stack_ok_max_deg) / 15.0), ISSUE_TWIST
    return 1.0, None


def score_under(offset: Optional[float], cfg: PlankConfig) -> ScoreResult:
    if offset is None or offset <= cfg.under_shoulder_norm:
        return 1.0, None
    return max(0.0, 1.0 - (offset - cfg.under_shoulder_norm) / 0.3), ISSUE_UNDER


def score_feet(ratio: Optional[float], cfg: PlankConfig) -> ScoreResult:
    if ratio is None:
        return 1.0, None
    if ratio < cfg.feet_min_width:
        return max(0.0, ratio / cfg.feet_min_width), ISSUE_FEET_NARROW
    if ratio > cfg.feet_max_width:
        return max(0.0, 1.0 - (ratio - cfg.feet_max_width) / 0.6), ISSUE_FEET_WIDE
    return 1.0, None


def overall_score(sub_scores: Mapping[str, float], weights: Mapping[str, float]) -> float:
    total = sum(weights[name] * float(np.clip(sub_scores.get(name, 1.0), 0.0, 1.0)) for name in weights)
    return float(np.clip(total * 100.0, 0.0, 100.0))


def classify_plank(lm: Dict[str, Point], scale: float, cfg: PlankConfig) -> PlankType:
    arms = [lm[f"{prefix}_{j}"] for prefix in ("left", "right") for j in ("shoulder", "elbow", "wrist")]
    if not all_visible(arms, cfg.min_visibility):
        return PlankType.UNKNOWN
    # Image y grows downward: an elbow above its wrist means straight arms.
    diff = ((lm["left_elbow"].y - lm["left_wrist"].y) + (lm["right_elbow"].y - lm["right_wrist"].y)) / 2.0
    margin = cfg.type_margin * scale
    if diff < -margin:
        return PlankType.HIGH
    if diff > margin:
        return PlankType.FOREARM
    elbow = np.mean(
        [
            angle_3d(lm["left_shoulder"], lm["left_elbow"], lm["left_wrist"]),
            angle_3d(lm["right_shoulder"], lm["right_elbow"], lm["right_wrist"]),
        ]
    )
    return PlankType.HIGH if elbow > 150.0 else PlankType.FOREARM


def measure_plank(lm: Dict[str, Point], plank_type: PlankType, scale: float) -> PlankSignals:
    shoulder = midpoint(lm["left_shoulder"], lm["right_shoulder"])
    hip = midpoint(lm["left_hip"], lm["right_hip"])
    ankle = midpoint(lm["left_ankle"], lm["right_ankle"])
    ear = midpoint(lm["left_ear"], lm["right_ear"])

    base = "wrist" if plank_type is PlankType.HIGH else "elbow"
    under = (
        horizontal_offset(lm[f"left_{base}"], lm["left_shoulder"])
        + horizontal_offset(lm[f"right_{base}"], lm["right_shoulder"])
    ) / 2.0
    body_width = (
        pixel_distance(lm["left_shoulder"], lm["right_shoulder"]) + pixel_distance(lm["left_hip"], lm["right_hip"])
    ) / 2.0

    return PlankSignals(
        hip_angle=chord_bend_angle(shoulder, hip, ankle, low_vertex_flexes=True),
        head_angle=chord_bend_angle(ear, shoulder, hip, low_vertex_flexes=False),
        shoulder_twist=vertical_misalignment(lm["left_shoulder"], lm["right_shoulder"]),
        hip_twist=vertical_misalignment(lm["left_hip"], lm["right_hip"]),
        under_shoulder=under / max(scale, 1.0),
        feet_width=pixel_distance(lm["left_ankle"], lm["right_ankle"]) / max(body_width, 1.0),
    )


class PlankEvaluator:
    """Scores plank posture every frame and times holds once the pose has settled."""

    def __init__(self, config: Optional[PlankConfig] = None, clock: Callable[[], float] = time.monotonic) -> None:
        self.config = config or PlankConfig()
        self.clock = clock
        self.reset()

    def reset(self) -> None:
        now = self.clock()
        self.timer = HoldTimer(phase=PlankPhase.NOT_READY, state_since=now, last_update=now)
        self.plank_type = PlankType.UNKNOWN
        self.signals = PlankSignals()
        self.smoothed = PlankSignals()
        self.sub_scores: Dict[str, float] = {name: 1.0 for name in self.config.weights}
        self.overall_score = 0.0
        self.hold_time = 0.0
        self.warnings: List[str] = []

    def _smooth(self, raw: PlankSignals) -> PlankSignals:
        alpha = self.config.ema_alpha
        prev = self.smoothed
        return PlankSignals(
            hip_angle=ema(prev.hip_angle, raw.hip_angle, alpha),
            head_angle=ema(prev.head_angle, raw.head_angle, alpha),
            shoulder_twist=ema(prev.shoulder_twist, raw.shoulder_twist, alpha),
            hip_twist=ema(prev.hip_twist, raw.hip_twist, alpha),
            under_shoulder=ema(prev.under_shoulder, raw.under_shoulder, alpha),
            feet_width=ema(prev.feet_width, raw.feet_width, alpha),
        )

    def _step_timer(self, stable: bool, now: float) -> None:
        previous = self.timer.phase
        self.timer = advance_hold(self.timer, stable, now, self.config.ready_seconds)
        if self.timer.phase is not previous:
            logger.debug(
                "plank {} -> {} score={:.1f} best_hold={:.2f}s",
                previous.value,
                self.timer.phase.value,
                self.overall_score,
                self.timer.best_hold,
            )
        self.hold_time = self.timer.hold_time(now)

    def update(self, landmarks: Sequence[Landmark], image_width: float, image_height: float, side: str = "right") -> None:
        # ``side`` is accepted for a uniform evaluator interface; both sides are averaged.
        if len(landmarks) < MIN_LANDMARKS:
            return
        cfg = self.config
        now = self.clock()
        lm = project_landmarks(landmarks, image_width, image_height)

        left_ok = all_visible((lm["left_shoulder"], lm["left_knee"]), cfg.min_visibility)
        right_ok = all_visible((lm["right_shoulder"], lm["right_knee"]), cfg.min_visibility)
        if not (left_ok or right_ok):
            self.warnings = [WARN_NOT_VISIBLE]
            self.overall_score = 0.0
            self._step_timer(False, now)
            return

        scale = pixel_distance(
            midpoint(lm["left_shoulder"], lm["right_shoulder"]), midpoint(lm["left_hip"], lm["right_hip"])
        )
        self.plank_type = classify_plank(lm, scale, cfg)
        self.signals = measure_plank(lm, self.plank_type, scale)
        self.smoothed = sm = self._smooth(self.signals)

        results: Dict[str, ScoreResult] = {
            "hip": score_hip(sm.hip_angle, cfg),
            "head": score_head(sm.head_angle, cfg),
            "stack": score_stack(sm.shoulder_twist, sm.hip_twist, cfg),
            "under": score_under(sm.under_shoulder, cfg),
            "feet": score_feet(sm.feet_width, cfg),
        }
        self.sub_scores = {name: score for name, (score, _) in results.items()}
        self.warnings = [issue for _, issue in results.values() if issue]
        self.overall_score = overall_score(self.sub_scores, cfg.weights)

        core = [lm[f"{prefix}_{j}"] for prefix in ("left", "right") for j in ("shoulder", "hip", "ankle")]
        stable = self.overall_score > cfg.stable_score and all_visible(core, cfg.min_visibility)
        self._step_timer(stable, now)

    def get_state(self) -> PlankSnapshot:
        return PlankSnapshot(
            warning=self.warnings[0] if self.warnings else "",
            warnings=tuple(self.warnings),
            phase=self.timer.phase,
            plank_type=self.plank_type,
            hold_time=self.hold_time,
            best_hold=self.timer.best_hold,
            total_time=self.timer.total_time,
            overall_score=self.overall_score,
            sub_scores=dict(self.sub_scores),
        )

    def get_state_label(self) -> str:
        return PHASE_LABELS[self.timer.phase]
