from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np
from loguru import logger

from formcoach.logic.geometry import all_visible, angle_2d, ema, prefers_right, project_landmarks, select_side
from formcoach.logic.reps import RepCycle, RepPhase
from formcoach.utils.config import SquatConfig
from formcoach.utils.structures import MIN_LANDMARKS, Landmark

WARN_LEGS_HIDDEN = "Keep legs in frame"
WARN_GO_DEEPER = "Go deeper"
WARN_HIPS_HIGH = "Drop hips below knees"
WARN_STAND_UP = "Stand up fully"
WARN_KNEE_DRIFT = "Align knee over foot"
WARN_CHEST_UP = "Keep chest up"

_DEPTH_SLACK_DEG = 12.0
_LOCKOUT_SLACK_DEG = 10.0


@dataclass(frozen=True)
class SquatObservation:
    """Per-frame squat measurements; angles are raw until smoothed by the counter."""

    knee_angle: float
    hip_angle: float
    legs_visible: bool
    single_side_view: bool
    hip_below_knee: bool
    knee_over_foot_ok: bool


@dataclass(frozen=True)
class SquatSnapshot:
    count: int
    warning: str
    phase: RepPhase
    knee_angle: Optional[float]
    hip_angle: Optional[float]


def observe_squat(
    landmarks: Sequence[Landmark],
    image_width: float,
    image_height: float,
    side: str,
    config: SquatConfig,
) -> SquatObservation:
    lm = project_landmarks(landmarks, image_width, image_height)

    def chain(right: bool):
        prefix = "right" if right else "left"
        return lm[f"{prefix}_shoulder"], lm[f"{prefix}_hip"], lm[f"{prefix}_knee"], lm[f"{prefix}_ankle"]

    right_ok = all_visible(chain(True), config.min_visibility)
    left_ok = all_visible(chain(False), config.min_visibility)
    use_right = select_side(prefers_right(side), right_ok, left_ok)
    shoulder, hip, knee, ankle = chain(use_right)

    depth_margin = image_height * config.depth_margin_ratio
    knee_ankle_len = max(1e-6, float(np.hypot(knee.x - ankle.x, knee.y - ankle.y)))

    return SquatObservation(
        knee_angle=angle_2d(hip, knee, ankle),
        hip_angle=angle_2d(shoulder, hip, knee),
        legs_visible=right_ok if use_right else left_ok,
        single_side_view=right_ok != left_ok,
        hip_below_knee=hip.y > knee.y + depth_margin,
        knee_over_foot_ok=abs(knee.x - ankle.x) / knee_ankle_len <= config.knee_over_foot_max,
    )


def depth_reached(obs: SquatObservation, config: SquatConfig) -> bool:
    return obs.knee_angle <= config.down_thresh and obs.hip_below_knee


def standing(obs: SquatObservation, config: SquatConfig) -> bool:
    return obs.knee_angle >= config.up_thresh


def advance_squat(cycle: RepCycle, obs: SquatObservation, config: SquatConfig) -> RepCycle:
    """Apply one smoothed frame to the squat cycle."""
    if cycle.phase is RepPhase.UNARMED:
        if standing(obs, config) and obs.legs_visible:
            return replace(cycle, phase=RepPhase.UP, qualified=False)
        return replace(cycle, qualified=False)
    if cycle.phase is RepPhase.UP:
        if depth_reached(obs, config):
            return replace(cycle, phase=RepPhase.DOWN, qualified=obs.legs_visible)
        return cycle
    if cycle.phase is RepPhase.DOWN:
        # Legs must stay visible for the whole bottom phase.
        qualified = cycle.qualified and obs.legs_visible
        if standing(obs, config) and qualified:
            return RepCycle(phase=RepPhase.UP, count=cycle.count + 1, qualified=False)
        return replace(cycle, qualified=qualified)
    return cycle


def squat_warning(cycle: RepCycle, obs: SquatObservation, config: SquatConfig) -> str:
    if not obs.legs_visible:
        return WARN_LEGS_HIDDEN
    if cycle.phase is not RepPhase.DOWN and obs.knee_angle > config.down_thresh + _DEPTH_SLACK_DEG:
        return WARN_GO_DEEPER
    if cycle.phase is not RepPhase.DOWN and not obs.hip_below_knee:
        return WARN_HIPS_HIGH
    if cycle.phase is RepPhase.UP and obs.knee_angle < config.up_thresh - _LOCKOUT_SLACK_DEG:
        return WARN_STAND_UP
    if not obs.knee_over_foot_ok:
        return WARN_KNEE_DRIFT
    if obs.single_side_view and obs.hip_angle < config.torso_lean_max:
        return WARN_CHEST_UP
    return ""


class SquatCounter:
    """Counts squats from smoothed knee flexion, gated on hip depth below the knee."""

    def __init__(self, config: Optional[SquatConfig] = None) -> None:
        self.config = config or SquatConfig()
        self.reset()

    def reset(self) -> None:
        self.cycle = RepCycle()
        self.knee_ema: Optional[float] = None
        self.hip_ema: Optional[float] = None
        self.warning = ""

    def update(
        self,
        landmarks: Sequence[Landmark],
        image_width: float,
        image_height: float,
        side: str = "right",
    ) -> None:
        if len(landmarks) < MIN_LANDMARKS:
            return
        raw = observe_squat(landmarks, image_width, image_height, side, self.config)
        self.knee_ema = ema(self.knee_ema, raw.knee_angle, self.config.smooth_alpha)
        self.hip_ema = ema(self.hip_ema, raw.hip_angle, self.config.smooth_alpha)
        obs = replace(raw, knee_angle=self.knee_ema, hip_angle=self.hip_ema)

        previous = self.cycle
        self.cycle = advance_squat(previous, obs, self.config)
        if self.cycle.phase is not previous.phase:
            logger.debug(
                "squat {} -> {} knee={:.1f} count={}",
                previous.phase.value,
                self.cycle.phase.value,
                obs.knee_angle,
                self.cycle.count,
            )
        self.warning = squat_warning(self.cycle, obs, self.config)

    def get_state(self) -> SquatSnapshot:
        return SquatSnapshot(
            count=self.cycle.count,
            warning=self.warning,
            phase=self.cycle.phase,
            knee_angle=self.knee_ema,
            hip_angle=self.hip_ema,
        )
