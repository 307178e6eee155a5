from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np
from loguru import logger

from formcoach.logic.geometry import all_visible, angle_2d, prefers_right, project_landmarks, select_side
from formcoach.logic.reps import RepCycle, RepPhase
from formcoach.utils.config import PushupConfig
from formcoach.utils.structures import MIN_LANDMARKS, Landmark

WARN_ARM_HIDDEN = "Arm not clearly visible"
WARN_LEGS_HIDDEN = "Keep legs in frame"
WARN_STRAIGHTEN_ALL = "Straighten your legs & arms"
WARN_STRAIGHTEN_LEGS = "Straighten your legs"
WARN_EXTEND_ARMS = "Extend your arms more"
WARN_GO_LOWER = "Go lower"

# Slack around the thresholds before depth/lockout warnings fire.
_WARNING_SLACK_DEG = 10.0


@dataclass(frozen=True)
class PushupObservation:
    elbow_angle: float
    knee_angle: Optional[float]
    arm_visible: bool
    legs_visible: bool
    legs_extended: bool


@dataclass(frozen=True)
class PushupSnapshot:
    count: int
    warning: str
    phase: RepPhase
    elbow_angle: Optional[float]
    knee_angle: Optional[float]


def observe_pushup(
    landmarks: Sequence[Landmark],
    image_width: float,
    image_height: float,
    side: str,
    config: PushupConfig,
) -> PushupObservation:
    lm = project_landmarks(landmarks, image_width, image_height)
    vis = config.min_visibility

    def arm_ok(right: bool) -> bool:
        prefix = "right" if right else "left"
        return all_visible((lm[f"{prefix}_shoulder"], lm[f"{prefix}_elbow"], lm[f"{prefix}_wrist"]), vis)

    def leg_ok(right: bool) -> bool:
        prefix = "right" if right else "left"
        return all_visible((lm[f"{prefix}_hip"], lm[f"{prefix}_knee"], lm[f"{prefix}_ankle"]), vis)

    def knee(prefix: str) -> float:
        return angle_2d(lm[f"{prefix}_hip"], lm[f"{prefix}_knee"], lm[f"{prefix}_ankle"])

    use_right = select_side(prefers_right(side), arm_ok(True), arm_ok(False))
    arm = "right" if use_right else "left"
    elbow_angle = angle_2d(lm[f"{arm}_shoulder"], lm[f"{arm}_elbow"], lm[f"{arm}_wrist"])

    right_leg, left_leg = leg_ok(True), leg_ok(False)
    knee_angle: Optional[float]
    if right_leg and left_leg:
        knee_angle = float(np.mean([knee("left"), knee("right")]))
    elif right_leg:
        knee_angle = knee("right")
    elif left_leg:
        knee_angle = knee("left")
    else:
        knee_angle = None

    return PushupObservation(
        elbow_angle=elbow_angle,
        knee_angle=knee_angle,
        arm_visible=arm_ok(use_right),
        legs_visible=knee_angle is not None,
        legs_extended=knee_angle is not None and knee_angle >= config.leg_extended_thresh,
    )


def advance_pushup(cycle: RepCycle, obs: PushupObservation, config: PushupConfig) -> RepCycle:
    """Apply one frame to the push-up cycle; at most one edge is taken."""
    if cycle.phase is RepPhase.UNARMED:
        if obs.elbow_angle >= config.up_thresh and obs.legs_extended:
            return replace(cycle, phase=RepPhase.UP, qualified=False)
        return replace(cycle, qualified=False)
    if cycle.phase is RepPhase.UP:
        if obs.elbow_angle <= config.down_thresh:
            return replace(cycle, phase=RepPhase.DOWN, qualified=obs.legs_extended)
        return cycle
    if cycle.phase is RepPhase.DOWN:
        # Straight legs at any point of the descent qualify the rep.
        qualified = cycle.qualified or obs.legs_extended
        if obs.elbow_angle >= config.up_thresh and qualified:
            return RepCycle(phase=RepPhase.UP, count=cycle.count + 1, qualified=False)
        return replace(cycle, qualified=qualified)
    return cycle


def pushup_warning(cycle: RepCycle, obs: PushupObservation, config: PushupConfig) -> str:
    if not obs.arm_visible:
        return WARN_ARM_HIDDEN
    if not obs.legs_visible:
        return WARN_LEGS_HIDDEN
    if cycle.phase is RepPhase.UNARMED and obs.elbow_angle >= config.up_thresh and not obs.legs_extended:
        return WARN_STRAIGHTEN_ALL
    if cycle.phase is RepPhase.DOWN and not cycle.qualified:
        return WARN_STRAIGHTEN_LEGS
    if cycle.phase is RepPhase.UP and obs.elbow_angle < config.up_thresh - _WARNING_SLACK_DEG:
        return WARN_EXTEND_ARMS
    if cycle.phase is not RepPhase.UP and obs.elbow_angle > config.down_thresh + _WARNING_SLACK_DEG:
        return WARN_GO_LOWER
    return ""


class PushupCounter:
    """Counts push-ups from the elbow angle, requiring straight legs during the descent."""

    def __init__(self, config: Optional[PushupConfig] = None) -> None:
        self.config = config or PushupConfig()
        self.reset()

    def reset(self) -> None:
        self.cycle = RepCycle()
        self.elbow_angle: Optional[float] = None
        self.knee_angle: Optional[float] = None
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
        obs = observe_pushup(landmarks, image_width, image_height, side, self.config)
        previous = self.cycle
        self.cycle = advance_pushup(previous, obs, self.config)
        if self.cycle.phase is not previous.phase:
            logger.debug(
                "pushup {} -> {} elbow={:.1f} count={}",
                previous.phase.value,
                self.cycle.phase.value,
                obs.elbow_angle,
                self.cycle.count,
            )
        self.elbow_angle = obs.elbow_angle
        self.knee_angle = obs.knee_angle
        self.warning = pushup_warning(self.cycle, obs, self.config)

    def get_state(self) -> PushupSnapshot:
        return PushupSnapshot(
            count=self.cycle.count,
            warning=self.warning,
            phase=self.cycle.phase,
            elbow_angle=self.elbow_angle,
            knee_angle=self.knee_angle,
        )
