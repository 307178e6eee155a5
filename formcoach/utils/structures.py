from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np


MIN_LANDMARKS = 33


class ExerciseType(str, Enum):
    PUSHUP = "pushup"
    SQUAT = "squat"
    PLANK = "plank"


class Stage(str, Enum):
    UP = "UP"
    DOWN = "DOWN"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class Landmark:
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = None  # None -> model did not report confidence


@dataclass(frozen=True)
class Point:
    x: float
    y: float
    z: float
    visibility: Optional[float] = None

    def as_array(self, with_depth: bool = True) -> np.ndarray:
        if with_depth:
            return np.array([self.x, self.y, self.z], dtype=np.float64)
        return np.array([self.x, self.y], dtype=np.float64)


@dataclass
class PoseResult:
    landmarks: Sequence[Landmark]
    image_size: Tuple[int, int]


@dataclass
class ExerciseState:
    count: int
    feedback: str
    is_correct_form: bool
    stage: Stage
    timer: Optional[float] = None
    visibility_issue: Optional[bool] = None
    landmarks_needing_improvement: Optional[List[int]] = None
    best_hold: Optional[float] = None
    score: Optional[float] = None
    metrics: Dict[str, float] = field(default_factory=dict)


def landmarks_from_array(array: np.ndarray) -> List[Landmark]:
    """Build landmarks from an (N, 3) or (N, 4) array of x, y, z[, visibility].

    NaN visibility values are read as "not reported".
    """
    data = np.asarray(array, dtype=np.float64)
    if data.ndim != 2 or data.shape[1] not in (3, 4):
        raise ValueError(f"Expected an (N, 3) or (N, 4) landmark array, got shape {data.shape}")
    landmarks: List[Landmark] = []
    for row in data:
        visibility: Optional[float] = None
        if data.shape[1] == 4 and not np.isnan(row[3]):
            visibility = float(row[3])
        landmarks.append(Landmark(float(row[0]), float(row[1]), float(row[2]), visibility))
    return landmarks
