from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar

import yaml


def _check_alpha(name: str, alpha: float) -> None:
    if not 0.0 <= alpha <= 1.0:
        raise ValueError(f"{name} must be within [0, 1], got {alpha}")


def _check_band(name: str, low: float, high: float) -> None:
    if low >= high:
        raise ValueError(f"{name} lower bound {low} must be below upper bound {high}")


@dataclass(frozen=True)
class PushupConfig:
    up_thresh: float = 145.0
    down_thresh: float = 70.0
    min_visibility: float = 0.6
    leg_extended_thresh: float = 130.0

    def __post_init__(self) -> None:
        _check_band("pushup down/up threshold", self.down_thresh, self.up_thresh)


@dataclass(frozen=True)
class SquatConfig:
    up_thresh: float = 165.0
    down_thresh: float = 95.0
    min_visibility: float = 0.6
    torso_lean_max: float = 55.0
    smooth_alpha: float = 0.35
    depth_margin_ratio: float = 0.01
    knee_over_foot_max: float = 0.45

    def __post_init__(self) -> None:
        _check_band("squat down/up threshold", self.down_thresh, self.up_thresh)
        _check_alpha("squat smooth_alpha", self.smooth_alpha)


DEFAULT_PLANK_WEIGHTS: Dict[str, float] = {
    "hip": 0.35,
    "head": 0.15,
    "stack": 0.15,
    "under": 0.20,
    "feet": 0.15,
}


@dataclass(frozen=True)
class PlankConfig:
    hip_ok_range: Tuple[float, float] = (165.0, 180.0)
    hip_sag_max: float = 150.0
    hip_pike_min: float = 190.0
    head_ok_range: Tuple[float, float] = (155.0, 200.0)
    stack_ok_max_deg: float = 6.0
    under_shoulder_norm: float = 0.25
    feet_min_width: float = 0.7
    feet_max_width: float = 1.4
    ema_alpha: float = 0.35
    min_visibility: float = 0.5
    ready_seconds: float = 1.0
    stable_score: float = 50.0
    type_margin: float = 0.1
    # Frozen into a read-only mapping once validated; left out of the hash.
    weights: Mapping[str, float] = field(default_factory=lambda: dict(DEFAULT_PLANK_WEIGHTS), hash=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "hip_ok_range", tuple(self.hip_ok_range))
        object.__setattr__(self, "head_ok_range", tuple(self.head_ok_range))
        _check_band("plank hip_ok_range", *self.hip_ok_range)
        _check_band("plank head_ok_range", *self.head_ok_range)
        _check_band("plank feet width", self.feet_min_width, self.feet_max_width)
        if not self.hip_sag_max < self.hip_ok_range[0] or not self.hip_ok_range[1] < self.hip_pike_min:
            raise ValueError("plank hip bands must satisfy sag_max < ok_low < ok_high < pike_min")
        _check_alpha("plank ema_alpha", self.ema_alpha)
        if self.ready_seconds < 0:
            raise ValueError(f"plank ready_seconds must be non-negative, got {self.ready_seconds}")
        missing = set(DEFAULT_PLANK_WEIGHTS) - set(self.weights)
        extra = set(self.weights) - set(DEFAULT_PLANK_WEIGHTS)
        if missing or extra:
            raise ValueError(f"plank weights need exactly {sorted(DEFAULT_PLANK_WEIGHTS)}, got {sorted(self.weights)}")
        if any(w < 0 for w in self.weights.values()):
            raise ValueError("plank weights must be non-negative")
        total = sum(self.weights.values())
        if not math.isclose(total, 1.0, abs_tol=1e-6):
            raise ValueError(f"plank weights must sum to 1.0, got {total:.4f}")
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))


@dataclass(frozen=True)
class EvaluatorConfig:
    pushup: PushupConfig = field(default_factory=PushupConfig)
    squat: SquatConfig = field(default_factory=SquatConfig)
    plank: PlankConfig = field(default_factory=PlankConfig)


@dataclass(frozen=True)
class RuntimeConfig:
    log_level: str = "INFO"
    default_side: str = "right"
    frame_width: int = 640
    frame_height: int = 480
    max_sessions: int = 32


_C = TypeVar("_C")


def _build(cls: Type[_C], section: str, data: Optional[Mapping[str, Any]]) -> _C:
    if not data:
        return cls()
    if not isinstance(data, Mapping):
        raise ValueError(f"Section '{section}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {', '.join(sorted(unknown))}")
    return cls(**dict(data))


def _read_yaml(path: Path | str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data or {}


def evaluator_config_from_dict(data: Mapping[str, Any]) -> EvaluatorConfig:
    unknown = set(data) - {"pushup", "squat", "plank"}
    if unknown:
        raise ValueError(f"Unknown exercise sections: {', '.join(sorted(unknown))}")
    return EvaluatorConfig(
        pushup=_build(PushupConfig, "pushup", data.get("pushup")),
        squat=_build(SquatConfig, "squat", data.get("squat")),
        plank=_build(PlankConfig, "plank", data.get("plank")),
    )


def load_evaluator_config(path: Optional[Path | str] = None) -> EvaluatorConfig:
    if path is None:
        return EvaluatorConfig()
    return evaluator_config_from_dict(_read_yaml(path))


def load_runtime_config(path: Optional[Path | str] = None) -> RuntimeConfig:
    if path is None:
        return RuntimeConfig()
    return _build(RuntimeConfig, "runtime", _read_yaml(path))
