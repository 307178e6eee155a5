from __future__ import annotations

from typing import Dict, Iterable, Optional, Sequence

import numpy as np

from formcoach.utils.structures import Landmark, Point


POSE_LANDMARKS = {
    "nose": 0,
    "left_eye_inner": 1,
    "left_eye": 2,
    "left_eye_outer": 3,
    "right_eye_inner": 4,
    "right_eye": 5,
    "right_eye_outer": 6,
    "left_ear": 7,
    "right_ear": 8,
    "mouth_left": 9,
    "mouth_right": 10,
    "left_shoulder": 11,
    "right_shoulder": 12,
    "left_elbow": 13,
    "right_elbow": 14,
    "left_wrist": 15,
    "right_wrist": 16,
    "left_pinky": 17,
    "right_pinky": 18,
    "left_index": 19,
    "right_index": 20,
    "left_thumb": 21,
    "right_thumb": 22,
    "left_hip": 23,
    "right_hip": 24,
    "left_knee": 25,
    "right_knee": 26,
    "left_ankle": 27,
    "right_ankle": 28,
    "left_heel": 29,
    "right_heel": 30,
    "left_foot_index": 31,
    "right_foot_index": 32,
}

# Joints the evaluators read; the rest of the topology is carried but never projected.
TRACKED_JOINTS = (
    "left_ear",
    "right_ear",
    "left_shoulder",
    "right_shoulder",
    "left_elbow",
    "right_elbow",
    "left_wrist",
    "right_wrist",
    "left_hip",
    "right_hip",
    "left_knee",
    "right_knee",
    "left_ankle",
    "right_ankle",
)

_MIN_DENOM = 1e-9


def to_point(landmark: Landmark, image_width: float = 1.0, image_height: float = 1.0) -> Point:
    return Point(
        x=landmark.x * image_width,
        y=landmark.y * image_height,
        z=landmark.z,
        visibility=landmark.visibility,
    )


def project_landmarks(
    landmarks: Sequence[Landmark], image_width: float, image_height: float
) -> Dict[str, Point]:
    return {name: to_point(landmarks[POSE_LANDMARKS[name]], image_width, image_height) for name in TRACKED_JOINTS}


def _angle(ba: np.ndarray, bc: np.ndarray) -> float:
    denom = max(_MIN_DENOM, float(np.linalg.norm(ba) * np.linalg.norm(bc)))
    cosine = np.clip(np.dot(ba, bc) / denom, -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine)))


def angle_2d(a: Point, b: Point, c: Point) -> float:
    """Angle at ``b`` in degrees, ignoring depth. Coincident points read as 90."""
    vertex = b.as_array(with_depth=False)
    return _angle(a.as_array(with_depth=False) - vertex, c.as_array(with_depth=False) - vertex)


def angle_3d(a: Point, b: Point, c: Point) -> float:
    vertex = b.as_array()
    return _angle(a.as_array() - vertex, c.as_array() - vertex)


def is_visible(point: Point, threshold: float) -> bool:
    return point.visibility is None or point.visibility >= threshold


def all_visible(points: Iterable[Point], threshold: float) -> bool:
    return all(is_visible(p, threshold) for p in points)


def ema(previous: Optional[float], current: Optional[float], alpha: float) -> Optional[float]:
    """Exponential moving average step.

    An unset accumulator bootstraps from ``current``; a lost signal (``current`` is
    None) unsets it again. ``alpha <= 0`` turns smoothing off.
    """
    if current is None:
        return None
    if alpha <= 0.0 or previous is None:
        return current
    return alpha * current + (1.0 - alpha) * previous


def midpoint(a: Point, b: Point) -> Point:
    if a.visibility is None or b.visibility is None:
        visibility = None
    else:
        visibility = (a.visibility + b.visibility) / 2.0
    return Point((a.x + b.x) / 2.0, (a.y + b.y) / 2.0, (a.z + b.z) / 2.0, visibility)


def pixel_distance(a: Point, b: Point) -> float:
    return float(np.hypot(a.x - b.x, a.y - b.y))


def horizontal_offset(a: Point, b: Point) -> float:
    """Distance between two points in the floor plane (image x and depth)."""
    return float(np.hypot(a.x - b.x, a.z - b.z))


def chord_bend_angle(a: Point, b: Point, c: Point, low_vertex_flexes: bool = True) -> float:
    """Angle at ``b`` on a 0-360 scale where a straight ``a-b-c`` line reads 180.

    The raw angle is kept when the bend goes the flexing way and mirrored to
    ``360 - raw`` otherwise. With ``low_vertex_flexes`` a vertex that sits below the
    ``a-c`` chord (larger image y) counts as flexing, e.g. a sagging hip between
    shoulders and ankles.
    """
    raw = angle_3d(a, b, c)
    dx = c.x - a.x
    if abs(dx) < _MIN_DENOM:
        return raw
    chord_y = a.y + (b.x - a.x) / dx * (c.y - a.y)
    vertex_low = b.y > chord_y
    if vertex_low == low_vertex_flexes:
        return raw
    return 360.0 - raw


def vertical_misalignment(left: Point, right: Point) -> Optional[float]:
    """Tilt of the left->right segment out of the horizontal plane, in degrees."""
    delta = np.array([right.x - left.x, right.y - left.y, right.z - left.z])
    norm = float(np.linalg.norm(delta))
    if norm < 1e-6:
        return None
    horizontal = float(np.hypot(delta[0], delta[2]))
    if horizontal < 1e-6:
        return None
    cosine = np.clip(horizontal / norm, -1.0, 1.0)
    return float(np.degrees(np.arccos(cosine)))


def select_side(prefer_right: bool, right_ok: bool, left_ok: bool) -> bool:
    """Return True for the right side.

    The preferred side wins when it qualifies, then the other side; if neither
    qualifies the preferred side is used anyway.
    """
    preferred_ok = right_ok if prefer_right else left_ok
    other_ok = left_ok if prefer_right else right_ok
    if preferred_ok or not other_ok:
        return prefer_right
    return not prefer_right


def prefers_right(side: str) -> bool:
    return side.strip().lower().startswith("r")
