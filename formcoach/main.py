from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import numpy as np
from loguru import logger

from formcoach.logic.coach import ExerciseCoach
from formcoach.server.logging_utils import configure_logging
from formcoach.utils.config import load_evaluator_config
from formcoach.utils.structures import ExerciseState, ExerciseType, Landmark, landmarks_from_array


class ReplayClock:
    """Clock driven by recorded frame timestamps instead of wall time."""

    def __init__(self) -> None:
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replay recorded pose landmarks through an exercise evaluator")
    parser.add_argument("--exercise", type=str, required=True, choices=[e.value for e in ExerciseType], help="Exercise to evaluate")
    parser.add_argument("--input", type=Path, required=True, help="JSON-lines file, one landmark frame per line")
    parser.add_argument("--config", type=Path, default=None, help="Evaluator thresholds YAML")
    parser.add_argument("--side", type=str, default="right", choices=["left", "right"], help="Preferred body side")
    parser.add_argument("--fps", type=float, default=30.0, help="Frame rate used when frames carry no timestamp")
    parser.add_argument("--width", type=int, default=640, help="Frame width when frames carry none")
    parser.add_argument("--height", type=int, default=480, help="Frame height when frames carry none")
    parser.add_argument("--log-level", type=str, default="INFO", help="Log level")
    parser.add_argument("--log-file", type=Path, default=None, help="Also write logs to this rotating file")
    return parser.parse_args(argv)


def parse_landmarks(raw: Any) -> List[Landmark]:
    if raw and isinstance(raw[0], dict):
        return [
            Landmark(float(lm["x"]), float(lm["y"]), float(lm.get("z", 0.0)), lm.get("visibility"))
            for lm in raw
        ]
    if not raw:
        return []
    return landmarks_from_array(np.array(raw, dtype=np.float64))


def read_frames(path: Path) -> Iterator[Dict[str, Any]]:
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError as exc:
                raise ValueError(f"{path}:{line_no}: invalid JSON ({exc.msg})") from exc


def replay(coach: ExerciseCoach, clock: ReplayClock, frames: Iterator[Dict[str, Any]], args: argparse.Namespace) -> ExerciseState:
    state = coach.state
    last_feedback = state.feedback
    for index, frame in enumerate(frames):
        clock.now = float(frame.get("t", index / max(args.fps, 1e-6)))
        state = coach.update(
            parse_landmarks(frame.get("landmarks", [])),
            int(frame.get("width", args.width)),
            int(frame.get("height", args.height)),
        )
        if state.feedback != last_feedback:
            logger.info("[{:.2f}s] count={} stage={} {}", clock.now, state.count, state.stage.value, state.feedback)
            last_feedback = state.feedback
    return state


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_file)
    clock = ReplayClock()
    coach = ExerciseCoach(args.exercise, load_evaluator_config(args.config), clock=clock, side=args.side)
    final = replay(coach, clock, read_frames(args.input), args)
    summary: Dict[str, Any] = {
        "exercise": coach.exercise.value,
        "count": final.count,
        "frames": coach.frames_processed,
        "skipped": coach.frames_skipped,
    }
    if coach.exercise is ExerciseType.PLANK:
        summary["best_hold"] = round(final.best_hold or 0.0, 2)
        summary["total_time"] = round(final.metrics.get("total_time", 0.0), 2)
    print(json.dumps(summary))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
