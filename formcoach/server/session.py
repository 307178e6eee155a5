from __future__ import annotations

import datetime as dt
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

from loguru import logger

from formcoach.logic.coach import ExerciseCoach, parse_exercise
from formcoach.utils.config import EvaluatorConfig, RuntimeConfig
from formcoach.utils.profiler import FrameRateMeter
from formcoach.utils.structures import ExerciseState, Landmark


class SessionNotFoundError(RuntimeError):
    pass


class SessionLimitError(RuntimeError):
    pass


@dataclass
class CoachingSession:
    session_id: str
    coach: ExerciseCoach
    side: str
    started_at: dt.datetime
    meter: FrameRateMeter = field(default_factory=FrameRateMeter)
    lock: threading.RLock = field(default_factory=threading.RLock)

    def status(self) -> Dict[str, object]:
        return {
            "sessionId": self.session_id,
            "exercise": self.coach.exercise.value,
            "side": self.side,
            "framesProcessed": self.coach.frames_processed,
            "framesSkipped": self.coach.frames_skipped,
            "fps": self.meter.get_fps(),
            "repCount": self.coach.state.count,
            "startedAt": self.started_at.isoformat(),
            "uptime": (dt.datetime.now(dt.timezone.utc) - self.started_at).total_seconds(),
        }


class SessionManager:
    """Registry of independent coaching sessions, one evaluator per session."""

    def __init__(
        self,
        evaluator_config: Optional[EvaluatorConfig] = None,
        runtime_config: Optional[RuntimeConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.evaluator_config = evaluator_config or EvaluatorConfig()
        self.runtime_config = runtime_config or RuntimeConfig()
        self.clock = clock
        self._lock = threading.RLock()
        self._sessions: Dict[str, CoachingSession] = {}

    def start(self, exercise: str, side: Optional[str] = None) -> CoachingSession:
        exercise_type = parse_exercise(exercise)
        with self._lock:
            if len(self._sessions) >= self.runtime_config.max_sessions:
                raise SessionLimitError(f"Session limit of {self.runtime_config.max_sessions} reached")
            chosen_side = side or self.runtime_config.default_side
            session = CoachingSession(
                session_id=uuid.uuid4().hex,
                coach=ExerciseCoach(exercise_type, self.evaluator_config, clock=self.clock, side=chosen_side),
                side=chosen_side,
                started_at=dt.datetime.now(dt.timezone.utc),
            )
            self._sessions[session.session_id] = session
        logger.info("Session {} started exercise={} side={}", session.session_id, exercise_type.value, chosen_side)
        return session

    def get(self, session_id: str) -> CoachingSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(f"No session with id {session_id}")
        return session

    def process_frame(
        self,
        session_id: str,
        landmarks: Sequence[Landmark],
        width: Optional[int] = None,
        height: Optional[int] = None,
        side: Optional[str] = None,
    ) -> ExerciseState:
        session = self.get(session_id)
        with session.lock:
            session.meter.tick()
            return session.coach.update(
                landmarks,
                width or self.runtime_config.frame_width,
                height or self.runtime_config.frame_height,
                side,
            )

    def state(self, session_id: str) -> ExerciseState:
        session = self.get(session_id)
        with session.lock:
            return session.coach.state

    def reset(self, session_id: str) -> ExerciseState:
        session = self.get(session_id)
        with session.lock:
            session.meter.reset()
            return session.coach.reset()

    def stop(self, session_id: str) -> CoachingSession:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(f"No session with id {session_id}")
        logger.info(
            "Session {} stopped after {} frames, count={}",
            session_id,
            session.coach.frames_processed,
            session.coach.state.count,
        )
        return session

    def list_status(self) -> List[Dict[str, object]]:
        with self._lock:
            sessions = list(self._sessions.values())
        return [s.status() for s in sessions]
