from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from formcoach.utils.structures import ExerciseState, Landmark


class LandmarkIn(BaseModel):
    x: float
    y: float
    z: float = 0.0
    visibility: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    def to_landmark(self) -> Landmark:
        return Landmark(x=self.x, y=self.y, z=self.z, visibility=self.visibility)


class StartSessionRequest(BaseModel):
    exercise: str
    side: Optional[str] = Field(default=None, pattern="^(left|right)$")


class SessionStartResponse(BaseModel):
    session_id: str
    exercise: str
    side: str


class FrameRequest(BaseModel):
    landmarks: List[LandmarkIn]
    width: Optional[int] = Field(default=None, ge=1)
    height: Optional[int] = Field(default=None, ge=1)
    side: Optional[str] = Field(default=None, pattern="^(left|right)$")


class ExerciseStateResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    count: int
    feedback: str
    isCorrectForm: bool
    stage: str
    timer: Optional[float] = None
    visibilityIssue: Optional[bool] = None
    landmarksNeedingImprovement: Optional[List[int]] = None
    bestHold: Optional[float] = None
    score: Optional[float] = None
    metrics: Dict[str, float] = Field(default_factory=dict)

    @classmethod
    def from_state(cls, state: ExerciseState) -> "ExerciseStateResponse":
        return cls(
            count=state.count,
            feedback=state.feedback,
            isCorrectForm=state.is_correct_form,
            stage=state.stage.value,
            timer=state.timer,
            visibilityIssue=state.visibility_issue,
            landmarksNeedingImprovement=state.landmarks_needing_improvement,
            bestHold=state.best_hold,
            score=state.score,
            metrics=state.metrics,
        )


class SessionStatusResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    sessionId: str
    exercise: str
    side: str
    framesProcessed: int
    framesSkipped: int
    fps: float
    repCount: int
    startedAt: str
    uptime: float


class SessionListResponse(BaseModel):
    sessions: List[SessionStatusResponse]


class MessageResponse(BaseModel):
    message: str
