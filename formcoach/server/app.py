from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.concurrency import run_in_threadpool
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import ValidationError

from formcoach.logic.coach import UnsupportedExerciseError
from formcoach.server.logging_utils import configure_logging
from formcoach.server.models.schemas import (
    ExerciseStateResponse,
    FrameRequest,
    MessageResponse,
    SessionListResponse,
    SessionStartResponse,
    SessionStatusResponse,
    StartSessionRequest,
)
from formcoach.server.session import SessionLimitError, SessionManager, SessionNotFoundError
from formcoach.utils.config import load_evaluator_config, load_runtime_config

DEFAULT_CONFIG_DIR = Path("configs")
EVALUATORS_FILE = "evaluators.yaml"
RUNTIME_FILE = "runtime.yaml"


def _optional(path: Path) -> Optional[Path]:
    return path if path.is_file() else None


def build_session_manager(config_dir: Optional[Path | str] = None) -> SessionManager:
    base = Path(config_dir or os.getenv("FORMCOACH_CONFIG_DIR", DEFAULT_CONFIG_DIR))
    return SessionManager(
        evaluator_config=load_evaluator_config(_optional(base / EVALUATORS_FILE)),
        runtime_config=load_runtime_config(_optional(base / RUNTIME_FILE)),
    )


def create_app(manager: Optional[SessionManager] = None) -> FastAPI:
    sessions = manager or build_session_manager()
    app = FastAPI(title="Form Coach", version="1.0.0")
    app.state.sessions = sessions

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def on_startup() -> None:
        configure_logging(sessions.runtime_config.log_level)

    @app.post("/api/sessions", response_model=SessionStartResponse)
    def start_session(request: StartSessionRequest) -> SessionStartResponse:
        try:
            session = sessions.start(request.exercise, request.side)
        except UnsupportedExerciseError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except SessionLimitError as exc:
            raise HTTPException(status_code=429, detail=str(exc)) from exc
        return SessionStartResponse(
            session_id=session.session_id,
            exercise=session.coach.exercise.value,
            side=session.side,
        )

    @app.get("/api/sessions", response_model=SessionListResponse)
    def list_sessions() -> SessionListResponse:
        return SessionListResponse(sessions=[SessionStatusResponse(**s) for s in sessions.list_status()])

    @app.post("/api/sessions/{session_id}/frames", response_model=ExerciseStateResponse)
    def push_frame(session_id: str, frame: FrameRequest) -> ExerciseStateResponse:
        try:
            state = sessions.process_frame(
                session_id,
                [lm.to_landmark() for lm in frame.landmarks],
                frame.width,
                frame.height,
                frame.side,
            )
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return ExerciseStateResponse.from_state(state)

    @app.get("/api/sessions/{session_id}/state", response_model=ExerciseStateResponse)
    def session_state(session_id: str) -> ExerciseStateResponse:
        try:
            return ExerciseStateResponse.from_state(sessions.state(session_id))
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.post("/api/sessions/{session_id}/reset", response_model=ExerciseStateResponse)
    def reset_session(session_id: str) -> ExerciseStateResponse:
        try:
            return ExerciseStateResponse.from_state(sessions.reset(session_id))
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc

    @app.delete("/api/sessions/{session_id}", response_model=MessageResponse)
    def stop_session(session_id: str) -> MessageResponse:
        try:
            sessions.stop(session_id)
        except SessionNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return MessageResponse(message="Session stopped")

    @app.websocket("/ws/sessions/{session_id}")
    async def stream(websocket: WebSocket, session_id: str) -> None:
        await websocket.accept()
        try:
            sessions.get(session_id)
        except SessionNotFoundError as exc:
            await websocket.send_json({"running": False, "error": str(exc)})
            await websocket.close()
            return
        try:
            while True:
                message = await websocket.receive_json()
                try:
                    frame = FrameRequest.model_validate(message)
                except ValidationError as exc:
                    await websocket.send_json({"error": str(exc)})
                    continue
                state = await run_in_threadpool(
                    sessions.process_frame,
                    session_id,
                    [lm.to_landmark() for lm in frame.landmarks],
                    frame.width,
                    frame.height,
                    frame.side,
                )
                await websocket.send_json(ExerciseStateResponse.from_state(state).model_dump())
        except SessionNotFoundError:
            await websocket.send_json({"running": False})
        except WebSocketDisconnect:  # pragma: no cover - client initiated
            logger.debug("Stream for session {} disconnected", session_id)

    return app


app = create_app()
