from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status

from app.apis.deps import current_identity, get_pipeline, get_session_manager
from app.core.config import settings
from app.core.task_queue import enqueue_quiz_generation
from app.modules.learning.client import GenerationError
from app.modules.learning.models import (
    Card,
    LearningSession,
    QuizFeedback,
    QuizStatus,
    SessionState,
)
from app.modules.learning.pipeline import InvalidSessionState, SessionPipeline
from app.modules.learning.sessions import SessionManager, SessionNotFound
from .schemas import (
    ClarificationRequest,
    CreateSessionRequest,
    QuizFeedbackRequest,
    QuizRequest,
    QuizResponse,
    SessionView,
)


router = APIRouter()


def _load(
    manager: SessionManager, session_id: str, identity: Optional[str]
) -> LearningSession:
    try:
        return manager.get(session_id, identity=identity)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Session not found")


@router.post(
    f"/{settings.app.version}/sessions",
    response_model=SessionView,
    status_code=status.HTTP_201_CREATED,
    tags=["sessions"],
)
async def create_session(
    req: CreateSessionRequest,
    response: Response,
    identity: Optional[str] = Depends(current_identity),
    pipeline: SessionPipeline = Depends(get_pipeline),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionView:
    topic = req.topic.strip()
    if not topic:
        raise HTTPException(status_code=422, detail="Topic must not be blank")
    session = manager.create(topic=topic, identity=identity)
    await pipeline.load_session(topic, identity, session=session)

    if session.state == SessionState.FAILED:
        response.status_code = status.HTTP_502_BAD_GATEWAY
    elif req.quiz_mode:
        enqueue_quiz_generation(pipeline, session, count=req.num_questions)
    return SessionView.from_session(session)


@router.get(
    f"/{settings.app.version}/sessions/{{session_id}}",
    response_model=SessionView,
    tags=["sessions"],
)
async def get_session_state(
    session_id: str,
    identity: Optional[str] = Depends(current_identity),
    manager: SessionManager = Depends(get_session_manager),
) -> SessionView:
    return SessionView.from_session(_load(manager, session_id, identity))


@router.post(
    f"/{settings.app.version}/sessions/{{session_id}}/clarifications",
    response_model=Card,
    status_code=status.HTTP_201_CREATED,
    tags=["sessions"],
)
async def add_clarification(
    session_id: str,
    req: ClarificationRequest,
    identity: Optional[str] = Depends(current_identity),
    pipeline: SessionPipeline = Depends(get_pipeline),
    manager: SessionManager = Depends(get_session_manager),
) -> Card:
    session = _load(manager, session_id, identity)
    try:
        return await pipeline.append_clarification(session, req.confusion)
    except InvalidSessionState as e:
        raise HTTPException(status_code=409, detail=str(e))
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))


@router.post(
    f"/{settings.app.version}/sessions/{{session_id}}/quiz",
    response_model=QuizResponse,
    tags=["sessions"],
)
async def create_quiz(
    session_id: str,
    req: QuizRequest,
    identity: Optional[str] = Depends(current_identity),
    pipeline: SessionPipeline = Depends(get_pipeline),
    manager: SessionManager = Depends(get_session_manager),
) -> QuizResponse:
    session = _load(manager, session_id, identity)
    session.quiz_status = QuizStatus.PENDING
    try:
        questions = await pipeline.load_quiz(session.topic, req.num_questions)
    except GenerationError as e:
        session.quiz_status = QuizStatus.UNAVAILABLE
        raise HTTPException(status_code=502, detail=str(e))
    session.quiz = questions
    session.quiz_status = QuizStatus.READY
    return QuizResponse(questions=questions)


@router.post(
    f"/{settings.app.version}/sessions/{{session_id}}/quiz/feedback",
    response_model=QuizFeedback,
    tags=["sessions"],
)
async def create_quiz_feedback(
    session_id: str,
    req: QuizFeedbackRequest,
    identity: Optional[str] = Depends(current_identity),
    pipeline: SessionPipeline = Depends(get_pipeline),
    manager: SessionManager = Depends(get_session_manager),
) -> QuizFeedback:
    if req.correct > req.total:
        raise HTTPException(status_code=422, detail="correct cannot exceed total")
    session = _load(manager, session_id, identity)
    try:
        return await pipeline.quiz_feedback(session.topic, req.correct, req.total)
    except GenerationError as e:
        raise HTTPException(status_code=502, detail=str(e))
