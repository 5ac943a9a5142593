# ============================================================================
# Quiz Session Endpoints
# ============================================================================
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List, Optional

from app.api.deps import (
    get_current_identity,
    get_quiz_session,
    get_session_registry,
    get_trivia_client,
)
from app.schemas.progress import Identity
from app.schemas.quiz import (
    DIFFICULTY_LEVELS,
    ActiveQuizInfo,
    Category,
    DifficultyEnum,
    QuizPhase,
    QuizResult,
    QuizStateResponse,
    StartQuizRequest,
    SubmitAnswerRequest,
)
from app.services.quiz.session_manager import QuizSessionManager, QuizSessionRegistry
from app.services.trivia.client import TriviaClient

router = APIRouter(prefix="/quiz", tags=["quiz"])

@router.get("/categories", response_model=List[Category])
async def list_categories(client: TriviaClient = Depends(get_trivia_client)):
    """Category catalog, "any" first"""
    return await client.fetch_categories()

@router.get("/difficulties")
async def list_difficulties():
    return DIFFICULTY_LEVELS

@router.get("/count")
async def question_count(
    category: str = Query("any"),
    difficulty: DifficultyEnum = Query(DifficultyEnum.ANY),
    client: TriviaClient = Depends(get_trivia_client),
):
    """Questions available for a selection, used to warn about thin inventory"""
    count = await client.count(category, difficulty.value)
    return {"category": category, "difficulty": difficulty.value, "count": count}

@router.post("/start", response_model=QuizStateResponse)
async def start_quiz(
    request: StartQuizRequest,
    identity: Identity = Depends(get_current_identity),
    session: QuizSessionManager = Depends(get_quiz_session),
    registry: QuizSessionRegistry = Depends(get_session_registry),
):
    """Start a new quiz; with ``force`` any active quiz is abandoned first"""
    if request.force:
        await session.force_start(request.preferences)
    else:
        await session.start(request.preferences)

    registry.start_countdown(identity)
    return session.get_state()

@router.post("/resume", response_model=QuizStateResponse)
async def resume_quiz(
    identity: Identity = Depends(get_current_identity),
    session: QuizSessionManager = Depends(get_quiz_session),
    registry: QuizSessionRegistry = Depends(get_session_registry),
):
    """Resume a saved quiz if one exists and still has time left"""
    if not await session.resume_if_available():
        raise HTTPException(status_code=404, detail="No quiz to resume")

    registry.start_countdown(identity)
    return session.get_state()

@router.get("/state", response_model=QuizStateResponse)
async def get_quiz_state(session: QuizSessionManager = Depends(get_quiz_session)):
    return session.get_state()

@router.get("/active", response_model=Optional[ActiveQuizInfo])
async def get_active_quiz(session: QuizSessionManager = Depends(get_quiz_session)):
    """Info about a saved quiz that starting a new one would abandon"""
    return await session.active_quiz_info()

@router.post("/answer")
async def submit_answer(
    request: SubmitAnswerRequest,
    session: QuizSessionManager = Depends(get_quiz_session),
):
    """Submit an answer for the current question"""
    accepted = await session.submit_answer(request.answer)

    response = {
        "accepted": accepted,
        "state": session.get_state(),
    }
    if session.phase == QuizPhase.COMPLETED and session.result is not None:
        response["result"] = session.result
    return response

@router.post("/tick")
async def tick(session: QuizSessionManager = Depends(get_quiz_session)):
    """Reconcile the countdown, completing the quiz when time is up"""
    remaining = await session.tick()
    return {
        "time_remaining": remaining,
        "phase": session.phase,
    }

@router.post("/abandon")
async def abandon_quiz(
    identity: Identity = Depends(get_current_identity),
    session: QuizSessionManager = Depends(get_quiz_session),
):
    """Abandon the active quiz. Registered users lose XP for this."""
    penalty = await session.abandon()
    return {
        "abandoned": True,
        "penalty": penalty,
        "is_guest": identity.is_guest,
    }

@router.get("/result", response_model=QuizResult)
async def get_result(session: QuizSessionManager = Depends(get_quiz_session)):
    if session.result is None:
        raise HTTPException(status_code=404, detail="No completed quiz")
    return session.result
