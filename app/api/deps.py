# ============================================================================
# API Dependencies
# ============================================================================
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status
import logging

from app.core.storage import KeyValueStore
from app.schemas.progress import Identity
from app.services.gamification.progress import ProgressionEngine, ProgressRepository
from app.services.quiz.session_manager import QuizSessionManager, QuizSessionRegistry
from app.services.trivia.client import TriviaClient
from app.services.users.user_service import UserService

logger = logging.getLogger(__name__)


def _from_state(request: Request, name: str):
    """
    Get a service initialized at startup from app state.
    """
    service = getattr(request.app.state, name, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{name} not initialized"
        )
    return service


async def get_store(request: Request) -> KeyValueStore:
    return _from_state(request, "store")


async def get_trivia_client(request: Request) -> TriviaClient:
    return _from_state(request, "trivia_client")


async def get_progression(request: Request) -> ProgressionEngine:
    return _from_state(request, "progression")


async def get_session_registry(request: Request) -> QuizSessionRegistry:
    return _from_state(request, "sessions")


async def get_user_service(store: KeyValueStore = Depends(get_store)) -> UserService:
    return UserService(ProgressRepository(store))


# ============================================================================
# Identity Dependencies
# ============================================================================
async def get_current_identity(
    x_username: Optional[str] = Header(None),
    x_guest: bool = Header(False),
    progression: ProgressionEngine = Depends(get_progression),
) -> Identity:
    """
    Resolve the caller's identity from request headers.

    Registered users must have a progress record; guests never do.
    Authentication itself happens upstream of this service.
    """
    if not x_username:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Username header"
        )

    if x_guest:
        return Identity(username=x_username, is_guest=True)

    if await progression.repository.get(x_username) is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unknown user"
        )
    return Identity(username=x_username)


async def get_registered_identity(
    identity: Identity = Depends(get_current_identity),
) -> Identity:
    if identity.is_guest:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Guests have no saved progress"
        )
    return identity


async def get_quiz_session(
    identity: Identity = Depends(get_current_identity),
    registry: QuizSessionRegistry = Depends(get_session_registry),
) -> QuizSessionManager:
    return registry.get(identity)
