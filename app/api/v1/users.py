# ============================================================================
# User & Progress Endpoints
# ============================================================================
from fastapi import APIRouter, Depends

from app.api.deps import get_progression, get_registered_identity, get_user_service
from app.schemas.progress import (
    Identity,
    LevelInfo,
    LoginRequest,
    ProgressResponse,
    RegisterRequest,
)
from app.services.gamification.progress import ProgressionEngine
from app.services.users.user_service import UserService

router = APIRouter(prefix="/users", tags=["users"])

@router.post("/register", status_code=201)
async def register(
    request: RegisterRequest,
    users: UserService = Depends(get_user_service),
):
    progress = await users.register(request.username)
    return {"username": progress.username, "xp": progress.xp, "level": progress.level}

@router.post("/login")
async def login(
    request: LoginRequest,
    users: UserService = Depends(get_user_service),
):
    progress = await users.login(request.username)
    return {"username": progress.username, "xp": progress.xp, "level": progress.level}

@router.post("/guest")
async def continue_as_guest(
    request: LoginRequest,
    users: UserService = Depends(get_user_service),
):
    identity = users.guest(request.username)
    return {"username": identity.username, "is_guest": True}

@router.get("/me/progress", response_model=ProgressResponse)
async def get_my_progress(
    identity: Identity = Depends(get_registered_identity),
    progression: ProgressionEngine = Depends(get_progression),
):
    """XP, level, stats, achievements and recent history"""
    return await progression.get_progress(identity.username)

@router.get("/me/level", response_model=LevelInfo)
async def get_my_level(
    identity: Identity = Depends(get_registered_identity),
    progression: ProgressionEngine = Depends(get_progression),
):
    progress = await progression.repository.require(identity.username)
    return progression.get_level_info(progress.xp)
