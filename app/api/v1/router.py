# ============================================================================
# Main API Router
# ============================================================================
from fastapi import APIRouter

from app.api.v1 import quiz, users

api_router = APIRouter()

api_router.include_router(quiz.router)
api_router.include_router(users.router)
