# ============================================================================
# Progress Schemas
# ============================================================================
from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from datetime import datetime, timezone


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UnlockedAchievement(BaseModel):
    id: str
    title: str
    icon: str
    description: str
    unlocked_at: datetime = Field(default_factory=utcnow)

class QuizHistoryEntry(BaseModel):
    attempt_id: Optional[str] = None
    date: datetime = Field(default_factory=utcnow)
    category: str
    difficulty: str
    score: int
    total: int
    xp_earned: int

class UserProgress(BaseModel):
    """Durable per-identity XP, level, achievement and history record"""
    username: str
    xp: int = 0
    level: int = 1
    total_quizzes: int = 0
    total_correct: int = 0
    total_questions: int = 0
    achievements: Dict[str, UnlockedAchievement] = {}
    quiz_history: List[QuizHistoryEntry] = []
    created_at: datetime = Field(default_factory=utcnow)
    last_login_at: datetime = Field(default_factory=utcnow)

    @property
    def accuracy(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return (self.total_correct / self.total_questions) * 100

class QuizOutcome(BaseModel):
    correct_answers: int = Field(..., ge=0)
    total_questions: int = Field(..., ge=0)
    category: str = "Any Category"
    difficulty: str = "Any Difficulty"

class EarnedAchievement(BaseModel):
    id: str
    title: str
    icon: str

class FinalizeResult(BaseModel):
    xp_gained: int
    new_total_xp: int
    leveled_up: bool
    old_level: int
    new_level: int
    new_achievements: List[EarnedAchievement] = []

class PenaltyResult(BaseModel):
    xp_lost: int
    new_total_xp: int
    old_level: int
    new_level: int
    new_achievements: List[EarnedAchievement] = []

class LevelInfo(BaseModel):
    level: int
    total_xp: int
    xp_in_level: int
    xp_for_next_level: int
    progress_percent: int
    is_max_level: bool

class ProgressResponse(BaseModel):
    username: str
    level_info: LevelInfo
    total_quizzes: int
    total_correct: int
    total_questions: int
    accuracy: int
    achievements: List[UnlockedAchievement]
    quiz_history: List[QuizHistoryEntry]

# ==================== Identity ====================

class Identity(BaseModel):
    username: str
    is_guest: bool = False

    @property
    def key(self) -> str:
        return self.username.lower()

class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=30)

class LoginRequest(BaseModel):
    username: str = Field(..., min_length=1)
