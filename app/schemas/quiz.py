# ============================================================================
# Quiz Schemas
# ============================================================================
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List, Union
from datetime import datetime
from enum import Enum

from app.schemas.progress import FinalizeResult

ANY = "any"

class DifficultyEnum(str, Enum):
    ANY = "any"
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

# Difficulty levels offered by the question bank
DIFFICULTY_LEVELS = [
    {"id": "any", "name": "Any Difficulty", "description": "Mix of all difficulties"},
    {"id": "easy", "name": "Easy", "description": "Perfect for beginners"},
    {"id": "medium", "name": "Medium", "description": "A balanced challenge"},
    {"id": "hard", "name": "Hard", "description": "For quiz masters only"},
]

class QuizPhase(str, Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

class QuizPreferences(BaseModel):
    category: Union[int, str] = ANY
    difficulty: DifficultyEnum = DifficultyEnum.ANY
    amount: int = Field(10, ge=1, le=50)
    category_name: str = "Any Category"
    difficulty_name: str = "Any Difficulty"

    @field_validator("category", mode="before")
    @classmethod
    def normalize_category(cls, value):
        if value is None or value == "":
            return ANY
        if isinstance(value, str):
            if value.lower() == ANY:
                return ANY
            if value.isdigit():
                return int(value)
            raise ValueError(f"Unknown category: {value}")
        return value

    @model_validator(mode="after")
    def default_difficulty_name(self):
        if self.difficulty_name == "Any Difficulty" and self.difficulty != DifficultyEnum.ANY:
            for level in DIFFICULTY_LEVELS:
                if level["id"] == self.difficulty.value:
                    self.difficulty_name = level["name"]
        return self

class Question(BaseModel):
    """A single multiple choice question, answers already in presentation order"""
    question: str
    answers: List[str]
    correct_answer: str
    category: str
    difficulty: str

    class Config:
        frozen = True

    @model_validator(mode="after")
    def correct_answer_is_candidate(self):
        if self.correct_answer not in self.answers:
            raise ValueError("correct_answer must be one of answers")
        return self

class QuizSnapshot(BaseModel):
    """Persisted state of one in-flight attempt"""
    attempt_id: str
    phase: QuizPhase = QuizPhase.IN_PROGRESS
    questions: List[Question]
    answers: List[Optional[str]]
    current_index: int = 0
    score: int = 0
    start_time: datetime
    time_remaining: int
    preferences: QuizPreferences = Field(default_factory=QuizPreferences)

class QuizRank(BaseModel):
    title: str
    icon: str
    message: str

class QuizBadge(BaseModel):
    title: str
    icon: str
    description: str

class QuizResult(BaseModel):
    attempt_id: str
    total_questions: int
    total_answered: int
    correct_answers: int
    wrong_answers: int
    unanswered: int
    percentage: int
    time_expired: bool = False
    category: str
    difficulty: str
    rank: QuizRank
    badges: List[QuizBadge] = []
    progression: Optional[FinalizeResult] = None

class ActiveQuizInfo(BaseModel):
    questions_answered: int
    total_questions: int
    score: int
    time_remaining: int
    preferences: QuizPreferences

class QuizStateResponse(BaseModel):
    phase: QuizPhase
    attempt_id: Optional[str] = None
    questions: List[Question] = []
    answers: List[Optional[str]] = []
    current_index: int = 0
    score: int = 0
    time_remaining: int
    preferences: QuizPreferences
    error: Optional[str] = None

# ==================== Requests ====================

class StartQuizRequest(BaseModel):
    preferences: QuizPreferences = Field(default_factory=QuizPreferences)
    force: bool = False

class SubmitAnswerRequest(BaseModel):
    answer: str = Field(..., min_length=1)

class Category(BaseModel):
    id: Union[int, str]
    name: str
