# ============================================================================
# Quiz Result Summary
# ============================================================================
from typing import List, Optional, Sequence

from app.schemas.progress import FinalizeResult
from app.schemas.quiz import Question, QuizBadge, QuizPreferences, QuizRank, QuizResult
from app.services.gamification.xp_system import XPSystem

# (minimum percentage, rank), checked in order
RANKS = [
    (90, QuizRank(title="Quiz Champion", icon="👑", message="Outstanding! You're a true knowledge master!")),
    (80, QuizRank(title="Quiz Expert", icon="🏆", message="Excellent work! You really know your stuff!")),
    (70, QuizRank(title="Rising Star", icon="⭐", message="Great job! Keep up the fantastic work!")),
    (50, QuizRank(title="Quick Learner", icon="📚", message="Good effort! You're on the right track!")),
]
DEFAULT_RANK = QuizRank(title="Getting Started", icon="🌱", message="Every expert was once a beginner. Keep trying!")


def get_rank(percentage: int) -> QuizRank:
    for min_percentage, rank in RANKS:
        if percentage >= min_percentage:
            return rank
    return DEFAULT_RANK


def get_badges(percentage: int, correct: int, answered: int, total: int) -> List[QuizBadge]:
    """Per-quiz badges shown with the result, not stored"""
    badges = []
    if percentage == 100:
        badges.append(QuizBadge(title="Perfect Score", icon="💯", description="Answered all questions correctly"))
    if percentage >= 80:
        badges.append(QuizBadge(title="Sharp Shooter", icon="🎯", description="80%+ accuracy"))
    if correct >= 5:
        badges.append(QuizBadge(title="On Fire", icon="🔥", description="Got 5+ answers right"))
    if total > 0 and answered == total:
        badges.append(QuizBadge(title="Completionist", icon="✅", description="Answered every question"))
    return badges


def build_result(
    attempt_id: str,
    questions: Sequence[Question],
    answers: Sequence[Optional[str]],
    score: int,
    preferences: QuizPreferences,
    time_expired: bool = False,
    progression: Optional[FinalizeResult] = None,
) -> QuizResult:
    # Unanswered questions count as wrong, percentage is over all questions
    total = len(questions)
    answered = sum(1 for a in answers if a is not None)
    percentage = XPSystem.accuracy_percent(score, total)

    return QuizResult(
        attempt_id=attempt_id,
        total_questions=total,
        total_answered=answered,
        correct_answers=score,
        wrong_answers=answered - score,
        unanswered=total - answered,
        percentage=percentage,
        time_expired=time_expired,
        category=preferences.category_name,
        difficulty=preferences.difficulty_name,
        rank=get_rank(percentage),
        badges=get_badges(percentage, score, answered, total),
        progression=progression,
    )
