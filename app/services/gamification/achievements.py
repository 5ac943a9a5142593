# ============================================================================
# Achievement System
# ============================================================================
from typing import Callable, Dict, List, Optional
from dataclasses import dataclass
from datetime import datetime
import logging

from app.schemas.progress import (
    EarnedAchievement,
    QuizOutcome,
    UnlockedAchievement,
    UserProgress,
    utcnow,
)

logger = logging.getLogger(__name__)

# Rule predicate: (post-update progress, outcome of the quiz or None) -> eligible
Criteria = Callable[[UserProgress, Optional[QuizOutcome]], bool]


@dataclass(frozen=True)
class AchievementRule:
    id: str
    title: str
    icon: str
    description: str
    type: str  # milestone, accuracy, level
    criteria: Criteria


def _is_perfect(progress: UserProgress, outcome: Optional[QuizOutcome]) -> bool:
    return (
        outcome is not None
        and outcome.total_questions > 0
        and outcome.correct_answers == outcome.total_questions
    )


def _high_accuracy(progress: UserProgress, outcome: Optional[QuizOutcome]) -> bool:
    return progress.total_quizzes >= 5 and progress.total_questions > 0 and progress.accuracy >= 80


class AchievementSystem:
    """Evaluates the achievement table against a progress record"""

    ACHIEVEMENT_DEFINITIONS: List[AchievementRule] = [
        # Milestones
        AchievementRule(
            "first_quiz", "First Steps", "🎯", "Complete your first quiz", "milestone",
            lambda p, o: p.total_quizzes >= 1,
        ),
        AchievementRule(
            "quiz_enthusiast", "Quiz Enthusiast", "📚", "Complete 10 quizzes", "milestone",
            lambda p, o: p.total_quizzes >= 10,
        ),
        AchievementRule(
            "quiz_master", "Quiz Master", "🏆", "Complete 50 quizzes", "milestone",
            lambda p, o: p.total_quizzes >= 50,
        ),
        AchievementRule(
            "knowledge_seeker", "Knowledge Seeker", "🧠", "Answer 100 questions correctly", "milestone",
            lambda p, o: p.total_correct >= 100,
        ),
        AchievementRule(
            "genius", "Genius", "🎓", "Answer 500 questions correctly", "milestone",
            lambda p, o: p.total_correct >= 500,
        ),

        # Accuracy
        AchievementRule(
            "perfect_score", "Perfectionist", "💯", "Get a perfect score on a quiz", "accuracy",
            _is_perfect,
        ),
        AchievementRule(
            "high_scorer", "High Scorer", "🎯", "Maintain 80%+ accuracy after 5 quizzes", "accuracy",
            _high_accuracy,
        ),

        # Levels
        AchievementRule(
            "level_5", "Rising Star", "⭐", "Reach Level 5", "level",
            lambda p, o: p.level >= 5,
        ),
        AchievementRule(
            "level_10", "Quiz Legend", "👑", "Reach Level 10", "level",
            lambda p, o: p.level >= 10,
        ),
    ]

    def __init__(self, rules: Optional[List[AchievementRule]] = None):
        self.rules = rules if rules is not None else self.ACHIEVEMENT_DEFINITIONS

    def check_achievements(
        self,
        progress: UserProgress,
        outcome: Optional[QuizOutcome] = None,
        types: Optional[List[str]] = None,
        now: Optional[datetime] = None,
    ) -> List[EarnedAchievement]:
        """
        Unlock every eligible achievement not already held by ``progress``.

        Mutates ``progress.achievements`` in place and returns only the newly
        unlocked entries. Existing unlocks are never overwritten.
        """
        newly_earned = []
        unlocked_at = now or utcnow()

        for rule in self.rules:
            if types is not None and rule.type not in types:
                continue
            if rule.id in progress.achievements:
                continue
            if not rule.criteria(progress, outcome):
                continue

            progress.achievements[rule.id] = UnlockedAchievement(
                id=rule.id,
                title=rule.title,
                icon=rule.icon,
                description=rule.description,
                unlocked_at=unlocked_at,
            )
            newly_earned.append(EarnedAchievement(id=rule.id, title=rule.title, icon=rule.icon))
            logger.info(f"{progress.username} unlocked achievement {rule.id}")

        return newly_earned

    def check_level_achievements(
        self,
        progress: UserProgress,
        now: Optional[datetime] = None,
    ) -> List[EarnedAchievement]:
        return self.check_achievements(progress, types=["level"], now=now)

    def get_user_achievements(self, progress: UserProgress) -> List[Dict]:
        """Unlocked achievements, most recent first"""
        ordered = sorted(
            progress.achievements.values(),
            key=lambda a: a.unlocked_at,
            reverse=True,
        )
        return [a.model_dump(mode="json") for a in ordered]
