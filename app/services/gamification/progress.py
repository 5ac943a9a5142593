# ============================================================================
# Progression Engine
# ============================================================================
"""
Turns finished quizzes into XP, levels, stats and achievements.

Only registered identities have a progress record. Every mutation reads the
record, updates it and writes it back before returning.
"""
from typing import Optional
from datetime import datetime
import logging

from app.config import Settings, get_settings
from app.core.exceptions import IdentityAlreadyExists, IdentityNotFound
from app.core.storage import KeyValueStore
from app.schemas.progress import (
    FinalizeResult,
    LevelInfo,
    PenaltyResult,
    ProgressResponse,
    QuizHistoryEntry,
    QuizOutcome,
    UserProgress,
    utcnow,
)
from app.services.gamification.achievements import AchievementSystem
from app.services.gamification.xp_system import XPSystem

logger = logging.getLogger(__name__)


class ProgressRepository:
    """Progress records in the durable store, keyed by lower-cased username"""

    KEY_PREFIX = "progress"

    def __init__(self, store: KeyValueStore):
        self.store = store

    def _key(self, username: str) -> str:
        return f"{self.KEY_PREFIX}:{username.lower()}"

    async def get(self, username: str) -> Optional[UserProgress]:
        data = await self.store.get(self._key(username))
        return UserProgress.model_validate(data) if data else None

    async def require(self, username: str) -> UserProgress:
        progress = await self.get(username)
        if progress is None:
            raise IdentityNotFound(username)
        return progress

    async def save(self, progress: UserProgress) -> None:
        await self.store.set(self._key(progress.username), progress.model_dump(mode="json"))

    async def create(self, username: str) -> UserProgress:
        if await self.get(username) is not None:
            raise IdentityAlreadyExists(username)
        progress = UserProgress(username=username)
        await self.save(progress)
        logger.info(f"Created progress record for {username}")
        return progress


class ProgressionEngine:
    """XP, level, stat and achievement updates for registered identities"""

    def __init__(
        self,
        store: KeyValueStore,
        settings: Optional[Settings] = None,
        achievements: Optional[AchievementSystem] = None,
    ):
        self.settings = settings or get_settings()
        self.repository = ProgressRepository(store)
        self.achievements = achievements or AchievementSystem()
        self.history_limit = self.settings.QUIZ_HISTORY_LIMIT
        self.abandon_penalty = self.settings.ABANDON_PENALTY_XP

    async def finalize(
        self,
        username: str,
        outcome: QuizOutcome,
        attempt_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Optional[FinalizeResult]:
        """
        Apply a completed quiz to the user's progress record.

        Args:
            username: Registered identity
            outcome: Correct and total counts plus labels for the history log
            attempt_id: Identifier of the finished attempt. A second call with
                an attempt id already in the history log changes nothing.
            now: Timestamp for history and unlocks (defaults to utcnow)

        Returns:
            FinalizeResult, or None when the attempt was already applied
        """
        progress = await self.repository.require(username)
        now = now or utcnow()

        if attempt_id and any(h.attempt_id == attempt_id for h in progress.quiz_history):
            logger.warning(f"Attempt {attempt_id} already finalized for {username}, skipping")
            return None

        xp_gained = XPSystem.calculate_quiz_xp(outcome.correct_answers, outcome.total_questions)
        old_level = XPSystem.calculate_level(progress.xp)

        progress.xp += xp_gained
        progress.level = XPSystem.calculate_level(progress.xp)

        progress.total_quizzes += 1
        progress.total_correct += outcome.correct_answers
        progress.total_questions += outcome.total_questions

        progress.quiz_history.insert(0, QuizHistoryEntry(
            attempt_id=attempt_id,
            date=now,
            category=outcome.category,
            difficulty=outcome.difficulty,
            score=outcome.correct_answers,
            total=outcome.total_questions,
            xp_earned=xp_gained,
        ))
        del progress.quiz_history[self.history_limit:]

        new_achievements = self.achievements.check_achievements(progress, outcome, now=now)

        await self.repository.save(progress)

        result = FinalizeResult(
            xp_gained=xp_gained,
            new_total_xp=progress.xp,
            leveled_up=progress.level > old_level,
            old_level=old_level,
            new_level=progress.level,
            new_achievements=new_achievements,
        )
        logger.info(
            f"{username} earned {xp_gained} XP "
            f"({outcome.correct_answers}/{outcome.total_questions}), level {old_level} -> {progress.level}"
        )
        return result

    async def apply_abandon_penalty(
        self,
        username: str,
        now: Optional[datetime] = None,
    ) -> PenaltyResult:
        """Deduct the abandon penalty, floored at zero. Quiz counters are untouched."""
        progress = await self.repository.require(username)

        old_level = XPSystem.calculate_level(progress.xp)
        new_xp = max(0, progress.xp - self.abandon_penalty)
        xp_lost = progress.xp - new_xp

        progress.xp = new_xp
        progress.level = XPSystem.calculate_level(new_xp)
        new_achievements = self.achievements.check_level_achievements(progress, now=now)

        await self.repository.save(progress)

        logger.info(f"{username} abandoned a quiz, lost {xp_lost} XP")
        return PenaltyResult(
            xp_lost=xp_lost,
            new_total_xp=new_xp,
            old_level=old_level,
            new_level=progress.level,
            new_achievements=new_achievements,
        )

    # ==================== Read accessors ====================

    def get_level_info(self, total_xp: int) -> LevelInfo:
        return LevelInfo(**XPSystem.get_level_info(total_xp))

    def get_level_progress(self, total_xp: int) -> int:
        return XPSystem.level_progress(total_xp)

    def get_xp_for_next_level(self, total_xp: int) -> int:
        return XPSystem.xp_for_next_level(total_xp)

    async def get_progress(self, username: str) -> ProgressResponse:
        progress = await self.repository.require(username)
        return ProgressResponse(
            username=progress.username,
            level_info=self.get_level_info(progress.xp),
            total_quizzes=progress.total_quizzes,
            total_correct=progress.total_correct,
            total_questions=progress.total_questions,
            accuracy=int(progress.accuracy + 0.5),
            achievements=self.achievements.get_user_achievements(progress),
            quiz_history=progress.quiz_history,
        )

