# ============================================================================
# Quiz Session Management Service
# ============================================================================
"""
Lifecycle of a single timed quiz attempt.

    IDLE -> ACQUIRING -> IN_PROGRESS -> COMPLETED | ABANDONED

Every mutation is mirrored to the durable store before the call returns,
so an attempt can be resumed after a restart. Remaining time is always
derived from the stored start instant, never from counted ticks.
"""
from typing import Awaitable, Callable, Dict, List, Optional
from collections import OrderedDict
from datetime import datetime
from uuid import uuid4
import asyncio
import logging

from pydantic import ValidationError

from app.config import Settings, get_settings
from app.core.exceptions import (
    InsufficientInventory,
    QuestionSourceError,
    QuizInProgress,
    QuizNotActive,
    StorageError,
)
from app.core.storage import KeyValueStore
from app.schemas.progress import FinalizeResult, Identity, PenaltyResult, QuizOutcome, utcnow
from app.schemas.quiz import (
    ActiveQuizInfo,
    Question,
    QuizPhase,
    QuizPreferences,
    QuizResult,
    QuizSnapshot,
    QuizStateResponse,
)
from app.services.gamification.progress import ProgressionEngine
from app.services.quiz.countdown import QuizCountdown
from app.services.quiz.results import build_result
from app.services.trivia.client import TriviaClient

logger = logging.getLogger(__name__)


class QuizSessionManager:
    """
    State machine for one identity's quiz attempt.

    Re-entrant calls are rejected by phase guards: a second ``start`` while
    questions are being acquired is ignored, and progression is finalized at
    most once per attempt id.
    """

    def __init__(
        self,
        identity: Identity,
        store: KeyValueStore,
        client: TriviaClient,
        progression: ProgressionEngine,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.identity = identity
        self.store = store
        self.client = client
        self.progression = progression
        self.settings = settings or get_settings()
        self.time_limit = self.settings.QUIZ_TIME_LIMIT_SECONDS
        self.advance_delay = self.settings.QUIZ_ADVANCE_DELAY_SECONDS
        self._clock = clock
        self._sleep = sleep

        self._reset()
        self.result: Optional[QuizResult] = None
        self._finalized_attempt_id: Optional[str] = None
        self._abandoning = False

    def _reset(self, preferences: Optional[QuizPreferences] = None) -> None:
        self.phase = QuizPhase.IDLE
        self.attempt_id: Optional[str] = None
        self.questions: List[Question] = []
        self.answers: List[Optional[str]] = []
        self.current_index = 0
        self.score = 0
        self.start_time: Optional[datetime] = None
        self.time_remaining = self.time_limit
        self.preferences = preferences or QuizPreferences()
        self.error: Optional[str] = None

    @property
    def snapshot_key(self) -> str:
        kind = "guest" if self.identity.is_guest else "user"
        return f"quiz:{kind}:{self.identity.key}"

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self.answers if a is not None)

    # ==================== Lifecycle ====================

    async def start(self, preferences: Optional[QuizPreferences] = None) -> bool:
        """
        Acquire questions and begin a new attempt.

        Returns False when a start is already underway. Acquisition errors
        put the machine back to IDLE and propagate to the caller.
        """
        if self.phase == QuizPhase.ACQUIRING:
            logger.info(f"Ignoring duplicate start for {self.identity.username}")
            return False
        if self.phase == QuizPhase.IN_PROGRESS:
            raise QuizInProgress()

        previous_phase = self.phase
        self.phase = QuizPhase.ACQUIRING
        if await self._has_stored_attempt():
            self.phase = previous_phase
            raise QuizInProgress()

        self._reset(preferences)
        self.phase = QuizPhase.ACQUIRING

        try:
            questions = await self.client.acquire(self.preferences)
            if not questions:
                raise InsufficientInventory()
        except QuestionSourceError as e:
            self.phase = QuizPhase.IDLE
            self.error = e.detail
            logger.warning(f"Quiz start failed for {self.identity.username}: {e.detail}")
            raise

        self.attempt_id = uuid4().hex
        self.questions = list(questions)
        self.answers = [None] * len(questions)
        self.start_time = self._clock()
        self.time_remaining = self.time_limit
        self.result = None
        self.phase = QuizPhase.IN_PROGRESS
        await self._persist()

        logger.info(
            f"Started quiz {self.attempt_id} for {self.identity.username} "
            f"({len(questions)} questions)"
        )
        return True

    async def force_start(self, preferences: Optional[QuizPreferences] = None) -> bool:
        """Abandon any active attempt (with penalty) and start a new one"""
        if self.phase == QuizPhase.ACQUIRING:
            return False
        if await self.has_active_quiz():
            await self.abandon()
        return await self.start(preferences)

    async def submit_answer(self, answer: str) -> bool:
        """
        Record an answer for the current question.

        Returns False without changing anything if the slot is already
        answered or the pointer is out of range.
        """
        if self.phase != QuizPhase.IN_PROGRESS:
            raise QuizNotActive()

        index = self.current_index
        if index >= len(self.questions) or self.answers[index] is not None:
            return False

        self.answers[index] = answer
        if answer == self.questions[index].correct_answer:
            self.score += 1
        await self._persist()

        if index == len(self.questions) - 1:
            await self._complete(time_expired=False)
            return True

        # Presentation pacing only, the answer is already committed
        if self.advance_delay > 0:
            await self._sleep(self.advance_delay)
        if self.phase == QuizPhase.IN_PROGRESS and self.current_index == index:
            self.current_index = index + 1
            await self._persist()
        return True

    async def tick(self) -> int:
        """Reconcile remaining time with the clock, completing on expiry"""
        if self.phase != QuizPhase.IN_PROGRESS:
            return self.time_remaining

        self.time_remaining = self.compute_time_remaining(self.start_time)
        if self.time_remaining <= 0:
            logger.info(f"Quiz {self.attempt_id} ran out of time")
            await self._complete(time_expired=True)
        else:
            await self._persist()
        return self.time_remaining

    async def abandon(self) -> Optional[PenaltyResult]:
        """
        Give up the active attempt.

        Works for the in-memory attempt or one only present in storage.
        Registered identities lose the abandon penalty; guests lose nothing.
        A second call while one is underway raises QuizNotActive.
        """
        if self._abandoning:
            raise QuizNotActive()
        self._abandoning = True
        try:
            if not await self.has_active_quiz():
                raise QuizNotActive()

            abandoned_id = self.attempt_id
            preferences = self.preferences
            self._reset(preferences)
            self.phase = QuizPhase.ABANDONED
            await self._clear()
        finally:
            self._abandoning = False

        logger.info(f"{self.identity.username} abandoned quiz {abandoned_id}")
        if self.identity.is_guest:
            return None
        try:
            return await self.progression.apply_abandon_penalty(self.identity.username)
        except StorageError as e:
            logger.error(f"Could not save abandon penalty for {self.identity.username}: {e.detail}")
            return None

    async def resume_if_available(self) -> bool:
        """
        Restore a persisted in-progress attempt.

        An attempt whose time has run out is deleted instead of resumed.
        """
        if self.phase == QuizPhase.IN_PROGRESS:
            return True
        if self.phase == QuizPhase.ACQUIRING:
            return False

        snapshot = await self._load_snapshot()
        if snapshot is None:
            return False

        remaining = self.compute_time_remaining(snapshot.start_time)
        if remaining <= 0:
            logger.info(f"Discarding expired quiz {snapshot.attempt_id} for {self.identity.username}")
            await self._clear()
            return False

        self.attempt_id = snapshot.attempt_id
        self.questions = list(snapshot.questions)
        self.answers = list(snapshot.answers)
        # Saved between the answer write and the pointer advance
        self.current_index = self._first_unanswered(snapshot.current_index)
        self.score = snapshot.score
        self.start_time = snapshot.start_time
        self.time_remaining = remaining
        self.preferences = snapshot.preferences
        self.error = None
        self.result = None
        self.phase = QuizPhase.IN_PROGRESS

        if self.answered_count == len(self.questions):
            logger.info(f"Saved quiz {self.attempt_id} was fully answered, completing it")
            await self._complete(time_expired=False)
            return True

        await self._persist()

        logger.info(
            f"Resumed quiz {self.attempt_id} for {self.identity.username} "
            f"with {remaining}s remaining"
        )
        return True

    def _first_unanswered(self, start: int) -> int:
        """Index of the first unanswered slot at or after ``start``"""
        for index in range(start, len(self.answers)):
            if self.answers[index] is None:
                return index
        for index, answer in enumerate(self.answers):
            if answer is None:
                return index
        return max(0, len(self.answers) - 1)

    async def has_active_quiz(self) -> bool:
        if self.phase == QuizPhase.IN_PROGRESS:
            return True
        return await self._has_stored_attempt()

    async def _has_stored_attempt(self) -> bool:
        snapshot = await self._load_snapshot()
        return snapshot is not None and self.compute_time_remaining(snapshot.start_time) > 0

    async def active_quiz_info(self) -> Optional[ActiveQuizInfo]:
        """Summary of the attempt that would be lost by starting a new one"""
        if self.phase == QuizPhase.IN_PROGRESS:
            snapshot = self._snapshot()
        else:
            snapshot = await self._load_snapshot()
        if snapshot is None or not snapshot.questions:
            return None

        return ActiveQuizInfo(
            questions_answered=sum(1 for a in snapshot.answers if a is not None),
            total_questions=len(snapshot.questions),
            score=snapshot.score,
            time_remaining=self.compute_time_remaining(snapshot.start_time),
            preferences=snapshot.preferences,
        )

    def compute_time_remaining(self, start_time: Optional[datetime]) -> int:
        if start_time is None:
            return self.time_limit
        elapsed = int((self._clock() - start_time).total_seconds())
        return max(0, self.time_limit - elapsed)

    def get_state(self) -> QuizStateResponse:
        return QuizStateResponse(
            phase=self.phase,
            attempt_id=self.attempt_id,
            questions=self.questions,
            answers=self.answers,
            current_index=self.current_index,
            score=self.score,
            time_remaining=self.time_remaining,
            preferences=self.preferences,
            error=self.error,
        )

    # ==================== Completion ====================

    async def _complete(self, time_expired: bool) -> None:
        if self.phase != QuizPhase.IN_PROGRESS:
            return
        self.phase = QuizPhase.COMPLETED
        if time_expired:
            self.time_remaining = 0
        await self._clear()

        progression = None
        if self._finalized_attempt_id != self.attempt_id:
            self._finalized_attempt_id = self.attempt_id
            progression = await self._finalize()

        self.result = build_result(
            attempt_id=self.attempt_id,
            questions=self.questions,
            answers=self.answers,
            score=self.score,
            preferences=self.preferences,
            time_expired=time_expired,
            progression=progression,
        )
        logger.info(
            f"Completed quiz {self.attempt_id} for {self.identity.username}: "
            f"{self.score}/{len(self.questions)}"
        )

    async def _finalize(self) -> Optional[FinalizeResult]:
        if self.identity.is_guest:
            return None
        outcome = QuizOutcome(
            correct_answers=self.score,
            total_questions=len(self.questions),
            category=self.preferences.category_name,
            difficulty=self.preferences.difficulty_name,
        )
        try:
            return await self.progression.finalize(
                self.identity.username,
                outcome,
                attempt_id=self.attempt_id,
            )
        except StorageError as e:
            logger.error(f"Could not save progress for {self.identity.username}: {e.detail}")
            return None

    # ==================== Persistence ====================

    def _snapshot(self) -> QuizSnapshot:
        return QuizSnapshot(
            attempt_id=self.attempt_id,
            phase=self.phase,
            questions=self.questions,
            answers=self.answers,
            current_index=self.current_index,
            score=self.score,
            start_time=self.start_time,
            time_remaining=self.time_remaining,
            preferences=self.preferences,
        )

    async def _persist(self) -> None:
        """Best effort: a lost snapshot only costs resumability"""
        try:
            await self.store.set(self.snapshot_key, self._snapshot().model_dump(mode="json"))
        except StorageError as e:
            logger.warning(f"Could not save quiz snapshot for {self.identity.username}: {e.detail}")

    async def _clear(self) -> None:
        try:
            await self.store.delete(self.snapshot_key)
        except StorageError as e:
            logger.warning(f"Could not remove quiz snapshot for {self.identity.username}: {e.detail}")

    async def _load_snapshot(self) -> Optional[QuizSnapshot]:
        try:
            data = await self.store.get(self.snapshot_key)
        except StorageError as e:
            logger.warning(f"Could not read quiz snapshot for {self.identity.username}: {e.detail}")
            return None
        if not data:
            return None

        try:
            snapshot = QuizSnapshot.model_validate(data)
        except ValidationError as e:
            logger.warning(f"Discarding unreadable quiz snapshot for {self.identity.username}: {e}")
            await self._clear()
            return None

        if snapshot.phase != QuizPhase.IN_PROGRESS or not snapshot.questions:
            return None
        return snapshot


class QuizSessionRegistry:
    """
    One session manager per identity, sharing the client and engine.

    Managers are kept in LRU order. Once there are more than
    ``QUIZ_MAX_CACHED_SESSIONS``, the least recently used managers without a
    live attempt are dropped; their saved state stays in the store.
    """

    # Phases whose in-memory state must not be dropped
    LIVE_PHASES = (QuizPhase.ACQUIRING, QuizPhase.IN_PROGRESS)

    def __init__(
        self,
        store: KeyValueStore,
        client: TriviaClient,
        progression: ProgressionEngine,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.client = client
        self.progression = progression
        self.settings = settings or get_settings()
        self.max_sessions = max(1, self.settings.QUIZ_MAX_CACHED_SESSIONS)
        self._sessions: "OrderedDict[str, QuizSessionManager]" = OrderedDict()
        self._countdowns: Dict[str, QuizCountdown] = {}

    def __len__(self) -> int:
        return len(self._sessions)

    @staticmethod
    def _key(identity: Identity) -> str:
        return f"{'guest' if identity.is_guest else 'user'}:{identity.key}"

    def get(self, identity: Identity) -> QuizSessionManager:
        key = self._key(identity)
        manager = self._sessions.get(key)
        if manager is not None:
            self._sessions.move_to_end(key)
            return manager

        manager = QuizSessionManager(
            identity,
            self.store,
            self.client,
            self.progression,
            settings=self.settings,
        )
        self._sessions[key] = manager
        self._evict()
        return manager

    def _evict(self) -> None:
        excess = len(self._sessions) - self.max_sessions
        if excess <= 0:
            return

        # The most recent entry is the one being handed out
        for key in list(self._sessions)[:-1]:
            if excess <= 0:
                break
            if self._sessions[key].phase in self.LIVE_PHASES:
                continue
            del self._sessions[key]
            countdown = self._countdowns.pop(key, None)
            if countdown is not None:
                countdown.cancel()
            excess -= 1

        if excess > 0:
            logger.warning(f"{len(self._sessions)} quiz sessions live, above limit of {self.max_sessions}")

    def _prune_countdowns(self) -> None:
        for key, countdown in list(self._countdowns.items()):
            if not countdown.running:
                del self._countdowns[key]

    def start_countdown(self, identity: Identity) -> QuizCountdown:
        """Run the server-side countdown for an in-progress attempt"""
        self._prune_countdowns()
        key = self._key(identity)
        countdown = self._countdowns.get(key)
        if countdown is None:
            countdown = QuizCountdown(
                self.get(identity),
                interval=self.settings.QUIZ_TICK_INTERVAL_SECONDS,
            )
            self._countdowns[key] = countdown
        countdown.start()
        return countdown

    async def shutdown(self) -> None:
        for countdown in self._countdowns.values():
            await countdown.stop()
        self._countdowns.clear()
