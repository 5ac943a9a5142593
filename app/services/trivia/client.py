# ============================================================================
# Open Trivia DB Client
# ============================================================================
"""
Question source client.

Fetches multiple choice questions from an Open Trivia DB compatible
provider and shields callers from its flakiness:
- Definitive envelope errors (not enough questions, bad selector) fail fast
- Rate limiting is served from the last successful batch when it is fresh
- Other failures are retried with exponential backoff
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union
from dataclasses import dataclass
from enum import IntEnum
import asyncio
import html
import logging
import random
import time

import httpx

from app.config import Settings, get_settings
from app.core.exceptions import (
    InsufficientInventory,
    InvalidSelection,
    QuestionSourceError,
    QuestionSourceUnavailable,
    RateLimited,
    UpstreamError,
)
from app.schemas.quiz import ANY, Question, QuizPreferences

logger = logging.getLogger(__name__)

# Reported for "any" category, which is never short of questions
ANY_CATEGORY_COUNT = 100


class ResponseCode(IntEnum):
    SUCCESS = 0
    NO_RESULTS = 1
    INVALID_PARAMETER = 2
    TOKEN_NOT_FOUND = 3
    TOKEN_EMPTY = 4
    RATE_LIMIT = 5


@dataclass
class CachedBatch:
    """Last successful batch, kept as the rate-limit fallback"""
    questions: List[Question]
    fetched_at: float

    def is_fresh(self, ttl_seconds: float, now: float) -> bool:
        return now - self.fetched_at <= ttl_seconds


class TriviaClient:
    """Client for the Open Trivia DB question bank"""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.api_url = self.settings.TRIVIA_API_URL
        self.categories_url = self.settings.TRIVIA_CATEGORIES_URL
        self.count_url = self.settings.TRIVIA_COUNT_URL
        self.max_attempts = max(1, self.settings.TRIVIA_MAX_ATTEMPTS)
        self.retry_base_delay = self.settings.TRIVIA_RETRY_BASE_DELAY
        self.fallback_ttl = self.settings.TRIVIA_FALLBACK_TTL_SECONDS

        self._http = http_client or httpx.AsyncClient(
            timeout=self.settings.TRIVIA_TIMEOUT_SECONDS
        )
        self._owns_http = http_client is None
        self._rng = rng or random.Random()
        self._sleep = sleep
        self._clock = clock

        # Process-wide caches, reset only by restart
        self._last_batch: Optional[CachedBatch] = None
        self._categories: Optional[List[Dict[str, Any]]] = None

    async def close(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ==================== Questions ====================

    async def acquire(self, preferences: Optional[QuizPreferences] = None) -> List[Question]:
        """
        Fetch a batch of questions for the given preferences.

        Raises:
            InsufficientInventory: provider does not have enough questions
            InvalidSelection: category/difficulty combination rejected
            QuestionSourceUnavailable: retries exhausted, ``cause`` holds
                the last underlying error
        """
        preferences = preferences or QuizPreferences(
            amount=self.settings.TRIVIA_DEFAULT_AMOUNT
        )
        params = self.build_params(preferences)
        last_error: Optional[QuestionSourceError] = None

        for attempt in range(self.max_attempts):
            if attempt > 0:
                delay = self.retry_base_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"Question fetch attempt {attempt} failed: {last_error.detail}. "
                    f"Retrying in {delay:.1f}s"
                )
                await self._sleep(delay)

            try:
                return await self._fetch_batch(params)
            except RateLimited as e:
                fallback = self._fresh_fallback()
                if fallback is not None:
                    logger.warning("Question provider rate limited, serving cached batch")
                    return fallback
                last_error = e
            except QuestionSourceError as e:
                if not e.retryable:
                    raise
                last_error = e

        logger.error(f"Question fetch failed after {self.max_attempts} attempts: {last_error.detail}")
        raise QuestionSourceUnavailable(self.max_attempts, cause=last_error) from last_error

    def build_params(self, preferences: QuizPreferences) -> Dict[str, str]:
        params = {
            "amount": str(preferences.amount),
            "type": "multiple",
        }
        if preferences.category != ANY:
            params["category"] = str(preferences.category)
        if preferences.difficulty.value != ANY:
            params["difficulty"] = preferences.difficulty.value
        return params

    async def _fetch_batch(self, params: Dict[str, str]) -> List[Question]:
        """Single request/response round, classified into our error taxonomy"""
        try:
            response = await self._http.get(self.api_url, params=params)
        except httpx.HTTPError as e:
            raise UpstreamError(f"Question provider request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimited()
        if response.status_code != 200:
            raise UpstreamError(f"Question provider returned HTTP {response.status_code}")

        try:
            data = response.json()
            code = int(data.get("response_code", -1))
        except (ValueError, AttributeError, TypeError) as e:
            raise UpstreamError(f"Malformed response from question provider: {e}") from e

        if code == ResponseCode.NO_RESULTS:
            raise InsufficientInventory()
        if code == ResponseCode.INVALID_PARAMETER:
            raise InvalidSelection()
        if code == ResponseCode.RATE_LIMIT:
            raise RateLimited()
        if code != ResponseCode.SUCCESS:
            raise UpstreamError(f"Question provider returned response code {code}")

        try:
            questions = [self._normalize(item) for item in data.get("results", [])]
        except (KeyError, TypeError, ValueError) as e:
            raise UpstreamError(f"Malformed question record: {e}") from e

        self._last_batch = CachedBatch(questions=questions, fetched_at=self._clock())
        return questions

    def _normalize(self, item: Dict[str, Any]) -> Question:
        correct = html.unescape(item["correct_answer"])
        incorrect = [html.unescape(answer) for answer in item["incorrect_answers"]]
        return Question(
            question=html.unescape(item["question"]),
            answers=self.shuffle([*incorrect, correct]),
            correct_answer=correct,
            category=html.unescape(item.get("category", "")),
            difficulty=item.get("difficulty", ""),
        )

    def shuffle(self, items: List[str]) -> List[str]:
        """Fisher-Yates shuffle on a copy, every permutation equally likely"""
        shuffled = list(items)
        for i in range(len(shuffled) - 1, 0, -1):
            j = self._rng.randint(0, i)
            shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
        return shuffled

    def _fresh_fallback(self) -> Optional[List[Question]]:
        batch = self._last_batch
        if batch and batch.is_fresh(self.fallback_ttl, self._clock()):
            return batch.questions
        return None

    # ==================== Catalog ====================

    async def fetch_categories(self) -> List[Dict[str, Any]]:
        """Full category catalog, "Any Category" first. Cached after first success."""
        if self._categories is not None:
            return self._categories

        try:
            response = await self._http.get(self.categories_url)
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching categories: {e}")
            raise UpstreamError("Failed to fetch categories") from e

        self._categories = [
            {"id": ANY, "name": "Any Category"},
            *(
                {"id": cat["id"], "name": html.unescape(cat["name"])}
                for cat in data.get("trivia_categories", [])
            ),
        ]
        return self._categories

    async def count(self, category: Union[int, str], difficulty: str = ANY) -> int:
        """
        Number of questions available for a category/difficulty.

        Used only to warn about thin inventory before starting, so provider
        errors are logged and reported as zero.
        """
        if str(category).lower() == ANY:
            return ANY_CATEGORY_COUNT
        difficulty = getattr(difficulty, "value", difficulty)

        try:
            response = await self._http.get(self.count_url, params={"category": str(category)})
            if response.status_code != 200:
                return 0
            counts = response.json()["category_question_count"]
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.error(f"Error fetching question count: {e}")
            return 0

        if difficulty == ANY:
            return int(counts.get("total_question_count", 0))
        return int(counts.get(f"total_{difficulty}_question_count", 0))
