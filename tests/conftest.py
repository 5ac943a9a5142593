# ============================================================================
# Test Configuration & Fixtures
# ============================================================================
import pytest
import random
from datetime import datetime, timedelta, timezone
from typing import AsyncGenerator, Callable, Dict, List
from unittest.mock import AsyncMock, MagicMock

import httpx

from app.config import Settings
from app.core.storage import InMemoryStore
from app.schemas.progress import Identity
from app.schemas.quiz import Question
from app.services.gamification.progress import ProgressionEngine
from app.services.quiz.session_manager import QuizSessionManager, QuizSessionRegistry
from app.services.trivia.client import TriviaClient

START = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable wall clock returning aware datetimes"""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeMonotonic:
    """Settable monotonic clock in seconds"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_question(index: int, correct: str = "Right") -> Question:
    return Question(
        question=f"Question {index}?",
        answers=["Wrong A", correct, "Wrong B", "Wrong C"],
        correct_answer=correct,
        category="General Knowledge",
        difficulty="easy",
    )


def make_api_payload(count: int = 10, response_code: int = 0) -> Dict:
    """Open Trivia DB style envelope"""
    return {
        "response_code": response_code,
        "results": [
            {
                "category": "Science &amp; Nature",
                "type": "multiple",
                "difficulty": "medium",
                "question": f"What is &quot;item {i}&quot;?",
                "correct_answer": f"Correct &amp; {i}",
                "incorrect_answers": [f"Wrong {i}a", f"Wrong {i}b", f"Wrong {i}c"],
            }
            for i in range(count)
        ] if response_code == 0 else [],
    }


@pytest.fixture
def settings() -> Settings:
    return Settings(
        STORAGE_BACKEND="memory",
        QUIZ_ADVANCE_DELAY_SECONDS=0,
        QUIZ_TICK_INTERVAL_SECONDS=3600,
        TRIVIA_RETRY_BASE_DELAY=1.0,
    )


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleep_calls() -> List[float]:
    return []


@pytest.fixture
def fake_sleep(sleep_calls) -> Callable:
    async def _sleep(seconds: float) -> None:
        sleep_calls.append(seconds)
    return _sleep


@pytest.fixture
def progression(store, settings) -> ProgressionEngine:
    return ProgressionEngine(store, settings)


@pytest.fixture
def questions() -> List[Question]:
    return [make_question(i) for i in range(10)]


@pytest.fixture
def mock_trivia_client(questions):
    """Question source returning a fixed batch"""
    client = MagicMock(spec=TriviaClient)
    client.acquire = AsyncMock(return_value=questions)
    return client


@pytest.fixture
async def registered_user(progression) -> Identity:
    await progression.repository.create("Tatenda")
    return Identity(username="Tatenda")


@pytest.fixture
def guest_user() -> Identity:
    return Identity(username="Visitor", is_guest=True)


@pytest.fixture
def make_session(store, mock_trivia_client, progression, settings, clock, fake_sleep):
    """Factory for session managers sharing one store and clock"""
    def _make(identity: Identity, client=None) -> QuizSessionManager:
        return QuizSessionManager(
            identity,
            store,
            client or mock_trivia_client,
            progression,
            settings=settings,
            clock=clock,
            sleep=fake_sleep,
        )
    return _make


@pytest.fixture
def transport_factory():
    """Build an httpx transport from a list of (status, json) responses"""
    def _build(responses: List, requests: List[httpx.Request]):
        queue = list(responses)

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            status, payload = queue.pop(0) if len(queue) > 1 else queue[0]
            return httpx.Response(status, json=payload)

        return httpx.MockTransport(handler)
    return _build


@pytest.fixture
def make_trivia_client(settings, fake_sleep, transport_factory):
    def _make(responses: List, requests: List, clock=None, seed: int = 7) -> TriviaClient:
        http_client = httpx.AsyncClient(transport=transport_factory(responses, requests))
        return TriviaClient(
            settings,
            http_client=http_client,
            rng=random.Random(seed),
            sleep=fake_sleep,
            clock=clock or FakeMonotonic(),
        )
    return _make


@pytest.fixture
async def client(store, settings, mock_trivia_client, progression) -> AsyncGenerator[httpx.AsyncClient, None]:
    """API client with app state wired to in-memory collaborators"""
    from app.main import app

    registry = QuizSessionRegistry(store, mock_trivia_client, progression, settings)
    app.state.store = store
    app.state.trivia_client = mock_trivia_client
    app.state.progression = progression
    app.state.sessions = registry

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    await registry.shutdown()
