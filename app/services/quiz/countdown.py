# ============================================================================
# Quiz Countdown
# ============================================================================
from typing import Awaitable, Callable, Optional
import asyncio
import logging

from app.schemas.quiz import QuizPhase

logger = logging.getLogger(__name__)


class QuizCountdown:
    """
    Periodic wake-up that reconciles a session's remaining time.

    Each wake-up calls ``tick()``, which recomputes from the stored start
    instant, so a suspended or late loop never drifts.
    """

    def __init__(
        self,
        session,
        interval: float = 1.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.session = session
        self.interval = interval
        self._sleep = sleep
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    def cancel(self) -> None:
        """Stop without waiting for the task to unwind"""
        if self._task is not None:
            self._task.cancel()
            self._task = None

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while self.session.phase == QuizPhase.IN_PROGRESS:
            await self._sleep(self.interval)
            await self.session.tick()
        logger.debug(f"Countdown stopped in phase {self.session.phase.value}")
