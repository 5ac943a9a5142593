from app.services.quiz.countdown import QuizCountdown
from app.services.quiz.session_manager import QuizSessionManager, QuizSessionRegistry

__all__ = ["QuizCountdown", "QuizSessionManager", "QuizSessionRegistry"]
