from app.services.gamification.xp_system import XPSystem
from app.services.gamification.achievements import AchievementSystem, AchievementRule
from app.services.gamification.progress import ProgressionEngine, ProgressRepository

__all__ = [
    "XPSystem",
    "AchievementSystem",
    "AchievementRule",
    "ProgressionEngine",
    "ProgressRepository",
]
