# ============================================================================
# XP & Leveling System
# ============================================================================
from typing import Dict, List

class XPSystem:
    """XP rewards for finished quizzes and level lookups"""

    XP_PER_CORRECT = 10

    # (minimum accuracy percent, bonus XP), checked in order
    ACCURACY_BONUSES = [
        (80, 20),
        (60, 10),
    ]

    # Cumulative XP required for each level, index 0 is level 1
    LEVEL_THRESHOLDS: List[int] = [
        0,      # Level 1
        100,    # Level 2
        250,    # Level 3
        500,    # Level 4
        850,    # Level 5
        1300,   # Level 6
        1900,   # Level 7
        2700,   # Level 8
        3700,   # Level 9
        5000,   # Level 10
    ]
    MAX_LEVEL = 10

    @staticmethod
    def accuracy_percent(correct: int, total: int) -> int:
        if total <= 0:
            return 0
        # Half rounds up
        return int(correct * 100 / total + 0.5)

    @classmethod
    def calculate_quiz_xp(cls, correct: int, total: int) -> int:
        """10 XP per correct answer plus an accuracy bonus"""
        xp = correct * cls.XP_PER_CORRECT
        accuracy = cls.accuracy_percent(correct, total)
        for min_accuracy, bonus in cls.ACCURACY_BONUSES:
            if accuracy >= min_accuracy:
                return xp + bonus
        return xp

    @classmethod
    def calculate_level(cls, total_xp: int) -> int:
        """Highest level whose threshold does not exceed total_xp"""
        level = 1
        for index, xp_required in enumerate(cls.LEVEL_THRESHOLDS):
            if total_xp >= xp_required:
                level = index + 1
            else:
                break
        return min(level, cls.MAX_LEVEL)

    @classmethod
    def xp_for_next_level(cls, total_xp: int) -> int:
        level = cls.calculate_level(total_xp)
        if level >= cls.MAX_LEVEL:
            return 0
        return cls.LEVEL_THRESHOLDS[level] - total_xp

    @classmethod
    def level_progress(cls, total_xp: int) -> int:
        """Percent of the way from the current level to the next one"""
        level = cls.calculate_level(total_xp)
        if level >= cls.MAX_LEVEL:
            return 100

        current_threshold = cls.LEVEL_THRESHOLDS[level - 1]
        next_threshold = cls.LEVEL_THRESHOLDS[level]
        return int((total_xp - current_threshold) * 100 / (next_threshold - current_threshold) + 0.5)

    @classmethod
    def get_level_info(cls, total_xp: int) -> Dict:
        """Get detailed level information"""
        level = cls.calculate_level(total_xp)
        current_threshold = cls.LEVEL_THRESHOLDS[level - 1]
        is_max_level = level >= cls.MAX_LEVEL

        return {
            "level": level,
            "total_xp": total_xp,
            "xp_in_level": total_xp - current_threshold,
            "xp_for_next_level": cls.xp_for_next_level(total_xp),
            "progress_percent": cls.level_progress(total_xp),
            "is_max_level": is_max_level,
        }
