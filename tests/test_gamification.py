# ============================================================================
# Gamification Tests
# ============================================================================
import pytest

from app.core.exceptions import IdentityAlreadyExists, IdentityNotFound
from app.schemas.progress import QuizOutcome, UserProgress
from app.services.gamification.achievements import AchievementSystem
from app.services.gamification.xp_system import XPSystem

class TestXPSystem:
    """Tests for XP and leveling system"""

    def test_quiz_xp(self):
        """Test XP formula with accuracy bonus"""
        assert XPSystem.calculate_quiz_xp(7, 10) == 80
        assert XPSystem.calculate_quiz_xp(10, 10) == 120
        assert XPSystem.calculate_quiz_xp(3, 10) == 30
        assert XPSystem.calculate_quiz_xp(8, 10) == 100
        assert XPSystem.calculate_quiz_xp(6, 10) == 70
        assert XPSystem.calculate_quiz_xp(0, 10) == 0

    def test_level_calculation(self):
        """Test level calculation from XP"""
        assert XPSystem.calculate_level(0) == 1
        assert XPSystem.calculate_level(99) == 1
        assert XPSystem.calculate_level(100) == 2
        assert XPSystem.calculate_level(850) == 5
        assert XPSystem.calculate_level(5000) == 10
        assert XPSystem.calculate_level(99999) == 10

    def test_level_progress(self):
        """Test progress towards the next level"""
        assert XPSystem.level_progress(0) == 0
        assert XPSystem.level_progress(175) == 50
        assert XPSystem.level_progress(6000) == 100

    def test_xp_for_next_level(self):
        assert XPSystem.xp_for_next_level(80) == 20
        assert XPSystem.xp_for_next_level(5000) == 0

    def test_level_info(self):
        """Test level info retrieval"""
        info = XPSystem.get_level_info(300)

        assert info["level"] == 3
        assert info["xp_in_level"] == 50
        assert info["xp_for_next_level"] == 200
        assert info["progress_percent"] == 20
        assert info["is_max_level"] is False

class TestAchievementSystem:
    """Tests for the achievement rule table"""

    def test_first_quiz_and_perfect_score(self):
        system = AchievementSystem()
        progress = UserProgress(username="amy", total_quizzes=1, total_correct=10, total_questions=10)

        earned = system.check_achievements(progress, QuizOutcome(correct_answers=10, total_questions=10))

        assert {a.id for a in earned} == {"first_quiz", "perfect_score"}
        assert set(progress.achievements) == {"first_quiz", "perfect_score"}

    def test_perfect_score_requires_exact_match(self):
        system = AchievementSystem()
        progress = UserProgress(username="amy", total_quizzes=1, total_correct=9, total_questions=10)

        earned = system.check_achievements(progress, QuizOutcome(correct_answers=9, total_questions=10))

        assert "perfect_score" not in {a.id for a in earned}

    def test_unlocks_are_write_once(self):
        system = AchievementSystem()
        progress = UserProgress(username="amy", total_quizzes=1, total_correct=10, total_questions=10)
        outcome = QuizOutcome(correct_answers=10, total_questions=10)

        system.check_achievements(progress, outcome)
        unlocked_at = progress.achievements["perfect_score"].unlocked_at
        again = system.check_achievements(progress, outcome)

        assert again == []
        assert progress.achievements["perfect_score"].unlocked_at == unlocked_at

    def test_high_scorer_needs_five_quizzes(self):
        system = AchievementSystem()
        progress = UserProgress(username="amy", total_quizzes=4, total_correct=40, total_questions=40)
        assert "high_scorer" not in {a.id for a in system.check_achievements(progress)}

        progress.total_quizzes = 5
        progress.total_correct, progress.total_questions = 40, 50
        assert "high_scorer" in {a.id for a in system.check_achievements(progress)}

    def test_milestones(self):
        system = AchievementSystem()
        progress = UserProgress(
            username="amy", level=10, total_quizzes=50, total_correct=500, total_questions=1000,
        )

        earned = {a.id for a in system.check_achievements(progress)}

        assert {"quiz_enthusiast", "quiz_master", "knowledge_seeker", "genius", "level_5", "level_10"} <= earned
        assert "high_scorer" not in earned

    def test_level_only_check(self):
        system = AchievementSystem()
        progress = UserProgress(username="amy", level=5, total_quizzes=10)

        earned = {a.id for a in system.check_level_achievements(progress)}

        assert earned == {"level_5"}

class TestProgressionEngine:
    """Tests for finalize and the abandon penalty"""

    @pytest.mark.asyncio
    async def test_finalize_updates_record(self, progression, registered_user):
        outcome = QuizOutcome(correct_answers=7, total_questions=10, category="History", difficulty="Easy")

        result = await progression.finalize("Tatenda", outcome, attempt_id="a1")

        assert result.xp_gained == 80
        assert result.new_total_xp == 80
        assert result.leveled_up is False
        assert [a.id for a in result.new_achievements] == ["first_quiz"]

        progress = await progression.repository.get("tatenda")
        assert progress.total_quizzes == 1
        assert progress.total_correct == 7
        assert progress.total_questions == 10
        assert progress.quiz_history[0].category == "History"
        assert progress.quiz_history[0].xp_earned == 80

    @pytest.mark.asyncio
    async def test_finalize_reports_level_up(self, progression, registered_user):
        progress = await progression.repository.get("Tatenda")
        progress.xp = 90
        await progression.repository.save(progress)

        result = await progression.finalize("Tatenda", QuizOutcome(correct_answers=3, total_questions=10))

        assert result.old_level == 1
        assert result.new_level == 2
        assert result.leveled_up is True

    @pytest.mark.asyncio
    async def test_finalize_same_attempt_twice(self, progression, registered_user):
        """Test a repeated finalize for one attempt does not double XP"""
        outcome = QuizOutcome(correct_answers=10, total_questions=10)

        first = await progression.finalize("Tatenda", outcome, attempt_id="a1")
        second = await progression.finalize("Tatenda", outcome, attempt_id="a1")

        assert first.xp_gained == 120
        assert second is None
        progress = await progression.repository.get("Tatenda")
        assert progress.xp == 120
        assert progress.total_quizzes == 1

    @pytest.mark.asyncio
    async def test_perfect_score_reported_once(self, progression, registered_user):
        outcome = QuizOutcome(correct_answers=10, total_questions=10)

        first = await progression.finalize("Tatenda", outcome, attempt_id="a1")
        second = await progression.finalize("Tatenda", outcome, attempt_id="a2")

        assert "perfect_score" in {a.id for a in first.new_achievements}
        assert "perfect_score" not in {a.id for a in second.new_achievements}

    @pytest.mark.asyncio
    async def test_history_is_capped(self, progression, registered_user):
        for i in range(25):
            await progression.finalize(
                "Tatenda",
                QuizOutcome(correct_answers=i % 10, total_questions=10),
                attempt_id=f"a{i}",
            )

        progress = await progression.repository.get("Tatenda")
        assert len(progress.quiz_history) == 20
        assert progress.quiz_history[0].attempt_id == "a24"
        assert progress.total_quizzes == 25

    @pytest.mark.asyncio
    async def test_abandon_penalty(self, progression, registered_user):
        progress = await progression.repository.get("Tatenda")
        progress.xp = 95
        progress.total_quizzes = 3
        await progression.repository.save(progress)

        result = await progression.apply_abandon_penalty("Tatenda")

        assert result.new_total_xp == 85
        assert result.xp_lost == 10
        progress = await progression.repository.get("Tatenda")
        assert progress.xp == 85
        assert progress.total_quizzes == 3

    @pytest.mark.asyncio
    async def test_abandon_penalty_floors_at_zero(self, progression, registered_user):
        progress = await progression.repository.get("Tatenda")
        progress.xp = 5
        await progression.repository.save(progress)

        result = await progression.apply_abandon_penalty("Tatenda")

        assert result.new_total_xp == 0
        assert result.xp_lost == 5

    @pytest.mark.asyncio
    async def test_abandon_penalty_drops_level(self, progression, registered_user):
        progress = await progression.repository.get("Tatenda")
        progress.xp = 105
        progress.level = 2
        await progression.repository.save(progress)

        result = await progression.apply_abandon_penalty("Tatenda")

        assert result.old_level == 2
        assert result.new_level == 1

    @pytest.mark.asyncio
    async def test_unknown_user(self, progression):
        with pytest.raises(IdentityNotFound):
            await progression.finalize("ghost", QuizOutcome(correct_answers=1, total_questions=10))

    @pytest.mark.asyncio
    async def test_duplicate_registration(self, progression, registered_user):
        with pytest.raises(IdentityAlreadyExists):
            await progression.repository.create("TATENDA")

    @pytest.mark.asyncio
    async def test_get_progress(self, progression, registered_user):
        await progression.finalize("Tatenda", QuizOutcome(correct_answers=8, total_questions=10), attempt_id="a1")

        summary = await progression.get_progress("Tatenda")

        assert summary.level_info.level == 2
        assert summary.accuracy == 80
        assert summary.achievements[0].id == "first_quiz"
        assert len(summary.quiz_history) == 1


# Run tests with: pytest tests/ -v --asyncio-mode=auto
