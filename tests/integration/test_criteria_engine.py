"""Criteria engine tests against marketplace data."""

from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from tutorxp.db.models import Achievement
from tutorxp.gamification.criteria_engine import CriteriaEngine


def _achievement(category: str, criteria_type: str, required: int = 1, raw: str | None = None) -> Achievement:
    criteria = raw if raw is not None else json.dumps({"CriteriaType": criteria_type, "RequiredCount": required})
    return Achievement(
        id=900,
        name=f"{category} {criteria_type} {required}",
        description="",
        category=category,
        points_reward=10,
        criteria=criteria,
    )


def _profile(xp: int = 0, level: int = 1, streak: int = 0) -> SimpleNamespace:
    return SimpleNamespace(experience_points=xp, level=level, streak_count=streak)


class TestAttendance:
    """Account, email, session count and login streak criteria."""

    @pytest.mark.asyncio
    async def test_account_created_needs_some_xp(self, marketplace):
        user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Attendance", "account_created")

        assert await engine.evaluate(user.id, achievement, _profile(xp=0)) is False
        assert await engine.evaluate(user.id, achievement, _profile(xp=1)) is True

    @pytest.mark.asyncio
    async def test_email_verified_uses_xp_threshold(self, marketplace):
        user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Attendance", "email_verified")

        assert await engine.evaluate(user.id, achievement, _profile(xp=149)) is False
        assert await engine.evaluate(user.id, achievement, _profile(xp=150)) is True

    @pytest.mark.asyncio
    async def test_login_streak(self, marketplace):
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Attendance", "login_streak", 7)

        assert await engine.evaluate(1, achievement, _profile(streak=6)) is False
        assert await engine.evaluate(1, achievement, _profile(streak=7)) is True

    @pytest.mark.asyncio
    async def test_session_count_by_role(self, marketplace):
        student_user, student = await marketplace.student()
        tutor_user, tutor = await marketplace.tutor()
        for _ in range(5):
            await marketplace.booking(student, tutor)
        await marketplace.booking(student, tutor, status="Cancelled")

        engine = CriteriaEngine(marketplace.db)
        five = _achievement("Attendance", "session_count", 5)
        six = _achievement("Attendance", "session_count", 6)

        assert await engine.evaluate(student_user.id, five, _profile()) is True
        assert await engine.evaluate(student_user.id, six, _profile()) is False
        assert await engine.evaluate(tutor_user.id, five, _profile()) is True

    @pytest.mark.asyncio
    async def test_session_count_unknown_user(self, marketplace):
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Attendance", "session_count", 0)
        assert await engine.evaluate(4242, achievement, _profile()) is False


class TestProgress:
    """Level and module criteria."""

    @pytest.mark.asyncio
    async def test_reach_level(self, marketplace):
        user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Progress", "reach_level", 5)

        assert await engine.evaluate(user.id, achievement, _profile(level=4)) is False
        assert await engine.evaluate(user.id, achievement, _profile(level=5)) is True

    @pytest.mark.asyncio
    async def test_reach_level_requires_marketplace_user(self, marketplace):
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Progress", "reach_level", 5)
        assert await engine.evaluate(4242, achievement, _profile(level=50)) is False

    @pytest.mark.asyncio
    async def test_module_sessions_counts_per_module(self, marketplace):
        user, student = await marketplace.student()
        _, tutor = await marketplace.tutor()
        calculus = await marketplace.module("Calculus I")
        physics = await marketplace.module("Physics")
        await marketplace.booking(student, tutor, calculus)
        await marketplace.booking(student, tutor, calculus)
        await marketplace.booking(student, tutor, physics)

        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Progress", "module_sessions", 3)
        assert await engine.evaluate(user.id, achievement, _profile()) is False

        await marketplace.booking(student, tutor, calculus)
        assert await engine.evaluate(user.id, achievement, _profile()) is True

    @pytest.mark.asyncio
    async def test_unique_modules(self, marketplace):
        user, student = await marketplace.student()
        _, tutor = await marketplace.tutor()
        for name in ("Calculus I", "Physics", "Chemistry"):
            await marketplace.booking(student, tutor, await marketplace.module(name))
        await marketplace.booking(student, tutor)  # no module

        engine = CriteriaEngine(marketplace.db)
        assert await engine.evaluate(user.id, _achievement("Progress", "unique_modules", 3), _profile()) is True
        assert await engine.evaluate(user.id, _achievement("Progress", "unique_modules", 4), _profile()) is False


class TestMastery:
    """Tutor-only review criteria."""

    @pytest.mark.asyncio
    async def test_first_five_star(self, marketplace):
        tutor_user, tutor = await marketplace.tutor()
        _, student = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Mastery", "five_star_rating")

        await marketplace.review(student, tutor, rating=4)
        assert await engine.evaluate(tutor_user.id, achievement, _profile()) is False

        await marketplace.review(student, tutor, rating=5)
        assert await engine.evaluate(tutor_user.id, achievement, _profile()) is True

    @pytest.mark.asyncio
    async def test_students_never_meet_mastery(self, marketplace):
        student_user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Mastery", "five_star_ratings", 0)
        assert await engine.evaluate(student_user.id, achievement, _profile()) is False

    @pytest.mark.asyncio
    async def test_high_rating_average(self, marketplace):
        tutor_user, tutor = await marketplace.tutor()
        _, student = await marketplace.student()
        await marketplace.review(student, tutor, rating=5)
        await marketplace.review(student, tutor, rating=4)

        engine = CriteriaEngine(marketplace.db)
        assert await engine.evaluate(tutor_user.id, _achievement("Mastery", "high_rating_average", 4), _profile())
        assert not await engine.evaluate(
            tutor_user.id, _achievement("Mastery", "high_rating_average", 5), _profile()
        )

    @pytest.mark.asyncio
    async def test_high_rating_average_without_reviews(self, marketplace):
        tutor_user, _ = await marketplace.tutor()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Mastery", "high_rating_average", 1)
        assert await engine.evaluate(tutor_user.id, achievement, _profile()) is False


class TestSocial:
    """Social criteria."""

    @pytest.mark.asyncio
    async def test_unique_students(self, marketplace):
        tutor_user, tutor = await marketplace.tutor()
        _, first = await marketplace.student("First")
        _, second = await marketplace.student("Second")
        await marketplace.booking(first, tutor)
        await marketplace.booking(first, tutor)
        await marketplace.booking(second, tutor)

        engine = CriteriaEngine(marketplace.db)
        assert await engine.evaluate(tutor_user.id, _achievement("Social", "unique_students", 2), _profile())
        assert not await engine.evaluate(tutor_user.id, _achievement("Social", "unique_students", 3), _profile())

    @pytest.mark.asyncio
    async def test_questions_asked_counts_sessions_with_notes(self, marketplace):
        user, student = await marketplace.student()
        _, tutor = await marketplace.tutor()
        await marketplace.booking(student, tutor, notes="How do limits work?")
        await marketplace.booking(student, tutor, notes="")
        await marketplace.booking(student, tutor)

        engine = CriteriaEngine(marketplace.db)
        assert await engine.evaluate(user.id, _achievement("Social", "questions_asked", 1), _profile())
        assert not await engine.evaluate(user.id, _achievement("Social", "questions_asked", 2), _profile())

    @pytest.mark.asyncio
    async def test_study_groups_and_boards_never_met(self, marketplace):
        user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        for criteria_type in ("join_study_group", "board_posts"):
            achievement = _achievement("Social", criteria_type, 0)
            assert await engine.evaluate(user.id, achievement, _profile(xp=10_000)) is False


class TestNotEvaluable:
    """Anything the engine cannot evaluate is never satisfied."""

    @pytest.mark.asyncio
    async def test_unknown_criteria_type(self, marketplace):
        user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        raw = '{"CriteriaType":"unknown_type","RequiredCount":1}'
        for category in ("Attendance", "Progress", "Mastery", "Social"):
            achievement = _achievement(category, "unknown_type", raw=raw)
            assert await engine.evaluate(user.id, achievement, _profile(xp=10_000, level=50, streak=50)) is False

    @pytest.mark.asyncio
    async def test_criteria_type_in_wrong_category(self, marketplace):
        user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Mastery", "login_streak", 1)
        assert await engine.evaluate(user.id, achievement, _profile(streak=10)) is False

    @pytest.mark.asyncio
    async def test_malformed_blob(self, marketplace):
        user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Attendance", "login_streak", raw="{not json")
        assert await engine.evaluate(user.id, achievement, _profile(streak=10)) is False

    @pytest.mark.asyncio
    async def test_unknown_category(self, marketplace):
        user, _ = await marketplace.student()
        engine = CriteriaEngine(marketplace.db)
        achievement = _achievement("Seasonal", "login_streak", 1)
        assert await engine.evaluate(user.id, achievement, _profile(streak=10)) is False
