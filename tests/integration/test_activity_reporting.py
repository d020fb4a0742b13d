"""XP breakdown and recent-activity feed tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.exc import OperationalError

from tutorxp.db.models import GamificationProfile
from tutorxp.gamification.activity_service import get_recent_activity, get_xp_breakdown
from tutorxp.gamification.award_service import award_points

NOW = datetime(2026, 3, 10, 15, 0, 0, tzinfo=timezone.utc)


async def _profile(db, user_id: int, xp: int, streak: int) -> GamificationProfile:
    profile = GamificationProfile(
        user_id=user_id,
        experience_points=xp,
        level=1,
        current_rank="Beginner",
        streak_count=streak,
        last_activity_at=NOW,
    )
    db.add(profile)
    await db.commit()
    return profile


class TestXPBreakdown:
    """Estimated XP by source."""

    @pytest.mark.asyncio
    async def test_tutor_breakdown(self, marketplace):
        db = marketplace.db
        tutor_user, tutor = await marketplace.tutor()
        _, student = await marketplace.student()
        await marketplace.booking(student, tutor)
        await marketplace.booking(student, tutor)
        await marketplace.review(student, tutor, rating=5)
        await marketplace.review(student, tutor, rating=3)
        await _profile(db, tutor_user.id, xp=1000, streak=3)

        breakdown = await get_xp_breakdown(db, tutor_user.id)

        assert breakdown.sessions == 100
        assert breakdown.achievements == 0
        assert breakdown.daily_login == 30
        assert breakdown.bonuses == 25
        assert breakdown.other == 1000 - 155
        assert breakdown.total == 1000

    @pytest.mark.asyncio
    async def test_achievement_rewards_counted(self, marketplace):
        db = marketplace.db
        user, student = await marketplace.student()
        _, tutor = await marketplace.tutor()
        await marketplace.booking(student, tutor)
        await award_points(db, None, user.id, "SessionCompleted", 50, now=NOW)

        breakdown = await get_xp_breakdown(db, user.id)

        # First Session (100) + Verified Scholar (50) + Getting Started (50, granted at creation)
        assert breakdown.achievements == 200
        assert breakdown.sessions == 50
        assert breakdown.daily_login == 10
        assert breakdown.bonuses == 0
        assert breakdown.total == 200
        # Estimates exceed the actual total, so nothing is left over
        assert breakdown.other == 0

    @pytest.mark.asyncio
    async def test_unknown_user_is_all_zero(self, seeded_db):
        breakdown = await get_xp_breakdown(seeded_db, 4242)
        assert breakdown.model_dump() == {
            "sessions": 0, "achievements": 0, "daily_login": 0, "bonuses": 0, "other": 0, "total": 0,
        }

    @pytest.mark.asyncio
    async def test_persistence_error_degrades_to_zero(self):
        db = AsyncMock()
        db.execute.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

        breakdown = await get_xp_breakdown(db, 1)

        assert breakdown.total == 0
        assert breakdown.sessions == 0


class TestRecentActivity:
    """Merged recent-activity feed."""

    @pytest.mark.asyncio
    async def test_student_feed(self, marketplace):
        db = marketplace.db
        user, student = await marketplace.student()
        _, tutor = await marketplace.tutor()
        calculus = await marketplace.module("Calculus I")
        await marketplace.booking(
            student, tutor, calculus,
            start_time=NOW - timedelta(days=2, hours=1),
            end_time=NOW - timedelta(days=2),
        )
        await marketplace.booking(student, tutor, start_time=NOW - timedelta(days=40))
        await award_points(db, None, user.id, "SessionCompleted", 50, now=NOW - timedelta(hours=1))

        activities = await get_recent_activity(db, user.id, now=NOW)

        types = [a.type for a in activities]
        sessions = [a for a in activities if a.type == "Session"]
        assert len(sessions) == 1
        assert sessions[0].description == "Completed Calculus I with tutor"
        assert sessions[0].points == 50
        assert sessions[0].icon == "fa-calendar-check"
        assert sessions[0].color == "bg-success"

        unlocked = {a.description for a in activities if a.type == "Achievement"}
        assert "Unlocked 'First Session'" in unlocked
        assert "Unlocked 'Getting Started'" in unlocked

        assert types.count("DailyLogin") == 1
        assert "Bonus" not in types

        timestamps = [a.timestamp for a in activities]
        assert timestamps == sorted(timestamps, reverse=True)
        assert all(t.tzinfo is not None for t in timestamps)

    @pytest.mark.asyncio
    async def test_tutor_feed_includes_five_star_bonus(self, marketplace):
        db = marketplace.db
        tutor_user, tutor = await marketplace.tutor()
        _, student = await marketplace.student()
        await marketplace.booking(student, tutor)
        await marketplace.review(student, tutor, rating=5, created_at=NOW - timedelta(days=3))
        await marketplace.review(student, tutor, rating=5, created_at=NOW - timedelta(days=45))
        await marketplace.review(student, tutor, rating=2, created_at=NOW - timedelta(days=3))

        activities = await get_recent_activity(db, tutor_user.id, now=NOW)

        bonuses = [a for a in activities if a.type == "Bonus"]
        assert len(bonuses) == 1
        assert bonuses[0].description == "Received 5-star review"
        assert bonuses[0].points == 25
        session = next(a for a in activities if a.type == "Session")
        assert session.description == "Completed session with student"

    @pytest.mark.asyncio
    async def test_daily_logins_capped_at_seven(self, marketplace):
        db = marketplace.db
        user, _ = await marketplace.student()
        await _profile(db, user.id, xp=500, streak=12)

        activities = await get_recent_activity(db, user.id, now=NOW)

        logins = [a for a in activities if a.type == "DailyLogin"]
        assert len(logins) == 7
        assert logins[0].timestamp == NOW
        assert logins[-1].timestamp == NOW - timedelta(days=6)
        assert all(a.description == "Daily login bonus" and a.points == 10 for a in logins)

    @pytest.mark.asyncio
    async def test_feed_capped_at_ten(self, marketplace):
        db = marketplace.db
        user, student = await marketplace.student()
        _, tutor = await marketplace.tutor()
        for days_ago in range(1, 9):
            await marketplace.booking(student, tutor, start_time=NOW - timedelta(days=days_ago))
        await _profile(db, user.id, xp=500, streak=7)

        activities = await get_recent_activity(db, user.id, now=NOW)

        assert len(activities) == 10

    @pytest.mark.asyncio
    async def test_unknown_user_empty(self, seeded_db):
        assert await get_recent_activity(seeded_db, 4242, now=NOW) == []

    @pytest.mark.asyncio
    async def test_persistence_error_degrades_to_empty(self):
        db = AsyncMock()
        db.execute.side_effect = OperationalError("SELECT", {}, Exception("connection lost"))

        assert await get_recent_activity(db, 1, now=NOW) == []
