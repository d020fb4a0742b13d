"""XP breakdown and recent-activity feed.

Both are re-derived from bookings, reviews and achievements on every call,
so they are estimates: the per-source amounts below are what those sources
normally award, not what was actually recorded. The XP ledger
(`award_service.get_xp_history`) is the exact record.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorxp.config import get_settings
from tutorxp.db.models import Achievement, UserAchievement
from tutorxp.gamification.activity_source import ActivitySource
from tutorxp.gamification.profile_service import COMPLETED_PROGRESS, get_profile_row
from tutorxp.gamification.schemas import XPActivityEntry, XPBreakdownResponse

logger = logging.getLogger(__name__)

SESSION_XP = 50
DAILY_LOGIN_XP = 10
FIVE_STAR_REVIEW_XP = 25

MAX_DAILY_LOGIN_ENTRIES = 7
MAX_REVIEW_ENTRIES = 5


def _as_utc(dt: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from the database."""
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


async def get_xp_breakdown(db: AsyncSession, user_id: int) -> XPBreakdownResponse:
    """Estimate where a user's XP came from."""
    try:
        source = ActivitySource(db)
        breakdown = XPBreakdownResponse()

        who = await source.resolve_user(user_id)
        if who is not None:
            breakdown.sessions = await source.completed_session_count(who) * SESSION_XP

        achievement_xp = (
            await db.execute(
                select(func.coalesce(func.sum(Achievement.points_reward), 0))
                .join(UserAchievement, UserAchievement.achievement_id == Achievement.id)
                .where(UserAchievement.user_id == user_id, UserAchievement.progress >= COMPLETED_PROGRESS)
            )
        ).scalar_one()
        breakdown.achievements = int(achievement_xp)

        profile = await get_profile_row(db, user_id)
        if profile is not None:
            breakdown.daily_login = profile.streak_count * DAILY_LOGIN_XP

        if who is not None and who.tutor_id is not None:
            breakdown.bonuses = await source.five_star_review_count(who.tutor_id) * FIVE_STAR_REVIEW_XP

        total = profile.experience_points if profile is not None else 0
        accounted = breakdown.sessions + breakdown.achievements + breakdown.daily_login + breakdown.bonuses
        breakdown.other = max(0, total - accounted)
        breakdown.total = total

        logger.info(
            "XP breakdown for user %s: sessions=%d achievements=%d daily_login=%d bonuses=%d other=%d total=%d",
            user_id, breakdown.sessions, breakdown.achievements, breakdown.daily_login,
            breakdown.bonuses, breakdown.other, breakdown.total,
        )
        return breakdown
    except SQLAlchemyError:
        logger.exception("Error getting XP breakdown for user %s", user_id)
        return XPBreakdownResponse()


async def get_recent_activity(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
) -> list[XPActivityEntry]:
    """Most recent XP-earning activity, newest first."""
    settings = get_settings()
    if now is None:
        now = datetime.now(timezone.utc)
    since = now - timedelta(days=settings.recent_activity_window_days)
    limit = settings.recent_activity_limit

    try:
        source = ActivitySource(db)
        activities: list[XPActivityEntry] = []

        who = await source.resolve_user(user_id)
        if who is not None:
            counterpart = "tutor" if who.role == "Student" else "student"
            for booking in await source.recent_completed_sessions(who, since, limit):
                module_name = booking.module.name if booking.module is not None else "session"
                activities.append(XPActivityEntry(
                    type="Session",
                    description=f"Completed {module_name} with {counterpart}",
                    points=SESSION_XP,
                    timestamp=_as_utc(booking.end_time or booking.start_time),
                    icon="fa-calendar-check",
                    color="bg-success",
                ))

        recent_achievements = await db.execute(
            select(UserAchievement)
            .where(
                UserAchievement.user_id == user_id,
                UserAchievement.progress >= COMPLETED_PROGRESS,
                UserAchievement.earned_at >= since,
            )
            .order_by(UserAchievement.earned_at.desc())
            .limit(limit)
        )
        for row in recent_achievements.unique().scalars():
            activities.append(XPActivityEntry(
                type="Achievement",
                description=f"Unlocked '{row.achievement.name}'",
                points=row.achievement.points_reward,
                timestamp=_as_utc(row.earned_at),
                icon="fa-trophy",
                color="bg-warning",
            ))

        # Daily logins are not recorded; the current streak implies one per day
        profile = await get_profile_row(db, user_id)
        if profile is not None and profile.streak_count > 0:
            for days_ago in range(min(MAX_DAILY_LOGIN_ENTRIES, profile.streak_count)):
                activities.append(XPActivityEntry(
                    type="DailyLogin",
                    description="Daily login bonus",
                    points=DAILY_LOGIN_XP,
                    timestamp=now - timedelta(days=days_ago),
                    icon="fa-sign-in-alt",
                    color="bg-info",
                ))

        if who is not None and who.tutor_id is not None:
            for review in await source.recent_five_star_reviews(who.tutor_id, since, MAX_REVIEW_ENTRIES):
                activities.append(XPActivityEntry(
                    type="Bonus",
                    description="Received 5-star review",
                    points=FIVE_STAR_REVIEW_XP,
                    timestamp=_as_utc(review.created_at),
                    icon="fa-star",
                    color="bg-primary",
                ))

        activities.sort(key=lambda entry: entry.timestamp, reverse=True)
        return activities[:limit]
    except SQLAlchemyError:
        logger.exception("Error getting recent XP activity for user %s", user_id)
        return []
