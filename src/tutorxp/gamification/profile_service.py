"""Gamification profile store: get-or-create, achievement rows and the profile view."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorxp.config import get_settings
from tutorxp.db.models import Achievement, GamificationProfile, UserAchievement
from tutorxp.gamification.level_thresholds import compute_level, rank_for_level
from tutorxp.gamification.schemas import GamificationProfileResponse, UserAchievementResponse

logger = logging.getLogger(__name__)

COMPLETED_PROGRESS = 100
DEFAULT_ICON_URL = "/images/achievements/default.png"

# Profiles with more XP than this but fewer achievements than
# AUTO_CHECK_MIN_ACHIEVEMENTS get an achievement check when viewed.
AUTO_CHECK_XP = 100
AUTO_CHECK_MIN_ACHIEVEMENTS = 3


async def get_profile_row(db: AsyncSession, user_id: int) -> GamificationProfile | None:
    result = await db.execute(select(GamificationProfile).where(GamificationProfile.user_id == user_id))
    return result.scalar_one_or_none()


async def get_or_create_profile(
    db: AsyncSession,
    user_id: int,
    now: datetime | None = None,
) -> GamificationProfile:
    """Get or create the gamification profile for a user.

    A newly created profile is given the onboarding achievement (at full
    progress, without its point reward). Flushes but does not commit.
    """
    profile = await get_profile_row(db, user_id)
    if profile is not None:
        return profile

    if now is None:
        now = datetime.now(timezone.utc)

    profile = GamificationProfile(
        user_id=user_id,
        experience_points=0,
        level=1,
        current_rank=rank_for_level(1),
        streak_count=0,
        last_activity_at=now,
    )
    db.add(profile)
    await db.flush()
    logger.info("Created gamification profile %s for user %s", profile.id, user_id)

    await _grant_onboarding_achievement(db, profile, now)
    return profile


async def _grant_onboarding_achievement(db: AsyncSession, profile: GamificationProfile, now: datetime) -> None:
    name = get_settings().getting_started_achievement
    result = await db.execute(select(Achievement).where(Achievement.name == name))
    achievement = result.scalar_one_or_none()
    if achievement is None:
        logger.warning("%r achievement not found in catalog", name)
        return

    db.add(UserAchievement(
        user_id=profile.user_id,
        profile_id=profile.id,
        achievement_id=achievement.id,
        achievement=achievement,
        earned_at=now,
        progress=COMPLETED_PROGRESS,
    ))
    await db.flush()
    logger.info("Awarded %r achievement to new user %s", name, profile.user_id)


async def get_user_achievements(db: AsyncSession, profile_id: int) -> list[UserAchievement]:
    """All achievement rows for a profile, with their catalog entry loaded."""
    result = await db.execute(
        select(UserAchievement)
        .where(UserAchievement.profile_id == profile_id)
        .order_by(UserAchievement.earned_at.asc(), UserAchievement.id.asc())
    )
    return list(result.unique().scalars().all())


async def get_available_achievements(db: AsyncSession) -> list[Achievement]:
    """The full achievement catalog."""
    result = await db.execute(select(Achievement).order_by(Achievement.id))
    return list(result.scalars().all())


def default_profile(user_id: int) -> GamificationProfileResponse:
    """What a brand-new profile looks like; returned when the store is unavailable."""
    info = compute_level(0)
    return GamificationProfileResponse(
        user_id=user_id,
        experience_points=0,
        level=info["level"],
        current_rank=info["rank"],
        streak_count=0,
        points_to_next_level=info["points_to_next_level"],
        level_progress=info["progress"],
        achievements=[],
    )


def _achievement_view(row: UserAchievement) -> UserAchievementResponse:
    achievement = row.achievement
    return UserAchievementResponse(
        name=achievement.name if achievement else "Unknown Achievement",
        description=achievement.description if achievement else "",
        icon_url=(achievement.icon_url if achievement else None) or DEFAULT_ICON_URL,
        earned_at=row.earned_at,
        progress=row.progress,
        total_required=COMPLETED_PROGRESS,
        is_completed=row.progress >= COMPLETED_PROGRESS,
    )


async def get_profile(db: AsyncSession, redis: object, user_id: int) -> GamificationProfileResponse:
    """Build the profile view for a user, creating the profile if needed.

    Persistence errors are logged and a default profile is returned so the
    caller's page still renders.
    """
    # Imported here: award_service depends on this module.
    from tutorxp.gamification.award_service import check_and_award

    try:
        profile = await get_or_create_profile(db, user_id)
        await db.commit()

        rows = await get_user_achievements(db, profile.id)
        if profile.experience_points > AUTO_CHECK_XP and len(rows) < AUTO_CHECK_MIN_ACHIEVEMENTS:
            logger.info(
                "User %s has %d XP but only %d achievements, checking for more",
                user_id, profile.experience_points, len(rows),
            )
            await check_and_award(db, redis, user_id)
            # Re-read: the check commits, and may roll back and retry
            profile = await get_profile_row(db, user_id) or profile
            rows = await get_user_achievements(db, profile.id)

        info = compute_level(profile.experience_points)
        return GamificationProfileResponse(
            user_id=profile.user_id,
            experience_points=profile.experience_points,
            level=info["level"],
            current_rank=info["rank"],
            streak_count=profile.streak_count,
            points_to_next_level=info["points_to_next_level"],
            level_progress=info["progress"],
            achievements=[_achievement_view(row) for row in rows],
        )
    except SQLAlchemyError:
        logger.exception("Error loading gamification profile for user %s", user_id)
        await db.rollback()
        return default_profile(user_id)
