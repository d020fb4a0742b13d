"""XP awards, achievement checks and session-completion handling.

One call is one unit of work: the profile update, every achievement unlocked
along the way, their rewards and the XP ledger rows are committed together.
Achievement rewards are applied as a second pass over the achievements that
were unlocked, repeating the check until nothing new unlocks; an achievement
is marked complete before its reward is granted, so it can never unlock twice.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from tutorxp.config import get_settings
from tutorxp.db.models import Achievement, GamificationProfile, UserAchievement, XPLedger
from tutorxp.gamification.activity_source import ActivitySource
from tutorxp.gamification.criteria_engine import CriteriaEngine
from tutorxp.gamification.exceptions import BookingNotFoundError
from tutorxp.gamification.level_thresholds import calculate_level, rank_for_level
from tutorxp.gamification.profile_service import (
    COMPLETED_PROGRESS,
    get_available_achievements,
    get_or_create_profile,
    get_profile_row,
    get_user_achievements,
)
from tutorxp.gamification.schemas import ActivityResult
from tutorxp.gamification.streak_service import update_streak

logger = logging.getLogger(__name__)

ACHIEVEMENT_EARNED = "AchievementEarned"
SESSION_COMPLETED = "SessionCompleted"

_T = TypeVar("_T")


@dataclass
class _AwardOutcome:
    """What one unit of work changed, for the response and the post-commit events."""

    old_level: int = 1
    new_level: int = 1
    rank: str = "Beginner"
    unlocked: list[Achievement] = field(default_factory=list)


def _apply_points(
    db: AsyncSession,
    profile: GamificationProfile,
    activity_type: str,
    points: int,
    description: str | None,
    now: datetime,
) -> None:
    """Add points, stamp activity and recompute level/rank. Streak must already be updated.

    XP never drops below 0; the ledger records the delta actually applied.
    """
    previous = profile.experience_points
    profile.experience_points = max(0, previous + points)
    profile.last_activity_at = now
    profile.level = calculate_level(profile.experience_points)
    profile.current_rank = rank_for_level(profile.level)

    db.add(XPLedger(
        user_id=profile.user_id,
        amount=profile.experience_points - previous,
        activity_type=activity_type,
        description=description or activity_type,
        created_at=now,
    ))


async def check_achievements(
    db: AsyncSession,
    profile: GamificationProfile,
    now: datetime | None = None,
) -> list[Achievement]:
    """Mark every newly satisfied achievement complete and return them.

    Rewards are not applied here. Achievements already at full progress are
    skipped, so calling this again with no new activity returns nothing.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    catalog = await get_available_achievements(db)
    existing = {row.achievement_id: row for row in await get_user_achievements(db, profile.id)}
    engine = CriteriaEngine(db)

    unlocked: list[Achievement] = []
    for achievement in catalog:
        row = existing.get(achievement.id)
        if row is not None and row.progress >= COMPLETED_PROGRESS:
            continue

        if not await engine.evaluate(profile.user_id, achievement, profile):
            continue

        if row is None:
            db.add(UserAchievement(
                user_id=profile.user_id,
                profile_id=profile.id,
                achievement_id=achievement.id,
                achievement=achievement,
                earned_at=now,
                progress=COMPLETED_PROGRESS,
            ))
        else:
            row.progress = COMPLETED_PROGRESS
            row.earned_at = now

        unlocked.append(achievement)
        logger.info("User %s unlocked achievement: %s", profile.user_id, achievement.name)

    if unlocked:
        await db.flush()
    return unlocked


async def _apply_achievement_rewards(
    db: AsyncSession,
    profile: GamificationProfile,
    outcome: _AwardOutcome,
    now: datetime,
) -> None:
    """Check achievements, grant rewards for the unlocked ones, repeat until stable.

    Rewards are awards too: the streak is brought up to date before the
    first reward stamps last_activity_at.
    """
    pending = await check_achievements(db, profile, now)
    if pending:
        update_streak(profile, now)
    while pending:
        for achievement in pending:
            _apply_points(
                db, profile, ACHIEVEMENT_EARNED, achievement.points_reward,
                f"Achievement: {achievement.name}", now,
            )
            outcome.unlocked.append(achievement)
        await db.flush()
        pending = await check_achievements(db, profile, now)


async def _award_once(
    db: AsyncSession,
    user_id: int,
    activity_type: str,
    points: int,
    description: str | None,
    now: datetime,
) -> _AwardOutcome:
    profile = await get_or_create_profile(db, user_id, now)
    outcome = _AwardOutcome(old_level=profile.level)

    # Streak reads the previous last_activity_at, so it runs before the stamp.
    update_streak(profile, now)
    _apply_points(db, profile, activity_type, points, description, now)
    await db.flush()

    await _apply_achievement_rewards(db, profile, outcome, now)
    await db.commit()

    outcome.new_level = profile.level
    outcome.rank = profile.current_rank
    return outcome


async def _run_with_retry(
    db: AsyncSession,
    user_id: int,
    unit: Callable[..., Awaitable[_T]],
    *args: object,
) -> _T:
    """Run a unit of work, retrying on concurrent-update conflicts."""
    attempts = max(1, get_settings().award_max_retries)
    for attempt in range(1, attempts + 1):
        try:
            return await unit(db, user_id, *args)
        except (StaleDataError, IntegrityError):
            await db.rollback()
            if attempt == attempts:
                logger.error("Gamification update for user %s failed after %d attempts", user_id, attempts)
                raise
            logger.warning(
                "Concurrent gamification update for user %s, retrying (%d/%d)", user_id, attempt, attempts
            )
    raise AssertionError("unreachable")


async def award_points(
    db: AsyncSession,
    redis: object,
    user_id: int,
    activity_type: str,
    points: int,
    description: str | None = None,
    now: datetime | None = None,
) -> ActivityResult:
    """Award points to a user and apply everything that follows from it.

    1. Get or create the profile
    2. Update the daily streak, add points, recompute level and rank
    3. Re-check achievements and grant their rewards until nothing new unlocks
    4. Commit once, then publish level-up / achievement events

    Any activity_type is accepted and recorded as a label.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    outcome = await _run_with_retry(db, user_id, _award_once, activity_type, points, description, now)

    result = ActivityResult(
        success=True,
        points_awarded=points,
        achievements_unlocked=[a.name for a in outcome.unlocked],
        message=f"Awarded {points} points",
    )
    if outcome.new_level > outcome.old_level:
        result.new_level = outcome.new_level
        result.message = f"Level up! You reached level {outcome.new_level}"

    logger.info("Awarded %d points to user %s for %s", points, user_id, activity_type)

    await _publish_outcome(redis, user_id, outcome)
    return result


async def _check_once(db: AsyncSession, user_id: int, now: datetime) -> _AwardOutcome | None:
    profile = await get_profile_row(db, user_id)
    if profile is None:
        return None

    outcome = _AwardOutcome(old_level=profile.level)
    await _apply_achievement_rewards(db, profile, outcome, now)
    await db.commit()

    outcome.new_level = profile.level
    outcome.rank = profile.current_rank
    return outcome


async def check_and_award(
    db: AsyncSession,
    redis: object,
    user_id: int,
    now: datetime | None = None,
) -> list[str]:
    """Check all achievements for an existing profile and grant any newly earned.

    Returns the names of the achievements unlocked (empty if the user has no
    profile yet).
    """
    if now is None:
        now = datetime.now(timezone.utc)

    outcome = await _run_with_retry(db, user_id, _check_once, now)
    if outcome is None:
        return []

    await _publish_outcome(redis, user_id, outcome)
    return [a.name for a in outcome.unlocked]


async def evaluate_achievement_criteria(db: AsyncSession, user_id: int, achievement_id: int) -> bool:
    """Evaluate one achievement's criteria for a user without persisting anything."""
    achievement = await db.get(Achievement, achievement_id)
    if achievement is None:
        return False

    profile = await get_profile_row(db, user_id)
    if profile is None:
        return False

    return await CriteriaEngine(db).evaluate(user_id, achievement, profile)


async def handle_session_completed(
    db: AsyncSession,
    redis: object,
    booking_id: int,
) -> dict[str, ActivityResult]:
    """Award session points to the student and the tutor of a completed booking."""
    booking = await ActivitySource(db).get_booking(booking_id)
    if booking is None:
        raise BookingNotFoundError(booking_id)

    points = get_settings().session_completed_points
    student_user_id = booking.student.user_id
    tutor_user_id = booking.tutor.user_id

    student_result = await award_points(
        db, redis, student_user_id, SESSION_COMPLETED, points, "Completed a tutoring session",
    )
    # Force a check: another award may have committed in between
    extra = await check_and_award(db, redis, student_user_id)
    student_result.achievements_unlocked.extend(extra)

    tutor_result = await award_points(
        db, redis, tutor_user_id, SESSION_COMPLETED, points, "Completed a tutoring session",
    )
    return {"student": student_result, "tutor": tutor_result}


async def get_xp_history(
    db: AsyncSession,
    user_id: int,
    page: int = 1,
    per_page: int = 20,
) -> tuple[list[XPLedger], int]:
    """Paginated XP ledger for a user, newest first. Returns (entries, total)."""
    total = (
        await db.execute(select(func.count(XPLedger.id)).where(XPLedger.user_id == user_id))
    ).scalar_one()
    result = await db.execute(
        select(XPLedger)
        .where(XPLedger.user_id == user_id)
        .order_by(XPLedger.created_at.desc(), XPLedger.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    )
    return list(result.scalars().all()), int(total)


async def _publish_outcome(redis: object, user_id: int, outcome: _AwardOutcome) -> None:
    """Broadcast level-up and achievement events for activity feeds / overlays."""
    if redis is None:
        return

    messages: list[tuple[str, dict]] = []
    if outcome.new_level > outcome.old_level:
        messages.append(("pubsub:level_up", {
            "user_id": user_id,
            "old_level": outcome.old_level,
            "new_level": outcome.new_level,
            "rank": outcome.rank,
        }))
    for achievement in outcome.unlocked:
        messages.append(("pubsub:achievement_unlocked", {
            "user_id": user_id,
            "achievement_id": achievement.id,
            "name": achievement.name,
            "category": achievement.category,
            "points_reward": achievement.points_reward,
        }))

    for channel, payload in messages:
        try:
            await redis.publish(channel, json.dumps(payload))  # type: ignore[union-attr]
        except Exception:
            logger.warning("Failed to publish %s event", channel, exc_info=True)
