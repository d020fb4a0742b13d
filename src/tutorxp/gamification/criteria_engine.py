"""Criteria engine: evaluates achievement criteria against live activity data."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tutorxp.db.models import Achievement, GamificationProfile
from tutorxp.gamification.activity_source import ActivitySource
from tutorxp.gamification.criteria import (
    AccountCreated,
    BoardPosts,
    Criteria,
    EmailVerified,
    FiveStarRating,
    FiveStarRatings,
    HighRatingAverage,
    JoinStudyGroup,
    LoginStreak,
    ModuleSessions,
    QuestionsAsked,
    ReachLevel,
    SessionCount,
    UniqueModules,
    UniqueStudents,
    load_criteria,
)

logger = logging.getLogger(__name__)

# Criteria types each category knows how to evaluate. A type filed under the
# wrong category is treated like an unknown type.
CATEGORY_CRITERIA: dict[str, tuple[type, ...]] = {
    "Attendance": (AccountCreated, EmailVerified, SessionCount, LoginStreak),
    "Progress": (ReachLevel, ModuleSessions, UniqueModules),
    "Mastery": (FiveStarRating, FiveStarRatings, HighRatingAverage),
    "Social": (UniqueStudents, QuestionsAsked, JoinStudyGroup, BoardPosts),
}

# Email verification is approximated from XP, not read from the user record.
EMAIL_VERIFIED_XP = 150


class CriteriaEngine:
    """Evaluates an achievement's criteria for one user. Never raises to the caller."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db
        self.source = ActivitySource(db)
        self._category_checks: dict[str, Callable[..., Awaitable[bool]]] = {
            "Attendance": self._check_attendance,
            "Progress": self._check_progress,
            "Mastery": self._check_mastery,
            "Social": self._check_social,
        }

    async def evaluate(self, user_id: int, achievement: Achievement, profile: GamificationProfile) -> bool:
        """Return True if the user currently satisfies the achievement's criteria."""
        criteria = load_criteria(achievement)
        if criteria is None:
            return False

        check = self._category_checks.get(achievement.category)
        if check is None:
            logger.warning("Unknown achievement category %r on achievement %s", achievement.category, achievement.id)
            return False

        if not isinstance(criteria, CATEGORY_CRITERIA[achievement.category]):
            logger.warning(
                "Unknown %s criteria type: %s", achievement.category.lower(), criteria.criteria_type
            )
            return False

        try:
            return await check(user_id, profile, criteria)
        except SQLAlchemyError:
            logger.exception(
                "Error checking achievement criteria for user %s, achievement %s", user_id, achievement.id
            )
            return False

    async def _check_attendance(self, user_id: int, profile: GamificationProfile, criteria: Criteria) -> bool:
        if isinstance(criteria, AccountCreated):
            return profile.experience_points > 0

        if isinstance(criteria, EmailVerified):
            return profile.experience_points >= EMAIL_VERIFIED_XP

        if isinstance(criteria, LoginStreak):
            logger.debug(
                "User %s has streak %s (needs %s)", user_id, profile.streak_count, criteria.required_count
            )
            return profile.streak_count >= criteria.required_count

        # SessionCount
        who = await self.source.resolve_user(user_id)
        if who is None:
            return False
        sessions = await self.source.completed_session_count(who)
        logger.debug(
            "User %s (role %s) has %s completed sessions (needs %s)",
            user_id, who.role, sessions, criteria.required_count,
        )
        return sessions >= criteria.required_count

    async def _check_progress(self, user_id: int, profile: GamificationProfile, criteria: Criteria) -> bool:
        who = await self.source.resolve_user(user_id)
        if who is None:
            return False

        if isinstance(criteria, ReachLevel):
            return profile.level >= criteria.required_count

        if isinstance(criteria, ModuleSessions):
            counts = await self.source.module_session_counts(who)
            return any(count >= criteria.required_count for count in counts.values())

        # UniqueModules
        return await self.source.unique_module_count(who) >= criteria.required_count

    async def _check_mastery(self, user_id: int, profile: GamificationProfile, criteria: Criteria) -> bool:
        who = await self.source.resolve_user(user_id)
        if who is None or who.tutor_id is None:
            return False  # mastery is tutor-only

        if isinstance(criteria, FiveStarRating):
            return await self.source.has_five_star_review(who.tutor_id)

        if isinstance(criteria, FiveStarRatings):
            return await self.source.five_star_review_count(who.tutor_id) >= criteria.required_count

        # HighRatingAverage
        return await self.source.average_rating(who.tutor_id) >= criteria.required_count

    async def _check_social(self, user_id: int, profile: GamificationProfile, criteria: Criteria) -> bool:
        if isinstance(criteria, (JoinStudyGroup, BoardPosts)):
            return False  # no study groups or boards yet

        who = await self.source.resolve_user(user_id)
        if who is None:
            return False

        if isinstance(criteria, UniqueStudents):
            if who.tutor_id is None:
                return False
            return await self.source.unique_student_count(who.tutor_id) >= criteria.required_count

        # QuestionsAsked
        if who.student_id is None:
            return False
        return await self.source.sessions_with_notes_count(who.student_id) >= criteria.required_count

