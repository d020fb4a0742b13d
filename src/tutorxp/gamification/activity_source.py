"""Read-only queries against the marketplace tables.

Every call hits the database; activity data is never cached so criteria are
always evaluated against the current bookings and reviews.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import distinct, func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tutorxp.db.models import Booking, Review, Student, Tutor, User

COMPLETED = "Completed"
FIVE_STARS = 5


@dataclass(frozen=True)
class UserRole:
    """A user resolved to their marketplace role and role-specific ids."""

    user_id: int
    role: str
    student_id: int | None = None
    tutor_id: int | None = None

    @property
    def is_student(self) -> bool:
        return self.role == "Student" and self.student_id is not None

    @property
    def is_tutor(self) -> bool:
        return self.role == "Tutor" and self.tutor_id is not None


class ActivitySource:
    """Queries bookings, reviews and users on behalf of the gamification engine."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def resolve_user(self, user_id: int) -> UserRole | None:
        """Resolve a user id to its role, student id and tutor id."""
        user = (await self.db.execute(select(User).where(User.id == user_id))).scalar_one_or_none()
        if user is None:
            return None

        student_id = (
            await self.db.execute(select(Student.id).where(Student.user_id == user_id).limit(1))
        ).scalar_one_or_none()
        tutor_id = (
            await self.db.execute(select(Tutor.id).where(Tutor.user_id == user_id).limit(1))
        ).scalar_one_or_none()
        return UserRole(user_id=user.id, role=user.role, student_id=student_id, tutor_id=tutor_id)

    # --- Bookings ---

    def _completed_for(self, who: UserRole):
        """WHERE clause for the user's completed bookings, by role. None if the role has no bookings."""
        if who.is_student:
            return (Booking.student_id == who.student_id) & (Booking.status == COMPLETED)
        if who.is_tutor:
            return (Booking.tutor_id == who.tutor_id) & (Booking.status == COMPLETED)
        return None

    async def completed_session_count(self, who: UserRole) -> int:
        clause = self._completed_for(who)
        if clause is None:
            return 0
        result = await self.db.execute(select(func.count(Booking.id)).where(clause))
        return int(result.scalar_one())

    async def module_session_counts(self, who: UserRole) -> dict[int, int]:
        """Completed booking count per module id."""
        clause = self._completed_for(who)
        if clause is None:
            return {}
        result = await self.db.execute(
            select(Booking.module_id, func.count(Booking.id))
            .where(clause, Booking.module_id.is_not(None))
            .group_by(Booking.module_id)
        )
        return {module_id: int(count) for module_id, count in result.all()}

    async def unique_module_count(self, who: UserRole) -> int:
        clause = self._completed_for(who)
        if clause is None:
            return 0
        result = await self.db.execute(
            select(func.count(distinct(Booking.module_id))).where(clause, Booking.module_id.is_not(None))
        )
        return int(result.scalar_one())

    async def unique_student_count(self, tutor_id: int) -> int:
        result = await self.db.execute(
            select(func.count(distinct(Booking.student_id))).where(
                Booking.tutor_id == tutor_id,
                Booking.status == COMPLETED,
            )
        )
        return int(result.scalar_one())

    async def sessions_with_notes_count(self, student_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Booking.id)).where(
                Booking.student_id == student_id,
                Booking.status == COMPLETED,
                Booking.notes.is_not(None),
                Booking.notes != "",
            )
        )
        return int(result.scalar_one())

    async def recent_completed_sessions(self, who: UserRole, since: datetime, limit: int) -> list[Booking]:
        """Most recent completed bookings ending on or after `since`, with their module loaded."""
        clause = self._completed_for(who)
        if clause is None:
            return []
        finished_at = func.coalesce(Booking.end_time, Booking.start_time)
        result = await self.db.execute(
            select(Booking)
            .options(selectinload(Booking.module))
            .where(clause, finished_at >= since)
            .order_by(finished_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_booking(self, booking_id: int) -> Booking | None:
        """Booking with its student and tutor loaded."""
        result = await self.db.execute(
            select(Booking)
            .options(selectinload(Booking.student), selectinload(Booking.tutor))
            .where(Booking.id == booking_id)
        )
        return result.scalar_one_or_none()

    # --- Reviews ---

    async def has_five_star_review(self, tutor_id: int) -> bool:
        result = await self.db.execute(
            select(Review.id).where(Review.tutor_id == tutor_id, Review.rating == FIVE_STARS).limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def five_star_review_count(self, tutor_id: int) -> int:
        result = await self.db.execute(
            select(func.count(Review.id)).where(Review.tutor_id == tutor_id, Review.rating == FIVE_STARS)
        )
        return int(result.scalar_one())

    async def average_rating(self, tutor_id: int) -> float:
        """Mean rating for a tutor; 0 when there are no reviews."""
        result = await self.db.execute(select(func.avg(Review.rating)).where(Review.tutor_id == tutor_id))
        average = result.scalar_one_or_none()
        return float(average) if average is not None else 0.0

    async def recent_five_star_reviews(self, tutor_id: int, since: datetime, limit: int) -> list[Review]:
        result = await self.db.execute(
            select(Review)
            .where(
                Review.tutor_id == tutor_id,
                Review.rating == FIVE_STARS,
                Review.created_at >= since,
            )
            .order_by(Review.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
