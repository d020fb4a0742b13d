"""Daily streak tracking."""

from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone

from tutorxp.db.models import GamificationProfile

logger = logging.getLogger(__name__)


def utc_date(dt: datetime) -> date:
    """Calendar date of `dt` in UTC. Naive datetimes are taken to be UTC already."""
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.date()


def update_streak(profile: GamificationProfile, now: datetime | None = None) -> int:
    """Update the consecutive-day streak from the profile's previous activity date.

    Must run before the caller stamps `last_activity_at` with `now`.

    - same UTC day as the last activity: unchanged (a profile with no
      qualifying activity yet starts at 1)
    - exactly one day later: +1
    - two or more days later, or no prior activity: reset to 1

    Returns the new streak count.
    """
    if now is None:
        now = datetime.now(timezone.utc)

    today = utc_date(now)
    last = utc_date(profile.last_activity_at) if profile.last_activity_at is not None else None

    if last == today:
        if profile.streak_count == 0:
            profile.streak_count = 1
        return profile.streak_count

    if last is not None and last == today - timedelta(days=1):
        profile.streak_count += 1
        logger.info("User %s streak incremented to %d", profile.user_id, profile.streak_count)
    elif last is None or last < today - timedelta(days=1):
        profile.streak_count = 1
        logger.info("User %s streak reset to 1", profile.user_id)
    # last activity dated in the future (clock skew): leave the streak alone

    return profile.streak_count
