"""Achievement catalog seed data: the 13 launch achievements."""

from __future__ import annotations

import json
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tutorxp.db.models import Achievement
from tutorxp.gamification.criteria import parse_criteria

logger = logging.getLogger(__name__)


def _criteria(criteria_type: str, required_count: int) -> str:
    return json.dumps({"CriteriaType": criteria_type, "RequiredCount": required_count})


ACHIEVEMENT_SEED_DATA: list[dict] = [
    # Attendance
    {
        "name": "Getting Started",
        "description": "Create your TutorConnect account",
        "icon_url": "/images/achievements/getting-started.png",
        "category": "Attendance",
        "points_reward": 50,
        "criteria": _criteria("account_created", 1),
    },
    {
        "name": "Verified Scholar",
        "description": "Verify your email address",
        "icon_url": "/images/achievements/verified-scholar.png",
        "category": "Attendance",
        "points_reward": 50,
        "criteria": _criteria("email_verified", 1),
    },
    {
        "name": "First Session",
        "description": "Complete your first tutoring session",
        "icon_url": "/images/achievements/first-session.png",
        "category": "Attendance",
        "points_reward": 100,
        "criteria": _criteria("session_count", 1),
    },
    {
        "name": "Dedicated Learner",
        "description": "Complete 5 tutoring sessions",
        "icon_url": "/images/achievements/dedicated-learner.png",
        "category": "Attendance",
        "points_reward": 250,
        "criteria": _criteria("session_count", 5),
    },
    {
        "name": "Learning Marathon",
        "description": "Complete 10 tutoring sessions",
        "icon_url": "/images/achievements/learning-marathon.png",
        "category": "Attendance",
        "points_reward": 500,
        "criteria": _criteria("session_count", 10),
    },
    {
        "name": "Daily Visitor",
        "description": "Log in for 3 consecutive days",
        "icon_url": "/images/achievements/daily-visitor.png",
        "category": "Attendance",
        "points_reward": 100,
        "criteria": _criteria("login_streak", 3),
    },
    {
        "name": "Week Warrior",
        "description": "Log in for 7 consecutive days",
        "icon_url": "/images/achievements/week-warrior.png",
        "category": "Attendance",
        "points_reward": 250,
        "criteria": _criteria("login_streak", 7),
    },
    # Progress
    {
        "name": "Quick Learner",
        "description": "Complete 3 sessions in the same subject",
        "icon_url": "/images/achievements/quick-learner.png",
        "category": "Progress",
        "points_reward": 200,
        "criteria": _criteria("module_sessions", 3),
    },
    {
        "name": "Subject Explorer",
        "description": "Study 3 different subjects",
        "icon_url": "/images/achievements/subject-explorer.png",
        "category": "Progress",
        "points_reward": 300,
        "criteria": _criteria("unique_modules", 3),
    },
    {
        "name": "Level 5 Achiever",
        "description": "Reach level 5 in your learning journey",
        "icon_url": "/images/achievements/level-5-achiever.png",
        "category": "Progress",
        "points_reward": 200,
        "criteria": _criteria("reach_level", 5),
    },
    {
        "name": "Level 10 Expert",
        "description": "Reach level 10 in your learning journey",
        "icon_url": "/images/achievements/level-10-expert.png",
        "category": "Progress",
        "points_reward": 500,
        "criteria": _criteria("reach_level", 10),
    },
    # Mastery
    {
        "name": "First Five Stars",
        "description": "Receive your first 5-star rating as a tutor",
        "icon_url": "/images/achievements/first-five-stars.png",
        "category": "Mastery",
        "points_reward": 200,
        "criteria": _criteria("five_star_rating", 1),
    },
    {
        "name": "Top Rated Tutor",
        "description": "Receive 5 five-star ratings",
        "icon_url": "/images/achievements/top-rated-tutor.png",
        "category": "Mastery",
        "points_reward": 500,
        "criteria": _criteria("five_star_ratings", 5),
    },
]


async def seed_achievements(db: AsyncSession) -> int:
    """Insert catalog entries missing by name. Returns the number inserted.

    Every entry's criteria is parsed first, so a bad seed entry fails the
    whole run before anything is written.
    """
    for entry in ACHIEVEMENT_SEED_DATA:
        parse_criteria(entry["criteria"])

    existing = set((await db.execute(select(Achievement.name))).scalars().all())

    seeded = 0
    for entry in ACHIEVEMENT_SEED_DATA:
        if entry["name"] in existing:
            continue
        db.add(Achievement(**entry))
        seeded += 1

    await db.commit()
    logger.info("Seeded %d achievements", seeded)
    return seeded
