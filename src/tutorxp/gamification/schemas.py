"""Pydantic request/response models for gamification endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


# --- Awards ---


class AwardPointsRequest(BaseModel):
    user_id: int = Field(gt=0)
    activity_type: str = Field(min_length=1, max_length=64)  # SessionCompleted, AchievementEarned, DailyLogin, ...
    points: int = Field(ge=-1_000_000, le=1_000_000)
    description: str | None = Field(default=None, max_length=256)


class ActivityResult(BaseModel):
    success: bool = False
    points_awarded: int = 0
    new_level: int | None = None
    achievements_unlocked: list[str] = []
    message: str = ""


class SessionCompletedResponse(BaseModel):
    student: ActivityResult
    tutor: ActivityResult


class CheckAchievementsResponse(BaseModel):
    user_id: int
    unlocked: list[str]


# --- Profile ---


class UserAchievementResponse(BaseModel):
    name: str
    description: str
    icon_url: str
    earned_at: datetime
    progress: int
    total_required: int = 100
    is_completed: bool


class GamificationProfileResponse(BaseModel):
    user_id: int
    experience_points: int
    level: int
    current_rank: str
    streak_count: int
    points_to_next_level: int
    level_progress: float
    achievements: list[UserAchievementResponse] = []


# --- Catalog ---


class AchievementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str
    icon_url: str | None = None
    category: str
    points_reward: int
    criteria: str | None = None


class AllAchievementsResponse(BaseModel):
    achievements: list[AchievementResponse]


class CriteriaTestResponse(BaseModel):
    user_id: int
    achievement_id: int
    meets_criteria: bool


# --- XP reporting ---


class XPBreakdownResponse(BaseModel):
    sessions: int = 0
    achievements: int = 0
    daily_login: int = 0
    bonuses: int = 0
    other: int = 0
    total: int = 0


class XPActivityEntry(BaseModel):
    type: str  # Session, Achievement, DailyLogin, Bonus
    description: str
    points: int
    timestamp: datetime
    icon: str
    color: str


class RecentActivityResponse(BaseModel):
    activities: list[XPActivityEntry]


class XPHistoryEntry(BaseModel):
    amount: int
    activity_type: str
    description: str | None = None
    created_at: datetime | None = None


class XPHistoryResponse(BaseModel):
    entries: list[XPHistoryEntry]
    total: int
    page: int
    per_page: int


# --- Levels ---


class LevelEntry(BaseModel):
    level: int
    rank: str
    xp_required: int


class AllLevelsResponse(BaseModel):
    levels: list[LevelEntry]
