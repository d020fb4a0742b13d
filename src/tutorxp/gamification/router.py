"""Gamification API endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tutorxp.database import get_session
from tutorxp.dependencies import get_redis_dep
from tutorxp.gamification import activity_service, award_service, profile_service
from tutorxp.gamification.exceptions import BookingNotFoundError
from tutorxp.gamification.level_thresholds import level_table
from tutorxp.gamification.schemas import (
    AchievementResponse,
    ActivityResult,
    AllAchievementsResponse,
    AllLevelsResponse,
    AwardPointsRequest,
    CheckAchievementsResponse,
    CriteriaTestResponse,
    GamificationProfileResponse,
    LevelEntry,
    RecentActivityResponse,
    SessionCompletedResponse,
    XPBreakdownResponse,
    XPHistoryEntry,
    XPHistoryResponse,
)

router = APIRouter(prefix="/api/v1/gamification", tags=["Gamification"])


# ── Awards ──


@router.post("/award-points", response_model=ActivityResult)
async def award_points(
    body: AwardPointsRequest,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Award points for an activity and unlock any achievements it earns."""
    return await award_service.award_points(
        db, redis, body.user_id, body.activity_type, body.points, body.description,
    )


@router.post("/check-achievements/{user_id}", response_model=CheckAchievementsResponse)
async def check_achievements(
    user_id: int,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Re-check every achievement for a user."""
    unlocked = await award_service.check_and_award(db, redis, user_id)
    return CheckAchievementsResponse(user_id=user_id, unlocked=unlocked)


@router.post("/session-completed/{booking_id}", response_model=SessionCompletedResponse)
async def session_completed(
    booking_id: int,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Award session points to both participants of a completed booking."""
    try:
        results = await award_service.handle_session_completed(db, redis, booking_id)
    except BookingNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return SessionCompletedResponse(**results)


# ── Profile & reporting ──


@router.get("/profile/{user_id}", response_model=GamificationProfileResponse)
async def get_profile(
    user_id: int,
    db: AsyncSession = Depends(get_session),
    redis: object = Depends(get_redis_dep),
):
    """Get a user's gamification profile, creating it on first view."""
    return await profile_service.get_profile(db, redis, user_id)


@router.get("/xp-breakdown/{user_id}", response_model=XPBreakdownResponse)
async def get_xp_breakdown(user_id: int, db: AsyncSession = Depends(get_session)):
    """Estimated XP by source."""
    return await activity_service.get_xp_breakdown(db, user_id)


@router.get("/recent-activity/{user_id}", response_model=RecentActivityResponse)
async def get_recent_activity(user_id: int, db: AsyncSession = Depends(get_session)):
    """Recent XP-earning activity, newest first."""
    activities = await activity_service.get_recent_activity(db, user_id)
    return RecentActivityResponse(activities=activities)


@router.get("/xp-history/{user_id}", response_model=XPHistoryResponse)
async def get_xp_history(
    user_id: int,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
):
    """Get XP ledger history (paginated)."""
    entries, total = await award_service.get_xp_history(db, user_id, page, per_page)
    return XPHistoryResponse(
        entries=[
            XPHistoryEntry(
                amount=e.amount,
                activity_type=e.activity_type,
                description=e.description,
                created_at=e.created_at,
            )
            for e in entries
        ],
        total=total,
        page=page,
        per_page=per_page,
    )


# ── Catalog ──


@router.get("/achievements", response_model=AllAchievementsResponse)
async def list_achievements(db: AsyncSession = Depends(get_session)):
    """Get the achievement catalog."""
    achievements = await profile_service.get_available_achievements(db)
    return AllAchievementsResponse(
        achievements=[AchievementResponse.model_validate(a) for a in achievements],
    )


@router.get("/achievements/{achievement_id}/test/{user_id}", response_model=CriteriaTestResponse)
async def evaluate_achievement(
    achievement_id: int,
    user_id: int,
    db: AsyncSession = Depends(get_session),
):
    """Evaluate one achievement's criteria for a user without awarding it."""
    meets = await award_service.evaluate_achievement_criteria(db, user_id, achievement_id)
    return CriteriaTestResponse(user_id=user_id, achievement_id=achievement_id, meets_criteria=meets)


@router.get("/levels", response_model=AllLevelsResponse)
async def list_levels(up_to: int = Query(20, ge=1, le=100)):
    """Get level thresholds and ranks."""
    return AllLevelsResponse(
        levels=[
            LevelEntry(level=t["level"], rank=t["rank"], xp_required=t["xp_required"])
            for t in level_table(up_to)
        ]
    )
