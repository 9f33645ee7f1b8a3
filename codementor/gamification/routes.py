"""Game and achievement API routes."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from codementor.auth.dependencies import get_current_user
from codementor.auth.models import User
from codementor.database_deps import get_db
from codementor.exceptions import NotFoundError
from codementor.gamification.schemas import (
    AchievementResponse,
    ActivityResponse,
    ActivityEntry,
    ActivityUpdate,
    DashboardStats,
    DashboardUser,
    GameResultResponse,
    GameResultSubmit,
    GameResultSummary,
    LeaderboardEntry,
    UserGameStats,
)
from codementor.gamification.service import GameService

router = APIRouter(prefix="/game", tags=["Game"])
dashboard_router = APIRouter(prefix="/dashboard", tags=["Dashboard"])


def _achievement_response(achievement, **progress) -> AchievementResponse:
    return AchievementResponse(
        id=achievement.id,
        name=achievement.name,
        description=achievement.description,
        icon=achievement.icon,
        rarity=achievement.rarity,
        xp_reward=achievement.xp_reward,
        requirement_type=achievement.requirement_type,
        requirement_value=achievement.requirement_value,
        **progress,
    )


@router.post("/submit-result", response_model=GameResultResponse)
async def submit_result(
    submission: GameResultSubmit,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> GameResultResponse:
    """Submit a finished game."""
    try:
        update = await GameService(db).submit_result(current_user, submission)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    profile = update.profile
    return GameResultResponse(
        xp_earned=update.xp_earned,
        new_level=profile.level,
        total_xp=profile.xp_points,
        bugs_fixed=profile.bugs_fixed,
        games_won=profile.games_won,
        current_streak=profile.current_streak,
        level_up=update.leveled_up,
    )


@router.get("/user-stats", response_model=UserGameStats)
async def get_user_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> UserGameStats:
    """Get the current user's game statistics."""
    try:
        profile, recent, recommended = await GameService(db).get_user_stats(current_user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return UserGameStats(
        level=profile.level,
        xp_points=profile.xp_points,
        bugs_fixed=profile.bugs_fixed,
        games_won=profile.games_won,
        current_streak=profile.current_streak,
        recommended_difficulty=recommended,
        recent_results=[GameResultSummary.model_validate(r) for r in recent],
    )


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[LeaderboardEntry]:
    """Top ten users by XP."""
    profiles = await GameService(db).get_leaderboard()
    return [
        LeaderboardEntry(
            rank=rank,
            user_id=profile.user_id,
            user_name=profile.user.name,
            level=profile.level,
            xp_points=profile.xp_points,
            bugs_fixed=profile.bugs_fixed,
            games_won=profile.games_won,
            current_streak=profile.current_streak,
        )
        for rank, profile in enumerate(profiles, start=1)
    ]


@router.post("/activity", response_model=ActivityResponse)
async def record_activity(
    activity: ActivityUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> ActivityResponse:
    """Record an activity and unlock any achievements it completes."""
    try:
        update, unlocked = await GameService(db).record_activity(
            current_user, activity.type, activity.value
        )
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return ActivityResponse(
        xp_earned=update.xp_earned,
        level=update.profile.level,
        total_xp=update.profile.xp_points + sum(a.xp_reward for a in unlocked),
        level_up=update.leveled_up,
        unlocked_achievements=[_achievement_response(a, unlocked=True) for a in unlocked],
    )


@router.get("/achievements", response_model=List[AchievementResponse])
async def list_achievements(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[AchievementResponse]:
    """The achievement catalogue with the current user's progress."""
    try:
        entries = await GameService(db).list_achievements(current_user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    return [
        _achievement_response(
            entry["achievement"],
            current_progress=entry["current_progress"],
            progress_percentage=entry["progress_percentage"],
            unlocked=entry["unlocked"],
            unlocked_at=entry["unlocked_at"],
        )
        for entry in entries
    ]


@dashboard_router.get("/stats", response_model=DashboardStats)
async def get_dashboard_stats(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> DashboardStats:
    """Everything the dashboard landing page shows for the current user."""
    try:
        stats = await GameService(db).get_dashboard_stats(current_user)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))

    profile = stats["profile"]
    return DashboardStats(
        user=DashboardUser(
            id=str(current_user.id),
            name=current_user.name,
            level=profile.level,
            xp=profile.xp_points,
            bugs_fixed=profile.bugs_fixed,
            games_won=profile.games_won,
            streak=profile.current_streak,
        ),
        recent_achievements=[
            _achievement_response(
                ua.achievement,
                current_progress=ua.progress,
                progress_percentage=100,
                unlocked=True,
                unlocked_at=ua.unlocked_at,
            )
            for ua in stats["recent_achievements"]
        ],
        available_achievements=[
            _achievement_response(
                entry["achievement"],
                current_progress=entry["current_progress"],
                progress_percentage=entry["progress_percentage"],
            )
            for entry in stats["available_achievements"]
        ],
        recent_activity=[
            ActivityEntry(
                type="game",
                description=f"Completed {result.game_type} game with score {result.score}",
                timestamp=result.completed_at,
                xp_earned=result.xp_earned,
            )
            for result in stats["recent_results"]
        ],
    )
