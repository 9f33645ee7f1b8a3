"""Gamification Pydantic schemas for API validation."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import Field

from codementor.auth.schemas import CamelModel
from codementor.gamification.leveling import ActivityType


class GameResultSubmit(CamelModel):
    """Schema for submitting a finished game."""

    game_type: str = Field(..., min_length=1, max_length=50)
    score: int = Field(..., ge=0)
    time_spent: int = Field(..., ge=0)
    difficulty: str = Field(default="easy", max_length=20)
    details: Dict[str, Any] = Field(default_factory=dict)


class GameResultResponse(CamelModel):
    xp_earned: int
    new_level: int
    total_xp: int
    bugs_fixed: int
    games_won: int
    current_streak: int
    level_up: bool


class GameResultSummary(CamelModel):
    game_type: str
    score: int
    difficulty: str
    xp_earned: int
    completed_at: datetime


class UserGameStats(CamelModel):
    level: int
    xp_points: int
    bugs_fixed: int
    games_won: int
    current_streak: int
    recommended_difficulty: str
    recent_results: List[GameResultSummary] = Field(default_factory=list)


class LeaderboardEntry(CamelModel):
    rank: int
    user_id: int
    user_name: str
    level: int
    xp_points: int
    bugs_fixed: int
    games_won: int
    current_streak: int


class ActivityUpdate(CamelModel):
    type: ActivityType
    value: int = Field(default=1, ge=1, le=1000)


class AchievementResponse(CamelModel):
    id: int
    name: str
    description: str
    icon: str
    rarity: str
    xp_reward: int
    requirement_type: str
    requirement_value: int
    current_progress: int = 0
    progress_percentage: int = 0
    unlocked: bool = False
    unlocked_at: Optional[datetime] = None


class ActivityResponse(CamelModel):
    xp_earned: int
    level: int
    total_xp: int
    level_up: bool
    unlocked_achievements: List[AchievementResponse] = Field(default_factory=list)


class DashboardUser(CamelModel):
    id: str
    name: str
    level: int
    xp: int
    bugs_fixed: int
    games_won: int
    streak: int


class ActivityEntry(CamelModel):
    """One line of the recent-activity feed."""

    type: str
    description: str
    timestamp: datetime
    xp_earned: int


class DashboardStats(CamelModel):
    user: DashboardUser
    recent_achievements: List[AchievementResponse] = Field(default_factory=list)
    available_achievements: List[AchievementResponse] = Field(default_factory=list)
    recent_activity: List[ActivityEntry] = Field(default_factory=list)
