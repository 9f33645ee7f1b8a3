"""XP, level and achievement arithmetic.

Everything here is a pure function over a ``ProfileSnapshot``; callers load
and store the profile themselves.
"""

import math
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Iterable, List, Set

DIFFICULTY_MULTIPLIERS = {
    "easy": 1.0,
    "medium": 1.5,
    "hard": 2.0,
}

# A game with at least this score counts as won
WINNING_SCORE = 80

ACTIVITY_XP = {
    "bug_fixed": 10,
    "game_won": 25,
    "code_analyzed": 5,
}


class ActivityType(str, Enum):
    BUG_FIXED = "bug_fixed"
    GAME_WON = "game_won"
    CODE_ANALYZED = "code_analyzed"


class RequirementType(str, Enum):
    BUGS_FIXED = "bugs_fixed"
    GAMES_WON = "games_won"
    LEVEL = "level"
    STREAK = "streak"
    AI_INTERACTIONS = "ai_interactions"


@dataclass(frozen=True)
class ProfileSnapshot:
    level: int = 1
    xp_points: int = 0
    bugs_fixed: int = 0
    games_won: int = 0
    current_streak: int = 0
    ai_interactions: int = 0

    @classmethod
    def from_profile(cls, profile: Any) -> "ProfileSnapshot":
        return cls(
            level=profile.level,
            xp_points=profile.xp_points,
            bugs_fixed=profile.bugs_fixed,
            games_won=profile.games_won,
            current_streak=profile.current_streak,
            ai_interactions=profile.ai_interactions,
        )

    def apply_to(self, profile: Any) -> None:
        """Copy the counters onto a mutable profile object."""
        profile.level = self.level
        profile.xp_points = self.xp_points
        profile.bugs_fixed = self.bugs_fixed
        profile.games_won = self.games_won
        profile.current_streak = self.current_streak
        profile.ai_interactions = self.ai_interactions


@dataclass(frozen=True)
class ProgressUpdate:
    profile: ProfileSnapshot
    xp_earned: int
    leveled_up: bool


def calculate_game_xp(score: int, difficulty: str, time_spent: int) -> int:
    """XP for a finished game: score tenths plus a speed bonus, scaled by difficulty."""
    base_xp = score // 10
    # One point per 30 seconds under five minutes
    time_bonus = max(0, int((300 - time_spent) / 30))
    multiplier = DIFFICULTY_MULTIPLIERS.get(difficulty, 1.0)
    return int((base_xp + time_bonus) * multiplier)


def level_for_xp(xp_points: int) -> int:
    return math.isqrt(max(0, xp_points) // 50) + 1


def recommended_difficulty(easy_games: int, medium_games: int, hard_games: int) -> str:
    if easy_games < 5:
        return "easy"
    if medium_games < 5:
        return "medium"
    return "hard"


def apply_game_result(profile: ProfileSnapshot, game_type: str, score: int, xp_earned: int) -> ProgressUpdate:
    """Apply a finished game. Levels only go up."""
    xp_points = profile.xp_points + xp_earned
    level = max(profile.level, level_for_xp(xp_points))

    updated = replace(
        profile,
        xp_points=xp_points,
        level=level,
        bugs_fixed=profile.bugs_fixed + (1 if game_type == "bug-hunt" and score > 0 else 0),
        games_won=profile.games_won + (1 if score >= WINNING_SCORE else 0),
        current_streak=profile.current_streak + 1,
    )
    return ProgressUpdate(profile=updated, xp_earned=xp_earned, leveled_up=level > profile.level)


def apply_activity(profile: ProfileSnapshot, activity: ActivityType, value: int = 1) -> ProgressUpdate:
    """Apply a dashboard activity. A level-up adds a bonus of ten XP per new level."""
    activity = ActivityType(activity)
    xp_earned = ACTIVITY_XP[activity.value]

    if activity is ActivityType.BUG_FIXED:
        profile = replace(profile, bugs_fixed=profile.bugs_fixed + value)
    elif activity is ActivityType.GAME_WON:
        profile = replace(profile, games_won=profile.games_won + value)
    else:
        profile = replace(profile, ai_interactions=profile.ai_interactions + value)

    previous_level = profile.level
    xp_points = profile.xp_points + xp_earned
    new_level = level_for_xp(xp_points)

    if new_level > previous_level:
        bonus = new_level * 10
        xp_points += bonus
        xp_earned += bonus
        profile = replace(profile, level=new_level, xp_points=xp_points)
        return ProgressUpdate(profile=profile, xp_earned=xp_earned, leveled_up=True)

    return ProgressUpdate(profile=replace(profile, xp_points=xp_points), xp_earned=xp_earned, leveled_up=False)


def requirement_progress(profile: ProfileSnapshot, requirement_type: str) -> int:
    requirement = (requirement_type or "").lower()
    if requirement == RequirementType.BUGS_FIXED.value:
        return profile.bugs_fixed
    if requirement == RequirementType.GAMES_WON.value:
        return profile.games_won
    if requirement == RequirementType.LEVEL.value:
        return profile.level
    if requirement == RequirementType.STREAK.value:
        return profile.current_streak
    if requirement == RequirementType.AI_INTERACTIONS.value:
        return profile.ai_interactions
    return 0


def progress_percentage(current: int, required: int) -> int:
    if required <= 0:
        return 100
    return min(100, int(current / required * 100))


def achievements_to_unlock(
    profile: ProfileSnapshot,
    catalogue: Iterable[Any],
    unlocked_ids: Set[int],
) -> List[Any]:
    """Return the achievements whose requirement the profile now meets."""
    return [
        achievement
        for achievement in catalogue
        if achievement.id not in unlocked_ids
        and requirement_progress(profile, achievement.requirement_type) >= achievement.requirement_value
    ]
