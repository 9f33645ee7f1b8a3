"""Test XP and level arithmetic."""

from types import SimpleNamespace

import pytest

from codementor.gamification.leveling import (
    ActivityType,
    ProfileSnapshot,
    achievements_to_unlock,
    apply_activity,
    apply_game_result,
    calculate_game_xp,
    level_for_xp,
    progress_percentage,
    recommended_difficulty,
    requirement_progress,
)


@pytest.mark.unit
@pytest.mark.parametrize(
    "score,difficulty,time_spent,expected",
    [
        (85, "medium", 120, 21),
        (50, "hard", 400, 10),
        (100, "unknown", 300, 10),
        (0, "easy", 0, 10),
    ],
)
def test_calculate_game_xp(score, difficulty, time_spent, expected):
    assert calculate_game_xp(score, difficulty, time_spent) == expected


@pytest.mark.unit
@pytest.mark.parametrize("xp,level", [(0, 1), (49, 1), (50, 2), (199, 2), (200, 3), (450, 4)])
def test_level_for_xp(xp, level):
    assert level_for_xp(xp) == level


@pytest.mark.unit
def test_recommended_difficulty():
    assert recommended_difficulty(0, 0, 0) == "easy"
    assert recommended_difficulty(5, 2, 0) == "medium"
    assert recommended_difficulty(5, 5, 0) == "hard"


@pytest.mark.unit
def test_winning_bug_hunt_updates_counters():
    update = apply_game_result(ProfileSnapshot(xp_points=40), "bug-hunt", 85, 21)

    assert update.profile.xp_points == 61
    assert update.profile.level == 2
    assert update.profile.bugs_fixed == 1
    assert update.profile.games_won == 1
    assert update.profile.current_streak == 1
    assert update.leveled_up


@pytest.mark.unit
def test_losing_game_only_adds_streak_and_xp():
    update = apply_game_result(ProfileSnapshot(), "code-golf", 40, 4)

    assert update.profile.bugs_fixed == 0
    assert update.profile.games_won == 0
    assert update.profile.current_streak == 1
    assert not update.leveled_up


@pytest.mark.unit
def test_level_never_decreases():
    update = apply_game_result(ProfileSnapshot(level=5, xp_points=10), "quiz", 10, 1)
    assert update.profile.level == 5
    assert not update.leveled_up


@pytest.mark.unit
def test_activity_level_up_adds_bonus():
    update = apply_activity(ProfileSnapshot(xp_points=45), ActivityType.BUG_FIXED)

    assert update.profile.bugs_fixed == 1
    assert update.profile.level == 2
    assert update.xp_earned == 10 + 20
    assert update.profile.xp_points == 75
    assert update.leveled_up


@pytest.mark.unit
def test_code_analyzed_counts_ai_interactions():
    update = apply_activity(ProfileSnapshot(), "code_analyzed", 3)

    assert update.profile.ai_interactions == 3
    assert update.xp_earned == 5
    assert not update.leveled_up


@pytest.mark.unit
def test_requirement_progress_and_percentage():
    profile = ProfileSnapshot(level=3, bugs_fixed=4, games_won=2, current_streak=7, ai_interactions=1)

    assert requirement_progress(profile, "bugs_fixed") == 4
    assert requirement_progress(profile, "LEVEL") == 3
    assert requirement_progress(profile, "streak") == 7
    assert requirement_progress(profile, "mystery") == 0

    assert progress_percentage(4, 10) == 40
    assert progress_percentage(30, 10) == 100
    assert progress_percentage(0, 0) == 100


@pytest.mark.unit
def test_achievements_to_unlock_skips_unlocked_and_unmet():
    catalogue = [
        SimpleNamespace(id=1, requirement_type="ai_interactions", requirement_value=1),
        SimpleNamespace(id=2, requirement_type="bugs_fixed", requirement_value=10),
        SimpleNamespace(id=3, requirement_type="level", requirement_value=1),
    ]
    profile = ProfileSnapshot(ai_interactions=1, bugs_fixed=3)

    unlocked = achievements_to_unlock(profile, catalogue, unlocked_ids={3})

    assert [a.id for a in unlocked] == [1]
