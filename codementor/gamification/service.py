"""Gamification service layer."""

import json
from datetime import datetime, timezone
from typing import Dict, List, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from codementor.auth.models import User, UserProfile
from codementor.exceptions import NotFoundError
from codementor.gamification import leveling
from codementor.gamification.catalogue import DEFAULT_ACHIEVEMENTS
from codementor.gamification.leveling import ActivityType, ProfileSnapshot, ProgressUpdate
from codementor.gamification.models import Achievement, GameResult, UserAchievement
from codementor.gamification.schemas import GameResultSubmit

logger = structlog.get_logger()


class GameService:
    """Game results, activity tracking and achievements."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _get_profile(self, user_id: int) -> UserProfile:
        result = await self.db.execute(select(UserProfile).where(UserProfile.user_id == user_id))
        profile = result.scalar_one_or_none()
        if profile is None:
            raise NotFoundError("User profile not found")
        return profile

    async def submit_result(self, user: User, submission: GameResultSubmit) -> ProgressUpdate:
        """Record a finished game and apply its XP to the profile."""
        profile = await self._get_profile(user.id)
        xp_earned = leveling.calculate_game_xp(
            submission.score, submission.difficulty, submission.time_spent
        )

        self.db.add(
            GameResult(
                user_id=user.id,
                game_type=submission.game_type,
                score=submission.score,
                time_spent=submission.time_spent,
                difficulty=submission.difficulty,
                details=json.dumps(submission.details),
                xp_earned=xp_earned,
            )
        )

        update = leveling.apply_game_result(
            ProfileSnapshot.from_profile(profile), submission.game_type, submission.score, xp_earned
        )
        update.profile.apply_to(profile)
        profile.last_active_date = datetime.now(timezone.utc)
        await self.db.commit()

        logger.info(
            "Game result submitted",
            user_id=user.id,
            game_type=submission.game_type,
            xp_earned=xp_earned,
            level_up=update.leveled_up,
        )
        return update

    async def get_recent_results(self, user_id: int, limit: int = 10) -> List[GameResult]:
        result = await self.db.execute(
            select(GameResult)
            .where(GameResult.user_id == user_id)
            .order_by(GameResult.completed_at.desc(), GameResult.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_user_stats(self, user: User) -> Tuple[UserProfile, List[GameResult], str]:
        """Profile, last ten results and the recommended difficulty."""
        profile = await self._get_profile(user.id)
        recent = await self.get_recent_results(user.id)

        recommended = leveling.recommended_difficulty(
            sum(1 for r in recent if r.difficulty == "easy"),
            sum(1 for r in recent if r.difficulty == "medium"),
            sum(1 for r in recent if r.difficulty == "hard"),
        )
        return profile, recent, recommended

    async def get_leaderboard(self, limit: int = 10) -> List[UserProfile]:
        result = await self.db.execute(
            select(UserProfile)
            .options(selectinload(UserProfile.user))
            .order_by(UserProfile.xp_points.desc(), UserProfile.user_id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def record_activity(
        self, user: User, activity: ActivityType, value: int = 1
    ) -> Tuple[ProgressUpdate, List[Achievement]]:
        """Apply an activity, then unlock any achievements it completes."""
        profile = await self._get_profile(user.id)

        update = leveling.apply_activity(ProfileSnapshot.from_profile(profile), activity, value)
        update.profile.apply_to(profile)
        profile.last_active_date = datetime.now(timezone.utc)

        unlocked = await self._unlock_achievements(user.id, profile)
        await self.db.commit()

        logger.info(
            "Activity recorded",
            user_id=user.id,
            activity=ActivityType(activity).value,
            xp_earned=update.xp_earned,
            unlocked=[a.name for a in unlocked],
        )
        return update, unlocked

    async def _unlocked_map(self, user_id: int) -> Dict[int, UserAchievement]:
        result = await self.db.execute(
            select(UserAchievement).where(UserAchievement.user_id == user_id)
        )
        return {ua.achievement_id: ua for ua in result.scalars().all()}

    async def _catalogue(self) -> List[Achievement]:
        result = await self.db.execute(select(Achievement).order_by(Achievement.id))
        return list(result.scalars().all())

    async def _unlock_achievements(self, user_id: int, profile: UserProfile) -> List[Achievement]:
        unlocked_ids = set(await self._unlocked_map(user_id))
        snapshot = ProfileSnapshot.from_profile(profile)

        newly_unlocked = leveling.achievements_to_unlock(snapshot, await self._catalogue(), unlocked_ids)
        for achievement in newly_unlocked:
            self.db.add(
                UserAchievement(
                    user_id=user_id,
                    achievement_id=achievement.id,
                    progress=leveling.requirement_progress(snapshot, achievement.requirement_type),
                )
            )
            profile.xp_points += achievement.xp_reward

        return newly_unlocked

    async def list_achievements(self, user: User) -> List[Dict]:
        """The catalogue with the user's progress towards each entry."""
        profile = await self._get_profile(user.id)
        snapshot = ProfileSnapshot.from_profile(profile)
        unlocked = await self._unlocked_map(user.id)

        entries = []
        for achievement in await self._catalogue():
            current = leveling.requirement_progress(snapshot, achievement.requirement_type)
            user_achievement = unlocked.get(achievement.id)
            entries.append({
                "achievement": achievement,
                "current_progress": current,
                "progress_percentage": leveling.progress_percentage(current, achievement.requirement_value),
                "unlocked": user_achievement is not None,
                "unlocked_at": user_achievement.unlocked_at if user_achievement else None,
            })
        return entries

    async def get_dashboard_stats(self, user: User, limit: int = 3, activity_limit: int = 5) -> Dict:
        """Profile counters, latest unlocks, next achievements to chase and recent games."""
        profile = await self._get_profile(user.id)
        snapshot = ProfileSnapshot.from_profile(profile)

        result = await self.db.execute(
            select(UserAchievement)
            .options(selectinload(UserAchievement.achievement))
            .where(UserAchievement.user_id == user.id)
            .order_by(UserAchievement.unlocked_at.desc(), UserAchievement.id.desc())
        )
        unlocked = list(result.scalars().all())
        unlocked_ids = {ua.achievement_id for ua in unlocked}

        available = []
        for achievement in await self._catalogue():
            if achievement.id in unlocked_ids:
                continue
            current = leveling.requirement_progress(snapshot, achievement.requirement_type)
            available.append({
                "achievement": achievement,
                "current_progress": current,
                "progress_percentage": leveling.progress_percentage(current, achievement.requirement_value),
            })
            if len(available) == limit:
                break

        return {
            "profile": profile,
            "recent_achievements": unlocked[:limit],
            "available_achievements": available,
            "recent_results": await self.get_recent_results(user.id, limit=activity_limit),
        }

    async def seed_achievements(self) -> int:
        """Insert the default catalogue entries that are missing. Returns how many were added."""
        result = await self.db.execute(select(Achievement.name))
        existing = set(result.scalars().all())

        added = 0
        for data in DEFAULT_ACHIEVEMENTS:
            if data["name"] in existing:
                continue
            self.db.add(Achievement(**data))
            added += 1

        await self.db.commit()
        logger.info("Achievements seeded", added=added)
        return added
