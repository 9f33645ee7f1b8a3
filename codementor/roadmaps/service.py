"""Roadmap service layer."""

import json
from datetime import datetime, timezone
from typing import List, Optional

import structlog
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from codementor.auth.models import User
from codementor.roadmaps.exceptions import (
    EnrollmentConflictError,
    RoadmapNotFoundError,
    RoadmapPermissionError,
)
from codementor.roadmaps.models import Roadmap, RoadmapEnrollment, RoadmapStatus
from codementor.roadmaps.schemas import RoadmapCreate, RoadmapUpdate

logger = structlog.get_logger()


class RoadmapService:
    """Roadmap authoring and enrollment."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.logger = logger.bind(component="roadmap_service")

    def _roadmap_query(self):
        return (
            select(Roadmap)
            .options(selectinload(Roadmap.author), selectinload(Roadmap.enrollments))
            .execution_options(populate_existing=True)
        )

    async def list_roadmaps(
        self, category: Optional[str] = None, difficulty: Optional[str] = None
    ) -> List[Roadmap]:
        """Active roadmaps, newest first. Filters ignore case."""
        query = self._roadmap_query().where(Roadmap.status == RoadmapStatus.ACTIVE.value)
        if category:
            query = query.where(func.lower(Roadmap.category) == category.lower())
        if difficulty:
            query = query.where(func.lower(Roadmap.difficulty) == difficulty.lower())

        result = await self.db.execute(query.order_by(Roadmap.created_at.desc(), Roadmap.id.desc()))
        return list(result.scalars().all())

    async def get_roadmap(self, roadmap_id: int, include_inactive: bool = False) -> Roadmap:
        query = self._roadmap_query().where(Roadmap.id == roadmap_id)
        if not include_inactive:
            query = query.where(Roadmap.status == RoadmapStatus.ACTIVE.value)

        result = await self.db.execute(query)
        roadmap = result.scalar_one_or_none()
        if roadmap is None:
            raise RoadmapNotFoundError(f"Roadmap {roadmap_id} not found")
        return roadmap

    async def create_roadmap(self, author: User, data: RoadmapCreate) -> Roadmap:
        roadmap = Roadmap(
            title=data.title,
            description=data.description,
            category=data.category,
            difficulty=data.difficulty,
            estimated_duration=data.estimated_duration,
            topics=json.dumps(data.topics),
            goals=json.dumps(data.goals),
            author_id=author.id,
        )
        self.db.add(roadmap)
        await self.db.commit()

        self.logger.info("Roadmap created", roadmap_id=roadmap.id, author_id=author.id)
        return await self.get_roadmap(roadmap.id)

    async def update_roadmap(self, roadmap_id: int, user: User, data: RoadmapUpdate) -> Roadmap:
        """Apply the fields that were sent. Only the author or an admin may edit."""
        roadmap = await self.get_roadmap(roadmap_id, include_inactive=True)
        self._check_author_or_admin(roadmap, user)

        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field in ("topics", "goals"):
            if field in changes:
                changes[field] = json.dumps(changes[field])
        for field, value in changes.items():
            setattr(roadmap, field, value)
        roadmap.updated_at = datetime.now(timezone.utc)
        await self.db.commit()

        self.logger.info("Roadmap updated", roadmap_id=roadmap_id, fields=sorted(changes))
        return await self.get_roadmap(roadmap_id, include_inactive=True)

    async def delete_roadmap(self, roadmap_id: int, user: User) -> None:
        """Delete a roadmap and its enrollments."""
        roadmap = await self.get_roadmap(roadmap_id, include_inactive=True)
        self._check_author_or_admin(roadmap, user)

        await self.db.delete(roadmap)
        await self.db.commit()
        self.logger.info("Roadmap deleted", roadmap_id=roadmap_id, user_id=user.id)

    @staticmethod
    def _check_author_or_admin(roadmap: Roadmap, user: User) -> None:
        if roadmap.author_id != user.id and not user.is_admin:
            raise RoadmapPermissionError("Only the roadmap author or an admin can do this")

    # Enrollment

    async def enroll(self, roadmap_id: int, user: User) -> RoadmapEnrollment:
        roadmap = await self.get_roadmap(roadmap_id)

        result = await self.db.execute(
            select(RoadmapEnrollment).where(
                RoadmapEnrollment.roadmap_id == roadmap.id,
                RoadmapEnrollment.user_id == user.id,
            )
        )
        if result.scalar_one_or_none() is not None:
            raise EnrollmentConflictError(f"Already enrolled in roadmap {roadmap_id}")

        enrollment = RoadmapEnrollment(roadmap_id=roadmap.id, user_id=user.id)
        self.db.add(enrollment)
        try:
            await self.db.flush()
        except IntegrityError:
            # A concurrent request enrolled the same user first
            await self.db.rollback()
            raise EnrollmentConflictError(f"Already enrolled in roadmap {roadmap_id}")

        await self.db.commit()
        self.logger.info("User enrolled in roadmap", roadmap_id=roadmap_id, user_id=user.id)
        return enrollment

    async def list_authored(self, user: User) -> List[Roadmap]:
        """Roadmaps written by the user, in any status."""
        result = await self.db.execute(
            self._roadmap_query()
            .where(Roadmap.author_id == user.id)
            .order_by(Roadmap.created_at.desc(), Roadmap.id.desc())
        )
        return list(result.scalars().all())

    async def list_enrollments(self, user: User) -> List[RoadmapEnrollment]:
        """The user's enrollments, most recently accessed first."""
        result = await self.db.execute(
            select(RoadmapEnrollment)
            .options(selectinload(RoadmapEnrollment.roadmap).selectinload(Roadmap.author))
            .where(RoadmapEnrollment.user_id == user.id)
            .order_by(RoadmapEnrollment.last_accessed_at.desc(), RoadmapEnrollment.id.desc())
        )
        return list(result.scalars().all())
