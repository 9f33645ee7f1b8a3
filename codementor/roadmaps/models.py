"""Learning roadmap data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from codementor.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RoadmapStatus(str, Enum):
    """Roadmap publication status."""
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class Roadmap(Base):
    """A curated learning path."""

    __tablename__ = "roadmaps"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # beginner, intermediate, advanced
    estimated_duration: Mapped[str] = mapped_column(String(50), nullable=False)  # "6 months", "3 weeks"
    topics: Mapped[str] = mapped_column(Text, default="[]", nullable=False)  # JSON list
    goals: Mapped[str] = mapped_column(Text, default="[]", nullable=False)  # JSON list

    author_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status: Mapped[str] = mapped_column(String(20), default=RoadmapStatus.ACTIVE.value, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    author: Mapped["User"] = relationship("User")
    enrollments: Mapped[List["RoadmapEnrollment"]] = relationship(
        "RoadmapEnrollment",
        back_populates="roadmap",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Roadmap(id={self.id}, title='{self.title}', status='{self.status}')>"


class RoadmapEnrollment(Base):
    """A user following a roadmap."""

    __tablename__ = "roadmap_enrollments"
    __table_args__ = (
        UniqueConstraint("roadmap_id", "user_id", name="uq_roadmap_enrollments_roadmap_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    roadmap_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("roadmaps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    progress: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # percent
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    last_accessed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    roadmap: Mapped["Roadmap"] = relationship("Roadmap", back_populates="enrollments")

    def __repr__(self) -> str:
        return f"<RoadmapEnrollment(roadmap_id={self.roadmap_id}, user_id={self.user_id})>"
