"""Collaboration session data models."""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from codementor.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionStatus(str, Enum):
    """Collaboration session status enumeration."""
    ACTIVE = "active"
    INACTIVE = "inactive"


class CollaborationSession(Base):
    """A collaborative coding room."""

    __tablename__ = "collaboration_sessions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    room_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    language: Mapped[str] = mapped_column(String(50), default="javascript", nullable=False)
    code: Mapped[str] = mapped_column(Text, default="", nullable=False)

    owner_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_public: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=SessionStatus.ACTIVE.value, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="owned_sessions")
    participants: Mapped[List["CollaborationParticipant"]] = relationship(
        "CollaborationParticipant",
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="CollaborationParticipant.joined_at",
    )

    @property
    def active_participants(self) -> List["CollaborationParticipant"]:
        return [p for p in self.participants if p.is_active]

    def __repr__(self) -> str:
        return f"<CollaborationSession(id={self.id}, room_code='{self.room_code}', active={self.is_active})>"


class CollaborationParticipant(Base):
    """Durable membership of a user in a session."""

    __tablename__ = "collaboration_participants"
    __table_args__ = (
        UniqueConstraint("session_id", "user_id", name="uq_collaboration_participants_session_user"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    session_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("collaboration_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )

    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    left_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    session: Mapped["CollaborationSession"] = relationship(
        "CollaborationSession", back_populates="participants"
    )
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return (
            f"<CollaborationParticipant(session_id={self.session_id}, "
            f"user_id={self.user_id}, active={self.is_active})>"
        )
