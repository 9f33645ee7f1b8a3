"""Collaboration Pydantic schemas for API validation."""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from codementor.auth.schemas import CamelModel, UserSummary


class SessionCreate(CamelModel):
    """Schema for creating a collaboration session."""

    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    language: str = Field(default="javascript", min_length=1, max_length=50)
    initial_code: str = Field(default="")
    is_public: bool = True


class CodeUpdate(CamelModel):
    code: str


class ActiveUpdate(CamelModel):
    is_active: bool


class ParticipantResponse(CamelModel):
    """Active participant of a session."""

    user_id: str
    name: str
    avatar: Optional[str] = None
    joined_at: datetime


class SessionResponse(CamelModel):
    """Collaboration session response."""

    id: int
    room_code: str
    name: str
    description: Optional[str] = None
    language: str
    code: str
    is_public: bool
    is_active: bool
    status: str
    created_at: datetime
    updated_at: datetime
    owner: UserSummary
    participants: List[ParticipantResponse] = Field(default_factory=list)
    participant_count: int = 0

    @classmethod
    def from_session(cls, session) -> "SessionResponse":
        participants = [
            ParticipantResponse(
                user_id=str(p.user_id),
                name=p.user.name,
                avatar=p.user.profile_picture_url,
                joined_at=p.joined_at,
            )
            for p in session.active_participants
        ]
        return cls(
            id=session.id,
            room_code=session.room_code,
            name=session.name,
            description=session.description,
            language=session.language,
            code=session.code,
            is_public=session.is_public,
            is_active=session.is_active,
            status=session.status,
            created_at=session.created_at,
            updated_at=session.updated_at,
            owner=UserSummary.from_user(session.owner),
            participants=participants,
            participant_count=len(participants),
        )


# Realtime hub inbound frames

class RoomMessage(CamelModel):
    room_code: str = Field(..., min_length=1, max_length=32)


class CursorPositionPayload(CamelModel):
    line: int = Field(..., ge=0)
    column: int = Field(..., ge=0)


class CodeChangeMessage(RoomMessage):
    code: str
    cursor_position: Optional[CursorPositionPayload] = None


class CursorMoveMessage(RoomMessage):
    line: int = Field(..., ge=0)
    column: int = Field(..., ge=0)


class ChatMessage(RoomMessage):
    message: str = Field(..., min_length=1, max_length=2000)


class AIHelpMessage(RoomMessage):
    question: str = Field(..., min_length=1, max_length=2000)
    code: Optional[str] = None
    language: Optional[str] = None
