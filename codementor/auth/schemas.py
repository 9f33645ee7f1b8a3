"""Authentication Pydantic schemas for API validation."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base schema serialised with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class SignupRequest(BaseModel):
    """Schema for user signup."""

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=128)


class LoginRequest(BaseModel):
    """Login request schema."""

    email: EmailStr
    password: str = Field(..., min_length=1)


class UserSummary(CamelModel):
    """Minimal user reference used inside other payloads."""

    id: str
    name: str
    email: str
    avatar: Optional[str] = None

    @classmethod
    def from_user(cls, user) -> "UserSummary":
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            avatar=user.profile_picture_url,
        )


class UserPublic(UserSummary):
    """Public user schema with gamification counters."""

    level: int = 1
    xp: int = 0
    bugs_fixed: int = 0
    games_won: int = 0
    streak: int = 0
    created_at: datetime
    is_admin: bool = False

    @classmethod
    def from_user(cls, user) -> "UserPublic":
        profile = user.profile
        return cls(
            id=str(user.id),
            name=user.name,
            email=user.email,
            avatar=user.profile_picture_url,
            level=profile.level if profile else 1,
            xp=profile.xp_points if profile else 0,
            bugs_fixed=profile.bugs_fixed if profile else 0,
            games_won=profile.games_won if profile else 0,
            streak=profile.current_streak if profile else 0,
            created_at=user.created_at,
            is_admin=user.is_admin,
        )


class AuthResponse(CamelModel):
    """Authentication response schema."""

    user: UserPublic
    token: str
    token_type: str = "Bearer"
