"""Authentication service layer."""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from codementor.auth.models import User, UserProfile
from codementor.auth.schemas import LoginRequest, SignupRequest
from codementor.auth.security import password_manager, token_manager
from codementor.exceptions import CodeMentorException, ConflictError

logger = structlog.get_logger()


class AuthenticationError(CodeMentorException):
    """Authentication related errors."""
    pass


class UserService:
    """User management service."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_user(self, user_data: SignupRequest) -> User:
        """Create a new user together with an empty profile."""
        existing_user = await self.get_user_by_email(user_data.email)
        if existing_user:
            raise ConflictError("User with this email already exists")

        user = User(
            name=user_data.name,
            email=user_data.email.lower(),
            password_hash=password_manager.hash_password(user_data.password),
        )
        user.profile = UserProfile()

        self.db.add(user)
        await self.db.commit()

        logger.info("User created", user_id=user.id, email=user.email)
        return await self.get_user_by_id(user.id)

    async def get_user_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(
            select(User)
            .options(selectinload(User.profile))
            .where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        result = await self.db.execute(
            select(User)
            .options(selectinload(User.profile))
            .where(User.email == email.lower())
        )
        return result.scalar_one_or_none()


class AuthenticationService:
    """Login and token issuing."""

    def __init__(self, db: AsyncSession):
        self.db = db
        self.user_service = UserService(db)

    async def login(self, login_data: LoginRequest) -> User:
        """Verify credentials and record the login."""
        user = await self.user_service.get_user_by_email(login_data.email)
        if not user or not password_manager.verify_password(login_data.password, user.password_hash):
            raise AuthenticationError("Invalid email or password")

        if not user.is_active:
            raise AuthenticationError("Account is deactivated")

        user.last_login_at = datetime.now(timezone.utc)
        await self.db.commit()

        logger.info("User logged in", user_id=user.id)
        return user

    def issue_token(self, user: User) -> str:
        """Create an access token for the user."""
        return token_manager.create_access_token({"user_id": user.id, "email": user.email})
