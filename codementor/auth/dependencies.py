"""FastAPI dependencies for authentication."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from codementor.auth.models import User
from codementor.auth.security import token_manager
from codementor.auth.service import UserService
from codementor.database import db_manager
from codementor.database_deps import get_db

# Security scheme
bearer_scheme = HTTPBearer(auto_error=False)


class AuthenticationRequired:
    """Dependency to require authentication."""

    def __init__(self, require_active: bool = True):
        self.require_active = require_active

    async def __call__(
        self,
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: AsyncSession = Depends(get_db)
    ) -> User:
        """Verify authentication and return current user."""

        if not credentials:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user = await resolve_token_user(credentials.credentials, db)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        if self.require_active and not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is deactivated",
            )

        return user


async def resolve_token_user(token: str, db: AsyncSession) -> Optional[User]:
    """Return the user a token belongs to, or None."""
    payload = token_manager.verify_token(token, "access")
    if not payload:
        return None

    user_id = payload.get("user_id")
    if not user_id:
        return None

    return await UserService(db).get_user_by_id(int(user_id))


async def authenticate_websocket(websocket: WebSocket) -> Optional[User]:
    """Resolve the user of a hub connection from its ``access_token`` query parameter."""
    token = websocket.query_params.get("access_token")
    if not token:
        return None

    async with db_manager.get_session() as db:
        user = await resolve_token_user(token, db)

    if not user or not user.is_active:
        return None
    return user


# Common dependency instances
get_current_user = AuthenticationRequired()
