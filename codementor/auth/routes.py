"""Authentication API routes."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from codementor.auth.dependencies import get_current_user
from codementor.auth.models import User
from codementor.auth.schemas import AuthResponse, LoginRequest, SignupRequest, UserPublic
from codementor.auth.service import AuthenticationError, AuthenticationService, UserService
from codementor.database_deps import get_db
from codementor.exceptions import ConflictError

logger = structlog.get_logger()

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/signup", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    user_data: SignupRequest,
    db: AsyncSession = Depends(get_db)
):
    """Register a new user."""
    try:
        user = await UserService(db).create_user(user_data)
    except ConflictError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e)
        )

    token = AuthenticationService(db).issue_token(user)
    return AuthResponse(user=UserPublic.from_user(user), token=token)


@router.post("/login", response_model=AuthResponse)
async def login(
    login_data: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """Login user with email and password."""
    auth_service = AuthenticationService(db)

    try:
        user = await auth_service.login(login_data)
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )

    return AuthResponse(user=UserPublic.from_user(user), token=auth_service.issue_token(user))


@router.get("/me", response_model=UserPublic)
async def get_me(current_user: User = Depends(get_current_user)):
    """Get the current user."""
    return UserPublic.from_user(current_user)
