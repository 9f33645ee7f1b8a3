"""Collaboration session API routes."""

from typing import List

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from codementor.auth.dependencies import get_current_user
from codementor.auth.models import User
from codementor.collaboration.dependencies import get_lifecycle
from codementor.collaboration.exceptions import (
    RoomCodeGenerationError,
    SessionNotFoundError,
    SessionPermissionError,
)
from codementor.collaboration.lifecycle import MembershipLifecycle
from codementor.collaboration.registry import RoomMember
from codementor.collaboration.schemas import (
    ActiveUpdate,
    CodeUpdate,
    SessionCreate,
    SessionResponse,
)
from codementor.collaboration.store import SessionStore
from codementor.database_deps import get_db

logger = structlog.get_logger()

router = APIRouter(prefix="/collaboration", tags=["Collaboration"])


def _not_found(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


def _forbidden(e: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e))


@router.post("/sessions", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def create_session(
    session_data: SessionCreate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Create a new collaboration session."""
    store = SessionStore(db)

    try:
        session = await store.create_session(
            owner=current_user,
            name=session_data.name,
            description=session_data.description,
            language=session_data.language,
            initial_code=session_data.initial_code,
            is_public=session_data.is_public,
        )
    except RoomCodeGenerationError as e:
        logger.error("Room code generation failed", user_id=current_user.id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e),
        )

    return SessionResponse.from_session(session)


@router.get("/sessions", response_model=List[SessionResponse])
async def list_sessions(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> List[SessionResponse]:
    """List public active sessions, newest first."""
    sessions = await SessionStore(db).list_public_active_sessions()
    return [SessionResponse.from_session(s) for s in sessions]


@router.get("/sessions/{room_code}", response_model=SessionResponse)
async def get_session(
    room_code: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Get a session by room code."""
    try:
        session = await SessionStore(db).get_session_by_room_code(room_code)
    except SessionNotFoundError as e:
        raise _not_found(e)

    return SessionResponse.from_session(session)


@router.post("/sessions/{room_code}/join", response_model=SessionResponse)
async def join_session(
    room_code: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> SessionResponse:
    """Join a session, reactivating an earlier membership if there is one."""
    try:
        session = await SessionStore(db).join_session(room_code, current_user)
    except SessionNotFoundError as e:
        raise _not_found(e)

    return SessionResponse.from_session(session)


@router.post("/sessions/{room_code}/leave")
async def leave_session(
    room_code: str,
    current_user: User = Depends(get_current_user),
    lifecycle: MembershipLifecycle = Depends(get_lifecycle),
):
    """Leave a session. The user's live hub connections are removed from the room too."""
    try:
        await lifecycle.leave_session(room_code, current_user)
    except SessionNotFoundError as e:
        raise _not_found(e)
    except SessionPermissionError as e:
        raise _forbidden(e)

    return {"success": True, "message": "Left the session"}


@router.put("/sessions/{room_code}/code", response_model=SessionResponse)
async def update_code(
    room_code: str,
    code_data: CodeUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: MembershipLifecycle = Depends(get_lifecycle),
) -> SessionResponse:
    """Overwrite the session code. Live members are sent the new code."""
    store = SessionStore(db)

    try:
        await store.update_code(room_code, code_data.code, current_user.id)
    except SessionNotFoundError as e:
        raise _not_found(e)
    except SessionPermissionError as e:
        raise _forbidden(e)

    lifecycle.publish_code_update(
        room_code,
        code_data.code,
        RoomMember(user_id=current_user.id, user_name=current_user.name),
    )

    session = await store.get_session_by_room_code(room_code)
    return SessionResponse.from_session(session)


@router.patch("/sessions/{room_code}/active", response_model=SessionResponse)
async def set_session_active(
    room_code: str,
    active_data: ActiveUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: MembershipLifecycle = Depends(get_lifecycle),
) -> SessionResponse:
    """Activate or deactivate a session (owner or admin)."""
    store = SessionStore(db)

    try:
        session = await store.get_session_by_room_code(room_code, include_inactive=True)
        session = await store.set_active(session.id, active_data.is_active, requesting_user=current_user)
    except SessionNotFoundError as e:
        raise _not_found(e)
    except SessionPermissionError as e:
        raise _forbidden(e)

    if not session.is_active:
        lifecycle.close_room(room_code, reason="deactivated")

    return SessionResponse.from_session(session)


@router.delete("/sessions/{room_code}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    room_code: str,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    lifecycle: MembershipLifecycle = Depends(get_lifecycle),
) -> Response:
    """Delete a session (owner or admin)."""
    store = SessionStore(db)

    try:
        session = await store.get_session_by_room_code(room_code, include_inactive=True)
        await store.delete_session(session.id, current_user)
    except SessionNotFoundError as e:
        raise _not_found(e)
    except SessionPermissionError as e:
        raise _forbidden(e)

    lifecycle.close_room(room_code, reason="deleted")

    return Response(status_code=status.HTTP_204_NO_CONTENT)
