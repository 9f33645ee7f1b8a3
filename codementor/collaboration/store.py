"""Durable persistence of collaboration sessions and participants.

The stored ``code`` column follows a last-write-wins policy: every accepted
update overwrites the previous text with no diffing or merging.
"""

import secrets
from datetime import datetime, timezone
from typing import Callable, List, Optional

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from codementor.auth.models import User
from codementor.collaboration.exceptions import (
    RoomCodeGenerationError,
    SessionNotFoundError,
    SessionPermissionError,
)
from codementor.collaboration.models import (
    CollaborationParticipant,
    CollaborationSession,
    SessionStatus,
)
from codementor.config import settings

logger = structlog.get_logger()


def generate_room_code(length: Optional[int] = None) -> str:
    """Return a random lowercase hex room code."""
    length = length or settings.room_code_length
    return secrets.token_hex((length + 1) // 2)[:length]


class SessionStore:
    """Session and participant persistence."""

    def __init__(
        self,
        db: AsyncSession,
        code_generator: Optional[Callable[[], str]] = None,
        max_attempts: Optional[int] = None,
    ):
        self.db = db
        self.code_generator = code_generator or generate_room_code
        self.max_attempts = max_attempts or settings.room_code_max_attempts
        self.logger = logger.bind(component="session_store")

    def _session_query(self):
        return (
            select(CollaborationSession)
            .options(
                selectinload(CollaborationSession.owner),
                selectinload(CollaborationSession.participants).selectinload(
                    CollaborationParticipant.user
                ),
            )
            .execution_options(populate_existing=True)
        )

    async def create_session(
        self,
        owner: User,
        name: str,
        description: Optional[str] = None,
        language: str = "javascript",
        initial_code: str = "",
        is_public: bool = True,
    ) -> CollaborationSession:
        """Create a session with a fresh room code and the owner as first participant."""
        owner_id = owner.id

        for attempt in range(1, self.max_attempts + 1):
            room_code = self.code_generator()

            if await self._room_code_exists(room_code):
                self.logger.warning("Room code collision", room_code=room_code, attempt=attempt)
                continue

            session = CollaborationSession(
                room_code=room_code,
                name=name,
                description=description,
                language=language,
                code=initial_code or "",
                owner_id=owner_id,
                is_public=is_public,
                is_active=True,
                status=SessionStatus.ACTIVE.value,
            )
            session.participants.append(CollaborationParticipant(user_id=owner_id))
            self.db.add(session)

            try:
                await self.db.flush()
            except IntegrityError:
                # Lost a race with a concurrent insert of the same code
                await self.db.rollback()
                self.logger.warning("Room code taken concurrently", room_code=room_code, attempt=attempt)
                continue

            await self.db.commit()
            self.logger.info("Session created", room_code=room_code, owner_id=owner_id)
            return await self.get_session_by_room_code(room_code)

        raise RoomCodeGenerationError(
            f"Could not generate a unique room code after {self.max_attempts} attempts"
        )

    async def _room_code_exists(self, room_code: str) -> bool:
        result = await self.db.execute(
            select(CollaborationSession.id).where(CollaborationSession.room_code == room_code)
        )
        return result.first() is not None

    async def get_session_by_room_code(
        self, room_code: str, include_inactive: bool = False
    ) -> CollaborationSession:
        """Get a session by room code; inactive sessions count as absent unless asked for."""
        result = await self.db.execute(
            self._session_query().where(CollaborationSession.room_code == room_code)
        )
        session = result.scalar_one_or_none()
        if session is None or (not session.is_active and not include_inactive):
            raise SessionNotFoundError(f"Session {room_code} not found")
        return session

    async def get_session_by_id(self, session_id: int) -> CollaborationSession:
        result = await self.db.execute(
            self._session_query().where(CollaborationSession.id == session_id)
        )
        session = result.scalar_one_or_none()
        if session is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        return session

    async def list_public_active_sessions(self) -> List[CollaborationSession]:
        """List public, active sessions, newest first."""
        result = await self.db.execute(
            self._session_query()
            .where(
                CollaborationSession.is_public.is_(True),
                CollaborationSession.is_active.is_(True),
            )
            .order_by(CollaborationSession.created_at.desc(), CollaborationSession.id.desc())
        )
        return list(result.scalars().all())

    async def update_code(self, room_code: str, code: str, requesting_user_id: int) -> CollaborationSession:
        """Overwrite the stored code. Only active participants may write."""
        session = await self.get_session_by_room_code(room_code)

        if not await self.has_active_participant(session.id, requesting_user_id):
            raise SessionPermissionError(
                f"User {requesting_user_id} is not an active participant of {room_code}"
            )

        session.code = code
        session.updated_at = datetime.now(timezone.utc)
        await self.db.commit()

        self.logger.debug("Session code updated", room_code=room_code, user_id=requesting_user_id)
        return session

    async def set_active(
        self,
        session_id: int,
        is_active: bool,
        requesting_user: Optional[User] = None,
    ) -> CollaborationSession:
        """Toggle liveness. When a requester is given, only the owner or an admin may do it."""
        session = await self.get_session_by_id(session_id)

        if requesting_user is not None:
            self._check_owner_or_admin(session, requesting_user)

        session.is_active = is_active
        session.status = (SessionStatus.ACTIVE if is_active else SessionStatus.INACTIVE).value
        session.updated_at = datetime.now(timezone.utc)
        await self.db.commit()

        self.logger.info("Session activity changed", session_id=session_id, is_active=is_active)
        return session

    async def delete_session(self, session_id: int, requesting_user: User) -> None:
        """Delete a session and its participant rows."""
        session = await self.get_session_by_id(session_id)
        self._check_owner_or_admin(session, requesting_user)

        await self.db.delete(session)
        await self.db.commit()

        self.logger.info(
            "Session deleted", session_id=session_id, room_code=session.room_code,
            user_id=requesting_user.id,
        )

    @staticmethod
    def _check_owner_or_admin(session: CollaborationSession, user: User) -> None:
        if session.owner_id != user.id and not user.is_admin:
            raise SessionPermissionError("Only the session owner or an admin can do this")

    # Participants

    async def _get_participant(
        self, session_id: int, user_id: int
    ) -> Optional[CollaborationParticipant]:
        result = await self.db.execute(
            select(CollaborationParticipant).where(
                CollaborationParticipant.session_id == session_id,
                CollaborationParticipant.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def has_active_participant(self, session_id: int, user_id: int) -> bool:
        participant = await self._get_participant(session_id, user_id)
        return participant is not None and participant.is_active

    async def upsert_participant(
        self, session: CollaborationSession, user_id: int
    ) -> CollaborationParticipant:
        """Reactivate the user's participant row, or insert one."""
        participant = await self._get_participant(session.id, user_id)

        if participant is None:
            participant = CollaborationParticipant(session_id=session.id, user_id=user_id)
            self.db.add(participant)
        elif not participant.is_active:
            participant.is_active = True
            participant.left_at = None
            participant.joined_at = datetime.now(timezone.utc)

        await self.db.commit()
        return participant

    async def deactivate_participant(self, session: CollaborationSession, user_id: int) -> bool:
        """Mark the user's participant row inactive. Returns False when there was none."""
        participant = await self._get_participant(session.id, user_id)
        if participant is None or not participant.is_active:
            return False

        participant.is_active = False
        participant.left_at = datetime.now(timezone.utc)
        await self.db.commit()
        return True

    async def join_session(self, room_code: str, user: User) -> CollaborationSession:
        session = await self.get_session_by_room_code(room_code)
        await self.upsert_participant(session, user.id)
        self.logger.info("User joined session", room_code=room_code, user_id=user.id)
        return await self.get_session_by_room_code(room_code)

    async def leave_session(self, room_code: str, user: User) -> None:
        session = await self.get_session_by_room_code(room_code)
        if not await self.deactivate_participant(session, user.id):
            raise SessionPermissionError(f"User {user.id} is not an active participant of {room_code}")
        self.logger.info("User left session", room_code=room_code, user_id=user.id)
