"""Membership lifecycle of hub connections in collaboration rooms.

A connection moves through ``disconnected -> joining -> active`` for each
room it joins, and leaves either explicitly or when its transport closes.
The registry and channel calls never await; durable writes go through a
short-lived database session per operation. Code edits are broadcast first
and persisted in the background so collaborators never wait on the database.
Membership removed through the REST API (leave, deactivate, delete) also
evicts the affected live connections, so registry membership keeps tracking
the participant rows.
"""

import asyncio
from contextlib import asynccontextmanager
from enum import Enum
from typing import AsyncContextManager, AsyncIterator, Callable, Coroutine, Dict, List, Optional, Set, Tuple

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from codementor.auth.models import User
from codementor.collaboration import events
from codementor.collaboration.channel import BroadcastChannel, Connection
from codementor.collaboration.exceptions import ParticipantConflictError, SessionPermissionError
from codementor.collaboration.registry import MemberRemoval, RoomMember, RoomRegistry
from codementor.collaboration.store import SessionStore
from codementor.database import db_manager
from codementor.exceptions import CodeMentorException, NotFoundError
from codementor.metrics import CODE_PERSIST_FAILURES, HUB_CONNECTIONS, LIVE_ROOMS

logger = structlog.get_logger()

SessionScope = Callable[[], AsyncContextManager[AsyncSession]]


class MembershipState(str, Enum):
    """State of one connection with respect to one room."""
    DISCONNECTED = "disconnected"
    JOINING = "joining"
    ACTIVE = "active"
    LEAVING = "leaving"


class _UserLock:
    """Lock shared by one user's connections in one room, dropped once unused."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.holders = 0


class MembershipLifecycle:
    """Join, edit, leave and disconnect handling for hub connections."""

    def __init__(
        self,
        registry: RoomRegistry,
        channel: BroadcastChannel,
        session_scope: Optional[SessionScope] = None,
    ):
        self.registry = registry
        self.channel = channel
        self.session_scope = session_scope or db_manager.get_session
        self._states: Dict[Tuple[str, str], MembershipState] = {}
        self._pending_writes: Set[asyncio.Task] = set()
        self._user_locks: Dict[Tuple[str, int], _UserLock] = {}
        self.logger = logger.bind(component="membership_lifecycle")

    def state_of(self, room_code: str, connection_id: str) -> MembershipState:
        return self._states.get((room_code, connection_id), MembershipState.DISCONNECTED)

    @asynccontextmanager
    async def _user_guard(self, room_code: str, user_id: int) -> AsyncIterator[None]:
        """Serialize the participant-row writes of one user in one room.

        Held from the live connection count through the durable write, so a
        leaving connection cannot deactivate a row that a sibling connection
        of the same user is reactivating.
        """
        key = (room_code, user_id)
        entry = self._user_locks.get(key)
        if entry is None:
            entry = self._user_locks[key] = _UserLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._user_locks.pop(key, None)

    def _require_member(self, room_code: str, connection: Connection, action: str) -> RoomMember:
        member = self.registry.get_member(room_code, connection.connection_id)
        if member is None:
            raise SessionPermissionError(f"Join room {room_code} before you {action}")
        return member

    def _refresh_room_gauge(self) -> None:
        LIVE_ROOMS.set(len(self.registry.room_codes()))

    # Connection

    def connect(self, connection: Connection) -> None:
        self.channel.register(connection)
        connection.start()
        HUB_CONNECTIONS.inc()
        self.logger.info(
            "Connection opened", connection_id=connection.connection_id, user_id=connection.user_id
        )

    async def disconnect(self, connection: Connection) -> None:
        """Leave every joined room without an acknowledgement, then drop the connection."""
        for room_code in sorted(connection.rooms):
            try:
                await self.leave(connection, room_code, acknowledge=False)
            except (CodeMentorException, SQLAlchemyError) as e:
                self.logger.warning(
                    "Failed to leave room on disconnect",
                    room_code=room_code,
                    connection_id=connection.connection_id,
                    error=str(e),
                )

        self.channel.unregister(connection.connection_id)
        await connection.close()
        HUB_CONNECTIONS.dec()
        self.logger.info(
            "Connection closed", connection_id=connection.connection_id, user_id=connection.user_id
        )

    # Membership

    async def join(self, connection: Connection, room_code: str) -> List[RoomMember]:
        """Join a room, announce it to the room and send the joiner a code snapshot."""
        key = (room_code, connection.connection_id)
        if self.registry.is_member(room_code, connection.connection_id):
            raise ParticipantConflictError(f"Already joined to room {room_code}")

        self._states[key] = MembershipState.JOINING
        try:
            async with self._user_guard(room_code, connection.user_id):
                async with self.session_scope() as db:
                    store = SessionStore(db)
                    session = await store.get_session_by_room_code(room_code)
                    await store.upsert_participant(session, connection.user_id)
                    persisted_code = session.code
                    language = session.language

                members = self.registry.add_member(
                    room_code, connection.connection_id, connection.user_id, connection.user_name
                )
        except Exception:
            self._states.pop(key, None)
            raise

        connection.rooms.add(room_code)
        self._states[key] = MembershipState.ACTIVE
        self._refresh_room_gauge()

        member = RoomMember(user_id=connection.user_id, user_name=connection.user_name)
        self.channel.broadcast_to_room(room_code, events.member_joined(room_code, member, members))

        snapshot = self.registry.seed_latest_code(room_code, persisted_code)
        if snapshot is None:
            snapshot = persisted_code
        self.channel.send_to_connection(
            connection.connection_id, events.code_snapshot(room_code, snapshot, language)
        )

        self.logger.info(
            "Joined room",
            room_code=room_code,
            connection_id=connection.connection_id,
            user_id=connection.user_id,
            member_count=len(members),
        )
        return members

    async def leave(self, connection: Connection, room_code: str, acknowledge: bool = True) -> MemberRemoval:
        """Leave a room. The participant row is deactivated once the user has no other connection there."""
        key = (room_code, connection.connection_id)
        removal = self.registry.remove_member(room_code, connection.connection_id)
        if removal is None:
            raise SessionPermissionError(f"Not joined to room {room_code}")

        connection.rooms.discard(room_code)
        self._states[key] = MembershipState.LEAVING
        self._refresh_room_gauge()

        if not removal.room_emptied:
            self.channel.broadcast_to_room(
                room_code, events.member_left(room_code, removal.member, removal.remaining)
            )

        try:
            async with self._user_guard(room_code, connection.user_id):
                if self.registry.user_connection_count(room_code, connection.user_id) == 0:
                    await self._deactivate_participant(room_code, connection.user_id)
        finally:
            self._states.pop(key, None)

        if acknowledge:
            self.channel.send_to_connection(connection.connection_id, events.left_room(room_code))

        self.logger.info(
            "Left room",
            room_code=room_code,
            connection_id=connection.connection_id,
            user_id=connection.user_id,
            room_emptied=removal.room_emptied,
        )
        return removal

    async def _deactivate_participant(self, room_code: str, user_id: int) -> None:
        try:
            async with self.session_scope() as db:
                store = SessionStore(db)
                session = await store.get_session_by_room_code(room_code, include_inactive=True)
                await store.deactivate_participant(session, user_id)
        except NotFoundError:
            self.logger.info("Session gone before leave was recorded", room_code=room_code, user_id=user_id)

    # Removal driven by the REST API

    async def leave_session(self, room_code: str, user: User) -> int:
        """Leave a session over REST and evict the user's live connections from its room.

        Returns the number of hub connections that were removed.
        """
        async with self._user_guard(room_code, user.id):
            async with self.session_scope() as db:
                await SessionStore(db).leave_session(room_code, user)
            return self.evict_user(room_code, user.id, reason="left")

    def evict_user(self, room_code: str, user_id: int, reason: str) -> int:
        """Remove every live connection of ``user_id`` from a room without touching the store."""
        evicted = 0
        for connection_id in self.registry.connection_ids(room_code):
            member = self.registry.get_member(room_code, connection_id)
            if member is None or member.user_id != user_id:
                continue
            if self._evict(room_code, connection_id, reason, announce=True):
                evicted += 1
        self._refresh_room_gauge()
        return evicted

    def close_room(self, room_code: str, reason: str) -> int:
        """Empty the live room of a session that was deactivated or deleted."""
        evicted = 0
        for connection_id in self.registry.connection_ids(room_code):
            if self._evict(room_code, connection_id, reason, announce=False):
                evicted += 1
        self._refresh_room_gauge()
        if evicted:
            self.logger.info("Closed live room", room_code=room_code, reason=reason, evicted=evicted)
        return evicted

    def _evict(self, room_code: str, connection_id: str, reason: str, announce: bool) -> bool:
        removal = self.registry.remove_member(room_code, connection_id)
        if removal is None:
            return False

        self._states.pop((room_code, connection_id), None)
        connection = self.channel.get_connection(connection_id)
        if connection is not None:
            connection.rooms.discard(room_code)

        if announce and not removal.room_emptied:
            self.channel.broadcast_to_room(
                room_code, events.member_left(room_code, removal.member, removal.remaining)
            )
        self.channel.send_to_connection(connection_id, events.left_room(room_code, reason))

        self.logger.info(
            "Evicted connection from room",
            room_code=room_code,
            connection_id=connection_id,
            user_id=removal.member.user_id,
            reason=reason,
        )
        return True

    # Active room traffic

    def code_change(
        self,
        connection: Connection,
        room_code: str,
        code: str,
        cursor_position: Optional[Dict[str, int]] = None,
    ) -> None:
        """Broadcast an edit to the other members and persist it in the background."""
        member = self._require_member(room_code, connection, "edit")

        self.registry.set_latest_code(room_code, code)
        self.channel.broadcast_to_room_except_sender(
            room_code,
            connection.connection_id,
            events.code_changed(room_code, code, member, cursor_position),
        )
        self._schedule_write(self._persist_code(connection, room_code, code))

    def cursor_move(self, connection: Connection, room_code: str, line: int, column: int) -> None:
        member = self._require_member(room_code, connection, "move the cursor")
        self.registry.set_cursor(room_code, connection.connection_id, line, column)
        self.channel.broadcast_to_room_except_sender(
            room_code, connection.connection_id, events.cursor_moved(room_code, member, line, column)
        )

    def chat(self, connection: Connection, room_code: str, message: str) -> None:
        member = self._require_member(room_code, connection, "chat")
        self.channel.broadcast_to_room(room_code, events.chat_posted(room_code, member, message))

    def request_ai_help(
        self,
        connection: Connection,
        room_code: str,
        question: str,
        code: Optional[str] = None,
        language: Optional[str] = None,
    ) -> None:
        member = self._require_member(room_code, connection, "ask for help")
        self.channel.broadcast_to_room(
            room_code, events.ai_help_requested(room_code, member, question, code, language)
        )

    def publish_code_update(self, room_code: str, code: str, author: RoomMember) -> bool:
        """Mirror an already persisted code update into a live room, if there is one."""
        if not self.registry.set_latest_code(room_code, code):
            return False
        self.channel.broadcast_to_room(room_code, events.code_changed(room_code, code, author))
        return True

    # Background writes

    def _schedule_write(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._pending_writes.add(task)
        task.add_done_callback(self._pending_writes.discard)

    async def _persist_code(self, connection: Connection, room_code: str, code: str) -> None:
        try:
            async with self.session_scope() as db:
                await SessionStore(db).update_code(room_code, code, connection.user_id)
        except (CodeMentorException, SQLAlchemyError) as e:
            CODE_PERSIST_FAILURES.inc()
            self.logger.warning(
                "Failed to persist code change",
                room_code=room_code,
                user_id=connection.user_id,
                error=str(e),
            )
            self.channel.send_to_connection(
                connection.connection_id,
                events.error_event("persist_failed", str(e), action="code_change", room_code=room_code),
            )

    async def wait_for_pending_writes(self) -> None:
        """Wait for background code writes started so far."""
        while self._pending_writes:
            await asyncio.gather(*list(self._pending_writes))

    @property
    def pending_write_count(self) -> int:
        return len(self._pending_writes)
