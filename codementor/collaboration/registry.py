"""In-process registry of live collaboration rooms.

The registry tracks who is connected to each room right now, the latest code
text seen in the room and the last cursor of each connection. It is a cache:
the session store stays authoritative for persisted code.

Every operation runs to completion without awaiting. Each room entry has its
own lock and the backend map has another; the two are never held together.
A room whose last member leaves is marked closed and dropped from the map, so
a concurrent ``add_member`` that picked up the old entry retries on a fresh one.
"""

import threading
from dataclasses import dataclass
from typing import Dict, List, Optional

import structlog

logger = structlog.get_logger()


@dataclass(frozen=True)
class RoomMember:
    """One connected identity in a room."""

    user_id: int
    user_name: str

    def to_dict(self) -> Dict[str, object]:
        return {"userId": self.user_id, "name": self.user_name}


@dataclass(frozen=True)
class CursorPosition:
    line: int
    column: int


@dataclass(frozen=True)
class MemberRemoval:
    """Outcome of removing a connection from a room."""

    member: RoomMember
    remaining: List[RoomMember]
    room_emptied: bool


class LiveRoomState:
    """Volatile state of one room."""

    def __init__(self, room_code: str):
        self.room_code = room_code
        self.members: Dict[str, RoomMember] = {}  # connection id -> member, join order
        self.latest_code: Optional[str] = None
        self.cursors: Dict[str, CursorPosition] = {}
        self.lock = threading.Lock()
        self.closed = False

    def distinct_members(self) -> List[RoomMember]:
        seen = set()
        members = []
        for member in self.members.values():
            if member.user_id not in seen:
                seen.add(member.user_id)
                members.append(member)
        return members


class InMemoryRoomBackend:
    """Process-local map of room code to room state."""

    def __init__(self):
        self._rooms: Dict[str, LiveRoomState] = {}
        self._lock = threading.Lock()

    def get_or_create(self, room_code: str) -> LiveRoomState:
        with self._lock:
            state = self._rooms.get(room_code)
            if state is None or state.closed:
                state = LiveRoomState(room_code)
                self._rooms[room_code] = state
            return state

    def get(self, room_code: str) -> Optional[LiveRoomState]:
        with self._lock:
            return self._rooms.get(room_code)

    def discard(self, room_code: str, state: LiveRoomState) -> None:
        with self._lock:
            if self._rooms.get(room_code) is state:
                del self._rooms[room_code]

    def codes(self) -> List[str]:
        with self._lock:
            return list(self._rooms)


class RoomRegistry:
    """Live room membership, latest code and cursors."""

    def __init__(self, backend: Optional[InMemoryRoomBackend] = None):
        self._backend = backend or InMemoryRoomBackend()
        self.logger = logger.bind(component="room_registry")

    def _open_room(self, room_code: str) -> Optional[LiveRoomState]:
        state = self._backend.get(room_code)
        if state is None or state.closed:
            return None
        return state

    def ensure_room(self, room_code: str) -> None:
        """Create an empty entry for the room if there is none."""
        self._backend.get_or_create(room_code)

    def add_member(
        self, room_code: str, connection_id: str, user_id: int, user_name: str
    ) -> List[RoomMember]:
        """Register a connection in a room and return the distinct members."""
        while True:
            state = self._backend.get_or_create(room_code)
            with state.lock:
                if state.closed:
                    continue
                state.members[connection_id] = RoomMember(user_id=user_id, user_name=user_name)
                members = state.distinct_members()

            self.logger.debug(
                "Member added", room_code=room_code, connection_id=connection_id, user_id=user_id
            )
            return members

    def remove_member(self, room_code: str, connection_id: str) -> Optional[MemberRemoval]:
        """Remove a connection from a room. The room entry is dropped once empty."""
        state = self._open_room(room_code)
        if state is None:
            return None

        with state.lock:
            member = state.members.pop(connection_id, None)
            if member is None:
                return None
            state.cursors.pop(connection_id, None)
            remaining = state.distinct_members()
            emptied = not state.members
            if emptied:
                state.closed = True

        if emptied:
            self._backend.discard(room_code, state)
            self.logger.debug("Room emptied", room_code=room_code)

        return MemberRemoval(member=member, remaining=remaining, room_emptied=emptied)

    def set_latest_code(self, room_code: str, code: str) -> bool:
        """Record the latest code of a live room. Returns False if the room is not live."""
        state = self._open_room(room_code)
        if state is None:
            return False
        with state.lock:
            if state.closed:
                return False
            state.latest_code = code
        return True

    def seed_latest_code(self, room_code: str, code: str) -> Optional[str]:
        """Set the latest code only if none is known yet; return the current value."""
        state = self._open_room(room_code)
        if state is None:
            return None
        with state.lock:
            if state.latest_code is None:
                state.latest_code = code
            return state.latest_code

    def get_latest_code(self, room_code: str) -> Optional[str]:
        state = self._open_room(room_code)
        if state is None:
            return None
        with state.lock:
            return state.latest_code

    def set_cursor(self, room_code: str, connection_id: str, line: int, column: int) -> bool:
        state = self._open_room(room_code)
        if state is None:
            return False
        with state.lock:
            if connection_id not in state.members:
                return False
            state.cursors[connection_id] = CursorPosition(line=line, column=column)
        return True

    def get_cursor(self, room_code: str, connection_id: str) -> Optional[CursorPosition]:
        state = self._open_room(room_code)
        if state is None:
            return None
        with state.lock:
            return state.cursors.get(connection_id)

    def members(self, room_code: str) -> List[RoomMember]:
        state = self._open_room(room_code)
        if state is None:
            return []
        with state.lock:
            return state.distinct_members()

    def connection_ids(self, room_code: str) -> List[str]:
        state = self._open_room(room_code)
        if state is None:
            return []
        with state.lock:
            return list(state.members)

    def member_count(self, room_code: str) -> int:
        """Number of connections joined to the room."""
        state = self._open_room(room_code)
        if state is None:
            return 0
        with state.lock:
            return len(state.members)

    def get_member(self, room_code: str, connection_id: str) -> Optional[RoomMember]:
        state = self._open_room(room_code)
        if state is None:
            return None
        with state.lock:
            return state.members.get(connection_id)

    def is_member(self, room_code: str, connection_id: str) -> bool:
        return self.get_member(room_code, connection_id) is not None

    def user_connection_count(self, room_code: str, user_id: int) -> int:
        state = self._open_room(room_code)
        if state is None:
            return 0
        with state.lock:
            return sum(1 for member in state.members.values() if member.user_id == user_id)

    def has_room(self, room_code: str) -> bool:
        return self._open_room(room_code) is not None

    def room_codes(self) -> List[str]:
        return self._backend.codes()
