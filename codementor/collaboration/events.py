"""Outbound realtime events."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from codementor.collaboration.registry import RoomMember


class CollaborationEventType(str, Enum):
    """Realtime event types sent to hub connections."""
    MEMBER_JOINED = "member_joined"
    MEMBER_LEFT = "member_left"
    CODE_SNAPSHOT = "code_snapshot"
    CODE_CHANGED = "code_changed"
    CURSOR_MOVED = "cursor_moved"
    CHAT_POSTED = "chat_posted"
    AI_HELP_REQUESTED = "ai_help_requested"
    LEFT_ROOM = "left_room"
    PONG = "pong"
    ERROR = "error"


class CollaborationEvent(BaseModel):
    """Realtime event envelope."""

    event_type: CollaborationEventType
    room_code: Optional[str] = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Dict[str, Any] = Field(default_factory=dict)

    def to_message(self) -> Dict[str, Any]:
        """Convert to the wire format."""
        return {
            "type": self.event_type.value,
            "roomCode": self.room_code,
            "timestamp": self.timestamp.isoformat(),
            "data": self.data,
        }


def _member_list(members: List[RoomMember]) -> List[Dict[str, Any]]:
    return [member.to_dict() for member in members]


def member_joined(room_code: str, member: RoomMember, members: List[RoomMember]) -> CollaborationEvent:
    return CollaborationEvent(
        event_type=CollaborationEventType.MEMBER_JOINED,
        room_code=room_code,
        data={"userId": member.user_id, "name": member.user_name, "members": _member_list(members)},
    )


def member_left(room_code: str, member: RoomMember, members: List[RoomMember]) -> CollaborationEvent:
    return CollaborationEvent(
        event_type=CollaborationEventType.MEMBER_LEFT,
        room_code=room_code,
        data={"userId": member.user_id, "name": member.user_name, "members": _member_list(members)},
    )


def code_snapshot(room_code: str, code: str, language: Optional[str] = None) -> CollaborationEvent:
    return CollaborationEvent(
        event_type=CollaborationEventType.CODE_SNAPSHOT,
        room_code=room_code,
        data={"code": code, "language": language},
    )


def code_changed(
    room_code: str,
    code: str,
    author: RoomMember,
    cursor_position: Optional[Dict[str, int]] = None,
) -> CollaborationEvent:
    return CollaborationEvent(
        event_type=CollaborationEventType.CODE_CHANGED,
        room_code=room_code,
        data={
            "code": code,
            "userId": author.user_id,
            "author": author.user_name,
            "cursorPosition": cursor_position,
        },
    )


def cursor_moved(room_code: str, author: RoomMember, line: int, column: int) -> CollaborationEvent:
    return CollaborationEvent(
        event_type=CollaborationEventType.CURSOR_MOVED,
        room_code=room_code,
        data={"userId": author.user_id, "author": author.user_name, "line": line, "column": column},
    )


def chat_posted(room_code: str, author: RoomMember, message: str) -> CollaborationEvent:
    event = CollaborationEvent(event_type=CollaborationEventType.CHAT_POSTED, room_code=room_code)
    event.data = {
        "userId": author.user_id,
        "author": author.user_name,
        "message": message,
        "sentAt": event.timestamp.isoformat(),
    }
    return event


def ai_help_requested(
    room_code: str,
    author: RoomMember,
    question: str,
    code: Optional[str] = None,
    language: Optional[str] = None,
) -> CollaborationEvent:
    return CollaborationEvent(
        event_type=CollaborationEventType.AI_HELP_REQUESTED,
        room_code=room_code,
        data={
            "userId": author.user_id,
            "author": author.user_name,
            "question": question,
            "code": code,
            "language": language,
        },
    )


def left_room(room_code: str, reason: Optional[str] = None) -> CollaborationEvent:
    """Acknowledge a leave, or tell a connection it was removed from the room (with a reason)."""
    data = {"reason": reason} if reason else {}
    return CollaborationEvent(event_type=CollaborationEventType.LEFT_ROOM, room_code=room_code, data=data)


def pong() -> CollaborationEvent:
    return CollaborationEvent(event_type=CollaborationEventType.PONG)


def error_event(
    code: str,
    message: str,
    action: Optional[str] = None,
    room_code: Optional[str] = None,
) -> CollaborationEvent:
    """Reply sent only to the connection whose request failed."""
    return CollaborationEvent(
        event_type=CollaborationEventType.ERROR,
        room_code=room_code,
        data={"code": code, "message": message, "action": action},
    )
