"""Realtime collaboration hub (WebSocket endpoint)."""

import json
from typing import Any, Awaitable, Callable, Dict

import structlog
from fastapi import APIRouter, WebSocket
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from codementor.auth.dependencies import authenticate_websocket
from codementor.collaboration import events
from codementor.collaboration.channel import Connection
from codementor.collaboration.lifecycle import MembershipLifecycle
from codementor.collaboration.schemas import (
    AIHelpMessage,
    ChatMessage,
    CodeChangeMessage,
    CursorMoveMessage,
    RoomMessage,
)
from codementor.exceptions import (
    CodeMentorException,
    ConflictError,
    IdGenerationError,
    NotFoundError,
    PermissionDeniedError,
)

logger = structlog.get_logger()

router = APIRouter()

# Close code used when the access token is missing or invalid
WS_CLOSE_UNAUTHORIZED = 4401

Handler = Callable[[Connection, Dict[str, Any]], Awaitable[None]]


def error_code_for(exc: CodeMentorException) -> str:
    if isinstance(exc, NotFoundError):
        return "not_found"
    if isinstance(exc, PermissionDeniedError):
        return "permission_denied"
    if isinstance(exc, ConflictError):
        return "conflict"
    if isinstance(exc, IdGenerationError):
        return "id_generation_failed"
    return "error"


class CollaborationHub:
    """Reads frames from one connection and routes them to the membership lifecycle."""

    def __init__(self, lifecycle: MembershipLifecycle):
        self.lifecycle = lifecycle
        self.logger = logger.bind(component="collaboration_hub")
        self._handlers: Dict[str, Handler] = {
            "join_room": self._join_room,
            "leave_room": self._leave_room,
            "code_change": self._code_change,
            "cursor_move": self._cursor_move,
            "chat_message": self._chat_message,
            "request_ai_help": self._request_ai_help,
            "ping": self._ping,
        }

    async def handle_websocket(self, websocket: WebSocket) -> None:
        await websocket.accept()

        user = await authenticate_websocket(websocket)
        if user is None:
            await websocket.close(code=WS_CLOSE_UNAUTHORIZED, reason="Authentication required")
            return

        connection = Connection(websocket, user_id=user.id, user_name=user.name)
        self.lifecycle.connect(connection)

        try:
            while True:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    self.logger.info(
                        "Client disconnected",
                        connection_id=connection.connection_id,
                        code=message.get("code"),
                    )
                    break
                await self.handle_message(connection, message)
        finally:
            await self.lifecycle.disconnect(connection)

    async def handle_message(self, connection: Connection, message: Dict[str, Any]) -> None:
        """Handle one received ASGI message. Only text frames carry hub requests."""
        text = message.get("text")
        if text is None:
            self._reply_error(connection, "validation_error", "Binary frames are not supported")
            return
        await self.dispatch(connection, text)

    async def dispatch(self, connection: Connection, raw: str) -> None:
        """Handle one inbound frame. Failures are answered on this connection only."""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError:
            self._reply_error(connection, "validation_error", "Malformed JSON frame")
            return

        if not isinstance(frame, dict) or not isinstance(frame.get("type"), str):
            self._reply_error(connection, "validation_error", "Frame must be an object with a 'type'")
            return

        message_type = frame["type"]
        room_code = frame.get("roomCode") if isinstance(frame.get("roomCode"), str) else None
        handler = self._handlers.get(message_type)
        if handler is None:
            self._reply_error(
                connection, "unknown_message_type", f"Unknown message type: {message_type}",
                action=message_type, room_code=room_code,
            )
            return

        try:
            await handler(connection, frame)
        except ValidationError as e:
            self._reply_error(
                connection, "validation_error", self._describe_validation_error(e),
                action=message_type, room_code=room_code,
            )
        except CodeMentorException as e:
            self._reply_error(
                connection, error_code_for(e), str(e), action=message_type, room_code=room_code,
            )
        except SQLAlchemyError as e:
            self.logger.error(
                "Database error while handling frame",
                action=message_type,
                connection_id=connection.connection_id,
                error=str(e),
            )
            self._reply_error(
                connection, "unavailable", "Storage is temporarily unavailable",
                action=message_type, room_code=room_code,
            )
        except Exception as e:
            self.logger.error(
                "Unexpected error while handling frame",
                action=message_type,
                connection_id=connection.connection_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._reply_error(
                connection, "internal_error", "Internal error while handling the request",
                action=message_type, room_code=room_code,
            )

    def _reply_error(self, connection: Connection, code: str, message: str, action=None, room_code=None) -> None:
        self.lifecycle.channel.send_to_connection(
            connection.connection_id,
            events.error_event(code, message, action=action, room_code=room_code),
        )

    @staticmethod
    def _describe_validation_error(exc: ValidationError) -> str:
        parts = []
        for error in exc.errors():
            location = ".".join(str(item) for item in error.get("loc", ()))
            parts.append(f"{location}: {error.get('msg')}" if location else error.get("msg", ""))
        return "; ".join(parts)

    # Handlers

    async def _join_room(self, connection: Connection, frame: Dict[str, Any]) -> None:
        message = RoomMessage.model_validate(frame)
        await self.lifecycle.join(connection, message.room_code)

    async def _leave_room(self, connection: Connection, frame: Dict[str, Any]) -> None:
        message = RoomMessage.model_validate(frame)
        await self.lifecycle.leave(connection, message.room_code)

    async def _code_change(self, connection: Connection, frame: Dict[str, Any]) -> None:
        message = CodeChangeMessage.model_validate(frame)
        cursor = message.cursor_position.model_dump() if message.cursor_position else None
        self.lifecycle.code_change(connection, message.room_code, message.code, cursor)

    async def _cursor_move(self, connection: Connection, frame: Dict[str, Any]) -> None:
        message = CursorMoveMessage.model_validate(frame)
        self.lifecycle.cursor_move(connection, message.room_code, message.line, message.column)

    async def _chat_message(self, connection: Connection, frame: Dict[str, Any]) -> None:
        message = ChatMessage.model_validate(frame)
        self.lifecycle.chat(connection, message.room_code, message.message)

    async def _request_ai_help(self, connection: Connection, frame: Dict[str, Any]) -> None:
        message = AIHelpMessage.model_validate(frame)
        self.lifecycle.request_ai_help(
            connection, message.room_code, message.question, message.code, message.language
        )

    async def _ping(self, connection: Connection, frame: Dict[str, Any]) -> None:
        self.lifecycle.channel.send_to_connection(connection.connection_id, events.pong())


@router.websocket("/collaboration-hub")
async def collaboration_hub_endpoint(websocket: WebSocket):
    """Realtime collaboration endpoint. Authenticate with ``?access_token=<jwt>``."""
    hub = CollaborationHub(websocket.app.state.collaboration_lifecycle)
    await hub.handle_websocket(websocket)
