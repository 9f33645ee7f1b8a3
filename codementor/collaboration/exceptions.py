"""Collaboration-specific exceptions."""

from codementor.exceptions import (
    CodeMentorException,
    ConflictError,
    IdGenerationError,
    NotFoundError,
    PermissionDeniedError,
)


class CollaborationError(CodeMentorException):
    """Base exception for collaboration errors."""
    pass


class SessionNotFoundError(CollaborationError, NotFoundError):
    """Raised when a room code does not resolve to an active session."""
    pass


class SessionPermissionError(CollaborationError, PermissionDeniedError):
    """Raised when the actor is not an active participant or owner."""
    pass


class ParticipantConflictError(CollaborationError, ConflictError):
    """Raised when a connection joins a room it is already joined to."""
    pass


class RoomCodeGenerationError(CollaborationError, IdGenerationError):
    """Raised when no unused room code could be generated."""
    pass
