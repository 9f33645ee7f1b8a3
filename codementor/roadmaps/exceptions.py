"""Roadmap-specific exceptions."""

from codementor.exceptions import (
    CodeMentorException,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
)


class RoadmapError(CodeMentorException):
    """Base exception for roadmap errors."""
    pass


class RoadmapNotFoundError(RoadmapError, NotFoundError):
    """Raised when a roadmap id does not resolve to a visible roadmap."""
    pass


class RoadmapPermissionError(RoadmapError, PermissionDeniedError):
    """Raised when someone other than the author or an admin edits a roadmap."""
    pass


class EnrollmentConflictError(RoadmapError, ConflictError):
    """Raised when a user enrolls in a roadmap twice."""
    pass
