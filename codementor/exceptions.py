"""Base exceptions for CodeMentor."""


class CodeMentorException(Exception):
    """Base exception for all CodeMentor errors."""
    pass


class ConfigurationError(CodeMentorException):
    """Raised when there's a configuration error."""
    pass


class ValidationError(CodeMentorException):
    """Raised when validation fails."""
    pass


class NotFoundError(CodeMentorException):
    """Raised when a resource is not found."""
    pass


class PermissionDeniedError(CodeMentorException):
    """Raised when the actor lacks the required relationship to a resource."""
    pass


class ConflictError(CodeMentorException):
    """Raised when there's a conflict."""
    pass


class IdGenerationError(CodeMentorException):
    """Raised when a unique identifier could not be generated."""
    pass


class UpstreamUnavailableError(CodeMentorException):
    """Raised when an upstream service is unavailable."""
    pass
