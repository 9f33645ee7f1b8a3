"""CodeMentor - gamified coding-education backend."""

__version__ = "2.0.0"
