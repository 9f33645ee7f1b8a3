"""Authentication and user identity."""
