"""Collaboration dependencies for FastAPI."""

from starlette.requests import HTTPConnection

from codementor.collaboration.lifecycle import MembershipLifecycle


def get_lifecycle(connection: HTTPConnection) -> MembershipLifecycle:
    """Get the membership lifecycle owned by the running application."""
    return connection.app.state.collaboration_lifecycle
