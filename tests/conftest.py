"""Pytest configuration and fixtures."""

import os

os.environ["SECRET_KEY"] = "test-secret-key-not-for-production"
os.environ["ENVIRONMENT"] = "testing"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SALT_ROUNDS"] = "4"
os.environ["GOOGLE_API_KEY"] = ""

from typing import Any, Dict, List, Optional, Union  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import create_async_engine  # noqa: E402

from codementor.auth.schemas import SignupRequest  # noqa: E402
from codementor.auth.security import token_manager  # noqa: E402
from codementor.auth.service import UserService  # noqa: E402
from codementor.collaboration.channel import BroadcastChannel, Connection  # noqa: E402
from codementor.collaboration.lifecycle import MembershipLifecycle  # noqa: E402
from codementor.collaboration.registry import RoomRegistry  # noqa: E402
from codementor.database import Base, db_manager  # noqa: E402
from codementor.main import create_app  # noqa: E402


class FakeWebSocket:
    """Stand-in for a Starlette WebSocket that records what is sent to it."""

    def __init__(
        self,
        query_params: Optional[Dict[str, str]] = None,
        incoming: Optional[List[Union[str, bytes]]] = None,
    ):
        self.query_params = query_params or {}
        self.sent: List[Dict[str, Any]] = []
        self.accepted = False
        self.close_code: Optional[int] = None
        self._incoming = list(incoming or [])

    async def accept(self) -> None:
        self.accepted = True

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.close_code = code

    async def send_json(self, data: Dict[str, Any]) -> None:
        self.sent.append(data)

    async def receive(self) -> Dict[str, Any]:
        if not self._incoming:
            return {"type": "websocket.disconnect", "code": 1000}
        frame = self._incoming.pop(0)
        if isinstance(frame, bytes):
            return {"type": "websocket.receive", "bytes": frame}
        return {"type": "websocket.receive", "text": frame}

    def of_type(self, event_type: str) -> List[Dict[str, Any]]:
        return [message for message in self.sent if message["type"] == event_type]

    def types(self) -> List[str]:
        return [message["type"] for message in self.sent]


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """File-backed SQLite engine so background writes get their own connection."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'codementor_test.db'}")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    db_manager.bind(engine)
    yield engine

    await engine.dispose()
    db_manager.engine = None
    db_manager.async_session_maker = None


@pytest_asyncio.fixture
async def db_session(test_engine):
    async with db_manager.get_session() as session:
        yield session


@pytest.fixture
def app(test_engine):
    return create_app()


@pytest_asyncio.fixture
async def client(app):
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def make_user(test_engine):
    """Factory creating users (with profiles) through the user service."""
    counter = {"n": 0}

    async def _make_user(name: Optional[str] = None, email: Optional[str] = None, password: str = "secret123"):
        counter["n"] += 1
        name = name or f"User {counter['n']}"
        email = email or f"user{counter['n']}@example.com"
        async with db_manager.get_session() as session:
            return await UserService(session).create_user(
                SignupRequest(name=name, email=email, password=password)
            )

    return _make_user


def _auth_headers(user) -> Dict[str, str]:
    token = token_manager.create_access_token({"user_id": user.id, "email": user.email})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def channel(registry):
    return BroadcastChannel(registry)


@pytest_asyncio.fixture
async def lifecycle(test_engine, registry, channel):
    lifecycle = MembershipLifecycle(registry, channel, session_scope=db_manager.get_session)
    yield lifecycle
    await lifecycle.wait_for_pending_writes()


@pytest_asyncio.fixture
async def connect(lifecycle):
    """Open fake hub connections for a user; writer tasks are stopped on teardown."""
    opened: List[Connection] = []

    def _connect(user, connection_id: Optional[str] = None) -> Connection:
        connection = Connection(
            FakeWebSocket(), user_id=user.id, user_name=user.name, connection_id=connection_id
        )
        lifecycle.connect(connection)
        opened.append(connection)
        return connection

    yield _connect

    for connection in opened:
        await connection.close()


async def _flush(*connections: Connection) -> None:
    """Wait until everything queued for the given connections was written."""
    for connection in connections:
        await connection.drain()


@pytest.fixture
def auth_headers():
    return _auth_headers


@pytest.fixture
def flush():
    return _flush


@pytest.fixture
def fake_websocket():
    return FakeWebSocket
