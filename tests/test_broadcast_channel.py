"""Test room-scoped event fan-out."""

import pytest
import pytest_asyncio
from prometheus_client import REGISTRY

from codementor.collaboration import events
from codementor.collaboration.channel import Connection
from codementor.collaboration.registry import RoomMember


class BrokenWebSocket:
    async def send_json(self, data):
        raise RuntimeError("socket closed")


def dropped_count(event_type):
    value = REGISTRY.get_sample_value(
        "codementor_collaboration_events_dropped_total", {"event_type": event_type}
    )
    return value or 0.0


@pytest_asyncio.fixture
async def open_connection(registry, channel, fake_websocket):
    opened = []

    def _open(connection_id, user_id=1, room_code=None, start=True, queue_size=None):
        connection = Connection(
            fake_websocket(), user_id=user_id, user_name=f"User {user_id}",
            queue_size=queue_size, connection_id=connection_id,
        )
        channel.register(connection)
        if start:
            connection.start()
        if room_code:
            registry.add_member(room_code, connection_id, user_id, f"User {user_id}")
        opened.append(connection)
        return connection

    yield _open

    for connection in opened:
        await connection.close()


@pytest.mark.unit
async def test_broadcast_reaches_every_room_member(channel, open_connection, flush):
    a = open_connection("a", 1, "room1")
    b = open_connection("b", 2, "room1")

    delivered = channel.broadcast_to_room("room1", events.chat_posted("room1", RoomMember(1, "User 1"), "hi"))
    await flush(a, b)

    assert delivered == 2
    assert a.websocket.types() == ["chat_posted"]
    assert b.websocket.sent[0]["data"]["message"] == "hi"
    assert b.websocket.sent[0]["roomCode"] == "room1"


@pytest.mark.unit
async def test_broadcast_except_sender_skips_sender(channel, open_connection, flush):
    a = open_connection("a", 1, "room1")
    b = open_connection("b", 2, "room1")

    delivered = channel.broadcast_to_room_except_sender(
        "room1", "a", events.code_changed("room1", "x = 1", RoomMember(1, "User 1"))
    )
    await flush(a, b)

    assert delivered == 1
    assert a.websocket.sent == []
    assert b.websocket.types() == ["code_changed"]


@pytest.mark.unit
async def test_broadcast_does_not_cross_rooms(channel, open_connection, flush):
    a = open_connection("a", 1, "room1")
    b = open_connection("b", 2, "room2")

    channel.broadcast_to_room("room1", events.left_room("room1"))
    await flush(a, b)

    assert a.websocket.types() == ["left_room"]
    assert b.websocket.sent == []


@pytest.mark.unit
async def test_broadcast_to_unknown_room_is_a_noop(channel):
    assert channel.broadcast_to_room("nowhere", events.left_room("nowhere")) == 0


@pytest.mark.unit
async def test_full_queue_drops_event(channel, open_connection):
    slow = open_connection("slow", 1, "room1", start=False, queue_size=1)
    before = dropped_count("cursor_moved")

    member = RoomMember(2, "User 2")
    assert channel.broadcast_to_room("room1", events.cursor_moved("room1", member, 1, 1)) == 1
    assert channel.broadcast_to_room("room1", events.cursor_moved("room1", member, 2, 2)) == 0

    assert slow.queue.qsize() == 1
    assert dropped_count("cursor_moved") == before + 1


@pytest.mark.unit
async def test_events_arrive_in_order_per_recipient(channel, open_connection, flush):
    a = open_connection("a", 1, "room1")
    author = RoomMember(2, "User 2")

    for i in range(50):
        channel.broadcast_to_room("room1", events.code_changed("room1", f"v{i}", author))
    await flush(a)

    assert [m["data"]["code"] for m in a.websocket.sent] == [f"v{i}" for i in range(50)]


@pytest.mark.unit
async def test_send_to_connection(channel, open_connection, flush):
    a = open_connection("a")

    assert channel.send_to_connection("a", events.pong())
    assert not channel.send_to_connection("missing", events.pong())
    await flush(a)

    assert a.websocket.types() == ["pong"]


@pytest.mark.unit
async def test_writer_failure_closes_connection(channel, registry):
    connection = Connection(BrokenWebSocket(), user_id=1, user_name="User 1", connection_id="a")
    channel.register(connection)
    connection.start()
    registry.add_member("room1", "a", 1, "User 1")

    channel.broadcast_to_room("room1", events.pong())
    await connection.drain()

    assert connection.closed
    assert not channel.send_to_connection("a", events.pong())
    await connection.close()


@pytest.mark.unit
async def test_unregister(channel, open_connection):
    open_connection("a")
    assert channel.connection_count == 1

    assert channel.unregister("a").connection_id == "a"
    assert channel.unregister("a") is None
    assert channel.connection_count == 0
