"""Test joining, editing and leaving live collaboration rooms."""

import asyncio

import pytest

from codementor.collaboration.exceptions import (
    ParticipantConflictError,
    SessionNotFoundError,
    SessionPermissionError,
)
from codementor.collaboration.lifecycle import MembershipState
from codementor.collaboration.registry import RoomMember
from codementor.collaboration.store import SessionStore
from codementor.database import db_manager


async def create_room(owner, code="print('hi')", language="python"):
    async with db_manager.get_session() as db:
        session = await SessionStore(db).create_session(
            owner, "Pairing", language=language, initial_code=code, is_public=True
        )
        return session.room_code


async def load_room(room_code):
    async with db_manager.get_session() as db:
        return await SessionStore(db).get_session_by_room_code(room_code, include_inactive=True)


async def is_active_participant(room_code, user_id):
    async with db_manager.get_session() as db:
        store = SessionStore(db)
        session = await store.get_session_by_room_code(room_code, include_inactive=True)
        return await store.has_active_participant(session.id, user_id)


def member_names(message):
    return [member["name"] for member in message["data"]["members"]]


@pytest.mark.integration
async def test_two_members_collaborate_then_leave(lifecycle, connect, make_user, flush):
    alice = await make_user(name="Alice")
    bob = await make_user(name="Bob")
    room_code = await create_room(alice)
    a = connect(alice)
    b = connect(bob)

    await lifecycle.join(a, room_code)
    await lifecycle.join(b, room_code)
    await flush(a, b)

    assert b.websocket.types() == ["member_joined", "code_snapshot"]
    snapshot = b.websocket.of_type("code_snapshot")[0]
    assert snapshot["data"] == {"code": "print('hi')", "language": "python"}
    joined = a.websocket.of_type("member_joined")
    assert member_names(joined[-1]) == ["Alice", "Bob"]

    a.websocket.sent.clear()
    b.websocket.sent.clear()
    lifecycle.code_change(a, room_code, "print('hello')", {"line": 0, "column": 14})
    await flush(a, b)

    assert a.websocket.sent == []
    change = b.websocket.of_type("code_changed")[0]
    assert change["data"]["code"] == "print('hello')"
    assert change["data"]["author"] == "Alice"
    assert change["data"]["cursorPosition"] == {"line": 0, "column": 14}

    await lifecycle.wait_for_pending_writes()
    assert (await load_room(room_code)).code == "print('hello')"

    await lifecycle.leave(a, room_code)
    await flush(a, b)

    left = b.websocket.of_type("member_left")[0]
    assert left["data"]["name"] == "Alice"
    assert member_names(left) == ["Bob"]
    assert a.websocket.types()[-1] == "left_room"
    assert not await is_active_participant(room_code, alice.id)

    await lifecycle.leave(b, room_code)
    assert not lifecycle.registry.has_room(room_code)
    assert lifecycle.state_of(room_code, b.connection_id) == MembershipState.DISCONNECTED


@pytest.mark.integration
async def test_join_missing_room_changes_nothing(lifecycle, connect, make_user, flush):
    user = await make_user()
    connection = connect(user)

    with pytest.raises(SessionNotFoundError):
        await lifecycle.join(connection, "doesnotexist")
    await flush(connection)

    assert not lifecycle.registry.has_room("doesnotexist")
    assert lifecycle.state_of("doesnotexist", connection.connection_id) == MembershipState.DISCONNECTED
    assert connection.websocket.sent == []


@pytest.mark.integration
async def test_join_inactive_room_is_not_found(lifecycle, connect, make_user):
    owner = await make_user()
    room_code = await create_room(owner)
    async with db_manager.get_session() as db:
        store = SessionStore(db)
        session = await store.get_session_by_room_code(room_code)
        await store.set_active(session.id, False)

    with pytest.raises(SessionNotFoundError):
        await lifecycle.join(connect(owner), room_code)


@pytest.mark.integration
async def test_code_change_requires_membership(lifecycle, connect, make_user, flush):
    alice = await make_user()
    mallory = await make_user()
    room_code = await create_room(alice, code="safe")
    a = connect(alice)
    m = connect(mallory)
    await lifecycle.join(a, room_code)
    await flush(a)
    a.websocket.sent.clear()

    with pytest.raises(SessionPermissionError):
        lifecycle.code_change(m, room_code, "hacked")
    await flush(a, m)

    assert a.websocket.sent == []
    assert lifecycle.pending_write_count == 0
    assert lifecycle.registry.get_latest_code(room_code) == "safe"
    assert (await load_room(room_code)).code == "safe"


@pytest.mark.integration
async def test_duplicate_join_conflicts(lifecycle, connect, make_user):
    user = await make_user()
    room_code = await create_room(user)
    connection = connect(user)
    await lifecycle.join(connection, room_code)

    with pytest.raises(ParticipantConflictError):
        await lifecycle.join(connection, room_code)

    assert lifecycle.registry.member_count(room_code) == 1


@pytest.mark.integration
async def test_leave_without_join_is_denied(lifecycle, connect, make_user):
    user = await make_user()
    room_code = await create_room(user)

    with pytest.raises(SessionPermissionError):
        await lifecycle.leave(connect(user), room_code)


@pytest.mark.integration
async def test_snapshot_prefers_live_code(lifecycle, connect, make_user, flush):
    alice = await make_user()
    bob = await make_user()
    room_code = await create_room(alice, code="stored")
    a = connect(alice)
    b = connect(bob)
    await lifecycle.join(a, room_code)

    lifecycle.registry.set_latest_code(room_code, "live")
    await lifecycle.join(b, room_code)
    await flush(b)

    assert b.websocket.of_type("code_snapshot")[0]["data"]["code"] == "live"


@pytest.mark.integration
async def test_user_with_two_connections_keeps_participation(lifecycle, connect, make_user, flush):
    alice = await make_user(name="Alice")
    bob = await make_user(name="Bob")
    room_code = await create_room(alice)
    a = connect(alice)
    b1 = connect(bob)
    b2 = connect(bob)
    for connection in (a, b1, b2):
        await lifecycle.join(connection, room_code)

    await lifecycle.leave(b1, room_code)
    assert await is_active_participant(room_code, bob.id)
    await flush(a)
    assert member_names(a.websocket.of_type("member_left")[-1]) == ["Alice", "Bob"]

    await lifecycle.leave(b2, room_code)
    assert not await is_active_participant(room_code, bob.id)
    await flush(a)
    assert member_names(a.websocket.of_type("member_left")[-1]) == ["Alice"]


@pytest.mark.integration
async def test_disconnect_leaves_every_room(lifecycle, connect, make_user, flush):
    alice = await make_user(name="Alice")
    bob = await make_user(name="Bob")
    first = await create_room(alice)
    second = await create_room(alice)
    a = connect(alice)
    b = connect(bob)
    for room_code in (first, second):
        await lifecycle.join(a, room_code)
        await lifecycle.join(b, room_code)

    await lifecycle.disconnect(a)
    await flush(b)

    assert a.rooms == set()
    assert lifecycle.registry.connection_ids(first) == [b.connection_id]
    assert lifecycle.channel.get_connection(a.connection_id) is None
    assert a.closed
    assert {m["roomCode"] for m in b.websocket.of_type("member_left")} == {first, second}
    assert "left_room" not in a.websocket.types()
    assert not await is_active_participant(first, alice.id)


@pytest.mark.integration
async def test_failed_background_write_reports_to_sender(lifecycle, connect, make_user, flush):
    owner = await make_user()
    room_code = await create_room(owner)
    connection = connect(owner)
    await lifecycle.join(connection, room_code)

    async with db_manager.get_session() as db:
        store = SessionStore(db)
        session = await store.get_session_by_room_code(room_code)
        await store.delete_session(session.id, owner)

    lifecycle.code_change(connection, room_code, "lost edit")
    await lifecycle.wait_for_pending_writes()
    await flush(connection)

    error = connection.websocket.of_type("error")[0]
    assert error["data"]["code"] == "persist_failed"
    assert error["data"]["action"] == "code_change"


@pytest.mark.integration
async def test_chat_and_help_reach_whole_room(lifecycle, connect, make_user, flush):
    alice = await make_user(name="Alice")
    bob = await make_user(name="Bob")
    room_code = await create_room(alice)
    a = connect(alice)
    b = connect(bob)
    await lifecycle.join(a, room_code)
    await lifecycle.join(b, room_code)

    lifecycle.chat(a, room_code, "hello")
    lifecycle.request_ai_help(b, room_code, "why?", code="x = 1", language="python")
    lifecycle.cursor_move(b, room_code, 2, 4)
    await flush(a, b)

    assert a.websocket.of_type("chat_posted")[0]["data"]["message"] == "hello"
    assert b.websocket.of_type("chat_posted")[0]["data"]["author"] == "Alice"
    assert b.websocket.of_type("ai_help_requested")[0]["data"]["question"] == "why?"
    assert a.websocket.of_type("cursor_moved")[0]["data"]["line"] == 2
    assert b.websocket.of_type("cursor_moved") == []


@pytest.mark.integration
async def test_publish_code_update_only_for_live_rooms(lifecycle, connect, make_user, flush):
    owner = await make_user(name="Alice")
    room_code = await create_room(owner)
    author = RoomMember(owner.id, owner.name)

    assert not lifecycle.publish_code_update(room_code, "x", author)

    connection = connect(owner)
    await lifecycle.join(connection, room_code)
    assert lifecycle.publish_code_update(room_code, "y", author)
    await flush(connection)

    assert connection.websocket.of_type("code_changed")[0]["data"]["code"] == "y"
    assert lifecycle.registry.get_latest_code(room_code) == "y"


@pytest.mark.integration
async def test_rest_leave_evicts_live_connections(lifecycle, connect, make_user, flush):
    alice = await make_user(name="Alice")
    bob = await make_user(name="Bob")
    room_code = await create_room(alice, code="safe")
    a = connect(alice)
    b = connect(bob)
    await lifecycle.join(a, room_code)
    await lifecycle.join(b, room_code)
    await flush(a, b)
    b.websocket.sent.clear()

    assert await lifecycle.leave_session(room_code, alice) == 1
    await flush(a, b)

    assert a.websocket.types()[-1] == "left_room"
    assert a.websocket.sent[-1]["data"] == {"reason": "left"}
    assert a.rooms == set()
    assert member_names(b.websocket.of_type("member_left")[0]) == ["Bob"]
    assert not await is_active_participant(room_code, alice.id)

    b.websocket.sent.clear()
    with pytest.raises(SessionPermissionError):
        lifecycle.code_change(a, room_code, "hijack")
    await flush(b)

    assert b.websocket.sent == []
    assert lifecycle.registry.get_latest_code(room_code) == "safe"
    assert lifecycle.pending_write_count == 0


@pytest.mark.integration
async def test_rest_leave_without_membership_keeps_connections(lifecycle, connect, make_user):
    alice = await make_user()
    bob = await make_user()
    room_code = await create_room(alice)
    a = connect(alice)
    await lifecycle.join(a, room_code)

    with pytest.raises(SessionPermissionError):
        await lifecycle.leave_session(room_code, bob)

    assert lifecycle.registry.is_member(room_code, a.connection_id)


@pytest.mark.integration
async def test_close_room_evicts_everyone(lifecycle, connect, make_user, flush):
    alice = await make_user()
    bob = await make_user()
    room_code = await create_room(alice)
    a = connect(alice)
    b = connect(bob)
    await lifecycle.join(a, room_code)
    await lifecycle.join(b, room_code)
    await flush(a, b)
    a.websocket.sent.clear()
    b.websocket.sent.clear()

    assert lifecycle.close_room(room_code, reason="deleted") == 2
    await flush(a, b)

    assert not lifecycle.registry.has_room(room_code)
    for connection in (a, b):
        assert connection.websocket.types() == ["left_room"]
        assert connection.websocket.sent[0]["data"]["reason"] == "deleted"
        assert connection.rooms == set()
        with pytest.raises(SessionPermissionError):
            lifecycle.chat(connection, room_code, "anyone?")
    assert lifecycle.close_room(room_code, reason="deleted") == 0


@pytest.mark.integration
async def test_rejoin_racing_leave_keeps_participation(lifecycle, connect, make_user):
    alice = await make_user()
    room_code = await create_room(alice)
    old_tab = connect(alice)
    new_tab = connect(alice)
    await lifecycle.join(old_tab, room_code)

    await asyncio.gather(lifecycle.leave(old_tab, room_code), lifecycle.join(new_tab, room_code))

    assert lifecycle.registry.is_member(room_code, new_tab.connection_id)
    assert await is_active_participant(room_code, alice.id)


@pytest.mark.integration
async def test_join_racing_leave_of_sibling_in_either_order(lifecycle, connect, make_user):
    alice = await make_user()
    room_code = await create_room(alice)
    old_tab = connect(alice)
    new_tab = connect(alice)
    await lifecycle.join(old_tab, room_code)

    await asyncio.gather(lifecycle.join(new_tab, room_code), lifecycle.leave(old_tab, room_code))

    assert lifecycle.registry.connection_ids(room_code) == [new_tab.connection_id]
    assert await is_active_participant(room_code, alice.id)
    assert lifecycle._user_locks == {}


@pytest.mark.integration
async def test_connection_tracks_joined_rooms(lifecycle, connect, make_user):
    alice = await make_user()
    first = await create_room(alice)
    second = await create_room(alice)
    a = connect(alice)

    await lifecycle.join(a, first)
    await lifecycle.join(a, second)
    assert a.rooms == {first, second}

    await lifecycle.leave(a, first)
    assert a.rooms == {second}

    with pytest.raises(SessionNotFoundError):
        await lifecycle.join(a, "doesnotexist")
    assert a.rooms == {second}
