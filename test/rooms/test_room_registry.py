"""Tests for the in-memory room registry."""

import asyncio

import pytest

from meetrelay.rooms.models import Participant
from meetrelay.rooms.registry import RoomFullError, RoomRegistry


def participant(user_id, sid=None, **fields):
    return Participant(user_id=user_id, connection_id=sid or f"sid-{user_id}", **fields)


def test_unknown_room_is_empty(registry):
    assert registry.get("nowhere") == []
    assert registry.occupancy("nowhere") == 0
    assert registry.rooms() == []


def test_room_created_lazily_on_first_upsert(registry):
    registry.upsert("r1", participant("u1"))

    assert registry.rooms() == ["r1"]
    assert [p.user_id for p in registry.get("r1")] == ["u1"]


def test_upsert_keeps_one_entry_per_user_in_place(registry):
    registry.upsert("r1", participant("u1", "sid-a"))
    registry.upsert("r1", participant("u2"))
    registry.upsert("r1", participant("u1", "sid-b", name="Ada"))

    entries = registry.get("r1")
    assert [p.user_id for p in entries] == ["u1", "u2"]
    assert entries[0].connection_id == "sid-b"
    assert entries[0].name == "Ada"


def test_get_returns_a_copy(registry):
    registry.upsert("r1", participant("u1"))

    registry.get("r1").clear()

    assert registry.occupancy("r1") == 1


def test_join_rejects_when_full_without_mutation(registry):
    registry.join("r1", participant("u1"), capacity=2)
    registry.join("r1", participant("u2"), capacity=2)

    with pytest.raises(RoomFullError) as exc_info:
        registry.join("r1", participant("u3"), capacity=2)

    assert exc_info.value.room_id == "r1"
    assert exc_info.value.capacity == 2
    assert [p.user_id for p in registry.get("r1")] == ["u1", "u2"]


def test_join_allows_present_user_when_full(registry):
    registry.join("r1", participant("u1", "sid-old"), capacity=1)

    entries = registry.join("r1", participant("u1", "sid-new"), capacity=1)

    assert [(p.user_id, p.connection_id) for p in entries] == [("u1", "sid-new")]


def test_leave_removes_matching_connection(registry):
    registry.upsert("r1", participant("u1"))
    registry.upsert("r1", participant("u2"))

    removed, remaining = registry.leave("r1", "sid-u1")

    assert removed.user_id == "u1"
    assert [p.user_id for p in remaining] == ["u2"]


def test_leave_deletes_empty_room(registry):
    registry.upsert("r1", participant("u1"))

    removed, remaining = registry.leave("r1", "sid-u1")

    assert removed.user_id == "u1"
    assert remaining == []
    assert registry.rooms() == []


def test_leave_with_unknown_connection_changes_nothing(registry):
    registry.upsert("r1", participant("u1"))

    removed, remaining = registry.leave("r1", "sid-stranger")

    assert removed is None
    assert [p.user_id for p in remaining] == ["u1"]
    assert registry.leave("missing-room", "sid-u1") == (None, [])


def test_replace_mirrors_snapshot_and_deduplicates(registry):
    registry.upsert("r1", participant("stale"))

    entries = registry.replace("r1", [participant("u1", "a"), participant("u2"), participant("u1", "b")])

    assert [(p.user_id, p.connection_id) for p in entries] == [("u1", "b"), ("u2", "sid-u2")]


def test_replace_with_empty_snapshot_deletes_room(registry):
    registry.upsert("r1", participant("u1"))

    assert registry.replace("r1", []) == []
    assert registry.rooms() == []


@pytest.mark.asyncio
async def test_lock_is_shared_per_room():
    registry = RoomRegistry()
    order = []

    async def writer(name):
        async with registry.lock("r1"):
            order.append(f"{name}-start")
            await asyncio.sleep(0)
            order.append(f"{name}-end")

    await asyncio.gather(writer("a"), writer("b"))

    assert order == ["a-start", "a-end", "b-start", "b-end"]


@pytest.mark.asyncio
async def test_locks_are_independent_across_rooms():
    registry = RoomRegistry()

    async with registry.lock("r1"):
        assert not registry.lock("r2").locked()
        assert registry.lock("r1").locked()
