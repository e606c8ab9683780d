import asyncio
import json

import pytest

from hokm.seating import take_seat
from sync.coordinator import SyncCoordinator
from sync.errors import Conflict, RoomNotFound, TransportError
from sync.store import MemoryStore

from .helpers import RacingStore, lobby_state, make_player, seed_room


def test_perform_commits_and_bumps_version():
    store = MemoryStore()
    seed_room(store, lobby_state(seated=3))
    coordinator = SyncCoordinator(store, "100200")

    committed = asyncio.run(coordinator.perform(lambda state: take_seat(state, make_player(3))))

    assert committed is not None
    assert committed.version == 1
    stored = json.loads(store.raw("100200"))
    assert stored["version"] == 1
    assert stored["players"][3]["id"] == "P4"


def test_aborted_modifier_writes_nothing():
    store = MemoryStore()
    seed_room(store, lobby_state())
    before = store.raw("100200")
    coordinator = SyncCoordinator(store, "100200")

    assert asyncio.run(coordinator.perform(lambda state: None)) is None
    assert store.raw("100200") == before


def test_failing_modifier_writes_nothing():
    store = MemoryStore()
    seed_room(store, lobby_state())
    before = store.raw("100200")
    coordinator = SyncCoordinator(store, "100200")

    def explode(state):
        state.add_log("half done")
        raise ValueError("bad move")

    with pytest.raises(ValueError):
        asyncio.run(coordinator.perform(explode))
    assert store.raw("100200") == before


def test_lost_race_reruns_modifier_on_fresh_state():
    store = RacingStore(races=1)
    seed_room(store, lobby_state(seated=3))
    coordinator = SyncCoordinator(store, "100200")
    seen_versions = []

    def seat(state):
        seen_versions.append(state.version)
        return take_seat(state, make_player(3))

    committed = asyncio.run(coordinator.perform(seat))

    assert seen_versions == [0, 1]
    assert committed.version == 2
    stored = json.loads(store.raw("100200"))
    assert "interloper" in stored["logs"]
    assert stored["players"][3]["id"] == "P4"


def test_conflict_after_max_attempts():
    store = RacingStore(races=10)
    seed_room(store, lobby_state(seated=3))
    coordinator = SyncCoordinator(store, "100200", max_attempts=3)
    calls = []

    def seat(state):
        calls.append(state.version)
        return take_seat(state, make_player(3))

    with pytest.raises(Conflict):
        asyncio.run(coordinator.perform(seat))
    assert len(calls) == 3
    stored = json.loads(store.raw("100200"))
    assert stored["players"][3] is None
    assert stored["version"] == 3


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        SyncCoordinator(MemoryStore(), "100200", max_attempts=0)


def test_missing_room_and_offline_store_propagate():
    store = MemoryStore()
    coordinator = SyncCoordinator(store, "404404")
    with pytest.raises(RoomNotFound):
        asyncio.run(coordinator.perform(lambda state: state))

    seed_room(store, lobby_state(room_id="404404"))
    store.offline = True
    with pytest.raises(TransportError):
        asyncio.run(coordinator.perform(lambda state: state))


def test_broadcast_overwrites_without_version_check():
    store = MemoryStore()
    seed_room(store, lobby_state(seated=2))
    coordinator = SyncCoordinator(store, "100200")
    local = lobby_state(seated=1)
    local.version = 5

    asyncio.run(coordinator.broadcast(local))

    stored = json.loads(store.raw("100200"))
    assert stored["version"] == 6
    assert stored["players"][1] is None


def test_broadcast_from_stale_copy_never_moves_version_back():
    store = MemoryStore()
    ahead = lobby_state(seated=3)
    ahead.version = 7
    seed_room(store, ahead)
    coordinator = SyncCoordinator(store, "100200")
    stale = lobby_state(seated=2)
    stale.version = 2

    asyncio.run(coordinator.broadcast(stale))

    assert stale.version == 8
    stored = json.loads(store.raw("100200"))
    assert stored["version"] == 8
    assert stored["players"][2] is None


def test_broadcast_does_not_resurrect_a_deleted_room():
    store = MemoryStore()
    coordinator = SyncCoordinator(store, "100200")
    with pytest.raises(RoomNotFound):
        asyncio.run(coordinator.broadcast(lobby_state()))
    assert store.raw("100200") is None
