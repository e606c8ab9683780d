import asyncio
import json

from hokm.models import Phase
from sync.coordinator import SyncCoordinator
from sync.presence import PresenceReconciler, apply_presence, diff_presence
from sync.store import MemoryStore

from .helpers import lobby_state, playing_state, seed_room


def test_lobby_vacates_only_players_seen_before():
    state = lobby_state()
    diff = diff_presence(state, {"P1", "P4"}, "P1", seen={"P1", "P2", "P4"})
    assert diff.vacate == {"P2"}
    assert not diff.disconnect and not diff.connect


def test_lobby_ignores_players_not_yet_tracked():
    state = lobby_state()
    assert not diff_presence(state, {"P1"}, "P1", seen={"P1"})


def test_match_flags_connectivity_mismatches():
    state = playing_state()
    state.players[2].is_connected = False
    diff = diff_presence(state, {"P1", "P3", "P4"}, "P1")
    assert diff.disconnect == {"P2"}
    assert diff.connect == {"P3"}
    assert not diff.vacate


def test_self_is_always_connected():
    state = playing_state()
    state.players[0].is_connected = False
    diff = diff_presence(state, {"P2", "P3", "P4"}, "P1")
    assert diff.connect == {"P1"}


def test_finished_match_is_left_alone():
    state = playing_state()
    state.phase = Phase.MATCH_END
    assert not diff_presence(state, set(), "P1")


def test_apply_presence_edits_seats():
    state = lobby_state()
    assert apply_presence(state, {"P1", "P3", "P4"}, "P1", seen={"P2"}) is state
    assert state.players[1] is None
    assert state.logs[-1] == "Player2 left"
    assert apply_presence(state, {"P1", "P3", "P4"}, "P1") is None


def test_reconciler_writes_corrections():
    store = MemoryStore()
    seed_room(store, playing_state())
    reconciler = PresenceReconciler(SyncCoordinator(store, "100200"), "P1")

    committed = asyncio.run(reconciler.on_sync({"P1", "P3", "P4"}))

    assert committed is not None
    stored = json.loads(store.raw("100200"))
    assert stored["version"] == 1
    assert stored["players"][1]["isConnected"] is False
    assert stored["logs"][-1] == "Player2 disconnected"


def test_reconciler_stays_quiet_when_not_listed_itself():
    store = MemoryStore()
    seed_room(store, playing_state())
    before = store.raw("100200")
    reconciler = PresenceReconciler(SyncCoordinator(store, "100200"), "P1")

    assert asyncio.run(reconciler.on_sync({"P3", "P4"})) is None
    assert store.raw("100200") == before
    assert reconciler.seen == {"P3", "P4"}


def test_reconciler_skips_write_when_local_view_agrees():
    store = MemoryStore()
    state = playing_state()
    seed_room(store, state)
    before = store.raw("100200")
    reconciler = PresenceReconciler(SyncCoordinator(store, "100200"), "P1")

    assert asyncio.run(reconciler.on_sync({"P1", "P2", "P3", "P4"}, state)) is None
    assert store.raw("100200") == before


def test_lobby_frees_no_show_seats_once_grace_runs_out():
    state = lobby_state()
    state.last_action_timestamp = 10_000
    assert not diff_presence(state, {"P1", "P4"}, "P1", now_ms=39_999, grace_ms=30_000)
    diff = diff_presence(state, {"P1", "P4"}, "P1", now_ms=40_000, grace_ms=30_000)
    assert diff.vacate == {"P2", "P3"}


def test_lobby_without_join_stamp_keeps_no_show_seats():
    state = lobby_state()
    assert not diff_presence(state, {"P1"}, "P1", now_ms=10**12, grace_ms=30_000)


def test_grace_never_vacates_mid_match():
    state = playing_state()
    state.last_action_timestamp = 1
    diff = diff_presence(state, {"P1"}, "P1", now_ms=10**12, grace_ms=0)
    assert not diff.vacate
    assert diff.disconnect == {"P2", "P3", "P4"}


def test_reconciler_expires_lobby_no_shows():
    store = MemoryStore()
    state = lobby_state()
    state.last_action_timestamp = 50_000
    seed_room(store, state)
    reconciler = PresenceReconciler(SyncCoordinator(store, "100200"), "P1", lobby_grace=30, clock=lambda: 100.0)

    committed = asyncio.run(reconciler.on_sync({"P1", "P3"}, state))

    assert committed is not None
    stored = json.loads(store.raw("100200"))
    assert stored["players"][1] is None and stored["players"][3] is None
    assert stored["players"][2]["id"] == "P3"
