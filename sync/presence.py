from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import AbstractSet, Callable, Optional, Set

from hokm.models import GameState, Phase

from .coordinator import SyncCoordinator

LOGGER = logging.getLogger("hokm_presence")


@dataclass
class PresenceDiff:
    connect: Set[str] = field(default_factory=set)
    disconnect: Set[str] = field(default_factory=set)
    vacate: Set[str] = field(default_factory=set)

    def __bool__(self) -> bool:
        return bool(self.connect or self.disconnect or self.vacate)


def lobby_grace_expired(state: GameState, now_ms: Optional[int], grace_ms: Optional[int]) -> bool:
    """True once the lobby has been quiet for ``grace_ms``.

    A lobby that never stamped a join has nothing to measure from and keeps
    its seats.
    """
    if now_ms is None or grace_ms is None or not state.last_action_timestamp:
        return False
    return now_ms - state.last_action_timestamp >= grace_ms


def diff_presence(
    state: GameState,
    online: AbstractSet[str],
    self_id: str,
    seen: AbstractSet[str] = frozenset(),
    now_ms: Optional[int] = None,
    grace_ms: Optional[int] = None,
) -> PresenceDiff:
    """Compare recorded connectivity with the presence snapshot.

    In the lobby an offline occupant loses the seat once presence has seen
    them, or once ``grace_ms`` has passed since the last join without them
    ever showing up.
    """
    diff = PresenceDiff()
    if state.phase == Phase.MATCH_END:
        return diff
    expired = state.phase == Phase.LOBBY and lobby_grace_expired(state, now_ms, grace_ms)
    for player in state.occupied_seats():
        if player.id == self_id:
            # This code is running, so we are online whatever presence says.
            if not player.is_connected:
                diff.connect.add(player.id)
            continue
        is_online = player.id in online
        if state.phase == Phase.LOBBY:
            if not is_online and (player.id in seen or expired):
                diff.vacate.add(player.id)
        elif player.is_connected and not is_online:
            diff.disconnect.add(player.id)
        elif not player.is_connected and is_online:
            diff.connect.add(player.id)
    return diff


def apply_presence(
    state: GameState,
    online: AbstractSet[str],
    self_id: str,
    seen: AbstractSet[str] = frozenset(),
    now_ms: Optional[int] = None,
    grace_ms: Optional[int] = None,
) -> Optional[GameState]:
    diff = diff_presence(state, online, self_id, seen, now_ms, grace_ms)
    if not diff:
        return None
    for idx, player in enumerate(state.players):
        if player is None:
            continue
        if player.id in diff.vacate:
            state.players[idx] = None
            state.add_log(f"{player.name} left")
        elif player.id in diff.disconnect:
            player.is_connected = False
            state.add_log(f"{player.name} disconnected")
        elif player.id in diff.connect:
            player.is_connected = True
    return state


class PresenceReconciler:
    """Corrects the document's isConnected flags from presence snapshots.

    ``lobby_grace`` (seconds) bounds how long a lobby seat is held for an
    occupant presence has never reported; None holds it indefinitely.
    """

    def __init__(
        self,
        coordinator: SyncCoordinator,
        player_id: str,
        lobby_grace: Optional[float] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.coordinator = coordinator
        self.player_id = player_id
        self.lobby_grace = lobby_grace
        self.clock = clock
        self.seen: Set[str] = set()

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    async def on_sync(self, online: AbstractSet[str], local: Optional[GameState] = None) -> Optional[GameState]:
        self.seen.update(online)
        # A client that presence does not list may be the flaky one; it stays quiet.
        if self.player_id not in online:
            return None
        grace_ms = None if self.lobby_grace is None else int(self.lobby_grace * 1000)
        if local is not None and not diff_presence(local, online, self.player_id, self.seen, self.now_ms(), grace_ms):
            return None
        seen = set(self.seen)
        committed = await self.coordinator.perform(
            lambda state: apply_presence(state, online, self.player_id, seen, self.now_ms(), grace_ms)
        )
        if committed is not None:
            LOGGER.info(
                "Presence corrected in %s: online=%s",
                self.coordinator.room_id,
                sorted(online),
            )
        return committed
