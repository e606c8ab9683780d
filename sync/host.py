from __future__ import annotations

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Dict, Optional, Tuple

from hokm.cards import create_deck
from hokm.dealing import deal_initial, deal_remainder
from hokm.hakim import ace_revealed, crown_hakim, restart_determination, reveal_card
from hokm.models import GameState, HostLease, Phase
from hokm.scoring import resolve_trick
from hokm.seating import start_match

from .config import TimingConfig
from .coordinator import Modifier, SyncCoordinator
from .errors import Conflict, RoomNotFound, TransportError

LOGGER = logging.getLogger("hokm_host")

# HostDriver runs the timed transitions (match start, hakim reveal, deals,
# trick resolution) for whichever client currently holds the room's host
# lease. Every transition it issues keeps its own idempotency guard, so a
# stale or doubled timer is a no-op rather than a corruption.


def claim_lease(state: GameState, player_id: str, ttl_ms: int, now_ms: int) -> Optional[GameState]:
    if state.host_candidate_id() != player_id:
        return None
    lease = state.host_lease
    if lease is not None and lease.holder_id != player_id and lease.expires_at > now_ms:
        holder = state.find_player(lease.holder_id)
        if holder is not None and holder.is_connected:
            return None
    if lease is not None and lease.holder_id == player_id and lease.expires_at - now_ms > ttl_ms // 2:
        return None
    state.host_lease = HostLease(holder_id=player_id, expires_at=now_ms + ttl_ms)
    return state


def holds_lease(state: GameState, player_id: str, now_ms: int) -> bool:
    lease = state.host_lease
    return lease is not None and lease.holder_id == player_id and lease.expires_at > now_ms


def transition_marker(state: GameState) -> Tuple[object, ...]:
    return (
        state.phase.value,
        state.hakim_id,
        state.scores.get(1, 0),
        state.scores.get(2, 0),
        sum(state.current_round_tricks.values()),
        len(state.table_cards),
    )


class HostDriver:
    def __init__(
        self,
        coordinator: SyncCoordinator,
        player_id: str,
        config: Optional[TimingConfig] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.coordinator = coordinator
        self.player_id = player_id
        self.config = config or TimingConfig()
        self.rng = rng
        self.clock = clock
        self.state: Optional[GameState] = None
        self._wake = asyncio.Event()
        self._stopped = False
        self._timers: Dict[str, asyncio.Task] = {}
        self._last_fired: Dict[str, Tuple[object, ...]] = {}
        self._reveal_task: Optional[asyncio.Task] = None

    def now_ms(self) -> int:
        return int(self.clock() * 1000)

    def notify(self, state: GameState) -> None:
        self.state = state
        self._wake.set()

    def is_host(self) -> bool:
        return self.state is not None and holds_lease(self.state, self.player_id, self.now_ms())

    async def run(self) -> None:
        while not self._stopped:
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.config.host_tick)
            except asyncio.TimeoutError:
                pass
            self._wake.clear()
            if self._stopped:
                break
            try:
                await self.step()
            except RoomNotFound:
                LOGGER.info("Room %s is gone; host driver stopping", self.coordinator.room_id)
                break
            except (TransportError, Conflict) as exc:
                LOGGER.warning("Host step failed in %s: %s", self.coordinator.room_id, exc)

    async def stop(self) -> None:
        self._stopped = True
        self._wake.set()
        tasks = list(self._timers.values())
        if self._reveal_task:
            tasks.append(self._reveal_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._timers.clear()
        self._reveal_task = None

    async def step(self) -> None:
        state = self.state
        if state is None or state.host_candidate_id() != self.player_id:
            return
        now = self.now_ms()
        ttl_ms = int(self.config.lease_ttl * 1000)
        if claim_lease(state.clone(), self.player_id, ttl_ms, now) is not None:
            had_lease = holds_lease(state, self.player_id, now)
            committed = await self.coordinator.perform(
                lambda fresh: claim_lease(fresh, self.player_id, ttl_ms, self.now_ms())
            )
            if committed is not None:
                if not had_lease:
                    LOGGER.info("%s took the host lease for %s", self.player_id, self.coordinator.room_id)
                self.state = state = committed
        if not holds_lease(state, self.player_id, self.now_ms()):
            return
        self.schedule_transitions(state)

    # Transition scheduling ---------------------------------------------
    def schedule_transitions(self, state: GameState) -> None:
        phase = state.phase
        if phase == Phase.LOBBY and state.is_full():
            self._schedule("start_match", state, self.config.start_delay, start_match)
        elif phase == Phase.HAKIM_DETERMINATION and state.hakim_id is None:
            if self._reveal_task is not None and not self._reveal_task.done():
                return
            if ace_revealed(state):
                self._schedule("crown_hakim", state, self.config.hakim_display_delay, crown_hakim)
            else:
                self._reveal_task = asyncio.ensure_future(self._guarded(self._reveal_loop()))
        elif phase == Phase.DEALING_INITIAL and not state.deck:
            self._schedule("deal_initial", state, self.config.initial_deal_delay, self._initial_deal)
        elif phase == Phase.DEALING_REMAINDER:
            self._schedule("deal_remainder", state, self.config.remainder_deal_delay, deal_remainder)
        elif phase == Phase.PLAYING and state.is_trick_full():
            self._schedule("resolve_trick", state, self.config.trick_resolution_delay, resolve_trick)

    def _schedule(self, name: str, state: GameState, delay: float, modifier: Modifier) -> None:
        marker = transition_marker(state)
        pending = self._timers.get(name)
        if pending is not None and not pending.done():
            return
        if self._last_fired.get(name) == marker:
            return
        self._last_fired[name] = marker
        LOGGER.debug("Timer set: %s in %.1fs for %s", name, delay, self.coordinator.room_id)
        self._timers[name] = asyncio.ensure_future(self._guarded(self._fire(name, delay, modifier)))

    async def _fire(self, name: str, delay: float, modifier: Modifier) -> None:
        await asyncio.sleep(delay)
        try:
            committed = await self.coordinator.perform(modifier)
        except (TransportError, Conflict):
            # Let the next step schedule it again.
            self._last_fired.pop(name, None)
            raise
        if committed is None:
            LOGGER.info("Timer %s in %s was already handled", name, self.coordinator.room_id)
            return
        LOGGER.info("Timer %s fired in %s -> %s", name, self.coordinator.room_id, committed.phase.value)
        self.notify(committed)

    def _initial_deal(self, state: GameState) -> Optional[GameState]:
        return deal_initial(state, create_deck(self.rng))

    async def _reveal_loop(self) -> None:
        current = await self.coordinator.fetch()
        if current.hakim_determination_cards:
            await self.coordinator.perform(restart_determination)
        deck = create_deck(self.rng)
        for position, card in enumerate(deck, start=1):
            await asyncio.sleep(self.config.reveal_interval)
            latest = await self.coordinator.fetch()
            if latest.phase != Phase.HAKIM_DETERMINATION or latest.hakim_id is not None:
                return
            committed = await self.coordinator.perform(
                lambda state, card=card, position=position: reveal_card(state, card, position)
            )
            if committed is None:
                LOGGER.info("Reveal in %s taken over by another host", self.coordinator.room_id)
                return
            self.notify(committed)
            if ace_revealed(committed):
                await asyncio.sleep(self.config.hakim_display_delay)
                crowned = await self.coordinator.perform(crown_hakim)
                if crowned is not None:
                    self.notify(crowned)
                return

    async def _guarded(self, job: Awaitable[None]) -> None:
        try:
            await job
        except RoomNotFound:
            LOGGER.info("Room %s disappeared during a timed transition", self.coordinator.room_id)
        except (TransportError, Conflict) as exc:
            LOGGER.warning("Timed transition in %s failed: %s", self.coordinator.room_id, exc)
