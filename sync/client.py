from __future__ import annotations

import asyncio
import logging
import random
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Set, Union

from hokm.cards import Card, Suit, card_from_id
from hokm.dealing import choose_hokm
from hokm.models import GameState, Mode, Phase, Player
from hokm.seating import (
    first_empty_seat,
    is_abandoned,
    new_room,
    reconnect,
    set_connected,
    switch_seat,
    take_seat,
    vacate_seat,
)
from hokm.serialization import from_document, to_document
from hokm.tricks import MUST_FOLLOW_SUIT, IllegalPlay, play_card, play_error

from .config import TimingConfig
from .coordinator import SyncCoordinator
from .errors import Conflict, RoomFull, RoomNotFound, TransportError
from .host import HostDriver
from .presence import PresenceReconciler
from .store import DocumentStore, PresenceChannel, Unsubscribe

LOGGER = logging.getLogger("hokm_client")


@dataclass(frozen=True)
class Session:
    room_id: str
    player_id: str
    token: str


def new_player(name: str) -> Player:
    return Player(id=uuid.uuid4().hex[:8], name=name, team_id=1, token=uuid.uuid4().hex)


class GameClient:
    """One participant's view of a room plus the actions it may take."""

    def __init__(
        self,
        store: DocumentStore,
        name: str,
        config: Optional[TimingConfig] = None,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.store = store
        self.name = name
        self.config = config or TimingConfig()
        self.rng = rng or random.Random()
        self.session: Optional[Session] = None
        self.state: Optional[GameState] = None
        self.coordinator: Optional[SyncCoordinator] = None
        self.reconciler: Optional[PresenceReconciler] = None
        self.host: Optional[HostDriver] = None
        self.on_state: Optional[Callable[[GameState], None]] = None
        self.on_closed: Optional[Callable[[str], None]] = None
        self._channel: Optional[PresenceChannel] = None
        self._unsubscribe: Optional[Unsubscribe] = None
        self._tasks: Set[asyncio.Task] = set()
        self._online: Optional[Set[str]] = None

    @property
    def player_id(self) -> Optional[str]:
        return self.session.player_id if self.session else None

    # Room entry --------------------------------------------------------
    async def create_room(self, mode: Union[Mode, str], room_id: Optional[str] = None) -> Session:
        room_id = room_id or str(self.rng.randint(100_000, 999_999))
        player = new_player(self.name)
        state = new_room(room_id, Mode(mode), player)
        await self.store.create(room_id, to_document(state))
        LOGGER.info("Created %s room %s as %s", state.mode.value, room_id, player.id)
        return self._enter(Session(room_id, player.id, player.token or ""), state)

    async def join_room(self, room_id: str, session: Optional[Session] = None) -> Session:
        """Reclaim ``session``'s seat when its token still matches, else take the first empty one.

        Raises RoomNotFound or RoomFull. Unlike the in-room actions, losing the
        write race ``max_attempts`` times is not swallowed: Conflict reaches the
        caller, who holds no seat yet and may simply call again.
        """
        coordinator = SyncCoordinator(self.store, room_id, self.config.max_attempts)
        if session is not None and session.room_id == room_id:
            committed = await coordinator.perform(
                lambda state: reconnect(state, session.player_id) if _token_matches(state, session) else None
            )
            if committed is not None:
                LOGGER.info("Rejoined room %s as %s", room_id, session.player_id)
                return self._enter(session, committed)

        player = new_player(self.name)

        def seat(state: GameState) -> Optional[GameState]:
            if first_empty_seat(state) is None:
                raise RoomFull(room_id)
            return take_seat(state, player)

        committed = await coordinator.perform(seat)
        if committed is None:
            raise Conflict(f"Could not take a seat in {room_id}")
        LOGGER.info("Joined room %s as %s", room_id, player.id)
        return self._enter(Session(room_id, player.id, player.token or ""), committed)

    async def find_active_room(self, session: Optional[Session] = None, limit: int = 50) -> Optional[str]:
        """Room to join: one we already sit in first, else any open one."""
        states: List[GameState] = []
        for doc in await self.store.list_rooms(limit):
            try:
                states.append(from_document(doc))
            except (KeyError, ValueError):
                LOGGER.warning("Skipping unreadable room document %s", doc.get("roomId"))
        active = [state for state in states if state.phase != Phase.MATCH_END]
        if session is not None:
            for state in active:
                if _token_matches(state, session):
                    return state.room_id
        for state in active:
            if state.phase == Phase.LOBBY and first_empty_seat(state) is not None:
                return state.room_id
        return None

    def _enter(self, session: Session, state: GameState) -> Session:
        self.session = session
        self.coordinator = SyncCoordinator(self.store, session.room_id, self.config.max_attempts)
        self._apply(state)
        return session

    # Actions -----------------------------------------------------------
    async def switch_seat(self, target_index: int) -> Optional[GameState]:
        return await self._act(lambda state, pid: switch_seat(state, pid, target_index))

    async def set_hokm(self, suit: Union[Suit, str]) -> Optional[GameState]:
        chosen = Suit(suit)
        return await self._act(lambda state, pid: choose_hokm(state, pid, chosen))

    async def play_card(self, card: Union[Card, str]) -> Optional[GameState]:
        if isinstance(card, str):
            card = card_from_id(card)
        if self.state is not None and self.player_id is not None:
            if play_error(self.state, self.player_id, card) == MUST_FOLLOW_SUIT:
                raise IllegalPlay(MUST_FOLLOW_SUIT, "Must follow the lead suit")
        return await self._act(lambda state, pid: play_card(state, pid, card))

    async def leave_room(self) -> None:
        session, coordinator = self._require_session()
        try:
            committed = await coordinator.perform(
                lambda state: vacate_seat(state, session.player_id) if _token_matches(state, session) else None
            )
            if committed is not None and is_abandoned(committed):
                await coordinator.delete()
        except Conflict:
            # Last resort: push our own view of the departure.
            if self.state is not None:
                local = self.state.clone()
                vacate_seat(local, session.player_id)
                try:
                    if is_abandoned(local):
                        await coordinator.delete()
                    else:
                        await coordinator.broadcast(local)
                except RoomNotFound:
                    pass
        except RoomNotFound:
            pass
        finally:
            LOGGER.info("Left room %s", session.room_id)
            await self.close()

    async def _act(self, rule: Callable[[GameState, str], Optional[GameState]]) -> Optional[GameState]:
        session, coordinator = self._require_session()

        def modifier(state: GameState) -> Optional[GameState]:
            if not _token_matches(state, session):
                return None
            return rule(state, session.player_id)

        try:
            committed = await coordinator.perform(modifier)
        except Conflict as exc:
            LOGGER.warning("Action dropped in %s: %s", session.room_id, exc)
            return None
        except RoomNotFound:
            await self._room_closed()
            raise
        if committed is None:
            LOGGER.debug("Action aborted on stale state in %s", session.room_id)
            return None
        self._apply(committed)
        return committed

    def _require_session(self) -> tuple[Session, SyncCoordinator]:
        if self.session is None or self.coordinator is None:
            raise RuntimeError("Not in a room")
        return self.session, self.coordinator

    # Live sync ---------------------------------------------------------
    async def connect(self) -> None:
        session, coordinator = self._require_session()
        self._unsubscribe = self.store.subscribe(session.room_id, self._on_update, self._on_delete)
        self.reconciler = PresenceReconciler(coordinator, session.player_id, lobby_grace=self.config.lobby_grace)
        self.host = HostDriver(coordinator, session.player_id, self.config, rng=self.rng)
        if self.state is not None:
            self.host.notify(self.state)

        channel = self.store.presence(session.room_id)
        channel.on_sync(self._on_presence_sync)
        self._channel = channel
        await channel.track(
            session.player_id,
            {"name": self.name, "online_at": datetime.now(timezone.utc).isoformat()},
        )
        marked = await coordinator.perform(
            lambda state: set_connected(state, session.player_id, True) if _token_matches(state, session) else None
        )
        if marked is not None:
            self._apply(marked)

        self._spawn(self.host.run())
        self._spawn(self._poll_loop())

    async def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self.host is not None:
            await self.host.stop()
            self.host = None
        if self._channel is not None:
            await self._channel.close()
            self._channel = None
        current = asyncio.current_task()
        pending = [task for task in self._tasks if task is not current]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
        self._tasks.clear()
        self.reconciler = None
        self._online = None
        self.session = None
        self.coordinator = None
        self.state = None

    def _apply(self, state: GameState) -> None:
        if self.state is not None and state.room_id == self.state.room_id and state.version < self.state.version:
            return
        self.state = state
        if self.host is not None:
            self.host.notify(state)
        if self.on_state is not None:
            self.on_state(state)

    def _on_update(self, document: dict) -> None:
        self._apply(from_document(document))

    def _on_delete(self) -> None:
        self._spawn(self._room_closed())

    def _on_presence_sync(self, online: Set[str]) -> None:
        if self.reconciler is None:
            return
        self._online = set(online)
        self._spawn(self._reconcile(self.reconciler, online))

    async def _reconcile(self, reconciler: PresenceReconciler, online: Set[str]) -> None:
        try:
            committed = await reconciler.on_sync(online, self.state)
        except (Conflict, TransportError) as exc:
            LOGGER.warning("Presence correction skipped: %s", exc)
            return
        except RoomNotFound:
            return
        if committed is not None:
            self._apply(committed)

    async def _poll_loop(self) -> None:
        # Push notifications can be lost; a periodic read catches up.
        while self.session is not None:
            await asyncio.sleep(self.config.poll_interval)
            if self.session is None:
                return
            room_id = self.session.room_id
            try:
                document = await self.store.get(room_id)
            except RoomNotFound:
                await self._room_closed()
                return
            except TransportError as exc:
                LOGGER.warning("Poll failed for %s: %s", room_id, exc)
                continue
            if self.session is None or self.session.room_id != room_id:
                return
            self._apply(from_document(document))
            # Lobby seats of no-shows expire with time, not with a presence event.
            if self.reconciler is not None and self._online is not None and self.state is not None:
                if self.state.phase == Phase.LOBBY:
                    await self._reconcile(self.reconciler, self._online)

    async def _room_closed(self) -> None:
        if self.session is None:
            return
        room_id = self.session.room_id
        self.session = None
        LOGGER.info("Room %s closed", room_id)
        await self.close()
        if self.on_closed is not None:
            self.on_closed(room_id)

    def _spawn(self, job: Awaitable[None]) -> None:
        task = asyncio.ensure_future(job)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def _token_matches(state: GameState, session: Session) -> bool:
    player = state.find_player(session.player_id)
    return player is not None and player.token == session.token
