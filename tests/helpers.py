from __future__ import annotations

import asyncio
import json
from typing import Callable, Dict, List, Optional, Sequence

from hokm.cards import Card, Suit, card_from_id
from hokm.models import GameState, Mode, Phase, PlayedCard, Player, team_for_seat
from hokm.serialization import to_document
from sync.config import TimingConfig
from sync.store import MemoryStore


def make_player(idx: int, *, connected: bool = True) -> Player:
    return Player(
        id=f"P{idx + 1}",
        name=f"Player{idx + 1}",
        team_id=team_for_seat(idx),
        is_connected=connected,
        token=f"token-{idx + 1}",
    )


def cards(*ids: str) -> List[Card]:
    return [card_from_id(card_id) for card_id in ids]


def lobby_state(mode: str = "4p", seated: Optional[int] = None, room_id: str = "100200") -> GameState:
    """Room in the lobby with the first ``seated`` seats taken (all by default)."""
    room_mode = Mode(mode)
    count = room_mode.seats if seated is None else seated
    players: List[Optional[Player]] = [None] * room_mode.seats
    for idx in range(count):
        players[idx] = make_player(idx)
    return GameState(room_id=room_id, mode=room_mode, players=players)


def playing_state(
    mode: str = "4p",
    *,
    hakim_seat: int = 0,
    hokm: Suit = Suit.HEARTS,
    hands: Optional[Dict[int, Sequence[str]]] = None,
    turn_seat: Optional[int] = None,
    table: Sequence[tuple[int, str]] = (),
) -> GameState:
    """Mid-hand state with hand-picked cards, for trick and scoring tests."""
    state = lobby_state(mode)
    state.phase = Phase.PLAYING
    hakim = state.player_at(hakim_seat)
    state.hakim_id = hakim.id
    state.hokm = hokm
    for seat_idx, ids in (hands or {}).items():
        state.player_at(seat_idx).hand = cards(*ids)
    state.table_cards = [
        PlayedCard(player_id=state.player_at(seat_idx).id, card=card_from_id(card_id)) for seat_idx, card_id in table
    ]
    seat = hakim_seat if turn_seat is None else turn_seat
    state.current_turn_player_id = state.player_at(seat).id
    return state


def fast_timing(**overrides: float) -> TimingConfig:
    config = TimingConfig(
        reveal_interval=0,
        hakim_display_delay=0,
        start_delay=0,
        initial_deal_delay=0,
        remainder_deal_delay=0,
        trick_resolution_delay=0,
        poll_interval=0.05,
        lease_ttl=5.0,
        host_tick=0.01,
    )
    for key, value in overrides.items():
        setattr(config, key, value)
    return config


def seed_room(store: MemoryStore, state: GameState) -> None:
    """Place a document directly, bypassing the async API."""
    store._docs[state.room_id] = json.dumps(to_document(state), sort_keys=True)


class RacingStore(MemoryStore):
    """Lets another writer sneak in before each of the next ``races`` CAS writes."""

    def __init__(self, races: int) -> None:
        super().__init__()
        self.races = races

    async def put(self, room_id, document, expected_version=None):
        if self.races > 0 and expected_version is not None:
            self.races -= 1
            current = json.loads(self._docs[room_id])
            current["version"] += 1
            current["logs"].append("interloper")
            self._write(room_id, current)
        await super().put(room_id, document, expected_version=expected_version)


async def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.005) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not reached before timeout")
        await asyncio.sleep(interval)


# Fake sockets so we can exercise async paths without opening real connections.
class DummyWebSocket:
    def __init__(self, incoming: Sequence[str] = ()) -> None:
        self.incoming = list(incoming)
        self.sent: list[str] = []
        self.closed = False

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self, *args, **kwargs) -> None:
        self.closed = True

    def messages(self, msg_type: Optional[str] = None) -> List[dict]:
        decoded = [json.loads(raw) for raw in self.sent]
        if msg_type is None:
            return decoded
        return [message for message in decoded if message.get("type") == msg_type]

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for raw in self.incoming:
            yield raw
