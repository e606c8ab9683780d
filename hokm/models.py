from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .cards import Card, Suit

LOG_LIMIT = 100
TEAMS = (1, 2)


class Phase(str, Enum):
    LOBBY = "LOBBY"
    HAKIM_DETERMINATION = "HAKIM_DETERMINATION"
    DEALING_INITIAL = "DEALING_INITIAL"
    HAKIM_CHOOSING_SUIT = "HAKIM_CHOOSING_SUIT"
    DEALING_REMAINDER = "DEALING_REMAINDER"
    PLAYING = "PLAYING"
    MATCH_END = "MATCH_END"


class Mode(str, Enum):
    TWO_PLAYER = "2p"
    FOUR_PLAYER = "4p"

    @property
    def seats(self) -> int:
        return 4 if self is Mode.FOUR_PLAYER else 2


def team_for_seat(seat_idx: int) -> int:
    return 1 if seat_idx % 2 == 0 else 2


def other_team(team_id: int) -> int:
    return 2 if team_id == 1 else 1


@dataclass
class Player:
    id: str
    name: str
    team_id: int
    hand: List[Card] = field(default_factory=list)
    is_connected: bool = True
    token: Optional[str] = None

    def holds(self, card: Card) -> bool:
        return card in self.hand

    def has_suit(self, suit: Suit) -> bool:
        return any(card.suit == suit for card in self.hand)


@dataclass
class PlayedCard:
    player_id: str
    card: Card


@dataclass
class HostLease:
    holder_id: str
    expires_at: int  # epoch milliseconds


@dataclass
class GameState:
    room_id: str
    mode: Mode
    players: List[Optional[Player]]
    phase: Phase = Phase.LOBBY
    deck: List[Card] = field(default_factory=list)
    hakim_id: Optional[str] = None
    hokm: Optional[Suit] = None
    current_turn_player_id: Optional[str] = None
    table_cards: List[PlayedCard] = field(default_factory=list)
    scores: Dict[int, int] = field(default_factory=lambda: {1: 0, 2: 0})
    current_round_tricks: Dict[int, int] = field(default_factory=lambda: {1: 0, 2: 0})
    hakim_determination_cards: List[Card] = field(default_factory=list)
    last_winner_id: Optional[str] = None
    logs: List[str] = field(default_factory=list)
    last_action_timestamp: int = 0
    version: int = 0
    host_lease: Optional[HostLease] = None

    @property
    def player_count(self) -> int:
        return len(self.players)

    # Seat lookups ------------------------------------------------------
    def seat_index(self, player_id: Optional[str]) -> Optional[int]:
        if player_id is None:
            return None
        for idx, seat in enumerate(self.players):
            if seat is not None and seat.id == player_id:
                return idx
        return None

    def find_player(self, player_id: Optional[str]) -> Optional[Player]:
        idx = self.seat_index(player_id)
        return self.players[idx] if idx is not None else None

    def occupied_seats(self) -> List[Player]:
        return [seat for seat in self.players if seat is not None]

    def connected_players(self) -> List[Player]:
        return [seat for seat in self.players if seat is not None and seat.is_connected]

    def is_full(self) -> bool:
        return all(seat is not None for seat in self.players)

    def player_at(self, seat_idx: int) -> Player:
        seat = self.players[seat_idx % self.player_count]
        if seat is None:
            raise RuntimeError(f"Seat {seat_idx} is empty")
        return seat

    def host_candidate_id(self) -> Optional[str]:
        # First connected seat in seat order.
        connected = self.connected_players()
        return connected[0].id if connected else None

    # Derived game facts -------------------------------------------------
    @property
    def hakim_index(self) -> Optional[int]:
        return self.seat_index(self.hakim_id)

    @property
    def lead_suit(self) -> Optional[Suit]:
        return self.table_cards[0].card.suit if self.table_cards else None

    def team_of(self, player_id: str) -> int:
        player = self.find_player(player_id)
        if player is None:
            raise RuntimeError(f"Player {player_id} is not seated")
        return player.team_id

    def is_trick_full(self) -> bool:
        return len(self.table_cards) >= self.player_count

    def add_log(self, line: str) -> None:
        self.logs.append(line)
        if len(self.logs) > LOG_LIMIT:
            del self.logs[: len(self.logs) - LOG_LIMIT]

    def clone(self) -> "GameState":
        return copy.deepcopy(self)
