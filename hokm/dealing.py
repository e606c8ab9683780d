from __future__ import annotations

from typing import List, Optional

from .cards import Card, Suit
from .models import GameState, Mode, Phase

INITIAL_HAKIM_CARDS = 5
HAND_SIZE = 13
DECK_SIZE = 52


def deal(deck: List[Card], count: int) -> List[Card]:
    if len(deck) < count:
        raise RuntimeError("Not enough cards left in deck")
    cards = deck[:count]
    del deck[:count]
    return cards


def deal_initial(state: GameState, deck: List[Card]) -> Optional[GameState]:
    """Give the hakim five cards from ``deck``; the rest becomes the room deck."""
    if state.phase != Phase.DEALING_INITIAL or state.deck:
        return None
    hakim_idx = state.hakim_index
    if hakim_idx is None:
        return None
    if len(deck) != DECK_SIZE:
        raise RuntimeError(f"Initial deal needs a full deck, got {len(deck)} cards")

    remaining = list(deck)
    for seat in state.occupied_seats():
        seat.hand = []
    hakim = state.player_at(hakim_idx)
    hakim.hand = deal(remaining, INITIAL_HAKIM_CARDS)
    state.deck = remaining
    state.phase = Phase.HAKIM_CHOOSING_SUIT
    state.add_log(f"{hakim.name} received five cards and chooses hokm")
    return state


def choose_hokm(state: GameState, player_id: str, suit: Suit) -> Optional[GameState]:
    if state.phase != Phase.HAKIM_CHOOSING_SUIT:
        return None
    if state.hakim_id != player_id:
        raise ValueError("Only the hakim chooses hokm")
    state.hokm = Suit(suit)
    state.phase = Phase.DEALING_REMAINDER
    hakim = state.find_player(player_id)
    state.add_log(f"{hakim.name if hakim else player_id} chose hokm {state.hokm.name.title()}")
    return state


def deal_remainder(state: GameState) -> Optional[GameState]:
    if state.phase != Phase.DEALING_REMAINDER:
        return None
    if all(len(seat.hand) > INITIAL_HAKIM_CARDS for seat in state.occupied_seats()):
        return None
    hakim_idx = state.hakim_index
    if hakim_idx is None:
        raise RuntimeError("Remainder deal without a hakim")
    hakim = state.player_at(hakim_idx)
    if len(hakim.hand) != INITIAL_HAKIM_CARDS:
        raise RuntimeError(f"Hakim holds {len(hakim.hand)} cards before the remainder deal")
    expected = DECK_SIZE - INITIAL_HAKIM_CARDS
    if len(state.deck) != expected:
        raise RuntimeError(f"Remainder deal needs {expected} cards, deck has {len(state.deck)}")

    deck = state.deck
    if state.mode == Mode.TWO_PLAYER:
        hakim.hand.extend(deal(deck, HAND_SIZE - INITIAL_HAKIM_CARDS))
        state.player_at(hakim_idx + 1).hand = deal(deck, HAND_SIZE)
    else:
        for offset in range(1, state.player_count):
            state.player_at(hakim_idx + offset).hand = deal(deck, HAND_SIZE)
        hakim.hand.extend(deal(deck, HAND_SIZE - INITIAL_HAKIM_CARDS))

    state.deck = []
    state.phase = Phase.PLAYING
    state.current_turn_player_id = hakim.id
    state.add_log("Cards dealt; hakim leads")
    return state
