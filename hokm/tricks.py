from __future__ import annotations

import time
from typing import List, Optional, Sequence

from .cards import Card, Suit
from .models import GameState, Phase, PlayedCard

# Reasons a play is refused. The first four are stale-turn conditions that a
# transaction treats as an abort; MUST_FOLLOW_SUIT is a rule the player broke.
WRONG_PHASE = "WRONG_PHASE"
NOT_YOUR_TURN = "NOT_YOUR_TURN"
TABLE_FULL = "TABLE_FULL"
CARD_NOT_HELD = "CARD_NOT_HELD"
MUST_FOLLOW_SUIT = "MUST_FOLLOW_SUIT"


class IllegalPlay(ValueError):
    def __init__(self, code: str, msg: str) -> None:
        super().__init__(msg)
        self.code = code
        self.msg = msg


def legal_cards(hand: Sequence[Card], table_cards: Sequence[PlayedCard]) -> List[Card]:
    if not table_cards:
        return list(hand)
    lead = table_cards[0].card.suit
    following = [card for card in hand if card.suit == lead]
    return following or list(hand)


def play_error(state: GameState, player_id: str, card: Card) -> Optional[str]:
    if state.phase != Phase.PLAYING:
        return WRONG_PHASE
    if state.current_turn_player_id != player_id:
        return NOT_YOUR_TURN
    if state.is_trick_full():
        return TABLE_FULL
    player = state.find_player(player_id)
    if player is None or not player.holds(card):
        return CARD_NOT_HELD
    lead = state.lead_suit
    if lead is not None and card.suit != lead and player.has_suit(lead):
        return MUST_FOLLOW_SUIT
    return None


def play_card(state: GameState, player_id: str, card: Card) -> Optional[GameState]:
    error = play_error(state, player_id, card)
    if error == MUST_FOLLOW_SUIT:
        raise IllegalPlay(error, f"Must follow {state.lead_suit.name.title()}")  # type: ignore[union-attr]
    if error is not None:
        return None

    seat_idx = state.seat_index(player_id)
    assert seat_idx is not None
    player = state.player_at(seat_idx)
    player.hand = [held for held in player.hand if held != card]
    state.table_cards.append(PlayedCard(player_id=player_id, card=card))
    next_seat = state.players[(seat_idx + 1) % state.player_count]
    state.current_turn_player_id = next_seat.id if next_seat else None
    state.last_action_timestamp = int(time.time() * 1000)
    return state


def determine_trick_winner(cards: Sequence[PlayedCard], hokm: Suit, lead_suit: Suit) -> str:
    if not cards:
        raise RuntimeError("Cannot resolve an empty trick")
    winner = cards[0]
    for played in cards[1:]:
        card, best = played.card, winner.card
        if card.suit == hokm and best.suit != hokm:
            winner = played
        elif card.suit == hokm and best.suit == hokm:
            if card.rank > best.rank:
                winner = played
        elif card.suit != hokm and best.suit != hokm:
            if card.suit == lead_suit and best.suit == lead_suit and card.rank > best.rank:
                winner = played
    return winner.player_id
