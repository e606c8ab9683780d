from __future__ import annotations

from typing import Optional

from .cards import ACE, Card
from .models import GameState, Phase

# Hakim determination: cards are revealed one at a time and dealt round-robin
# to the seats; whoever receives the first Ace becomes hakim.


def reveal_seat(position: int, player_count: int) -> int:
    """Seat owning the card at 1-indexed reveal ``position``."""
    if position < 1:
        raise ValueError("Reveal positions start at 1")
    return (position - 1) % player_count


def ace_revealed(state: GameState) -> bool:
    return any(card.rank == ACE for card in state.hakim_determination_cards)


def is_determining(state: GameState) -> bool:
    return state.phase == Phase.HAKIM_DETERMINATION and state.hakim_id is None


def reveal_card(state: GameState, card: Card, position: int) -> Optional[GameState]:
    if not is_determining(state) or ace_revealed(state):
        return None
    # Another actor is revealing its own deck; let it finish.
    if len(state.hakim_determination_cards) != position - 1:
        return None
    state.hakim_determination_cards.append(card)
    return state


def crown_hakim(state: GameState) -> Optional[GameState]:
    if not is_determining(state) or not state.hakim_determination_cards:
        return None
    cards = state.hakim_determination_cards
    if cards[-1].rank != ACE:
        return None
    winner = state.player_at(reveal_seat(len(cards), state.player_count))
    state.hakim_id = winner.id
    state.current_turn_player_id = winner.id
    state.phase = Phase.DEALING_INITIAL
    state.add_log(f"{winner.name} is hakim ({cards[-1].label})")
    return state


def restart_determination(state: GameState) -> Optional[GameState]:
    if not is_determining(state) or ace_revealed(state) or not state.hakim_determination_cards:
        return None
    state.hakim_determination_cards = []
    return state
