from __future__ import annotations

from typing import Optional

from .models import GameState, Phase, other_team
from .tricks import determine_trick_winner

TRICKS_TO_WIN_HAND = 7
POINTS_TO_WIN_MATCH = 7


def calculate_round_points(losing_tricks: int, is_winner_hakim_team: bool) -> int:
    if losing_tricks == 0:
        # Kot; 3 when the hakim's team is the one shut out.
        return 2 if is_winner_hakim_team else 3
    return 1


def hand_winner(state: GameState) -> Optional[int]:
    for team, tricks in state.current_round_tricks.items():
        if tricks >= TRICKS_TO_WIN_HAND:
            return team
    return None


def award_trick(state: GameState) -> str:
    """Credit the full trick on the table to its winner's team."""
    if len(state.table_cards) != state.player_count:
        raise RuntimeError(
            f"Trick has {len(state.table_cards)} cards, expected {state.player_count}"
        )
    if state.hokm is None:
        raise RuntimeError("Trick played without hokm")
    lead = state.lead_suit
    assert lead is not None
    winner_id = determine_trick_winner(state.table_cards, state.hokm, lead)
    team = state.team_of(winner_id)
    state.current_round_tricks[team] = state.current_round_tricks.get(team, 0) + 1
    if sum(state.current_round_tricks.values()) > 13:
        raise RuntimeError("More than 13 tricks credited in one hand")
    state.last_winner_id = winner_id
    state.current_turn_player_id = winner_id
    return winner_id


def finish_hand(state: GameState, winning_team: int) -> None:
    hakim_idx = state.hakim_index
    if hakim_idx is None:
        raise RuntimeError("Hand finished without a hakim")
    hakim_team = state.player_at(hakim_idx).team_id
    hakim_won = hakim_team == winning_team
    losing_tricks = state.current_round_tricks.get(other_team(winning_team), 0)
    points = calculate_round_points(losing_tricks, hakim_won)
    state.scores[winning_team] = state.scores.get(winning_team, 0) + points

    if state.scores[winning_team] >= POINTS_TO_WIN_MATCH:
        state.phase = Phase.MATCH_END
        state.add_log(f"Team {winning_team} wins the match {state.scores[1]} - {state.scores[2]}")
        return

    if not hakim_won:
        new_hakim = state.player_at(hakim_idx + 1)
        state.hakim_id = new_hakim.id
    state.phase = Phase.DEALING_INITIAL
    state.deck = []
    state.table_cards = []
    state.current_round_tricks = {1: 0, 2: 0}
    state.hokm = None
    state.hakim_determination_cards = []
    state.current_turn_player_id = state.hakim_id
    for seat in state.occupied_seats():
        seat.hand = []
    state.add_log(
        f"Team {winning_team} takes the hand (+{points}); score {state.scores[1]} - {state.scores[2]}"
    )


def resolve_trick(state: GameState) -> Optional[GameState]:
    if state.phase != Phase.PLAYING or not state.is_trick_full():
        return None
    winner_id = award_trick(state)
    winner = state.find_player(winner_id)
    state.add_log(f"{winner.name if winner else winner_id} takes the trick")
    team = hand_winner(state)
    if team is None:
        state.table_cards = []
    else:
        finish_hand(state, team)
    return state
