from __future__ import annotations

import time
from typing import Optional

from .models import GameState, Mode, Phase, Player, team_for_seat

# Lobby and seat rules. Like every rules module these functions mutate the
# state they are given and return it, or return None when a precondition no
# longer holds (the surrounding transaction then writes nothing).


def new_room(room_id: str, mode: Mode, creator: Player) -> GameState:
    players: list[Optional[Player]] = [None] * mode.seats
    creator.team_id = team_for_seat(0)
    creator.hand = []
    creator.is_connected = True
    players[0] = creator
    state = GameState(room_id=room_id, mode=mode, players=players)
    state.last_action_timestamp = int(time.time() * 1000)
    state.add_log(f"Room {room_id} created by {creator.name}")
    return state


def first_empty_seat(state: GameState) -> Optional[int]:
    for idx, seat in enumerate(state.players):
        if seat is None:
            return idx
    return None


def take_seat(state: GameState, player: Player) -> Optional[GameState]:
    if state.seat_index(player.id) is not None:
        return None
    seat_idx = first_empty_seat(state)
    if seat_idx is None:
        return None
    player.team_id = team_for_seat(seat_idx)
    player.hand = []
    player.is_connected = True
    state.players[seat_idx] = player
    state.add_log(f"{player.name} joined seat {seat_idx + 1}")
    state.last_action_timestamp = int(time.time() * 1000)
    return state


def reconnect(state: GameState, player_id: str) -> Optional[GameState]:
    player = state.find_player(player_id)
    if player is None:
        return None
    player.is_connected = True
    # A reveal left half-done by a departed host is restarted by the next one.
    if state.phase == Phase.HAKIM_DETERMINATION and state.hakim_id is None:
        state.hakim_determination_cards = []
    state.add_log(f"{player.name} reconnected")
    return state


def switch_seat(state: GameState, player_id: str, target_idx: int) -> Optional[GameState]:
    if state.phase != Phase.LOBBY:
        return None
    if target_idx < 0 or target_idx >= state.player_count:
        raise ValueError(f"Seat {target_idx} does not exist")
    current_idx = state.seat_index(player_id)
    if current_idx is None or current_idx == target_idx:
        return None
    if state.players[target_idx] is not None:
        return None
    player = state.players[current_idx]
    assert player is not None
    player.team_id = team_for_seat(target_idx)
    state.players[target_idx] = player
    state.players[current_idx] = None
    return state


def vacate_seat(state: GameState, player_id: str) -> Optional[GameState]:
    """Empty the seat in the lobby; mid-match only flag it disconnected."""
    seat_idx = state.seat_index(player_id)
    if seat_idx is None:
        return None
    player = state.players[seat_idx]
    assert player is not None
    if state.phase == Phase.LOBBY:
        state.players[seat_idx] = None
        state.add_log(f"{player.name} left")
    else:
        if not player.is_connected:
            return None
        player.is_connected = False
        state.add_log(f"{player.name} disconnected")
    return state


def set_connected(state: GameState, player_id: str, connected: bool) -> Optional[GameState]:
    player = state.find_player(player_id)
    if player is None or player.is_connected == connected:
        return None
    player.is_connected = connected
    return state


def is_abandoned(state: GameState) -> bool:
    if state.phase == Phase.LOBBY:
        return not state.occupied_seats()
    return not state.connected_players()


def start_match(state: GameState) -> Optional[GameState]:
    if state.phase != Phase.LOBBY or not state.is_full():
        return None
    state.phase = Phase.HAKIM_DETERMINATION
    state.hakim_determination_cards = []
    state.add_log("Match started")
    return state
