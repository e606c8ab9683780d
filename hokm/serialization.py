"""
Conversion between ``GameState`` and the shared JSON document.

The document keeps the camelCase field names every client agrees on; score
maps are keyed by the team number as a string because JSON object keys are
always strings.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .cards import Card, Suit, card_from_dict
from .models import GameState, HostLease, Mode, Phase, PlayedCard, Player


def _cards_to_list(cards: List[Card]) -> List[Dict[str, object]]:
    return [card.to_dict() for card in cards]


def _cards_from_list(items: Optional[List[Dict[str, object]]]) -> List[Card]:
    return [card_from_dict(item) for item in items or []]


def _team_map_to_doc(values: Dict[int, int]) -> Dict[str, int]:
    return {str(team): int(values.get(team, 0)) for team in (1, 2)}


def _team_map_from_doc(values: Optional[Dict[str, Any]]) -> Dict[int, int]:
    values = values or {}
    return {team: int(values.get(str(team), values.get(team, 0)) or 0) for team in (1, 2)}


def player_to_doc(player: Player) -> Dict[str, Any]:
    return {
        "id": player.id,
        "name": player.name,
        "hand": _cards_to_list(player.hand),
        "teamId": player.team_id,
        "isConnected": player.is_connected,
        "token": player.token,
    }


def player_from_doc(data: Dict[str, Any]) -> Player:
    return Player(
        id=data["id"],
        name=data.get("name", ""),
        team_id=int(data.get("teamId", 1)),
        hand=_cards_from_list(data.get("hand")),
        is_connected=bool(data.get("isConnected", False)),
        token=data.get("token"),
    )


def to_document(state: GameState) -> Dict[str, Any]:
    return {
        "roomId": state.room_id,
        "mode": state.mode.value,
        "phase": state.phase.value,
        "players": [player_to_doc(seat) if seat is not None else None for seat in state.players],
        "deck": _cards_to_list(state.deck),
        "hakimId": state.hakim_id,
        "hokm": state.hokm.value if state.hokm else None,
        "currentTurnPlayerId": state.current_turn_player_id,
        "tableCards": [
            {"playerId": played.player_id, "card": played.card.to_dict()} for played in state.table_cards
        ],
        "scores": _team_map_to_doc(state.scores),
        "currentRoundTricks": _team_map_to_doc(state.current_round_tricks),
        "hakimDeterminationCards": _cards_to_list(state.hakim_determination_cards),
        "lastWinnerId": state.last_winner_id,
        "logs": list(state.logs),
        "lastActionTimestamp": state.last_action_timestamp,
        "version": state.version,
        "hostLease": (
            {"holderId": state.host_lease.holder_id, "expiresAt": state.host_lease.expires_at}
            if state.host_lease
            else None
        ),
    }


def from_document(doc: Dict[str, Any]) -> GameState:
    mode = Mode(doc["mode"])
    players = [player_from_doc(item) if item else None for item in doc.get("players") or []]
    if len(players) != mode.seats:
        raise ValueError(f"Room {doc.get('roomId')} has {len(players)} seats for mode {mode.value}")
    lease = doc.get("hostLease")
    hokm = doc.get("hokm")
    return GameState(
        room_id=doc["roomId"],
        mode=mode,
        players=players,
        phase=Phase(doc.get("phase", Phase.LOBBY.value)),
        deck=_cards_from_list(doc.get("deck")),
        hakim_id=doc.get("hakimId"),
        hokm=Suit(hokm) if hokm else None,
        current_turn_player_id=doc.get("currentTurnPlayerId"),
        table_cards=[
            PlayedCard(player_id=item["playerId"], card=card_from_dict(item["card"]))
            for item in doc.get("tableCards") or []
        ],
        scores=_team_map_from_doc(doc.get("scores")),
        current_round_tricks=_team_map_from_doc(doc.get("currentRoundTricks")),
        hakim_determination_cards=_cards_from_list(doc.get("hakimDeterminationCards")),
        last_winner_id=doc.get("lastWinnerId"),
        logs=list(doc.get("logs") or []),
        last_action_timestamp=int(doc.get("lastActionTimestamp") or 0),
        version=int(doc.get("version") or 0),
        host_lease=HostLease(holder_id=lease["holderId"], expires_at=int(lease["expiresAt"])) if lease else None,
    )
