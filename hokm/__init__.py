"""Hokm rules: deck, hakim determination, dealing, tricks and scoring."""

from .cards import ACE, RANKS, SUITS, Card, Suit, card_from_id, create_deck, shuffle_deck, sort_hand
from .models import GameState, HostLease, Mode, Phase, PlayedCard, Player
from .scoring import calculate_round_points, resolve_trick
from .serialization import from_document, to_document
from .tricks import IllegalPlay, determine_trick_winner, legal_cards, play_card

__all__ = [
    "ACE",
    "RANKS",
    "SUITS",
    "Card",
    "Suit",
    "card_from_id",
    "create_deck",
    "shuffle_deck",
    "sort_hand",
    "GameState",
    "HostLease",
    "Mode",
    "Phase",
    "PlayedCard",
    "Player",
    "calculate_round_points",
    "resolve_trick",
    "from_document",
    "to_document",
    "IllegalPlay",
    "determine_trick_winner",
    "legal_cards",
    "play_card",
]
