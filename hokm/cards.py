from __future__ import annotations

import random
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional


class Suit(str, Enum):
    SPADES = "S"
    HEARTS = "H"
    CLUBS = "C"
    DIAMONDS = "D"


# Black, red, black, red: also the display order of a sorted hand.
SUITS = (Suit.SPADES, Suit.HEARTS, Suit.CLUBS, Suit.DIAMONDS)
RANKS = tuple(range(2, 15))
JACK, QUEEN, KING, ACE = 11, 12, 13, 14

SUIT_SYMBOLS = {Suit.SPADES: "♠", Suit.HEARTS: "♥", Suit.CLUBS: "♣", Suit.DIAMONDS: "♦"}
RANK_LABELS = {JACK: "J", QUEEN: "Q", KING: "K", ACE: "A"}
_SUIT_ORDER = {suit: idx for idx, suit in enumerate(SUITS)}


@dataclass(frozen=True)
class Card:
    suit: Suit
    rank: int

    def __post_init__(self) -> None:
        if not isinstance(self.suit, Suit):
            object.__setattr__(self, "suit", Suit(self.suit))
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")

    @property
    def id(self) -> str:
        return f"{self.suit.value}-{self.rank}"

    @property
    def label(self) -> str:
        return f"{RANK_LABELS.get(self.rank, str(self.rank))}{SUIT_SYMBOLS[self.suit]}"

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "suit": self.suit.value, "rank": self.rank}


def card_from_id(card_id: str) -> Card:
    suit, sep, rank = card_id.partition("-")
    if not sep or not rank.isdigit():
        raise ValueError(f"Invalid card id: {card_id}")
    return Card(Suit(suit), int(rank))


def card_from_dict(data: Dict[str, object]) -> Card:
    card = Card(Suit(data["suit"]), int(data["rank"]))  # type: ignore[arg-type]
    card_id = data.get("id")
    if card_id is not None and card_id != card.id:
        raise ValueError(f"Card id {card_id} does not match {card.id}")
    return card


def shuffle_deck(cards: Iterable[Card], rng: Optional[random.Random] = None) -> List[Card]:
    """Return a uniformly permuted copy of ``cards`` (Fisher-Yates)."""
    deck = list(cards)
    randrange = rng.randrange if rng is not None else random.randrange
    for i in range(len(deck) - 1, 0, -1):
        j = randrange(i + 1)
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def create_deck(rng: Optional[random.Random] = None) -> List[Card]:
    return shuffle_deck((Card(suit, rank) for suit in SUITS for rank in RANKS), rng)


def sort_hand(cards: Iterable[Card]) -> List[Card]:
    return sorted(cards, key=lambda card: (_SUIT_ORDER[card.suit], -card.rank))


def cards_to_labels(cards: Iterable[Card]) -> List[str]:
    return [card.label for card in cards]
