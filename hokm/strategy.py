from __future__ import annotations

import random
from collections import Counter
from typing import Optional, Sequence

from .cards import SUITS, Card, Suit
from .models import PlayedCard
from .tricks import determine_trick_winner, legal_cards

_RNG = random.Random()


def choose_hokm(hand: Sequence[Card]) -> Suit:
    """Pick the suit with the most cards, breaking ties on rank strength."""
    if not hand:
        return _RNG.choice(SUITS)
    counts = Counter(card.suit for card in hand)
    strength = Counter()
    for card in hand:
        strength[card.suit] += card.rank
    return max(counts, key=lambda suit: (counts[suit], strength[suit]))


def choose_card(
    hand: Sequence[Card],
    table_cards: Sequence[PlayedCard],
    hokm: Optional[Suit],
    player_id: str = "me",
) -> Card:
    """Baseline play: win cheaply when possible, otherwise shed the lowest card."""
    options = legal_cards(hand, table_cards)
    if not options:
        raise ValueError("No cards to play")
    by_rank = sorted(options, key=lambda card: (card.suit == hokm, card.rank))
    if not table_cards:
        # Lead the strongest non-trump card.
        return max(options, key=lambda card: (card.suit != hokm, card.rank))
    if hokm is None:
        return by_rank[0]

    lead = table_cards[0].card.suit
    for card in by_rank:
        trial = list(table_cards) + [PlayedCard(player_id=player_id, card=card)]
        if determine_trick_winner(trial, hokm, lead) == player_id:
            return card
    return by_rank[0]
