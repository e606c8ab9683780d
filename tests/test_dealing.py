import random

import pytest

from hokm.cards import Suit, card_from_id, create_deck
from hokm.dealing import DECK_SIZE, HAND_SIZE, INITIAL_HAKIM_CARDS, choose_hokm, deal, deal_initial, deal_remainder
from hokm.models import Phase

from .helpers import lobby_state


def ready_to_deal(mode="4p", hakim_seat=1):
    state = lobby_state(mode)
    state.phase = Phase.DEALING_INITIAL
    state.hakim_id = state.player_at(hakim_seat).id
    state.current_turn_player_id = state.hakim_id
    return state


def dealt(mode="4p", hakim_seat=1, seed=7):
    state = ready_to_deal(mode, hakim_seat)
    deal_initial(state, create_deck(random.Random(seed)))
    choose_hokm(state, state.hakim_id, Suit.SPADES)
    return state


def test_deal_takes_from_the_top():
    deck = [card_from_id(card_id) for card_id in ["S-2", "S-3", "S-4"]]
    assert deal(deck, 2) == [card_from_id("S-2"), card_from_id("S-3")]
    assert deck == [card_from_id("S-4")]
    with pytest.raises(RuntimeError, match="Not enough cards"):
        deal(deck, 2)


def test_initial_deal_gives_hakim_five_cards():
    state = ready_to_deal()
    deck = create_deck(random.Random(3))
    assert deal_initial(state, deck) is state
    hakim = state.player_at(1)
    assert hakim.hand == deck[:INITIAL_HAKIM_CARDS]
    assert len(state.deck) == DECK_SIZE - INITIAL_HAKIM_CARDS
    assert all(not seat.hand for idx, seat in enumerate(state.players) if idx != 1)
    assert state.phase == Phase.HAKIM_CHOOSING_SUIT


def test_initial_deal_runs_once():
    state = ready_to_deal()
    deal_initial(state, create_deck(random.Random(3)))
    first_hand = list(state.player_at(1).hand)
    assert deal_initial(state, create_deck(random.Random(4))) is None
    assert state.player_at(1).hand == first_hand


def test_initial_deal_needs_a_full_deck():
    state = ready_to_deal()
    with pytest.raises(RuntimeError, match="full deck"):
        deal_initial(state, create_deck()[:40])


def test_only_hakim_chooses_hokm():
    state = ready_to_deal()
    deal_initial(state, create_deck(random.Random(3)))
    with pytest.raises(ValueError):
        choose_hokm(state, "P1", Suit.HEARTS)
    assert choose_hokm(state, "P2", Suit.HEARTS) is state
    assert state.hokm == Suit.HEARTS
    assert state.phase == Phase.DEALING_REMAINDER
    assert choose_hokm(state, "P2", Suit.CLUBS) is None
    assert state.hokm == Suit.HEARTS


@pytest.mark.parametrize("mode", ["2p", "4p"])
def test_remainder_completes_every_hand(mode):
    state = dealt(mode)
    first_five = list(state.player_at(1).hand)
    assert deal_remainder(state) is state
    assert all(len(seat.hand) == HAND_SIZE for seat in state.players)
    assert state.deck == []
    assert state.phase == Phase.PLAYING
    assert state.current_turn_player_id == state.hakim_id
    assert state.player_at(1).hand[:INITIAL_HAKIM_CARDS] == first_five
    every_card = [card for seat in state.players for card in seat.hand]
    assert len(set(every_card)) == len(every_card)


def test_remainder_deals_partners_before_hakim():
    state = dealt("4p", hakim_seat=1, seed=9)
    deck = list(state.deck)
    deal_remainder(state)
    assert state.player_at(2).hand == deck[0:13]
    assert state.player_at(3).hand == deck[13:26]
    assert state.player_at(0).hand == deck[26:39]
    assert state.player_at(1).hand[5:] == deck[39:47]


def test_remainder_runs_once():
    state = dealt()
    deal_remainder(state)
    assert deal_remainder(state) is None


def test_remainder_rejects_a_broken_hakim_hand():
    state = dealt()
    state.player_at(1).hand.pop()
    with pytest.raises(RuntimeError, match="Hakim holds 4"):
        deal_remainder(state)
