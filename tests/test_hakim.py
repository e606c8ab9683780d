import pytest

from hokm.cards import card_from_id
from hokm.hakim import ace_revealed, crown_hakim, restart_determination, reveal_card, reveal_seat
from hokm.models import Phase
from hokm.seating import start_match

from .helpers import lobby_state


def determining(mode="4p"):
    state = lobby_state(mode)
    assert start_match(state) is state
    return state


def reveal_all(state, *ids):
    for position, card_id in enumerate(ids, start=1):
        assert reveal_card(state, card_from_id(card_id), position) is state


def test_reveal_positions_go_round_the_table():
    assert [reveal_seat(pos, 4) for pos in range(1, 7)] == [0, 1, 2, 3, 0, 1]
    assert [reveal_seat(pos, 2) for pos in range(1, 4)] == [0, 1, 0]
    with pytest.raises(ValueError):
        reveal_seat(0, 4)


def test_first_ace_crowns_its_receiver():
    state = determining()
    reveal_all(state, "S-2", "H-5", "C-14")
    assert ace_revealed(state)
    assert crown_hakim(state) is state
    assert state.hakim_id == "P3"
    assert state.current_turn_player_id == "P3"
    assert state.phase == Phase.DEALING_INITIAL
    assert "Player3 is hakim" in state.logs[-1]


def test_ace_on_fifth_card_wraps_to_first_seat():
    state = determining()
    reveal_all(state, "S-2", "H-5", "C-4", "D-7", "H-14")
    crown_hakim(state)
    assert state.hakim_id == "P1"


def test_two_player_reveal():
    state = determining("2p")
    reveal_all(state, "S-2", "D-14")
    crown_hakim(state)
    assert state.hakim_id == "P2"


def test_no_reveals_after_the_ace():
    state = determining()
    reveal_all(state, "S-14")
    assert reveal_card(state, card_from_id("H-3"), 2) is None
    assert len(state.hakim_determination_cards) == 1


def test_out_of_order_reveal_aborts():
    state = determining()
    reveal_all(state, "S-2")
    assert reveal_card(state, card_from_id("H-3"), 1) is None
    assert reveal_card(state, card_from_id("H-3"), 3) is None


def test_crown_requires_an_ace_on_top():
    state = determining()
    reveal_all(state, "S-2", "H-3")
    assert crown_hakim(state) is None
    assert state.hakim_id is None


def test_reveal_outside_determination_aborts():
    state = lobby_state()
    assert reveal_card(state, card_from_id("S-2"), 1) is None


def test_restart_clears_an_unfinished_reveal():
    state = determining()
    reveal_all(state, "S-2", "H-3")
    assert restart_determination(state) is state
    assert state.hakim_determination_cards == []
    assert restart_determination(state) is None
