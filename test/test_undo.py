"""
Undoing movement steps within a phase.
"""

import random

from conquest.engine import results
from conquest.engine import events as ev
from conquest.engine.actions import load_transport, move_units, undo_move
from conquest.engine.reducer import apply_action


def test_undo_move_restores_both_ends(defs, make_state):
    state = make_state(owners={"Alpha": "red", "Bravo": "red"}, units={"Alpha": [("infantry", 3, "red")]})
    before = {name: state.territories[name].to_dict() for name in ("Alpha", "Bravo")}
    state, _ = apply_action(state, move_units("red", "Alpha", "Bravo", {"infantry": 2}), defs)
    assert state.territories["Bravo"].count("infantry", "red") == 2

    state, result = apply_action(state, undo_move("red"), defs)

    assert result.success
    assert result.facts["kind"] == "move"
    assert result.events[0].type == ev.MOVE_UNDONE
    assert {name: state.territories[name].to_dict() for name in ("Alpha", "Bravo")} == before
    assert state.move_history == []


def test_undo_capture_restores_owner_and_revokes_card(defs, make_state):
    state = make_state(owners={"Bravo": "red", "Charlie": "blue"}, units={"Bravo": [("armour", 1, "red")]})
    state, result = apply_action(state, move_units("red", "Bravo", "Charlie", {"armour": 1}), defs,
                                 random.Random(2))
    card = result.facts["card_awarded"]
    assert state.owner("Charlie") == "red"
    assert state.cards["red"] == [card]

    state, result = apply_action(state, undo_move("red"), defs)

    assert result.facts["restored_owner"] == "blue"
    assert result.facts["card_revoked"] == card
    assert state.owner("Charlie") == "blue"
    assert state.cards["red"] == []
    assert not state.conquered_this_turn.get("red")
    assert state.territories["Bravo"].count("armour", "red") == 1


def test_undo_moves_in_reverse_order(defs, make_state):
    state = make_state(owners={"Alpha": "red", "Bravo": "red", "Charlie": "red"},
                       units={"Alpha": [("infantry", 1, "red")], "Bravo": [("armour", 1, "red")]})
    state, _ = apply_action(state, move_units("red", "Alpha", "Bravo", {"infantry": 1}), defs)
    state, _ = apply_action(state, move_units("red", "Bravo", "Charlie", {"armour": 1}), defs)

    state, result = apply_action(state, undo_move("red"), defs)

    assert (result.events[0].payload["from"], result.events[0].payload["to"]) == ("Bravo", "Charlie")
    assert state.territories["Charlie"].count("armour", "red") == 0
    assert state.territories["Bravo"].count("infantry", "red") == 1
    assert len(state.move_history) == 1


def test_undo_load_returns_cargo_ashore(defs, make_state):
    state = make_state(owners={"Alpha": "red"},
                       units={"Alpha": [("infantry", 1, "red")], "Sea One": [("transport", 1, "red")]})
    state, result = apply_action(state, load_transport("red", "Sea One", "infantry", "Alpha"), defs)
    assert result.success
    assert state.ships

    state, result = apply_action(state, undo_move("red"), defs)

    assert result.facts["kind"] == "load"
    assert state.ships == {}
    assert state.ship_id_counter == 0
    assert state.territories["Alpha"].count("infantry", "red") == 1
    assert state.territories["Sea One"].count("transport", "red") == 1


def test_nothing_to_undo(defs, make_state):
    state = make_state()
    new_state, result = apply_action(state, undo_move("red"), defs)
    assert result.reason == results.NOTHING_TO_UNDO
    assert new_state is state


def test_no_undo_once_the_game_is_won(defs, make_state):
    state = make_state(
        owners={"Alpha": "red", "Bravo": "red", "Charlie": "blue"},
        units={"Bravo": [("armour", 1, "red")]},
        capitals={"red": "Alpha", "blue": "Charlie"},
    )
    state, _ = apply_action(state, move_units("red", "Bravo", "Charlie", {"armour": 1}), defs, random.Random(1))
    assert state.game_over

    _, result = apply_action(state, undo_move("red"), defs)

    assert result.reason == results.GAME_OVER
