"""
Read-only queries used by callers to build their menus.
"""

import pytest

from conquest.engine import TurnPhase
from conquest.engine.logistics import individualize_ship
from conquest.engine.queries import (
    get_card_options,
    get_game_summary,
    get_income_preview,
    get_mobilization_territories,
    get_movable_units,
    get_purchasable_units,
    get_unit_move_targets,
)


@pytest.fixture
def home(make_state):
    state = make_state(
        owners={"Alpha": "red", "Bravo": "red", "Charlie": "blue"},
        units={
            "Alpha": [("infantry", 2, "red"), ("armour", 1, "red"), ("fighter", 1, "red")],
            "Charlie": [("infantry", 1, "blue")],
        },
        capitals={"red": "Alpha"},
    )
    return state


def _stack(state, territory, unit_type):
    return next(s for s in state.territories[territory].units if s.unit_type == unit_type)


def test_movable_units_skip_spent_stacks(defs, home):
    assert get_movable_units(home, defs, "Alpha") == {"infantry": 2, "armour": 1, "fighter": 1}

    _stack(home, "Alpha", "armour").moved = True
    _stack(home, "Alpha", "fighter").movement_used = 4

    assert get_movable_units(home, defs, "Alpha") == {"infantry": 2}
    assert get_movable_units(home, defs, "Charlie") == {}
    assert get_movable_units(home, defs, "Charlie", "blue") == {"infantry": 1}
    assert get_movable_units(home, defs, "Nowhere") == {}


def test_move_targets_follow_the_phase(defs, home):
    assert get_unit_move_targets(home, defs, "Alpha", "armour") == {"Bravo": 1, "Charlie": 2}

    home.turn_phase = TurnPhase.NON_COMBAT_MOVE

    assert get_unit_move_targets(home, defs, "Alpha", "armour") == {"Bravo": 1}
    assert get_unit_move_targets(home, defs, "Alpha", "zeppelin") == {}


def test_purchasable_units_reflect_discounts(defs, home):
    options = {o["unit_type"]: o for o in get_purchasable_units(home, defs)}
    assert options["infantry"] == {"unit_type": "infantry", "cost": 3, "max_affordable": 6}
    assert options["battleship"]["max_affordable"] == 1

    home.player_techs["red"].unlocked.append("industrialTech")
    options = {o["unit_type"]: o for o in get_purchasable_units(home, defs)}

    assert options["infantry"]["cost"] == 2
    assert options["infantry"]["max_affordable"] == 10


def test_mobilization_territories_by_unit_class(defs, home):
    assert get_mobilization_territories(home, defs, "infantry") == ["Alpha"]
    assert get_mobilization_territories(home, defs, "destroyer") == ["Sea One"]
    assert get_mobilization_territories(home, defs, "factory") == ["Alpha", "Bravo"]
    assert get_mobilization_territories(home, defs, "infantry", "blue") == []


def test_income_preview(defs, home):
    assert get_income_preview(home, defs) == {"total": 14, "breakdown": {"Alpha": 10, "Bravo": 2, "West": 2}}


def test_card_options(defs, home):
    home.cards["red"] = ["infantry", "infantry", "wild"]
    home.card_trade_count["red"] = 1

    options = get_card_options(home, defs)

    assert options == {
        "hand": ["infantry", "infantry", "wild"],
        "sets": [["infantry", "infantry", "wild"]],
        "next_value": 18,
    }
    options["hand"].clear()
    assert home.cards["red"] == ["infantry", "infantry", "wild"]


def test_game_summary(defs, home):
    summary = get_game_summary(home, defs)

    assert summary["current_player"] == "red"
    assert summary["turn_phase"] == TurnPhase.COMBAT_MOVE
    assert not summary["game_over"]
    assert summary["players"]["red"] == {
        "ipcs": 20,
        "territories": 2,
        "units": 4,
        "income": 14,
        "capital": "Alpha",
        "capital_captured": False,
        "eliminated": False,
        "cards": 0,
    }
    assert summary["players"]["blue"]["income"] == 2


def test_sea_targets_use_what_a_ship_has_left(defs, make_state):
    state = make_state(units={"Sea One": [("destroyer", 1, "red")]})
    assert get_unit_move_targets(state, defs, "Sea One", "destroyer") == {"Sea Two": 1}

    ship = individualize_ship(state, "Sea One", "destroyer", "red")
    ship.movement_used = 2
    assert get_unit_move_targets(state, defs, "Sea One", "destroyer") == {}

    ship.movement_used = 1
    assert get_unit_move_targets(state, defs, "Sea One", "destroyer") == {"Sea Two": 1}


def test_long_range_aircraft_shows_in_air_targets(defs, home):
    _stack(home, "Alpha", "fighter").movement_used = 4
    assert get_unit_move_targets(home, defs, "Alpha", "fighter") == {}
    assert "fighter" not in get_movable_units(home, defs, "Alpha")

    home.player_techs["red"].unlocked.append("longRangeAircraft")

    assert get_unit_move_targets(home, defs, "Alpha", "fighter")["Charlie"] == 2
    assert get_movable_units(home, defs, "Alpha")["fighter"] == 1
