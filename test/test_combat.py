"""
Combat tests with scripted dice: hit assignment, capture, bombardment, and termination.
"""

import random

from conquest.engine.combat import (
    ATTACKER,
    DEFENDER,
    detect_combats,
    repair_player_battleships,
    resolve_combat,
)
from conquest.engine.definitions import GameDefinitions
from conquest.engine.logistics import individualize_ship
from conquest.engine.queries import count_units
from conquest.engine.state import CargoItem


def _outcomes(casualties):
    return [(c["unit_type"], c["result"]) for c in casualties]


def test_detect_combats_lists_naval_battles_first(defs, make_state):
    state = make_state(
        owners={"Charlie": "blue"},
        units={
            "Charlie": [("infantry", 1, "blue"), ("armour", 1, "red")],
            "Sea Two": [("destroyer", 1, "blue"), ("destroyer", 1, "red")],
            "Delta": [("infantry", 1, "red")],
        },
    )
    assert detect_combats(state, defs) == ["Sea Two", "Charlie"]


def test_attacker_win_captures_territory_and_awards_card(defs, make_state, scripted_rng):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("infantry", 1, "blue"), ("armour", 2, "red")]})
    state.combat_queue = detect_combats(state, defs)

    # armour rolls 1 (hit) and 6 (miss); infantry defends with 6 (miss)
    result, events = resolve_combat(state, defs, "Charlie", scripted_rng([1, 6, 6]))

    assert result.attack_hits == 1
    assert result.defense_hits == 0
    assert _outcomes(result.defender_casualties) == [("infantry", "destroyed")]
    assert result.resolved and result.winner == ATTACKER
    assert result.conquered
    assert result.attackers_remaining == 2
    assert state.owner("Charlie") == "red"
    assert state.cards["red"] == [result.card_awarded]
    assert state.combat_queue == []
    assert "Charlie" not in state.combat_rounds
    assert events[0].type == "combat_round_resolved"
    assert state.combat_log[-1]["player"] == "red"


def test_defender_win_keeps_territory(defs, make_state, scripted_rng):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("infantry", 3, "blue"), ("infantry", 1, "red")]})
    state.combat_queue = ["Charlie"]

    result, _ = resolve_combat(state, defs, "Charlie", scripted_rng([6, 1, 6, 6]))

    assert result.winner == DEFENDER
    assert not result.conquered
    assert state.owner("Charlie") == "blue"
    assert state.territories["Charlie"].count("infantry", "red") == 0
    assert state.territories["Charlie"].count("infantry", "blue") == 3
    assert state.cards["red"] == []


def test_cheapest_units_are_lost_first(defs, make_state, scripted_rng):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("armour", 1, "blue"), ("infantry", 1, "blue"),
                                          ("artillery", 1, "blue"), ("armour", 2, "red")]})
    state.combat_queue = ["Charlie"]

    # two attack hits, three defensive misses
    result, _ = resolve_combat(state, defs, "Charlie", scripted_rng([1, 1, 6, 6, 6]))

    assert _outcomes(result.defender_casualties) == [("infantry", "destroyed"), ("artillery", "destroyed")]
    assert state.territories["Charlie"].count("armour", "blue") == 1
    assert not result.resolved


def test_naval_hits_damage_battleships_before_sinking_cheap_ships(defs, make_state, scripted_rng):
    state = make_state(units={"Sea Two": [("battleship", 1, "blue"), ("transport", 1, "blue"),
                                          ("destroyer", 2, "red")]})
    state.combat_queue = ["Sea Two"]

    # round 1: both destroyers hit, battleship and transport miss
    result, _ = resolve_combat(state, defs, "Sea Two", scripted_rng([1, 1, 6, 6]))

    assert _outcomes(result.defender_casualties) == [("battleship", "damaged"), ("transport", "destroyed")]
    assert not result.resolved
    assert state.combat_rounds["Sea Two"] == 1
    battleship = state.territories["Sea Two"].units[0]
    assert (battleship.unit_type, battleship.quantity, battleship.damaged_count) == ("battleship", 1, 1)

    # round 2: one hit finishes the damaged battleship
    result, _ = resolve_combat(state, defs, "Sea Two", scripted_rng([1, 6, 6]))

    assert _outcomes(result.defender_casualties) == [("battleship", "destroyed")]
    assert result.winner == ATTACKER
    assert "Sea Two" in state.cleared_sea_zones
    assert state.territories["Sea Two"].count("battleship", "blue") == 0
    assert state.territories["Sea Two"].count("destroyer", "red") == 2


def test_sunk_transport_takes_its_cargo_down(defs, make_state):
    state = make_state(units={"Sea Two": [("transport", 1, "blue"), ("destroyer", 1, "red")]})
    ship = individualize_ship(state, "Sea Two", "transport", "blue")
    ship.cargo.append(CargoItem("infantry", "blue"))
    state.combat_queue = ["Sea Two"]
    before = count_units(state)

    # an unescorted transport cannot defend, so no dice are rolled
    result, _ = resolve_combat(state, defs, "Sea Two", random.Random(0))

    assert result.winner == ATTACKER
    assert result.attacker_rolls == []
    lost = result.defender_casualties
    assert _outcomes(lost) == [("transport", "destroyed"), ("infantry", "destroyed")]
    assert lost[0]["ship_id"] == ship.id
    assert lost[1]["lost_aboard"] == ship.id
    assert ship.id not in state.ships
    after = count_units(state)
    assert sum(before.values()) - sum(after.values()) == len(lost)


def test_undefended_factory_and_aa_gun_change_hands(defs, make_state):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("factory", 1, "blue"), ("aaGun", 1, "blue"),
                                          ("infantry", 1, "red")]})
    state.combat_queue = ["Charlie"]

    result, _ = resolve_combat(state, defs, "Charlie", random.Random(0))

    assert result.winner == ATTACKER and result.conquered
    assert result.attacker_rolls == [] and result.defender_casualties == []
    ts = state.territories["Charlie"]
    assert ts.owner == "red"
    assert ts.count("factory", "red") == 1
    assert ts.count("aaGun", "red") == 1
    assert ts.count("factory", "blue") == 0


def test_unarmed_attackers_lose(defs, make_state):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("infantry", 1, "blue"), ("aaGun", 1, "red")]})
    state.combat_queue = ["Charlie"]
    result, _ = resolve_combat(state, defs, "Charlie", random.Random(0))
    assert result.winner == DEFENDER
    assert state.territories["Charlie"].count("aaGun", "red") == 0


def test_mutual_destruction_goes_to_defender(defs, make_state, scripted_rng):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("infantry", 1, "blue"), ("infantry", 1, "red")]})
    state.combat_queue = ["Charlie"]
    result, _ = resolve_combat(state, defs, "Charlie", scripted_rng([1, 1]))
    assert result.winner == DEFENDER
    assert state.owner("Charlie") == "blue"
    assert state.territories["Charlie"].units == []


def test_bombardment_supports_amphibious_first_round(defs, make_state, scripted_rng):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("infantry", 1, "blue"), ("infantry", 1, "red")],
                              "Sea Two": [("battleship", 1, "red")]})
    state.amphibious_territories = ["Charlie"]
    state.combat_queue = ["Charlie"]

    # battleship bombards with 1, infantry attacks with 6, defender rolls 6
    result, _ = resolve_combat(state, defs, "Charlie", scripted_rng([1, 6, 6]))

    assert result.bombardment_rolls == [{"unit_type": "battleship", "roll": 1, "hit": True, "source": "Sea Two"}]
    assert result.bombardment_hits == 1
    assert result.attack_hits == 0
    assert result.winner == ATTACKER
    assert state.owner("Charlie") == "red"


def test_no_bombardment_without_amphibious_assault(defs, make_state, scripted_rng):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("infantry", 1, "blue"), ("infantry", 1, "red")],
                              "Sea Two": [("battleship", 1, "red")]})
    state.combat_queue = ["Charlie"]
    result, _ = resolve_combat(state, defs, "Charlie", scripted_rng([6, 6]))
    assert result.bombardment_rolls == []
    assert not result.resolved


def test_bombardment_only_in_first_round(defs, make_state, scripted_rng):
    state = make_state(owners={"Charlie": "blue"},
                       units={"Charlie": [("infantry", 1, "blue"), ("infantry", 1, "red")],
                              "Sea Two": [("battleship", 1, "red")]})
    state.amphibious_territories = ["Charlie"]
    state.combat_queue = ["Charlie"]
    first, _ = resolve_combat(state, defs, "Charlie", scripted_rng([6, 6, 6]))
    second, _ = resolve_combat(state, defs, "Charlie", scripted_rng([6, 6]))
    assert len(first.bombardment_rolls) == 1
    assert second.bombardment_rolls == []
    assert second.round_number == 2


def test_combat_always_terminates(defs, make_state):
    for seed in range(25):
        state = make_state(owners={"Charlie": "blue"},
                           units={"Charlie": [("infantry", 3, "blue"), ("artillery", 1, "blue"),
                                              ("armour", 3, "red"), ("infantry", 2, "red")]})
        state.combat_queue = ["Charlie"]
        rng = random.Random(seed)
        for _ in range(500):
            result, _ = resolve_combat(state, defs, "Charlie", rng)
            if result.resolved:
                break
        assert result.resolved, f"seed {seed} did not finish"
        assert state.combat_queue == []
        assert "Charlie" not in state.combat_rounds


def test_turn_end_repair_of_battleships(defs, make_state):
    state = make_state(units={"Sea One": [("battleship", 2, "red")], "Sea Two": [("battleship", 1, "blue")]})
    state.territories["Sea One"].units[0].damaged_count = 1
    state.territories["Sea Two"].units[0].damaged_count = 1
    ship = individualize_ship(state, "Sea One", "battleship", "red")

    events = repair_player_battleships(state, defs, "red")

    assert len(events) == 1
    assert events[0].payload["ship_ids"] == [ship.id]
    assert not ship.damaged
    assert state.territories["Sea One"].units[0].damaged_count == 0
    # other players keep their damage
    assert state.territories["Sea Two"].units[0].damaged_count == 1


def test_turn_end_repair_skips_other_multi_hit_units(defs, make_state):
    dreadnought = defs.unit("battleship").model_copy(update={"id": "dreadnought", "name": "Dreadnought"})
    fleet_defs = GameDefinitions({**defs.units, "dreadnought": dreadnought}, defs.map, defs.rules)
    state = make_state(units={"Sea One": [("battleship", 1, "red"), ("dreadnought", 1, "red")]})
    for stack in state.territories["Sea One"].units:
        stack.damaged_count = 1

    events = repair_player_battleships(state, fleet_defs, "red")

    assert events[0].payload["stack_hulls"] == 1
    assert state.territories["Sea One"].units[0].damaged_count == 0
    assert state.territories["Sea One"].units[1].damaged_count == 1
