"""
Unit table, map, and rules validation.
"""

import logging

import pytest

from conquest.engine.definitions import (
    DefinitionError,
    RulesConfig,
    load_game_definitions,
    load_map_definition,
    load_unit_definitions,
)

TINY_MAP = {
    "territories": {
        "North": {"production": 2, "connections": ["South", "Bay"]},
        "South": {"production": 1, "connections": ["North"]},
        "Bay": {"is_water": True, "connections": ["North"]},
    },
}


def test_shipped_definitions_load():
    defs = load_game_definitions()
    assert defs.unit("transport").is_transport
    assert defs.unit("carrier").is_carrier
    assert defs.unit("battleship").is_multi_hit
    assert defs.unit("aaGun").transfers_with_territory
    assert not defs.unit("aaGun").can_defend
    assert not defs.unit("factory").can_attack
    assert defs.map.has_land_bridge("Southreach", "Highpass")
    assert "Highpass" in defs.map.connections("Southreach")
    assert "Highpass" not in defs.map.connections("Southreach", land_bridges=False)


def test_unit_needs_exactly_one_class():
    with pytest.raises(DefinitionError):
        load_unit_definitions({"hovertank": {"is_land": True, "is_sea": True}})
    with pytest.raises(DefinitionError):
        load_unit_definitions({"ghost": {"attack": 1}})


def test_unit_stats_must_be_valid():
    with pytest.raises(DefinitionError):
        load_unit_definitions({"infantry": {"is_land": True, "attack": -1}})
    with pytest.raises(DefinitionError):
        load_unit_definitions({"infantry": "strong"})


def test_carried_types_must_exist():
    with pytest.raises(DefinitionError):
        load_unit_definitions({"carrier": {"is_sea": True, "aircraft_capacity": 2, "can_carry": ["dragon"]}})


def test_missing_capacities_get_rules_defaults(caplog):
    table = {
        "fighter": {"is_air": True, "attack": 3, "defense": 4, "movement": 4},
        "infantry": {"is_land": True, "is_infantry": True, "attack": 1, "defense": 2, "movement": 1},
        "flattop": {"is_sea": True, "can_carry": ["fighter"]},
        "barge": {"is_sea": True, "can_carry": ["infantry"]},
    }
    with caplog.at_level(logging.WARNING, logger="conquest.engine.definitions"):
        units = load_unit_definitions(table, RulesConfig(default_aircraft_capacity=3))
    assert units["flattop"].aircraft_capacity == 3
    assert units["barge"].cargo_capacity == 2
    assert units["flattop"].id == "flattop"
    assert "flattop" in caplog.text


def test_map_accepts_dict_form_and_names_territories():
    board = load_map_definition(TINY_MAP)
    assert board.territories["North"].name == "North"
    assert board.adjacent_sea_zones("North") == ["Bay"]
    assert board.land_territories() == ["North", "South"]


def test_one_sided_adjacency_is_made_symmetric(caplog):
    one_sided = {
        "territories": [
            {"name": "A", "connections": ["B"]},
            {"name": "B", "connections": []},
        ],
    }
    with caplog.at_level(logging.WARNING, logger="conquest.engine.definitions"):
        board = load_map_definition(one_sided)
    assert board.connections("B") == ["A"]
    assert "One-sided adjacency" in caplog.text


def test_map_references_must_resolve():
    with pytest.raises(DefinitionError):
        load_map_definition({"territories": [{"name": "A", "connections": ["Nowhere"]}]})
    with pytest.raises(DefinitionError):
        load_map_definition({**TINY_MAP, "continents": [{"name": "X", "territories": ["Nowhere"]}]})


def test_land_bridge_endpoints_must_be_land():
    with pytest.raises(DefinitionError):
        load_map_definition({**TINY_MAP, "land_bridges": [["South", "Bay"]]})
    board = load_map_definition({**TINY_MAP, "land_bridges": [["South", "North"]]})
    assert board.has_land_bridge("North", "South")


def test_rules_validation():
    assert RulesConfig().card_value(0) == 12
    assert RulesConfig().card_value(50) == 75
    assert RulesConfig().starting_ipcs_for(2) == 35
    assert RulesConfig().starting_ipcs_for(9) == 18
    with pytest.raises(DefinitionError):
        load_game_definitions(rules={"card_values": [10, 5]})
    with pytest.raises(DefinitionError):
        load_game_definitions(rules={"card_weights": {"infantry": 0}})
