"""
Snapshot save/load: versioning and tolerant decoding.
"""

import logging

import pytest

from conquest.engine import SNAPSHOT_VERSION
from conquest.engine.logistics import individualize_ship
from conquest.engine.state import (
    AirOrigin,
    CargoItem,
    GameState,
    PendingPurchase,
    SnapshotVersionError,
)


@pytest.fixture
def busy_state(make_state):
    state = make_state(
        owners={"Alpha": "red", "Bravo": "red", "Charlie": "blue"},
        units={"Alpha": [("infantry", 2, "red")], "Sea One": [("transport", 1, "red"), ("battleship", 1, "red")],
               "Charlie": [("armour", 1, "blue")]},
        capitals={"red": "Alpha", "blue": "Charlie"},
    )
    ship = individualize_ship(state, "Sea One", "transport", "red")
    ship.cargo.append(CargoItem("artillery", "red"))
    state.territories["Sea One"].units[0].damaged_count = 1
    state.pending_purchases.append(PendingPurchase("infantry", 2, "red", 3, "Alpha"))
    state.air_unit_origins["Charlie"] = {"fighter": AirOrigin("Alpha", 2, 4)}
    state.cards["red"] = ["wild", "cavalry"]
    state.card_trade_count["red"] = 2
    state.combat_rounds["Charlie"] = 1
    state.player_techs["red"].unlocked.append("jets")
    return state


def test_round_trip_preserves_everything(busy_state):
    data = busy_state.to_dict()
    assert data["version"] == SNAPSHOT_VERSION
    assert GameState.from_dict(data).to_dict() == data
    assert GameState.from_json(busy_state.to_json()).to_dict() == data


def test_save_and_load(busy_state, tmp_path):
    path = tmp_path / "game.json"
    busy_state.save(str(path))
    loaded = GameState.load(str(path))
    assert loaded.to_dict() == busy_state.to_dict()
    assert loaded.ships["transport_1"].cargo == [CargoItem("artillery", "red")]


def test_old_or_untagged_snapshots_are_rejected(busy_state):
    data = busy_state.to_dict()
    data["version"] = 2
    with pytest.raises(SnapshotVersionError):
        GameState.from_dict(data)
    del data["version"]
    with pytest.raises(SnapshotVersionError):
        GameState.from_dict(data)
    with pytest.raises(SnapshotVersionError):
        GameState.from_dict(["not", "a", "snapshot"])


def test_newer_snapshot_loads_with_warning(busy_state, caplog):
    data = busy_state.to_dict()
    data["version"] = SNAPSHOT_VERSION + 1
    data["hovercraft"] = {"whatever": True}
    with caplog.at_level(logging.WARNING, logger="conquest.engine.state"):
        state = GameState.from_dict(data)
    assert state.round == busy_state.round
    assert "newer" in caplog.text


def test_missing_turn_start_territories_are_rederived(busy_state, caplog):
    data = busy_state.to_dict()
    del data["friendly_territories_at_turn_start"]
    with caplog.at_level(logging.WARNING, logger="conquest.engine.state"):
        state = GameState.from_dict(data)
    assert state.friendly_territories_at_turn_start == ["Alpha", "Bravo"]
    assert "re-deriving" in caplog.text


def test_missing_fields_take_defaults(busy_state):
    data = {"version": SNAPSHOT_VERSION, "players": [p.to_dict() for p in busy_state.players]}
    state = GameState.from_dict(data)
    assert state.territories == {}
    assert state.round == 1
    assert state.pending_purchases == []
    assert state.current_player_id == "red"


def test_unknown_cards_are_dropped(busy_state, caplog):
    data = busy_state.to_dict()
    data["cards"]["red"] = ["infantry", "joker", "wild"]
    with caplog.at_level(logging.WARNING, logger="conquest.engine.state"):
        state = GameState.from_dict(data)
    assert state.cards["red"] == ["infantry", "wild"]
    assert "joker" in caplog.text


def test_malformed_records_are_tolerated(busy_state):
    data = busy_state.to_dict()
    data["territories"]["Alpha"]["units"].append("garbage")
    data["territories"]["Alpha"]["units"][0]["quantity"] = "lots"
    data["ships"]["transport_1"]["cargo"] = "none"
    state = GameState.from_dict(data)
    assert state.territories["Alpha"].units[0].quantity == 0
    assert len(state.territories["Alpha"].units) == 1
    assert state.ships["transport_1"].cargo == []
