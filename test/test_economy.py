"""
Purchasing, mobilization, income, research, and trading cards.
"""

import itertools

import pytest

from conquest.engine import CARD_TYPES, WILD_CARD, TurnPhase, results
from conquest.engine.actions import trade_cards as trade_action
from conquest.engine.economy import (
    calculate_income,
    can_trade_cards,
    collect_income,
    factory_territories,
    find_valid_card_sets,
    is_valid_card_set,
    mobilization_error,
    mobilize_unit,
    next_card_value,
    place_pending_purchases,
    purchase_tech_dice,
    purchase_unit,
    remove_purchase,
    roll_tech_dice,
    trade_cards,
    unit_cost,
    unlock_tech,
)
from conquest.engine.reducer import apply_action
from conquest.engine.state import PendingPurchase


@pytest.fixture
def home(make_state):
    """red holds Alpha (capital) and Bravo; blue holds Charlie."""
    return make_state(
        owners={"Alpha": "red", "Bravo": "red", "Charlie": "blue"},
        capitals={"red": "Alpha", "blue": "Charlie"},
        turn_phase=TurnPhase.PURCHASE,
    )


# ===== Purchase =====

def test_purchase_deducts_and_queues(defs, home):
    result = purchase_unit(home, defs, "red", "infantry", 2)
    assert result.success
    assert result.facts["total_cost"] == 6
    assert home.player_state["red"].ipcs == 14
    pending = home.pending_purchases[0]
    assert (pending.unit_type, pending.quantity, pending.cost, pending.territory) == ("infantry", 2, 3, None)

    purchase_unit(home, defs, "red", "infantry", 1)
    assert len(home.pending_purchases) == 1
    assert home.pending_purchases[0].quantity == 3


def test_purchase_rejections(defs, home):
    assert purchase_unit(home, defs, "red", "battleship", 2).reason == results.INSUFFICIENT_FUNDS
    assert purchase_unit(home, defs, "red", "dragon", 1).reason == results.UNKNOWN_UNIT
    assert purchase_unit(home, defs, "red", "infantry", 0).reason == results.INVALID_PAYLOAD
    assert purchase_unit(home, defs, "red", "infantry", 1, "Bravo").reason == results.ILLEGAL_DESTINATION
    assert home.player_state["red"].ipcs == 20
    assert home.pending_purchases == []


def test_industrial_tech_discount(defs, home):
    home.player_techs["red"].unlocked.append("industrialTech")
    assert unit_cost(home, defs, "red", "infantry") == 2
    assert unit_cost(home, defs, "blue", "infantry") == 3
    purchase_unit(home, defs, "red", "armour", 1)
    assert home.player_state["red"].ipcs == 16


def test_remove_purchase_refunds_one_unit(defs, home):
    purchase_unit(home, defs, "red", "artillery", 2)
    result = remove_purchase(home, defs, "red", "artillery")
    assert result.facts["refund"] == 4
    assert home.player_state["red"].ipcs == 16
    assert home.pending_purchases[0].quantity == 1
    remove_purchase(home, defs, "red", "artillery")
    assert home.pending_purchases == []
    assert remove_purchase(home, defs, "red", "artillery").reason == results.INSUFFICIENT_UNITS


# ===== Mobilize =====

def test_factory_territories_include_held_capital(defs, home):
    assert factory_territories(home, defs, "red") == ["Alpha"]
    home.territories["Bravo"].add_units("factory", "red", 1)
    assert factory_territories(home, defs, "red") == ["Alpha", "Bravo"]
    home.territories["Alpha"].owner = "blue"
    assert factory_territories(home, defs, "red") == ["Bravo"]


def test_mobilization_rules(defs, home):
    assert mobilization_error(home, defs, "red", "infantry", "Alpha") is None
    assert mobilization_error(home, defs, "red", "infantry", "Bravo") is not None
    assert mobilization_error(home, defs, "red", "destroyer", "Sea One") is None
    assert mobilization_error(home, defs, "red", "destroyer", "Sea Two") is not None
    assert mobilization_error(home, defs, "red", "factory", "Bravo") is None
    assert mobilization_error(home, defs, "red", "factory", "Charlie") is not None
    assert mobilization_error(home, defs, "red", "factory", "Sea One") is not None


def test_mobilize_unit_places_one_pending_unit(defs, home):
    home.pending_purchases.append(PendingPurchase("infantry", 2, "red", 3))
    result = mobilize_unit(home, defs, "red", "infantry", "Alpha")
    assert result.success
    assert home.territories["Alpha"].count("infantry", "red") == 1
    assert home.pending_purchases[0].quantity == 1
    assert mobilize_unit(home, defs, "red", "infantry", "Bravo").reason == results.ILLEGAL_DESTINATION
    assert mobilize_unit(home, defs, "red", "armour", "Alpha").reason == results.INSUFFICIENT_UNITS


def test_unplaced_purchases_are_refunded(defs, home, caplog):
    home.pending_purchases.append(PendingPurchase("infantry", 2, "red", 3, territory="Alpha"))
    home.pending_purchases.append(PendingPurchase("armour", 1, "red", 5))
    with caplog.at_level("WARNING", logger="conquest.engine.economy"):
        place_pending_purchases(home, defs, "red")
    assert home.territories["Alpha"].count("infantry", "red") == 2
    assert home.player_state["red"].ipcs == 25
    assert home.pending_purchases == []
    assert "Refunding 1 x armour" in caplog.text


# ===== Income =====

def test_income_with_continent_bonus(defs, home):
    home.territories["Isle"].owner = "red"
    total, breakdown = calculate_income(home, defs, "red")
    assert breakdown == {"Alpha": 10, "Bravo": 2, "Isle": 1, "West": 2}
    assert total == 15


def test_no_income_while_capital_is_held_by_enemy(defs, home):
    home.territories["Alpha"].owner = "blue"
    assert calculate_income(home, defs, "red") == (0, {})
    events = collect_income(home, defs, "red")
    assert home.player_state["red"].ipcs == 20
    assert events[0].payload["income"] == 0


# ===== Research =====

def test_tech_dice_breakthrough_and_unlock(defs, home, scripted_rng):
    result = purchase_tech_dice(home, defs, "red", 2)
    assert result.facts["research_dice"] == 2
    assert home.player_state["red"].ipcs == 10

    result = roll_tech_dice(home, defs, "red", scripted_rng([3, 6]))
    assert result.facts == {"rolls": [3, 6], "breakthrough": True}
    assert home.player_techs["red"].research_dice == 0
    assert home.player_techs["red"].breakthroughs == 1

    assert unlock_tech(home, defs, "red", "lasers").reason == results.INVALID_TECH
    assert unlock_tech(home, defs, "red", "jets").success
    assert unlock_tech(home, defs, "red", "jets").reason == results.INVALID_TECH
    assert unlock_tech(home, defs, "red", "rockets").reason == results.NO_BREAKTHROUGH
    assert home.player_techs["red"].unlocked == ["jets"]


def test_tech_roll_without_dice_or_breakthrough(defs, home, scripted_rng):
    assert roll_tech_dice(home, defs, "red", scripted_rng()).reason == results.NO_RESEARCH_DICE
    purchase_tech_dice(home, defs, "red", 1)
    result = roll_tech_dice(home, defs, "red", scripted_rng([2]))
    assert result.facts["breakthrough"] is False
    assert home.player_techs["red"].breakthroughs == 0
    assert purchase_tech_dice(home, defs, "red", 5).reason == results.INSUFFICIENT_FUNDS


# ===== Cards =====

def test_three_of_a_kind_is_tradeable_but_a_pair_is_not():
    assert can_trade_cards(["infantry"] * 3)
    assert not can_trade_cards(["infantry", "infantry", "cavalry"])
    assert not can_trade_cards(["infantry", "cavalry"])


def test_every_valid_set_is_found_in_any_hand_holding_it():
    kinds = CARD_TYPES + [WILD_CARD]
    for triple in itertools.combinations_with_replacement(kinds, 3):
        hand = list(triple)
        assert can_trade_cards(hand) == is_valid_card_set(hand), hand
        if is_valid_card_set(hand):
            assert can_trade_cards(hand + ["cavalry", "infantry"])


def test_find_valid_card_sets_prefers_plain_sets():
    sets = find_valid_card_sets(["artillery", "artillery", "artillery", "wild"])
    assert sets[0] == ["artillery", "artillery", "artillery"]
    assert ["artillery", "artillery", "wild"] in sets


def test_trade_removes_exact_cards(defs, home):
    home.cards["red"] = ["infantry", "cavalry", "infantry", "infantry", "wild"]
    result = trade_cards(home, defs, "red", ["infantry", "infantry", "infantry"])
    assert result.success
    assert result.facts == {"ipcs": 12, "cards": ["infantry", "infantry", "infantry"]}
    assert home.cards["red"] == ["cavalry", "wild"]
    assert home.player_state["red"].ipcs == 32
    assert trade_cards(home, defs, "red").reason == results.INVALID_CARD_SET


def test_trade_rejects_cards_not_in_hand(defs, home):
    home.cards["red"] = ["infantry", "infantry"]
    result = trade_cards(home, defs, "red", ["infantry", "infantry", "infantry"])
    assert result.reason == results.INVALID_CARD_SET
    assert home.cards["red"] == ["infantry", "infantry"]


def test_card_values_escalate_then_plateau(defs, home):
    values = []
    for _ in range(10):
        home.cards["red"] = ["artillery", "cavalry", "infantry"]
        values.append(trade_cards(home, defs, "red").facts["ipcs"])
    assert values == [12, 18, 24, 30, 36, 45, 60, 75, 75, 75]
    assert next_card_value(home, defs, "red") == 75
    assert next_card_value(home, defs, "blue") == 12


def test_cards_trade_only_in_purchase_phase(defs, home):
    home.cards["red"] = ["wild", "wild", "wild"]
    state, result = apply_action(home, trade_action("red"), defs)
    assert result.success
    state.turn_phase = TurnPhase.COMBAT_MOVE
    state.cards["red"] = ["wild", "wild", "wild"]
    _, result = apply_action(state, trade_action("red"), defs)
    assert result.reason == results.WRONG_PHASE
