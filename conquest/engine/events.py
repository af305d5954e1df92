"""
Game events for UI hooks and logging.
Every ActionResult carries the events its action produced, in order.
"""

from dataclasses import dataclass
from typing import Any


@dataclass
class GameEvent:
    """Base event class. All events have a type and payload."""
    type: str
    payload: dict[str, Any]

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameEvent":
        return cls(type=data["type"], payload=data["payload"])


# ===== Event Type Constants =====

# Phase/Turn events
PHASE_CHANGED = "phase_changed"
GAME_PHASE_CHANGED = "game_phase_changed"
TURN_STARTED = "turn_started"

# Setup events
CAPITAL_PLACED = "capital_placed"
UNIT_PLACED = "unit_placed"
PLACEMENT_UNDONE = "placement_undone"
PLACEMENT_ROUND_FINISHED = "placement_round_finished"

# Economy events
RESOURCES_CHANGED = "resources_changed"
UNITS_PURCHASED = "units_purchased"
PURCHASE_REMOVED = "purchase_removed"
UNITS_MOBILIZED = "units_mobilized"
INCOME_COLLECTED = "income_collected"
TECH_DICE_PURCHASED = "tech_dice_purchased"
TECH_ROLLED = "tech_rolled"
TECH_UNLOCKED = "tech_unlocked"
CARD_AWARDED = "card_awarded"
CARDS_TRADED = "cards_traded"

# Movement events
UNITS_MOVED = "units_moved"
MOVE_UNDONE = "move_undone"
CARGO_LOADED = "cargo_loaded"
CARGO_UNLOADED = "cargo_unloaded"
AIRCRAFT_LANDED = "aircraft_landed"
AIRCRAFT_LAUNCHED = "aircraft_launched"

# Combat events
COMBATS_DETECTED = "combats_detected"
COMBAT_ROUND_RESOLVED = "combat_round_resolved"
COMBAT_ENDED = "combat_ended"
SHIPS_REPAIRED = "ships_repaired"

# Territory events
TERRITORY_CAPTURED = "territory_captured"
CAPITAL_CAPTURED = "capital_captured"

# Victory events
VICTORY = "victory"


# ===== Event Factory Functions =====

def phase_changed(old_phase: str, new_phase: str, player: str) -> GameEvent:
    return GameEvent(PHASE_CHANGED, {
        "old_phase": old_phase,
        "new_phase": new_phase,
        "player": player,
    })


def game_phase_changed(old_phase: str, new_phase: str) -> GameEvent:
    return GameEvent(GAME_PHASE_CHANGED, {"old_phase": old_phase, "new_phase": new_phase})


def turn_started(round_number: int, player: str) -> GameEvent:
    return GameEvent(TURN_STARTED, {"round": round_number, "player": player})


def capital_placed(player: str, territory: str) -> GameEvent:
    return GameEvent(CAPITAL_PLACED, {"player": player, "territory": territory})


def unit_placed(player: str, territory: str, unit_type: str, ship_id: str | None = None) -> GameEvent:
    return GameEvent(UNIT_PLACED, {
        "player": player,
        "territory": territory,
        "unit_type": unit_type,
        "ship_id": ship_id,
    })


def placement_undone(player: str, territory: str, unit_type: str) -> GameEvent:
    return GameEvent(PLACEMENT_UNDONE, {"player": player, "territory": territory, "unit_type": unit_type})


def placement_round_finished(player: str, placement_round: int) -> GameEvent:
    return GameEvent(PLACEMENT_ROUND_FINISHED, {"player": player, "placement_round": placement_round})


def resources_changed(player: str, old_value: int, new_value: int, reason: str) -> GameEvent:
    return GameEvent(RESOURCES_CHANGED, {
        "player": player,
        "old_value": old_value,
        "new_value": new_value,
        "change": new_value - old_value,
        "reason": reason,
    })


def units_purchased(player: str, unit_type: str, quantity: int, total_cost: int,
                    territory: str | None) -> GameEvent:
    return GameEvent(UNITS_PURCHASED, {
        "player": player,
        "unit_type": unit_type,
        "quantity": quantity,
        "total_cost": total_cost,
        "territory": territory,
    })


def purchase_removed(player: str, unit_type: str, refund: int) -> GameEvent:
    return GameEvent(PURCHASE_REMOVED, {"player": player, "unit_type": unit_type, "refund": refund})


def units_mobilized(player: str, territory: str, units: dict[str, int]) -> GameEvent:
    return GameEvent(UNITS_MOBILIZED, {
        "player": player,
        "territory": territory,
        "units": units,  # unit_type -> count
    })


def income_collected(player: str, income: int, breakdown: dict[str, int]) -> GameEvent:
    return GameEvent(INCOME_COLLECTED, {
        "player": player,
        "income": income,
        "breakdown": breakdown,  # source (territory or continent) -> amount
    })


def tech_dice_purchased(player: str, count: int, cost: int) -> GameEvent:
    return GameEvent(TECH_DICE_PURCHASED, {"player": player, "count": count, "cost": cost})


def tech_rolled(player: str, rolls: list[int], breakthrough: bool) -> GameEvent:
    return GameEvent(TECH_ROLLED, {"player": player, "rolls": rolls, "breakthrough": breakthrough})


def tech_unlocked(player: str, tech_id: str) -> GameEvent:
    return GameEvent(TECH_UNLOCKED, {"player": player, "tech_id": tech_id})


def card_awarded(player: str, card: str) -> GameEvent:
    return GameEvent(CARD_AWARDED, {"player": player, "card": card})


def cards_traded(player: str, cards: list[str], value: int, trade_count: int) -> GameEvent:
    return GameEvent(CARDS_TRADED, {
        "player": player,
        "cards": cards,
        "value": value,
        "trade_count": trade_count,
    })


def units_moved(player: str, from_territory: str, to_territory: str, units: dict[str, int],
                ship_ids: list[str], phase: str) -> GameEvent:
    return GameEvent(UNITS_MOVED, {
        "player": player,
        "from": from_territory,
        "to": to_territory,
        "units": units,
        "ship_ids": ship_ids,
        "phase": phase,
    })


def move_undone(player: str, kind: str, from_territory: str, to_territory: str) -> GameEvent:
    return GameEvent(MOVE_UNDONE, {
        "player": player,
        "kind": kind,
        "from": from_territory,
        "to": to_territory,
    })


def cargo_loaded(player: str, sea_zone: str, ship_id: str, unit_type: str, from_territory: str) -> GameEvent:
    return GameEvent(CARGO_LOADED, {
        "player": player,
        "sea_zone": sea_zone,
        "ship_id": ship_id,
        "unit_type": unit_type,
        "from": from_territory,
    })


def cargo_unloaded(player: str, sea_zone: str, ship_id: str, units: list[str], territory: str,
                   amphibious: bool) -> GameEvent:
    return GameEvent(CARGO_UNLOADED, {
        "player": player,
        "sea_zone": sea_zone,
        "ship_id": ship_id,
        "units": units,
        "territory": territory,
        "amphibious": amphibious,
    })


def aircraft_landed(player: str, sea_zone: str, ship_id: str, unit_type: str) -> GameEvent:
    return GameEvent(AIRCRAFT_LANDED, {
        "player": player,
        "sea_zone": sea_zone,
        "ship_id": ship_id,
        "unit_type": unit_type,
    })


def aircraft_launched(player: str, sea_zone: str, ship_id: str, unit_type: str) -> GameEvent:
    return GameEvent(AIRCRAFT_LAUNCHED, {
        "player": player,
        "sea_zone": sea_zone,
        "ship_id": ship_id,
        "unit_type": unit_type,
    })


def combats_detected(player: str, territories: list[str]) -> GameEvent:
    return GameEvent(COMBATS_DETECTED, {"player": player, "territories": territories})


def combat_round_resolved(territory: str, round_number: int, result: dict[str, Any]) -> GameEvent:
    return GameEvent(COMBAT_ROUND_RESOLVED, {
        "territory": territory,
        "round": round_number,
        "result": result,
    })


def combat_ended(territory: str, attacker: str, winner: str, conquered: bool) -> GameEvent:
    return GameEvent(COMBAT_ENDED, {
        "territory": territory,
        "attacker": attacker,
        "winner": winner,  # "attacker" or "defender"
        "conquered": conquered,
    })


def ships_repaired(player: str, territory: str | None, ship_ids: list[str], stacks: int) -> GameEvent:
    return GameEvent(SHIPS_REPAIRED, {
        "player": player,
        "territory": territory,
        "ship_ids": ship_ids,
        "stack_hulls": stacks,
    })


def territory_captured(territory: str, old_owner: str | None, new_owner: str) -> GameEvent:
    return GameEvent(TERRITORY_CAPTURED, {
        "territory": territory,
        "old_owner": old_owner,
        "new_owner": new_owner,
    })


def capital_captured(territory: str, loser: str, captor: str, ipcs_transferred: int) -> GameEvent:
    return GameEvent(CAPITAL_CAPTURED, {
        "territory": territory,
        "loser": loser,
        "captor": captor,
        "ipcs_transferred": ipcs_transferred,
    })


def victory(winner: str, condition: str) -> GameEvent:
    return GameEvent(VICTORY, {"winner": winner, "condition": condition})
