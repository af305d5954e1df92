"""
Action definitions for the game.
Actions are plain, serializable instructions; the reducer validates and applies them.
"""

from dataclasses import dataclass, field
from typing import Any


@dataclass
class Action:
    """Base action class. All actions have a type, player, and payload."""
    type: str  # e.g., "move_units", "resolve_combat", "end_phase"
    player: str  # player id performing the action
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "player": self.player, "payload": self.payload}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Action":
        payload = data.get("payload")
        return cls(
            type=str(data.get("type") or ""),
            player=str(data.get("player") or ""),
            payload=payload if isinstance(payload, dict) else {},
        )


# ===== Setup =====

def place_capital(player: str, territory: str) -> Action:
    return Action(type="place_capital", player=player, payload={"territory": territory})


def place_unit(player: str, territory: str, unit_type: str) -> Action:
    """Place one unit from the player's starting pool. Naval and carried units may target a sea zone."""
    return Action(type="place_unit", player=player, payload={"territory": territory, "unit_type": unit_type})


def undo_placement(player: str) -> Action:
    return Action(type="undo_placement", player=player, payload={})


def finish_placement_round(player: str) -> Action:
    return Action(type="finish_placement_round", player=player, payload={})


# ===== Research =====

def purchase_tech_dice(player: str, count: int = 1) -> Action:
    return Action(type="purchase_tech_dice", player=player, payload={"count": count})


def roll_tech_dice(player: str) -> Action:
    """Roll every accumulated research die."""
    return Action(type="roll_tech_dice", player=player, payload={})


def unlock_tech(player: str, tech_id: str) -> Action:
    return Action(type="unlock_tech", player=player, payload={"tech_id": tech_id})


# ===== Purchase =====

def purchase_unit(
    player: str,
    unit_type: str,
    quantity: int = 1,
    territory: str | None = None,  # destination; None to choose during mobilize
) -> Action:
    """
    Buy units now, place them in the mobilize phase.
    Example: purchase_unit("p1", "armour", 2, territory="Germany")
    """
    return Action(
        type="purchase_unit",
        player=player,
        payload={"unit_type": unit_type, "quantity": quantity, "territory": territory},
    )


def remove_purchase(player: str, unit_type: str) -> Action:
    """Refund one pending unit of this type."""
    return Action(type="remove_purchase", player=player, payload={"unit_type": unit_type})


def trade_cards(player: str, cards: list[str] | None = None) -> Action:
    """Trade a card set; with no cards given, the first valid set in the hand is used."""
    return Action(type="trade_cards", player=player, payload={"cards": cards})


# ===== Movement =====

def move_units(
    player: str,
    territory_from: str,
    territory_to: str,
    units: dict[str, int] | None = None,  # unit_type -> quantity from the fungible stacks
    ship_ids: list[str] | None = None,  # individual ships to move
) -> Action:
    """
    Move units from one territory to another.
    Grouped units are given by type and quantity; individual ships by id.
    """
    return Action(
        type="move_units",
        player=player,
        payload={
            "from": territory_from,
            "to": territory_to,
            "units": dict(units or {}),
            "ship_ids": list(ship_ids or []),
        },
    )


def undo_move(player: str) -> Action:
    return Action(type="undo_move", player=player, payload={})


def load_transport(
    player: str,
    sea_zone: str,
    unit_type: str,
    land_territory: str,
    ship_id: str | None = None,
) -> Action:
    return Action(
        type="load_transport",
        player=player,
        payload={
            "sea_zone": sea_zone,
            "unit_type": unit_type,
            "land_territory": land_territory,
            "ship_id": ship_id,
        },
    )


def unload_transport(player: str, sea_zone: str, ship_id: str, territory: str) -> Action:
    """Unload all cargo of one transport onto adjacent land."""
    return Action(
        type="unload_transport",
        player=player,
        payload={"sea_zone": sea_zone, "ship_id": ship_id, "territory": territory},
    )


def unload_unit(player: str, sea_zone: str, ship_id: str, unit_type: str, territory: str) -> Action:
    return Action(
        type="unload_unit",
        player=player,
        payload={"sea_zone": sea_zone, "ship_id": ship_id, "unit_type": unit_type, "territory": territory},
    )


def land_on_carrier(
    player: str,
    sea_zone: str,
    unit_type: str,
    from_territory: str,
    ship_id: str | None = None,
) -> Action:
    return Action(
        type="land_on_carrier",
        player=player,
        payload={
            "sea_zone": sea_zone,
            "unit_type": unit_type,
            "from_territory": from_territory,
            "ship_id": ship_id,
        },
    )


def launch_from_carrier(player: str, sea_zone: str, ship_id: str, index: int = 0) -> Action:
    return Action(
        type="launch_from_carrier",
        player=player,
        payload={"sea_zone": sea_zone, "ship_id": ship_id, "index": index},
    )


# ===== Combat / Mobilize / Phase =====

def resolve_combat(player: str, territory: str) -> Action:
    """Fight one round in a queued territory."""
    return Action(type="resolve_combat", player=player, payload={"territory": territory})


def mobilize_unit(player: str, unit_type: str, territory: str) -> Action:
    return Action(type="mobilize_unit", player=player, payload={"unit_type": unit_type, "territory": territory})


def end_phase(player: str) -> Action:
    """End the current turn phase. Skippable phases are skipped; collect income starts the next turn."""
    return Action(type="end_phase", player=player, payload={})
