"""
Query functions for callers driving the engine.
These answer what is available or legal without mutating game state.
"""

import random
from collections import Counter
from dataclasses import dataclass
from typing import Any

from conquest.engine import TurnPhase
from conquest.engine.actions import Action
from conquest.engine.definitions import GameDefinitions
from conquest.engine.economy import (
    calculate_income,
    find_valid_card_sets,
    mobilization_error,
    next_card_value,
    unit_cost,
    unit_movement,
)
from conquest.engine.movement import reachable_for_air, reachable_for_land, reachable_for_sea
from conquest.engine.reducer import PHASE_ALLOWED_ACTIONS, apply_action, current_phase
from conquest.engine.state import GameState
from conquest.engine.victory import is_player_eliminated


@dataclass
class ValidationResult:
    """Result of action validation."""
    valid: bool
    reason: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"valid": self.valid, "reason": self.reason, "error": self.error}


# ===== Action Validation =====

def validate_action(state: GameState, action: Action, defs: GameDefinitions) -> ValidationResult:
    """
    Validate an action without applying it.
    Runs the action against a throwaway copy; dice use a private random source.
    """
    _, result = apply_action(state, action, defs, random.Random(0))
    if result.success:
        return ValidationResult(True)
    return ValidationResult(False, result.reason, result.error)


def get_available_action_types(state: GameState) -> list[str]:
    return list(PHASE_ALLOWED_ACTIONS.get(current_phase(state), []))


# ===== Units =====

def count_units(state: GameState, owner: str | None = None) -> Counter:
    """
    Total units by (unit_type, owner) across stacks, ships, cargo, and aircraft aboard.
    Restrict to one owner with owner=.
    """
    totals: Counter = Counter()
    for ts in state.territories.values():
        for stack in ts.units:
            totals[(stack.unit_type, stack.owner)] += stack.quantity
    for ship in state.ships.values():
        totals[(ship.unit_type, ship.owner)] += 1
        for item in ship.cargo + ship.aircraft:
            totals[(item.unit_type, item.owner)] += 1
    if owner is not None:
        return Counter({k: v for k, v in totals.items() if k[1] == owner})
    return +totals


def get_movable_units(state: GameState, defs: GameDefinitions, territory: str,
                      player: str | None = None) -> dict[str, int]:
    """Units in territory that can still move this phase, by type."""
    player = player or state.current_player_id
    ts = state.territories.get(territory)
    if not ts:
        return {}
    movable: Counter = Counter()
    for stack in ts.units:
        unit_def = defs.unit(stack.unit_type)
        if stack.owner != player or not unit_def or unit_def.is_building or unit_def.movement <= 0:
            continue
        if unit_def.is_air:
            if unit_movement(state, defs, player, stack.unit_type) - stack.movement_used > 0:
                movable[stack.unit_type] += stack.quantity
        elif not stack.moved:
            movable[stack.unit_type] += stack.quantity
    return dict(movable)


def get_unit_move_targets(
    state: GameState,
    defs: GameDefinitions,
    territory: str,
    unit_type: str,
    player: str | None = None,
) -> dict[str, int]:
    """Destination -> distance for one unit type in territory, for the current phase."""
    player = player or state.current_player_id
    unit_def = defs.unit(unit_type)
    if not unit_def or territory not in state.territories:
        return {}
    combat_move = state.turn_phase == TurnPhase.COMBAT_MOVE
    if unit_def.is_air:
        used = [s.movement_used for s in state.territories[territory].units
                if s.unit_type == unit_type and s.owner == player]
        remaining = unit_movement(state, defs, player, unit_type) - (min(used) if used else 0)
        reach = reachable_for_air(state, defs, territory, player, remaining, combat_move, unit_type)
    elif unit_def.is_sea:
        # Grouped hulls have their full allowance; individual ships what they have left
        stacks = [s for s in state.territories[territory].units if s.unit_type == unit_type and s.owner == player]
        ships = [s for s in state.ships_at(territory) if s.unit_type == unit_type and s.owner == player]
        left = [unit_def.movement for s in stacks if not s.moved] + [unit_def.movement - s.movement_used for s in ships]
        remaining = max(left, default=0) if stacks or ships else unit_def.movement
        reach = reachable_for_sea(state, defs, territory, player, remaining, combat_move)
    elif unit_def.is_land:
        reach = reachable_for_land(state, defs, territory, player, unit_def.movement, combat_move)
    else:
        return {}
    return {name: r.distance for name, r in reach.items()}


# ===== Economy =====

def get_purchasable_units(state: GameState, defs: GameDefinitions, player: str | None = None) -> list[dict[str, Any]]:
    player = player or state.current_player_id
    ipcs = state.player_state[player].ipcs if player in state.player_state else 0
    available = []
    for unit_type in defs.units:
        cost = unit_cost(state, defs, player, unit_type)
        if cost is None or cost <= 0:
            continue
        available.append({
            "unit_type": unit_type,
            "cost": cost,
            "max_affordable": ipcs // cost,
        })
    return available


def get_mobilization_territories(state: GameState, defs: GameDefinitions, unit_type: str,
                                 player: str | None = None) -> list[str]:
    player = player or state.current_player_id
    return [
        name for name in state.territories
        if mobilization_error(state, defs, player, unit_type, name) is None
    ]


def get_income_preview(state: GameState, defs: GameDefinitions, player: str | None = None) -> dict[str, Any]:
    player = player or state.current_player_id
    total, breakdown = calculate_income(state, defs, player)
    return {"total": total, "breakdown": breakdown}


def get_card_options(state: GameState, defs: GameDefinitions, player: str | None = None) -> dict[str, Any]:
    player = player or state.current_player_id
    hand = state.cards.get(player, [])
    return {
        "hand": list(hand),
        "sets": find_valid_card_sets(hand),
        "next_value": next_card_value(state, defs, player),
    }


# ===== Summary =====

def get_game_summary(state: GameState, defs: GameDefinitions) -> dict[str, Any]:
    """Per-player overview: treasury, territories, units, income, elimination."""
    players = {}
    for player in state.players:
        ps = state.player_state.get(player.id)
        income, _ = calculate_income(state, defs, player.id)
        players[player.id] = {
            "ipcs": ps.ipcs if ps else 0,
            "territories": len(state.player_territories(player.id)),
            "units": sum(count_units(state, player.id).values()),
            "income": income,
            "capital": ps.capital_territory if ps else None,
            "capital_captured": ps.capital_captured if ps else False,
            "eliminated": is_player_eliminated(state, player.id),
            "cards": len(state.cards.get(player.id, [])),
        }
    return {
        "round": state.round,
        "phase": state.phase,
        "turn_phase": state.turn_phase,
        "current_player": state.current_player_id,
        "combat_queue": list(state.combat_queue),
        "game_over": state.game_over,
        "winner": state.winner,
        "win_condition": state.win_condition,
        "players": players,
    }
