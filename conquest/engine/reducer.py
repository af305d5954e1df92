"""
Main game reducer.
Applies actions to a copy of the state, enforcing turn and phase gating.
Returns (new_state, result); on failure new_state is the untouched input.
"""

import logging
import random
from typing import Any, Callable

from conquest.engine import TURN_PHASE_ORDER, GamePhase, TurnPhase
from conquest.engine import economy, logistics, movement, results, setup
from conquest.engine import events as ev
from conquest.engine.actions import Action
from conquest.engine.combat import detect_combats, repair_player_battleships, resolve_combat
from conquest.engine.definitions import GameDefinitions
from conquest.engine.events import GameEvent
from conquest.engine.logistics import merge_idle_ships
from conquest.engine.results import ActionResult
from conquest.engine.state import (
    AirOrigin,
    GameState,
    MoveRecord,
    PlayerState,
    Ship,
    TerritoryState,
    UnitStack,
)

logger = logging.getLogger("conquest.engine.reducer")

_MOVEMENT_ACTIONS = [
    "move_units",
    "load_transport",
    "unload_transport",
    "unload_unit",
    "land_on_carrier",
    "launch_from_carrier",
    "undo_move",
    "end_phase",
]

# Phase rules: which action types are allowed in which phases
PHASE_ALLOWED_ACTIONS = {
    TurnPhase.DEVELOP_TECH: ["purchase_tech_dice", "roll_tech_dice", "unlock_tech", "end_phase"],
    TurnPhase.PURCHASE: ["purchase_unit", "remove_purchase", "trade_cards", "end_phase"],
    TurnPhase.COMBAT_MOVE: _MOVEMENT_ACTIONS,
    TurnPhase.COMBAT: ["resolve_combat", "end_phase"],
    TurnPhase.NON_COMBAT_MOVE: _MOVEMENT_ACTIONS,
    TurnPhase.MOBILIZE: ["mobilize_unit", "end_phase"],
    TurnPhase.COLLECT_INCOME: ["end_phase"],
    GamePhase.CAPITAL_PLACEMENT: ["place_capital"],
    GamePhase.UNIT_PLACEMENT: ["place_unit", "undo_placement", "finish_placement_round"],
}


def current_phase(state: GameState) -> str:
    """The phase that gates actions: the setup phase, or the turn phase once playing."""
    return state.turn_phase if state.phase == GamePhase.PLAYING else state.phase


def apply_action(
    state: GameState,
    action: Action,
    defs: GameDefinitions,
    rng: random.Random | None = None,
) -> tuple[GameState, ActionResult]:
    """
    Apply a single action, returning (new_state, result).

    Validates:
    - action.player is the current player
    - action type is allowed in the current phase
    Handlers then validate the payload against the rules before mutating.
    """
    rng = rng or random.Random()
    if action.player != state.current_player_id:
        return state, ActionResult.fail(
            results.NOT_YOUR_TURN,
            f"Action player {action.player} is not the current player {state.current_player_id}",
        )
    handler = _HANDLERS.get(action.type)
    if handler is None:
        return state, ActionResult.fail(results.UNKNOWN_ACTION, f"Unknown action type '{action.type}'")
    phase = current_phase(state)
    allowed = PHASE_ALLOWED_ACTIONS.get(phase, [])
    if action.type not in allowed:
        return state, ActionResult.fail(
            results.WRONG_PHASE,
            f"Action '{action.type}' is not allowed in phase '{phase}'. Allowed actions: {', '.join(allowed)}",
        )
    if not isinstance(action.payload, dict):
        return state, ActionResult.fail(results.INVALID_PAYLOAD, "Payload must be an object")

    new_state = state.copy()
    result = handler(new_state, action, defs, rng)
    if not result.success:
        logger.debug("Rejected %s from %s: %s", action.type, action.player, result.error)
        return state, result
    return new_state, result


def replay_from_actions(
    initial_state: GameState,
    actions: list[Action],
    defs: GameDefinitions,
    rng: random.Random | None = None,
) -> tuple[GameState, list[ActionResult]]:
    """
    Replay a series of actions from an initial state.
    With the same seeded rng the final state is reproduced exactly.
    """
    rng = rng or random.Random()
    current_state = initial_state.copy()
    all_results = []
    for action in actions:
        current_state, result = apply_action(current_state, action, defs, rng)
        all_results.append(result)
    return current_state, all_results


# ===== Payload Helpers =====

def _text(payload: dict[str, Any], key: str) -> str | None:
    value = payload.get(key)
    return value if isinstance(value, str) and value else None


def _missing(*keys: str) -> ActionResult:
    return ActionResult.fail(results.INVALID_PAYLOAD, f"Payload needs {', '.join(keys)}")


# ===== Setup Handlers =====

def _handle_place_capital(state, action, defs, rng) -> ActionResult:
    territory = _text(action.payload, "territory")
    if territory is None:
        return _missing("territory")
    return setup.place_capital(state, defs, action.player, territory)


def _handle_place_unit(state, action, defs, rng) -> ActionResult:
    territory = _text(action.payload, "territory")
    unit_type = _text(action.payload, "unit_type")
    if territory is None or unit_type is None:
        return _missing("territory", "unit_type")
    return setup.place_unit(state, defs, action.player, territory, unit_type)


def _handle_undo_placement(state, action, defs, rng) -> ActionResult:
    return setup.undo_placement(state, defs, action.player)


def _handle_finish_placement_round(state, action, defs, rng) -> ActionResult:
    return setup.finish_placement_round(state, defs, action.player)


# ===== Economy Handlers =====

def _handle_purchase_tech_dice(state, action, defs, rng) -> ActionResult:
    return economy.purchase_tech_dice(state, defs, action.player, action.payload.get("count", 1))


def _handle_roll_tech_dice(state, action, defs, rng) -> ActionResult:
    return economy.roll_tech_dice(state, defs, action.player, rng)


def _handle_unlock_tech(state, action, defs, rng) -> ActionResult:
    tech_id = _text(action.payload, "tech_id")
    if tech_id is None:
        return _missing("tech_id")
    return economy.unlock_tech(state, defs, action.player, tech_id)


def _handle_purchase_unit(state, action, defs, rng) -> ActionResult:
    unit_type = _text(action.payload, "unit_type")
    if unit_type is None:
        return _missing("unit_type")
    return economy.purchase_unit(
        state, defs, action.player, unit_type,
        action.payload.get("quantity", 1),
        _text(action.payload, "territory"),
    )


def _handle_remove_purchase(state, action, defs, rng) -> ActionResult:
    unit_type = _text(action.payload, "unit_type")
    if unit_type is None:
        return _missing("unit_type")
    return economy.remove_purchase(state, defs, action.player, unit_type)


def _handle_trade_cards(state, action, defs, rng) -> ActionResult:
    return economy.trade_cards(state, defs, action.player, action.payload.get("cards"))


def _handle_mobilize_unit(state, action, defs, rng) -> ActionResult:
    unit_type = _text(action.payload, "unit_type")
    territory = _text(action.payload, "territory")
    if unit_type is None or territory is None:
        return _missing("unit_type", "territory")
    return economy.mobilize_unit(state, defs, action.player, unit_type, territory)


# ===== Undo Records =====

def _snapshot(state: GameState, player: str, territories: list[str]) -> dict[str, Any]:
    """Serialized copy of everything a movement step can touch."""
    return {
        "territories": {t: state.territories[t].to_dict() for t in territories if t in state.territories},
        "ships": {sid: s.to_dict() for sid, s in state.ships.items()},
        "ship_id_counter": state.ship_id_counter,
        "air_unit_origins": {
            dest: {ut: o.to_dict() for ut, o in by_type.items()}
            for dest, by_type in state.air_unit_origins.items()
        },
        "amphibious_territories": list(state.amphibious_territories),
        "conquered_this_turn": dict(state.conquered_this_turn),
        "cards": list(state.cards.get(player, [])),
        "player_state": {pid: ps.to_dict() for pid, ps in state.player_state.items()},
    }


def _restore(state: GameState, player: str, prior: dict[str, Any]) -> None:
    for name, data in prior.get("territories", {}).items():
        state.territories[name] = TerritoryState.from_dict(data)
    state.ships = {sid: Ship.from_dict(s) for sid, s in prior.get("ships", {}).items()}
    state.ship_id_counter = prior.get("ship_id_counter", state.ship_id_counter)
    state.air_unit_origins = {
        dest: {ut: AirOrigin.from_dict(o) for ut, o in by_type.items()}
        for dest, by_type in prior.get("air_unit_origins", {}).items()
    }
    state.amphibious_territories = list(prior.get("amphibious_territories", []))
    state.conquered_this_turn = dict(prior.get("conquered_this_turn", {}))
    state.cards[player] = list(prior.get("cards", []))
    state.player_state = {pid: PlayerState.from_dict(ps) for pid, ps in prior.get("player_state", {}).items()}


def _recorded(
    state: GameState,
    action: Action,
    kind: str,
    from_territory: str,
    to_territory: str,
    run: Callable[[], ActionResult],
) -> ActionResult:
    """Run a movement step and, if it succeeds, push an undo record for it."""
    prior = _snapshot(state, action.player, [from_territory, to_territory])
    result = run()
    if result.success:
        ship_ids = list(action.payload.get("ship_ids") or []) + list(result.facts.get("ship_ids") or [])
        if result.facts.get("ship_id") and result.facts["ship_id"] not in ship_ids:
            ship_ids.append(result.facts["ship_id"])
        state.move_history.append(MoveRecord(
            kind=kind,
            player=action.player,
            from_territory=from_territory,
            to_territory=to_territory,
            units=dict(action.payload.get("units") or {}) if kind == "move" else {},
            ship_ids=ship_ids,
            captured=bool(result.facts.get("captured")),
            previous_owner=result.facts.get("previous_owner"),
            card_awarded=result.facts.get("card_awarded"),
            prior=prior,
        ))
    return result


# ===== Movement Handlers =====

def _handle_move_units(state, action, defs, rng) -> ActionResult:
    payload = action.payload
    from_territory = _text(payload, "from")
    to_territory = _text(payload, "to")
    units = payload.get("units") or {}
    ship_ids = payload.get("ship_ids") or []
    if from_territory is None or to_territory is None:
        return _missing("from", "to")
    if not isinstance(units, dict) or not isinstance(ship_ids, list):
        return ActionResult.fail(results.INVALID_PAYLOAD, "units must be an object and ship_ids a list")
    return _recorded(state, action, "move", from_territory, to_territory,
                     lambda: movement.move_units(state, defs, action.player, from_territory, to_territory,
                                                 units, ship_ids, rng))


def _handle_load_transport(state, action, defs, rng) -> ActionResult:
    payload = action.payload
    sea_zone = _text(payload, "sea_zone")
    unit_type = _text(payload, "unit_type")
    land = _text(payload, "land_territory")
    if sea_zone is None or unit_type is None or land is None:
        return _missing("sea_zone", "unit_type", "land_territory")
    return _recorded(state, action, "load", land, sea_zone,
                     lambda: logistics.load_transport(state, defs, action.player, sea_zone, unit_type, land,
                                                      _text(payload, "ship_id")))


def _unload(state, action, defs, rng, single: bool) -> ActionResult:
    payload = action.payload
    sea_zone = _text(payload, "sea_zone")
    ship_id = _text(payload, "ship_id")
    territory = _text(payload, "territory")
    unit_type = _text(payload, "unit_type")
    if sea_zone is None or ship_id is None or territory is None or (single and unit_type is None):
        return _missing("sea_zone", "ship_id", "territory", *(["unit_type"] if single else []))
    combat_move = state.turn_phase == TurnPhase.COMBAT_MOVE

    def run() -> ActionResult:
        if single:
            result = logistics.unload_unit(state, defs, action.player, sea_zone, ship_id, unit_type,
                                           territory, combat_move)
        else:
            result = logistics.unload_transport(state, defs, action.player, sea_zone, ship_id,
                                                territory, combat_move)
        if not result.success:
            return result
        capture_events, facts = movement.capture_on_entry(state, defs, action.player, territory, rng)
        result.events.extend(capture_events)
        result.facts.update(facts)
        result.facts["ship_ids"] = [ship_id]
        return result

    return _recorded(state, action, "unload", sea_zone, territory, run)


def _handle_unload_transport(state, action, defs, rng) -> ActionResult:
    return _unload(state, action, defs, rng, single=False)


def _handle_unload_unit(state, action, defs, rng) -> ActionResult:
    return _unload(state, action, defs, rng, single=True)


def _handle_land_on_carrier(state, action, defs, rng) -> ActionResult:
    payload = action.payload
    sea_zone = _text(payload, "sea_zone")
    unit_type = _text(payload, "unit_type")
    from_territory = _text(payload, "from_territory")
    if sea_zone is None or unit_type is None or from_territory is None:
        return _missing("sea_zone", "unit_type", "from_territory")
    if sea_zone not in state.territories or not defs.map.is_water(sea_zone):
        return ActionResult.fail(results.ILLEGAL_DESTINATION, f"{sea_zone} is not a sea zone")
    if from_territory not in state.territories:
        return ActionResult.fail(results.UNKNOWN_TERRITORY, f"Unknown territory {from_territory}")
    distance = 0
    if from_territory != sea_zone:
        remaining = movement.air_remaining_movement(state, defs, from_territory, unit_type, action.player)
        reach = movement.reachable_for_air(state, defs, from_territory, action.player, remaining,
                                           state.turn_phase == TurnPhase.COMBAT_MOVE, unit_type)
        if sea_zone not in reach:
            return ActionResult.fail(results.NOT_REACHABLE, f"{unit_type} cannot reach {sea_zone}")
        distance = reach[sea_zone].distance
    return _recorded(state, action, "land", from_territory, sea_zone,
                     lambda: logistics.land_on_carrier(state, defs, action.player, sea_zone, unit_type,
                                                       from_territory, distance, _text(payload, "ship_id")))


def _handle_launch_from_carrier(state, action, defs, rng) -> ActionResult:
    payload = action.payload
    sea_zone = _text(payload, "sea_zone")
    ship_id = _text(payload, "ship_id")
    if sea_zone is None or ship_id is None:
        return _missing("sea_zone", "ship_id")
    index = payload.get("index", 0)
    return _recorded(state, action, "launch", sea_zone, sea_zone,
                     lambda: logistics.launch_from_carrier(state, defs, action.player, sea_zone, ship_id, index))


def _handle_undo_move(state, action, defs, rng) -> ActionResult:
    """Pop the last movement step and restore everything it touched."""
    if state.game_over:
        return ActionResult.fail(results.GAME_OVER, "The game is over; moves can no longer be undone")
    if not state.move_history:
        return ActionResult.fail(results.NOTHING_TO_UNDO, "No move to undo")
    record = state.move_history.pop()
    _restore(state, action.player, record.prior)
    events = [ev.move_undone(action.player, record.kind, record.from_territory, record.to_territory)]
    return ActionResult.ok(
        events,
        kind=record.kind,
        restored_owner=record.previous_owner if record.captured else None,
        card_revoked=record.card_awarded,
    )


# ===== Combat Handler =====

def _handle_resolve_combat(state, action, defs, rng) -> ActionResult:
    territory = _text(action.payload, "territory")
    if territory is None:
        return _missing("territory")
    if territory not in state.combat_queue:
        return ActionResult.fail(results.NO_COMBAT, f"No pending combat in {territory}")
    result, events = resolve_combat(state, defs, territory, rng)
    return ActionResult.ok(events, **result.to_dict())


# ===== Phase Transitions =====

def clear_moved_flags(state: GameState) -> None:
    """
    Reset movement state: ship flags are cleared, plain ships rejoin their stacks,
    and stacks of the same (type, owner) are merged.
    """
    for ship in state.ships.values():
        ship.moved = False
        ship.movement_used = 0
    merge_idle_ships(state)
    for ts in state.territories.values():
        merged: dict[tuple[str, str], UnitStack] = {}
        for stack in ts.units:
            key = (stack.unit_type, stack.owner)
            if key in merged:
                merged[key].quantity += stack.quantity
                merged[key].damaged_count += stack.damaged_count
            else:
                merged[key] = UnitStack(stack.unit_type, stack.quantity, stack.owner,
                                        damaged_count=stack.damaged_count)
        ts.units = [s for s in merged.values() if s.quantity > 0]


def next_turn(state: GameState, defs: GameDefinitions) -> list[GameEvent]:
    """Hand the turn to the next player and reset every per-turn record."""
    clear_moved_flags(state)
    state.current_player_index += 1
    if state.current_player_index >= len(state.players):
        state.current_player_index = 0
        state.round += 1
        state.combat_log = []

    state.pending_purchases = []
    state.combat_queue = []
    state.cleared_sea_zones = []
    state.combat_rounds = {}
    state.amphibious_territories = []
    state.move_history = []
    state.placement_history = []
    state.air_unit_origins = {}
    state.turn_phase = TurnPhase.DEVELOP_TECH
    state.init_turn_start_territories()
    player = state.current_player_id
    state.conquered_this_turn[player] = False
    logger.debug("Round %d: %s to move", state.round, player)
    return [ev.turn_started(state.round, player)]


def _set_turn_phase(state: GameState, new_phase: str, events: list[GameEvent]) -> None:
    events.append(ev.phase_changed(state.turn_phase, new_phase, state.current_player_id))
    state.turn_phase = new_phase


def _end_turn(state: GameState, defs: GameDefinitions, player: str) -> list[GameEvent]:
    events = repair_player_battleships(state, defs, player)
    events.extend(economy.collect_income(state, defs, player))
    events.append(ev.phase_changed(TurnPhase.COLLECT_INCOME, TurnPhase.DEVELOP_TECH, player))
    events.extend(next_turn(state, defs))
    return events


def _handle_end_phase(state, action, defs, rng) -> ActionResult:
    """
    Advance to the next turn phase.
    combat_move -> combat only with contact; mobilize only with purchases;
    entering collect income pays out and starts the next player's turn.
    """
    player = action.player
    phase = state.turn_phase
    if phase == TurnPhase.COMBAT and state.combat_queue:
        return ActionResult.fail(results.COMBAT_PENDING,
                                 f"Resolve combat first: {', '.join(state.combat_queue)}")
    events = []
    if phase == TurnPhase.COLLECT_INCOME:
        events.extend(_end_turn(state, defs, player))
        return ActionResult.ok(events, turn_phase=state.turn_phase)
    if phase == TurnPhase.MOBILIZE:
        events.extend(economy.place_pending_purchases(state, defs, player))

    state.move_history = []
    new_phase = TURN_PHASE_ORDER[(TURN_PHASE_ORDER.index(phase) + 1) % len(TURN_PHASE_ORDER)]
    if new_phase == TurnPhase.COMBAT:
        state.combat_queue = detect_combats(state, defs)
        if state.combat_queue:
            events.append(ev.combats_detected(player, list(state.combat_queue)))
        else:
            new_phase = TurnPhase.NON_COMBAT_MOVE
    if new_phase == TurnPhase.MOBILIZE and not any(p.owner == player for p in state.pending_purchases):
        new_phase = TurnPhase.COLLECT_INCOME

    if new_phase == TurnPhase.COLLECT_INCOME:
        _set_turn_phase(state, new_phase, events)
        events.extend(_end_turn(state, defs, player))
    else:
        _set_turn_phase(state, new_phase, events)
    return ActionResult.ok(events, turn_phase=state.turn_phase)


_HANDLERS: dict[str, Callable[[GameState, Action, GameDefinitions, random.Random], ActionResult]] = {
    "place_capital": _handle_place_capital,
    "place_unit": _handle_place_unit,
    "undo_placement": _handle_undo_placement,
    "finish_placement_round": _handle_finish_placement_round,
    "purchase_tech_dice": _handle_purchase_tech_dice,
    "roll_tech_dice": _handle_roll_tech_dice,
    "unlock_tech": _handle_unlock_tech,
    "purchase_unit": _handle_purchase_unit,
    "remove_purchase": _handle_remove_purchase,
    "trade_cards": _handle_trade_cards,
    "move_units": _handle_move_units,
    "undo_move": _handle_undo_move,
    "load_transport": _handle_load_transport,
    "unload_transport": _handle_unload_transport,
    "unload_unit": _handle_unload_unit,
    "land_on_carrier": _handle_land_on_carrier,
    "launch_from_carrier": _handle_launch_from_carrier,
    "resolve_combat": _handle_resolve_combat,
    "mobilize_unit": _handle_mobilize_unit,
    "end_phase": _handle_end_phase,
}
