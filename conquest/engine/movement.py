"""
Movement calculations and pathfinding.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from conquest.engine import TurnPhase
from conquest.engine import events as ev
from conquest.engine import results
from conquest.engine.combat import capture_territory
from conquest.engine.definitions import GameDefinitions, UnitDefinition
from conquest.engine.economy import unit_movement
from conquest.engine.events import GameEvent
from conquest.engine.logistics import carrier_space, land_aircraft, load_cargo, plan_aircraft, plan_cargo
from conquest.engine.results import ActionResult
from conquest.engine.state import AirOrigin, GameState, UnitStack

logger = logging.getLogger("conquest.engine.movement")


@dataclass
class Reach:
    """Shortest hop count to a territory and one path of that length (start included)."""
    distance: int
    path: list[str] = field(default_factory=list)


@dataclass
class LandingOption:
    territory: str
    distance: int
    on_carrier: bool = False


# ===== Hostility =====

def has_hostile_units(state: GameState, player: str, territory: str) -> bool:
    return any(state.is_enemy(player, owner) for _, owner, _ in state.hulls(territory))


def has_hostile_combat_units(state: GameState, defs: GameDefinitions, player: str, territory: str) -> bool:
    """Enemy units that can fight; transports and other 0/0 hulls do not count."""
    for unit_type, owner, _ in state.hulls(territory):
        if not state.is_enemy(player, owner):
            continue
        unit_def = defs.unit(unit_type)
        if unit_def and unit_def.can_defend and not unit_def.is_transport:
            return True
    return False


def is_hostile_territory(state: GameState, player: str, territory: str) -> bool:
    """Enemy-owned, or holding enemy units."""
    return state.is_enemy(player, state.owner(territory)) or has_hostile_units(state, player, territory)


def friendly_at_turn_start(state: GameState, player: str) -> set[str]:
    if state.friendly_territories_at_turn_start:
        return set(state.friendly_territories_at_turn_start)
    logger.warning("No friendly territories recorded at turn start; using current ownership for %s", player)
    return set(state.derive_friendly_territories(player))


# ===== Reachability =====

def _bfs(
    defs: GameDefinitions,
    start: str,
    max_distance: int,
    can_enter: Callable[[str], bool],
    can_continue: Callable[[str], bool],
    land_bridges: bool,
) -> dict[str, Reach]:
    """
    Breadth-first search up to max_distance hops.
    can_enter decides whether a territory may be reached at all, can_continue
    whether movement may go on through it.
    """
    reach: dict[str, Reach] = {}
    visited = {start}
    queue: deque[tuple[str, int, list[str]]] = deque([(start, 0, [start])])
    while queue:
        name, distance, path = queue.popleft()
        if distance >= max_distance:
            continue
        if name != start and not can_continue(name):
            continue
        for adjacent in defs.map.connections(name, land_bridges=land_bridges):
            if adjacent in visited or not can_enter(adjacent):
                continue
            visited.add(adjacent)
            new_path = path + [adjacent]
            reach[adjacent] = Reach(distance + 1, new_path)
            queue.append((adjacent, distance + 1, new_path))
    return reach


def reachable_for_land(
    state: GameState,
    defs: GameDefinitions,
    start: str,
    player: str,
    max_distance: int,
    combat_move: bool,
) -> dict[str, Reach]:
    """
    Land territories a land unit can reach.
    Hostile territory stops movement; outside combat move it cannot be entered at all.
    """
    def can_enter(name: str) -> bool:
        if name not in state.territories or defs.map.is_water(name):
            return False
        return combat_move or not is_hostile_territory(state, player, name)

    def can_continue(name: str) -> bool:
        return not is_hostile_territory(state, player, name)

    return _bfs(defs, start, max_distance, can_enter, can_continue, land_bridges=True)


def reachable_for_sea(
    state: GameState,
    defs: GameDefinitions,
    start: str,
    player: str,
    max_distance: int,
    combat_move: bool,
) -> dict[str, Reach]:
    """Sea zones a ship can reach. Hostile warships block only non-combat movement."""
    def passable(name: str) -> bool:
        return combat_move or not has_hostile_combat_units(state, defs, player, name)

    def can_enter(name: str) -> bool:
        return name in state.territories and defs.map.is_water(name) and passable(name)

    return _bfs(defs, start, max_distance, can_enter, passable, land_bridges=False)


def _air_reach(state: GameState, defs: GameDefinitions, start: str, max_distance: int) -> dict[str, Reach]:
    return _bfs(defs, start, max_distance, lambda n: n in state.territories, lambda n: True, land_bridges=True)


def reachable_for_air(
    state: GameState,
    defs: GameDefinitions,
    start: str,
    player: str,
    max_distance: int,
    combat_move: bool,
    unit_type: str,
) -> dict[str, Reach]:
    """
    Anywhere within range. A sea zone is a destination only with free carrier
    space for unit_type, or during combat move when it holds enemy units to attack.
    """
    reach = _air_reach(state, defs, start, max_distance)
    return {
        name: r for name, r in reach.items()
        if not defs.map.is_water(name)
        or (combat_move and has_hostile_units(state, player, name))
        or carrier_space(state, defs, name, player, unit_type) > 0
    }


# ===== Air Landing =====

def air_remaining_movement(
    state: GameState,
    defs: GameDefinitions,
    territory: str,
    unit_type: str,
    player: str | None = None,
) -> int:
    unit_def = defs.unit(unit_type)
    if not unit_def:
        return 0
    origin = state.air_unit_origins.get(territory, {}).get(unit_type)
    if origin:
        return max(0, origin.movement - origin.distance)
    player = player or state.current_player_id
    allowance = unit_movement(state, defs, player, unit_type)
    ts = state.territories.get(territory)
    used = [s.movement_used for s in (ts.units if ts else []) if s.unit_type == unit_type and s.owner == player]
    if used:
        return max(0, allowance - min(used))
    return allowance


def get_air_landing_options(
    state: GameState,
    defs: GameDefinitions,
    territory: str,
    unit_type: str,
    player: str | None = None,
    remaining: int | None = None,
) -> list[LandingOption]:
    """
    Where an aircraft in territory could still land: territory held since turn start,
    or a sea zone with a carrier that has room for it. Nearest first.
    """
    player = player or state.current_player_id
    if remaining is None:
        remaining = air_remaining_movement(state, defs, territory, unit_type, player)
    friendly = friendly_at_turn_start(state, player)
    distances = {territory: 0}
    for name, r in _air_reach(state, defs, territory, remaining).items():
        distances[name] = r.distance
    options = []
    for name, distance in distances.items():
        if defs.map.is_water(name):
            if carrier_space(state, defs, name, player, unit_type) > 0:
                options.append(LandingOption(name, distance, on_carrier=True))
        elif name in friendly and not state.is_enemy(player, state.owner(name)):
            options.append(LandingOption(name, distance))
    options.sort(key=lambda o: (o.distance, o.territory))
    return options


def check_air_unit_can_land(
    state: GameState,
    defs: GameDefinitions,
    from_territory: str,
    to_territory: str,
    unit_type: str,
    player: str | None = None,
) -> tuple[bool, int]:
    """Whether an aircraft flying from_territory -> to_territory could still land afterwards."""
    remaining = air_remaining_movement(state, defs, from_territory, unit_type, player)
    if from_territory == to_territory:
        hop = 0
    else:
        reach = _air_reach(state, defs, from_territory, remaining)
        if to_territory not in reach:
            return False, 0
        hop = reach[to_territory].distance
    left = remaining - hop
    options = get_air_landing_options(state, defs, to_territory, unit_type, player, remaining=left)
    return bool(options), left


# ===== Move Execution =====

def capture_on_entry(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    territory: str,
    rng: random.Random,
) -> tuple[list[GameEvent], dict]:
    """
    Land units walking into an empty enemy territory take it at once.
    Neutral territory is not captured. Returns (events, facts).
    """
    facts = {"captured": False, "card_awarded": None, "previous_owner": state.owner(territory)}
    if defs.map.is_water(territory):
        return [], facts
    if not state.is_enemy(player, state.owner(territory)) or has_hostile_units(state, player, territory):
        return [], facts
    events, card = capture_territory(state, defs, territory, player, rng)
    facts["captured"] = True
    facts["card_awarded"] = card
    return events, facts


def _eligible(unit_def: UnitDefinition, distance: int, allowance: int) -> Callable[[UnitStack], bool]:
    if unit_def.is_air:
        return lambda s: allowance - s.movement_used >= distance
    return lambda s: not s.moved


def _available(state: GameState, territory: str, unit_type: str, player: str,
               eligible: Callable[[UnitStack], bool]) -> int:
    return sum(
        s.quantity for s in state.territories[territory].units
        if s.unit_type == unit_type and s.owner == player and eligible(s)
    )


def _take(state: GameState, territory: str, unit_type: str, player: str, quantity: int,
          eligible: Callable[[UnitStack], bool]) -> list[int]:
    """Remove quantity units, freshest first. Returns movement_used of each removed unit."""
    ts = state.territories[territory]
    taken = []
    for stack in sorted(ts.units, key=lambda s: s.movement_used):
        if len(taken) >= quantity:
            break
        if stack.unit_type != unit_type or stack.owner != player or not eligible(stack):
            continue
        n = min(stack.quantity, quantity - len(taken))
        stack.quantity -= n
        stack.damaged_count = min(stack.damaged_count, stack.quantity)
        taken.extend([stack.movement_used] * n)
    ts.prune()
    return taken


def move_units(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    from_territory: str,
    to_territory: str,
    units: dict[str, int] | None,
    ship_ids: list[str] | None,
    rng: random.Random,
) -> ActionResult:
    """
    Validate and move grouped units and individual ships in one step.
    Everything is checked before anything moves.
    """
    combat_move = state.turn_phase == TurnPhase.COMBAT_MOVE
    for name in (from_territory, to_territory):
        if name not in state.territories or name not in defs.map.territories:
            return ActionResult.fail(results.UNKNOWN_TERRITORY, f"Unknown territory {name}")
    if from_territory == to_territory:
        return ActionResult.fail(results.ILLEGAL_DESTINATION, "Source and destination are the same")
    units = units or {}
    ship_ids = ship_ids or []
    if not units and not ship_ids:
        return ActionResult.fail(results.INVALID_PAYLOAD, "Nothing to move")
    if len(set(ship_ids)) != len(ship_ids):
        return ActionResult.fail(results.INVALID_PAYLOAD, "Ship listed twice")

    to_water = defs.map.is_water(to_territory)
    if not combat_move and not to_water and is_hostile_territory(state, player, to_territory):
        return ActionResult.fail(results.ILLEGAL_DESTINATION,
                                 f"Cannot enter hostile {to_territory} outside combat move")

    steps = []
    boarding: list[str] = []  # land units loading onto transports in to_territory
    landing: list[str] = []  # aircraft landing on carriers in to_territory
    for unit_type, quantity in units.items():
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            return ActionResult.fail(results.INVALID_PAYLOAD, f"Bad quantity for {unit_type}: {quantity!r}")
        unit_def = defs.unit(unit_type)
        if not unit_def:
            return ActionResult.fail(results.UNKNOWN_UNIT, f"Unknown unit type {unit_type}")
        if unit_def.is_building or unit_def.movement <= 0:
            return ActionResult.fail(results.NOT_REACHABLE, f"{unit_type} cannot move")

        allowance = unit_movement(state, defs, player, unit_type)
        if unit_def.is_air:
            reach = reachable_for_air(state, defs, from_territory, player, allowance,
                                      combat_move, unit_type)
            if to_territory not in reach:
                return ActionResult.fail(results.NOT_REACHABLE, f"{unit_type} cannot reach {to_territory}")
            distance = reach[to_territory].distance
            if to_water and not (combat_move and has_hostile_units(state, player, to_territory)):
                landing.extend([unit_type] * quantity)
            elif (not to_water and not combat_move
                  and to_territory not in friendly_at_turn_start(state, player)):
                return ActionResult.fail(results.ILLEGAL_DESTINATION,
                                         "Aircraft must land in territory held since turn start")
        elif unit_def.is_land:
            if to_water:
                if to_territory not in defs.map.connections(from_territory, land_bridges=False):
                    return ActionResult.fail(results.NOT_REACHABLE, f"{to_territory} is not adjacent")
                distance = 1
                boarding.extend([unit_type] * quantity)
            else:
                reach = reachable_for_land(state, defs, from_territory, player, allowance, combat_move)
                if to_territory not in reach:
                    return ActionResult.fail(results.NOT_REACHABLE, f"{unit_type} cannot reach {to_territory}")
                distance = reach[to_territory].distance
        else:
            if not to_water:
                return ActionResult.fail(results.ILLEGAL_DESTINATION, f"{unit_type} cannot leave the sea")
            reach = reachable_for_sea(state, defs, from_territory, player, allowance, combat_move)
            if to_territory not in reach:
                return ActionResult.fail(results.NOT_REACHABLE, f"{unit_type} cannot reach {to_territory}")
            distance = reach[to_territory].distance

        eligible = _eligible(unit_def, distance, allowance)
        if _available(state, from_territory, unit_type, player, eligible) < quantity:
            return ActionResult.fail(results.INSUFFICIENT_UNITS,
                                     f"Not enough {unit_type} able to move from {from_territory}")
        steps.append((unit_type, quantity, distance, unit_def, eligible))

    ship_steps = []
    for ship_id in ship_ids:
        ship = state.ships.get(ship_id)
        if not ship or ship_id not in state.territories[from_territory].ship_ids or ship.owner != player:
            return ActionResult.fail(results.UNKNOWN_SHIP, f"No ship {ship_id} of yours in {from_territory}")
        unit_def = defs.unit(ship.unit_type)
        if not unit_def or not unit_def.is_sea:
            return ActionResult.fail(results.UNKNOWN_UNIT, f"Unknown ship type {ship.unit_type}")
        reach = reachable_for_sea(state, defs, from_territory, player,
                                  unit_def.movement - ship.movement_used, combat_move)
        if to_territory not in reach:
            return ActionResult.fail(results.NOT_REACHABLE, f"{ship_id} cannot reach {to_territory}")
        ship_steps.append((ship, reach[to_territory].distance))

    cargo_plan = air_plan = None
    if boarding:
        cargo_plan = plan_cargo(state, defs, to_territory, player, boarding)
        if cargo_plan is None:
            return ActionResult.fail(results.CAPACITY_EXCEEDED, f"Not enough transport space in {to_territory}")
    if landing:
        air_plan = plan_aircraft(state, defs, to_territory, player, landing)
        if air_plan is None:
            return ActionResult.fail(results.CAPACITY_EXCEEDED, f"Not enough carrier space in {to_territory}")

    # Validation done; mutate
    is_attack = combat_move and is_hostile_territory(state, player, to_territory)
    dest = state.territories[to_territory]
    used_ships: list[str] = []
    if cargo_plan is not None:
        for unit_type, quantity, _, unit_def, eligible in steps:
            if unit_def.is_land:
                _take(state, from_territory, unit_type, player, quantity, eligible)
        used_ships.extend(load_cargo(state, defs, to_territory, player, boarding, cargo_plan))
    if air_plan is not None:
        for unit_type, quantity, _, unit_def, eligible in steps:
            if unit_def.is_air:
                _take(state, from_territory, unit_type, player, quantity, eligible)
        used_ships.extend(land_aircraft(state, defs, to_territory, player, landing, air_plan))
    for unit_type, quantity, distance, unit_def, eligible in steps:
        if (unit_def.is_land and cargo_plan is not None) or (unit_def.is_air and air_plan is not None):
            continue
        for used in _take(state, from_territory, unit_type, player, quantity, eligible):
            dest.add_units(unit_type, player, 1, moved=True, movement_used=used + distance)

    if combat_move:
        for unit_type, _, distance, unit_def, _ in steps:
            if not unit_def.is_air:
                continue
            prior = state.air_unit_origins.get(from_territory, {}).pop(unit_type, None)
            if from_territory in state.air_unit_origins and not state.air_unit_origins[from_territory]:
                del state.air_unit_origins[from_territory]
            state.air_unit_origins.setdefault(to_territory, {})[unit_type] = AirOrigin(
                origin=prior.origin if prior else from_territory,
                distance=(prior.distance if prior else 0) + distance,
                movement=unit_movement(state, defs, player, unit_type),
            )

    source = state.territories[from_territory]
    for ship, distance in ship_steps:
        source.ship_ids.remove(ship.id)
        dest.ship_ids.append(ship.id)
        ship.moved = True
        ship.movement_used += distance

    events = [ev.units_moved(player, from_territory, to_territory, dict(units), list(ship_ids),
                             state.turn_phase)]
    facts = {"captured": False, "card_awarded": None, "previous_owner": state.owner(to_territory)}
    if any(step[3].is_land for step in steps) and not to_water:
        capture_events, facts = capture_on_entry(state, defs, player, to_territory, rng)
        events.extend(capture_events)

    air_types = [step[0] for step in steps if step[3].is_air]
    air_can_land = True
    if combat_move and air_types:
        air_can_land = all(
            get_air_landing_options(state, defs, to_territory, unit_type, player) for unit_type in air_types
        )
    return ActionResult.ok(
        events,
        is_attack=is_attack,
        air_can_land=air_can_land,
        ship_ids=used_ships,
        **facts,
    )
