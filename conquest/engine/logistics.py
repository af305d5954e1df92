"""
Cargo handling: land units on transports, aircraft on carriers.
Grouped hulls are split into individual ships when they take on cargo, and merged
back at turn end once they are empty and undamaged.
"""

import logging
from dataclasses import dataclass, field

from conquest.engine import events as ev
from conquest.engine import results
from conquest.engine.definitions import GameDefinitions
from conquest.engine.economy import unit_movement
from conquest.engine.results import ActionResult
from conquest.engine.state import CargoItem, GameState, Ship, UnitStack

logger = logging.getLogger("conquest.engine.logistics")


# ===== Capacity Rules =====

def can_load_on_transport(
    defs: GameDefinitions,
    transport_type: str,
    cargo: list[str],
    unit_type: str,
) -> bool:
    """
    Whether unit_type fits on a transport already holding cargo (unit types).
    Two infantry-equivalents, one infantry plus one other, or one other alone.
    """
    t_def = defs.unit(transport_type)
    u_def = defs.unit(unit_type)
    if not t_def or not u_def or not t_def.is_transport or not u_def.is_land:
        return False
    if unit_type not in t_def.can_carry:
        return False
    if len(cargo) >= t_def.cargo_capacity:
        return False
    if u_def.is_infantry:
        return True
    for carried in cargo:
        c_def = defs.unit(carried)
        if not c_def or not c_def.is_infantry:
            return False
    return True


def can_land_on_carrier(
    defs: GameDefinitions,
    carrier_type: str,
    aircraft: list[str],
    unit_type: str,
) -> bool:
    c_def = defs.unit(carrier_type)
    u_def = defs.unit(unit_type)
    if not c_def or not u_def or not c_def.is_carrier or not u_def.is_air:
        return False
    return unit_type in c_def.can_carry and len(aircraft) < c_def.aircraft_capacity


# ===== Individual Ships =====

def individualize_ship(
    state: GameState,
    territory: str,
    unit_type: str,
    owner: str,
    stack: UnitStack | None = None,
) -> Ship | None:
    """
    Split one hull off a grouped stack into a tracked Ship with a fresh id.
    The ship inherits the stack's movement state. Returns None if no hull is available.
    """
    ts = state.territories.get(territory)
    if not ts:
        return None
    if stack is None:
        for s in ts.units:
            if s.unit_type == unit_type and s.owner == owner and s.quantity > 0:
                stack = s
                break
    if stack is None or stack.quantity <= 0:
        return None
    stack.quantity -= 1
    damaged = False
    if stack.damaged_count > 0:
        stack.damaged_count -= 1
        damaged = True
    stack.damaged_count = min(stack.damaged_count, stack.quantity)
    ts.prune()
    ship = Ship(
        id=state.next_ship_id(unit_type),
        unit_type=unit_type,
        owner=owner,
        moved=stack.moved,
        movement_used=stack.movement_used,
        damaged=damaged,
    )
    state.ships[ship.id] = ship
    ts.ship_ids.append(ship.id)
    return ship


def remove_ship(state: GameState, territory: str, ship_id: str) -> Ship | None:
    ts = state.territories.get(territory)
    if ts and ship_id in ts.ship_ids:
        ts.ship_ids.remove(ship_id)
    return state.ships.pop(ship_id, None)


def merge_idle_ships(state: GameState) -> int:
    """Fold empty, undamaged ships back into their fungible stacks. Returns the number merged."""
    merged = 0
    for name, ts in state.territories.items():
        for ship_id in list(ts.ship_ids):
            ship = state.ships.get(ship_id)
            if ship is None:
                ts.ship_ids.remove(ship_id)
                continue
            if not ship.is_plain():
                continue
            remove_ship(state, name, ship_id)
            ts.add_units(ship.unit_type, ship.owner, 1, moved=ship.moved, movement_used=ship.movement_used)
            merged += 1
    return merged


# ===== Slot Planning =====

@dataclass
class _Slot:
    """A hull that can take cargo: an existing ship or one not-yet-split hull of a stack."""
    unit_type: str
    contents: list[str]
    ship_id: str | None = None
    stack: UnitStack | None = None
    assigned: list[str] = field(default_factory=list)


def _slots(state: GameState, defs: GameDefinitions, zone: str, player: str, kind: str) -> list[_Slot]:
    ts = state.territories.get(zone)
    if not ts:
        return []
    slots = []
    for ship in state.ships_at(zone):
        s_def = defs.unit(ship.unit_type)
        if ship.owner != player or not s_def:
            continue
        if kind == "cargo" and s_def.is_transport:
            slots.append(_Slot(ship.unit_type, [c.unit_type for c in ship.cargo], ship_id=ship.id))
        elif kind == "aircraft" and s_def.is_carrier:
            slots.append(_Slot(ship.unit_type, [a.unit_type for a in ship.aircraft], ship_id=ship.id))
    for stack in ts.units:
        s_def = defs.unit(stack.unit_type)
        if stack.owner != player or not s_def:
            continue
        if (kind == "cargo" and s_def.is_transport) or (kind == "aircraft" and s_def.is_carrier):
            slots.extend(_Slot(stack.unit_type, [], stack=stack) for _ in range(stack.quantity))
    return slots


def _plan(
    state: GameState,
    defs: GameDefinitions,
    zone: str,
    player: str,
    unit_types: list[str],
    kind: str,
) -> list[_Slot] | None:
    """Assign every unit to a slot, or None if they do not all fit."""
    slots = _slots(state, defs, zone, player, kind)
    fits = can_load_on_transport if kind == "cargo" else can_land_on_carrier

    def is_infantry(unit_type):
        u_def = defs.unit(unit_type)
        return bool(u_def and u_def.is_infantry)

    # Non-infantry first so it can pair with a lone infantry
    ordered = sorted(unit_types, key=is_infantry)
    for unit_type in ordered:
        candidates = [s for s in slots if fits(defs, s.unit_type, s.contents + s.assigned, unit_type)]
        if not candidates:
            return None
        # Fill partly-loaded existing hulls before splitting new ones off a stack
        candidates.sort(key=lambda s: (-(len(s.contents) + len(s.assigned)), s.stack is not None))
        candidates[0].assigned.append(unit_type)
    return [s for s in slots if s.assigned]


def _apply_plan(state: GameState, zone: str, player: str, plan: list[_Slot], kind: str) -> list[str]:
    ship_ids = []
    for slot in plan:
        if slot.ship_id is None:
            ship = individualize_ship(state, zone, slot.unit_type, player, stack=slot.stack)
        else:
            ship = state.ships.get(slot.ship_id)
        if ship is None:
            # Stack ran out while splitting; planning counted its hulls, so this is a bug
            raise RuntimeError(f"No {slot.unit_type} hull left in {zone} to take {slot.assigned}")
        target = ship.cargo if kind == "cargo" else ship.aircraft
        target.extend(CargoItem(unit_type, player) for unit_type in slot.assigned)
        ship_ids.append(ship.id)
    return ship_ids


def plan_cargo(state: GameState, defs: GameDefinitions, zone: str, player: str,
               unit_types: list[str]) -> list[_Slot] | None:
    return _plan(state, defs, zone, player, unit_types, "cargo")


def plan_aircraft(state: GameState, defs: GameDefinitions, zone: str, player: str,
                  unit_types: list[str]) -> list[_Slot] | None:
    return _plan(state, defs, zone, player, unit_types, "aircraft")


def load_cargo(state, defs, zone, player, unit_types, plan=None) -> list[str]:
    """Put land units aboard the player's transports in zone. Caller has checked the plan exists."""
    plan = plan if plan is not None else plan_cargo(state, defs, zone, player, unit_types)
    return _apply_plan(state, zone, player, plan or [], "cargo")


def land_aircraft(state, defs, zone, player, unit_types, plan=None) -> list[str]:
    plan = plan if plan is not None else plan_aircraft(state, defs, zone, player, unit_types)
    return _apply_plan(state, zone, player, plan or [], "aircraft")


def transport_space(state: GameState, defs: GameDefinitions, zone: str, player: str, unit_type: str) -> int:
    """How many more units of unit_type the player's transports in zone can take."""
    count = 0
    while plan_cargo(state, defs, zone, player, [unit_type] * (count + 1)) is not None:
        count += 1
    return count


def carrier_space(state: GameState, defs: GameDefinitions, zone: str, player: str, unit_type: str) -> int:
    """Free deck slots for unit_type on the player's carriers in zone."""
    total = 0
    for slot in _slots(state, defs, zone, player, "aircraft"):
        c_def = defs.unit(slot.unit_type)
        if c_def and unit_type in c_def.can_carry:
            total += max(0, c_def.aircraft_capacity - len(slot.contents))
    return total


# ===== Cargo Actions =====

def _own_ship(state: GameState, sea_zone: str, ship_id: str, player: str) -> Ship | None:
    ts = state.territories.get(sea_zone)
    ship = state.ships.get(ship_id)
    if not ts or not ship or ship_id not in ts.ship_ids or ship.owner != player:
        return None
    return ship


def _take_unmoved(state: GameState, territory: str, unit_type: str, player: str, air: bool = False) -> UnitStack | None:
    """Remove one unit that can still move; returns a copy of the stack it came from."""
    ts = state.territories[territory]
    for stack in sorted(ts.units, key=lambda s: s.movement_used):
        if stack.unit_type != unit_type or stack.owner != player or stack.quantity <= 0:
            continue
        if stack.moved and not air:
            continue
        taken = UnitStack(stack.unit_type, 1, stack.owner, stack.moved, stack.movement_used)
        stack.quantity -= 1
        ts.prune()
        return taken
    return None


def load_transport(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    sea_zone: str,
    unit_type: str,
    land_territory: str,
    ship_id: str | None = None,
) -> ActionResult:
    """Load one unmoved land unit from adjacent land onto a transport."""
    if not defs.map.is_water(sea_zone) or sea_zone not in state.territories:
        return ActionResult.fail(results.ILLEGAL_DESTINATION, f"{sea_zone} is not a sea zone")
    if land_territory not in state.territories or defs.map.is_water(land_territory):
        return ActionResult.fail(results.UNKNOWN_TERRITORY, f"{land_territory} is not a land territory")
    if land_territory not in defs.map.connections(sea_zone, land_bridges=False):
        return ActionResult.fail(results.NOT_REACHABLE, f"{land_territory} is not adjacent to {sea_zone}")
    u_def = defs.unit(unit_type)
    if not u_def or not u_def.is_land:
        return ActionResult.fail(results.UNKNOWN_UNIT, f"{unit_type} is not a land unit")
    ts = state.territories[land_territory]
    if not any(s.unit_type == unit_type and s.owner == player and not s.moved and s.quantity > 0
               for s in ts.units):
        return ActionResult.fail(results.INSUFFICIENT_UNITS, f"No unmoved {unit_type} in {land_territory}")

    if ship_id:
        ship = _own_ship(state, sea_zone, ship_id, player)
        if not ship:
            return ActionResult.fail(results.UNKNOWN_SHIP, f"No transport {ship_id} of yours in {sea_zone}")
        if not can_load_on_transport(defs, ship.unit_type, [c.unit_type for c in ship.cargo], unit_type):
            return ActionResult.fail(results.CAPACITY_EXCEEDED, f"{ship_id} cannot take {unit_type}")
        _take_unmoved(state, land_territory, unit_type, player)
        ship.cargo.append(CargoItem(unit_type, player))
        used = ship.id
    else:
        plan = plan_cargo(state, defs, sea_zone, player, [unit_type])
        if plan is None:
            return ActionResult.fail(results.CAPACITY_EXCEEDED, f"No transport in {sea_zone} can take {unit_type}")
        _take_unmoved(state, land_territory, unit_type, player)
        used = load_cargo(state, defs, sea_zone, player, [unit_type], plan)[0]

    return ActionResult.ok(
        [ev.cargo_loaded(player, sea_zone, used, unit_type, land_territory)],
        ship_id=used,
    )


def _unload_target_error(state: GameState, defs: GameDefinitions, player: str, sea_zone: str,
                         territory: str, combat_move: bool) -> ActionResult | None:
    if territory not in state.territories or defs.map.is_water(territory):
        return ActionResult.fail(results.ILLEGAL_DESTINATION, f"{territory} is not a land territory")
    if territory not in defs.map.connections(sea_zone, land_bridges=False):
        return ActionResult.fail(results.NOT_REACHABLE, f"{territory} is not adjacent to {sea_zone}")
    if not combat_move and state.is_enemy(player, state.owner(territory)):
        return ActionResult.fail(results.ILLEGAL_DESTINATION,
                                 f"Cannot unload into enemy territory {territory} outside combat move")
    return None


def _put_ashore(state: GameState, defs: GameDefinitions, player: str, territory: str,
                items: list[CargoItem], combat_move: bool) -> bool:
    """Unloaded units cannot move again this turn. Returns True if this starts an amphibious assault."""
    ts = state.territories[territory]
    for item in items:
        u_def = defs.unit(item.unit_type)
        ts.add_units(item.unit_type, item.owner, 1, moved=True,
                     movement_used=u_def.movement if u_def else 0)
    hostile = state.is_enemy(player, ts.owner) or any(
        state.is_enemy(player, owner) for _, owner, _ in state.hulls(territory)
    )
    if combat_move and hostile:
        if territory not in state.amphibious_territories:
            state.amphibious_territories.append(territory)
        return True
    return False


def unload_transport(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    sea_zone: str,
    ship_id: str,
    territory: str,
    combat_move: bool,
) -> ActionResult:
    """Unload all cargo of one transport onto adjacent land."""
    ship = _own_ship(state, sea_zone, ship_id, player)
    if not ship:
        return ActionResult.fail(results.UNKNOWN_SHIP, f"No ship {ship_id} of yours in {sea_zone}")
    if not ship.cargo:
        return ActionResult.fail(results.INSUFFICIENT_UNITS, f"{ship_id} carries no cargo")
    error = _unload_target_error(state, defs, player, sea_zone, territory, combat_move)
    if error:
        return error
    items = list(ship.cargo)
    ship.cargo = []
    amphibious = _put_ashore(state, defs, player, territory, items, combat_move)
    unloaded = [i.unit_type for i in items]
    return ActionResult.ok(
        [ev.cargo_unloaded(player, sea_zone, ship_id, unloaded, territory, amphibious)],
        territory=territory,
        amphibious=amphibious,
        units=unloaded,
    )


def unload_unit(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    sea_zone: str,
    ship_id: str,
    unit_type: str,
    territory: str,
    combat_move: bool,
) -> ActionResult:
    ship = _own_ship(state, sea_zone, ship_id, player)
    if not ship:
        return ActionResult.fail(results.UNKNOWN_SHIP, f"No ship {ship_id} of yours in {sea_zone}")
    index = next((i for i, c in enumerate(ship.cargo) if c.unit_type == unit_type), None)
    if index is None:
        return ActionResult.fail(results.INSUFFICIENT_UNITS, f"{ship_id} carries no {unit_type}")
    error = _unload_target_error(state, defs, player, sea_zone, territory, combat_move)
    if error:
        return error
    item = ship.cargo.pop(index)
    amphibious = _put_ashore(state, defs, player, territory, [item], combat_move)
    return ActionResult.ok(
        [ev.cargo_unloaded(player, sea_zone, ship_id, [unit_type], territory, amphibious)],
        territory=territory,
        amphibious=amphibious,
        units=[unit_type],
    )


def land_on_carrier(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    sea_zone: str,
    unit_type: str,
    from_territory: str,
    distance: int,
    ship_id: str | None = None,
) -> ActionResult:
    """
    Put one aircraft aboard a carrier. distance is how far it flies to get there
    (0 when it is already over the zone); the caller has checked reachability.
    """
    u_def = defs.unit(unit_type)
    if not u_def or not u_def.is_air:
        return ActionResult.fail(results.UNKNOWN_UNIT, f"{unit_type} is not an air unit")
    if from_territory not in state.territories:
        return ActionResult.fail(results.UNKNOWN_TERRITORY, f"Unknown territory {from_territory}")
    source = state.territories[from_territory]
    allowance = unit_movement(state, defs, player, unit_type)
    if not any(s.unit_type == unit_type and s.owner == player and s.quantity > 0
               and allowance - s.movement_used >= distance for s in source.units):
        return ActionResult.fail(results.INSUFFICIENT_UNITS,
                                 f"No {unit_type} in {from_territory} with {distance} movement left")
    if ship_id:
        ship = _own_ship(state, sea_zone, ship_id, player)
        if not ship:
            return ActionResult.fail(results.UNKNOWN_SHIP, f"No carrier {ship_id} of yours in {sea_zone}")
        if not can_land_on_carrier(defs, ship.unit_type, [a.unit_type for a in ship.aircraft], unit_type):
            return ActionResult.fail(results.CAPACITY_EXCEEDED, f"{ship_id} has no room for {unit_type}")
        plan = None
    else:
        plan = plan_aircraft(state, defs, sea_zone, player, [unit_type])
        if plan is None:
            return ActionResult.fail(results.CAPACITY_EXCEEDED, f"No carrier in {sea_zone} has room for {unit_type}")

    for stack in sorted(source.units, key=lambda s: s.movement_used):
        if (stack.unit_type == unit_type and stack.owner == player and stack.quantity > 0
                and allowance - stack.movement_used >= distance):
            stack.quantity -= 1
            break
    source.prune()
    if not source.count(unit_type, player):
        origins = state.air_unit_origins.get(from_territory, {})
        origins.pop(unit_type, None)
        if from_territory in state.air_unit_origins and not origins:
            del state.air_unit_origins[from_territory]
    if plan is None:
        ship.aircraft.append(CargoItem(unit_type, player))
        used = ship.id
    else:
        used = land_aircraft(state, defs, sea_zone, player, [unit_type], plan)[0]
    return ActionResult.ok([ev.aircraft_landed(player, sea_zone, used, unit_type)], ship_id=used)


def launch_from_carrier(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    sea_zone: str,
    ship_id: str,
    index: int,
) -> ActionResult:
    ship = _own_ship(state, sea_zone, ship_id, player)
    if not ship:
        return ActionResult.fail(results.UNKNOWN_SHIP, f"No carrier {ship_id} of yours in {sea_zone}")
    if not isinstance(index, int) or isinstance(index, bool) or index < 0 or index >= len(ship.aircraft):
        return ActionResult.fail(results.INVALID_PAYLOAD, f"{ship_id} has no aircraft at position {index}")
    item = ship.aircraft.pop(index)
    state.territories[sea_zone].add_units(item.unit_type, item.owner, 1)
    return ActionResult.ok([ev.aircraft_launched(player, sea_zone, ship_id, item.unit_type)],
                           unit_type=item.unit_type)
