"""
Combat resolution system.
One round per call; both sides roll simultaneously, casualties are chosen by the engine.
Naval battles soak hits on multi-hit hulls first, then lose the cheapest units.
Shore bombardment supports the first round of a land battle.
"""

import logging
import random
from dataclasses import dataclass, field
from typing import Any

from conquest.engine import DICE_SIDES
from conquest.engine import events as ev
from conquest.engine.definitions import GameDefinitions, UnitDefinition
from conquest.engine.economy import award_card
from conquest.engine.events import GameEvent
from conquest.engine.logistics import remove_ship
from conquest.engine.state import GameState, Ship, TerritoryState, UnitStack
from conquest.engine.victory import handle_capital_capture

logger = logging.getLogger("conquest.engine.combat")

ATTACKER = "attacker"
DEFENDER = "defender"


@dataclass
class CombatRoundResult:
    """Result of a single combat round (for combat log and the action result facts)."""
    territory: str
    round_number: int
    attacker_rolls: list[dict[str, Any]] = field(default_factory=list)
    defender_rolls: list[dict[str, Any]] = field(default_factory=list)
    bombardment_rolls: list[dict[str, Any]] = field(default_factory=list)
    attack_hits: int = 0
    defense_hits: int = 0
    bombardment_hits: int = 0
    attacker_casualties: list[dict[str, Any]] = field(default_factory=list)
    defender_casualties: list[dict[str, Any]] = field(default_factory=list)
    attackers_remaining: int = 0
    defenders_remaining: int = 0  # combat-capable only
    resolved: bool = False
    winner: str | None = None  # "attacker" or "defender"
    conquered: bool = False
    card_awarded: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "territory": self.territory,
            "round_number": self.round_number,
            "attacker_rolls": self.attacker_rolls,
            "defender_rolls": self.defender_rolls,
            "bombardment_rolls": self.bombardment_rolls,
            "attack_hits": self.attack_hits,
            "defense_hits": self.defense_hits,
            "bombardment_hits": self.bombardment_hits,
            "attacker_casualties": self.attacker_casualties,
            "defender_casualties": self.defender_casualties,
            "attackers_remaining": self.attackers_remaining,
            "defenders_remaining": self.defenders_remaining,
            "resolved": self.resolved,
            "winner": self.winner,
            "conquered": self.conquered,
            "card_awarded": self.card_awarded,
        }


@dataclass
class _Hull:
    """One unit in battle, pointing back at the stack or ship it came from."""
    unit_type: str
    owner: str
    unit_def: UnitDefinition
    stack: UnitStack | None = None
    ship: Ship | None = None
    damaged: bool = False
    destroyed: bool = False


# ===== Detection =====

def detect_combats(state: GameState, defs: GameDefinitions) -> list[str]:
    """Territories where the active player's units meet non-allied units, naval first."""
    player = state.current_player_id
    if player is None:
        return []
    naval, land = [], []
    for name in state.territories:
        owners = {owner for _, owner, _ in state.hulls(name)}
        if player in owners and any(state.is_enemy(player, o) for o in owners):
            (naval if defs.map.is_water(name) else land).append(name)
    return naval + land


# ===== Capture =====

def _transfer_structures(defs: GameDefinitions, ts: TerritoryState, new_owner: str) -> None:
    transferred: dict[str, int] = {}
    kept = []
    for stack in ts.units:
        unit_def = defs.unit(stack.unit_type)
        if unit_def and unit_def.transfers_with_territory and stack.owner != new_owner:
            transferred[stack.unit_type] = transferred.get(stack.unit_type, 0) + stack.quantity
        else:
            kept.append(stack)
    ts.units = kept
    for unit_type, quantity in transferred.items():
        ts.add_units(unit_type, new_owner, quantity)


def capture_territory(
    state: GameState,
    defs: GameDefinitions,
    territory: str,
    player: str,
    rng: random.Random,
) -> tuple[list[GameEvent], str | None]:
    """
    Change ownership, hand over factories and AA guns, award the turn's card, and
    run capital capture. Returns (events, card awarded or None).
    """
    ts = state.territories[territory]
    old_owner = ts.owner
    ts.owner = player
    _transfer_structures(defs, ts, player)
    events = [ev.territory_captured(territory, old_owner, player)]
    card = None
    if not state.conquered_this_turn.get(player):
        state.conquered_this_turn[player] = True
        card = award_card(state, defs, player, rng)
        events.append(ev.card_awarded(player, card))
    events.extend(handle_capital_capture(state, defs, territory, player))
    logger.debug("%s captured %s from %s", player, territory, old_owner)
    return events, card


# ===== Repairs =====

def _repair_territory(state: GameState, territory: str) -> list[str]:
    repaired = []
    for stack in state.territories[territory].units:
        stack.damaged_count = 0
    for ship in state.ships_at(territory):
        if ship.damaged:
            ship.damaged = False
            repaired.append(ship.id)
    return repaired


def repair_player_battleships(state: GameState, defs: GameDefinitions, player: str) -> list[GameEvent]:
    """
    Turn-end repair of the player's damaged battleships, meaning the unit types
    listed in rules.turn_end_repair_units. Other multi-hit units stay damaged until
    they survive a battle.
    """
    repairable = set(defs.rules.turn_end_repair_units)
    ship_ids = []
    stack_hulls = 0
    for ts in state.territories.values():
        for stack in ts.units:
            if stack.owner == player and stack.damaged_count and stack.unit_type in repairable:
                stack_hulls += stack.damaged_count
                stack.damaged_count = 0
    for ship in state.ships.values():
        if ship.owner == player and ship.damaged and ship.unit_type in repairable:
            ship.damaged = False
            ship_ids.append(ship.id)
    if not ship_ids and not stack_hulls:
        return []
    return [ev.ships_repaired(player, None, ship_ids, stack_hulls)]


# ===== Round Resolution =====

def _collect_hulls(state: GameState, defs: GameDefinitions, territory: str) -> list[_Hull]:
    hulls = []
    for stack in state.territories[territory].units:
        unit_def = defs.unit(stack.unit_type)
        if not unit_def:
            logger.warning("Unit type %s in %s has no definition; it takes no part in combat",
                           stack.unit_type, territory)
            continue
        for i in range(stack.quantity):
            hulls.append(_Hull(stack.unit_type, stack.owner, unit_def, stack=stack,
                               damaged=i < stack.damaged_count))
    for ship in state.ships_at(territory):
        unit_def = defs.unit(ship.unit_type)
        if not unit_def:
            logger.warning("Ship %s has no definition; it takes no part in combat", ship.id)
            continue
        hulls.append(_Hull(ship.unit_type, ship.owner, unit_def, ship=ship, damaged=ship.damaged))
    return hulls


def _roll_side(hulls: list[_Hull], rng: random.Random, stat: str) -> tuple[int, list[dict[str, Any]]]:
    rolls = []
    hits = 0
    for hull in hulls:
        value = getattr(hull.unit_def, stat)
        roll = rng.randint(1, DICE_SIDES)
        hit = roll <= value
        hits += hit
        rolls.append({"unit_type": hull.unit_type, "roll": roll, "hit": hit})
    return hits, rolls


def _zone_clear_for_bombardment(state: GameState, zone: str, player: str) -> bool:
    if zone in state.cleared_sea_zones:
        return True
    return not any(state.is_enemy(player, owner) for _, owner, _ in state.hulls(zone))


def _bombardment(
    state: GameState,
    defs: GameDefinitions,
    territory: str,
    player: str,
    rng: random.Random,
) -> tuple[int, list[dict[str, Any]]]:
    """Ships in adjacent cleared zones fire once each at their attack value."""
    hits = 0
    rolls = []
    for zone in defs.map.adjacent_sea_zones(territory):
        if not _zone_clear_for_bombardment(state, zone, player):
            continue
        for unit_type, owner, quantity in list(state.hulls(zone)):
            unit_def = defs.unit(unit_type)
            if owner != player or not unit_def or not unit_def.can_bombard:
                continue
            for _ in range(quantity):
                roll = rng.randint(1, DICE_SIDES)
                hit = roll <= unit_def.attack
                hits += hit
                rolls.append({"unit_type": unit_type, "roll": roll, "hit": hit, "source": zone})
    return hits, rolls


def _casualty(hull: _Hull, result: str) -> dict[str, Any]:
    out = {"unit_type": hull.unit_type, "owner": hull.owner, "result": result}
    if hull.ship:
        out["ship_id"] = hull.ship.id
    return out


def _apply_hits(hulls: list[_Hull], hits: int, naval: bool) -> list[dict[str, Any]]:
    """
    Assign hits to the living hulls of one side.
    Naval: finish damaged multi-hit hulls, then damage each fresh one once.
    Then the cheapest eligible units die; factories and damaged multi-hit hulls are not eligible.
    """
    casualties = []
    remaining = hits
    alive = [h for h in hulls if not h.destroyed]
    if naval:
        for hull in alive:
            if remaining <= 0:
                break
            if hull.unit_def.is_multi_hit and hull.damaged:
                hull.destroyed = True
                remaining -= 1
                casualties.append(_casualty(hull, "destroyed"))
        for hull in alive:
            if remaining <= 0:
                break
            if hull.unit_def.is_multi_hit and not hull.damaged and not hull.destroyed:
                hull.damaged = True
                remaining -= 1
                casualties.append(_casualty(hull, "damaged"))
    eligible = [
        h for h in alive
        if not h.destroyed
        and not h.unit_def.is_building
        and not (h.unit_def.is_multi_hit and h.damaged)
    ]
    eligible.sort(key=lambda h: h.unit_def.cost)
    for hull in eligible:
        if remaining <= 0:
            break
        hull.destroyed = True
        remaining -= 1
        casualties.append(_casualty(hull, "destroyed"))
    return casualties


def _write_back(state: GameState, territory: str, hulls: list[_Hull]) -> list[dict[str, Any]]:
    """Push hull outcomes into stacks and ships. Returns cargo lost with sunk ships."""
    lost_aboard = []
    per_stack: dict[int, tuple[UnitStack, int, int]] = {}
    for hull in hulls:
        if hull.stack is not None:
            stack, alive, damaged = per_stack.get(id(hull.stack), (hull.stack, 0, 0))
            if not hull.destroyed:
                alive += 1
                damaged += hull.damaged
            per_stack[id(hull.stack)] = (stack, alive, damaged)
        elif hull.ship is not None:
            if hull.destroyed:
                for item in hull.ship.cargo + hull.ship.aircraft:
                    lost_aboard.append({
                        "unit_type": item.unit_type,
                        "owner": item.owner,
                        "result": "destroyed",
                        "lost_aboard": hull.ship.id,
                    })
                remove_ship(state, territory, hull.ship.id)
            else:
                hull.ship.damaged = hull.damaged
    for stack, alive, damaged in per_stack.values():
        stack.quantity = alive
        stack.damaged_count = damaged
    state.territories[territory].prune()
    return lost_aboard


def _sweep(hulls: list[_Hull], keep) -> list[dict[str, Any]]:
    """Destroy living hulls that fail keep(hull); used for leftovers once a side has lost."""
    swept = []
    for hull in hulls:
        if not hull.destroyed and not keep(hull):
            hull.destroyed = True
            swept.append(_casualty(hull, "destroyed"))
    return swept


def _finish(
    state: GameState,
    defs: GameDefinitions,
    territory: str,
    player: str,
    result: CombatRoundResult,
    attackers: list[_Hull],
    defenders: list[_Hull],
    rng: random.Random,
) -> list[GameEvent]:
    naval = defs.map.is_water(territory)
    events = []
    if result.winner == ATTACKER:
        # Land structures change hands; every other leftover defender is lost
        keep = (lambda h: h.unit_def.transfers_with_territory) if not naval else (lambda h: False)
        result.defender_casualties.extend(_sweep(defenders, keep))
    else:
        result.attacker_casualties.extend(_sweep(attackers, lambda h: False))
    lost = _write_back(state, territory, attackers + defenders)
    for item in lost:
        side = result.attacker_casualties if item["owner"] == player else result.defender_casualties
        side.append(item)

    if result.winner == ATTACKER:
        if naval:
            if territory not in state.cleared_sea_zones:
                state.cleared_sea_zones.append(territory)
        else:
            capture_events, card = capture_territory(state, defs, territory, player, rng)
            events.extend(capture_events)
            result.conquered = True
            result.card_awarded = card

    _repair_territory(state, territory)
    state.combat_queue = [t for t in state.combat_queue if t != territory]
    state.combat_rounds.pop(territory, None)
    result.resolved = True
    events.append(ev.combat_ended(territory, player, result.winner, result.conquered))
    return events


def resolve_combat(
    state: GameState,
    defs: GameDefinitions,
    territory: str,
    rng: random.Random,
) -> tuple[CombatRoundResult, list[GameEvent]]:
    """
    Fight one round in territory for the active player. Mutates state.
    Call repeatedly until result.resolved.
    """
    player = state.current_player_id
    naval = defs.map.is_water(territory)
    first_round = state.combat_rounds.get(territory, 0) == 0
    round_number = state.combat_rounds.get(territory, 0) + 1
    state.combat_rounds[territory] = round_number

    hulls = _collect_hulls(state, defs, territory)
    attackers = [h for h in hulls if h.owner == player]
    defenders = [h for h in hulls if state.is_enemy(player, h.owner)]
    result = CombatRoundResult(territory, round_number)
    events = []

    if not attackers or not any(h.unit_def.can_defend for h in defenders):
        result.winner = ATTACKER if attackers else DEFENDER
    elif not any(h.unit_def.can_attack for h in attackers):
        # Nothing on the attacking side can ever score
        result.winner = DEFENDER
    else:
        if (first_round and not naval and defs.rules.bombardment_enabled
                and (territory in state.amphibious_territories
                     or not defs.rules.bombardment_requires_amphibious)):
            result.bombardment_hits, result.bombardment_rolls = _bombardment(
                state, defs, territory, player, rng)
        result.attack_hits, result.attacker_rolls = _roll_side(attackers, rng, "attack")
        result.defense_hits, result.defender_rolls = _roll_side(defenders, rng, "defense")

        result.defender_casualties = _apply_hits(
            defenders, result.attack_hits + result.bombardment_hits, naval)
        result.attacker_casualties = _apply_hits(attackers, result.defense_hits, naval)

        if not any(h.unit_def.can_attack for h in attackers if not h.destroyed):
            result.winner = DEFENDER
        elif not any(h.unit_def.can_defend for h in defenders if not h.destroyed):
            result.winner = ATTACKER

    if result.winner:
        events.extend(_finish(state, defs, territory, player, result, attackers, defenders, rng))
    else:
        for item in _write_back(state, territory, hulls):
            side = result.attacker_casualties if item["owner"] == player else result.defender_casualties
            side.append(item)

    result.attackers_remaining = sum(1 for h in attackers if not h.destroyed)
    result.defenders_remaining = sum(1 for h in defenders if not h.destroyed and h.unit_def.can_defend)
    state.combat_log.append({"player": player, **result.to_dict()})
    events.insert(0, ev.combat_round_resolved(territory, round_number, result.to_dict()))
    return result, events
