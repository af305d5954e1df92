"""
Game creation and the setup phases: capital choice and initial unit placement.
"""

import logging
import random
from copy import deepcopy
from typing import Any

from conquest.engine import GamePhase, TurnPhase
from conquest.engine import events as ev
from conquest.engine import results
from conquest.engine.definitions import DefinitionError, GameDefinitions
from conquest.engine.logistics import land_aircraft, load_cargo, plan_aircraft, plan_cargo
from conquest.engine.results import ActionResult
from conquest.engine.state import (
    GameState,
    PlacementRecord,
    Player,
    PlayerState,
    TechState,
    TerritoryState,
)

logger = logging.getLogger("conquest.engine.setup")


# ===== Game Creation =====

def create_game(
    defs: GameDefinitions,
    players: list[Player],
    mode: str = "risk",
    rng: random.Random | None = None,
    alliances_enabled: bool = False,
    starting_ipcs: int | None = None,
    classic_setup: dict[str, Any] | None = None,
) -> GameState:
    """
    Build the initial state.
    classic: ownership, units, and treasuries come from classic_setup; play starts at once.
    risk: players are shuffled, land is dealt round-robin, then capitals and units are placed.
    """
    rng = rng or random.Random()
    if not players:
        raise ValueError("A game needs at least one player")
    players = [Player.from_dict(p.to_dict()) for p in players]
    territories = {name: TerritoryState() for name in defs.map.territories}

    if mode == "classic":
        state = GameState(players=players, territories=territories, game_mode="classic",
                          alliances_enabled=True)
        _apply_classic_setup(state, defs, classic_setup or {})
        for i, player in enumerate(state.players):
            player.turn_order = i
        state.phase = GamePhase.PLAYING
        state.turn_phase = TurnPhase.DEVELOP_TECH
        state.init_turn_start_territories()
        logger.info("Created classic game with %d players", len(players))
        return state

    if mode != "risk":
        raise ValueError(f"Unknown game mode '{mode}'")

    rng.shuffle(players)
    for i, player in enumerate(players):
        player.turn_order = i
    state = GameState(players=players, territories=territories, game_mode="risk",
                      alliances_enabled=alliances_enabled)
    ipcs = starting_ipcs if starting_ipcs is not None else defs.rules.starting_ipcs_for(len(players))
    for player in players:
        state.player_state[player.id] = PlayerState(ipcs=ipcs)
        state.player_techs[player.id] = TechState()
        state.cards[player.id] = []
        state.card_trade_count[player.id] = 0
        state.units_to_place[player.id] = deepcopy(defs.rules.starting_units)

    land = defs.map.land_territories()
    rng.shuffle(land)
    garrison = defs.rules.starting_garrison_unit
    if garrison and not defs.unit(garrison):
        logger.warning("Starting garrison unit %s is not defined; territories start empty", garrison)
        garrison = None
    for i, name in enumerate(land):
        owner = players[i % len(players)].id
        state.territories[name].owner = owner
        if garrison:
            state.territories[name].add_units(garrison, owner, 1)

    state.phase = GamePhase.CAPITAL_PLACEMENT
    state.turn_phase = TurnPhase.DEVELOP_TECH
    logger.info("Created risk game with %d players", len(players))
    return state


def _apply_classic_setup(state: GameState, defs: GameDefinitions, setup: dict[str, Any]) -> None:
    def check_territory(name):
        if name not in state.territories:
            raise DefinitionError(f"classic setup references unknown territory '{name}'")

    player_ids = {p.id for p in state.players}
    for name, owner in (setup.get("territory_owners") or {}).items():
        check_territory(name)
        state.territories[name].owner = owner
    for name, placements in (setup.get("unit_placements") or {}).items():
        check_territory(name)
        for placement in placements:
            unit_type = placement.get("unit_type")
            if not defs.unit(unit_type):
                raise DefinitionError(f"classic setup places unknown unit type '{unit_type}'")
            quantity = int(placement.get("quantity", 1))
            owner = placement.get("owner") or state.territories[name].owner
            if quantity > 0 and owner:
                state.territories[name].add_units(unit_type, owner, quantity)

    ipcs = setup.get("starting_ipcs") or {}
    capitals = setup.get("capitals") or {}
    for pid in player_ids:
        capital = capitals.get(pid)
        if capital is not None:
            check_territory(capital)
            state.territories[capital].is_capital = True
        state.player_state[pid] = PlayerState(
            ipcs=int(ipcs.get(pid, 0)),
            capital_territory=capital,
            has_placed_capital=capital is not None,
        )
        state.player_techs[pid] = TechState()
        state.cards[pid] = []
        state.card_trade_count[pid] = 0


# ===== Capital Placement =====

def place_capital(state: GameState, defs: GameDefinitions, player: str, territory: str) -> ActionResult:
    """Choose an owned land territory as capital; it gets the capital units at once."""
    ps = state.player_state.get(player)
    if ps is None:
        return ActionResult.fail(results.INVALID_PAYLOAD, f"Unknown player {player}")
    if ps.has_placed_capital:
        return ActionResult.fail(results.ILLEGAL_DESTINATION, "Capital already placed")
    ts = state.territories.get(territory)
    if ts is None:
        return ActionResult.fail(results.UNKNOWN_TERRITORY, f"Unknown territory {territory}")
    if ts.owner != player or defs.map.is_water(territory):
        return ActionResult.fail(results.NOT_OWNER, f"You do not own {territory}")

    ts.is_capital = True
    ps.capital_territory = territory
    ps.has_placed_capital = True
    pool = state.units_to_place.setdefault(player, {})
    for unit_type in defs.rules.capital_units:
        if not defs.unit(unit_type):
            logger.warning("Capital unit %s is not defined; skipping", unit_type)
            continue
        ts.add_units(unit_type, player, 1)
        if pool.get(unit_type, 0) > 0:
            pool[unit_type] -= 1
    events = [ev.capital_placed(player, territory)]

    state.current_player_index += 1
    if state.current_player_index >= len(state.players):
        state.current_player_index = 0
        state.phase = GamePhase.UNIT_PLACEMENT
        state.placement_round = 1
        state.units_placed_this_round = 0
        events.append(ev.game_phase_changed(GamePhase.CAPITAL_PLACEMENT, GamePhase.UNIT_PLACEMENT))
    return ActionResult.ok(events)


# ===== Unit Placement =====

def units_left(state: GameState, player: str) -> int:
    return sum(q for q in state.units_to_place.get(player, {}).values() if q > 0)


def placement_limit(state: GameState, defs: GameDefinitions) -> int:
    """Per-round placement cap; raised once every player is down to the final handful."""
    if all(units_left(state, p.id) <= defs.rules.final_round_threshold for p in state.players):
        return defs.rules.final_round_placement_limit
    return defs.rules.placement_limit


def setup_sea_zones(state: GameState, defs: GameDefinitions, player: str) -> list[str]:
    """Sea zones next to the player's land that no other player occupies."""
    zones = []
    for name in state.player_territories(player):
        if defs.map.is_water(name):
            continue
        for zone in defs.map.adjacent_sea_zones(name):
            if zone in zones or zone not in state.territories:
                continue
            if any(owner != player for _, owner, _ in state.hulls(zone)):
                continue
            zones.append(zone)
    return zones


def has_placeable_units(state: GameState, defs: GameDefinitions, player: str) -> bool:
    """Land, air, or buildings left; or ships with somewhere to go."""
    if not state.player_territories(player):
        return False
    zones = None
    for unit_type, quantity in state.units_to_place.get(player, {}).items():
        unit_def = defs.unit(unit_type)
        if quantity <= 0 or not unit_def:
            continue
        if not unit_def.is_sea:
            return True
        if zones is None:
            zones = setup_sea_zones(state, defs, player)
        if zones:
            return True
    return False


def place_unit(state: GameState, defs: GameDefinitions, player: str, territory: str,
               unit_type: str) -> ActionResult:
    pool = state.units_to_place.get(player, {})
    if pool.get(unit_type, 0) <= 0:
        return ActionResult.fail(results.INSUFFICIENT_UNITS, f"No {unit_type} left to place")
    unit_def = defs.unit(unit_type)
    if not unit_def:
        return ActionResult.fail(results.UNKNOWN_UNIT, f"Unknown unit type {unit_type}")
    if state.units_placed_this_round >= placement_limit(state, defs):
        return ActionResult.fail(results.PLACEMENT_LIMIT,
                                 f"Already placed {state.units_placed_this_round} units this round")
    ts = state.territories.get(territory)
    if ts is None or territory not in defs.map.territories:
        return ActionResult.fail(results.UNKNOWN_TERRITORY, f"Unknown territory {territory}")

    ship_id = None
    if defs.map.is_water(territory):
        if territory not in setup_sea_zones(state, defs, player):
            return ActionResult.fail(results.ILLEGAL_DESTINATION,
                                     f"{territory} is not a free sea zone next to your land")
        if unit_def.is_sea:
            ts.add_units(unit_type, player, 1)
        elif unit_def.is_air:
            plan = plan_aircraft(state, defs, territory, player, [unit_type])
            if plan is None:
                return ActionResult.fail(results.CAPACITY_EXCEEDED, f"No carrier in {territory} has room")
            ship_id = land_aircraft(state, defs, territory, player, [unit_type], plan)[0]
        elif unit_def.is_land:
            plan = plan_cargo(state, defs, territory, player, [unit_type])
            if plan is None:
                return ActionResult.fail(results.CAPACITY_EXCEEDED, f"No transport in {territory} can take it")
            ship_id = load_cargo(state, defs, territory, player, [unit_type], plan)[0]
        else:
            return ActionResult.fail(results.ILLEGAL_DESTINATION, f"{unit_type} cannot be placed at sea")
    else:
        if unit_def.is_sea:
            return ActionResult.fail(results.ILLEGAL_DESTINATION, f"{unit_type} must be placed at sea")
        if ts.owner != player:
            return ActionResult.fail(results.NOT_OWNER, f"You do not own {territory}")
        ts.add_units(unit_type, player, 1)

    pool[unit_type] -= 1
    state.units_placed_this_round += 1
    state.placement_history.append(PlacementRecord(territory, unit_type, player, ship_id))
    return ActionResult.ok([ev.unit_placed(player, territory, unit_type, ship_id)], ship_id=ship_id)


def undo_placement(state: GameState, defs: GameDefinitions, player: str) -> ActionResult:
    """Take back the last unit placed this round and return it to the pool."""
    if not state.placement_history or state.placement_history[-1].owner != player:
        return ActionResult.fail(results.NOTHING_TO_UNDO, "No placement to undo")
    record = state.placement_history.pop()
    ts = state.territories[record.territory]
    if record.ship_id:
        ship = state.ships.get(record.ship_id)
        holders = [ship.cargo, ship.aircraft] if ship else []
        for items in holders:
            index = next((i for i in range(len(items) - 1, -1, -1) if items[i].unit_type == record.unit_type),
                         None)
            if index is not None:
                items.pop(index)
                break
    else:
        for stack in reversed(ts.units):
            if stack.unit_type == record.unit_type and stack.owner == player and stack.quantity > 0:
                stack.quantity -= 1
                break
        ts.prune()
    pool = state.units_to_place.setdefault(player, {})
    pool[record.unit_type] = pool.get(record.unit_type, 0) + 1
    state.units_placed_this_round = max(0, state.units_placed_this_round - 1)
    return ActionResult.ok([ev.placement_undone(player, record.territory, record.unit_type)])


def finish_placement_round(state: GameState, defs: GameDefinitions, player: str) -> ActionResult:
    """Pass to the next player; once nobody can place anything, the game starts."""
    state.units_placed_this_round = 0
    state.placement_history = []
    events = [ev.placement_round_finished(player, state.placement_round)]

    state.current_player_index += 1
    if state.current_player_index >= len(state.players):
        state.current_player_index = 0
        state.placement_round += 1

    if not any(has_placeable_units(state, defs, p.id) for p in state.players):
        state.phase = GamePhase.PLAYING
        state.turn_phase = TurnPhase.DEVELOP_TECH
        state.init_turn_start_territories()
        events.append(ev.game_phase_changed(GamePhase.UNIT_PLACEMENT, GamePhase.PLAYING))
        events.append(ev.turn_started(state.round, state.current_player_id))
        logger.info("Setup complete; %s starts round %d", state.current_player_id, state.round)
    return ActionResult.ok(events, placement_round=state.placement_round)
