"""
Main entry point for the Conquest rules engine.
Demonstrates core functionality with a seeded two-player game on the demo map.
"""

import logging
import random

from conquest.engine import GamePhase, TurnPhase
from conquest.engine.actions import (
    end_phase,
    finish_placement_round,
    move_units,
    place_capital,
    place_unit,
    purchase_unit,
    resolve_combat,
)
from conquest.engine.definitions import load_game_definitions
from conquest.engine.queries import get_game_summary, get_unit_move_targets
from conquest.engine.reducer import apply_action
from conquest.engine.setup import create_game, setup_sea_zones
from conquest.engine.state import Player
from conquest.engine.utils import print_game_state


def run_setup(state, defs, rng):
    """Capitals first, then units on the capital and the first free sea zone."""
    while state.phase == GamePhase.CAPITAL_PLACEMENT:
        player = state.current_player_id
        territory = sorted(state.player_territories(player))[0]
        state, result = apply_action(state, place_capital(player, territory), defs, rng)
        print(f"{player} places capital in {territory}: {result.success}")

    while state.phase == GamePhase.UNIT_PLACEMENT:
        player = state.current_player_id
        capital = state.player_state[player].capital_territory
        zones = setup_sea_zones(state, defs, player)
        for unit_type, quantity in list(state.units_to_place[player].items()):
            unit_def = defs.unit(unit_type)
            if not unit_def:
                continue
            if unit_def.is_sea and not zones:
                continue
            territory = zones[0] if unit_def.is_sea else capital
            for _ in range(quantity):
                state, result = apply_action(state, place_unit(player, territory, unit_type), defs, rng)
                if not result.success:
                    break
        state, _ = apply_action(state, finish_placement_round(player), defs, rng)
    return state


def play_turn(state, defs, rng):
    player = state.current_player_id
    print(f"\n[ROUND {state.round}: {player}]")

    state, _ = apply_action(state, end_phase(player), defs, rng)  # develop_tech -> purchase
    capital = state.player_state[player].capital_territory
    state, result = apply_action(state, purchase_unit(player, "infantry", 2, capital), defs, rng)
    print(f"Purchase 2 infantry: {result.success} {result.error or ''}")
    state, _ = apply_action(state, end_phase(player), defs, rng)  # -> combat_move

    targets = get_unit_move_targets(state, defs, capital, "armour", player)
    enemy = [t for t in targets if state.is_enemy(player, state.owner(t))]
    if enemy:
        target = sorted(enemy)[0]
        armour = state.territories[capital].count("armour", player)
        state, result = apply_action(state, move_units(player, capital, target, {"armour": armour}), defs, rng)
        print(f"Attack {target} with {armour} armour: {result.success} {result.facts.get('captured')}")

    state, result = apply_action(state, end_phase(player), defs, rng)
    while state.turn_phase == TurnPhase.COMBAT and state.combat_queue:
        territory = state.combat_queue[0]
        state, result = apply_action(state, resolve_combat(player, territory), defs, rng)
        print(f"Combat round in {territory}: hits {result.facts['attack_hits']}/{result.facts['defense_hits']}"
              f" winner={result.facts['winner']}")
    while state.current_player_id == player and not state.game_over:
        state, _ = apply_action(state, end_phase(player), defs, rng)
    return state


def main():
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    print("Conquest Rules Engine - demo")
    print("=" * 60)

    rng = random.Random(7)
    defs = load_game_definitions()
    players = [Player("red", faction="Red Empire", color="#c0392b"),
               Player("blue", faction="Blue League", color="#2980b9")]
    state = create_game(defs, players, mode="risk", rng=rng)

    state = run_setup(state, defs, rng)
    print("\n[INITIAL STATE]")
    print_game_state(state, defs)

    for _ in range(6):
        if state.game_over:
            break
        state = play_turn(state, defs, rng)

    print_game_state(state, defs, verbose=True)
    summary = get_game_summary(state, defs)
    for pid, info in summary["players"].items():
        print(f"{pid}: {info['ipcs']} IPCs, {info['territories']} territories, {info['units']} units")


if __name__ == "__main__":
    main()
