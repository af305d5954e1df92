"""
Utility functions for the game engine.
"""

import random
from collections import Counter

from conquest.engine import DICE_SIDES
from conquest.engine.definitions import GameDefinitions
from conquest.engine.state import GameState


def roll_dice(rng: random.Random, count: int) -> list[int]:
    """Roll count six-sided dice from the injected source."""
    return [rng.randint(1, DICE_SIDES) for _ in range(count)]


def weighted_choice(rng: random.Random, weights: dict[str, int]) -> str:
    """Draw one key with probability proportional to its weight."""
    keys = [k for k, w in weights.items() if w > 0]
    total = sum(weights[k] for k in keys)
    pick = rng.random() * total
    for key in keys:
        pick -= weights[key]
        if pick < 0:
            return key
    return keys[-1]


def print_game_state(state: GameState, defs: GameDefinitions, verbose: bool = False):
    """
    Pretty-print the current game state.

    Args:
        state: Current game state
        defs: Definitions (for water/land labels)
        verbose: If True, also list individual ships with cargo
    """
    player = state.current_player_id or "-"
    print(f"\n{'='*60}")
    print(f"Round {state.round} | Player: {player} | Phase: {state.phase}/{state.turn_phase}")
    print(f"{'='*60}")

    for name in sorted(state.territories):
        ts = state.territories[name]
        if not ts.units and not ts.ship_ids:
            continue
        kind = "sea" if defs.map.is_water(name) else "land"
        capital = " [capital]" if ts.is_capital else ""
        print(f"\n{name} ({kind}, owner: {ts.owner or 'neutral'}){capital}")
        counts = Counter()
        for stack in ts.units:
            counts[(stack.owner, stack.unit_type)] += stack.quantity
        for ship in state.ships_at(name):
            counts[(ship.owner, ship.unit_type)] += 1
        for (owner, unit_type), qty in sorted(counts.items()):
            print(f"  - {owner}: {unit_type} x{qty}")
        if verbose:
            for ship in state.ships_at(name):
                cargo = ", ".join(c.unit_type for c in ship.cargo + ship.aircraft) or "empty"
                damaged = " damaged" if ship.damaged else ""
                print(f"    * {ship.id}{damaged}: {cargo}")

    print(f"\n{'Treasury':.<40}")
    for pid, ps in state.player_state.items():
        hand = ", ".join(state.cards.get(pid, [])) or "no cards"
        print(f"  {pid}: {ps.ipcs} IPCs ({hand})")
    if state.game_over:
        print(f"\nWinner: {state.winner} ({state.win_condition})")
    print()
