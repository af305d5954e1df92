"""
Shared fixtures: a small two-coast board, the shipped unit table, and helpers
for building mid-game states directly.
"""

import random

import pytest

from conquest.engine import GamePhase, TurnPhase
from conquest.engine.definitions import (
    DATA_DIR,
    GameDefinitions,
    RulesConfig,
    load_map_definition,
    load_unit_definitions,
)
from conquest.engine.state import GameState, Player, PlayerState, TechState, TerritoryState

# Alpha - Bravo - Charlie - Delta - Echo along the coast, Isle offshore.
# Sea One touches Alpha, Bravo, Isle; Sea Two touches Charlie, Delta.
BOARD = {
    "territories": [
        {"name": "Alpha", "production": 3, "continent": "West", "connections": ["Bravo", "Sea One"]},
        {"name": "Bravo", "production": 2, "continent": "West", "connections": ["Alpha", "Charlie", "Sea One"]},
        {"name": "Charlie", "production": 2, "connections": ["Bravo", "Delta", "Sea Two"]},
        {"name": "Delta", "production": 2, "connections": ["Charlie", "Echo", "Sea Two"]},
        {"name": "Echo", "production": 1, "connections": ["Delta"]},
        {"name": "Isle", "production": 1, "connections": ["Sea One"]},
        {"name": "Sea One", "is_water": True, "connections": ["Alpha", "Bravo", "Isle", "Sea Two"]},
        {"name": "Sea Two", "is_water": True, "connections": ["Charlie", "Delta", "Sea One"]},
    ],
    "continents": [{"name": "West", "bonus": 2, "territories": ["Alpha", "Bravo"]}],
    "land_bridges": [],
}


class ScriptedRng:
    """Hands out queued die faces first, then falls back to a seeded source."""

    def __init__(self, rolls=(), seed=0):
        self.rolls = list(rolls)
        self._fallback = random.Random(seed)

    def randint(self, a, b):
        if self.rolls:
            return self.rolls.pop(0)
        return self._fallback.randint(a, b)

    def random(self):
        return self._fallback.random()

    def shuffle(self, x):
        self._fallback.shuffle(x)


@pytest.fixture
def rules():
    return RulesConfig()


@pytest.fixture
def defs(rules):
    return GameDefinitions(
        units=load_unit_definitions(DATA_DIR / "units.json", rules),
        map=load_map_definition(BOARD),
        rules=rules,
    )


@pytest.fixture
def scripted_rng():
    return ScriptedRng


@pytest.fixture
def make_state(defs):
    """
    Build a PLAYING state for players red and blue.

    owners: territory -> player id
    units: territory -> [(unit_type, quantity, owner), ...]
    """
    def build(
        owners=None,
        units=None,
        turn_phase=TurnPhase.COMBAT_MOVE,
        players=("red", "blue"),
        alliances=None,
        ipcs=20,
        capitals=None,
    ):
        player_list = [
            Player(pid, alliance=(alliances or {}).get(pid), turn_order=i) for i, pid in enumerate(players)
        ]
        state = GameState(
            players=player_list,
            territories={name: TerritoryState() for name in defs.map.territories},
            alliances_enabled=bool(alliances),
            phase=GamePhase.PLAYING,
            turn_phase=turn_phase,
        )
        for pid in players:
            state.player_state[pid] = PlayerState(ipcs=ipcs)
            state.player_techs[pid] = TechState()
            state.cards[pid] = []
            state.card_trade_count[pid] = 0
        for name, owner in (owners or {}).items():
            state.territories[name].owner = owner
        for name, stacks in (units or {}).items():
            for unit_type, quantity, owner in stacks:
                state.territories[name].add_units(unit_type, owner, quantity)
        for pid, capital in (capitals or {}).items():
            state.territories[capital].is_capital = True
            state.player_state[pid].capital_territory = capital
            state.player_state[pid].has_placed_capital = True
        state.init_turn_start_territories()
        return state

    return build
