"""
Single place for default rules configuration.
RulesConfig (conquest.engine.definitions) reads its defaults from here; override
per game by passing fields to RulesConfig(...).
"""

# Risk-mode starting treasury by player count; anything else falls back to the default.
STARTING_IPCS_BY_PLAYER_COUNT = {2: 35, 3: 30, 4: 21, 5: 18, 6: 15, 7: 12}
DEFAULT_STARTING_IPCS = 18

# Risk-mode unit pool handed to every player before setup placement.
STARTING_UNITS = {
    "bomber": 1,
    "fighter": 2,
    "tacticalBomber": 1,
    "armour": 3,
    "artillery": 3,
    "infantry": 9,
    "factory": 1,
    "battleship": 1,
    "carrier": 1,
    "cruiser": 1,
    "destroyer": 1,
    "submarine": 1,
    "transport": 1,
}

# Units auto-placed on a capital when it is chosen.
CAPITAL_UNITS = ["aaGun", "factory"]
# Unit placed on every land territory when territories are dealt.
STARTING_GARRISON_UNIT = "infantry"

# Setup placement: units per player per round, raised on the final round
# (once every player has no more than FINAL_ROUND_THRESHOLD units left).
PLACEMENT_LIMIT = 6
FINAL_ROUND_PLACEMENT_LIMIT = 7
FINAL_ROUND_THRESHOLD = 7

CAPITAL_PRODUCTION = 10
TRANSPORT_CAPACITY = 2
DEFAULT_AIRCRAFT_CAPACITY = 2

TECH_DIE_COST = 5
BREAKTHROUGH_ROLL = 6
LONG_RANGE_AIRCRAFT_BONUS = 2

# Multi-hit units repaired at their owner's turn end.
TURN_END_REPAIR_UNITS = ["battleship"]

CARD_VALUES = [12, 18, 24, 30, 36, 45, 60, 75]
CARD_WEIGHTS = {"infantry": 30, "cavalry": 30, "artillery": 30, "wild": 10}

# Alliance victory: capitals per alliance, and how many of the opposing
# alliance's capitals each side must hold (while holding all of its own).
ALLIANCE_CAPITALS = {
    "Axis": ["Germany", "Japan"],
    "Allies": ["Russia", "United Kingdom", "East US"],
}
ALLIANCE_VICTORY_REQUIREMENTS = {"Axis": 2, "Allies": 2}
