"""
Conquest rules engine.
Core engine without transport, persistence, or UI. Callers own the state,
the definitions, and the random source.
"""

DICE_SIDES = 6

# Snapshot schema version written by GameState.to_dict(); older than MIN is rejected.
SNAPSHOT_VERSION = 8
MIN_SNAPSHOT_VERSION = 3

CARD_TYPES = ["infantry", "cavalry", "artillery"]
WILD_CARD = "wild"

TECHNOLOGIES = {
    "jets": {"name": "Jets", "description": "Fighters +1 attack/defense"},
    "rockets": {"name": "Rockets", "description": "AA guns can bombard adjacent territories"},
    "superSubs": {"name": "Super Submarines", "description": "Submarines +1 attack"},
    "longRangeAircraft": {"name": "Long Range Aircraft", "description": "Aircraft +2 movement"},
    "heavyBombers": {"name": "Heavy Bombers", "description": "Bombers roll 2 dice in combat"},
    "industrialTech": {"name": "Industrial Technology", "description": "Units cost -1 IPC (min 1)"},
}


class GamePhase:
    CAPITAL_PLACEMENT = "capital_placement"
    UNIT_PLACEMENT = "unit_placement"
    PLAYING = "playing"


class TurnPhase:
    DEVELOP_TECH = "develop_tech"
    PURCHASE = "purchase"
    COMBAT_MOVE = "combat_move"
    COMBAT = "combat"
    NON_COMBAT_MOVE = "non_combat_move"
    MOBILIZE = "mobilize"
    COLLECT_INCOME = "collect_income"


TURN_PHASE_ORDER = [
    TurnPhase.DEVELOP_TECH,
    TurnPhase.PURCHASE,
    TurnPhase.COMBAT_MOVE,
    TurnPhase.COMBAT,
    TurnPhase.NON_COMBAT_MOVE,
    TurnPhase.MOBILIZE,
    TurnPhase.COLLECT_INCOME,
]
