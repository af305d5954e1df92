"""
Structured action results.
Validation failures are returned, never raised; the reason code is stable for callers to branch on.
"""

from dataclasses import dataclass, field
from typing import Any

from conquest.engine.events import GameEvent


# ===== Failure Reasons =====

NOT_YOUR_TURN = "not_your_turn"
WRONG_PHASE = "wrong_phase"
UNKNOWN_ACTION = "unknown_action"
INVALID_PAYLOAD = "invalid_payload"
UNKNOWN_UNIT = "unknown_unit"
UNKNOWN_TERRITORY = "unknown_territory"
UNKNOWN_SHIP = "unknown_ship"
NOT_OWNER = "not_owner"
ILLEGAL_DESTINATION = "illegal_destination"
NOT_REACHABLE = "not_reachable"
INSUFFICIENT_UNITS = "insufficient_units"
INSUFFICIENT_FUNDS = "insufficient_funds"
CAPACITY_EXCEEDED = "capacity_exceeded"
PLACEMENT_LIMIT = "placement_limit"
NOTHING_TO_UNDO = "nothing_to_undo"
COMBAT_PENDING = "combat_pending"
NO_COMBAT = "no_combat"
INVALID_TECH = "invalid_tech"
NO_RESEARCH_DICE = "no_research_dice"
NO_BREAKTHROUGH = "no_breakthrough"
INVALID_CARD_SET = "invalid_card_set"
GAME_OVER = "game_over"


@dataclass
class ActionResult:
    """Outcome of one engine call."""
    success: bool
    reason: str | None = None  # failure code from this module
    error: str | None = None  # human-readable message
    events: list[GameEvent] = field(default_factory=list)
    facts: dict[str, Any] = field(default_factory=dict)  # captured, card_awarded, resolved, breakthrough, ...

    @classmethod
    def ok(cls, events: list[GameEvent] | None = None, **facts: Any) -> "ActionResult":
        return cls(success=True, events=list(events or []), facts=facts)

    @classmethod
    def fail(cls, reason: str, error: str) -> "ActionResult":
        return cls(success=False, reason=reason, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "reason": self.reason,
            "error": self.error,
            "events": [e.to_dict() for e in self.events],
            "facts": self.facts,
        }
