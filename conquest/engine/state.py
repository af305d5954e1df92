"""
Game state representation.
The reducer mutates a copy; callers keep the previous state untouched.
Includes JSON snapshot serialization for save/load functionality.
"""

import json
import logging
from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Iterator

from conquest.engine import (
    CARD_TYPES,
    MIN_SNAPSHOT_VERSION,
    SNAPSHOT_VERSION,
    WILD_CARD,
    GamePhase,
    TurnPhase,
)

logger = logging.getLogger("conquest.engine.state")


class SnapshotVersionError(ValueError):
    """Snapshot is missing a version tag or is older than the oldest supported schema."""


def _int(v: Any, default: int) -> int:
    try:
        return int(v) if v is not None else default
    except (TypeError, ValueError):
        return default


def _str_or_none(v: Any) -> str | None:
    return str(v) if v is not None else None


def _ensure_str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(x) for x in value]


def _ensure_dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


@dataclass
class UnitStack:
    """A fungible group of identical units of one owner in a territory."""
    unit_type: str
    quantity: int
    owner: str
    moved: bool = False
    movement_used: int = 0
    damaged_count: int = 0  # multi-hit hulls in this stack that took a hit

    def to_dict(self) -> dict[str, Any]:
        out = {"unit_type": self.unit_type, "quantity": self.quantity, "owner": self.owner}
        if self.moved:
            out["moved"] = True
        if self.movement_used:
            out["movement_used"] = self.movement_used
        if self.damaged_count:
            out["damaged_count"] = self.damaged_count
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UnitStack":
        if not isinstance(data, dict):
            data = {}
        return cls(
            unit_type=str(data.get("unit_type") or ""),
            quantity=max(0, _int(data.get("quantity"), 0)),
            owner=str(data.get("owner") or ""),
            moved=bool(data.get("moved", False)),
            movement_used=max(0, _int(data.get("movement_used"), 0)),
            damaged_count=max(0, _int(data.get("damaged_count"), 0)),
        )


@dataclass
class CargoItem:
    """A land unit aboard a transport or an aircraft aboard a carrier."""
    unit_type: str
    owner: str

    def to_dict(self) -> dict[str, Any]:
        return {"unit_type": self.unit_type, "owner": self.owner}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CargoItem":
        if not isinstance(data, dict):
            data = {}
        return cls(unit_type=str(data.get("unit_type") or ""), owner=str(data.get("owner") or ""))


@dataclass
class Ship:
    """A hull split out of its stack so its cargo, aircraft, and damage can be tracked."""
    id: str
    unit_type: str
    owner: str
    cargo: list[CargoItem] = field(default_factory=list)
    aircraft: list[CargoItem] = field(default_factory=list)
    moved: bool = False
    movement_used: int = 0
    damaged: bool = False

    def is_plain(self) -> bool:
        """Nothing distinguishes this hull from its fungible stack."""
        return not self.cargo and not self.aircraft and not self.damaged

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "unit_type": self.unit_type,
            "owner": self.owner,
            "cargo": [c.to_dict() for c in self.cargo],
            "aircraft": [a.to_dict() for a in self.aircraft],
            "moved": self.moved,
            "movement_used": self.movement_used,
            "damaged": self.damaged,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Ship":
        if not isinstance(data, dict):
            data = {}
        cargo = data.get("cargo") if isinstance(data.get("cargo"), list) else []
        aircraft = data.get("aircraft") if isinstance(data.get("aircraft"), list) else []
        return cls(
            id=str(data.get("id") or ""),
            unit_type=str(data.get("unit_type") or ""),
            owner=str(data.get("owner") or ""),
            cargo=[CargoItem.from_dict(c) for c in cargo if isinstance(c, dict)],
            aircraft=[CargoItem.from_dict(a) for a in aircraft if isinstance(a, dict)],
            moved=bool(data.get("moved", False)),
            movement_used=max(0, _int(data.get("movement_used"), 0)),
            damaged=bool(data.get("damaged", False)),
        )


@dataclass
class TerritoryState:
    """State of a single territory or sea zone."""
    owner: str | None = None  # player id or None if unowned
    is_capital: bool = False
    units: list[UnitStack] = field(default_factory=list)
    ship_ids: list[str] = field(default_factory=list)  # references into GameState.ships

    def add_units(
        self,
        unit_type: str,
        owner: str,
        quantity: int,
        moved: bool = False,
        movement_used: int = 0,
    ) -> UnitStack:
        """Merge into a stack with the same movement state, or start one."""
        for stack in self.units:
            if (stack.unit_type == unit_type and stack.owner == owner
                    and stack.moved == moved and stack.movement_used == movement_used):
                stack.quantity += quantity
                return stack
        stack = UnitStack(unit_type, quantity, owner, moved=moved, movement_used=movement_used)
        self.units.append(stack)
        return stack

    def count(self, unit_type: str, owner: str) -> int:
        return sum(s.quantity for s in self.units if s.unit_type == unit_type and s.owner == owner)

    def prune(self) -> None:
        self.units = [s for s in self.units if s.quantity > 0]

    def to_dict(self) -> dict[str, Any]:
        out = {
            "owner": self.owner,
            "units": [s.to_dict() for s in self.units],
        }
        if self.is_capital:
            out["is_capital"] = True
        if self.ship_ids:
            out["ship_ids"] = list(self.ship_ids)
        return out

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TerritoryState":
        if not isinstance(data, dict):
            data = {}
        units_raw = data.get("units") if isinstance(data.get("units"), list) else []
        return cls(
            owner=_str_or_none(data.get("owner")),
            is_capital=bool(data.get("is_capital", False)),
            units=[UnitStack.from_dict(u) for u in units_raw if isinstance(u, dict)],
            ship_ids=_ensure_str_list(data.get("ship_ids")),
        )


@dataclass
class Player:
    id: str
    faction: str = ""
    color: str = "#888888"
    alliance: str | None = None
    turn_order: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "faction": self.faction,
            "color": self.color,
            "alliance": self.alliance,
            "turn_order": self.turn_order,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Player":
        if not isinstance(data, dict):
            data = {}
        return cls(
            id=str(data.get("id") or ""),
            faction=str(data.get("faction") or ""),
            color=str(data.get("color") or "#888888"),
            alliance=_str_or_none(data.get("alliance")),
            turn_order=_int(data.get("turn_order"), 0),
        )


@dataclass
class PlayerState:
    ipcs: int = 0
    capital_territory: str | None = None
    capital_captured: bool = False
    has_placed_capital: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "ipcs": self.ipcs,
            "capital_territory": self.capital_territory,
            "capital_captured": self.capital_captured,
            "has_placed_capital": self.has_placed_capital,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlayerState":
        if not isinstance(data, dict):
            data = {}
        return cls(
            ipcs=max(0, _int(data.get("ipcs"), 0)),
            capital_territory=_str_or_none(data.get("capital_territory")),
            capital_captured=bool(data.get("capital_captured", False)),
            has_placed_capital=bool(data.get("has_placed_capital", False)),
        )


@dataclass
class PendingPurchase:
    """Units bought this turn, waiting for the mobilize phase."""
    unit_type: str
    quantity: int
    owner: str
    cost: int  # per unit, as paid
    territory: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "unit_type": self.unit_type,
            "quantity": self.quantity,
            "owner": self.owner,
            "cost": self.cost,
            "territory": self.territory,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PendingPurchase":
        if not isinstance(data, dict):
            data = {}
        return cls(
            unit_type=str(data.get("unit_type") or ""),
            quantity=max(0, _int(data.get("quantity"), 0)),
            owner=str(data.get("owner") or ""),
            cost=max(0, _int(data.get("cost"), 0)),
            territory=_str_or_none(data.get("territory")),
        )


@dataclass
class TechState:
    research_dice: int = 0
    unlocked: list[str] = field(default_factory=list)
    breakthroughs: int = 0  # earned, not yet spent on unlock_tech

    def to_dict(self) -> dict[str, Any]:
        return {
            "research_dice": self.research_dice,
            "unlocked": list(self.unlocked),
            "breakthroughs": self.breakthroughs,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TechState":
        if not isinstance(data, dict):
            data = {}
        return cls(
            research_dice=max(0, _int(data.get("research_dice"), 0)),
            unlocked=_ensure_str_list(data.get("unlocked")),
            breakthroughs=max(0, _int(data.get("breakthroughs"), 0)),
        )


@dataclass
class AirOrigin:
    """Where an aircraft started its combat move and how far it has flown."""
    origin: str
    distance: int
    movement: int

    def to_dict(self) -> dict[str, Any]:
        return {"origin": self.origin, "distance": self.distance, "movement": self.movement}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AirOrigin":
        if not isinstance(data, dict):
            data = {}
        return cls(
            origin=str(data.get("origin") or ""),
            distance=_int(data.get("distance"), 0),
            movement=_int(data.get("movement"), 0),
        )


@dataclass
class MoveRecord:
    """
    One undoable movement-phase step.
    prior holds the serialized records the step touched, so undo restores them verbatim.
    """
    kind: str  # "move", "load", "unload", "land", "launch"
    player: str
    from_territory: str
    to_territory: str
    units: dict[str, int] = field(default_factory=dict)
    ship_ids: list[str] = field(default_factory=list)
    captured: bool = False
    previous_owner: str | None = None
    card_awarded: str | None = None
    prior: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "player": self.player,
            "from_territory": self.from_territory,
            "to_territory": self.to_territory,
            "units": dict(self.units),
            "ship_ids": list(self.ship_ids),
            "captured": self.captured,
            "previous_owner": self.previous_owner,
            "card_awarded": self.card_awarded,
            "prior": deepcopy(self.prior),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MoveRecord":
        if not isinstance(data, dict):
            data = {}
        units = _ensure_dict(data.get("units"))
        return cls(
            kind=str(data.get("kind") or "move"),
            player=str(data.get("player") or ""),
            from_territory=str(data.get("from_territory") or ""),
            to_territory=str(data.get("to_territory") or ""),
            units={str(k): _int(v, 0) for k, v in units.items()},
            ship_ids=_ensure_str_list(data.get("ship_ids")),
            captured=bool(data.get("captured", False)),
            previous_owner=_str_or_none(data.get("previous_owner")),
            card_awarded=_str_or_none(data.get("card_awarded")),
            prior=deepcopy(_ensure_dict(data.get("prior"))),
        )


@dataclass
class PlacementRecord:
    territory: str
    unit_type: str
    owner: str
    ship_id: str | None = None  # set when the unit went aboard a ship

    def to_dict(self) -> dict[str, Any]:
        return {
            "territory": self.territory,
            "unit_type": self.unit_type,
            "owner": self.owner,
            "ship_id": self.ship_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlacementRecord":
        if not isinstance(data, dict):
            data = {}
        return cls(
            territory=str(data.get("territory") or ""),
            unit_type=str(data.get("unit_type") or ""),
            owner=str(data.get("owner") or ""),
            ship_id=_str_or_none(data.get("ship_id")),
        )


@dataclass
class GameState:
    """Complete game state."""
    players: list[Player]
    territories: dict[str, TerritoryState]  # territory name -> TerritoryState
    player_state: dict[str, PlayerState] = field(default_factory=dict)
    game_mode: str = "risk"  # "risk" or "classic"
    alliances_enabled: bool = False
    current_player_index: int = 0
    round: int = 1
    phase: str = GamePhase.PLAYING
    turn_phase: str = TurnPhase.DEVELOP_TECH
    # ship id -> Ship; territories reference ships by id
    ships: dict[str, Ship] = field(default_factory=dict)
    ship_id_counter: int = 0
    pending_purchases: list[PendingPurchase] = field(default_factory=list)
    # Territories with contact this turn, naval first
    combat_queue: list[str] = field(default_factory=list)
    cleared_sea_zones: list[str] = field(default_factory=list)
    # territory -> rounds fought so far
    combat_rounds: dict[str, int] = field(default_factory=dict)
    amphibious_territories: list[str] = field(default_factory=list)
    # destination territory -> unit type -> AirOrigin
    air_unit_origins: dict[str, dict[str, AirOrigin]] = field(default_factory=dict)
    friendly_territories_at_turn_start: list[str] = field(default_factory=list)
    conquered_this_turn: dict[str, bool] = field(default_factory=dict)
    player_techs: dict[str, TechState] = field(default_factory=dict)
    cards: dict[str, list[str]] = field(default_factory=dict)
    card_trade_count: dict[str, int] = field(default_factory=dict)
    # player -> unit type -> quantity still to place during setup
    units_to_place: dict[str, dict[str, int]] = field(default_factory=dict)
    placement_round: int = 0
    units_placed_this_round: int = 0
    move_history: list[MoveRecord] = field(default_factory=list)
    placement_history: list[PlacementRecord] = field(default_factory=list)
    combat_log: list[dict[str, Any]] = field(default_factory=list)
    game_over: bool = False
    winner: str | None = None
    win_condition: str | None = None

    def copy(self) -> "GameState":
        """Return a deep copy of this game state."""
        return deepcopy(self)

    # ===== Players =====

    @property
    def current_player(self) -> Player | None:
        if not self.players:
            return None
        return self.players[self.current_player_index % len(self.players)]

    @property
    def current_player_id(self) -> str | None:
        player = self.current_player
        return player.id if player else None

    def get_player(self, player_id: str) -> Player | None:
        for p in self.players:
            if p.id == player_id:
                return p
        return None

    def are_allies(self, a: str | None, b: str | None) -> bool:
        if not self.alliances_enabled or a is None or b is None or a == b:
            return False
        pa, pb = self.get_player(a), self.get_player(b)
        return bool(pa and pb and pa.alliance and pa.alliance == pb.alliance)

    def is_friendly(self, player_id: str, other: str | None) -> bool:
        """other is the player itself or an ally."""
        return other == player_id or self.are_allies(player_id, other)

    def is_enemy(self, player_id: str, other: str | None) -> bool:
        """other is a player who is neither player_id nor an ally; unowned is not an enemy."""
        return other is not None and not self.is_friendly(player_id, other)

    # ===== Territory Queries =====

    def owner(self, territory: str) -> str | None:
        ts = self.territories.get(territory)
        return ts.owner if ts else None

    def ships_at(self, territory: str) -> list[Ship]:
        ts = self.territories.get(territory)
        if not ts:
            return []
        return [self.ships[sid] for sid in ts.ship_ids if sid in self.ships]

    def hulls(self, territory: str) -> Iterator[tuple[str, str, int]]:
        """(unit_type, owner, quantity) for every stack and ship standing in a territory."""
        ts = self.territories.get(territory)
        if not ts:
            return
        for stack in ts.units:
            if stack.quantity > 0:
                yield stack.unit_type, stack.owner, stack.quantity
        for ship in self.ships_at(territory):
            yield ship.unit_type, ship.owner, 1

    def player_territories(self, player_id: str) -> list[str]:
        return [name for name, ts in self.territories.items() if ts.owner == player_id]

    def next_ship_id(self, unit_type: str) -> str:
        self.ship_id_counter += 1
        return f"{unit_type}_{self.ship_id_counter}"

    def derive_friendly_territories(self, player_id: str | None = None) -> list[str]:
        """Territories currently owned by the player or an ally."""
        pid = player_id or self.current_player_id
        if pid is None:
            return []
        return [name for name, ts in self.territories.items() if self.is_friendly(pid, ts.owner)]

    def init_turn_start_territories(self) -> None:
        self.friendly_territories_at_turn_start = self.derive_friendly_territories()

    # ===== Serialization Methods =====

    def to_dict(self) -> dict[str, Any]:
        """Convert GameState to a snapshot dictionary for JSON serialization."""
        return {
            "version": SNAPSHOT_VERSION,
            "game_mode": self.game_mode,
            "alliances_enabled": self.alliances_enabled,
            "players": [p.to_dict() for p in self.players],
            "current_player_index": self.current_player_index,
            "round": self.round,
            "phase": self.phase,
            "turn_phase": self.turn_phase,
            "territories": {name: ts.to_dict() for name, ts in self.territories.items()},
            "player_state": {pid: ps.to_dict() for pid, ps in self.player_state.items()},
            "ships": {sid: s.to_dict() for sid, s in self.ships.items()},
            "ship_id_counter": self.ship_id_counter,
            "pending_purchases": [p.to_dict() for p in self.pending_purchases],
            "combat_queue": list(self.combat_queue),
            "cleared_sea_zones": list(self.cleared_sea_zones),
            "combat_rounds": dict(self.combat_rounds),
            "amphibious_territories": list(self.amphibious_territories),
            "air_unit_origins": {
                dest: {ut: o.to_dict() for ut, o in by_type.items()}
                for dest, by_type in self.air_unit_origins.items()
            },
            "friendly_territories_at_turn_start": list(self.friendly_territories_at_turn_start),
            "conquered_this_turn": dict(self.conquered_this_turn),
            "player_techs": {pid: t.to_dict() for pid, t in self.player_techs.items()},
            "cards": {pid: list(hand) for pid, hand in self.cards.items()},
            "card_trade_count": dict(self.card_trade_count),
            "units_to_place": {pid: dict(pool) for pid, pool in self.units_to_place.items()},
            "placement_round": self.placement_round,
            "units_placed_this_round": self.units_placed_this_round,
            "move_history": [m.to_dict() for m in self.move_history],
            "placement_history": [p.to_dict() for p in self.placement_history],
            "combat_log": deepcopy(self.combat_log),
            "game_over": self.game_over,
            "winner": self.winner,
            "win_condition": self.win_condition,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GameState":
        """
        Create GameState from a snapshot dictionary.
        Raises SnapshotVersionError when the version tag is missing or too old;
        other missing fields fall back to defaults.
        """
        if not isinstance(data, dict):
            raise SnapshotVersionError("Snapshot must be a JSON object")
        version = data.get("version")
        if not isinstance(version, int) or isinstance(version, bool):
            raise SnapshotVersionError("Snapshot has no version tag")
        if version < MIN_SNAPSHOT_VERSION:
            raise SnapshotVersionError(
                f"Snapshot version {version} is older than supported version {MIN_SNAPSHOT_VERSION}"
            )
        if version > SNAPSHOT_VERSION:
            logger.warning("Snapshot version %d is newer than %d; loading known fields only",
                           version, SNAPSHOT_VERSION)

        players_raw = data.get("players") if isinstance(data.get("players"), list) else []
        origins_raw = _ensure_dict(data.get("air_unit_origins"))
        state = cls(
            players=[Player.from_dict(p) for p in players_raw if isinstance(p, dict)],
            territories={
                str(name): TerritoryState.from_dict(ts)
                for name, ts in _ensure_dict(data.get("territories")).items()
                if isinstance(ts, dict)
            },
            player_state={
                str(pid): PlayerState.from_dict(ps)
                for pid, ps in _ensure_dict(data.get("player_state")).items()
            },
            game_mode=str(data.get("game_mode") or "risk"),
            alliances_enabled=bool(data.get("alliances_enabled", False)),
            current_player_index=max(0, _int(data.get("current_player_index"), 0)),
            round=max(1, _int(data.get("round"), 1)),
            phase=str(data.get("phase") or GamePhase.PLAYING),
            turn_phase=str(data.get("turn_phase") or TurnPhase.DEVELOP_TECH),
            ships={
                str(sid): Ship.from_dict(s)
                for sid, s in _ensure_dict(data.get("ships")).items()
                if isinstance(s, dict)
            },
            ship_id_counter=max(0, _int(data.get("ship_id_counter"), 0)),
            pending_purchases=[
                PendingPurchase.from_dict(p)
                for p in (data.get("pending_purchases") or []) if isinstance(p, dict)
            ],
            combat_queue=_ensure_str_list(data.get("combat_queue")),
            cleared_sea_zones=_ensure_str_list(data.get("cleared_sea_zones")),
            combat_rounds={
                str(k): _int(v, 0) for k, v in _ensure_dict(data.get("combat_rounds")).items()
            },
            amphibious_territories=_ensure_str_list(data.get("amphibious_territories")),
            air_unit_origins={
                str(dest): {str(ut): AirOrigin.from_dict(o) for ut, o in by_type.items()}
                for dest, by_type in origins_raw.items()
                if isinstance(by_type, dict)
            },
            friendly_territories_at_turn_start=_ensure_str_list(
                data.get("friendly_territories_at_turn_start")
            ),
            conquered_this_turn={
                str(k): bool(v) for k, v in _ensure_dict(data.get("conquered_this_turn")).items()
            },
            player_techs={
                str(pid): TechState.from_dict(t)
                for pid, t in _ensure_dict(data.get("player_techs")).items()
            },
            cards={
                str(pid): _load_hand(str(pid), hand)
                for pid, hand in _ensure_dict(data.get("cards")).items()
            },
            card_trade_count={
                str(k): max(0, _int(v, 0)) for k, v in _ensure_dict(data.get("card_trade_count")).items()
            },
            units_to_place={
                str(pid): {str(ut): max(0, _int(q, 0)) for ut, q in pool.items()}
                for pid, pool in _ensure_dict(data.get("units_to_place")).items()
                if isinstance(pool, dict)
            },
            placement_round=max(0, _int(data.get("placement_round"), 0)),
            units_placed_this_round=max(0, _int(data.get("units_placed_this_round"), 0)),
            move_history=[
                MoveRecord.from_dict(m) for m in (data.get("move_history") or []) if isinstance(m, dict)
            ],
            placement_history=[
                PlacementRecord.from_dict(p)
                for p in (data.get("placement_history") or []) if isinstance(p, dict)
            ],
            combat_log=[dict(e) for e in (data.get("combat_log") or []) if isinstance(e, dict)],
            game_over=bool(data.get("game_over", False)),
            winner=_str_or_none(data.get("winner")),
            win_condition=_str_or_none(data.get("win_condition")),
        )
        if "friendly_territories_at_turn_start" not in data and state.phase == GamePhase.PLAYING:
            logger.warning("Snapshot has no friendly_territories_at_turn_start; re-deriving from ownership")
            state.init_turn_start_territories()
        return state

    def to_json(self, indent: int = 2) -> str:
        """Serialize GameState to a JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> "GameState":
        """Deserialize GameState from a JSON string."""
        return cls.from_dict(json.loads(json_str))

    def save(self, filepath: str) -> None:
        """Save GameState to a JSON file."""
        with open(filepath, "w") as f:
            f.write(self.to_json())

    @classmethod
    def load(cls, filepath: str) -> "GameState":
        """Load GameState from a JSON file."""
        with open(filepath, "r") as f:
            return cls.from_json(f.read())


def _load_hand(player_id: str, hand: Any) -> list[str]:
    cards = []
    for card in _ensure_str_list(hand):
        if card in CARD_TYPES or card == WILD_CARD:
            cards.append(card)
        else:
            logger.warning("Dropping unknown card type %r from %s's hand", card, player_id)
    return cards
