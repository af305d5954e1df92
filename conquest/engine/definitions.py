"""
Static definitions for units, the map graph, and rules configuration.
The caller supplies a unit table and a map (JSON files or plain dicts); both are
validated with pydantic before any movement, combat, or purchase call uses them.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from conquest import config

logger = logging.getLogger("conquest.engine.definitions")

DATA_DIR = Path(__file__).parent.parent.parent / "data"


class DefinitionError(ValueError):
    """A unit table, map, or rules object failed validation."""


# ===== Unit Table =====

class UnitDefinition(BaseModel):
    """Defines immutable properties of a unit type."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    attack: int = Field(0, ge=0)
    defense: int = Field(0, ge=0)
    movement: int = Field(0, ge=0)
    cost: int = Field(0, ge=0)
    hp: int = Field(1, ge=1)  # >1 for multi-hit ships
    is_land: bool = False
    is_sea: bool = False
    is_air: bool = False
    is_building: bool = False
    is_infantry: bool = False  # fills an infantry slot on a transport
    can_bombard: bool = False
    captured_with_territory: bool = False  # AA guns; buildings always transfer
    can_carry: list[str] = Field(default_factory=list)
    aircraft_capacity: int = Field(0, ge=0)
    cargo_capacity: int = Field(0, ge=0)

    @model_validator(mode="after")
    def _exactly_one_class(self) -> "UnitDefinition":
        flags = [self.is_land, self.is_sea, self.is_air, self.is_building]
        if sum(1 for f in flags if f) != 1:
            raise ValueError(
                f"unit '{self.id}' must set exactly one of is_land, is_sea, is_air, is_building"
            )
        return self

    @property
    def is_transport(self) -> bool:
        return self.is_sea and self.cargo_capacity > 0

    @property
    def is_carrier(self) -> bool:
        return self.is_sea and self.aircraft_capacity > 0

    @property
    def is_multi_hit(self) -> bool:
        return self.hp > 1

    @property
    def transfers_with_territory(self) -> bool:
        return self.is_building or self.captured_with_territory

    @property
    def can_defend(self) -> bool:
        """Counts as a defender that blocks a win (factories and 0/0 support units do not)."""
        return not self.is_building and (self.attack > 0 or self.defense > 0)

    @property
    def can_attack(self) -> bool:
        return not self.is_building and self.attack > 0


# ===== Map Graph =====

class TerritoryDefinition(BaseModel):
    """Defines immutable properties of a territory or sea zone."""
    name: str
    is_water: bool = False
    production: int = Field(0, ge=0)
    continent: str | None = None
    connections: list[str] = Field(default_factory=list)


class ContinentDefinition(BaseModel):
    name: str
    bonus: int = Field(0, ge=0)
    territories: list[str] = Field(default_factory=list)


class MapDefinition(BaseModel):
    """Territories, continents, and land-bridge shortcut edges."""
    territories: dict[str, TerritoryDefinition]
    continents: list[ContinentDefinition] = Field(default_factory=list)
    land_bridges: list[tuple[str, str]] = Field(default_factory=list)

    @field_validator("territories", mode="before")
    @classmethod
    def _territories_by_name(cls, value: Any) -> Any:
        # Accept the list form used by map exports: [{"name": ..., ...}, ...]
        if isinstance(value, list):
            return {t["name"]: t for t in value if isinstance(t, dict) and "name" in t}
        if isinstance(value, dict):
            return {
                name: ({**t, "name": t.get("name", name)} if isinstance(t, dict) else t)
                for name, t in value.items()
            }
        return value

    @model_validator(mode="after")
    def _check_graph(self) -> "MapDefinition":
        names = set(self.territories)
        for t in self.territories.values():
            for conn in t.connections:
                if conn not in names:
                    raise ValueError(f"territory '{t.name}' connects to unknown territory '{conn}'")
        for t in self.territories.values():
            for conn in t.connections:
                other = self.territories[conn]
                if t.name not in other.connections:
                    logger.warning("One-sided adjacency %s -> %s; adding reverse edge", t.name, conn)
                    other.connections.append(t.name)
        for continent in self.continents:
            for member in continent.territories:
                if member not in names:
                    raise ValueError(f"continent '{continent.name}' lists unknown territory '{member}'")
        for a, b in self.land_bridges:
            for end in (a, b):
                if end not in names:
                    raise ValueError(f"land bridge endpoint '{end}' is not a territory")
                if self.territories[end].is_water:
                    raise ValueError(f"land bridge endpoint '{end}' is a sea zone")
        return self

    def is_water(self, name: str) -> bool:
        t = self.territories.get(name)
        return bool(t and t.is_water)

    def has_land_bridge(self, a: str, b: str) -> bool:
        return any((x == a and y == b) or (x == b and y == a) for x, y in self.land_bridges)

    def connections(self, name: str, land_bridges: bool = True) -> list[str]:
        """Adjacent territories, optionally including land-bridge shortcuts."""
        t = self.territories.get(name)
        if not t:
            return []
        result = list(t.connections)
        if land_bridges:
            for a, b in self.land_bridges:
                if a == name and b not in result:
                    result.append(b)
                elif b == name and a not in result:
                    result.append(a)
        return result

    def adjacent_sea_zones(self, name: str) -> list[str]:
        return [c for c in self.connections(name, land_bridges=False) if self.is_water(c)]

    def land_territories(self) -> list[str]:
        return [name for name, t in self.territories.items() if not t.is_water]


# ===== Rules Configuration =====

class RulesConfig(BaseModel):
    """
    One rules object for every variant: toggles and tables that older builds
    hard-coded in separate code paths. Defaults come from conquest.config.
    """
    bombardment_enabled: bool = True
    bombardment_requires_amphibious: bool = True
    starting_units: dict[str, int] = Field(default_factory=lambda: dict(config.STARTING_UNITS))
    starting_ipcs_by_player_count: dict[int, int] = Field(
        default_factory=lambda: dict(config.STARTING_IPCS_BY_PLAYER_COUNT)
    )
    default_starting_ipcs: int = config.DEFAULT_STARTING_IPCS
    capital_units: list[str] = Field(default_factory=lambda: list(config.CAPITAL_UNITS))
    starting_garrison_unit: str | None = config.STARTING_GARRISON_UNIT
    placement_limit: int = Field(config.PLACEMENT_LIMIT, ge=1)
    final_round_placement_limit: int = Field(config.FINAL_ROUND_PLACEMENT_LIMIT, ge=1)
    final_round_threshold: int = Field(config.FINAL_ROUND_THRESHOLD, ge=0)
    capital_production: int = config.CAPITAL_PRODUCTION
    transport_capacity: int = Field(config.TRANSPORT_CAPACITY, ge=1)
    default_aircraft_capacity: int = Field(config.DEFAULT_AIRCRAFT_CAPACITY, ge=1)
    tech_die_cost: int = Field(config.TECH_DIE_COST, ge=1)
    breakthrough_roll: int = Field(config.BREAKTHROUGH_ROLL, ge=1, le=6)
    long_range_aircraft_bonus: int = Field(config.LONG_RANGE_AIRCRAFT_BONUS, ge=0)
    turn_end_repair_units: list[str] = Field(default_factory=lambda: list(config.TURN_END_REPAIR_UNITS))
    card_values: list[int] = Field(default_factory=lambda: list(config.CARD_VALUES))
    card_weights: dict[str, int] = Field(default_factory=lambda: dict(config.CARD_WEIGHTS))
    alliance_capitals: dict[str, list[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in config.ALLIANCE_CAPITALS.items()}
    )
    alliance_victory_requirements: dict[str, int] = Field(
        default_factory=lambda: dict(config.ALLIANCE_VICTORY_REQUIREMENTS)
    )

    @field_validator("card_values")
    @classmethod
    def _escalating(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("card_values must not be empty")
        if any(b <= a for a, b in zip(value, value[1:])):
            raise ValueError("card_values must strictly increase")
        return value

    @field_validator("card_weights")
    @classmethod
    def _positive_weights(cls, value: dict[str, int]) -> dict[str, int]:
        if not value or any(w < 0 for w in value.values()) or sum(value.values()) <= 0:
            raise ValueError("card_weights needs at least one positive weight")
        return value

    def starting_ipcs_for(self, player_count: int) -> int:
        return self.starting_ipcs_by_player_count.get(player_count, self.default_starting_ipcs)

    def card_value(self, trade_count: int) -> int:
        return self.card_values[min(trade_count, len(self.card_values) - 1)]


@dataclass
class GameDefinitions:
    """Everything static the engine needs, passed to every call."""
    units: dict[str, UnitDefinition]
    map: MapDefinition
    rules: RulesConfig

    def unit(self, unit_type: str) -> UnitDefinition | None:
        return self.units.get(unit_type)


# ===== Loaders =====

def _read_json(source: Path | str | dict) -> dict:
    if isinstance(source, dict):
        return source
    with open(Path(source), "r") as f:
        return json.load(f)


def _fill_capacities(units: dict[str, UnitDefinition], rules: RulesConfig) -> dict[str, UnitDefinition]:
    """Sea units that list carried types but no capacity get the rules default."""
    filled = {}
    for unit_id, unit_def in units.items():
        carried = [units[c] for c in unit_def.can_carry if c in units]
        update: dict[str, int] = {}
        if unit_def.is_sea and unit_def.aircraft_capacity == 0 and any(c.is_air for c in carried):
            logger.warning("Unit %s carries aircraft but has no capacity; using %d",
                           unit_id, rules.default_aircraft_capacity)
            update["aircraft_capacity"] = rules.default_aircraft_capacity
        if unit_def.is_sea and unit_def.cargo_capacity == 0 and any(c.is_land for c in carried):
            logger.warning("Unit %s carries land units but has no capacity; using %d",
                           unit_id, rules.transport_capacity)
            update["cargo_capacity"] = rules.transport_capacity
        filled[unit_id] = unit_def.model_copy(update=update) if update else unit_def
    return filled


def load_unit_definitions(
    source: Path | str | dict,
    rules: RulesConfig | None = None,
) -> dict[str, UnitDefinition]:
    """
    Load the unit table: {unit_type: {attack, defense, movement, cost, hp, flags...}}.
    The key is used as the id when a record omits it.
    """
    data = _read_json(source)
    units = {}
    try:
        for unit_id, record in data.items():
            if not isinstance(record, dict):
                raise DefinitionError(f"unit '{unit_id}' must be an object")
            units[unit_id] = UnitDefinition(**{"id": unit_id, **record})
    except ValidationError as e:
        raise DefinitionError(f"invalid unit table: {e}") from e
    for unit_id, unit_def in units.items():
        for carried in unit_def.can_carry:
            if carried not in units:
                raise DefinitionError(f"unit '{unit_id}' can carry unknown unit '{carried}'")
    return _fill_capacities(units, rules or RulesConfig())


def load_map_definition(source: Path | str | dict) -> MapDefinition:
    """Load map configuration: {territories, continents, land_bridges}."""
    data = _read_json(source)
    try:
        return MapDefinition(**data)
    except ValidationError as e:
        raise DefinitionError(f"invalid map: {e}") from e


def load_game_definitions(
    units_source: Path | str | dict | None = None,
    map_source: Path | str | dict | None = None,
    rules: RulesConfig | dict | None = None,
) -> GameDefinitions:
    """
    Build the definition bundle. With no sources, loads data/units.json and
    data/maps/demo.json shipped with the project.
    """
    if isinstance(rules, dict):
        try:
            rules = RulesConfig(**rules)
        except ValidationError as e:
            raise DefinitionError(f"invalid rules: {e}") from e
    rules = rules or RulesConfig()
    units = load_unit_definitions(units_source or DATA_DIR / "units.json", rules)
    board = load_map_definition(map_source or DATA_DIR / "maps" / "demo.json")
    return GameDefinitions(units=units, map=board, rules=rules)
