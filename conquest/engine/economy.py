"""
Economy: purchase, mobilization, income, research, and trading cards.
"""

import logging
import random
from collections import Counter
from itertools import combinations

from conquest.engine import CARD_TYPES, TECHNOLOGIES, WILD_CARD
from conquest.engine import events as ev
from conquest.engine import results
from conquest.engine.definitions import GameDefinitions
from conquest.engine.events import GameEvent
from conquest.engine.results import ActionResult
from conquest.engine.state import GameState, PendingPurchase, TechState
from conquest.engine.utils import roll_dice, weighted_choice

logger = logging.getLogger("conquest.engine.economy")

INDUSTRIAL_TECH = "industrialTech"
LONG_RANGE_AIRCRAFT = "longRangeAircraft"


def _adjust_ipcs(state: GameState, player: str, delta: int, reason: str) -> GameEvent:
    ps = state.player_state[player]
    old = ps.ipcs
    ps.ipcs = old + delta
    return ev.resources_changed(player, old, ps.ipcs, reason)


def has_tech(state: GameState, player: str, tech_id: str) -> bool:
    tech = state.player_techs.get(player)
    return bool(tech and tech_id in tech.unlocked)


def unit_cost(state: GameState, defs: GameDefinitions, player: str, unit_type: str) -> int | None:
    """Purchase price after technology discounts; None for an unknown unit."""
    unit_def = defs.unit(unit_type)
    if not unit_def:
        return None
    if has_tech(state, player, INDUSTRIAL_TECH):
        return max(1, unit_def.cost - 1)
    return unit_def.cost


def unit_movement(state: GameState, defs: GameDefinitions, player: str, unit_type: str) -> int:
    """Movement allowance after technology bonuses; 0 for an unknown unit."""
    unit_def = defs.unit(unit_type)
    if not unit_def:
        return 0
    if unit_def.is_air and has_tech(state, player, LONG_RANGE_AIRCRAFT):
        return unit_def.movement + defs.rules.long_range_aircraft_bonus
    return unit_def.movement


# ===== Mobilization Rules =====

def has_factory(state: GameState, defs: GameDefinitions, territory: str, player: str | None = None) -> bool:
    ts = state.territories.get(territory)
    if not ts:
        return False
    for stack in ts.units:
        unit_def = defs.unit(stack.unit_type)
        if unit_def and unit_def.is_building and stack.quantity > 0:
            if player is None or stack.owner == player:
                return True
    return False


def factory_territories(state: GameState, defs: GameDefinitions, player: str) -> list[str]:
    """Owned land territories with the player's factory, plus the capital while it is held."""
    capital = state.player_state[player].capital_territory if player in state.player_state else None
    result = []
    for name, ts in state.territories.items():
        if ts.owner != player or defs.map.is_water(name):
            continue
        if name == capital or has_factory(state, defs, name, player):
            result.append(name)
    return result


def naval_placement_zones(state: GameState, defs: GameDefinitions, player: str) -> list[str]:
    zones = []
    for name in factory_territories(state, defs, player):
        for zone in defs.map.adjacent_sea_zones(name):
            if zone not in zones:
                zones.append(zone)
    return zones


def mobilization_error(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    unit_type: str,
    territory: str,
) -> str | None:
    """Why unit_type cannot be placed in territory this turn, or None if it can."""
    unit_def = defs.unit(unit_type)
    if not unit_def:
        return f"Unknown unit type {unit_type}"
    if territory not in state.territories:
        return f"Unknown territory {territory}"
    if unit_def.is_sea:
        if territory not in naval_placement_zones(state, defs, player):
            return "Naval units must be placed on sea zones adjacent to territories with factories"
    elif unit_def.is_building:
        if defs.map.is_water(territory):
            return "Factories cannot be placed on water"
        if state.owner(territory) != player:
            return "Factories must be placed on your own territories"
        if has_factory(state, defs, territory):
            return "Territory already has a factory"
    elif territory not in factory_territories(state, defs, player):
        return "Units must be placed on territories with factories"
    return None


# ===== Purchase & Mobilize =====

def purchase_unit(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    unit_type: str,
    quantity: int,
    territory: str | None = None,
) -> ActionResult:
    """Deduct the price now and queue the units for the mobilize phase."""
    cost = unit_cost(state, defs, player, unit_type)
    if cost is None:
        return ActionResult.fail(results.UNKNOWN_UNIT, f"Unknown unit type {unit_type}")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        return ActionResult.fail(results.INVALID_PAYLOAD, f"Invalid quantity {quantity!r}")
    total = cost * quantity
    if state.player_state[player].ipcs < total:
        return ActionResult.fail(
            results.INSUFFICIENT_FUNDS,
            f"Need {total} IPCs, have {state.player_state[player].ipcs}",
        )
    if territory is not None:
        error = mobilization_error(state, defs, player, unit_type, territory)
        if error:
            return ActionResult.fail(results.ILLEGAL_DESTINATION, error)

    events = [_adjust_ipcs(state, player, -total, "purchase")]
    for pending in state.pending_purchases:
        if (pending.owner == player and pending.unit_type == unit_type
                and pending.territory == territory and pending.cost == cost):
            pending.quantity += quantity
            break
    else:
        state.pending_purchases.append(PendingPurchase(unit_type, quantity, player, cost, territory))
    events.append(ev.units_purchased(player, unit_type, quantity, total, territory))
    return ActionResult.ok(events, total_cost=total)


def remove_purchase(state: GameState, defs: GameDefinitions, player: str, unit_type: str) -> ActionResult:
    """Refund the most recently queued unit of this type."""
    for pending in reversed(state.pending_purchases):
        if pending.owner == player and pending.unit_type == unit_type and pending.quantity > 0:
            pending.quantity -= 1
            if pending.quantity <= 0:
                state.pending_purchases.remove(pending)
            events = [
                _adjust_ipcs(state, player, pending.cost, "purchase_refund"),
                ev.purchase_removed(player, unit_type, pending.cost),
            ]
            return ActionResult.ok(events, refund=pending.cost)
    return ActionResult.fail(results.INSUFFICIENT_UNITS, f"No pending {unit_type} to remove")


def _place(state: GameState, territory: str, unit_type: str, player: str, quantity: int) -> None:
    state.territories[territory].add_units(unit_type, player, quantity)


def mobilize_unit(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    unit_type: str,
    territory: str,
) -> ActionResult:
    """Place one pending unit."""
    candidates = [p for p in state.pending_purchases
                  if p.owner == player and p.unit_type == unit_type and p.quantity > 0]
    if not candidates:
        return ActionResult.fail(results.INSUFFICIENT_UNITS, f"No pending {unit_type} to mobilize")
    error = mobilization_error(state, defs, player, unit_type, territory)
    if error:
        return ActionResult.fail(results.ILLEGAL_DESTINATION, error)

    # Prefer a purchase already bound for this territory, then an unbound one
    candidates.sort(key=lambda p: (p.territory != territory, p.territory is not None))
    pending = candidates[0]
    pending.quantity -= 1
    if pending.quantity <= 0:
        state.pending_purchases.remove(pending)
    _place(state, territory, unit_type, player, 1)
    return ActionResult.ok([ev.units_mobilized(player, territory, {unit_type: 1})])


def place_pending_purchases(state: GameState, defs: GameDefinitions, player: str) -> list[GameEvent]:
    """
    End of mobilize: place purchases that name a still-legal destination.
    Anything else is refunded, since the pending list does not survive the turn.
    """
    events = []
    for pending in [p for p in state.pending_purchases if p.owner == player]:
        error = None
        if pending.territory is None:
            error = "no destination chosen"
        else:
            error = mobilization_error(state, defs, player, pending.unit_type, pending.territory)
        if error:
            logger.warning("Refunding %d x %s for %s: %s",
                           pending.quantity, pending.unit_type, player, error)
            events.append(_adjust_ipcs(state, player, pending.cost * pending.quantity, "unplaced_refund"))
        else:
            _place(state, pending.territory, pending.unit_type, player, pending.quantity)
            events.append(ev.units_mobilized(player, pending.territory, {pending.unit_type: pending.quantity}))
    state.pending_purchases = [p for p in state.pending_purchases if p.owner != player]
    return events


# ===== Income =====

def can_collect_income(state: GameState, player: str) -> bool:
    """No income while the player's capital is held by someone else."""
    ps = state.player_state.get(player)
    if not ps or not ps.capital_territory:
        return True
    return state.owner(ps.capital_territory) == player


def controls_continent(state: GameState, defs: GameDefinitions, player: str, continent_name: str) -> bool:
    for continent in defs.map.continents:
        if continent.name == continent_name:
            return bool(continent.territories) and all(
                state.owner(t) == player for t in continent.territories
            )
    return False


def calculate_income(state: GameState, defs: GameDefinitions, player: str) -> tuple[int, dict[str, int]]:
    """
    Income for one player's collect phase.

    Returns:
        (total, breakdown) where breakdown maps territory or continent name to IPCs
    """
    if not can_collect_income(state, player):
        return 0, {}
    capital = state.player_state[player].capital_territory
    breakdown: dict[str, int] = {}
    for name, ts in state.territories.items():
        if ts.owner != player:
            continue
        if name == capital:
            breakdown[name] = defs.rules.capital_production
        else:
            t_def = defs.map.territories.get(name)
            if t_def and t_def.production:
                breakdown[name] = t_def.production
    for continent in defs.map.continents:
        if continent.bonus and controls_continent(state, defs, player, continent.name):
            breakdown[continent.name] = continent.bonus
    return sum(breakdown.values()), breakdown


def collect_income(state: GameState, defs: GameDefinitions, player: str) -> list[GameEvent]:
    income, breakdown = calculate_income(state, defs, player)
    events = [ev.income_collected(player, income, breakdown)]
    if income:
        events.append(_adjust_ipcs(state, player, income, "income"))
    return events


# ===== Research =====

def _tech(state: GameState, player: str) -> TechState:
    if player not in state.player_techs:
        state.player_techs[player] = TechState()
    return state.player_techs[player]


def purchase_tech_dice(state: GameState, defs: GameDefinitions, player: str, count: int) -> ActionResult:
    if not isinstance(count, int) or isinstance(count, bool) or count < 1:
        return ActionResult.fail(results.INVALID_PAYLOAD, f"Invalid die count {count!r}")
    cost = count * defs.rules.tech_die_cost
    if state.player_state[player].ipcs < cost:
        return ActionResult.fail(results.INSUFFICIENT_FUNDS,
                                 f"Need {cost} IPCs, have {state.player_state[player].ipcs}")
    events = [_adjust_ipcs(state, player, -cost, "tech_dice")]
    _tech(state, player).research_dice += count
    events.append(ev.tech_dice_purchased(player, count, cost))
    return ActionResult.ok(events, research_dice=_tech(state, player).research_dice)


def roll_tech_dice(state: GameState, defs: GameDefinitions, player: str, rng: random.Random) -> ActionResult:
    """Roll and consume every research die; any breakthrough face banks one breakthrough."""
    tech = _tech(state, player)
    if tech.research_dice <= 0:
        return ActionResult.fail(results.NO_RESEARCH_DICE, "No research dice to roll")
    rolls = roll_dice(rng, tech.research_dice)
    tech.research_dice = 0
    breakthrough = defs.rules.breakthrough_roll in rolls
    if breakthrough:
        tech.breakthroughs += 1
    return ActionResult.ok([ev.tech_rolled(player, rolls, breakthrough)],
                           rolls=rolls, breakthrough=breakthrough)


def unlock_tech(state: GameState, defs: GameDefinitions, player: str, tech_id: str) -> ActionResult:
    tech = _tech(state, player)
    if tech_id not in TECHNOLOGIES:
        return ActionResult.fail(results.INVALID_TECH, f"Unknown technology {tech_id}")
    if tech_id in tech.unlocked:
        return ActionResult.fail(results.INVALID_TECH, f"{tech_id} is already unlocked")
    if tech.breakthroughs <= 0:
        return ActionResult.fail(results.NO_BREAKTHROUGH, "No breakthrough to spend")
    tech.breakthroughs -= 1
    tech.unlocked.append(tech_id)
    return ActionResult.ok([ev.tech_unlocked(player, tech_id)], tech_id=tech_id)


# ===== Trading Cards =====

def award_card(state: GameState, defs: GameDefinitions, player: str, rng: random.Random) -> str:
    card = weighted_choice(rng, defs.rules.card_weights)
    state.cards.setdefault(player, []).append(card)
    return card


def is_valid_card_set(cards: list[str]) -> bool:
    """Three of a kind, one of each, or any three that include a wild."""
    if len(cards) != 3:
        return False
    if any(c not in CARD_TYPES and c != WILD_CARD for c in cards):
        return False
    if WILD_CARD in cards:
        return True
    return len(set(cards)) in (1, 3)


def find_valid_card_sets(cards: list[str]) -> list[list[str]]:
    """
    Every distinct tradeable triple in a hand, most conservative first:
    three of a kind, three wilds, one of each, then the wild substitutions.
    """
    counts = Counter(cards)
    wild = counts[WILD_CARD]
    sets = []
    for t in CARD_TYPES:
        if counts[t] >= 3:
            sets.append([t, t, t])
    if wild >= 3:
        sets.append([WILD_CARD] * 3)
    if all(counts[t] >= 1 for t in CARD_TYPES):
        sets.append(list(CARD_TYPES))
    for t in CARD_TYPES:
        if counts[t] >= 2 and wild >= 1:
            sets.append([t, t, WILD_CARD])
    for t in CARD_TYPES:
        if counts[t] >= 1 and wild >= 2:
            sets.append([t, WILD_CARD, WILD_CARD])
    present = [t for t in CARD_TYPES if counts[t] >= 1]
    if wild >= 1:
        for a, b in combinations(present, 2):
            sets.append([a, b, WILD_CARD])
    return sets


def can_trade_cards(cards: list[str]) -> bool:
    return len(cards) >= 3 and bool(find_valid_card_sets(cards))


def next_card_value(state: GameState, defs: GameDefinitions, player: str) -> int:
    return defs.rules.card_value(state.card_trade_count.get(player, 0))


def trade_cards(
    state: GameState,
    defs: GameDefinitions,
    player: str,
    card_set: list[str] | None = None,
) -> ActionResult:
    """Redeem a set for IPCs. With no set given, trades the first valid one."""
    hand = state.cards.setdefault(player, [])
    if card_set is None:
        sets = find_valid_card_sets(hand)
        if not sets:
            return ActionResult.fail(results.INVALID_CARD_SET, "No valid card set in hand")
        card_set = sets[0]
    if not isinstance(card_set, list) or not is_valid_card_set(card_set):
        return ActionResult.fail(results.INVALID_CARD_SET, f"{card_set!r} is not a valid set")
    needed = Counter(card_set)
    held = Counter(hand)
    if any(held[c] < n for c, n in needed.items()):
        return ActionResult.fail(results.INVALID_CARD_SET, f"Hand does not contain {card_set}")

    for card in card_set:
        hand.remove(card)
    trades = state.card_trade_count.get(player, 0)
    value = defs.rules.card_value(trades)
    state.card_trade_count[player] = trades + 1
    events = [
        _adjust_ipcs(state, player, value, "card_trade"),
        ev.cards_traded(player, list(card_set), value, trades + 1),
    ]
    return ActionResult.ok(events, ipcs=value, cards=list(card_set))
