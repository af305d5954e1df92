"""
Victory evaluation and capital capture.
"""

import logging

from conquest.engine import events as ev
from conquest.engine.definitions import GameDefinitions
from conquest.engine.events import GameEvent
from conquest.engine.state import GameState

logger = logging.getLogger("conquest.engine.victory")

CAPITAL_VICTORY_ALL = "Capital Victory - Controls all capitals"


def is_player_eliminated(state: GameState, player: str) -> bool:
    return not state.player_territories(player)


def capital_territories(state: GameState) -> list[str]:
    return [name for name, ts in state.territories.items() if ts.is_capital]


def _alliance_victory(state: GameState, defs: GameDefinitions) -> tuple[str, str] | None:
    capitals = {
        alliance: [c for c in names if c in state.territories]
        for alliance, names in defs.rules.alliance_capitals.items()
    }
    for alliance, own in capitals.items():
        members = {p.id for p in state.players if p.alliance == alliance}
        if not own or not members:
            continue
        if not all(state.owner(c) in members for c in own):
            continue
        opposing = [c for other, names in capitals.items() if other != alliance for c in names]
        if not opposing:
            continue
        held = sum(1 for c in opposing if state.owner(c) in members)
        required = min(defs.rules.alliance_victory_requirements.get(alliance, len(opposing)), len(opposing))
        if held >= required:
            return alliance, f"Alliance Victory - {alliance} controls {held}/{len(opposing)} enemy capitals"
    return None


def _capital_victory(state: GameState) -> tuple[str, str] | None:
    """2-3 players: hold every capital. 4+: hold a strict majority of all capitals."""
    capitals = capital_territories(state)
    total = len(capitals)
    if total == 0 or not state.players:
        return None
    player_count = len(state.players)
    for player in state.players:
        held = sum(1 for c in capitals if state.owner(c) == player.id)
        if player_count <= 3:
            if held == total:
                return player.id, CAPITAL_VICTORY_ALL
        elif held >= total // 2 + 1:
            return player.id, f"Capital Victory - Controls {held}/{total} capitals (majority)"
    return None


def check_victory(state: GameState, defs: GameDefinitions) -> GameEvent | None:
    """Set game_over/winner/win_condition if someone has won. A declared win is never retracted."""
    if state.game_over:
        return None
    if state.alliances_enabled:
        outcome = _alliance_victory(state, defs)
    else:
        outcome = _capital_victory(state)
    if not outcome:
        return None
    state.game_over = True
    state.winner, state.win_condition = outcome
    logger.info("Game over: %s (%s)", state.winner, state.win_condition)
    return ev.victory(state.winner, state.win_condition)


def handle_capital_capture(
    state: GameState,
    defs: GameDefinitions,
    territory: str,
    new_owner: str,
) -> list[GameEvent]:
    """
    Transfer the loser's treasury when their capital falls, then check victory.
    A capital that is already lost transfers nothing the second time; the original
    owner retaking it clears the captured flag.
    """
    ts = state.territories.get(territory)
    if not ts or not ts.is_capital:
        return []
    events = []
    loser = next((pid for pid, ps in state.player_state.items() if ps.capital_territory == territory), None)
    if loser == new_owner:
        state.player_state[loser].capital_captured = False
    elif loser is not None:
        loser_state = state.player_state[loser]
        if not loser_state.capital_captured:
            amount = loser_state.ipcs
            loser_state.ipcs = 0
            captor_state = state.player_state[new_owner]
            old = captor_state.ipcs
            captor_state.ipcs += amount
            loser_state.capital_captured = True
            events.append(ev.capital_captured(territory, loser, new_owner, amount))
            events.append(ev.resources_changed(loser, amount, 0, "capital_lost"))
            events.append(ev.resources_changed(new_owner, old, captor_state.ipcs, "capital_captured"))
    victory = check_victory(state, defs)
    if victory:
        events.append(victory)
    return events
