"""Roster comparison: turns two snapshots into login/logout transitions"""
from typing import List

from models import RosterSnapshot, Transition, TransitionKind


def diff(previous: RosterSnapshot, current: RosterSnapshot) -> List[Transition]:
    """
    Compare two snapshots and return the transitions between them

    A player missing from a snapshot counts as offline. Output order is
    the players of ``previous`` first, then the ones only seen in
    ``current``, each in snapshot order.
    """
    names = list(previous)
    names.extend(name for name in current if name not in previous)

    transitions: List[Transition] = []
    for name in names:
        was = previous.is_online(name)
        now = current.is_online(name)
        if was == now:
            continue

        if now:
            transitions.append(Transition.logged_in(name))
        else:
            transitions.append(Transition.logged_out(name))

    return transitions


def render(transition: Transition) -> str:
    """Human readable message for a transition, e.g. ``alice logged in``"""
    if transition.kind is TransitionKind.LOGGED_IN:
        return f"{transition.name} logged in"
    return f"{transition.name} logged off"
