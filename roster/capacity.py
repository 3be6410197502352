from __future__ import annotations

from roster.models import EventRecord
from roster.models import Roster


def occupied_spots(roster: Roster) -> int:
    return sum(p.spots for p in roster.players)


def spots_left(roster: Roster) -> int:
    # Can go negative only if a bad write slipped through; callers treat that as an invariant breach.
    return int(roster.capacity) - occupied_spots(roster)


def total_occupied(event: EventRecord) -> int:
    return sum(occupied_spots(r) for r in event.rosters)


def total_capacity(event: EventRecord) -> int:
    return sum(int(r.capacity) for r in event.rosters)


def available_rosters(event: EventRecord) -> list[tuple[Roster, int]]:
    """Rosters with at least one free spot, in declaration order, paired with their spots left."""
    out: list[tuple[Roster, int]] = []
    for roster in event.rosters:
        left = spots_left(roster)
        if left > 0:
            out.append((roster, left))
    return out


def is_full(event: EventRecord) -> bool:
    return not available_rosters(event)
