"""Roster state transitions.

Every function here takes an EventRecord, works on a copy and either returns a
TransitionResult carrying the new record or raises before anything is handed back.
Persistence, locking and message sync belong to RosterService.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from roster.capacity import available_rosters
from roster.capacity import spots_left
from roster.dates import parse_utc
from roster.errors import AlreadyEnrolled
from roster.errors import AlreadySharedInChannel
from roster.errors import CapacityExceeded
from roster.errors import DuplicateLocation
from roster.errors import DuplicateParticipant
from roster.errors import EventNotPublished
from roster.errors import GuestsNotAllowed
from roster.errors import InsufficientCapacity
from roster.errors import InvalidCapacity
from roster.errors import InvalidGuestCount
from roster.errors import InvalidStatusTransition
from roster.errors import LastRosterProtected
from roster.errors import NoRosterSelected
from roster.errors import NotEnrolled
from roster.errors import RosterNotFound
from roster.errors import RosterOccupied
from roster.models import EventRecord
from roster.models import EventStatus
from roster.models import Participant
from roster.models import PostedMessage
from roster.models import Roster
from roster.models import check_status_transition
from roster.models import new_roster_id


@dataclass(slots=True)
class TransitionResult:
    event: EventRecord
    action: str
    user_id: int | None = None
    roster_id: str | None = None
    roster_name: str | None = None
    placement: str | None = None
    guest_count: int = 0
    promoted: Participant | None = None

    def audit_payload(self) -> dict:
        payload: dict = {}
        if self.roster_name:
            payload["roster"] = self.roster_name
        if self.placement:
            payload["placement"] = self.placement
        if self.guest_count:
            payload["guests"] = self.guest_count
        if self.promoted is not None:
            payload["promoted_user_id"] = self.promoted.user_id
        return payload


def verify_invariants(event: EventRecord) -> None:
    seen: set[int] = set()
    for roster in event.rosters:
        if spots_left(roster) < 0:
            raise CapacityExceeded(
                f"Roster {roster.name!r} holds more than its capacity.",
                event_id=event.event_id,
                roster=roster.roster_id,
            )
        for p in roster.players:
            if p.user_id in seen:
                raise DuplicateParticipant(
                    "A participant appears in more than one place.",
                    event_id=event.event_id,
                    user=p.user_id,
                )
            seen.add(p.user_id)
    for p in event.standby:
        if p.user_id in seen:
            raise DuplicateParticipant(
                "A participant appears in more than one place.",
                event_id=event.event_id,
                user=p.user_id,
            )
        seen.add(p.user_id)

    channels = [int(m.channel_id) for m in event.posted_messages]
    if len(channels) != len(set(channels)):
        raise DuplicateLocation("Posted-message ledger repeats a channel.", event_id=event.event_id)

    status = EventStatus(event.status)
    if status is EventStatus.SCHEDULED and (not event.post_at_utc or event.posted_messages):
        raise InvalidStatusTransition(
            "Scheduled events must have a post time and no posted messages.",
            event_id=event.event_id,
        )
    if status is EventStatus.ACTIVE and event.post_at_utc:
        raise InvalidStatusTransition("Active events cannot carry a post time.", event_id=event.event_id)


def join(
    event: EventRecord,
    *,
    user_id: int,
    requested_roster_id: str | None = None,
    guest_count: int = 0,
    email: str | None = None,
) -> TransitionResult:
    guest_count = int(guest_count or 0)
    if guest_count < 0:
        raise InvalidGuestCount(event_id=event.event_id, user=user_id)
    if event.is_enrolled(user_id):
        raise AlreadyEnrolled(event_id=event.event_id, user=user_id)

    updated = event.clone()
    available = available_rosters(updated)
    if not available:
        # Standby never tracks guests.
        updated.standby.append(Participant(user_id=int(user_id), email=email, guest_count=0))
        verify_invariants(updated)
        return TransitionResult(event=updated, action="join", user_id=int(user_id), placement="standby")

    if requested_roster_id:
        target = updated.roster_by_id(requested_roster_id)
        if target is None:
            raise RosterNotFound(event_id=event.event_id, roster=requested_roster_id)
    elif len(available) == 1 and not available[0][0].allow_guests:
        target = available[0][0]
    else:
        raise NoRosterSelected(event_id=event.event_id, user=user_id)

    if guest_count > 0 and not target.allow_guests:
        raise GuestsNotAllowed(
            f"My apologies, but the roster you selected, *{target.name}*, does not permit guests.",
            event_id=event.event_id,
            roster=target.roster_id,
        )
    if 1 + guest_count > spots_left(target):
        raise InsufficientCapacity(
            f"My apologies, but there are not enough spots left for you and your guest(s) on the *{target.name}* roster.",
            event_id=event.event_id,
            roster=target.roster_id,
        )

    target.players.append(Participant(user_id=int(user_id), email=email, guest_count=guest_count))
    verify_invariants(updated)
    return TransitionResult(
        event=updated,
        action="join",
        user_id=int(user_id),
        roster_id=target.roster_id,
        roster_name=target.name,
        placement="roster",
        guest_count=guest_count,
    )


def leave(event: EventRecord, *, user_id: int) -> TransitionResult:
    updated = event.clone()
    uid = int(user_id)

    for roster in updated.rosters:
        idx = next((i for i, p in enumerate(roster.players) if p.user_id == uid), None)
        if idx is None:
            continue
        roster.players.pop(idx)
        promoted: Participant | None = None
        if updated.standby:
            # Promotion ignores the vacated roster's guest policy and always seats a party of one.
            promoted = updated.standby.pop(0)
            promoted.guest_count = 0
            roster.players.append(promoted)
        verify_invariants(updated)
        return TransitionResult(
            event=updated,
            action="leave",
            user_id=uid,
            roster_id=roster.roster_id,
            roster_name=roster.name,
            placement="roster",
            promoted=promoted,
        )

    idx = next((i for i, p in enumerate(updated.standby) if p.user_id == uid), None)
    if idx is None:
        raise NotEnrolled(event_id=event.event_id, user=uid)
    updated.standby.pop(idx)
    verify_invariants(updated)
    return TransitionResult(event=updated, action="leave", user_id=uid, placement="standby")


def add_roster(
    event: EventRecord,
    *,
    name: str,
    capacity: int,
    allow_guests: bool = False,
) -> TransitionResult:
    clean_name = (name or "").strip()
    try:
        cap = int(capacity)
    except (TypeError, ValueError):
        raise InvalidCapacity(event_id=event.event_id) from None
    if not clean_name or cap < 1:
        raise InvalidCapacity(event_id=event.event_id)

    updated = event.clone()
    existing = {r.roster_id for r in updated.rosters}
    roster_id = new_roster_id()
    while roster_id in existing:
        roster_id = new_roster_id()
    roster = Roster(roster_id=roster_id, name=clean_name, capacity=cap, allow_guests=bool(allow_guests))
    updated.rosters.append(roster)
    verify_invariants(updated)
    return TransitionResult(event=updated, action="add_roster", roster_id=roster.roster_id, roster_name=roster.name)


def remove_roster(event: EventRecord, *, roster_name: str) -> TransitionResult:
    if len(event.rosters) <= 1:
        raise LastRosterProtected(event_id=event.event_id)
    wanted = (roster_name or "").strip().lower()
    updated = event.clone()
    idx = next((i for i, r in enumerate(updated.rosters) if r.name.strip().lower() == wanted), None)
    if idx is None:
        raise RosterNotFound(f"I could not find a roster named *{roster_name}*.", event_id=event.event_id)
    roster = updated.rosters[idx]
    if roster.players:
        raise RosterOccupied(event_id=event.event_id, roster=roster.roster_id)
    updated.rosters.pop(idx)
    verify_invariants(updated)
    return TransitionResult(event=updated, action="remove_roster", roster_id=roster.roster_id, roster_name=roster.name)


def publish(
    event: EventRecord,
    *,
    channel_id: int,
    message_id: int,
    now: datetime | None = None,
) -> TransitionResult:
    check_status_transition(event.status, EventStatus.ACTIVE)
    now = now or datetime.now(timezone.utc)
    post_at = parse_utc(event.post_at_utc)
    if post_at is None or post_at > now:
        raise InvalidStatusTransition(
            "Scheduled event is not due yet.",
            event_id=event.event_id,
            post_at=event.post_at_utc,
        )

    updated = event.clone()
    updated.posted_messages.append(PostedMessage(channel_id=int(channel_id), message_id=int(message_id)))
    updated.status = EventStatus.ACTIVE
    updated.post_at_utc = None
    updated.scheduled_channel_id = None
    verify_invariants(updated)
    return TransitionResult(event=updated, action="publish")


def add_location(event: EventRecord, *, channel_id: int, message_id: int) -> TransitionResult:
    if EventStatus(event.status) is not EventStatus.ACTIVE:
        raise EventNotPublished(event_id=event.event_id)
    if event.has_location(channel_id):
        raise AlreadySharedInChannel(event_id=event.event_id, channel=channel_id)
    updated = event.clone()
    updated.posted_messages.append(PostedMessage(channel_id=int(channel_id), message_id=int(message_id)))
    verify_invariants(updated)
    return TransitionResult(event=updated, action="share")
