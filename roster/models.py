from __future__ import annotations

import secrets
from dataclasses import dataclass
from dataclasses import field
from enum import Enum
from typing import Any

from roster.errors import InvalidStatusTransition


EVENT_ID_PREFIX = "EVT-"


class EventStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"


STATUS_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.SCHEDULED: frozenset({EventStatus.ACTIVE}),
    EventStatus.ACTIVE: frozenset(),
}


def check_status_transition(current: EventStatus, target: EventStatus) -> None:
    allowed = STATUS_TRANSITIONS.get(EventStatus(current), frozenset())
    if EventStatus(target) not in allowed:
        raise InvalidStatusTransition(
            f"Lifecycle transition {EventStatus(current).value} -> {EventStatus(target).value} is not allowed.",
            current=EventStatus(current).value,
            target=EventStatus(target).value,
        )


class EventCategory(str, Enum):
    SPORT = "SPORT"
    SPECTATOR = "SPECTATOR"


def new_event_id() -> str:
    return f"{EVENT_ID_PREFIX}{secrets.token_hex(4).upper()}"


def new_roster_id() -> str:
    return secrets.token_hex(6)


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


@dataclass(slots=True)
class Participant:
    user_id: int
    email: str | None = None
    guest_count: int = 0

    @property
    def spots(self) -> int:
        return 1 + max(0, int(self.guest_count or 0))

    def to_dict(self) -> dict[str, Any]:
        return {"user_id": int(self.user_id), "email": self.email, "guest_count": int(self.guest_count)}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Participant":
        return cls(
            user_id=int(raw["user_id"]),
            email=(raw.get("email") or None),
            guest_count=int(raw.get("guest_count") or 0),
        )


@dataclass(slots=True)
class Roster:
    roster_id: str
    name: str
    capacity: int
    allow_guests: bool = False
    players: list[Participant] = field(default_factory=list)

    def has_user(self, user_id: int) -> bool:
        return any(p.user_id == int(user_id) for p in self.players)

    def to_dict(self) -> dict[str, Any]:
        return {
            "roster_id": self.roster_id,
            "name": self.name,
            "capacity": int(self.capacity),
            "allow_guests": bool(self.allow_guests),
            "players": [p.to_dict() for p in self.players],
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Roster":
        return cls(
            roster_id=str(raw.get("roster_id") or new_roster_id()),
            name=str(raw.get("name") or ""),
            capacity=int(raw.get("capacity") or 0),
            allow_guests=bool(raw.get("allow_guests", False)),
            players=[Participant.from_dict(p) for p in (raw.get("players") or [])],
        )


@dataclass(frozen=True, slots=True)
class PostedMessage:
    channel_id: int
    message_id: int

    def to_dict(self) -> dict[str, int]:
        return {"channel_id": int(self.channel_id), "message_id": int(self.message_id)}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "PostedMessage":
        return cls(channel_id=int(raw["channel_id"]), message_id=int(raw["message_id"]))


@dataclass(slots=True)
class EventRecord:
    event_id: str
    title: str
    event_type: str
    category: EventCategory
    location: str
    booking_date: str
    booking_time: str
    booking_at_utc: str
    booking_date_local: str
    created_by: str
    created_at_utc: str
    status: EventStatus = EventStatus.ACTIVE
    description: str | None = None
    venue_code: str | None = None
    post_at_utc: str | None = None
    scheduled_channel_id: int | None = None
    rosters: list[Roster] = field(default_factory=list)
    standby: list[Participant] = field(default_factory=list)
    posted_messages: list[PostedMessage] = field(default_factory=list)
    intro_text: str | None = None
    revision: int = 0

    @property
    def max_capacity(self) -> int:
        return sum(int(r.capacity) for r in self.rosters)

    @property
    def primary_channel_id(self) -> int | None:
        if self.posted_messages:
            return int(self.posted_messages[0].channel_id)
        return self.scheduled_channel_id

    def roster_by_id(self, roster_id: str) -> Roster | None:
        for roster in self.rosters:
            if roster.roster_id == roster_id:
                return roster
        return None

    def roster_for_user(self, user_id: int) -> Roster | None:
        for roster in self.rosters:
            if roster.has_user(user_id):
                return roster
        return None

    def on_standby(self, user_id: int) -> bool:
        return any(p.user_id == int(user_id) for p in self.standby)

    def is_enrolled(self, user_id: int) -> bool:
        return self.roster_for_user(user_id) is not None or self.on_standby(user_id)

    def participants(self) -> list[Participant]:
        out: list[Participant] = []
        for roster in self.rosters:
            out.extend(roster.players)
        out.extend(self.standby)
        return out

    def has_location(self, channel_id: int) -> bool:
        return any(int(m.channel_id) == int(channel_id) for m in self.posted_messages)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "title": self.title,
            "event_type": self.event_type,
            "category": EventCategory(self.category).value,
            "location": self.location,
            "description": self.description,
            "venue_code": self.venue_code,
            "booking_date": self.booking_date,
            "booking_time": self.booking_time,
            "booking_at_utc": self.booking_at_utc,
            "booking_date_local": self.booking_date_local,
            "created_by": self.created_by,
            "created_at_utc": self.created_at_utc,
            "status": EventStatus(self.status).value,
            "post_at_utc": self.post_at_utc,
            "scheduled_channel_id": self.scheduled_channel_id,
            "rosters": [r.to_dict() for r in self.rosters],
            "standby": [p.to_dict() for p in self.standby],
            "posted_messages": [m.to_dict() for m in self.posted_messages],
            "max_capacity": self.max_capacity,
            "intro_text": self.intro_text,
            "revision": int(self.revision),
        }

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "EventRecord":
        return cls(
            event_id=str(raw["event_id"]),
            title=str(raw.get("title") or ""),
            event_type=str(raw.get("event_type") or ""),
            category=EventCategory(str(raw.get("category") or EventCategory.SPECTATOR.value)),
            location=str(raw.get("location") or ""),
            description=raw.get("description") or None,
            venue_code=raw.get("venue_code") or None,
            booking_date=str(raw.get("booking_date") or ""),
            booking_time=str(raw.get("booking_time") or ""),
            booking_at_utc=str(raw.get("booking_at_utc") or ""),
            booking_date_local=str(raw.get("booking_date_local") or ""),
            created_by=str(raw.get("created_by") or ""),
            created_at_utc=str(raw.get("created_at_utc") or ""),
            status=EventStatus(str(raw.get("status") or EventStatus.ACTIVE.value)),
            post_at_utc=raw.get("post_at_utc") or None,
            scheduled_channel_id=_opt_int(raw.get("scheduled_channel_id")),
            rosters=[Roster.from_dict(r) for r in (raw.get("rosters") or [])],
            standby=[Participant.from_dict(p) for p in (raw.get("standby") or [])],
            posted_messages=[PostedMessage.from_dict(m) for m in (raw.get("posted_messages") or [])],
            intro_text=raw.get("intro_text") or None,
            revision=int(raw.get("revision") or 0),
        )

    def clone(self) -> "EventRecord":
        return EventRecord.from_dict(self.to_dict())


@dataclass(slots=True)
class ChannelConfig:
    channel_id: int
    guild_id: int | None = None
    default_event_type: str = ""
    reaction_emoji: str = "hand"
    display_emoji: str = "scroll"
    reminder_text: str | None = None
    configured_by_user_id: int | None = None
    configured_at_utc: str | None = None


@dataclass(slots=True)
class EventProfile:
    name: str
    category: EventCategory
    capacity_unit: str
    default_capacity: int
    default_location: str | None = None
    venue_code: str | None = None
    created_by_user_id: int | None = None
    created_at_utc: str | None = None
