"""Announcement rendering.

An announcement is a small closed set of block variants. The renderer is pure: the same
record and channel config always give an equal document, so resyncs never flap.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any
from typing import Union

from roster.capacity import occupied_spots
from roster.capacity import total_capacity
from roster.capacity import total_occupied
from roster.models import ChannelConfig
from roster.models import EventRecord
from roster.models import Participant


DEFAULT_DISPLAY_EMOJI = "scroll"
EVENT_MARKER_PREFIX = "event_id::"
EVENT_MARKER_PATTERN = re.compile(r"event_id::(EVT-[0-9A-F]{8})")

JOIN_ACTION_ID = "join_event"
CALENDAR_ACTION_ID = "add_to_gcal"

INSTRUCTIONS_TEXT = "Use the 'Join Event' button to sign up. To leave, use the `!event.leave` command."
EMPTY_ROSTER_TEXT = "_Awaiting participants_"
EMPTY_STANDBY_TEXT = "_Presently vacant_"


@dataclass(frozen=True, slots=True)
class TextSection:
    text: str


@dataclass(frozen=True, slots=True)
class Divider:
    marker: str | None = None


@dataclass(frozen=True, slots=True)
class ActionButton:
    action_id: str
    label: str
    payload: str
    primary: bool = False


@dataclass(frozen=True, slots=True)
class ActionGroup:
    actions: tuple[ActionButton, ...]


@dataclass(frozen=True, slots=True)
class RosterList:
    roster_id: str
    heading: str
    entries: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class StandbyList:
    heading: str
    entries: tuple[str, ...]


Block = Union[TextSection, Divider, ActionGroup, RosterList, StandbyList]


@dataclass(frozen=True, slots=True)
class AnnouncementDocument:
    event_id: str
    fallback_text: str
    blocks: tuple[Block, ...]

    def to_payload(self) -> list[dict[str, Any]]:
        return [_block_payload(b) for b in self.blocks]

    def marker(self) -> str | None:
        for block in reversed(self.blocks):
            if isinstance(block, Divider) and block.marker:
                return block.marker
        return None


def _block_payload(block: Block) -> dict[str, Any]:
    if isinstance(block, TextSection):
        return {"type": "text", "text": block.text}
    if isinstance(block, Divider):
        out: dict[str, Any] = {"type": "divider"}
        if block.marker:
            out["marker"] = block.marker
        return out
    if isinstance(block, ActionGroup):
        return {
            "type": "actions",
            "actions": [
                {"action_id": a.action_id, "label": a.label, "payload": a.payload, "primary": a.primary}
                for a in block.actions
            ],
        }
    if isinstance(block, RosterList):
        return {"type": "roster", "roster_id": block.roster_id, "heading": block.heading, "entries": list(block.entries)}
    if isinstance(block, StandbyList):
        return {"type": "standby", "heading": block.heading, "entries": list(block.entries)}
    raise TypeError(f"Unknown block variant: {type(block).__name__}")


def mention(participant: Participant) -> str:
    text = f"<@{int(participant.user_id)}>"
    if participant.guest_count > 0:
        text += f" (+{int(participant.guest_count)})"
    return text


def default_intro(event: EventRecord, display_emoji: str) -> str:
    return (
        f"A summons, esteemed gentlefolk! :{display_emoji}:\n\n"
        f"Arrangements have been made for the event of *{event.title}* upon *{event.booking_date}*."
    )


def share_intro(event: EventRecord) -> str:
    return (
        "A summons is issued! :trumpet:\n\n"
        f"All are invited to the engagement of *{event.title}* on *{event.booking_date}*. "
        "There are still positions available. Will you answer the call?"
    )


def particulars_text(event: EventRecord) -> str:
    lines = [
        "*The Particulars:*",
        f"• :clock530: *Hour of Engagement:* {event.booking_time}",
        f"• :round_pushpin: *Location:* {event.location}",
        f"• :busts_in_silhouette: *Total Capacity:* {total_occupied(event)} of {total_capacity(event)} positions filled",
    ]
    if event.venue_code:
        lines.append(f"• :key: *Entry Cipher:* {event.venue_code}")
    return "\n".join(lines)


def render_announcement(
    event: EventRecord,
    channel_config: ChannelConfig | None,
    intro_override: str | None = None,
) -> AnnouncementDocument:
    display_emoji = (channel_config.display_emoji if channel_config else "") or DEFAULT_DISPLAY_EMOJI
    intro = intro_override or event.intro_text or default_intro(event, display_emoji)
    if event.description:
        intro += f"\n\n_{event.description}_"

    blocks: list[Block] = [
        TextSection(intro),
        Divider(),
        TextSection(particulars_text(event)),
        TextSection(INSTRUCTIONS_TEXT),
        ActionGroup(
            (
                ActionButton(JOIN_ACTION_ID, "Join Event", event.event_id, primary=True),
                ActionButton(CALENDAR_ACTION_ID, "Add to Google Calendar", event.event_id),
            )
        ),
        Divider(),
    ]
    for roster in event.rosters:
        blocks.append(
            RosterList(
                roster_id=roster.roster_id,
                heading=f"*The Roster for {roster.name}* ({occupied_spots(roster)}/{roster.capacity})",
                entries=tuple(mention(p) for p in roster.players) or (EMPTY_ROSTER_TEXT,),
            )
        )
    blocks.append(
        StandbyList(
            heading=f"*The Reserve Contingent* :hourglass_flowing_sand: ({len(event.standby)})",
            entries=tuple(mention(p) for p in event.standby) or (EMPTY_STANDBY_TEXT,),
        )
    )
    blocks.append(Divider(marker=f"{EVENT_MARKER_PREFIX}{event.event_id}"))

    return AnnouncementDocument(
        event_id=event.event_id,
        fallback_text=f"An invitation to {event.title} on {event.booking_date} awaits!",
        blocks=tuple(blocks),
    )


def amended_text(event: EventRecord) -> str:
    return f'The roster for the event "{event.title}" on {event.booking_date} has been amended.'


def event_id_from_marker(text: str | None) -> str | None:
    m = EVENT_MARKER_PATTERN.search(text or "")
    return m.group(1) if m else None
