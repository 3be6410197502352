from __future__ import annotations

from datetime import datetime, timezone

from misc.inquiry_routes import classify_inquiry
from misc.inquiry_routes import extract_inquiry_date
from roster.capacity import occupied_spots
from roster.capacity import total_capacity
from roster.capacity import total_occupied
from roster.dates import display_date
from roster.dates import local_today
from roster.models import EventRecord
from roster.render import mention


HELP_TEXT = (
    "Your humble servant is at your disposal. You may inquire about the 'next event', "
    "ask about your 'status', or check how many 'spots are left'."
)
NO_EVENT_ON_DATE = "A noble query, but my archives show no scheduled contest for *{date}*."
NO_UPCOMING_EVENT = "My apologies, but I could not find an upcoming engagement to check against."


def status_reply(event: EventRecord, user_id: int) -> str:
    roster = event.roster_for_user(user_id)
    if roster is not None:
        return (
            "Ah, a personal inquiry! Indeed, I have your name inscribed upon the roster for "
            f"*{roster.name}* for the event *{event.title}* on *{event.booking_date}*."
        )
    if event.on_standby(user_id):
        return f"Fear not, for your name is securely held within the Reserve Contingent for *{event.title}*."
    return (
        f"A curious matter. It appears your name is not yet on any roster for *{event.title}*. "
        "Pray, use the *Join Event* button on the proclamation should you wish to join."
    )


def spots_reply(event: EventRecord) -> str:
    remaining = total_capacity(event) - total_occupied(event)
    if remaining > 0:
        return (
            f"An astute question! For the event *{event.title}*, there remain *{remaining}* "
            "positions awaiting worthy challengers."
        )
    return (
        f"Alas, the rosters for *{event.title}* are at their full complement. "
        "However, you may still add your name to the Reserve Contingent."
    )


def summary_reply(event: EventRecord) -> str:
    text = f"The next scheduled engagement is *{event.title}* on *{event.booking_date}* at *{event.booking_time}*."
    if event.location:
        text += f"\n*Location:* {event.location}"
    for roster in event.rosters:
        names = ", ".join(mention(p) for p in roster.players) or "_None as of yet._"
        text += f"\n*{roster.name} ({occupied_spots(roster)}/{roster.capacity})*: {names}"
    if event.standby:
        text += "\n*Awaiting the Call:* " + ", ".join(mention(p) for p in event.standby)
    return text


async def answer_inquiry(service, *, text: str, user_id: int, now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    kind = classify_inquiry(text)
    target_date = extract_inquiry_date(text, today=local_today(service.timezone_name, now))
    if kind == "help" and target_date is None:
        return HELP_TEXT

    if target_date is not None:
        events = await service.events_on_date(target_date.isoformat())
        if not events:
            return NO_EVENT_ON_DATE.format(date=display_date(target_date))
        event = events[0]
    else:
        event = await service.next_event(now=now)
        if event is None:
            return NO_UPCOMING_EVENT

    print(f"[Inquiry] action=answer result=ok kind={kind} event={event.event_id} user={user_id}")
    if kind == "status":
        return status_reply(event, user_id)
    if kind == "spots":
        return spots_reply(event)
    return summary_reply(event)
