from __future__ import annotations

import asyncio
import sqlite3
from dataclasses import dataclass
from dataclasses import field
from datetime import datetime, timedelta, timezone
from typing import Any
from typing import Callable

from roster import transitions
from roster.capacity import spots_left
from roster.dates import booking_fields
from roster.dates import local_day_start_utc
from roster.dates import local_today
from roster.dates import monday_weeks_ahead
from roster.dates import parse_local_date
from roster.dates import utc_iso
from roster.errors import AlreadySharedInChannel
from roster.errors import CalendarError
from roster.errors import ChannelNotConfigured
from roster.errors import EventNotFound
from roster.errors import EventNotPublished
from roster.errors import InvalidCapacity
from roster.errors import InvalidEventDetails
from roster.errors import InvariantViolation
from roster.errors import NotChannelAdmin
from roster.errors import NotEnrolled
from roster.errors import ProfileNotFound
from roster.errors import StoreUnavailable
from roster.errors import describe_error
from roster.locks import KeyedLocks
from roster.models import ChannelConfig
from roster.models import EventCategory
from roster.models import EventProfile
from roster.models import EventRecord
from roster.models import EventStatus
from roster.models import PostedMessage
from roster.models import Roster
from roster.models import new_event_id
from roster.models import new_roster_id
from roster.render import amended_text
from roster.render import render_announcement
from roster.render import share_intro
from roster.store import delete_event_sync
from roster.store import find_due_events_sync
from roster.store import find_event_by_message_sync
from roster.store import find_events_by_participant_sync
from roster.store import find_events_on_date_sync
from roster.store import find_upcoming_events_sync
from roster.store import get_channel_config_sync
from roster.store import get_event_profile_sync
from roster.store import get_event_sync
from roster.store import insert_event_audit_sync
from roster.store import is_channel_admin_sync
from roster.store import list_event_profiles_sync
from roster.store import set_event_sync
from roster.store import upsert_channel_config_sync
from roster.store import upsert_event_profile_sync


DEFAULT_REMINDER_TEMPLATE = (
    "A gentle reminder, esteemed combatants. Our engagement, *{eventTitle}*, is scheduled for tomorrow "
    "at {eventTime}. Pray, prepare accordingly. {weather}"
)
PROMOTION_TEXT = (
    "Fortune smiles upon you! A position for *{title}* has become available. "
    "You are now on the roster for *{roster}*."
)
SCHEDULE_GRACE_SECONDS = 5


@dataclass(slots=True)
class RosterDraft:
    name: str
    capacity: int
    allow_guests: bool = False


@dataclass(slots=True)
class SyncOutcome:
    channel_id: int
    message_id: int
    ok: bool
    error: str | None = None


@dataclass(slots=True)
class PublishReport:
    published: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)
    skipped: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.published)


@dataclass(slots=True)
class ReminderReport:
    dry_run: bool
    target_date_local: str
    sent: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    previews: list[dict[str, Any]] = field(default_factory=list)


def default_rosters_for_profile(profile: EventProfile) -> list[RosterDraft]:
    capacity = max(1, int(profile.default_capacity or 1))
    if EventCategory(profile.category) is EventCategory.SPORT:
        per_unit = 4 if "padel" in profile.name.lower() else 2
        unit = (profile.capacity_unit or "Unit").strip()
        unit_singular = unit[:-1] if unit.lower().endswith("s") else unit
        return [RosterDraft(name=f"{unit_singular} {i + 1}", capacity=per_unit) for i in range(capacity)]
    return [RosterDraft(name="Attendees", capacity=capacity)]


def render_reminder(template: str, event: EventRecord, weather: str) -> str:
    return (
        (template or DEFAULT_REMINDER_TEMPLATE)
        .replace("{eventTitle}", f"*{event.title}*")
        .replace("{eventTime}", f"*{event.booking_time}*")
        .replace("{weather}", weather or "")
        .strip()
    )


class RosterService:
    def __init__(
        self,
        *,
        db_lock,
        db_conn,
        gateway,
        calendar=None,
        forecast=None,
        intro_drafter=None,
        timezone_name: str = "Europe/Stockholm",
        default_time: str = "17:30",
        primary_channel_id: int = 0,
        owner_user_ids: set[int] | None = None,
        now_func: Callable[[], datetime] | None = None,
    ) -> None:
        self.db_lock = db_lock
        self.db_conn = db_conn
        self.gateway = gateway
        self.calendar = calendar
        self.forecast = forecast
        self.intro_drafter = intro_drafter
        self.timezone_name = (timezone_name or "UTC").strip() or "UTC"
        self.default_time = (default_time or "17:30").strip() or "17:30"
        self.primary_channel_id = int(primary_channel_id or 0)
        self.owner_user_ids = set(owner_user_ids or set())
        self._now = now_func or (lambda: datetime.now(timezone.utc))

        self._event_locks = KeyedLocks()
        self._publishing: set[str] = set()

    # -------------------------
    # Plumbing
    # -------------------------
    @staticmethod
    def _log(action: str, result: str, **fields) -> None:
        extra = " ".join(f"{k}={v}" for k, v in fields.items() if v is not None)
        print(f"[Events] action={action} result={result} {extra}".rstrip())

    def _log_invariant(self, action: str, event_id: str, exc: BaseException) -> None:
        print(f"[Events] severity=critical action={action} result=aborted event={event_id} error={describe_error(exc)}")

    async def _db(self, fn, *args, **kwargs):
        try:
            async with self.db_lock:
                return await asyncio.to_thread(fn, self.db_conn, *args, **kwargs)
        except sqlite3.Error as e:
            name = getattr(fn, "__name__", "store_call")
            print(f"[DB] action={name} result=error error={str(e)[:180]}")
            raise StoreUnavailable(f"{name} failed: {e}", op=name) from e

    async def _audit(
        self,
        event: EventRecord,
        action: str,
        *,
        actor_user_id: int | None,
        actor_type: str = "user",
        payload: dict[str, Any] | None = None,
    ) -> None:
        await self._db(
            insert_event_audit_sync,
            event_id=event.event_id,
            action=action,
            actor_type=actor_type,
            actor_user_id=actor_user_id,
            revision=event.revision,
            payload=payload or {},
        )

    @staticmethod
    def normalize_event_id(event_id: str) -> str:
        return (event_id or "").strip().upper()

    async def get_event(self, event_id: str) -> EventRecord | None:
        return await self._db(get_event_sync, self.normalize_event_id(event_id))

    async def require_event(self, event_id: str) -> EventRecord:
        event = await self.get_event(event_id)
        if event is None:
            raise EventNotFound(
                f"I could not find an event with the ID `{self.normalize_event_id(event_id)}`.",
                event_id=event_id,
            )
        return event

    async def get_channel_config(self, channel_id: int | None) -> ChannelConfig | None:
        if not channel_id:
            return None
        return await self._db(get_channel_config_sync, int(channel_id))

    async def _require_channel_config(self, channel_id: int) -> ChannelConfig:
        cfg = await self.get_channel_config(channel_id)
        if cfg is None:
            raise ChannelNotConfigured(
                f"I'm sorry, but I have not yet been configured for <#{int(channel_id)}>. "
                "Please invite me there and run `!channel.configure` first.",
                channel=channel_id,
            )
        return cfg

    async def _require_channel_admin(self, event: EventRecord, actor_user_id: int) -> None:
        if int(actor_user_id) in self.owner_user_ids:
            return
        channel_id = event.primary_channel_id
        if channel_id and await self._db(is_channel_admin_sync, channel_id=channel_id, user_id=int(actor_user_id)):
            return
        raise NotChannelAdmin(event_id=event.event_id, user=actor_user_id)

    async def _commit(
        self,
        event_id: str,
        action: str,
        mutate: Callable[[EventRecord], transitions.TransitionResult],
        *,
        actor_user_id: int | None,
        actor_type: str = "user",
        precheck=None,
    ) -> transitions.TransitionResult:
        eid = self.normalize_event_id(event_id)
        async with self._event_locks.hold(eid):
            current = await self._db(get_event_sync, eid)
            if current is None:
                raise EventNotFound(f"I could not find an event with the ID `{eid}`.", event_id=eid)
            if precheck is not None:
                await precheck(current)
            try:
                result = mutate(current)
                saved = await self._db(set_event_sync, result.event, expected_revision=current.revision)
            except InvariantViolation as e:
                self._log_invariant(action, eid, e)
                raise
            result.event = saved
            await self._audit(
                saved,
                action,
                actor_user_id=actor_user_id,
                actor_type=actor_type,
                payload=result.audit_payload(),
            )
        self._log(
            action,
            "ok",
            event=eid,
            user=result.user_id,
            roster=result.roster_id,
            placement=result.placement,
            revision=saved.revision,
        )
        return result

    # -------------------------
    # Multi-message sync
    # -------------------------
    async def _update_location(self, event: EventRecord, loc: PostedMessage, doc) -> SyncOutcome:
        try:
            await self.gateway.update(int(loc.channel_id), int(loc.message_id), doc, text=amended_text(event))
            return SyncOutcome(channel_id=int(loc.channel_id), message_id=int(loc.message_id), ok=True)
        except Exception as e:
            print(
                f"[Sync] action=update result=error event={event.event_id} "
                f"channel={loc.channel_id} message={loc.message_id} error={str(e)[:180]}"
            )
            return SyncOutcome(
                channel_id=int(loc.channel_id),
                message_id=int(loc.message_id),
                ok=False,
                error=str(e)[:300],
            )

    async def resync(self, event_or_id: EventRecord | str) -> list[SyncOutcome]:
        event_id = event_or_id.event_id if isinstance(event_or_id, EventRecord) else self.normalize_event_id(event_or_id)
        event = await self._db(get_event_sync, event_id)
        if event is None:
            print(f"[Sync] action=resync result=skipped event={event_id} reason=deleted")
            return []
        if not event.posted_messages:
            return []
        config = await self.get_channel_config(event.primary_channel_id)
        doc = render_announcement(event, config)
        outcomes = await asyncio.gather(*(self._update_location(event, loc, doc) for loc in event.posted_messages))
        failed = sum(1 for o in outcomes if not o.ok)
        print(
            f"[Sync] action=resync result={'partial' if failed else 'ok'} event={event_id} "
            f"locations={len(outcomes)} failed={failed}"
        )
        return list(outcomes)

    async def _notify(self, user_id: int, text: str, *, event_id: str, reason: str) -> bool:
        try:
            await self.gateway.notify_user(int(user_id), text)
            return True
        except Exception as e:
            print(f"[Events] action=notify result=error event={event_id} user={user_id} reason={reason} error={str(e)[:180]}")
            return False

    # -------------------------
    # Roster transitions
    # -------------------------
    async def join(
        self,
        event_id: str,
        *,
        user_id: int,
        roster_id: str | None = None,
        guest_count: int = 0,
        email: str | None = None,
    ) -> transitions.TransitionResult:
        result = await self._commit(
            event_id,
            "join",
            lambda ev: transitions.join(
                ev,
                user_id=int(user_id),
                requested_roster_id=roster_id,
                guest_count=guest_count,
                email=email,
            ),
            actor_user_id=int(user_id),
        )
        await self.resync(result.event)
        return result

    async def leave(self, event_id: str, *, user_id: int) -> transitions.TransitionResult:
        result = await self._commit(
            event_id,
            "leave",
            lambda ev: transitions.leave(ev, user_id=int(user_id)),
            actor_user_id=int(user_id),
        )
        await self.resync(result.event)
        if result.promoted is not None:
            await self._notify(
                result.promoted.user_id,
                PROMOTION_TEXT.format(title=result.event.title, roster=result.roster_name),
                event_id=result.event.event_id,
                reason="promotion",
            )
        return result

    async def add_roster(
        self,
        event_id: str,
        *,
        actor_user_id: int,
        name: str,
        capacity: int,
        allow_guests: bool = False,
    ) -> transitions.TransitionResult:
        async def _admin(ev: EventRecord) -> None:
            await self._require_channel_admin(ev, actor_user_id)

        result = await self._commit(
            event_id,
            "add_roster",
            lambda ev: transitions.add_roster(ev, name=name, capacity=capacity, allow_guests=allow_guests),
            actor_user_id=int(actor_user_id),
            precheck=_admin,
        )
        await self.resync(result.event)
        return result

    async def remove_roster(self, event_id: str, *, actor_user_id: int, roster_name: str) -> transitions.TransitionResult:
        async def _admin(ev: EventRecord) -> None:
            await self._require_channel_admin(ev, actor_user_id)

        result = await self._commit(
            event_id,
            "remove_roster",
            lambda ev: transitions.remove_roster(ev, roster_name=roster_name),
            actor_user_id=int(actor_user_id),
            precheck=_admin,
        )
        await self.resync(result.event)
        return result

    # -------------------------
    # Scheduling gate
    # -------------------------
    async def due_pending_events(self, now: datetime | None = None) -> list[EventRecord]:
        now = now or self._now()
        return await self._db(find_due_events_sync, now_utc=utc_iso(now))

    async def _discard_message(self, channel_id: int, message_id: int, *, event_id: str) -> None:
        try:
            await self.gateway.delete(int(channel_id), int(message_id))
        except Exception as e:
            print(f"[Schedule] action=discard result=error event={event_id} channel={channel_id} error={str(e)[:180]}")

    async def _publish_one(self, due: EventRecord, now: datetime) -> str:
        channel_id = int(due.scheduled_channel_id or 0)
        if channel_id <= 0:
            raise ChannelNotConfigured("Scheduled event has no target channel.", event_id=due.event_id)
        config = await self._require_channel_config(channel_id)
        message_id = await self.gateway.post(channel_id, render_announcement(due, config))

        async with self._event_locks.hold(due.event_id):
            fresh = await self._db(get_event_sync, due.event_id)
            if fresh is None or EventStatus(fresh.status) is not EventStatus.SCHEDULED:
                # Deleted or already published by a concurrent scan.
                await self._discard_message(channel_id, message_id, event_id=due.event_id)
                return "skipped"
            try:
                result = transitions.publish(fresh, channel_id=channel_id, message_id=message_id, now=now)
                saved = await self._db(set_event_sync, result.event, expected_revision=fresh.revision)
            except InvariantViolation as e:
                self._log_invariant("publish", due.event_id, e)
                await self._discard_message(channel_id, message_id, event_id=due.event_id)
                raise
            await self._audit(
                saved,
                "published",
                actor_user_id=None,
                actor_type="system",
                payload={"channel_id": channel_id, "message_id": message_id},
            )
        if fresh.revision != due.revision:
            await self.resync(saved)
        return "published"

    async def publish_due(self, now: datetime | None = None) -> PublishReport:
        now = now or self._now()
        report = PublishReport()
        due_events = await self.due_pending_events(now)
        for due in due_events:
            if due.event_id in self._publishing:
                report.skipped.append(due.event_id)
                continue
            self._publishing.add(due.event_id)
            try:
                outcome = await self._publish_one(due, now)
            except Exception as e:
                report.failed[due.event_id] = describe_error(e)
                print(f"[Schedule] action=publish result=error event={due.event_id} error={describe_error(e)}")
                continue
            finally:
                self._publishing.discard(due.event_id)
            if outcome == "published":
                report.published.append(due.event_id)
                print(f"[Schedule] action=publish result=ok event={due.event_id}")
            else:
                report.skipped.append(due.event_id)
        if due_events:
            print(
                f"[Schedule] action=scan result=ok due={len(due_events)} published={report.count} "
                f"failed={len(report.failed)} skipped={len(report.skipped)}"
            )
        return report

    # -------------------------
    # Creation / sharing / deletion
    # -------------------------
    def _build_rosters(self, drafts: list[RosterDraft], event_id: str) -> list[Roster]:
        if not drafts:
            raise InvalidCapacity("An event needs at least one roster.", event_id=event_id)
        out: list[Roster] = []
        for d in drafts:
            name = (d.name or "").strip()
            try:
                capacity = int(d.capacity)
            except (TypeError, ValueError):
                raise InvalidCapacity(event_id=event_id) from None
            if not name or capacity < 1:
                raise InvalidCapacity(event_id=event_id)
            out.append(Roster(roster_id=new_roster_id(), name=name, capacity=capacity, allow_guests=bool(d.allow_guests)))
        return out

    async def _require_profile(self, name: str) -> EventProfile:
        profile = await self._db(get_event_profile_sync, name) if name else None
        if profile is None:
            raise ProfileNotFound(
                f'Event profile "{name}" not found. Create it with `!profile.create` first.' if name else None,
                profile=name,
            )
        return profile

    async def create_event(
        self,
        *,
        channel_id: int,
        author_id: int | str,
        date_local: str,
        title: str | None = None,
        event_type: str | None = None,
        time_local: str | None = None,
        location: str | None = None,
        description: str | None = None,
        rosters: list[RosterDraft] | None = None,
        post_at: datetime | None = None,
        now: datetime | None = None,
    ) -> EventRecord:
        now = now or self._now()
        config = await self._require_channel_config(int(channel_id))
        profile = await self._require_profile((event_type or config.default_event_type or "").strip())

        event_id = new_event_id()
        try:
            fields = booking_fields(parse_local_date(date_local), time_local or self.default_time, self.timezone_name)
        except ValueError as e:
            raise InvalidEventDetails(f"{e}. Use `date=YYYY-MM-DD` and `time=HH:MM`.") from None
        where = (location or profile.default_location or "").strip()
        if not where:
            raise InvalidEventDetails("A location is required (or set a default location on the profile).")

        scheduled = post_at is not None and post_at > now + timedelta(seconds=SCHEDULE_GRACE_SECONDS)
        event = EventRecord(
            event_id=event_id,
            title=(title or profile.name).strip(),
            event_type=profile.name,
            category=profile.category,
            location=where,
            description=(description or "").strip() or None,
            venue_code=profile.venue_code,
            booking_date=fields.booking_date,
            booking_time=fields.booking_time,
            booking_at_utc=fields.booking_at_utc,
            booking_date_local=fields.booking_date_local,
            created_by=str(author_id),
            created_at_utc=utc_iso(now),
            status=EventStatus.SCHEDULED if scheduled else EventStatus.ACTIVE,
            post_at_utc=utc_iso(post_at) if scheduled else None,
            scheduled_channel_id=int(channel_id) if scheduled else None,
            rosters=self._build_rosters(rosters or default_rosters_for_profile(profile), event_id),
        )
        if self.intro_drafter is not None:
            event.intro_text = await self.intro_drafter.draft(event, display_emoji=config.display_emoji)

        message_id: int | None = None
        if not scheduled:
            message_id = int(await self.gateway.post(int(channel_id), render_announcement(event, config)))
            event.posted_messages.append(PostedMessage(channel_id=int(channel_id), message_id=message_id))

        async with self._event_locks.hold(event_id):
            try:
                transitions.verify_invariants(event)
                saved = await self._db(set_event_sync, event)
            except Exception as e:
                if isinstance(e, InvariantViolation):
                    self._log_invariant("create", event_id, e)
                if message_id is not None:
                    await self._discard_message(int(channel_id), message_id, event_id=event_id)
                raise
            await self._audit(
                saved,
                "created",
                actor_user_id=int(author_id) if str(author_id).isdigit() else None,
                actor_type="user" if str(author_id).isdigit() else "system",
                payload={"scheduled": scheduled, "post_at_utc": saved.post_at_utc, "rosters": len(saved.rosters)},
            )
        self._log("create", "ok", event=event_id, status=EventStatus(saved.status).value, channel=channel_id)
        return saved

    async def create_recurring_event(self, *, channel_id: int | None = None, now: datetime | None = None) -> EventRecord:
        now = now or self._now()
        target_channel = int(channel_id or self.primary_channel_id or 0)
        if target_channel <= 0:
            raise ChannelNotConfigured("No primary channel is set for the recurring announcement.")
        config = await self._require_channel_config(target_channel)
        profile = await self._require_profile(config.default_event_type)
        booking_day = monday_weeks_ahead(local_today(self.timezone_name, now), weeks=2)
        return await self.create_event(
            channel_id=target_channel,
            author_id="scheduled_task",
            date_local=booking_day.isoformat(),
            title=profile.name,
            event_type=profile.name,
            time_local=self.default_time,
            description=f"A regularly scheduled engagement of {profile.name}.",
            now=now,
        )

    async def share_event(self, event_id: str, *, channel_id: int, actor_user_id: int) -> EventRecord:
        event = await self.require_event(event_id)
        if EventStatus(event.status) is not EventStatus.ACTIVE:
            raise EventNotPublished(event_id=event.event_id)
        if event.has_location(channel_id):
            raise AlreadySharedInChannel(event_id=event.event_id, channel=channel_id)
        config = await self._require_channel_config(int(channel_id))
        message_id = await self.gateway.post(int(channel_id), render_announcement(event, config, share_intro(event)))
        try:
            result = await self._commit(
                event.event_id,
                "share",
                lambda ev: transitions.add_location(ev, channel_id=int(channel_id), message_id=int(message_id)),
                actor_user_id=int(actor_user_id),
            )
        except Exception:
            await self._discard_message(int(channel_id), int(message_id), event_id=event.event_id)
            raise
        return result.event

    async def delete_event(self, event_id: str, *, actor_user_id: int) -> tuple[EventRecord, int]:
        eid = self.normalize_event_id(event_id)
        async with self._event_locks.hold(eid):
            event = await self._db(get_event_sync, eid)
            if event is None:
                raise EventNotFound(f"I could not find an event with the ID `{eid}`.", event_id=eid)
            await self._require_channel_admin(event, actor_user_id)
            await self._db(delete_event_sync, eid)
            await self._audit(event, "deleted", actor_user_id=int(actor_user_id))

        removed = 0
        for loc in event.posted_messages:
            try:
                await self.gateway.delete(int(loc.channel_id), int(loc.message_id))
                removed += 1
            except Exception as e:
                print(f"[Events] action=delete_message result=error event={eid} channel={loc.channel_id} error={str(e)[:180]}")
        self._log("delete", "ok", event=eid, user=actor_user_id, messages_removed=removed)
        return event, removed

    # -------------------------
    # Queries
    # -------------------------
    def _today_start_utc(self, now: datetime | None = None) -> str:
        return local_day_start_utc(local_today(self.timezone_name, now or self._now()), self.timezone_name)

    async def events_for_user(self, user_id: int, *, now: datetime | None = None) -> list[tuple[EventRecord, str]]:
        events = await self._db(find_events_by_participant_sync, int(user_id), on_or_after_utc=self._today_start_utc(now))
        out: list[tuple[EventRecord, str]] = []
        for ev in events:
            roster = ev.roster_for_user(user_id)
            out.append((ev, f"confirmed ({roster.name})" if roster else "on standby"))
        return out

    async def upcoming_events(self, *, now: datetime | None = None, limit: int | None = None) -> list[EventRecord]:
        return await self._db(find_upcoming_events_sync, on_or_after_utc=self._today_start_utc(now), limit=limit)

    async def next_event(self, *, now: datetime | None = None) -> EventRecord | None:
        events = await self.upcoming_events(now=now, limit=1)
        return events[0] if events else None

    async def events_on_date(self, date_local: str) -> list[EventRecord]:
        return await self._db(find_events_on_date_sync, booking_date_local=date_local)

    async def find_event_by_message(self, message_id: int) -> EventRecord | None:
        return await self._db(find_event_by_message_sync, message_id=int(message_id))

    def join_options(self, event: EventRecord) -> list[tuple[Roster, int]]:
        return [(r, spots_left(r)) for r in event.rosters if spots_left(r) > 0]

    # -------------------------
    # Channel config / profiles
    # -------------------------
    async def configure_channel(
        self,
        *,
        channel_id: int,
        guild_id: int | None,
        actor_user_id: int,
        default_event_type: str,
        reaction_emoji: str | None = None,
        display_emoji: str | None = None,
        reminder_text: str | None = None,
    ) -> ChannelConfig:
        await self._require_profile(default_event_type.strip())
        existing = await self.get_channel_config(channel_id)
        if (
            existing is not None
            and existing.configured_by_user_id is not None
            and existing.configured_by_user_id != int(actor_user_id)
            and int(actor_user_id) not in self.owner_user_ids
        ):
            raise NotChannelAdmin(channel=channel_id, user=actor_user_id)
        cfg = ChannelConfig(
            channel_id=int(channel_id),
            guild_id=int(guild_id) if guild_id else None,
            default_event_type=default_event_type.strip(),
            reaction_emoji=(reaction_emoji or "hand").replace(":", "").strip() or "hand",
            display_emoji=(display_emoji or "scroll").replace(":", "").strip() or "scroll",
            reminder_text=(reminder_text or "").strip() or None,
            configured_by_user_id=int(actor_user_id),
            configured_at_utc=utc_iso(self._now()),
        )
        saved = await self._db(upsert_channel_config_sync, cfg)
        print(f"[Events] action=configure_channel result=ok channel={channel_id} user={actor_user_id}")
        return saved

    async def create_profile(self, profile: EventProfile, *, overwrite: bool = True) -> EventProfile:
        if not profile.name.strip() or not profile.capacity_unit.strip():
            raise InvalidEventDetails("A profile needs a name and a capacity unit.")
        if int(profile.default_capacity) < 1:
            raise InvalidCapacity("Default capacity must be at least 1.")
        return await self._db(upsert_event_profile_sync, profile, overwrite=overwrite)

    async def list_profiles(self) -> list[EventProfile]:
        return await self._db(list_event_profiles_sync)

    async def seed_profiles(self, profiles: list[EventProfile]) -> int:
        """Insert profiles that do not exist yet; edits made through commands are kept."""
        existing = {p.name.lower() for p in await self.list_profiles()}
        added = 0
        for profile in profiles:
            if profile.name.lower() in existing:
                continue
            await self._db(upsert_event_profile_sync, profile, overwrite=False)
            existing.add(profile.name.lower())
            added += 1
        return added

    # -------------------------
    # Calendar / reminders
    # -------------------------
    async def add_to_calendar(self, event_id: str, *, user_id: int) -> dict[str, Any]:
        event = await self.require_event(event_id)
        if not event.is_enrolled(user_id):
            raise NotEnrolled(
                "You must be on the roster or standby list before adding this event to your calendar.",
                event_id=event.event_id,
                user=user_id,
            )
        if self.calendar is None:
            raise CalendarError("Calendar integration is not configured.", event_id=event.event_id)
        created = await self.calendar.create_event(int(user_id), event)
        self._log("add_to_calendar", "ok", event=event.event_id, user=user_id)
        return created

    async def send_reminders(self, *, now: datetime | None = None, dry_run: bool = False) -> ReminderReport:
        now = now or self._now()
        tomorrow = local_today(self.timezone_name, now) + timedelta(days=1)
        report = ReminderReport(dry_run=bool(dry_run), target_date_local=tomorrow.isoformat())
        events = await self.events_on_date(tomorrow.isoformat())
        print(f"[Reminders] action=scan result=ok date={tomorrow.isoformat()} events={len(events)} dry_run={dry_run}")

        for event in events:
            channel_id = event.primary_channel_id
            if not channel_id:
                report.skipped[event.event_id] = "no_channel"
                continue
            player_ids = [p.user_id for r in event.rosters for p in r.players]
            if not player_ids:
                report.skipped[event.event_id] = "no_players"
                continue
            config = await self.get_channel_config(channel_id)
            custom = bool(config and config.reminder_text)
            template = config.reminder_text if custom else DEFAULT_REMINDER_TEMPLATE
            weather = await self.forecast.forecast(tomorrow) if self.forecast is not None else ""
            text = render_reminder(template, event, weather)

            if dry_run:
                report.previews.append(
                    {
                        "event_id": event.event_id,
                        "channel_id": channel_id,
                        "custom_template": custom,
                        "recipients": player_ids,
                        "text": text,
                    }
                )
                print(
                    f"[Reminders] action=preview result=dry_run event={event.event_id} "
                    f"recipients={len(player_ids)} custom_template={custom}"
                )
                continue

            delivered = 0
            for uid in player_ids:
                if await self._notify(uid, text, event_id=event.event_id, reason="reminder"):
                    delivered += 1
            if delivered:
                report.sent.append(event.event_id)
            else:
                report.skipped[event.event_id] = "delivery_failed"
            print(f"[Reminders] action=send result=ok event={event.event_id} delivered={delivered}/{len(player_ids)}")
        return report
