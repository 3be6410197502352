from __future__ import annotations

import re

from discord.ext import commands
from misc.adhoc_modules.join_panel import join_reply
from misc.adhoc_modules.join_panel import leave_reply
from misc.adhoc_modules.join_panel import notice_for
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from retrieval.inquiry import summary_reply
from roster.dates import parse_local_datetime
from roster.dates import parse_utc
from roster.models import EventStatus
from roster.service import RosterDraft


CREATE_USAGE = (
    "Usage: `!event.create date=YYYY-MM-DD | time=HH:MM | title=... | type=<profile> | location=... | "
    "description=... | rosters=Court 1:4+, Court 2:4 | post_at=YYYY-MM-DD HH:MM`\n"
    "Only `date` is required; the rest defaults from the channel's event profile. "
    "A `+` after a roster capacity admits guests."
)
CREATE_KEYS = {"title", "type", "date", "time", "location", "description", "rosters", "post_at"}
EVENT_ID_RE = re.compile(r"^EVT-[0-9A-F]{8}$")


def _parse_create_args(raw: str) -> dict[str, str]:
    text = (raw or "").strip()
    if not text:
        raise ValueError("No event details given.")
    out: dict[str, str] = {}
    for part in text.split("|"):
        part = part.strip()
        if not part:
            continue
        if "=" not in part:
            raise ValueError(f"Expected key=value, got `{part[:60]}`.")
        key, value = part.split("=", 1)
        key = key.strip().lower().replace("-", "_")
        if key not in CREATE_KEYS:
            raise ValueError(f"Unknown field `{key}`.")
        out[key] = value.strip()
    if not out.get("date"):
        raise ValueError("A `date=YYYY-MM-DD` is required.")
    return out


def _parse_roster_specs(raw: str) -> list[RosterDraft]:
    drafts: list[RosterDraft] = []
    for chunk in (raw or "").split(","):
        chunk = chunk.strip()
        if not chunk:
            continue
        m = re.fullmatch(r"(.+?)\s*:\s*(\d{1,3})\s*(\+?)", chunk)
        if not m:
            raise ValueError(f"Roster `{chunk[:60]}` should look like `Name:4` or `Name:4+`.")
        drafts.append(RosterDraft(name=m.group(1).strip(), capacity=int(m.group(2)), allow_guests=bool(m.group(3))))
    if not drafts:
        raise ValueError("No rosters given.")
    return drafts


def _normalize_event_id(token: str) -> str | None:
    value = (token or "").strip().upper()
    return value if EVENT_ID_RE.match(value) else None


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    service = deps.roster_service

    @bot.command(name="event.create")
    async def event_create(ctx: commands.Context, *, raw: str = ""):
        if not gates.in_guild_channel(ctx):
            await ctx.send("Events can only be created from within a server channel.")
            return
        try:
            args = _parse_create_args(raw)
            rosters = _parse_roster_specs(args["rosters"]) if args.get("rosters") else None
            post_at = parse_local_datetime(args["post_at"], deps.timezone_name) if args.get("post_at") else None
        except ValueError as e:
            await ctx.send(f"{e}\n{CREATE_USAGE}")
            return

        try:
            event = await service.create_event(
                channel_id=int(ctx.channel.id),
                author_id=int(ctx.author.id),
                date_local=args["date"],
                title=args.get("title"),
                event_type=args.get("type"),
                time_local=args.get("time"),
                location=args.get("location"),
                description=args.get("description"),
                rosters=rosters,
                post_at=post_at,
            )
        except Exception as e:
            await ctx.send(notice_for(e, action="create"))
            return

        if EventStatus(event.status) is EventStatus.SCHEDULED:
            when = parse_utc(event.post_at_utc)
            stamp = f"<t:{int(when.timestamp())}:f>" if when else event.post_at_utc
            await ctx.send(
                f"Very good. I have scheduled the announcement for *{event.title}* to be posted on {stamp}. "
                f"(`{event.event_id}`)"
            )
            return
        await ctx.send(f"The proclamation for *{event.title}* has been issued. (`{event.event_id}`)")

    @bot.command(name="event.recurring")
    async def event_recurring(ctx: commands.Context):
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return
        try:
            event = await service.create_recurring_event(channel_id=int(ctx.channel.id))
        except Exception as e:
            await ctx.send(notice_for(e, action="create_recurring"))
            return
        await ctx.send(f"The recurring proclamation for *{event.title}* has been issued. (`{event.event_id}`)")

    @bot.command(name="event.share")
    async def event_share(ctx: commands.Context, event_token: str = "", channel_token: str = ""):
        event_id = _normalize_event_id(event_token)
        channel_id = deps.parse_channel_id_token(channel_token) if deps.parse_channel_id_token else None
        if not event_id or not channel_id:
            await ctx.send("Usage: `!event.share EVT-XXXXXXXX #channel`")
            return
        try:
            await service.share_event(event_id, channel_id=int(channel_id), actor_user_id=int(ctx.author.id))
        except Exception as e:
            await ctx.send(notice_for(e, action="share", event_id=event_id))
            return
        await ctx.send(f"\N{WHITE HEAVY CHECK MARK} Very good. The proclamation has been duly shared in <#{int(channel_id)}>.")

    @bot.command(name="event.delete")
    async def event_delete(ctx: commands.Context, event_token: str = ""):
        event_id = _normalize_event_id(event_token)
        if not event_id:
            await ctx.send("Usage: `!event.delete EVT-XXXXXXXX`")
            return
        try:
            event, _removed = await service.delete_event(event_id, actor_user_id=int(ctx.author.id))
        except Exception as e:
            await ctx.send(notice_for(e, action="delete", event_id=event_id))
            return
        await ctx.send(f"\N{WHITE HEAVY CHECK MARK} The event *{event.title}* has been expunged.")

    @bot.command(name="event.leave")
    async def event_leave(ctx: commands.Context, event_token: str = ""):
        user_id = int(ctx.author.id)
        event_id = _normalize_event_id(event_token) if event_token else None
        if event_token and not event_id:
            await ctx.send("Usage: `!event.leave [EVT-XXXXXXXX]`")
            return
        if event_id is None:
            try:
                mine = await service.events_for_user(user_id)
            except Exception as e:
                await ctx.send(notice_for(e, action="leave"))
                return
            if not mine:
                await ctx.send("It appears you are not on the list for any upcoming engagement.")
                return
            if len(mine) > 1:
                lines = ["You are enrolled in several engagements. Pray, name the one you wish to leave:"]
                for ev, label in mine:
                    lines.append(f"- `{ev.event_id}` *{ev.title}* on {ev.booking_date} ({label})")
                await deps.send_chunked(ctx.channel, "\n".join(lines))
                return
            event_id = mine[0][0].event_id
        try:
            result = await service.leave(event_id, user_id=user_id)
        except Exception as e:
            await ctx.send(notice_for(e, action="leave", event_id=event_id))
            return
        await ctx.send(leave_reply(result))

    @bot.command(name="event.join")
    async def event_join(ctx: commands.Context, event_token: str = "", *, roster_and_guests: str = ""):
        event_id = _normalize_event_id(event_token)
        if not event_id:
            await ctx.send("Usage: `!event.join EVT-XXXXXXXX [roster name] [+N]`")
            return
        guest_count = 0
        name = (roster_and_guests or "").strip()
        m = re.search(r"\+(\d)\s*$", name)
        if m:
            guest_count = int(m.group(1))
            name = name[: m.start()].strip()
        try:
            roster_id = None
            if name:
                event = await service.require_event(event_id)
                match = next((r for r in event.rosters if r.name.lower() == name.lower()), None)
                if match is None:
                    await ctx.send(f"I could not find a roster named *{name}*.")
                    return
                roster_id = match.roster_id
            result = await service.join(event_id, user_id=int(ctx.author.id), roster_id=roster_id, guest_count=guest_count)
        except Exception as e:
            await ctx.send(notice_for(e, action="join", event_id=event_id))
            return
        await ctx.send(join_reply(result))

    @bot.command(name="event.addroster")
    async def event_addroster(ctx: commands.Context, event_token: str = "", *, raw: str = ""):
        event_id = _normalize_event_id(event_token)
        parts = [p.strip() for p in (raw or "").split("|")]
        if not event_id or len(parts) < 2 or not parts[0] or not parts[1].isdigit():
            await ctx.send("Usage: `!event.addroster EVT-XXXXXXXX <name> | <capacity> [| guests]`")
            return
        allow_guests = len(parts) > 2 and parts[2].lower() in {"guests", "yes", "true", "1"}
        try:
            result = await service.add_roster(
                event_id,
                actor_user_id=int(ctx.author.id),
                name=parts[0],
                capacity=int(parts[1]),
                allow_guests=allow_guests,
            )
        except Exception as e:
            await ctx.send(notice_for(e, action="add_roster", event_id=event_id))
            return
        await ctx.send(f"Very good. The roster *{result.roster_name}* has been added to *{result.event.title}*.")

    @bot.command(name="event.removeroster")
    async def event_removeroster(ctx: commands.Context, event_token: str = "", *, name: str = ""):
        event_id = _normalize_event_id(event_token)
        if not event_id or not name.strip():
            await ctx.send("Usage: `!event.removeroster EVT-XXXXXXXX <name>`")
            return
        try:
            result = await service.remove_roster(event_id, actor_user_id=int(ctx.author.id), roster_name=name.strip())
        except Exception as e:
            await ctx.send(notice_for(e, action="remove_roster", event_id=event_id))
            return
        await ctx.send(f"Very good. The roster *{result.roster_name}* has been removed from *{result.event.title}*.")

    @bot.command(name="event.mine")
    async def event_mine(ctx: commands.Context):
        try:
            mine = await service.events_for_user(int(ctx.author.id))
        except Exception as e:
            await ctx.send(notice_for(e, action="mine"))
            return
        if not mine:
            await ctx.send("It appears you are not on the list for any upcoming engagement.")
            return
        lines = ["Your upcoming engagements:"]
        for ev, label in mine:
            lines.append(f"- `{ev.event_id}` *{ev.title}* on {ev.booking_date} at {ev.booking_time}: {label}")
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="event.next")
    async def event_next(ctx: commands.Context):
        try:
            event = await service.next_event()
        except Exception as e:
            await ctx.send(notice_for(e, action="next"))
            return
        if event is None:
            await ctx.send("My apologies, but I could not find an upcoming engagement.")
            return
        await deps.send_chunked(ctx.channel, summary_reply(event))

    @bot.command(name="event.list")
    async def event_list(ctx: commands.Context, limit: int = 10):
        lim = max(1, min(int(limit or 10), 25))
        try:
            events = await service.upcoming_events(limit=lim)
        except Exception as e:
            await ctx.send(notice_for(e, action="list"))
            return
        if not events:
            await ctx.send("No upcoming engagements are on record.")
            return
        lines = [f"Upcoming engagements (next {len(events)}):"]
        for ev in events:
            status = EventStatus(ev.status).value.lower()
            lines.append(f"- `{ev.event_id}` *{ev.title}* on {ev.booking_date} at {ev.booking_time} [{status}]")
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="event.info")
    async def event_info(ctx: commands.Context, event_token: str = ""):
        event_id = _normalize_event_id(event_token)
        if not event_id:
            await ctx.send("Usage: `!event.info EVT-XXXXXXXX`")
            return
        try:
            event = await service.require_event(event_id)
        except Exception as e:
            await ctx.send(notice_for(e, action="info", event_id=event_id))
            return
        lines = [
            f"`{event.event_id}` [{EventStatus(event.status).value.lower()}] revision {event.revision}",
            summary_reply(event),
        ]
        if event.post_at_utc:
            lines.append(f"Scheduled to post at {event.post_at_utc} in <#{event.scheduled_channel_id}>.")
        if event.posted_messages:
            lines.append("Posted in: " + ", ".join(f"<#{m.channel_id}>" for m in event.posted_messages))
        await deps.send_chunked(ctx.channel, "\n".join(lines))
