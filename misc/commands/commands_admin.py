from __future__ import annotations

import asyncio

from discord.ext import commands
from misc.adhoc_modules.join_panel import notice_for
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from roster.dates import utc_iso
from roster.models import EventCategory
from roster.models import EventProfile


PROFILE_USAGE = (
    "Usage: `!profile.create <name> | <SPORT|SPECTATOR> | <capacity unit> | <default capacity> "
    "[| <default location>] [| <venue code>]`"
)
CONFIGURE_USAGE = (
    "Usage: `!channel.configure <default profile> [| <reaction emoji> | <display emoji> | <reminder template>]`\n"
    "Reminder templates may use `{eventTitle}`, `{eventTime}` and `{weather}`."
)


def _parse_profile_args(raw: str, *, author_id: int) -> EventProfile:
    parts = [p.strip() for p in (raw or "").split("|")]
    if len(parts) < 4 or not parts[0] or not parts[2]:
        raise ValueError("A profile needs a name, a category, a capacity unit and a default capacity.")
    try:
        category = EventCategory(parts[1].upper())
    except ValueError:
        raise ValueError("Category must be SPORT or SPECTATOR.") from None
    if not parts[3].isdigit() or int(parts[3]) < 1:
        raise ValueError("Default capacity must be a whole number of at least 1.")
    return EventProfile(
        name=parts[0],
        category=category,
        capacity_unit=parts[2],
        default_capacity=int(parts[3]),
        default_location=(parts[4] if len(parts) > 4 and parts[4] else None),
        venue_code=(parts[5] if len(parts) > 5 and parts[5] else None),
        created_by_user_id=int(author_id),
        created_at_utc=utc_iso(),
    )


def register(
    bot: commands.Bot,
    *,
    deps: CommandDeps,
    gates: CommandGates,
) -> None:
    service = deps.roster_service

    @bot.command(name="channel.configure")
    async def channel_configure(ctx: commands.Context, *, raw: str = ""):
        if not gates.in_guild_channel(ctx):
            await ctx.send("Channels can only be configured from within a server channel.")
            return
        parts = [p.strip() for p in (raw or "").split("|")]
        if not parts or not parts[0]:
            await ctx.send(CONFIGURE_USAGE)
            return
        try:
            await service.configure_channel(
                channel_id=int(ctx.channel.id),
                guild_id=int(ctx.guild.id) if ctx.guild else None,
                actor_user_id=int(ctx.author.id),
                default_event_type=parts[0],
                reaction_emoji=parts[1] if len(parts) > 1 else None,
                display_emoji=parts[2] if len(parts) > 2 else None,
                reminder_text=" | ".join(parts[3:]) if len(parts) > 3 else None,
            )
        except Exception as e:
            await ctx.send(notice_for(e, action="configure_channel"))
            return
        await ctx.send(f"My duties for this channel have been set by <@{int(ctx.author.id)}>. I am now at your service.")

    @bot.command(name="profile.create")
    async def profile_create(ctx: commands.Context, *, raw: str = ""):
        try:
            profile = _parse_profile_args(raw, author_id=int(ctx.author.id))
        except ValueError as e:
            await ctx.send(f"{e}\n{PROFILE_USAGE}")
            return
        try:
            saved = await service.create_profile(profile)
        except Exception as e:
            await ctx.send(notice_for(e, action="create_profile"))
            return
        await ctx.send(f"I have successfully created the event profile: *{saved.name}*.")

    @bot.command(name="profile.list")
    async def profile_list(ctx: commands.Context):
        try:
            profiles = await service.list_profiles()
        except Exception as e:
            await ctx.send(notice_for(e, action="list_profiles"))
            return
        if not profiles:
            await ctx.send("No event profiles yet. Create one with `!profile.create`.")
            return
        lines = ["Event profiles:"]
        for p in profiles:
            where = f" @ {p.default_location}" if p.default_location else ""
            lines.append(
                f"- *{p.name}* [{EventCategory(p.category).value}] {p.default_capacity} {p.capacity_unit}{where}"
            )
        await deps.send_chunked(ctx.channel, "\n".join(lines))

    @bot.command(name="gcal.login")
    async def gcal_login(ctx: commands.Context):
        calendar = deps.calendar
        if calendar is None or not calendar.enabled:
            await ctx.send("Google Calendar integration is not configured.")
            return
        url = calendar.auth_url(int(ctx.author.id))
        try:
            await ctx.author.send(f"Pray, follow this link to connect your Google Calendar: {url}")
        except Exception as e:
            print(f"[Calendar] action=login_dm result=error user={ctx.author.id} error={str(e)[:180]}")
            await ctx.send("I could not send you a direct message. Kindly allow DMs from server members.")
            return
        if ctx.guild is not None:
            await ctx.send("I have sent you a private note with the authorization link.")

    @bot.command(name="event.audit")
    async def event_audit(ctx: commands.Context, event_token: str = "", limit: int = 20):
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return
        event_id = (event_token or "").strip().upper()
        if not event_id:
            await ctx.send("Usage: `!event.audit EVT-XXXXXXXX [limit]`")
            return
        lim = max(1, min(int(limit or 20), 100))
        async with deps.db_lock:
            rows = await asyncio.to_thread(deps.fetch_event_audit_sync, deps.db_conn, event_id, limit=lim)
        if not rows:
            await ctx.send("No audit entries for that event.")
            return
        lines = [f"Audit log for {event_id} (latest {len(rows)}):"]
        for row in rows:
            actor = row.get("actor_user_id") or row.get("actor_type")
            lines.append(
                f"- {row.get('created_at_utc')} {row.get('action')} by {actor} "
                f"rev={row.get('revision')} {row.get('payload') or ''}".rstrip()
            )
        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines)[:7000] + "\n```")

    @bot.command(name="dbmigrations")
    async def cmd_dbmigrations(ctx: commands.Context, limit: int = 30):
        if not gates.user_is_owner(ctx.author):
            await ctx.send("This command is owner-only.")
            return
        lim = max(1, min(int(limit or 30), 200))
        async with deps.db_lock:
            rows = await asyncio.to_thread(deps.list_schema_migrations_sync, deps.db_conn, lim)
        if not rows:
            await ctx.send("No schema migrations found.")
            return
        lines = [f"Applied schema migrations (latest {len(rows)}):"]
        for version, name, applied_at in rows:
            lines.append(f"- {version}_{name} @ {applied_at}")
        await deps.send_chunked(ctx.channel, "```\n" + "\n".join(lines)[:7000] + "\n```")
