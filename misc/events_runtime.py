from __future__ import annotations

import asyncio
import re

import discord
from discord.ext import commands
from misc.discord_gates import is_inquiry_message
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps

SETUP_HINT = (
    "Greetings! I am your roster steward, at your service. To begin, an administrator should create an "
    "event profile with `!profile.create` and then run `!channel.configure <profile>` in the channel where "
    "announcements ought to appear."
)


def _strip_bot_mention(content: str, bot_user_id: int | None) -> str:
    text = content or ""
    if bot_user_id is not None:
        text = re.sub(rf"<@!?\s*{int(bot_user_id)}\s*>", "", text)
    return text.strip()


def _first_writable_text_channel(guild: discord.Guild):
    if guild.system_channel is not None and guild.system_channel.permissions_for(guild.me).send_messages:
        return guild.system_channel
    for channel in guild.text_channels:
        if channel.permissions_for(guild.me).send_messages:
            return channel
    return None


def register_runtime_events(
    bot: commands.Bot,
    *,
    deps: RuntimeDeps,
    boot: RuntimeBootDeps,
) -> None:
    @bot.event
    async def on_ready():
        if not getattr(bot, "_join_panel_registered", False):
            bot.add_dynamic_items(*boot.join_panel_items)
            bot._join_panel_registered = True

        print(f"Roster bot is online as {bot.user}")

        if not getattr(bot, "_profiles_seeded", False):
            try:
                seeded = await boot.seed_profiles_func()
                print(f"[Events] action=seed_profiles result=ok count={seeded}")
            except Exception as e:
                print(f"[Events] action=seed_profiles result=error error={e}")
            bot._profiles_seeded = True

        if not getattr(bot, "_schedule_task", None):
            bot._schedule_task = asyncio.create_task(boot.schedule_loop_func())
            print("[Schedule] scheduled-post loop started")

        if boot.reminders_enabled and not getattr(bot, "_reminder_task", None):
            bot._reminder_task = asyncio.create_task(boot.reminder_loop_func())
            print("[Reminders] daily reminder loop started")

        if boot.admin_enabled and not getattr(bot, "_admin_task", None):
            bot._admin_task = asyncio.create_task(boot.admin_server_func())
            print("[Admin] admin HTTP server started")

    @bot.event
    async def on_guild_join(guild: discord.Guild):
        channel = _first_writable_text_channel(guild)
        if channel is None:
            print(f"[Events] action=guild_join result=no_channel guild={guild.id}")
            return
        try:
            await channel.send(SETUP_HINT)
        except discord.HTTPException as e:
            print(f"[Events] action=guild_join result=error guild={guild.id} error={e}")

    @bot.event
    async def on_message(message: discord.Message):
        if message.author.bot:
            return

        if (message.content or "").lstrip().startswith("!"):
            await bot.process_commands(message)
            return

        if not is_inquiry_message(message, bot.user):
            return

        prompt = _strip_bot_mention(message.content, bot.user.id if bot.user else None)
        try:
            reply = await deps.answer_inquiry_func(
                deps.roster_service,
                text=prompt,
                user_id=int(message.author.id),
            )
        except Exception as e:
            print(f"[Inquiry] action=answer result=error user={message.author.id} error={e}")
            reply = "A thousand pardons, I could not consult my records just now."
        await deps.send_chunked(message.channel, reply)
