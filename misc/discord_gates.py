from __future__ import annotations

import discord


def is_inquiry_message(message: discord.Message, bot_user) -> bool:
    # DMs are always inquiries; in servers only when the bot is mentioned.
    if getattr(message, "guild", None) is None:
        return True
    if bot_user is None:
        return False
    return any(int(getattr(m, "id", 0) or 0) == int(bot_user.id) for m in (message.mentions or []))


def in_guild_text_channel(ctx) -> bool:
    if getattr(ctx, "guild", None) is None:
        return False
    channel = getattr(ctx, "channel", None)
    if isinstance(channel, discord.Thread):
        # Announcements belong to the parent channel's configuration.
        return False
    return channel is not None
