from __future__ import annotations

import itertools
import re
from dataclasses import dataclass

import discord

from roster.errors import GatewayError
from roster.render import ActionGroup
from roster.render import AnnouncementDocument
from roster.render import Divider
from roster.render import RosterList
from roster.render import StandbyList
from roster.render import TextSection


# Bot accounts cannot rely on client-side shortcode expansion.
EMOJI_SHORTCODES = {
    "scroll": "\N{SCROLL}",
    "hand": "\N{RAISED HAND}",
    "raised_hand": "\N{RAISED HAND}",
    "trumpet": "\N{TRUMPET}",
    "clock530": "\N{CLOCK FACE FIVE-THIRTY}",
    "round_pushpin": "\N{ROUND PUSHPIN}",
    "busts_in_silhouette": "\N{BUSTS IN SILHOUETTE}",
    "key": "\N{KEY}",
    "hourglass_flowing_sand": "\N{HOURGLASS WITH FLOWING SAND}",
    "tennis": "\N{TENNIS RACQUET AND BALL}",
    "soccer": "\N{SOCCER BALL}",
    "trophy": "\N{TROPHY}",
}
SHORTCODE_RE = re.compile(r":([a-z0-9_+\-]+):")

FIELD_VALUE_LIMIT = 1024
FIELD_NAME_LIMIT = 256
DESCRIPTION_LIMIT = 4096
FIELDS_PER_EMBED = 25
EMBEDS_PER_MESSAGE = 10
MESSAGE_EMBED_CHAR_LIMIT = 6000
OVERFLOW_RESERVE = 64
OVERFLOW_FIELD_NAME = "More"
CONTINUED_SUFFIX = " (cont.)"


def expand_shortcodes(text: str) -> str:
    return SHORTCODE_RE.sub(lambda m: EMOJI_SHORTCODES.get(m.group(1), m.group(0)), text or "")


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: limit - 3] + "..."


@dataclass(frozen=True, slots=True)
class _Field:
    name: str
    value: str
    entries: int


def _list_fields(heading: str, entries: tuple[str, ...]) -> list[_Field]:
    """Split one roster's entries into as many fields as the 1024-char value limit needs."""
    expanded = expand_shortcodes(heading)
    name = _clip(expanded, FIELD_NAME_LIMIT)
    continued = _clip(expanded, FIELD_NAME_LIMIT - len(CONTINUED_SUFFIX)) + CONTINUED_SUFFIX
    fields: list[_Field] = []
    lines: list[str] = []
    size = 0
    for entry in entries:
        line = _clip(entry, FIELD_VALUE_LIMIT)
        added = len(line) + (1 if lines else 0)
        if lines and size + added > FIELD_VALUE_LIMIT:
            fields.append(_Field(continued if fields else name, "\n".join(lines), len(lines)))
            lines, size, added = [], 0, len(line)
        lines.append(line)
        size += added
    if lines:
        fields.append(_Field(continued if fields else name, "\n".join(lines), len(lines)))
    return fields


def build_embeds(doc: AnnouncementDocument) -> list[discord.Embed]:
    description_parts: list[str] = []
    fields: list[_Field] = []
    footer: str | None = None
    for block in doc.blocks:
        if isinstance(block, TextSection):
            description_parts.append(expand_shortcodes(block.text))
        elif isinstance(block, (RosterList, StandbyList)):
            fields.extend(_list_fields(block.heading, block.entries))
        elif isinstance(block, Divider) and block.marker:
            footer = block.marker

    description = _clip("\n\n".join(description_parts), DESCRIPTION_LIMIT)
    current = discord.Embed(color=discord.Color.dark_gold(), description=description or None)
    embeds = [current]
    # Discord counts the 6000-char total across every embed of one message.
    budget = MESSAGE_EMBED_CHAR_LIMIT - len(description) - len(footer or "")
    for idx, f in enumerate(fields):
        cost = len(f.name) + len(f.value)
        is_last = idx == len(fields) - 1
        needs_new_embed = len(current.fields) >= FIELDS_PER_EMBED
        out_of_room = cost > budget - (0 if is_last else OVERFLOW_RESERVE)
        if needs_new_embed and not out_of_room and len(embeds) >= EMBEDS_PER_MESSAGE:
            out_of_room = True
        if out_of_room:
            hidden = sum(rest.entries for rest in fields[idx:])
            if len(current.fields) >= FIELDS_PER_EMBED:
                current.remove_field(-1)
                hidden += fields[idx - 1].entries
            current.add_field(name=OVERFLOW_FIELD_NAME, value=f"...and {hidden} more not shown here.", inline=False)
            print(f"[Gateway] action=render result=overflow event={doc.event_id} hidden={hidden}")
            break
        if needs_new_embed:
            current = discord.Embed(color=discord.Color.dark_gold())
            embeds.append(current)
        current.add_field(name=f.name, value=f.value, inline=False)
        budget -= cost
    if footer:
        embeds[-1].set_footer(text=footer)
    return embeds


def build_action_view(doc: AnnouncementDocument) -> discord.ui.View:
    view = discord.ui.View(timeout=None)
    for block in doc.blocks:
        if not isinstance(block, ActionGroup):
            continue
        for action in block.actions:
            view.add_item(
                discord.ui.Button(
                    label=action.label,
                    style=discord.ButtonStyle.primary if action.primary else discord.ButtonStyle.secondary,
                    custom_id=f"{action.action_id}:{action.payload}",
                )
            )
    return view


class DiscordGateway:
    def __init__(self, *, bot, dry_run: bool = False) -> None:
        self.bot = bot
        self.dry_run = bool(dry_run)
        self._dry_ids = itertools.count(1)

    async def _channel(self, channel_id: int):
        channel = self.bot.get_channel(int(channel_id))
        if channel is not None:
            return channel
        try:
            return await self.bot.fetch_channel(int(channel_id))
        except discord.HTTPException as e:
            raise GatewayError(f"channel unavailable: {e}", channel=channel_id) from e

    async def post(self, channel_id: int, doc: AnnouncementDocument) -> int:
        if self.dry_run:
            message_id = next(self._dry_ids)
            print(f"[Gateway] action=post result=dry_run channel={channel_id} event={doc.event_id} message={message_id}")
            return message_id
        channel = await self._channel(channel_id)
        try:
            message = await channel.send(
                content=doc.fallback_text,
                embeds=build_embeds(doc),
                view=build_action_view(doc),
            )
        except discord.HTTPException as e:
            raise GatewayError(f"post failed: {e}", channel=channel_id, event_id=doc.event_id) from e
        return int(message.id)

    async def update(
        self,
        channel_id: int,
        message_id: int,
        doc: AnnouncementDocument,
        *,
        text: str | None = None,
    ) -> None:
        if self.dry_run:
            print(f"[Gateway] action=update result=dry_run channel={channel_id} message={message_id} event={doc.event_id}")
            return
        channel = await self._channel(channel_id)
        try:
            await channel.get_partial_message(int(message_id)).edit(
                content=text or doc.fallback_text,
                embeds=build_embeds(doc),
                view=build_action_view(doc),
            )
        except discord.HTTPException as e:
            raise GatewayError(f"update failed: {e}", channel=channel_id, message=message_id) from e

    async def delete(self, channel_id: int, message_id: int) -> None:
        if self.dry_run:
            print(f"[Gateway] action=delete result=dry_run channel={channel_id} message={message_id}")
            return
        channel = await self._channel(channel_id)
        try:
            await channel.get_partial_message(int(message_id)).delete()
        except discord.NotFound:
            return
        except discord.HTTPException as e:
            raise GatewayError(f"delete failed: {e}", channel=channel_id, message=message_id) from e

    async def notify_user(self, user_id: int, text: str) -> None:
        if self.dry_run:
            print(f"[Gateway] action=notify result=dry_run user={user_id} chars={len(text or '')}")
            return
        try:
            user = self.bot.get_user(int(user_id)) or await self.bot.fetch_user(int(user_id))
            await user.send(expand_shortcodes(text))
        except discord.HTTPException as e:
            raise GatewayError(f"direct message failed: {e}", user=user_id) from e
