from __future__ import annotations

import discord

from roster.capacity import spots_left
from roster.errors import CalendarNotAuthorized
from roster.errors import CollaboratorError
from roster.errors import InvariantViolation
from roster.errors import NoRosterSelected
from roster.errors import RosterError
from roster.errors import ValidationError
from roster.errors import describe_error
from roster.models import EventRecord
from roster.render import CALENDAR_ACTION_ID
from roster.render import JOIN_ACTION_ID
from roster.transitions import TransitionResult


STANDBY_TEXT = (
    "My apologies, but all positions for this event are currently filled. "
    "I have added you to the standby list."
)
GUEST_CHOICES = [("Just me", 0), ("+1 guest", 1), ("+2 guests", 2)]


def join_reply(result: TransitionResult) -> str:
    if result.placement == "standby":
        return STANDBY_TEXT
    text = f"Excellent. I have added you to the roster for *{result.roster_name}*"
    if result.guest_count == 1:
        return text + " with one guest."
    if result.guest_count > 1:
        return text + f" with {result.guest_count} guests."
    return text + "."


def leave_reply(result: TransitionResult) -> str:
    return f"Very good. I have removed you from the event: *{result.event.title}*."


def notice_for(exc: Exception, *, action: str, event_id: str | None = None) -> str:
    """User-facing text for a failed intent. Validation notices are not failures and are not logged."""
    if isinstance(exc, CalendarNotAuthorized):
        if exc.auth_url:
            return (
                "You have not yet connected your Google Calendar. Pray, authorize me here and then press the "
                f"button once more: {exc.auth_url}"
            )
        return exc.notice
    if isinstance(exc, ValidationError):
        return exc.notice
    if isinstance(exc, CollaboratorError):
        print(f"[Events] action={action} result=error event={event_id} error={describe_error(exc)}")
        return exc.notice
    if isinstance(exc, InvariantViolation):
        return exc.notice
    print(f"[Events] action={action} result=error event={event_id} error={describe_error(exc)}")
    return RosterError.notice


def build_roster_picker(*, service, event: EventRecord, user_id: int) -> discord.ui.View:
    class RosterPicker(discord.ui.View):
        def __init__(self):
            super().__init__(timeout=300)
            self.roster_id: str | None = None
            self.guest_count = 0

            roster_select = discord.ui.Select(
                placeholder="Choose a roster",
                row=0,
                options=[
                    discord.SelectOption(label=f"{r.name} ({spots_left(r)} left)"[:100], value=r.roster_id)
                    for r in event.rosters
                    if spots_left(r) > 0
                ][:25],
            )
            roster_select.callback = self._on_roster
            self.roster_select = roster_select
            self.add_item(roster_select)

            if any(r.allow_guests and spots_left(r) > 1 for r in event.rosters):
                guest_select = discord.ui.Select(
                    placeholder="Bringing guests?",
                    row=1,
                    options=[discord.SelectOption(label=label, value=str(n)) for label, n in GUEST_CHOICES],
                )
                guest_select.callback = self._on_guests
                self.guest_select = guest_select
                self.add_item(guest_select)

        async def _on_roster(self, interaction: discord.Interaction):
            self.roster_id = self.roster_select.values[0]
            await interaction.response.defer()

        async def _on_guests(self, interaction: discord.Interaction):
            self.guest_count = int(self.guest_select.values[0])
            await interaction.response.defer()

        async def interaction_check(self, interaction: discord.Interaction) -> bool:
            return int(interaction.user.id) == int(user_id)

        @discord.ui.button(label="Confirm", style=discord.ButtonStyle.success, row=2)
        async def confirm(self, interaction: discord.Interaction, button: discord.ui.Button):
            if not self.roster_id:
                await interaction.response.send_message(NoRosterSelected.notice, ephemeral=True)
                return
            await interaction.response.defer()
            try:
                result = await service.join(
                    event.event_id,
                    user_id=int(user_id),
                    roster_id=self.roster_id,
                    guest_count=self.guest_count,
                )
                text = join_reply(result)
            except Exception as e:
                text = notice_for(e, action="join", event_id=event.event_id)
            self.stop()
            await interaction.edit_original_response(content=text, view=None)

    return RosterPicker()


def build_join_panel_items(*, service) -> tuple[type, type]:
    """Dynamic buttons for every announcement; the event id travels in the custom_id."""

    class JoinEventButton(
        discord.ui.DynamicItem[discord.ui.Button],
        template=rf"{JOIN_ACTION_ID}:(?P<event_id>EVT-[0-9A-F]{{8}})",
    ):
        def __init__(self, event_id: str) -> None:
            super().__init__(
                discord.ui.Button(
                    label="Join Event",
                    style=discord.ButtonStyle.primary,
                    custom_id=f"{JOIN_ACTION_ID}:{event_id}",
                )
            )
            self.event_id = event_id

        @classmethod
        async def from_custom_id(cls, interaction: discord.Interaction, item: discord.ui.Button, match, /):
            return cls(match["event_id"])

        async def callback(self, interaction: discord.Interaction):
            user_id = int(interaction.user.id)
            await interaction.response.defer(ephemeral=True, thinking=True)
            try:
                result = await service.join(self.event_id, user_id=user_id)
            except NoRosterSelected:
                try:
                    event = await service.require_event(self.event_id)
                except Exception as e:
                    await interaction.followup.send(notice_for(e, action="join", event_id=self.event_id), ephemeral=True)
                    return
                await interaction.followup.send(
                    f"Which roster for *{event.title}* shall I inscribe you upon?",
                    view=build_roster_picker(service=service, event=event, user_id=user_id),
                    ephemeral=True,
                )
                return
            except Exception as e:
                await interaction.followup.send(notice_for(e, action="join", event_id=self.event_id), ephemeral=True)
                return
            await interaction.followup.send(join_reply(result), ephemeral=True)

    class AddToCalendarButton(
        discord.ui.DynamicItem[discord.ui.Button],
        template=rf"{CALENDAR_ACTION_ID}:(?P<event_id>EVT-[0-9A-F]{{8}})",
    ):
        def __init__(self, event_id: str) -> None:
            super().__init__(
                discord.ui.Button(
                    label="Add to Google Calendar",
                    style=discord.ButtonStyle.secondary,
                    custom_id=f"{CALENDAR_ACTION_ID}:{event_id}",
                )
            )
            self.event_id = event_id

        @classmethod
        async def from_custom_id(cls, interaction: discord.Interaction, item: discord.ui.Button, match, /):
            return cls(match["event_id"])

        async def callback(self, interaction: discord.Interaction):
            await interaction.response.defer(ephemeral=True, thinking=True)
            try:
                await service.add_to_calendar(self.event_id, user_id=int(interaction.user.id))
                event = await service.require_event(self.event_id)
                text = f"Very good. *{event.title}* has been entered into your Google Calendar."
            except Exception as e:
                text = notice_for(e, action="add_to_calendar", event_id=self.event_id)
            await interaction.followup.send(text, ephemeral=True)

    return JoinEventButton, AddToCalendarButton
