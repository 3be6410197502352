from __future__ import annotations

import asyncio

from roster.models import EventRecord


class IntroDrafter:
    """Optional LLM-written announcement intro. Returns None whenever it cannot help."""

    def __init__(self, *, client, openai_model: str, enabled: bool, max_chars: int = 600) -> None:
        self.client = client
        self.openai_model = openai_model
        self.enabled = bool(enabled) and client is not None
        self.max_chars = int(max_chars)

    def _prompts(self, event: EventRecord, display_emoji: str) -> tuple[str, str]:
        sys_prompt = (
            "You write the opening lines of a Discord event announcement for a social sports club.\n"
            "Voice: an old-fashioned, courteous butler summoning gentlefolk to an engagement.\n"
            "Two or three sentences. Mention the event title and its date exactly as given.\n"
            "Do not invent times, prices or locations. Do not use @mentions. Return only the text."
        )
        user_prompt = (
            f"Title: {event.title}\n"
            f"Date: {event.booking_date}\n"
            f"Hour: {event.booking_time}\n"
            f"Location: {event.location}\n"
            f"Emoji to open with: :{display_emoji}:\n"
        )
        return sys_prompt, user_prompt

    async def draft(self, event: EventRecord, *, display_emoji: str = "scroll") -> str | None:
        if not self.enabled:
            return None
        sys_prompt, user_prompt = self._prompts(event, display_emoji)
        try:
            resp = await asyncio.to_thread(
                self.client.chat.completions.create,
                model=self.openai_model,
                messages=[
                    {"role": "system", "content": sys_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            )
            text = (resp.choices[0].message.content or "").strip()
        except Exception as e:
            print(f"[OpenAI] action=draft_intro result=error event={event.event_id} error={str(e)[:180]}")
            return None
        if not text:
            return None
        if event.title not in text:
            # The intro must name the event; otherwise fall back to the template.
            return None
        return text[: self.max_chars]
