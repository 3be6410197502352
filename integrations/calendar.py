from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any
from urllib.parse import urlencode

import httpx

from integrations.calendar_store import delete_calendar_tokens_sync
from integrations.calendar_store import get_calendar_tokens_sync
from integrations.calendar_store import set_calendar_tokens_sync
from roster.dates import parse_utc
from roster.errors import CalendarError
from roster.errors import CalendarNotAuthorized
from roster.models import EventRecord


GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_EVENTS_URL = "https://www.googleapis.com/calendar/v3/calendars/primary/events"
CALENDAR_SCOPE = "https://www.googleapis.com/auth/calendar.events"

EVENT_DURATION = timedelta(minutes=90)
DEFAULT_DESCRIPTION = "An engagement arranged by the roster bot."
EXPIRY_SKEW = timedelta(seconds=60)


def build_calendar_event_body(event: EventRecord) -> dict[str, Any]:
    start = parse_utc(event.booking_at_utc)
    if start is None:
        raise CalendarError("Event has no booking time.", event_id=event.event_id)
    end = start + EVENT_DURATION
    emails = sorted({p.email for p in event.participants() if p.email})
    return {
        "summary": event.title,
        "location": event.location,
        "description": event.description or DEFAULT_DESCRIPTION,
        "start": {"dateTime": start.isoformat(), "timeZone": "UTC"},
        "end": {"dateTime": end.isoformat(), "timeZone": "UTC"},
        "attendees": [{"email": e} for e in emails],
        "reminders": {
            "useDefault": False,
            "overrides": [
                {"method": "email", "minutes": 24 * 60},
                {"method": "popup", "minutes": 60},
            ],
        },
    }


class GoogleCalendarService:
    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        db_lock,
        db_conn,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 15.0,
    ) -> None:
        self.client_id = (client_id or "").strip()
        self.client_secret = (client_secret or "").strip()
        self.redirect_uri = (redirect_uri or "").strip()
        self.db_lock = db_lock
        self.db_conn = db_conn
        self._http = http_client
        self.timeout_seconds = float(timeout_seconds)

    @property
    def enabled(self) -> bool:
        return bool(self.client_id and self.client_secret and self.redirect_uri)

    def auth_url(self, user_id: int) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": CALENDAR_SCOPE,
            "access_type": "offline",
            "prompt": "consent",
            "state": str(int(user_id)),
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http is not None:
            return await self._http.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as http:
            return await http.request(method, url, **kwargs)

    async def _load_tokens(self, user_id: int) -> dict[str, Any] | None:
        async with self.db_lock:
            return await asyncio.to_thread(get_calendar_tokens_sync, self.db_conn, int(user_id))

    async def _save_tokens(self, user_id: int, tokens: dict[str, Any]) -> None:
        async with self.db_lock:
            await asyncio.to_thread(set_calendar_tokens_sync, self.db_conn, int(user_id), tokens)

    @staticmethod
    def _with_expiry(payload: dict[str, Any], previous: dict[str, Any] | None = None) -> dict[str, Any]:
        tokens = dict(previous or {})
        tokens.update({k: v for k, v in payload.items() if v is not None})
        expires_in = payload.get("expires_in")
        if expires_in is not None:
            expiry = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))
            tokens["expiry_utc"] = expiry.replace(microsecond=0).isoformat()
        return tokens

    async def exchange_code(self, code: str, user_id: int) -> dict[str, Any]:
        try:
            resp = await self._request(
                "POST",
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "redirect_uri": self.redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            print(f"[Calendar] action=exchange_code result=error user={user_id} error={str(e)[:180]}")
            raise CalendarError(f"token exchange failed: {e}", user=user_id) from e

        tokens = self._with_expiry(payload)
        await self._save_tokens(user_id, tokens)
        print(f"[Calendar] action=exchange_code result=ok user={user_id} refresh={'refresh_token' in tokens}")
        return tokens

    async def _refresh(self, user_id: int, tokens: dict[str, Any]) -> dict[str, Any]:
        refresh_token = tokens.get("refresh_token")
        if not refresh_token:
            raise CalendarNotAuthorized(auth_url=self.auth_url(user_id), user=user_id)
        try:
            resp = await self._request(
                "POST",
                GOOGLE_TOKEN_URL,
                data={
                    "refresh_token": refresh_token,
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "grant_type": "refresh_token",
                },
            )
        except httpx.HTTPError as e:
            raise CalendarError(f"token refresh failed: {e}", user=user_id) from e
        if resp.status_code in (400, 401):
            # Revoked or expired grant; the user must log in again.
            async with self.db_lock:
                await asyncio.to_thread(delete_calendar_tokens_sync, self.db_conn, int(user_id))
            print(f"[Calendar] action=refresh result=revoked user={user_id}")
            raise CalendarNotAuthorized(auth_url=self.auth_url(user_id), user=user_id)
        if resp.status_code >= 300:
            raise CalendarError(f"token refresh failed: HTTP {resp.status_code}", user=user_id)
        refreshed = self._with_expiry(resp.json(), tokens)
        await self._save_tokens(user_id, refreshed)
        print(f"[Calendar] action=refresh result=ok user={user_id}")
        return refreshed

    @staticmethod
    def _expired(tokens: dict[str, Any]) -> bool:
        expiry = parse_utc(tokens.get("expiry_utc"))
        if expiry is None:
            return False
        return expiry - EXPIRY_SKEW <= datetime.now(timezone.utc)

    async def create_event(self, user_id: int, event: EventRecord) -> dict[str, Any]:
        if not self.enabled:
            raise CalendarError("Calendar integration is not configured.", event_id=event.event_id)
        tokens = await self._load_tokens(user_id)
        if not tokens or not tokens.get("access_token"):
            raise CalendarNotAuthorized(auth_url=self.auth_url(user_id), user=user_id)
        if self._expired(tokens):
            tokens = await self._refresh(user_id, tokens)

        body = build_calendar_event_body(event)
        for attempt in range(2):
            try:
                resp = await self._request(
                    "POST",
                    GOOGLE_EVENTS_URL,
                    json=body,
                    headers={"Authorization": f"Bearer {tokens['access_token']}"},
                )
            except httpx.HTTPError as e:
                print(f"[Calendar] action=insert result=error event={event.event_id} user={user_id} error={str(e)[:180]}")
                raise CalendarError(f"insert failed: {e}", event_id=event.event_id, user=user_id) from e
            if resp.status_code == 401 and attempt == 0:
                tokens = await self._refresh(user_id, tokens)
                continue
            break

        if resp.status_code >= 300:
            print(
                f"[Calendar] action=insert result=error event={event.event_id} user={user_id} "
                f"status={resp.status_code}"
            )
            raise CalendarError(f"insert failed: HTTP {resp.status_code}", event_id=event.event_id, user=user_id)
        created = resp.json()
        print(f"[Calendar] action=insert result=ok event={event.event_id} user={user_id} id={created.get('id')}")
        return created
