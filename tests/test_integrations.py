from __future__ import annotations

import asyncio
import json
import sqlite3
import unittest
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from urllib.parse import parse_qs
from urllib.parse import urlparse

import httpx

from db.migrate import apply_sqlite_migrations
from integrations.calendar import GOOGLE_EVENTS_URL
from integrations.calendar import GOOGLE_TOKEN_URL
from integrations.calendar import GoogleCalendarService
from integrations.calendar import build_calendar_event_body
from integrations.calendar_store import get_calendar_tokens_sync
from integrations.calendar_store import set_calendar_tokens_sync
from integrations.forecast import ForecastService
from integrations.forecast import NO_DETAIL
from integrations.forecast import TOO_DISTANT
from integrations.forecast import UNAVAILABLE
from integrations.forecast import describe_weather_code
from integrations.forecast import format_forecast
from roster.errors import CalendarError
from roster.errors import CalendarNotAuthorized
from roster.models import EventCategory
from roster.models import EventRecord
from roster.models import Participant
from roster.models import Roster


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _migrations_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "migrations")


def _event() -> EventRecord:
    return EventRecord(
        event_id="EVT-1A2B3C4D",
        title="Padel",
        event_type="Padel",
        category=EventCategory.SPORT,
        location="Court Hall",
        booking_date="Monday, March 2nd",
        booking_time="17:30",
        booking_at_utc="2026-03-02T16:30:00+00:00",
        booking_date_local="2026-03-02",
        created_by="1",
        created_at_utc="2026-02-01T10:00:00+00:00",
        rosters=[
            Roster(
                roster_id="r1",
                name="Court 1",
                capacity=4,
                players=[Participant(user_id=1, email="b@example.com"), Participant(user_id=2)],
            )
        ],
        standby=[Participant(user_id=3, email="a@example.com")],
    )


def _forecast_payload() -> dict:
    return {
        "daily": {
            "weathercode": [61],
            "temperature_2m_max": [14.6],
            "temperature_2m_min": [6.2],
        }
    }


class ForecastFormattingTests(unittest.TestCase):
    def test_format_forecast(self):
        text = format_forecast(_forecast_payload())
        self.assertIn("a slight prospect of rain", text)
        self.assertIn("low of 6°C", text)
        self.assertIn("high of 15°C", text)

    def test_incomplete_payload(self):
        self.assertEqual(format_forecast({}), NO_DETAIL)
        self.assertEqual(format_forecast({"daily": {"weathercode": [1]}}), NO_DETAIL)

    def test_unknown_codes(self):
        self.assertEqual(describe_weather_code(0), "perfectly clear skies")
        self.assertEqual(describe_weather_code(42), "somewhat uncertain conditions")
        self.assertEqual(describe_weather_code(None), "somewhat uncertain conditions")


class ForecastServiceTests(unittest.IsolatedAsyncioTestCase):
    async def test_fetches_single_day(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=_forecast_payload())

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            svc = ForecastService(latitude=59.3, longitude=18.0, timezone_name="UTC", http_client=http)
            text = await svc.forecast(date(2026, 3, 2), now=NOW)
        self.assertIn("slight prospect of rain", text)
        params = parse_qs(urlparse(str(seen[0].url)).query)
        self.assertEqual(params["start_date"], ["2026-03-02"])
        self.assertEqual(params["end_date"], ["2026-03-02"])

    async def test_distant_or_past_dates_skip_the_request(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("no request expected")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            svc = ForecastService(latitude=59.3, longitude=18.0, timezone_name="UTC", http_client=http)
            self.assertEqual(await svc.forecast(date(2026, 3, 20), now=NOW), TOO_DISTANT)
            self.assertEqual(await svc.forecast(date(2026, 2, 27), now=NOW), TOO_DISTANT)

    async def test_upstream_failure_becomes_apology(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(503, text="down")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            svc = ForecastService(latitude=59.3, longitude=18.0, timezone_name="UTC", http_client=http)
            self.assertEqual(await svc.forecast(date(2026, 3, 2), now=NOW), UNAVAILABLE)


class CalendarBodyTests(unittest.TestCase):
    def test_event_body(self):
        body = build_calendar_event_body(_event())
        self.assertEqual(body["summary"], "Padel")
        self.assertEqual(body["start"]["dateTime"], "2026-03-02T16:30:00+00:00")
        self.assertEqual(body["end"]["dateTime"], "2026-03-02T18:00:00+00:00")
        self.assertEqual(body["attendees"], [{"email": "a@example.com"}, {"email": "b@example.com"}])
        self.assertEqual([o["minutes"] for o in body["reminders"]["overrides"]], [1440, 60])


class GoogleCalendarServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, _migrations_dir())
        self.db_lock = asyncio.Lock()
        self.requests: list[httpx.Request] = []
        self.responses: list[httpx.Response] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return self.responses.pop(0)

        self.http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        self.calendar = GoogleCalendarService(
            client_id="cid",
            client_secret="secret",
            redirect_uri="https://bot.example.com/google/oauth/callback",
            db_lock=self.db_lock,
            db_conn=self.conn,
            http_client=self.http,
        )

    async def asyncTearDown(self):
        await self.http.aclose()
        self.conn.close()

    def test_auth_url_carries_user_state(self):
        params = parse_qs(urlparse(self.calendar.auth_url(42)).query)
        self.assertEqual(params["state"], ["42"])
        self.assertEqual(params["access_type"], ["offline"])
        self.assertEqual(params["prompt"], ["consent"])

    async def test_not_authorized_without_tokens(self):
        with self.assertRaises(CalendarNotAuthorized) as ctx:
            await self.calendar.create_event(42, _event())
        self.assertIn("state=42", ctx.exception.auth_url)
        self.assertEqual(self.requests, [])

    async def test_exchange_code_stores_tokens(self):
        self.responses.append(httpx.Response(200, json={"access_token": "a1", "refresh_token": "r1", "expires_in": 3600}))
        await self.calendar.exchange_code("code-1", 42)
        stored = get_calendar_tokens_sync(self.conn, 42)
        self.assertEqual(stored["access_token"], "a1")
        self.assertEqual(stored["refresh_token"], "r1")
        self.assertIn("expiry_utc", stored)

    async def test_exchange_failure_raises_calendar_error(self):
        self.responses.append(httpx.Response(400, json={"error": "invalid_grant"}))
        with self.assertRaises(CalendarError):
            await self.calendar.exchange_code("bad", 42)

    async def test_insert_retries_once_after_refresh(self):
        set_calendar_tokens_sync(self.conn, 42, {"access_token": "old", "refresh_token": "r1"})
        self.responses.extend(
            [
                httpx.Response(401, json={}),
                httpx.Response(200, json={"access_token": "new", "expires_in": 3600}),
                httpx.Response(200, json={"id": "gcal-1"}),
            ]
        )
        created = await self.calendar.create_event(42, _event())
        self.assertEqual(created["id"], "gcal-1")
        self.assertEqual(str(self.requests[1].url), GOOGLE_TOKEN_URL)
        self.assertEqual(self.requests[2].headers["Authorization"], "Bearer new")
        self.assertEqual(json.loads(self.requests[2].content)["summary"], "Padel")
        self.assertEqual(get_calendar_tokens_sync(self.conn, 42)["refresh_token"], "r1")

    async def test_expired_token_refreshes_first(self):
        expired = (datetime.now(timezone.utc) - timedelta(hours=1)).replace(microsecond=0).isoformat()
        set_calendar_tokens_sync(self.conn, 42, {"access_token": "old", "refresh_token": "r1", "expiry_utc": expired})
        self.responses.extend(
            [
                httpx.Response(200, json={"access_token": "new", "expires_in": 3600}),
                httpx.Response(200, json={"id": "gcal-2"}),
            ]
        )
        await self.calendar.create_event(42, _event())
        self.assertEqual(str(self.requests[0].url), GOOGLE_TOKEN_URL)
        self.assertTrue(str(self.requests[1].url).startswith(GOOGLE_EVENTS_URL))

    async def test_revoked_refresh_asks_for_login(self):
        set_calendar_tokens_sync(self.conn, 42, {"access_token": "old", "refresh_token": "r1"})
        self.responses.extend([httpx.Response(401, json={}), httpx.Response(400, json={"error": "invalid_grant"})])
        with self.assertRaises(CalendarNotAuthorized):
            await self.calendar.create_event(42, _event())
        self.assertIsNone(get_calendar_tokens_sync(self.conn, 42))


if __name__ == "__main__":
    unittest.main()
