from __future__ import annotations

import unittest

from fastapi.testclient import TestClient

from roster.errors import CalendarError
from roster.errors import ChannelNotConfigured
from roster.errors import GatewayError
from roster.models import EventStatus
from roster.service import PublishReport
from roster.service import ReminderReport
from web.admin_api import CALLBACK_FAILED
from web.admin_api import CALLBACK_MISSING_PARAMS
from web.admin_api import CALLBACK_OK
from web.admin_api import build_admin_app


TOKEN = "cron-secret"


class _StubEvent:
    event_id = "EVT-1A2B3C4D"
    status = EventStatus.ACTIVE
    booking_date_local = "2026-03-09"


class _StubService:
    def __init__(self):
        self.publish_calls = 0
        self.reminder_calls: list[bool] = []
        self.recurring_error: Exception | None = None

    async def publish_due(self):
        self.publish_calls += 1
        return PublishReport(published=["EVT-1A2B3C4D", "EVT-0000AAAA"], failed={"EVT-0000BBBB": "GatewayError"})

    async def create_recurring_event(self):
        if self.recurring_error is not None:
            raise self.recurring_error
        return _StubEvent()

    async def send_reminders(self, *, dry_run: bool = False):
        self.reminder_calls.append(dry_run)
        return ReminderReport(dry_run=dry_run, target_date_local="2026-03-02", sent=[] if dry_run else ["EVT-1A2B3C4D"])


class _StubCalendar:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.exchanged: list[tuple[str, int]] = []

    async def exchange_code(self, code: str, user_id: int):
        if self.error is not None:
            raise self.error
        self.exchanged.append((code, user_id))
        return {"access_token": "a"}


def _auth(token: str = TOKEN) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


class AdminApiTests(unittest.TestCase):
    def setUp(self):
        self.service = _StubService()
        self.calendar = _StubCalendar()
        self.client = TestClient(
            build_admin_app(roster_service=self.service, cron_secret_token=TOKEN, calendar=self.calendar)
        )

    def test_healthz_is_open(self):
        resp = self.client.get("/healthz")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"ok": True})

    def test_task_endpoints_require_bearer_token(self):
        for path in ("/tasks/post-scheduled", "/tasks/send-announcement", "/tasks/send-reminders"):
            self.assertEqual(self.client.post(path).status_code, 403, path)
            self.assertEqual(self.client.post(path, headers=_auth("wrong")).status_code, 403, path)
        self.assertEqual(self.service.publish_calls, 0)

    def test_post_scheduled_reports_count(self):
        resp = self.client.post("/tasks/post-scheduled", headers=_auth())
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["published"], 2)
        self.assertEqual(body["event_ids"], ["EVT-1A2B3C4D", "EVT-0000AAAA"])
        self.assertEqual(body["failed"], {"EVT-0000BBBB": "GatewayError"})

    def test_send_announcement_maps_errors(self):
        resp = self.client.post("/tasks/send-announcement", headers=_auth())
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["event_id"], "EVT-1A2B3C4D")

        self.service.recurring_error = ChannelNotConfigured("No primary channel is set for the recurring announcement.")
        resp = self.client.post("/tasks/send-announcement", headers=_auth())
        self.assertEqual(resp.status_code, 409)
        self.assertIn("primary channel", resp.json()["detail"])

        self.service.recurring_error = GatewayError("discord down")
        self.assertEqual(self.client.post("/tasks/send-announcement", headers=_auth()).status_code, 502)

    def test_send_reminders_dry_run_flag(self):
        resp = self.client.post("/tasks/send-reminders?dry_run=true", headers=_auth())
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.json()["dry_run"])
        resp = self.client.post("/tasks/send-reminders", headers=_auth())
        self.assertEqual(resp.json()["sent"], ["EVT-1A2B3C4D"])
        self.assertEqual(self.service.reminder_calls, [True, False])

    def test_tasks_disabled_without_configured_token(self):
        client = TestClient(build_admin_app(roster_service=self.service, cron_secret_token=""))
        self.assertEqual(client.post("/tasks/post-scheduled", headers=_auth("")).status_code, 503)
        self.assertEqual(client.post("/tasks/post-scheduled", headers=_auth()).status_code, 503)

    def test_oauth_callback(self):
        self.assertEqual(self.client.get("/google/oauth/callback").status_code, 400)
        resp = self.client.get("/google/oauth/callback", params={"code": "c", "state": "abc"})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.text, CALLBACK_MISSING_PARAMS)

        resp = self.client.get("/google/oauth/callback", params={"code": "c", "state": "42"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.text, CALLBACK_OK)
        self.assertEqual(self.calendar.exchanged, [("c", 42)])

    def test_oauth_callback_failure(self):
        client = TestClient(
            build_admin_app(
                roster_service=self.service,
                cron_secret_token=TOKEN,
                calendar=_StubCalendar(error=CalendarError("token exchange failed")),
            )
        )
        resp = client.get("/google/oauth/callback", params={"code": "c", "state": "42"})
        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.text, CALLBACK_FAILED)

        no_calendar = TestClient(build_admin_app(roster_service=self.service, cron_secret_token=TOKEN))
        self.assertEqual(no_calendar.get("/google/oauth/callback", params={"code": "c", "state": "42"}).status_code, 503)


if __name__ == "__main__":
    unittest.main()
