from __future__ import annotations

import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace

import yaml

from db.migrate import discover_migrations
from jobs.reminders import seconds_until_next_local
from roster.intro_drafter import IntroDrafter
from roster.models import EventCategory
from roster.models import EventRecord
from roster.profiles import load_profile_seeds
from roster.service import render_reminder


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[1]


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
    )


class _DummyCompletions:
    def __init__(self, text: str | None = None, error: Exception | None = None):
        self._text = text
        self._error = error

    def create(self, *args, **kwargs):
        if self._error is not None:
            raise self._error
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=self._text))])


class _DummyClient:
    def __init__(self, text: str | None = None, error: Exception | None = None):
        self.chat = SimpleNamespace(completions=_DummyCompletions(text, error))


class ProfileSeedTests(unittest.TestCase):
    def test_bundled_seed_file_loads(self):
        profiles, warning = load_profile_seeds(_repo_root() / "config" / "event_profiles.yml")
        self.assertIsNone(warning)
        self.assertEqual([p.name for p in profiles], ["Padel", "Tennis", "Football Match"])
        self.assertEqual(profiles[2].category, EventCategory.SPECTATOR)

    def test_malformed_entries_are_skipped_with_warning(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "profiles.yml"
            payload = {
                "profiles": [
                    {"name": "Chess", "category": "sport", "capacity_unit": "Boards", "default_capacity": 4},
                    {"name": "Broken", "category": "BOARDGAME", "capacity_unit": "Tables", "default_capacity": 2},
                    {"name": "", "category": "SPORT", "capacity_unit": "Courts", "default_capacity": 2},
                    "not-a-mapping",
                ]
            }
            path.write_text(yaml.safe_dump(payload, sort_keys=False), encoding="utf-8")
            profiles, warning = load_profile_seeds(path)
        self.assertEqual([p.name for p in profiles], ["Chess"])
        self.assertIn("Skipped 3", warning)

    def test_missing_or_invalid_files(self):
        self.assertEqual(load_profile_seeds(None)[0], [])
        profiles, warning = load_profile_seeds("/nonexistent/profiles.yml")
        self.assertEqual(profiles, [])
        self.assertIn("not found", warning)
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "profiles.yml"
            path.write_text("profiles: {name: nope}\n", encoding="utf-8")
            self.assertIn("expected a top-level", load_profile_seeds(path)[1])


class ReminderScheduleTests(unittest.TestCase):
    def test_next_run_later_today(self):
        now = datetime(2026, 3, 1, 6, 0, tzinfo=timezone.utc)
        self.assertEqual(seconds_until_next_local("09:00", "UTC", now), 3 * 3600)

    def test_next_run_rolls_to_tomorrow(self):
        now = datetime(2026, 3, 1, 10, 0, tzinfo=timezone.utc)
        self.assertEqual(seconds_until_next_local("09:00", "UTC", now), 23 * 3600)

    def test_dst_change_is_respected(self):
        # Stockholm moves to summer time on 2026-03-29; that local day lasts 23 hours.
        now = datetime(2026, 3, 28, 8, 0, tzinfo=timezone.utc)
        self.assertEqual(seconds_until_next_local("09:00", "Europe/Stockholm", now), 23 * 3600)

    def test_reminder_template_placeholders(self):
        text = render_reminder("{eventTitle} at {eventTime}. {weather}", _event(), "Clear skies.")
        self.assertEqual(text, "*Padel* at *17:30*. Clear skies.")
        self.assertIn("*Padel*", render_reminder("", _event(), ""))


class IntroDrafterTests(unittest.IsolatedAsyncioTestCase):
    async def test_disabled_drafter_returns_none(self):
        drafter = IntroDrafter(client=None, openai_model="gpt-5.1", enabled=True)
        self.assertFalse(drafter.enabled)
        self.assertIsNone(await drafter.draft(_event()))

    async def test_draft_must_name_the_event(self):
        good = IntroDrafter(client=_DummyClient("Gentlefolk, Padel awaits on Monday."), openai_model="gpt-5.1", enabled=True)
        self.assertEqual(await good.draft(_event()), "Gentlefolk, Padel awaits on Monday.")
        vague = IntroDrafter(client=_DummyClient("Gentlefolk, something awaits."), openai_model="gpt-5.1", enabled=True)
        self.assertIsNone(await vague.draft(_event()))

    async def test_client_errors_fall_back(self):
        broken = IntroDrafter(client=_DummyClient(error=RuntimeError("rate limited")), openai_model="gpt-5.1", enabled=True)
        self.assertIsNone(await broken.draft(_event()))


class MigrationDiscoveryTests(unittest.TestCase):
    def test_duplicate_versions_are_rejected(self):
        with tempfile.TemporaryDirectory() as tmp:
            (Path(tmp) / "0001_first.sql").write_text("SELECT 1;", encoding="utf-8")
            (Path(tmp) / "0001_second.sql").write_text("SELECT 1;", encoding="utf-8")
            with self.assertRaises(RuntimeError):
                discover_migrations(tmp)

    def test_bundled_migrations_are_ordered(self):
        found = discover_migrations(_repo_root() / "migrations")
        self.assertEqual([m.version for m in found], sorted(m.version for m in found))
        self.assertEqual(found[0].label, "0001_events_core.py")


if __name__ == "__main__":
    unittest.main()
