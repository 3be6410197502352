from __future__ import annotations

import sqlite3
import unittest
from pathlib import Path

from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync
from roster.errors import StaleRecord
from roster.models import ChannelConfig
from roster.models import EventCategory
from roster.models import EventProfile
from roster.models import EventRecord
from roster.models import EventStatus
from roster.models import Participant
from roster.models import PostedMessage
from roster.models import Roster
from roster.store import delete_event_sync
from roster.store import fetch_event_audit_sync
from roster.store import find_due_events_sync
from roster.store import find_event_by_message_sync
from roster.store import find_events_by_participant_sync
from roster.store import find_events_on_date_sync
from roster.store import find_upcoming_events_sync
from roster.store import get_channel_config_sync
from roster.store import get_event_profile_sync
from roster.store import get_event_sync
from roster.store import insert_event_audit_sync
from roster.store import is_channel_admin_sync
from roster.store import list_event_profiles_sync
from roster.store import set_event_sync
from roster.store import upsert_channel_config_sync
from roster.store import upsert_event_profile_sync


def _migrations_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "migrations")


def _event(event_id: str, *, date_local: str = "2026-03-02", booking_at: str = "2026-03-02T16:30:00+00:00") -> EventRecord:
    return EventRecord(
        event_id=event_id,
        title="Padel",
        event_type="Padel",
        category=EventCategory.SPORT,
        location="Court Hall",
        booking_date="Monday, March 2nd",
        booking_time="17:30",
        booking_at_utc=booking_at,
        booking_date_local=date_local,
        created_by="1",
        created_at_utc="2026-02-01T10:00:00+00:00",
        rosters=[Roster(roster_id="r1", name="Court 1", capacity=4)],
        posted_messages=[PostedMessage(channel_id=10, message_id=int(event_id[-4:], 16))],
    )


class MigrationTests(unittest.TestCase):
    def test_migrations_are_idempotent_and_listed(self):
        conn = sqlite3.connect(":memory:")
        first = apply_sqlite_migrations(conn, _migrations_dir())
        second = apply_sqlite_migrations(conn, _migrations_dir())
        self.assertEqual(first, ["0001", "0002", "0003", "0004"])
        self.assertEqual(second, [])
        versions = [row[0] for row in list_schema_migrations_sync(conn, limit=10)]
        self.assertEqual(versions, ["0004", "0003", "0002", "0001"])
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        for name in ("events", "event_participants", "event_posted_messages", "channel_configs", "event_profiles", "calendar_tokens", "event_audit_log"):
            self.assertIn(name, tables)
        conn.close()

    def test_list_migrations_without_table(self):
        conn = sqlite3.connect(":memory:")
        self.assertEqual(list_schema_migrations_sync(conn), [])
        conn.close()


class EventStoreTests(unittest.TestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, _migrations_dir())

    def tearDown(self):
        self.conn.close()

    def test_round_trip_and_revision_bump(self):
        saved = set_event_sync(self.conn, _event("EVT-0000AAAA"))
        self.assertEqual(saved.revision, 1)
        loaded = get_event_sync(self.conn, "evt-0000aaaa")
        self.assertEqual(loaded.to_dict(), saved.to_dict())

        loaded.rosters[0].players.append(Participant(user_id=7))
        updated = set_event_sync(self.conn, loaded, expected_revision=loaded.revision)
        self.assertEqual(updated.revision, 2)
        self.assertEqual(get_event_sync(self.conn, "EVT-0000AAAA").rosters[0].players[0].user_id, 7)

    def test_stale_revision_is_rejected(self):
        saved = set_event_sync(self.conn, _event("EVT-0000AAAA"))
        set_event_sync(self.conn, saved, expected_revision=saved.revision)
        with self.assertRaises(StaleRecord):
            set_event_sync(self.conn, saved, expected_revision=saved.revision)
        self.assertEqual(get_event_sync(self.conn, "EVT-0000AAAA").revision, 2)

    def test_participant_and_message_indexes_follow_the_document(self):
        event = _event("EVT-0000AAAA")
        event.rosters[0].players.append(Participant(user_id=7))
        event.standby.append(Participant(user_id=8))
        set_event_sync(self.conn, event)

        self.assertEqual([e.event_id for e in find_events_by_participant_sync(self.conn, 8, on_or_after_utc="2026-01-01")], ["EVT-0000AAAA"])
        self.assertEqual(find_events_by_participant_sync(self.conn, 8, on_or_after_utc="2026-04-01"), [])
        self.assertEqual(find_event_by_message_sync(self.conn, message_id=0xAAAA).event_id, "EVT-0000AAAA")

        current = get_event_sync(self.conn, "EVT-0000AAAA")
        current.standby = []
        set_event_sync(self.conn, current, expected_revision=current.revision)
        self.assertEqual(find_events_by_participant_sync(self.conn, 8, on_or_after_utc="2026-01-01"), [])

    def test_due_upcoming_and_date_queries(self):
        scheduled = _event("EVT-0000BBBB", date_local="2026-03-09", booking_at="2026-03-09T16:30:00+00:00")
        scheduled.status = EventStatus.SCHEDULED
        scheduled.post_at_utc = "2026-02-20T12:00:00+00:00"
        scheduled.scheduled_channel_id = 10
        scheduled.posted_messages = []
        set_event_sync(self.conn, scheduled)
        set_event_sync(self.conn, _event("EVT-0000AAAA"))

        self.assertEqual(find_due_events_sync(self.conn, now_utc="2026-02-20T11:59:59+00:00"), [])
        self.assertEqual(
            [e.event_id for e in find_due_events_sync(self.conn, now_utc="2026-02-20T12:00:00+00:00")],
            ["EVT-0000BBBB"],
        )
        upcoming = find_upcoming_events_sync(self.conn, on_or_after_utc="2026-03-01T00:00:00+00:00")
        self.assertEqual([e.event_id for e in upcoming], ["EVT-0000AAAA", "EVT-0000BBBB"])
        self.assertEqual(len(find_upcoming_events_sync(self.conn, on_or_after_utc="2026-03-01", limit=1)), 1)
        self.assertEqual([e.event_id for e in find_events_on_date_sync(self.conn, booking_date_local="2026-03-09")], ["EVT-0000BBBB"])

    def test_delete_removes_indexes(self):
        event = _event("EVT-0000AAAA")
        event.rosters[0].players.append(Participant(user_id=7))
        set_event_sync(self.conn, event)
        self.assertTrue(delete_event_sync(self.conn, "EVT-0000AAAA"))
        self.assertFalse(delete_event_sync(self.conn, "EVT-0000AAAA"))
        self.assertIsNone(get_event_sync(self.conn, "EVT-0000AAAA"))
        self.assertIsNone(find_event_by_message_sync(self.conn, message_id=0xAAAA))
        self.assertEqual(find_events_by_participant_sync(self.conn, 7, on_or_after_utc="2026-01-01"), [])


class ConfigStoreTests(unittest.TestCase):
    def setUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, _migrations_dir())

    def tearDown(self):
        self.conn.close()

    def test_channel_config_upsert_and_admin_check(self):
        self.assertIsNone(get_channel_config_sync(self.conn, 10))
        saved = upsert_channel_config_sync(
            self.conn,
            ChannelConfig(channel_id=10, guild_id=1, default_event_type="Padel", display_emoji=":tada:", configured_by_user_id=5),
        )
        self.assertEqual(saved.display_emoji, "tada")
        self.assertTrue(is_channel_admin_sync(self.conn, channel_id=10, user_id=5))
        self.assertFalse(is_channel_admin_sync(self.conn, channel_id=10, user_id=6))
        self.assertFalse(is_channel_admin_sync(self.conn, channel_id=11, user_id=5))

    def test_profiles_are_case_insensitive(self):
        profile = EventProfile(name="Padel", category=EventCategory.SPORT, capacity_unit="Courts", default_capacity=2)
        upsert_event_profile_sync(self.conn, profile)
        self.assertEqual(get_event_profile_sync(self.conn, "padel").capacity_unit, "Courts")

        changed = EventProfile(name="PADEL", category=EventCategory.SPORT, capacity_unit="Courts", default_capacity=3)
        kept = upsert_event_profile_sync(self.conn, changed, overwrite=False)
        self.assertEqual(kept.default_capacity, 2)
        replaced = upsert_event_profile_sync(self.conn, changed)
        self.assertEqual(replaced.default_capacity, 3)
        self.assertEqual(len(list_event_profiles_sync(self.conn)), 1)

    def test_audit_log_is_append_only_in_order(self):
        insert_event_audit_sync(self.conn, event_id="EVT-0000AAAA", action="created", actor_type="user", actor_user_id=1, revision=1)
        insert_event_audit_sync(
            self.conn,
            event_id="EVT-0000AAAA",
            action="join",
            actor_type="user",
            actor_user_id=2,
            revision=2,
            payload={"roster": "Court 1"},
        )
        rows = fetch_event_audit_sync(self.conn, "EVT-0000AAAA")
        self.assertEqual([r["action"] for r in rows], ["created", "join"])
        self.assertEqual(rows[1]["payload"], {"roster": "Court 1"})
        self.assertEqual(fetch_event_audit_sync(self.conn, "EVT-FFFFFFFF"), [])


if __name__ == "__main__":
    unittest.main()
