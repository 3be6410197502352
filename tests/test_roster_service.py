from __future__ import annotations

import asyncio
import sqlite3
import unittest
from datetime import datetime, timedelta, timezone
from pathlib import Path

from db.migrate import apply_sqlite_migrations
from roster.errors import AlreadyEnrolled
from roster.errors import AlreadySharedInChannel
from roster.errors import CalendarError
from roster.errors import ChannelNotConfigured
from roster.errors import EventNotFound
from roster.errors import GatewayError
from roster.errors import NotChannelAdmin
from roster.errors import NotEnrolled
from roster.errors import ProfileNotFound
from roster.models import EventCategory
from roster.models import EventProfile
from roster.models import EventStatus
from roster.render import RosterList
from roster.service import RosterDraft
from roster.service import RosterService
from roster.service import default_rosters_for_profile
from roster.store import fetch_event_audit_sync


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _migrations_dir() -> str:
    return str(Path(__file__).resolve().parents[1] / "migrations")


class _FakeGateway:
    def __init__(self):
        self.posts: list[tuple[int, int, object]] = []
        self.updates: list[tuple[int, int, object, str | None]] = []
        self.deleted: list[tuple[int, int]] = []
        self.dms: list[tuple[int, str]] = []
        self.failing_channels: set[int] = set()
        self.failing_post_channels: set[int] = set()
        self.locks = None
        self.locked_during_post: list[set[str]] = []
        self._next_id = 1000

    async def post(self, channel_id, doc):
        await asyncio.sleep(0)
        if self.locks is not None:
            self.locked_during_post.append(self.locks.active_keys())
        if int(channel_id) in self.failing_post_channels:
            raise GatewayError("missing access", channel=channel_id)
        self._next_id += 1
        self.posts.append((int(channel_id), self._next_id, doc))
        return self._next_id

    async def update(self, channel_id, message_id, doc, *, text=None):
        await asyncio.sleep(0)
        if int(channel_id) in self.failing_channels:
            raise GatewayError("channel unavailable", channel=channel_id)
        self.updates.append((int(channel_id), int(message_id), doc, text))

    async def delete(self, channel_id, message_id):
        self.deleted.append((int(channel_id), int(message_id)))

    async def notify_user(self, user_id, text):
        self.dms.append((int(user_id), text))

    def live_messages(self) -> int:
        return len(self.posts) - len(self.deleted)


class _FakeForecast:
    def __init__(self):
        self.requested = []

    async def forecast(self, target):
        self.requested.append(target)
        return "Sunny spells."


class RosterServiceTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.conn = sqlite3.connect(":memory:", check_same_thread=False)
        apply_sqlite_migrations(self.conn, _migrations_dir())
        self.gateway = _FakeGateway()
        self.forecast = _FakeForecast()
        self.service = RosterService(
            db_lock=asyncio.Lock(),
            db_conn=self.conn,
            gateway=self.gateway,
            forecast=self.forecast,
            timezone_name="UTC",
            default_time="17:30",
            primary_channel_id=10,
            owner_user_ids={999},
            now_func=lambda: NOW,
        )
        await self.service.create_profile(
            EventProfile(
                name="Padel",
                category=EventCategory.SPORT,
                capacity_unit="Courts",
                default_capacity=2,
                default_location="Court Hall",
            )
        )
        await self.service.configure_channel(channel_id=10, guild_id=1, actor_user_id=5, default_event_type="Padel")
        await self.service.configure_channel(channel_id=20, guild_id=1, actor_user_id=6, default_event_type="Padel")

    async def asyncTearDown(self):
        self.conn.close()

    async def _create(self, capacity: int = 1, **kwargs):
        return await self.service.create_event(
            channel_id=10,
            author_id=5,
            date_local="2026-03-02",
            rosters=[RosterDraft(name="Court 1", capacity=capacity)],
            **kwargs,
        )

    async def test_create_posts_immediately_and_audits(self):
        event = await self._create()
        self.assertEqual(event.status, EventStatus.ACTIVE)
        self.assertEqual(len(self.gateway.posts), 1)
        self.assertEqual(event.posted_messages[0].channel_id, 10)
        self.assertEqual(event.booking_time, "17:30")
        self.assertEqual(event.booking_date, "Monday, March 2nd")
        audit = fetch_event_audit_sync(self.conn, event.event_id)
        self.assertEqual(audit[0]["action"], "created")

    async def test_create_uses_profile_default_rosters(self):
        event = await self.service.create_event(channel_id=10, author_id=5, date_local="2026-03-02")
        self.assertEqual(event.location, "Court Hall")
        self.assertEqual([(r.name, r.capacity) for r in event.rosters], [("Court 1", 4), ("Court 2", 4)])

    async def test_create_requires_configured_channel_and_profile(self):
        with self.assertRaises(ChannelNotConfigured):
            await self.service.create_event(channel_id=30, author_id=5, date_local="2026-03-02")
        with self.assertRaises(ProfileNotFound):
            await self.service.create_event(channel_id=10, author_id=5, date_local="2026-03-02", event_type="Chess")
        self.assertEqual(self.gateway.posts, [])

    async def test_join_race_admits_exactly_one(self):
        event = await self._create(capacity=1)
        results = await asyncio.gather(
            self.service.join(event.event_id, user_id=1),
            self.service.join(event.event_id, user_id=2),
        )
        self.assertEqual(sorted(r.placement for r in results), ["roster", "standby"])
        stored = await self.service.get_event(event.event_id)
        self.assertEqual(len(stored.rosters[0].players), 1)
        self.assertEqual(len(stored.standby), 1)

    async def test_same_user_double_join(self):
        event = await self._create(capacity=3)
        results = await asyncio.gather(
            self.service.join(event.event_id, user_id=1),
            self.service.join(event.event_id, user_id=1),
            return_exceptions=True,
        )
        self.assertEqual(sum(1 for r in results if isinstance(r, AlreadyEnrolled)), 1)
        stored = await self.service.get_event(event.event_id)
        self.assertEqual([p.user_id for p in stored.participants()], [1])

    async def test_leave_promotes_and_notifies(self):
        event = await self._create(capacity=1)
        await self.service.join(event.event_id, user_id=1)
        await self.service.join(event.event_id, user_id=2)
        result = await self.service.leave(event.event_id, user_id=1)
        self.assertEqual(result.promoted.user_id, 2)
        self.assertEqual(len(self.gateway.dms), 1)
        self.assertEqual(self.gateway.dms[0][0], 2)
        self.assertIn("Court 1", self.gateway.dms[0][1])

        last_doc = self.gateway.updates[-1][2]
        roster_block = [b for b in last_doc.blocks if isinstance(b, RosterList)][0]
        self.assertEqual(roster_block.entries, ("<@2>",))

        with self.assertRaises(NotEnrolled):
            await self.service.leave(event.event_id, user_id=1)

    async def test_resync_is_best_effort_per_location(self):
        event = await self._create(capacity=2)
        await self.service.share_event(event.event_id, channel_id=20, actor_user_id=6)
        self.gateway.failing_channels.add(20)

        result = await self.service.join(event.event_id, user_id=1)
        self.assertEqual(result.placement, "roster")
        outcomes = await self.service.resync(event.event_id)
        self.assertEqual({o.channel_id: o.ok for o in outcomes}, {10: True, 20: False})
        self.assertIn("channel unavailable", [o for o in outcomes if not o.ok][0].error)

        stored = await self.service.get_event(event.event_id)
        self.assertTrue(stored.roster_for_user(1))

    async def test_share_duplicate_channel_is_rejected(self):
        event = await self._create()
        with self.assertRaises(AlreadySharedInChannel):
            await self.service.share_event(event.event_id, channel_id=10, actor_user_id=5)
        shared = await self.service.share_event(event.event_id, channel_id=20, actor_user_id=6)
        self.assertEqual([m.channel_id for m in shared.posted_messages], [10, 20])
        self.assertEqual(len(self.gateway.posts), 2)

    async def test_delete_stops_sync_and_removes_messages(self):
        event = await self._create()
        with self.assertRaises(NotChannelAdmin):
            await self.service.delete_event(event.event_id, actor_user_id=6)
        deleted, removed = await self.service.delete_event(event.event_id, actor_user_id=5)
        self.assertEqual(deleted.event_id, event.event_id)
        self.assertEqual(removed, 1)
        self.assertEqual(await self.service.resync(event.event_id), [])
        with self.assertRaises(EventNotFound):
            await self.service.join(event.event_id, user_id=1)

    async def test_roster_admin_requires_channel_admin(self):
        event = await self._create()
        with self.assertRaises(NotChannelAdmin):
            await self.service.add_roster(event.event_id, actor_user_id=6, name="Court 2", capacity=2)
        result = await self.service.add_roster(event.event_id, actor_user_id=999, name="Court 2", capacity=2)
        self.assertEqual(result.event.max_capacity, 3)
        result = await self.service.remove_roster(event.event_id, actor_user_id=5, roster_name="court 2")
        self.assertEqual([r.name for r in result.event.rosters], ["Court 1"])

    async def test_scheduled_event_publishes_once(self):
        event = await self._create(post_at=NOW + timedelta(hours=1))
        self.assertEqual(event.status, EventStatus.SCHEDULED)
        self.assertEqual(self.gateway.posts, [])

        early = await self.service.publish_due(now=NOW)
        self.assertEqual(early.count, 0)

        later = NOW + timedelta(hours=2)
        reports = await asyncio.gather(self.service.publish_due(now=later), self.service.publish_due(now=later))
        self.assertEqual(sum(r.count for r in reports), 1)
        self.assertEqual(self.gateway.live_messages(), 1)

        again = await self.service.publish_due(now=later)
        self.assertEqual(again.count, 0)
        stored = await self.service.get_event(event.event_id)
        self.assertEqual(stored.status, EventStatus.ACTIVE)
        self.assertIsNone(stored.post_at_utc)
        self.assertEqual(len(stored.posted_messages), 1)
        actions = [r["action"] for r in fetch_event_audit_sync(self.conn, event.event_id)]
        self.assertEqual(actions.count("published"), 1)

    async def test_failed_publish_does_not_block_other_due_events(self):
        post_at = NOW + timedelta(hours=1)
        ok_event = await self._create(post_at=post_at)
        failing = await self.service.create_event(
            channel_id=20,
            author_id=6,
            date_local="2026-03-02",
            rosters=[RosterDraft(name="Court 1", capacity=1)],
            post_at=post_at,
        )
        self.gateway.failing_post_channels.add(20)

        later = NOW + timedelta(hours=2)
        report = await self.service.publish_due(now=later)
        self.assertEqual(report.published, [ok_event.event_id])
        self.assertEqual(list(report.failed), [failing.event_id])
        self.assertIn("GatewayError", report.failed[failing.event_id])

        published = await self.service.get_event(ok_event.event_id)
        self.assertEqual(published.status, EventStatus.ACTIVE)
        held_back = await self.service.get_event(failing.event_id)
        self.assertEqual(held_back.status, EventStatus.SCHEDULED)
        self.assertEqual(held_back.posted_messages, [])
        self.assertIsNotNone(held_back.post_at_utc)

        self.gateway.failing_post_channels.clear()
        retry = await self.service.publish_due(now=later)
        self.assertEqual(retry.published, [failing.event_id])
        self.assertEqual(retry.failed, {})
        self.assertEqual([c for c, _, _ in self.gateway.posts], [10, 20])

    async def test_create_posts_without_holding_event_lock(self):
        self.gateway.locks = self.service._event_locks
        event = await self._create()
        self.assertEqual(self.gateway.locked_during_post, [set()])
        self.assertEqual(self.service._event_locks.active_keys(), set())
        self.assertEqual(len(event.posted_messages), 1)

    async def test_post_time_within_grace_posts_now(self):
        event = await self._create(post_at=NOW + timedelta(seconds=3))
        self.assertEqual(event.status, EventStatus.ACTIVE)
        self.assertIsNone(event.post_at_utc)

    async def test_joins_on_scheduled_event_are_published_with_it(self):
        event = await self._create(capacity=2, post_at=NOW + timedelta(hours=1))
        await self.service.join(event.event_id, user_id=1)
        self.assertEqual(self.gateway.updates, [])
        report = await self.service.publish_due(now=NOW + timedelta(hours=2))
        self.assertEqual(report.published, [event.event_id])
        stored = await self.service.get_event(event.event_id)
        self.assertTrue(stored.roster_for_user(1))

    async def test_recurring_event_targets_monday_two_weeks_out(self):
        event = await self.service.create_recurring_event()
        self.assertEqual(event.booking_date_local, "2026-03-09")
        self.assertEqual(event.event_type, "Padel")
        self.assertEqual(event.created_by, "scheduled_task")
        audit = fetch_event_audit_sync(self.conn, event.event_id)
        self.assertEqual(audit[0]["actor_type"], "system")

    async def test_queries_for_user(self):
        event = await self._create(capacity=1)
        await self.service.join(event.event_id, user_id=1)
        await self.service.join(event.event_id, user_id=2)
        self.assertEqual([label for _, label in await self.service.events_for_user(1)], ["confirmed (Court 1)"])
        self.assertEqual([label for _, label in await self.service.events_for_user(2)], ["on standby"])
        self.assertEqual((await self.service.next_event()).event_id, event.event_id)
        message_id = event.posted_messages[0].message_id
        self.assertEqual((await self.service.find_event_by_message(message_id)).event_id, event.event_id)

    async def test_reminders_dry_run_and_send(self):
        event = await self._create(capacity=2)
        await self.service.join(event.event_id, user_id=1)
        await self.service.join(event.event_id, user_id=2)
        await self.service.leave(event.event_id, user_id=2)

        preview = await self.service.send_reminders(dry_run=True)
        self.assertEqual(preview.target_date_local, "2026-03-02")
        self.assertEqual(len(preview.previews), 1)
        self.assertEqual(preview.previews[0]["recipients"], [1])
        self.assertIn("Sunny spells.", preview.previews[0]["text"])
        self.assertEqual(self.gateway.dms, [])

        report = await self.service.send_reminders()
        self.assertEqual(report.sent, [event.event_id])
        self.assertEqual([uid for uid, _ in self.gateway.dms], [1])

    async def test_add_to_calendar_rules(self):
        event = await self._create()
        with self.assertRaises(NotEnrolled):
            await self.service.add_to_calendar(event.event_id, user_id=1)
        await self.service.join(event.event_id, user_id=1)
        with self.assertRaises(CalendarError):
            await self.service.add_to_calendar(event.event_id, user_id=1)

    async def test_only_configurer_or_owner_can_reconfigure(self):
        with self.assertRaises(NotChannelAdmin):
            await self.service.configure_channel(channel_id=10, guild_id=1, actor_user_id=6, default_event_type="Padel")
        cfg = await self.service.configure_channel(
            channel_id=10, guild_id=1, actor_user_id=999, default_event_type="Padel", display_emoji=":tada:"
        )
        self.assertEqual(cfg.display_emoji, "tada")

    async def test_seed_profiles_keeps_existing(self):
        added = await self.service.seed_profiles(
            [
                EventProfile(name="padel", category=EventCategory.SPORT, capacity_unit="Courts", default_capacity=9),
                EventProfile(name="Football Match", category=EventCategory.SPECTATOR, capacity_unit="Tickets", default_capacity=10),
            ]
        )
        self.assertEqual(added, 1)
        names = {p.name: p.default_capacity for p in await self.service.list_profiles()}
        self.assertEqual(names, {"Football Match": 10, "Padel": 2})


class DefaultRosterTests(unittest.TestCase):
    def test_sport_profile_gets_one_roster_per_unit(self):
        tennis = EventProfile(name="Tennis", category=EventCategory.SPORT, capacity_unit="Courts", default_capacity=3)
        self.assertEqual([(d.name, d.capacity) for d in default_rosters_for_profile(tennis)], [("Court 1", 2), ("Court 2", 2), ("Court 3", 2)])

    def test_spectator_profile_gets_single_roster(self):
        match = EventProfile(name="Match", category=EventCategory.SPECTATOR, capacity_unit="Tickets", default_capacity=10)
        drafts = default_rosters_for_profile(match)
        self.assertEqual([(d.name, d.capacity) for d in drafts], [("Attendees", 10)])


if __name__ == "__main__":
    unittest.main()
