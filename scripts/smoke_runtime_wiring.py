from __future__ import annotations

import asyncio
import importlib
import sqlite3
from pathlib import Path


async def _noop_async(*args, **kwargs):
    return None


async def _seed_profiles():
    return 0


class _DummyGateway:
    async def post(self, channel_id, doc):
        return 1

    async def update(self, channel_id, message_id, doc, *, text=None):
        return None

    async def delete(self, channel_id, message_id):
        return None

    async def notify_user(self, user_id, text):
        return None


def _try_import_or_skip(module_name: str, pip_name: str | None = None) -> bool:
    try:
        importlib.import_module(module_name)
        return True
    except ModuleNotFoundError:
        install_name = pip_name or module_name
        print(
            f"Smoke wiring check skipped: missing dependency '{module_name}'. "
            f"Install requirements and retry (e.g. `pip install {install_name}` "
            f"or `pip install -e .`)."
        )
        return False


def _main() -> int:
    if not _try_import_or_skip("discord", "discord.py"):
        return 0

    import discord
    from discord.ext import commands
    from db.migrate import apply_sqlite_migrations
    from db.migrate import list_schema_migrations_sync
    from misc.runtime_wiring import wire_bot_runtime
    from retrieval.inquiry import answer_inquiry
    from roster.service import RosterService
    from roster.store import fetch_event_audit_sync

    intents = discord.Intents.none()
    bot = commands.Bot(command_prefix="!", intents=intents)
    db_lock = asyncio.Lock()
    db_conn = sqlite3.connect(":memory:")
    apply_sqlite_migrations(db_conn, Path(__file__).resolve().parents[1] / "migrations")

    roster_service = RosterService(
        db_lock=db_lock,
        db_conn=db_conn,
        gateway=_DummyGateway(),
        timezone_name="Europe/Stockholm",
        default_time="19:00",
        primary_channel_id=0,
        owner_user_ids={123456789012345678},
    )

    wire_bot_runtime(
        bot,
        user_is_owner=lambda user: True,
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=_noop_async,
        roster_service=roster_service,
        calendar=None,
        timezone_name="Europe/Stockholm",
        default_time="19:00",
        list_schema_migrations_sync=list_schema_migrations_sync,
        fetch_event_audit_sync=fetch_event_audit_sync,
        parse_channel_id_token=lambda token: None,
        answer_inquiry_func=answer_inquiry,
        seed_profiles_func=_seed_profiles,
        schedule_loop_func=_noop_async,
        reminders_enabled=False,
        reminder_loop_func=_noop_async,
        admin_enabled=False,
        admin_server_func=_noop_async,
    )

    expected_commands = {
        "event.create",
        "event.recurring",
        "event.share",
        "event.delete",
        "event.join",
        "event.leave",
        "event.addroster",
        "event.removeroster",
        "event.mine",
        "event.next",
        "event.list",
        "event.info",
        "event.audit",
        "channel.configure",
        "profile.create",
        "profile.list",
        "gcal.login",
        "dbmigrations",
    }
    existing_commands = set(bot.all_commands.keys())
    missing = sorted(expected_commands - existing_commands)
    if missing:
        raise RuntimeError(f"Missing expected commands: {missing}")

    if "on_ready" not in bot.extra_events or "on_message" not in bot.extra_events:
        raise RuntimeError("Runtime events were not registered")

    print("Smoke wiring check passed.")
    return 0


if __name__ == "__main__":
    raise SystemExit(_main())
