from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS channel_configs (
            channel_id INTEGER PRIMARY KEY,
            guild_id INTEGER,
            default_event_type TEXT NOT NULL DEFAULT '',
            reaction_emoji TEXT NOT NULL DEFAULT 'hand',
            display_emoji TEXT NOT NULL DEFAULT 'scroll',
            reminder_text TEXT,
            configured_by_user_id INTEGER,
            configured_at_utc TEXT
        )
        """
    )
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS event_profiles (
            name TEXT PRIMARY KEY COLLATE NOCASE,
            category TEXT NOT NULL,
            capacity_unit TEXT NOT NULL,
            default_capacity INTEGER NOT NULL,
            default_location TEXT,
            venue_code TEXT,
            created_by_user_id INTEGER,
            created_at_utc TEXT
        )
        """
    )
    conn.commit()
