from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS events (
            event_id TEXT PRIMARY KEY,
            status TEXT NOT NULL,
            post_at_utc TEXT,
            booking_at_utc TEXT NOT NULL,
            booking_date_local TEXT NOT NULL,
            document_json TEXT NOT NULL,
            revision INTEGER NOT NULL DEFAULT 0,
            created_at_utc TEXT NOT NULL,
            updated_at_utc TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_events_status_post_at ON events(status, post_at_utc)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_events_booking_at ON events(booking_at_utc)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_events_booking_date_local ON events(booking_date_local)")

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS event_participants (
            event_id TEXT NOT NULL,
            user_id INTEGER NOT NULL,
            placement TEXT NOT NULL,
            roster_id TEXT,
            PRIMARY KEY (event_id, user_id)
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_event_participants_user ON event_participants(user_id)")

    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS event_posted_messages (
            event_id TEXT NOT NULL,
            channel_id INTEGER NOT NULL,
            message_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            PRIMARY KEY (event_id, channel_id)
        )
        """
    )
    cur.execute(
        "CREATE INDEX IF NOT EXISTS idx_event_posted_messages_message ON event_posted_messages(channel_id, message_id)"
    )
    conn.commit()
