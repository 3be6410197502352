from __future__ import annotations

import sqlite3


def _has_table(conn: sqlite3.Connection, table: str) -> bool:
    cur = conn.cursor()
    cur.execute("SELECT 1 FROM sqlite_master WHERE type='table' AND name=? LIMIT 1", (table,))
    return cur.fetchone() is not None


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS event_audit_log (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            event_id TEXT NOT NULL,
            action TEXT NOT NULL,
            actor_type TEXT NOT NULL,
            actor_user_id INTEGER,
            revision INTEGER,
            payload_json TEXT NOT NULL DEFAULT '{}',
            created_at_utc TEXT NOT NULL
        )
        """
    )
    cur.execute("CREATE INDEX IF NOT EXISTS idx_event_audit_event_id ON event_audit_log(event_id)")
    cur.execute("CREATE INDEX IF NOT EXISTS idx_event_audit_created_at ON event_audit_log(created_at_utc)")

    # Events written before the audit table existed get a synthetic "created" row.
    if _has_table(conn, "events"):
        cur.execute(
            """
            INSERT INTO event_audit_log (event_id, action, actor_type, actor_user_id, revision, payload_json, created_at_utc)
            SELECT e.event_id, 'created', 'system', NULL, e.revision, '{"backfill": true}', e.created_at_utc
            FROM events e
            WHERE NOT EXISTS (SELECT 1 FROM event_audit_log a WHERE a.event_id = e.event_id)
            """
        )
    conn.commit()
