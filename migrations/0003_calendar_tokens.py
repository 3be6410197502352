from __future__ import annotations

import sqlite3


def upgrade(conn: sqlite3.Connection) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        CREATE TABLE IF NOT EXISTS calendar_tokens (
            user_id INTEGER PRIMARY KEY,
            tokens_json TEXT NOT NULL DEFAULT '{}',
            updated_at_utc TEXT NOT NULL
        )
        """
    )
    conn.commit()
