from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any


def get_calendar_tokens_sync(conn: sqlite3.Connection, user_id: int) -> dict[str, Any] | None:
    cur = conn.cursor()
    cur.execute("SELECT tokens_json FROM calendar_tokens WHERE user_id=? LIMIT 1", (int(user_id),))
    row = cur.fetchone()
    if not row:
        return None
    try:
        data = json.loads(row[0] or "{}")
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) and data else None


def set_calendar_tokens_sync(conn: sqlite3.Connection, user_id: int, tokens: dict[str, Any]) -> None:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO calendar_tokens (user_id, tokens_json, updated_at_utc)
        VALUES (?, ?, ?)
        ON CONFLICT(user_id) DO UPDATE SET
            tokens_json=excluded.tokens_json,
            updated_at_utc=excluded.updated_at_utc
        """,
        (
            int(user_id),
            json.dumps(tokens or {}, ensure_ascii=True, sort_keys=True),
            datetime.now(timezone.utc).replace(microsecond=0).isoformat(),
        ),
    )
    conn.commit()


def delete_calendar_tokens_sync(conn: sqlite3.Connection, user_id: int) -> bool:
    cur = conn.cursor()
    cur.execute("DELETE FROM calendar_tokens WHERE user_id=?", (int(user_id),))
    conn.commit()
    return cur.rowcount > 0
