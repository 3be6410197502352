from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from roster.errors import StaleRecord
from roster.models import ChannelConfig
from roster.models import EventCategory
from roster.models import EventProfile
from roster.models import EventRecord
from roster.models import EventStatus


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _dumps(value: Any, fallback: str = "{}") -> str:
    try:
        return json.dumps(value, ensure_ascii=False, sort_keys=True)
    except Exception:
        return fallback


def _row_to_event(row: sqlite3.Row | tuple[Any, ...] | None) -> EventRecord | None:
    if row is None:
        return None
    document_json, revision = row[0], row[1]
    raw = json.loads(document_json or "{}")
    raw["revision"] = int(revision or 0)
    return EventRecord.from_dict(raw)


# -------------------------
# Events
# -------------------------
def get_event_sync(conn: sqlite3.Connection, event_id: str) -> EventRecord | None:
    cur = conn.cursor()
    cur.execute(
        "SELECT document_json, revision FROM events WHERE event_id = ? LIMIT 1",
        (str(event_id).strip().upper(),),
    )
    return _row_to_event(cur.fetchone())


def _write_indexes(cur: sqlite3.Cursor, event: EventRecord) -> None:
    cur.execute("DELETE FROM event_participants WHERE event_id = ?", (event.event_id,))
    rows: list[tuple[str, int, str, str | None]] = []
    for roster in event.rosters:
        for p in roster.players:
            rows.append((event.event_id, int(p.user_id), "roster", roster.roster_id))
    for p in event.standby:
        rows.append((event.event_id, int(p.user_id), "standby", None))
    if rows:
        cur.executemany(
            "INSERT INTO event_participants (event_id, user_id, placement, roster_id) VALUES (?, ?, ?, ?)",
            rows,
        )

    cur.execute("DELETE FROM event_posted_messages WHERE event_id = ?", (event.event_id,))
    msg_rows = [
        (event.event_id, int(m.channel_id), int(m.message_id), idx)
        for idx, m in enumerate(event.posted_messages)
    ]
    if msg_rows:
        cur.executemany(
            "INSERT INTO event_posted_messages (event_id, channel_id, message_id, position) VALUES (?, ?, ?, ?)",
            msg_rows,
        )


def set_event_sync(
    conn: sqlite3.Connection,
    event: EventRecord,
    *,
    expected_revision: int | None = None,
) -> EventRecord:
    """Full-document upsert. With expected_revision set, the write only lands on that revision."""
    now = _utc_now_iso()
    saved = event.clone()
    base_revision = int(expected_revision) if expected_revision is not None else int(event.revision or 0)
    saved.revision = base_revision + 1
    doc = saved.to_dict()
    status = EventStatus(saved.status).value
    cur = conn.cursor()
    try:
        if expected_revision is None:
            cur.execute(
                """
                INSERT INTO events (
                    event_id, status, post_at_utc, booking_at_utc, booking_date_local,
                    document_json, revision, created_at_utc, updated_at_utc
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(event_id) DO UPDATE SET
                    status = excluded.status,
                    post_at_utc = excluded.post_at_utc,
                    booking_at_utc = excluded.booking_at_utc,
                    booking_date_local = excluded.booking_date_local,
                    document_json = excluded.document_json,
                    revision = events.revision + 1,
                    updated_at_utc = excluded.updated_at_utc
                """,
                (
                    saved.event_id,
                    status,
                    saved.post_at_utc,
                    saved.booking_at_utc,
                    saved.booking_date_local,
                    _dumps(doc),
                    saved.revision,
                    saved.created_at_utc or now,
                    now,
                ),
            )
        else:
            cur.execute(
                """
                UPDATE events
                SET status = ?,
                    post_at_utc = ?,
                    booking_at_utc = ?,
                    booking_date_local = ?,
                    document_json = ?,
                    revision = ?,
                    updated_at_utc = ?
                WHERE event_id = ?
                  AND revision = ?
                """,
                (
                    status,
                    saved.post_at_utc,
                    saved.booking_at_utc,
                    saved.booking_date_local,
                    _dumps(doc),
                    saved.revision,
                    now,
                    saved.event_id,
                    int(expected_revision),
                ),
            )
            if cur.rowcount <= 0:
                conn.rollback()
                raise StaleRecord(
                    "Event changed underneath this write.",
                    event_id=saved.event_id,
                    expected_revision=expected_revision,
                )
        _write_indexes(cur, saved)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise

    cur.execute("SELECT revision FROM events WHERE event_id = ?", (saved.event_id,))
    row = cur.fetchone()
    if row is not None:
        saved.revision = int(row[0])
    return saved


def delete_event_sync(conn: sqlite3.Connection, event_id: str) -> bool:
    cur = conn.cursor()
    eid = str(event_id).strip().upper()
    cur.execute("DELETE FROM events WHERE event_id = ?", (eid,))
    deleted = cur.rowcount > 0
    cur.execute("DELETE FROM event_participants WHERE event_id = ?", (eid,))
    cur.execute("DELETE FROM event_posted_messages WHERE event_id = ?", (eid,))
    conn.commit()
    return deleted


def find_events_by_participant_sync(
    conn: sqlite3.Connection,
    user_id: int,
    *,
    on_or_after_utc: str,
) -> list[EventRecord]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT e.document_json, e.revision
        FROM events e
        JOIN event_participants p ON p.event_id = e.event_id
        WHERE p.user_id = ?
          AND e.booking_at_utc >= ?
        ORDER BY e.booking_at_utc ASC, e.event_id ASC
        """,
        (int(user_id), on_or_after_utc),
    )
    return [e for e in (_row_to_event(r) for r in cur.fetchall()) if e is not None]


def find_due_events_sync(
    conn: sqlite3.Connection,
    *,
    now_utc: str,
    status: EventStatus = EventStatus.SCHEDULED,
) -> list[EventRecord]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT document_json, revision
        FROM events
        WHERE status = ?
          AND post_at_utc IS NOT NULL
          AND post_at_utc <= ?
        ORDER BY post_at_utc ASC, event_id ASC
        """,
        (EventStatus(status).value, now_utc),
    )
    return [e for e in (_row_to_event(r) for r in cur.fetchall()) if e is not None]


def find_upcoming_events_sync(
    conn: sqlite3.Connection,
    *,
    on_or_after_utc: str,
    limit: int | None = None,
) -> list[EventRecord]:
    cur = conn.cursor()
    sql = """
        SELECT document_json, revision
        FROM events
        WHERE booking_at_utc >= ?
        ORDER BY booking_at_utc ASC, event_id ASC
    """
    params: tuple[Any, ...] = (on_or_after_utc,)
    if limit is not None:
        sql += " LIMIT ?"
        params = (on_or_after_utc, max(1, min(int(limit), 200)))
    cur.execute(sql, params)
    return [e for e in (_row_to_event(r) for r in cur.fetchall()) if e is not None]


def find_events_on_date_sync(conn: sqlite3.Connection, *, booking_date_local: str) -> list[EventRecord]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT document_json, revision
        FROM events
        WHERE booking_date_local = ?
        ORDER BY booking_at_utc ASC, event_id ASC
        """,
        (booking_date_local,),
    )
    return [e for e in (_row_to_event(r) for r in cur.fetchall()) if e is not None]


def find_event_by_message_sync(conn: sqlite3.Connection, *, message_id: int) -> EventRecord | None:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT e.document_json, e.revision
        FROM events e
        JOIN event_posted_messages m ON m.event_id = e.event_id
        WHERE m.message_id = ?
        LIMIT 1
        """,
        (int(message_id),),
    )
    return _row_to_event(cur.fetchone())


# -------------------------
# Channel configs
# -------------------------
def _row_to_channel_config(row: sqlite3.Row | tuple[Any, ...] | None) -> ChannelConfig | None:
    if row is None:
        return None
    return ChannelConfig(
        channel_id=int(row[0]),
        guild_id=int(row[1]) if row[1] is not None else None,
        default_event_type=str(row[2] or ""),
        reaction_emoji=str(row[3] or "hand"),
        display_emoji=str(row[4] or "scroll"),
        reminder_text=row[5],
        configured_by_user_id=int(row[6]) if row[6] is not None else None,
        configured_at_utc=row[7],
    )


def get_channel_config_sync(conn: sqlite3.Connection, channel_id: int) -> ChannelConfig | None:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT channel_id, guild_id, default_event_type, reaction_emoji, display_emoji,
               reminder_text, configured_by_user_id, configured_at_utc
        FROM channel_configs
        WHERE channel_id = ?
        LIMIT 1
        """,
        (int(channel_id),),
    )
    return _row_to_channel_config(cur.fetchone())


def upsert_channel_config_sync(conn: sqlite3.Connection, config: ChannelConfig) -> ChannelConfig:
    now = config.configured_at_utc or _utc_now_iso()
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO channel_configs (
            channel_id, guild_id, default_event_type, reaction_emoji, display_emoji,
            reminder_text, configured_by_user_id, configured_at_utc
        )
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT(channel_id) DO UPDATE SET
            guild_id = excluded.guild_id,
            default_event_type = excluded.default_event_type,
            reaction_emoji = excluded.reaction_emoji,
            display_emoji = excluded.display_emoji,
            reminder_text = excluded.reminder_text,
            configured_by_user_id = excluded.configured_by_user_id,
            configured_at_utc = excluded.configured_at_utc
        """,
        (
            int(config.channel_id),
            config.guild_id,
            config.default_event_type or "",
            (config.reaction_emoji or "hand").replace(":", ""),
            (config.display_emoji or "scroll").replace(":", ""),
            config.reminder_text,
            config.configured_by_user_id,
            now,
        ),
    )
    conn.commit()
    out = get_channel_config_sync(conn, int(config.channel_id))
    if out is None:
        raise RuntimeError(f"Channel config upsert failed for channel_id={config.channel_id}")
    return out


def is_channel_admin_sync(conn: sqlite3.Connection, *, channel_id: int, user_id: int) -> bool:
    cfg = get_channel_config_sync(conn, int(channel_id))
    return cfg is not None and cfg.configured_by_user_id == int(user_id)


# -------------------------
# Event profiles
# -------------------------
def _row_to_profile(row: sqlite3.Row | tuple[Any, ...] | None) -> EventProfile | None:
    if row is None:
        return None
    return EventProfile(
        name=str(row[0]),
        category=EventCategory(str(row[1])),
        capacity_unit=str(row[2]),
        default_capacity=int(row[3]),
        default_location=row[4],
        venue_code=row[5],
        created_by_user_id=int(row[6]) if row[6] is not None else None,
        created_at_utc=row[7],
    )


_PROFILE_COLUMNS = """
    name, category, capacity_unit, default_capacity, default_location,
    venue_code, created_by_user_id, created_at_utc
"""


def get_event_profile_sync(conn: sqlite3.Connection, name: str) -> EventProfile | None:
    cur = conn.cursor()
    cur.execute(
        f"SELECT {_PROFILE_COLUMNS} FROM event_profiles WHERE name = ? COLLATE NOCASE LIMIT 1",
        ((name or "").strip(),),
    )
    return _row_to_profile(cur.fetchone())


def list_event_profiles_sync(conn: sqlite3.Connection) -> list[EventProfile]:
    cur = conn.cursor()
    cur.execute(f"SELECT {_PROFILE_COLUMNS} FROM event_profiles ORDER BY name COLLATE NOCASE ASC")
    return [p for p in (_row_to_profile(r) for r in cur.fetchall()) if p is not None]


def upsert_event_profile_sync(
    conn: sqlite3.Connection,
    profile: EventProfile,
    *,
    overwrite: bool = True,
) -> EventProfile:
    cur = conn.cursor()
    conflict = """
        ON CONFLICT(name) DO UPDATE SET
            category = excluded.category,
            capacity_unit = excluded.capacity_unit,
            default_capacity = excluded.default_capacity,
            default_location = excluded.default_location,
            venue_code = excluded.venue_code,
            created_by_user_id = excluded.created_by_user_id,
            created_at_utc = excluded.created_at_utc
    """ if overwrite else "ON CONFLICT(name) DO NOTHING"
    cur.execute(
        f"""
        INSERT INTO event_profiles ({_PROFILE_COLUMNS})
        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        {conflict}
        """,
        (
            profile.name.strip(),
            EventCategory(profile.category).value,
            profile.capacity_unit.strip(),
            int(profile.default_capacity),
            profile.default_location,
            profile.venue_code,
            profile.created_by_user_id,
            profile.created_at_utc or _utc_now_iso(),
        ),
    )
    conn.commit()
    out = get_event_profile_sync(conn, profile.name)
    if out is None:
        raise RuntimeError(f"Event profile upsert failed for name={profile.name}")
    return out


# -------------------------
# Audit log
# -------------------------
def insert_event_audit_sync(
    conn: sqlite3.Connection,
    *,
    event_id: str,
    action: str,
    actor_type: str,
    actor_user_id: int | None,
    revision: int | None = None,
    payload: dict[str, Any] | None = None,
) -> int:
    cur = conn.cursor()
    cur.execute(
        """
        INSERT INTO event_audit_log (event_id, action, actor_type, actor_user_id, revision, payload_json, created_at_utc)
        VALUES (?, ?, ?, ?, ?, ?, ?)
        """,
        (
            str(event_id),
            str(action),
            str(actor_type),
            int(actor_user_id) if actor_user_id is not None else None,
            int(revision) if revision is not None else None,
            _dumps(payload or {}),
            _utc_now_iso(),
        ),
    )
    conn.commit()
    return int(cur.lastrowid)


def fetch_event_audit_sync(conn: sqlite3.Connection, event_id: str, *, limit: int = 50) -> list[dict[str, Any]]:
    cur = conn.cursor()
    cur.execute(
        """
        SELECT id, event_id, action, actor_type, actor_user_id, revision, payload_json, created_at_utc
        FROM event_audit_log
        WHERE event_id = ?
        ORDER BY id ASC
        LIMIT ?
        """,
        (str(event_id), max(1, min(int(limit), 500))),
    )
    out: list[dict[str, Any]] = []
    for row in cur.fetchall():
        try:
            payload = json.loads(row[6] or "{}")
        except Exception:
            payload = {}
        out.append(
            {
                "id": int(row[0]),
                "event_id": str(row[1]),
                "action": str(row[2]),
                "actor_type": str(row[3]),
                "actor_user_id": int(row[4]) if row[4] is not None else None,
                "revision": int(row[5]) if row[5] is not None else None,
                "payload": payload,
                "created_at_utc": str(row[7]),
            }
        )
    return out
