from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo
from zoneinfo import ZoneInfoNotFoundError


@dataclass(frozen=True, slots=True)
class BookingFields:
    booking_date: str
    booking_time: str
    booking_at_utc: str
    booking_date_local: str


def tzinfo_for(timezone_name: str) -> ZoneInfo:
    try:
        return ZoneInfo((timezone_name or "UTC").strip() or "UTC")
    except ZoneInfoNotFoundError:
        return ZoneInfo("UTC")


def utc_iso(dt: datetime | None = None) -> str:
    value = dt or datetime.now(timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).replace(microsecond=0).isoformat()


def parse_utc(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_hhmm(value: str) -> tuple[int, int]:
    v = (value or "").strip()
    m = re.fullmatch(r"([01]?\d|2[0-3]):([0-5]\d)", v)
    if not m:
        raise ValueError(f"Invalid HH:MM time: {value}")
    return int(m.group(1)), int(m.group(2))


def parse_local_date(value: str) -> date:
    v = (value or "").strip()
    if not re.fullmatch(r"\d{4}-\d{2}-\d{2}", v):
        raise ValueError(f"Invalid date (expected YYYY-MM-DD): {value}")
    return datetime.strptime(v, "%Y-%m-%d").date()


def parse_local_datetime(value: str, timezone_name: str) -> datetime:
    """`YYYY-MM-DD HH:MM` (or with a `T`) in the events timezone, returned in UTC."""
    v = (value or "").strip().replace("T", " ")
    parts = v.split()
    if len(parts) != 2:
        raise ValueError(f"Invalid date/time (expected YYYY-MM-DD HH:MM): {value}")
    d = parse_local_date(parts[0])
    hh, mm = parse_hhmm(parts[1])
    local = datetime(d.year, d.month, d.day, hh, mm, tzinfo=tzinfo_for(timezone_name))
    return local.astimezone(timezone.utc)


def ordinal(day: int) -> str:
    if 11 <= day % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def display_date(d: date) -> str:
    return f"{d.strftime('%A')}, {d.strftime('%B')} {ordinal(d.day)}"


def booking_fields(d: date, time_local: str, timezone_name: str) -> BookingFields:
    hh, mm = parse_hhmm(time_local)
    local = datetime.combine(d, time(hh, mm), tzinfo=tzinfo_for(timezone_name))
    return BookingFields(
        booking_date=display_date(d),
        booking_time=f"{hh:02d}:{mm:02d}",
        booking_at_utc=utc_iso(local),
        booking_date_local=d.isoformat(),
    )


def local_today(timezone_name: str, now: datetime | None = None) -> date:
    value = now or datetime.now(timezone.utc)
    return value.astimezone(tzinfo_for(timezone_name)).date()


def local_day_start_utc(d: date, timezone_name: str) -> str:
    return utc_iso(datetime.combine(d, time(0, 0), tzinfo=tzinfo_for(timezone_name)))


def monday_weeks_ahead(today: date, weeks: int = 2) -> date:
    this_monday = today - timedelta(days=today.weekday())
    return this_monday + timedelta(weeks=int(weeks))
