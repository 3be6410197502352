from __future__ import annotations

import re
from datetime import date, timedelta


NEXT_EVENT_RE = re.compile(r"(next event|next match|next game|upcoming)", re.I)
STATUS_RE = re.compile(r"(my status|am i in|am i playing)", re.I)
SPOTS_RE = re.compile(r"(spots left|open spots|how many spots)", re.I)

WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
MONTHS = {
    name: i + 1
    for i, names in enumerate(
        [
            ("january", "jan"),
            ("february", "feb"),
            ("march", "mar"),
            ("april", "apr"),
            ("may",),
            ("june", "jun"),
            ("july", "jul"),
            ("august", "aug"),
            ("september", "sep", "sept"),
            ("october", "oct"),
            ("november", "nov"),
            ("december", "dec"),
        ]
    )
    for name in names
}
_MONTH_ALT = "|".join(sorted(MONTHS, key=len, reverse=True))
ISO_DATE_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")
MONTH_DAY_RE = re.compile(rf"\b({_MONTH_ALT})\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?\b", re.I)
DAY_MONTH_RE = re.compile(rf"\b(\d{{1,2}})(?:st|nd|rd|th)?\s+(?:of\s+)?({_MONTH_ALT})\b", re.I)
WEEKDAY_RE = re.compile(rf"\b({'|'.join(WEEKDAYS)})\b", re.I)


def classify_inquiry(text: str) -> str:
    t = text or ""
    if STATUS_RE.search(t):
        return "status"
    if SPOTS_RE.search(t):
        return "spots"
    if NEXT_EVENT_RE.search(t):
        return "next"
    return "help"


def _month_day(month: int, day: int, today: date) -> date | None:
    for year in (today.year, today.year + 1):
        try:
            candidate = date(year, month, day)
        except ValueError:
            return None
        if candidate >= today:
            return candidate
    return None


def extract_inquiry_date(text: str, *, today: date) -> date | None:
    """First recognizable date in free text, resolved relative to `today` (never in the past except ISO)."""
    t = (text or "").strip()
    if not t:
        return None

    m = ISO_DATE_RE.search(t)
    if m:
        try:
            return date.fromisoformat(m.group(1))
        except ValueError:
            return None

    lowered = t.lower()
    if re.search(r"\btomorrow\b", lowered):
        return today + timedelta(days=1)
    if re.search(r"\btoday\b|\btonight\b", lowered):
        return today

    m = MONTH_DAY_RE.search(t)
    if m:
        return _month_day(MONTHS[m.group(1).lower()], int(m.group(2)), today)
    m = DAY_MONTH_RE.search(t)
    if m:
        return _month_day(MONTHS[m.group(2).lower()], int(m.group(1)), today)

    m = WEEKDAY_RE.search(t)
    if m:
        target = WEEKDAYS.index(m.group(1).lower())
        return today + timedelta(days=(target - today.weekday()) % 7)
    return None
