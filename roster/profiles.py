from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml

from roster.models import EventCategory
from roster.models import EventProfile


def _profile_from_mapping(raw: dict[str, Any]) -> EventProfile | None:
    name = str(raw.get("name") or "").strip()
    unit = str(raw.get("capacity_unit") or "").strip()
    if not name or not unit:
        return None
    try:
        category = EventCategory(str(raw.get("category") or "").strip().upper())
        capacity = int(raw.get("default_capacity") or 0)
    except (TypeError, ValueError):
        return None
    if capacity < 1:
        return None
    return EventProfile(
        name=name,
        category=category,
        capacity_unit=unit,
        default_capacity=capacity,
        default_location=(str(raw.get("default_location") or "").strip() or None),
        venue_code=(str(raw.get("venue_code") or "").strip() or None),
    )


def load_profile_seeds(path: str | Path | None) -> tuple[list[EventProfile], str | None]:
    """
    Returns (profiles, warning_message). warning_message is None on clean load.
    """
    if not path:
        return ([], "Profile seed path missing; no profiles seeded.")

    p = Path(path)
    if not p.exists():
        return ([], f"Profile seed file not found at {p}; no profiles seeded.")

    try:
        payload = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        return ([], f"Failed to read profile seeds from {p}: {exc}")

    entries = payload.get("profiles") if isinstance(payload, dict) else None
    if not isinstance(entries, list):
        return ([], f"Invalid profile seed format in {p}: expected a top-level `profiles` list.")

    profiles: list[EventProfile] = []
    skipped = 0
    for entry in entries:
        profile = _profile_from_mapping(entry) if isinstance(entry, dict) else None
        if profile is None:
            skipped += 1
            continue
        profiles.append(profile)
    warning = f"Skipped {skipped} malformed profile seed(s) in {p}." if skipped else None
    return (profiles, warning)
