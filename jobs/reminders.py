from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

from roster.dates import parse_hhmm
from roster.dates import tzinfo_for


def seconds_until_next_local(time_local: str, timezone_name: str, now: datetime | None = None) -> float:
    hh, mm = parse_hhmm(time_local)
    tz = tzinfo_for(timezone_name)
    local_now = (now or datetime.now(timezone.utc)).astimezone(tz)
    target = local_now.replace(hour=hh, minute=mm, second=0, microsecond=0)
    if target <= local_now:
        target = target + timedelta(days=1)
    return max(1.0, (target.astimezone(timezone.utc) - local_now.astimezone(timezone.utc)).total_seconds())


async def reminder_loop(
    *,
    roster_service,
    time_local: str = "09:00",
    dry_run: bool = False,
) -> None:
    while True:
        delay = seconds_until_next_local(time_local, roster_service.timezone_name)
        print(f"[Reminders] next run in {int(delay)}s (at {time_local} {roster_service.timezone_name})")
        await asyncio.sleep(delay)
        try:
            report = await roster_service.send_reminders(dry_run=dry_run)
            print(
                f"[Reminders] action=daily result=ok date={report.target_date_local} "
                f"sent={len(report.sent)} skipped={len(report.skipped)}"
            )
        except Exception as e:
            print(f"[Reminders] loop error: {e}")
