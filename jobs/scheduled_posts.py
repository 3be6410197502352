from __future__ import annotations

import asyncio


async def scheduled_post_loop(
    *,
    roster_service,
    interval_seconds: int = 30,
) -> None:
    while True:
        try:
            await roster_service.publish_due()
        except Exception as e:
            print(f"[Schedule] loop error: {e}")
        await asyncio.sleep(max(5, int(interval_seconds)))
