from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable


@dataclass(frozen=True)
class RuntimeDeps:
    # core
    send_chunked: Callable
    roster_service: Any

    # inquiry
    answer_inquiry_func: Callable


@dataclass(frozen=True)
class RuntimeBootDeps:
    join_panel_items: tuple
    seed_profiles_func: Callable
    schedule_loop_func: Callable
    reminders_enabled: bool
    reminder_loop_func: Callable
    admin_enabled: bool
    admin_server_func: Callable
