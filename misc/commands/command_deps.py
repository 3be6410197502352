from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from typing import Callable


def _default_false(*args, **kwargs) -> bool:
    return False


@dataclass(frozen=True)
class CommandDeps:
    # Core/shared
    db_lock: Any = None
    db_conn: Any = None
    send_chunked: Callable | None = None
    timezone_name: str = "Europe/Stockholm"
    default_time: str = "17:30"

    # Services
    roster_service: Any = None
    calendar: Any = None

    # Store/helper functions
    list_schema_migrations_sync: Callable | None = None
    fetch_event_audit_sync: Callable | None = None
    parse_channel_id_token: Callable[[str], int | None] | None = None


@dataclass(frozen=True)
class CommandGates:
    user_is_owner: Callable[[Any], bool] = _default_false
    in_guild_channel: Callable[[Any], bool] = _default_false
