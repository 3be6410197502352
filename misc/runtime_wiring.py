from __future__ import annotations

from misc.adhoc_modules.join_panel import build_join_panel_items
from misc.commands.command_deps import CommandDeps
from misc.commands.command_deps import CommandGates
from misc.commands.commands_admin import register as register_admin
from misc.commands.commands_events import register as register_events
from misc.discord_gates import in_guild_text_channel
from misc.runtime_deps import RuntimeBootDeps
from misc.runtime_deps import RuntimeDeps
from misc.events_runtime import register_runtime_events


def wire_bot_runtime(
    bot,
    *,
    user_is_owner,
    db_lock,
    db_conn,
    send_chunked,
    roster_service,
    calendar,
    timezone_name: str,
    default_time: str,
    list_schema_migrations_sync,
    fetch_event_audit_sync,
    parse_channel_id_token,
    answer_inquiry_func,
    seed_profiles_func,
    schedule_loop_func,
    reminders_enabled: bool,
    reminder_loop_func,
    admin_enabled: bool,
    admin_server_func,
) -> None:
    command_deps = CommandDeps(
        db_lock=db_lock,
        db_conn=db_conn,
        send_chunked=send_chunked,
        timezone_name=timezone_name,
        default_time=default_time,
        roster_service=roster_service,
        calendar=calendar,
        list_schema_migrations_sync=list_schema_migrations_sync,
        fetch_event_audit_sync=fetch_event_audit_sync,
        parse_channel_id_token=parse_channel_id_token,
    )
    command_gates = CommandGates(
        user_is_owner=user_is_owner,
        in_guild_channel=in_guild_text_channel,
    )

    register_events(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    register_admin(
        bot,
        deps=command_deps,
        gates=command_gates,
    )

    register_runtime_events(
        bot,
        deps=RuntimeDeps(
            send_chunked=send_chunked,
            roster_service=roster_service,
            answer_inquiry_func=answer_inquiry_func,
        ),
        boot=RuntimeBootDeps(
            join_panel_items=build_join_panel_items(service=roster_service),
            seed_profiles_func=seed_profiles_func,
            schedule_loop_func=schedule_loop_func,
            reminders_enabled=reminders_enabled,
            reminder_loop_func=reminder_loop_func,
            admin_enabled=admin_enabled,
            admin_server_func=admin_server_func,
        ),
    )
