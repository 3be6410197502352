import os
import re
import sqlite3
import asyncio
import discord
from discord.ext import commands
from openai import OpenAI
from config.defaults import DEFAULT_ADMIN_HOST
from config.defaults import DEFAULT_ADMIN_PORT
from config.defaults import DEFAULT_DB_PATH
from config.defaults import DEFAULT_EVENT_TIME
from config.defaults import DEFAULT_FORECAST_LATITUDE
from config.defaults import DEFAULT_FORECAST_LONGITUDE
from config.defaults import DEFAULT_OPENAI_MODEL
from config.defaults import DEFAULT_PROFILES_PATH
from config.defaults import DEFAULT_REMINDER_TIME_LOCAL
from config.defaults import DEFAULT_SCHEDULE_TICK_SECONDS
from config.defaults import DEFAULT_TIMEZONE
from config.defaults import DISCORD_MESSAGE_LIMIT
from db.migrate import apply_sqlite_migrations
from db.migrate import list_schema_migrations_sync
from integrations.calendar import GoogleCalendarService
from integrations.forecast import ForecastService
from jobs.reminders import reminder_loop as reminder_loop_service
from jobs.scheduled_posts import scheduled_post_loop as scheduled_post_loop_service
from misc.discord_gateway import DiscordGateway
from misc.runtime_wiring import wire_bot_runtime
from retrieval.inquiry import answer_inquiry
from roster.intro_drafter import IntroDrafter
from roster.profiles import load_profile_seeds
from roster.service import RosterService
from roster.store import fetch_event_audit_sync
from web.admin_api import build_admin_app
from web.admin_api import serve_admin_app

# =========================
# ENV
# =========================
DISCORD_TOKEN = os.getenv("DISCORD_TOKEN")
if not DISCORD_TOKEN:
    raise RuntimeError("Missing DISCORD_TOKEN env var")


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)).strip())
    except ValueError:
        print(f"[CFG] invalid {name}; falling back to {default}")
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)).strip())
    except ValueError:
        print(f"[CFG] invalid {name}; falling back to {default}")
        return default


def parse_id_set(raw: str | None) -> set[int]:
    if not raw:
        return set()
    out: set[int] = set()
    for tok in re.split(r"[\s,;]+", raw.strip()):
        if re.fullmatch(r"\d{8,22}", tok or ""):
            out.add(int(tok))
    return out


DB_PATH = os.getenv("ROSTER_DB_PATH", DEFAULT_DB_PATH)
TIMEZONE_NAME = os.getenv("ROSTER_TIMEZONE", DEFAULT_TIMEZONE).strip() or DEFAULT_TIMEZONE
DEFAULT_TIME = os.getenv("ROSTER_DEFAULT_TIME", DEFAULT_EVENT_TIME).strip() or DEFAULT_EVENT_TIME
SCHEDULE_TICK_SECONDS = _env_int("ROSTER_SCHEDULE_TICK_SECONDS", DEFAULT_SCHEDULE_TICK_SECONDS)
REMINDERS_ENABLED = _env_flag("ROSTER_REMINDERS_ENABLED")
REMINDER_TIME_LOCAL = os.getenv("ROSTER_REMINDER_TIME_LOCAL", DEFAULT_REMINDER_TIME_LOCAL).strip()
DRY_RUN = _env_flag("ROSTER_DRY_RUN")
PRIMARY_CHANNEL_ID = _env_int("ROSTER_PRIMARY_CHANNEL_ID", 0)
PROFILES_PATH = os.getenv("ROSTER_PROFILES_PATH", DEFAULT_PROFILES_PATH)
OWNER_USER_IDS = parse_id_set(os.getenv("ROSTER_OWNER_USER_IDS"))

ADMIN_HOST = os.getenv("ROSTER_ADMIN_HOST", DEFAULT_ADMIN_HOST).strip() or DEFAULT_ADMIN_HOST
ADMIN_PORT = _env_int("ROSTER_ADMIN_PORT", DEFAULT_ADMIN_PORT)
CRON_SECRET_TOKEN = os.getenv("CRON_SECRET_TOKEN", "").strip()

GOOGLE_CLIENT_ID = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_REDIRECT_URI = os.getenv("GOOGLE_REDIRECT_URI", "")

FORECAST_LATITUDE = _env_float("FORECAST_LATITUDE", DEFAULT_FORECAST_LATITUDE)
FORECAST_LONGITUDE = _env_float("FORECAST_LONGITUDE", DEFAULT_FORECAST_LONGITUDE)

OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
OPENAI_MODEL = os.getenv("OPENAI_MODEL", DEFAULT_OPENAI_MODEL)
INTRO_DRAFTING = _env_flag("ROSTER_INTRO_DRAFTING")
if INTRO_DRAFTING and not OPENAI_API_KEY:
    print("[CFG] ROSTER_INTRO_DRAFTING=1 but OPENAI_API_KEY is missing; intro drafting disabled")
    INTRO_DRAFTING = False

print(
    f"[CFG] tz={TIMEZONE_NAME} default_time={DEFAULT_TIME} tick={SCHEDULE_TICK_SECONDS}s "
    f"reminders={REMINDERS_ENABLED}@{REMINDER_TIME_LOCAL} dry_run={DRY_RUN} "
    f"primary_channel={PRIMARY_CHANNEL_ID or '(none)'} admin={'on' if CRON_SECRET_TOKEN else 'tasks-disabled'} "
    f"intro_drafting={INTRO_DRAFTING}"
)


# =========================
# DISCORD HELPERS
# =========================
def chunk_text(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> list[str]:
    text = text or ""
    if len(text) <= limit:
        return [text]

    chunks = []
    remaining = text
    while len(remaining) > limit:
        # Prefer splitting on paragraph, then newline, then space
        split_at = remaining.rfind("\n\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind("\n", 0, limit)
        if split_at == -1:
            split_at = remaining.rfind(" ", 0, limit)
        if split_at == -1:
            split_at = limit

        chunk = remaining[:split_at].strip()
        if chunk:
            chunks.append(chunk)
        remaining = remaining[split_at:].strip()

    if remaining:
        chunks.append(remaining)
    return chunks


async def send_chunked(channel: discord.abc.Messageable, text: str) -> None:
    for part in chunk_text(text, DISCORD_MESSAGE_LIMIT):
        await channel.send(part)


def user_is_owner(user: discord.abc.User) -> bool:
    uid = int(getattr(user, "id", 0) or 0)
    return bool(uid and uid in OWNER_USER_IDS)


def _parse_channel_id_token(token: str) -> int | None:
    token = (token or "").strip()
    if not token:
        return None
    # Channel mention: <#1234567890>
    m = re.match(r"^<#!?(\d{8,20})>$", token)
    if m:
        return int(m.group(1))
    m2 = re.match(r"^(\d{8,20})$", token)
    if m2:
        return int(m2.group(1))
    return None


# =========================
# SQLITE
# =========================
def init_db(db_path: str) -> sqlite3.Connection:
    # check_same_thread=False because discord.py event loop + to_thread usage
    conn = sqlite3.connect(db_path, check_same_thread=False)
    cur = conn.cursor()
    cur.execute("PRAGMA journal_mode=WAL;")
    cur.execute("PRAGMA synchronous=NORMAL;")
    cur.execute("PRAGMA foreign_keys=ON;")
    repo_root = os.path.dirname(os.path.abspath(__file__))
    apply_sqlite_migrations(conn, os.path.join(repo_root, "migrations"))
    conn.commit()
    return conn


db_conn = init_db(DB_PATH)
print(f"[DB] Using DB_PATH={DB_PATH}")
db_lock = asyncio.Lock()


# =========================
# BOT + SERVICES
# =========================
intents = discord.Intents.default()
intents.message_content = True

bot = commands.Bot(command_prefix="!", intents=intents)

gateway = DiscordGateway(bot=bot, dry_run=DRY_RUN)
calendar = GoogleCalendarService(
    client_id=GOOGLE_CLIENT_ID,
    client_secret=GOOGLE_CLIENT_SECRET,
    redirect_uri=GOOGLE_REDIRECT_URI,
    db_lock=db_lock,
    db_conn=db_conn,
)
forecast = ForecastService(
    latitude=FORECAST_LATITUDE,
    longitude=FORECAST_LONGITUDE,
    timezone_name=TIMEZONE_NAME,
)
intro_drafter = IntroDrafter(
    client=OpenAI(api_key=OPENAI_API_KEY) if INTRO_DRAFTING else None,
    openai_model=OPENAI_MODEL,
    enabled=INTRO_DRAFTING,
)
roster_service = RosterService(
    db_lock=db_lock,
    db_conn=db_conn,
    gateway=gateway,
    calendar=calendar if calendar.enabled else None,
    forecast=forecast,
    intro_drafter=intro_drafter,
    timezone_name=TIMEZONE_NAME,
    default_time=DEFAULT_TIME,
    primary_channel_id=PRIMARY_CHANNEL_ID,
    owner_user_ids=OWNER_USER_IDS,
)
admin_app = build_admin_app(
    roster_service=roster_service,
    cron_secret_token=CRON_SECRET_TOKEN,
    calendar=calendar if calendar.enabled else None,
)


async def seed_profiles() -> int:
    profiles, warning = load_profile_seeds(PROFILES_PATH)
    if warning:
        print(f"[CFG] {warning}")
    return await roster_service.seed_profiles(profiles)


async def scheduled_post_loop() -> None:
    return await scheduled_post_loop_service(
        roster_service=roster_service,
        interval_seconds=SCHEDULE_TICK_SECONDS,
    )


async def reminder_loop() -> None:
    return await reminder_loop_service(
        roster_service=roster_service,
        time_local=REMINDER_TIME_LOCAL,
        dry_run=DRY_RUN,
    )


async def admin_server() -> None:
    return await serve_admin_app(admin_app, host=ADMIN_HOST, port=ADMIN_PORT)


wire_bot_runtime(
    bot,
    user_is_owner=user_is_owner,
    db_lock=db_lock,
    db_conn=db_conn,
    send_chunked=send_chunked,
    roster_service=roster_service,
    calendar=calendar,
    timezone_name=TIMEZONE_NAME,
    default_time=DEFAULT_TIME,
    list_schema_migrations_sync=list_schema_migrations_sync,
    fetch_event_audit_sync=fetch_event_audit_sync,
    parse_channel_id_token=_parse_channel_id_token,
    answer_inquiry_func=answer_inquiry,
    seed_profiles_func=seed_profiles,
    schedule_loop_func=scheduled_post_loop,
    reminders_enabled=REMINDERS_ENABLED,
    reminder_loop_func=reminder_loop,
    admin_enabled=ADMIN_PORT > 0,
    admin_server_func=admin_server,
)


bot.run(DISCORD_TOKEN)
