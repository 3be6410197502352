DEFAULT_DB_PATH = "roster_bot.db"
DEFAULT_TIMEZONE = "Europe/Stockholm"
DEFAULT_EVENT_TIME = "17:30"
DEFAULT_SCHEDULE_TICK_SECONDS = 30
DEFAULT_REMINDER_TIME_LOCAL = "09:00"
DEFAULT_PROFILES_PATH = "config/event_profiles.yml"
DEFAULT_ADMIN_HOST = "0.0.0.0"
DEFAULT_ADMIN_PORT = 8080
DEFAULT_OPENAI_MODEL = "gpt-5.1"

# Open-Meteo point for reminder forecasts (Stockholm).
DEFAULT_FORECAST_LATITUDE = 59.3293
DEFAULT_FORECAST_LONGITUDE = 18.0686

DISCORD_MESSAGE_LIMIT = 2000
