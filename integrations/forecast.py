from __future__ import annotations

from datetime import date, datetime, timezone

import httpx

from roster.dates import local_today


OPEN_METEO_URL = "https://api.open-meteo.com/v1/forecast"
MAX_DAYS_AHEAD = 14

TOO_DISTANT = "The date is too distant for a reliable meteorological report."
NO_DETAIL = "I find myself unable to retrieve a detailed weather forecast for this date."
UNAVAILABLE = "My sincerest apologies, I am unable to consult the almanac at this present time."

WEATHER_PHRASES: dict[int, str] = {
    0: "perfectly clear skies",
    1: "mainly clear skies",
    2: "a pleasant smattering of clouds",
    3: "a mostly clouded canopy",
    45: "the possibility of fog",
    48: "depositing rime fog",
    51: "a light drizzle",
    53: "a moderate drizzle",
    55: "a dense drizzle",
    56: "light, freezing drizzle",
    57: "dense, freezing drizzle",
    61: "a slight prospect of rain",
    63: "a moderate prospect of rain",
    65: "a heavy prospect of rain",
    66: "light, freezing rain",
    67: "heavy, freezing rain",
    71: "a light flurry of snow",
    73: "a moderate flurry of snow",
    75: "a heavy flurry of snow",
    77: "snow grains",
    80: "slight rain showers",
    81: "moderate rain showers",
    82: "violent rain showers",
    85: "slight snow showers",
    86: "heavy snow showers",
    95: "the dramatic possibility of a thunderstorm",
    96: "a thunderstorm with slight hail",
    99: "a thunderstorm with heavy hail",
}
UNKNOWN_PHRASE = "somewhat uncertain conditions"


def describe_weather_code(code) -> str:
    try:
        return WEATHER_PHRASES.get(int(code), UNKNOWN_PHRASE)
    except (TypeError, ValueError):
        return UNKNOWN_PHRASE


def format_forecast(payload: dict) -> str:
    daily = (payload or {}).get("daily") or {}
    codes = daily.get("weathercode") or []
    highs = daily.get("temperature_2m_max") or []
    lows = daily.get("temperature_2m_min") or []
    if not codes or not highs or not lows:
        return NO_DETAIL
    try:
        high = round(float(highs[0]))
        low = round(float(lows[0]))
    except (TypeError, ValueError):
        return NO_DETAIL
    return (
        f"The forecast anticipates {describe_weather_code(codes[0])}, with temperatures ranging "
        f"from a low of {low}°C to a high of {high}°C."
    )


class ForecastService:
    """Day forecast sentence for reminders. Every failure becomes a fallback sentence."""

    def __init__(
        self,
        *,
        latitude: float,
        longitude: float,
        timezone_name: str,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.latitude = float(latitude)
        self.longitude = float(longitude)
        self.timezone_name = timezone_name
        self._http = http_client
        self.timeout_seconds = float(timeout_seconds)

    async def _fetch(self, target: date) -> dict:
        params = {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "daily": "weathercode,temperature_2m_max,temperature_2m_min",
            "timezone": self.timezone_name,
            "start_date": target.isoformat(),
            "end_date": target.isoformat(),
        }
        if self._http is not None:
            resp = await self._http.get(OPEN_METEO_URL, params=params)
            resp.raise_for_status()
            return resp.json()
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as http:
            resp = await http.get(OPEN_METEO_URL, params=params)
            resp.raise_for_status()
            return resp.json()

    async def forecast(self, target: date, *, now: datetime | None = None) -> str:
        today = local_today(self.timezone_name, now or datetime.now(timezone.utc))
        days_out = (target - today).days
        if days_out < 0 or days_out > MAX_DAYS_AHEAD:
            print(f"[Forecast] action=fetch result=skipped date={target.isoformat()} days_out={days_out}")
            return TOO_DISTANT
        try:
            payload = await self._fetch(target)
        except (httpx.HTTPError, ValueError) as e:
            print(f"[Forecast] action=fetch result=error date={target.isoformat()} error={str(e)[:180]}")
            return UNAVAILABLE
        text = format_forecast(payload)
        print(f"[Forecast] action=fetch result={'ok' if text != NO_DETAIL else 'incomplete'} date={target.isoformat()}")
        return text
