"""Weather lookup provider (OpenWeather current conditions)."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional

import httpx

from app.exceptions import ConfigurationMissing, ProviderError
from app.jobs.models import WeatherData

logger = logging.getLogger(__name__)


class WeatherProvider(ABC):
    @abstractmethod
    async def fetch(self, city_name: str, country_code: Optional[str] = None) -> WeatherData:
        """Current conditions for a city."""
        ...


def _epoch_to_iso(seconds) -> str:
    return datetime.fromtimestamp(seconds, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class OpenWeatherProvider(WeatherProvider):
    """Calls ``GET /weather?q=<city>[,<country>]&units=metric``.

    The API key is read at call time so a missing key fails the job, not
    the process.
    """

    def __init__(self, http: httpx.AsyncClient, api_key: Optional[str], base_url: str):
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")

    async def fetch(self, city_name: str, country_code: Optional[str] = None) -> WeatherData:
        if not self._api_key:
            raise ConfigurationMissing("OpenWeather API key not configured")

        location = f"{city_name},{country_code}" if country_code else city_name
        logger.info("Fetching weather data for %s", location)

        try:
            response = await self._http.get(
                f"{self._base_url}/weather",
                params={"q": location, "appid": self._api_key, "units": "metric"},
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"Weather API request failed: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(
                f"Weather API error: {response.status_code} {response.reason_phrase}"
            )

        try:
            data = response.json()
            return WeatherData(
                temperature=data["main"]["temp"],
                humidity=data["main"]["humidity"],
                description=data["weather"][0]["description"],
                wind_speed=data["wind"]["speed"],
                pressure=data["main"]["pressure"],
                visibility=data.get("visibility"),
                sunrise=_epoch_to_iso(data["sys"]["sunrise"]),
                sunset=_epoch_to_iso(data["sys"]["sunset"]),
            )
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected weather API response: {type(e).__name__}: {e}") from e
