"""Text generation provider for the short weather description."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from app.exceptions import ConfigurationMissing, ProviderError
from app.jobs.models import JobRecord, WeatherData

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a helpful assistant that provides concise, informative weather descriptions."
)


def build_prompt(city_name: str, weather: WeatherData) -> str:
    visibility = f"{weather.visibility:g} meters" if weather.visibility is not None else "unknown"
    return (
        f"Generate a short, engaging description (2-3 sentences) about the weather in {city_name}.\n\n"
        "Current weather conditions:\n"
        f"- Temperature: {weather.temperature}°C\n"
        f"- Humidity: {weather.humidity}%\n"
        f"- Description: {weather.description}\n"
        f"- Wind Speed: {weather.wind_speed} m/s\n"
        f"- Pressure: {weather.pressure} hPa\n"
        f"- Visibility: {visibility}\n"
        f"- Sunrise: {weather.sunrise}\n"
        f"- Sunset: {weather.sunset}\n\n"
        "Make it informative and interesting for someone planning to visit or live in this city."
    )


class DescriptionProvider(ABC):
    @abstractmethod
    async def generate(self, record: JobRecord) -> str:
        """Describe the weather attached to ``record``."""
        ...


def _require_weather(record: JobRecord) -> WeatherData:
    if record.weather_data is None:
        raise ProviderError("Weather data not available for description")
    return record.weather_data


class OpenAIDescriptionProvider(DescriptionProvider):
    """Chat completion against an OpenAI-compatible endpoint."""

    def __init__(
        self,
        http: httpx.AsyncClient,
        api_key: Optional[str],
        base_url: str,
        model: str = "gpt-3.5-turbo",
        max_tokens: int = 150,
        temperature: float = 0.7,
    ):
        self._http = http
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def generate(self, record: JobRecord) -> str:
        if not self._api_key:
            raise ConfigurationMissing("OpenAI API key not configured")
        weather = _require_weather(record)

        payload = {
            "model": self._model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(record.city_name, weather)},
            ],
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
        }
        logger.debug("Generating description for %s with %s", record.job_id, self._model)

        try:
            response = await self._http.post(
                f"{self._base_url}/chat/completions",
                json=payload,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenAI request failed: {type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise ProviderError(
                f"OpenAI API error: {response.status_code} - {_error_message(response)}"
            )

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ProviderError(f"Unexpected OpenAI response: {type(e).__name__}: {e}") from e

        description = (content or "").strip()
        if not description:
            raise ProviderError("No description generated from OpenAI")
        return description


class TemplateDescriptionProvider(DescriptionProvider):
    """Deterministic offline description, for local runs without a key."""

    async def generate(self, record: JobRecord) -> str:
        weather = _require_weather(record)
        return (
            f"{record.city_name} is currently seeing {weather.description} at "
            f"{weather.temperature:g}°C with {weather.humidity:g}% humidity and winds of "
            f"{weather.wind_speed:g} m/s. Sunrise was at {weather.sunrise} and sunset is at "
            f"{weather.sunset}."
        )


def _error_message(response: httpx.Response) -> str:
    try:
        return response.json()["error"]["message"]
    except (ValueError, KeyError, TypeError):
        return "Unknown error"
