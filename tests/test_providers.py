"""Enrichment provider HTTP handling, against httpx.MockTransport."""

import json

import httpx
import pytest

from app.exceptions import ConfigurationMissing, ProviderError
from app.providers.description import (
    OpenAIDescriptionProvider,
    TemplateDescriptionProvider,
    build_prompt,
)
from app.providers.weather import OpenWeatherProvider

from conftest import LONDON_WEATHER, make_record

WEATHER_BASE = "https://weather.test/data/2.5"
OPENAI_BASE = "https://llm.test/v1"

OPENWEATHER_BODY = {
    "main": {"temp": 14.2, "humidity": 71, "pressure": 1012},
    "weather": [{"description": "light rain"}],
    "wind": {"speed": 4.1},
    "visibility": 10000,
    "sys": {"sunrise": 1760768700, "sunset": 1760807100},
}


def client_for(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# ============================================================================
# Weather
# ============================================================================

async def test_weather_maps_openweather_response():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = request.url
        return httpx.Response(200, json=OPENWEATHER_BODY)

    async with client_for(handler) as http:
        provider = OpenWeatherProvider(http, api_key="k", base_url=WEATHER_BASE)
        weather = await provider.fetch("London", "GB")

    assert seen["url"].path == "/data/2.5/weather"
    assert seen["url"].params["q"] == "London,GB"
    assert seen["url"].params["units"] == "metric"
    assert seen["url"].params["appid"] == "k"
    assert weather.temperature == 14.2
    assert weather.description == "light rain"
    assert weather.wind_speed == 4.1
    assert weather.sunrise == "2025-10-18T06:25:00Z"


async def test_weather_without_country_queries_city_only():
    seen = {}

    def handler(request):
        seen["q"] = request.url.params["q"]
        return httpx.Response(200, json=OPENWEATHER_BODY)

    async with client_for(handler) as http:
        await OpenWeatherProvider(http, api_key="k", base_url=WEATHER_BASE).fetch("Paris")

    assert seen["q"] == "Paris"


async def test_weather_missing_key_is_configuration_failure():
    def handler(request):
        raise AssertionError("no request expected")

    async with client_for(handler) as http:
        provider = OpenWeatherProvider(http, api_key=None, base_url=WEATHER_BASE)
        with pytest.raises(ConfigurationMissing, match="OpenWeather API key not configured"):
            await provider.fetch("London")


async def test_weather_http_error_is_provider_error():
    async with client_for(lambda request: httpx.Response(404)) as http:
        provider = OpenWeatherProvider(http, api_key="k", base_url=WEATHER_BASE)
        with pytest.raises(ProviderError, match="Weather API error: 404 Not Found"):
            await provider.fetch("Atlantis")


async def test_weather_unexpected_shape_is_provider_error():
    async with client_for(lambda request: httpx.Response(200, json={"main": {}})) as http:
        provider = OpenWeatherProvider(http, api_key="k", base_url=WEATHER_BASE)
        with pytest.raises(ProviderError, match="Unexpected weather API response"):
            await provider.fetch("London")


async def test_weather_transport_error_is_provider_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with client_for(handler) as http:
        provider = OpenWeatherProvider(http, api_key="k", base_url=WEATHER_BASE)
        with pytest.raises(ProviderError, match="ConnectError"):
            await provider.fetch("London")


# ============================================================================
# Description
# ============================================================================

def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


async def test_openai_posts_chat_completion_and_trims_reply():
    seen = {}

    def handler(request: httpx.Request):
        seen["auth"] = request.headers["Authorization"]
        seen["path"] = request.url.path
        seen["payload"] = json.loads(request.content)
        return httpx.Response(200, json=_completion("  Drizzly and mild.  \n"))

    record = make_record(weather_data=LONDON_WEATHER)
    async with client_for(handler) as http:
        provider = OpenAIDescriptionProvider(http, api_key="sk-test", base_url=OPENAI_BASE)
        description = await provider.generate(record)

    assert description == "Drizzly and mild."
    assert seen["auth"] == "Bearer sk-test"
    assert seen["path"] == "/v1/chat/completions"
    assert seen["payload"]["model"] == "gpt-3.5-turbo"
    assert seen["payload"]["max_tokens"] == 150
    assert [m["role"] for m in seen["payload"]["messages"]] == ["system", "user"]
    assert "London" in seen["payload"]["messages"][1]["content"]


async def test_openai_missing_key_is_configuration_failure():
    async with client_for(lambda request: httpx.Response(500)) as http:
        provider = OpenAIDescriptionProvider(http, api_key="", base_url=OPENAI_BASE)
        with pytest.raises(ConfigurationMissing, match="OpenAI API key not configured"):
            await provider.generate(make_record(weather_data=LONDON_WEATHER))


async def test_openai_error_body_is_reported():
    body = {"error": {"message": "Rate limit reached"}}
    async with client_for(lambda request: httpx.Response(429, json=body)) as http:
        provider = OpenAIDescriptionProvider(http, api_key="sk", base_url=OPENAI_BASE)
        with pytest.raises(ProviderError, match="429 - Rate limit reached"):
            await provider.generate(make_record(weather_data=LONDON_WEATHER))


async def test_openai_empty_reply_is_provider_error():
    async with client_for(lambda request: httpx.Response(200, json=_completion("   "))) as http:
        provider = OpenAIDescriptionProvider(http, api_key="sk", base_url=OPENAI_BASE)
        with pytest.raises(ProviderError, match="No description generated"):
            await provider.generate(make_record(weather_data=LONDON_WEATHER))


async def test_description_requires_weather_data():
    with pytest.raises(ProviderError, match="Weather data not available"):
        await TemplateDescriptionProvider().generate(make_record())


async def test_template_description_mentions_conditions():
    text = await TemplateDescriptionProvider().generate(make_record(weather_data=LONDON_WEATHER))

    assert text.startswith("London is currently seeing light rain at 14.2°C")


def test_prompt_lists_weather_facts():
    prompt = build_prompt("London", LONDON_WEATHER)

    assert "Temperature: 14.2°C" in prompt
    assert "Wind Speed: 4.1 m/s" in prompt
    assert "Visibility: 10000 meters" in prompt
