"""
Shared fixtures: in-memory services with fake enrichment providers.

Nothing here touches the network; provider HTTP calls are covered
separately with ``httpx.MockTransport``.
"""

import asyncio
from typing import List, Optional, Tuple

import pytest

from app.config import Settings
from app.jobs.dispatcher import QueueMessage
from app.jobs.models import JobRecord, WeatherData
from app.notifications import Notifier
from app.providers.description import DescriptionProvider
from app.providers.weather import WeatherProvider
from app.services import build_services


LONDON_WEATHER = WeatherData(
    temperature=14.2,
    humidity=71,
    description="light rain",
    wind_speed=4.1,
    pressure=1012,
    visibility=10000,
    sunrise="2026-10-18T06:25:00Z",
    sunset="2026-10-18T17:05:00Z",
)


class FakeWeather(WeatherProvider):
    def __init__(self, error: Optional[Exception] = None, delay: float = 0.0):
        self.error = error
        self.delay = delay
        self.calls: List[Tuple[str, Optional[str]]] = []

    async def fetch(self, city_name, country_code=None):
        self.calls.append((city_name, country_code))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return LONDON_WEATHER


class FakeDescriber(DescriptionProvider):
    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.calls: List[str] = []

    async def generate(self, record):
        self.calls.append(record.job_id)
        if self.error:
            raise self.error
        return f"A mild, drizzly day in {record.city_name}."


class FailingNotifier(Notifier):
    async def publish(self, subject, message):
        raise ConnectionError("topic unreachable")


def make_settings(**overrides) -> Settings:
    values = dict(
        openweather_api_key="test-weather-key",
        openai_api_key="test-openai-key",
        worker_poll_interval_seconds=0.01,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_record(**overrides) -> JobRecord:
    values = dict(job_id="london-1760000000000", city_name="London", country_code="GB")
    values.update(overrides)
    return JobRecord(**values)


def message_for(record: JobRecord, receive_count: int = 1) -> QueueMessage:
    return QueueMessage(
        message_id="msg-1",
        receipt_handle=f"msg-1:{receive_count}",
        body=record.to_json(),
        attributes=record.message_attributes(),
        receive_count=receive_count,
    )


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def weather():
    return FakeWeather()


@pytest.fixture
def describer():
    return FakeDescriber()


@pytest.fixture
async def services(settings, weather, describer):
    services = build_services(settings, weather=weather, describer=describer)
    yield services
    await services.stop()
