"""Job record data model for the city processing pipeline."""

import re
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from app.exceptions import DecodeFailure

# Records are stored under a constant sort key: only the latest snapshot exists.
LATEST_SNAPSHOT_KEY = "latest"


class JobStatus(str, Enum):
    PENDING = "pending"
    ENRICHING = "enriching"
    DESCRIBING = "describing"
    COMPLETED = "completed"
    FAILED = "failed"


# Forward path pending -> enriching -> describing -> completed, with a side
# exit to failed from every non-terminal state. In-progress states may
# re-enter themselves so a redelivered message can re-mark its stage.
_TRANSITIONS: Dict[JobStatus, Set[JobStatus]] = {
    JobStatus.PENDING: {JobStatus.ENRICHING, JobStatus.FAILED},
    JobStatus.ENRICHING: {JobStatus.ENRICHING, JobStatus.DESCRIBING, JobStatus.FAILED},
    JobStatus.DESCRIBING: {JobStatus.DESCRIBING, JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _TRANSITIONS[current]


def is_terminal(status: JobStatus) -> bool:
    return status in TERMINAL_STATUSES


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Whitespace and characters that would break the status URL path segment.
_SEPARATORS = re.compile(r"[\s/?#%]+")


def make_job_id(city_name: str, now_ms: Optional[int] = None) -> str:
    """Slug of the city name plus the current epoch milliseconds.

    Distinct concurrent submissions get distinct ids; two submissions of the
    same city within the same millisecond collide.
    """
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    slug = _SEPARATORS.sub("-", city_name.strip().lower()).strip("-")
    return f"{slug}-{now_ms}"


class WeatherData(BaseModel):
    """Enrichment payload returned by the weather provider."""
    model_config = ConfigDict(populate_by_name=True)

    temperature: float
    humidity: float
    description: str
    wind_speed: float = Field(alias="windSpeed")
    pressure: float
    visibility: Optional[float] = None
    sunrise: str
    sunset: str


class JobRecord(BaseModel):
    """Durable state of one city's trip through the pipeline.

    Serialized with camelCase aliases; the same JSON is the queue message
    body and the stored record.
    """
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="cityId")
    city_name: str = Field(alias="cityName")
    country_code: Optional[str] = Field(default=None, alias="countryCode")
    status: JobStatus = JobStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="timestamp")
    weather_data: Optional[WeatherData] = Field(default=None, alias="weatherData")
    llm_description: Optional[str] = Field(default=None, alias="llmDescription")
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def advance(self, status: JobStatus, **updates) -> "JobRecord":
        """Return a copy in ``status`` with ``updated_at`` rewritten."""
        return self.model_copy(update={"status": status, "updated_at": utcnow(), **updates})

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)

    def to_item(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_json(cls, body) -> "JobRecord":
        """Decode a queue body. Raises DecodeFailure on anything malformed."""
        try:
            if isinstance(body, (str, bytes)):
                return cls.model_validate_json(body)
            return cls.model_validate(body)
        except (ValidationError, ValueError, TypeError) as e:
            raise DecodeFailure(f"Malformed job record: {e}") from e

    def message_attributes(self) -> Dict[str, str]:
        """Attributes readable without decoding the body."""
        return {"cityId": self.job_id, "cityName": self.city_name}


class JobSnapshot(BaseModel):
    """Client-facing projection returned by the status endpoint."""
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="cityId")
    city_name: str = Field(alias="cityName")
    status: JobStatus
    updated_at: datetime = Field(alias="timestamp")
    weather_data: Optional[WeatherData] = Field(default=None, alias="weatherData")
    llm_description: Optional[str] = Field(default=None, alias="llmDescription")
    error: Optional[str] = None

    @classmethod
    def from_record(cls, record: JobRecord) -> "JobSnapshot":
        return cls(
            job_id=record.job_id,
            city_name=record.city_name,
            status=record.status,
            updated_at=record.updated_at,
            weather_data=record.weather_data,
            llm_description=record.llm_description,
            error=record.error,
        )

    def to_response(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
