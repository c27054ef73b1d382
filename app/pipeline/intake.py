"""Intake stage: accept a city request, persist it, hand it to enrichment."""

import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.exceptions import InvalidRequest
from app.jobs.dispatcher import WorkQueue
from app.jobs.models import JobRecord, JobStatus, make_job_id
from app.notifications import Notifier, notify_best_effort
from app.pipeline.contract import Outcome, PipelineStage, StageResult, log_transition
from app.storage.record_store import RecordStore

logger = logging.getLogger(__name__)


class CityRequest(BaseModel):
    """Body of ``POST /cities``. Presence of cityName is checked by the stage."""
    model_config = ConfigDict(populate_by_name=True)

    city_name: Optional[str] = Field(default=None, alias="cityName")
    country_code: Optional[str] = Field(default=None, alias="countryCode")


class IntakeHandler(PipelineStage):
    """Creates the job record and enqueues it on the enrichment queue.

    The record is written before the enqueue, so a consumer never sees a
    job that the status endpoint cannot find. Store and queue errors
    propagate to the caller; notification errors do not.
    """

    name = "intake"

    def __init__(self, store: RecordStore, queue: WorkQueue, notifier: Notifier):
        self.store = store
        self.queue = queue
        self.notifier = notifier

    async def consume(self, unit: CityRequest) -> StageResult:
        city_name = unit.city_name.strip() if isinstance(unit.city_name, str) else ""
        if not city_name:
            raise InvalidRequest("cityName is required")
        country_code = (unit.country_code or "").strip() or None

        record = JobRecord(
            job_id=make_job_id(city_name),
            city_name=city_name,
            country_code=country_code,
            status=JobStatus.PENDING,
        )

        await self.store.put(record)
        log_transition(record.job_id, None, JobStatus.PENDING)

        message_id = await self.queue.enqueue(record)
        logger.debug("Job %s enqueued on %s as %s", record.job_id, self.queue.name, message_id)

        await notify_best_effort(
            self.notifier,
            "City Processing Started",
            {"message": "City processing started", "cityId": record.job_id, "cityName": city_name},
        )
        return StageResult(Outcome.ADVANCE, record)
