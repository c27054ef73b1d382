"""Enrichment stage: attach current weather to the job."""

import logging

from app.jobs.dispatcher import WorkQueue
from app.jobs.models import JobRecord, JobStatus
from app.notifications import notify_best_effort
from app.pipeline.contract import Outcome, QueueStageHandler, StageResult, log_transition
from app.providers.weather import WeatherProvider

logger = logging.getLogger(__name__)


class EnrichmentHandler(QueueStageHandler):
    """Consumes the intake queue and produces onto the description queue.

    On success the record is written as ``describing`` (the description
    stage's input state) with ``weatherData`` set, then enqueued.
    """

    name = "enrichment"
    in_progress_status = JobStatus.ENRICHING
    failure_subject = "Weather Processing Failed"

    def __init__(self, weather: WeatherProvider, next_queue: WorkQueue, **kwargs):
        super().__init__(**kwargs)
        self.weather = weather
        self.next_queue = next_queue

    async def perform(self, record: JobRecord) -> StageResult:
        weather = await self.weather.fetch(record.city_name, record.country_code)

        enriched = record.advance(JobStatus.DESCRIBING, weather_data=weather, error=None)
        await self.store.put(enriched, expected_status=self.expected(JobStatus.ENRICHING))
        log_transition(record.job_id, JobStatus.ENRICHING, JobStatus.DESCRIBING)

        await self.next_queue.enqueue(enriched)

        await notify_best_effort(
            self.notifier,
            "Weather Data Retrieved",
            self.notification_body(
                enriched,
                "Weather data retrieved successfully",
                weatherData=weather.model_dump(by_alias=True),
            ),
        )
        logger.info("Weather processing completed for %s", record.city_name)
        return StageResult(Outcome.ADVANCE, enriched)
