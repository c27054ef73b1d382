"""Description stage: generate the text summary and complete the job."""

import logging

from app.exceptions import ProviderError
from app.jobs.models import JobRecord, JobStatus
from app.notifications import notify_best_effort
from app.pipeline.contract import Outcome, QueueStageHandler, StageResult, log_transition
from app.providers.description import DescriptionProvider

logger = logging.getLogger(__name__)


class DescriptionHandler(QueueStageHandler):
    name = "description"
    in_progress_status = JobStatus.DESCRIBING
    failure_subject = "LLM Processing Failed"

    def __init__(self, describer: DescriptionProvider, **kwargs):
        super().__init__(**kwargs)
        self.describer = describer

    async def perform(self, record: JobRecord) -> StageResult:
        if record.weather_data is None:
            raise ProviderError("Weather data not available for description")
        description = await self.describer.generate(record)

        completed = record.advance(JobStatus.COMPLETED, llm_description=description, error=None)
        await self.store.put(completed, expected_status=self.expected(JobStatus.DESCRIBING))
        log_transition(record.job_id, JobStatus.DESCRIBING, JobStatus.COMPLETED)

        await notify_best_effort(
            self.notifier,
            "Weather Processing Completed",
            self.notification_body(
                completed,
                "Weather processing completed successfully",
                weatherData=completed.weather_data.model_dump(by_alias=True),
                llmDescription=description,
            ),
        )
        logger.info("Description processing completed for %s", record.city_name)
        return StageResult(Outcome.TERMINATE, completed)
