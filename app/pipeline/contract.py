"""Contract every pipeline stage honours.

There is no coordinator object. Stages only meet through the record store
and the queues, so the protocol is defined here and each stage implements
it:

- ``consume(unit)`` returns a ``StageResult``: ``advance`` (next unit was
  persisted and enqueued), ``terminate`` (terminal record persisted),
  ``fail`` (job recorded as failed), ``retry`` (keep the message for
  redelivery) or ``stale`` (a strict-mode conditional write was rejected).
- Persistence happens before the next unit is enqueued.
- The input message is acknowledged for every outcome except ``retry``.
  A ``DecodeFailure`` raised by ``consume`` is the only error that escapes
  and it leaves the message for queue-native redelivery.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from app.exceptions import NotFound, StaleTransition, StoreUnavailable
from app.jobs.dispatcher import QueueMessage
from app.jobs.models import JobRecord, JobStatus, can_transition
from app.notifications import Notifier, notify_best_effort
from app.storage.record_store import RecordStore

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    ADVANCE = "advance"
    TERMINATE = "terminate"
    FAIL = "fail"
    RETRY = "retry"
    STALE = "stale"


@dataclass
class StageResult:
    outcome: Outcome
    record: Optional[JobRecord] = None
    error: Optional[str] = None

    @property
    def acknowledge(self) -> bool:
        """Whether the input message should be deleted."""
        return self.outcome is not Outcome.RETRY


class PipelineStage(ABC):
    """One unit of pipeline work."""

    name: str = "stage"

    @abstractmethod
    async def consume(self, unit: Any) -> StageResult:
        ...


def log_transition(job_id: str, old: Optional[JobStatus], new: JobStatus, extra: str = "") -> None:
    old_value = old.value if old else "-"
    logger.info("Job %s: %s -> %s %s", job_id, old_value, new.value, extra)


class QueueStageHandler(PipelineStage):
    """Template for the queue-consuming stages (enrichment, description).

    Subclasses set ``in_progress_status`` and ``failure_subject`` and
    implement ``perform``; the marking, failure recording and retry policy
    live here so both stages behave identically.
    """

    in_progress_status: JobStatus
    failure_subject: str = "Processing Failed"

    def __init__(
        self,
        store: RecordStore,
        notifier: Notifier,
        retry_business_failures: bool = False,
        strict_transitions: bool = False,
        max_receive_count: int = 3,
    ):
        self.store = store
        self.notifier = notifier
        self.retry_business_failures = retry_business_failures
        self.strict_transitions = strict_transitions
        self.max_receive_count = max_receive_count

    @abstractmethod
    async def perform(self, record: JobRecord) -> StageResult:
        """Do the stage's work on a record already marked in progress."""
        ...

    def expected(self, status: JobStatus) -> Optional[JobStatus]:
        """Prior status for a conditional write, or None for last-writer-wins."""
        return status if self.strict_transitions else None

    async def consume(self, unit: QueueMessage) -> StageResult:
        record = JobRecord.from_json(unit.body)
        logger.info(
            "%s stage received %s (receive %d)", self.name, record.job_id, unit.receive_count
        )

        try:
            record = await self._mark_in_progress(record)
        except StaleTransition as e:
            logger.warning("Discarding delivery for %s: %s", record.job_id, e)
            return StageResult(Outcome.STALE, record, str(e))

        try:
            return await self.perform(record)
        except StaleTransition as e:
            logger.warning("Discarding delivery for %s: %s", record.job_id, e)
            return StageResult(Outcome.STALE, record, str(e))
        except Exception as e:
            return await self._handle_failure(record, e, unit.receive_count)

    async def _mark_in_progress(self, record: JobRecord) -> JobRecord:
        """Best-effort status write; the record advances locally either way."""
        previous = record.status
        if self.strict_transitions:
            previous = await self._stored_status(record)
            if not can_transition(previous, self.in_progress_status):
                raise StaleTransition(record.job_id, self.in_progress_status, previous)

        try:
            await self.store.update_status(
                record.job_id,
                self.in_progress_status,
                expected_status=self.expected(previous),
            )
        except (StoreUnavailable, NotFound) as e:
            logger.error(
                "Job %s: could not persist %s status: %s",
                record.job_id, self.in_progress_status.value, e,
            )
        log_transition(record.job_id, previous, self.in_progress_status)
        return record.advance(self.in_progress_status)

    async def _stored_status(self, record: JobRecord) -> JobStatus:
        try:
            current = await self.store.get(record.job_id)
        except StoreUnavailable as e:
            logger.error("Job %s: could not read stored status: %s", record.job_id, e)
            return record.status
        if current is None:
            raise StaleTransition(record.job_id, record.status, None)
        return current.status

    async def _handle_failure(self, record: JobRecord, exc: Exception, receive_count: int) -> StageResult:
        cause = str(exc) or type(exc).__name__

        if self.retry_business_failures and receive_count < self.max_receive_count:
            logger.warning(
                "Job %s: %s stage failed on receive %d/%d, keeping message: %s",
                record.job_id, self.name, receive_count, self.max_receive_count, cause,
            )
            # The stored record is left untouched; error is only written with failed.
            return StageResult(Outcome.RETRY, record, cause)

        logger.error("Job %s: %s stage failed: %s", record.job_id, self.name, cause)
        failed = record.advance(JobStatus.FAILED, error=cause)
        try:
            await self.store.update_status(
                record.job_id,
                JobStatus.FAILED,
                error=cause,
                expected_status=self.expected(self.in_progress_status),
            )
        except StaleTransition as e:
            logger.warning("Discarding failure for %s: %s", record.job_id, e)
            return StageResult(Outcome.STALE, record, str(e))
        except (StoreUnavailable, NotFound) as e:
            logger.error("Job %s: could not persist failed status: %s", record.job_id, e)
        log_transition(record.job_id, self.in_progress_status, JobStatus.FAILED, f"({cause})")

        await notify_best_effort(
            self.notifier,
            self.failure_subject,
            self.notification_body(record, self.failure_subject, error=cause),
        )
        return StageResult(Outcome.FAIL, failed, cause)

    @staticmethod
    def notification_body(record: JobRecord, message: str, **extra) -> Dict[str, Any]:
        body = {"message": message, "cityId": record.job_id, "cityName": record.city_name}
        body.update(extra)
        return body
