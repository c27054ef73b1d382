"""Read-only status lookup for the polling endpoint."""

import logging

from app.exceptions import NotFound
from app.jobs.models import JobSnapshot
from app.storage.record_store import RecordStore

logger = logging.getLogger(__name__)


async def get_status(store: RecordStore, job_id: str) -> JobSnapshot:
    """Latest snapshot for ``job_id``.

    Raises NotFound when no record exists. StoreUnavailable propagates.
    """
    record = await store.get(job_id)
    if record is None:
        logger.debug("No record for %s", job_id)
        raise NotFound(f"No processing data found for city ID: {job_id}")
    return JobSnapshot.from_record(record)
