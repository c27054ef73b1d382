"""Record store interface and in-memory implementation.

Each job has exactly one stored record, keyed by ``(job_id, "latest")``.
Writes are unconditional puts unless ``expected_status`` is given, in which
case the write only succeeds if the stored status still matches.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple

from app.exceptions import NotFound, StaleTransition
from app.jobs.models import LATEST_SNAPSHOT_KEY, JobRecord, JobStatus, utcnow


class RecordStore(ABC):
    """Durable key/value store for job records."""

    @abstractmethod
    async def put(self, record: JobRecord, expected_status: Optional[JobStatus] = None) -> JobRecord:
        """Overwrite the full record. Conditional when ``expected_status`` is set."""
        ...

    @abstractmethod
    async def get(self, job_id: str) -> Optional[JobRecord]:
        """Latest snapshot, or None if the job does not exist."""
        ...

    @abstractmethod
    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        expected_status: Optional[JobStatus] = None,
    ) -> JobRecord:
        """Partial update of status/updated_at/error, keeping other fields."""
        ...


class InMemoryRecordStore(RecordStore):
    """Process-local store. Records are copied on the way in and out."""

    def __init__(self):
        self._items: Dict[Tuple[str, str], JobRecord] = {}
        self._lock = asyncio.Lock()
        self.write_count = 0

    async def put(self, record: JobRecord, expected_status: Optional[JobStatus] = None) -> JobRecord:
        key = (record.job_id, LATEST_SNAPSHOT_KEY)
        async with self._lock:
            if expected_status is not None:
                current = self._items.get(key)
                actual = current.status if current else None
                if actual != expected_status:
                    raise StaleTransition(record.job_id, expected_status, actual)
            self._items[key] = record.model_copy(deep=True)
            self.write_count += 1
        return record

    async def get(self, job_id: str) -> Optional[JobRecord]:
        async with self._lock:
            record = self._items.get((job_id, LATEST_SNAPSHOT_KEY))
        return record.model_copy(deep=True) if record else None

    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        expected_status: Optional[JobStatus] = None,
    ) -> JobRecord:
        key = (job_id, LATEST_SNAPSHOT_KEY)
        async with self._lock:
            current = self._items.get(key)
            if current is None:
                raise NotFound(f"No processing data found for city ID: {job_id}")
            if expected_status is not None and current.status != expected_status:
                raise StaleTransition(job_id, expected_status, current.status)
            updates = {"status": status, "updated_at": utcnow()}
            if error is not None:
                updates["error"] = error
            updated = current.model_copy(update=updates, deep=True)
            self._items[key] = updated
            self.write_count += 1
        return updated.model_copy(deep=True)
