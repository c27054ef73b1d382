"""Supabase-backed record store.

Expected table layout (one row per job)::

    city_id       text  not null
    snapshot_key  text  not null default 'latest'
    status        text  not null
    record        jsonb not null
    updated_at    timestamptz not null
    primary key (city_id, snapshot_key)

The supabase client is synchronous, so every call runs in the default
executor to keep the event loop free.
"""

import asyncio
import logging
from functools import partial
from typing import Any, Callable, Optional

from app.db.supabase_client import get_supabase
from app.exceptions import NotFound, StaleTransition, StoreUnavailable
from app.jobs.models import LATEST_SNAPSHOT_KEY, JobRecord, JobStatus, utcnow
from app.storage.record_store import RecordStore

logger = logging.getLogger(__name__)


class SupabaseRecordStore(RecordStore):
    """Stores each job record as a JSON document keyed by city id."""

    def __init__(self, table_name: str, client=None):
        self._table_name = table_name
        self._client = client

    def _table(self):
        client = self._client or get_supabase()
        return client.table(self._table_name)

    async def _run(self, fn: Callable[[], Any]) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, fn)
        except (NotFound, StaleTransition, StoreUnavailable):
            raise
        except Exception as e:
            logger.error("Supabase table %s call failed", self._table_name, exc_info=True)
            raise StoreUnavailable(f"{type(e).__name__}: {e}") from e

    @staticmethod
    def _row(record: JobRecord) -> dict:
        return {
            "city_id": record.job_id,
            "snapshot_key": LATEST_SNAPSHOT_KEY,
            "status": record.status.value,
            "record": record.to_item(),
            "updated_at": record.updated_at.isoformat(),
        }

    async def put(self, record: JobRecord, expected_status: Optional[JobStatus] = None) -> JobRecord:
        row = self._row(record)
        if expected_status is None:
            await self._run(
                lambda: self._table().upsert(row, on_conflict="city_id,snapshot_key").execute()
            )
            return record

        response = await self._run(partial(self._conditional_update, record.job_id, row, expected_status))
        if not response.data:
            current = await self.get(record.job_id)
            raise StaleTransition(record.job_id, expected_status, current.status if current else None)
        return record

    def _conditional_update(self, job_id: str, row: dict, expected_status: JobStatus):
        return (
            self._table()
            .update(row)
            .eq("city_id", job_id)
            .eq("snapshot_key", LATEST_SNAPSHOT_KEY)
            .eq("status", expected_status.value)
            .execute()
        )

    async def get(self, job_id: str) -> Optional[JobRecord]:
        response = await self._run(
            lambda: self._table()
            .select("record")
            .eq("city_id", job_id)
            .eq("snapshot_key", LATEST_SNAPSHOT_KEY)
            .limit(1)
            .execute()
        )
        if not response.data:
            return None
        return JobRecord.model_validate(response.data[0]["record"])

    async def update_status(
        self,
        job_id: str,
        status: JobStatus,
        error: Optional[str] = None,
        expected_status: Optional[JobStatus] = None,
    ) -> JobRecord:
        current = await self.get(job_id)
        if current is None:
            raise NotFound(f"No processing data found for city ID: {job_id}")
        if expected_status is not None and current.status != expected_status:
            raise StaleTransition(job_id, expected_status, current.status)

        updates = {"status": status, "updated_at": utcnow()}
        if error is not None:
            updates["error"] = error
        updated = current.model_copy(update=updates)
        await self.put(updated, expected_status=expected_status)
        return updated
