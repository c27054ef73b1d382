"""Supabase record store against a minimal in-memory query builder."""

from types import SimpleNamespace

import pytest

from app.exceptions import NotFound, StaleTransition, StoreUnavailable
from app.jobs.models import JobStatus
from app.storage.supabase_store import SupabaseRecordStore

from conftest import LONDON_WEATHER, make_record


class FakeQuery:
    def __init__(self, table, op, payload=None):
        self.table = table
        self.op = op
        self.payload = payload
        self.filters = {}

    def eq(self, column, value):
        self.filters[column] = value
        return self

    def limit(self, n):
        return self

    def _matches(self, row):
        return all(row.get(k) == v for k, v in self.filters.items())

    def execute(self):
        rows = self.table.rows
        if self.op == "upsert":
            key = (self.payload["city_id"], self.payload["snapshot_key"])
            rows[key] = dict(self.payload)
            return SimpleNamespace(data=[self.payload])
        if self.op == "update":
            updated = []
            for key, row in rows.items():
                if self._matches(row):
                    row.update(self.payload)
                    updated.append(row)
            return SimpleNamespace(data=updated)
        matched = [row for row in rows.values() if self._matches(row)]
        return SimpleNamespace(data=matched)


class FakeTable:
    def __init__(self):
        self.rows = {}

    def upsert(self, row, on_conflict=None):
        assert on_conflict == "city_id,snapshot_key"
        return FakeQuery(self, "upsert", row)

    def update(self, row):
        return FakeQuery(self, "update", row)

    def select(self, columns):
        return FakeQuery(self, "select")


class FakeClient:
    def __init__(self):
        self.tables = {}

    def table(self, name):
        return self.tables.setdefault(name, FakeTable())


class ExplodingClient:
    def table(self, name):
        raise ConnectionError("supabase unreachable")


@pytest.fixture
def client():
    return FakeClient()


@pytest.fixture
def store(client):
    return SupabaseRecordStore("city-processing", client=client)


async def test_put_writes_latest_row(store, client):
    record = make_record()
    await store.put(record)

    [row] = client.tables["city-processing"].rows.values()
    assert row["city_id"] == record.job_id
    assert row["snapshot_key"] == "latest"
    assert row["status"] == "pending"
    assert row["record"]["cityName"] == "London"


async def test_get_decodes_stored_record(store, client):
    record = make_record().advance(JobStatus.DESCRIBING, weather_data=LONDON_WEATHER)
    await store.put(record)

    stored = await store.get(record.job_id)

    assert stored.status is JobStatus.DESCRIBING
    assert stored.weather_data == LONDON_WEATHER
    assert await store.get("nowhere-1") is None
    assert len(client.tables["city-processing"].rows) == 1


async def test_conditional_put_detects_stale_status(store):
    record = make_record()
    await store.put(record.advance(JobStatus.COMPLETED))

    with pytest.raises(StaleTransition) as excinfo:
        await store.put(record.advance(JobStatus.DESCRIBING), expected_status=JobStatus.ENRICHING)

    assert excinfo.value.actual is JobStatus.COMPLETED


async def test_update_status_preserves_payload(store):
    record = make_record().advance(JobStatus.DESCRIBING, weather_data=LONDON_WEATHER)
    await store.put(record)

    updated = await store.update_status(record.job_id, JobStatus.FAILED, error="boom")

    stored = await store.get(record.job_id)
    assert updated.status is JobStatus.FAILED
    assert stored.error == "boom"
    assert stored.weather_data == LONDON_WEATHER

    with pytest.raises(NotFound):
        await store.update_status("nowhere-1", JobStatus.ENRICHING)


async def test_client_errors_become_store_unavailable():
    store = SupabaseRecordStore("city-processing", client=ExplodingClient())

    with pytest.raises(StoreUnavailable, match="ConnectionError"):
        await store.get("london-1")
