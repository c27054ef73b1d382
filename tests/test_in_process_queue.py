"""In-process queue: leases, redelivery and dead-lettering."""

import pytest

from app.exceptions import QueueUnavailable
from app.jobs.in_process_queue import InProcessQueue

from conftest import make_record


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def test_enqueue_carries_record_body_and_attributes():
    queue = InProcessQueue("intake")
    record = make_record()

    await queue.enqueue(record)
    [message] = await queue.receive()

    assert message.body == record.to_json()
    assert message.attributes == {"cityId": record.job_id, "cityName": "London"}
    assert message.receive_count == 1


async def test_leased_message_is_invisible_until_lease_expires():
    clock = FakeClock()
    queue = InProcessQueue("intake", clock=clock)
    await queue.enqueue(make_record())

    first = await queue.receive(lease_seconds=30)
    assert len(first) == 1
    assert await queue.receive(lease_seconds=30) == []

    clock.now += 31
    [again] = await queue.receive(lease_seconds=30)
    assert again.message_id == first[0].message_id
    assert again.receive_count == 2


async def test_delete_acknowledges_current_receipt_only():
    clock = FakeClock()
    queue = InProcessQueue("intake", clock=clock)
    await queue.enqueue(make_record())

    [first] = await queue.receive(lease_seconds=10)
    clock.now += 11
    [second] = await queue.receive(lease_seconds=10)

    assert await queue.delete(first.receipt_handle) is False
    assert await queue.delete(second.receipt_handle) is True
    assert queue.depth() == 0


async def test_message_dead_lettered_after_max_receives():
    queue = InProcessQueue("intake", max_receive_count=3)
    await queue.send("not json", {"cityId": "broken-1"})

    for expected_count in (1, 2, 3):
        [message] = await queue.receive(lease_seconds=0)
        assert message.receive_count == expected_count

    assert await queue.receive(lease_seconds=0) == []
    assert queue.depth() == 0
    [dead] = queue.dead_letters()
    assert dead.attributes["cityId"] == "broken-1"
    assert dead.receive_count == 3


async def test_receive_respects_max_messages_and_order():
    queue = InProcessQueue("intake")
    for i in range(3):
        await queue.enqueue(make_record(job_id=f"city-{i}"))

    batch = await queue.receive(max_messages=2)

    assert [m.attributes["cityId"] for m in batch] == ["city-0", "city-1"]
    assert queue.depth() == 3


async def test_closed_queue_rejects_every_operation():
    queue = InProcessQueue("intake")
    await queue.enqueue(make_record())
    [message] = await queue.receive()

    await queue.close()

    with pytest.raises(QueueUnavailable, match="Queue intake is closed"):
        await queue.enqueue(make_record())
    with pytest.raises(QueueUnavailable):
        await queue.receive()
    with pytest.raises(QueueUnavailable):
        await queue.delete(message.receipt_handle)
    assert queue.depth() == 1
