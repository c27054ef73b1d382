"""In-process work queue using asyncio for local development.

Emulates the lease/redelivery/dead-letter behaviour of a hosted queue so the
stage workers can run inside the API process. No external dependencies
(Redis, SQS) needed.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from app.exceptions import QueueUnavailable
from app.jobs.dispatcher import QueueMessage, WorkQueue
from app.jobs.models import JobRecord

logger = logging.getLogger(__name__)


@dataclass
class _Entry:
    message_id: str
    body: str
    attributes: Dict[str, str]
    receive_count: int = 0
    visible_at: float = 0.0
    receipt_handle: Optional[str] = None


class InProcessQueue(WorkQueue):
    """Local async queue. Messages live in memory for the process lifetime."""

    def __init__(
        self,
        name: str,
        max_receive_count: int = 3,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self._max_receive_count = max_receive_count
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}
        self._order: List[str] = []
        self._dead: List[QueueMessage] = []
        self._lock = asyncio.Lock()
        self._closed = False

    async def enqueue(self, record: JobRecord) -> str:
        return await self.send(record.to_json(), record.message_attributes())

    async def send(self, body: str, attributes: Optional[Dict[str, str]] = None) -> str:
        """Send a raw body. ``enqueue`` is the normal entry point."""
        message_id = str(uuid.uuid4())
        async with self._lock:
            self._check_open()
            self._entries[message_id] = _Entry(
                message_id=message_id,
                body=body,
                attributes=dict(attributes or {}),
            )
            self._order.append(message_id)
        logger.debug("Queue %s: enqueued %s %s", self.name, message_id, attributes)
        return message_id

    async def receive(self, max_messages: int = 1, lease_seconds: float = 300) -> List[QueueMessage]:
        now = self._clock()
        leased: List[QueueMessage] = []
        async with self._lock:
            self._check_open()
            for message_id in list(self._order):
                if len(leased) >= max_messages:
                    break
                entry = self._entries[message_id]
                if entry.visible_at > now:
                    continue
                if entry.receive_count >= self._max_receive_count:
                    self._dead_letter(entry)
                    continue
                entry.receive_count += 1
                entry.visible_at = now + lease_seconds
                entry.receipt_handle = f"{message_id}:{entry.receive_count}"
                leased.append(self._to_message(entry))
        return leased

    async def delete(self, receipt_handle: str) -> bool:
        message_id = receipt_handle.split(":", 1)[0]
        async with self._lock:
            self._check_open()
            entry = self._entries.get(message_id)
            if entry is None or entry.receipt_handle != receipt_handle:
                logger.warning("Queue %s: stale receipt %s", self.name, receipt_handle)
                return False
            del self._entries[message_id]
            self._order.remove(message_id)
        return True

    async def close(self) -> None:
        async with self._lock:
            self._closed = True
        logger.info("Queue %s: closed with %d pending", self.name, len(self._entries))

    def dead_letters(self) -> List[QueueMessage]:
        return list(self._dead)

    def depth(self) -> int:
        return len(self._entries)

    def _check_open(self) -> None:
        if self._closed:
            raise QueueUnavailable(f"Queue {self.name} is closed")

    def _dead_letter(self, entry: _Entry) -> None:
        del self._entries[entry.message_id]
        self._order.remove(entry.message_id)
        self._dead.append(self._to_message(entry))
        logger.warning(
            "Queue %s: message %s dead-lettered after %d receives (cityId=%s)",
            self.name, entry.message_id, entry.receive_count, entry.attributes.get("cityId"),
        )

    @staticmethod
    def _to_message(entry: _Entry) -> QueueMessage:
        return QueueMessage(
            message_id=entry.message_id,
            receipt_handle=entry.receipt_handle or "",
            body=entry.body,
            attributes=dict(entry.attributes),
            receive_count=entry.receive_count,
        )
