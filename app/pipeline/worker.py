"""Stage worker: pulls leased messages from one queue and runs one stage.

Processes deliveries one at a time in a background asyncio task, the same
way the API process used to run its local job queue.
"""

import asyncio
import logging
from typing import Optional

from app.exceptions import DecodeFailure, QueueUnavailable
from app.jobs.dispatcher import QueueMessage, WorkQueue
from app.pipeline.contract import PipelineStage, StageResult

logger = logging.getLogger(__name__)


class StageWorker:
    """Delivery loop for a queue-consuming stage.

    Every delivery runs under ``budget_seconds``. The message is deleted
    when the handler's result acknowledges it. A decode failure, a budget
    overrun or an unexpected error leaves the message leased, so it is
    redelivered after the lease expires and dead-lettered once the queue's
    receive limit is reached.
    """

    def __init__(
        self,
        queue: WorkQueue,
        handler: PipelineStage,
        budget_seconds: float = 60.0,
        lease_seconds: float = 300.0,
        poll_interval: float = 1.0,
        batch_size: int = 1,
    ):
        self._queue = queue
        self._handler = handler
        self._budget = budget_seconds
        self._lease = lease_seconds
        self._poll_interval = poll_interval
        self._batch_size = batch_size
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def name(self) -> str:
        return f"{self._handler.name}-worker"

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._worker_loop(), name=self.name)

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _worker_loop(self) -> None:
        while self._running:
            try:
                handled = await self.poll_once()
            except asyncio.CancelledError:
                break
            except QueueUnavailable as e:
                logger.error("%s: receive failed: %s", self.name, e)
                handled = 0
            if not handled:
                await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> int:
        """Receive one batch and process it. Returns the number of deliveries."""
        messages = await self._queue.receive(max_messages=self._batch_size, lease_seconds=self._lease)
        for message in messages:
            await self.process(message)
        return len(messages)

    async def drain(self, max_batches: int = 100) -> int:
        """Process until the queue has nothing visible. Used by tests and local runs."""
        total = 0
        for _ in range(max_batches):
            handled = await self.poll_once()
            if not handled:
                break
            total += handled
        return total

    async def process(self, message: QueueMessage) -> Optional[StageResult]:
        """Run one delivery. Returns None when the message was left for redelivery."""
        city_id = message.attributes.get("cityId", "?")
        try:
            result = await asyncio.wait_for(self._handler.consume(message), timeout=self._budget)
        except DecodeFailure as e:
            logger.error(
                "%s: undecodable message %s (receive %d), leaving for redelivery: %s",
                self.name, message.message_id, message.receive_count, e,
            )
            return None
        except asyncio.TimeoutError:
            logger.error(
                "%s: %s exceeded %.0fs budget (receive %d), leaving for redelivery",
                self.name, city_id, self._budget, message.receive_count,
            )
            return None
        except Exception:
            logger.exception("%s: unexpected error on %s, leaving for redelivery", self.name, city_id)
            return None

        if result.acknowledge:
            try:
                await self._queue.delete(message.receipt_handle)
            except QueueUnavailable as e:
                logger.error("%s: could not delete message for %s: %s", self.name, city_id, e)
        else:
            logger.info("%s: keeping message for %s (%s)", self.name, city_id, result.outcome.value)
        return result
