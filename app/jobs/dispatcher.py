"""Work queue interface used for hand-offs between pipeline stages."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Dict, List

from app.jobs.models import JobRecord


@dataclass
class QueueMessage:
    """One leased delivery of a queued message."""
    message_id: str
    receipt_handle: str
    body: str
    attributes: Dict[str, str] = field(default_factory=dict)
    receive_count: int = 1


class WorkQueue(ABC):
    """At-least-once queue with leases and dead-lettering.

    A received message stays invisible for the lease duration. If it is not
    deleted before the lease expires it becomes receivable again; after
    ``max_receive_count`` receives it moves to the dead-letter list.
    """

    name: str = "queue"

    @abstractmethod
    async def enqueue(self, record: JobRecord) -> str:
        """Send a job record snapshot. Returns the message id."""
        ...

    @abstractmethod
    async def receive(self, max_messages: int = 1, lease_seconds: float = 300) -> List[QueueMessage]:
        """Lease up to ``max_messages`` visible messages."""
        ...

    @abstractmethod
    async def delete(self, receipt_handle: str) -> bool:
        """Acknowledge a delivery. Returns False if the receipt is stale."""
        ...

    @abstractmethod
    def dead_letters(self) -> List[QueueMessage]:
        """Messages that exceeded the receive limit."""
        ...

    @abstractmethod
    def depth(self) -> int:
        """Number of messages not yet deleted or dead-lettered."""
        ...

    async def close(self) -> None:
        """Stop accepting sends and receives. Further calls raise QueueUnavailable."""
