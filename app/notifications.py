"""Fire-and-forget notification channel."""

import json
import logging
from abc import ABC, abstractmethod
from collections import deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Tuple

logger = logging.getLogger(__name__)


class Notifier(ABC):
    @abstractmethod
    async def publish(self, subject: str, message: Dict[str, Any]) -> None:
        ...


class LoggingNotifier(Notifier):
    """Writes each notification to the log and keeps the most recent ones."""

    def __init__(self, topic: str, history: int = 500):
        self.topic = topic
        self._published: Deque[Tuple[str, Dict[str, Any]]] = deque(maxlen=history)

    async def publish(self, subject: str, message: Dict[str, Any]) -> None:
        self._published.append((subject, message))
        logger.info("[%s] %s: %s", self.topic, subject, json.dumps(message, default=str))

    @property
    def published(self) -> List[Tuple[str, Dict[str, Any]]]:
        return list(self._published)

    def subjects(self) -> List[str]:
        return [subject for subject, _ in self._published]


async def notify_best_effort(notifier: Notifier, subject: str, message: Dict[str, Any]) -> bool:
    """Publish, logging instead of raising on failure.

    Notifications are observability only; a failed publish never fails the
    stage that sent it.
    """
    payload = {**message, "timestamp": datetime.now(timezone.utc).isoformat()}
    try:
        await notifier.publish(subject, payload)
        return True
    except Exception as e:
        logger.warning("Notification '%s' not published: %s: %s", subject, type(e).__name__, e)
        return False
