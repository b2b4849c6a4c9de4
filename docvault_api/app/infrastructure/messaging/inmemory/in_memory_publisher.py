"""Publisher for running the API without a broker (PUBLISHER_BACKEND=inmemory).

Nothing consumes the queue, so retries requested here are recorded and logged only.
"""
from __future__ import annotations

from collections import deque
from typing import Any

from loguru import logger

from docvault_api.app.core import SERVICE_NAME


class InMemoryPublisher:
    def __init__(self, *, max_messages: int = 1000) -> None:
        self.messages: deque[dict[str, Any]] = deque(maxlen=max_messages)
        self._open = False

    @property
    def ready(self) -> bool:
        return self._open

    async def connect(self) -> None:
        self._open = True

    async def publish(self, message: dict[str, Any]) -> None:
        self.messages.append(dict(message))
        logger.bind(
            service_name=SERVICE_NAME,
            event="publish_recorded",
            type=message.get("type", ""),
            document_id=message.get("document_id", ""),
        ).debug("")

    async def close(self) -> None:
        self._open = False
