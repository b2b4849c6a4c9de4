"""Port: publish onto the worker's processing queue."""
from __future__ import annotations

from typing import Any, Protocol


class MessagePublisher(Protocol):
    """`publish` returns once the broker has confirmed the message and raises otherwise.

    Callers check `ready` first; publishing while not ready raises without touching the broker.
    """

    @property
    def ready(self) -> bool: ...

    async def connect(self) -> None: ...

    async def publish(self, message: dict[str, Any]) -> None: ...

    async def close(self) -> None: ...
