"""Port: message consumer for the processing queue. Implementations live in infrastructure."""
from __future__ import annotations

from typing import Awaitable, Callable, Protocol

from docvault_worker.app.ports.incoming_message import IncomingMessage

MessageHandler = Callable[[IncomingMessage], Awaitable[None]]


class MessageConsumer(Protocol):
    async def connect(self) -> None: ...

    async def start_consuming(self, handler: MessageHandler) -> str:
        """Start consuming; call handler for each message. Returns consumer tag for cancellation."""
        ...

    async def cancel(self, consumer_tag: str) -> None: ...

    async def close(self) -> None: ...
