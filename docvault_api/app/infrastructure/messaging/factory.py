"""Publisher factory: the only place that imports concrete publishers."""
from __future__ import annotations

from typing import Callable

from docvault_api.app.config.settings import Settings
from docvault_api.app.infrastructure.messaging.inmemory.in_memory_publisher import InMemoryPublisher
from docvault_api.app.infrastructure.messaging.rabbitmq.rabbitmq_publisher import RabbitMQPublisher
from docvault_api.app.ports.message_publisher import MessagePublisher

_BACKENDS: dict[str, Callable[[Settings], MessagePublisher]] = {
    "rabbitmq": RabbitMQPublisher,
    "inmemory": lambda settings: InMemoryPublisher(),
}


def create_publisher(settings: Settings) -> MessagePublisher:
    backend = settings.publisher_backend.strip().lower()
    try:
        build = _BACKENDS[backend]
    except KeyError:
        raise ValueError(f"Unsupported publisher backend {backend!r}; expected one of {sorted(_BACKENDS)}") from None
    return build(settings)
