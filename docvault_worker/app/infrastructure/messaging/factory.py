"""Message consumer factory: the only place that imports concrete consumers."""
from __future__ import annotations

from docvault_worker.app.config.settings import Settings
from docvault_worker.app.infrastructure.messaging.rabbitmq.rabbitmq_consumer import RabbitMQConsumer
from docvault_worker.app.ports.message_consumer import MessageConsumer


def create_message_consumer(settings: Settings) -> MessageConsumer:
    """RabbitMQ is the only broker; the backend setting exists so a typo fails at startup."""
    backend = settings.consumer_backend.strip().lower()
    if backend != "rabbitmq":
        raise ValueError(f"Unsupported consumer backend {backend!r}; expected 'rabbitmq'")
    return RabbitMQConsumer(settings)
