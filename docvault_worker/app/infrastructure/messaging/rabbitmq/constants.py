"""RabbitMQ consumer lifecycle states and queue arguments."""
from enum import Enum


class ConsumerState(str, Enum):
    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    READY = "READY"
    CONSUMING = "CONSUMING"
    RECONNECTING = "RECONNECTING"
    CLOSING = "CLOSING"
    CLOSED = "CLOSED"


# Publishers beyond the length limit are refused instead of silently dropping old work.
QUEUE_OVERFLOW_POLICY = "reject-publish"
