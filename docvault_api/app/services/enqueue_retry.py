"""
Accepts plain Python types and the MessagePublisher abstraction; returns an outcome.
Router translates outcome to HTTP status codes and content.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from docvault_api.app.ports.message_publisher import MessagePublisher
from docvault_worker.app.constants import MessageType


@dataclass(frozen=True)
class EnqueueOutcome:
    success: bool
    document_id: str
    error: str | None = None


async def enqueue_retry(document_id: str, reason: str | None, publisher: MessagePublisher) -> EnqueueOutcome:
    """Publish a retry_failed_task message; the worker performs the retry."""
    if not publisher.ready:
        return EnqueueOutcome(success=False, document_id=document_id, error="publisher_not_ready")

    message: dict[str, Any] = {
        "type": MessageType.RETRY_FAILED_TASK,
        "document_id": document_id,
        "reason": reason,
        "requested_at": datetime.now(tz=timezone.utc).isoformat(),
    }
    try:
        await publisher.publish(message)
    except Exception as e:
        return EnqueueOutcome(success=False, document_id=document_id, error=str(e) or type(e).__name__)
    return EnqueueOutcome(success=True, document_id=document_id)
