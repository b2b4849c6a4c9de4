"""Queue message handling: parse, dispatch to the application layer, settle with the broker."""
from __future__ import annotations

import json
from typing import Any

from loguru import logger

from docvault_worker.app.application.indexing_coordinator import IndexingCoordinator
from docvault_worker.app.application.processing_orchestrator import DocumentProcessingOrchestrator
from docvault_worker.app.application.retry_coordinator import RetryCoordinator
from docvault_worker.app.constants import MessageType
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.error_categorizer import categorize, is_transient
from docvault_worker.app.domain.models import QueueMessage
from docvault_worker.app.domain.outcome import Outcome, should_requeue
from docvault_worker.app.ports.incoming_message import IncomingMessage
from docvault_worker.app.ports.message_consumer import MessageHandler

_KNOWN_TYPES = frozenset(
    {MessageType.PROCESS_DOCUMENT, MessageType.RETRY_FAILED_TASK, MessageType.INDEX_DOCUMENT}
)


class MalformedMessageError(ValueError):
    pass


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def parse_message(raw_body: bytes) -> QueueMessage:
    try:
        body = json.loads(raw_body.decode())
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedMessageError(f"message body is not valid JSON: {exc}") from exc
    if not isinstance(body, dict):
        raise MalformedMessageError("message body must be a JSON object")

    message_type = str(body.get("type") or MessageType.PROCESS_DOCUMENT).strip()
    if message_type not in _KNOWN_TYPES:
        raise MalformedMessageError(f"unknown message type: {message_type}")
    document_id = str(body.get("document_id") or "").strip()
    if not document_id:
        raise MalformedMessageError("message missing required field: document_id")
    reason = body.get("reason")
    return QueueMessage(
        type=message_type,
        document_id=document_id,
        reason=str(reason) if reason is not None else None,
    )


class MessageDispatcher:
    def __init__(
        self,
        orchestrator: DocumentProcessingOrchestrator,
        retry_coordinator: RetryCoordinator,
        indexing: IndexingCoordinator,
    ) -> None:
        self._orchestrator = orchestrator
        self._retry = retry_coordinator
        self._indexing = indexing

    async def dispatch(self, message: QueueMessage) -> Outcome:
        if message.type == MessageType.RETRY_FAILED_TASK:
            return await self._retry.retry(message.document_id, message.reason)
        if message.type == MessageType.INDEX_DOCUMENT:
            return await self._indexing.index(message.document_id)
        return await self._orchestrator.process(message.document_id)


def create_message_handler(dispatcher: MessageDispatcher) -> MessageHandler:
    """
    Build the consumer callback. Each message is settled exactly once:
    - malformed body: reject, no requeue;
    - Retryable outcome: nack with requeue, the broker redelivers;
    - Success / Terminal outcome: ack;
    - escaping exception: requeue when transient, otherwise reject.
    """

    async def on_message(message: IncomingMessage) -> None:
        try:
            payload = parse_message(message.body)
        except MalformedMessageError as exc:
            logger.bind(service_name=SERVICE_NAME, event="message_rejected").warning(str(exc))
            await message.reject(requeue=False)
            return

        _log(
            "message_received",
            type=payload.type,
            document_id=payload.document_id,
            redelivered=message.redelivered,
        )
        try:
            outcome = await dispatcher.dispatch(payload)
        except Exception as exc:
            requeue = is_transient(categorize(exc))
            logger.exception("message handling failed for {}: {}", payload.document_id, exc)
            if not message.processed:
                if requeue:
                    await message.nack(requeue=True)
                else:
                    await message.reject(requeue=False)
            return

        if should_requeue(outcome):
            await message.nack(requeue=True)
        else:
            await message.ack()
        _log(
            "message_settled",
            type=payload.type,
            document_id=payload.document_id,
            outcome=type(outcome).__name__,
            requeued=should_requeue(outcome),
        )

    return on_message
