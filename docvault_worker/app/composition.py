"""Worker composition root: build and lifecycle-manage concrete dependencies.

Composition may: import concrete classes, call factories, store interface types,
manage high-level lifecycle.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from docvault_worker.app.application.indexing_coordinator import IndexingCoordinator
from docvault_worker.app.application.processing_orchestrator import DocumentProcessingOrchestrator
from docvault_worker.app.application.queue_monitor import QueueMonitor
from docvault_worker.app.application.retry_coordinator import RetryCoordinator
from docvault_worker.app.application.stuck_task_recovery import StuckTaskRecovery
from docvault_worker.app.config.settings import Settings
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.ocr_service_client import OcrServiceClient, create_ocr_client
from docvault_worker.app.infrastructure.http.factory import create_http_client
from docvault_worker.app.infrastructure.messaging.factory import create_message_consumer
from docvault_worker.app.infrastructure.persistence.factory import create_document_repository
from docvault_worker.app.infrastructure.search.factory import create_search_index
from docvault_worker.app.messaging.consumer import MessageDispatcher
from docvault_worker.app.ports.document_repository import DocumentRepository
from docvault_worker.app.ports.http_client import AbstractHttpClient
from docvault_worker.app.ports.message_consumer import MessageConsumer
from docvault_worker.app.ports.search_index import SearchIndex


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class WorkerDependencies:
    """Holds wired worker dependencies and their lifecycle.

    `connect(consume=False)` skips the broker (operator CLI); `persistence=False`
    additionally skips the database and search index, leaving only the OCR side.
    """

    def __init__(self, *, settings: Settings) -> None:
        self._settings = settings
        self._http_client: AbstractHttpClient | None = None
        self._ocr_client: OcrServiceClient | None = None
        self._recovery: StuckTaskRecovery | None = None
        self._monitor: QueueMonitor | None = None
        self._repository: DocumentRepository | None = None
        self._search_index: SearchIndex | None = None
        self._retry_coordinator: RetryCoordinator | None = None
        self._orchestrator: DocumentProcessingOrchestrator | None = None
        self._dispatcher: MessageDispatcher | None = None
        self._message_consumer: MessageConsumer | None = None

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def ocr_client(self) -> OcrServiceClient:
        if self._ocr_client is None:
            raise RuntimeError("ocr_client is not initialized")
        return self._ocr_client

    @property
    def recovery(self) -> StuckTaskRecovery:
        if self._recovery is None:
            raise RuntimeError("recovery is not initialized")
        return self._recovery

    @property
    def monitor(self) -> QueueMonitor:
        if self._monitor is None:
            raise RuntimeError("monitor is not initialized")
        return self._monitor

    @property
    def retry_coordinator(self) -> RetryCoordinator:
        if self._retry_coordinator is None:
            raise RuntimeError("retry_coordinator is not initialized")
        return self._retry_coordinator

    @property
    def dispatcher(self) -> MessageDispatcher:
        if self._dispatcher is None:
            raise RuntimeError("dispatcher is not initialized")
        return self._dispatcher

    @property
    def message_consumer(self) -> MessageConsumer:
        if self._message_consumer is None:
            raise RuntimeError("message_consumer is not initialized")
        return self._message_consumer

    async def connect(self, *, consume: bool = True, persistence: bool = True) -> None:
        settings = self._settings
        self._http_client = create_http_client(user_agent="docvault-worker")
        self._ocr_client = create_ocr_client(self._http_client, settings)
        self._recovery = StuckTaskRecovery(
            self._ocr_client,
            default_timeout_minutes=settings.stuck_task_timeout_minutes,
        )
        self._monitor = QueueMonitor(self._ocr_client, self._recovery, self._ocr_client.breaker)

        if persistence:
            self._repository = await create_document_repository(settings)
            self._search_index = create_search_index(settings, self._http_client)
            indexing = IndexingCoordinator(self._repository, self._search_index)
            self._retry_coordinator = RetryCoordinator(
                self._repository,
                max_transient_failures=settings.max_retries,
            )
            self._orchestrator = DocumentProcessingOrchestrator(
                self._repository,
                self._ocr_client,
                indexing,
                self._retry_coordinator,
                poll_interval_seconds=settings.ocr_status_poll_interval_seconds,
                max_status_polls=settings.ocr_max_status_polls,
            )
            self._retry_coordinator.attach(self._orchestrator)
            self._dispatcher = MessageDispatcher(self._orchestrator, self._retry_coordinator, indexing)

        if consume:
            self._message_consumer = create_message_consumer(settings)
            await self._message_consumer.connect()
        _log("dependencies_connected", consume=consume, persistence=persistence)

    async def close(self) -> None:
        if self._message_consumer is not None:
            try:
                await self._message_consumer.close()
            except Exception as exc:
                logger.warning("message consumer close failed: {}", exc)
            self._message_consumer = None

        if self._search_index is not None:
            try:
                await self._search_index.close()
            except Exception as exc:
                logger.warning("search index close failed: {}", exc)
            self._search_index = None

        if self._http_client is not None:
            try:
                await self._http_client.close()
            except Exception as exc:
                logger.warning("http client close failed: {}", exc)
            self._http_client = None

        if self._repository is not None:
            try:
                await self._repository.close()
            except Exception as exc:
                logger.warning("repository close failed: {}", exc)
            self._repository = None
