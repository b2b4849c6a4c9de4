"""
Composition root: the one place concrete implementations are wired.

Builds the publisher, the document store and the OCR monitoring stack (client with its
own breaker, stuck-task recovery, queue monitor). Lifespan copies them onto app.state.
"""
from __future__ import annotations

from loguru import logger

from docvault_api.app.config.settings import Settings
from docvault_api.app.core import SERVICE_NAME
from docvault_api.app.infrastructure.messaging.factory import create_publisher
from docvault_api.app.infrastructure.persistence.factory import create_document_store
from docvault_api.app.ports.document_store import DocumentStore
from docvault_api.app.ports.message_publisher import MessagePublisher
from docvault_worker.app.application.queue_monitor import QueueMonitor
from docvault_worker.app.application.stuck_task_recovery import StuckTaskRecovery
from docvault_worker.app.domain.ocr_service_client import create_ocr_client
from docvault_worker.app.infrastructure.http.factory import create_http_client
from docvault_worker.app.ports.http_client import AbstractHttpClient


class AppDependencies:
    """Wired dependencies. Connect order is publisher then store; close runs in reverse."""

    def __init__(
        self,
        *,
        settings: Settings,
        publisher: MessagePublisher,
        document_store: DocumentStore,
        http_client: AbstractHttpClient,
        stuck_task_recovery: StuckTaskRecovery,
        queue_monitor: QueueMonitor,
    ) -> None:
        self.settings = settings
        self.publisher = publisher
        self.document_store = document_store
        self.stuck_task_recovery = stuck_task_recovery
        self.queue_monitor = queue_monitor
        self._http_client = http_client
        self._connected: list[MessagePublisher | DocumentStore] = []

    async def connect(self) -> None:
        for component in (self.publisher, self.document_store):
            try:
                await component.connect()
            except Exception:
                await self.close()
                raise
            self._connected.append(component)

    async def close(self) -> None:
        while self._connected:
            component = self._connected.pop()
            try:
                await component.close()
            except Exception as exc:
                logger.bind(service_name=SERVICE_NAME, event="component_close_failed").warning(
                    "{} close failed: {}", type(component).__name__, exc
                )
        await self._http_client.close()


def create_app_dependencies(settings: Settings | None = None) -> AppDependencies:
    """Build all app dependencies. Caller owns lifecycle (connect/close)."""
    settings = settings or Settings()
    http_client = create_http_client(user_agent="docvault-api")
    ocr_client = create_ocr_client(http_client, settings)
    recovery = StuckTaskRecovery(ocr_client, default_timeout_minutes=settings.stuck_task_timeout_minutes)
    monitor = QueueMonitor(
        ocr_client,
        recovery,
        ocr_client.breaker,
        stuck_warning_threshold=settings.stuck_warning_threshold,
        dead_letter_critical_threshold=settings.dead_letter_critical_threshold,
    )
    return AppDependencies(
        settings=settings,
        publisher=create_publisher(settings),
        document_store=create_document_store(settings),
        http_client=http_client,
        stuck_task_recovery=recovery,
        queue_monitor=monitor,
    )
