from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

from loguru import logger

from docvault_worker.app.constants import ProcessingStatus
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.error_categorizer import categorize, is_transient
from docvault_worker.app.domain.errors import DocumentNotFoundError
from docvault_worker.app.domain.outcome import Outcome, Retryable, Success, Terminal
from docvault_worker.app.ports.document_repository import DocumentRepository
from docvault_worker.app.ports.search_index import SearchIndex

INDEXED = "indexed"
SKIPPED = "skipped"


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class IndexingCoordinator:
    """Pushes the OCR text of a COMPLETED job into the search index.

    Jobs that are not completed, or carry no content at all, are skipped with a
    warning. An empty string is real content and is indexed.
    """

    def __init__(self, repository: DocumentRepository, search_index: SearchIndex) -> None:
        self._repository = repository
        self._search_index = search_index

    async def index(self, document_id: str) -> Outcome:
        job = await self._repository.find(document_id)
        if job is None:
            logger.bind(service_name=SERVICE_NAME, event="indexing_document_missing", document_id=document_id).error("")
            return Terminal(DocumentNotFoundError(document_id), reason="document not found")

        if job.status != ProcessingStatus.COMPLETED or job.content is None:
            reason = "not completed" if job.status != ProcessingStatus.COMPLETED else "no content"
            logger.bind(
                service_name=SERVICE_NAME,
                event="indexing_skipped",
                document_id=document_id,
                status=job.status.value,
                reason=reason,
            ).warning("")
            return Success(SKIPPED)

        try:
            await self._search_index.index(document_id, job.content)
        except Exception as exc:
            category = categorize(exc)
            if is_transient(category):
                logger.bind(
                    service_name=SERVICE_NAME,
                    event="indexing_retry_requested",
                    document_id=document_id,
                    error_type=type(exc).__name__,
                ).warning(str(exc))
                return Retryable(exc)
            logger.opt(exception=exc).bind(
                service_name=SERVICE_NAME,
                event="indexing_failed",
                document_id=document_id,
                error_type=type(exc).__name__,
                category=category.value,
            ).error(str(exc))
            return Terminal(exc, reason="indexing rejected")

        await self._repository.save(replace(job, indexed_at=datetime.now(timezone.utc)))
        _log("document_indexed", document_id=document_id, content_length=len(job.content))
        return Success(INDEXED)
