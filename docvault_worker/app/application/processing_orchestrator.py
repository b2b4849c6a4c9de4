from __future__ import annotations

import asyncio
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Protocol

from loguru import logger

from docvault_worker.app.application.indexing_coordinator import IndexingCoordinator
from docvault_worker.app.application.retry_coordinator import RetryCoordinator
from docvault_worker.app.constants import OcrTaskStatus, ProcessingStatus
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.error_categorizer import categorize, is_transient
from docvault_worker.app.domain.errors import (
    DocumentNotFoundError,
    OcrTaskFailedError,
    OcrTaskPendingError,
    StateConflictError,
)
from docvault_worker.app.domain.models import ErrorDescriptor, ProcessingJob, TaskStatusReport
from docvault_worker.app.domain.outcome import Outcome, Success, Terminal
from docvault_worker.app.domain.status_machine import transition
from docvault_worker.app.ports.document_repository import DocumentRepository


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class OcrGateway(Protocol):
    async def submit(self, document_id: str, file_path: str | None, language: str | None = None) -> str: ...

    async def query_status(self, task_id: str) -> TaskStatusReport: ...


class DocumentProcessingOrchestrator:
    """
    Drives one document through OCR: QUEUED -> PROCESSING -> COMPLETED | FAILED.

    Expected failures come back as an Outcome; only infrastructure errors outside the
    OCR exchange (e.g. the repository itself) propagate. Redelivery is safe:
    - PROCESSING with a stored task_id resumes polling instead of submitting again;
    - COMPLETED without indexed_at re-runs indexing only;
    - COMPLETED and indexed is acknowledged as a duplicate.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        ocr: OcrGateway,
        indexing: IndexingCoordinator,
        retry_coordinator: RetryCoordinator,
        *,
        poll_interval_seconds: float = 2.0,
        max_status_polls: int = 30,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if max_status_polls < 1:
            raise ValueError("max_status_polls must be at least 1")
        self._repository = repository
        self._ocr = ocr
        self._indexing = indexing
        self._retry = retry_coordinator
        self._poll_interval = float(poll_interval_seconds)
        self._max_polls = int(max_status_polls)
        self._sleep = sleep

    async def process(self, document_id: str) -> Outcome:
        job = await self._repository.find(document_id)
        if job is None:
            logger.bind(service_name=SERVICE_NAME, event="document_not_found", document_id=document_id).error("")
            return Terminal(DocumentNotFoundError(document_id), reason="document not found")

        if job.status == ProcessingStatus.COMPLETED:
            if job.indexed_at is None:
                _log("indexing_resumed", document_id=document_id)
                return await self._indexing.index(document_id)
            _log("duplicate_delivery_ignored", document_id=document_id, status=job.status.value)
            return Success(job)

        try:
            job = await self._start(job)
        except StateConflictError as exc:
            logger.bind(
                service_name=SERVICE_NAME,
                event="processing_rejected",
                document_id=document_id,
                status=job.status.value,
            ).warning(str(exc))
            return Terminal(exc, reason="job is not processable")

        try:
            job = await self._ensure_submitted(job)
            report = await self._await_result(job)
        except Exception as exc:
            return await self._handle_failure(job, exc)

        return await self._complete(job, report)

    async def _start(self, job: ProcessingJob) -> ProcessingJob:
        if job.status == ProcessingStatus.PROCESSING:
            _log("processing_resumed", document_id=job.document_id, task_id=job.task_id)
            return job
        started = transition(job, ProcessingStatus.PROCESSING)
        await self._repository.save(started)
        _log("processing_started", document_id=job.document_id, attempt_count=started.attempt_count)
        return started

    async def _ensure_submitted(self, job: ProcessingJob) -> ProcessingJob:
        if job.task_id:
            return job
        task_id = await self._ocr.submit(job.document_id, job.file_path, job.language)
        job = replace(job, task_id=task_id)
        await self._repository.save(job)
        return job

    async def _await_result(self, job: ProcessingJob) -> TaskStatusReport:
        task_id = job.task_id or ""
        for poll in range(1, self._max_polls + 1):
            report = await self._ocr.query_status(task_id)
            if report.finished:
                break
            if poll < self._max_polls:
                await self._sleep(self._poll_interval)
        else:
            raise OcrTaskPendingError(task_id, self._max_polls)

        if report.status == OcrTaskStatus.FAILED:
            raise OcrTaskFailedError(task_id, report.error_detail)
        return report

    async def _complete(self, job: ProcessingJob, report: TaskStatusReport) -> Outcome:
        completed = replace(
            transition(job, ProcessingStatus.COMPLETED),
            content=report.text or "",
            confidence=report.confidence,
            transient_failures=0,
            last_error=None,
        )
        await self._repository.save(completed)
        _log(
            "processing_completed",
            document_id=job.document_id,
            task_id=job.task_id,
            confidence=report.confidence,
            content_length=len(completed.content or ""),
        )
        return await self._indexing.index(job.document_id)

    async def _handle_failure(self, job: ProcessingJob, error: Exception) -> Outcome:
        category = categorize(error)
        _log(
            "failure_categorized",
            document_id=job.document_id,
            error_type=type(error).__name__,
            category=category.value,
            error=str(error),
        )
        if isinstance(error, OcrTaskFailedError):
            # the next attempt must submit a fresh task
            job = replace(job, task_id=None)

        if is_transient(category):
            return await self._retry.on_transient_failure(job, error)

        now = datetime.now(timezone.utc)
        failed = replace(
            transition(job, ProcessingStatus.FAILED, now=now),
            last_error=ErrorDescriptor(
                message=str(error),
                category=category,
                timestamp=now,
                error_type=type(error).__name__,
            ),
        )
        await self._repository.save(failed)
        logger.opt(exception=error).bind(
            service_name=SERVICE_NAME,
            event="permanent_failure",
            document_id=job.document_id,
            error_type=type(error).__name__,
            category=category.value,
            attempt_count=job.attempt_count,
        ).error(str(error))
        return Terminal(error, reason="permanent failure")
