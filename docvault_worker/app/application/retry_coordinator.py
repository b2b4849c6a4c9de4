from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Awaitable, Protocol

from loguru import logger

from docvault_worker.app.constants import ProcessingStatus
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.error_categorizer import ErrorCategory, categorize, is_transient
from docvault_worker.app.domain.errors import DocumentNotFoundError
from docvault_worker.app.domain.models import ErrorDescriptor, ProcessingJob
from docvault_worker.app.domain.outcome import Outcome, Retryable, Success, Terminal
from docvault_worker.app.domain.status_machine import can_transition, transition
from docvault_worker.app.ports.document_repository import DocumentRepository


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class DocumentProcessor(Protocol):
    def process(self, document_id: str) -> Awaitable[Outcome]: ...


class RetryCoordinator:
    """
    Owns both retry paths.

    Automatic: `on_transient_failure` records the failure and hands the message back
    to the transport for redelivery, until `max_transient_failures` redeliveries have
    failed; then the job is dead-lettered as FAILED. A value <= 0 disables the budget.

    Manual: `retry` moves a FAILED job back to QUEUED and re-runs the orchestrator.
    Jobs in any other status are left alone. The processor is attached after
    construction because the orchestrator itself depends on this coordinator.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        *,
        max_transient_failures: int,
        processor: DocumentProcessor | None = None,
    ) -> None:
        self._repository = repository
        self._max_transient_failures = int(max_transient_failures)
        self._processor = processor

    def attach(self, processor: DocumentProcessor) -> None:
        self._processor = processor

    async def on_transient_failure(self, job: ProcessingJob, error: BaseException) -> Outcome:
        now = datetime.now(timezone.utc)
        failures = job.transient_failures + 1
        job = replace(
            job,
            transient_failures=failures,
            last_error=_descriptor(error, ErrorCategory.TRANSIENT, now),
        )

        if self._exhausted(failures) and can_transition(job.status, ProcessingStatus.FAILED):
            await self._repository.save(transition(job, ProcessingStatus.FAILED, now=now))
            self._log_dead_lettered(job, error)
            return Terminal(error, reason="transient retry budget exhausted")

        await self._repository.save(job)
        _log(
            "transient_retry_requested",
            document_id=job.document_id,
            error_type=type(error).__name__,
            transient_failures=failures,
            error=str(error),
        )
        return Retryable(error)

    async def retry(self, document_id: str, reason: str | None = None) -> Outcome:
        """Manually re-run a FAILED job.

        A transient failure of the attempt puts the job back to FAILED and re-raises so
        the retry message is redelivered. A redelivered retry continues the same
        transient budget instead of starting a new one.
        """
        if self._processor is None:
            raise RuntimeError("retry coordinator has no processor attached")

        job = await self._repository.find(document_id)
        if job is None:
            logger.bind(
                service_name=SERVICE_NAME,
                event="manual_retry_document_missing",
                document_id=document_id,
            ).error("")
            return Terminal(DocumentNotFoundError(document_id), reason="document not found")

        if job.status != ProcessingStatus.FAILED:
            logger.bind(
                service_name=SERVICE_NAME,
                event="manual_retry_ignored",
                document_id=document_id,
                status=job.status.value,
            ).warning("")
            return Success(None)

        deferred = self._is_deferred(job)
        previous_error = job.last_error.message if job.last_error else None
        _log(
            "manual_retry_requested",
            document_id=document_id,
            reason=reason or "",
            previous_error=previous_error,
            attempt_count=job.attempt_count,
            transient_failures=job.transient_failures if deferred else 0,
        )
        queued = transition(job, ProcessingStatus.QUEUED)
        if deferred:
            queued = replace(
                queued,
                attempt_count=job.attempt_count,
                transient_failures=job.transient_failures,
                task_id=job.task_id,
            )
        await self._repository.save(queued)

        try:
            outcome = await self._processor.process(document_id)
        except Exception as exc:
            terminal = await self._interrupted(job, queued, exc)
            if terminal is not None:
                return terminal
            raise

        if isinstance(outcome, Retryable):
            await self._return_to_failed(document_id)
            logger.bind(
                service_name=SERVICE_NAME,
                event="manual_retry_deferred",
                document_id=document_id,
                error=str(outcome.error),
            ).warning("")
            raise outcome.error

        _log(
            "manual_retry_dispatched",
            document_id=document_id,
            attempt_count=queued.attempt_count,
            outcome=type(outcome).__name__,
        )
        return outcome

    def _exhausted(self, failures: int) -> bool:
        budget = self._max_transient_failures
        return budget > 0 and failures >= budget

    def _is_deferred(self, job: ProcessingJob) -> bool:
        """FAILED by a manual retry whose attempt failed transiently, budget not yet spent."""
        error = job.last_error
        if error is None or error.category != ErrorCategory.TRANSIENT or job.transient_failures < 1:
            return False
        return not self._exhausted(job.transient_failures)

    async def _return_to_failed(self, document_id: str) -> None:
        job = await self._repository.find(document_id)
        if job is not None and job.status == ProcessingStatus.PROCESSING:
            await self._repository.save(transition(job, ProcessingStatus.FAILED))

    async def _interrupted(
        self,
        failed: ProcessingJob,
        queued: ProcessingJob,
        error: Exception,
    ) -> Outcome | None:
        """Restore FAILED after `process` raised. Returns Terminal once the transient budget is spent."""
        now = datetime.now(timezone.utc)
        category = categorize(error)
        try:
            current = await self._repository.find(failed.document_id)
            if current is not None and current.status == ProcessingStatus.PROCESSING:
                restored = transition(current, ProcessingStatus.FAILED, now=now)
            elif current is None or current.status == ProcessingStatus.QUEUED:
                # the attempt never started: undo the QUEUED write
                restored = replace(
                    failed,
                    attempt_count=queued.attempt_count,
                    transient_failures=queued.transient_failures,
                    task_id=queued.task_id,
                    updated_at=now,
                )
            else:
                return None

            if is_transient(category):
                restored = replace(restored, transient_failures=restored.transient_failures + 1)
            restored = replace(restored, last_error=_descriptor(error, category, now))
            await self._repository.save(restored)
        except Exception as restore_error:
            logger.bind(
                service_name=SERVICE_NAME,
                event="manual_retry_restore_failed",
                document_id=failed.document_id,
                error=str(restore_error),
            ).error(str(error))
            return None

        _log(
            "manual_retry_interrupted",
            document_id=failed.document_id,
            error_type=type(error).__name__,
            category=category.value,
            transient_failures=restored.transient_failures,
        )
        if is_transient(category) and self._exhausted(restored.transient_failures):
            self._log_dead_lettered(restored, error)
            return Terminal(error, reason="transient retry budget exhausted")
        return None

    @staticmethod
    def _log_dead_lettered(job: ProcessingJob, error: BaseException) -> None:
        logger.bind(
            service_name=SERVICE_NAME,
            event="dead_lettered",
            document_id=job.document_id,
            error_type=type(error).__name__,
            transient_failures=job.transient_failures,
            attempt_count=job.attempt_count,
        ).error(str(error))


def _descriptor(error: BaseException, category: ErrorCategory, now: datetime) -> ErrorDescriptor:
    return ErrorDescriptor(
        message=str(error),
        category=category,
        timestamp=now,
        error_type=type(error).__name__,
    )
