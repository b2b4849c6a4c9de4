from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from docvault_worker.app.application.indexing_coordinator import IndexingCoordinator
from docvault_worker.app.application.processing_orchestrator import DocumentProcessingOrchestrator
from docvault_worker.app.application.retry_coordinator import RetryCoordinator
from docvault_worker.app.constants import ProcessingStatus
from docvault_worker.app.domain.error_categorizer import ErrorCategory
from docvault_worker.app.domain.errors import DocumentNotFoundError, ServerError, TransportError
from docvault_worker.app.domain.models import ErrorDescriptor
from docvault_worker.app.domain.outcome import Retryable, Success, Terminal
from docvault_worker.app.messaging.consumer import MessageDispatcher, create_message_handler
from tests.conftest import (
    FakeMessage,
    FakeOcr,
    FakeSearchIndex,
    InMemoryRepository,
    completed_report,
    make_job,
    no_sleep,
)

_PREVIOUS = ErrorDescriptor("ocr engine crashed", ErrorCategory.PERMANENT, datetime(2024, 1, 1, tzinfo=timezone.utc))


def _wire(repo, ocr, *, max_retries=5):
    retry = RetryCoordinator(repo, max_transient_failures=max_retries)
    orchestrator = DocumentProcessingOrchestrator(
        repo,
        ocr,
        IndexingCoordinator(repo, FakeSearchIndex()),
        retry,
        max_status_polls=2,
        sleep=no_sleep,
    )
    retry.attach(orchestrator)
    return retry


def test_manual_retry_requeues_and_reprocesses_failed_job(log_records):
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.FAILED, attempt_count=1, last_error=_PREVIOUS))
    ocr = FakeOcr(reports=[completed_report("second time lucky")])
    retry = _wire(repo, ocr)

    outcome = asyncio.run(retry.retry("doc-1", "operator fixed the file"))

    assert isinstance(outcome, Success)
    assert repo.statuses()[0] is ProcessingStatus.QUEUED
    job = repo.jobs["doc-1"]
    assert job.status is ProcessingStatus.COMPLETED
    assert job.attempt_count == 2
    requested = [r for r in log_records if r["extra"].get("event") == "manual_retry_requested"]
    assert requested[0]["extra"]["reason"] == "operator fixed the file"
    assert requested[0]["extra"]["previous_error"] == "ocr engine crashed"


@pytest.mark.parametrize("status", [ProcessingStatus.QUEUED, ProcessingStatus.PROCESSING, ProcessingStatus.COMPLETED])
def test_manual_retry_of_non_failed_job_changes_nothing(status):
    repo = InMemoryRepository(make_job("doc-1", status))
    ocr = FakeOcr(reports=[completed_report()])
    retry = _wire(repo, ocr)

    outcome = asyncio.run(retry.retry("doc-1"))

    assert isinstance(outcome, Success)
    assert repo.saved == []
    assert ocr.submitted == []


def test_manual_retry_of_unknown_document_is_a_noop():
    repo = InMemoryRepository()
    outcome = asyncio.run(_wire(repo, FakeOcr(reports=[completed_report()])).retry("ghost"))
    assert isinstance(outcome, Terminal)
    assert isinstance(outcome.error, DocumentNotFoundError)
    assert repo.saved == []


def test_transient_failure_during_manual_retry_returns_job_to_failed_and_raises():
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.FAILED, last_error=_PREVIOUS))
    retry = _wire(repo, FakeOcr(submit_error=ServerError("ocr 503", status_code=503)))

    with pytest.raises(ServerError):
        asyncio.run(retry.retry("doc-1"))

    job = repo.jobs["doc-1"]
    assert job.status is ProcessingStatus.FAILED
    assert job.attempt_count == 1
    assert job.last_error.category is ErrorCategory.TRANSIENT


def test_retry_without_processor_is_a_wiring_error():
    retry = RetryCoordinator(InMemoryRepository(), max_transient_failures=3)
    with pytest.raises(RuntimeError):
        asyncio.run(retry.retry("doc-1"))


def test_on_transient_failure_below_budget_requests_redelivery():
    repo = InMemoryRepository()
    retry = RetryCoordinator(repo, max_transient_failures=3)
    job = make_job("doc-1", ProcessingStatus.PROCESSING, transient_failures=1)

    outcome = asyncio.run(retry.on_transient_failure(job, TransportError("timeout")))

    assert isinstance(outcome, Retryable)
    assert repo.jobs["doc-1"].transient_failures == 2
    assert repo.jobs["doc-1"].status is ProcessingStatus.PROCESSING


def test_zero_budget_never_dead_letters():
    repo = InMemoryRepository()
    retry = RetryCoordinator(repo, max_transient_failures=0)
    job = make_job("doc-1", ProcessingStatus.PROCESSING, transient_failures=99)
    outcome = asyncio.run(retry.on_transient_failure(job, TransportError("timeout")))
    assert isinstance(outcome, Retryable)


class FlakyRepository(InMemoryRepository):
    """Fails saves of jobs in `fail_status`, `failures` times (forever when None)."""

    def __init__(self, *jobs, fail_status, failures=1):
        super().__init__(*jobs)
        self._fail_status = fail_status
        self._failures = failures

    async def save(self, job):
        if job.status is self._fail_status and (self._failures is None or self._failures > 0):
            if self._failures is not None:
                self._failures -= 1
            raise TransportError("document store unavailable", service="document-store")
        await super().save(job)


def _retry_handler(repo, ocr, *, max_retries):
    retry = RetryCoordinator(repo, max_transient_failures=max_retries)
    indexing = IndexingCoordinator(repo, FakeSearchIndex())
    orchestrator = DocumentProcessingOrchestrator(repo, ocr, indexing, retry, max_status_polls=2, sleep=no_sleep)
    retry.attach(orchestrator)
    return create_message_handler(MessageDispatcher(orchestrator, retry, indexing))


def _deliver_until_settled(handler, limit=10):
    """Redeliver one retry message while it is requeued; returns every delivery."""
    deliveries = []
    for _ in range(limit):
        message = FakeMessage({"type": "retry_failed_task", "document_id": "doc-1"}, redelivered=bool(deliveries))
        asyncio.run(handler(message))
        deliveries.append(message)
        if not (message.nacked and message.requeue):
            break
    return deliveries


def test_redelivered_manual_retry_spends_the_transient_budget():
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.FAILED, last_error=_PREVIOUS))
    handler = _retry_handler(repo, FakeOcr(submit_error=TransportError("ocr unreachable")), max_retries=3)

    deliveries = _deliver_until_settled(handler)

    assert [m.nacked for m in deliveries] == [True, True, False]
    assert deliveries[-1].acked
    job = repo.jobs["doc-1"]
    assert job.status is ProcessingStatus.FAILED
    assert job.transient_failures == 3
    assert job.attempt_count == 1
    assert job.last_error.category is ErrorCategory.TRANSIENT


def test_manual_retry_after_dead_letter_gets_a_fresh_budget():
    exhausted = ErrorDescriptor("ocr unreachable", ErrorCategory.TRANSIENT, datetime(2024, 1, 1, tzinfo=timezone.utc))
    repo = InMemoryRepository(
        make_job("doc-1", ProcessingStatus.FAILED, attempt_count=1, transient_failures=3, last_error=exhausted)
    )
    retry = _wire(repo, FakeOcr(submit_error=TransportError("ocr unreachable")), max_retries=3)

    with pytest.raises(TransportError):
        asyncio.run(retry.retry("doc-1"))

    job = repo.jobs["doc-1"]
    assert (job.status, job.attempt_count, job.transient_failures) == (ProcessingStatus.FAILED, 2, 1)


def test_interrupted_manual_retry_returns_job_to_failed_and_is_redelivered():
    repo = FlakyRepository(
        make_job("doc-1", ProcessingStatus.FAILED, last_error=_PREVIOUS),
        fail_status=ProcessingStatus.PROCESSING,
    )
    handler = _retry_handler(repo, FakeOcr(reports=[completed_report("recovered")]), max_retries=3)

    deliveries = _deliver_until_settled(handler)

    assert deliveries[0].nacked and deliveries[0].requeue is True
    assert repo.statuses()[:2] == [ProcessingStatus.QUEUED, ProcessingStatus.FAILED]
    assert deliveries[-1].acked
    job = repo.jobs["doc-1"]
    assert job.status is ProcessingStatus.COMPLETED
    assert job.content == "recovered"
    assert job.attempt_count == 1


def test_interrupted_manual_retry_dead_letters_when_budget_is_spent():
    repo = FlakyRepository(
        make_job("doc-1", ProcessingStatus.FAILED, last_error=_PREVIOUS),
        fail_status=ProcessingStatus.PROCESSING,
        failures=None,
    )
    handler = _retry_handler(repo, FakeOcr(reports=[completed_report()]), max_retries=2)

    deliveries = _deliver_until_settled(handler)

    assert len(deliveries) == 2
    assert deliveries[-1].acked
    job = repo.jobs["doc-1"]
    assert job.status is ProcessingStatus.FAILED
    assert job.transient_failures == 2


def test_interrupted_manual_retry_with_permanent_error_is_rejected_and_left_failed():
    class BrokenRepository(InMemoryRepository):
        async def save(self, job):
            if job.status is ProcessingStatus.PROCESSING:
                raise KeyError("status")
            await super().save(job)

    repo = BrokenRepository(make_job("doc-1", ProcessingStatus.FAILED, last_error=_PREVIOUS))
    handler = _retry_handler(repo, FakeOcr(reports=[completed_report()]), max_retries=3)

    deliveries = _deliver_until_settled(handler)

    assert len(deliveries) == 1
    assert deliveries[0].rejected and deliveries[0].requeue is False
    job = repo.jobs["doc-1"]
    assert job.status is ProcessingStatus.FAILED
    assert job.transient_failures == 0
    assert job.last_error.category is ErrorCategory.PERMANENT
