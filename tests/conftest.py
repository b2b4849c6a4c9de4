from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any

import pytest
from fastapi import FastAPI
from loguru import logger

from docvault_api.app.infrastructure.messaging.rabbitmq.constants import PublisherState
from docvault_api.app.routers.documents import documents_router
from docvault_api.app.routers.health import health_router
from docvault_api.app.routers.monitoring import monitoring_router
from docvault_worker.app.constants import OcrTaskStatus, ProcessingStatus
from docvault_worker.app.domain.models import ProcessingJob, TaskStatusReport
from docvault_worker.app.ports.http_client import RequestTimeout


def make_job(document_id: str = "doc-1", status: ProcessingStatus = ProcessingStatus.QUEUED, **kwargs: Any) -> ProcessingJob:
    kwargs.setdefault("file_path", f"/uploads/{document_id}.pdf")
    kwargs.setdefault("language", "en")
    return ProcessingJob(
        document_id=document_id,
        status=status,
        updated_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        **kwargs,
    )


class InMemoryRepository:
    """Implements DocumentRepository; keeps every saved version for assertions."""

    def __init__(self, *jobs: ProcessingJob) -> None:
        self.jobs: dict[str, ProcessingJob] = {job.document_id: job for job in jobs}
        self.saved: list[ProcessingJob] = []

    async def find(self, document_id: str) -> ProcessingJob | None:
        return self.jobs.get(document_id)

    async def save(self, job: ProcessingJob) -> None:
        self.jobs[job.document_id] = job
        self.saved.append(job)

    async def close(self) -> None:
        return

    def statuses(self) -> list[ProcessingStatus]:
        return [job.status for job in self.saved]


class FakeOcr:
    """OCR gateway double: scripted submit results and status reports."""

    def __init__(
        self,
        *,
        reports: list[TaskStatusReport | Exception] | None = None,
        submit_error: Exception | None = None,
        task_id: str = "task-1",
    ) -> None:
        self._reports = list(reports or [])
        self._submit_error = submit_error
        self._task_id = task_id
        self.submitted: list[tuple[str, str | None, str | None]] = []
        self.queried: list[str] = []

    async def submit(self, document_id: str, file_path: str | None, language: str | None = None) -> str:
        self.submitted.append((document_id, file_path, language))
        if self._submit_error is not None:
            raise self._submit_error
        return self._task_id

    async def query_status(self, task_id: str) -> TaskStatusReport:
        self.queried.append(task_id)
        item = self._reports.pop(0) if len(self._reports) > 1 else self._reports[0]
        if isinstance(item, Exception):
            raise item
        return replace(item, task_id=task_id)


def completed_report(text: str | None = "extracted text", confidence: float | None = 0.93) -> TaskStatusReport:
    return TaskStatusReport(task_id="", status=OcrTaskStatus.COMPLETED, text=text, confidence=confidence)


def running_report() -> TaskStatusReport:
    return TaskStatusReport(task_id="", status=OcrTaskStatus.PROCESSING)


def failed_report(detail: str = "unsupported image format") -> TaskStatusReport:
    return TaskStatusReport(task_id="", status=OcrTaskStatus.FAILED, error_detail=detail)


class FakeSearchIndex:
    def __init__(self, *, error: Exception | None = None) -> None:
        self.indexed: list[tuple[str, str]] = []
        self._error = error

    async def index(self, document_id: str, content: str) -> None:
        if self._error is not None:
            raise self._error
        self.indexed.append((document_id, content))

    async def close(self) -> None:
        return


async def no_sleep(_: float) -> None:
    return


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, *, text: str | None = None) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else json.dumps(payload)
        self.url = ""

    def json(self) -> Any:
        if self._payload is None and self.text:
            return json.loads(self.text)
        return self._payload


class FakeHttpClient:
    """AbstractHttpClient double keyed by (method, path suffix)."""

    def __init__(self, routes: dict[tuple[str, str], FakeResponse | Exception | list[Any]] | None = None) -> None:
        self.routes = routes or {}
        self.requests: list[dict[str, Any]] = []

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout: RequestTimeout,
        params: Any = None,
        json: Any = None,
        headers: Any = None,
    ) -> FakeResponse:
        self.requests.append({"method": method, "url": url, "params": params, "json": json, "headers": headers})
        for (route_method, suffix), result in self.routes.items():
            if route_method == method and url.endswith(suffix):
                if isinstance(result, list):
                    result = result.pop(0) if len(result) > 1 else result[0]
                if isinstance(result, Exception):
                    raise result
                return result
        return FakeResponse(404, {"detail": "no route"})

    async def close(self) -> None:
        return


class FakeMessage:
    """IncomingMessage double recording how it was settled."""

    def __init__(self, payload: dict[str, Any] | bytes, *, redelivered: bool = False) -> None:
        self.body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()
        self.redelivered = redelivered
        self.acked = False
        self.nacked = False
        self.rejected = False
        self.requeue: bool | None = None

    @property
    def processed(self) -> bool:
        return self.acked or self.nacked or self.rejected

    async def ack(self) -> None:
        self.acked = True

    async def nack(self, *, requeue: bool = True) -> None:
        self.nacked = True
        self.requeue = requeue

    async def reject(self, *, requeue: bool = False) -> None:
        self.rejected = True
        self.requeue = requeue


@pytest.fixture()
def log_records():
    """Capture loguru records (level name, extra) emitted during the test."""
    records: list[dict[str, Any]] = []
    sink_id = logger.add(lambda message: records.append(message.record), level="DEBUG")
    yield records
    logger.remove(sink_id)


class FakePublisher:
    """Implements MessagePublisher for tests; routers depend only on .ready and .publish()."""

    def __init__(
        self,
        state: PublisherState = PublisherState.READY,
        *,
        raise_on_publish: Exception | None = None,
    ) -> None:
        self.state = state
        self.published: list[dict[str, Any]] = []
        self._raise_on_publish = raise_on_publish

    @property
    def ready(self) -> bool:
        return self.state == PublisherState.READY

    async def publish(self, message: dict[str, Any]) -> None:
        if self._raise_on_publish is not None:
            raise self._raise_on_publish
        self.published.append(message)


class FakeDatabase:
    """Readiness side of DocumentStore for tests."""

    def __init__(self, ping_ok: bool = True) -> None:
        self._ping_ok = ping_ok
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    async def connect(self) -> None:
        self._ready = True

    async def ping(self) -> bool:
        return self._ping_ok

    async def close(self) -> None:
        self._ready = False


class FakeDocumentReader:
    def __init__(self, *jobs: ProcessingJob, raise_on_find: Exception | None = None) -> None:
        self._jobs = {job.document_id: job for job in jobs}
        self._raise_on_find = raise_on_find

    async def find(self, document_id: str) -> ProcessingJob | None:
        if self._raise_on_find is not None:
            raise self._raise_on_find
        return self._jobs.get(document_id)


@pytest.fixture()
def test_app() -> FastAPI:
    app = FastAPI()
    app.state.publisher = FakePublisher()
    app.state.database = FakeDatabase()
    app.state.document_reader = FakeDocumentReader()
    app.include_router(health_router)
    app.include_router(monitoring_router)
    app.include_router(documents_router)
    return app
