"""OCR service client: submit, poll, find-stuck, reset-stuck, statistics.

Uses the HTTP port (AbstractHttpClient); the client is built in the composition root.
Every call goes through the one CircuitBreaker owned by the "ocr-service" boundary,
and every failure leaves here as TransportError, ServerError, ClientError or
CircuitOpenError so the error categorizer can decide retry eligibility.
"""
from __future__ import annotations

from typing import Any

from loguru import logger

from docvault_worker.app.constants import OCR_SERVICE_BOUNDARY, OcrTaskStatus
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.circuit_breaker import BreakerPolicy, CircuitBreaker
from docvault_worker.app.domain.errors import (
    ClientError,
    ServerError,
    TransportError,
    error_for_status,
)
from docvault_worker.app.domain.models import QueueStatistics, TaskStatusReport
from docvault_worker.app.ports.http_client import (
    AbstractHttpClient,
    HttpClientError,
    HttpClientTimeoutError,
    HttpResponse,
    RequestTimeout,
)

LANGUAGE_CODES = {
    "en": "eng",
    "de": "deu",
    "fr": "fra",
    "es": "spa",
    "it": "ita",
    "pt": "por",
    "pl": "pol",
}

_STATISTICS_FIELDS = {
    "queued": "queued",
    "processing": "processing",
    "completed": "completed",
    "failed": "failed",
    "stuck": "stuck",
    "dead_letter_queue": "dead_letter",
    "dead_letter": "dead_letter",
}


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def map_language_code(language: str | None, default: str = "pl") -> str:
    code = (language or default).strip().lower()
    return LANGUAGE_CODES.get(code, code)


def normalize_confidence(raw: Any) -> float | None:
    if raw is None:
        return None
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return None
    return value / 100.0 if value > 1.0 else value


def create_ocr_breaker(policy: BreakerPolicy | None = None, **kwargs: Any) -> CircuitBreaker:
    """Breaker for the OCR boundary; a 4xx answer means the service is up, so it does not count."""
    return CircuitBreaker(OCR_SERVICE_BOUNDARY, policy, excluded=(ClientError,), **kwargs)


class OcrServiceClient:
    """Talks to the external OCR service over HTTP, guarded by a circuit breaker."""

    def __init__(
        self,
        client: AbstractHttpClient,
        breaker: CircuitBreaker,
        *,
        base_url: str,
        connect_timeout_seconds: float,
        read_timeout_seconds: float,
        default_language: str = "pl",
    ) -> None:
        self._client = client
        self._breaker = breaker
        self._base_url = base_url.rstrip("/")
        self._timeout = RequestTimeout(
            connect_seconds=connect_timeout_seconds,
            read_seconds=read_timeout_seconds,
        )
        self._default_language = default_language

    @property
    def breaker(self) -> CircuitBreaker:
        return self._breaker

    async def submit(self, document_id: str, file_path: str | None, language: str | None = None) -> str:
        if not file_path:
            raise ClientError(
                f"invalid submission for document {document_id}: missing file path",
                status_code=400,
                service=OCR_SERVICE_BOUNDARY,
            )
        payload = {
            "document_id": document_id,
            "file_path": file_path,
            "language": map_language_code(language, self._default_language),
        }
        data = await self._breaker.call(self._request_json, "POST", "/api/v1/ocr/process", json=payload)
        task_id = str(data.get("task_id") or "") if isinstance(data, dict) else ""
        if not task_id:
            raise ServerError(
                "OCR service accepted the submission without a task_id",
                status_code=502,
                service=OCR_SERVICE_BOUNDARY,
            )
        _log("ocr_task_submitted", document_id=document_id, task_id=task_id)
        return task_id

    async def query_status(self, task_id: str) -> TaskStatusReport:
        data = await self._breaker.call(self._request_json, "GET", f"/api/v1/tasks/{task_id}")
        data = data if isinstance(data, dict) else {}
        raw_status = str(data.get("status") or "").lower()
        try:
            status = OcrTaskStatus(raw_status)
        except ValueError:
            raise ServerError(
                f"OCR service reported unknown status {raw_status!r} for task {task_id}",
                status_code=502,
                service=OCR_SERVICE_BOUNDARY,
            ) from None
        return TaskStatusReport(
            task_id=task_id,
            status=status,
            text=data.get("text"),
            confidence=normalize_confidence(data.get("confidence")),
            error_detail=data.get("error"),
        )

    async def find_stuck_tasks(self, timeout_minutes: int) -> list[str]:
        data = await self._breaker.call(
            self._request_json,
            "GET",
            "/api/v1/tasks/stuck",
            params={"timeout_minutes": int(timeout_minutes)},
        )
        stuck = data.get("stuck_tasks") if isinstance(data, dict) else None
        if not isinstance(stuck, list):
            logger.warning("OCR service response missing stuck_tasks field: {}", data)
            return []
        task_ids = [str(task_id) for task_id in stuck]
        _log("stuck_tasks_retrieved", count=len(task_ids), timeout_minutes=timeout_minutes)
        return task_ids

    async def reset_stuck_task(self, task_id: str) -> bool:
        """Ask the service to re-queue a task. False (not an exception) when this task could not be reset."""
        try:
            response = await self._breaker.call(self._send, "POST", f"/api/v1/tasks/{task_id}/reset")
        except (TransportError, ServerError) as exc:
            logger.warning("stuck task reset failed for {}: {}", task_id, exc)
            return False
        except ClientError as exc:
            _log("stuck_task_not_resettable", task_id=task_id, status_code=exc.status_code)
            return False
        _log("stuck_task_reset", task_id=task_id, status_code=response.status_code)
        return True

    async def get_queue_statistics(self) -> QueueStatistics:
        data = await self._breaker.call(self._request_json, "GET", "/api/v1/queue/statistics")
        data = data if isinstance(data, dict) else {}
        counts: dict[str, int] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            field_name = _STATISTICS_FIELDS.get(key)
            if field_name is None:
                extra[key] = value
                continue
            try:
                counts[field_name] = int(value)
            except (TypeError, ValueError):
                extra[key] = value
        return QueueStatistics(extra=extra, **counts)

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._send(method, path, **kwargs)
        try:
            return response.json()
        except ValueError as exc:
            raise ServerError(
                f"OCR service returned invalid JSON for {method} {path}",
                status_code=response.status_code,
                service=OCR_SERVICE_BOUNDARY,
            ) from exc

    async def _send(self, method: str, path: str, **kwargs: Any) -> HttpResponse:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(method, url, timeout=self._timeout, **kwargs)
        except HttpClientTimeoutError as exc:
            raise TransportError(f"timeout calling OCR service: {method} {path}", service=OCR_SERVICE_BOUNDARY) from exc
        except HttpClientError as exc:
            raise TransportError(f"OCR service unreachable: {exc}", service=OCR_SERVICE_BOUNDARY) from exc

        error = error_for_status(
            response.status_code,
            f"OCR service returned status {response.status_code} for {method} {path}",
            service=OCR_SERVICE_BOUNDARY,
        )
        if error is not None:
            raise error
        return response


def create_ocr_client(client: AbstractHttpClient, settings: Any) -> OcrServiceClient:
    """Build the client and its breaker from the `ocr_*` and `breaker_*` settings fields."""
    return OcrServiceClient(
        client,
        create_ocr_breaker(BreakerPolicy.from_settings(settings)),
        base_url=settings.ocr_service_url,
        connect_timeout_seconds=settings.ocr_connect_timeout_seconds,
        read_timeout_seconds=settings.ocr_read_timeout_seconds,
        default_language=settings.ocr_default_language,
    )
