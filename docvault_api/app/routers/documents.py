from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request, Response
from fastapi.responses import JSONResponse
from loguru import logger

from docvault_api.app.core import SERVICE_NAME
from docvault_api.app.routers.utils import component_or_none, error_response
from docvault_api.app.schemas.monitoring import (
    LastErrorView,
    ProcessingStatusResponse,
    RetryAcceptedResponse,
    RetryRequest,
)
from docvault_api.app.services.enqueue_retry import enqueue_retry
from docvault_worker.app.constants import ProcessingStatus
from docvault_worker.app.domain.models import ProcessingJob

documents_router = APIRouter(prefix="/documents", tags=["Documents"])


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


def _status_view(job: ProcessingJob) -> ProcessingStatusResponse:
    last_error = None
    if job.last_error is not None:
        last_error = LastErrorView(
            message=job.last_error.message,
            category=job.last_error.category.value,
            error_type=job.last_error.error_type,
            timestamp=job.last_error.timestamp,
        )
    return ProcessingStatusResponse(
        document_id=job.document_id,
        status=job.status.value,
        attempt_count=job.attempt_count,
        transient_failures=job.transient_failures,
        task_id=job.task_id,
        last_error=last_error,
        updated_at=job.updated_at,
        indexed_at=job.indexed_at,
        confidence=job.confidence,
    )


async def _find_job(request: Request, document_id: str) -> ProcessingJob | Response:
    reader = component_or_none(request, "document_reader")
    if reader is None:
        return error_response(503, "service_unavailable", "database not available")
    try:
        job = await reader.find(document_id)
    except Exception as exc:
        logger.warning("document lookup failed for {}: {}", document_id, exc)
        return error_response(503, "service_unavailable", "database not available")
    if job is None:
        return error_response(404, "not_found", f"document not found: {document_id}")
    return job


@documents_router.get(
    "/{document_id}/processing-status",
    summary="Processing status of a document",
    responses={
        200: {"description": "Current job state."},
        404: {"description": "Unknown document."},
        503: {"description": "Database unavailable."},
    },
)
async def processing_status(request: Request, document_id: str) -> Response:
    found = await _find_job(request, document_id)
    if isinstance(found, Response):
        return found
    return Response(status_code=200, media_type="application/json", content=_status_view(found).model_dump_json())


@documents_router.post(
    "/{document_id}/retry",
    summary="Manually retry a failed document",
    description="Queues a retry for a document in FAILED state. The worker performs the retry.",
    responses={
        202: {"description": "Retry queued."},
        404: {"description": "Unknown document."},
        409: {"description": "Document is not in FAILED state."},
        503: {"description": "Publisher or database unavailable."},
    },
)
async def retry_document(request: Request, document_id: str, body: RetryRequest | None = None) -> Response:
    found = await _find_job(request, document_id)
    if isinstance(found, Response):
        return found
    if found.status != ProcessingStatus.FAILED:
        return error_response(409, "conflict", f"document is {found.status.value}, only FAILED documents can be retried")

    publisher = component_or_none(request, "publisher")
    if publisher is None:
        return error_response(503, "service_unavailable", "publisher not available")

    reason = body.reason if body is not None else None
    outcome = await enqueue_retry(document_id, reason, publisher)
    if not outcome.success:
        logger.bind(service_name=SERVICE_NAME, event="retry_enqueue_failed", document_id=document_id).warning(
            outcome.error or ""
        )
        return error_response(503, "service_unavailable", outcome.error)

    _log("retry_enqueued", document_id=document_id, reason=reason or "")
    return Response(
        status_code=202,
        media_type="application/json",
        content=RetryAcceptedResponse(document_id=document_id).model_dump_json(),
    )
