from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from docvault_api.app.core import SERVICE_NAME
from docvault_api.app.routers.utils import component_or_none, downstream_error_response, error_response
from docvault_api.app.schemas.monitoring import SweepRequest
from docvault_worker.app.application.stuck_task_recovery import InvalidTimeoutError

monitoring_router = APIRouter(prefix="/monitoring/queue", tags=["Monitoring"])

_UNAVAILABLE = {503: {"description": "OCR service unreachable, failing with 5xx, or breaker open."}}
_BAD_GATEWAY = {502: {"description": "OCR service answered with an unusable response."}}


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@monitoring_router.get(
    "/statistics",
    summary="OCR queue statistics",
    responses={200: {"description": "Counts by task state."}, **_UNAVAILABLE, **_BAD_GATEWAY},
)
async def queue_statistics(request: Request) -> JSONResponse:
    monitor = component_or_none(request, "queue_monitor")
    if monitor is None:
        return error_response(503, "service_unavailable", "queue monitor not initialized")
    try:
        stats = await monitor.statistics()
    except Exception as exc:
        return downstream_error_response(exc, operation="queue_statistics")
    return JSONResponse(status_code=200, content=stats.to_dict())


@monitoring_router.get(
    "/health",
    summary="OCR queue health",
    description="healthy / warning (too many stuck tasks) / critical (dead-letter backlog), with the breaker state.",
    responses={200: {"description": "Health graded from the statistics."}, 503: {"description": "OCR service unavailable."}},
)
async def queue_health(request: Request) -> JSONResponse:
    monitor = component_or_none(request, "queue_monitor")
    if monitor is None:
        return error_response(503, "service_unavailable", "queue monitor not initialized")
    try:
        payload = await monitor.health()
    except Exception as exc:
        logger.warning("queue health check failed: {}", exc)
        return JSONResponse(
            status_code=503,
            content={
                "status": "unavailable",
                "error": str(exc),
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "circuit_breaker": monitor.breaker_snapshot(),
            },
        )
    return JSONResponse(status_code=200, content=payload)


@monitoring_router.get(
    "/stuck-tasks",
    summary="List stuck OCR tasks",
    responses={200: {"description": "Stuck task ids."}, 400: {"description": "Non-positive timeout."}, **_UNAVAILABLE, **_BAD_GATEWAY},
)
async def stuck_tasks(request: Request, timeout: int | None = None) -> JSONResponse:
    monitor = component_or_none(request, "queue_monitor")
    if monitor is None:
        return error_response(503, "service_unavailable", "queue monitor not initialized")
    try:
        view = await monitor.stuck_tasks(timeout)
    except InvalidTimeoutError as exc:
        return error_response(400, "bad_request", str(exc))
    except Exception as exc:
        return downstream_error_response(exc, operation="stuck_tasks")
    return JSONResponse(status_code=200, content=view)


@monitoring_router.post(
    "/sweep",
    summary="Reset stuck OCR tasks",
    description="Finds tasks stuck past the timeout and resets each one. With dry_run nothing is reset.",
    responses={
        200: {"description": "Sweep report; outcome is completed, degraded or dry_run."},
        400: {"description": "Non-positive timeout."},
        **_UNAVAILABLE,
        **_BAD_GATEWAY,
    },
)
async def sweep(request: Request, body: SweepRequest | None = None) -> JSONResponse:
    recovery = component_or_none(request, "stuck_task_recovery")
    if recovery is None:
        return error_response(503, "service_unavailable", "stuck task recovery not initialized")
    body = body or SweepRequest()
    try:
        report = await recovery.sweep(body.timeout_minutes, dry_run=body.dry_run)
    except InvalidTimeoutError as exc:
        return error_response(400, "bad_request", str(exc))
    except Exception as exc:
        return downstream_error_response(exc, operation="sweep")
    _log("sweep_requested", outcome=report.outcome.value, found=report.found, failed=report.failed)
    return JSONResponse(status_code=200, content=report.to_dict())
