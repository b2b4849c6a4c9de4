import asyncio
from typing import Any

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from loguru import logger

from docvault_api.app.core import SERVICE_NAME
from docvault_api.app.routers.utils import component_or_none, readiness_ping_timeout_seconds

health_router = APIRouter(tags=["Health"])


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


@health_router.get(
    "/health/live",
    summary="Liveness probe",
    description="Returns 200 if the API process is running.",
    responses={200: {"description": "Service is alive."}},
)
async def live() -> dict:
    return {"status": "ok"}


async def _store_check(request: Request) -> str:
    store = component_or_none(request, "database")
    if store is None:
        return "missing"
    try:
        ok = await asyncio.wait_for(store.ping(), timeout=readiness_ping_timeout_seconds(request))
    except asyncio.TimeoutError:
        _log("db_ping_timeout")
        return "timeout"
    return "ok" if ok else "unreachable"


@health_router.get(
    "/health/ready",
    summary="Readiness probe",
    description=(
        "200 only when the queue publisher and the document store are both usable. "
        "The OCR service is not checked here; see /monitoring/queue/health."
    ),
    responses={
        200: {"description": "Publisher and document store are ready."},
        503: {"description": "At least one check failed; `checks` names which."},
    },
)
async def ready(request: Request) -> JSONResponse:
    publisher = component_or_none(request, "publisher")
    checks = {
        "publisher": "missing" if publisher is None else ("ok" if publisher.ready else "not_ready"),
        "document_store": await _store_check(request),
    }
    if all(result == "ok" for result in checks.values()):
        return JSONResponse(status_code=200, content={"status": "ready", "checks": checks})
    _log("not_ready", **checks)
    return JSONResponse(status_code=503, content={"status": "not_ready", "checks": checks})
