from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse
from loguru import logger

from docvault_api.app.core import SERVICE_NAME
from docvault_worker.app.domain.error_categorizer import categorize, is_transient

READINESS_PING_TIMEOUT_DEFAULT = 30.0


def readiness_ping_timeout_seconds(request: Request) -> float:
    """Read readiness DB ping timeout from app.state.settings or default."""
    settings = getattr(request.app.state, "settings", None)
    if settings is not None:
        return getattr(settings, "readiness_ping_timeout_seconds", READINESS_PING_TIMEOUT_DEFAULT)
    return READINESS_PING_TIMEOUT_DEFAULT


def _log_warning(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).warning("")


def error_response(status_code: int, error: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": error, "detail": detail})


def downstream_error_response(exc: Exception, *, operation: str) -> JSONResponse:
    """503 when a retry could succeed (transport, 5xx, open breaker); 502 for anything else."""
    transient = is_transient(categorize(exc))
    _log_warning(
        "downstream_call_failed",
        operation=operation,
        error_type=type(exc).__name__,
        error=str(exc),
        transient=transient,
    )
    if transient:
        return error_response(503, "service_unavailable", str(exc))
    return error_response(502, "bad_gateway", str(exc))


def component_or_none(request: Request, name: str) -> Any:
    return getattr(request.app.state, name, None)
