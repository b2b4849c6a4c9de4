"""Classify failures as transient (retry may succeed) or permanent (retry is futile).

`categorize` is pure: the result depends only on the exception type and its
message. Rules are checked in priority order and the first match wins; anything
unrecognised is permanent so an unknown error can never cause endless redelivery.
"""
from __future__ import annotations

import asyncio
import socket
from enum import Enum

from docvault_worker.app.domain.errors import (
    CircuitOpenError,
    ClientError,
    ServerError,
    TransportError,
)


class ErrorCategory(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


TRANSIENT_PATTERNS: tuple[str, ...] = (
    "timeout",
    "timed out",
    "connection refused",
    "connection reset",
    "temporarily unavailable",
    "service unavailable",
    "too many requests",
    "rate limit",
    "deadlock",
    "lock wait timeout",
)

PERMANENT_PATTERNS: tuple[str, ...] = (
    "not found",
    "invalid",
    "forbidden",
    "unauthorized",
    "authentication failed",
    "permission denied",
    "access denied",
    "bad request",
)

# ConnectionError covers refused/reset/aborted sockets; gaierror is a DNS failure.
# asyncio.TimeoutError is only an alias of TimeoutError from Python 3.11.
_TRANSPORT_TYPES: tuple[type[BaseException], ...] = (
    TransportError,
    ConnectionError,
    TimeoutError,
    asyncio.TimeoutError,
    socket.gaierror,
)


def is_transient(category: ErrorCategory) -> bool:
    return category is ErrorCategory.TRANSIENT


def categorize(error: BaseException | None) -> ErrorCategory:
    if error is None:
        return ErrorCategory.PERMANENT

    if isinstance(error, _TRANSPORT_TYPES):
        return ErrorCategory.TRANSIENT
    if isinstance(error, ServerError):
        return ErrorCategory.TRANSIENT
    if isinstance(error, CircuitOpenError):
        return ErrorCategory.TRANSIENT
    if isinstance(error, ClientError):
        return ErrorCategory.PERMANENT

    message = str(error).lower()
    if not message:
        return ErrorCategory.PERMANENT
    if any(pattern in message for pattern in TRANSIENT_PATTERNS):
        return ErrorCategory.TRANSIENT
    if any(pattern in message for pattern in PERMANENT_PATTERNS):
        return ErrorCategory.PERMANENT
    return ErrorCategory.PERMANENT


def describe(error: BaseException) -> str:
    """One-line operator description, e.g. for the job's stored error."""
    category = categorize(error)
    verdict = "will retry" if is_transient(category) else "will not retry"
    return f"{category.value} error ({type(error).__name__}): {error} - {verdict}"
