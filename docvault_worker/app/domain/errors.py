"""Failure taxonomy for document processing.

The transient/permanent split is decided by `error_categorizer.categorize`; the
classes here only describe *what* failed. Downstream clients translate transport
library errors into these before they reach application code.
"""
from __future__ import annotations


class ProcessingError(Exception):
    """Base for all document-processing failures."""


class TransportError(ProcessingError):
    """Network-level failure talking to a downstream service (refused, reset, DNS, timeout)."""

    def __init__(self, message: str, *, service: str = "") -> None:
        super().__init__(message)
        self.service = service


class ServerError(ProcessingError):
    """Downstream service answered with a 5xx response."""

    def __init__(self, message: str, *, status_code: int, service: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.service = service


class ClientError(ProcessingError):
    """Downstream service rejected the request with a 4xx response."""

    def __init__(self, message: str, *, status_code: int, service: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.service = service


class CircuitOpenError(ProcessingError):
    """Call short-circuited; the downstream service was not contacted."""

    def __init__(self, boundary: str, *, retry_after_seconds: float = 0.0) -> None:
        super().__init__(f"circuit breaker for {boundary} is open")
        self.boundary = boundary
        self.retry_after_seconds = retry_after_seconds


class StateConflictError(ProcessingError):
    """Illegal processing status transition."""

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"illegal status transition {current} -> {target}")
        self.current = current
        self.target = target


class DocumentNotFoundError(ProcessingError):
    def __init__(self, document_id: str) -> None:
        super().__init__(f"document not found: {document_id}")
        self.document_id = document_id


class OcrTaskFailedError(ProcessingError):
    """The OCR service reported the task itself as failed."""

    def __init__(self, task_id: str, detail: str | None) -> None:
        super().__init__(detail or f"OCR task {task_id} failed without detail")
        self.task_id = task_id
        self.detail = detail


class OcrTaskPendingError(ProcessingError):
    """Status polling ran out while the OCR task was still running."""

    def __init__(self, task_id: str, polls: int) -> None:
        super().__init__(f"timed out waiting for OCR task {task_id} after {polls} status polls")
        self.task_id = task_id
        self.polls = polls


def error_for_status(status_code: int, message: str, *, service: str) -> ProcessingError | None:
    """Map a downstream HTTP status onto the taxonomy; None for success codes."""
    if status_code >= 500:
        return ServerError(message, status_code=status_code, service=service)
    if status_code >= 400:
        return ClientError(message, status_code=status_code, service=service)
    return None
