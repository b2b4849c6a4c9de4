"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from docvault_worker.app.constants import OcrTaskStatus, ProcessingStatus
from docvault_worker.app.domain.error_categorizer import ErrorCategory


@dataclass(frozen=True)
class ErrorDescriptor:
    """Last failure recorded on a job."""

    message: str
    category: ErrorCategory
    timestamp: datetime
    error_type: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "category": self.category.value,
            "timestamp": self.timestamp,
            "error_type": self.error_type,
        }

    @staticmethod
    def from_dict(raw: dict[str, Any] | None) -> "ErrorDescriptor | None":
        if not raw:
            return None
        return ErrorDescriptor(
            message=str(raw.get("message") or ""),
            category=ErrorCategory(raw.get("category") or ErrorCategory.PERMANENT.value),
            timestamp=raw["timestamp"],
            error_type=str(raw.get("error_type") or ""),
        )


@dataclass(frozen=True)
class ProcessingJob:
    """Durable processing record for one document (value object; replaced on every change).

    `attempt_count` counts retry decisions (Failed -> Queued). `transient_failures`
    counts redeliveries since the last retry decision and feeds the dead-letter budget.
    """

    document_id: str
    status: ProcessingStatus
    updated_at: datetime
    attempt_count: int = 0
    transient_failures: int = 0
    last_error: ErrorDescriptor | None = None
    file_path: str | None = None
    language: str | None = None
    task_id: str | None = None
    content: str | None = None
    confidence: float | None = None
    indexed_at: datetime | None = None


@dataclass(frozen=True)
class TaskStatusReport:
    """What the OCR service says about one task."""

    task_id: str
    status: OcrTaskStatus
    text: str | None = None
    confidence: float | None = None
    error_detail: str | None = None

    @property
    def finished(self) -> bool:
        return self.status in (OcrTaskStatus.COMPLETED, OcrTaskStatus.FAILED)


@dataclass(frozen=True)
class QueueStatistics:
    """Read-only snapshot of the OCR queue."""

    queued: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0
    stuck: int = 0
    dead_letter: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            queued=self.queued,
            processing=self.processing,
            completed=self.completed,
            failed=self.failed,
            stuck=self.stuck,
            dead_letter=self.dead_letter,
        )
        return payload


class SweepOutcome(str, Enum):
    COMPLETED = "completed"
    DEGRADED = "degraded"
    DRY_RUN = "dry_run"


@dataclass(frozen=True)
class SweepReport:
    timeout_minutes: int
    found: int
    reset: int
    failed: int
    task_ids: tuple[str, ...] = ()
    failed_task_ids: tuple[str, ...] = ()
    dry_run: bool = False

    @property
    def outcome(self) -> SweepOutcome:
        if self.dry_run:
            return SweepOutcome.DRY_RUN
        if self.failed > 0:
            return SweepOutcome.DEGRADED
        return SweepOutcome.COMPLETED

    def to_dict(self) -> dict[str, Any]:
        return {
            "timeout_minutes": self.timeout_minutes,
            "found": self.found,
            "reset": self.reset,
            "failed": self.failed,
            "task_ids": list(self.task_ids),
            "failed_task_ids": list(self.failed_task_ids),
            "dry_run": self.dry_run,
            "outcome": self.outcome.value,
        }


@dataclass(frozen=True)
class QueueMessage:
    """Deserialized body of a processing-queue message."""

    type: str
    document_id: str
    reason: str | None = None
