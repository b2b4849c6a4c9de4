from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from docvault_worker.app.constants import DEFAULT_STUCK_TIMEOUT_MINUTES


class SweepRequest(BaseModel):
    timeout_minutes: int = Field(DEFAULT_STUCK_TIMEOUT_MINUTES, description="Minutes a task must sit in processing to count as stuck.")
    dry_run: bool = Field(False, description="Report stuck tasks without resetting them.")


class RetryRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class RetryAcceptedResponse(BaseModel):
    status: str = "queued"
    document_id: str


class ErrorResponse(BaseModel):
    error: str
    detail: str | None = None


class LastErrorView(BaseModel):
    message: str
    category: str
    error_type: str = ""
    timestamp: datetime


class ProcessingStatusResponse(BaseModel):
    document_id: str
    status: str
    attempt_count: int
    transient_failures: int
    task_id: str | None = None
    last_error: LastErrorView | None = None
    updated_at: datetime
    indexed_at: datetime | None = None
    confidence: float | None = None


class StuckTasksResponse(BaseModel):
    stuck_tasks: list[str]
    count: int
    timeout_minutes: int


class SweepResponse(BaseModel):
    timeout_minutes: int
    found: int
    reset: int
    failed: int
    task_ids: list[str]
    failed_task_ids: list[str]
    dry_run: bool
    outcome: str


class QueueHealthResponse(BaseModel):
    status: str
    timestamp: str
    circuit_breaker: dict[str, Any]
    statistics: dict[str, Any] | None = None
    issues: list[str] | None = None
    error: str | None = None
