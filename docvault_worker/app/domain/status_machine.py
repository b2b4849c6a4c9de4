"""Processing status transitions.

    QUEUED -> PROCESSING -> COMPLETED
                         -> FAILED -> QUEUED (retry decision, attempt_count + 1)

Re-observing the current status is an idempotent no-op; any other move raises
StateConflictError instead of overwriting the stored status.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from docvault_worker.app.constants import ProcessingStatus
from docvault_worker.app.domain.errors import StateConflictError
from docvault_worker.app.domain.models import ProcessingJob

_ALLOWED: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.QUEUED: frozenset({ProcessingStatus.PROCESSING}),
    ProcessingStatus.PROCESSING: frozenset({ProcessingStatus.COMPLETED, ProcessingStatus.FAILED}),
    ProcessingStatus.COMPLETED: frozenset(),
    ProcessingStatus.FAILED: frozenset({ProcessingStatus.QUEUED}),
}


def can_transition(current: ProcessingStatus, target: ProcessingStatus) -> bool:
    return current == target or target in _ALLOWED[current]


def transition(
    job: ProcessingJob,
    target: ProcessingStatus,
    *,
    now: datetime | None = None,
) -> ProcessingJob:
    """Return `job` moved to `target`; the same object when already there."""
    if job.status == target:
        return job
    if target not in _ALLOWED[job.status]:
        raise StateConflictError(job.status.value, target.value)

    changed = replace(job, status=target, updated_at=now or datetime.now(timezone.utc))
    if job.status == ProcessingStatus.FAILED and target == ProcessingStatus.QUEUED:
        changed = replace(
            changed,
            attempt_count=job.attempt_count + 1,
            transient_failures=0,
            task_id=None,
            last_error=None,
        )
    return changed
