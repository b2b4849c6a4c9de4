from __future__ import annotations

from datetime import datetime, timezone

import pytest

from docvault_worker.app.constants import ProcessingStatus
from docvault_worker.app.domain.error_categorizer import ErrorCategory
from docvault_worker.app.domain.errors import StateConflictError
from docvault_worker.app.domain.models import ErrorDescriptor
from docvault_worker.app.domain.status_machine import can_transition, transition
from tests.conftest import make_job

Q, P, C, F = (
    ProcessingStatus.QUEUED,
    ProcessingStatus.PROCESSING,
    ProcessingStatus.COMPLETED,
    ProcessingStatus.FAILED,
)


@pytest.mark.parametrize("current,target", [(Q, P), (P, C), (P, F), (F, Q)])
def test_allowed_transitions(current, target):
    assert can_transition(current, target)
    assert transition(make_job(status=current), target).status is target


@pytest.mark.parametrize("current,target", [(Q, C), (Q, F), (C, P), (C, F), (C, Q), (F, P), (F, C), (P, Q)])
def test_illegal_transitions_raise(current, target):
    assert not can_transition(current, target)
    with pytest.raises(StateConflictError) as excinfo:
        transition(make_job(status=current), target)
    assert excinfo.value.current == current.value
    assert excinfo.value.target == target.value


@pytest.mark.parametrize("status", [Q, P, C, F])
def test_reobserving_current_status_is_a_noop(status):
    job = make_job(status=status)
    assert transition(job, status) is job


def test_retry_decision_increments_attempts_and_clears_failure_state():
    error = ErrorDescriptor("boom", ErrorCategory.TRANSIENT, datetime.now(timezone.utc))
    job = make_job(status=F, attempt_count=2, transient_failures=4, task_id="task-9", last_error=error)
    queued = transition(job, Q)
    assert queued.attempt_count == 3
    assert queued.transient_failures == 0
    assert queued.task_id is None
    assert queued.last_error is None


def test_transition_stamps_updated_at():
    now = datetime(2030, 5, 1, tzinfo=timezone.utc)
    assert transition(make_job(status=Q), P, now=now).updated_at == now
