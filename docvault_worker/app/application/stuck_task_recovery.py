from __future__ import annotations

from typing import Any, Protocol

from loguru import logger

from docvault_worker.app.constants import DEFAULT_STUCK_TIMEOUT_MINUTES
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.models import SweepReport


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class InvalidTimeoutError(ValueError):
    pass


class StuckTaskGateway(Protocol):
    async def find_stuck_tasks(self, timeout_minutes: int) -> list[str]: ...

    async def reset_stuck_task(self, task_id: str) -> bool: ...


def validate_timeout_minutes(timeout_minutes: Any) -> int:
    if isinstance(timeout_minutes, bool) or not isinstance(timeout_minutes, int) or timeout_minutes <= 0:
        raise InvalidTimeoutError(f"timeout must be a positive number of minutes, got {timeout_minutes!r}")
    return timeout_minutes


class StuckTaskRecovery:
    """
    Finds OCR tasks that sat in processing past a timeout and asks the service to reset them.

    A failure of the find step propagates (nothing was attempted). Resets are
    independent: one task failing to reset is counted and the sweep moves on.
    A dry run reports what would be reset without calling reset at all.
    """

    def __init__(self, gateway: StuckTaskGateway, *, default_timeout_minutes: int = DEFAULT_STUCK_TIMEOUT_MINUTES) -> None:
        self._gateway = gateway
        self._default_timeout = validate_timeout_minutes(default_timeout_minutes)

    @property
    def default_timeout_minutes(self) -> int:
        return self._default_timeout

    async def find(self, timeout_minutes: int | None = None) -> list[str]:
        timeout = self._resolve_timeout(timeout_minutes)
        return _unique(await self._gateway.find_stuck_tasks(timeout))

    async def sweep(self, timeout_minutes: int | None = None, *, dry_run: bool = False) -> SweepReport:
        timeout = self._resolve_timeout(timeout_minutes)
        task_ids = _unique(await self._gateway.find_stuck_tasks(timeout))
        _log("sweep_started", timeout_minutes=timeout, found=len(task_ids), dry_run=dry_run)

        if dry_run:
            report = SweepReport(
                timeout_minutes=timeout,
                found=len(task_ids),
                reset=0,
                failed=0,
                task_ids=tuple(task_ids),
                dry_run=True,
            )
            _log("sweep_completed", **report.to_dict())
            return report

        reset: list[str] = []
        failed: list[str] = []
        for task_id in task_ids:
            logger.bind(service_name=SERVICE_NAME, event="stuck_task_resetting", task_id=task_id).warning("")
            try:
                ok = await self._gateway.reset_stuck_task(task_id)
            except Exception as exc:
                logger.warning("stuck task reset raised for {}: {}", task_id, exc)
                ok = False
            (reset if ok else failed).append(task_id)

        report = SweepReport(
            timeout_minutes=timeout,
            found=len(task_ids),
            reset=len(reset),
            failed=len(failed),
            task_ids=tuple(task_ids),
            failed_task_ids=tuple(failed),
        )
        _log("sweep_completed", **report.to_dict())
        return report

    def _resolve_timeout(self, timeout_minutes: int | None) -> int:
        if timeout_minutes is None:
            return self._default_timeout
        return validate_timeout_minutes(timeout_minutes)


def _unique(task_ids: list[str]) -> list[str]:
    return list(dict.fromkeys(task_ids))
