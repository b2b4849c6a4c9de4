"""Read-only view of the OCR queue for operators (HTTP monitoring and CLI)."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Protocol

from docvault_worker.app.application.stuck_task_recovery import StuckTaskRecovery
from docvault_worker.app.domain.circuit_breaker import CircuitBreaker
from docvault_worker.app.domain.models import QueueStatistics

HEALTHY = "healthy"
WARNING = "warning"
CRITICAL = "critical"


class StatisticsGateway(Protocol):
    async def get_queue_statistics(self) -> QueueStatistics: ...


class QueueMonitor:
    def __init__(
        self,
        gateway: StatisticsGateway,
        recovery: StuckTaskRecovery,
        breaker: CircuitBreaker,
        *,
        stuck_warning_threshold: int = 3,
        dead_letter_critical_threshold: int = 20,
    ) -> None:
        self._gateway = gateway
        self._recovery = recovery
        self._breaker = breaker
        self._stuck_warning_threshold = stuck_warning_threshold
        self._dead_letter_critical_threshold = dead_letter_critical_threshold

    async def statistics(self) -> QueueStatistics:
        return await self._gateway.get_queue_statistics()

    async def stuck_tasks(self, timeout_minutes: int | None = None) -> dict[str, Any]:
        timeout = timeout_minutes if timeout_minutes is not None else self._recovery.default_timeout_minutes
        task_ids = await self._recovery.find(timeout)
        return {"stuck_tasks": task_ids, "count": len(task_ids), "timeout_minutes": timeout}

    async def health(self) -> dict[str, Any]:
        """Grade queue health from the statistics; errors reaching the service propagate."""
        stats = await self.statistics()
        issues: list[str] = []
        status = HEALTHY
        if stats.stuck > self._stuck_warning_threshold:
            status = WARNING
            issues.append(f"{stats.stuck} tasks stuck in processing")
        if stats.dead_letter > self._dead_letter_critical_threshold:
            status = CRITICAL
            issues.append(f"{stats.dead_letter} tasks in the dead-letter queue")

        payload: dict[str, Any] = {
            "status": status,
            "statistics": stats.to_dict(),
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "circuit_breaker": self._breaker.snapshot().to_dict(),
        }
        if issues:
            payload["issues"] = issues
        return payload

    def breaker_snapshot(self) -> dict[str, Any]:
        return self._breaker.snapshot().to_dict()
