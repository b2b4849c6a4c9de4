"""Port: the API's read-only view of the document store the worker writes."""
from __future__ import annotations

from typing import Protocol

from docvault_worker.app.domain.models import ProcessingJob


class DocumentStore(Protocol):
    """Readiness (`ready`, `ping`) and job lookup share one connection."""

    @property
    def ready(self) -> bool: ...

    async def connect(self) -> None: ...

    async def ping(self) -> bool: ...

    async def find(self, document_id: str) -> ProcessingJob | None: ...

    async def close(self) -> None: ...
