"""Abstract interface for processing-job persistence (port)."""
from __future__ import annotations

from typing import Protocol

from docvault_worker.app.domain.models import ProcessingJob


class DocumentRepository(Protocol):
    """Port: documents and their processing state. Implementations live in infrastructure."""

    async def find(self, document_id: str) -> ProcessingJob | None: ...

    async def save(self, job: ProcessingJob) -> None: ...

    async def close(self) -> None:
        """Release resources (e.g. DB client). No-op allowed if nothing to close."""
        ...
