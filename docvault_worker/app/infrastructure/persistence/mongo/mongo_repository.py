"""MongoDB implementation of DocumentRepository."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from motor.motor_asyncio import AsyncIOMotorCollection
from pymongo.errors import ConnectionFailure, ExecutionTimeout

from docvault_worker.app.constants import ProcessingStatus
from docvault_worker.app.domain.errors import TransportError
from docvault_worker.app.domain.models import ErrorDescriptor, ProcessingJob
from docvault_worker.app.infrastructure.persistence.mongo.connection import close_client

DOCUMENT_STORE = "document-store"


def job_from_document(doc: dict[str, Any]) -> ProcessingJob:
    """Documents that were never processed have no status fields yet and read as QUEUED."""
    updated_at = doc.get("updated_at") or doc.get("created_at") or datetime.now(timezone.utc)
    confidence = doc.get("confidence")
    return ProcessingJob(
        document_id=str(doc["document_id"]),
        status=ProcessingStatus(doc.get("processing_status") or ProcessingStatus.QUEUED.value),
        updated_at=updated_at,
        attempt_count=int(doc.get("attempt_count") or 0),
        transient_failures=int(doc.get("transient_failures") or 0),
        last_error=ErrorDescriptor.from_dict(doc.get("last_error")),
        file_path=doc.get("file_path"),
        language=doc.get("language"),
        task_id=doc.get("task_id"),
        content=doc.get("content"),
        confidence=float(confidence) if confidence is not None else None,
        indexed_at=doc.get("indexed_at"),
    )


def job_to_fields(job: ProcessingJob) -> dict[str, Any]:
    return {
        "processing_status": job.status.value,
        "updated_at": job.updated_at,
        "attempt_count": int(job.attempt_count),
        "transient_failures": int(job.transient_failures),
        "last_error": job.last_error.to_dict() if job.last_error else None,
        "file_path": job.file_path,
        "language": job.language,
        "task_id": job.task_id,
        "content": job.content,
        "confidence": job.confidence,
        "indexed_at": job.indexed_at,
    }


class MongoDocumentRepository:
    """Concrete implementation of DocumentRepository using MongoDB."""

    def __init__(self, collection: AsyncIOMotorCollection, *, client: Any | None = None) -> None:
        self._collection = collection
        self._client = client

    async def ensure_indexes(self) -> None:
        """Infrastructure bootstrap: create indexes. Not part of the port."""
        await self._collection.create_index("document_id", unique=True, name="uq_documents_document_id")
        await self._collection.create_index("processing_status", name="idx_documents_processing_status")

    async def find(self, document_id: str) -> ProcessingJob | None:
        try:
            doc = await self._collection.find_one({"document_id": document_id})
        except (ConnectionFailure, ExecutionTimeout) as exc:
            raise TransportError(f"document store unavailable: {exc}", service=DOCUMENT_STORE) from exc
        if not doc:
            return None
        return job_from_document(doc)

    async def save(self, job: ProcessingJob) -> None:
        now = datetime.now(timezone.utc)
        try:
            await self._collection.update_one(
                {"document_id": job.document_id},
                {
                    "$set": job_to_fields(job),
                    "$setOnInsert": {"document_id": job.document_id, "created_at": now},
                },
                upsert=True,
            )
        except (ConnectionFailure, ExecutionTimeout) as exc:
            raise TransportError(f"document store unavailable: {exc}", service=DOCUMENT_STORE) from exc

    async def close(self) -> None:
        """Close the Mongo client when this adapter owns it."""
        await close_client(self._client)
        self._client = None
