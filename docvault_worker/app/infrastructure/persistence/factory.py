"""Repository factory: selects and assembles persistence adapters."""
from __future__ import annotations

from docvault_worker.app.config.settings import Settings
from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.infrastructure.persistence.mongo.connection import ConnectPolicy, MongoEndpoint, connect_mongo
from docvault_worker.app.infrastructure.persistence.mongo.mongo_repository import MongoDocumentRepository
from docvault_worker.app.ports.document_repository import DocumentRepository

SUPPORTED_BACKENDS = ("mongo",)


async def create_document_repository(settings: Settings) -> DocumentRepository:
    backend = settings.repository_backend.strip().lower()
    if backend not in SUPPORTED_BACKENDS:
        raise ValueError(f"Unsupported repository backend {backend!r}; expected one of {SUPPORTED_BACKENDS}")

    endpoint = MongoEndpoint.from_settings(settings)
    client = await connect_mongo(endpoint, ConnectPolicy.from_settings(settings), service_name=SERVICE_NAME)
    repository = MongoDocumentRepository(endpoint.collection_of(client), client=client)
    await repository.ensure_indexes()
    return repository
