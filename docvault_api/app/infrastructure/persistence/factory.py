"""Document store factory: the only place that imports a concrete store."""
from __future__ import annotations

from docvault_api.app.config.settings import Settings
from docvault_api.app.infrastructure.persistence.mongo.mongo_document_store import MongoDocumentStore
from docvault_api.app.ports.document_store import DocumentStore
from docvault_worker.app.infrastructure.persistence.mongo.connection import ConnectPolicy, MongoEndpoint


def create_document_store(settings: Settings) -> DocumentStore:
    backend = settings.database_backend.strip().lower()
    if backend == "mongo":
        return MongoDocumentStore(MongoEndpoint.from_settings(settings), ConnectPolicy.from_settings(settings))
    raise ValueError(f"Unsupported database backend {backend!r}; expected 'mongo'")
