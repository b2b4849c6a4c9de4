from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from docvault_api.app.core import SERVICE_NAME
from docvault_worker.app.domain.models import ProcessingJob
from docvault_worker.app.infrastructure.persistence.mongo.connection import (
    ConnectPolicy,
    MongoEndpoint,
    close_client,
    connect_mongo,
)
from docvault_worker.app.infrastructure.persistence.mongo.mongo_repository import job_from_document


class MongoDocumentStore:
    """DocumentStore over the worker's collection. Lookups raise when the store is down; ping reports False."""

    def __init__(self, endpoint: MongoEndpoint, policy: ConnectPolicy) -> None:
        self._endpoint = endpoint
        self._policy = policy
        self._client: AsyncIOMotorClient | None = None

    @property
    def ready(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        self._client = await connect_mongo(self._endpoint, self._policy, service_name=SERVICE_NAME)

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
        except PyMongoError:
            return False
        return True

    async def find(self, document_id: str) -> ProcessingJob | None:
        if self._client is None:
            raise RuntimeError("document store is not connected")
        doc = await self._endpoint.collection_of(self._client).find_one({"document_id": document_id})
        return job_from_document(doc) if doc else None

    async def close(self) -> None:
        await close_client(self._client)
        self._client = None
