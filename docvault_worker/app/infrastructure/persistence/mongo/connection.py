"""Mongo endpoint description and connect-with-backoff, shared by the worker repository and the API store.

Settings objects are read by attribute name (`database_*` and the backoff fields), so the
worker and API settings classes both work without depending on each other.
"""
from __future__ import annotations

import inspect
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote_plus

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection
from pymongo.errors import PyMongoError

from docvault_worker.app.core.backoff import exponential_backoff


@dataclass(frozen=True)
class MongoEndpoint:
    host: str
    port: int
    user: str = ""
    password: str = ""
    database: str = "docvault"
    collection: str = "documents"
    server_selection_timeout_ms: int = 5000

    @classmethod
    def from_settings(cls, settings: Any) -> "MongoEndpoint":
        return cls(
            host=settings.database_host,
            port=int(settings.database_port),
            user=settings.database_user,
            password=settings.database_password,
            database=settings.database_name,
            collection=settings.database_collection,
            server_selection_timeout_ms=settings.database_connection_timeout_ms,
        )

    @property
    def uri(self) -> str:
        if self.user and self.password:
            return f"mongodb://{quote_plus(self.user)}:{quote_plus(self.password)}@{self.host}:{self.port}"
        return f"mongodb://{self.host}:{self.port}"

    @property
    def display(self) -> str:
        """Endpoint for logs; never includes credentials."""
        return f"{self.host}:{self.port}/{self.database}.{self.collection}"

    def collection_of(self, client: AsyncIOMotorClient) -> AsyncIOMotorCollection:
        return client[self.database][self.collection]


@dataclass(frozen=True)
class ConnectPolicy:
    initial_backoff_seconds: float = 1.0
    max_backoff_seconds: float = 30.0
    backoff_multiplier: float = 2.0
    max_attempts: int = 10

    @classmethod
    def from_settings(cls, settings: Any) -> "ConnectPolicy":
        return cls(
            initial_backoff_seconds=settings.initial_backoff_seconds,
            max_backoff_seconds=settings.max_backoff_seconds,
            backoff_multiplier=settings.backoff_multiplier,
            max_attempts=settings.max_connection_attempts,
        )


async def close_client(client: AsyncIOMotorClient | None) -> None:
    if client is None:
        return
    res = client.close()
    if inspect.isawaitable(res):
        await res


async def connect_mongo(endpoint: MongoEndpoint, policy: ConnectPolicy, *, service_name: str) -> AsyncIOMotorClient:
    """Open a client and wait for a successful ping, retrying with backoff."""
    attempt = 0
    async for delay in exponential_backoff(
        policy.initial_backoff_seconds,
        policy.max_backoff_seconds,
        policy.backoff_multiplier,
        policy.max_attempts,
    ):
        attempt += 1
        logger.bind(
            service_name=service_name, event="mongo_connect_attempt", attempt=attempt, delay=delay, endpoint=endpoint.display
        ).info("")
        client: AsyncIOMotorClient | None = None
        try:
            client = AsyncIOMotorClient(
                endpoint.uri,
                serverSelectionTimeoutMS=endpoint.server_selection_timeout_ms,
                tz_aware=True,
            )
            await client.admin.command("ping")
        except PyMongoError as exc:
            logger.warning("mongo connect to {} failed: {}", endpoint.display, exc)
            await close_client(client)
            if attempt >= policy.max_attempts:
                logger.bind(service_name=service_name, event="mongo_connect_failed", attempt=attempt).error("")
                raise
            continue
        logger.bind(service_name=service_name, event="mongo_connected", endpoint=endpoint.display).info("")
        return client
    raise RuntimeError(f"mongo connect to {endpoint.display} gave up without an attempt")
