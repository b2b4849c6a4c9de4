"""Search index factory: selects implementation from config."""
from __future__ import annotations

from docvault_worker.app.config.settings import Settings
from docvault_worker.app.infrastructure.search.meilisearch_index import MeilisearchIndex
from docvault_worker.app.ports.http_client import AbstractHttpClient
from docvault_worker.app.ports.search_index import SearchIndex


def create_search_index(settings: Settings, client: AbstractHttpClient) -> SearchIndex:
    backend = settings.search_backend.strip().lower()

    if backend == "meilisearch":
        return MeilisearchIndex(
            client,
            base_url=settings.search_url,
            index_name=settings.search_index_name,
            api_key=settings.search_api_key,
            timeout_seconds=settings.search_timeout_seconds,
        )

    raise ValueError(f"Unsupported search backend: {backend}")
