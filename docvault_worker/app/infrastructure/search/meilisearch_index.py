"""SearchIndex adapter for the Meilisearch documents API, spoken over the HTTP port."""
from __future__ import annotations

from typing import Any

from loguru import logger

from docvault_worker.app.core import SERVICE_NAME
from docvault_worker.app.domain.errors import TransportError, error_for_status
from docvault_worker.app.ports.http_client import (
    AbstractHttpClient,
    HttpClientError,
    HttpClientTimeoutError,
    RequestTimeout,
)

SEARCH_SERVICE = "search-index"


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class MeilisearchIndex:
    def __init__(
        self,
        client: AbstractHttpClient,
        *,
        base_url: str,
        index_name: str,
        api_key: str = "",
        timeout_seconds: float = 10.0,
    ) -> None:
        self._client = client
        self._url = f"{base_url.rstrip('/')}/indexes/{index_name}/documents"
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._timeout = RequestTimeout(connect_seconds=timeout_seconds, read_seconds=timeout_seconds)

    async def index(self, document_id: str, content: str) -> None:
        payload = [{"id": document_id, "content": content}]
        try:
            response = await self._client.request(
                "POST",
                self._url,
                timeout=self._timeout,
                json=payload,
                headers=self._headers,
            )
        except HttpClientTimeoutError as exc:
            raise TransportError(f"timeout indexing document {document_id}", service=SEARCH_SERVICE) from exc
        except HttpClientError as exc:
            raise TransportError(f"search index unreachable: {exc}", service=SEARCH_SERVICE) from exc

        error = error_for_status(
            response.status_code,
            f"search index returned status {response.status_code} for document {document_id}",
            service=SEARCH_SERVICE,
        )
        if error is not None:
            raise error
        _log("search_document_enqueued", document_id=document_id, status_code=response.status_code)

    async def close(self) -> None:
        """The HTTP client is shared and closed by the composition root."""
