"""httpx implementation of the HTTP port, shared by the OCR client and the search index."""
from __future__ import annotations

import time
from typing import Any, Mapping

import httpx
from loguru import logger

from docvault_worker.app.ports.http_client import (
    HttpClientError,
    HttpClientTimeoutError,
    HttpResponse,
    RequestTimeout,
)


class _HttpxResponse:
    """HttpResponse view over httpx.Response; body decoding is deferred to `json()`."""

    def __init__(self, response: httpx.Response) -> None:
        self._response = response
        self.status_code = response.status_code
        self.url = str(response.url)

    @property
    def text(self) -> str:
        return self._response.text

    def json(self) -> Any:
        return self._response.json()


def _timeout(timeout: RequestTimeout) -> httpx.Timeout:
    # writes are small JSON bodies; they share the read budget
    return httpx.Timeout(
        connect=timeout.connect_seconds,
        read=timeout.read_seconds,
        write=timeout.read_seconds,
        pool=timeout.connect_seconds,
    )


class HttpxHttpClient:
    def __init__(self, client: httpx.AsyncClient) -> None:
        self._client = client

    async def request(
        self,
        method: str,
        url: str,
        *,
        timeout: RequestTimeout,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> HttpResponse:
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method,
                url,
                timeout=_timeout(timeout),
                params=dict(params) if params else None,
                json=json,
                headers=dict(headers) if headers else None,
            )
        except httpx.TimeoutException as exc:
            raise HttpClientTimeoutError(f"{method} {url} timed out after {timeout.read_seconds}s") from exc
        except httpx.HTTPError as exc:
            raise HttpClientError(f"{method} {url} failed: {type(exc).__name__}: {exc}") from exc
        logger.debug(
            "{} {} -> {} in {:.1f} ms",
            method,
            url,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return _HttpxResponse(response)

    async def close(self) -> None:
        await self._client.aclose()
