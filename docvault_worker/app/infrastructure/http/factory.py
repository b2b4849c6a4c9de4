"""HTTP client factory. Timeouts are per request (see HttpxHttpClient), so only pooling is configured here."""
from __future__ import annotations

import httpx

from docvault_worker.app.infrastructure.http.httpx_client import HttpxHttpClient
from docvault_worker.app.ports.http_client import AbstractHttpClient


def create_http_client(*, user_agent: str, max_connections: int = 20) -> AbstractHttpClient:
    async_client = httpx.AsyncClient(
        headers={"Accept": "application/json", "User-Agent": user_agent},
        limits=httpx.Limits(max_connections=max_connections, max_keepalive_connections=max_connections // 2),
    )
    return HttpxHttpClient(async_client)
