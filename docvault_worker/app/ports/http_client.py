"""HTTP client port: contract for outbound JSON requests.

Domain clients (OCR service, search index) depend on this port; infrastructure
(httpx) implements it. Non-2xx responses are returned, not raised: mapping status
codes onto the failure taxonomy is the calling client's job.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Protocol, runtime_checkable


class HttpClientError(Exception):
    """Base for HTTP transport failures (connect, DNS, protocol, etc.)."""


class HttpClientTimeoutError(HttpClientError):
    """Raised when the request times out."""


@runtime_checkable
class HttpResponse(Protocol):
    """Minimal read-only view of an HTTP response."""

    @property
    def status_code(self) -> int: ...

    @property
    def text(self) -> str: ...

    @property
    def url(self) -> str: ...

    def json(self) -> Any: ...


@dataclass(frozen=True)
class RequestTimeout:
    """Connect and read timeouts in seconds."""

    connect_seconds: float
    read_seconds: float


@runtime_checkable
class AbstractHttpClient(Protocol):
    """Port: perform HTTP requests. Implementations live in infrastructure."""

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
        """Perform the request; raise HttpClientTimeoutError or HttpClientError on transport failure."""
        ...

    async def close(self) -> None:
        """Release resources (e.g. connection pool). No-op allowed if nothing to close."""
        ...
