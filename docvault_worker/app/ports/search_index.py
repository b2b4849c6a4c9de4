"""Port: full-text search index."""
from __future__ import annotations

from typing import Protocol


class SearchIndex(Protocol):
    async def index(self, document_id: str, content: str) -> None:
        """Add or replace the document; raise TransportError/ServerError/ClientError on failure."""
        ...

    async def close(self) -> None: ...
