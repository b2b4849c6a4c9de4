from __future__ import annotations

import asyncio

from docvault_worker.app.application.indexing_coordinator import INDEXED, SKIPPED, IndexingCoordinator
from docvault_worker.app.constants import ProcessingStatus
from docvault_worker.app.domain.errors import ClientError, ServerError
from docvault_worker.app.domain.outcome import Retryable, Success, Terminal
from tests.conftest import FakeSearchIndex, InMemoryRepository, make_job


def test_indexes_completed_content_and_records_timestamp():
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.COMPLETED, content="body"))
    search = FakeSearchIndex()
    outcome = asyncio.run(IndexingCoordinator(repo, search).index("doc-1"))
    assert outcome == Success(INDEXED)
    assert search.indexed == [("doc-1", "body")]
    assert repo.jobs["doc-1"].indexed_at is not None


def test_empty_content_is_still_indexed():
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.COMPLETED, content=""))
    search = FakeSearchIndex()
    asyncio.run(IndexingCoordinator(repo, search).index("doc-1"))
    assert search.indexed == [("doc-1", "")]


def test_missing_content_is_skipped_with_warning(log_records):
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.COMPLETED, content=None))
    search = FakeSearchIndex()
    outcome = asyncio.run(IndexingCoordinator(repo, search).index("doc-1"))
    assert outcome == Success(SKIPPED)
    assert search.indexed == []
    assert any(r["level"].name == "WARNING" and r["extra"].get("event") == "indexing_skipped" for r in log_records)


def test_unfinished_job_is_skipped():
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.PROCESSING, content="partial"))
    search = FakeSearchIndex()
    assert asyncio.run(IndexingCoordinator(repo, search).index("doc-1")) == Success(SKIPPED)
    assert search.indexed == []


def test_index_service_outage_is_retryable():
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.COMPLETED, content="body"))
    search = FakeSearchIndex(error=ServerError("search 503", status_code=503))
    outcome = asyncio.run(IndexingCoordinator(repo, search).index("doc-1"))
    assert isinstance(outcome, Retryable)
    assert repo.saved == []


def test_index_rejection_is_terminal():
    repo = InMemoryRepository(make_job("doc-1", ProcessingStatus.COMPLETED, content="body"))
    search = FakeSearchIndex(error=ClientError("bad document", status_code=400))
    assert isinstance(asyncio.run(IndexingCoordinator(repo, search).index("doc-1")), Terminal)


def test_unknown_document_is_terminal():
    assert isinstance(asyncio.run(IndexingCoordinator(InMemoryRepository(), FakeSearchIndex()).index("x")), Terminal)
