"""Worker-level constants shared across modules."""
from __future__ import annotations

from enum import Enum


class ProcessingStatus(str, Enum):
    QUEUED = "QUEUED"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class OcrTaskStatus(str, Enum):
    """Task states as reported by the OCR service."""

    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MessageType:
    PROCESS_DOCUMENT = "process_document"
    RETRY_FAILED_TASK = "retry_failed_task"
    INDEX_DOCUMENT = "index_document"


OCR_SERVICE_BOUNDARY = "ocr-service"
DEFAULT_STUCK_TIMEOUT_MINUTES = 30
