"""
rag-ingest: asynchronous ingestion jobs for a RAG document store.

Directory scans harvest files into an extraction manifest; record streams
push large CSV sources into a record sink in batches.
"""

from .errors import (
    IngestError,
    JobValidationError,
    RecoverableItemError,
    ExtractionError,
    RecordDecodeError,
    FatalJobError,
    SinkError,
)
from .ops import JobEngine, JobConfig, JobKind, JobSnapshot, JobState

__version__ = "0.3.0"

__all__ = [
    "IngestError",
    "JobValidationError",
    "RecoverableItemError",
    "ExtractionError",
    "RecordDecodeError",
    "FatalJobError",
    "SinkError",
    "JobEngine",
    "JobConfig",
    "JobKind",
    "JobSnapshot",
    "JobState",
]
