"""
Async job management for long-running ingestion operations.

Provides background directory scans and record streams with progress
tracking and cooperative cancellation.
"""

from .models import Job, JobConfig, JobKind, JobSnapshot, JobState, TERMINAL_STATES
from .progress import Progress, compute_progress
from .traversal import TraversalResult, scan_directory
from .batcher import ProcessingSummary, RecordBatcher
from .registry import JobRegistry
from .runner import JobRunner
from .engine import JobEngine

__all__ = [
    "Job",
    "JobConfig",
    "JobKind",
    "JobSnapshot",
    "JobState",
    "TERMINAL_STATES",
    "Progress",
    "compute_progress",
    "TraversalResult",
    "scan_directory",
    "ProcessingSummary",
    "RecordBatcher",
    "JobRegistry",
    "JobRunner",
    "JobEngine",
]
