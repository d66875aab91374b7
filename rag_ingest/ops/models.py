"""
Job data model: kinds, states, the immutable submission config, the live
Job record owned by the registry, and the read-only snapshot handed to callers.
"""

import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from ..config.settings import DEFAULT_EXTENSIONS
from .progress import Progress, compute_progress


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobKind(str, Enum):
    DIRECTORY_SCAN = "DIRECTORY_SCAN"
    RECORD_STREAM = "RECORD_STREAM"


class JobState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset({JobState.CANCELLED, JobState.COMPLETED, JobState.FAILED})

ID_PREFIXES = {
    JobKind.DIRECTORY_SCAN: "scan",
    JobKind.RECORD_STREAM: "stream",
}


def new_job_id(kind: JobKind) -> str:
    """Generate an id like ``scan_1718000000000_1a2b3c4d``."""
    return f"{ID_PREFIXES[kind]}_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"


class JobConfig(BaseModel):
    """Input parameters of a job, frozen at submission."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: JobKind
    source_path: str
    destination: Optional[str] = None
    batch_size: int = Field(default=100, ge=1)
    content_column: str = "content"
    id_column: Optional[str] = None
    metadata_columns: tuple[str, ...] = ()
    recursive: bool = True
    max_items: Optional[int] = Field(default=None, ge=1)
    supported_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    delimiter: str = ","
    quote_char: str = '"'
    escape_char: Optional[str] = None
    skip_header: bool = True
    column_names: Optional[tuple[str, ...]] = None
    encoding: str = "utf-8"

    @field_validator("source_path", "content_column", "encoding")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be blank")
        return value.strip()

    @field_validator("destination", "id_column")
    @classmethod
    def _blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value.strip()

    @field_validator("supported_extensions", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Any) -> tuple[str, ...]:
        if isinstance(value, str):
            value = [value]
        seen: list[str] = []
        for ext in value or ():
            ext = str(ext).strip().lstrip(".").lower()
            if ext and ext not in seen:
                seen.append(ext)
        return tuple(seen)

    @field_validator("delimiter", "quote_char")
    @classmethod
    def _single_char(cls, value: str) -> str:
        if len(value) != 1:
            raise ValueError("must be a single character")
        return value

    @field_validator("escape_char")
    @classmethod
    def _optional_single_char(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and len(value) != 1:
            raise ValueError("must be a single character")
        return value

    @model_validator(mode="after")
    def _check_kind(self) -> "JobConfig":
        if self.kind is JobKind.RECORD_STREAM:
            if self.destination is None:
                raise ValueError("destination is required for record streams")
            if not self.skip_header and not self.column_names:
                raise ValueError("column_names are required when skip_header is false")
        else:
            if not self.supported_extensions:
                raise ValueError("supported_extensions must not be empty")
        return self


@dataclass(frozen=True)
class JobSnapshot:
    """Read-only copy of a job's state at one point in time."""

    id: str
    kind: JobKind
    status: JobState
    config: JobConfig
    processed: int
    succeeded: int
    failed: int
    skipped: int
    batch_count: int
    total_estimate: int
    total_files_found: int
    extensions_seen: tuple[str, ...]
    created_at: datetime
    started_at: Optional[datetime]
    ended_at: Optional[datetime]
    duration_ms: Optional[int]
    errors: tuple[str, ...]
    output_location: Optional[str]
    message: str
    progress: Progress

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        return {
            "id": self.id,
            "kind": self.kind.value,
            "status": self.status.value,
            "config": self.config.model_dump(mode="json"),
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "batch_count": self.batch_count,
            "total_estimate": self.total_estimate,
            "total_files_found": self.total_files_found,
            "extensions_seen": list(self.extensions_seen),
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "errors": list(self.errors),
            "output_location": self.output_location,
            "message": self.message,
            "progress": self.progress.to_dict(),
        }


@dataclass
class Job:
    """
    Live job record.

    Counters and progress fields are written only by the owning runner.
    ``status`` changes only through ``compare_and_set`` (the registry's
    ``transition``), and ``cancel_event`` is set only when the status
    becomes CANCELLED.
    """

    id: str
    kind: JobKind
    config: JobConfig
    status: JobState = JobState.PENDING
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    batch_count: int = 0
    total_estimate: int = -1
    total_files_found: int = 0
    extensions_seen: list[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    errors: list[str] = field(default_factory=list)
    max_errors: int = 100
    output_location: Optional[str] = None
    message: str = ""
    progress: Progress = field(default_factory=Progress)
    cancel_event: threading.Event = field(default_factory=threading.Event, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def create(cls, config: JobConfig, max_errors: int = 100) -> "Job":
        return cls(
            id=new_job_id(config.kind),
            kind=config.kind,
            config=config,
            max_errors=max_errors,
            message=f"Queued {config.kind.value.lower()}",
        )

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    def compare_and_set(
        self,
        expected: Union[JobState, Iterable[JobState]],
        new: JobState,
    ) -> bool:
        """
        Atomically move from one of ``expected`` to ``new``.

        Fails when the current status is not expected or is already terminal.
        Stamps ``started_at`` on entering RUNNING and ``ended_at`` on entering
        a terminal state.
        """
        allowed = {expected} if isinstance(expected, JobState) else set(expected)

        with self._lock:
            if self.status.is_terminal or self.status not in allowed:
                return False

            now = utcnow()
            if new is JobState.RUNNING:
                self.started_at = now
            if new.is_terminal:
                self.ended_at = now
                self.duration_ms = self._elapsed_ms(now)
            if new is JobState.CANCELLED:
                self.cancel_event.set()

            self.status = new
            return True

    def add_error(self, message: str) -> bool:
        """Append an error unless the cap is reached. Returns True if stored."""
        if len(self.errors) >= self.max_errors:
            return False
        self.errors.append(message)
        return True

    def update_progress(self, now: Optional[datetime] = None) -> Progress:
        self.progress = compute_progress(self.processed, self.total_estimate, self.started_at, now)
        return self.progress

    def stamp_end(self, now: Optional[datetime] = None) -> None:
        """Refresh ``ended_at``/``duration_ms`` once the runner has stopped."""
        now = now or utcnow()
        self.ended_at = now
        self.duration_ms = self._elapsed_ms(now)

    def _elapsed_ms(self, now: datetime) -> int:
        start = self.started_at or self.created_at
        return max(0, int((now - start).total_seconds() * 1000))

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            id=self.id,
            kind=self.kind,
            status=self.status,
            config=self.config,
            processed=self.processed,
            succeeded=self.succeeded,
            failed=self.failed,
            skipped=self.skipped,
            batch_count=self.batch_count,
            total_estimate=self.total_estimate,
            total_files_found=self.total_files_found,
            extensions_seen=tuple(self.extensions_seen),
            created_at=self.created_at,
            started_at=self.started_at,
            ended_at=self.ended_at,
            duration_ms=self.duration_ms,
            errors=tuple(self.errors),
            output_location=self.output_location,
            message=self.message,
            progress=self.progress,
        )
