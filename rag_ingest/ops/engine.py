"""
Job engine facade - submit, poll, cancel and list ingestion jobs.

Each submitted job runs on a worker thread; every public method only
touches the registry and returns without waiting on job execution
(except ``wait``, which exists for callers that want to block).
"""

from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from pydantic import ValidationError

from ..config.settings import Settings
from ..errors import JobValidationError
from ..ingest.extractors import DocumentExtractor, Extractor
from ..ingest.records import estimate_count
from ..persist.sink import Sink
from ..telemetry import get_logger
from .models import Job, JobConfig, JobKind, JobSnapshot, JobState, utcnow
from .registry import JobRegistry
from .runner import JobRunner


logger = get_logger(__name__)


class JobEngine:
    """
    In-process job engine.

    Jobs are kept until ``purge`` removes them; nothing is persisted
    across restarts.
    """

    def __init__(
        self,
        sink: Optional[Sink] = None,
        extractor: Optional[Extractor] = None,
        settings: Optional[Settings] = None,
        registry: Optional[JobRegistry] = None,
    ):
        """
        Initialize the engine.

        Args:
            sink: Destination for record-stream batches (required for streams)
            extractor: Text extractor for directory scans
            settings: Engine settings (defaults when omitted)
            registry: Job table, a fresh one when omitted
        """
        self.settings = settings or Settings()
        self.registry = registry or JobRegistry()
        self.extractor = extractor or DocumentExtractor()
        self.sink = sink

        self.executor = ThreadPoolExecutor(
            max_workers=self.settings.engine.max_workers,
            thread_name_prefix="ingest-job",
        )
        # One entry per job until purge drops it, like the registry
        self._futures: dict[str, Future] = {}

    def submit(self, config: Union[JobConfig, Mapping[str, Any]]) -> JobSnapshot:
        """
        Validate and schedule a job.

        Args:
            config: JobConfig or a mapping of JobConfig fields

        Returns:
            Initial snapshot (PENDING, or RUNNING if a worker already picked it up)

        Raises:
            JobValidationError: config rejected; no job was created
        """
        config = self._validate(config)

        job = Job.create(config, max_errors=self.settings.engine.max_errors)
        self.registry.insert(job)

        runner = JobRunner(
            job,
            self.registry,
            extractor=self.extractor,
            sink=self.sink,
            settings=self.settings,
        )
        self._futures[job.id] = self.executor.submit(runner.run)

        logger.info(
            "job_submitted",
            job_id=job.id,
            kind=job.kind.value,
            source=config.source_path,
        )
        return job.snapshot()

    def _validate(self, config: Union[JobConfig, Mapping[str, Any]]) -> JobConfig:
        if not isinstance(config, JobConfig):
            data = dict(config)
            data.setdefault("batch_size", self.settings.engine.default_batch_size)
            data.setdefault("supported_extensions", self.settings.scan.default_extensions)
            try:
                config = JobConfig.model_validate(data)
            except ValidationError as e:
                raise JobValidationError(f"Invalid job config: {e}") from e

        if config.kind is JobKind.RECORD_STREAM and self.sink is None:
            raise JobValidationError("Record streams need a sink; none is configured")

        return config

    def status(self, job_id: str) -> Optional[JobSnapshot]:
        """Best-known snapshot of a job, or None if the id is unknown."""
        job = self.registry.get(job_id)
        return job.snapshot() if job is not None else None

    def cancel(self, job_id: str) -> bool:
        """
        Request cooperative cancellation.

        Returns:
            True if the job moved to CANCELLED, False if unknown or already terminal
        """
        cancelled = self.registry.transition(
            job_id,
            (JobState.PENDING, JobState.RUNNING),
            JobState.CANCELLED,
        )
        if cancelled:
            logger.info("job_cancel_requested", job_id=job_id)
        return cancelled

    def list(self, state: Optional[Union[JobState, str]] = None) -> list[JobSnapshot]:
        """
        List all jobs, newest first.

        Args:
            state: Only return jobs in this state
        """
        jobs = self.registry.list()
        if state is not None:
            wanted = JobState(state)
            jobs = [j for j in jobs if j.status is wanted]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    def estimate_count(self, source: Union[Path, str], skip_header: bool = True) -> int:
        """Advisory record count for a delimited file; -1 when unknown."""
        return estimate_count(source, skip_header)

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[JobSnapshot]:
        """
        Block until the job's runner has returned.

        Raises:
            TimeoutError: the job did not finish within ``timeout`` seconds
        """
        future = self._futures.get(job_id)
        if future is None:
            return self.status(job_id)
        try:
            future.result(timeout=timeout)
        except FutureTimeout as e:
            raise TimeoutError(f"Job {job_id} still running after {timeout}s") from e
        return self.status(job_id)

    def purge(self, max_age_hours: float = 24) -> int:
        """
        Remove terminal jobs that ended more than ``max_age_hours`` ago.

        Returns:
            Number of jobs removed
        """
        cutoff = utcnow() - timedelta(hours=max_age_hours)
        removed = 0

        for snapshot in self.registry.list():
            if not snapshot.is_terminal or snapshot.ended_at is None:
                continue
            if snapshot.ended_at < cutoff and self.registry.remove(snapshot.id):
                self._futures.pop(snapshot.id, None)
                removed += 1

        if removed:
            logger.info("jobs_purged", removed=removed, max_age_hours=max_age_hours)
        return removed

    def shutdown(self, wait: bool = True, cancel_running: bool = False) -> None:
        """Stop accepting work; optionally cancel everything still active."""
        if cancel_running:
            for snapshot in self.registry.list():
                if not snapshot.is_terminal:
                    self.cancel(snapshot.id)
        self.executor.shutdown(wait=wait)
