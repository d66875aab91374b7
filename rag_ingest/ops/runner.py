"""
Job runner - executes one job's pipeline on a worker thread.

DIRECTORY_SCAN: traverse, then extract each file into a CSV manifest row.
RECORD_STREAM: estimate the record count, then batch records into the sink.

The runner is the only writer of a job's counters while it is RUNNING.
Cancellation is observed at checkpoints: before each directory listing,
before each file extraction and before each batch flush.
"""

from pathlib import Path
from typing import Optional

from ..config.settings import Settings
from ..errors import FatalJobError, RecoverableItemError
from ..ingest.extractors import DocumentExtractor, Extractor
from ..ingest.manifest import ManifestWriter
from ..ingest.records import CsvRecordSource, RecordLayout, estimate_count
from ..persist.sink import Sink
from ..telemetry import get_logger
from .batcher import ProcessingSummary, RecordBatcher
from .models import Job, JobKind, JobState
from .registry import JobRegistry
from .traversal import scan_directory


logger = get_logger(__name__)

FAILURE_PREFIXES = {
    JobKind.DIRECTORY_SCAN: "Scan failed",
    JobKind.RECORD_STREAM: "Streaming failed",
}


class JobRunner:
    """Drives a single job from PENDING to a terminal state."""

    def __init__(
        self,
        job: Job,
        registry: JobRegistry,
        extractor: Optional[Extractor] = None,
        sink: Optional[Sink] = None,
        settings: Optional[Settings] = None,
    ):
        self.job = job
        self.registry = registry
        self.extractor = extractor or DocumentExtractor()
        self.sink = sink
        self.settings = settings or Settings()
        self.log = logger.bind(job_id=job.id, kind=job.kind.value)

    def run(self) -> None:
        """Execute the job. Never raises; failures end in FAILED."""
        job = self.job

        if not self.registry.transition(job.id, JobState.PENDING, JobState.RUNNING):
            self.log.info("job_not_started", status=job.status.value)
            return

        job.message = "Starting..."
        self.log.info("job_started", source=job.config.source_path)

        try:
            if job.kind is JobKind.DIRECTORY_SCAN:
                self._run_scan()
            else:
                self._run_stream()
        except Exception as e:
            self._fail(e)
            return

        self._finish()

    # ----- directory scan -----

    def _run_scan(self) -> None:
        job = self.job
        cfg = job.config
        root = Path(cfg.source_path)

        result = scan_directory(
            root,
            cfg.supported_extensions,
            recursive=cfg.recursive,
            max_items=cfg.max_items,
            should_cancel=job.cancel_event.is_set,
        )

        for message in result.errors:
            job.add_error(message)
        job.extensions_seen = list(result.extensions_seen)
        job.total_estimate = len(result.files)
        job.total_files_found = len(result.files)

        if result.cancelled or job.cancel_requested:
            return

        output = self._manifest_path(root)
        job.output_location = str(output)
        job.message = f"Found {len(result.files)} files"

        if not result.files:
            return

        log_every = max(1, self.settings.engine.progress_log_every)

        with ManifestWriter(output) as manifest:
            for path in result.files:
                if job.cancel_requested:
                    break

                job.processed += 1
                try:
                    document = self.extractor.extract(path)
                except RecoverableItemError as e:
                    job.failed += 1
                    job.add_error(f"Failed to process {path}: {e}")
                    self.log.warning("file_failed", path=str(path), error=str(e))
                else:
                    manifest.write(path, document)
                    job.succeeded += 1

                job.update_progress()
                job.message = f"Processed {job.processed}/{job.total_files_found} files"
                if job.processed % log_every == 0:
                    self.log.info(
                        "scan_progress",
                        processed=job.processed,
                        total=job.total_files_found,
                        failed=job.failed,
                    )

    def _manifest_path(self, root: Path) -> Path:
        if self.job.config.destination:
            return Path(self.job.config.destination)
        return root / f"{self.settings.scan.manifest_prefix}{self.job.id}.csv"

    # ----- record stream -----

    def _run_stream(self) -> None:
        job = self.job
        cfg = job.config
        source_path = Path(cfg.source_path)

        if not source_path.is_file():
            raise FatalJobError(f"Source file does not exist: {cfg.source_path}")
        if self.sink is None:
            raise FatalJobError("No sink configured for record streams")

        job.output_location = cfg.destination
        job.total_estimate = estimate_count(source_path, cfg.skip_header)

        def write_batch(batch):
            return self.sink.write(batch, cfg.destination)

        with CsvRecordSource(
            source_path,
            delimiter=cfg.delimiter,
            quote_char=cfg.quote_char,
            escape_char=cfg.escape_char,
            skip_header=cfg.skip_header,
            column_names=cfg.column_names,
            encoding=cfg.encoding,
        ) as source:
            layout = RecordLayout.from_header(
                source.header,
                cfg.content_column,
                id_column=cfg.id_column,
                metadata_columns=cfg.metadata_columns,
            )
            batcher = RecordBatcher(
                batch_size=cfg.batch_size,
                on_batch=write_batch,
                max_records=cfg.max_items,
                max_errors=job.max_errors,
                max_record_chars=self.settings.engine.max_record_chars,
                should_cancel=job.cancel_event.is_set,
                on_progress=self._sync_summary,
            )
            summary = batcher.stream(source, layout)

        self._sync_summary(summary)

    def _sync_summary(self, summary: ProcessingSummary) -> None:
        """Copy batcher counters onto the job, keeping succeeded + failed <= processed."""
        job = self.job
        if 0 <= job.total_estimate < summary.processed:
            job.total_estimate = summary.processed

        job.processed = summary.processed
        job.succeeded = summary.succeeded
        job.failed = summary.failed
        job.skipped = summary.skipped
        job.batch_count = summary.batches
        job.errors = list(summary.errors)
        job.update_progress()
        job.message = f"Processed {summary.processed} records in {summary.batches} batches"

        self.log.debug(
            "stream_progress",
            processed=summary.processed,
            succeeded=summary.succeeded,
            failed=summary.failed,
            batches=summary.batches,
        )

    # ----- termination -----

    def _finish(self) -> None:
        job = self.job
        job.update_progress()

        if not job.cancel_requested and self.registry.transition(
            job.id, JobState.RUNNING, JobState.COMPLETED
        ):
            job.message = "Completed successfully"
            self.log.info(
                "job_completed",
                processed=job.processed,
                succeeded=job.succeeded,
                failed=job.failed,
                duration_ms=job.duration_ms,
                rate_per_second=job.progress.rate_per_second,
            )
            return

        self._mark_cancelled()

    def _mark_cancelled(self) -> None:
        job = self.job
        job.stamp_end()
        job.message = "Cancelled"
        self.log.info(
            "job_cancelled",
            processed=job.processed,
            succeeded=job.succeeded,
            failed=job.failed,
        )

    def _fail(self, error: Exception) -> None:
        job = self.job
        reason = f"{FAILURE_PREFIXES[job.kind]}: {error}"
        job.add_error(reason)
        job.message = reason

        if self.registry.transition(job.id, JobState.RUNNING, JobState.FAILED):
            self.log.error("job_failed", error=str(error), exc_info=not isinstance(error, FatalJobError))
        else:
            # Cancelled while the failing call was in flight
            self._mark_cancelled()
