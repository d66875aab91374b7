"""
Record batching for record-stream jobs.

Records are read one at a time, grouped into fixed-size batches and handed
to a batch callback (normally ``Sink.write``). A bad record is counted and
skipped; it never aborts the stream. The flush is the unit of external side
effect, so cancellation is checked immediately before every flush and
unflushed records are discarded when it is observed.
"""

from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence

from ..errors import RecoverableItemError, SinkError
from ..ingest.models import Record
from ..ingest.records import CsvRecordSource, RecordLayout
from ..telemetry import get_logger


logger = get_logger(__name__)

BatchCallback = Callable[[Sequence[Record]], int]


@dataclass
class ProcessingSummary:
    """Counters accumulated while streaming records."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    batches: int = 0
    batch_sizes: List[int] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    max_errors: int = 100
    cancelled: bool = False

    def add_error(self, message: str) -> None:
        if len(self.errors) < self.max_errors:
            self.errors.append(message)


class RecordBatcher:
    """Stream records from a source into fixed-size batches."""

    def __init__(
        self,
        batch_size: int,
        on_batch: BatchCallback,
        max_records: Optional[int] = None,
        max_errors: int = 100,
        max_record_chars: Optional[int] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        on_progress: Optional[Callable[[ProcessingSummary], None]] = None,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.batch_size = batch_size
        self.on_batch = on_batch
        self.max_records = max_records
        self.max_errors = max_errors
        self.max_record_chars = max_record_chars
        self.should_cancel = should_cancel
        self.on_progress = on_progress

    def stream(self, source: CsvRecordSource, layout: RecordLayout) -> ProcessingSummary:
        """
        Consume ``source`` until it ends, ``max_records`` is reached or
        cancellation is observed.

        Raises:
            SinkError: a non-recoverable sink failure (the job must fail)
        """
        summary = ProcessingSummary(max_errors=self.max_errors)
        batch: List[Record] = []
        taken = 0

        for raw in source.rows():
            try:
                record = layout.to_record(raw, self.max_record_chars)
            except RecoverableItemError as e:
                summary.processed += 1
                summary.failed += 1
                summary.add_error(str(e))
                logger.debug("record_failed", record_number=raw.record_number, error=str(e))
                record = None
                taken += 1
            else:
                if record is None:
                    summary.skipped += 1
                    continue
                batch.append(record)
                taken += 1

            if len(batch) >= self.batch_size:
                if not self._flush(batch, summary):
                    return summary

            if self.max_records is not None and taken >= self.max_records:
                break

        if batch:
            self._flush(batch, summary)

        return summary

    def _flush(self, batch: List[Record], summary: ProcessingSummary) -> bool:
        """Hand one batch to the callback. Returns False if cancelled instead."""
        if self.should_cancel is not None and self.should_cancel():
            logger.info("batch_discarded", size=len(batch), reason="cancelled")
            summary.cancelled = True
            batch.clear()
            return False

        size = len(batch)
        try:
            accepted = self.on_batch(list(batch))
        except SinkError as e:
            if not e.recoverable:
                raise
            accepted = 0
            summary.add_error(f"Batch {summary.batches + 1} failed: {e}")
            logger.warning("batch_failed", batch=summary.batches + 1, size=size, error=str(e))

        accepted = max(0, min(int(accepted or 0), size))

        summary.processed += size
        summary.succeeded += accepted
        summary.failed += size - accepted
        summary.batches += 1
        summary.batch_sizes.append(size)
        batch.clear()

        if self.on_progress is not None:
            self.on_progress(summary)
        return True
