"""
Error taxonomy for the ingestion job engine.

- JobValidationError: bad input to submit, raised synchronously, no job created
- RecoverableItemError: one file/record failed, recorded and skipped
- FatalJobError: the job cannot continue and ends FAILED
- SinkError: raised by sinks; fatal unless flagged recoverable
"""


class IngestError(Exception):
    """Base class for all engine errors."""
    pass


class JobValidationError(IngestError, ValueError):
    """Exception raised when a job configuration is rejected at submit time."""
    pass


class RecoverableItemError(IngestError):
    """A single item failed; the job records it and moves on."""
    pass


class ExtractionError(RecoverableItemError):
    """Exception raised when text extraction from a file fails."""
    pass


class RecordDecodeError(RecoverableItemError):
    """Exception raised when a delimited record cannot be decoded."""

    def __init__(self, message: str, record_number: int = 0):
        super().__init__(message)
        self.record_number = record_number


class FatalJobError(IngestError):
    """Unrecoverable condition; the owning job ends in FAILED."""
    pass


class SinkError(IngestError):
    """
    Exception raised by a sink when a batch cannot be written.

    A recoverable sink error fails the current batch only; any other
    sink error terminates the job.
    """

    def __init__(self, message: str, recoverable: bool = False):
        super().__init__(message)
        self.recoverable = recoverable
