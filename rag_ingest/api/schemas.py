"""
Pydantic schemas for FastAPI endpoints.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from ..config.settings import DEFAULT_EXTENSIONS


class ScanStartRequest(BaseModel):
    """Request model for POST /jobs/scan."""

    directory_path: str = Field(..., description="Directory to scan")
    output_csv_path: Optional[str] = Field(default=None, description="Manifest path (defaults inside the scanned directory)")
    supported_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS), description="Extensions to harvest, without dots")
    recursive: bool = Field(default=True, description="Descend into subdirectories")
    max_files: Optional[int] = Field(default=None, description="Stop after this many files")


class StreamStartRequest(BaseModel):
    """Request model for POST /jobs/stream."""

    csv_file_path: str = Field(..., description="Delimited source file")
    index_name: str = Field(..., description="Sink destination for the records")
    batch_size: int = Field(default=100, description="Records per sink call")
    text_column: str = Field(default="content", description="Column holding the record content")
    id_column: Optional[str] = Field(default=None, description="Column holding record ids (generated when absent)")
    metadata_columns: List[str] = Field(default_factory=list, description="Columns copied into record metadata")
    skip_header: bool = Field(default=True, description="First line is a header")
    column_names: Optional[List[str]] = Field(default=None, description="Column names when the file has no header")
    delimiter: str = Field(default=",", description="Field delimiter")
    quote_character: str = Field(default='"', description="Quote character")
    escape_character: Optional[str] = Field(default=None, description="Escape character")
    max_records: Optional[int] = Field(default=None, description="Stop after this many records")


class JobStartResponse(BaseModel):
    """Response model for job submission endpoints."""

    job_id: str = Field(..., description="Job ID for tracking")
    status: str = Field(..., description="Initial job status")
    message: str = Field(default="Job queued", description="Status message")


class ProgressResponse(BaseModel):
    percentage: Optional[float] = None
    rate_per_second: float = 0.0
    elapsed_ms: int = 0


class JobStatusResponse(BaseModel):
    """Response model for job status endpoints."""

    id: str = Field(..., description="Job ID")
    kind: str = Field(..., description="DIRECTORY_SCAN or RECORD_STREAM")
    status: str = Field(..., description="PENDING, RUNNING, CANCELLED, COMPLETED or FAILED")
    processed: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    batch_count: int = 0
    total_estimate: int = -1
    total_files_found: int = 0
    extensions_seen: List[str] = Field(default_factory=list)
    created_at: str
    started_at: Optional[str] = None
    ended_at: Optional[str] = None
    duration_ms: Optional[int] = None
    errors: List[str] = Field(default_factory=list)
    output_location: Optional[str] = None
    message: str = ""
    progress: ProgressResponse = Field(default_factory=ProgressResponse)
    config: Dict[str, Any] = Field(default_factory=dict)


class JobListResponse(BaseModel):
    """Response model for GET /jobs."""

    jobs: List[JobStatusResponse] = Field(..., description="List of jobs")


class CancelResponse(BaseModel):
    job_id: str
    cancelled: bool


class EstimateRequest(BaseModel):
    csv_file_path: str = Field(..., description="Delimited source file")
    skip_header: bool = Field(default=True, description="Do not count the header line")


class EstimateResponse(BaseModel):
    csv_file_path: str
    estimated_records: int = Field(..., description="Estimated record count, -1 if unknown")


class PurgeRequest(BaseModel):
    max_age_hours: float = Field(default=24.0, ge=0, description="Remove terminal jobs older than this")


class PurgeResponse(BaseModel):
    removed: int


class HealthResponse(BaseModel):
    status: str
    jobs: int = 0
    components: Dict[str, bool] = Field(default_factory=dict)
