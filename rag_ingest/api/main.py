"""Main FastAPI application exposing the ingestion job engine."""

from fastapi import FastAPI, HTTPException, Depends
from typing import Optional
from pathlib import Path
import uvicorn

from .schemas import (
    ScanStartRequest,
    StreamStartRequest,
    JobStartResponse,
    JobStatusResponse,
    JobListResponse,
    CancelResponse,
    EstimateRequest,
    EstimateResponse,
    PurgeRequest,
    PurgeResponse,
    HealthResponse,
)
from ..config.settings import Settings
from ..errors import JobValidationError
from ..ops import JobEngine, JobKind, JobSnapshot, JobState
from ..persist import SqliteSink
from ..telemetry import configure_logging, get_logger


logger = get_logger(__name__)

app = FastAPI(
    title="RAG Ingest API",
    description="Background directory scans and CSV record streams for the RAG document store",
    version="0.3.0",
)

# Initialized on startup
_engine: Optional[JobEngine] = None
_sink: Optional[SqliteSink] = None


def get_engine() -> JobEngine:
    """Dependency to get the job engine."""
    if _engine is None:
        raise HTTPException(status_code=503, detail="Job engine not initialized")
    return _engine


@app.on_event("startup")
async def startup_event():
    """Initialize the engine and its record sink."""
    global _engine, _sink

    settings = Settings.from_env()
    configure_logging(settings.logging.level, settings.logging.json_output)

    _sink = SqliteSink(Path(settings.paths.sink_db))
    _engine = JobEngine(sink=_sink, settings=settings)
    logger.info("engine_started", sink_db=settings.paths.sink_db)


@app.on_event("shutdown")
async def shutdown_event():
    """Cancel active jobs and release the sink."""
    global _engine, _sink

    if _engine:
        _engine.shutdown(wait=True, cancel_running=True)
        _engine = None

    if _sink:
        _sink.close()
        _sink = None


def _to_response(snapshot: JobSnapshot) -> JobStatusResponse:
    return JobStatusResponse(**snapshot.to_dict())


def _submit(engine: JobEngine, config: dict) -> JobStartResponse:
    try:
        snapshot = engine.submit(config)
    except JobValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return JobStartResponse(
        job_id=snapshot.id,
        status=snapshot.status.value,
        message=f"{snapshot.kind.value} job queued",
    )


@app.get("/health", response_model=HealthResponse)
def health():
    """Health check endpoint."""
    return HealthResponse(
        status="ok" if _engine is not None else "starting",
        jobs=len(_engine.registry) if _engine is not None else 0,
        components={
            "engine": _engine is not None,
            "sink": _sink is not None,
        },
    )


@app.post("/jobs/scan", response_model=JobStartResponse)
def start_scan(request: ScanStartRequest, engine: JobEngine = Depends(get_engine)):
    """Start a background directory scan that writes an extraction manifest."""
    return _submit(engine, {
        "kind": JobKind.DIRECTORY_SCAN,
        "source_path": request.directory_path,
        "destination": request.output_csv_path,
        "supported_extensions": request.supported_extensions,
        "recursive": request.recursive,
        "max_items": request.max_files,
    })


@app.post("/jobs/stream", response_model=JobStartResponse)
def start_stream(request: StreamStartRequest, engine: JobEngine = Depends(get_engine)):
    """Start a background CSV stream into the record sink."""
    return _submit(engine, {
        "kind": JobKind.RECORD_STREAM,
        "source_path": request.csv_file_path,
        "destination": request.index_name,
        "batch_size": request.batch_size,
        "content_column": request.text_column,
        "id_column": request.id_column,
        "metadata_columns": request.metadata_columns,
        "skip_header": request.skip_header,
        "column_names": request.column_names,
        "delimiter": request.delimiter,
        "quote_char": request.quote_character,
        "escape_char": request.escape_character,
        "max_items": request.max_records,
    })


@app.get("/jobs", response_model=JobListResponse)
def list_jobs(state: Optional[str] = None, engine: JobEngine = Depends(get_engine)):
    """
    List all jobs, newest first.

    Query params:
        state: Filter by state (PENDING, RUNNING, CANCELLED, COMPLETED, FAILED)
    """
    if state is not None and state.upper() not in JobState.__members__:
        raise HTTPException(status_code=422, detail=f"Unknown state: {state}")

    jobs = engine.list(state=state.upper() if state else None)
    return JobListResponse(jobs=[_to_response(j) for j in jobs])


@app.get("/jobs/{job_id}", response_model=JobStatusResponse)
def job_status(job_id: str, engine: JobEngine = Depends(get_engine)):
    """Get the current snapshot of a job."""
    snapshot = engine.status(job_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return _to_response(snapshot)


@app.post("/jobs/{job_id}/cancel", response_model=CancelResponse)
def cancel_job(job_id: str, engine: JobEngine = Depends(get_engine)):
    """Request cancellation; cancelled is false for finished jobs."""
    if engine.status(job_id) is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
    return CancelResponse(job_id=job_id, cancelled=engine.cancel(job_id))


@app.post("/jobs/estimate", response_model=EstimateResponse)
def estimate(request: EstimateRequest, engine: JobEngine = Depends(get_engine)):
    """Cheap record-count estimate for a CSV file."""
    return EstimateResponse(
        csv_file_path=request.csv_file_path,
        estimated_records=engine.estimate_count(request.csv_file_path, request.skip_header),
    )


@app.post("/jobs/purge", response_model=PurgeResponse)
def purge(request: PurgeRequest, engine: JobEngine = Depends(get_engine)):
    """Remove finished jobs older than max_age_hours."""
    return PurgeResponse(removed=engine.purge(request.max_age_hours))


def main():
    """Run the API server."""
    uvicorn.run("rag_ingest.api.main:app", host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
