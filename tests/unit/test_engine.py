"""
Unit tests for rag_ingest/ops/engine.py

End-to-end job lifecycles through the engine facade: submit, poll,
cancel, list, estimate and purge.
"""
import csv
import time
from datetime import timedelta

import pytest

from rag_ingest.config.settings import Settings
from rag_ingest.errors import ExtractionError, FatalJobError, JobValidationError, SinkError
from rag_ingest.ingest.extractors import DocumentExtractor, PlainTextExtractor
from rag_ingest.ops import Job, JobConfig, JobEngine, JobKind, JobRegistry, JobRunner, JobState
from rag_ingest.ops import runner as runner_module

from conftest import BlockingSink, RecordingSink, write_csv


def _stream(source, **overrides):
    cfg = {
        "kind": "RECORD_STREAM",
        "source_path": str(source),
        "destination": "papers",
        "id_column": "id",
    }
    cfg.update(overrides)
    return cfg


def _scan(root, **overrides):
    cfg = {
        "kind": "DIRECTORY_SCAN",
        "source_path": str(root),
        "supported_extensions": ["txt"],
        "recursive": True,
    }
    cfg.update(overrides)
    return cfg


def _read_manifest(path):
    with open(path, newline="", encoding="utf-8") as f:
        return list(csv.DictReader(f))


# ----- record streams -----


def test_stream_with_blank_row(engine, recording_sink, five_row_csv):
    snap = engine.submit(_stream(five_row_csv, batch_size=2))
    assert snap.status in (JobState.PENDING, JobState.RUNNING)
    assert snap.id.startswith("stream_")

    final = engine.wait(snap.id, timeout=10)

    assert final.status is JobState.COMPLETED
    assert final.processed == 4
    assert final.succeeded == 4
    assert final.failed == 0
    assert final.skipped == 1
    assert final.batch_count == 2
    assert recording_sink.batch_sizes == [2, 2]
    assert set(recording_sink.destinations) == {"papers"}
    assert final.total_estimate == 5
    assert final.output_location == "papers"
    assert final.ended_at is not None
    assert final.progress.percentage == pytest.approx(80.0)


def test_stream_with_malformed_record(engine, recording_sink, malformed_csv):
    final = engine.wait(engine.submit(_stream(malformed_csv, batch_size=3)).id, timeout=10)

    assert final.status is JobState.COMPLETED
    assert final.succeeded == 9
    assert final.failed == 1
    assert final.succeeded + final.failed == final.processed
    assert recording_sink.batch_sizes == [3, 3, 3]
    assert len(final.errors) == 1


def test_completed_stream_counters_are_consistent(engine, tmp_path):
    rows = [f"{i},text {i}" if i % 7 else f"{i}" for i in range(1, 51)]
    path = write_csv(tmp_path / "fifty.csv", rows)

    final = engine.wait(engine.submit(_stream(path, batch_size=4)).id, timeout=10)

    assert final.status is JobState.COMPLETED
    assert final.succeeded + final.failed == final.processed
    assert final.processed <= 50
    assert final.processed <= final.total_estimate


def test_missing_content_column_fails_job(engine, five_row_csv):
    final = engine.wait(engine.submit(_stream(five_row_csv, content_column="text")).id, timeout=10)

    assert final.status is JobState.FAILED
    assert final.errors[-1].startswith("Streaming failed: Content column 'text' not found")
    assert final.ended_at is not None


def test_missing_source_fails_job(engine, tmp_path):
    final = engine.wait(engine.submit(_stream(tmp_path / "nope.csv")).id, timeout=10)

    assert final.status is JobState.FAILED
    assert "does not exist" in final.errors[-1]


def test_fatal_sink_error_fails_job_without_rollback(tmp_path):
    path = write_csv(tmp_path / "six.csv", [f"{i},text {i}" for i in range(6)])

    def accept(batch):
        if len(sink.calls) == 2:
            raise SinkError("index deleted")
        return len(batch)

    sink = RecordingSink(accept=accept)
    engine = JobEngine(sink=sink)
    try:
        final = engine.wait(engine.submit(_stream(path, batch_size=2)).id, timeout=10)
    finally:
        engine.shutdown()

    assert final.status is JobState.FAILED
    assert final.processed == 2
    assert final.succeeded == 2
    assert "index deleted" in final.errors[-1]
    assert len(sink.calls) == 2


def test_cancel_mid_stream(tmp_path):
    path = write_csv(tmp_path / "ten.csv", [f"{i},text {i}" for i in range(10)])
    sink = BlockingSink()
    engine = JobEngine(sink=sink)

    try:
        snap = engine.submit(_stream(path, batch_size=2))
        assert sink.first_write.wait(timeout=10)

        assert engine.status(snap.id).status is JobState.RUNNING
        assert engine.cancel(snap.id) is True
        assert engine.status(snap.id).status is JobState.CANCELLED
        sink.release.set()

        final = engine.wait(snap.id, timeout=10)
    finally:
        sink.release.set()
        engine.shutdown()

    assert final.status is JobState.CANCELLED
    assert final.processed == 2
    assert final.batch_count == 1
    assert len(sink.calls) == 1
    assert final.ended_at is not None


def test_stream_accepts_content_over_csv_default_field_limit(engine, recording_sink, tmp_path):
    path = write_csv(tmp_path / "long.csv", ["1,short", "2," + "y" * 200_000, "3,short"])

    final = engine.wait(engine.submit(_stream(path, batch_size=10)).id, timeout=10)

    assert final.status is JobState.COMPLETED
    assert final.succeeded == 3
    assert final.failed == 0
    assert len(recording_sink.records[1].content) == 200_000


def test_stream_replaces_undecodable_bytes(engine, recording_sink, tmp_path):
    path = tmp_path / "bytes.csv"
    path.write_bytes(b"id,content\n1,ok\n2,bad \xff\xfe bytes\n3,ok\n")

    final = engine.wait(engine.submit(_stream(path, batch_size=10)).id, timeout=10)

    assert final.status is JobState.COMPLETED
    assert final.processed == 3
    assert final.succeeded == 3
    assert [r.id for r in recording_sink.records] == ["1", "2", "3"]
    assert "\ufffd" in recording_sink.records[1].content


def test_max_records_cap(engine, recording_sink, tmp_path):
    path = write_csv(tmp_path / "ten.csv", [f"{i},text {i}" for i in range(10)])

    final = engine.wait(engine.submit(_stream(path, batch_size=3, max_items=5)).id, timeout=10)

    assert final.status is JobState.COMPLETED
    assert final.processed == 5
    assert recording_sink.batch_sizes == [3, 2]


# ----- directory scans -----


def test_scan_writes_manifest(engine, mixed_tree, tmp_path):
    out = tmp_path / "out" / "manifest.csv"

    final = engine.wait(engine.submit(_scan(mixed_tree, destination=str(out))).id, timeout=10)

    assert final.status is JobState.COMPLETED
    assert final.total_files_found == 3
    assert final.processed == 3
    assert final.succeeded == 3
    assert final.extensions_seen == ("txt",)
    assert final.output_location == str(out)

    rows = _read_manifest(out)
    assert len(rows) == 3
    assert {r["file_name"] for r in rows} == {"a.txt", "b.txt", "c.txt"}
    assert all(r["content_type"] == "text/plain" for r in rows)
    assert "Neural networks" in next(r["text"] for r in rows if r["file_name"] == "b.txt")


def test_scan_default_manifest_location(engine, mixed_tree):
    snap = engine.submit(_scan(mixed_tree))
    final = engine.wait(snap.id, timeout=10)

    expected = mixed_tree / f"extracted_documents_{snap.id}.csv"
    assert final.output_location == str(expected)
    assert len(_read_manifest(expected)) == 3


def test_scan_max_items(engine, mixed_tree, tmp_path):
    out = tmp_path / "m.csv"
    final = engine.wait(
        engine.submit(_scan(mixed_tree, destination=str(out), max_items=2)).id, timeout=10
    )

    assert final.total_files_found == 2
    assert len(_read_manifest(out)) == 2


def test_scan_extraction_failure_is_per_file(mixed_tree, tmp_path):
    class PickyExtractor(PlainTextExtractor):
        def extract(self, path):
            if path.name == "b.txt":
                raise ExtractionError("cannot read b")
            return super().extract(path)

    engine = JobEngine(extractor=PickyExtractor())
    out = tmp_path / "m.csv"
    try:
        final = engine.wait(engine.submit(_scan(mixed_tree, destination=str(out))).id, timeout=10)
    finally:
        engine.shutdown()

    assert final.status is JobState.COMPLETED
    assert final.succeeded == 2
    assert final.failed == 1
    assert any("cannot read b" in e for e in final.errors)
    assert len(_read_manifest(out)) == 2


def test_scan_invalid_root_fails(engine, tmp_path):
    final = engine.wait(engine.submit(_scan(tmp_path / "missing")).id, timeout=10)

    assert final.status is JobState.FAILED
    assert final.errors[-1].startswith("Scan failed: Invalid directory path")


def test_scan_with_no_matches_completes(engine, mixed_tree):
    final = engine.wait(engine.submit(_scan(mixed_tree, supported_extensions=["docx"])).id, timeout=10)

    assert final.status is JobState.COMPLETED
    assert final.total_files_found == 0
    assert final.processed == 0


def test_scan_cancelled_before_extraction(mixed_tree, tmp_path):
    class SlowExtractor(DocumentExtractor):
        def extract(self, path):
            time.sleep(0.2)
            return super().extract(path)

    engine = JobEngine(extractor=SlowExtractor())
    try:
        snap = engine.submit(_scan(mixed_tree, destination=str(tmp_path / "m.csv")))
        deadline = time.time() + 5
        while engine.status(snap.id).processed < 1 and time.time() < deadline:
            time.sleep(0.01)
        assert engine.cancel(snap.id)
        final = engine.wait(snap.id, timeout=10)
    finally:
        engine.shutdown()

    assert final.status is JobState.CANCELLED
    assert final.processed < 3


def test_scan_cancelled_after_traversal_keeps_existing_destination(mixed_tree, tmp_path, monkeypatch):
    destination = tmp_path / "existing.csv"
    destination.write_text("keep me\n", encoding="utf-8")

    registry = JobRegistry()
    job = Job.create(JobConfig(kind="DIRECTORY_SCAN", source_path=str(mixed_tree), destination=str(destination)))
    registry.insert(job)

    real_scan = runner_module.scan_directory

    def scan_then_cancel(*args, **kwargs):
        result = real_scan(*args, **kwargs)
        registry.transition(job.id, JobState.RUNNING, JobState.CANCELLED)
        return result

    monkeypatch.setattr(runner_module, "scan_directory", scan_then_cancel)

    JobRunner(job, registry).run()

    assert job.status is JobState.CANCELLED
    assert job.total_files_found == 3
    assert job.processed == 0
    assert destination.read_text(encoding="utf-8") == "keep me\n"


# ----- facade behaviour -----


@pytest.mark.parametrize(
    "config",
    [
        {"kind": "RECORD_STREAM", "source_path": "", "destination": "x"},
        {"kind": "RECORD_STREAM", "source_path": "a.csv", "destination": "x", "batch_size": 0},
        {"kind": "RECORD_STREAM", "source_path": "a.csv"},
        {"kind": "NOT_A_KIND", "source_path": "a.csv"},
    ],
)
def test_invalid_submit_creates_no_job(engine, config):
    with pytest.raises(JobValidationError):
        engine.submit(config)
    assert engine.list() == []


def test_stream_without_sink_is_rejected(tmp_path):
    engine = JobEngine()
    try:
        with pytest.raises(JobValidationError, match="sink"):
            engine.submit(_stream(tmp_path / "a.csv"))
    finally:
        engine.shutdown()


def test_status_of_unknown_job(engine):
    assert engine.status("scan_0_deadbeef") is None
    assert engine.cancel("scan_0_deadbeef") is False


def test_cancel_terminal_job_is_noop(engine, five_row_csv):
    snap = engine.submit(_stream(five_row_csv, batch_size=2))
    before = engine.wait(snap.id, timeout=10)
    assert before.status is JobState.COMPLETED

    assert engine.cancel(snap.id) is False
    assert engine.cancel(snap.id) is False
    assert engine.status(snap.id) == before


def test_list_and_filter(engine, mixed_tree, five_row_csv, tmp_path):
    scan = engine.submit(_scan(mixed_tree, destination=str(tmp_path / "m.csv")))
    stream = engine.submit(_stream(five_row_csv))
    engine.wait(scan.id, timeout=10)
    engine.wait(stream.id, timeout=10)

    jobs = engine.list()
    assert {j.id for j in jobs} == {scan.id, stream.id}
    assert {j.kind for j in jobs} == {JobKind.DIRECTORY_SCAN, JobKind.RECORD_STREAM}
    assert len(engine.list(state=JobState.COMPLETED)) == 2
    assert engine.list(state="FAILED") == []


def test_estimate_count(engine, five_row_csv, tmp_path):
    assert engine.estimate_count(five_row_csv) == 5
    assert engine.estimate_count(tmp_path / "missing.csv") == -1


def test_purge_removes_only_old_terminal_jobs(engine, five_row_csv):
    old = engine.submit(_stream(five_row_csv))
    engine.wait(old.id, timeout=10)

    assert engine.purge(max_age_hours=1) == 0

    job = engine.registry.get(old.id)
    job.ended_at = job.ended_at - timedelta(hours=2)

    assert engine.purge(max_age_hours=1) == 1
    assert engine.status(old.id) is None
    assert old.id not in engine._futures


def test_many_concurrent_jobs(tmp_path):
    sink = RecordingSink()
    engine = JobEngine(sink=sink, settings=Settings())
    path = write_csv(tmp_path / "rows.csv", [f"{i},text {i}" for i in range(20)])

    try:
        ids = [engine.submit(_stream(path, batch_size=5, destination=f"idx{i}")).id for i in range(10)]
        finals = [engine.wait(job_id, timeout=20) for job_id in ids]
    finally:
        engine.shutdown()

    assert all(f.status is JobState.COMPLETED for f in finals)
    assert all(f.succeeded == 20 for f in finals)
    assert len(sink.calls) == 40
