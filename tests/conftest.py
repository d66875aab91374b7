"""Test configuration and fixtures."""

import threading
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import pytest

from rag_ingest.config.settings import Settings
from rag_ingest.ingest.models import Record
from rag_ingest.ops import JobEngine
from rag_ingest.persist.sink import Sink


class RecordingSink(Sink):
    """In-memory sink that remembers every batch it was given."""

    def __init__(self, accept: Optional[Callable[[Sequence[Record]], int]] = None):
        self.calls: List[List[Record]] = []
        self.destinations: List[str] = []
        self._accept = accept
        self._lock = threading.Lock()

    def write(self, records, destination):
        with self._lock:
            self.calls.append(list(records))
            self.destinations.append(destination)
        if self._accept is not None:
            return self._accept(records)
        return len(records)

    @property
    def batch_sizes(self) -> List[int]:
        return [len(batch) for batch in self.calls]

    @property
    def records(self) -> List[Record]:
        return [r for batch in self.calls for r in batch]


class BlockingSink(RecordingSink):
    """Sink whose first write blocks until the test releases it."""

    def __init__(self):
        super().__init__()
        self.first_write = threading.Event()
        self.release = threading.Event()

    def write(self, records, destination):
        accepted = super().write(records, destination)
        if len(self.calls) == 1:
            self.first_write.set()
            self.release.wait(timeout=10)
        return accepted


def write_csv(path: Path, rows: Sequence[str], header: str = "id,content") -> Path:
    """Write a small CSV file: header line then one line per row."""
    lines = [header, *rows] if header is not None else list(rows)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def engine(recording_sink):
    """Job engine wired to an in-memory sink."""
    eng = JobEngine(sink=recording_sink, settings=Settings())
    yield eng
    eng.shutdown(wait=True, cancel_running=True)


@pytest.fixture
def five_row_csv(tmp_path) -> Path:
    """5 rows; row 3 has an empty content value."""
    return write_csv(
        tmp_path / "five.csv",
        [
            "1,first document",
            "2,second document",
            "3,",
            "4,fourth document",
            "5,fifth document",
        ],
    )


@pytest.fixture
def malformed_csv(tmp_path) -> Path:
    """10 rows; row 5 is missing its content field entirely."""
    rows = [f"{i},document number {i}" for i in range(1, 11)]
    rows[4] = "5"
    return write_csv(tmp_path / "malformed.csv", rows)


@pytest.fixture
def mixed_tree(tmp_path) -> Path:
    """3 .txt files and 2 .bin files spread over two levels."""
    root = tmp_path / "corpus"
    (root / "sub").mkdir(parents=True)

    (root / "a.txt").write_text("Machine learning is a subset of artificial intelligence.", encoding="utf-8")
    (root / "b.txt").write_text("Neural networks are inspired by biological neurons.", encoding="utf-8")
    (root / "sub" / "c.txt").write_text("Transfer learning applies pre-trained models.", encoding="utf-8")
    (root / "blob1.bin").write_bytes(b"\x00\x01\x02")
    (root / "sub" / "blob2.bin").write_bytes(b"\x03\x04")

    return root
