"""
Record sinks - durable destinations for batches of ingested records.

SqliteSink stores records in a single table keyed by (destination, id):
- destination: logical index name chosen by the job
- id: record identifier (from the id column or generated)
- content, fields, metadata: record payload, fields/metadata as JSON
- ts: write timestamp
"""

import json
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from ..errors import SinkError
from ..ingest.models import Record
from ..telemetry import get_logger


logger = get_logger(__name__)


class Sink(ABC):
    """Destination for batches of records."""

    @abstractmethod
    def write(self, records: Sequence[Record], destination: str) -> int:
        """
        Write a batch and return how many records were accepted.

        Raises:
            SinkError: the batch could not be written
        """
        ...

    def close(self) -> None:
        """Release resources held by the sink."""
        pass


class SqliteSink(Sink):
    """
    File-backed SQLite record store.

    Thread-safe: writes from concurrent jobs are serialized on one connection.
    """

    def __init__(self, db_path: Path):
        """
        Initialize the sink at given path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._conn = sqlite3.connect(
            str(self.db_path),
            check_same_thread=False,
            timeout=10.0,
        )

        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("PRAGMA synchronous=NORMAL")

        self._init_tables()

    def _init_tables(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS records (
                destination TEXT NOT NULL,
                id TEXT NOT NULL,
                content TEXT NOT NULL,
                fields TEXT NOT NULL,
                metadata TEXT NOT NULL,
                record_number INTEGER NOT NULL,
                ts INTEGER NOT NULL,
                PRIMARY KEY (destination, id)
            )
        """)
        self._conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_records_ts
            ON records(ts)
        """)
        self._conn.commit()

    def write(self, records: Sequence[Record], destination: str) -> int:
        """
        Upsert a batch of records under ``destination``.

        Returns:
            Number of records written (the whole batch, or raises)
        """
        if not records:
            return 0

        ts = int(time.time())
        rows = [
            (
                destination,
                r.id,
                r.content,
                json.dumps(r.fields),
                json.dumps(r.metadata),
                r.record_number,
                ts,
            )
            for r in records
        ]

        with self._lock:
            try:
                self._conn.executemany(
                    "INSERT OR REPLACE INTO records "
                    "(destination, id, content, fields, metadata, record_number, ts) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
                self._conn.commit()
            except sqlite3.OperationalError as e:
                # Locked / busy database: this batch fails, the job may continue
                self._conn.rollback()
                raise SinkError(f"SQLite write failed: {e}", recoverable=True) from e
            except sqlite3.DatabaseError as e:
                self._conn.rollback()
                raise SinkError(f"SQLite database error: {e}") from e

        logger.debug("batch_written", destination=destination, count=len(rows))
        return len(rows)

    def count(self, destination: str) -> int:
        """Number of records stored under ``destination``."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT COUNT(*) FROM records WHERE destination = ?",
                (destination,),
            )
            return cursor.fetchone()[0]

    def fetch(self, destination: str, limit: int = 100) -> list[Record]:
        """Return stored records for ``destination`` in read order."""
        with self._lock:
            cursor = self._conn.execute(
                "SELECT id, content, fields, metadata, record_number FROM records "
                "WHERE destination = ? ORDER BY record_number LIMIT ?",
                (destination, limit),
            )
            rows = cursor.fetchall()

        return [
            Record(
                id=row[0],
                content=row[1],
                fields=json.loads(row[2]),
                metadata=json.loads(row[3]),
                record_number=row[4],
            )
            for row in rows
        ]

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
