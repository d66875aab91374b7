"""
Delimited-record source and record layout.

The csv module is the codec: delimiter, quoting, escaping and header
handling are dialect configuration. ``RecordLayout`` validates column names
once against the header and turns raw rows into typed ``Record`` values.
"""

from __future__ import annotations

import csv
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from ..errors import FatalJobError, RecordDecodeError
from ..telemetry import get_logger
from .models import RawRow, Record


logger = get_logger(__name__)

# csv rejects fields over 128 KiB by default; oversized content is truncated
# by RecordLayout instead. Process-wide, so only ever raised.
FIELD_SIZE_LIMIT = 2**31 - 1


def _raise_field_size_limit() -> None:
    if csv.field_size_limit() < FIELD_SIZE_LIMIT:
        csv.field_size_limit(FIELD_SIZE_LIMIT)


class CsvRecordSource:
    """
    Sequential reader over a delimited file.

    Usage:
        with CsvRecordSource(path) as source:
            header = source.header
            for raw in source.rows():
                ...
    """

    def __init__(
        self,
        path: Path | str,
        delimiter: str = ",",
        quote_char: str = '"',
        escape_char: Optional[str] = None,
        skip_header: bool = True,
        column_names: Optional[Sequence[str]] = None,
        encoding: str = "utf-8",
        encoding_errors: str = "replace",
    ):
        self.path = Path(path)
        self.delimiter = delimiter
        self.quote_char = quote_char
        self.escape_char = escape_char
        self.skip_header = skip_header
        self.column_names = list(column_names) if column_names else None
        self.encoding = encoding
        self.encoding_errors = encoding_errors

        self._fh = None
        self._reader = None
        self.header: List[str] = []

    def open(self) -> "CsvRecordSource":
        if not self.path.is_file():
            raise FatalJobError(f"Source file does not exist: {self.path}")

        _raise_field_size_limit()

        self._fh = open(
            self.path,
            "r",
            encoding=self.encoding,
            errors=self.encoding_errors,
            newline="",
        )
        self._reader = csv.reader(
            self._fh,
            delimiter=self.delimiter,
            quotechar=self.quote_char,
            escapechar=self.escape_char,
            doublequote=True,
            strict=True,
        )

        file_header: List[str] = []
        if self.skip_header:
            try:
                file_header = [name.strip() for name in next(self._reader)]
            except StopIteration:
                file_header = []
            except csv.Error as e:
                self.close()
                raise FatalJobError(f"Unreadable header in {self.path}: {e}") from e

        self.header = self.column_names or file_header
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
            self._reader = None

    def __enter__(self) -> "CsvRecordSource":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def rows(self) -> Iterator[RawRow]:
        """Yield data rows in file order; codec errors are yielded, not raised."""
        if self._reader is None:
            raise RuntimeError("CsvRecordSource is not open")

        record_number = 0
        while True:
            record_number += 1
            try:
                values = next(self._reader)
            except StopIteration:
                return
            except csv.Error as e:
                yield RawRow(record_number=record_number, error=str(e))
                continue

            # Fully blank lines come back as [] from the csv module
            if not values:
                record_number -= 1
                continue

            yield RawRow(record_number=record_number, values=values)


@dataclass
class RecordLayout:
    """Column positions resolved once from the source header."""

    header: List[str]
    content_index: int
    id_index: Optional[int] = None
    metadata_indexes: List[int] = field(default_factory=list)

    @classmethod
    def from_header(
        cls,
        header: Sequence[str],
        content_column: str,
        id_column: Optional[str] = None,
        metadata_columns: Optional[Sequence[str]] = None,
    ) -> "RecordLayout":
        header = list(header)

        if content_column not in header:
            raise FatalJobError(
                f"Content column '{content_column}' not found in headers: {header}"
            )

        id_index = None
        if id_column:
            if id_column in header:
                id_index = header.index(id_column)
            else:
                logger.warning(
                    "id_column_missing",
                    id_column=id_column,
                    header=header,
                    detail="generating identifiers instead",
                )

        metadata_indexes: List[int] = []
        for name in metadata_columns or ():
            if name in header:
                metadata_indexes.append(header.index(name))
            else:
                logger.warning("metadata_column_missing", column=name, header=header)

        return cls(
            header=header,
            content_index=header.index(content_column),
            id_index=id_index,
            metadata_indexes=metadata_indexes,
        )

    def to_record(self, raw: RawRow, max_chars: Optional[int] = None) -> Optional[Record]:
        """
        Build a Record from a raw row.

        Returns:
            The record, or None when the content value is blank

        Raises:
            RecordDecodeError: codec error or a field count that differs from the header
        """
        if raw.error is not None:
            raise RecordDecodeError(
                f"Failed to process record {raw.record_number}: {raw.error}",
                record_number=raw.record_number,
            )

        values = raw.values or []
        if len(values) != len(self.header):
            raise RecordDecodeError(
                f"Failed to process record {raw.record_number}: expected "
                f"{len(self.header)} fields, found {len(values)}",
                record_number=raw.record_number,
            )

        content = values[self.content_index]
        if not content or not content.strip():
            return None

        if max_chars is not None and len(content) > max_chars:
            logger.warning(
                "record_truncated",
                record_number=raw.record_number,
                length=len(content),
                max_chars=max_chars,
            )
            content = content[:max_chars]

        record_id = ""
        if self.id_index is not None:
            record_id = values[self.id_index].strip()
        if not record_id:
            record_id = str(uuid.uuid4())

        fields = {
            name: value
            for i, (name, value) in enumerate(zip(self.header, values))
            if i != self.content_index
        }
        metadata = {self.header[i]: values[i] for i in self.metadata_indexes}

        return Record(
            id=record_id,
            content=content,
            fields=fields,
            metadata=metadata,
            record_number=raw.record_number,
        )


def estimate_count(path: Path | str, skip_header: bool = True) -> int:
    """
    Estimate the number of records by counting lines.

    Advisory only: quoted fields spanning lines make this an overcount.

    Returns:
        Line count (minus the header when skip_header), or -1 if unreadable
    """
    count = 0
    last = b""
    try:
        with open(path, "rb") as f:
            while chunk := f.read(1 << 16):
                count += chunk.count(b"\n")
                last = chunk[-1:]
    except OSError as e:
        logger.warning("estimate_count_failed", path=str(path), error=str(e))
        return -1

    if last and last != b"\n":
        count += 1

    if skip_header and count > 0:
        count -= 1

    return count
