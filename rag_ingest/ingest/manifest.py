from __future__ import annotations
from pathlib import Path
import csv
import json

from .models import ExtractedDocument


MANIFEST_HEADER = (
    "path",
    "file_name",
    "file_path",
    "file_size",
    "content_type",
    "text",
    "metadata",
)


class ManifestWriter:
    """CSV manifest with one row per extracted file, flushed after every row."""

    def __init__(self, path: Path | str, encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding
        self.rows_written = 0
        self._fh = None
        self._writer = None

    def open(self) -> "ManifestWriter":
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._fh = open(self.path, "w", encoding=self.encoding, newline="")
        self._writer = csv.writer(self._fh)
        self._writer.writerow(MANIFEST_HEADER)
        self._fh.flush()
        return self

    def close(self) -> None:
        if self._fh is not None:
            self._fh.flush()
            self._fh.close()
            self._fh = None
            self._writer = None

    def __enter__(self) -> "ManifestWriter":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def write(self, source: Path, document: ExtractedDocument) -> None:
        """Append one manifest row for ``source``."""
        if self._writer is None:
            raise RuntimeError("ManifestWriter is not open")

        meta = document.metadata
        self._writer.writerow((
            str(source),
            meta.get("file_name", source.name),
            meta.get("file_path", str(source)),
            meta.get("file_size", ""),
            meta.get("content_type", ""),
            document.text,
            json.dumps(meta, sort_keys=True),
        ))
        # Flush per row so the manifest can be tailed while the scan runs
        self._fh.flush()
        self.rows_written += 1
