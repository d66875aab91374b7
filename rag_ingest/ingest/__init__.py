"""
Ingestion collaborators: extractors, the delimited-record source and the scan manifest.
"""

from .models import ExtractedDocument, RawRow, Record
from .extractors import (
    Extractor,
    PlainTextExtractor,
    PdfExtractor,
    DocumentExtractor,
    file_extension,
)
from .records import CsvRecordSource, RecordLayout, estimate_count
from .manifest import ManifestWriter, MANIFEST_HEADER

__all__ = [
    "ExtractedDocument",
    "RawRow",
    "Record",
    "Extractor",
    "PlainTextExtractor",
    "PdfExtractor",
    "DocumentExtractor",
    "file_extension",
    "CsvRecordSource",
    "RecordLayout",
    "estimate_count",
    "ManifestWriter",
    "MANIFEST_HEADER",
]
