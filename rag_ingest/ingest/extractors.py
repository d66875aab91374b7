from __future__ import annotations
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Iterable, List, Optional
import mimetypes
import re

from ..errors import ExtractionError
from ..telemetry import get_logger
from .models import ExtractedDocument


logger = get_logger(__name__)

TEXT_EXTENSIONS = ("txt", "md", "csv", "json", "html", "htm", "xml")
PDF_EXTENSIONS = ("pdf",)


def file_extension(path: Path | str) -> str:
    """Return the lower-cased extension without the dot, or "" when there is none."""
    suffix = Path(path).suffix
    return suffix[1:].lower() if suffix else ""


def base_metadata(path: Path, content_type: str, method: str) -> Dict[str, str]:
    return {
        "file_name": path.name,
        "file_path": str(path),
        "file_size": str(path.stat().st_size),
        "content_type": content_type,
        "extraction_method": method,
    }


class Extractor(ABC):
    """Base interface for turning one file into text plus metadata."""

    extensions: tuple[str, ...] = ()

    @abstractmethod
    def extract(self, path: Path | str) -> ExtractedDocument:
        """
        Return the extracted document.
        Raise an ExtractionError if the file is unreadable.
        """
        pass

    def supports(self, path: Path | str) -> bool:
        return file_extension(path) in self.extensions

    def _normalize_text(self, text: str) -> str:
        """Normalize text by stripping and collapsing whitespace."""
        if not text:
            return ""
        text = re.sub(r'\n+', '\n', text)
        text = re.sub(r' +', ' ', text)
        return text.strip()

    def _check_file(self, path: Path) -> None:
        if not path.exists():
            raise ExtractionError(f"File does not exist: {path}")
        if not path.is_file():
            raise ExtractionError(f"Path is not a regular file: {path}")


class PlainTextExtractor(Extractor):
    """Reads text-like files directly as UTF-8."""

    extensions = TEXT_EXTENSIONS

    def __init__(self, encoding: str = "utf-8"):
        self.encoding = encoding

    def extract(self, path: Path | str) -> ExtractedDocument:
        path = Path(path)
        self._check_file(path)

        try:
            text = path.read_text(encoding=self.encoding)
        except (OSError, UnicodeDecodeError) as e:
            raise ExtractionError(f"Failed to read {path}: {e}") from e

        content_type = mimetypes.guess_type(path.name)[0] or "text/plain"
        return ExtractedDocument(
            text=text,
            metadata=base_metadata(path, content_type, "direct_read"),
        )


class PdfExtractor(Extractor):
    """Extracts PDF text page by page using pdfplumber."""

    extensions = PDF_EXTENSIONS

    def extract(self, path: Path | str) -> ExtractedDocument:
        path = Path(path)
        self._check_file(path)

        import pdfplumber

        pages: List[str] = []
        try:
            with pdfplumber.open(path) as pdf:
                for page in pdf.pages:
                    pages.append(self._normalize_text(page.extract_text() or ""))
        except Exception as e:
            raise ExtractionError(f"Failed to parse PDF with pdfplumber: {e}") from e

        metadata = base_metadata(path, "application/pdf", "pdfplumber")
        metadata["page_count"] = str(len(pages))
        return ExtractedDocument(text="\n\n".join(p for p in pages if p), metadata=metadata)


class DocumentExtractor(Extractor):
    """Dispatches to the first registered extractor that handles the file's extension."""

    def __init__(self, extractors: Optional[Iterable[Extractor]] = None):
        self.extractors = list(extractors) if extractors is not None else [
            PlainTextExtractor(),
            PdfExtractor(),
        ]
        self.extensions = tuple(
            ext for extractor in self.extractors for ext in extractor.extensions
        )

    def extract(self, path: Path | str) -> ExtractedDocument:
        path = Path(path)
        for extractor in self.extractors:
            if extractor.supports(path):
                return extractor.extract(path)

        ext = file_extension(path)
        logger.debug("unsupported_extension", path=str(path), extension=ext)
        raise ExtractionError(f"Unsupported file extension: {ext or '<none>'}")
