from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional


@dataclass
class ExtractedDocument:
    text: str
    metadata: Dict[str, str]


@dataclass
class RawRow:
    """One row as read by a record source, or the codec error that replaced it."""
    record_number: int
    values: Optional[List[str]] = None
    error: Optional[str] = None


@dataclass
class Record:
    """A typed ingestion record: the content column plus the remaining columns in header order."""
    id: str
    content: str
    fields: Dict[str, str] = field(default_factory=dict)
    metadata: Dict[str, str] = field(default_factory=dict)
    record_number: int = 0

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "content": self.content,
            "fields": dict(self.fields),
            "metadata": dict(self.metadata),
            "record_number": self.record_number,
        }
