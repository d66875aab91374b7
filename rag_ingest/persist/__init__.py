"""
Persistence layer for ingested records.

Provides:
- Sink interface used by record-stream jobs
- SQLite-backed record sink
"""

from .sink import Sink, SqliteSink

__all__ = ["Sink", "SqliteSink"]
