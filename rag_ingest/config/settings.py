"""Application settings and configuration schema."""

import os
from typing import Optional

from pydantic import BaseModel, Field


# Must stay within the formats DocumentExtractor can read
DEFAULT_EXTENSIONS = ("pdf", "txt", "md", "html", "xml")


class EngineCfg(BaseModel):
    """Configuration for the job engine."""
    max_workers: int = 32
    max_errors: int = 100
    default_batch_size: int = 100
    max_record_chars: int = 1_048_576
    progress_log_every: int = 100


class ScanCfg(BaseModel):
    """Configuration for directory scans."""
    default_extensions: tuple[str, ...] = DEFAULT_EXTENSIONS
    manifest_prefix: str = "extracted_documents_"


class Paths(BaseModel):
    """File and directory paths configuration."""
    sink_db: str = "data/ingest/records.db"


class LoggingCfg(BaseModel):
    """Configuration for structured logging."""
    level: str = "INFO"
    json_output: bool = False


class Settings(BaseModel):
    """Main application settings."""
    engine: EngineCfg = Field(default_factory=EngineCfg)
    scan: ScanCfg = Field(default_factory=ScanCfg)
    paths: Paths = Field(default_factory=Paths)
    logging: LoggingCfg = Field(default_factory=LoggingCfg)

    @classmethod
    def from_env(cls, prefix: str = "RAG_INGEST_") -> "Settings":
        """
        Build settings from defaults plus environment overrides.

        Recognized variables: ``<prefix>MAX_WORKERS``, ``<prefix>MAX_ERRORS``,
        ``<prefix>SINK_DB``, ``<prefix>LOG_LEVEL``, ``<prefix>LOG_JSON``.
        """
        settings = cls()

        def _env(name: str) -> Optional[str]:
            value = os.environ.get(prefix + name)
            return value if value else None

        if (value := _env("MAX_WORKERS")) is not None:
            settings.engine.max_workers = int(value)
        if (value := _env("MAX_ERRORS")) is not None:
            settings.engine.max_errors = int(value)
        if (value := _env("SINK_DB")) is not None:
            settings.paths.sink_db = value
        if (value := _env("LOG_LEVEL")) is not None:
            settings.logging.level = value.upper()
        if (value := _env("LOG_JSON")) is not None:
            settings.logging.json_output = value.lower() in ("1", "true", "yes")

        return settings
