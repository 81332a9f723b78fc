"""Configuration models describing Tasaveer settings."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_MEDIA_EXTENSIONS = [
    "jpg",
    "jpeg",
    "png",
    "heic",
    "heif",
    "webp",
    "mp4",
    "mov",
    "avi",
    "mkv",
    "m4v",
]


class TasaveerBaseModel(BaseModel):
    """Shared configuration for Tasaveer Pydantic models."""

    model_config = ConfigDict(extra="forbid")


class ToolSettings(TasaveerBaseModel):
    """Locations of the external tools driven by the ingest pipeline.

    Attributes:
        rsync_path: Explicit path to the bulk-copy executable.
        phockup_path: Explicit path to the date-based reorganization executable.
        exiftool_path: Explicit path to exiftool, used for metadata reads and writes.
        bundled_dir: Directory holding binaries shipped alongside the application.
    """

    rsync_path: Optional[str] = None
    phockup_path: Optional[str] = None
    exiftool_path: Optional[str] = None
    bundled_dir: Optional[str] = None


class IngestOptions(TasaveerBaseModel):
    """Options governing a single ingest run.

    Attributes:
        date_format: Folder pattern handed to the reorganization tool.
        staging_dirname: Name of the staging directory created under the destination.
        flush_interval_ms: Interval between log flushes while a run is active.
        output_queue_size: Maximum buffered output lines per supervised process.
        media_extensions: File extensions considered media during scans.
    """

    date_format: str = "YYYY/MM"
    staging_dirname: str = ".tasaveer-staging"
    flush_interval_ms: int = Field(default=100, gt=0)
    output_queue_size: int = Field(default=1024, gt=0)
    media_extensions: List[str] = Field(default_factory=lambda: list(DEFAULT_MEDIA_EXTENSIONS))


class LoggingSettings(TasaveerBaseModel):
    """Runtime logging configuration.

    Attributes:
        level: Logging verbosity level.
    """

    level: str = "WARNING"


class TasaveerConfig(TasaveerBaseModel):
    """Top-level configuration struct for Tasaveer.

    Attributes:
        tools: External tool locations.
        ingest: Ingest pipeline options.
        logging: Logging configuration.
        settings_path: Location of the JSON settings document holding source tags.
    """

    tools: ToolSettings = Field(default_factory=ToolSettings)
    ingest: IngestOptions = Field(default_factory=IngestOptions)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    settings_path: str = "~/.tasaveer/settings.json"


__all__ = [
    "DEFAULT_MEDIA_EXTENSIONS",
    "TasaveerBaseModel",
    "ToolSettings",
    "IngestOptions",
    "LoggingSettings",
    "TasaveerConfig",
]
