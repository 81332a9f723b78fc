"""Data models produced by media scans."""

from __future__ import annotations

import datetime as dt
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict


class DateSource(str, Enum):
    """Where an extracted capture date came from."""

    FILENAME = "filename"
    EXIF = "exif"
    OTHER = "other"


class ExtractedDate(BaseModel):
    """Capture date recovered on a best-effort basis.

    Attributes:
        date: Calendar date.
        time: Clock time when the pattern carries one.
        source: Origin of the date.
        label: Human-readable name of the matched pattern (e.g. ``WhatsApp``).
    """

    model_config = ConfigDict(frozen=True)

    date: dt.date
    time: Optional[dt.time] = None
    source: DateSource = DateSource.FILENAME
    label: str = "Filename"


class FileRecord(BaseModel):
    """A scanned media file.

    Attributes:
        path: Absolute path of the file.
        has_date: Whether the file carries an embedded DateTimeOriginal.
        extracted_date: Date recovered from the filename, when one matched.
        camera_model: Camera make and model from embedded metadata.
    """

    model_config = ConfigDict(frozen=True)

    path: Path
    has_date: bool = False
    extracted_date: Optional[ExtractedDate] = None
    camera_model: Optional[str] = None


__all__ = ["DateSource", "ExtractedDate", "FileRecord"]
