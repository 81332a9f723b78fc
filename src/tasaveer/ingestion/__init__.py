"""Media discovery and metadata helpers."""

from .dates import exif_timestamp, extract_date_from_filename
from .discovery import MediaScanner
from .extractors import (
    ExifMetadataReader,
    ExifMetadataWriter,
    MediaMetadata,
    MetadataReader,
    MetadataWriter,
)
from .models import DateSource, ExtractedDate, FileRecord

__all__ = [
    "DateSource",
    "ExifMetadataReader",
    "ExifMetadataWriter",
    "ExtractedDate",
    "FileRecord",
    "MediaMetadata",
    "MediaScanner",
    "MetadataReader",
    "MetadataWriter",
    "exif_timestamp",
    "extract_date_from_filename",
]
