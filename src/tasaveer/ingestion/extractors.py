"""EXIF metadata reads and writes backed by ExifTool."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Sequence

from exiftool import ExifToolHelper  # type: ignore[attr-defined]
from exiftool.exceptions import ExifToolException

from tasaveer.errors import DateWriteError, KeywordWriteError

LOGGER = logging.getLogger(__name__)

READ_TAGS = ("DateTimeOriginal", "Make", "Model")


@dataclass(frozen=True, slots=True)
class MediaMetadata:
    """Embedded metadata relevant to classification.

    Attributes:
        has_date: Whether DateTimeOriginal is present.
        camera_model: Combined make and model, when known.
    """

    has_date: bool = False
    camera_model: Optional[str] = None


class MetadataReader(Protocol):
    """Read embedded metadata for a batch of files."""

    def read(self, paths: Sequence[Path]) -> dict[Path, MediaMetadata]:
        """Return metadata for every readable path; unreadable paths may be omitted."""


class MetadataWriter(Protocol):
    """Write tag keywords and capture dates into media files."""

    def write_keywords(self, path: Path, keywords: Sequence[str]) -> None:
        """Replace the keywords of ``path``; raise ``KeywordWriteError`` on failure."""

    def write_capture_date(self, path: Path, timestamp: str) -> None:
        """Store ``timestamp`` as the capture date; raise ``DateWriteError`` on failure."""

    def close(self) -> None:
        """Release any session held open between writes."""


def combine_camera_model(make: Any, model: Any) -> Optional[str]:
    """Return ``"Make Model"``, whichever part exists alone, or None."""
    make_text = str(make).strip() if make is not None else ""
    model_text = str(model).strip() if model is not None else ""
    combined = " ".join(part for part in (make_text, model_text) if part)
    return combined or None


def _tag_value(entry: Mapping[str, Any], name: str) -> Any:
    for key, value in entry.items():
        if key == name or key.rsplit(":", 1)[-1] == name:
            return value
    return None


class ExifMetadataReader:
    """Read capture dates and camera models through a single ExifTool session per batch."""

    def __init__(self, executable: str | None = None) -> None:
        self._executable = executable

    def read(self, paths: Sequence[Path]) -> dict[Path, MediaMetadata]:
        """Return metadata for ``paths``.

        A failing batch is retried file by file so one unreadable file only loses its
        own metadata.

        Args:
            paths: Files to inspect.

        Returns:
            dict[Path, MediaMetadata]: Metadata keyed by the given paths.
        """
        if not paths:
            return {}
        try:
            with self._helper() as helper:
                try:
                    entries = helper.get_tags([str(path) for path in paths], tags=list(READ_TAGS))
                    return self._match_entries(paths, entries)
                except (ValueError, TypeError, ExifToolException) as exc:
                    LOGGER.warning("Batch metadata read failed (%s); retrying per file.", exc)
                    return self._read_individually(helper, paths)
        except (ExifToolException, OSError) as exc:
            LOGGER.warning("ExifTool unavailable; scanning without embedded metadata: %s", exc)
            return {}

    def _read_individually(
        self, helper: ExifToolHelper, paths: Sequence[Path]
    ) -> dict[Path, MediaMetadata]:
        results: dict[Path, MediaMetadata] = {}
        for path in paths:
            try:
                entries = helper.get_tags(str(path), tags=list(READ_TAGS))
            except (ValueError, TypeError, ExifToolException) as exc:
                LOGGER.warning("Could not read metadata for %s: %s", path, exc)
                continue
            if entries:
                results[path] = self._to_metadata(entries[0])
        return results

    @classmethod
    def _match_entries(
        cls, paths: Sequence[Path], entries: Sequence[Mapping[str, Any]]
    ) -> dict[Path, MediaMetadata]:
        wanted = set(paths)
        results: dict[Path, MediaMetadata] = {}
        for entry in entries:
            source = entry.get("SourceFile")
            if not source or Path(source) not in wanted:
                LOGGER.debug("Ignoring ExifTool entry for unrequested file %s", source)
                continue
            results[Path(source)] = cls._to_metadata(entry)
        return results

    def _helper(self) -> ExifToolHelper:
        if self._executable:
            return ExifToolHelper(executable=self._executable)
        return ExifToolHelper()

    @staticmethod
    def _to_metadata(entry: Mapping[str, Any]) -> MediaMetadata:
        return MediaMetadata(
            has_date=_tag_value(entry, "DateTimeOriginal") is not None,
            camera_model=combine_camera_model(_tag_value(entry, "Make"), _tag_value(entry, "Model")),
        )


class ExifMetadataWriter:
    """Write source-tag keywords and missing capture dates through ExifTool.

    Keywords go into XPKeywords, Keywords and IPTC:Keywords; capture dates into
    DateTimeOriginal and CreateDate. Writing the same values twice leaves the file
    unchanged, so re-running a tagging pass is safe. One ExifTool process is
    started on the first write and reused until :meth:`close`.
    """

    def __init__(self, executable: str | None = None) -> None:
        self._executable = executable
        self._session: ExifToolHelper | None = None

    def write_keywords(self, path: Path, keywords: Sequence[str]) -> None:
        """Replace the keywords stored in ``path``.

        Args:
            path: Media file to update in place.
            keywords: Keywords to write; an empty sequence is a no-op.

        Raises:
            KeywordWriteError: If ExifTool is missing or rejects the write.
        """
        if not keywords:
            return
        tags = {
            "XPKeywords": "; ".join(keywords),
            "Keywords": list(keywords),
            "IPTC:Keywords": list(keywords),
        }
        try:
            self._ensure_session().set_tags(str(path), tags=tags, params=["-overwrite_original"])
        except (ValueError, TypeError, ExifToolException, OSError) as exc:
            raise KeywordWriteError(f"Could not write keywords to {path}: {exc}") from exc

    def write_capture_date(self, path: Path, timestamp: str) -> None:
        """Set DateTimeOriginal and CreateDate of ``path`` to ``timestamp``.

        Args:
            path: Media file to update in place.
            timestamp: ExifTool date such as ``2023:06:15 12:00:00``.

        Raises:
            DateWriteError: If ExifTool is missing or rejects the write.
        """
        tags = {"DateTimeOriginal": timestamp, "CreateDate": timestamp}
        try:
            self._ensure_session().set_tags(str(path), tags=tags, params=["-overwrite_original"])
        except (ValueError, TypeError, ExifToolException, OSError) as exc:
            raise DateWriteError(f"Could not write capture date to {path}: {exc}") from exc

    def close(self) -> None:
        """Terminate the ExifTool session, if one was started."""
        if self._session is not None:
            session, self._session = self._session, None
            try:
                session.terminate()
            except (ExifToolException, OSError) as exc:
                LOGGER.warning("ExifTool session did not shut down cleanly: %s", exc)

    def _ensure_session(self) -> ExifToolHelper:
        if self._session is None:
            if self._executable:
                session = ExifToolHelper(executable=self._executable)
            else:
                session = ExifToolHelper()
            session.run()
            self._session = session
        return self._session


__all__ = [
    "ExifMetadataReader",
    "ExifMetadataWriter",
    "MediaMetadata",
    "MetadataReader",
    "MetadataWriter",
    "READ_TAGS",
    "combine_camera_model",
]
