"""Media discovery for source and staging trees."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator

from tasaveer.config.models import DEFAULT_MEDIA_EXTENSIONS

from .dates import extract_date_from_filename
from .extractors import MediaMetadata, MetadataReader
from .models import FileRecord

LOGGER = logging.getLogger(__name__)


def _is_hidden(path: Path) -> bool:
    return any(part.startswith(".") for part in path.parts if part not in (".", ".."))


class MediaScanner:
    """Discover media files under a root and describe them as FileRecords."""

    def __init__(
        self,
        reader: MetadataReader,
        *,
        extensions: Iterable[str] = DEFAULT_MEDIA_EXTENSIONS,
        include_hidden: bool = False,
    ) -> None:
        self.reader = reader
        self.extensions = {ext.lower().lstrip(".") for ext in extensions}
        self.include_hidden = include_hidden

    def scan(self, root: Path) -> list[FileRecord]:
        """Return a record for every media file under ``root``, sorted by path.

        Args:
            root: Directory to scan recursively.

        Returns:
            list[FileRecord]: Records in deterministic order; empty when ``root`` is missing.
        """
        root = root.expanduser()
        if not root.is_dir():
            LOGGER.warning("Scan root %s is not a directory; nothing to scan.", root)
            return []

        paths = sorted(self._iter_media(root))
        metadata = self.reader.read(paths)
        records = []
        for path in paths:
            embedded = metadata.get(path, MediaMetadata())
            records.append(
                FileRecord(
                    path=path,
                    has_date=embedded.has_date,
                    extracted_date=extract_date_from_filename(path.name),
                    camera_model=embedded.camera_model,
                )
            )
        LOGGER.debug("Scanned %d media files under %s", len(records), root)
        return records

    def _iter_media(self, root: Path) -> Iterator[Path]:
        for path in root.rglob("*"):
            if not path.is_file():
                continue
            if not self.include_hidden and _is_hidden(path.relative_to(root)):
                continue
            if path.suffix.lower().lstrip(".") not in self.extensions:
                continue
            yield path


__all__ = ["MediaScanner"]
