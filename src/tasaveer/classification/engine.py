"""File classification by camera model and source directory.

The classifier reads tag assignments through a :class:`~tasaveer.tags.TagSnapshot`
taken once per call, so assignments made while a run is tagging never change the
outcome of a pass already in progress.
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Callable, Iterable, Optional, Sequence

from tasaveer.ingestion.models import FileRecord
from tasaveer.organization.paths import relative_to, staged_relative
from tasaveer.tags import Tag, TagSnapshot, TagStore

from .matching import DEFAULT_DIRECTORY_MATCHERS, DirectoryMatcher, match_directory
from .models import Classification, KeywordAssignment, SourceGroup

LOGGER = logging.getLogger(__name__)

UNKNOWN_CAMERA = "Unknown"


class FileClassifier:
    """Group scanned files and resolve each group to zero or one source tag."""

    def __init__(
        self,
        tags: TagStore,
        matchers: Sequence[DirectoryMatcher] = DEFAULT_DIRECTORY_MATCHERS,
    ) -> None:
        self._tags = tags
        self._matchers = tuple(matchers)

    def classify(
        self,
        records: Iterable[FileRecord],
        root: Path,
        *,
        staged: bool = False,
    ) -> Classification:
        """Group ``records`` by camera model and by directory.

        Args:
            records: Scanned files.
            root: Source root, or the staging root when ``staged`` is True.
            staged: Compute directory keys with the staging-tree convention.

        Returns:
            Classification: Both groupings, each sorted by descending count.
        """
        records = list(records)
        snapshot = self._tags.snapshot()
        key_for = self._key_function(root, staged)

        cameras = Counter(record.camera_model or UNKNOWN_CAMERA for record in records)
        directories = Counter(key_for(record.path) for record in records)

        return Classification(
            root=root,
            total=len(records),
            cameras=self._groups(cameras, snapshot.resolve),
            directories=self._groups(directories, snapshot.resolve_directory),
        )

    def plan_keywords(
        self,
        records: Iterable[FileRecord],
        staging_root: Path,
    ) -> list[KeywordAssignment]:
        """Return the keywords to write for every staged file.

        The camera tag comes first; the directory tag is found with the matcher
        chain. Files resolving to no tag get an empty keyword list.

        Args:
            records: Files scanned from the staging tree.
            staging_root: Staging directory the records live under.

        Returns:
            list[KeywordAssignment]: One entry per record, in input order.
        """
        snapshot = self._tags.snapshot()
        assignments = [self.tags_for(record, staging_root, snapshot) for record in records]
        LOGGER.debug(
            "Planned keywords for %d staged files (%d tagged).",
            len(assignments),
            sum(1 for assignment in assignments if assignment.keywords),
        )
        return assignments

    def tags_for(
        self,
        record: FileRecord,
        staging_root: Path,
        snapshot: Optional[TagSnapshot] = None,
    ) -> KeywordAssignment:
        """Resolve the keywords for a single staged file.

        Args:
            record: File scanned from the staging tree.
            staging_root: Staging directory the record lives under.
            snapshot: Tag snapshot to resolve against; a fresh one is taken when omitted.

        Returns:
            KeywordAssignment: Camera tag name first, then the directory tag name,
            without duplicates.
        """
        if snapshot is None:
            snapshot = self._tags.snapshot()
        key = staged_relative(staging_root, record.path)
        camera_tag = snapshot.resolve(record.camera_model) if record.camera_model else None
        directory_tag, matched_by = match_directory(key, record.path, snapshot, self._matchers)

        keywords: list[str] = []
        for tag in (camera_tag, directory_tag):
            if tag is not None and tag.name not in keywords:
                keywords.append(tag.name)
        return KeywordAssignment(
            path=record.path,
            keywords=keywords,
            directory_key=key,
            matched_by=matched_by,
        )

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    @staticmethod
    def _key_function(root: Path, staged: bool) -> Callable[[Path], str]:
        if staged:
            return lambda path: staged_relative(root, path)
        return lambda path: relative_to(root, path)

    @staticmethod
    def _groups(counts: Counter[str], resolve: Callable[[str], Optional[Tag]]) -> list[SourceGroup]:
        groups = []
        for key, count in counts.items():
            tag = resolve(key)
            groups.append(
                SourceGroup(
                    key=key,
                    count=count,
                    assigned_tag=tag.id if tag else None,
                    tag_name=tag.name if tag else None,
                )
            )
        groups.sort(key=lambda group: (-group.count, group.key))
        return groups


__all__ = ["FileClassifier", "UNKNOWN_CAMERA"]
