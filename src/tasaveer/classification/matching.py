"""Directory alias matching strategies.

Staged files are matched against directory aliases by trying each strategy in
order until one yields a tag:

1. ``exact``: the alias equals the staged directory key.
2. ``substring``: the alias occurs inside the key (the longest such alias wins),
   so an alias recorded for ``2023`` still matches ``2023/Summer``.
3. ``parent-folder``: the alias equals the name of the folder directly holding
   the file.

This ordering trades precision for convenience when aliases were recorded from a
partially matching tree.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Optional, Protocol, Sequence

from tasaveer.organization.paths import ROOT_KEY, parent_folder_name
from tasaveer.tags import Tag, TagSnapshot


class DirectoryMatcher(Protocol):
    """Strategy resolving a staged directory key to a tag."""

    name: str

    def match(self, key: str, path: PurePath, tags: TagSnapshot) -> Optional[Tag]:
        """Return the matching tag, or None to defer to the next strategy."""


@dataclass(frozen=True)
class ExactMatcher:
    name: str = "exact"

    def match(self, key: str, path: PurePath, tags: TagSnapshot) -> Optional[Tag]:
        return tags.resolve_directory(key)


@dataclass(frozen=True)
class SubstringMatcher:
    name: str = "substring"

    def match(self, key: str, path: PurePath, tags: TagSnapshot) -> Optional[Tag]:
        if key == ROOT_KEY:
            return None
        candidates = [(alias, tag) for alias, tag in tags.directory_aliases() if alias in key]
        if not candidates:
            return None
        _, tag = max(candidates, key=lambda item: len(item[0]))
        return tag


@dataclass(frozen=True)
class ParentFolderMatcher:
    name: str = "parent-folder"

    def match(self, key: str, path: PurePath, tags: TagSnapshot) -> Optional[Tag]:
        folder = parent_folder_name(path)
        return tags.resolve_directory(folder) if folder else None


DEFAULT_DIRECTORY_MATCHERS: tuple[DirectoryMatcher, ...] = (
    ExactMatcher(),
    SubstringMatcher(),
    ParentFolderMatcher(),
)


def match_directory(
    key: str,
    path: PurePath,
    tags: TagSnapshot,
    matchers: Sequence[DirectoryMatcher] = DEFAULT_DIRECTORY_MATCHERS,
) -> tuple[Optional[Tag], Optional[str]]:
    """Apply ``matchers`` in order and return the first tag found with the matcher name."""
    for matcher in matchers:
        tag = matcher.match(key, path, tags)
        if tag is not None:
            return tag, matcher.name
    return None, None


__all__ = [
    "DEFAULT_DIRECTORY_MATCHERS",
    "DirectoryMatcher",
    "ExactMatcher",
    "ParentFolderMatcher",
    "SubstringMatcher",
    "match_directory",
]
