"""Classification result models."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field


class SourceGroup(BaseModel):
    """Files sharing a camera model or a directory key.

    Attributes:
        key: Camera model or directory key (``Unknown``/``Root`` for the fallbacks).
        count: Number of files in the group.
        assigned_tag: Id of the tag the key resolves to, if any.
        tag_name: Name of that tag, for display.
    """

    key: str
    count: int = 0
    assigned_tag: Optional[str] = None
    tag_name: Optional[str] = None


class Classification(BaseModel):
    """Camera and directory groupings for one scan.

    Attributes:
        root: Root the directory keys are relative to.
        total: Number of records classified.
        cameras: Groups keyed by camera model.
        directories: Groups keyed by directory.
    """

    root: Path
    total: int = 0
    cameras: List[SourceGroup] = Field(default_factory=list)
    directories: List[SourceGroup] = Field(default_factory=list)


class KeywordAssignment(BaseModel):
    """Keywords planned for one staged file.

    Attributes:
        path: Staged file to tag.
        keywords: Tag names to write, camera tag first.
        directory_key: Source-equivalent directory key of the file.
        matched_by: Name of the directory matcher that found a tag, if any.
    """

    path: Path
    keywords: List[str] = Field(default_factory=list)
    directory_key: str
    matched_by: Optional[str] = None


__all__ = ["Classification", "KeywordAssignment", "SourceGroup"]
