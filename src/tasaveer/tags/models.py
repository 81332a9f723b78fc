"""Tag data models."""

from __future__ import annotations

from typing import Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer
from pydantic.alias_generators import to_camel


class Tag(BaseModel):
    """A user-defined media source applied to files as an EXIF keyword.

    Attributes:
        id: Opaque identifier assigned at creation.
        name: Unique, user-facing label written as the keyword.
        color: Presentation color token.
        camera_aliases: Camera models resolved to this tag.
        directory_aliases: Source-relative directory keys resolved to this tag.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    name: str
    color: str = Field(default="blue", alias="colorToken")
    camera_aliases: Set[str] = Field(default_factory=set)
    directory_aliases: Set[str] = Field(default_factory=set)

    @field_serializer("camera_aliases", "directory_aliases")
    def _sorted_aliases(self, value: Set[str]) -> list[str]:
        return sorted(value)


__all__ = ["Tag"]
