"""Durable tag store backed by the settings document."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, Mapping, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from tasaveer.errors import PersistenceError, ValidationError
from tasaveer.state import SettingsStore

from .errors import DuplicateNameError, UnknownTagError
from .models import Tag

LOGGER = logging.getLogger(__name__)

SETTINGS_FIELD = "sourceTags"
COLOR_PALETTE = ("blue", "purple", "green", "amber", "rose", "cyan", "orange", "teal")

_TAG_LIST = TypeAdapter(list[Tag])


@dataclass(frozen=True)
class TagSnapshot:
    """Immutable view of tag assignments taken at one point in time.

    Attributes:
        tags: Copies of every tag keyed by id.
        cameras: Camera model to tag id.
        directories: Directory key to tag id.
    """

    tags: Mapping[str, Tag] = field(default_factory=dict)
    cameras: Mapping[str, str] = field(default_factory=dict)
    directories: Mapping[str, str] = field(default_factory=dict)

    def resolve(self, camera_model: str) -> Optional[Tag]:
        """Return the tag owning ``camera_model`` (exact match)."""
        tag_id = self.cameras.get(camera_model)
        return self.tags.get(tag_id) if tag_id else None

    def resolve_directory(self, key: str) -> Optional[Tag]:
        """Return the tag owning directory ``key`` (exact match)."""
        tag_id = self.directories.get(key)
        return self.tags.get(tag_id) if tag_id else None

    def directory_aliases(self) -> Iterator[tuple[str, Tag]]:
        """Yield ``(alias, tag)`` pairs for every directory alias in sorted order."""
        for alias in sorted(self.directories):
            yield alias, self.tags[self.directories[alias]]


class TagStore:
    """Create tags and assign camera/directory aliases with single-owner semantics.

    Every mutation is written straight through to the settings document. A failed
    write keeps the change in memory, logs a warning, and marks the store dirty
    until :meth:`save` succeeds.
    """

    def __init__(self, settings: SettingsStore) -> None:
        self._settings = settings
        self._lock = threading.RLock()
        self._tags: dict[str, Tag] = {}
        self._dirty = False
        self._load()

    @property
    def dirty(self) -> bool:
        """Return whether in-memory changes have not been persisted yet."""
        return self._dirty

    @property
    def settings_path(self) -> Path:
        """Return the location of the backing settings document."""
        return self._settings.path

    # ------------------------------------------------------------------ #
    # Queries                                                            #
    # ------------------------------------------------------------------ #

    def list(self) -> list[Tag]:
        """Return copies of all tags in creation order."""
        with self._lock:
            return [tag.model_copy(deep=True) for tag in self._tags.values()]

    def get(self, tag_id: str) -> Tag:
        """Return a copy of the tag identified by ``tag_id``.

        Raises:
            UnknownTagError: If no such tag exists.
        """
        with self._lock:
            return self._require(tag_id).model_copy(deep=True)

    def find_by_name(self, name: str) -> Optional[Tag]:
        """Return a copy of the tag named ``name`` (case-sensitive), if any."""
        with self._lock:
            for tag in self._tags.values():
                if tag.name == name:
                    return tag.model_copy(deep=True)
        return None

    def resolve(self, camera_model: str) -> Optional[Tag]:
        """Return the tag owning ``camera_model`` using exact matching."""
        with self._lock:
            for tag in self._tags.values():
                if camera_model in tag.camera_aliases:
                    return tag.model_copy(deep=True)
        return None

    def resolve_directory(self, key: str) -> Optional[Tag]:
        """Return the tag owning directory ``key`` using exact matching."""
        with self._lock:
            for tag in self._tags.values():
                if key in tag.directory_aliases:
                    return tag.model_copy(deep=True)
        return None

    def snapshot(self) -> TagSnapshot:
        """Return an immutable copy of the current assignments."""
        with self._lock:
            tags = {tag_id: tag.model_copy(deep=True) for tag_id, tag in self._tags.items()}
        cameras = {alias: tag.id for tag in tags.values() for alias in tag.camera_aliases}
        directories = {alias: tag.id for tag in tags.values() for alias in tag.directory_aliases}
        return TagSnapshot(tags=tags, cameras=cameras, directories=directories)

    # ------------------------------------------------------------------ #
    # Mutations                                                          #
    # ------------------------------------------------------------------ #

    def create(self, name: str, color: str | None = None) -> Tag:
        """Create a tag.

        Args:
            name: Unique tag name.
            color: Optional color token; defaults to the next palette entry.

        Returns:
            Tag: Copy of the created tag.

        Raises:
            ValidationError: If the name is blank.
            DuplicateNameError: If another tag already uses ``name``.
        """
        name = self._validate_name(name)
        with self._lock:
            self._ensure_unique(name)
            tag = Tag(
                id=uuid.uuid4().hex,
                name=name,
                color=color or COLOR_PALETTE[len(self._tags) % len(COLOR_PALETTE)],
            )
            self._tags[tag.id] = tag
            self._persist()
            return tag.model_copy(deep=True)

    def rename(self, tag_id: str, name: str) -> Tag:
        """Rename a tag, keeping its aliases.

        Raises:
            UnknownTagError: If no such tag exists.
            DuplicateNameError: If another tag already uses ``name``.
        """
        name = self._validate_name(name)
        with self._lock:
            tag = self._require(tag_id)
            if tag.name != name:
                self._ensure_unique(name)
                tag.name = name
                self._persist()
            return tag.model_copy(deep=True)

    def delete(self, tag_id: str) -> None:
        """Delete a tag together with its aliases.

        Raises:
            UnknownTagError: If no such tag exists.
        """
        with self._lock:
            self._require(tag_id)
            del self._tags[tag_id]
            self._persist()

    def assign_camera_alias(self, model: str, tag_id: str | None) -> None:
        """Bind camera ``model`` to ``tag_id``, or unbind it when ``tag_id`` is None."""
        self._assign("camera_aliases", model, tag_id)

    def assign_directory_alias(self, key: str, tag_id: str | None) -> None:
        """Bind directory ``key`` to ``tag_id``, or unbind it when ``tag_id`` is None."""
        self._assign("directory_aliases", key, tag_id)

    def save(self) -> None:
        """Write the current tags to the settings document.

        Raises:
            PersistenceError: If the document cannot be written.
        """
        with self._lock:
            self._settings.write_field(SETTINGS_FIELD, self._serialize())
            self._dirty = False

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _assign(self, attribute: str, alias: str, tag_id: str | None) -> None:
        if not alias:
            raise ValidationError("Alias must be a non-empty string.")
        with self._lock:
            if tag_id is not None:
                self._require(tag_id)
            changed = False
            for tag in self._tags.values():
                aliases: set[str] = getattr(tag, attribute)
                if tag.id == tag_id:
                    if alias not in aliases:
                        aliases.add(alias)
                        changed = True
                elif alias in aliases:
                    aliases.discard(alias)
                    changed = True
            if changed:
                self._persist()

    def _require(self, tag_id: str) -> Tag:
        tag = self._tags.get(tag_id)
        if tag is None:
            raise UnknownTagError(f"Unknown tag id: {tag_id}")
        return tag

    def _ensure_unique(self, name: str) -> None:
        if any(tag.name == name for tag in self._tags.values()):
            raise DuplicateNameError(f"A tag named '{name}' already exists.")

    @staticmethod
    def _validate_name(name: str) -> str:
        stripped = name.strip()
        if not stripped:
            raise ValidationError("Tag name must not be blank.")
        return stripped

    def _serialize(self) -> list[dict]:
        return [tag.model_dump(mode="json", by_alias=True) for tag in self._tags.values()]

    def _persist(self) -> None:
        try:
            self._settings.write_field(SETTINGS_FIELD, self._serialize())
        except PersistenceError as exc:
            self._dirty = True
            LOGGER.warning("Tag changes kept in memory; settings write failed: %s", exc)
        else:
            self._dirty = False

    def _load(self) -> None:
        try:
            raw = self._settings.read_document().get(SETTINGS_FIELD)
            tags = _TAG_LIST.validate_python(raw) if raw is not None else []
        except (PersistenceError, PydanticValidationError) as exc:
            LOGGER.warning("Ignoring unreadable source tags; starting empty: %s", exc)
            return

        seen_cameras: set[str] = set()
        seen_directories: set[str] = set()
        for tag in tags:
            if tag.id in self._tags:
                LOGGER.warning("Dropping duplicate tag id %s from settings.", tag.id)
                continue
            taken = (tag.camera_aliases & seen_cameras) | (tag.directory_aliases & seen_directories)
            if taken:
                LOGGER.warning("Tag %s loses aliases already owned by another tag: %s", tag.name, sorted(taken))
            tag.camera_aliases -= seen_cameras
            tag.directory_aliases -= seen_directories
            seen_cameras |= tag.camera_aliases
            seen_directories |= tag.directory_aliases
            self._tags[tag.id] = tag


__all__ = ["COLOR_PALETTE", "SETTINGS_FIELD", "TagSnapshot", "TagStore"]
