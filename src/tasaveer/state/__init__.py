"""Settings persistence helpers for Tasaveer."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from tasaveer.errors import PersistenceError

LOGGER = logging.getLogger(__name__)

DEFAULT_SETTINGS_PATH = Path("~/.tasaveer/settings.json")
EMPTY_DOCUMENT = "{}"


class SettingsStore:
    """Round-trip the opaque JSON settings document shared by Tasaveer components.

    The store never interprets the document; callers own their fields within it.
    """

    def __init__(self, path: Path | str | None = None) -> None:
        """Initialize the store.

        Args:
            path: Location of the settings document. Defaults to ``~/.tasaveer/settings.json``.
        """
        self._path = Path(path or DEFAULT_SETTINGS_PATH).expanduser()

    @property
    def path(self) -> Path:
        """Return the resolved settings path.

        Returns:
            Path: Location of the settings document.
        """
        return self._path

    def load(self) -> str:
        """Return the raw settings document.

        Returns:
            str: JSON text, or ``"{}"`` when no document has been written yet.

        Raises:
            PersistenceError: If the document exists but cannot be read.
        """
        if not self._path.exists():
            return EMPTY_DOCUMENT
        try:
            return self._path.read_text(encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Could not read settings from {self._path}: {exc}") from exc

    def save(self, text: str) -> None:
        """Persist the raw settings document.

        Args:
            text: JSON text to write.

        Raises:
            PersistenceError: If the document cannot be written.
        """
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Could not write settings to {self._path}: {exc}") from exc

    def read_document(self) -> dict[str, Any]:
        """Load and decode the settings document.

        Returns:
            dict[str, Any]: Decoded mapping.

        Raises:
            PersistenceError: If the document cannot be read or is not a JSON object.
        """
        raw = self.load()
        try:
            data = json.loads(raw or EMPTY_DOCUMENT)
        except json.JSONDecodeError as exc:
            raise PersistenceError(f"Invalid settings data in {self._path}: {exc}") from exc
        if not isinstance(data, dict):
            raise PersistenceError(f"Settings in {self._path} must be a JSON object.")
        return data

    def write_field(self, key: str, value: Any) -> None:
        """Replace one top-level field of the document, keeping all other fields.

        An unreadable document is replaced rather than blocking the write.

        Args:
            key: Top-level field name.
            value: JSON-serializable value to store.

        Raises:
            PersistenceError: If the document cannot be written.
        """
        try:
            document = self.read_document()
        except PersistenceError as exc:
            LOGGER.warning("Replacing unreadable settings document: %s", exc)
            document = {}
        document[key] = value
        self.save(json.dumps(document, indent=2))


__all__ = ["SettingsStore", "DEFAULT_SETTINGS_PATH", "PersistenceError"]
