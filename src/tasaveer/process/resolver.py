"""Locate external tool executables."""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path
from typing import Mapping, Optional

LOGGER = logging.getLogger(__name__)


class ToolResolver:
    """Resolve tool names to executable paths.

    Lookup order: an explicitly configured path, a copy inside ``bundled_dir``,
    the ``PATH`` search, and finally the bare name (which then fails at spawn
    time with a clear error).
    """

    def __init__(
        self,
        configured: Optional[Mapping[str, Optional[str]]] = None,
        bundled_dir: Optional[Path] = None,
        *,
        windows: Optional[bool] = None,
    ) -> None:
        self._configured = dict(configured or {})
        self._bundled_dir = bundled_dir
        self._windows = os.name == "nt" if windows is None else windows

    def resolve(self, name: str) -> str:
        """Return the command to spawn for ``name``.

        Args:
            name: Tool name such as ``rsync`` or ``phockup``.

        Returns:
            str: Executable path, or ``name`` itself when nothing was found.
        """
        explicit = self._configured.get(name)
        if explicit:
            candidate = Path(explicit).expanduser()
            if candidate.is_file():
                return str(candidate)
            found = shutil.which(explicit)
            if found:
                return found
            LOGGER.warning("Configured %s path %s does not exist; searching elsewhere.", name, explicit)

        bundled = self._bundled(name)
        if bundled is not None:
            return str(bundled)

        found = shutil.which(name)
        if found:
            return found

        LOGGER.debug("No executable found for %s; relying on the bare name.", name)
        return name

    def _bundled(self, name: str) -> Optional[Path]:
        if self._bundled_dir is None:
            return None
        names = [f"{name}.exe", name] if self._windows else [name]
        for candidate_name in names:
            candidate = Path(self._bundled_dir).expanduser() / candidate_name
            if candidate.is_file():
                return candidate
        return None


__all__ = ["ToolResolver"]
