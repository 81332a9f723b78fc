"""Command lines for the external tools driven by an ingest run."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path, PureWindowsPath
from typing import Optional, Protocol

from tasaveer.config.models import ToolSettings
from tasaveer.errors import ValidationError
from tasaveer.process import ToolResolver

LOGGER = logging.getLogger(__name__)

_WINDOWS_RESERVED_CHARS = set('<>"|?*')


@dataclass(frozen=True)
class ToolCommand:
    """A program and its arguments, labelled for log messages."""

    label: str
    program: str
    args: tuple[str, ...] = ()

    def display(self) -> str:
        return " ".join([Path(self.program).name, *self.args])


class ToolCommands(Protocol):
    """Command builders bound to resolved executables."""

    def copy_command(self, source: Path, staging: Path) -> ToolCommand: ...

    def organize_command(self, staging: Path, destination: Path, date_format: str) -> ToolCommand: ...

    def cleanup_command(self, staging: Path) -> ToolCommand: ...


class Toolchain(Protocol):
    """Factory resolving executables once per run."""

    def resolve(self) -> ToolCommands: ...


@dataclass(frozen=True)
class ResolvedTools:
    """Executables located for one run.

    The copy step nests the source folder inside the staging tree: ``rsync -a``
    with a source path lacking a trailing slash copies the folder itself.
    """

    rsync: str
    phockup: str
    windows: bool = False

    def copy_command(self, source: Path, staging: Path) -> ToolCommand:
        source_arg = str(source).rstrip("/\\") or str(source)
        return ToolCommand("copy", self.rsync, ("-a", source_arg, f"{staging}{os.sep}"))

    def organize_command(self, staging: Path, destination: Path, date_format: str) -> ToolCommand:
        return ToolCommand(
            "organize",
            self.phockup,
            (str(staging), str(destination), "--move", "--date", date_format),
        )

    def cleanup_command(self, staging: Path) -> ToolCommand:
        if self.windows:
            return ToolCommand("cleanup", "cmd", ("/c", "rmdir", "/s", "/q", str(staging)))
        return ToolCommand("cleanup", "rm", ("-rf", str(staging)))


class DefaultToolchain:
    """Resolve ``rsync`` and ``phockup`` through :class:`ToolResolver`."""

    def __init__(self, settings: Optional[ToolSettings] = None, *, windows: Optional[bool] = None) -> None:
        self.settings = settings or ToolSettings()
        self.windows = os.name == "nt" if windows is None else windows

    def resolve(self) -> ResolvedTools:
        bundled = Path(self.settings.bundled_dir) if self.settings.bundled_dir else None
        resolver = ToolResolver(
            {"rsync": self.settings.rsync_path, "phockup": self.settings.phockup_path},
            bundled,
            windows=self.windows,
        )
        tools = ResolvedTools(
            rsync=resolver.resolve("rsync"),
            phockup=resolver.resolve("phockup"),
            windows=self.windows,
        )
        LOGGER.debug("Resolved tools: rsync=%s phockup=%s", tools.rsync, tools.phockup)
        return tools


def validate_destination(destination: str, *, windows: Optional[bool] = None) -> Path:
    """Check ``destination`` against the host path conventions.

    Args:
        destination: Destination path as entered by the user.
        windows: Apply Windows rules; defaults to the running platform.

    Returns:
        Path: The destination with ``~`` expanded.

    Raises:
        ValidationError: If the path is empty or malformed for the platform.
    """
    windows = os.name == "nt" if windows is None else windows
    text = destination.strip()
    if not text:
        raise ValidationError("Destination path is empty.")
    if "\x00" in text:
        raise ValidationError("Destination path contains a NUL character.")

    if windows:
        if text.startswith(("/", "\\")):
            raise ValidationError(
                f"Invalid destination path {destination!r}: use a drive letter path such as D:\\Photos."
            )
        pure = PureWindowsPath(text)
        if not pure.is_absolute():
            raise ValidationError(f"Destination path {destination!r} must be absolute (for example D:\\Photos).")
        for part in pure.parts[1:]:
            if _WINDOWS_RESERVED_CHARS & set(part) or ":" in part:
                raise ValidationError(f"Destination path {destination!r} contains characters Windows does not allow.")

    return Path(text).expanduser()


__all__ = [
    "DefaultToolchain",
    "ResolvedTools",
    "ToolCommand",
    "ToolCommands",
    "Toolchain",
    "validate_destination",
]
