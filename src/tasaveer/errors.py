"""Exception hierarchy shared across Tasaveer components."""

from __future__ import annotations


class TasaveerError(Exception):
    """Base exception for all Tasaveer failures."""


class ValidationError(TasaveerError):
    """Raised when a path or argument fails validation before anything is spawned."""


class SpawnError(TasaveerError):
    """Raised when an external tool is missing or cannot be executed."""


class ProcessExitError(TasaveerError):
    """Raised when an external tool exits with a non-zero status.

    Attributes:
        tool: Name of the tool that failed.
        exit_code: Exit status reported by the process.
    """

    def __init__(self, tool: str, exit_code: int) -> None:
        super().__init__(f"{tool} exited with code {exit_code}")
        self.tool = tool
        self.exit_code = exit_code


class KillError(TasaveerError):
    """Raised when a running process could not be terminated."""


class PersistenceError(TasaveerError):
    """Raised when the settings document cannot be read or written."""


class PipelineBusyError(TasaveerError):
    """Raised when an ingest run is requested while another one is active."""


class KeywordWriteError(TasaveerError):
    """Raised when keywords could not be written into a media file."""


class DateWriteError(TasaveerError):
    """Raised when a capture date could not be written into a media file."""


__all__ = [
    "TasaveerError",
    "ValidationError",
    "SpawnError",
    "ProcessExitError",
    "KillError",
    "PersistenceError",
    "PipelineBusyError",
    "KeywordWriteError",
    "DateWriteError",
]
