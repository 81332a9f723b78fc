"""State carried by a single ingest run."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from tasaveer.classification.models import Classification
from tasaveer.process import ProcessHandle

from .logs import LogAggregator


class PipelineStatus(str, Enum):
    """Lifecycle states of an ingest run."""

    IDLE = "idle"
    SCANNING = "scanning"
    COPYING = "copying"
    TAGGING = "tagging"
    ORGANIZING = "organizing"
    SUCCESS = "success"
    ERROR = "error"

    @property
    def terminal(self) -> bool:
        return self in (PipelineStatus.SUCCESS, PipelineStatus.ERROR)

    @property
    def running(self) -> bool:
        return self not in (PipelineStatus.IDLE, PipelineStatus.SUCCESS, PipelineStatus.ERROR)


class RunCancelled(Exception):
    """Raised inside a run to unwind once cancellation has been requested."""


class CancellationToken:
    """One-way flag shared by every stage of a run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        """Raise :class:`RunCancelled` when the token has been set."""
        if self._event.is_set():
            raise RunCancelled()


@dataclass
class PipelineRun:
    """Mutable state of one ingest run, passed to every stage.

    Attributes:
        source: Directory being imported.
        destination: Archive root receiving the reorganized files.
        staging: Temporary tree under ``destination`` holding the raw copy.
        date_format: Folder pattern handed to the reorganization tool.
        logs: Aggregator receiving every user-visible line of this run.
        status: Current lifecycle state.
        token: Cancellation flag checked between stages.
        tracked_processes: Handles of processes that must be killed on cancel.
        error: Message of the fatal error that ended the run, if any.
        preflight: Classification of the source taken during scanning.
        keywords_written: Number of staged files that received keywords.
        dates_written: Number of staged files whose capture date was filled in from the filename.
        lock: Serializes status changes, log pushes and cancellation.
    """

    source: Path
    destination: Path
    staging: Path
    date_format: str
    logs: LogAggregator
    status: PipelineStatus = PipelineStatus.IDLE
    token: CancellationToken = field(default_factory=CancellationToken)
    tracked_processes: set[ProcessHandle] = field(default_factory=set)
    error: Optional[str] = None
    preflight: Optional[Classification] = None
    keywords_written: int = 0
    dates_written: int = 0
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def log_lines(self) -> list[str]:
        """Return every flushed log line of the run."""
        return self.logs.lines

    @property
    def cancel_requested(self) -> bool:
        return self.token.cancelled


__all__ = ["CancellationToken", "PipelineRun", "PipelineStatus", "RunCancelled"]
