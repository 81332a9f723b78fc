"""Ingest pipeline: run state, log batching, tool commands and orchestration."""

from .logs import DEFAULT_FLUSH_INTERVAL, LogAggregator, LogConsumer
from .models import CancellationToken, PipelineRun, PipelineStatus, RunCancelled
from .orchestrator import IngestOrchestrator, StatusListener
from .tools import (
    DefaultToolchain,
    ResolvedTools,
    ToolCommand,
    ToolCommands,
    Toolchain,
    validate_destination,
)

__all__ = [
    "CancellationToken",
    "DEFAULT_FLUSH_INTERVAL",
    "DefaultToolchain",
    "IngestOrchestrator",
    "LogAggregator",
    "LogConsumer",
    "PipelineRun",
    "PipelineStatus",
    "ResolvedTools",
    "RunCancelled",
    "StatusListener",
    "ToolCommand",
    "ToolCommands",
    "Toolchain",
    "validate_destination",
]
