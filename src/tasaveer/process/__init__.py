"""Supervision of external tool processes."""

from .resolver import ToolResolver
from .supervisor import DEFAULT_QUEUE_SIZE, ExitStatus, ProcessHandle, ProcessSupervisor

__all__ = [
    "DEFAULT_QUEUE_SIZE",
    "ExitStatus",
    "ProcessHandle",
    "ProcessSupervisor",
    "ToolResolver",
]
