"""Spawn external tools and stream their output line by line."""

from __future__ import annotations

import logging
import os
import queue
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence, Union

from tasaveer.errors import KillError, SpawnError

LOGGER = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 1024

_POSIX = sys.platform != "win32"


@dataclass(frozen=True, slots=True)
class ExitStatus:
    """Terminal event of a supervised process.

    Attributes:
        exit_code: Exit status, or None when the process was killed or signalled.
    """

    exit_code: Optional[int]

    @property
    def killed(self) -> bool:
        """Return whether the process ended by signal or kill."""
        return self.exit_code is None

    @property
    def success(self) -> bool:
        """Return whether the process exited with status 0."""
        return self.exit_code == 0


class ProcessHandle:
    """A running external process with merged stdout/stderr.

    A reader thread moves output lines into a bounded queue and finishes with
    exactly one :class:`ExitStatus`. The queue has a single consumer: whoever
    iterates :meth:`lines` (or calls :meth:`wait`).
    """

    def __init__(
        self,
        process: subprocess.Popen[str],
        argv: Sequence[str],
        *,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._process = process
        self._argv = tuple(argv)
        self._queue: queue.Queue[Union[str, ExitStatus]] = queue.Queue(maxsize=queue_size)
        self._killed = threading.Event()
        self._finish_lock = threading.Lock()
        self._finished = False
        self._status: ExitStatus | None = None
        self._reader = threading.Thread(
            target=self._pump,
            name=f"tasaveer-{self.name}-{process.pid}",
            daemon=True,
        )

    @property
    def pid(self) -> int:
        """Return the operating-system process id."""
        return self._process.pid

    @property
    def name(self) -> str:
        """Return the executable name without its directory."""
        return Path(self._argv[0]).name

    @property
    def status(self) -> ExitStatus | None:
        """Return the terminal event once it has been consumed, else None."""
        return self._status

    def start(self) -> None:
        """Start streaming output into the queue."""
        self._reader.start()

    def running(self) -> bool:
        """Return whether the process has not exited yet."""
        return self._process.poll() is None

    def lines(self) -> Iterator[str]:
        """Yield output lines in order until the process ends.

        The terminal event is available from :attr:`status` once the iterator is
        exhausted.
        """
        while self._status is None:
            item = self._queue.get()
            if isinstance(item, ExitStatus):
                self._status = item
                return
            yield item

    def wait(self) -> ExitStatus:
        """Discard remaining output and return the terminal event."""
        if self._status is not None:
            return self._status
        while True:
            item = self._queue.get()
            if isinstance(item, ExitStatus):
                self._status = item
                return item

    def kill(self) -> None:
        """Forcibly terminate the process and everything it started.

        On POSIX the whole process group is killed, so helpers forked by the tool
        die with it. The terminal event is queued as soon as the process itself is
        reaped, even when an escaped descendant still holds the output pipe open.
        A no-op when the process already exited.

        Raises:
            KillError: If the operating system refuses to terminate the process.
        """
        if self._process.poll() is not None:
            return
        self._killed.set()
        try:
            if _POSIX:
                os.killpg(self._process.pid, signal.SIGKILL)
            else:
                self._process.kill()
        except ProcessLookupError:
            return
        except OSError as exc:
            self._killed.clear()
            raise KillError(f"Could not kill {self.name} (pid {self.pid}): {exc}") from exc
        LOGGER.debug("Sent kill to %s (pid %s)", self.name, self.pid)
        threading.Thread(
            target=self._finish,
            name=f"tasaveer-reap-{self.pid}",
            daemon=True,
        ).start()

    def _pump(self) -> None:
        stdout = self._process.stdout
        try:
            if stdout is not None:
                for raw_line in iter(stdout.readline, ""):
                    line = raw_line.rstrip("\r\n")
                    if not line:
                        continue
                    with self._finish_lock:
                        if not self._finished:
                            self._queue.put(line)
        except (OSError, ValueError) as exc:
            LOGGER.debug("Output stream of %s closed early: %s", self.name, exc)
        finally:
            if stdout is not None:
                stdout.close()
            self._finish()

    def _finish(self) -> None:
        code = self._process.wait()
        with self._finish_lock:
            if self._finished:
                return
            self._finished = True
            killed = self._killed.is_set() or code < 0
            self._queue.put(ExitStatus(exit_code=None if killed else code))

    def __repr__(self) -> str:
        return f"ProcessHandle(name={self.name!r}, pid={self.pid})"


def _group_options() -> dict[str, Any]:
    """Popen options that start the tool as the leader of its own process group."""
    if _POSIX:
        return {"start_new_session": True}
    return {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}


class ProcessSupervisor:
    """Start external commands as :class:`ProcessHandle` objects."""

    def __init__(self, *, queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        self.queue_size = queue_size

    def spawn(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        cwd: Path | None = None,
    ) -> ProcessHandle:
        """Start ``command`` with ``args``.

        Args:
            command: Executable name or path.
            args: Arguments passed to the executable.
            cwd: Optional working directory.

        Returns:
            ProcessHandle: Handle whose output is already streaming.

        Raises:
            SpawnError: If the executable is missing or cannot be started.
        """
        argv = [command, *args]
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                encoding="utf-8",
                errors="replace",
                bufsize=1,
                cwd=cwd,
                **_group_options(),
            )
        except OSError as exc:
            raise SpawnError(f"Could not start {command}: {exc}") from exc

        handle = ProcessHandle(process, argv, queue_size=self.queue_size)
        handle.start()
        LOGGER.debug("Spawned %s (pid %s)", " ".join(argv), handle.pid)
        return handle


__all__ = ["DEFAULT_QUEUE_SIZE", "ExitStatus", "ProcessHandle", "ProcessSupervisor"]
