"""Ingest run state machine."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

from tasaveer.classification import Classification, FileClassifier, KeywordAssignment, SourceGroup
from tasaveer.config.models import IngestOptions, TasaveerConfig
from tasaveer.errors import (
    DateWriteError,
    KeywordWriteError,
    KillError,
    PipelineBusyError,
    ProcessExitError,
    SpawnError,
    TasaveerError,
    ValidationError,
)
from tasaveer.ingestion import (
    ExifMetadataReader,
    ExifMetadataWriter,
    FileRecord,
    MediaScanner,
    MetadataWriter,
    exif_timestamp,
)
from tasaveer.process import ExitStatus, ProcessSupervisor
from tasaveer.tags import TagStore

from .logs import LogAggregator, LogConsumer
from .models import PipelineRun, PipelineStatus, RunCancelled
from .tools import DefaultToolchain, ToolCommand, ToolCommands, Toolchain, validate_destination

LOGGER = logging.getLogger(__name__)

StatusListener = Callable[[PipelineRun, PipelineStatus], None]


class IngestOrchestrator:
    """Drive scan, copy, tag, organize and cleanup for one run at a time.

    :meth:`run` blocks the calling thread until the run ends; :meth:`cancel` may
    be called from any other thread. Every stage receives the :class:`PipelineRun`
    it works on, and the run lock serializes status changes, log pushes and
    cancellation.
    """

    def __init__(
        self,
        tags: TagStore,
        scanner: MediaScanner,
        *,
        metadata_writer: Callable[[], MetadataWriter] = ExifMetadataWriter,
        toolchain: Optional[Toolchain] = None,
        supervisor: Optional[ProcessSupervisor] = None,
        options: Optional[IngestOptions] = None,
        on_log: Optional[LogConsumer] = None,
        on_status: Optional[StatusListener] = None,
        windows: Optional[bool] = None,
    ) -> None:
        self.options = options or IngestOptions()
        self._tags = tags
        self._scanner = scanner
        self._classifier = FileClassifier(tags)
        self._metadata_writer = metadata_writer
        self._toolchain = toolchain or DefaultToolchain(windows=windows)
        self._supervisor = supervisor or ProcessSupervisor(queue_size=self.options.output_queue_size)
        self._on_log = on_log
        self._on_status = on_status
        self._windows = windows
        self._lock = threading.Lock()
        self._run: Optional[PipelineRun] = None
        self._last_run: Optional[PipelineRun] = None

    @classmethod
    def from_config(
        cls,
        config: TasaveerConfig,
        tags: TagStore,
        **kwargs,
    ) -> "IngestOrchestrator":
        """Build an orchestrator wired to exiftool, rsync and phockup.

        Args:
            config: Loaded configuration.
            tags: Tag store used for classification.
            **kwargs: Extra keyword arguments forwarded to the constructor.

        Returns:
            IngestOrchestrator: Ready-to-run orchestrator.
        """
        exiftool = config.tools.exiftool_path
        scanner = MediaScanner(
            ExifMetadataReader(exiftool),
            extensions=config.ingest.media_extensions,
        )
        kwargs.setdefault("metadata_writer", lambda: ExifMetadataWriter(exiftool))
        kwargs.setdefault("toolchain", DefaultToolchain(config.tools, windows=kwargs.get("windows")))
        return cls(tags, scanner, options=config.ingest, **kwargs)

    # ------------------------------------------------------------------ #
    # Public API                                                         #
    # ------------------------------------------------------------------ #

    @property
    def status(self) -> PipelineStatus:
        """Return the status of the active run, or idle when none is active."""
        with self._lock:
            run = self._run
        return run.status if run is not None else PipelineStatus.IDLE

    @property
    def active_run(self) -> Optional[PipelineRun]:
        with self._lock:
            return self._run

    @property
    def last_run(self) -> Optional[PipelineRun]:
        """Return the most recently finished or cancelled run."""
        with self._lock:
            return self._last_run

    def scan_for_tags(self, source: Path) -> Classification:
        """Classify ``source`` without starting a run.

        Raises:
            ValidationError: If ``source`` is not an existing directory.
        """
        source = Path(source).expanduser()
        if not source.is_dir():
            raise ValidationError(f"Source folder {source} does not exist or is not a directory.")
        records = self._scanner.scan(source)
        return self._classifier.classify(records, source)

    def run(
        self,
        source: Path,
        destination: str | Path,
        *,
        date_format: Optional[str] = None,
    ) -> PipelineRun:
        """Execute a full ingest on the calling thread.

        Args:
            source: Directory to import.
            destination: Archive root.
            date_format: Folder pattern for reorganization; defaults to the configured one.

        Returns:
            PipelineRun: The finished run (success, error, or idle when cancelled).

        Raises:
            PipelineBusyError: If another run is active.
        """
        run = self._begin(source, destination, date_format)
        self._execute(run)
        return run

    def start(
        self,
        source: Path,
        destination: str | Path,
        *,
        date_format: Optional[str] = None,
    ) -> tuple[PipelineRun, threading.Thread]:
        """Execute a full ingest on a worker thread and return immediately."""
        run = self._begin(source, destination, date_format)
        worker = threading.Thread(
            target=self._execute,
            args=(run,),
            name="tasaveer-ingest",
            daemon=True,
        )
        worker.start()
        return run, worker

    def cancel(self) -> bool:
        """Cancel the active run.

        Every tracked process is killed and the run returns to idle. Lines
        produced after the cancellation entry are dropped.

        Returns:
            bool: True when a running ingest was cancelled.
        """
        with self._lock:
            run = self._run
        if run is None:
            return False

        with run.lock:
            if run.token.cancelled or run.status.terminal:
                return False
            run.token.cancel()
            run.logs.push("Cancelling ingest...")
            for handle in list(run.tracked_processes):
                try:
                    handle.kill()
                except KillError as exc:
                    LOGGER.warning("%s", exc)
                    run.logs.push(f"Warning: {exc}")
                else:
                    run.logs.push(f"Stopped {handle.name} (pid {handle.pid}).")
            run.tracked_processes.clear()
            run.logs.push("Ingest cancelled.")
            run.logs.seal()
            self._set_status(run, PipelineStatus.IDLE)

        self._release(run)
        LOGGER.info("Cancelled ingest of %s", run.source)
        return True

    # ------------------------------------------------------------------ #
    # Stages                                                             #
    # ------------------------------------------------------------------ #

    def _execute(self, run: PipelineRun) -> None:
        run.logs.activate()
        try:
            self._validate(run)
            commands = self._toolchain.resolve()
            self._scan_source(run)
            self._copy(run, commands)
            self._tag(run)
            self._organize(run, commands)
            self._cleanup(run, commands)
            self._finish(run)
        except RunCancelled:
            LOGGER.debug("Ingest of %s unwound after cancellation.", run.source)
        except TasaveerError as exc:
            self._fail(run, str(exc))
        except Exception as exc:
            LOGGER.exception("Unexpected failure while ingesting %s", run.source)
            self._fail(run, f"Unexpected error: {exc}")
        finally:
            run.logs.deactivate()
            self._release(run)

    def _validate(self, run: PipelineRun) -> None:
        if not run.source.is_dir():
            raise ValidationError(f"Source folder {run.source} does not exist or is not a directory.")
        validate_destination(str(run.destination), windows=self._windows)

        source = run.source.resolve()
        destination = run.destination.resolve()
        if destination == source or source in destination.parents:
            raise ValidationError(f"Destination {run.destination} must not be inside the source folder.")

    def _scan_source(self, run: PipelineRun) -> None:
        self._transition(run, PipelineStatus.SCANNING)
        self._emit(run, f"Scanning {run.source}")
        records = self._scanner.scan(run.source)
        run.token.raise_if_cancelled()

        classification = self._classifier.classify(records, run.source)
        run.preflight = classification
        self._emit(run, f"Found {classification.total} media files.")
        for group in classification.cameras:
            self._emit(run, _describe_group("Camera", group))
        for group in classification.directories:
            self._emit(run, _describe_group("Folder", group))

    def _copy(self, run: PipelineRun, commands: ToolCommands) -> None:
        self._transition(run, PipelineStatus.COPYING)
        try:
            run.staging.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TasaveerError(f"Could not create staging folder {run.staging}: {exc}") from exc

        command = commands.copy_command(run.source, run.staging)
        self._require_success(command, self._run_tool(run, command))
        self._emit(run, f"Copied {run.source} into {run.staging}")

    def _tag(self, run: PipelineRun) -> None:
        self._transition(run, PipelineStatus.TAGGING)
        records = self._scanner.scan(run.staging)
        run.token.raise_if_cancelled()

        pending = [
            assignment
            for assignment in self._classifier.plan_keywords(records, run.staging)
            if assignment.keywords
        ]
        undated = [record for record in records if not record.has_date and record.extracted_date is not None]
        if not pending:
            self._emit(run, "No copied files matched a tagged source.")
        if not pending and not undated:
            return

        writer = self._metadata_writer()
        try:
            if pending:
                self._write_keywords(run, writer, pending)
            if undated:
                self._write_dates(run, writer, undated)
        finally:
            writer.close()

    def _write_keywords(
        self,
        run: PipelineRun,
        writer: MetadataWriter,
        pending: list[KeywordAssignment],
    ) -> None:
        written = 0
        for assignment in pending:
            run.token.raise_if_cancelled()
            try:
                writer.write_keywords(assignment.path, assignment.keywords)
            except KeywordWriteError as exc:
                self._emit(run, f"Warning: {exc}", logging.WARNING)
                continue
            written += 1
            self._emit(run, f"Tagged {assignment.path.name}: {', '.join(assignment.keywords)}")

        run.keywords_written = written
        self._emit(run, f"Tagged {written} of {len(pending)} files.")

    def _write_dates(self, run: PipelineRun, writer: MetadataWriter, undated: list[FileRecord]) -> None:
        """Fill in capture dates recovered from filenames so files sort by their real day."""
        written = 0
        for record in undated:
            run.token.raise_if_cancelled()
            extracted = record.extracted_date
            if extracted is None:
                continue
            stamp = exif_timestamp(extracted)
            try:
                writer.write_capture_date(record.path, stamp)
            except DateWriteError as exc:
                self._emit(run, f"Warning: {exc}", logging.WARNING)
                continue
            written += 1
            self._emit(run, f"Dated {record.path.name}: {stamp} ({extracted.label})")

        run.dates_written = written
        self._emit(run, f"Dated {written} of {len(undated)} files from their names.")

    def _organize(self, run: PipelineRun, commands: ToolCommands) -> None:
        self._transition(run, PipelineStatus.ORGANIZING)
        command = commands.organize_command(run.staging, run.destination, run.date_format)
        self._require_success(command, self._run_tool(run, command))
        self._emit(run, f"Organized files into {run.destination} by {run.date_format}")

    def _cleanup(self, run: PipelineRun, commands: ToolCommands) -> None:
        command = commands.cleanup_command(run.staging)
        try:
            status = self._run_tool(run, command)
        except SpawnError as exc:
            self._emit(run, f"Warning: could not remove staging folder {run.staging}: {exc}", logging.WARNING)
            return
        if not status.success:
            self._emit(
                run,
                f"Warning: cleanup exited with code {status.exit_code}; staging folder left at {run.staging}",
                logging.WARNING,
            )

    def _finish(self, run: PipelineRun) -> None:
        with run.lock:
            run.token.raise_if_cancelled()
            run.tracked_processes.clear()
            run.logs.push("Ingest complete.")
            self._set_status(run, PipelineStatus.SUCCESS)
        LOGGER.info("Ingest of %s into %s complete.", run.source, run.destination)

    def _fail(self, run: PipelineRun, message: str) -> None:
        with run.lock:
            if run.token.cancelled:
                return
            run.tracked_processes.clear()
            run.error = message
            run.logs.push(f"Error: {message}")
            self._set_status(run, PipelineStatus.ERROR)
        LOGGER.error("Ingest of %s failed: %s", run.source, message)

    # ------------------------------------------------------------------ #
    # Internal helpers                                                   #
    # ------------------------------------------------------------------ #

    def _begin(self, source: Path, destination: str | Path, date_format: Optional[str]) -> PipelineRun:
        destination_path = Path(str(destination)).expanduser()
        with self._lock:
            if self._run is not None:
                raise PipelineBusyError("An ingest run is already in progress.")
            interval = self.options.flush_interval_ms / 1000
            run = PipelineRun(
                source=Path(source).expanduser(),
                destination=destination_path,
                staging=destination_path / self.options.staging_dirname,
                date_format=date_format or self.options.date_format,
                logs=LogAggregator(self._on_log, interval=interval),
            )
            self._run = run
        return run

    def _release(self, run: PipelineRun) -> None:
        with self._lock:
            if self._run is run:
                self._run = None
                self._last_run = run

    def _transition(self, run: PipelineRun, status: PipelineStatus) -> None:
        with run.lock:
            run.token.raise_if_cancelled()
            self._set_status(run, status)
        LOGGER.debug("Ingest of %s is %s", run.source, status.value)

    def _set_status(self, run: PipelineRun, status: PipelineStatus) -> None:
        run.status = status
        if self._on_status is not None:
            self._on_status(run, status)

    def _emit(self, run: PipelineRun, line: str, level: Optional[int] = None) -> None:
        with run.lock:
            if run.token.cancelled:
                return
            run.logs.push(line)
        if level is not None:
            LOGGER.log(level, line)

    def _run_tool(self, run: PipelineRun, command: ToolCommand) -> ExitStatus:
        with run.lock:
            run.token.raise_if_cancelled()
            self._emit(run, f"$ {command.display()}")
            handle = self._supervisor.spawn(command.program, command.args)
            run.tracked_processes.add(handle)
        try:
            for line in handle.lines():
                self._emit(run, line)
        finally:
            with run.lock:
                run.tracked_processes.discard(handle)
        run.token.raise_if_cancelled()
        return handle.wait()

    @staticmethod
    def _require_success(command: ToolCommand, status: ExitStatus) -> None:
        tool = Path(command.program).name
        if status.exit_code is None:
            raise TasaveerError(f"{tool} was terminated before finishing the {command.label} step.")
        if status.exit_code != 0:
            raise ProcessExitError(tool, status.exit_code)


def _describe_group(kind: str, group: SourceGroup) -> str:
    noun = "file" if group.count == 1 else "files"
    line = f"  {kind} {group.key}: {group.count} {noun}"
    if group.tag_name:
        line += f" (tag {group.tag_name})"
    return line


__all__ = ["IngestOrchestrator", "StatusListener"]
