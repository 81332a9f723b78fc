"""End-to-end ingest runs driven by Python stand-ins for the external tools."""

from __future__ import annotations

import logging
import sys
import threading
import time
from pathlib import Path
from typing import Sequence

import pytest

from tasaveer.config.models import IngestOptions
from tasaveer.errors import DateWriteError, KeywordWriteError, PipelineBusyError, ValidationError
from tasaveer.ingestion import MediaMetadata, MediaScanner
from tasaveer.pipeline import (
    IngestOrchestrator,
    PipelineRun,
    PipelineStatus,
    ToolCommand,
    validate_destination,
)
from tasaveer.process import ProcessHandle, ProcessSupervisor
from tasaveer.state import SettingsStore
from tasaveer.tags import TagStore

COPY_SCRIPT = """
import shutil, sys
from pathlib import Path
source, staging, code = Path(sys.argv[1]), Path(sys.argv[2]), int(sys.argv[3])
print(f"copying {source.name}")
shutil.copytree(source, staging / source.name, dirs_exist_ok=True)
sys.exit(code)
"""

ORGANIZE_SCRIPT = """
import shutil, sys
from pathlib import Path
staging, destination, pattern = Path(sys.argv[1]), Path(sys.argv[2]), sys.argv[3]
for path in sorted(staging.rglob("*")):
    if path.is_file():
        target = destination / "sorted" / path.name
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(path), str(target))
        print(f"moved {path.name} using {pattern}")
"""

CLEANUP_SCRIPT = """
import shutil, sys
shutil.rmtree(sys.argv[1], ignore_errors=True)
sys.exit(int(sys.argv[2]))
"""

HANG_SCRIPT = """
import sys, time
print(f"{sys.argv[1]} slowly", flush=True)
time.sleep(30)
"""

FORK_SCRIPT = """
import subprocess, sys, time
subprocess.Popen([sys.executable, "-c", "import time; time.sleep(30)"])
print("copying with a helper", flush=True)
time.sleep(30)
"""


class ScriptToolchain:
    """Toolchain whose tools are short Python programs."""

    def __init__(
        self,
        *,
        copy_exit: int = 0,
        cleanup_exit: int = 0,
        hang_on_copy: bool = False,
        hang_on_organize: bool = False,
        fork_on_copy: bool = False,
        copy_program: str | None = None,
    ) -> None:
        self.copy_exit = copy_exit
        self.cleanup_exit = cleanup_exit
        self.hang_on_copy = hang_on_copy
        self.hang_on_organize = hang_on_organize
        self.fork_on_copy = fork_on_copy
        self.copy_program = copy_program
        self.resolved = 0

    def resolve(self) -> "ScriptToolchain":
        self.resolved += 1
        return self

    def copy_command(self, source: Path, staging: Path) -> ToolCommand:
        if self.copy_program is not None:
            return ToolCommand("copy", self.copy_program, (str(source), str(staging)))
        if self.hang_on_copy:
            return ToolCommand("copy", sys.executable, ("-c", HANG_SCRIPT, "copying"))
        if self.fork_on_copy:
            return ToolCommand("copy", sys.executable, ("-c", FORK_SCRIPT))
        return ToolCommand(
            "copy",
            sys.executable,
            ("-c", COPY_SCRIPT, str(source), str(staging), str(self.copy_exit)),
        )

    def organize_command(self, staging: Path, destination: Path, date_format: str) -> ToolCommand:
        if self.hang_on_organize:
            return ToolCommand("organize", sys.executable, ("-c", HANG_SCRIPT, "organizing"))
        return ToolCommand(
            "organize",
            sys.executable,
            ("-c", ORGANIZE_SCRIPT, str(staging), str(destination), date_format),
        )

    def cleanup_command(self, staging: Path) -> ToolCommand:
        return ToolCommand(
            "cleanup",
            sys.executable,
            ("-c", CLEANUP_SCRIPT, str(staging), str(self.cleanup_exit)),
        )


class FakeReader:
    def __init__(self, metadata: dict[str, MediaMetadata], gate: threading.Event | None = None) -> None:
        self.metadata = metadata
        self.gate = gate
        self.entered = threading.Event()

    def read(self, paths: Sequence[Path]) -> dict[Path, MediaMetadata]:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        return {path: self.metadata[path.name] for path in paths if path.name in self.metadata}


class RecordingWriter:
    def __init__(
        self,
        failing: set[str] | None = None,
        gate: threading.Event | None = None,
    ) -> None:
        self.failing = failing or set()
        self.gate = gate
        self.entered = threading.Event()
        self.writes: list[tuple[Path, list[str]]] = []
        self.dates: list[tuple[Path, str]] = []
        self.closed = False

    def write_keywords(self, path: Path, keywords: Sequence[str]) -> None:
        self.entered.set()
        if self.gate is not None:
            self.gate.wait(timeout=10)
        if path.name in self.failing:
            raise KeywordWriteError(f"Could not write keywords to {path}: read-only")
        self.writes.append((path, list(keywords)))

    def write_capture_date(self, path: Path, timestamp: str) -> None:
        if path.name in self.failing:
            raise DateWriteError(f"Could not write capture date to {path}: read-only")
        self.dates.append((path, timestamp))

    def close(self) -> None:
        self.closed = True


class CountingSupervisor(ProcessSupervisor):
    def __init__(self) -> None:
        super().__init__(queue_size=64)
        self.spawned: list[str] = []

    def spawn(self, command: str, args: Sequence[str] = (), **kwargs) -> ProcessHandle:
        self.spawned.append(command)
        return super().spawn(command, args, **kwargs)


def _wait_for(predicate, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


@pytest.fixture()
def source(tmp_path: Path) -> Path:
    root = tmp_path / "photos"
    root.mkdir()
    (root / "IMG_0001.jpg").write_bytes(b"jpeg")
    (root / "clip.mp4").write_bytes(b"mp4")
    return root


@pytest.fixture()
def tags(tmp_path: Path) -> TagStore:
    return TagStore(SettingsStore(tmp_path / "settings.json"))


def _orchestrator(
    tags: TagStore,
    *,
    toolchain: ScriptToolchain | None = None,
    writer: RecordingWriter | None = None,
    reader: FakeReader | None = None,
    supervisor: ProcessSupervisor | None = None,
    statuses: list[PipelineStatus] | None = None,
    windows: bool | None = None,
) -> IngestOrchestrator:
    reader = reader or FakeReader({"IMG_0001.jpg": MediaMetadata(has_date=True, camera_model="Canon EOS")})
    writer = writer or RecordingWriter()

    def _on_status(_: PipelineRun, status: PipelineStatus) -> None:
        if statuses is not None:
            statuses.append(status)

    return IngestOrchestrator(
        tags,
        MediaScanner(reader),
        metadata_writer=lambda: writer,
        toolchain=toolchain or ScriptToolchain(),
        supervisor=supervisor,
        options=IngestOptions(flush_interval_ms=10),
        on_status=_on_status,
        windows=windows,
    )


def test_successful_run_tags_and_organizes(tmp_path: Path, source: Path, tags: TagStore) -> None:
    family = tags.create("Family")
    tags.assign_camera_alias("Canon EOS", family.id)
    writer = RecordingWriter()
    statuses: list[PipelineStatus] = []
    toolchain = ScriptToolchain()
    orchestrator = _orchestrator(tags, toolchain=toolchain, writer=writer, statuses=statuses)
    destination = tmp_path / "archive"

    run = orchestrator.run(source, destination)

    assert run.status is PipelineStatus.SUCCESS, run.log_lines
    assert statuses == [
        PipelineStatus.SCANNING,
        PipelineStatus.COPYING,
        PipelineStatus.TAGGING,
        PipelineStatus.ORGANIZING,
        PipelineStatus.SUCCESS,
    ]
    staging = destination / ".tasaveer-staging"
    assert writer.writes == [(staging / "photos" / "IMG_0001.jpg", ["Family"])]
    assert writer.closed
    assert run.keywords_written == 1
    assert (destination / "sorted" / "IMG_0001.jpg").exists()
    assert (destination / "sorted" / "clip.mp4").exists()
    assert not staging.exists()
    assert run.tracked_processes == set()
    assert toolchain.resolved == 1

    assert "  Camera Canon EOS: 1 file (tag Family)" in run.log_lines
    assert "  Camera Unknown: 1 file" in run.log_lines
    assert "copying photos" in run.log_lines
    assert "moved IMG_0001.jpg using YYYY/MM" in run.log_lines
    assert run.log_lines[-1] == "Ingest complete."
    assert run.preflight is not None and run.preflight.total == 2

    assert orchestrator.status is PipelineStatus.IDLE
    assert orchestrator.active_run is None
    assert orchestrator.last_run is run


def test_date_format_override_reaches_organizer(tmp_path: Path, source: Path, tags: TagStore) -> None:
    run = _orchestrator(tags).run(source, tmp_path / "archive", date_format="YYYY/MM/DD")

    assert run.status is PipelineStatus.SUCCESS
    assert "moved clip.mp4 using YYYY/MM/DD" in run.log_lines


def test_copy_failure_stops_with_exit_code(tmp_path: Path, source: Path, tags: TagStore) -> None:
    writer = RecordingWriter()
    statuses: list[PipelineStatus] = []
    orchestrator = _orchestrator(
        tags, toolchain=ScriptToolchain(copy_exit=23), writer=writer, statuses=statuses
    )
    destination = tmp_path / "archive"

    run = orchestrator.run(source, destination)

    assert run.status is PipelineStatus.ERROR
    assert statuses[-1] is PipelineStatus.ERROR
    assert PipelineStatus.TAGGING not in statuses
    assert "23" in run.log_lines[-1]
    assert run.log_lines[-1].startswith("Error:")
    assert run.error is not None and "exited with code 23" in run.error
    assert writer.writes == []
    assert not (destination / "sorted").exists()
    assert run.tracked_processes == set()


def test_cleanup_failure_is_only_a_warning(
    tmp_path: Path, source: Path, tags: TagStore, caplog: pytest.LogCaptureFixture
) -> None:
    orchestrator = _orchestrator(tags, toolchain=ScriptToolchain(cleanup_exit=3))

    with caplog.at_level(logging.WARNING, logger="tasaveer.pipeline.orchestrator"):
        run = orchestrator.run(source, tmp_path / "archive")

    assert run.status is PipelineStatus.SUCCESS
    warnings = [line for line in run.log_lines if line.startswith("Warning:")]
    assert len(warnings) == 1
    assert "cleanup exited with code 3" in warnings[0]
    assert any("cleanup exited with code 3" in record.getMessage() for record in caplog.records)


def test_keyword_failures_do_not_stop_the_run(tmp_path: Path, source: Path, tags: TagStore) -> None:
    family = tags.create("Family")
    tags.assign_directory_alias("Root", family.id)
    writer = RecordingWriter(failing={"IMG_0001.jpg"})

    run = _orchestrator(tags, writer=writer).run(source, tmp_path / "archive")

    assert run.status is PipelineStatus.SUCCESS
    assert [path.name for path, _ in writer.writes] == ["clip.mp4"]
    assert any("IMG_0001.jpg" in line and line.startswith("Warning:") for line in run.log_lines)
    assert "Tagged 1 of 2 files." in run.log_lines
    assert writer.closed


def test_filename_dates_fill_in_missing_capture_dates(tmp_path: Path, tags: TagStore) -> None:
    root = tmp_path / "phone"
    root.mkdir()
    for name in ("IMG-20230615-WA0001.jpg", "20240115_143000.jpg", "IMG_0001.jpg"):
        (root / name).write_bytes(b"jpeg")
    reader = FakeReader({"20240115_143000.jpg": MediaMetadata(has_date=True)})
    writer = RecordingWriter()

    run = _orchestrator(tags, writer=writer, reader=reader).run(root, tmp_path / "archive")

    assert run.status is PipelineStatus.SUCCESS, run.log_lines
    staged = tmp_path / "archive" / ".tasaveer-staging" / "phone"
    assert writer.dates == [(staged / "IMG-20230615-WA0001.jpg", "2023:06:15 12:00:00")]
    assert writer.writes == []
    assert writer.closed
    assert run.dates_written == 1
    assert "Dated IMG-20230615-WA0001.jpg: 2023:06:15 12:00:00 (WhatsApp)" in run.log_lines
    assert "Dated 1 of 1 files from their names." in run.log_lines
    moved = next(i for i, line in enumerate(run.log_lines) if line.startswith("moved "))
    assert run.log_lines.index("Dated 1 of 1 files from their names.") < moved


def test_capture_date_failures_are_warnings(tmp_path: Path, tags: TagStore) -> None:
    root = tmp_path / "phone"
    root.mkdir()
    (root / "Screenshot 2024-01-15 at 14.30.00.png").write_bytes(b"png")
    writer = RecordingWriter(failing={"Screenshot 2024-01-15 at 14.30.00.png"})

    run = _orchestrator(tags, writer=writer, reader=FakeReader({})).run(root, tmp_path / "archive")

    assert run.status is PipelineStatus.SUCCESS
    assert run.dates_written == 0
    assert any(line.startswith("Warning: Could not write capture date") for line in run.log_lines)
    assert "Dated 0 of 1 files from their names." in run.log_lines


def test_missing_tool_fails_with_spawn_error(tmp_path: Path, source: Path, tags: TagStore) -> None:
    toolchain = ScriptToolchain(copy_program=str(tmp_path / "no-such-rsync"))

    run = _orchestrator(tags, toolchain=toolchain).run(source, tmp_path / "archive")

    assert run.status is PipelineStatus.ERROR
    assert "Could not start" in run.log_lines[-1]


def test_invalid_source_errors_without_spawning(tmp_path: Path, tags: TagStore) -> None:
    supervisor = CountingSupervisor()
    statuses: list[PipelineStatus] = []
    orchestrator = _orchestrator(tags, supervisor=supervisor, statuses=statuses)

    run = orchestrator.run(tmp_path / "missing", tmp_path / "archive")

    assert run.status is PipelineStatus.ERROR
    assert statuses == [PipelineStatus.ERROR]
    assert supervisor.spawned == []
    assert "does not exist" in run.log_lines[-1]


def test_windows_destination_rules_apply_before_spawning(
    tmp_path: Path, source: Path, tags: TagStore
) -> None:
    supervisor = CountingSupervisor()
    orchestrator = _orchestrator(tags, supervisor=supervisor, windows=True)

    run = orchestrator.run(source, "/archive")

    assert run.status is PipelineStatus.ERROR
    assert supervisor.spawned == []
    assert "drive letter" in run.log_lines[-1]


def test_destination_inside_source_is_rejected(source: Path, tags: TagStore) -> None:
    supervisor = CountingSupervisor()

    run = _orchestrator(tags, supervisor=supervisor).run(source, source / "archive")

    assert run.status is PipelineStatus.ERROR
    assert supervisor.spawned == []


@pytest.mark.parametrize(
    ("destination", "message"),
    [
        ("/Photos", "drive letter"),
        ("\\Photos", "drive letter"),
        ("Photos\\2023", "absolute"),
        ("C:\\Pho|tos", "does not allow"),
        ("   ", "empty"),
    ],
)
def test_validate_destination_windows_rules(destination: str, message: str) -> None:
    with pytest.raises(ValidationError, match=message):
        validate_destination(destination, windows=True)


def test_validate_destination_accepts_drive_paths() -> None:
    assert validate_destination("D:\\Photos\\Archive", windows=True).name.endswith("Archive")
    assert validate_destination("/srv/photos", windows=False) == Path("/srv/photos")


def test_cancel_kills_tools_and_returns_to_idle(tmp_path: Path, source: Path, tags: TagStore) -> None:
    statuses: list[PipelineStatus] = []
    orchestrator = _orchestrator(tags, toolchain=ScriptToolchain(hang_on_copy=True), statuses=statuses)

    run, worker = orchestrator.start(source, tmp_path / "archive")
    assert _wait_for(lambda: run.status is PipelineStatus.COPYING and len(run.tracked_processes) == 1)
    (handle,) = list(run.tracked_processes)

    with pytest.raises(PipelineBusyError):
        orchestrator.run(source, tmp_path / "other")

    assert orchestrator.cancel() is True
    worker.join(timeout=10)

    assert not worker.is_alive()
    assert run.status is PipelineStatus.IDLE
    assert run.cancel_requested
    assert run.tracked_processes == set()
    assert not handle.running()
    assert statuses[-1] is PipelineStatus.IDLE
    assert PipelineStatus.SUCCESS not in statuses
    assert PipelineStatus.ERROR not in statuses
    assert run.log_lines[-1] == "Ingest cancelled."
    assert f"Stopped {handle.name} (pid {handle.pid})." in run.log_lines
    assert not any(line.startswith("Error:") for line in run.log_lines)
    assert orchestrator.status is PipelineStatus.IDLE
    assert orchestrator.cancel() is False


def _assert_cancelled(run: PipelineRun, statuses: list[PipelineStatus]) -> None:
    assert run.status is PipelineStatus.IDLE
    assert run.tracked_processes == set()
    assert PipelineStatus.SUCCESS not in statuses
    assert PipelineStatus.ERROR not in statuses
    assert run.log_lines[-1] == "Ingest cancelled."


def test_cancel_stops_copy_tool_that_forked_a_helper(tmp_path: Path, source: Path, tags: TagStore) -> None:
    statuses: list[PipelineStatus] = []
    orchestrator = _orchestrator(tags, toolchain=ScriptToolchain(fork_on_copy=True), statuses=statuses)

    run, worker = orchestrator.start(source, tmp_path / "archive")
    assert _wait_for(lambda: "copying with a helper" in run.log_lines)

    assert orchestrator.cancel() is True
    worker.join(timeout=5)

    assert not worker.is_alive()
    _assert_cancelled(run, statuses)


def test_cancel_while_scanning(tmp_path: Path, source: Path, tags: TagStore) -> None:
    gate = threading.Event()
    reader = FakeReader({}, gate=gate)
    supervisor = CountingSupervisor()
    statuses: list[PipelineStatus] = []
    orchestrator = _orchestrator(tags, reader=reader, supervisor=supervisor, statuses=statuses)

    run, worker = orchestrator.start(source, tmp_path / "archive")
    assert reader.entered.wait(timeout=10)
    assert orchestrator.cancel() is True
    gate.set()
    worker.join(timeout=10)

    assert not worker.is_alive()
    _assert_cancelled(run, statuses)
    assert statuses == [PipelineStatus.SCANNING, PipelineStatus.IDLE]
    assert supervisor.spawned == []


def test_cancel_while_tagging(tmp_path: Path, source: Path, tags: TagStore) -> None:
    family = tags.create("Family")
    tags.assign_directory_alias("Root", family.id)
    gate = threading.Event()
    writer = RecordingWriter(gate=gate)
    statuses: list[PipelineStatus] = []
    orchestrator = _orchestrator(tags, writer=writer, statuses=statuses)

    run, worker = orchestrator.start(source, tmp_path / "archive")
    assert writer.entered.wait(timeout=10)
    assert run.status is PipelineStatus.TAGGING
    assert orchestrator.cancel() is True
    gate.set()
    worker.join(timeout=10)

    assert not worker.is_alive()
    _assert_cancelled(run, statuses)
    assert PipelineStatus.ORGANIZING not in statuses
    assert len(writer.writes) == 1
    assert writer.closed
    assert not any(line.startswith("Tagged ") for line in run.log_lines)


def test_cancel_while_organizing(tmp_path: Path, source: Path, tags: TagStore) -> None:
    statuses: list[PipelineStatus] = []
    orchestrator = _orchestrator(tags, toolchain=ScriptToolchain(hang_on_organize=True), statuses=statuses)

    run, worker = orchestrator.start(source, tmp_path / "archive")
    assert _wait_for(lambda: "organizing slowly" in run.log_lines)
    (handle,) = list(run.tracked_processes)

    assert orchestrator.cancel() is True
    worker.join(timeout=10)

    assert not worker.is_alive()
    assert not handle.running()
    _assert_cancelled(run, statuses)
    assert statuses[-2:] == [PipelineStatus.ORGANIZING, PipelineStatus.IDLE]
    assert not (tmp_path / "archive" / "sorted").exists()


def test_new_run_can_start_right_after_cancel(tmp_path: Path, source: Path, tags: TagStore) -> None:
    toolchain = ScriptToolchain(hang_on_copy=True)
    orchestrator = _orchestrator(tags, toolchain=toolchain)

    run, worker = orchestrator.start(source, tmp_path / "archive")
    assert _wait_for(lambda: len(run.tracked_processes) == 1)
    orchestrator.cancel()

    toolchain.hang_on_copy = False
    second = orchestrator.run(source, tmp_path / "archive-2")
    worker.join(timeout=10)

    assert second.status is PipelineStatus.SUCCESS
    assert run.status is PipelineStatus.IDLE


def test_cancel_without_active_run_is_a_no_op(tags: TagStore) -> None:
    assert _orchestrator(tags).cancel() is False


def test_concurrent_cancels_only_one_wins(tmp_path: Path, source: Path, tags: TagStore) -> None:
    orchestrator = _orchestrator(tags, toolchain=ScriptToolchain(hang_on_copy=True))
    run, worker = orchestrator.start(source, tmp_path / "archive")
    assert _wait_for(lambda: len(run.tracked_processes) == 1)

    results: list[bool] = []
    threads = [threading.Thread(target=lambda: results.append(orchestrator.cancel())) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()
    worker.join(timeout=10)

    assert sorted(results) == [False, False, False, True]
    assert run.log_lines.count("Ingest cancelled.") == 1


def test_scan_for_tags_returns_preflight_groups(source: Path, tags: TagStore) -> None:
    classification = _orchestrator(tags).scan_for_tags(source)

    assert classification.total == 2
    assert {group.key: group.count for group in classification.cameras} == {
        "Canon EOS": 1,
        "Unknown": 1,
    }
    assert [group.key for group in classification.directories] == ["Root"]


def test_scan_for_tags_rejects_missing_source(tmp_path: Path, tags: TagStore) -> None:
    with pytest.raises(ValidationError):
        _orchestrator(tags).scan_for_tags(tmp_path / "missing")
