"""Smoke tests for the CLI entrypoint."""

import json
import os
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from tasaveer.cli import cli


def _env_with_home(tmp_path: Path) -> dict[str, Any]:
    env = dict(os.environ)
    env["HOME"] = str(tmp_path)
    env["TASAVEER__LOGGING__LEVEL"] = "CRITICAL"
    return env


@pytest.fixture(autouse=True)
def _no_exiftool(monkeypatch: pytest.MonkeyPatch) -> None:
    def _missing(**_: Any) -> None:
        raise FileNotFoundError("exiftool not found")

    monkeypatch.setattr("tasaveer.ingestion.extractors.ExifToolHelper", _missing)


def test_cli_help_displays_commands() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "Tasaveer imports photos and videos" in result.output
    for command in ("scan", "ingest", "tags", "config"):
        assert command in result.output


def test_scan_prints_groupings_as_json(tmp_path: Path) -> None:
    source = tmp_path / "photos"
    (source / "2023").mkdir(parents=True)
    (source / "IMG_0001.jpg").write_bytes(b"jpeg")
    (source / "2023" / "clip.mp4").write_bytes(b"mp4")
    runner = CliRunner()

    result = runner.invoke(cli, ["scan", str(source), "--json"], env=_env_with_home(tmp_path))

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["total"] == 2
    assert payload["cameras"] == [
        {"key": "Unknown", "count": 2, "assigned_tag": None, "tag_name": None}
    ]
    assert {group["key"] for group in payload["directories"]} == {"Root", "2023"}


def test_scan_prints_tables(tmp_path: Path) -> None:
    source = tmp_path / "photos"
    source.mkdir()
    (source / "a.jpg").write_bytes(b"jpeg")
    runner = CliRunner()

    result = runner.invoke(cli, ["scan", str(source)], env=_env_with_home(tmp_path))

    assert result.exit_code == 0, result.output
    assert "Cameras" in result.output
    assert "Folders" in result.output


def test_tags_lifecycle(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    created = runner.invoke(cli, ["tags", "create", "Family"], env=env)
    assert created.exit_code == 0, created.output

    assigned = runner.invoke(cli, ["tags", "camera", "Canon EOS", "Family"], env=env)
    assert assigned.exit_code == 0, assigned.output
    assert "now maps to Family" in assigned.output

    folder = runner.invoke(cli, ["tags", "directory", "2023/Summer", "Family"], env=env)
    assert folder.exit_code == 0, folder.output

    renamed = runner.invoke(cli, ["tags", "rename", "Family", "Relatives"], env=env)
    assert renamed.exit_code == 0, renamed.output

    listed = runner.invoke(cli, ["tags", "list", "--json"], env=env)
    assert listed.exit_code == 0, listed.output
    (tag,) = json.loads(listed.output)
    assert tag["name"] == "Relatives"
    assert tag["cameraAliases"] == ["Canon EOS"]
    assert tag["directoryAliases"] == ["2023/Summer"]

    settings = json.loads((tmp_path / ".tasaveer" / "settings.json").read_text(encoding="utf-8"))
    assert settings["sourceTags"][0]["name"] == "Relatives"

    cleared = runner.invoke(cli, ["tags", "camera", "Canon EOS", "--clear"], env=env)
    assert cleared.exit_code == 0, cleared.output

    deleted = runner.invoke(cli, ["tags", "delete", tag["id"]], env=env)
    assert deleted.exit_code == 0, deleted.output

    empty = runner.invoke(cli, ["tags", "list"], env=env)
    assert "No tags defined yet" in empty.output


def test_tags_errors_are_reported(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    runner.invoke(cli, ["tags", "create", "Family"], env=env)

    duplicate = runner.invoke(cli, ["tags", "create", "Family"], env=env)
    assert duplicate.exit_code != 0
    assert "already exists" in duplicate.output

    unknown = runner.invoke(cli, ["tags", "camera", "Canon EOS", "Nobody"], env=env)
    assert unknown.exit_code != 0
    assert "No tag named" in unknown.output

    ambiguous = runner.invoke(cli, ["tags", "camera", "Canon EOS", "Family", "--clear"], env=env)
    assert ambiguous.exit_code != 0


def test_ingest_rejects_destination_inside_source(tmp_path: Path) -> None:
    source = tmp_path / "photos"
    source.mkdir()
    runner = CliRunner()

    result = runner.invoke(
        cli,
        ["ingest", str(source), str(source / "archive"), "--json"],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 1
    payload = json.loads(result.output)
    assert payload["status"] == "error"
    assert payload["dates_written"] == 0
    assert "must not be inside" in payload["error"]
    assert payload["log"][-1].startswith("Error:")


def test_ingest_reports_errors_without_json(tmp_path: Path) -> None:
    source = tmp_path / "photos"
    source.mkdir()
    runner = CliRunner()

    result = runner.invoke(
        cli,
        ["ingest", str(source), str(source)],
        env=_env_with_home(tmp_path),
    )

    assert result.exit_code == 1
    assert "must not be inside" in result.output
