"""Command line interface for Tasaveer."""

from __future__ import annotations

import difflib
import logging
from pathlib import Path
from typing import Any

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from tasaveer.classification import Classification, SourceGroup
from tasaveer.config import STAMP_PREFIX, ConfigError, ConfigManager, TasaveerConfig
from tasaveer.errors import TasaveerError
from tasaveer.pipeline import IngestOrchestrator, PipelineStatus
from tasaveer.state import SettingsStore
from tasaveer.tags import Tag, TagStore, UnknownTagError

console = Console()
err_console = Console(stderr=True)


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Emit a standardized error and terminate the command.

    Args:
        message: Human-readable error message.
        code: Machine-readable error identifier.
        json_output: Indicates whether JSON mode is active.
        details: Optional structured details to include in the payload.
        original: Original exception for chaining when not using JSON.

    Raises:
        SystemExit: When emitting JSON output to terminate the command.
        click.ClickException: For non-JSON flows to surface the error.
    """

    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    raise click.ClickException(message) from original


def _configure_logging(level: str) -> None:
    """Route library logging through rich at ``level``."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def _load_config() -> TasaveerConfig:
    """Load the effective configuration and set up logging.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        config = manager.load()
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    _configure_logging(config.logging.level)
    return config


def _open_tags(config: TasaveerConfig) -> TagStore:
    return TagStore(SettingsStore(config.settings_path))


def _lookup_tag(store: TagStore, identifier: str) -> Tag:
    """Find a tag by exact name first, then by id."""
    tag = store.find_by_name(identifier)
    if tag is not None:
        return tag
    try:
        return store.get(identifier)
    except UnknownTagError as exc:
        raise click.ClickException(f"No tag named or identified by '{identifier}'.") from exc


def _warn_if_unsaved(store: TagStore) -> None:
    if store.dirty:
        console.print(
            f"[yellow]Changes could not be written to {store.settings_path}; they were not saved.[/yellow]"
        )


def _group_table(title: str, groups: list[SourceGroup]) -> Table:
    table = Table(title=title)
    table.add_column("Source")
    table.add_column("Files", justify="right")
    table.add_column("Tag")
    for group in groups:
        table.add_row(group.key, str(group.count), group.tag_name or "-")
    return table


def _render_classification(classification: Classification) -> None:
    console.print(f"[bold]{classification.total}[/bold] media files under {classification.root}")
    console.print(_group_table("Cameras", classification.cameras))
    console.print(_group_table("Folders", classification.directories))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="tasaveer")
def cli() -> None:
    """Tasaveer imports photos and videos into a date-organized, tagged archive.

    Returns:
        None: This function is invoked for its side effects.
    """


@cli.command()
@click.argument("source", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.option("--json", "json_output", is_flag=True, help="Emit the groupings as JSON.")
def scan(source: str, json_output: bool) -> None:
    """Show how files under SOURCE group by camera and folder.

    Args:
        source: Directory to inspect.
        json_output: If True, emit JSON instead of tables.
    """
    config = _load_config()
    orchestrator = IngestOrchestrator.from_config(config, _open_tags(config))
    try:
        classification = orchestrator.scan_for_tags(Path(source))
    except TasaveerError as exc:
        _handle_cli_error(str(exc), code="scan_failed", json_output=json_output, original=exc)
        return

    if json_output:
        console.print_json(data=classification.model_dump(mode="json", by_alias=True))
        return
    _render_classification(classification)


@cli.command()
@click.argument("source", type=click.Path(exists=True, file_okay=False, path_type=str))
@click.argument("destination", type=str)
@click.option("--date-format", type=str, help="Folder pattern for the archive, e.g. YYYY/MM.")
@click.option("--json", "json_output", is_flag=True, help="Emit the run result as JSON.")
def ingest(source: str, destination: str, date_format: str | None, json_output: bool) -> None:
    """Copy SOURCE into DESTINATION, tag the copies and sort them by date.

    Press Ctrl+C to cancel; running tools are stopped.

    Args:
        source: Directory to import.
        destination: Archive root.
        date_format: Optional override of the configured folder pattern.
        json_output: If True, emit a JSON summary instead of streaming the log.
    """
    config = _load_config()

    def _print_batch(lines: list[str]) -> None:
        for line in lines:
            console.print(line, markup=False, highlight=False)

    orchestrator = IngestOrchestrator.from_config(
        config,
        _open_tags(config),
        on_log=None if json_output else _print_batch,
    )
    run, worker = orchestrator.start(Path(source), destination, date_format=date_format)
    try:
        while worker.is_alive():
            worker.join(0.2)
    except KeyboardInterrupt:
        orchestrator.cancel()
        worker.join()

    if json_output:
        console.print_json(
            data={
                "source": str(run.source),
                "destination": str(run.destination),
                "status": run.status.value,
                "cancelled": run.cancel_requested,
                "error": run.error,
                "keywords_written": run.keywords_written,
                "dates_written": run.dates_written,
                "log": run.log_lines,
            }
        )
        if run.status is not PipelineStatus.SUCCESS:
            raise SystemExit(1)
        return

    if run.cancel_requested:
        console.print("[yellow]Ingest cancelled.[/yellow]")
        raise SystemExit(1)
    if run.status is PipelineStatus.ERROR:
        raise click.ClickException(run.error or "Ingest failed.")
    console.print(f"[green]Ingest complete: {run.destination}[/green]")


@cli.group()
def tags() -> None:
    """Manage source tags and the camera and folder aliases bound to them.

    Returns:
        None: This function is invoked for its side effects.
    """


@tags.command("list")
@click.option("--json", "json_output", is_flag=True, help="Emit tags as JSON.")
def tags_list(json_output: bool) -> None:
    """List every tag with its aliases."""
    store = _open_tags(_load_config())
    items = store.list()
    if json_output:
        console.print_json(data=[tag.model_dump(mode="json", by_alias=True) for tag in items])
        return
    if not items:
        console.print("[yellow]No tags defined yet.[/yellow]")
        return

    table = Table(title="Source tags")
    table.add_column("Name")
    table.add_column("Color")
    table.add_column("Cameras")
    table.add_column("Folders")
    table.add_column("Id", style="dim")
    for tag in items:
        table.add_row(
            tag.name,
            tag.color,
            ", ".join(sorted(tag.camera_aliases)) or "-",
            ", ".join(sorted(tag.directory_aliases)) or "-",
            tag.id,
        )
    console.print(table)


@tags.command("create")
@click.argument("name")
@click.option("--color", type=str, help="Display color; chosen from the palette when omitted.")
def tags_create(name: str, color: str | None) -> None:
    """Create a tag called NAME."""
    store = _open_tags(_load_config())
    try:
        tag = store.create(name, color)
    except TasaveerError as exc:
        raise click.ClickException(str(exc)) from exc
    _warn_if_unsaved(store)
    console.print(f"[green]Created tag {tag.name} ({tag.id}).[/green]")


@tags.command("rename")
@click.argument("tag")
@click.argument("name")
def tags_rename(tag: str, name: str) -> None:
    """Rename TAG (a name or id) to NAME."""
    store = _open_tags(_load_config())
    current = _lookup_tag(store, tag)
    try:
        renamed = store.rename(current.id, name)
    except TasaveerError as exc:
        raise click.ClickException(str(exc)) from exc
    _warn_if_unsaved(store)
    console.print(f"[green]Renamed {current.name} to {renamed.name}.[/green]")


@tags.command("delete")
@click.argument("tag")
def tags_delete(tag: str) -> None:
    """Delete TAG (a name or id) together with its aliases."""
    store = _open_tags(_load_config())
    current = _lookup_tag(store, tag)
    store.delete(current.id)
    _warn_if_unsaved(store)
    console.print(f"[green]Deleted tag {current.name}.[/green]")


def _assign_alias(kind: str, alias: str, tag: str | None, clear: bool) -> None:
    if clear == (tag is not None):
        raise click.UsageError("Provide either TAG or --clear.")

    store = _open_tags(_load_config())
    target = None if clear else _lookup_tag(store, tag or "")
    assign = store.assign_camera_alias if kind == "camera" else store.assign_directory_alias
    try:
        assign(alias, target.id if target else None)
    except TasaveerError as exc:
        raise click.ClickException(str(exc)) from exc
    _warn_if_unsaved(store)

    if target is None:
        console.print(f"[green]Cleared {kind} alias {alias}.[/green]")
    else:
        console.print(f"[green]{kind.capitalize()} {alias} now maps to {target.name}.[/green]")


@tags.command("camera")
@click.argument("model")
@click.argument("tag", required=False)
@click.option("--clear", is_flag=True, help="Remove the alias from whichever tag holds it.")
def tags_camera(model: str, tag: str | None, clear: bool) -> None:
    """Bind camera MODEL to TAG, moving it from any other tag."""
    _assign_alias("camera", model, tag, clear)


@tags.command("directory")
@click.argument("key")
@click.argument("tag", required=False)
@click.option("--clear", is_flag=True, help="Remove the alias from whichever tag holds it.")
def tags_directory(key: str, tag: str | None, clear: bool) -> None:
    """Bind folder KEY (a path relative to the source, or Root) to TAG."""
    _assign_alias("directory", key, tag, clear)


@cli.group()
def config() -> None:
    """Inspect and edit ~/.tasaveer/config.yaml."""


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Print the effective configuration: defaults, file, environment."""
    try:
        loaded = ConfigManager().load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="YAML literal stored at KEY.")
def config_set(key: str, value: str) -> None:
    """Store VALUE at the dotted KEY (e.g. ingest.date_format) and show the change."""
    manager = ConfigManager()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException("KEY must specify a dotted path such as 'ingest.date_format'.")

    try:
        parsed = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    try:
        manager.ensure_exists()
        before = _without_stamp(manager.read_text())
        manager.update(segments, parsed)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    after = _without_stamp(manager.read_text())

    if before == after:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    diff = difflib.unified_diff(before, after, fromfile="config.yaml", tofile="config.yaml", lineterm="")
    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


def _without_stamp(text: str) -> list[str]:
    return [line for line in text.splitlines() if not line.startswith(STAMP_PREFIX)]


def main() -> None:
    """Entry point used by ``python -m tasaveer``."""
    cli()


__all__ = ["cli", "main"]
