"""Configuration management for Tasaveer."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Sequence

import yaml

from .exceptions import ConfigError
from .models import IngestOptions, LoggingSettings, TasaveerConfig, ToolSettings
from .resolver import (
    ENV_PREFIX,
    assign_nested,
    env_to_overrides,
    flatten_for_env,
    resolve_with_precedence,
)

DEFAULT_CONFIG_PATH = Path("~/.tasaveer/config.yaml")
STAMP_PREFIX = "# Last updated: "

_BANNER = (
    "# Tasaveer configuration file\n"
    "# Tool locations, ingest options and logging. Edit with\n"
    "# `tasaveer config set KEY --value VALUE` or by hand.\n"
)


class ConfigManager:
    """Read, layer and persist the YAML configuration file.

    Attributes:
        config_path: Location of the YAML document, with ``~`` expanded.
    """

    def __init__(
        self,
        config_path: Path | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.config_path = Path(config_path or DEFAULT_CONFIG_PATH).expanduser()
        self._env = os.environ if env is None else env

    def load(
        self,
        *,
        cli_overrides: Mapping[str, Any] | None = None,
        include_env: bool = True,
        ensure_file: bool = True,
        env_overrides: Mapping[str, str] | None = None,
    ) -> TasaveerConfig:
        """Return the effective configuration.

        Args:
            cli_overrides: Highest-precedence values, keyed by dotted path.
            include_env: Whether ``TASAVEER__*`` variables participate.
            ensure_file: Write a default file first when none exists.
            env_overrides: Environment mapping to use instead of the process one.

        Raises:
            ConfigError: If the file is malformed or values fail validation.
        """
        if ensure_file:
            self.ensure_exists()

        env_layer = None
        if include_env:
            env_layer = env_to_overrides(self._env if env_overrides is None else env_overrides)

        return resolve_with_precedence(
            defaults=TasaveerConfig(),
            file_overrides=self._read_file(),
            env_overrides=env_layer or None,
            cli_overrides=cli_overrides,
        )

    def ensure_exists(self) -> Path:
        """Write the default configuration unless a file is already present."""
        if not self.config_path.exists():
            self.save(TasaveerConfig())
        return self.config_path

    def save(self, config: TasaveerConfig | Mapping[str, Any]) -> None:
        """Write ``config`` to disk under a banner and timestamp."""
        if isinstance(config, TasaveerConfig):
            data: dict[str, Any] = config.model_dump(mode="python")
        else:
            data = dict(config)
        stamp = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        body = yaml.safe_dump(data, sort_keys=False)
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self.config_path.write_text(f"{_BANNER}{STAMP_PREFIX}{stamp}\n{body}", encoding="utf-8")

    def update(self, path: Sequence[str], value: Any) -> TasaveerConfig:
        """Set one dotted value in the file after checking the result validates.

        Args:
            path: Key segments, e.g. ``["ingest", "date_format"]``.
            value: Already-parsed value to store.

        Returns:
            TasaveerConfig: Configuration implied by the updated file alone.

        Raises:
            ConfigError: If the assignment conflicts with existing data or fails validation.
        """
        data = self._read_file()
        assign_nested(data, list(path), value)
        validated = resolve_with_precedence(defaults=TasaveerConfig(), file_overrides=data)
        self.save(data)
        return validated

    def read_text(self) -> str:
        """Return the raw file contents, or an empty string when missing."""
        try:
            return self.config_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""

    def _read_file(self) -> dict[str, Any]:
        text = self.read_text()
        if not text:
            return {}
        try:
            document = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Failed to parse configuration file: {exc}") from exc
        if document is None:
            return {}
        if not isinstance(document, dict):
            raise ConfigError("Configuration file must contain a mapping at the top level.")
        return document


__all__ = [
    "ConfigManager",
    "ConfigError",
    "DEFAULT_CONFIG_PATH",
    "ENV_PREFIX",
    "IngestOptions",
    "LoggingSettings",
    "STAMP_PREFIX",
    "TasaveerConfig",
    "ToolSettings",
    "assign_nested",
    "flatten_for_env",
    "resolve_with_precedence",
]
