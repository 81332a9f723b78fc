"""Layered configuration resolution.

Configuration is assembled from up to four layers, each applied over the
previous one: built-in defaults, the YAML file, ``TASAVEER__*`` environment
variables and finally command-line overrides. Keys in the file and CLI layers
may be nested mappings or dotted paths (``ingest.date_format``).
"""

from __future__ import annotations

from collections.abc import Mapping as MappingABC
from copy import deepcopy
from typing import Any, Dict, Iterator, Mapping, Sequence

import yaml
from pydantic import ValidationError

from .exceptions import ConfigError
from .models import TasaveerConfig

ENV_PREFIX = "TASAVEER__"


def resolve_with_precedence(
    *,
    defaults: TasaveerConfig,
    file_overrides: Mapping[str, Any] | None = None,
    env_overrides: Mapping[str, Any] | None = None,
    cli_overrides: Mapping[str, Any] | None = None,
) -> TasaveerConfig:
    """Apply override layers on top of ``defaults`` and validate the result.

    Args:
        defaults: Baseline configuration.
        file_overrides: Values read from the configuration file.
        env_overrides: Values derived from ``TASAVEER__*`` variables.
        cli_overrides: Values supplied on the command line.

    Returns:
        TasaveerConfig: The validated, merged configuration.

    Raises:
        ConfigError: If a layer is malformed or the merged values fail validation.
    """
    layers = (
        ("file", file_overrides),
        ("environment", env_overrides),
        ("cli", cli_overrides),
    )
    merged: dict[str, Any] = defaults.model_dump(mode="python")
    for origin, layer in layers:
        if layer is not None:
            _merge_into(merged, expand_dotted(layer, origin=origin))

    try:
        return TasaveerConfig.model_validate(merged)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration values: {exc}") from exc


def env_to_overrides(env: Mapping[str, str]) -> dict[str, Any]:
    """Translate ``TASAVEER__SECTION__KEY`` variables into a nested mapping.

    Values are parsed as YAML so lists and numbers survive; unparsable values are
    kept as plain strings.
    """
    overrides: dict[str, Any] = {}
    for name, raw in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        segments = [part.lower() for part in name[len(ENV_PREFIX) :].split("__") if part]
        if not segments:
            continue
        try:
            value: Any = yaml.safe_load(raw)
        except yaml.YAMLError:
            value = raw
        assign_nested(overrides, segments, value)
    return overrides


def flatten_for_env(config: TasaveerConfig) -> Dict[str, str]:
    """Render ``config`` as the environment variables that would reproduce it."""
    flat: Dict[str, str] = {}
    for path, value in _leaves(config.model_dump(mode="python"), ()):
        name = ENV_PREFIX + "__".join(segment.upper() for segment in path)
        if value is None:
            flat[name] = "null"
        elif isinstance(value, list):
            flat[name] = yaml.safe_dump(value, default_flow_style=True).strip()
        else:
            flat[name] = str(value)
    return flat


def assign_nested(target: dict[str, Any], path: Sequence[str], value: Any) -> None:
    """Store ``value`` under ``path`` inside ``target``, creating mappings on the way.

    Raises:
        ConfigError: If an intermediate segment already holds a non-mapping value.
    """
    node = target
    for segment in path[:-1]:
        child = node.setdefault(segment, {})
        if child is None:
            child = node[segment] = {}
        if not isinstance(child, dict):
            raise ConfigError(f"Cannot assign into non-mapping key '{segment}'.")
        node = child
    node[path[-1]] = value


def expand_dotted(layer: Mapping[str, Any], *, origin: str) -> dict[str, Any]:
    """Turn dotted keys into nested mappings, recursing into mapping values.

    Raises:
        ConfigError: If ``layer`` is not a mapping, holds non-string keys, or a
            dotted key collides with a scalar.
    """
    label = origin.capitalize()
    if not isinstance(layer, MappingABC):
        raise ConfigError(f"{label} overrides must be a mapping.")

    expanded: dict[str, Any] = {}
    for key, value in layer.items():
        if not isinstance(key, str):
            raise ConfigError(f"{label} override keys must be strings.")
        if isinstance(value, MappingABC):
            value = expand_dotted(value, origin=origin)
        try:
            _set_or_merge(expanded, key.split("."), value)
        except ConfigError:
            raise ConfigError(f"{label} override for {key} conflicts with existing value.") from None
    return expanded


# ---------------------------------------------------------------------- #
# Internal helpers                                                       #
# ---------------------------------------------------------------------- #


def _set_or_merge(target: dict[str, Any], path: list[str], value: Any) -> None:
    if isinstance(value, dict):
        node = target
        for segment in path:
            node = node.setdefault(segment, {})
            if not isinstance(node, dict):
                raise ConfigError(segment)
        _merge_into(node, value)
    else:
        assign_nested(target, path, value)


def _merge_into(base: dict[str, Any], overrides: Mapping[str, Any]) -> None:
    for key, value in overrides.items():
        current = base.get(key)
        if isinstance(value, MappingABC) and isinstance(current, dict):
            _merge_into(current, value)
        else:
            base[key] = deepcopy(value)


def _leaves(node: Mapping[str, Any], prefix: tuple[str, ...]) -> Iterator[tuple[tuple[str, ...], Any]]:
    for key, value in node.items():
        path = prefix + (str(key),)
        if isinstance(value, dict):
            yield from _leaves(value, path)
        else:
            yield path, value


__all__ = [
    "ENV_PREFIX",
    "assign_nested",
    "env_to_overrides",
    "expand_dotted",
    "flatten_for_env",
    "resolve_with_precedence",
]
