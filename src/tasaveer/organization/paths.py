"""Directory keys for files in source and staging trees.

The bulk-copy step nests the copied tree one level deeper under the staging
directory: copying ``/photos/trip`` into ``/archive/.stage`` produces
``/archive/.stage/trip/...``. Keys computed for staged files therefore drop that
first component so they line up with keys computed against the original source.
"""

from __future__ import annotations

import os
from pathlib import PurePath

ROOT_KEY = "Root"


def _pure(value: str | os.PathLike[str]) -> PurePath:
    return value if isinstance(value, PurePath) else PurePath(value)


def _parent_parts(root: str | os.PathLike[str], path: str | os.PathLike[str]) -> tuple[str, ...]:
    parent = _pure(path).parent
    try:
        relative = parent.relative_to(_pure(root))
    except ValueError:
        relative = type(parent)(*[part for part in parent.parts if part != parent.anchor])
    return tuple(part for part in relative.parts if part not in ("", "."))


def relative_to(root: str | os.PathLike[str], path: str | os.PathLike[str]) -> str:
    """Return the directory of ``path`` relative to ``root`` as a ``/``-joined key.

    Files directly inside ``root`` map to ``"Root"``.

    Examples:
        >>> relative_to("/a/b", "/a/b/2023/x.jpg")
        '2023'
        >>> relative_to("/a/b", "/a/b/x.jpg")
        'Root'
    """
    parts = _parent_parts(root, path)
    return "/".join(parts) if parts else ROOT_KEY


def staged_relative(staging_root: str | os.PathLike[str], path: str | os.PathLike[str]) -> str:
    """Return the source-equivalent directory key of a file inside the staging tree.

    Examples:
        >>> staged_relative("/tmp/stage", "/tmp/stage/b/2023/x.jpg")
        '2023'
        >>> staged_relative("/tmp/stage", "/tmp/stage/b/x.jpg")
        'Root'
    """
    parts = _parent_parts(staging_root, path)
    if len(parts) < 2:
        return ROOT_KEY
    return "/".join(parts[1:])


def parent_folder_name(path: str | os.PathLike[str]) -> str:
    """Return the name of the directory directly containing ``path``."""
    return _pure(path).parent.name


__all__ = ["ROOT_KEY", "parent_folder_name", "relative_to", "staged_relative"]
