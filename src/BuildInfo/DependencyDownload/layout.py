"""Local placement rules for downloaded dependencies.

A dependency lands at ``<target directory>/<relative path>``.  With flat
placement only the last segment of the remote relative path is kept, so every
file lands directly under the target directory; hierarchical placement keeps
the full relative path.  Package managers consuming the resulting tree depend on
this rule, so it is kept free of I/O and engine state.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import List, Union

__all__ = ["flatten_relative_path", "resolve_target_path"]


def flatten_relative_path(relative_path: str, flat: bool) -> str:
    """Return the portion of ``relative_path`` that is placed under the target directory.

    Examples:
        >>> flatten_relative_path("a/b/c.txt", True)
        'c.txt'
        >>> flatten_relative_path("a/b/c.txt", False)
        'a/b/c.txt'
    """

    normalized = relative_path.replace("\\", "/")
    if flat and "/" in normalized:
        return normalized.rsplit("/", 1)[1]
    return normalized


def _confined_parts(relative_path: str) -> List[str]:
    # ".." never climbs above the target directory; absolute inputs are treated as relative.
    parts: List[str] = []
    for part in relative_path.split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)
    return parts


def resolve_target_path(
    target_dir: Union[str, Path],
    relative_path: str,
    *,
    flat: bool = False,
) -> Path:
    """Map ``(target_dir, relative_path)`` to the local download path.

    Args:
        target_dir: Directory the dependency is placed under.
        relative_path: Path of the artifact inside its remote repository.
        flat: Keep only the final segment of ``relative_path`` when True.

    Returns:
        Normalised path beneath ``target_dir``.

    Examples:
        >>> resolve_target_path("out", "a/b/c.txt", flat=True).as_posix()
        'out/c.txt'
        >>> resolve_target_path("out", "a//b/../../../c.txt").as_posix()
        'out/c.txt'
    """

    base = Path(os.path.normpath(os.fspath(target_dir) or "."))
    placed = flatten_relative_path(relative_path, flat)
    return base.joinpath(*_confined_parts(placed))
