"""
Utilities for building output file names and paths.
"""

import os
import sys
from pathlib import Path
from typing import Optional, Tuple

from pathvalidate import sanitize_filename

ELLIPSES = "..."

_POSIX_REPLACEMENTS = {
    "\n": " ",
    "/": " ",
    "|": "-",
    ": ": "：",
    ":": "：",
    "'": "’",
}
_WINDOWS_REPLACEMENTS = {
    '"': " ",
    "?": " ",
    "*": " ",
    "\\": " ",
    "<": " ",
    ">": " ",
}


def limit_length(name: str, length: int) -> str:
    """Truncates ``name`` to ``length`` characters, marking the cut with '...'."""
    if length == 0 or len(name) <= length:
        return name
    return name[: max(length - len(ELLIPSES), 0)] + ELLIPSES


def file_name(name: str, ext: str = "", length: int = 0) -> str:
    """Converts an item title into a valid file name, optionally with extension."""
    replacements = _WINDOWS_REPLACEMENTS if sys.platform == "win32" else _POSIX_REPLACEMENTS
    for old, new in replacements.items():
        name = name.replace(old, new)
    name = sanitize_filename(name, platform="auto") or "download"
    name = limit_length(name, length)
    if not ext:
        return name
    return f"{name}.{ext}"


def file_path(
    name: str, ext: str, output_path: str = "", length: int = 0, escape: bool = False
) -> Path:
    """
    Builds the full path of an output file inside ``output_path``.

    Raises:
        FileNotFoundError: If ``output_path`` is set but does not exist.
    """
    if output_path and not os.path.isdir(output_path):
        raise FileNotFoundError(f"Invalid output path: {output_path}")
    name = file_name(name, ext, length) if escape else f"{name}.{ext}"
    return Path(output_path or ".") / name


def file_size(path: Path) -> Tuple[int, bool]:
    """Returns ``(size, exists)`` for ``path``; other stat errors propagate."""
    try:
        return path.stat().st_size, True
    except FileNotFoundError:
        return 0, False


def temp_path(path: Path, suffix: str = ".download") -> Path:
    """In-progress name of ``path``; nothing is exposed under the final name early."""
    return path.with_name(path.name + suffix)


def name_and_ext_from_url(path: str) -> Tuple[str, Optional[str]]:
    """
    Splits the last path component of a URL path into name and extension.

    ``/drawer/15294/1f5a8780.jpg`` -> ``('1f5a8780', 'jpg')``;
    no extension gives ``(name, None)``.
    """
    last = path.rstrip("/").rsplit("/", 1)[-1]
    if "." in last:
        name, ext = last.split(".", 1)
        return name, ext.split(".")[0]
    return last, None
