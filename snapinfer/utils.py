"""Small formatting, parsing and system helpers."""

from __future__ import annotations

import dataclasses
import json
import os
import re
import sys
from typing import Any

_KIB = 1024
_MIB = _KIB * 1024
_GIB = _MIB * 1024
_TIB = _GIB * 1024
_UINT64_MASK = 2**64 - 1
_DECIMAL = re.compile(r"[0-9]+")


def _encode(value: Any) -> Any:
    to_dict = getattr(value, "to_dict", None)
    if callable(to_dict):
        return to_dict()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    raise TypeError(f"cannot encode {type(value).__name__}")


def fmt_pretty(value: Any) -> str:
    """Return indented JSON for logging; an empty string if it cannot be encoded."""
    try:
        return json.dumps(value, indent=2, default=_encode)
    except (TypeError, ValueError):
        return ""


def fmt_bytes(num_bytes: int) -> str:
    """Format a byte count with a binary unit."""
    if num_bytes > _TIB:
        return f"{num_bytes / _TIB:.1f}TiB"
    if num_bytes > _GIB:
        return f"{num_bytes / _GIB:.1f}GiB"
    if num_bytes > _MIB:
        return f"{num_bytes / _MIB:.1f}MiB"
    if num_bytes > _KIB:
        return f"{num_bytes / _KIB:.1f}KiB"
    return str(num_bytes)


def string_to_bytes(size_string: str) -> int:
    """Parse a size such as ``"4G"``, ``"256M"`` or ``"256"`` into bytes."""
    scaling = 1
    if size_string.endswith("G"):
        size_string = size_string[:-1]
        scaling = _GIB
    elif size_string.endswith("M"):
        size_string = size_string[:-1]
        scaling = _MIB

    if not _DECIMAL.fullmatch(size_string):
        raise ValueError(f"invalid size: {size_string!r}")
    size = int(size_string)
    if size > _UINT64_MASK:
        raise ValueError(f"size out of range: {size_string!r}")
    # Sizes are unsigned 64-bit values; scaling wraps like one.
    return (size * scaling) & _UINT64_MASK


def split_path_into_directories(path: str) -> list[str]:
    """Return the names of the components that make up a path."""
    parts: list[str] = []
    while True:
        head, _, name = path.rpartition("/")
        directory = head + "/" if _ else ""
        if name:
            parts.insert(0, name)
        if directory in ("", "/", "\\"):
            break
        path = directory.removesuffix(os.sep)
    return parts


def is_primitive(value: Any) -> bool:
    """Tell whether a value is a number, a boolean or a string."""
    return isinstance(value, (bool, int, float, complex, str))


def sub_directories(dir_path: str | os.PathLike[str]) -> list[str]:
    """Return the names of the directories directly inside a directory, sorted."""
    with os.scandir(dir_path) as entries:
        return sorted(entry.name for entry in entries if entry.is_dir(follow_symlinks=False))


def is_root_user() -> bool:
    """Tell whether the process runs with an effective user id of 0."""
    return os.geteuid() == 0


def is_terminal_output() -> bool:
    """Tell whether standard output is a terminal."""
    try:
        return os.isatty(sys.stdout.fileno())
    except (AttributeError, OSError, ValueError):
        return False