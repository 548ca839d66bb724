"""Disk space of the directories that hold snaps."""

from __future__ import annotations

import os
import subprocess

from snapinfer.types import DirStats

SNAP_STORAGE_PATH = "/var/lib/snapd/snaps"

_DIRECTORIES = (SNAP_STORAGE_PATH,)
_UINT64_MAX = 2**64 - 1


def _parse_uint64(text: str) -> int:
    if not text.isascii() or not text.isdigit():
        raise ValueError(f"invalid syntax: {text!r}")
    value = int(text)
    if value > _UINT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def host_df(*args: str) -> str:
    """Run ``df`` in POSIX mode with byte-sized blocks for the given paths."""
    command = ["df", "--portability", "--block-size=1", *args]
    env = {**os.environ, "LC_ALL": "POSIX"}
    try:
        result = subprocess.run(command, env=env, capture_output=True, text=True, check=True)
    except (OSError, subprocess.CalledProcessError) as exc:
        raise OSError(f"df command failed: {exc}") from exc
    return result.stdout


def parse_df(df_data: str) -> list[DirStats]:
    """Parse the output of ``df --portability --block-size=1``, header included."""
    stats: list[DirStats] = []
    for line in df_data.split("\n")[1:]:
        line = line.strip()
        if not line:
            continue
        fields = line.split()
        if len(fields) != 6:
            raise ValueError("not 6 columns")
        try:
            total = _parse_uint64(fields[1])
        except ValueError as exc:
            raise ValueError(f"error parsing 'total blocks' field: {exc}") from exc
        try:
            avail = _parse_uint64(fields[3])
        except ValueError as exc:
            raise ValueError(f"error parsing 'available blocks' field: {exc}") from exc
        stats.append(DirStats(total=total, avail=avail))
    return stats


def stat_fs(path: str | os.PathLike[str]) -> DirStats:
    """Return total and available bytes of the filesystem holding a path."""
    try:
        result = os.statvfs(path)
    except OSError as exc:
        raise OSError(f"statfs failed: {exc}") from exc
    return DirStats(
        total=result.f_blocks * result.f_frsize,
        avail=result.f_bavail * result.f_frsize,
    )


def info() -> dict[str, DirStats]:
    """Disk statistics of the snap storage directory on this host."""
    stats: dict[str, DirStats] = {}
    for directory in _DIRECTORIES:
        try:
            stats[directory] = stat_fs(directory)
        except OSError as exc:
            raise OSError(f"error getting directory info: {exc}") from exc
    return stats


def info_from_raw_data(df_data: str) -> dict[str, DirStats]:
    """Disk statistics of the snap storage directory taken from ``df`` output."""
    try:
        dir_stats = parse_df(df_data)
    except ValueError as exc:
        raise ValueError(f"error parsing df: {exc}") from exc

    if len(dir_stats) != len(_DIRECTORIES):
        raise ValueError("df did not return info for all dirs")

    return dict(zip(_DIRECTORIES, dir_stats))