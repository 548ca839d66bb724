"""Memory totals from /proc/meminfo."""

from __future__ import annotations

import re

from snapinfer.types import MemoryInfo

_SIGNED_DECIMAL = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_UINT64_MASK = 2**64 - 1


def _parse_int64(text: str) -> int:
    if not _SIGNED_DECIMAL.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _wrap_int64(value: int) -> int:
    value &= _UINT64_MASK
    return value - 2**64 if value > _INT64_MAX else value


def proc_string_to_bytes(value: str) -> int:
    """Convert a /proc value such as ``"16384 kB"`` or ``"512"`` to bytes."""
    value = value.strip()
    if value.endswith("kB"):
        number = value.removesuffix("kB").strip()
        try:
            kilobytes = _parse_int64(number)
        except ValueError as exc:
            raise ValueError(f"error parsing kB value: {exc}") from exc
        return _wrap_int64(kilobytes * 1024)
    try:
        return _parse_int64(value)
    except ValueError as exc:
        raise ValueError(f"error parsing byte value: {exc}") from exc


def parse_proc_meminfo(meminfo_string: str) -> MemoryInfo:
    """Extract total RAM and swap from /proc/meminfo text."""
    memory = MemoryInfo()
    for line in meminfo_string.split("\n"):
        line = line.strip()
        if not line:
            continue
        key, separator, value = line.partition(":")
        if not separator:
            continue
        key = key.strip()
        value = value.strip()
        if key == "MemTotal":
            try:
                memory.total_ram = proc_string_to_bytes(value) & _UINT64_MASK
            except ValueError as exc:
                raise ValueError(f"error parsing MemTotal: {exc}") from exc
        elif key == "SwapTotal":
            try:
                memory.total_swap = proc_string_to_bytes(value) & _UINT64_MASK
            except ValueError as exc:
                raise ValueError(f"error parsing SwapTotal: {exc}") from exc
    return memory


def info_from_raw_data(proc_meminfo_data: str) -> MemoryInfo:
    """Memory totals from /proc/meminfo text."""
    try:
        return parse_proc_meminfo(proc_meminfo_data)
    except ValueError as exc:
        raise ValueError(f"failed to parse /proc/meminfo data: {exc}") from exc


def info() -> MemoryInfo:
    """Memory totals of this host."""
    try:
        with open("/proc/meminfo", encoding="utf-8") as handle:
            data = handle.read()
    except OSError as exc:
        raise OSError(f"failed to look up host /proc/meminfo: {exc}") from exc
    return info_from_raw_data(data)