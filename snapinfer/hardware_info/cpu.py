"""CPU detection from /proc/cpuinfo and the kernel machine name."""

from __future__ import annotations

import dataclasses
import itertools
import os
import re
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

from snapinfer.types import CpuInfo

AMD64 = "amd64"
ARM64 = "arm64"
ARMHF = "armhf"
I386 = "i386"
POWERPC = "powerpc"
PPC64 = "ppc64"
PPC64EL = "ppc64el"
RISCV64 = "riscv64"
S390X = "s390x"

_UNAME_TO_DEBIAN = {
    "aarch64": ARM64,
    "armv7l": ARMHF,
    "armv8l": ARM64,
    "i686": I386,
    "ppc": POWERPC,
    "ppc64": PPC64,
    "ppc64le": PPC64EL,
    "riscv64": RISCV64,
    "s390x": S390X,
    "x86_64": AMD64,
}

_SIGNED_DECIMAL = re.compile(r"[+-]?[0-9]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


@dataclass
class ProcCpuInfo:
    """One processor entry of /proc/cpuinfo."""

    processor: int = 0
    architecture: str = ""
    # amd64
    manufacturer_id: str = ""
    brand_string: str = ""
    flags: list[str] = field(default_factory=list)
    # arm64
    model_name: str | None = None
    bogo_mips: float = 0.0
    features: list[str] = field(default_factory=list)
    implementer_id: int = 0
    variant: int = 0
    part_number: int = 0
    revision: int = 0


def _parse_int64(text: str) -> int:
    if not _SIGNED_DECIMAL.fullmatch(text):
        raise ValueError(f"invalid syntax: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _parse_uint(text: str, base: int, bits: int) -> int:
    """Parse an unsigned integer; base 0 detects a 0x, 0o, 0b or 0 prefix."""
    if not text or not text.isascii() or text != text.strip() or text[0] in "+-":
        raise ValueError(f"invalid syntax: {text!r}")
    try:
        if base == 0:
            if len(text) > 1 and text[0] == "0" and text[1].isdigit():
                value = int(text[1:], 8)
            else:
                value = int(text, 0)
        else:
            if "_" in text:
                raise ValueError(text)
            value = int(text, base)
    except ValueError:
        raise ValueError(f"invalid syntax: {text!r}") from None
    if value >= 1 << bits:
        raise ValueError(f"value out of range: {text!r}")
    return value


def _key_values(cpuinfo_string: str) -> Iterator[tuple[str, str]]:
    for line in cpuinfo_string.split("\n"):
        if not line.strip():
            continue
        key, separator, value = line.partition(":")
        if not separator:
            raise ValueError(f"malformed /proc/cpuinfo line: {line!r}")
        yield key.strip(), value.strip()


def _current(cpus: list[ProcCpuInfo], key: str) -> ProcCpuInfo:
    if not cpus:
        raise ValueError(f"field {key!r} appears before any processor entry")
    return cpus[-1]


def debian_architecture(uname_arch: str) -> str:
    """Translate a kernel machine name such as ``x86_64`` to a Debian architecture."""
    uname_arch = uname_arch.strip()
    try:
        return _UNAME_TO_DEBIAN[uname_arch]
    except KeyError:
        raise ValueError(f"unsupported architecture: {uname_arch}") from None


def parse_proc_cpuinfo(cpuinfo_string: str, architecture: str) -> list[ProcCpuInfo]:
    """Parse /proc/cpuinfo text for the given Debian architecture."""
    if architecture == AMD64:
        return parse_proc_cpuinfo_amd64(cpuinfo_string)
    if architecture == ARM64:
        return parse_proc_cpuinfo_arm64(cpuinfo_string)
    raise ValueError(f"can't parse /proc/cpuinfo. unsupported architecture: {architecture}")


def parse_proc_cpuinfo_amd64(cpuinfo_string: str) -> list[ProcCpuInfo]:
    """Parse /proc/cpuinfo text as written by an amd64 kernel."""
    cpus: list[ProcCpuInfo] = []
    for key, value in _key_values(cpuinfo_string):
        if key == "processor":
            cpus.append(ProcCpuInfo(architecture=AMD64, processor=_parse_int64(value)))
        elif key == "vendor_id":
            _current(cpus, key).manufacturer_id = value
        elif key == "flags":
            _current(cpus, key).flags.extend(value.split(" "))
        elif key == "model name":
            _current(cpus, key).brand_string = value
    return cpus


def parse_proc_cpuinfo_arm64(cpuinfo_string: str) -> list[ProcCpuInfo]:
    """Parse /proc/cpuinfo text as written by an arm64 kernel."""
    cpus: list[ProcCpuInfo] = []
    for key, value in _key_values(cpuinfo_string):
        if key == "processor":
            cpus.append(ProcCpuInfo(architecture=ARM64, processor=_parse_int64(value)))
        elif key == "model name":
            _current(cpus, key).model_name = value.strip()
        elif key in ("BogoMIPS", "bogomips"):
            cpu = _current(cpus, key)
            try:
                cpu.bogo_mips = float(value)
            except ValueError:
                raise ValueError(f"invalid syntax: {value!r}") from None
        elif key == "Features":
            _current(cpus, key).features.extend(value.split(" "))
        elif key == "CPU implementer":
            _current(cpus, key).implementer_id = _parse_uint(value, 0, 8)
        elif key == "CPU architecture":
            _current(cpus, key).architecture = ARM64
        elif key == "CPU variant":
            _current(cpus, key).variant = _parse_uint(value, 0, 64)
        elif key == "CPU part":
            _current(cpus, key).part_number = _parse_uint(value, 0, 16)
        elif key == "CPU revision":
            _current(cpus, key).revision = _parse_uint(value, 10, 64)
    return cpus


def _cpu_info_from_proc(proc_cpu: ProcCpuInfo) -> CpuInfo:
    if proc_cpu.architecture == AMD64:
        return CpuInfo(
            architecture=proc_cpu.architecture,
            manufacturer_id=proc_cpu.manufacturer_id,
            flags=list(proc_cpu.flags),
        )
    if proc_cpu.architecture == ARM64:
        return CpuInfo(
            architecture=proc_cpu.architecture,
            implementer_id=proc_cpu.implementer_id,
            part_number=proc_cpu.part_number,
            features=list(proc_cpu.features),
        )
    raise ValueError(f"unsupported architecture: {proc_cpu.architecture}")


def unique_cpu_info(proc_cpus: Iterable[ProcCpuInfo]) -> list[CpuInfo]:
    """Collapse runs of identical processors (ignoring their index) into CPU models."""
    normalized = (dataclasses.replace(cpu, processor=0) for cpu in proc_cpus)
    try:
        return [_cpu_info_from_proc(cpu) for cpu, _ in itertools.groupby(normalized)]
    except ValueError as exc:
        raise ValueError(f"error converting cpu info: {exc}") from exc


def info_from_raw_data(proc_cpuinfo_data: str, uname: str) -> list[CpuInfo]:
    """Describe the CPUs given /proc/cpuinfo text and ``uname --machine`` output."""
    try:
        architecture = debian_architecture(uname)
    except ValueError:
        architecture = ""

    try:
        proc_cpus = parse_proc_cpuinfo(proc_cpuinfo_data, architecture)
    except ValueError as exc:
        raise ValueError(f"error parsing /proc/cpuinfo: {exc}") from exc

    try:
        return unique_cpu_info(proc_cpus)
    except ValueError as exc:
        raise ValueError(f"error filtering cpu info: {exc}") from exc


def info() -> list[CpuInfo]:
    """Describe the CPUs of the host."""
    try:
        with open("/proc/cpuinfo", encoding="utf-8") as handle:
            proc_cpuinfo = handle.read()
    except OSError as exc:
        raise OSError(f"failed to look up host /proc/cpuinfo: {exc}") from exc

    machine = os.uname().machine.strip()
    try:
        return info_from_raw_data(proc_cpuinfo, machine)
    except ValueError as exc:
        raise ValueError(f"error parsing cpu data: {exc}") from exc