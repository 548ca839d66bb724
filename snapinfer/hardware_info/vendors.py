"""Vendor specific PCI device properties, read from sysfs and vendor tools."""

from __future__ import annotations

import contextlib
import json
import os
import signal
import subprocess
from collections.abc import Mapping

from snapinfer.types import Clinfo, PciDevice

SYSFS_PCI_DEVICES = "/sys/bus/pci/devices"
CLINFO_TIMEOUT = 10.0
NVIDIA_SMI_TIMEOUT = 30.0

_UINT64_MAX = 2**64 - 1
_UNIT_SCALES = {"KiB": 1024, "MiB": 1024**2, "GiB": 1024**3}


class _CommandError(RuntimeError):
    """A helper program failed; ``output`` holds what it wrote to stdout."""

    def __init__(self, message: str, output: bytes = b"") -> None:
        super().__init__(message)
        self.output = output


def _run_command(args: list[str], timeout: float, env: Mapping[str, str] | None = None) -> bytes:
    """Run a program in its own process group, killing the whole group on timeout."""
    try:
        process = subprocess.Popen(
            args,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            env=None if env is None else dict(env),
            start_new_session=True,
        )
    except OSError as exc:
        raise _CommandError(str(exc)) from exc

    try:
        output, _ = process.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        with contextlib.suppress(ProcessLookupError, PermissionError):
            os.killpg(process.pid, signal.SIGKILL)
        output, _ = process.communicate()
        raise _CommandError("signal: killed", output or b"") from None

    if process.returncode != 0:
        raise _CommandError(f"exit status {process.returncode}", output or b"")
    return output or b""


def _parse_uint64(text: str) -> int:
    if not text.isascii() or not text.isdigit():
        raise ValueError(f"invalid syntax: {text!r}")
    value = int(text)
    if value > _UINT64_MAX:
        raise ValueError(f"value out of range: {text!r}")
    return value


def is_display_device(pci_device: PciDevice) -> bool:
    """Tell whether a device is a legacy VGA device or a display controller."""
    return pci_device.device_class == 0x0001 or pci_device.device_class & 0xFF00 == 0x0300


def _gpu_failure(what: str, exc: BaseException) -> RuntimeError:
    return RuntimeError(f"error getting gpu properties: error looking up {what}: {exc}")


# AMD


def _amd_vram(slot: str) -> int:
    path = f"{SYSFS_PCI_DEVICES}/{slot}/mem_info_vram_total"
    with open(path, encoding="ascii") as handle:
        return _parse_uint64(handle.read().strip())


def amd_additional_properties(pci_device: PciDevice) -> dict[str, str] | None:
    """Properties of an AMD device; None for device classes that have none."""
    if not is_display_device(pci_device):
        return None
    try:
        vram = _amd_vram(pci_device.slot)
    except (OSError, ValueError) as exc:
        raise _gpu_failure("vRAM", exc) from exc
    return {"vram": str(vram)}


# Intel


def parse_clinfo_json(data: str | bytes) -> Clinfo:
    """Parse the output of ``clinfo --json``."""
    document = json.loads(data)
    if document is None:
        return Clinfo()
    if not isinstance(document, dict):
        raise ValueError("clinfo JSON must be an object")
    try:
        return Clinfo.from_dict(document)
    except (AttributeError, TypeError) as exc:
        raise ValueError(f"unexpected clinfo JSON structure: {exc}") from exc


def clinfo_vram(clinfo: Clinfo, slot: str) -> int | None:
    """Global memory size of the online OpenCL device on a PCI slot, if listed."""
    if not clinfo.devices:
        raise ValueError("clinfo: no devices found")
    online = clinfo.devices[0]
    if not online:
        raise ValueError("clinfo: no online devices found")
    vram = None
    for device in online:
        if slot in device.pci_bus_info:
            vram = device.global_mem_size
    return vram


def _intel_vram(slot: str) -> int | None:
    output = _run_command(["clinfo", "--json"], CLINFO_TIMEOUT)
    try:
        clinfo = parse_clinfo_json(output)
    except ValueError as exc:
        raise ValueError(f"failed to parse clinfo json: {exc}") from exc
    return clinfo_vram(clinfo, slot)


def intel_additional_properties(pci_device: PciDevice) -> dict[str, str] | None:
    """Properties of an Intel device; None for device classes that have none."""
    if not is_display_device(pci_device):
        return None
    try:
        vram = _intel_vram(pci_device.slot)
    except (RuntimeError, OSError, ValueError) as exc:
        raise _gpu_failure("vRAM", exc) from exc
    properties: dict[str, str] = {}
    if vram is not None:
        properties["vram"] = str(vram)
    return properties


# NVIDIA


def parse_nvidia_memory(output: str) -> int:
    """Convert nvidia-smi memory output such as ``"4096 MiB"`` to bytes."""
    value_text, separator, unit = output.partition(" ")
    value = _parse_uint64(value_text)
    if separator and unit in _UNIT_SCALES:
        value = (value * _UNIT_SCALES[unit]) & _UINT64_MAX
    return value


def _nvidia_smi(*args: str) -> str:
    env = {**os.environ, "LANG": "C"}
    try:
        output = _run_command(["nvidia-smi", *args], NVIDIA_SMI_TIMEOUT, env)
    except _CommandError as exc:
        if not exc.output:
            raise RuntimeError(f"error executing nvidia-smi: {exc}") from exc
        # nvidia-smi writes its error messages to stdout
        message = exc.output.strip().decode("utf-8", errors="replace")
        raise RuntimeError(f"error executing nvidia-smi: {exc}: {message}") from exc
    return output.strip().decode("utf-8", errors="replace")


def nvidia_additional_properties(pci_device: PciDevice) -> dict[str, str] | None:
    """Properties of an NVIDIA device; None for device classes that have none."""
    if not is_display_device(pci_device):
        return None
    slot_arg = f"--id={pci_device.slot}"
    try:
        memory = _nvidia_smi(slot_arg, "--query-gpu=memory.total", "--format=csv,noheader")
        vram = parse_nvidia_memory(memory)
    except (RuntimeError, ValueError) as exc:
        raise _gpu_failure("vRAM", exc) from exc
    try:
        compute_capability = _nvidia_smi(
            slot_arg, "--query-gpu=compute_cap", "--format=csv,noheader"
        )
    except RuntimeError as exc:
        raise _gpu_failure("compute capability", exc) from exc
    return {"vram": str(vram), "compute-capability": compute_capability}