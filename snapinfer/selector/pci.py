"""Matching required PCI devices against the PCI devices of the host."""

from __future__ import annotations

import dataclasses
import subprocess
from collections.abc import Callable, Sequence

from snapinfer.selector.requirements import (
    GPU_VRAM,
    PCI_DEVICE_EXTERNAL,
    PCI_DEVICE_TYPE,
    Device,
)
from snapinfer.types import PciDevice
from snapinfer.utils import string_to_bytes

ConnectionChecker = Callable[[str], bool]


def check_snap_connection(connection: str) -> bool:
    """Tell whether a plug of the current snap is connected, using ``snapctl is-connected``."""
    try:
        result = subprocess.run(
            ["snapctl", "is-connected", connection], capture_output=True, text=True
        )
    except OSError as exc:
        raise RuntimeError(f"snapctl is-connected {connection}: {exc}") from exc
    if result.returncode == 0:
        return True
    stderr = (result.stderr or "").strip()
    if result.returncode == 1 and not stderr:
        return False
    raise RuntimeError(
        f"snapctl is-connected {connection}: exit status {result.returncode}: {stderr}"
    )


def check_type(required_type: str, pci_device: PciDevice) -> bool:
    """Tell whether a device's class fits a device type such as gpu, npu or tpu."""
    device_class = pci_device.device_class
    if required_type == "gpu":
        # 00 01: legacy VGA devices, 03 xx: display controllers
        if device_class == 0x0001 or device_class & 0xFF00 == 0x0300:
            return True
    if required_type in ("npu", "tpu"):
        # 12 xx: processing accelerators, 0B 40: co-processors
        if device_class & 0xFF00 == 0x1200 or device_class == 0x0B40:
            return True
    return False


def has_additional_properties(device: Device) -> bool:
    """Tell whether a required device asks for vendor specific properties."""
    return device.vram is not None or device.compute_capability is not None


def check_vram(device: Device, pci_device: PciDevice) -> None:
    """Raise ValueError unless the host device has at least the required video memory."""
    required = string_to_bytes(device.vram or "")
    available_text = (pci_device.additional_properties or {}).get("vram")
    if available_text is None:
        raise ValueError("unable to detect vRAM")
    try:
        available = string_to_bytes(available_text)
    except ValueError as exc:
        raise ValueError(f"error parsing vRAM: {exc}") from exc
    if available < required:
        raise ValueError(f"not enough vRAM: {available}")


def check_properties(device: Device, pci_device: PciDevice) -> int:
    """Extra score for the vendor specific properties; ValueError if one is not met."""
    extra = 0
    if device.vram is not None:
        check_vram(device, pci_device)
        extra += GPU_VRAM
    return extra


def filter_pci_devices(
    pci_devices: Sequence[PciDevice], vendor_id: int | None, device_id: int | None
) -> list[PciDevice]:
    """Copies of the devices whose vendor id, and then device id, match the ones given."""
    found: list[PciDevice] = []
    for pci_device in pci_devices:
        include = True
        if vendor_id is not None:
            if vendor_id != pci_device.vendor_id:
                include = False
            elif device_id is not None and device_id != pci_device.device_id:
                # A device id is only unique within its vendor's namespace
                include = False
        if include:
            found.append(dataclasses.replace(pci_device))
    return found


def score_pci_device(
    manifest_device: Device,
    host_pci_device: PciDevice,
    connection_checker: ConnectionChecker | None = None,
) -> tuple[int, list[str]]:
    """Score one host device against a required device; the score is 0 if there are issues."""
    checker = connection_checker or check_snap_connection
    score = 0

    if manifest_device.type:
        if not check_type(manifest_device.type, host_pci_device):
            return 0, [
                f"device class 0x{host_pci_device.device_class:04x} "
                f"not of required type {manifest_device.type}"
            ]
        score += PCI_DEVICE_TYPE

    # Devices off bus 0 are discrete, and preferred over integrated ones
    if host_pci_device.bus_number > 0:
        score += PCI_DEVICE_EXTERNAL

    if has_additional_properties(manifest_device):
        try:
            score += check_properties(manifest_device, host_pci_device)
        except ValueError as exc:
            return 0, [str(exc)]

    for connection in manifest_device.snap_connections:
        try:
            connected = checker(connection)
        except (OSError, RuntimeError) as exc:
            return 0, [f'error checking snap connection "{connection}": {exc}']
        if not connected:
            return 0, [f'"{connection}" is not connected']

    return score, []


def score_pci_devices(
    manifest_device: Device,
    host_pci_devices: list[PciDevice],
    connection_checker: ConnectionChecker | None = None,
) -> tuple[list[PciDevice], list[str]]:
    """Set the score of each (already filtered) device and collect their issues."""
    issues: list[str] = []
    if not host_pci_devices:
        issues.append("device not found")
    for pci_device in host_pci_devices:
        score, device_issues = score_pci_device(manifest_device, pci_device, connection_checker)
        pci_device.score = score
        issues.extend(f"pci {pci_device.slot}: {issue}" for issue in device_issues)
    return host_pci_devices, issues


def match(
    manifest_device: Device,
    host_pci_devices: Sequence[PciDevice],
    connection_checker: ConnectionChecker | None = None,
) -> tuple[int, list[str]]:
    """Return the best score among matching host devices, or 0 and the reasons why none fit."""
    if not host_pci_devices:
        return 0, ["no pci devices on host system"]

    available = filter_pci_devices(
        host_pci_devices, manifest_device.vendor_id, manifest_device.device_id
    )
    scored, issues = score_pci_devices(manifest_device, available, connection_checker)
    best = max((device.score for device in scored), default=0)
    if best <= 0:
        return 0, issues
    return best, []