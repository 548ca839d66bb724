"""Collect a full description of the host hardware."""

from __future__ import annotations

import json
from pathlib import Path

from snapinfer.hardware_info import cpu, disk, memory, pci
from snapinfer.types import HwInfo
from snapinfer.utils import is_root_user


def get(friendly_names: bool) -> HwInfo:
    """Describe the hardware of this host.

    Root is required so that vendor tools can report video memory.
    """
    if not is_root_user():
        raise PermissionError("permission denied, try again with sudo")

    try:
        memory_info = memory.info()
    except (OSError, ValueError) as exc:
        raise RuntimeError(f"error getting memory info: {exc}") from exc

    try:
        cpus = cpu.info()
    except (OSError, ValueError) as exc:
        raise RuntimeError(f"error getting cpu info: {exc}") from exc

    try:
        disk_info = disk.info()
    except (OSError, ValueError) as exc:
        raise RuntimeError(f"error getting disk info: {exc}") from exc

    try:
        pci_devices = pci.devices(friendly_names)
    except (OSError, RuntimeError, ValueError) as exc:
        raise RuntimeError(f"error getting pci devices: {exc}") from exc

    return HwInfo(cpus=cpus, memory=memory_info, disk=disk_info, pci_devices=pci_devices)


def get_from_raw_data(device: str, friendly_names: bool, test_dir: str) -> HwInfo:
    """Describe a machine from captured command output.

    The files are read from ``<test_dir>/machines/<device>/``: ``meminfo.txt``,
    ``disk.txt``, ``uname-m.txt``, ``cpuinfo.txt`` and ``lspci.txt``. An
    optional ``additional-properties.json`` maps PCI slots to vendor specific
    properties, since vendor tools cannot be run for a captured machine.
    """
    machine_dir = Path(test_dir) / "machines" / device

    memory_info = memory.info_from_raw_data((machine_dir / "meminfo.txt").read_text())
    disk_info = disk.info_from_raw_data((machine_dir / "disk.txt").read_text())

    uname_machine = (machine_dir / "uname-m.txt").read_text()
    proc_cpuinfo = (machine_dir / "cpuinfo.txt").read_text()
    cpus = cpu.info_from_raw_data(proc_cpuinfo, uname_machine)

    pci_devices = pci.devices_from_raw_data((machine_dir / "lspci.txt").read_text(), friendly_names)

    try:
        props_text = (machine_dir / "additional-properties.json").read_text()
    except FileNotFoundError:
        props_text = None

    if props_text is not None:
        props = json.loads(props_text)
        if not isinstance(props, dict):
            raise ValueError("additional properties must be a JSON object")
        for pci_device in pci_devices:
            slot_props = props.get(pci_device.slot)
            if slot_props is None:
                continue
            if not isinstance(slot_props, dict):
                raise ValueError(f"additional properties of {pci_device.slot} must be an object")
            pci_device.additional_properties = {str(k): str(v) for k, v in slot_props.items()}

    return HwInfo(cpus=cpus, memory=memory_info, disk=disk_info, pci_devices=pci_devices)