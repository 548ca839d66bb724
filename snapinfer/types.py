"""Hardware description records and their JSON representation."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any

_HEX_DIGITS = re.compile(r"[+-]?[0-9A-Fa-f]+")
_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1


def parse_hex(value: Any) -> int:
    """Parse a hex value such as ``"0x10de"`` or ``"10DE"``; empty means 0."""
    if value is None:
        return 0
    if isinstance(value, bool):
        raise ValueError(f"failed to parse hex value {value!r}")
    text = str(value).strip('"')
    if not text:
        return 0
    digits = text.removeprefix("0x")
    if not _HEX_DIGITS.fullmatch(digits):
        raise ValueError(f"failed to parse hex value {text}")
    result = int(digits, 16)
    if not _INT64_MIN <= result <= _INT64_MAX:
        raise ValueError(f"failed to parse hex value {text}: value out of range")
    return result


def format_hex(value: int) -> str:
    """Format an integer as upper-case hex with a ``0x`` prefix."""
    return f"0x{value:X}"


def _json_int(value: Any, name: str) -> int:
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"field {name!r} must be an integer, got {value!r}")
    return value


def _json_str(value: Any, name: str) -> str:
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"field {name!r} must be a string, got {value!r}")
    return value


def _json_str_list(value: Any, name: str) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"field {name!r} must be a list, got {value!r}")
    return [_json_str(item, name) for item in value]


@dataclass
class CpuInfo:
    """A distinct CPU model found on the host."""

    architecture: str = ""
    # amd64
    manufacturer_id: str = ""
    flags: list[str] = field(default_factory=list)
    # arm64
    implementer_id: int = 0
    part_number: int = 0
    features: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"architecture": self.architecture}
        if self.manufacturer_id:
            result["manufacturer-id"] = self.manufacturer_id
        if self.flags:
            result["flags"] = list(self.flags)
        if self.implementer_id:
            result["implementer-id"] = format_hex(self.implementer_id)
        if self.part_number:
            result["part-number"] = format_hex(self.part_number)
        if self.features:
            result["features"] = list(self.features)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CpuInfo:
        return cls(
            architecture=_json_str(data.get("architecture"), "architecture"),
            manufacturer_id=_json_str(data.get("manufacturer-id"), "manufacturer-id"),
            flags=_json_str_list(data.get("flags"), "flags"),
            implementer_id=parse_hex(data.get("implementer-id")),
            part_number=parse_hex(data.get("part-number")),
            features=_json_str_list(data.get("features"), "features"),
        )


@dataclass
class DirStats:
    """Total and available bytes of a directory's filesystem."""

    total: int = 0
    avail: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"total": self.total, "avail": self.avail}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DirStats:
        return cls(
            total=_json_int(data.get("total"), "total"),
            avail=_json_int(data.get("avail"), "avail"),
        )


@dataclass
class MemoryInfo:
    """Total RAM and swap in bytes."""

    total_ram: int = 0
    total_swap: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"total-ram": self.total_ram, "total-swap": self.total_swap}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MemoryInfo:
        return cls(
            total_ram=_json_int(data.get("total-ram"), "total-ram"),
            total_swap=_json_int(data.get("total-swap"), "total-swap"),
        )


@dataclass
class PciFriendlyNames:
    """Human-readable names of a PCI device from the PCI ID database."""

    vendor_name: str | None = None
    device_name: str | None = None
    subvendor_name: str | None = None
    subdevice_name: str | None = None


_NAME_KEYS = (
    ("vendor_name", "vendor-name"),
    ("device_name", "device-name"),
    ("subvendor_name", "subvendor-name"),
    ("subdevice_name", "subdevice-name"),
)


def _optional_hex(data: dict[str, Any], key: str) -> int | None:
    if data.get(key) is None:
        return None
    return parse_hex(data[key])


@dataclass
class PciDevice:
    """A PCI device as reported by lspci."""

    slot: str = ""
    bus_number: int = 0
    device_class: int = 0
    vendor_id: int = 0
    device_id: int = 0
    score: int = 0
    programming_interface: int | None = None
    subvendor_id: int | None = None
    subdevice_id: int | None = None
    friendly_names: PciFriendlyNames = field(default_factory=PciFriendlyNames)
    additional_properties: dict[str, str] | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.score:
            result["score"] = self.score
        result["slot"] = self.slot
        result["bus-number"] = format_hex(self.bus_number)
        result["device-class"] = format_hex(self.device_class)
        if self.programming_interface is not None:
            result["programming-interface"] = self.programming_interface
        result["vendor-id"] = format_hex(self.vendor_id)
        result["device-id"] = format_hex(self.device_id)
        if self.subvendor_id is not None:
            result["subvendor-id"] = format_hex(self.subvendor_id)
        if self.subdevice_id is not None:
            result["subdevice-id"] = format_hex(self.subdevice_id)
        for attribute, key in _NAME_KEYS:
            name = getattr(self.friendly_names, attribute)
            if name is not None:
                result[key] = name
        if self.additional_properties:
            result["additional-properties"] = dict(sorted(self.additional_properties.items()))
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PciDevice:
        prog_if = data.get("programming-interface")
        if prog_if is not None:
            prog_if = _json_int(prog_if, "programming-interface")
            if not 0 <= prog_if <= 0xFF:
                raise ValueError(f"programming-interface out of range: {prog_if}")
        names = PciFriendlyNames(
            **{
                attribute: (None if data.get(key) is None else _json_str(data[key], key))
                for attribute, key in _NAME_KEYS
            }
        )
        props = data.get("additional-properties")
        if props is not None:
            if not isinstance(props, dict):
                raise ValueError("field 'additional-properties' must be an object")
            props = {str(k): _json_str(v, k) for k, v in props.items()}
        return cls(
            slot=_json_str(data.get("slot"), "slot"),
            bus_number=parse_hex(data.get("bus-number")),
            device_class=parse_hex(data.get("device-class")),
            vendor_id=parse_hex(data.get("vendor-id")),
            device_id=parse_hex(data.get("device-id")),
            score=_json_int(data.get("score"), "score"),
            programming_interface=prog_if,
            subvendor_id=_optional_hex(data, "subvendor-id"),
            subdevice_id=_optional_hex(data, "subdevice-id"),
            friendly_names=names,
            additional_properties=props,
        )


@dataclass
class HwInfo:
    """Everything known about the host machine's hardware."""

    cpus: list[CpuInfo] = field(default_factory=list)
    memory: MemoryInfo = field(default_factory=MemoryInfo)
    disk: dict[str, DirStats] = field(default_factory=dict)
    pci_devices: list[PciDevice] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        if self.cpus:
            result["cpus"] = [cpu.to_dict() for cpu in self.cpus]
        result["memory"] = self.memory.to_dict()
        if self.disk:
            result["disk"] = {path: stats.to_dict() for path, stats in sorted(self.disk.items())}
        if self.pci_devices:
            result["pci"] = [device.to_dict() for device in self.pci_devices]
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HwInfo:
        return cls(
            cpus=[CpuInfo.from_dict(item) for item in data.get("cpus") or []],
            memory=MemoryInfo.from_dict(data.get("memory") or {}),
            disk={path: DirStats.from_dict(stats) for path, stats in (data.get("disk") or {}).items()},
            pci_devices=[PciDevice.from_dict(item) for item in data.get("pci") or []],
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), separators=(",", ":"))

    @classmethod
    def from_json(cls, text: str | bytes) -> HwInfo:
        data = json.loads(text)
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ValueError("hardware info JSON must be an object")
        return cls.from_dict(data)


@dataclass
class ClinfoDevice:
    """One OpenCL device as reported by ``clinfo --json``."""

    name: str = ""
    vendor: str = ""
    vendor_id: int = 0
    version: str = ""
    pci_bus_info: str = ""
    global_mem_size: int = 0
    max_mem_alloc_size: int = 0
    host_unified_memory: bool = False


def _clinfo_device_from_dict(data: dict[str, Any]) -> ClinfoDevice:
    unified = data.get("CL_DEVICE_HOST_UNIFIED_MEMORY", False)
    if not isinstance(unified, bool):
        raise ValueError("CL_DEVICE_HOST_UNIFIED_MEMORY must be a boolean")
    return ClinfoDevice(
        name=_json_str(data.get("CL_DEVICE_NAME"), "CL_DEVICE_NAME"),
        vendor=_json_str(data.get("CL_DEVICE_VENDOR"), "CL_DEVICE_VENDOR"),
        vendor_id=_json_int(data.get("CL_DEVICE_VENDOR_ID"), "CL_DEVICE_VENDOR_ID"),
        version=_json_str(data.get("CL_DEVICE_VERSION"), "CL_DEVICE_VERSION"),
        pci_bus_info=_json_str(data.get("CL_DEVICE_PCI_BUS_INFO_KHR"), "CL_DEVICE_PCI_BUS_INFO_KHR"),
        global_mem_size=_json_int(data.get("CL_DEVICE_GLOBAL_MEM_SIZE"), "CL_DEVICE_GLOBAL_MEM_SIZE"),
        max_mem_alloc_size=_json_int(
            data.get("CL_DEVICE_MAX_MEM_ALLOC_SIZE"), "CL_DEVICE_MAX_MEM_ALLOC_SIZE"
        ),
        host_unified_memory=unified,
    )


@dataclass
class Clinfo:
    """Parsed ``clinfo --json`` output.

    Each entry of ``devices`` holds the online devices of one entry of the
    ``devices`` array in the JSON document.
    """

    devices: list[list[ClinfoDevice]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Clinfo:
        entries = data.get("devices") or []
        if not isinstance(entries, list):
            raise ValueError("clinfo 'devices' must be a list")
        return cls(
            devices=[
                [_clinfo_device_from_dict(device) for device in (entry or {}).get("online") or []]
                for entry in entries
            ]
        )