"""PCI devices reported by lspci, with names and vendor specific properties."""

from __future__ import annotations

import gzip
import os
import re
import subprocess
import sys
from collections.abc import Iterable
from dataclasses import dataclass, field

from snapinfer.hardware_info import vendors
from snapinfer.types import PciDevice, PciFriendlyNames

PCI_VENDOR_AMD = 0x1002
PCI_VENDOR_NVIDIA = 0x10DE
PCI_VENDOR_INTEL = 0x8086

DEFAULT_PCI_IDS_PATHS = (
    "/usr/share/hwdata/pci.ids",
    "/usr/share/misc/pci.ids",
    "/usr/share/pci.ids",
    "/usr/share/hwdata/pci.ids.gz",
    "/usr/share/misc/pci.ids.gz",
)

_HEX = re.compile(r"[0-9A-Fa-f]+")
_cached_database: PciDatabase | None = None


class VendorNotSupportedError(Exception):
    """Raised for devices of vendors without additional property support."""


@dataclass
class PciSubsystem:
    """A subsystem entry of a product in the PCI ID database."""

    vendor_id: str
    device_id: str
    name: str


@dataclass
class PciProduct:
    """A product (device) entry in the PCI ID database."""

    id: str
    name: str
    subsystems: list[PciSubsystem] = field(default_factory=list)


@dataclass
class PciVendor:
    """A vendor entry in the PCI ID database."""

    id: str
    name: str
    products: dict[str, PciProduct] = field(default_factory=dict)


@dataclass
class PciDatabase:
    """Vendors and products read from a pci.ids file."""

    vendors: dict[str, PciVendor] = field(default_factory=dict)

    @classmethod
    def parse(cls, text: str) -> PciDatabase:
        """Parse the contents of a pci.ids file; the device class section is skipped."""
        database = cls()
        vendor: PciVendor | None = None
        product: PciProduct | None = None
        for line in text.splitlines():
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            if line.startswith("\t\t"):
                if product is None:
                    continue
                ids, _, name = line.strip().partition("  ")
                sub_ids = ids.split()
                if len(sub_ids) != 2:
                    continue
                product.subsystems.append(
                    PciSubsystem(sub_ids[0].lower(), sub_ids[1].lower(), name.strip())
                )
            elif line.startswith("\t"):
                if vendor is None:
                    product = None
                    continue
                product_id, _, name = line.strip().partition(" ")
                product = PciProduct(product_id.lower(), name.strip())
                vendor.products[product.id] = product
            elif line.startswith("C "):
                vendor = None
                product = None
            else:
                vendor_id, _, name = line.partition(" ")
                vendor = PciVendor(vendor_id.lower(), name.strip())
                database.vendors[vendor.id] = vendor
                product = None
        return database

    @classmethod
    def load(cls, paths: Iterable[str | os.PathLike[str]] | None = None) -> PciDatabase:
        """Load the first pci.ids file found among the paths (gzip if it ends in .gz)."""
        candidates = list(DEFAULT_PCI_IDS_PATHS if paths is None else paths)
        for path in candidates:
            if not os.path.isfile(path):
                continue
            if os.fspath(path).endswith(".gz"):
                with gzip.open(path, "rt", encoding="utf-8", errors="replace") as handle:
                    return cls.parse(handle.read())
            with open(path, encoding="utf-8", errors="replace") as handle:
                return cls.parse(handle.read())
        searched = ", ".join(os.fspath(path) for path in candidates)
        raise FileNotFoundError(f"no pci.ids database found in: {searched}")


def _default_database() -> PciDatabase:
    global _cached_database
    if _cached_database is None:
        try:
            _cached_database = PciDatabase.load(DEFAULT_PCI_IDS_PATHS)
        except (OSError, ValueError) as exc:
            raise OSError(f"error opening pci database: {exc}") from exc
    return _cached_database


def _parse_hex_uint(text: str, bits: int) -> int | None:
    if not _HEX.fullmatch(text):
        return None
    value = int(text, 16)
    return value if value < 1 << bits else None


def friendly_names(device: PciDevice, database: PciDatabase | None = None) -> PciFriendlyNames:
    """Look up the human-readable names of a device's numeric PCI ids."""
    if database is None:
        database = _default_database()

    names = PciFriendlyNames()
    vendor = database.vendors.get(f"{device.vendor_id:04x}")
    if vendor is not None:
        names.vendor_name = vendor.name
        product = vendor.products.get(f"{device.device_id:04x}")
        if product is not None:
            names.device_name = product.name
            if device.subdevice_id is not None:
                subdevice = f"{device.subdevice_id:04x}"
                for subsystem in product.subsystems:
                    if subsystem.device_id == subdevice:
                        names.subdevice_name = subsystem.name

    if device.subvendor_id is not None and device.subdevice_id is not None:
        subvendor = database.vendors.get(f"{device.subvendor_id:04x}")
        if subvendor is not None:
            names.subvendor_name = subvendor.name
    return names


def _parse_section(section: str) -> PciDevice:
    device = PciDevice()
    for line in section.split("\n"):
        key, _, value = line.partition(":\t")
        if key == "Slot":
            device.slot = value
            parts = value.split(":")
            if len(parts) != 3:
                raise ValueError(f"unexpected format for pci slot: {value}")
            bus = _parse_hex_uint(parts[1], 8)
            if bus is None:
                raise ValueError(f"cannot parse pci bus number: {parts[1]}")
            device.bus_number = bus
        elif key == "Class":
            if (parsed := _parse_hex_uint(value, 16)) is not None:
                device.device_class = parsed
        elif key == "Vendor":
            if (parsed := _parse_hex_uint(value, 16)) is not None:
                device.vendor_id = parsed
        elif key == "Device":
            if (parsed := _parse_hex_uint(value, 16)) is not None:
                device.device_id = parsed
        elif key == "SVendor":
            if (parsed := _parse_hex_uint(value, 16)) is not None:
                device.subvendor_id = parsed
        elif key == "SDevice":
            if (parsed := _parse_hex_uint(value, 16)) is not None:
                device.subdevice_id = parsed
        elif key == "ProgIf":
            if (parsed := _parse_hex_uint(value, 8)) is not None:
                device.programming_interface = parsed
    return device


def parse_lspci(input_string: str, include_friendly_names: bool) -> list[PciDevice]:
    """Parse the output of ``lspci -vmmnD``."""
    devices: list[PciDevice] = []
    for section in input_string.split("\n\n"):
        if not section:
            continue
        device = _parse_section(section)
        if include_friendly_names:
            try:
                device.friendly_names = friendly_names(device)
            except OSError as exc:
                print("Error looking up friendly name:", exc, file=sys.stderr)
        devices.append(device)
    return devices


def devices_from_raw_data(lspci_data: str, friendly_names: bool) -> list[PciDevice]:
    """PCI devices from captured ``lspci -vmmnD`` output."""
    try:
        return parse_lspci(lspci_data, friendly_names)
    except ValueError as exc:
        raise ValueError(f"error parsing lspci data: {exc}") from exc


def devices(friendly_names: bool) -> list[PciDevice]:
    """PCI devices of this host, with vendor specific properties where available."""
    try:
        result = subprocess.run(
            ["lspci", "-vmmnD"], capture_output=True, text=True, check=True
        )
    except (OSError, subprocess.CalledProcessError) as exc:
        raise RuntimeError(f"error getting host lspci data: {exc}") from exc
    found = devices_from_raw_data(result.stdout, friendly_names)
    return add_additional_properties(found)


def device_additional_properties(device: PciDevice) -> dict[str, str] | None:
    """Vendor specific properties of a device."""
    lookups = {
        PCI_VENDOR_AMD: ("AMD", vendors.amd_additional_properties),
        PCI_VENDOR_NVIDIA: ("NVIDIA", vendors.nvidia_additional_properties),
        PCI_VENDOR_INTEL: ("Intel", vendors.intel_additional_properties),
    }
    if device.vendor_id not in lookups:
        raise VendorNotSupportedError("vendor not supported")
    label, lookup = lookups[device.vendor_id]
    try:
        return lookup(device)
    except RuntimeError as exc:
        raise RuntimeError(f"{label}: {exc}") from exc


def add_additional_properties(devices: list[PciDevice]) -> list[PciDevice]:
    """Fill in the vendor specific properties of each device; failures go to stderr."""
    for device in devices:
        properties = None
        try:
            properties = device_additional_properties(device)
        except VendorNotSupportedError:
            pass
        except RuntimeError as exc:
            print(
                f"Error getting additional properties for pci device: {exc}",
                file=sys.stderr,
            )
        device.additional_properties = properties
    return devices