"""Engine manifests, their hardware requirements and the weights used to score them."""

from __future__ import annotations

from dataclasses import dataclass, field

# Scoring weights
TPU = 1000
TPU_VENDOR = 200

PCI_DEVICE = 100
PCI_DEVICE_EXTERNAL = 50
PCI_DEVICE_ID = 30
PCI_VENDOR_ID = 20
PCI_DEVICE_TYPE = 10
GPU_VRAM = 10
GPU_COMPUTE_CAPABILITY = 10

CPU_DEVICE = 10
CPU_MODEL = 8
CPU_VENDOR = 6
CPU_FLAG = 1


@dataclass
class Device:
    """A device an engine requires; unset fields are not checked."""

    type: str = ""
    bus: str = ""
    # cpu
    architecture: str | None = None
    manufacturer_id: str | None = None
    flags: list[str] = field(default_factory=list)
    implementer_id: int | None = None
    part_number: int | None = None
    features: list[str] = field(default_factory=list)
    # pci
    vendor_id: int | None = None
    device_id: int | None = None
    vram: str | None = None
    compute_capability: str | None = None
    snap_connections: list[str] = field(default_factory=list)
    compatibility_issues: list[str] = field(default_factory=list)


@dataclass
class DeviceSet:
    """Devices that must all be present, and devices of which one must be present."""

    all_of: list[Device] = field(default_factory=list)
    any_of: list[Device] = field(default_factory=list)


@dataclass
class Manifest:
    """An engine and the host resources it needs."""

    name: str = ""
    grade: str = ""
    memory: str | None = None
    disk_space: str | None = None
    devices: DeviceSet = field(default_factory=DeviceSet)


@dataclass
class ScoredManifest:
    """An engine manifest together with how well the host suits it."""

    manifest: Manifest
    score: int = 0
    compatible: bool = False
    compatibility_issues: list[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.manifest.name

    @property
    def grade(self) -> str:
        return self.manifest.grade