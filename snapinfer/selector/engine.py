"""Scoring engines against the host hardware and choosing the best one."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from snapinfer.hardware_info.disk import SNAP_STORAGE_PATH
from snapinfer.selector import cpu, pci
from snapinfer.selector.pci import ConnectionChecker
from snapinfer.selector.requirements import Device, Manifest, ScoredManifest
from snapinfer.types import HwInfo
from snapinfer.utils import string_to_bytes


class NoCompatibleEngineError(LookupError):
    """Raised when no stable engine suits the host."""

    def __init__(self, message: str = "no compatible engines found") -> None:
        super().__init__(message)

    def __str__(self) -> str:
        return str(self.args[0])


def top_engine(scored_engines: Iterable[ScoredManifest]) -> ScoredManifest:
    """Return the stable engine with the highest positive score."""
    compatible = [e for e in scored_engines if e.score > 0 and e.grade == "stable"]
    if not compatible:
        raise NoCompatibleEngineError()
    return max(compatible, key=lambda engine: engine.score)


def score_engines(
    hardware_info: HwInfo,
    manifests: Iterable[Manifest],
    connection_checker: ConnectionChecker | None = None,
) -> list[ScoredManifest]:
    """Score every manifest against the host hardware."""
    scored: list[ScoredManifest] = []
    for manifest in manifests:
        score, reasons = check_engine(hardware_info, manifest, connection_checker)
        scored.append(
            ScoredManifest(
                manifest=manifest,
                score=score,
                compatible=score != 0,
                compatibility_issues=list(reasons),
            )
        )
    return scored


def check_engine(
    hardware_info: HwInfo,
    manifest: Manifest,
    connection_checker: ConnectionChecker | None = None,
) -> tuple[int, list[str]]:
    """Score a manifest against the host; 0 with reasons if it does not fit.

    Raises ValueError if a requirement cannot be parsed or the host does not
    report the information needed to check it.
    """
    score = 0
    reasons: list[str] = []
    compatible = True

    if manifest.memory is not None:
        try:
            required = string_to_bytes(manifest.memory)
        except ValueError as exc:
            raise ValueError(f"failed to parse required memory: {exc}") from exc
        memory = hardware_info.memory
        if memory.total_ram == 0:
            raise ValueError("total memory not reported by host system")
        if memory.total_ram + memory.total_swap < required:
            compatible = False
            reasons.append("host system memory too small")
        else:
            score += 1

    if manifest.disk_space is not None:
        try:
            required = string_to_bytes(manifest.disk_space)
        except ValueError as exc:
            raise ValueError(f"failed to parse required disk space: {exc}") from exc
        stats = hardware_info.disk.get(SNAP_STORAGE_PATH)
        if stats is None:
            raise ValueError("disk space not reported by host system")
        if stats.avail < required:
            compatible = False
            reasons.append("host system disk space too small")
        else:
            score += 1

    for devices, check in (
        (manifest.devices.all_of, _check_devices_all),
        (manifest.devices.any_of, _check_devices_any),
    ):
        if devices:
            extra, issues = check(hardware_info, devices, connection_checker)
            if issues:
                compatible = False
                reasons.extend(issues)
            else:
                score += extra

    return (score if compatible else 0), reasons


def _check_devices_all(
    hardware_info: HwInfo,
    devices: Sequence[Device],
    connection_checker: ConnectionChecker | None,
) -> tuple[int, list[str]]:
    issues: list[str] = []
    extra = 0
    for device in devices:
        if device.type == "cpu":
            score, device_issues = cpu.match(device, hardware_info.cpus)
            if device_issues:
                device.compatibility_issues.extend(device_issues)
                issues.append("required cpu device not found")
            else:
                extra += score
        elif device.bus == "usb":
            device.compatibility_issues.append("usb device matching not implemented")
            issues.append("usb device matching not implemented")
        elif device.bus in ("", "pci"):
            score, device_issues = pci.match(device, hardware_info.pci_devices, connection_checker)
            if device_issues:
                device.compatibility_issues.extend(device_issues)
                issues.append("required pci device not found")
            else:
                extra += score
    return (0 if issues else extra), issues


def _check_devices_any(
    hardware_info: HwInfo,
    devices: Sequence[Device],
    connection_checker: ConnectionChecker | None,
) -> tuple[int, list[str]]:
    issues: list[str] = []
    compatible = True
    extra = 0
    found = 0
    for device in devices:
        if device.type == "cpu":
            score, device_issues = cpu.match(device, hardware_info.cpus)
            if device_issues:
                device.compatibility_issues.extend(device_issues)
            else:
                found += 1
                extra += score
        elif device.bus == "usb":
            compatible = False
            issues.append("usb device matching not implemented")
        elif device.bus in ("", "pci"):
            score, device_issues = pci.match(device, hardware_info.pci_devices, connection_checker)
            if device_issues:
                device.compatibility_issues.extend(device_issues)
            else:
                found += 1
                extra += score

    if devices and found == 0:
        compatible = False
        issues.append("required device not found")

    return (extra if compatible else 0), issues