"""Matching required CPU devices against the CPUs of the host."""

from __future__ import annotations

from collections.abc import Sequence

from snapinfer.hardware_info.cpu import AMD64, ARM64
from snapinfer.selector.requirements import (
    CPU_DEVICE,
    CPU_FLAG,
    CPU_MODEL,
    CPU_VENDOR,
    Device,
)
from snapinfer.types import CpuInfo


def check_cpu(manifest_device: Device, host_cpu: CpuInfo) -> tuple[int, list[str]]:
    """Score one host CPU against a required device; the score is 0 if there are issues."""
    score = CPU_DEVICE
    issues: list[str] = []

    if manifest_device.architecture is not None:
        if manifest_device.architecture != host_cpu.architecture:
            issues.append(f"architecture not {manifest_device.architecture}")

    if host_cpu.architecture == AMD64:
        if manifest_device.manufacturer_id is not None:
            if manifest_device.manufacturer_id == host_cpu.manufacturer_id:
                score += CPU_VENDOR
            else:
                issues.append(f"manufacturer id mismatch: {host_cpu.manufacturer_id}")
        for flag in manifest_device.flags:
            if flag in host_cpu.flags:
                score += CPU_FLAG
            else:
                issues.append(f"flag {flag} missing")

    if host_cpu.architecture == ARM64:
        if manifest_device.implementer_id is not None:
            if manifest_device.implementer_id == host_cpu.implementer_id:
                score += CPU_VENDOR
            else:
                issues.append(f"implementer id mismatch: {host_cpu.implementer_id:x}")
        if manifest_device.part_number is not None:
            if manifest_device.part_number == host_cpu.part_number:
                score += CPU_MODEL
            else:
                issues.append(f"part number mismatch: {host_cpu.part_number:x}")
        for feature in manifest_device.features:
            if feature in host_cpu.features:
                score += CPU_FLAG
            else:
                issues.append(f"feature not found: {feature}")

    if issues:
        score = 0
    return score, issues


def match(manifest_device: Device, host_cpus: Sequence[CpuInfo] | None) -> tuple[int, list[str]]:
    """Return the best score among the host CPUs and the issues of those that do not match."""
    best = 0
    issues: list[str] = []

    if not host_cpus:
        issues.append("no cpu found on host system")
        return best, issues

    several = len(host_cpus) > 1
    for index, host_cpu in enumerate(host_cpus):
        score, cpu_issues = check_cpu(manifest_device, host_cpu)
        if cpu_issues:
            if several:
                issues.extend(f"cpu {index}: {issue}" for issue in cpu_issues)
            else:
                issues.extend(cpu_issues)
        else:
            best = max(best, score)

    return best, issues