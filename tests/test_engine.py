import pytest

from snapinfer.selector.engine import (
    NoCompatibleEngineError,
    check_engine,
    score_engines,
    top_engine,
)
from snapinfer.selector.requirements import Device, DeviceSet, Manifest, ScoredManifest
from snapinfer.types import CpuInfo, DirStats, HwInfo, MemoryInfo, PciDevice

SNAPS = "/var/lib/snapd/snaps"


def always_connected(connection):
    return True


def avx512_manifest():
    return Manifest(
        name="cpu-avx512",
        grade="stable",
        memory="16G",
        disk_space="5G",
        devices=DeviceSet(all_of=[Device(type="cpu", architecture="amd64", flags=["avx512f"])]),
    )


def test_find_top_engine_from_none():
    hw_info = HwInfo(
        memory=MemoryInfo(total_ram=200000000, total_swap=200000000),
        disk={SNAPS: DirStats(total=0, avail=400000000)},
    )
    scored = score_engines(hw_info, [], always_connected)
    assert scored == []
    with pytest.raises(NoCompatibleEngineError, match="no compatible engines found"):
        top_engine(scored)


def test_disk_check():
    stats = DirStats(total=0, avail=400000000)
    hw_info = HwInfo(disk={"/": stats, SNAPS: stats})
    engine = Manifest(disk_space="300M")

    score, reasons = check_engine(hw_info, engine)
    assert score > 0, reasons

    hw_info.disk[SNAPS] = DirStats(total=0, avail=100000000)
    score, reasons = check_engine(hw_info, engine)
    assert score == 0
    assert reasons == ["host system disk space too small"]


def test_memory_check():
    hw_info = HwInfo(memory=MemoryInfo(total_ram=200000000, total_swap=200000000))
    engine = Manifest(memory="300M")

    score, reasons = check_engine(hw_info, engine)
    assert score > 0, reasons

    hw_info.memory.total_ram = 100000000
    score, reasons = check_engine(hw_info, engine)
    assert score == 0
    assert reasons == ["host system memory too small"]


def test_no_cpu_in_hw_info():
    hw_info = HwInfo()
    manifest = avx512_manifest()

    with pytest.raises(ValueError, match="total memory not reported"):
        check_engine(hw_info, manifest)

    hw_info.memory = MemoryInfo(total_ram=17000000000, total_swap=2000000000)
    with pytest.raises(ValueError, match="disk space not reported"):
        check_engine(hw_info, manifest)

    hw_info.disk = {SNAPS: DirStats(avail=6000000000)}
    score, issues = check_engine(hw_info, manifest)
    assert score == 0
    assert issues == ["required cpu device not found"]
    assert manifest.devices.all_of[0].compatibility_issues == ["no cpu found on host system"]


def test_unparseable_requirement_raises():
    hw_info = HwInfo(memory=MemoryInfo(total_ram=1024))
    with pytest.raises(ValueError, match="failed to parse required memory"):
        check_engine(hw_info, Manifest(memory="2T"))


def test_any_of_needs_one_device():
    hw_info = HwInfo(
        cpus=[CpuInfo(architecture="amd64", flags=["avx2"])],
        pci_devices=[PciDevice(device_class=0x0300, bus_number=1)],
    )
    manifest = Manifest(
        devices=DeviceSet(any_of=[Device(type="npu"), Device(type="cpu", flags=["avx2"])])
    )
    score, reasons = check_engine(hw_info, manifest, always_connected)
    assert score > 0
    assert reasons == []

    manifest = Manifest(devices=DeviceSet(any_of=[Device(type="npu")]))
    score, reasons = check_engine(hw_info, manifest, always_connected)
    assert score == 0
    assert reasons == ["required device not found"]


def test_usb_devices_are_not_supported():
    manifest = Manifest(devices=DeviceSet(all_of=[Device(bus="usb")]))
    score, reasons = check_engine(HwInfo(), manifest)
    assert score == 0
    assert reasons == ["usb device matching not implemented"]


def test_score_engines_marks_compatibility():
    hw_info = HwInfo(cpus=[CpuInfo(architecture="amd64", flags=["avx2"])])
    manifests = [
        Manifest(name="avx2", devices=DeviceSet(all_of=[Device(type="cpu", flags=["avx2"])])),
        Manifest(name="avx512", devices=DeviceSet(all_of=[Device(type="cpu", flags=["avx512f"])])),
    ]
    scored = score_engines(hw_info, manifests)
    assert [(e.name, e.compatible) for e in scored] == [("avx2", True), ("avx512", False)]
    assert scored[1].compatibility_issues == ["required cpu device not found"]


def test_top_engine_prefers_highest_stable_score():
    engines = [
        ScoredManifest(Manifest(name="low", grade="stable"), score=2, compatible=True),
        ScoredManifest(Manifest(name="beta", grade="devel"), score=50, compatible=True),
        ScoredManifest(Manifest(name="high", grade="stable"), score=9, compatible=True),
        ScoredManifest(Manifest(name="none", grade="stable"), score=0),
    ]
    assert top_engine(engines).name == "high"


def test_top_engine_ignores_unstable_engines():
    engines = [ScoredManifest(Manifest(name="beta", grade="devel"), score=5, compatible=True)]
    with pytest.raises(NoCompatibleEngineError):
        top_engine(engines)