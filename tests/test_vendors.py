import json
from unittest.mock import MagicMock, patch

import pytest

from snapinfer.hardware_info import vendors
from snapinfer.hardware_info.vendors import (
    amd_additional_properties,
    clinfo_vram,
    intel_additional_properties,
    is_display_device,
    nvidia_additional_properties,
    parse_clinfo_json,
    parse_nvidia_memory,
)
from snapinfer.types import PciDevice

SLOT = "0000:03:00.0"


def _clinfo_document(bus_info=f"PCI-E, {SLOT}", mem=8589934592):
    return {
        "devices": [
            {
                "online": [
                    {
                        "CL_DEVICE_NAME": "Sample Graphics",
                        "CL_DEVICE_VENDOR": "Intel(R) Corporation",
                        "CL_DEVICE_VENDOR_ID": 32902,
                        "CL_DEVICE_VERSION": "OpenCL 3.0 NEO",
                        "CL_DEVICE_PCI_BUS_INFO_KHR": bus_info,
                        "CL_DEVICE_GLOBAL_MEM_SIZE": mem,
                        "CL_DEVICE_MAX_MEM_ALLOC_SIZE": 4294959104,
                        "CL_DEVICE_HOST_UNIFIED_MEMORY": False,
                    }
                ]
            }
        ]
    }


def _process(output, returncode=0):
    process = MagicMock()
    process.communicate.return_value = (output, b"")
    process.returncode = returncode
    process.pid = 999999
    return process


@pytest.mark.parametrize(
    "device_class, expected",
    [(0x0300, True), (0x0380, True), (0x0001, True), (0x1200, False), (0x0B40, False)],
)
def test_is_display_device(device_class, expected):
    assert is_display_device(PciDevice(device_class=device_class)) is expected


@pytest.mark.parametrize(
    "lookup", [amd_additional_properties, intel_additional_properties, nvidia_additional_properties]
)
def test_non_display_devices_have_no_properties(lookup):
    assert lookup(PciDevice(slot=SLOT, device_class=0x0200)) is None


def test_amd_vram_from_sysfs(tmp_path, monkeypatch):
    device_dir = tmp_path / SLOT
    device_dir.mkdir()
    (device_dir / "mem_info_vram_total").write_text("536870912\n")
    monkeypatch.setattr(vendors, "SYSFS_PCI_DEVICES", str(tmp_path))
    device = PciDevice(slot=SLOT, device_class=0x0300, vendor_id=0x1002)
    assert amd_additional_properties(device) == {"vram": "536870912"}


def test_amd_missing_sysfs_file(tmp_path, monkeypatch):
    monkeypatch.setattr(vendors, "SYSFS_PCI_DEVICES", str(tmp_path))
    with pytest.raises(RuntimeError, match="error getting gpu properties: error looking up vRAM"):
        amd_additional_properties(PciDevice(slot=SLOT, device_class=0x0300))


def test_amd_unparsable_vram(tmp_path, monkeypatch):
    device_dir = tmp_path / SLOT
    device_dir.mkdir()
    (device_dir / "mem_info_vram_total").write_text("lots\n")
    monkeypatch.setattr(vendors, "SYSFS_PCI_DEVICES", str(tmp_path))
    with pytest.raises(RuntimeError, match="vRAM"):
        amd_additional_properties(PciDevice(slot=SLOT, device_class=0x0300))


def test_parse_clinfo_json():
    clinfo = parse_clinfo_json(json.dumps(_clinfo_document()).encode())
    assert len(clinfo.devices) == 1
    device = clinfo.devices[0][0]
    assert device.global_mem_size == 8589934592
    assert device.vendor_id == 32902
    assert device.name == "Sample Graphics"
    assert device.host_unified_memory is False


def test_parse_clinfo_json_no_devices():
    clinfo = parse_clinfo_json('{"devices": []}')
    assert clinfo.devices == []
    with pytest.raises(ValueError, match="no devices found"):
        clinfo_vram(clinfo, SLOT)


def test_parse_clinfo_json_invalid():
    with pytest.raises(ValueError):
        parse_clinfo_json("{not json")
    with pytest.raises(ValueError):
        parse_clinfo_json("[1, 2]")


def test_clinfo_vram_matching_slot():
    clinfo = parse_clinfo_json(json.dumps(_clinfo_document()))
    assert clinfo_vram(clinfo, SLOT) == 8589934592


def test_clinfo_vram_no_matching_slot():
    clinfo = parse_clinfo_json(json.dumps(_clinfo_document()))
    assert clinfo_vram(clinfo, "0000:09:00.0") is None


def test_clinfo_vram_no_online_devices():
    clinfo = parse_clinfo_json('{"devices": [{"online": []}]}')
    with pytest.raises(ValueError, match="no online devices found"):
        clinfo_vram(clinfo, SLOT)


def test_intel_vram_from_clinfo():
    output = json.dumps(_clinfo_document()).encode()
    with patch("subprocess.Popen", return_value=_process(output)):
        properties = intel_additional_properties(PciDevice(slot=SLOT, device_class=0x0300))
    assert properties == {"vram": "8589934592"}


def test_intel_clinfo_failure():
    with patch("subprocess.Popen", return_value=_process(b"", returncode=1)):
        with pytest.raises(RuntimeError, match="exit status 1"):
            intel_additional_properties(PciDevice(slot=SLOT, device_class=0x0300))


@pytest.mark.parametrize(
    "output, expected",
    [
        ("4096 MiB", 4096 * 1024 * 1024),
        ("8 GiB", 8 * 1024**3),
        ("512 KiB", 512 * 1024),
        ("100", 100),
        ("100 B", 100),
    ],
)
def test_parse_nvidia_memory(output, expected):
    assert parse_nvidia_memory(output) == expected


@pytest.mark.parametrize("output", ["abc MiB", "No devices were found", "-5 MiB", ""])
def test_parse_nvidia_memory_invalid(output):
    with pytest.raises(ValueError):
        parse_nvidia_memory(output)


def test_nvidia_properties():
    processes = [_process(b"4096 MiB\n"), _process(b"8.6\n")]
    with patch("subprocess.Popen", side_effect=processes):
        properties = nvidia_additional_properties(PciDevice(slot=SLOT, device_class=0x0300))
    assert properties == {"vram": "4294967296", "compute-capability": "8.6"}


def test_nvidia_error_output_is_reported():
    with patch("subprocess.Popen", return_value=_process(b"No devices were found\n", returncode=6)):
        with pytest.raises(RuntimeError, match="exit status 6: No devices were found"):
            nvidia_additional_properties(PciDevice(slot=SLOT, device_class=0x0300))