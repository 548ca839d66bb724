from unittest import mock

import pytest

from snapinfer.hardware_info import machine
from snapinfer.types import HwInfo, PciFriendlyNames

MEMINFO = "MemTotal:       16384 kB\nMemFree:         1024 kB\nSwapTotal:       2048 kB\n"

DISK = (
    "Filesystem     1-blocks      Used Available Capacity Mounted on\n"
    "/dev/sda1          1000       400       600      40% /var/lib/snapd\n"
)

CPUINFO = (
    "processor\t: 0\n"
    "vendor_id\t: GenuineIntel\n"
    "model name\t: Test CPU\n"
    "flags\t\t: fpu avx2\n"
    "\n"
    "processor\t: 1\n"
    "vendor_id\t: GenuineIntel\n"
    "model name\t: Test CPU\n"
    "flags\t\t: fpu avx2\n"
)

LSPCI = (
    "Slot:\t0000:00:02.0\n"
    "Class:\t0300\n"
    "Vendor:\t8086\n"
    "Device:\t9b41\n"
    "SVendor:\t1028\n"
    "SDevice:\t08ea\n"
    "Rev:\t02\n"
    "\n"
    "Slot:\t0000:3b:00.0\n"
    "Class:\t0302\n"
    "Vendor:\t10de\n"
    "Device:\t1b06\n"
)

ADDITIONAL = '{"0000:3b:00.0": {"vram": "11811160064"}}'

EXPECTED = """
{
  "cpus": [
    {"architecture": "amd64", "manufacturer-id": "GenuineIntel", "flags": ["fpu", "avx2"]}
  ],
  "memory": {"total-ram": 16777216, "total-swap": 2097152},
  "disk": {"/var/lib/snapd/snaps": {"total": 1000, "avail": 600}},
  "pci": [
    {
      "slot": "0000:00:02.0", "bus-number": "0x00", "device-class": "0x0300",
      "vendor-id": "0x8086", "device-id": "0x9B41",
      "subvendor-id": "0x1028", "subdevice-id": "0x08EA"
    },
    {
      "slot": "0000:3b:00.0", "bus-number": "0x3B", "device-class": "0x0302",
      "vendor-id": "0x10DE", "device-id": "0x1B06",
      "additional-properties": {"vram": "11811160064"}
    }
  ]
}
"""


def _write_machine(root, name, additional=True):
    machine_dir = root / "machines" / name
    machine_dir.mkdir(parents=True)
    (machine_dir / "meminfo.txt").write_text(MEMINFO)
    (machine_dir / "disk.txt").write_text(DISK)
    (machine_dir / "uname-m.txt").write_text("x86_64\n")
    (machine_dir / "cpuinfo.txt").write_text(CPUINFO)
    (machine_dir / "lspci.txt").write_text(LSPCI)
    if additional:
        (machine_dir / "additional-properties.json").write_text(ADDITIONAL)
    (machine_dir / "hardware-info.json").write_text(EXPECTED)
    return machine_dir


def _strip_names(hw_info):
    for device in hw_info.pci_devices:
        device.friendly_names = PciFriendlyNames()
    return hw_info


def test_get_from_files_matches_hardware_info(tmp_path):
    machine_dir = _write_machine(tmp_path, "test-machine")
    hw_info = machine.get_from_raw_data("test-machine", False, str(tmp_path))
    expected = HwInfo.from_json((machine_dir / "hardware-info.json").read_text())
    assert hw_info == expected


def test_get_from_files_with_friendly_names_ignoring_names(tmp_path):
    machine_dir = _write_machine(tmp_path, "named")
    hw_info = machine.get_from_raw_data("named", True, str(tmp_path))
    expected = HwInfo.from_json((machine_dir / "hardware-info.json").read_text())
    assert _strip_names(hw_info) == _strip_names(expected)


def test_additional_properties_are_optional(tmp_path):
    _write_machine(tmp_path, "plain", additional=False)
    hw_info = machine.get_from_raw_data("plain", False, str(tmp_path))
    assert [d.additional_properties for d in hw_info.pci_devices] == [None, None]
    assert [d.slot for d in hw_info.pci_devices] == ["0000:00:02.0", "0000:3b:00.0"]


def test_duplicate_cpus_are_collapsed(tmp_path):
    _write_machine(tmp_path, "cpus")
    hw_info = machine.get_from_raw_data("cpus", False, str(tmp_path))
    assert len(hw_info.cpus) == 1
    assert hw_info.cpus[0].manufacturer_id == "GenuineIntel"


def test_dump_round_trips_through_json(tmp_path):
    _write_machine(tmp_path, "dump")
    hw_info = machine.get_from_raw_data("dump", False, str(tmp_path))
    assert HwInfo.from_json(hw_info.to_json()) == hw_info


def test_missing_machine_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        machine.get_from_raw_data("absent", False, str(tmp_path))


def test_invalid_additional_properties_raise(tmp_path):
    machine_dir = _write_machine(tmp_path, "bad", additional=False)
    (machine_dir / "additional-properties.json").write_text("[1, 2]")
    with pytest.raises(ValueError):
        machine.get_from_raw_data("bad", False, str(tmp_path))


def test_get_requires_root():
    with mock.patch("os.geteuid", return_value=1000):
        with pytest.raises(PermissionError, match="sudo"):
            machine.get(False)