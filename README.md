# snapinfer

`snapinfer` inspects the Linux machine it runs on and scores inference engine
manifests against that hardware, so the best-suited engine can be chosen. It
reads CPU, memory, disk and PCI information, looks up vendor-specific details
such as GPU video memory, and matches each engine's requirements against what
it found.

It is aimed at snaps: disk space is checked for the snap storage directory
(`/var/lib/snapd/snaps`), configuration and the active engine are kept with
`snapctl`, and component sizes come from the snap store.

## Modules

- `snapinfer.types`: the hardware description: `HwInfo`, `CpuInfo`,
  `MemoryInfo`, `DirStats`, `PciDevice`, `PciFriendlyNames`, and `Clinfo` /
  `ClinfoDevice` for `clinfo --json` output. Each record has `to_dict` and
  `from_dict`; `HwInfo` also has `to_json` and `from_json`. Hex fields are
  written as `0x…` strings by `format_hex` and read by `parse_hex`.
- `snapinfer.hardware_info.cpu`: parses `/proc/cpuinfo` for amd64 and arm64
  (`parse_proc_cpuinfo`, `info_from_raw_data`) and merges runs of identical
  cores into one `CpuInfo`. `debian_architecture` maps a kernel machine name
  such as `x86_64` to `amd64`. `info()` reads the host.
- `snapinfer.hardware_info.memory`: total RAM and swap from `/proc/meminfo`.
- `snapinfer.hardware_info.disk`: total and available bytes for the snap
  storage path, from `os.statvfs` (`info`) or from captured
  `df --portability --block-size=1` output (`info_from_raw_data`,
  `parse_df`); `host_df` runs `df`.
- `snapinfer.hardware_info.pci`: parses `lspci -vmmnD` output
  (`parse_lspci`, `devices_from_raw_data`). Friendly names are looked up in a
  local `pci.ids` file through `PciDatabase`. `devices()` runs `lspci` and
  adds vendor properties.
- `snapinfer.hardware_info.vendors`: GPU properties for AMD (vRAM from
  sysfs), Intel (vRAM from `clinfo --json`) and NVIDIA (vRAM and compute
  capability from `nvidia-smi`).
- `snapinfer.hardware_info.machine`: `get(friendly_names)` collects
  everything into one `HwInfo`; it raises `PermissionError` unless run as
  root. `get_from_raw_data(device, friendly_names, test_dir)` builds the same
  record from captured files in `<test_dir>/machines/<device>/`
  (`meminfo.txt`, `disk.txt`, `uname-m.txt`, `cpuinfo.txt`, `lspci.txt`, and
  an optional `additional-properties.json`).
- `snapinfer.selector.requirements`: `Manifest`, `DeviceSet`, `Device` and
  `ScoredManifest`, plus the scoring weights.
- `snapinfer.selector.cpu` and `snapinfer.selector.pci`: match one required
  device against the host's CPUs or PCI devices.
- `snapinfer.selector.engine`: `check_engine`, `score_engines` and
  `top_engine`.
- `snapinfer.storage`: `Config` layers package, engine and user values
  (`ConfigType`), user values taking precedence and only allowed for keys
  that already exist. `Cache` keeps the active engine in snap settings and
  the machine info in `/tmp/machine-info-<SNAP_REVISION>.json`. `MockCache`
  keeps both in memory. `SnapctlStorage` is the `snapctl` backend.
- `snapinfer.snap_store`: `component_sizes()` asks the snap store for the
  download size of each component of the running snap.
- `snapinfer.utils`: helpers such as `string_to_bytes("4G")` and
  `fmt_bytes(...)`.

## Using it

Describe the current machine (as root):

```python
from snapinfer.hardware_info import machine

hw = machine.get(friendly_names=True)
print(hw.to_json())
```

Parse data captured from another machine:

```python
from pathlib import Path
from snapinfer.hardware_info import cpu, memory, pci

cpus = cpu.info_from_raw_data(Path("cpuinfo.txt").read_text(), "x86_64")
mem = memory.info_from_raw_data(Path("meminfo.txt").read_text())
devices = pci.devices_from_raw_data(Path("lspci.txt").read_text(), False)
```

Score engine manifests and choose one:

```python
from snapinfer.selector.engine import NoCompatibleEngineError, score_engines, top_engine
from snapinfer.selector.requirements import Device, DeviceSet, Manifest

manifests = [
    Manifest(
        name="cpu-avx2",
        grade="stable",
        memory="4G",
        devices=DeviceSet(all_of=[Device(type="cpu", flags=["avx2"])]),
    ),
]

scored = score_engines(hw, manifests)
try:
    best = top_engine(scored)
    print(best.name, best.score)
except NoCompatibleEngineError:
    for engine in scored:
        print(engine.name, engine.compatibility_issues)
```

Only engines graded `stable` with a positive score can be chosen. When a PCI
device requires snap connections, they are checked with
`snapctl is-connected`; pass `connection_checker`, a function taking a
connection name and returning a bool, to check them some other way.

Sizes in manifests are whole numbers of bytes, optionally followed by `M` or
`G`. `string_to_bytes` rejects any other suffix with `ValueError`.
`check_engine` raises `ValueError` when a size cannot be parsed or when the
host does not report memory or disk space.

## What it does not do

- There is no command-line program; everything is used from Python.
- Engine manifests are not read from files: build `Manifest` objects
  yourself.
- USB devices cannot be matched; a manifest requiring one is reported as
  incompatible.
- A required compute capability is not checked against the device.
- Friendly PCI names come only from a `pci.ids` file already on the system;
  nothing is downloaded.

## Requirements

Python 3.10 or later on Linux. Discovery runs `lspci`, and `clinfo` or
`nvidia-smi` for Intel and NVIDIA GPUs. When a vendor tool fails or is
missing, the error is printed to standard error and that device simply has no
extra properties.