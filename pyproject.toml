[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "snapinfer"
version = "0.1.0"
description = "Hardware discovery and engine selection for inference snaps"
requires-python = ">=3.10"
dependencies = []
keywords = [
    "hardware",
    "inference",
    "snap",
    "pci",
    "cpuinfo",
    "gpu",
    "engine-selection",
]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["snapinfer"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
