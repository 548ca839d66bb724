"""Configuration and cache kept in the snap's settings via snapctl."""

from __future__ import annotations

import json
import os
import subprocess
from collections.abc import Iterator
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from snapinfer.hardware_info import machine
from snapinfer.types import HwInfo

CONFIG_KEY_PREFIX = "config"
CACHE_KEY_PREFIX = "cache."
ACTIVE_ENGINE_KEY = CACHE_KEY_PREFIX + "active-engine"


class NotFoundError(KeyError):
    """Raised when a requested key holds no value."""

    def __str__(self) -> str:
        return "not found"


class _Storage(Protocol):
    def set(self, key: str, value: str) -> None: ...

    def set_document(self, key: str, value: Any) -> None: ...

    def get(self, key: str) -> dict[str, Any]: ...

    def unset(self, key: str) -> None: ...


class SnapctlStorage:
    """Key-value storage backed by the ``snapctl`` command."""

    def __init__(self, executable: str = "snapctl") -> None:
        self.executable = executable

    def _run(self, *args: str) -> str:
        command = [self.executable, *args]
        try:
            result = subprocess.run(command, capture_output=True, text=True, check=True)
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip()
            raise RuntimeError(f"{' '.join(command)}: {exc}: {detail}") from exc
        except OSError as exc:
            raise RuntimeError(f"{' '.join(command)}: {exc}") from exc
        return (result.stdout or "").strip()

    def set(self, key: str, value: str) -> None:
        """Store a string value."""
        self._run("set", f"{key}={value}")

    def set_document(self, key: str, value: Any) -> None:
        """Store a primitive or an object, encoded as JSON."""
        self._run("set", "-t", f"{key}={json.dumps(value)}")

    def get(self, key: str) -> dict[str, Any]:
        """Return an object value as a dict, or a primitive one as ``{key: value}``."""
        output = self._run("get", key)
        if not output:
            raise NotFoundError(key)
        if output.startswith("{") and output.endswith("}"):
            value = json.loads(output)
            if not isinstance(value, dict):
                raise ValueError(f"expected a JSON object for {key}")
            return value
        return {key: output}

    def unset(self, key: str) -> None:
        """Remove a key."""
        self._run("unset", key)


class ConfigType(str, Enum):
    """Origin of a configuration value."""

    PACKAGE = "package"
    ENGINE = "engine"
    USER = "user"


# From lowest to highest precedence.
_CONF_PRECEDENCE = (ConfigType.PACKAGE, ConfigType.ENGINE, ConfigType.USER)


def _flatten(mapping: dict[str, Any], prefix: str = "") -> Iterator[tuple[str, Any]]:
    for key, value in mapping.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            yield from _flatten(value, full_key)
        else:
            yield full_key, value


class Config:
    """Layered configuration: user values override engine values override package values."""

    def __init__(self, storage: _Storage | None = None) -> None:
        self._storage: _Storage = storage if storage is not None else SnapctlStorage()

    @staticmethod
    def _nest_keys(conf_type: ConfigType, key: str) -> str:
        if key == ".":
            return f"{CONFIG_KEY_PREFIX}.{ConfigType(conf_type).value}"
        return f"{CONFIG_KEY_PREFIX}.{ConfigType(conf_type).value}.{key}"

    def _load_configs(self) -> dict[str, Any]:
        values = self._storage.get(CONFIG_KEY_PREFIX)
        merged: dict[str, Any] = {}
        for conf_type in _CONF_PRECEDENCE:
            if conf_type.value not in values:
                continue
            layer = values[conf_type.value]
            if not isinstance(layer, dict):
                raise ValueError(f"{conf_type.value} configuration is not an object")
            merged.update(_flatten(layer))
        return merged

    def set(self, key: str, value: str, conf_type: ConfigType) -> None:
        """Set a string value; user values may only override known keys."""
        if conf_type == ConfigType.USER:
            try:
                existing = self.get(key)
            except (NotFoundError, RuntimeError, ValueError) as exc:
                raise ValueError(f"error checking existing keys: {exc}") from exc
            if not existing:
                raise ValueError("unknown key")
        self._storage.set(self._nest_keys(conf_type, key), value)

    def set_document(self, key: str, value: Any, conf_type: ConfigType) -> None:
        """Set a primitive or object value."""
        self._storage.set_document(self._nest_keys(conf_type, key), value)

    def get(self, key: str) -> dict[str, Any]:
        """Return the flattened values at or below a key, after precedence."""
        prefix = key + "."
        return {k: v for k, v in self._load_configs().items() if k == key or k.startswith(prefix)}

    def get_all(self) -> dict[str, Any]:
        """Return every configuration value, flattened, after precedence."""
        return self._load_configs()

    def unset(self, key: str, conf_type: ConfigType) -> None:
        """Remove a key of one configuration type; ``"."`` removes them all."""
        self._storage.unset(self._nest_keys(conf_type, key))


class Cache:
    """Active engine kept in snap settings, machine info kept in a temporary file."""

    def __init__(
        self,
        storage: _Storage | None = None,
        machine_info_file: str | os.PathLike[str] | None = None,
    ) -> None:
        self._storage: _Storage = storage if storage is not None else SnapctlStorage()
        if machine_info_file is None:
            revision = os.environ.get("SNAP_REVISION", "")
            machine_info_file = f"/tmp/machine-info-{revision}.json"
        self._machine_info_file = Path(machine_info_file)

    def set_active_engine(self, engine: str) -> None:
        """Remember the active engine."""
        if not engine:
            raise ValueError("engine name cannot be empty")
        self._storage.set(ACTIVE_ENGINE_KEY, engine)

    def get_active_engine(self) -> str:
        """Return the active engine, or an empty string if none is set."""
        try:
            data = self._storage.get(ACTIVE_ENGINE_KEY)
        except NotFoundError:
            return ""
        value = data.get(ACTIVE_ENGINE_KEY)
        if not isinstance(value, str):
            raise ValueError("active engine is not a string")
        return value

    def _set_machine_info(self, hw_info: HwInfo) -> None:
        try:
            self._machine_info_file.write_text(hw_info.to_json())
        except OSError as exc:
            raise OSError(f"error writing machine info to temp file: {exc}") from exc

    def _load_machine_info(self) -> HwInfo:
        try:
            hw_info = machine.get(False)
        except (OSError, RuntimeError, ValueError) as exc:
            raise RuntimeError(f"error getting machine info: {exc}") from exc
        try:
            self._set_machine_info(hw_info)
        except OSError as exc:
            raise RuntimeError(f"error caching machine info: {exc}") from exc
        return hw_info

    def get_machine_info(self) -> HwInfo:
        """Return cached machine info, detecting and caching it on a miss."""
        try:
            text = self._machine_info_file.read_text()
        except FileNotFoundError:
            return self._load_machine_info()
        except OSError as exc:
            raise OSError(f"error reading machine info from temp file: {exc}") from exc
        return HwInfo.from_json(text)


class MockCache:
    """In-memory cache for use where snap settings are unavailable."""

    def __init__(self, machine_info: HwInfo | None = None) -> None:
        self._active_engine = ""
        self._machine_info = machine_info

    def set_active_engine(self, engine: str) -> None:
        """Remember the active engine."""
        self._active_engine = engine

    def get_active_engine(self) -> str:
        """Return the active engine, or an empty string if none is set."""
        return self._active_engine

    def get_machine_info(self) -> HwInfo:
        """Return machine info, detecting it the first time."""
        if self._machine_info is None:
            try:
                self._machine_info = machine.get(False)
            except (OSError, RuntimeError, ValueError) as exc:
                raise RuntimeError(f"error getting machine info: {exc}") from exc
        return self._machine_info