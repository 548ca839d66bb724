"""Queries against the snap store for component download sizes."""

from __future__ import annotations

import json
import os
import re
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any

STORE_API = "https://api.snapcraft.io/v2/snaps"
_SIGNED_DECIMAL = re.compile(r"[+-]?[0-9]+")


class SnapStoreError(Exception):
    """Raised when the store cannot be queried or returns unusable data."""


@dataclass
class SnapResource:
    """A component (resource) of a snap revision as listed by the store."""

    name: str = ""
    type: str = ""
    version: str = ""
    revision: int = 0
    description: str = ""
    created_at: str = ""
    architectures: list[str] = field(default_factory=list)
    download_sha3_384: str = ""
    download_size: int = 0
    download_url: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapResource:
        download = data.get("download") or {}
        return cls(
            name=data.get("name") or "",
            type=data.get("type") or "",
            version=data.get("version") or "",
            revision=int(data.get("revision") or 0),
            description=data.get("description") or "",
            created_at=data.get("created-at") or "",
            architectures=list(data.get("architectures") or []),
            download_sha3_384=download.get("sha3-384") or "",
            download_size=int(download.get("size") or 0),
            download_url=download.get("url") or "",
        )


@dataclass
class SnapInfo:
    """Store information about a snap."""

    name: str = ""
    snap_id: str = ""
    title: str = ""
    summary: str = ""
    license: str = ""
    store_url: str = ""
    publisher_id: str = ""
    publisher_username: str = ""
    publisher_display_name: str = ""
    publisher_validation: str = ""
    default_track: Any = None
    channel_map: list[Any] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SnapInfo:
        snap = data.get("snap") or {}
        publisher = snap.get("publisher") or {}
        return cls(
            name=data.get("name") or "",
            snap_id=data.get("snap-id") or "",
            title=snap.get("title") or "",
            summary=snap.get("summary") or "",
            license=snap.get("license") or "",
            store_url=snap.get("store-url") or "",
            publisher_id=publisher.get("id") or "",
            publisher_username=publisher.get("username") or "",
            publisher_display_name=publisher.get("display-name") or "",
            publisher_validation=publisher.get("validation") or "",
            default_track=data.get("default-track"),
            channel_map=list(data.get("channel-map") or []),
        )


def _fetch_json(request: urllib.request.Request) -> dict[str, Any]:
    try:
        with urllib.request.urlopen(request) as response:
            status = response.status
            body = response.read()
    except urllib.error.HTTPError as exc:
        raise SnapStoreError(f"HTTP status not OK: {exc.code}") from exc
    except (urllib.error.URLError, OSError) as exc:
        raise SnapStoreError(f"error making HTTP request: {exc}") from exc

    if status != 200:
        raise SnapStoreError(f"HTTP status not OK: {status}")

    try:
        data = json.loads(body)
    except ValueError as exc:
        raise SnapStoreError(f"error decoding JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SnapStoreError("error decoding JSON: expected an object")
    return data


def component_sizes() -> dict[str, int]:
    """Map each component of the running snap to its download size in bytes."""
    try:
        components = components_of_current_snap()
    except SnapStoreError as exc:
        raise SnapStoreError(f"error finding components of current snap: {exc}") from exc
    return {component.name: component.download_size for component in components}


def components_of_current_snap() -> list[SnapResource]:
    """Look up the store components of the snap this process runs in."""
    snap_name = os.environ.get("SNAP_NAME", "")
    if not snap_name:
        raise SnapStoreError("SNAP_NAME is not set. Likely not inside a snap")

    revision_text = os.environ.get("SNAP_REVISION", "")
    if not revision_text:
        raise SnapStoreError("SNAP_REVISION is not set")
    if revision_text.startswith("x"):
        raise SnapStoreError("not installed from store")
    if not _SIGNED_DECIMAL.fullmatch(revision_text):
        raise SnapStoreError(f"error parsing snap revision: invalid syntax: {revision_text!r}")
    revision = int(revision_text)

    try:
        info = snap_info(snap_name)
    except SnapStoreError as exc:
        raise SnapStoreError(f"error getting snap info: {exc}") from exc

    try:
        return snap_components(info.snap_id, revision, os.environ.get("SNAP_ARCH", ""))
    except SnapStoreError as exc:
        raise SnapStoreError(f"error getting components: {exc}") from exc


def snap_info(snap_name: str) -> SnapInfo:
    """Fetch store information about a snap by name."""
    request = urllib.request.Request(f"{STORE_API}/info/{snap_name}", method="GET")
    request.add_header("Snap-Device-Series", "16")
    request.add_header("Accept", "application/json")
    return SnapInfo.from_dict(_fetch_json(request))


def snap_components(snap_id: str, revision: int, snap_arch: str) -> list[SnapResource]:
    """Return the components available for a snap revision."""
    try:
        results = snap_refresh(snap_id, revision, snap_arch)
    except SnapStoreError as exc:
        raise SnapStoreError(f"error fetching refresh data from store: {exc}") from exc

    if not results:
        raise SnapStoreError("store returned no refresh results")
    if snap_id in results:
        return results[snap_id]
    raise SnapStoreError(f"no refresh results found for snap id {snap_id}")


def snap_refresh(snap_id: str, revision: int, snap_arch: str) -> dict[str, list[SnapResource]]:
    """Ask the store's refresh endpoint for resources.

    Returns the resources of each result keyed by snap id, in the order the
    store listed them; the first result wins for a repeated snap id.
    """
    payload = {
        "context": [
            {
                "snap-id": snap_id,
                "instance-key": snap_id,
                "revision": revision,
                "tracking-channel": "",
            }
        ],
        "actions": [
            {
                "action": "refresh",
                "instance-key": snap_id,
                "snap-id": snap_id,
                "revision": revision,
            }
        ],
        "fields": ["resources"],
    }
    request = urllib.request.Request(
        f"{STORE_API}/refresh",
        data=json.dumps(payload, separators=(",", ":")).encode(),
        method="POST",
    )
    request.add_header("Snap-Device-Series", "16")
    request.add_header("Snap-Device-Architecture", snap_arch)
    request.add_header("Accept", "application/json")
    request.add_header("Content-Type", "application/json")

    response = _fetch_json(request)
    results: dict[str, list[SnapResource]] = {}
    for result in response.get("results") or []:
        resources = ((result.get("snap") or {}).get("resources")) or []
        results.setdefault(
            result.get("snap-id") or "",
            [SnapResource.from_dict(resource) for resource in resources],
        )
    return results