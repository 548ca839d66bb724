import json
import urllib.error
import urllib.request

import pytest

from snapinfer.snap_store import (
    SnapInfo,
    SnapResource,
    SnapStoreError,
    component_sizes,
    components_of_current_snap,
    snap_components,
    snap_info,
    snap_refresh,
)

SNAP_ID = "test-snap-id-0001"

INFO_RESPONSE = {
    "channel-map": [],
    "default-track": None,
    "name": "deepseek-r1",
    "snap": {
        "license": "Apache-2.0",
        "name": "deepseek-r1",
        "publisher": {"display-name": "Example", "id": "publisher-0001", "username": "example"},
        "snap-id": SNAP_ID,
        "summary": "A model snap",
        "title": "DeepSeek R1",
    },
    "snap-id": SNAP_ID,
}

REFRESH_RESPONSE = {
    "error-list": [],
    "results": [
        {"snap-id": "other-snap-id", "snap": {"resources": []}},
        {
            "snap-id": SNAP_ID,
            "name": "deepseek-r1",
            "snap": {
                "resources": [
                    {
                        "name": "model-q4",
                        "type": "component/standard",
                        "revision": 7,
                        "download": {"size": 4000, "url": "https://example.com/a", "sha3-384": "ab"},
                    },
                    {"name": "engine-cpu", "download": {"size": 120}},
                ]
            },
        },
    ],
}


class _FakeResponse:
    def __init__(self, payload, status=200):
        self.status = status
        self._body = payload if isinstance(payload, bytes) else json.dumps(payload).encode()

    def read(self):
        return self._body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


@pytest.fixture
def store(monkeypatch):
    requests = []
    responses = {"info": INFO_RESPONSE, "refresh": REFRESH_RESPONSE}

    def fake_urlopen(request, *args, **kwargs):
        requests.append(request)
        if request.full_url.endswith("/refresh"):
            return _FakeResponse(responses["refresh"])
        return _FakeResponse(responses["info"])

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    return requests, responses


def test_snap_info(store):
    requests, _ = store
    info = snap_info("deepseek-r1")
    assert isinstance(info, SnapInfo)
    assert info.snap_id == SNAP_ID
    assert info.title == "DeepSeek R1"
    assert info.publisher_username == "example"
    assert requests[0].full_url.endswith("/v2/snaps/info/deepseek-r1")
    assert requests[0].get_header("Snap-device-series") == "16"


def test_get_components(store):
    requests, _ = store
    components = snap_components(SNAP_ID, 53, "amd64")
    assert [c.name for c in components] == ["model-q4", "engine-cpu"]
    assert components[0].download_size == 4000
    assert components[0].revision == 7
    request = requests[0]
    assert request.get_method() == "POST"
    assert request.get_header("Snap-device-architecture") == "amd64"
    body = json.loads(request.data)
    assert body["fields"] == ["resources"]
    assert body["actions"][0] == {
        "action": "refresh",
        "instance-key": SNAP_ID,
        "snap-id": SNAP_ID,
        "revision": 53,
    }


def test_snap_refresh_keys_results_by_snap_id(store):
    results = snap_refresh(SNAP_ID, 53, "amd64")
    assert list(results) == ["other-snap-id", SNAP_ID]
    assert results["other-snap-id"] == []


def test_snap_components_no_results(store):
    _, responses = store
    responses["refresh"] = {"results": []}
    with pytest.raises(SnapStoreError, match="no refresh results"):
        snap_components(SNAP_ID, 53, "amd64")


def test_snap_components_unknown_snap(store):
    with pytest.raises(SnapStoreError, match="no refresh results found for snap id missing"):
        snap_components("missing", 1, "amd64")


def test_http_error(monkeypatch):
    def fake_urlopen(request, *args, **kwargs):
        raise urllib.error.HTTPError(request.full_url, 404, "Not Found", {}, None)

    monkeypatch.setattr(urllib.request, "urlopen", fake_urlopen)
    with pytest.raises(SnapStoreError, match="HTTP status not OK: 404"):
        snap_info("missing")


def test_bad_json(monkeypatch):
    monkeypatch.setattr(urllib.request, "urlopen", lambda *a, **k: _FakeResponse(b"not json"))
    with pytest.raises(SnapStoreError, match="error decoding JSON"):
        snap_info("deepseek-r1")


def test_component_sizes(store, monkeypatch):
    monkeypatch.setenv("SNAP_NAME", "deepseek-r1")
    monkeypatch.setenv("SNAP_REVISION", "53")
    monkeypatch.setenv("SNAP_ARCH", "amd64")
    assert component_sizes() == {"model-q4": 4000, "engine-cpu": 120}


def test_missing_snap_name(monkeypatch):
    monkeypatch.delenv("SNAP_NAME", raising=False)
    with pytest.raises(SnapStoreError, match="SNAP_NAME is not set"):
        components_of_current_snap()


def test_missing_revision(monkeypatch):
    monkeypatch.setenv("SNAP_NAME", "deepseek-r1")
    monkeypatch.delenv("SNAP_REVISION", raising=False)
    with pytest.raises(SnapStoreError, match="SNAP_REVISION is not set"):
        components_of_current_snap()


def test_local_revision(monkeypatch):
    monkeypatch.setenv("SNAP_NAME", "deepseek-r1")
    monkeypatch.setenv("SNAP_REVISION", "x3")
    with pytest.raises(SnapStoreError, match="not installed from store"):
        components_of_current_snap()


def test_bad_revision(monkeypatch):
    monkeypatch.setenv("SNAP_NAME", "deepseek-r1")
    monkeypatch.setenv("SNAP_REVISION", "abc")
    with pytest.raises(SnapStoreError, match="error parsing snap revision"):
        components_of_current_snap()


def test_component_sizes_wraps_errors(monkeypatch):
    monkeypatch.delenv("SNAP_NAME", raising=False)
    with pytest.raises(SnapStoreError, match="error finding components of current snap"):
        component_sizes()


def test_snap_resource_from_dict_defaults():
    resource = SnapResource.from_dict({"name": "c"})
    assert resource.name == "c"
    assert resource.download_size == 0
    assert resource.architectures == []