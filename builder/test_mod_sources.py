from pathlib import Path
import sys

import pytest
import requests

here = Path(__file__).resolve()
builder_dir = here.parent
if str(builder_dir) not in sys.path:
    sys.path.insert(0, str(builder_dir))

from mod_sources import ModrinthClient, RegistryLookupError


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._payload = payload or {}

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.requests = []

    def get(self, url, params=None, headers=None, timeout=None):
        self.requests.append((url, params, headers))
        if self.error:
            raise self.error
        return self.response


def test_lookup_returns_candidate_files_and_caches():
    session = FakeSession(FakeResponse(200, {"files": [
        {"url": "https://cdn.modrinth.com/data/x/a.jar", "filename": "a.jar", "size": 10,
         "hashes": {"sha1": "aa"}, "primary": True},
    ]}))
    client = ModrinthClient(user_agent="test/1.0", session=session)

    files = client.lookup_by_hash("aa" * 20)
    again = client.lookup_by_hash("aa" * 20)

    assert [f.url for f in files] == ["https://cdn.modrinth.com/data/x/a.jar"]
    assert files[0].primary
    assert again is files
    url, params, headers = session.requests[0]
    assert url.endswith("/version_file/" + "aa" * 20)
    assert params == {"algorithm": "sha1"}
    assert headers["User-Agent"] == "test/1.0"
    assert len(session.requests) == 1


def test_unknown_hash_is_empty():
    client = ModrinthClient(session=FakeSession(FakeResponse(404)))
    assert client.lookup_by_hash("ff" * 20) == []


def test_server_error_raises():
    client = ModrinthClient(session=FakeSession(FakeResponse(500)))
    with pytest.raises(RegistryLookupError, match="HTTP 500"):
        client.lookup_by_hash("ff" * 20)


def test_network_error_raises():
    client = ModrinthClient(session=FakeSession(error=requests.exceptions.ConnectionError("offline")))
    with pytest.raises(RegistryLookupError, match="offline"):
        client.lookup_by_hash("ff" * 20)
