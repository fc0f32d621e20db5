from pathlib import Path
import sys

import pytest

here = Path(__file__).resolve()
builder_dir = here.parent
if str(builder_dir) not in sys.path:
    sys.path.insert(0, str(builder_dir))

from mod_classifier import (
    Platform, ResolutionStatus, Support, classify, classify_mods, resolve_download,
)
from mod_index import DownloadMode, ModDescriptor, ModSide
from mod_sources import RegistryLookupError, RemoteFile


def make_descriptor(tmp_path: Path, filename: str, side=ModSide.BOTH, mode=DownloadMode.HASH_LOOKUP,
                    url=None, disabled=False) -> ModDescriptor:
    disk = tmp_path / (filename + (".disabled" if disabled else ""))
    disk.write_bytes(filename.encode())
    return ModDescriptor(
        filename=filename, name=filename, version="1.0", side=side, download_mode=mode,
        path=disk, disabled=disabled, file_size=disk.stat().st_size,
        last_modified="2024-01-01T00:00:00+00:00", url=url,
    )


class StubLookup:
    def __init__(self, results=None, error=None):
        self.results = results or []
        self.error = error
        self.calls = []

    def lookup_by_hash(self, file_hash, algorithm="sha1"):
        self.calls.append((algorithm, file_hash))
        if self.error:
            raise self.error
        return self.results


def remote(url):
    return RemoteFile(url=url, filename=url.rsplit("/", 1)[-1], size=1)


@pytest.mark.parametrize("side,disabled,client,server", [
    (ModSide.BOTH, False, Support.REQUIRED, Support.REQUIRED),
    (ModSide.CLIENT, False, Support.REQUIRED, Support.UNSUPPORTED),
    (ModSide.SERVER, False, Support.UNSUPPORTED, Support.REQUIRED),
    (ModSide.BOTH, True, Support.OPTIONAL, Support.OPTIONAL),
    (ModSide.CLIENT, True, Support.OPTIONAL, Support.UNSUPPORTED),
    (ModSide.SERVER, True, Support.UNSUPPORTED, Support.OPTIONAL),
])
def test_truth_table(tmp_path: Path, side, disabled, client, server):
    c = classify(make_descriptor(tmp_path, "m.jar", side=side, disabled=disabled), disabled)
    assert (c.client, c.server) == (client, server)
    assert c.enabled is not disabled


def test_disabling_never_makes_a_supported_side_unsupported(tmp_path: Path):
    for side in ModSide:
        d = make_descriptor(tmp_path, f"{side.value}.jar", side=side)
        on, off = classify(d, False), classify(d, True)
        for platform in Platform:
            if on.support(platform) == Support.REQUIRED:
                assert off.support(platform) == Support.OPTIONAL


def test_include_all_ships_server_mods_to_client(tmp_path: Path):
    d = make_descriptor(tmp_path, "srv.jar", side=ModSide.SERVER)
    c = classify(d, False, include_all=True)
    assert c.client == Support.REQUIRED
    assert c.server == Support.REQUIRED


def test_direct_url_needs_no_lookup(tmp_path: Path):
    d = make_descriptor(tmp_path, "a.jar", mode=DownloadMode.DIRECT_URL, url="https://cdn.example/a.jar")
    lookup = StubLookup()
    res = resolve_download(d, lookup)
    assert res.status == ResolutionStatus.DIRECT
    assert res.url == "https://cdn.example/a.jar"
    assert lookup.calls == []


def test_hash_lookup_single_match_resolves(tmp_path: Path):
    d = make_descriptor(tmp_path, "b.jar")
    lookup = StubLookup([remote("https://cdn.modrinth.com/b.jar")])
    res = resolve_download(d, lookup)
    assert res.status == ResolutionStatus.RESOLVED
    assert res.url == "https://cdn.modrinth.com/b.jar"
    assert lookup.calls == [("sha1", d.disk_hashes()["sha1"])]


def test_not_found_and_ambiguous_are_distinct(tmp_path: Path):
    d = make_descriptor(tmp_path, "c.jar")
    none = resolve_download(d, StubLookup([]))
    many = resolve_download(d, StubLookup([remote("https://x/1.jar"), remote("https://x/2.jar")]))
    assert none.status == ResolutionStatus.NOT_FOUND and not none.resolved
    assert many.status == ResolutionStatus.AMBIGUOUS and not many.resolved
    assert many.candidates == 2
    assert "2 registry matches" in many.reason()


def test_lookup_error_is_per_item(tmp_path: Path):
    d = make_descriptor(tmp_path, "d.jar")
    res = resolve_download(d, StubLookup(error=RegistryLookupError("HTTP 503")))
    assert res.status == ResolutionStatus.NOT_FOUND
    assert "HTTP 503" in res.error


def test_no_download_mode_has_no_source(tmp_path: Path):
    d = make_descriptor(tmp_path, "e.jar", mode=DownloadMode.NONE)
    assert resolve_download(d, StubLookup()).status == ResolutionStatus.NO_SOURCE


def test_classify_mods_orders_by_filename(tmp_path: Path):
    ds = [make_descriptor(tmp_path, n, mode=DownloadMode.NONE) for n in ("b.jar", "a.jar", "c.jar")]
    out = classify_mods(ds, lookup=None)
    assert [c.filename for c in out] == ["a.jar", "b.jar", "c.jar"]
    assert all(c.resolution.status == ResolutionStatus.NO_SOURCE for c in out)
