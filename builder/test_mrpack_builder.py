from pathlib import Path
import json
import sys
import zipfile

import pytest

here = Path(__file__).resolve()
builder_dir = here.parent
if str(builder_dir) not in sys.path:
    sys.path.insert(0, str(builder_dir))

from instance import LoaderInfo
from mod_classifier import DownloadResolution, ModClassification, Platform, ResolutionStatus, Support
from mod_index import DownloadMode, ModDescriptor, ModSide
from mrpack_builder import StagingArea, build_manifest, render_manifest

LOADER = LoaderInfo("1.21.1", "neoforge", "21.1.77")


def classification(tmp_path, filename, client, server, url="auto", enabled=True):
    disk = tmp_path / (filename if enabled else filename + ".disabled")
    disk.write_bytes(filename.encode() * 3)
    d = ModDescriptor(
        filename=filename, name=filename, version="1", side=ModSide.BOTH,
        download_mode=DownloadMode.DIRECT_URL, path=disk, disabled=not enabled,
        file_size=disk.stat().st_size, last_modified="",
    )
    if url == "auto":
        url = f"https://cdn.example/{filename}"
    res = DownloadResolution(ResolutionStatus.DIRECT, url=url) if url else DownloadResolution(ResolutionStatus.NOT_FOUND)
    return ModClassification(descriptor=d, client=client, server=server, enabled=enabled, resolution=res)


def test_manifest_fields_and_records(tmp_path: Path):
    cs = [
        classification(tmp_path, "b.jar", Support.REQUIRED, Support.REQUIRED),
        classification(tmp_path, "a.jar", Support.OPTIONAL, Support.UNSUPPORTED, enabled=False),
    ]
    build = build_manifest(cs, name="Pack", summary="A pack", loader=LOADER)
    m = json.loads(render_manifest(build.manifest))

    assert m["formatVersion"] == 1
    assert m["game"] == "minecraft"
    assert m["versionId"] == "1.21.1"
    assert m["dependencies"] == {"minecraft": "1.21.1", "neoforge": "21.1.77"}
    assert [f["path"] for f in m["files"]] == ["mods/a.jar", "mods/b.jar"]
    a = m["files"][0]
    assert a["env"] == {"client": "optional", "server": "unsupported"}
    assert a["downloads"] == ["https://cdn.example/a.jar"]
    assert a["fileSize"] == cs[1].descriptor.file_size
    assert set(a["hashes"]) == {"sha1", "sha512"}


def test_unresolved_go_to_overrides_and_unsupported_are_excluded(tmp_path: Path):
    cs = [
        classification(tmp_path, "resolved.jar", Support.REQUIRED, Support.REQUIRED),
        classification(tmp_path, "local.jar", Support.REQUIRED, Support.REQUIRED, url=None),
        classification(tmp_path, "nowhere.jar", Support.UNSUPPORTED, Support.UNSUPPORTED),
    ]
    build = build_manifest(cs, name="P", summary="", loader=LOADER)
    assert [f.path for f in build.manifest.files] == ["mods/resolved.jar"]
    assert [c.filename for c in build.overrides] == ["local.jar"]
    assert [c.filename for c in build.excluded] == ["nowhere.jar"]


def test_server_target_keeps_only_server_supported(tmp_path: Path):
    cs = [
        classification(tmp_path, "both.jar", Support.REQUIRED, Support.REQUIRED),
        classification(tmp_path, "client.jar", Support.REQUIRED, Support.UNSUPPORTED),
    ]
    build = build_manifest(cs, name="P", summary="", loader=LOADER, target=Platform.SERVER)
    assert [f.path for f in build.manifest.files] == ["mods/both.jar"]


def test_render_is_deterministic(tmp_path: Path):
    cs = [classification(tmp_path, n, Support.REQUIRED, Support.REQUIRED) for n in ("x.jar", "y.jar")]
    first = render_manifest(build_manifest(cs, name="P", summary="s", loader=LOADER).manifest)
    second = render_manifest(build_manifest(list(reversed(cs)), name="P", summary="s", loader=LOADER).manifest)
    assert first == second


def test_staging_area_builds_archive_and_cleans_up(tmp_path: Path):
    cs = [
        classification(tmp_path, "ok.jar", Support.REQUIRED, Support.REQUIRED),
        classification(tmp_path, "local.jar", Support.REQUIRED, Support.REQUIRED, url=None),
    ]
    build = build_manifest(cs, name="P", summary="", loader=LOADER)
    kubejs = tmp_path / "kubejs"
    (kubejs / "server_scripts").mkdir(parents=True)
    (kubejs / "server_scripts" / "main.js").write_text("//", encoding="utf-8")
    (kubejs / ".DS_Store").write_bytes(b"")
    options = tmp_path / "options.txt"
    options.write_text("fov:90\n", encoding="utf-8")

    stage_root = tmp_path / "stage"
    out = tmp_path / "out" / "P-v1.mrpack"
    with StagingArea(stage_root) as stage:
        stage.write_manifest(build.manifest)
        stage.add_override_mods(build.overrides)
        assert stage.add_override_dir(kubejs, "kubejs")
        assert not stage.add_override_dir(tmp_path / "missing", "missing")
        assert stage.add_override_file(options, "configureddefaults/options.txt")
        stage.build_archive(out)

    assert not stage_root.exists()
    with zipfile.ZipFile(out) as zf:
        names = zf.namelist()
    assert names == sorted(names)
    assert "modrinth.index.json" in names
    assert "overrides/mods/local.jar" in names
    assert "overrides/kubejs/server_scripts/main.js" in names
    assert "overrides/configureddefaults/options.txt" in names
    assert not any(n.endswith(".DS_Store") for n in names)


def test_staging_area_is_removed_on_error(tmp_path: Path):
    stage_root = tmp_path / "stage"
    (stage_root / "leftover").mkdir(parents=True)
    with pytest.raises(RuntimeError):
        with StagingArea(stage_root) as stage:
            assert not (stage_root / "leftover").exists()
            raise RuntimeError("boom")
    assert not stage_root.exists()
