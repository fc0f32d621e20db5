"""
Package Index Builder
=====================
Assembles the Modrinth `modrinth.index.json` manifest from classified mods and
stages the `.mrpack` archive (manifest + overrides/) in an explicit staging area.
"""
from __future__ import annotations
import json
import logging
import shutil
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field

from instance import LoaderInfo
from mod_classifier import ModClassification, Platform, Support

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1
GAME_ID = "minecraft"
MANIFEST_NAME = "modrinth.index.json"
OVERRIDES_DIR = "overrides"
_SKIP_NAMES = {".DS_Store", "Thumbs.db"}


# ═══════════════════════════════════════════════════════════════
#  Manifest Models
# ═══════════════════════════════════════════════════════════════

class FileEnv(BaseModel):
    client: Support
    server: Support


class PackageFileRecord(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    path: str
    hashes: Dict[str, str]
    env: FileEnv
    downloads: List[str]
    file_size: int = Field(alias="fileSize")


class PackageManifest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    format_version: int = Field(default=FORMAT_VERSION, alias="formatVersion")
    game: str = GAME_ID
    version_id: str = Field(alias="versionId")
    name: str
    summary: str = ""
    files: List[PackageFileRecord] = Field(default_factory=list)
    dependencies: Dict[str, str] = Field(default_factory=dict)


@dataclass
class ManifestBuild:
    manifest: PackageManifest
    overrides: List[ModClassification] = field(default_factory=list)
    excluded: List[ModClassification] = field(default_factory=list)


def file_record(c: ModClassification) -> PackageFileRecord:
    d = c.descriptor
    hashes = d.disk_hashes()
    return PackageFileRecord(
        path=f"mods/{d.filename}",
        hashes={"sha1": hashes["sha1"], "sha512": hashes["sha512"]},
        env=FileEnv(client=c.client, server=c.server),
        downloads=[c.resolution.url],
        file_size=d.file_size,
    )


def _included(c: ModClassification, target: Platform) -> bool:
    if target == Platform.SERVER:
        return c.server != Support.UNSUPPORTED
    return c.shipped


def build_manifest(
    classifications: Sequence[ModClassification],
    name: str,
    summary: str,
    loader: LoaderInfo,
    target: Platform = Platform.CLIENT,
    version_id: Optional[str] = None,
) -> ManifestBuild:
    """
    One record per included mod with a resolved download URL, sorted by path.
    Included mods without a URL land in `overrides`; mods with no support on the
    target land in `excluded`.
    """
    records = []
    overrides = []
    excluded = []
    for c in sorted(classifications, key=lambda c: c.filename):
        if not _included(c, target):
            excluded.append(c)
            continue
        if not c.resolution.resolved:
            overrides.append(c)
            continue
        records.append(file_record(c))

    manifest = PackageManifest(
        version_id=version_id or loader.minecraft,
        name=name,
        summary=summary or "",
        files=sorted(records, key=lambda r: r.path),
        dependencies=loader.dependencies(),
    )
    logger.info(
        f"Manifest ({target.value}): {len(records)} files, {len(overrides)} override mods, {len(excluded)} excluded"
    )
    return ManifestBuild(manifest=manifest, overrides=overrides, excluded=excluded)


def render_manifest(manifest: PackageManifest) -> str:
    """Stable JSON: identical input gives byte-identical output."""
    data = manifest.model_dump(mode="json", by_alias=True)
    return json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"


# ═══════════════════════════════════════════════════════════════
#  Staging
# ═══════════════════════════════════════════════════════════════

class StagingArea:
    """
    Scoped build directory. Wiped on entry and removed on every exit path:

        with StagingArea(root) as stage:
            stage.write_manifest(manifest)
            stage.build_archive(out)
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    @property
    def overrides(self) -> Path:
        return self.root / OVERRIDES_DIR

    def __enter__(self) -> "StagingArea":
        if self.root.exists():
            shutil.rmtree(self.root)
        self.overrides.mkdir(parents=True, exist_ok=True)
        return self

    def __exit__(self, exc_type, exc, tb):
        shutil.rmtree(self.root, ignore_errors=True)
        return False

    def write_manifest(self, manifest: PackageManifest) -> Path:
        path = self.root / MANIFEST_NAME
        path.write_text(render_manifest(manifest), encoding="utf-8")
        return path

    def add_override_mods(self, mods: Sequence[ModClassification]) -> int:
        dest_dir = self.overrides / "mods"
        dest_dir.mkdir(parents=True, exist_ok=True)
        for c in mods:
            shutil.copy2(c.descriptor.path, dest_dir / c.descriptor.disk_name)
            logger.info(f"Bundled {c.descriptor.disk_name} as override ({c.resolution.reason()})")
        return len(mods)

    def add_override_dir(self, src: Path, dest: str) -> bool:
        if not src.is_dir():
            logger.warning(f"Override directory does not exist: {src}")
            return False
        shutil.copytree(src, self.overrides / dest, dirs_exist_ok=True)
        return True

    def add_override_file(self, src: Path, dest: str) -> bool:
        if not src.is_file():
            logger.warning(f"Override file does not exist: {src}")
            return False
        target = self.overrides / dest
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, target)
        return True

    def add_file(self, src: Path, dest: str) -> bool:
        """Copy into the archive root (outside overrides/)."""
        if not src.is_file():
            logger.warning(f"File does not exist: {src}")
            return False
        target = self.root / dest
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src, target)
        return True

    def build_archive(self, output_path: Path) -> Path:
        output_path.parent.mkdir(parents=True, exist_ok=True)
        files = sorted(
            (p.relative_to(self.root).as_posix(), p)
            for p in self.root.rglob("*")
            if p.is_file() and p.name not in _SKIP_NAMES
        )
        with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
            for arcname, p in files:
                zf.write(p, arcname)
        size_mb = output_path.stat().st_size / 1024 / 1024
        logger.info(f"Pack built: {output_path} ({len(files)} entries, {size_mb:.2f} MB)")
        return output_path
