"""
Build orchestration: instance → verified index → classification → rules, then
either the client `.mrpack` or the server tree.
"""
from __future__ import annotations
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from instance import LoaderInfo, find_minecraft_dir, read_instance
from mod_classifier import HashLookup, ModClassification, Platform, Support, classify_mods
from mod_index import read_mod_index
from mod_rules import ModRules, apply_rules
from mod_sources import ModrinthClient
from mrpack_builder import ManifestBuild, StagingArea, build_manifest
from pack_config import PackInfo, Settings
from server_setup import accept_eula, provision_runtime, write_launch_scripts, write_server_info, write_server_properties

logger = logging.getLogger(__name__)


@dataclass
class PreparedMods:
    loader: LoaderInfo
    minecraft_dir: Path
    classifications: List[ModClassification]


@dataclass
class BuildReport:
    output: Path
    build: ManifestBuild
    assets: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def overrides(self) -> List[ModClassification]:
        return self.build.overrides


@dataclass
class ServerBuildReport:
    server_dir: Path
    loader: LoaderInfo
    copied: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    assets: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    server_jar: Optional[Path] = None
    info: dict = field(default_factory=dict)

    @property
    def total(self) -> int:
        return len(self.copied) + len(self.errors)


def prepare_mods(
    instance_path: Path,
    pack_info: PackInfo,
    lookup: Optional[HashLookup] = None,
    resolve: bool = True,
) -> PreparedMods:
    """Read and verify the index, classify, and apply both rule sets."""
    loader = read_instance(instance_path)
    minecraft_dir = find_minecraft_dir(instance_path)
    descriptors = read_mod_index(minecraft_dir / "mods")

    classifications = classify_mods(descriptors, lookup=lookup, include_all=pack_info.include_all, resolve=resolve)
    classifications = apply_rules(classifications, ModRules.from_rule_set(pack_info.rules.client), Platform.CLIENT)
    classifications = apply_rules(classifications, ModRules.from_rule_set(pack_info.rules.server), Platform.SERVER)
    return PreparedMods(loader=loader, minecraft_dir=minecraft_dir, classifications=classifications)


def _find_icon(settings: Settings, pack_info: PackInfo, minecraft_dir: Path) -> Optional[Path]:
    candidates = []
    if pack_info.icon:
        candidates.append(settings.root / pack_info.icon)
    candidates.append(minecraft_dir / "icon.png")
    return next((c for c in candidates if c.is_file()), None)


def build_client_package(
    settings: Settings,
    pack_info: PackInfo,
    lookup: Optional[HashLookup] = None,
    output: Optional[Path] = None,
) -> BuildReport:
    instance_path = settings.require_instance()
    if lookup is None:
        lookup = ModrinthClient(user_agent=settings.user_agent)

    prepared = prepare_mods(instance_path, pack_info, lookup=lookup, resolve=True)
    build = build_manifest(
        prepared.classifications,
        name=pack_info.name,
        summary=pack_info.summary,
        loader=prepared.loader,
        target=Platform.CLIENT,
    )

    output = output or settings.releases_dir / pack_info.archive_name()
    report = BuildReport(output=output, build=build)
    mc = prepared.minecraft_dir

    with StagingArea(settings.releases_dir / ".staging") as stage:
        stage.write_manifest(build.manifest)
        stage.add_override_mods(build.overrides)
        for d in pack_info.override_dirs:
            if stage.add_override_dir(mc / d, d):
                report.assets.append(d)
        for f in pack_info.override_files:
            if stage.add_override_file(mc / f.source, f.target):
                report.assets.append(f.target)
        icon = _find_icon(settings, pack_info, mc)
        if icon:
            stage.add_file(icon, "icon.png")
            report.assets.append("icon.png")
        stage.build_archive(output)

    for c in build.overrides:
        if c.resolution.error:
            report.errors.append(f"{c.filename}: {c.resolution.reason()}")
    return report


def _reset_dir(path: Path) -> None:
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True, exist_ok=True)


def build_server_tree(
    settings: Settings,
    pack_info: PackInfo,
    install_runtime: bool = True,
) -> ServerBuildReport:
    """
    Server mods are copied from the instance (disabled ones keep their suffix).
    The mods and asset directories are rebuilt on every run; server.properties
    and anything else the operator changed in the tree are left alone.
    """
    instance_path = settings.require_instance()
    prepared = prepare_mods(instance_path, pack_info, resolve=False)
    server_dir = settings.server_dir
    report = ServerBuildReport(server_dir=server_dir, loader=prepared.loader)

    mods_dir = server_dir / "mods"
    _reset_dir(mods_dir)
    for c in prepared.classifications:
        if c.server == Support.UNSUPPORTED:
            report.skipped.append(c.filename)
            continue
        try:
            shutil.copy2(c.descriptor.path, mods_dir / c.descriptor.disk_name)
            report.copied.append(c.descriptor.disk_name)
        except OSError as e:
            logger.warning(f"Failed to copy {c.descriptor.disk_name}: {e}")
            report.errors.append(f"{c.descriptor.disk_name}: {e}")
    logger.info(f"Server mods: {len(report.copied)} copied, {len(report.skipped)} client-only skipped")

    for d in pack_info.server_dirs:
        src = prepared.minecraft_dir / d
        if not src.is_dir():
            logger.info(f"Skipped {d}: not found in instance")
            continue
        _reset_dir(server_dir / d)
        shutil.copytree(src, server_dir / d, dirs_exist_ok=True)
        report.assets.append(d)

    server_jar = "server.jar"
    if install_runtime:
        report.server_jar = provision_runtime(prepared.loader, server_dir, settings.cache_dir, settings.user_agent)
        server_jar = report.server_jar.name

    write_launch_scripts(server_dir, prepared.loader, server_jar=server_jar, pack_name=pack_info.name)
    write_server_properties(server_dir, pack_info.name)
    accept_eula(server_dir)
    report.info = write_server_info(
        server_dir,
        name=pack_info.name,
        version=pack_info.version,
        loader=prepared.loader,
        total=report.total,
        successful=len(report.copied),
        failed=len(report.errors),
    )
    return report
