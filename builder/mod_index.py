"""
Mod Metadata Index Reader
=========================
Reads the per-mod descriptor records PrismLauncher keeps in `mods/.index/*.toml`
(packwiz format) and cross-checks them one to one against the binaries present in
the mods directory. Any mismatch aborts the build with the complete list of
offenders so the operator can fix everything in one pass.
"""
from __future__ import annotations
import hashlib
import logging
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

INDEX_DIR_NAME = ".index"
DISABLED_SUFFIX = ".disabled"


# ═══════════════════════════════════════════════════════════════
#  Data Types
# ═══════════════════════════════════════════════════════════════

class ModSide(str, Enum):
    CLIENT = "client"
    SERVER = "server"
    BOTH = "both"


class DownloadMode(str, Enum):
    DIRECT_URL = "direct-url"
    HASH_LOOKUP = "hash-lookup"
    NONE = "none"


# packwiz `[download] mode` values
_PACKWIZ_MODES = {
    "url": DownloadMode.DIRECT_URL,
    "": DownloadMode.DIRECT_URL,
    "metadata:curseforge": DownloadMode.HASH_LOOKUP,
}


@dataclass
class ModDescriptor:
    filename: str
    name: str
    version: str
    side: ModSide
    download_mode: DownloadMode
    path: Path
    disabled: bool
    file_size: int
    last_modified: str
    url: Optional[str] = None
    content_hash: Optional[str] = None
    hash_format: Optional[str] = None
    modrinth_id: Optional[str] = None
    modrinth_version: Optional[str] = None
    index_file: Optional[str] = None
    _hashes: dict = field(default_factory=dict, repr=False, compare=False)

    @property
    def disk_name(self) -> str:
        return self.path.name

    def disk_hashes(self) -> dict:
        """sha1/sha512 of the binary on disk; computed once."""
        if not self._hashes:
            self._hashes.update(compute_file_hashes(self.path))
        return self._hashes


class IndexMismatchError(Exception):
    """The mods directory and its descriptor index are not in 1:1 correspondence."""

    def __init__(
        self,
        missing_descriptors: list[str],
        missing_binaries: list[str],
        invalid_descriptors: list[str] | None = None,
        conflicts: list[str] | None = None,
    ):
        self.missing_descriptors = sorted(missing_descriptors)
        self.missing_binaries = sorted(missing_binaries)
        self.invalid_descriptors = sorted(invalid_descriptors or [])
        self.conflicts = sorted(conflicts or [])
        super().__init__(self.report())

    @property
    def offenders(self) -> list[str]:
        return self.missing_descriptors + self.missing_binaries + self.invalid_descriptors + self.conflicts

    def report(self) -> str:
        lines = [f"Mod index mismatch ({len(self.offenders)} problems)"]
        sections = [
            ("Mod files without an index entry", self.missing_descriptors),
            ("Index entries without a mod file", self.missing_binaries),
            ("Unreadable or duplicate index files", self.invalid_descriptors),
            ("Mods present both enabled and disabled", self.conflicts),
        ]
        for title, names in sections:
            if names:
                lines.append(f"{title}:")
                lines.extend(f"  - {n}" for n in names)
        return "\n".join(lines)


# ═══════════════════════════════════════════════════════════════
#  Hashing
# ═══════════════════════════════════════════════════════════════

def compute_file_hashes(file_path: Path) -> dict:
    sha1 = hashlib.sha1()
    sha512 = hashlib.sha512()
    with open(file_path, 'rb') as f:
        while True:
            chunk = f.read(1024 * 128)
            if not chunk:
                break
            sha1.update(chunk)
            sha512.update(chunk)
    return {"sha1": sha1.hexdigest(), "sha512": sha512.hexdigest()}


# ═══════════════════════════════════════════════════════════════
#  Scanning
# ═══════════════════════════════════════════════════════════════

def normalize_filename(name: str) -> str:
    return name[:-len(DISABLED_SUFFIX)] if name.endswith(DISABLED_SUFFIX) else name


def list_mod_binaries(mods_dir: Path) -> list[str]:
    if not mods_dir.is_dir():
        raise FileNotFoundError(f"Mods directory not found: {mods_dir}")
    return sorted(
        p.name for p in mods_dir.iterdir()
        if p.is_file() and (p.name.endswith(".jar") or p.name.endswith(DISABLED_SUFFIX))
    )


def list_index_files(mods_dir: Path) -> list[Path]:
    index_dir = mods_dir / INDEX_DIR_NAME
    if not index_dir.is_dir():
        raise FileNotFoundError(f"Mods index directory not found: {index_dir}")
    return sorted(
        p for p in index_dir.iterdir()
        if p.is_file() and p.suffix == ".toml" and not p.name.startswith(".")
    )


def _read_toml(path: Path) -> dict:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _descriptor_from_toml(data: dict, disk_path: Path, index_file: str) -> ModDescriptor:
    download = data.get("download") or {}
    mode_raw = str(download.get("mode", "")).strip().lower()
    url = download.get("url") or data.get("url") or None
    mode = _PACKWIZ_MODES.get(mode_raw, DownloadMode.NONE)
    if mode == DownloadMode.DIRECT_URL and not url:
        mode = DownloadMode.NONE

    try:
        side = ModSide(str(data.get("side") or "both").lower())
    except ValueError:
        logger.warning(f"{index_file}: unknown side {data.get('side')!r}, treating as both")
        side = ModSide.BOTH

    modrinth = ((data.get("update") or {}).get("modrinth") or {})
    st = disk_path.stat()
    return ModDescriptor(
        filename=normalize_filename(data["filename"]),
        name=data.get("name") or "Unknown",
        version=str(data.get("version") or (modrinth.get("version") if modrinth else None) or "Unknown"),
        side=side,
        download_mode=mode,
        path=disk_path,
        disabled=disk_path.name.endswith(DISABLED_SUFFIX),
        file_size=st.st_size,
        last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
        url=url if mode == DownloadMode.DIRECT_URL else None,
        content_hash=download.get("hash"),
        hash_format=download.get("hash-format"),
        modrinth_id=modrinth.get("mod-id"),
        modrinth_version=modrinth.get("version"),
        index_file=index_file,
    )


def read_mod_index(mods_dir: Path) -> list[ModDescriptor]:
    """
    Read every descriptor and pair it with its binary.

    Raises IndexMismatchError listing every binary without a descriptor, every
    descriptor without a binary, and every unreadable or duplicate descriptor.
    Returns descriptors sorted by filename.
    """
    binaries = list_mod_binaries(mods_dir)
    index_files = list_index_files(mods_dir)
    logger.info(f"Found {len(binaries)} mod files and {len(index_files)} index files in {mods_dir}")

    binary_set = set(binaries)
    parsed: dict[str, tuple[dict, str]] = {}
    invalid: list[str] = []

    for index_path in index_files:
        try:
            data = _read_toml(index_path)
        except (tomllib.TOMLDecodeError, OSError, UnicodeDecodeError) as e:
            logger.warning(f"Failed to read index file {index_path.name}: {e}")
            invalid.append(index_path.name)
            continue
        filename = data.get("filename")
        if not isinstance(filename, str) or not filename:
            logger.warning(f"Index file {index_path.name} has no filename")
            invalid.append(index_path.name)
            continue
        filename = normalize_filename(filename)
        if filename in parsed:
            invalid.append(f"{index_path.name} (duplicates {parsed[filename][1]} for {filename})")
            continue
        parsed[filename] = (data, index_path.name)

    missing_binaries: list[str] = []
    conflicts: list[str] = []
    matched: dict[str, str] = {}
    for filename in parsed:
        enabled = filename in binary_set
        disabled = f"{filename}{DISABLED_SUFFIX}" in binary_set
        if enabled and disabled:
            conflicts.append(filename)
        elif enabled:
            matched[filename] = filename
        elif disabled:
            matched[filename] = f"{filename}{DISABLED_SUFFIX}"
        else:
            missing_binaries.append(filename)

    missing_descriptors = [b for b in binaries if normalize_filename(b) not in parsed]

    if missing_descriptors or missing_binaries or invalid or conflicts:
        err = IndexMismatchError(missing_descriptors, missing_binaries, invalid, conflicts)
        logger.error(err.report())
        raise err

    descriptors = [
        _descriptor_from_toml(parsed[filename][0], mods_dir / disk_name, parsed[filename][1])
        for filename, disk_name in sorted(matched.items())
    ]
    logger.info(f"Parsed {len(descriptors)} mod descriptors")
    return descriptors
