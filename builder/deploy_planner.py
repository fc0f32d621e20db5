"""
Remote Diff Planner
===================
Computes the minimal set of uploads and deletions that brings a remote server
directory in line with the local server tree.

Two sync policies, decided by the top-level path segment:
    exact-mirror  remote files absent locally are deleted (mods, libraries, ...)
    upload-only   local files are pushed, extra remote files are left alone
                  (config/, world/, logs, ...)

Protected files (bans, whitelist, ops) are never overwritten once they exist on
the remote. A file whose remote stat fails is left out of the plan entirely.
Change detection compares sizes only: a same-size edit is not seen.
"""
from __future__ import annotations
import logging
import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from sftp_client import RemoteFileSystem

logger = logging.getLogger(__name__)

EXACT_SYNC_DIRS = ("mods", "libraries", "kubejs", "configureddefaults")
PROTECTED_FILES = (
    "banned-ips.json",
    "banned-players.json",
    "blacklist.json",
    "whitelist.json",
    "ops.json",
)


class SyncPolicy(str, Enum):
    EXACT_MIRROR = "exact-mirror"
    UPLOAD_ONLY = "upload-only"


@dataclass(frozen=True)
class DeployPolicy:
    exact_sync_dirs: Tuple[str, ...] = EXACT_SYNC_DIRS
    protected_files: Tuple[str, ...] = PROTECTED_FILES
    skip_dir: Optional[str] = None

    @classmethod
    def default(cls, skip_libraries: bool = False) -> "DeployPolicy":
        return cls(skip_dir="libraries" if skip_libraries else None)

    def policy_for(self, rel_path: str) -> SyncPolicy:
        top = rel_path.split("/", 1)[0]
        return SyncPolicy.EXACT_MIRROR if top in self.exact_sync_dirs else SyncPolicy.UPLOAD_ONLY

    def is_protected(self, rel_path: str) -> bool:
        return posixpath.basename(rel_path) in self.protected_files

    def is_skipped(self, rel_path: str) -> bool:
        return bool(self.skip_dir) and (rel_path == self.skip_dir or rel_path.startswith(self.skip_dir + "/"))

    @property
    def mirror_dirs(self) -> List[str]:
        return [d for d in self.exact_sync_dirs if d != self.skip_dir]


@dataclass(frozen=True)
class SyncItem:
    path: str                   # relative, POSIX separators
    kind: str                   # "file" | "directory"
    size: int
    policy: SyncPolicy
    local_path: Optional[Path] = None

    @property
    def is_file(self) -> bool:
        return self.kind == "file"


@dataclass(frozen=True)
class DeletionItem:
    path: str                   # relative to the remote root
    remote_path: str


@dataclass
class DeploymentPlan:
    to_upload: List[SyncItem] = field(default_factory=list)
    to_delete: List[DeletionItem] = field(default_factory=list)
    unchanged: List[SyncItem] = field(default_factory=list)
    protected: List[SyncItem] = field(default_factory=list)
    unknown: List[SyncItem] = field(default_factory=list)

    @property
    def has_changes(self) -> bool:
        return bool(self.to_upload or self.to_delete)

    @property
    def upload_bytes(self) -> int:
        return sum(i.size for i in self.to_upload)

    def summary(self) -> str:
        text = (
            f"{len(self.to_upload)} to upload, {len(self.unchanged)} unchanged, "
            f"{len(self.to_delete)} to delete, {len(self.protected)} protected"
        )
        if self.unknown:
            text += f", {len(self.unknown)} skipped (remote state unknown)"
        return text


@dataclass
class RemoteSnapshot:
    """What the planner knows about the remote: sizes by relative path, paths
    whose stat failed, and the recursive file listing of every exact-mirror
    directory that could be read."""
    root: str
    sizes: Dict[str, int] = field(default_factory=dict)
    unknown: Set[str] = field(default_factory=set)
    mirror_listings: Dict[str, List[str]] = field(default_factory=dict)

    def exists(self, rel_path: str) -> bool:
        return rel_path in self.sizes


# ═══════════════════════════════════════════════════════════════
#  Scanning
# ═══════════════════════════════════════════════════════════════

def scan_local_tree(root: Path, policy: DeployPolicy) -> List[SyncItem]:
    if not root.is_dir():
        raise FileNotFoundError(f"Server directory not found: {root}")

    items = []
    for p in sorted(root.rglob("*")):
        rel = p.relative_to(root).as_posix()
        if policy.is_skipped(rel):
            continue
        if p.is_dir():
            items.append(SyncItem(rel, "directory", 0, policy.policy_for(rel), p))
        elif p.is_file():
            items.append(SyncItem(rel, "file", p.stat().st_size, policy.policy_for(rel), p))
    logger.info(f"Scanned {sum(1 for i in items if i.is_file)} local files under {root}")
    return items


def snapshot_remote(
    remote: RemoteFileSystem,
    remote_root: str,
    items: Sequence[SyncItem],
    policy: DeployPolicy,
) -> RemoteSnapshot:
    snapshot = RemoteSnapshot(root=remote_root)

    for item in items:
        if not item.is_file:
            continue
        try:
            entry = remote.stat(posixpath.join(remote_root, item.path))
        except Exception as e:
            logger.warning(f"Could not stat remote file {item.path}, skipping it: {e}")
            snapshot.unknown.add(item.path)
            continue
        if entry is not None and not entry.is_dir:
            snapshot.sizes[item.path] = entry.size

    for mirror in policy.mirror_dirs:
        remote_dir = posixpath.join(remote_root, mirror)
        try:
            entry = remote.stat(remote_dir)
        except Exception as e:
            logger.warning(f"Could not stat remote directory {mirror}, skipping deletions there: {e}")
            continue
        if entry is None or not entry.is_dir:
            continue
        try:
            files = remote.list_files(remote_dir)
        except Exception as e:
            logger.warning(f"Could not list remote directory {mirror}: {e}")
            continue
        snapshot.mirror_listings[mirror] = sorted(
            posixpath.relpath(f.path, remote_root) for f in files
        )
    return snapshot


# ═══════════════════════════════════════════════════════════════
#  Planning
# ═══════════════════════════════════════════════════════════════

def plan_deployment(items: Sequence[SyncItem], snapshot: RemoteSnapshot, policy: DeployPolicy) -> DeploymentPlan:
    """Pure: decides from the local items and the remote snapshot alone."""
    plan = DeploymentPlan()
    local_files = set()

    for item in items:
        if not item.is_file:
            continue
        local_files.add(item.path)
        if item.path in snapshot.unknown:
            plan.unknown.append(item)
            continue
        exists = snapshot.exists(item.path)
        if exists and policy.is_protected(item.path):
            plan.protected.append(item)
        elif not exists or snapshot.sizes[item.path] != item.size:
            plan.to_upload.append(item)
        else:
            plan.unchanged.append(item)

    for mirror in policy.mirror_dirs:
        for rel in snapshot.mirror_listings.get(mirror, []):
            if rel in local_files or policy.is_protected(rel):
                continue
            plan.to_delete.append(DeletionItem(rel, posixpath.join(snapshot.root, rel)))

    plan.to_delete.sort(key=lambda d: d.path)
    logger.info(f"Deployment analysis: {plan.summary()}")
    return plan
