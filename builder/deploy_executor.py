"""
Deployment Executor
===================
Applies a DeploymentPlan to the remote: deletions first (failures are warnings),
then uploads in plan order (the first failure aborts the run). There is no
rollback; a failed run reports how far it got.
"""
from __future__ import annotations
import logging
import posixpath
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from deploy_planner import DeploymentPlan, DeployPolicy, SyncItem, plan_deployment, scan_local_tree, snapshot_remote
from sftp_client import RemoteFileSystem

logger = logging.getLogger(__name__)

# (item, index, total) before each upload
UploadStarted = Callable[[SyncItem, int, int], None]
# (transferred, total) bytes for the current file
TransferProgress = Callable[[int, int], None]
Confirm = Callable[[DeploymentPlan], bool]


class DeploymentError(Exception):
    def __init__(self, message: str, completed: int = 0, remaining: int = 0, failed_path: Optional[str] = None):
        self.completed = completed
        self.remaining = remaining
        self.failed_path = failed_path
        super().__init__(message)


@dataclass
class DeploymentResult:
    plan: DeploymentPlan
    uploaded: List[str] = field(default_factory=list)
    deleted: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def up_to_date(self) -> bool:
        return not self.plan.has_changes


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    value = float(size)
    for unit in ("B", "KB", "MB", "GB"):
        if value < 1024:
            return f"{round(value, 1):g} {unit}"
        value /= 1024
    return f"{round(value, 1):g} TB"


def execute_plan(
    plan: DeploymentPlan,
    remote: RemoteFileSystem,
    remote_root: str,
    on_upload: Optional[UploadStarted] = None,
    progress: Optional[TransferProgress] = None,
) -> DeploymentResult:
    result = DeploymentResult(plan=plan)

    try:
        remote.mkdir(remote_root)
    except Exception as e:
        raise DeploymentError(
            f"Failed to create remote directory {remote_root}: {e}",
            remaining=len(plan.to_upload), failed_path=remote_root,
        ) from e

    for item in plan.to_delete:
        try:
            remote.delete(item.remote_path)
            result.deleted.append(item.path)
            logger.info(f"Deleted {item.path}")
        except Exception as e:
            msg = f"Could not delete {item.path}: {e}"
            logger.warning(msg)
            result.warnings.append(msg)

    created_dirs = {remote_root}
    total = len(plan.to_upload)
    for i, item in enumerate(plan.to_upload, start=1):
        target = posixpath.join(remote_root, item.path)
        parent = posixpath.dirname(target)
        if on_upload:
            on_upload(item, i, total)
        try:
            if parent not in created_dirs:
                remote.mkdir(parent)
                created_dirs.add(parent)
            remote.put(item.local_path, target, callback=progress)
        except Exception as e:
            logger.error(f"Upload failed at {item.path} ({i - 1}/{total} done): {e}")
            raise DeploymentError(
                f"Upload of {item.path} failed: {e}",
                completed=i - 1, remaining=total - (i - 1), failed_path=item.path,
            ) from e
        result.uploaded.append(item.path)
        logger.debug(f"Uploaded {item.path} ({format_bytes(item.size)})")

    logger.info(f"Deployment finished: {len(result.uploaded)} uploaded, {len(result.deleted)} deleted, {len(result.warnings)} warnings")
    return result


def deploy(
    server_dir: Path,
    remote: RemoteFileSystem,
    remote_root: str,
    policy: DeployPolicy,
    auto_confirm: bool = False,
    confirm: Optional[Confirm] = None,
    on_upload: Optional[UploadStarted] = None,
    progress: Optional[TransferProgress] = None,
) -> DeploymentResult:
    """
    Scan, plan, confirm (unless there is nothing to do or `auto_confirm`), execute.
    Without `auto_confirm` a `confirm` callback is required.
    """
    if not auto_confirm and confirm is None:
        raise ValueError("deploy needs a confirm callback unless auto_confirm is set")

    items = scan_local_tree(server_dir, policy)
    snapshot = snapshot_remote(remote, remote_root, items, policy)
    plan = plan_deployment(items, snapshot, policy)

    if not plan.has_changes:
        logger.info("No changes needed, remote is up to date")
        return DeploymentResult(plan=plan)

    if not auto_confirm and not confirm(plan):
        logger.info("Deployment cancelled")
        return DeploymentResult(plan=plan, cancelled=True)

    return execute_plan(plan, remote, remote_root, on_upload=on_upload, progress=progress)
