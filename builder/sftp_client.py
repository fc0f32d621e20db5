"""
Remote filesystem access for deployments.

`RemoteFileSystem` is the interface the deploy planner/executor depend on;
`SftpRemote` implements it over paramiko.
"""
from __future__ import annotations
import errno
import logging
import posixpath
import stat as stat_mod
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

import paramiko

from pack_config import SftpConfig

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class RemoteEntry:
    path: str
    size: int
    is_dir: bool = False


class RemoteFileSystem(ABC):
    """Paths are absolute POSIX paths on the remote host."""

    @abstractmethod
    def stat(self, path: str) -> Optional[RemoteEntry]:
        """Entry for `path`, or None when it does not exist. Other failures raise."""

    @abstractmethod
    def list_files(self, path: str) -> List[RemoteEntry]:
        """Every file below `path`, recursively. Raises if `path` cannot be listed."""

    @abstractmethod
    def mkdir(self, path: str) -> None:
        """Create `path` and any missing parents."""

    @abstractmethod
    def put(self, local_path: Path, remote_path: str, callback: Optional[ProgressCallback] = None) -> None:
        ...

    @abstractmethod
    def delete(self, path: str) -> None:
        ...

    def close(self) -> None:
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class SftpRemote(RemoteFileSystem):
    def __init__(self, ssh: paramiko.SSHClient, sftp: paramiko.SFTPClient):
        self.ssh = ssh
        self.sftp = sftp

    def stat(self, path: str) -> Optional[RemoteEntry]:
        try:
            attr = self.sftp.stat(path)
        except IOError as e:
            if e.errno == errno.ENOENT:
                return None
            raise
        is_dir = stat_mod.S_ISDIR(attr.st_mode or 0)
        return RemoteEntry(path=path, size=int(attr.st_size or 0), is_dir=is_dir)

    def list_files(self, path: str) -> List[RemoteEntry]:
        files = []
        for item in self.sftp.listdir_attr(path):
            item_path = posixpath.join(path, item.filename)
            if stat_mod.S_ISDIR(item.st_mode or 0):
                files.extend(self.list_files(item_path))
            else:
                files.append(RemoteEntry(path=item_path, size=int(item.st_size or 0)))
        return files

    def mkdir(self, path: str) -> None:
        if not path or path == "/":
            return
        if self.stat(path) is not None:
            return
        self.mkdir(posixpath.dirname(path.rstrip("/")))
        logger.debug(f"mkdir {path}")
        self.sftp.mkdir(path)

    def put(self, local_path: Path, remote_path: str, callback: Optional[ProgressCallback] = None) -> None:
        self.sftp.put(str(local_path), remote_path, callback=callback)

    def delete(self, path: str) -> None:
        self.sftp.remove(path)

    def close(self) -> None:
        try:
            self.sftp.close()
        finally:
            self.ssh.close()


def connect_sftp(config: SftpConfig) -> SftpRemote:
    logger.info(f"Connecting to {config.user}@{config.host}:{config.port}")
    ssh = paramiko.SSHClient()
    ssh.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    ssh.connect(config.host, port=config.port, username=config.user, password=config.password, timeout=30)
    return SftpRemote(ssh, ssh.open_sftp())
