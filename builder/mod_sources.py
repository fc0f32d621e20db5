"""
Mod registry client for Modrinth: resolves a mod binary's content hash to the
downloadable file(s) the registry knows for it.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Optional

import requests

logger = logging.getLogger(__name__)

MODRINTH_API = "https://api.modrinth.com/v2"
USER_AGENT = "mrpack-builder/1.0 (+https://github.com/mrpack-builder)"


@dataclass(frozen=True)
class RemoteFile:
    url: str
    filename: str
    size: int
    hashes: dict = field(default_factory=dict)
    primary: bool = False


class RegistryLookupError(Exception):
    pass


class ModrinthClient:
    """Client for the Modrinth version-file API."""

    def __init__(self, user_agent: str = USER_AGENT, timeout: int = 15, session: Optional[requests.Session] = None):
        self.base_url = MODRINTH_API
        self.headers = {"User-Agent": user_agent}
        self.timeout = timeout
        self.session = session or requests.Session()
        self._cache: dict[tuple[str, str], list[RemoteFile]] = {}

    def lookup_by_hash(self, file_hash: str, algorithm: str = "sha1") -> list[RemoteFile]:
        """
        Candidate files for a content hash. 404 means the registry does not know
        the file and yields an empty list; other HTTP/network failures raise.
        """
        key = (algorithm, file_hash)
        if key in self._cache:
            return self._cache[key]

        try:
            resp = self.session.get(
                f"{self.base_url}/version_file/{file_hash}",
                params={"algorithm": algorithm},
                headers=self.headers,
                timeout=self.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise RegistryLookupError(f"Modrinth lookup failed for {algorithm}:{file_hash[:12]}: {e}")

        if resp.status_code == 404:
            files: list[RemoteFile] = []
        elif not resp.ok:
            raise RegistryLookupError(f"Modrinth lookup failed for {algorithm}:{file_hash[:12]}: HTTP {resp.status_code}")
        else:
            files = [
                RemoteFile(
                    url=f.get("url"),
                    filename=f.get("filename"),
                    size=int(f.get("size") or 0),
                    hashes=dict(f.get("hashes") or {}),
                    primary=bool(f.get("primary")),
                )
                for f in (resp.json().get("files") or [])
                if f.get("url")
            ]

        logger.debug(f"Modrinth {algorithm}:{file_hash[:12]} -> {len(files)} candidate file(s)")
        self._cache[key] = files
        return files
