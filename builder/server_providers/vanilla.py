import requests
from typing import Optional, Dict, Any
from .providers import RuntimeArtifact, register_provider
import logging

logger = logging.getLogger(__name__)

VERSION_MANIFEST = "https://launchermeta.mojang.com/mc/game/version_manifest.json"


class VanillaProvider:
    """Mojang server jars, located through the launcher version manifest.

    Each version entry links to a version document whose `downloads.server`
    carries the jar URL and its sha1, so the download can be verified.
    """
    name = "vanilla"

    def __init__(self):
        self._cached_manifest: Optional[Dict[str, Any]] = None

    def _get_manifest(self) -> Dict[str, Any]:
        if self._cached_manifest:
            return self._cached_manifest
        try:
            logger.info("Fetching Minecraft version manifest")
            resp = requests.get(VERSION_MANIFEST, timeout=30)
            resp.raise_for_status()
            self._cached_manifest = resp.json()
            return self._cached_manifest
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to fetch Minecraft version manifest: {e}")
            raise ValueError(f"Could not fetch Minecraft versions: {e}")

    def get_server_download(self, version: str) -> Dict[str, Any]:
        entry = next((v for v in self._get_manifest().get("versions", []) if v.get("id") == version), None)
        if not entry:
            raise ValueError(f"Minecraft version {version} not found")

        resp = requests.get(entry["url"], timeout=30)
        resp.raise_for_status()
        server = (resp.json().get("downloads") or {}).get("server")
        if not server or not server.get("url"):
            raise ValueError(f"No server download available for Minecraft {version}")
        return server

    def resolve_artifact(self, version: str, loader_version: Optional[str] = None) -> RuntimeArtifact:
        server = self.get_server_download(version)
        logger.info(f"Vanilla {version} server jar: {server['url']}")
        return RuntimeArtifact(url=server["url"], filename="server.jar", kind="jar", sha1=server.get("sha1"))


register_provider(VanillaProvider())
