import requests
from typing import List, Optional
from .providers import RuntimeArtifact, register_provider
import logging
import re

logger = logging.getLogger(__name__)

# Official NeoForge Maven API endpoint
MAVEN_API = "https://maven.neoforged.net/api/maven/versions/releases/net/neoforged/neoforge"
MAVEN_BASE = "https://maven.neoforged.net/releases/net/neoforged/neoforge"


class NeoForgeProvider:
    """NeoForge server installer from the NeoForge Maven.

    Installer URL: {MAVEN_BASE}/{neoforge_version}/neoforge-{neoforge_version}-installer.jar

    NeoForge Version Scheme:
    - Version XX.Y.Z maps to Minecraft 1.XX.Y (where XX >= 20)
    - Example: 21.4.56 → MC 1.21.4
    - Example: 21.0.167 → MC 1.21
    """
    name = "neoforge"

    def __init__(self):
        self._cached_neoforge_versions = None
        self._cached_mc_mappings = {}

    def _get_all_neoforge_versions(self) -> List[str]:
        if self._cached_neoforge_versions:
            return self._cached_neoforge_versions

        logger.info("Fetching NeoForge versions from Maven API")
        resp = requests.get(MAVEN_API, timeout=30)
        resp.raise_for_status()
        versions = resp.json().get("versions", [])

        stable_versions = [v for v in versions if "alpha" not in v.lower() and "snapshot" not in v.lower()]
        self._cached_neoforge_versions = stable_versions
        logger.info(f"Cached {len(stable_versions)} NeoForge versions")
        return stable_versions

    @staticmethod
    def infer_mc_version(neoforge_version: str) -> Optional[str]:
        """
        - 21.4.56 → 1.21.4
        - 21.0.167 → 1.21
        """
        match = re.match(r'^(\d+)\.(\d+)\.', neoforge_version)
        if not match:
            return None
        major, minor = int(match.group(1)), int(match.group(2))
        if major < 20:
            return None
        return f"1.{major}" if minor == 0 else f"1.{major}.{minor}"

    def list_loader_versions(self, minecraft_version: str) -> List[str]:
        """NeoForge versions for a Minecraft version, stable before beta, newest first."""
        if minecraft_version in self._cached_mc_mappings:
            return self._cached_mc_mappings[minecraft_version]

        matching = [v for v in self._get_all_neoforge_versions() if self.infer_mc_version(v) == minecraft_version]

        def version_sort_key(v):
            base = v.replace('-beta', '')
            try:
                return tuple(int(p) for p in base.split('.')[:3])
            except ValueError:
                return (0, 0, 0)

        matching.sort(key=version_sort_key, reverse=True)
        stable = [v for v in matching if '-beta' not in v]
        beta = [v for v in matching if '-beta' in v]
        self._cached_mc_mappings[minecraft_version] = stable + beta
        return stable + beta

    def installer_url(self, neoforge_version: str) -> str:
        return f"{MAVEN_BASE}/{neoforge_version}/neoforge-{neoforge_version}-installer.jar"

    def resolve_artifact(self, version: str, loader_version: Optional[str] = None) -> RuntimeArtifact:
        """The instance pins the loader version; the latest is only a fallback."""
        neoforge_version = loader_version
        if not neoforge_version:
            versions = self.list_loader_versions(version)
            if not versions:
                raise ValueError(f"No NeoForge versions available for Minecraft {version}")
            neoforge_version = versions[0]

        url = self.installer_url(neoforge_version)
        logger.info(f"NeoForge installer URL: {url}")
        return RuntimeArtifact(url=url, filename=f"neoforge-{neoforge_version}-installer.jar", kind="installer")


register_provider(NeoForgeProvider())
