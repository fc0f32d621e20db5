import requests
from typing import Dict, Optional
from .providers import RuntimeArtifact, register_provider
import logging

logger = logging.getLogger(__name__)

# Official MinecraftForge API endpoints
PROMOTIONS_URL = "https://files.minecraftforge.net/net/minecraftforge/forge/promotions_slim.json"
MAVEN_BASE = "https://maven.minecraftforge.net/net/minecraftforge/forge"


class ForgeProvider:
    """MinecraftForge server installer from the Forge Maven.

    Installer URL: {MAVEN_BASE}/{maven_coord}/forge-{maven_coord}-installer.jar
    where maven_coord is usually "{mc_version}-{forge_version}", but for legacy
    versions (e.g., 1.7.10) it is "{mc_version}-{forge_version}-{mc_version}".
    """
    name = "forge"

    def __init__(self):
        self._cached_promotions = None

    def _get_promotions(self) -> Dict[str, str]:
        if self._cached_promotions:
            return self._cached_promotions
        try:
            logger.info("Fetching Forge promotions from API")
            resp = requests.get(PROMOTIONS_URL, timeout=30)
            resp.raise_for_status()
            self._cached_promotions = resp.json().get("promos", {})
            return self._cached_promotions
        except requests.exceptions.RequestException as e:
            logger.error(f"Failed to fetch Forge promotions: {e}")
            raise ValueError(f"Could not fetch Forge promotions: {e}")

    def get_best_forge_version(self, minecraft_version: str) -> str:
        """recommended > latest"""
        promotions = self._get_promotions()
        best = promotions.get(f"{minecraft_version}-recommended") or promotions.get(f"{minecraft_version}-latest")
        if not best:
            raise ValueError(f"No Forge versions available for Minecraft {minecraft_version}")
        return best

    def _resolve_installer_url(self, mc_version: str, forge_version: str) -> str:
        """Try the modern coordinate, then the legacy {mc}-{forge}-{mc} one."""
        last_err = None
        for coord in (f"{mc_version}-{forge_version}", f"{mc_version}-{forge_version}-{mc_version}"):
            url = f"{MAVEN_BASE}/{coord}/forge-{coord}-installer.jar"
            try:
                r = requests.head(url, timeout=20, allow_redirects=True)
                if r.status_code == 200:
                    return url
            except requests.exceptions.RequestException as e:
                last_err = e
        if last_err:
            raise ValueError(f"No Forge installer found for {mc_version} {forge_version}: {last_err}")
        raise ValueError(f"No Forge installer found for {mc_version} {forge_version}")

    def resolve_artifact(self, version: str, loader_version: Optional[str] = None) -> RuntimeArtifact:
        forge_version = loader_version or self.get_best_forge_version(version)
        url = self._resolve_installer_url(version, forge_version)
        logger.info(f"Forge installer URL: {url}")
        return RuntimeArtifact(url=url, filename=url.rsplit("/", 1)[-1], kind="installer")


register_provider(ForgeProvider())
