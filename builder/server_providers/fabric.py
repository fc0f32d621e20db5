import requests
from typing import Optional
from .providers import RuntimeArtifact, register_provider
import logging

logger = logging.getLogger(__name__)

FABRIC_META = "https://meta.fabricmc.net/v2/versions"


class FabricProvider:
    """Fabric server launcher jar from Fabric Meta.

    The launcher downloads the loader and game libraries on first start, so no
    install step is needed.
    """
    name = "fabric"

    def __init__(self):
        self._cached_installer = None

    def _latest_installer(self) -> str:
        if self._cached_installer:
            return self._cached_installer
        resp = requests.get(f"{FABRIC_META}/installer", timeout=20)
        resp.raise_for_status()
        installers = resp.json() or []
        stable = [i["version"] for i in installers if i.get("stable")]
        if not stable and not installers:
            raise ValueError("No Fabric installer versions available")
        self._cached_installer = stable[0] if stable else installers[0]["version"]
        return self._cached_installer

    def _latest_loader(self, version: str) -> str:
        resp = requests.get(f"{FABRIC_META}/loader/{version}", timeout=20)
        resp.raise_for_status()
        entries = resp.json() or []
        if not entries:
            raise ValueError(f"No Fabric loader available for Minecraft {version}")
        return entries[0]["loader"]["version"]

    def resolve_artifact(self, version: str, loader_version: Optional[str] = None) -> RuntimeArtifact:
        loader = loader_version or self._latest_loader(version)
        installer = self._latest_installer()
        url = f"{FABRIC_META}/loader/{version}/{loader}/{installer}/server/jar"
        logger.info(f"Fabric server launcher URL: {url}")
        return RuntimeArtifact(url=url, filename="fabric-server-launch.jar", kind="launcher")


register_provider(FabricProvider())
