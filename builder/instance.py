"""PrismLauncher instance reading (mmc-pack.json)."""
from __future__ import annotations
import json
import logging
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

# Checked in order; the first loader component present wins
LOADER_COMPONENTS = [
    ("neoforge", "net.neoforged"),
    ("fabric", "net.fabricmc.fabric-loader"),
    ("forge", "net.minecraftforge"),
]

# Dependency keys used in modrinth.index.json
MRPACK_LOADER_IDS = {
    "neoforge": "neoforge",
    "fabric": "fabric-loader",
    "forge": "forge",
}


class InstanceError(Exception):
    pass


@dataclass(frozen=True)
class LoaderInfo:
    minecraft: str
    loader_type: str
    loader_version: str

    @property
    def mrpack_loader_id(self) -> str:
        return MRPACK_LOADER_IDS[self.loader_type]

    def dependencies(self) -> dict:
        return {"minecraft": self.minecraft, self.mrpack_loader_id: self.loader_version}


def read_instance(instance_path: Path) -> LoaderInfo:
    config_path = instance_path / "mmc-pack.json"
    if not config_path.exists():
        raise InstanceError(f"mmc-pack.json not found in instance directory {instance_path}")
    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InstanceError(f"mmc-pack.json is not valid JSON: {e}")
    return validate_loader(data)


def validate_loader(instance_config: dict) -> LoaderInfo:
    components = {c.get("uid"): c for c in instance_config.get("components") or [] if isinstance(c, dict)}

    minecraft = components.get("net.minecraft")
    if not minecraft or not minecraft.get("version"):
        raise InstanceError("No Minecraft version found in instance config")

    for loader_type, uid in LOADER_COMPONENTS:
        comp = components.get(uid)
        if comp and comp.get("version"):
            info = LoaderInfo(minecraft["version"], loader_type, comp["version"])
            logger.info(f"Instance uses {loader_type} {info.loader_version} on Minecraft {info.minecraft}")
            return info

    raise InstanceError("No supported mod loader found (neoforge, fabric, or forge)")


def find_minecraft_dir(instance_path: Path) -> Path:
    """PrismLauncher uses `minecraft/`, older MultiMC instances `.minecraft/`."""
    for name in ("minecraft", ".minecraft"):
        candidate = instance_path / name
        if candidate.is_dir():
            return candidate
    raise FileNotFoundError(f"No minecraft directory found in instance {instance_path}")
