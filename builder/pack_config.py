"""
Build settings for the modpack pipeline.

Runtime settings (paths, SFTP credentials) come from the environment, optionally
seeded from a `.env` file in the project root. Pack settings (name, version, rule
lists, bundled assets) come from `modpack.json`.
"""
from __future__ import annotations
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_PATH = "/minecraft/server"
DEFAULT_USER_AGENT = "mrpack-builder/1.0 (+https://github.com/mrpack-builder)"

# Instance directories bundled as client overrides / copied into the server tree
DEFAULT_CLIENT_OVERRIDE_DIRS = ["configureddefaults", "kubejs", "datapacks", "resourcepacks", "shaderpacks"]
DEFAULT_SERVER_ASSET_DIRS = ["configureddefaults", "kubejs", "datapacks", "ftbquests"]


class ConfigError(Exception):
    """Missing or invalid configuration; raised before anything is written."""


def load_env_file(path: Path) -> int:
    """Seed os.environ from a KEY=VALUE file. Existing variables win."""
    if not path.exists():
        return 0
    loaded = 0
    for line in path.read_text(encoding="utf-8", errors="ignore").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip('"').strip("'")
        if key and key not in os.environ:
            os.environ[key] = value
            loaded += 1
    logger.debug(f"Loaded {loaded} variables from {path}")
    return loaded


@dataclass
class Settings:
    root: Path
    instance_path: Optional[Path]
    releases_dir: Path
    cache_dir: Path
    user_agent: str = DEFAULT_USER_AGENT

    @property
    def server_dir(self) -> Path:
        return self.releases_dir / "server"

    @property
    def pack_file(self) -> Path:
        return self.root / "modpack.json"

    def require_instance(self) -> Path:
        if not self.instance_path:
            raise ConfigError("MINECRAFT_INSTANCE_PATH is not set (use --instance or a .env file)")
        if not self.instance_path.is_dir():
            raise ConfigError(f"Instance path not found: {self.instance_path}")
        return self.instance_path


def load_settings(root: Optional[Path] = None, instance: Optional[Path] = None) -> Settings:
    root = Path(root or os.getenv("MODPACK_ROOT") or Path.cwd()).resolve()
    load_env_file(root / ".env")

    instance_raw = instance or os.getenv("MINECRAFT_INSTANCE_PATH")
    releases = os.getenv("MODPACK_RELEASES_DIR")
    cache = os.getenv("MODPACK_CACHE_DIR")
    return Settings(
        root=root,
        instance_path=Path(instance_raw).expanduser().resolve() if instance_raw else None,
        releases_dir=Path(releases).resolve() if releases else root / "releases",
        cache_dir=Path(cache).resolve() if cache else root / ".file-cache",
        user_agent=os.getenv("MODRINTH_USER_AGENT") or DEFAULT_USER_AGENT,
    )


@dataclass
class SftpConfig:
    host: str
    port: int
    user: str
    password: str
    remote_path: str = DEFAULT_REMOTE_PATH


def load_sftp_config() -> SftpConfig:
    required = ["SFTP_HOST", "SFTP_USER", "SFTP_PASS"]
    missing = [name for name in required if not os.getenv(name)]
    if missing:
        raise ConfigError(f"Missing required environment variables: {', '.join(missing)}")
    try:
        port = int(os.getenv("SFTP_PORT", "22"))
    except ValueError:
        raise ConfigError(f"SFTP_PORT must be a number, got {os.getenv('SFTP_PORT')!r}")
    return SftpConfig(
        host=os.environ["SFTP_HOST"],
        port=port,
        user=os.environ["SFTP_USER"],
        password=os.environ["SFTP_PASS"],
        remote_path=os.getenv("SFTP_REMOTE_PATH") or DEFAULT_REMOTE_PATH,
    )


# ── modpack.json ──

class RuleSet(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ensure: List[str] = Field(default_factory=list)
    ignore: List[str] = Field(default_factory=list)
    ensure_optional: List[str] = Field(default_factory=list, alias="ensureOptional")


class PackRules(BaseModel):
    client: RuleSet = Field(default_factory=RuleSet)
    server: RuleSet = Field(default_factory=RuleSet)


class OverrideFile(BaseModel):
    source: str
    target: str


class PackInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    version: str
    summary: str = ""
    icon: Optional[str] = None
    include_all: bool = Field(default=False, alias="includeAll")
    rules: PackRules = Field(default_factory=PackRules)
    override_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_CLIENT_OVERRIDE_DIRS), alias="overrideDirs")
    override_files: List[OverrideFile] = Field(
        default_factory=lambda: [
            OverrideFile(source="servers.dat", target="servers.dat"),
            OverrideFile(source="options.txt", target="configureddefaults/options.txt"),
        ],
        alias="overrideFiles",
    )
    server_dirs: List[str] = Field(default_factory=lambda: list(DEFAULT_SERVER_ASSET_DIRS), alias="serverDirs")

    def archive_name(self) -> str:
        safe = "".join(c if c.isalnum() or c in "-_." else "-" for c in self.name).strip("-")
        return f"{safe or 'modpack'}-v{self.version}.mrpack"


def load_pack_info(path: Path) -> PackInfo:
    if not path.exists():
        raise ConfigError(f"{path.name} not found at {path}")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ConfigError(f"{path.name} is not valid JSON: {e}")
    try:
        return PackInfo.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"{path.name} is invalid: {e}")
