"""
Server runtime provisioning: game/loader jars, launch scripts, default
server.properties, EULA and the server-info.json summary.
"""
from __future__ import annotations
import json
import logging
import subprocess
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from download_manager import USER_AGENT, download_to
from instance import LoaderInfo
from server_providers import get_provider

logger = logging.getLogger(__name__)

JVM_FLAGS = (
    "-XX:+UseG1GC -XX:+ParallelRefProcEnabled -XX:MaxGCPauseMillis=200 "
    "-XX:+UnlockExperimentalVMOptions -XX:+DisableExplicitGC -XX:+AlwaysPreTouch "
    "-XX:G1NewSizePercent=30 -XX:G1MaxNewSizePercent=40 -XX:G1HeapRegionSize=8M "
    "-XX:G1ReservePercent=20 -XX:G1HeapWastePercent=5 -XX:G1MixedGCCountTarget=4 "
    "-XX:InitiatingHeapOccupancyPercent=15 -XX:G1MixedGCLiveThresholdPercent=90 "
    "-XX:G1RSetUpdatingPauseTimePercent=5 -XX:SurvivorRatio=32 "
    "-XX:+PerfDisableSharedMem -XX:MaxTenuringThreshold=1"
)


class InstallerError(Exception):
    def __init__(self, message: str, returncode: Optional[int] = None, stderr: str = ""):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(f"{message}\nstderr: {stderr}" if stderr else message)


def run_installer(installer: Path, cwd: Path, server_starter: bool = False, java: str = "java") -> str:
    """Run a loader installer jar headless. Returns stdout; raises InstallerError on non-zero exit."""
    cmd = [java, "-jar", installer.name, "--installServer"]
    if server_starter:
        cmd.append("--server-starter")
    logger.info(f"Running: {' '.join(cmd)} (in {cwd})")
    try:
        result = subprocess.run(cmd, cwd=str(cwd), capture_output=True, text=True)
    except FileNotFoundError:
        raise InstallerError(f"Java executable not found: {java}")
    if result.returncode != 0:
        raise InstallerError(f"Installer failed with exit code {result.returncode}", result.returncode, result.stderr)
    for line in result.stdout.splitlines():
        if any(k in line for k in ("Installing", "Success", "Done")):
            logger.debug(line.strip())
    return result.stdout


def provision_runtime(
    loader: LoaderInfo,
    server_dir: Path,
    cache_dir: Path,
    user_agent: str = USER_AGENT,
    java: str = "java",
) -> Path:
    """
    Place the vanilla server jar (sha1-verified through the cache) and the loader
    runtime in `server_dir`. Returns the jar the launch scripts should start.
    """
    server_dir.mkdir(parents=True, exist_ok=True)

    vanilla = get_provider("vanilla").resolve_artifact(loader.minecraft)
    server_jar = download_to(vanilla.url, server_dir / "server.jar", cache_dir, vanilla.sha1, user_agent)
    logger.info(f"Minecraft {loader.minecraft} server jar installed as server.jar")

    artifact = get_provider(loader.loader_type).resolve_artifact(loader.minecraft, loader.loader_version)
    target = download_to(artifact.url, server_dir / artifact.filename, cache_dir, artifact.sha1, user_agent)

    if artifact.kind == "installer":
        run_installer(target, server_dir, server_starter=loader.loader_type == "neoforge", java=java)
        target.unlink()
        log_file = server_dir / f"{target.name}.log"
        if log_file.exists():
            log_file.unlink()
        loader_jar = next(iter(sorted(server_dir.glob(f"*{loader.loader_version}*.jar"))), None)
        # NeoForge --server-starter replaces server.jar with its starter; legacy Forge ships its own jar
        main_jar = loader_jar if loader_jar and loader.loader_type == "forge" else server_jar
        logger.info(f"{loader.loader_type} {loader.loader_version} installed")
        return main_jar

    logger.info(f"{loader.loader_type} {artifact.kind} installed as {target.name}")
    return target


def write_launch_scripts(server_dir: Path, loader: LoaderInfo, server_jar: str = "server.jar", pack_name: str = "Minecraft") -> None:
    sh = f"""#!/bin/bash
# {pack_name} server launch script
# Minecraft {loader.minecraft} + {loader.loader_type} {loader.loader_version}
cd "$(dirname "$0")"

MIN_RAM=${{MIN_RAM:-2G}}
MAX_RAM=${{MAX_RAM:-4G}}
JAVA_ARGS="-Xms$MIN_RAM -Xmx$MAX_RAM {JVM_FLAGS}"

if [ -f "run.sh" ]; then
    echo "Using loader run script..."
    ./run.sh nogui
else
    java $JAVA_ARGS -jar {server_jar} nogui
fi
"""
    bat = f"""@echo off
title {pack_name} Server
REM Minecraft {loader.minecraft} + {loader.loader_type} {loader.loader_version}

if "%MIN_RAM%"=="" set MIN_RAM=2G
if "%MAX_RAM%"=="" set MAX_RAM=4G
set JAVA_ARGS=-Xms%MIN_RAM% -Xmx%MAX_RAM% {JVM_FLAGS}

if exist "run.bat" (
    call run.bat nogui
) else (
    java %JAVA_ARGS% -jar {server_jar} nogui
)
pause
"""
    sh_path = server_dir / "start-server.sh"
    sh_path.write_text(sh, encoding="utf-8")
    (server_dir / "start-server.bat").write_text(bat.replace("\n", "\r\n"), encoding="utf-8")
    try:
        sh_path.chmod(0o755)
    except OSError as e:
        logger.warning(f"Could not set executable permission on start-server.sh: {e}")


def write_server_properties(server_dir: Path, pack_name: str) -> bool:
    """Template only; an existing file belongs to the operator and is kept."""
    props = server_dir / "server.properties"
    if props.exists():
        logger.info("server.properties already exists, keeping it")
        return False
    props.write_text(
        "\n".join([
            f"# Server Properties for {pack_name}",
            "# Generated by mrpack-builder",
            "server-port=25565",
            "max-players=20",
            "difficulty=normal",
            "gamemode=survival",
            "pvp=true",
            "level-name=world",
            "spawn-protection=0",
            "view-distance=10",
            "simulation-distance=10",
            "max-tick-time=60000",
            "allow-flight=true",
            "online-mode=true",
            "white-list=false",
            "enable-rcon=false",
            f"motd={pack_name}",
            "network-compression-threshold=256",
        ]) + "\n",
        encoding="utf-8",
    )
    return True


def accept_eula(server_dir: Path) -> None:
    (server_dir / "eula.txt").write_text(
        "# https://aka.ms/MinecraftEULA\n# Generated by mrpack-builder\neula=true\n", encoding="utf-8"
    )


def write_server_info(
    server_dir: Path,
    name: str,
    version: str,
    loader: LoaderInfo,
    total: int,
    successful: int,
    failed: int,
) -> dict:
    info = {
        "name": name,
        "version": version,
        "gameVersion": loader.minecraft,
        "loaderType": loader.loader_type,
        "loaderVersion": loader.loader_version,
        "generatedAt": datetime.now(timezone.utc).isoformat(),
        "mods": {"total": total, "successful": successful, "failed": failed},
    }
    (server_dir / "server-info.json").write_text(json.dumps(info, indent=2) + "\n", encoding="utf-8")
    return info
