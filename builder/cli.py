"""
Command Line Interface for the modpack pipeline.

    mrpack-builder build   [--instance PATH] [--output FILE]
    mrpack-builder server  [--instance PATH] [--no-runtime]
    mrpack-builder deploy  [-y] [--skip-libraries]
"""

import argparse
import logging
import sys
from pathlib import Path

from deploy_executor import DeploymentError, deploy, format_bytes
from deploy_planner import EXACT_SYNC_DIRS, DeploymentPlan, DeployPolicy
from mod_index import IndexMismatchError
from pack_config import load_pack_info, load_settings, load_sftp_config
from pack_pipeline import build_client_package, build_server_tree
from sftp_client import connect_sftp


def print_plan(plan: DeploymentPlan, mirror_dirs=EXACT_SYNC_DIRS):
    print("\n📋 Deployment plan:")
    if plan.to_upload:
        print(f"   ⬆️  {len(plan.to_upload)} files to upload/update ({format_bytes(plan.upload_bytes)})")
    if plan.to_delete:
        print(f"   🗑️  {len(plan.to_delete)} files to delete from remote")
        for item in plan.to_delete:
            print(f"      - {item.path}")
    if plan.unchanged:
        print(f"   ✅ {len(plan.unchanged)} files unchanged")
    if plan.protected:
        print(f"   🔒 {len(plan.protected)} files protected from overwrite")
    if plan.unknown:
        print(f"   ❔ {len(plan.unknown)} files skipped, remote state could not be read")
    dirs = ", ".join(f"{d}/" for d in mirror_dirs)
    print(f"\n⚠️  Extra remote files outside {dirs} are kept")
    print("⚠️  Server management files (ops, whitelist, bans) will never be overwritten")


def ask_confirmation(plan: DeploymentPlan, mirror_dirs=EXACT_SYNC_DIRS) -> bool:
    print_plan(plan, mirror_dirs)
    try:
        answer = input("\n🚨 Continue with deployment? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def cmd_build(args, settings):
    pack_info = load_pack_info(settings.pack_file)
    print(f"🚀 Building {pack_info.name} v{pack_info.version}...")
    report = build_client_package(settings, pack_info, output=Path(args.output) if args.output else None)

    manifest = report.build.manifest
    print(f"\n📊 Mods: {len(manifest.files)} downloadable, {len(report.overrides)} bundled, {len(report.build.excluded)} excluded")
    if report.overrides:
        print("\n📦 Bundled as overrides:")
        for c in report.overrides:
            print(f"   • {c.filename} ({c.resolution.reason()})")
    if report.assets:
        print(f"\n📁 Assets: {', '.join(report.assets)}")
    print(f"\n✨ Build complete: {report.output}")
    if report.errors:
        print(f"\n⚠️  {len(report.errors)} lookup errors:")
        for e in report.errors:
            print(f"   • {e}")


def cmd_server(args, settings):
    pack_info = load_pack_info(settings.pack_file)
    print(f"🖥️  Building server for {pack_info.name} v{pack_info.version}...")
    report = build_server_tree(settings, pack_info, install_runtime=not args.no_runtime)

    print("\n✨ Server build complete!")
    print(f"   📍 Location: {report.server_dir}")
    print(f"   🎮 Game: Minecraft {report.loader.minecraft}")
    print(f"   ⚙️  Loader: {report.loader.loader_type} {report.loader.loader_version}")
    print(f"   📦 Mods: {len(report.copied)}/{report.total} copied, {len(report.skipped)} client-only skipped")
    if report.errors:
        print(f"\n⚠️  {len(report.errors)} mods failed to copy:")
        for e in report.errors:
            print(f"   • {e}")


def cmd_deploy(args, settings):
    server_dir = settings.server_dir
    if not server_dir.exists():
        raise FileNotFoundError(f"Server directory not found: {server_dir}. Run 'mrpack-builder server' first.")
    config = load_sftp_config()
    policy = DeployPolicy.default(skip_libraries=args.skip_libraries)
    if args.skip_libraries:
        print("⚡ Libraries directory skipped (--skip-libraries)")

    def on_upload(item, index, total):
        print(f"   📤 ({index}/{total}) {item.path}")

    def progress(transferred, total):
        if total:
            pct = transferred / total * 100
            print(f"\r      {pct:5.1f}% ({format_bytes(transferred)}/{format_bytes(total)})", end="", flush=True)
            if transferred >= total:
                print()

    print(f"🚀 Deploying {server_dir} to {config.host}:{config.remote_path}")
    with connect_sftp(config) as remote:
        try:
            result = deploy(
                server_dir, remote, config.remote_path, policy,
                auto_confirm=args.yes, confirm=lambda plan: ask_confirmation(plan, policy.mirror_dirs),
                on_upload=on_upload, progress=progress,
            )
        except DeploymentError as e:
            print(f"\n❌ Deployment stopped: {e}")
            print(f"   {e.completed} files uploaded, {e.remaining} not uploaded")
            sys.exit(1)

    if result.up_to_date:
        print("✅ No changes needed - server is already up to date!")
    elif result.cancelled:
        print("❌ Deployment cancelled by user")
    else:
        print(f"\n✨ Deployment completed: {len(result.uploaded)} uploaded, {len(result.deleted)} deleted")
        if result.plan.protected:
            print(f"🔒 {len(result.plan.protected)} server management files were protected from overwrite")
        for w in result.warnings:
            print(f"   ⚠️  {w}")


def main(argv=None):
    parser = argparse.ArgumentParser(prog="mrpack-builder", description="Modpack build & deploy CLI")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    parser.add_argument("--root", type=str, help="Project root (defaults to MODPACK_ROOT or cwd)")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    build_parser = subparsers.add_parser("build", help="Build the client .mrpack")
    build_parser.add_argument("--instance", type=str, help="PrismLauncher instance directory")
    build_parser.add_argument("--output", type=str, help="Output .mrpack path")

    server_parser = subparsers.add_parser("server", help="Build the server tree")
    server_parser.add_argument("--instance", type=str, help="PrismLauncher instance directory")
    server_parser.add_argument("--no-runtime", action="store_true", help="Skip downloading/installing the server runtime")

    deploy_parser = subparsers.add_parser("deploy", help="Sync the server tree to the remote host")
    deploy_parser.add_argument("-y", "--yes", action="store_true", help="Do not ask for confirmation")
    deploy_parser.add_argument("--skip-libraries", action="store_true", help="Leave libraries/ out of the sync")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("paramiko").setLevel(logging.WARNING)

    try:
        settings = load_settings(
            root=Path(args.root) if args.root else None,
            instance=Path(args.instance) if getattr(args, "instance", None) else None,
        )
        if args.command == "build":
            cmd_build(args, settings)
        elif args.command == "server":
            cmd_server(args, settings)
        elif args.command == "deploy":
            cmd_deploy(args, settings)
    except IndexMismatchError as e:
        print(f"❌ {e.report()}")
        sys.exit(1)
    except Exception as e:
        print(f"❌ Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
