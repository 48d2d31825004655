"""
Command-line entry point for frida-launcher.

Usage:
    frida-launcher [--config PATH] [--log-level LEVEL] [--debug] COMMAND

Commands: releases, install, start, stop, uninstall, status,
check-nonroot, validate-version.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from frida_launcher.catalog import is_valid_version
from frida_launcher.config import AppConfig, build_arg_parser, load_config
from frida_launcher.errors import FailureKind
from frida_launcher.logging import setup_logging
from frida_launcher.models import Architecture, Release
from frida_launcher.service import LauncherService, OperationResult


def create_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="frida-launcher",
        description="Install and control frida-server on a rooted device",
        parents=[build_arg_parser()],
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("releases", help="List available releases")

    install = commands.add_parser("install", help="Download and install a release")
    install.add_argument("--version", help="Release version (default: latest)")
    install.add_argument(
        "--arch",
        choices=[a.value for a in Architecture if a is not Architecture.UNKNOWN],
        help="Architecture (default: detected)",
    )
    install.add_argument("--file", help="Install a local binary instead of downloading")

    start = commands.add_parser("start", help="Start the server")
    start.add_argument("--flags", default="", help="Extra server flags, passed verbatim")

    commands.add_parser("stop", help="Stop the server")
    commands.add_parser("uninstall", help="Remove the server")
    commands.add_parser("status", help="Show installed version and run state")
    commands.add_parser(
        "check-nonroot", help="Check whether the work directory can run binaries"
    )

    validate = commands.add_parser("validate-version", help="Check a version string")
    validate.add_argument("version")

    return parser


def format_releases(releases: list[Release]) -> str:
    """Render releases one per line."""
    lines = []
    for release in releases:
        archs = ", ".join(sorted({a.architecture.value for a in release.assets}))
        lines.append(f"{release.version}  {release.release_date}  [{archs}]")
    return "\n".join(lines)


async def run_command(args: argparse.Namespace, config: AppConfig) -> OperationResult:
    """Execute one parsed command against a fresh service."""
    service = LauncherService.from_config(config)
    try:
        if args.command == "releases":
            return await service.list_releases()
        if args.command == "install":
            if args.arch or args.version:
                selected = await service.select(args.version, args.arch)
                if not selected.success:
                    return selected
            if args.file:
                if not args.version:
                    return OperationResult.failed(
                        FailureKind.INVALID_ARGUMENT,
                        "--version is required with --file",
                    )
                return await service.install_from_file(args.file, args.version)
            return await service.install()
        if args.command == "start":
            return await service.start(args.flags)
        if args.command == "stop":
            return await service.stop()
        if args.command == "uninstall":
            return await service.uninstall()
        if args.command == "check-nonroot":
            return await service.check_non_root()
        return await service.status()
    finally:
        await service.close()


def main(argv: list[str] | None = None) -> int:
    """Run the CLI and return the process exit code."""
    args_list = sys.argv[1:] if argv is None else argv
    args = create_parser().parse_args(args_list)

    if args.command == "validate-version":
        valid = is_valid_version(args.version)
        print(f"{args.version}: {'valid' if valid else 'invalid'}")
        return 0 if valid else 1

    config = load_config(cli_args=args_list)
    setup_logging(config.logging)

    result = asyncio.run(run_command(args, config))
    print(result.message)
    if args.command == "releases" and result.success:
        print(format_releases(result.value or []))
    if args.command == "check-nonroot":
        return 0 if result.success and result.value else 1
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
