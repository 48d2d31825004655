"""
Configuration management for frida-launcher.

Configuration is loaded from multiple sources with layered precedence:
1. Built-in defaults (Pydantic model defaults)
2. YAML config file (~/.config/frida-launcher/config.yml or --config path)
3. Environment variables (FRIDA_LAUNCHER_* prefix, __ for nesting)
4. Command-line arguments (highest precedence)
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from frida_launcher.models import Architecture

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "frida-launcher" / "config.yml"
DEFAULT_ENV_PREFIX = "FRIDA_LAUNCHER_"

# =============================================================================
# Release Catalog Configuration
# =============================================================================


class CatalogConfig(BaseModel):
    """Release index settings.

    Attributes:
        releases_url: Endpoint returning the JSON array of releases.
        accept: Accept header sent with the index request.
        timeout_seconds: Connect/read timeout for the index request.
        head_timeout_seconds: Timeout for the custom-version HEAD check.
        download_url_template: Template for versions missing from the index.
        binary_prefix: Asset names must start with this prefix.
    """

    releases_url: str = Field(
        default="https://api.github.com/repos/frida/frida/releases",
        description="Release index endpoint",
    )
    accept: str = Field(
        default="application/vnd.github.v3+json",
        description="Accept header for the release index",
    )
    timeout_seconds: float = Field(default=30.0, gt=0)
    head_timeout_seconds: float = Field(default=10.0, gt=0)
    download_url_template: str = Field(
        default=(
            "https://github.com/frida/frida/releases/download/"
            "{version}/frida-server-{version}-android-{architecture}.xz"
        ),
        description="URL template used when a version is not in the index",
    )
    binary_prefix: str = Field(default="frida-server-")


# =============================================================================
# Download Configuration
# =============================================================================


class DownloadConfig(BaseModel):
    """Archive download settings.

    Attributes:
        work_dir: Unprivileged directory holding the fetched binary.
        timeout_seconds: Connect/read timeout for downloads.
        chunk_size: Buffer size for streaming and decompression.
    """

    work_dir: str = Field(
        default=str(Path.home() / ".cache" / "frida-launcher"),
        description="Working directory for downloads",
    )
    timeout_seconds: float = Field(default=60.0, gt=0)
    chunk_size: int = Field(default=64 * 1024, ge=1024)


# =============================================================================
# Privileged Session Configuration
# =============================================================================


class SessionConfig(BaseModel):
    """Elevated shell settings.

    Attributes:
        shell_command: Argv of the long-running elevated shell.
        probe_command: Argv of the one-shot root probe.
        settle_seconds: Delay between writing a command and draining output.
        exit_directive: Line written to the shell on close.
    """

    shell_command: list[str] = Field(default_factory=lambda: ["su"])
    probe_command: list[str] = Field(default_factory=lambda: ["su", "-c", "id"])
    settle_seconds: float = Field(default=0.5, ge=0)
    exit_directive: str = Field(default="exit")

    @field_validator("shell_command", "probe_command")
    @classmethod
    def validate_argv(cls, v: list[str]) -> list[str]:
        """Reject empty command lines."""
        if not v:
            raise ValueError("Command must contain at least one argument")
        return v


# =============================================================================
# Device Configuration
# =============================================================================


class DeviceConfig(BaseModel):
    """On-device layout of the agent server.

    Attributes:
        binary_path: Privileged install path of the server binary.
        version_path: Privileged path of the version marker file.
        process_name: Name used to find the running server.
        start_settle_seconds: Delay after launching before re-probing.
        architecture: Forced architecture; detected when None.
    """

    binary_path: str = Field(default="/data/local/tmp/frida-server")
    version_path: str = Field(default="/data/local/tmp/frida-version.txt")
    process_name: str = Field(default="frida-server")
    start_settle_seconds: float = Field(default=1.5, ge=0)
    architecture: Architecture | None = Field(default=None)


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Logging configuration.

    Attributes:
        level: Log level.
        log_to_stdout: Whether to log to stdout.
        json_format: Emit JSON records instead of plain text.
        debug_mode: Force DEBUG level.
    """

    level: str = Field(default="info")
    log_to_stdout: bool = Field(default=True)
    json_format: bool = Field(default=True)
    debug_mode: bool = Field(default=False)

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        valid_levels = {"debug", "info", "warn", "warning", "error", "critical"}
        v_lower = v.lower()
        if v_lower not in valid_levels:
            raise ValueError(
                f"Invalid log level: {v}. Must be one of: {', '.join(sorted(valid_levels))}"
            )
        if v_lower == "warn":
            return "warning"
        return v_lower


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        catalog: Release index settings.
        download: Download settings.
        session: Elevated shell settings.
        device: On-device paths and timings.
        logging: Logging configuration.
    """

    catalog: CatalogConfig = Field(default_factory=CatalogConfig)
    download: DownloadConfig = Field(default_factory=DownloadConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    device: DeviceConfig = Field(default_factory=DeviceConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# =============================================================================
# Configuration Loading Functions
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict with ``override`` merged recursively into ``base``."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """
    Load configuration from a YAML file.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is invalid.
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        return yaml.safe_load(f) or {}


def _parse_env_value(value: str) -> Any:
    """
    Parse an environment variable value to an appropriate Python type.

    Booleans, integers and floats are recognized; comma-separated values
    become lists (used for shell_command).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if "," in value:
        return [item.strip() for item in value.split(",")]

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Load configuration from environment variables.

    Example: FRIDA_LAUNCHER_SESSION__SETTLE_SECONDS=1.0
    """
    result: dict[str, Any] = {}

    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue

        parts = key[len(prefix) :].lower().split("__")

        current = result
        for part in parts[:-1]:
            current = current.setdefault(part, {})

        current[parts[-1]] = _parse_env_value(value)

    return result


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the parser for the global configuration flags."""
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Path to configuration file",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Override log level",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    parser.add_argument(
        "--work-dir",
        type=str,
        help="Override the download working directory",
    )
    return parser


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Parse the global configuration flags, ignoring anything else.

    Returns:
        Dictionary with parsed overrides.
    """
    parsed, _ = build_arg_parser().parse_known_args(args)

    result: dict[str, Any] = {}

    if parsed.config:
        result["_config_path"] = parsed.config

    if parsed.log_level:
        result["logging"] = {"level": parsed.log_level}

    if parsed.debug:
        result.setdefault("logging", {})
        result["logging"]["debug_mode"] = True
        result["logging"]["level"] = "debug"

    if parsed.work_dir:
        result["download"] = {"work_dir": parsed.work_dir}

    return result


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Load configuration from all sources with layered precedence.

    Args:
        config_path: Path to a YAML file. If None, uses --config or the
            default path when it exists.
        env_prefix: Prefix for environment variables.
        cli_args: Command-line arguments. Pass [] to ignore sys.argv.

    Returns:
        Fully configured AppConfig instance.

    Raises:
        FileNotFoundError: If the given config file doesn't exist.
        ValidationError: If configuration is invalid.
    """
    config_dict: dict[str, Any] = {}

    cli_config = _parse_cli_args(cli_args)

    if config_path is None:
        if "_config_path" in cli_config:
            config_path = Path(cli_config.pop("_config_path"))
        elif DEFAULT_CONFIG_PATH.exists():
            config_path = DEFAULT_CONFIG_PATH
    else:
        cli_config.pop("_config_path", None)
        config_path = Path(config_path)

    if config_path is not None:
        config_dict = _deep_merge(config_dict, _load_yaml_config(config_path))

    config_dict = _deep_merge(config_dict, _load_env_config(env_prefix))
    config_dict = _deep_merge(config_dict, cli_config)

    return AppConfig(**config_dict)
