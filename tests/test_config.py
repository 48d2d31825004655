"""
Tests for the configuration module.

This test module validates:
- Configuration loading from YAML files
- Environment variable overrides
- CLI argument overrides
- Configuration precedence (defaults < YAML < env vars < CLI args)
- Pydantic model validation with invalid inputs
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest import mock

import pytest
import yaml
from pydantic import ValidationError

from frida_launcher.config import (
    AppConfig,
    CatalogConfig,
    DeviceConfig,
    LoggingConfig,
    SessionConfig,
    _deep_merge,
    _load_env_config,
    _load_yaml_config,
    _parse_cli_args,
    _parse_env_value,
    load_config,
)
from frida_launcher.models import Architecture

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_config_file(tmp_path: Path) -> Path:
    """Create a temporary config file path."""
    return tmp_path / "config.yml"


@pytest.fixture
def sample_yaml_config() -> dict[str, Any]:
    """Sample YAML configuration for testing."""
    return {
        "catalog": {
            "releases_url": "https://mirror.example/releases",
            "timeout_seconds": 15,
        },
        "session": {
            "shell_command": ["su", "-mm"],
            "settle_seconds": 1.0,
        },
        "device": {
            "architecture": "arm64",
        },
        "logging": {
            "level": "debug",
        },
    }


@pytest.fixture
def clean_env() -> Any:
    """Run with no FRIDA_LAUNCHER_* variables set."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("FRIDA_LAUNCHER_")}
    with mock.patch.dict(os.environ, env, clear=True):
        yield


# =============================================================================
# Tests for Default Configuration
# =============================================================================


class TestDefaults:
    """Tests for default values."""

    def test_app_config_defaults(self) -> None:
        """Test AppConfig defaults match the device layout."""
        config = AppConfig()

        assert config.catalog.releases_url == (
            "https://api.github.com/repos/frida/frida/releases"
        )
        assert config.catalog.accept == "application/vnd.github.v3+json"
        assert config.session.shell_command == ["su"]
        assert config.session.probe_command == ["su", "-c", "id"]
        assert config.session.settle_seconds == 0.5
        assert config.device.binary_path == "/data/local/tmp/frida-server"
        assert config.device.version_path == "/data/local/tmp/frida-version.txt"
        assert config.device.start_settle_seconds == 1.5
        assert config.device.architecture is None
        assert config.logging.level == "info"

    def test_url_template_formats(self) -> None:
        url = CatalogConfig().download_url_template.format(
            version="16.7.19", architecture="arm64"
        )
        assert url == (
            "https://github.com/frida/frida/releases/download/16.7.19/"
            "frida-server-16.7.19-android-arm64.xz"
        )


# =============================================================================
# Tests for Validation
# =============================================================================


class TestValidation:
    """Tests for model validation."""

    def test_empty_shell_command(self) -> None:
        with pytest.raises(ValidationError):
            SessionConfig(shell_command=[])

    def test_negative_settle(self) -> None:
        with pytest.raises(ValidationError):
            SessionConfig(settle_seconds=-1)

    def test_unknown_architecture(self) -> None:
        with pytest.raises(ValidationError):
            DeviceConfig(architecture="mips")

    def test_architecture_coerced(self) -> None:
        assert DeviceConfig(architecture="x86_64").architecture == Architecture.X86_64

    @pytest.mark.parametrize(
        ("level", "expected"),
        [("DEBUG", "debug"), ("warn", "warning"), ("Error", "error")],
    )
    def test_log_level_normalized(self, level: str, expected: str) -> None:
        assert LoggingConfig(level=level).level == expected

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError, match="Invalid log level"):
            LoggingConfig(level="verbose")


# =============================================================================
# Tests for Helpers
# =============================================================================


class TestHelpers:
    """Tests for the loading helpers."""

    def test_deep_merge(self) -> None:
        base = {"a": {"b": 1, "c": 2}, "d": 3}
        result = _deep_merge(base, {"a": {"b": 10}, "e": 5})

        assert result == {"a": {"b": 10, "c": 2}, "d": 3, "e": 5}
        assert base["a"]["b"] == 1

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("true", True),
            ("Yes", True),
            ("off", False),
            ("42", 42),
            ("0.25", 0.25),
            ("su,-mm", ["su", "-mm"]),
            ("frida-server", "frida-server"),
        ],
    )
    def test_parse_env_value(self, raw: str, expected: Any) -> None:
        assert _parse_env_value(raw) == expected

    def test_load_yaml_missing(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            _load_yaml_config(tmp_path / "missing.yml")

    def test_load_yaml_empty(self, temp_config_file: Path) -> None:
        temp_config_file.write_text("")
        assert _load_yaml_config(temp_config_file) == {}

    def test_load_env_nested(self) -> None:
        env = {
            "FRIDA_LAUNCHER_SESSION__SETTLE_SECONDS": "1.5",
            "FRIDA_LAUNCHER_DEVICE__PROCESS_NAME": "frida-server",
            "OTHER_VAR": "ignored",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            result = _load_env_config()

        assert result == {
            "session": {"settle_seconds": 1.5},
            "device": {"process_name": "frida-server"},
        }

    def test_parse_cli_args(self) -> None:
        result = _parse_cli_args(
            ["--config", "/etc/fl.yml", "--debug", "--work-dir", "/tmp/fl", "status"]
        )

        assert result == {
            "_config_path": "/etc/fl.yml",
            "logging": {"debug_mode": True, "level": "debug"},
            "download": {"work_dir": "/tmp/fl"},
        }

    def test_parse_cli_args_empty(self) -> None:
        assert _parse_cli_args([]) == {}


# =============================================================================
# Tests for load_config precedence
# =============================================================================


class TestLoadConfig:
    """Tests for layered loading."""

    def test_yaml(
        self,
        temp_config_file: Path,
        sample_yaml_config: dict[str, Any],
        clean_env: None,
    ) -> None:
        temp_config_file.write_text(yaml.dump(sample_yaml_config))

        config = load_config(temp_config_file, cli_args=[])

        assert config.catalog.releases_url == "https://mirror.example/releases"
        assert config.catalog.timeout_seconds == 15
        assert config.session.shell_command == ["su", "-mm"]
        assert config.device.architecture == Architecture.ARM64
        assert config.logging.level == "debug"
        assert config.device.binary_path == "/data/local/tmp/frida-server"

    def test_env_overrides_yaml(
        self,
        temp_config_file: Path,
        sample_yaml_config: dict[str, Any],
        clean_env: None,
    ) -> None:
        temp_config_file.write_text(yaml.dump(sample_yaml_config))

        with mock.patch.dict(
            os.environ,
            {
                "FRIDA_LAUNCHER_SESSION__SETTLE_SECONDS": "2.0",
                "FRIDA_LAUNCHER_LOGGING__LEVEL": "warning",
            },
        ):
            config = load_config(temp_config_file, cli_args=[])

        assert config.session.settle_seconds == 2.0
        assert config.logging.level == "warning"
        assert config.session.shell_command == ["su", "-mm"]

    def test_cli_overrides_env(
        self,
        temp_config_file: Path,
        sample_yaml_config: dict[str, Any],
        clean_env: None,
    ) -> None:
        temp_config_file.write_text(yaml.dump(sample_yaml_config))

        with mock.patch.dict(os.environ, {"FRIDA_LAUNCHER_LOGGING__LEVEL": "warning"}):
            config = load_config(
                temp_config_file, cli_args=["--log-level", "error", "--work-dir", "/w"]
            )

        assert config.logging.level == "error"
        assert config.download.work_dir == "/w"

    def test_config_flag(
        self,
        temp_config_file: Path,
        sample_yaml_config: dict[str, Any],
        clean_env: None,
    ) -> None:
        """Test --config selects the YAML file."""
        temp_config_file.write_text(yaml.dump(sample_yaml_config))

        config = load_config(cli_args=["--config", str(temp_config_file), "status"])

        assert config.catalog.releases_url == "https://mirror.example/releases"

    def test_missing_explicit_file(self, tmp_path: Path, clean_env: None) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yml", cli_args=[])

    def test_invalid_value(self, temp_config_file: Path, clean_env: None) -> None:
        temp_config_file.write_text(yaml.dump({"download": {"chunk_size": 10}}))

        with pytest.raises(ValidationError):
            load_config(temp_config_file, cli_args=[])

    def test_defaults_without_file(self, tmp_path: Path, clean_env: None) -> None:
        with mock.patch(
            "frida_launcher.config.DEFAULT_CONFIG_PATH", tmp_path / "absent.yml"
        ):
            config = load_config(cli_args=[])

        assert config == AppConfig()
