"""
Data models for releases, assets and derived device state.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Architecture(str, Enum):
    """CPU architectures published for the Android server binary."""

    ARM = "arm"
    ARM64 = "arm64"
    X86 = "x86"
    X86_64 = "x86_64"
    UNKNOWN = "unknown"


class RunState(str, Enum):
    """Whether the server process is alive. Probed on every call."""

    RUNNING = "running"
    STOPPED = "stopped"


class InstallState(str, Enum):
    """Lifecycle state derived from the installed and running probes."""

    NOT_INSTALLED = "not_installed"
    INSTALLED_STOPPED = "installed_stopped"
    INSTALLED_RUNNING = "installed_running"


class Asset(BaseModel):
    """
    A downloadable server archive attached to a release.

    Attributes:
        name: Asset file name (e.g. frida-server-16.7.19-android-arm64.xz).
        download_url: Public download URL.
        architecture: Architecture parsed from the name.
        size_bytes: Size reported by the index.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    download_url: str
    architecture: Architecture = Architecture.UNKNOWN
    size_bytes: int = Field(default=0, ge=0)


class Release(BaseModel):
    """
    A release with at least one qualifying server asset.

    Attributes:
        version: Release tag (e.g. 16.7.19).
        release_date: Publication date as published (YYYY-MM-DD), not validated.
        assets: Qualifying assets in index order.
    """

    model_config = ConfigDict(frozen=True)

    version: str
    release_date: str
    assets: tuple[Asset, ...] = ()

    def find_asset(self, architecture: Architecture | str) -> Asset | None:
        """
        Pick the asset for an architecture.

        An exact architecture match wins; otherwise the first asset whose
        name contains ``-android-<architecture>`` is returned.
        """
        arch = Architecture(architecture)
        for asset in self.assets:
            if asset.architecture == arch:
                return asset
        token = f"-android-{arch.value}"
        for asset in self.assets:
            if token in asset.name:
                return asset
        return None
