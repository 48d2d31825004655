"""
Caller-facing launcher service.

Wires the catalog, fetcher, privileged session and controller together and
exposes the operations a front end needs. Every operation returns an
OperationResult carrying a human-readable status line (also logged) and, on
failure, the FailureKind. Operations are single-flight: the privileged shell
has no request framing, so two operations must never interleave.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from frida_launcher.catalog import ReleaseCatalog, is_valid_version
from frida_launcher.config import AppConfig
from frida_launcher.controller import AgentController
from frida_launcher.device import can_use_non_root_mode, detect_architecture
from frida_launcher.errors import (
    CommandFailureError,
    FailureKind,
    InvalidArgumentError,
    LauncherError,
    NetworkFailureError,
    PrivilegeUnavailableError,
    StateMismatchError,
)
from frida_launcher.fetcher import ArchiveFetcher
from frida_launcher.logging import get_logger
from frida_launcher.models import Architecture, InstallState, RunState
from frida_launcher.session import PrivilegedSession

logger = get_logger(__name__)



@dataclass(frozen=True)
class OperationResult:
    """
    Result of a launcher operation.

    Attributes:
        success: Whether the operation reached its goal.
        message: Status line suitable for display.
        value: Operation-specific payload (releases, status, path...).
        failure: FailureKind when success is False.
    """

    success: bool
    message: str
    value: Any = None
    failure: FailureKind | None = None

    @classmethod
    def ok(cls, message: str, value: Any = None) -> OperationResult:
        return cls(True, message, value)

    @classmethod
    def failed(cls, failure: FailureKind, message: str) -> OperationResult:
        return cls(False, message, failure=failure)

    @classmethod
    def from_error(cls, error: LauncherError) -> OperationResult:
        return cls.failed(error.failure, error.message)


@dataclass(frozen=True)
class AgentStatus:
    """Snapshot of the server on the device."""

    state: InstallState
    version: str | None = None

    @property
    def installed(self) -> bool:
        return self.state is not InstallState.NOT_INSTALLED

    @property
    def run_state(self) -> RunState:
        if self.state is InstallState.INSTALLED_RUNNING:
            return RunState.RUNNING
        return RunState.STOPPED

    @property
    def running(self) -> bool:
        return self.run_state is RunState.RUNNING


@dataclass
class Selection:
    """Version and architecture chosen by the user."""

    version: str | None = None
    architecture: Architecture | None = None


class LauncherService:
    """
    Lifecycle operations for the server binary.

    Actions raise LauncherError subclasses; ``_run`` turns them into a failed
    OperationResult, so no exception reaches the caller.

    Example:
        >>> service = LauncherService.from_config(load_config(cli_args=[]))
        >>> result = await service.install("16.7.19")
        >>> print(result.message)
        >>> await service.close()
    """

    def __init__(
        self,
        session: PrivilegedSession,
        catalog: ReleaseCatalog,
        fetcher: ArchiveFetcher,
        controller: AgentController,
        *,
        architecture: Architecture | None = None,
    ) -> None:
        self.session = session
        self.catalog = catalog
        self.fetcher = fetcher
        self.controller = controller
        self.selection = Selection(architecture=architecture)
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: AppConfig) -> LauncherService:
        """Build every component from configuration."""
        session = PrivilegedSession.from_config(config.session)
        return cls(
            session,
            ReleaseCatalog.from_config(config.catalog),
            ArchiveFetcher.from_config(
                config.download, binary_name=config.device.process_name
            ),
            AgentController.from_config(session, config.device),
            architecture=config.device.architecture,
        )

    async def _run(
        self,
        operation: str,
        action: Callable[[], Awaitable[OperationResult]],
    ) -> OperationResult:
        async with self._lock:
            try:
                result = await action()
            except LauncherError as e:
                logger.warning(
                    e.message, extra={"operation": operation, **e.log_extra()}
                )
                return OperationResult.from_error(e)
            except Exception as e:
                logger.exception("Operation crashed", extra={"operation": operation})
                return OperationResult.from_error(
                    CommandFailureError(
                        f"{operation} failed: {e}",
                        details={"exception": type(e).__name__},
                    )
                )

        logger.info(result.message, extra={"operation": operation, "success": True})
        return result

    async def _require_root(self) -> None:
        if not await self.session.is_root_available():
            raise PrivilegeUnavailableError("Root access is not available")

    async def architecture(self) -> Architecture:
        """Selected architecture, detected on first use."""
        if self.selection.architecture is None:
            self.selection.architecture = await detect_architecture(self.session)
        return self.selection.architecture

    # -------------------------------------------------------------------------
    # Catalog
    # -------------------------------------------------------------------------

    async def list_releases(self) -> OperationResult:
        async def action() -> OperationResult:
            outcome = await self.catalog.load_releases()
            if not outcome.ok:
                raise LauncherError(
                    outcome.failure or FailureKind.NETWORK_FAILURE,
                    f"Could not load releases: {outcome.message}",
                )
            releases = outcome.value or []
            return OperationResult.ok(f"Found {len(releases)} releases", releases)

        return await self._run("list_releases", action)

    async def select(
        self,
        version: str | None = None,
        architecture: Architecture | str | None = None,
    ) -> OperationResult:
        """Set the desired version and/or architecture."""

        async def action() -> OperationResult:
            if version is not None:
                _check_version(version)
            if architecture is not None:
                try:
                    arch = Architecture(architecture)
                except ValueError:
                    raise InvalidArgumentError(
                        f"Unknown architecture: {architecture}",
                        details={"architecture": str(architecture)},
                    ) from None
                self.selection.architecture = arch

            if version is not None:
                self.selection.version = version

            arch_label = (
                self.selection.architecture.value
                if self.selection.architecture is not None
                else "auto"
            )
            return OperationResult.ok(
                f"Selected version {self.selection.version or 'latest'} for {arch_label}",
                self.selection,
            )

        return await self._run("select", action)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def install(self, version: str | None = None) -> OperationResult:
        """Download the selected (or latest) version and install it."""

        async def action() -> OperationResult:
            await self._require_root()

            target = version or self.selection.version
            if target is not None:
                _check_version(target)
            arch = await self.architecture()

            if target is None:
                latest = await self.catalog.latest_asset(arch)
                if latest is None:
                    raise NetworkFailureError(
                        f"No {arch.value} download in the latest release",
                        details={"architecture": arch.value},
                    )
                target, asset = latest
                url: str | None = asset.download_url
            else:
                url = await self.catalog.resolve_download_url(target, arch)

            if url is None:
                raise NetworkFailureError(
                    f"No download found for {target} ({arch.value})",
                    details={"version": target, "architecture": arch.value},
                )

            fetched = await self.fetcher.download(url)
            if not fetched.ok or fetched.value is None:
                raise LauncherError(
                    fetched.failure or FailureKind.NETWORK_FAILURE,
                    f"Download failed: {fetched.message}",
                    details={"url": url},
                )

            return await self._install_file(fetched.value, target)

        return await self._run("install", action)

    async def install_from_file(self, path: Path | str, version: str) -> OperationResult:
        """Install an already downloaded binary."""

        async def action() -> OperationResult:
            _check_version(version)
            if not Path(path).is_file():
                raise InvalidArgumentError(
                    f"No such file: {path}", details={"path": str(path)}
                )
            await self._require_root()
            return await self._install_file(Path(path), version)

        return await self._run("install_from_file", action)

    async def _install_file(self, path: Path, version: str) -> OperationResult:
        if not await self.controller.install(path, version):
            raise StateMismatchError(
                f"Install of {version} could not be verified on the device",
                details={"version": version},
            )
        return OperationResult.ok(f"Installed frida-server {version}", version)

    async def start(self, flags: str = "") -> OperationResult:
        async def action() -> OperationResult:
            await self._require_root()
            if not await self.controller.is_installed():
                raise StateMismatchError("frida-server is not installed")
            if not await self.controller.start(flags):
                raise StateMismatchError("frida-server did not start")
            suffix = f" with flags: {flags}" if flags.strip() else ""
            return OperationResult.ok(f"frida-server is running{suffix}")

        return await self._run("start", action)

    async def stop(self) -> OperationResult:
        async def action() -> OperationResult:
            await self._require_root()
            if not await self.controller.stop():
                raise StateMismatchError("frida-server is still running")
            return OperationResult.ok("frida-server is stopped")

        return await self._run("stop", action)

    async def uninstall(self) -> OperationResult:
        async def action() -> OperationResult:
            await self._require_root()
            if not await self.controller.uninstall():
                raise StateMismatchError("frida-server binary is still present")
            return OperationResult.ok("frida-server uninstalled")

        return await self._run("uninstall", action)

    async def status(self) -> OperationResult:
        async def action() -> OperationResult:
            await self._require_root()

            state = await self.controller.state()
            if state is InstallState.NOT_INSTALLED:
                return OperationResult.ok(
                    "frida-server is not installed", AgentStatus(state)
                )

            status = AgentStatus(state, await self.controller.installed_version())
            return OperationResult.ok(
                f"frida-server {status.version or '(unknown version)'} is "
                f"{status.run_state.value}",
                status,
            )

        return await self._run("status", action)

    async def check_non_root(self) -> OperationResult:
        """Report whether the work directory can run binaries without root."""

        async def action() -> OperationResult:
            work_dir = self.fetcher.work_dir
            if await can_use_non_root_mode(work_dir):
                return OperationResult.ok(
                    f"Binaries in {work_dir} can run without root", True
                )
            return OperationResult.ok(
                f"Binaries in {work_dir} cannot run without root", False
            )

        return await self._run("check_non_root", action)

    async def close(self) -> None:
        """Tear down the privileged shell."""
        async with self._lock:
            await self.session.close()


def _check_version(version: str) -> None:
    if not is_valid_version(version):
        raise InvalidArgumentError(
            f"Invalid version format: {version} (expected e.g. 16.7.19)",
            details={"version": version},
        )
