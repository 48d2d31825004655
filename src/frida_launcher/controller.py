"""
Agent controller.

Drives the server binary through its lifecycle states:

- not_installed: no binary at the privileged path
- installed_stopped: binary present, no matching process
- installed_running: binary present and a matching process alive

Every operation re-probes the device afterwards and reports the probed
state rather than trusting the commands it issued.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from frida_launcher.logging import get_logger
from frida_launcher.models import InstallState
from frida_launcher.session import ShellSession
from frida_launcher.version_store import VersionStore, path_listed

if TYPE_CHECKING:
    from frida_launcher.config import DeviceConfig

logger = get_logger(__name__)

DEFAULT_BINARY_PATH = "/data/local/tmp/frida-server"
DEFAULT_PROCESS_NAME = "frida-server"
DEFAULT_START_SETTLE_SECONDS = 1.5


@dataclass(frozen=True)
class TerminationStrategy:
    """
    One rung of the stop ladder.

    Attributes:
        name: Short label used in logs.
        command: Shell command template; ``{name}`` is the process name and
            ``{pattern}`` a grep pattern that does not match grep itself.
        settle_seconds: Wait before re-probing.
    """

    name: str
    command: str
    settle_seconds: float

    def render(self, process_name: str) -> str:
        return self.command.format(
            name=process_name, pattern=grep_pattern(process_name)
        )


# Tried in order until the re-probe reports the process gone
TERMINATION_LADDER: tuple[TerminationStrategy, ...] = (
    TerminationStrategy(
        "ps_all",
        "kill -9 $(ps -A | grep {pattern} | awk '{{ print $2 }}')",
        0.5,
    ),
    TerminationStrategy(
        "ps_session",
        "kill -9 $(ps | grep {pattern} | awk '{{ print $2 }}')",
        0.3,
    ),
    TerminationStrategy("pidof", "kill -9 $(pidof {name})", 0.3),
    TerminationStrategy("pkill", "pkill -9 -f {pattern}", 0.5),
)


def grep_pattern(process_name: str) -> str:
    """
    Bracket the first character so grep/pkill never match themselves.

    ``frida-server`` becomes ``[f]rida-server``.
    """
    if not process_name:
        return process_name
    return f"[{process_name[0]}]{process_name[1:]}"


class AgentController:
    """
    Installs, starts, stops and probes the server binary.

    Attributes:
        session: Privileged shell used for every device command.
        version_store: Version marker store.
        binary_path: Privileged install path.
        process_name: Name of the running server process.
        start_settle_seconds: Wait after launch before probing.
        ladder: Ordered termination strategies used by stop().
    """

    def __init__(
        self,
        session: ShellSession,
        version_store: VersionStore | None = None,
        *,
        binary_path: str = DEFAULT_BINARY_PATH,
        process_name: str = DEFAULT_PROCESS_NAME,
        start_settle_seconds: float = DEFAULT_START_SETTLE_SECONDS,
        ladder: tuple[TerminationStrategy, ...] = TERMINATION_LADDER,
    ) -> None:
        self.session = session
        self.version_store = version_store or VersionStore(session)
        self.binary_path = binary_path
        self.process_name = process_name
        self.start_settle_seconds = start_settle_seconds
        self.ladder = ladder

    @classmethod
    def from_config(
        cls,
        session: ShellSession,
        config: DeviceConfig,
    ) -> AgentController:
        """Create an AgentController from configuration."""
        return cls(
            session,
            VersionStore(session, config.version_path),
            binary_path=config.binary_path,
            process_name=config.process_name,
            start_settle_seconds=config.start_settle_seconds,
        )

    # -------------------------------------------------------------------------
    # Probes
    # -------------------------------------------------------------------------

    async def is_installed(self) -> bool:
        """True when the binary exists at the privileged path."""
        listing = await self.session.execute(f"ls -la {self.binary_path}")
        return path_listed(listing, self.binary_path)

    async def is_running(self) -> bool:
        """
        Probe the process table.

        Tries the full process list, then the current-session list, then
        pidof; the first positive answer wins.
        """
        pattern = grep_pattern(self.process_name)

        output = await self.session.execute(f"ps -A | grep {pattern}")
        if self.process_name in output:
            return True

        output = await self.session.execute(f"ps | grep {pattern}")
        if self.process_name in output:
            return True

        output = await self.session.execute(f"pidof {self.process_name}")
        return bool(output.strip())

    async def state(self) -> InstallState:
        """Derive the lifecycle state from fresh probes."""
        if not await self.is_installed():
            return InstallState.NOT_INSTALLED
        if await self.is_running():
            return InstallState.INSTALLED_RUNNING
        return InstallState.INSTALLED_STOPPED

    async def installed_version(self) -> str | None:
        return await self.version_store.read()

    # -------------------------------------------------------------------------
    # Lifecycle operations
    # -------------------------------------------------------------------------

    async def install(self, local_file: Path | str, version: str) -> bool:
        """
        Copy ``local_file`` to the privileged path and record ``version``.

        Returns:
            The re-probed installed state.
        """
        source = Path(local_file).absolute()
        await self.session.execute(f"cp {source} {self.binary_path}")
        await self.session.execute(f"chmod 755 {self.binary_path}")
        await self.version_store.save(version)

        installed = await self.is_installed()
        if installed:
            logger.info(
                "Server installed",
                extra={"version": version, "path": self.binary_path},
            )
        else:
            logger.warning(
                "Server binary missing after install",
                extra={"version": version, "source": str(source)},
            )
        return installed

    async def uninstall(self) -> bool:
        """
        Stop the server if needed and remove the binary and marker.

        Returns:
            True only when the binary is confirmed absent.
        """
        if await self.is_running():
            await self.stop()

        await self.session.execute(f"rm -f {self.binary_path}")
        await self.version_store.clear()

        removed = not await self.is_installed()
        if removed:
            logger.info("Server uninstalled", extra={"path": self.binary_path})
        else:
            logger.warning("Server binary still present after uninstall")
        return removed

    async def start(self, flags: str = "") -> bool:
        """
        Launch the server in the background.

        ``flags`` are appended to the command line verbatim; they are not
        validated or escaped.

        Returns:
            The re-probed running state.
        """
        if await self.is_running():
            logger.info("Server already running")
            return True

        invocation = self.binary_path
        if flags.strip():
            invocation = f"{invocation} {flags}"
        await self.session.execute(f"nohup {invocation} > /dev/null 2>&1 &")
        await asyncio.sleep(self.start_settle_seconds)

        running = await self.is_running()
        if running:
            logger.info("Server started", extra={"flags": flags})
        else:
            logger.warning("Server not running after start", extra={"flags": flags})
        return running

    async def stop(self) -> bool:
        """
        Terminate the server, escalating through the termination ladder.

        Returns:
            True once a probe shows the server stopped; False if every
            strategy was tried and it is still running.
        """
        if not await self.is_running():
            return True

        for strategy in self.ladder:
            await self.session.execute(strategy.render(self.process_name))
            await asyncio.sleep(strategy.settle_seconds)

            if not await self.is_running():
                logger.info("Server stopped", extra={"strategy": strategy.name})
                return True

            logger.debug("Server survived termination", extra={"strategy": strategy.name})

        logger.warning("Server still running after all termination strategies")
        return False
