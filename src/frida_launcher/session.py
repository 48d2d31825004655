"""
Privileged shell session.

One long-running elevated shell (``su`` by default) is spawned lazily and
reused for every command. There is no framing on the shell's output: each
command is written, a fixed settle delay elapses, and whatever output is
already buffered is drained once. Slow commands may therefore be truncated
or spill into the next call's output. Callers must not overlap commands;
the internal lock serializes them within one process.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING, Protocol

from frida_launcher.logging import get_logger

if TYPE_CHECKING:
    from types import TracebackType

    from frida_launcher.config import SessionConfig

logger = get_logger(__name__)

ROOT_MARKER = "uid=0"
DEFAULT_SETTLE_SECONDS = 0.5


class ShellSession(Protocol):
    """Anything that can run a shell command and return its output."""

    async def execute(self, command: str) -> str: ...


class PrivilegedSession:
    """
    Owner of the single elevated shell process.

    Attributes:
        shell_command: Argv of the long-running shell.
        probe_command: Argv of the one-shot root probe.
        settle_seconds: Wait between writing a command and reading output.
        exit_directive: Line written to the shell on close.
        drain_timeout: Total time spent reading buffered output per command.

    Example:
        >>> async with PrivilegedSession() as session:
        ...     print(await session.execute("id"))
    """

    def __init__(
        self,
        shell_command: Sequence[str] = ("su",),
        *,
        probe_command: Sequence[str] = ("su", "-c", "id"),
        settle_seconds: float = DEFAULT_SETTLE_SECONDS,
        exit_directive: str = "exit",
        drain_timeout: float = 0.05,
        probe_timeout: float = 10.0,
        read_size: int = 4096,
    ) -> None:
        self.shell_command = tuple(shell_command)
        self.probe_command = tuple(probe_command)
        self.settle_seconds = settle_seconds
        self.exit_directive = exit_directive
        self.drain_timeout = drain_timeout
        self.probe_timeout = probe_timeout
        self.read_size = read_size
        self._process: asyncio.subprocess.Process | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(cls, config: SessionConfig) -> PrivilegedSession:
        """Create a PrivilegedSession from configuration."""
        return cls(
            config.shell_command,
            probe_command=config.probe_command,
            settle_seconds=config.settle_seconds,
            exit_directive=config.exit_directive,
        )

    @property
    def is_alive(self) -> bool:
        """True while the shell process exists and has not exited."""
        return self._process is not None and self._process.returncode is None

    async def __aenter__(self) -> PrivilegedSession:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def is_root_available(self) -> bool:
        """
        Run the one-shot root probe.

        Returns:
            True when the probe exits 0 and reports ``uid=0``.
        """
        try:
            proc = await asyncio.create_subprocess_exec(
                *self.probe_command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.info(
                "Root probe could not start",
                extra={"command": " ".join(self.probe_command), "error": str(e)},
            )
            return False

        try:
            stdout, _ = await asyncio.wait_for(
                proc.communicate(), timeout=self.probe_timeout
            )
        except TimeoutError:
            logger.warning("Root probe timed out", extra={"timeout": self.probe_timeout})
            if proc.returncode is None:
                proc.kill()
            return False

        output = stdout.decode("utf-8", errors="replace") if stdout else ""
        return proc.returncode == 0 and ROOT_MARKER in output

    async def _ensure_process(self) -> asyncio.subprocess.Process | None:
        if self.is_alive:
            return self._process

        self._process = None
        if not await self.is_root_available():
            logger.warning("Root access unavailable")
            return None

        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.shell_command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            logger.warning(
                "Failed to spawn privileged shell",
                extra={"command": " ".join(self.shell_command), "error": str(e)},
            )
            return None

        logger.debug("Privileged shell started", extra={"pid": self._process.pid})
        return self._process

    async def _drain(self, stream: asyncio.StreamReader) -> bytes:
        # Bounded by one deadline even while output keeps arriving
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.drain_timeout
        chunks: list[bytes] = []
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            try:
                chunk = await asyncio.wait_for(
                    stream.read(self.read_size), timeout=remaining
                )
            except TimeoutError:
                break
            if not chunk:
                break
            chunks.append(chunk)
        return b"".join(chunks)

    async def execute(self, command: str) -> str:
        """
        Run ``command`` in the elevated shell.

        Returns:
            Output captured after the settle delay, or "" when root is
            unavailable or the shell failed.
        """
        async with self._lock:
            process = await self._ensure_process()
            if process is None or process.stdin is None or process.stdout is None:
                return ""

            try:
                process.stdin.write(f"{command}\n".encode())
                await process.stdin.drain()
                await asyncio.sleep(self.settle_seconds)
                output = await self._drain(process.stdout)
            except Exception as e:
                logger.warning(
                    "Privileged command failed",
                    extra={"command": command, "error": str(e)},
                )
                await self._terminate(process)
                self._process = None
                return ""

        text = output.decode("utf-8", errors="replace")
        logger.debug(
            "Privileged command executed",
            extra={"command": command, "output_bytes": len(output)},
        )
        return text

    async def close(self) -> None:
        """Send the exit directive, close the pipes and kill the shell."""
        async with self._lock:
            process = self._process
            self._process = None
            if process is None:
                return

            stdin = process.stdin
            if stdin is not None and not stdin.is_closing():
                try:
                    stdin.write(f"{self.exit_directive}\n".encode())
                    await stdin.drain()
                    stdin.close()
                except (OSError, RuntimeError) as e:
                    logger.debug("Error closing shell input", extra={"error": str(e)})

            await self._terminate(process)
            logger.debug("Privileged shell closed")

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        if process.returncode is not None:
            return
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()
