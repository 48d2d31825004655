"""
Pytest configuration and shared fixtures for the frida-launcher tests.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from unittest.mock import AsyncMock, patch

import pytest

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]

BINARY_PATH = "/data/local/tmp/frida-server"
VERSION_PATH = "/data/local/tmp/frida-version.txt"


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: spawns real subprocesses (deselect with '-m \"not integration\"')",
    )


class FakeDeviceShell:
    """
    In-memory stand-in for the privileged shell of a rooted device.

    Understands the handful of commands the launcher issues and keeps a
    tiny model of the filesystem and of the server process.

    Attributes:
        files: Path to content of files on the device.
        running: Whether the server process is alive.
        root: Whether the root probe succeeds.
        copy_fails: Make ``cp`` silently do nothing.
        start_works: Whether ``nohup`` actually starts the server.
        kills_to_stop: Number of kill commands the server survives + 1.
        visible_to: Probes that can see the running process.
        abi: Value returned by getprop.
        commands: Every command received, in order.
    """

    def __init__(self) -> None:
        self.files: dict[str, str] = {}
        self.running = False
        self.root = True
        self.copy_fails = False
        self.start_works = True
        self.kills_to_stop = 1
        self.visible_to = {"ps_all", "ps_session", "pidof"}
        self.abi = "arm64-v8a"
        self.commands: list[str] = []
        self.closed = False
        self._kills = 0

    async def is_root_available(self) -> bool:
        return self.root

    async def close(self) -> None:
        self.closed = True

    def kill_commands(self) -> list[str]:
        return [c for c in self.commands if c.startswith(("kill", "pkill"))]

    async def execute(self, command: str) -> str:
        self.commands.append(command)
        if not self.root:
            return ""

        if command.startswith("ls -la "):
            path = command[len("ls -la ") :]
            if path in self.files:
                return f"-rwxr-xr-x 1 root root 1024 2025-01-01 00:00 {path}\n"
            return f"ls: {path}: No such file or directory\n"

        if command.startswith("cat "):
            return self.files.get(command[len("cat ") :], "")

        if command.startswith("cp "):
            _, source, target = command.split()
            if not self.copy_fails:
                self.files[target] = f"copy of {source}"
            return ""

        if command.startswith("chmod "):
            return ""

        match = re.match(r"echo '(.*)' > (\S+)$", command)
        if match:
            self.files[match.group(2)] = match.group(1) + "\n"
            return ""

        if command.startswith("rm -f "):
            self.files.pop(command[len("rm -f ") :], None)
            return ""

        if command.startswith("nohup "):
            if self.start_works and BINARY_PATH in self.files:
                self.running = True
            return ""

        if command.startswith(("kill", "pkill")):
            self._kills += 1
            if self._kills >= self.kills_to_stop:
                self.running = False
            return ""

        if command.startswith("ps -A | grep"):
            return self._process_line("ps_all")
        if command.startswith("ps | grep"):
            return self._process_line("ps_session")
        if command.startswith("pidof "):
            return "4242\n" if self.running and "pidof" in self.visible_to else ""

        if command.startswith("getprop ro.product.cpu.abi"):
            return f"{self.abi}\n"

        return ""

    def _process_line(self, probe: str) -> str:
        if self.running and probe in self.visible_to:
            return "root  4242  1  123456  7890 0  S frida-server\n"
        return ""


@pytest.fixture
def device() -> FakeDeviceShell:
    """A fresh fake device with root access."""
    return FakeDeviceShell()


@pytest.fixture
def no_sleep() -> Iterator[AsyncMock]:
    """Replace asyncio.sleep so settle delays are recorded, not waited."""
    with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
        yield mock_sleep
