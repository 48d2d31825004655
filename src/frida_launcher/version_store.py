"""
Installed-version marker kept next to the server binary.

The marker is advisory: whether the server is installed is decided by the
binary itself, never by this file.
"""

from __future__ import annotations

from frida_launcher.logging import get_logger
from frida_launcher.session import ShellSession

logger = get_logger(__name__)

DEFAULT_VERSION_PATH = "/data/local/tmp/frida-version.txt"
MISSING_FILE_MARKER = "No such file"


def path_listed(output: str, path: str) -> bool:
    """True when ``ls -la`` output shows ``path`` as present."""
    return path in output and MISSING_FILE_MARKER not in output


class VersionStore:
    """Reads and writes the version marker through the privileged shell."""

    def __init__(
        self,
        session: ShellSession,
        path: str = DEFAULT_VERSION_PATH,
    ) -> None:
        self.session = session
        self.path = path

    async def save(self, version: str) -> bool:
        """Overwrite the marker with ``version``."""
        await self.session.execute(f"echo '{version}' > {self.path}")
        logger.debug("Saved installed version", extra={"version": version})
        return True

    async def read(self) -> str | None:
        """
        Return the recorded version.

        Returns:
            The trimmed marker content, or None when the marker is missing
            or empty (a valid never-installed or post-uninstall state).
        """
        listing = await self.session.execute(f"ls -la {self.path}")
        if not path_listed(listing, self.path):
            return None

        content = (await self.session.execute(f"cat {self.path}")).strip()
        return content or None

    async def clear(self) -> None:
        """Remove the marker."""
        await self.session.execute(f"rm -f {self.path}")
