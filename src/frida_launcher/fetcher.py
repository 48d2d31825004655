"""
Archive fetcher for server binaries.

Downloads an asset to the working directory and turns it into an executable
binary. The container format is picked once from the URL suffix:

- ``.xz``: LZMA/XZ stream, decompressed chunk by chunk
- ``.zip``: first entry whose name contains the binary name is extracted
- anything else: the body is the binary itself

A failed fetch never leaves a partial binary or a compressed intermediate
behind.
"""

from __future__ import annotations

import asyncio
import lzma
import shutil
import zipfile
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

import httpx

from frida_launcher.errors import (
    DecompressionFailureError,
    LauncherError,
    NetworkFailureError,
    Outcome,
    StorageFailureError,
)
from frida_launcher.logging import get_logger

if TYPE_CHECKING:
    from frida_launcher.config import DownloadConfig

logger = get_logger(__name__)

DEFAULT_BINARY_NAME = "frida-server"
DEFAULT_CHUNK_SIZE = 64 * 1024
EXECUTABLE_MODE = 0o755


class ArchiveFormat(str, Enum):
    """Container format of a downloaded asset."""

    RAW = "raw"
    XZ = "xz"
    ZIP = "zip"

    @classmethod
    def from_url(cls, url: str) -> ArchiveFormat:
        """Select the format from the URL path suffix."""
        path = urlsplit(url).path or url
        if path.endswith(".xz"):
            return cls.XZ
        if path.endswith(".zip"):
            return cls.ZIP
        return cls.RAW

    def decompress(
        self,
        source: Path,
        target: Path,
        binary_name: str = DEFAULT_BINARY_NAME,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> None:
        """
        Write the binary contained in ``source`` to ``target``.

        Args:
            source: Downloaded archive.
            target: Final binary path.
            binary_name: Substring identifying the binary inside a zip.
            chunk_size: Size of the copy buffer.

        Raises:
            DecompressionFailureError: If the archive is corrupt or holds no
                binary. ``target`` is removed before raising.
        """
        if self is ArchiveFormat.RAW:
            if source != target:
                shutil.copyfile(source, target)
            return

        try:
            if self is ArchiveFormat.XZ:
                _decompress_xz(source, target, chunk_size)
            else:
                _extract_zip_member(source, target, binary_name, chunk_size)
        except DecompressionFailureError:
            target.unlink(missing_ok=True)
            raise
        except (lzma.LZMAError, EOFError, zipfile.BadZipFile, OSError) as e:
            target.unlink(missing_ok=True)
            raise DecompressionFailureError(
                f"Failed to decompress {self.value} archive: {e}",
                details={"source": str(source)},
            ) from e


def _decompress_xz(source: Path, target: Path, chunk_size: int) -> None:
    with lzma.open(source, "rb") as compressed, open(target, "wb") as output:
        shutil.copyfileobj(compressed, output, chunk_size)


def _extract_zip_member(
    source: Path,
    target: Path,
    binary_name: str,
    chunk_size: int,
) -> None:
    with zipfile.ZipFile(source) as archive:
        for info in archive.infolist():
            if binary_name in info.filename and not info.is_dir():
                with archive.open(info) as member, open(target, "wb") as output:
                    shutil.copyfileobj(member, output, chunk_size)
                return

    raise DecompressionFailureError(
        f"No entry containing {binary_name!r} in zip archive",
        details={"source": str(source)},
    )


class ArchiveFetcher:
    """
    Downloads a server asset and produces the local executable.

    Attributes:
        work_dir: Unprivileged directory for the binary and intermediates.
        binary_name: File name of the produced binary.
        timeout: Connect/read timeout for downloads.
        chunk_size: Streaming and decompression buffer size.

    Example:
        >>> fetcher = ArchiveFetcher(Path("/tmp/frida"))
        >>> binary = await fetcher.fetch(url)
    """

    def __init__(
        self,
        work_dir: Path | str,
        *,
        binary_name: str = DEFAULT_BINARY_NAME,
        timeout: float = 60.0,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.work_dir = Path(work_dir)
        self.binary_name = binary_name
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: DownloadConfig,
        binary_name: str = DEFAULT_BINARY_NAME,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ArchiveFetcher:
        """Create an ArchiveFetcher from configuration."""
        return cls(
            config.work_dir,
            binary_name=binary_name,
            timeout=config.timeout_seconds,
            chunk_size=config.chunk_size,
            transport=transport,
        )

    @property
    def binary_path(self) -> Path:
        """Path of the produced binary."""
        return self.work_dir / self.binary_name

    def staging_path(self, archive_format: ArchiveFormat) -> Path:
        """Path the body is written to before decompression."""
        if archive_format is ArchiveFormat.RAW:
            return self.binary_path
        return self.work_dir / f"{self.binary_name}.{archive_format.value}"

    async def download(self, url: str) -> Outcome[Path]:
        """
        Download ``url`` and produce the executable binary.

        Returns:
            Outcome with the binary path, or a failed Outcome tagged
            NETWORK_FAILURE, DECOMPRESSION_FAILURE or STORAGE_FAILURE.
        """
        archive_format = ArchiveFormat.from_url(url)
        staged = self.staging_path(archive_format)
        target = self.binary_path

        logger.info(
            "Downloading server binary",
            extra={"url": url, "format": archive_format.value},
        )

        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
            await self._stream_to_file(url, staged)

            if archive_format is not ArchiveFormat.RAW:
                try:
                    await asyncio.to_thread(
                        archive_format.decompress,
                        staged,
                        target,
                        self.binary_name,
                        self.chunk_size,
                    )
                finally:
                    staged.unlink(missing_ok=True)

            if not target.exists():
                raise DecompressionFailureError(
                    "Archive produced no binary", details={"url": url}
                )
            target.chmod(EXECUTABLE_MODE)
        except LauncherError as e:
            self._discard(staged, target)
            logger.warning("Download failed", extra={"url": url, **e.log_extra()})
            return Outcome.from_error(e)
        except httpx.HTTPError as e:
            self._discard(staged, target)
            logger.warning("Download failed", extra={"url": url, "error": str(e)})
            return Outcome.from_error(NetworkFailureError(f"Download failed: {e}"))
        except OSError as e:
            self._discard(staged, target)
            logger.warning(
                "Could not write to work directory",
                extra={"url": url, "work_dir": str(self.work_dir), "error": str(e)},
            )
            return Outcome.from_error(
                StorageFailureError(
                    f"Cannot write to {self.work_dir}: {e}",
                    details={"work_dir": str(self.work_dir)},
                )
            )
        except Exception as e:
            self._discard(staged, target)
            logger.exception("Unexpected download error", extra={"url": url})
            return Outcome.from_error(NetworkFailureError(f"Download failed: {e}"))

        logger.info(
            "Server binary ready",
            extra={"path": str(target), "size_bytes": target.stat().st_size},
        )
        return Outcome.success(target, f"Downloaded {target.name}")

    async def fetch(self, url: str) -> Path | None:
        """Return the produced binary, or None on any failure."""
        outcome = await self.download(url)
        return outcome.value if outcome.ok else None

    async def _stream_to_file(self, url: str, path: Path) -> None:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout),
            follow_redirects=True,
            transport=self._transport,
        ) as client:
            async with client.stream("GET", url) as response:
                if not response.is_success:
                    raise NetworkFailureError(
                        f"Download returned HTTP {response.status_code}",
                        details={"url": url, "status_code": response.status_code},
                    )
                with open(path, "wb") as output:
                    async for chunk in response.aiter_bytes(self.chunk_size):
                        output.write(chunk)

    @staticmethod
    def _discard(*paths: Path) -> None:
        for path in paths:
            if path.exists():
                path.unlink()
