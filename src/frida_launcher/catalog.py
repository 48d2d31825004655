"""
Release catalog client.

Queries the public release index, keeps the server archives among each
release's assets and resolves download URLs for a version and architecture.
The index payload is large, so it is decoded incrementally with ijson's push
parser as bytes arrive instead of being loaded whole.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Any

import httpx
import ijson

from frida_launcher.errors import (
    LauncherError,
    NetworkFailureError,
    Outcome,
    ParseFailureError,
)
from frida_launcher.logging import get_logger
from frida_launcher.models import Architecture, Asset, Release

if TYPE_CHECKING:
    from frida_launcher.config import CatalogConfig

logger = get_logger(__name__)

ARCHIVE_SUFFIXES = (".xz", ".zip")

# Longest alternatives first so "android-arm64" never matches as "arm"
ARCHITECTURE_PATTERN = re.compile(r"android-(arm64|arm|x86_64|x86)")

VERSION_PATTERN = re.compile(r"^\d+\.\d+\.\d+(-[a-zA-Z0-9]+)?$")

DEFAULT_RELEASES_URL = "https://api.github.com/repos/frida/frida/releases"
DEFAULT_BINARY_PREFIX = "frida-server-"
DEFAULT_URL_TEMPLATE = (
    "https://github.com/frida/frida/releases/download/"
    "{version}/frida-server-{version}-android-{architecture}.xz"
)


def is_valid_version(version: str) -> bool:
    """
    Check a user-entered version string.

    Accepts ``MAJOR.MINOR.PATCH`` with an optional ``-alphanumeric`` suffix,
    e.g. ``16.7.19`` or ``16.5.9-rc1``.
    """
    return bool(VERSION_PATTERN.match(version))


def architecture_from_name(name: str) -> Architecture:
    """Derive the architecture from an asset name, ``unknown`` if absent."""
    match = ARCHITECTURE_PATTERN.search(name)
    if match is None:
        return Architecture.UNKNOWN
    return Architecture(match.group(1))


def is_server_asset(name: str, prefix: str = DEFAULT_BINARY_PREFIX) -> bool:
    """True for asset names carrying the server binary in a known archive."""
    return name.startswith(prefix) and name.endswith(ARCHIVE_SUFFIXES)


def parse_release(
    raw: dict[str, Any],
    prefix: str = DEFAULT_BINARY_PREFIX,
) -> Release | None:
    """
    Build a Release from one raw index entry.

    Args:
        raw: Decoded release object with tag_name, published_at and assets.
        prefix: Required asset name prefix.

    Returns:
        The Release, or None when no asset qualifies.

    Raises:
        ParseFailureError: If a required field is missing or malformed.
    """
    try:
        assets = [
            Asset(
                name=item["name"],
                download_url=item["browser_download_url"],
                architecture=architecture_from_name(item["name"]),
                size_bytes=int(item.get("size") or 0),
            )
            for item in raw.get("assets") or []
            if is_server_asset(item["name"], prefix)
        ]
        if not assets:
            return None

        return Release(
            version=raw["tag_name"],
            release_date=raw["published_at"].split("T")[0],
            assets=tuple(assets),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise ParseFailureError(
            f"Malformed release entry: {e}",
            details={"tag_name": raw.get("tag_name") if isinstance(raw, dict) else None},
        ) from e


class ReleaseCatalog:
    """
    Client for the remote release index.

    Every call performs a fresh fetch; nothing is cached between calls.

    Attributes:
        releases_url: Release index endpoint.
        timeout: Connect/read timeout for the index request.

    Example:
        >>> catalog = ReleaseCatalog()
        >>> releases = await catalog.list_releases()
        >>> url = await catalog.resolve_download_url("16.7.19", "arm64")
    """

    def __init__(
        self,
        releases_url: str = DEFAULT_RELEASES_URL,
        *,
        accept: str = "application/vnd.github.v3+json",
        timeout: float = 30.0,
        head_timeout: float = 10.0,
        binary_prefix: str = DEFAULT_BINARY_PREFIX,
        url_template: str = DEFAULT_URL_TEMPLATE,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.releases_url = releases_url
        self.accept = accept
        self.timeout = timeout
        self.head_timeout = head_timeout
        self.binary_prefix = binary_prefix
        self.url_template = url_template
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        config: CatalogConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ReleaseCatalog:
        """Create a ReleaseCatalog from configuration."""
        return cls(
            config.releases_url,
            accept=config.accept,
            timeout=config.timeout_seconds,
            head_timeout=config.head_timeout_seconds,
            binary_prefix=config.binary_prefix,
            url_template=config.download_url_template,
            transport=transport,
        )

    def _client(self, timeout: float, **kwargs: Any) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
            **kwargs,
        )

    async def load_releases(self) -> Outcome[list[Release]]:
        """
        Fetch and parse the release index.

        Returns:
            Outcome with the releases newest first, or a failed Outcome
            tagged NETWORK_FAILURE or PARSE_FAILURE.
        """
        try:
            releases = await self._fetch_releases()
        except LauncherError as e:
            logger.warning(
                "Failed to load releases",
                extra={"url": self.releases_url, **e.log_extra()},
            )
            return Outcome.from_error(e)
        except httpx.HTTPError as e:
            logger.warning(
                "Release index unreachable",
                extra={"url": self.releases_url, "error": str(e)},
            )
            return Outcome.from_error(
                NetworkFailureError(f"Release index unreachable: {e}")
            )
        except ijson.JSONError as e:
            logger.warning(
                "Release index is not valid JSON",
                extra={"url": self.releases_url, "error": str(e)},
            )
            return Outcome.from_error(ParseFailureError(f"Invalid release index: {e}"))
        except Exception as e:
            logger.exception("Unexpected error loading releases")
            return Outcome.from_error(
                NetworkFailureError(f"Failed to load releases: {e}")
            )

        logger.info("Loaded releases", extra={"count": len(releases)})
        return Outcome.success(releases, f"Found {len(releases)} releases")

    async def list_releases(self) -> list[Release]:
        """Return the available releases newest first; [] on any failure."""
        outcome = await self.load_releases()
        return outcome.value if outcome.ok and outcome.value is not None else []

    async def _fetch_releases(self) -> list[Release]:
        releases: list[Release] = []
        items = ijson.sendable_list()
        parser = ijson.items_coro(items, "item", use_float=True)

        async with self._client(self.timeout) as client:
            async with client.stream(
                "GET",
                self.releases_url,
                headers={"Accept": self.accept},
            ) as response:
                if not response.is_success:
                    raise NetworkFailureError(
                        f"Release index returned HTTP {response.status_code}",
                        details={"status_code": response.status_code},
                    )

                async for chunk in response.aiter_bytes():
                    parser.send(chunk)
                    self._collect(items, releases)

        parser.close()
        self._collect(items, releases)
        return releases

    def _collect(self, items: list[Any], releases: list[Release]) -> None:
        for raw in items:
            if not isinstance(raw, dict):
                raise ParseFailureError("Release entry is not an object")
            release = parse_release(raw, self.binary_prefix)
            if release is not None:
                releases.append(release)
        del items[:]

    async def resolve_download_url(
        self,
        version: str,
        architecture: Architecture | str,
    ) -> str | None:
        """
        Resolve the download URL for a version and architecture.

        The release with the same version is searched first (exact
        architecture, then ``-android-<arch>`` name token). Versions absent
        from the index fall back to the conventional URL template, confirmed
        by a HEAD request.

        Returns:
            The URL, or None when it cannot be resolved.
        """
        try:
            arch = Architecture(architecture)
        except ValueError:
            logger.warning(
                "Unknown architecture", extra={"architecture": str(architecture)}
            )
            return None

        for release in await self.list_releases():
            if release.version != version:
                continue
            asset = release.find_asset(arch)
            if asset is not None:
                return asset.download_url
            break

        return await self._custom_version_url(version, arch)

    async def latest_asset(
        self, architecture: Architecture | str
    ) -> tuple[str, Asset] | None:
        """
        Find the newest release's asset for an architecture.

        Only the newest release is considered; there is no template fallback.

        Returns:
            ``(version, asset)``, or None when the index is empty or the
            newest release has no matching asset.
        """
        try:
            arch = Architecture(architecture)
        except ValueError:
            return None

        releases = await self.list_releases()
        if not releases:
            return None

        asset = releases[0].find_asset(arch)
        if asset is None:
            return None
        return releases[0].version, asset

    async def latest_download_url(self, architecture: Architecture | str) -> str | None:
        """Return the newest release's asset URL for an architecture."""
        latest = await self.latest_asset(architecture)
        return latest[1].download_url if latest is not None else None

    async def _custom_version_url(
        self,
        version: str,
        architecture: Architecture,
    ) -> str | None:
        url = self.url_template.format(
            version=version, architecture=architecture.value
        )
        try:
            async with self._client(
                self.head_timeout, follow_redirects=True
            ) as client:
                response = await client.head(url)
        except httpx.HTTPError as e:
            logger.debug("Custom version check failed", extra={"url": url, "error": str(e)})
            return None

        if response.is_success or response.is_redirect:
            logger.info("Resolved custom version URL", extra={"url": url})
            return url

        logger.info(
            "Custom version not published",
            extra={"url": url, "status_code": response.status_code},
        )
        return None
