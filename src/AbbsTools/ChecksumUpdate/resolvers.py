"""Resolvers that turn a classified source entry into a fetchable URL.

Most transports name their download location directly and resolve to
themselves.  Registry transports name a package instead; their resolver asks
the registry's metadata endpoint which artifact to download.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, Optional

import httpx

from .entries import REGISTRY_VERSION_OPTION, SourceEntry
from .errors import ResolutionError
from .settings import ChecksumUpdateConfiguration, get_default_config

__all__ = [
    "RESOLVERS",
    "BaseResolver",
    "DirectResolver",
    "PyPIResolver",
    "resolve_locator",
]

logger = logging.getLogger(__name__)


class BaseResolver:
    """Shared interface for locator resolvers."""

    name = "base"

    async def resolve(
        self,
        client: httpx.AsyncClient,
        entry: SourceEntry,
        config: ChecksumUpdateConfiguration,
    ) -> str:
        raise NotImplementedError


class DirectResolver(BaseResolver):
    """Resolve entries whose locator already is the download URL."""

    name = "direct"

    async def resolve(
        self,
        client: httpx.AsyncClient,
        entry: SourceEntry,
        config: ChecksumUpdateConfiguration,
    ) -> str:
        return entry.locator


class PyPIResolver(BaseResolver):
    """Resolve ``pypi::version=<v>::<name>`` entries to their sdist URL."""

    name = "pypi"

    def metadata_url(self, config: ChecksumUpdateConfiguration, package: str, version: str) -> str:
        return f"{config.pypi_base_url}/{package}/{version}/json"

    @staticmethod
    def _select_sdist(artifacts: Iterable[Any]) -> Optional[str]:
        for artifact in artifacts:
            if not isinstance(artifact, dict):
                continue
            if artifact.get("packagetype") == "sdist" and isinstance(artifact.get("url"), str):
                return artifact["url"]
        return None

    async def resolve(
        self,
        client: httpx.AsyncClient,
        entry: SourceEntry,
        config: ChecksumUpdateConfiguration,
    ) -> str:
        version = entry.options.get(REGISTRY_VERSION_OPTION, "")
        url = self.metadata_url(config, entry.locator, version)
        try:
            response = await client.get(url)
        except httpx.HTTPError as exc:
            raise ResolutionError(f"PyPI lookup for {entry.locator} {version} failed: {exc}") from exc

        if not response.is_success:
            raise ResolutionError(
                f"PyPI lookup for {entry.locator} {version} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise ResolutionError(f"PyPI returned invalid JSON for {entry.locator}") from exc

        artifacts = payload.get("urls") if isinstance(payload, dict) else None
        sdist = self._select_sdist(artifacts or ())
        if sdist is None:
            raise ResolutionError(
                f"Failed to get PyPI source distribution for {entry.locator} {version}"
            )
        logger.info(
            "resolved download url",
            extra={
                "stage": "resolve",
                "resolver": self.name,
                "package": entry.locator,
                "version": version,
                "url": sdist,
            },
        )
        return sdist


RESOLVERS: Dict[str, BaseResolver] = {
    "pypi": PyPIResolver(),
}

_DIRECT = DirectResolver()


async def resolve_locator(
    client: httpx.AsyncClient,
    entry: SourceEntry,
    config: Optional[ChecksumUpdateConfiguration] = None,
) -> str:
    """Return the download URL for ``entry``.

    Raises:
        ResolutionError: If ``entry`` uses a registry transport without a
            registered resolver, or the registry lookup fails.
    """

    config = config or get_default_config()
    if not entry.is_registry:
        return await _DIRECT.resolve(client, entry, config)
    resolver = RESOLVERS.get(entry.transport)
    if resolver is None:
        raise ResolutionError(f"no resolver registered for transport '{entry.transport}'")
    return await resolver.resolve(client, entry, config)
