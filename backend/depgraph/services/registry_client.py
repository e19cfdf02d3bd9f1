"""npm registry and bundle-size lookups."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from depgraph.config import settings

logger = logging.getLogger(__name__)

# Abbreviated packument: versions with their dependency maps, without readmes.
NPM_ABBREVIATED_MEDIA_TYPE = "application/vnd.npm.install-v1+json"


class RegistryError(Exception):
    """Raised when a registry or bundle-size lookup fails."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def package_path(name: str) -> str:
    """Registry path of a package; scoped names keep "@" but escape the slash."""
    return "/" + name.replace("/", "%2F")


class RegistryClient:
    """Async client for the npm registry and the bundle-size service."""

    def __init__(
        self,
        registry_url: Optional[str] = None,
        bundle_size_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.registry_url = (registry_url or settings.NPM_REGISTRY_URL).rstrip("/")
        self.bundle_size_url = bundle_size_url or settings.BUNDLE_SIZE_URL
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "RegistryClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _get_json(self, url: str, **kwargs) -> Any:
        try:
            response = await self.client.get(url, **kwargs)
        except httpx.HTTPError as exc:
            raise RegistryError(f"Request to {url} failed: {exc}") from exc

        if not response.is_success:
            raise RegistryError(
                response.reason_phrase or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise RegistryError(f"Invalid JSON from {url}") from exc

    async def fetch_manifest(self, name: str) -> Dict[str, Any]:
        """
        Return the manifest of the latest published version of a package.

        Raises:
            RegistryError: unknown package, network failure or malformed document
        """
        packument = await self._get_json(
            f"{self.registry_url}{package_path(name)}",
            headers={"Accept": NPM_ABBREVIATED_MEDIA_TYPE},
        )
        if not isinstance(packument, dict):
            raise RegistryError(f"Unexpected registry document for {name}")
        latest = (packument.get("dist-tags") or {}).get("latest")
        versions = packument.get("versions") or {}
        if latest not in versions:
            raise RegistryError(f"No latest version published for {name}", status_code=404)
        return versions[latest]

    async def fetch_bundle_size(self, name: str) -> Dict[str, Any]:
        """Return the bundle-size report of a package."""
        return await self._get_json(self.bundle_size_url, params={"package": name})

    async def has_dependencies(self, name: str) -> bool:
        """Whether the latest version of a package declares any dependency."""
        manifest = await self.fetch_manifest(name)
        return len(manifest.get("dependencies") or {}) > 0
