"""Async GitHub REST client used to list an organization and read manifests."""

from __future__ import annotations

import logging
from datetime import timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional

import httpx

from depgraph.config import settings
from depgraph.services.github.exceptions import (
    GithubConfigurationError,
    GithubRateLimitError,
    ManifestFetchError,
    RepositoryListingError,
)
from depgraph.utils.datetime import utc_now

logger = logging.getLogger(__name__)

GITHUB_JSON_MEDIA_TYPE = "application/vnd.github+json"
GITHUB_RAW_MEDIA_TYPE = "application/vnd.github.v3.raw"
MANIFEST_FILE = "package.json"
PAGE_SIZE = 100


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Seconds to wait from a Retry-After header, given as seconds or an HTTP date."""
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        pass
    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    return max(0.0, (retry_at - utc_now()).total_seconds())


def _raise_for_rate_limit(response: httpx.Response) -> None:
    if response.status_code not in (403, 429):
        return
    remaining = response.headers.get("X-RateLimit-Remaining")
    if response.status_code == 403 and remaining != "0":
        return

    retry_after = parse_retry_after(response.headers.get("Retry-After"))
    raise GithubRateLimitError(
        f"GitHub rate limit reached ({response.status_code})", retry_after=retry_after
    )


class GithubClient:
    """
    Thin wrapper around httpx.AsyncClient for the two GitHub calls a build needs.

    The underlying client is created lazily and shared by all concurrent
    requests; use it as an async context manager so it gets closed.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        api_url: Optional[str] = None,
        user_agent: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token = token if token is not None else settings.GIT_TOKEN
        self.api_url = (api_url or settings.GITHUB_API_URL).rstrip("/")
        self.user_agent = user_agent or settings.USER_AGENT
        self.timeout = timeout if timeout is not None else settings.REQUEST_TIMEOUT
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "GithubClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.api_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _headers(self, accept: str = GITHUB_JSON_MEDIA_TYPE) -> Dict[str, str]:
        headers = {"Accept": accept, "User-Agent": self.user_agent}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def list_org_repositories(self, org_name: str) -> List[Dict[str, Any]]:
        """
        List every repository of an organization, following pagination.

        Raises:
            GithubConfigurationError: no organization name was given
            GithubRateLimitError: GitHub refused the listing for rate limiting
            RepositoryListingError: any other network or HTTP failure
        """
        if not org_name:
            raise GithubConfigurationError("ORG_NAME is not configured")

        repositories: List[Dict[str, Any]] = []
        page = 1
        while True:
            try:
                response = await self.client.get(
                    f"/orgs/{org_name}/repos",
                    params={"per_page": PAGE_SIZE, "page": page, "type": "all"},
                    headers=self._headers(),
                )
            except httpx.HTTPError as exc:
                raise RepositoryListingError(
                    f"Failed to list repositories of {org_name}: {exc}"
                ) from exc

            _raise_for_rate_limit(response)
            if response.status_code != 200:
                raise RepositoryListingError(
                    f"Failed to list repositories of {org_name}: HTTP {response.status_code}"
                )

            batch = response.json()
            repositories.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
            page += 1

        logger.info(f"Listed {len(repositories)} repositories for {org_name}")
        return repositories

    async def fetch_manifest(self, full_name: str) -> str:
        """
        Fetch the raw package.json of a repository's default branch.

        Raises:
            ManifestFetchError: network error, timeout, rate limit or non-2xx response
        """
        try:
            response = await self.client.get(
                f"/repos/{full_name}/contents/{MANIFEST_FILE}",
                headers=self._headers(accept=GITHUB_RAW_MEDIA_TYPE),
            )
            _raise_for_rate_limit(response)
        except (httpx.HTTPError, GithubRateLimitError) as exc:
            raise ManifestFetchError(str(exc) or type(exc).__name__, repository=full_name) from exc

        if not response.is_success:
            raise ManifestFetchError(
                f"HTTP {response.status_code} for {MANIFEST_FILE}",
                repository=full_name,
                status_code=response.status_code,
            )
        return response.text
