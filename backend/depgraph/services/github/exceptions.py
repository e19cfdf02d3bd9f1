"""Custom exceptions for GitHub access during a graph build."""

from __future__ import annotations


class GithubError(Exception):
    """Base exception for GitHub failures."""


class GithubConfigurationError(GithubError):
    """Raised when required configuration is missing."""


class GithubRateLimitError(GithubError):
    """Raised when the upstream service enforces a rate limit."""

    def __init__(self, message: str, retry_after: int | float | None = None):
        super().__init__(message)
        self.retry_after = retry_after


class RepositoryListingError(GithubError):
    """
    Raised when the organization's repositories cannot be listed.

    Without the repository set no graph can be built, so this aborts the run.
    """


class ManifestFetchError(GithubError):
    """Raised when a repository's package.json cannot be retrieved."""

    def __init__(self, message: str, repository: str, status_code: int | None = None):
        super().__init__(message)
        self.repository = repository
        self.status_code = status_code


class ManifestParseError(GithubError):
    """Raised when a repository's package.json is not valid JSON."""

    def __init__(self, message: str, repository: str):
        super().__init__(message)
        self.repository = repository
