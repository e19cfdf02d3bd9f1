"""
Application configuration
"""
from pathlib import Path
from typing import Optional, Set

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Organization Dependency Graph"
    APP_VERSION: str = "1.0.0"
    HTTP_PORT: int = 1337
    LOG_FORMAT: str = "text"

    # GitHub
    ORG_NAME: str = "SlimIO"
    GIT_TOKEN: Optional[str] = None
    GITHUB_API_URL: str = "https://api.github.com"
    USER_AGENT: str = "SlimIO"

    # npm
    NPM_NAME: Optional[str] = None
    NPM_REGISTRY_URL: str = "https://registry.npmjs.org"
    BUNDLE_SIZE_URL: str = "https://bundlephobia.com/api/size"
    FILTER_ORG: bool = True
    EXCEPT_PKG: str = ""

    # Fetching
    REQUEST_TIMEOUT: float = 10.0
    MAX_CONCURRENCY: int = 20

    # Storage
    DATA_DIR: Path = Path("data")

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator("FILTER_ORG", mode="before")
    @classmethod
    def _parse_filter_org(cls, value):
        # The historical value for "enabled" is the literal string "ok".
        if isinstance(value, str):
            return value.strip().lower() in {"ok", "true", "1", "yes", "on"}
        return value

    @property
    def npm_scope(self) -> str:
        return self.NPM_NAME or f"@{self.ORG_NAME.lower()}"

    @property
    def package_exceptions(self) -> Set[str]:
        return {
            name.strip().lower() for name in self.EXCEPT_PKG.split(",") if name.strip()
        }


settings = Settings()
