"""Service and GitHub App configuration.

Values come from the process environment and an optional ``.env`` file.
"""

import logging
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.errors import ConfigurationError
from common.models import AppCredentials

logger = logging.getLogger(__name__)


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    environment: str = Field(default="development")
    port: int = Field(default=3000)
    log_level: str = Field(default="INFO")
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"


class GitHubSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GITHUB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    app_id: Optional[str] = Field(default=None)
    private_key: Optional[str] = Field(default=None, repr=False)
    private_key_path: Optional[str] = Field(default=None)
    webhook_secret: Optional[str] = Field(default=None, repr=False)
    client_id: str = Field(default="")
    client_secret: str = Field(default="", repr=False)
    bot_username: str = Field(default="ai-pr-reviewer-bot")
    api_url: str = Field(default="https://api.github.com")
    timeout: float = Field(default=30.0)
    token_cache_enabled: bool = Field(default=False)


def _read_private_key(settings: GitHubSettings) -> Optional[str]:
    """Return the PEM key from GITHUB_PRIVATE_KEY, falling back to GITHUB_PRIVATE_KEY_PATH."""
    if settings.private_key:
        # Keys pasted into a single-line env var carry literal "\n" sequences
        return settings.private_key.replace("\\n", "\n")
    if settings.private_key_path:
        path = Path(settings.private_key_path)
        try:
            return path.read_text()
        except OSError as exc:
            raise ConfigurationError(f"Cannot read GitHub private key at {path}: {exc}") from exc
    return None


def load_app_credentials(settings: GitHubSettings, environment: str = "development") -> AppCredentials:
    """
    Build the App credentials from settings.

    Outside production a missing App ID, private key or webhook secret falls
    back to mock credentials so the service can still boot; in production the
    same condition is a ``ConfigurationError``.
    """
    private_key = _read_private_key(settings)

    missing = [
        name
        for name, value in (
            ("GITHUB_APP_ID", settings.app_id),
            ("GITHUB_PRIVATE_KEY", private_key),
            ("GITHUB_WEBHOOK_SECRET", settings.webhook_secret),
        )
        if not value
    ]
    if missing:
        if environment.lower() == "production":
            raise ConfigurationError(f"Missing GitHub App configuration: {', '.join(missing)}")
        logger.warning("GitHub config not found (%s), using mock config", ", ".join(missing))
        return AppCredentials.mock()

    return AppCredentials(
        app_id=settings.app_id,
        private_key=private_key,
        webhook_secret=settings.webhook_secret,
        client_id=settings.client_id,
        client_secret=settings.client_secret,
    )
