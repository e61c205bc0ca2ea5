"""FastAPI dependency providers.

Settings, credentials and the long-lived collaborators are built once per
process and handed to request handlers through ``Depends``; tests swap them
with ``app.dependency_overrides``.
"""

import logging
from functools import lru_cache

from fastapi import Depends

from ai_review.completion import CompletionBackend, PydanticAICompletionBackend
from ai_review.config import AIConfig
from api.services.github_service import PullRequestGateway
from api.services.review_service import ReviewOrchestrator
from common.config import AppSettings, GitHubSettings, load_app_credentials
from common.models import AppCredentials

logger = logging.getLogger(__name__)


@lru_cache
def get_app_settings() -> AppSettings:
    return AppSettings()


@lru_cache
def get_github_settings() -> GitHubSettings:
    return GitHubSettings()


@lru_cache
def get_ai_config() -> AIConfig:
    return AIConfig()


@lru_cache
def get_app_credentials() -> AppCredentials:
    """GitHub App credentials; mock ones outside production when unset."""
    return load_app_credentials(get_github_settings(), get_app_settings().environment)


@lru_cache
def get_gateway() -> PullRequestGateway:
    return PullRequestGateway(get_app_credentials(), get_github_settings())


@lru_cache
def get_completion_backend() -> CompletionBackend:
    config = get_ai_config()
    if not config.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set. AI review functionality will not work.")
    return PydanticAICompletionBackend(config)


def get_orchestrator(
    credentials: AppCredentials = Depends(get_app_credentials),
    gateway: PullRequestGateway = Depends(get_gateway),
    backend: CompletionBackend = Depends(get_completion_backend),
    github_settings: GitHubSettings = Depends(get_github_settings),
) -> ReviewOrchestrator:
    return ReviewOrchestrator(
        credentials=credentials,
        gateway=gateway,
        backend=backend,
        bot_username=github_settings.bot_username,
    )
