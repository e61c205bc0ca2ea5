"""Completion backend configuration (OpenRouter-compatible OpenAI chat endpoint)."""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEV_MODEL = "openai/gpt-3.5-turbo"
PROD_MODEL = "openai/gpt-4o-mini"


class AIConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    openai_api_key: str = Field(default="", repr=False)
    openai_base_url: str = Field(default="https://openrouter.ai/api/v1")
    openai_model: Optional[str] = Field(default=None)
    environment: str = Field(default="development")
    http_referer: str = Field(default="http://localhost:3000")
    app_title: str = Field(default="AI PR Reviewer")
    llm_temperature: float = Field(default=0.1)
    llm_max_tokens: int = Field(default=2000)
    llm_timeout: float = Field(default=120.0)
    enable_logfire: bool = Field(default=False)
    logfire_token: Optional[str] = Field(default=None, repr=False)

    @property
    def model_name(self) -> str:
        """Explicit OPENAI_MODEL wins; otherwise a cheaper model outside production."""
        if self.openai_model:
            return self.openai_model
        if self.environment.lower() in ("development", "test"):
            return DEV_MODEL
        return PROD_MODEL
