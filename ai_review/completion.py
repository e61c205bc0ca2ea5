"""Completion backend: system + user prompt in, raw model text out."""

import logging
from typing import Any, Optional, Protocol

import logfire
from openai import AsyncOpenAI
from pydantic_ai import Agent
from pydantic_ai.exceptions import ModelHTTPError, UnexpectedModelBehavior
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.settings import ModelSettings

from ai_review.config import AIConfig
from common.errors import (
    AIInvocationError,
    ConfigurationError,
    InvalidCredential,
    MalformedResponse,
    QuotaExceeded,
    RateLimited,
    UnknownAIError,
)

logger = logging.getLogger(__name__)


class CompletionBackend(Protocol):
    model_name: str

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        """Return the raw completion text; raise AIInvocationError on failure."""
        ...


def _error_code(body: Any) -> Optional[str]:
    if isinstance(body, dict):
        code = body.get("code")
        if code is None and isinstance(body.get("error"), dict):
            code = body["error"].get("code")
        return str(code) if code is not None else None
    return None


def classify_backend_error(exc: Exception) -> AIInvocationError:
    """Map a raw backend exception onto the AIInvocationError taxonomy."""
    if isinstance(exc, AIInvocationError):
        return exc

    status = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    code = getattr(exc, "code", None)
    if isinstance(exc, ModelHTTPError):
        code = _error_code(exc.body) or code

    if code == "insufficient_quota":
        return QuotaExceeded(str(exc))
    if status == 429 or code == 429 or code == "rate_limit_exceeded":
        return RateLimited(str(exc))
    if status == 401 or code == "invalid_api_key":
        return InvalidCredential(str(exc))
    if isinstance(exc, UnexpectedModelBehavior) or "JSON" in str(exc) or "Unexpected token" in str(exc):
        return MalformedResponse(str(exc))
    return UnknownAIError(str(exc))


class PydanticAICompletionBackend:
    """
    OpenAI-compatible chat completion (OpenRouter by default) through pydantic-ai.

    The model is asked for a JSON object response; parsing and repair are
    left to the normalizer, so the agent's output type stays plain text.
    """

    def __init__(self, config: AIConfig, model: Optional[Model] = None):
        self.config = config
        self.model_name = config.model_name
        self._model = model
        self._settings = ModelSettings(
            temperature=config.llm_temperature,
            max_tokens=config.llm_max_tokens,
            timeout=config.llm_timeout,
            extra_body={"response_format": {"type": "json_object"}},
        )
        self._tracing = bool(config.enable_logfire and config.logfire_token)
        if self._tracing:
            logfire.configure(token=config.logfire_token)

    def _get_model(self) -> Model:
        if self._model is None:
            if not self.config.openai_api_key:
                raise ConfigurationError("OPENAI_API_KEY environment variable is required")
            client = AsyncOpenAI(
                base_url=self.config.openai_base_url,
                api_key=self.config.openai_api_key,
                default_headers={
                    "HTTP-Referer": self.config.http_referer,
                    "X-Title": self.config.app_title,
                },
            )
            self._model = OpenAIChatModel(
                self.model_name,
                provider=OpenAIProvider(openai_client=client),
            )
        return self._model

    async def complete(self, system_prompt: str, user_prompt: str) -> str:
        agent = Agent(
            self._get_model(),
            system_prompt=system_prompt,
            model_settings=self._settings,
            name="reviewer",
        )
        if self._tracing:
            logfire.instrument_pydantic_ai(agent)
        try:
            result = await agent.run(user_prompt)
        except Exception as exc:
            error = classify_backend_error(exc)
            logger.error("Completion backend call failed (%s): %s", type(error).__name__, exc)
            raise error from exc

        output = result.output
        if not output:
            raise MalformedResponse("No response from AI backend")
        return output
