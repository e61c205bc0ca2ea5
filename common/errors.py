"""Exception hierarchy shared by the GitHub gateway, the AI reviewer and the API layer."""

from typing import Optional


class ReviewBotError(Exception):
    """Base exception for every error raised by the review bot."""


class AuthenticationError(ReviewBotError):
    """Webhook payload signature did not verify."""


class ConfigurationError(ReviewBotError):
    """Missing or invalid GitHub App / AI backend configuration."""


class PayloadError(ReviewBotError):
    """Authenticated webhook body is not a usable pull request event."""


# ── GitHub side ───────────────────────────────────────────────────────────────


class SigningError(ReviewBotError):
    """The App JWT could not be signed (malformed private key, bad input)."""


class GitHubAPIError(ReviewBotError):
    """Non-2xx response or transport failure talking to the GitHub REST API."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


class TokenExchangeError(GitHubAPIError):
    """Installation access token could not be created."""


class DiffFetchError(GitHubAPIError):
    """Pull request diff could not be fetched."""


class ReviewPostError(GitHubAPIError):
    """Pull request review could not be created."""


class NotFoundError(ReviewBotError):
    """Expected, user-facing absence: App not installed, PR not found, no diff."""


# ── AI backend side ───────────────────────────────────────────────────────────


class AIInvocationError(ReviewBotError):
    """
    Completion backend failure.

    Each subclass knows the single synthetic review comment it degrades into,
    so callers can report a usable (if degraded) review instead of failing.
    """

    comment_id = "fallback_1"
    comment_content = "Unable to analyze code at the moment. Please try again later."
    comment_type = "warning"


class RateLimited(AIInvocationError):
    comment_id = "rate_limit_error"
    comment_content = "AI service rate limit exceeded. Please wait a moment and try again."
    comment_type = "warning"


class QuotaExceeded(AIInvocationError):
    comment_id = "quota_error"
    comment_content = (
        "AI API quota exceeded. Please check your billing or upgrade your plan. "
        "You can also try again later when your quota resets."
    )
    comment_type = "error"


class InvalidCredential(AIInvocationError):
    comment_id = "api_key_error"
    comment_content = "Invalid AI API key. Please check your configuration."
    comment_type = "error"


class MalformedResponse(AIInvocationError):
    comment_id = "json_parse_error"
    comment_content = "Received invalid response format from AI service. Please try again."
    comment_type = "error"


class UnknownAIError(AIInvocationError):
    pass
