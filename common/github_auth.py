"""
GitHub App authentication primitives.

- App identity assertion (RS256 JWT signed with the App private key)
- Installation access token exchange
- Webhook payload signature verification
"""

import asyncio
import hashlib
import hmac
import logging
import time
from datetime import timedelta
from typing import Awaitable, Callable, Dict, Optional

import httpx
import jwt
from pydantic import ValidationError

from common.errors import SigningError, TokenExchangeError
from common.models import AppCredentials, IdentityAssertion, InstallationToken

logger = logging.getLogger(__name__)

ASSERTION_TTL_SECONDS = 600  # GitHub rejects App JWTs valid for more than 10 minutes
GITHUB_API_VERSION = "2022-11-28"
USER_AGENT = "ai-pr-reviewer/1.0"


def github_headers(token: str, accept: str = "application/vnd.github+json") -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Accept": accept,
        "X-GitHub-Api-Version": GITHUB_API_VERSION,
        "User-Agent": USER_AGENT,
    }


# ── Identity assertion ────────────────────────────────────────────────────────


def assert_identity(credentials: AppCredentials, now: Optional[int] = None) -> IdentityAssertion:
    """
    Build a signed App JWT.

    Header ``{"alg": "RS256", "typ": "JWT"}``, payload
    ``{"iat": now, "exp": now + 600, "iss": app_id}``.

    Raises:
        SigningError: the private key is malformed or signing fails.
    """
    issued_at = int(time.time()) if now is None else int(now)
    expires_at = issued_at + ASSERTION_TTL_SECONDS
    payload = {"iat": issued_at, "exp": expires_at, "iss": credentials.app_id}

    try:
        token = jwt.encode(
            payload,
            credentials.private_key,
            algorithm="RS256",
            headers={"typ": "JWT"},
        )
    except (jwt.PyJWTError, ValueError, TypeError) as exc:
        raise SigningError(f"Failed to sign GitHub App JWT: {exc}") from exc

    return IdentityAssertion(
        token=token,
        app_id=credentials.app_id,
        issued_at=issued_at,
        expires_at=expires_at,
    )


# ── Installation token exchange ───────────────────────────────────────────────


async def exchange_token(
    assertion: IdentityAssertion,
    installation_id: int,
    client: httpx.AsyncClient,
    api_url: str = "https://api.github.com",
) -> InstallationToken:
    """
    Exchange an App JWT for an installation access token.

    No retry happens here: the assertion is only valid for ten minutes, so a
    retry must build a fresh one.

    Raises:
        TokenExchangeError: non-2xx response, transport failure or an
            unreadable response body.
    """
    url = f"{api_url.rstrip('/')}/app/installations/{installation_id}/access_tokens"
    try:
        resp = await client.post(url, headers=github_headers(assertion.token))
    except httpx.HTTPError as exc:
        raise TokenExchangeError(
            f"Failed to get installation access token for installation {installation_id}: {exc}"
        ) from exc

    if not resp.is_success:
        logger.error(
            "Installation token exchange failed for installation %s: HTTP %d",
            installation_id,
            resp.status_code,
        )
        raise TokenExchangeError(
            f"Failed to get installation access token for installation {installation_id}: "
            f"HTTP {resp.status_code}",
            status=resp.status_code,
        )

    try:
        return InstallationToken.model_validate(resp.json())
    except (ValueError, ValidationError) as exc:
        raise TokenExchangeError(
            f"Unexpected token response for installation {installation_id}: {exc}",
            status=resp.status_code,
        ) from exc


class InstallationTokenCache:
    """
    Per-installation token cache.

    A cached token is handed out only while it is more than ``leeway`` away
    from its ``expires_at``; after that a fresh one is fetched. Locks are
    per installation: exchanges for different installations run concurrently.
    """

    def __init__(self, leeway: timedelta = timedelta(minutes=5)):
        self._leeway = leeway
        self._tokens: Dict[int, InstallationToken] = {}
        self._locks: Dict[int, asyncio.Lock] = {}

    async def get_or_fetch(
        self,
        installation_id: int,
        fetch: Callable[[], Awaitable[InstallationToken]],
    ) -> InstallationToken:
        lock = self._locks.setdefault(installation_id, asyncio.Lock())
        async with lock:
            cached = self._tokens.get(installation_id)
            if cached is not None and not cached.is_expired(leeway=self._leeway):
                return cached

            token = await fetch()
            if token.is_expired(leeway=self._leeway):
                logger.warning(
                    "Installation %s token expires within the cache leeway; not caching",
                    installation_id,
                )
                self._tokens.pop(installation_id, None)
            else:
                self._tokens[installation_id] = token
            return token

    def invalidate(self, installation_id: int) -> None:
        self._tokens.pop(installation_id, None)


# ── Webhook signature ─────────────────────────────────────────────────────────


def compute_webhook_signature(raw_payload: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), raw_payload, hashlib.sha256).hexdigest()
    return f"sha256={digest}"


def verify_webhook_signature(raw_payload: bytes, signature_header: Optional[str], secret: str) -> bool:
    """
    Check ``x-hub-signature-256`` against the raw request body.

    The comparison is constant-time. Missing, non-ASCII or wrong-length
    headers verify as ``False``; this function never raises for bad input.
    """
    if not signature_header or not secret:
        return False

    try:
        received = signature_header.encode("ascii")
    except UnicodeEncodeError:
        return False

    expected = compute_webhook_signature(raw_payload, secret).encode("ascii")
    if len(received) != len(expected):
        return False
    return hmac.compare_digest(received, expected)
