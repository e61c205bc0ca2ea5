"""PullRequestGateway - GitHub REST calls needed by the review pipeline.

Every call authenticates as the App installation: a fresh App JWT is signed
and exchanged for an installation token before the request is made (unless
the optional token cache is enabled). PyGithub calls are synchronous and run
in a worker thread; raw REST calls (diff media type, token exchange,
installation lookup) go through httpx.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from github import Auth, Github, GithubException

from common.config import GitHubSettings
from common.errors import (
    DiffFetchError,
    GitHubAPIError,
    NotFoundError,
    ReviewPostError,
    SigningError,
)
from common.github_auth import (
    InstallationTokenCache,
    assert_identity,
    exchange_token,
    github_headers,
)
from common.models import AppCredentials, GitHubComment, InstallationToken, PRDetails

logger = logging.getLogger(__name__)

DIFF_MEDIA_TYPE = "application/vnd.github.v3.diff"


class PullRequestGateway:
    """GitHub App-authenticated access to pull requests and reviews."""

    def __init__(
        self,
        credentials: AppCredentials,
        settings: GitHubSettings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.credentials = credentials
        self.settings = settings
        self.api_url = settings.api_url.rstrip("/")
        self._http_client = http_client
        self._token_cache = InstallationTokenCache() if settings.token_cache_enabled else None

    # ── Auth helpers ──────────────────────────────────────────────────────

    @asynccontextmanager
    async def _http(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self.settings.timeout) as client:
            yield client

    async def _fetch_installation_token(self, installation_id: int) -> InstallationToken:
        assertion = assert_identity(self.credentials)
        async with self._http() as client:
            return await exchange_token(assertion, installation_id, client, self.api_url)

    async def get_installation_token(self, installation_id: int) -> InstallationToken:
        """Installation token for ``installation_id`` (fresh unless caching is enabled)."""
        if self._token_cache is None:
            return await self._fetch_installation_token(installation_id)
        return await self._token_cache.get_or_fetch(
            installation_id,
            lambda: self._fetch_installation_token(installation_id),
        )

    def _forget_rejected_token(self, installation_id: int, status: Optional[int]) -> None:
        """Drop a cached token GitHub answered 401 to, so the next call exchanges a new one."""
        if status == 401 and self._token_cache is not None:
            logger.warning("GitHub rejected the token for installation %s; dropping it from the cache", installation_id)
            self._token_cache.invalidate(installation_id)

    def _github(self, token: str) -> Github:
        return Github(auth=Auth.Token(token), base_url=self.api_url, timeout=int(self.settings.timeout))

    async def _installation_github(self, installation_id: int) -> Github:
        token = await self.get_installation_token(installation_id)
        return self._github(token.token)

    # ── Pull requests ─────────────────────────────────────────────────────

    async def get_diff(self, owner: str, repo: str, pull_number: int, installation_id: int) -> str:
        """
        Fetch the unified diff of a pull request.

        Raises:
            DiffFetchError: wraps token, transport and API failures.
        """
        try:
            token = await self.get_installation_token(installation_id)
        except (GitHubAPIError, SigningError) as exc:
            raise DiffFetchError(f"Failed to fetch PR diff: {exc}", getattr(exc, "status", None)) from exc

        url = f"{self.api_url}/repos/{owner}/{repo}/pulls/{pull_number}"
        try:
            async with self._http() as client:
                resp = await client.get(url, headers=github_headers(token.token, accept=DIFF_MEDIA_TYPE))
        except httpx.HTTPError as exc:
            raise DiffFetchError(f"Failed to fetch PR diff: {exc}") from exc

        if not resp.is_success:
            self._forget_rejected_token(installation_id, resp.status_code)
            raise DiffFetchError(
                f"Failed to fetch PR diff: HTTP {resp.status_code}",
                status=resp.status_code,
            )

        logger.info("Fetched diff for %s/%s#%d (%d chars)", owner, repo, pull_number, len(resp.text))
        return resp.text

    async def get_details(self, owner: str, repo: str, pull_number: int, installation_id: int) -> PRDetails:
        """
        Fetch pull request metadata (head SHA included).

        Raises:
            NotFoundError: the pull request does not exist.
            GitHubAPIError: any other API failure.
        """
        github = await self._installation_github(installation_id)

        def _get_details() -> PRDetails:
            pr = github.get_repo(f"{owner}/{repo}").get_pull(pull_number)
            return PRDetails(
                number=pr.number,
                title=pr.title or "",
                state=pr.state or "",
                head_sha=pr.head.sha,
                base_sha=pr.base.sha,
                user_login=pr.user.login if pr.user else None,
                html_url=pr.html_url,
            )

        try:
            return await asyncio.to_thread(_get_details)
        except GithubException as exc:
            self._forget_rejected_token(installation_id, exc.status)
            if exc.status == 404:
                raise NotFoundError(f"Pull request {owner}/{repo}#{pull_number} not found") from exc
            raise GitHubAPIError(f"Failed to fetch PR details: {exc.status}", exc.status) from exc

    async def list_reviews(
        self, owner: str, repo: str, pull_number: int, installation_id: int
    ) -> List[Dict[str, Any]]:
        github = await self._installation_github(installation_id)

        def _list() -> List[Dict[str, Any]]:
            pr = github.get_repo(f"{owner}/{repo}").get_pull(pull_number)
            return [
                {
                    "id": review.id,
                    "user_login": review.user.login if review.user else None,
                    "state": review.state,
                    "body": review.body,
                }
                for review in pr.get_reviews()
            ]

        try:
            return await asyncio.to_thread(_list)
        except GithubException as exc:
            self._forget_rejected_token(installation_id, exc.status)
            raise GitHubAPIError(f"Failed to list reviews: {exc.status}", exc.status) from exc

    async def has_bot_reviewed(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        installation_id: int,
        bot_username: str,
    ) -> bool:
        """
        True if ``bot_username`` already left a review on the pull request.

        A failed listing answers False so a transient read error does not
        block the review.
        """
        try:
            reviews = await self.list_reviews(owner, repo, pull_number, installation_id)
        except Exception as exc:
            logger.warning("Error checking bot reviews on %s/%s#%d: %s", owner, repo, pull_number, exc)
            return False
        return any(review["user_login"] == bot_username for review in reviews)

    async def create_review(
        self,
        owner: str,
        repo: str,
        pull_number: int,
        installation_id: int,
        event: str,
        body: str,
        comments: List[GitHubComment],
        commit_id: Optional[str] = None,
    ) -> int:
        """
        Post a pull request review and return its id.

        Raises:
            ReviewPostError: token or API failure.
        """
        try:
            github = await self._installation_github(installation_id)
        except (GitHubAPIError, SigningError) as exc:
            raise ReviewPostError(f"Failed to post review comments: {exc}", getattr(exc, "status", None)) from exc

        payload = [c.model_dump(exclude={"commit_id"}, exclude_none=True) for c in comments]

        def _post() -> int:
            repository = github.get_repo(f"{owner}/{repo}")
            pr = repository.get_pull(pull_number)
            kwargs: Dict[str, Any] = {"body": body, "event": event, "comments": payload}
            if commit_id:
                kwargs["commit"] = repository.get_commit(commit_id)
            return pr.create_review(**kwargs).id

        try:
            review_id = await asyncio.to_thread(_post)
        except GithubException as exc:
            self._forget_rejected_token(installation_id, exc.status)
            raise ReviewPostError(f"Failed to post review comments: {exc.status}", exc.status) from exc

        logger.info("Posted review %s with %d comments on %s/%s#%d", review_id, len(comments), owner, repo, pull_number)
        return review_id

    # ── App installation ──────────────────────────────────────────────────

    async def resolve_installation(self, owner: str, repo: str) -> Optional[int]:
        """
        Installation id of the App on ``owner/repo``, or None if not installed.

        Authenticates with the App JWT directly; no installation token needed.
        """
        assertion = assert_identity(self.credentials)
        url = f"{self.api_url}/repos/{owner}/{repo}/installation"
        try:
            async with self._http() as client:
                resp = await client.get(url, headers=github_headers(assertion.token))
        except httpx.HTTPError as exc:
            raise GitHubAPIError(f"Failed to look up installation for {owner}/{repo}: {exc}") from exc

        if resp.status_code == 404:
            logger.info("GitHub App is not installed on %s/%s", owner, repo)
            return None
        if not resp.is_success:
            raise GitHubAPIError(
                f"Failed to look up installation for {owner}/{repo}: HTTP {resp.status_code}",
                status=resp.status_code,
            )
        return int(resp.json()["id"])
